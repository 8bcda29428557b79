"""Unit tests for the meal plan parser - pure functions, no mocks needed."""

import logging
from datetime import datetime, timedelta

from healthroute.core.models import DAYS_OF_WEEK, NutrientEstimate
from healthroute.core.meal_parser import (
    MISSING_INGREDIENTS,
    meal_id,
    parse_meal_plan,
    parse_recipe_line,
    weekday_index,
)


NOW = datetime(2024, 12, 30, 8, 0, 0)

FULL_DAY = """# Tuesday
## Breakfast
Recipe: Greek Yogurt Bowl, yogurt, honey, walnuts
## Lunch
Recipe: Lentil Soup, lentils, carrots, celery, onion
## Dinner
Recipe: Salmon with Rice, salmon, rice, broccoli
## Snack
Recipe: Apple Slices, apple, peanut butter
"""


class TestScenarioA:
    """The single-meal example plan."""

    def test_monday_breakfast(self):
        """Monday gets one breakfast with defaults; other days are empty."""
        plan = parse_meal_plan("# Monday\n## Breakfast\nRecipe: Oatmeal, oats, milk, banana\n", now=NOW)

        monday = plan.days[0]
        assert monday.day_name == "Monday"
        assert len(monday.meals) == 1

        meal = monday.meals[0]
        assert meal.name == "Oatmeal"
        assert meal.type == "breakfast"
        assert meal.ingredients == ["oats", "milk", "banana"]
        assert meal.nutrients == NutrientEstimate(calories=350, protein=20, carbs=40, fat=15)
        assert meal.prep_time == 25

        assert all(day.meals == [] for day in plan.days[1:])


class TestWeekCoverage:
    """The output always has seven weekdays in Monday-first order."""

    def test_seven_days_in_order(self):
        plan = parse_meal_plan(FULL_DAY, now=NOW)
        assert [d.day_name for d in plan.days] == list(DAYS_OF_WEEK)

    def test_empty_string(self):
        """Empty input yields seven empty days."""
        plan = parse_meal_plan("", now=NOW)
        assert len(plan.days) == 7
        assert all(d.meals == [] for d in plan.days)

    def test_text_without_headings(self):
        """Prose with no recognized lines yields seven empty days."""
        plan = parse_meal_plan("Sure! Here is a healthy plan.\nEat well and stay hydrated.", now=NOW)
        assert [d.day_name for d in plan.days] == list(DAYS_OF_WEEK)
        assert all(d.meals == [] for d in plan.days)

    def test_none_is_treated_as_empty(self):
        plan = parse_meal_plan(None, now=NOW)
        assert len(plan.days) == 7

    def test_input_order_does_not_matter(self):
        """Sunday written first still lands last."""
        text = "# Sunday\n## Lunch\nRecipe: Pasta, penne, tomato\n# Monday\n## Dinner\nRecipe: Tacos, tortilla, beans\n"
        plan = parse_meal_plan(text, now=NOW)

        assert plan.days[0].meals[0].name == "Tacos"
        assert plan.days[6].meals[0].name == "Pasta"
        assert [d.day_name for d in plan.days] == list(DAYS_OF_WEEK)

    def test_day_ids_and_dates(self):
        """Days are numbered from 1 and dated from now by weekday index."""
        plan = parse_meal_plan("", now=NOW)
        for i, day in enumerate(plan.days):
            assert day.id == f"day-{i + 1}"
            assert day.day_index == i
            assert day.date == NOW + timedelta(days=i)

    def test_day_heading_is_case_insensitive(self):
        """A lower-case heading still maps onto the canonical weekday."""
        plan = parse_meal_plan("# wednesday\n## Lunch\nRecipe: Salad, lettuce\n", now=NOW)
        assert plan.days[2].day_name == "Wednesday"
        assert plan.days[2].meals[0].name == "Salad"

    def test_unknown_day_is_dropped(self):
        """Meals under an unrecognized day heading disappear."""
        plan = parse_meal_plan("# Day 1\n## Breakfast\nRecipe: Toast, bread\n", now=NOW)
        assert all(d.meals == [] for d in plan.days)

    def test_repeated_day_keeps_first(self):
        text = "# Monday\n## Lunch\nRecipe: First, a\n# Monday\n## Lunch\nRecipe: Second, b\n"
        plan = parse_meal_plan(text, now=NOW)
        assert [m.name for m in plan.days[0].meals] == ["First"]


class TestMeals:
    """Meal boundaries, names and ingredients."""

    def test_full_day(self):
        plan = parse_meal_plan(FULL_DAY, now=NOW)
        tuesday = plan.days[1]
        assert [m.type for m in tuesday.meals] == ["breakfast", "lunch", "dinner", "snack"]
        assert [m.name for m in tuesday.meals] == [
            "Greek Yogurt Bowl",
            "Lentil Soup",
            "Salmon with Rice",
            "Apple Slices",
        ]

    def test_ingredient_cap(self):
        """More than six ingredients are truncated to the first six."""
        text = "# Friday\n## Dinner\nRecipe: Stew, a, b, c, d, e, f, g, h\n"
        meal = parse_meal_plan(text, now=NOW).days[4].meals[0]
        assert meal.ingredients == ["a", "b", "c", "d", "e", "f"]

    def test_empty_ingredient_segments_dropped(self):
        meal = parse_meal_plan("# Friday\n## Dinner\nRecipe: Stew, beef, , ,carrots,\n", now=NOW).days[4].meals[0]
        assert meal.ingredients == ["beef", "carrots"]

    def test_missing_ingredients_placeholder(self):
        meal = parse_meal_plan("# Monday\n## Snack\nRecipe: Almonds\n", now=NOW).days[0].meals[0]
        assert meal.ingredients == [MISSING_INGREDIENTS]

    def test_meal_without_recipe_is_discarded(self):
        """A meal heading with no recipe line never becomes a meal."""
        text = "# Monday\n## Breakfast\n## Lunch\nRecipe: Wrap, tortilla, chicken\n"
        meals = parse_meal_plan(text, now=NOW).days[0].meals
        assert [m.type for m in meals] == ["lunch"]
        assert meals[0].slot == 0

    def test_recipe_prefix_is_case_insensitive(self):
        meal = parse_meal_plan("# Monday\n## Lunch\nRECIPE:   Bowl, rice\n", now=NOW).days[0].meals[0]
        assert meal.name == "Bowl"

    def test_unrecognized_meal_label_passes_through(self):
        meal = parse_meal_plan("# Monday\n## Brunch\nRecipe: Eggs, eggs\n", now=NOW).days[0].meals[0]
        assert meal.type == "brunch"

    def test_unrecognized_meal_label_is_logged(self, caplog):
        caplog.set_level(logging.DEBUG, logger="healthroute.core.meal_parser")
        parse_meal_plan("# Monday\n## Brunch\nRecipe: Eggs, eggs\n## Lunch\nRecipe: Soup, beans\n", now=NOW)
        messages = [r.getMessage() for r in caplog.records]
        assert messages == ["Unrecognized meal label 'Brunch' kept as-is"]

    def test_indented_lines_are_recognized(self):
        meal = parse_meal_plan("  # Monday\n   ## Dinner\n\tRecipe: Curry, chickpeas\n", now=NOW).days[0].meals[0]
        assert meal.name == "Curry"

    def test_meal_ids_and_keys(self):
        """IDs combine day, type and position; keys are (day_index, slot)."""
        tuesday = parse_meal_plan(FULL_DAY, now=NOW).days[1]
        assert [m.id for m in tuesday.meals] == [
            "tuesday-breakfast-0",
            "tuesday-lunch-1",
            "tuesday-dinner-2",
            "tuesday-snack-3",
        ]
        assert tuesday.meal_keys() == [(1, 0), (1, 1), (1, 2), (1, 3)]

    def test_recipe_before_any_day_is_ignored(self):
        plan = parse_meal_plan("## Breakfast\nRecipe: Toast, bread\n", now=NOW)
        assert all(d.meals == [] for d in plan.days)

    def test_identical_input_gives_identical_plan(self):
        assert parse_meal_plan(FULL_DAY, now=NOW) == parse_meal_plan(FULL_DAY, now=NOW)


class TestHelpers:
    """Tests for the small parsing helpers."""

    def test_parse_recipe_line(self):
        assert parse_recipe_line("Recipe: Oatmeal, oats, milk") == ("Oatmeal", ["oats", "milk"])

    def test_weekday_index(self):
        assert weekday_index("Monday") == 0
        assert weekday_index(" SUNDAY ") == 6
        assert weekday_index("Someday") is None

    def test_meal_id_hyphenates_spaces(self):
        assert meal_id("Day  Two", "Lunch", 2) == "day-two-lunch-2"
