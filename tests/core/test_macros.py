"""Unit tests for meal plan nutrition math - pure functions, no mocks needed."""

from datetime import datetime

from healthroute.core.models import DayPlan, Meal, NutrientEstimate, WeekPlan
from healthroute.core.macros import (
    calculate_day_totals,
    calculate_meal_totals,
    calculate_total_prep_time,
    calculate_week_totals,
)
from healthroute.core.meal_parser import parse_meal_plan


NOW = datetime(2024, 12, 30, 8, 0, 0)


class TestCalculateMealTotals:
    """Tests for calculate_meal_totals."""

    def test_empty_meals(self):
        """Empty list returns zeros."""
        assert calculate_meal_totals([]) == NutrientEstimate(calories=0, protein=0, carbs=0, fat=0)

    def test_multiple_meals(self):
        """Meals are summed and macros rounded to one decimal."""
        meals = [
            Meal(id="a", name="Oatmeal", type="breakfast",
                 nutrients=NutrientEstimate(calories=300, protein=10.1, carbs=50, fat=6)),
            Meal(id="b", name="Salad", type="lunch",
                 nutrients=NutrientEstimate(calories=420, protein=22.1, carbs=18.5, fat=25.3)),
        ]
        totals = calculate_meal_totals(meals)
        assert totals.calories == 720
        assert totals.protein == 32.2
        assert totals.carbs == 68.5
        assert totals.fat == 31.3


class TestPlanTotals:
    """Day and week totals over a parsed plan."""

    TEXT = (
        "# Monday\n## Breakfast\nRecipe: Oatmeal, oats\n## Lunch\nRecipe: Soup, lentils\n"
        "# Friday\n## Dinner\nRecipe: Curry, chickpeas\n"
    )

    def test_day_totals_use_defaults(self):
        plan = parse_meal_plan(self.TEXT, now=NOW)
        totals = calculate_day_totals(plan.days[0])
        assert totals == NutrientEstimate(calories=700, protein=40, carbs=80, fat=30)

    def test_week_totals(self):
        plan = parse_meal_plan(self.TEXT, now=NOW)
        totals = calculate_week_totals(plan)

        assert set(totals) == {*(d.day_name for d in plan.days), "week"}
        assert totals["Tuesday"].calories == 0
        assert totals["Friday"].calories == 350
        assert totals["week"].calories == 1050

    def test_empty_week(self):
        assert calculate_week_totals(WeekPlan()) == {
            "week": NutrientEstimate(calories=0, protein=0, carbs=0, fat=0)
        }

    def test_prep_time(self):
        plan = parse_meal_plan(self.TEXT, now=NOW)
        assert calculate_total_prep_time(plan.days[0]) == 50
        assert calculate_total_prep_time(DayPlan(id="day-2", day_name="Tuesday", day_index=1, date=NOW)) == 0
