"""Macro Calculations - Pure functions for meal plan nutrition math.

All functions are pure: same input always produces same output, no side effects.
"""

from .models import DayPlan, Meal, NutrientEstimate, WeekPlan


def calculate_meal_totals(meals: list[Meal]) -> NutrientEstimate:
    """Sum the nutrient estimates of a list of meals.

    Args:
        meals: Meals to total

    Returns:
        NutrientEstimate with summed calories and macros
    """
    return NutrientEstimate(
        calories=sum(m.nutrients.calories for m in meals),
        protein=round(sum(m.nutrients.protein for m in meals), 1),
        carbs=round(sum(m.nutrients.carbs for m in meals), 1),
        fat=round(sum(m.nutrients.fat for m in meals), 1),
    )


def calculate_day_totals(day: DayPlan) -> NutrientEstimate:
    """Total nutrients planned for one day."""
    return calculate_meal_totals(day.meals)


def calculate_week_totals(plan: WeekPlan) -> dict[str, NutrientEstimate]:
    """Per-day totals plus a ``week`` entry for the whole plan.

    Args:
        plan: The week plan

    Returns:
        Mapping of day name to totals, with the weekly sum under "week"
    """
    totals = {day.day_name: calculate_day_totals(day) for day in plan.days}
    totals["week"] = calculate_meal_totals([m for day in plan.days for m in day.meals])
    return totals


def calculate_total_prep_time(day: DayPlan) -> int:
    """Minutes of preparation planned for one day."""
    return sum(m.prep_time for m in day.meals)
