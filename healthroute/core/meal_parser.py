"""Meal Plan Parser - Turns a generated meal-plan completion into a WeekPlan.

Recognized line grammar (everything else is ignored):

    # Monday                       starts a day
    ## Breakfast                   starts a meal in the current day
    Recipe: Oatmeal, oats, milk    meal name followed by ingredients

The parser is best-effort and never raises for string input: anything it
cannot place is dropped, and the result always has all seven weekdays.
"""

import logging
import re
from datetime import datetime, timedelta

from .models import (
    DAYS_OF_WEEK,
    DEFAULT_NUTRIENTS,
    DEFAULT_PREP_TIME,
    DayPlan,
    Meal,
    MealType,
    WeekPlan,
)


logger = logging.getLogger(__name__)

DAY_HEADING = "# "
MEAL_HEADING = "## "
RECIPE_PREFIX = re.compile(r"^recipe:\s*", re.IGNORECASE)

MAX_INGREDIENTS = 6
MISSING_INGREDIENTS = "Ingredients not specified"
KNOWN_MEAL_TYPES = frozenset(t.value for t in MealType)


def weekday_index(name: str) -> int | None:
    """Index of a weekday name (Monday = 0), case-insensitive; None if unknown."""
    lowered = name.strip().lower()
    for i, day in enumerate(DAYS_OF_WEEK):
        if day.lower() == lowered:
            return i
    return None


def meal_id(day_name: str, meal_type: str, position: int) -> str:
    """Build the meal identifier, e.g. ``monday-breakfast-0``."""
    day_part = re.sub(r"\s+", "-", day_name.lower())
    return f"{day_part}-{meal_type.lower()}-{position}"


def parse_recipe_line(line: str) -> tuple[str, list[str]]:
    """Split a ``Recipe:`` line into (meal name, ingredients).

    Empty ingredient segments are dropped and the list is capped at
    MAX_INGREDIENTS entries.
    """
    content = RECIPE_PREFIX.sub("", line, count=1).strip()
    parts = content.split(",")
    name = parts[0].strip()
    ingredients = [p.strip() for p in parts[1:] if p.strip()]
    return name, ingredients[:MAX_INGREDIENTS]


def _empty_day(index: int, now: datetime) -> DayPlan:
    return DayPlan(
        id=f"day-{index + 1}",
        day_name=DAYS_OF_WEEK[index],
        day_index=index,
        date=now + timedelta(days=index),
        meals=[],
    )


class _ParseState:
    """Scan state for one pass over the completion text."""

    def __init__(self, now: datetime) -> None:
        self.now = now
        self.days: dict[int, DayPlan] = {}
        self.day_name: str | None = None
        self.meal_type: str | None = None
        self.meal_name: str | None = None
        self.ingredients: list[str] = []
        self.day_meals: list[Meal] = []

    def flush_meal(self) -> None:
        if not (self.day_name and self.meal_type and self.meal_name):
            if self.meal_type:
                logger.debug("Dropping meal %r without a recipe line", self.meal_type)
            return
        if self.meal_type.lower() not in KNOWN_MEAL_TYPES:
            logger.debug("Unrecognized meal label %r kept as-is", self.meal_type)
        position = len(self.day_meals)
        self.day_meals.append(
            Meal(
                id=meal_id(self.day_name, self.meal_type, position),
                name=self.meal_name,
                type=self.meal_type.lower(),
                nutrients=DEFAULT_NUTRIENTS.model_copy(),
                prep_time=DEFAULT_PREP_TIME,
                ingredients=self.ingredients or [MISSING_INGREDIENTS],
                slot=position,
            )
        )

    def flush_day(self) -> None:
        if not (self.day_name and self.day_meals):
            return
        index = weekday_index(self.day_name)
        if index is None:
            logger.debug("Dropping %d meals under unknown day %r", len(self.day_meals), self.day_name)
            return
        if index in self.days:
            logger.debug("Ignoring repeated heading for %s", DAYS_OF_WEEK[index])
            return
        day = _empty_day(index, self.now)
        day.meals = list(self.day_meals)
        self.days[index] = day

    def start_day(self, name: str) -> None:
        self.day_name = name
        self.day_meals = []
        self.meal_type = None
        self.meal_name = None
        self.ingredients = []

    def start_meal(self, label: str) -> None:
        self.meal_type = label
        self.meal_name = None
        self.ingredients = []


def parse_meal_plan(text: str, now: datetime | None = None) -> WeekPlan:
    """Parse a markdown-like meal plan into a seven-day WeekPlan.

    Args:
        text: Completion text, with no structural guarantee
        now: Base timestamp for synthetic day dates (defaults to now)

    Returns:
        WeekPlan with exactly seven days, Monday first. Days missing
        from the text are present with no meals.
    """
    if now is None:
        now = datetime.utcnow()

    state = _ParseState(now)

    for raw_line in (text or "").split("\n"):
        line = raw_line.strip()

        if line.startswith(DAY_HEADING) and not line.startswith(MEAL_HEADING):
            state.flush_meal()
            state.flush_day()
            state.start_day(line[len(DAY_HEADING):].strip())
        elif line.startswith(MEAL_HEADING):
            state.flush_meal()
            state.start_meal(line[len(MEAL_HEADING):].strip())
        elif RECIPE_PREFIX.match(line):
            state.meal_name, state.ingredients = parse_recipe_line(line)

    state.flush_meal()
    state.flush_day()

    days = [state.days.get(i) or _empty_day(i, now) for i in range(len(DAYS_OF_WEEK))]
    return WeekPlan(id="week-plan-1", days=days)
