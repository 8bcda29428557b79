"""Core Data Models - Pydantic models for type safety.

All models are value objects with no behavior beyond validation and
simple lookups.
"""

from datetime import datetime, timezone
from datetime import date as DateType
from enum import Enum
from typing import Literal, Optional
from pydantic import BaseModel, Field, field_validator
import uuid


DAYS_OF_WEEK = (
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
    "Sunday",
)

Sex = Literal["male", "female", "any"]


def naive_utc(value: datetime) -> datetime:
    """Offset-aware timestamps converted to naive UTC; naive ones unchanged."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class MealType(str, Enum):
    """Meal slots a plan is generated for."""

    BREAKFAST = "breakfast"
    LUNCH = "lunch"
    DINNER = "dinner"
    SNACK = "snack"


class NutrientStatus(str, Enum):
    """Clinical status of a measurement against its reference range."""

    NORMAL = "normal"
    DEFICIENT = "deficient"
    EXCESS = "excess"


class NutrientEstimate(BaseModel):
    """Per-meal macro estimate."""

    calories: int = Field(ge=0, description="Estimated calories")
    protein: float = Field(ge=0, description="Protein in grams")
    carbs: float = Field(ge=0, description="Carbohydrates in grams")
    fat: float = Field(ge=0, description="Fat in grams")


DEFAULT_NUTRIENTS = NutrientEstimate(calories=350, protein=20, carbs=40, fat=15)
DEFAULT_PREP_TIME = 25


class Meal(BaseModel):
    """A single meal within a day of a generated plan."""

    id: str
    name: str = Field(min_length=1, description="Display name of the meal")
    type: str = Field(description="Meal slot label, normally a MealType value")
    nutrients: NutrientEstimate = Field(default_factory=lambda: DEFAULT_NUTRIENTS.model_copy())
    prep_time: int = Field(default=DEFAULT_PREP_TIME, ge=0, description="Preparation time in minutes")
    ingredients: list[str] = Field(default_factory=list, max_length=6)
    slot: int = Field(default=0, ge=0, description="Position of the meal within its day")


class DayPlan(BaseModel):
    """One weekday of a plan."""

    id: str
    day_name: str
    day_index: int = Field(ge=0, le=6)
    date: datetime
    meals: list[Meal] = Field(default_factory=list)

    def meal_keys(self) -> list[tuple[int, int]]:
        """Composite (day_index, slot) keys of this day's meals."""
        return [(self.day_index, m.slot) for m in self.meals]


class WeekPlan(BaseModel):
    """Seven days, Monday first."""

    id: str = "week-plan-1"
    days: list[DayPlan] = Field(default_factory=list)

    def day(self, name: str) -> DayPlan | None:
        """Find a day by name, case-insensitively."""
        lowered = name.strip().lower()
        return next((d for d in self.days if d.day_name.lower() == lowered), None)


class MealPlanRecord(BaseModel):
    """A week plan as stored for a user."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    plan_date: DateType = Field(default_factory=DateType.today)
    source: Literal["chatbot", "manual", "import"] = "chatbot"
    week_plan: WeekPlan
    created_at: datetime = Field(default_factory=datetime.utcnow)


class RawNutrientRow(BaseModel):
    """A nutrient measurement after name/unit normalization, before classification."""

    measured_at: datetime = Field(default_factory=datetime.utcnow)
    nutrient: str = Field(min_length=1)
    value: float = Field(allow_inf_nan=False)
    unit: str = ""
    reference_range: Optional[str] = None
    file_name: Optional[str] = None

    @field_validator("measured_at")
    @classmethod
    def measured_at_utc(cls, v):
        return naive_utc(v)


class NutrientObservation(BaseModel):
    """A classified nutrient measurement owned by a user."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_id: str = Field(min_length=1)
    measured_at: datetime = Field(default_factory=datetime.utcnow)
    nutrient: str = Field(min_length=1, description="Canonical nutrient name")
    value: float = Field(allow_inf_nan=False)
    unit: str = ""
    reference_range: Optional[str] = None
    status: NutrientStatus = NutrientStatus.NORMAL
    reference_source: Optional[Literal["report", "table", "static"]] = Field(
        default=None, description="Where the range came from; None if no range was found"
    )
    source: Literal["import", "report", "manual"] = "import"
    file_name: Optional[str] = None

    @field_validator("measured_at")
    @classmethod
    def measured_at_utc(cls, v):
        return naive_utc(v)


class ReferenceRange(BaseModel):
    """Optimal bounds for a nutrient, optionally per biological sex."""

    nutrient: str = Field(min_length=1)
    optimal_min: float
    optimal_max: float
    unit: str = ""
    sex: Sex = "any"

    @property
    def key(self) -> tuple[str, str]:
        return self.nutrient, self.sex


class HealthEntry(BaseModel):
    """Manually logged health metrics."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_id: str = Field(min_length=1)
    measured_at: datetime = Field(default_factory=datetime.utcnow)
    blood_pressure: Optional[str] = None
    blood_sugar: Optional[float] = Field(default=None, ge=0)
    blood_sugar_unit: str = "mg/dL"
    weight: Optional[float] = Field(default=None, gt=0, description="Weight in kg")
    height: Optional[float] = Field(default=None, gt=0, description="Height in cm")
    conditions: list[str] = Field(default_factory=list)
    allergens: list[str] = Field(default_factory=list)


class LabReportInfo(BaseModel):
    """Header fields captured from a lab report, all best-effort."""

    patient_name: Optional[str] = None
    patient_id: Optional[str] = None
    report_date: Optional[str] = None
    lab_name: Optional[str] = None


class NutrientSummary(BaseModel):
    """Dashboard view over a user's latest observations."""

    nutrient_score: int = Field(ge=0, le=100)
    normal_count: int
    total_count: int
    deficiencies: list[NutrientObservation]
    excesses: list[NutrientObservation]
    messages: list[str]
