"""Nutrient Classifier - Status of a measurement against reference ranges.

Ranges are consulted in order:
    1. the range printed next to the value (report text or range column)
    2. the externally maintained table, by canonical name and sex
    3. the built-in static table, by substring of the lookup name

A nutrient with no range anywhere is classified normal; the observation's
``reference_source`` is then None so callers can tell it apart.
"""

import re
from collections.abc import Iterable

from .models import NutrientObservation, NutrientStatus, RawNutrientRow, ReferenceRange


# Insertion order matters: the first key contained in the lookup name wins.
STATIC_REFERENCE_RANGES: dict[str, ReferenceRange] = {
    r.nutrient: r
    for r in (
        ReferenceRange(nutrient="vitamin d", optimal_min=30, optimal_max=100, unit="ng/mL"),
        ReferenceRange(nutrient="vitamin b12", optimal_min=200, optimal_max=900, unit="pg/mL"),
        ReferenceRange(nutrient="iron", optimal_min=60, optimal_max=170, unit="µg/dL"),
        ReferenceRange(nutrient="ferritin", optimal_min=15, optimal_max=200, unit="ng/mL"),
        ReferenceRange(nutrient="calcium", optimal_min=8.5, optimal_max=10.5, unit="mg/dL"),
        ReferenceRange(nutrient="magnesium", optimal_min=1.7, optimal_max=2.2, unit="mg/dL"),
        ReferenceRange(nutrient="zinc", optimal_min=60, optimal_max=120, unit="µg/dL"),
        ReferenceRange(nutrient="folate", optimal_min=2.7, optimal_max=17.0, unit="ng/mL"),
        ReferenceRange(nutrient="vitamin a", optimal_min=20, optimal_max=60, unit="µg/dL"),
        ReferenceRange(nutrient="vitamin e", optimal_min=5.5, optimal_max=17, unit="mg/L"),
        ReferenceRange(nutrient="vitamin k", optimal_min=0.2, optimal_max=3.2, unit="ng/mL"),
        ReferenceRange(nutrient="vitamin c", optimal_min=0.6, optimal_max=2.0, unit="mg/dL"),
        ReferenceRange(nutrient="hemoglobin", optimal_min=12, optimal_max=16, unit="g/dL"),
        ReferenceRange(nutrient="protein", optimal_min=6.0, optimal_max=8.3, unit="g/dL"),
    )
}

RANGE_PATTERN = re.compile(r"([0-9.]+)\s*(?:to|-|–)\s*([0-9.]+)")

VITAMIN_D_MARKERS = ("25-oh", "25 oh", "25-hydroxy")
VITAMIN_B12_MARKERS = ("b12", "b-12", "cobalamin")


def parse_range_text(text: str | None) -> tuple[float, float] | None:
    """Parse ``"30 to 100"``, ``"30-100 ng/mL"`` or ``"30 – 100"`` into (min, max).

    Returns:
        The bounds, or None if the text holds no range
    """
    if not text:
        return None
    match = RANGE_PATTERN.search(text)
    if not match:
        return None
    try:
        return float(match.group(1)), float(match.group(2))
    except ValueError:
        return None


def lookup_name(name: str) -> str:
    """Key used against the static table, with vitamin D/B12 aliases folded in."""
    normalized = name.lower().strip()
    if any(marker in normalized for marker in VITAMIN_D_MARKERS):
        return "vitamin d"
    if any(marker in normalized for marker in VITAMIN_B12_MARKERS):
        return "vitamin b12"
    return normalized


def find_static_range(name: str) -> ReferenceRange | None:
    """First static range whose key is a substring of the lookup name."""
    key = lookup_name(name)
    return next((r for k, r in STATIC_REFERENCE_RANGES.items() if k in key), None)


def find_table_range(
    name: str, table: Iterable[ReferenceRange] | None, sex: str = "any"
) -> ReferenceRange | None:
    """Range for a canonical nutrient name, preferring an exact sex match over 'any'."""
    if not table:
        return None
    fallback = None
    for r in table:
        if r.nutrient != name:
            continue
        if r.sex == sex:
            return r
        if r.sex == "any":
            fallback = r
    return fallback


def classify_value(value: float, minimum: float, maximum: float) -> NutrientStatus:
    """Below min is deficient, above max is excess; the bounds themselves are normal."""
    if value < minimum:
        return NutrientStatus.DEFICIENT
    if value > maximum:
        return NutrientStatus.EXCESS
    return NutrientStatus.NORMAL


def classify(
    name: str,
    value: float,
    reference_range: str | None = None,
    table: Iterable[ReferenceRange] | None = None,
    sex: str = "any",
) -> tuple[NutrientStatus, str | None]:
    """Classify a measurement.

    Args:
        name: Nutrient name (canonical or raw)
        value: Measured value
        reference_range: Range text accompanying the measurement, if any
        table: Externally maintained reference ranges
        sex: Biological sex used to pick table entries

    Returns:
        Tuple of (status, source) where source is "report", "table",
        "static" or None when no range was found
    """
    bounds = parse_range_text(reference_range)
    if bounds is not None:
        return classify_value(value, *bounds), "report"

    found = find_table_range(name, table, sex)
    if found is not None:
        return classify_value(value, found.optimal_min, found.optimal_max), "table"

    found = find_static_range(name)
    if found is not None:
        return classify_value(value, found.optimal_min, found.optimal_max), "static"

    return NutrientStatus.NORMAL, None


def classify_rows(
    rows: Iterable[RawNutrientRow],
    user_id: str,
    table: Iterable[ReferenceRange] | None = None,
    sex: str = "any",
    source: str = "import",
) -> list[NutrientObservation]:
    """Turn normalized rows into classified observations owned by ``user_id``."""
    table = list(table or [])
    observations = []
    for row in rows:
        status, ref_source = classify(row.nutrient, row.value, row.reference_range, table, sex)
        observations.append(
            NutrientObservation(
                user_id=user_id,
                measured_at=row.measured_at,
                nutrient=row.nutrient,
                value=row.value,
                unit=row.unit,
                reference_range=row.reference_range,
                status=status,
                reference_source=ref_source,
                source=source,
                file_name=row.file_name,
            )
        )
    return observations


def upsert_reference_ranges(
    existing: Iterable[ReferenceRange], incoming: Iterable[ReferenceRange]
) -> list[ReferenceRange]:
    """Merge ranges by (nutrient, sex).

    An incoming range for an existing key only overwrites the bounds;
    unit and identity stay as they were. New keys are appended.
    """
    merged: dict[tuple[str, str], ReferenceRange] = {r.key: r for r in existing}
    for r in incoming:
        current = merged.get(r.key)
        if current is None:
            merged[r.key] = r
        else:
            merged[r.key] = current.model_copy(
                update={"optimal_min": r.optimal_min, "optimal_max": r.optimal_max}
            )
    return list(merged.values())
