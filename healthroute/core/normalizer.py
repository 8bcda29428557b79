"""Nutrient Normalizer - Maps spreadsheet rows onto canonical nutrient rows.

Rows arrive as key/value records (keys are column headers) from a
spreadsheet or document extraction. Two layouts are understood:

    tall:  one measurement per row, with name/value/unit columns
    wide:  one nutrient per column, one measurement event per row

All functions are pure: same input always produces same output, except
for timestamps defaulted to "now".
"""

import logging
import math
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

from .models import RawNutrientRow, naive_utc


logger = logging.getLogger(__name__)

# ==================== Column Roles ====================

NAME_HEADERS = frozenset({"substance", "analyte", "test", "nutrient", "component", "parameter"})
VALUE_HEADERS = frozenset({"value", "result", "reading", "level", "concentration"})
UNIT_HEADERS = frozenset({"unit", "units"})
DATE_HEADERS = frozenset({"date", "measured_at", "measured at", "collected_at"})
RANGE_HEADERS = frozenset({"reference range", "reference_range", "ref range", "range", "normal range"})
BOUND_HEADERS = frozenset({"min", "minimum", "low", "lower", "max", "maximum", "high", "upper"})

# ==================== Name Rules ====================

# Ordered; first match wins. 1,25-OH precedes 25-OH because the 25-OH
# pattern also matches "1,25-OH".
NAME_RULES: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"^vitamin d.*1,?25\s*-?\s*oh", re.IGNORECASE), "Vitamin D – 1,25-OH"),
    (re.compile(r"^vitamin d.*25\s*-?\s*oh", re.IGNORECASE), "Vitamin D – 25-OH"),
    (re.compile(r"^iron(\s*\(serum\))?", re.IGNORECASE), "Iron (Serum)"),
    (re.compile(r"^calcium$", re.IGNORECASE), "Calcium"),
    (re.compile(r"^magnesium$", re.IGNORECASE), "Magnesium"),
    (re.compile(r"^sodium$", re.IGNORECASE), "Sodium"),
    (re.compile(r"^phosphorus$", re.IGNORECASE), "Phosphorus"),
    (re.compile(r"^zinc$", re.IGNORECASE), "Zinc"),
    (re.compile(r"^vitamin a$", re.IGNORECASE), "Vitamin A"),
    (re.compile(r"^vitamin b12$", re.IGNORECASE), "Vitamin B12"),
    (re.compile(r"^vitamin c$", re.IGNORECASE), "Vitamin C"),
    (re.compile(r"^vitamin e$", re.IGNORECASE), "Vitamin E"),
    (re.compile(r"^vitamin k$", re.IGNORECASE), "Vitamin K"),
)

DEFAULT_UNITS: dict[str, str] = {
    "Calcium": "mg/dL",
    "Magnesium": "mEq/L",
    "Sodium": "mmol/L",
    "Phosphorus": "mg/dL",
    "Zinc": "µg/dL",
    "Iron (Serum)": "µg/dL",
    "Vitamin A": "µg/dL",
    "Vitamin B12": "pg/mL",
    "Vitamin C": "mg/dL",
    "Vitamin D – 1,25-OH": "pg/mL",
    "Vitamin D – 25-OH": "ng/mL",
    "Vitamin E": "µg/mL",
    "Vitamin K": "ng/mL",
}

# ==================== Unit Rules ====================

MICRO_UNIT = re.compile(r"(?:ug|μg|µg)/(ml|dl)", re.IGNORECASE)

UNIT_RULES: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"^ng/?ml$", re.IGNORECASE), "ng/mL"),
    (re.compile(r"^pg/?ml$", re.IGNORECASE), "pg/mL"),
    (re.compile(r"^mg/?dl$", re.IGNORECASE), "mg/dL"),
    (re.compile(r"^mmol/?l$", re.IGNORECASE), "mmol/L"),
    (re.compile(r"^meq/?l$", re.IGNORECASE), "mEq/L"),
)

DASHES = re.compile(r"[\u2011\u2013\u2014]")
NON_NUMERIC = re.compile(r"[^0-9.\-]")


def normalize_name(name: str) -> str:
    """Map a raw nutrient name onto its canonical display name.

    Dash variants are unified and whitespace collapsed before matching.
    Names outside the whitelist are returned trimmed but otherwise as-is.

    Args:
        name: Raw name from a column header or name cell

    Returns:
        Canonical nutrient name
    """
    cleaned = re.sub(r"\s+", " ", DASHES.sub("-", name.strip()))
    for pattern, canonical in NAME_RULES:
        if pattern.search(cleaned):
            return canonical
    return name.strip()


def normalize_unit(unit: Any, nutrient: str) -> str:
    """Canonicalize a unit string, falling back to the nutrient's default.

    Args:
        unit: Raw unit cell (may be None or blank)
        nutrient: Canonical nutrient name, used for the default lookup

    Returns:
        Canonical unit, or "" for a blank unit on an unknown nutrient
    """
    if unit is None or not str(unit).strip():
        return DEFAULT_UNITS.get(nutrient, "")

    u = MICRO_UNIT.sub(lambda m: "µg/" + ("mL" if m.group(1).lower() == "ml" else "dL"), str(unit).strip())
    for pattern, canonical in UNIT_RULES:
        if pattern.match(u):
            return canonical
    return u


def parse_numeric(value: Any) -> float | None:
    """Parse a cell as a number after stripping everything but digits, '.' and '-'.

    Returns:
        The number, or None for empty, boolean, unparseable or non-finite cells
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = value
    else:
        stripped = NON_NUMERIC.sub("", str(value))
        if not stripped:
            return None
        try:
            number = float(stripped)
        except ValueError:
            return None

    try:
        number = float(number)
    except OverflowError:
        return None
    return number if math.isfinite(number) else None


def parse_timestamp(value: Any, default: datetime) -> datetime:
    """Read a date cell, falling back to ``default`` when it can't be parsed.

    Offset-aware values are converted to naive UTC.
    """
    if isinstance(value, datetime):
        return naive_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, str) and value.strip():
        try:
            return naive_utc(datetime.fromisoformat(value.strip()))
        except ValueError:
            logger.debug("Unparseable date cell %r", value)
    return default


# ==================== Column Detection ====================


@dataclass(frozen=True)
class ColumnRoles:
    """Actual header keys found for each role (None when absent).

    Attributes:
        name: Nutrient name column
        value: Measured value column
        unit: Unit column
        date: Measurement date column
        reference_range: Reference range text column
    """

    name: str | None = None
    value: str | None = None
    unit: str | None = None
    date: str | None = None
    reference_range: str | None = None

    @property
    def is_explicit_tall(self) -> bool:
        return self.name is not None and self.value is not None and self.unit is not None

    @property
    def role_keys(self) -> set[str]:
        keys = (self.name, self.unit, self.date, self.reference_range)
        return {k for k in keys if k is not None}


def _find_header(headers: list[str], synonyms: frozenset[str]) -> str | None:
    return next((h for h in headers if str(h).strip().lower() in synonyms), None)


def detect_columns(headers: Iterable[str]) -> ColumnRoles:
    """Assign roles to headers; the first header matching a role wins."""
    headers = list(headers)
    return ColumnRoles(
        name=_find_header(headers, NAME_HEADERS),
        value=_find_header(headers, VALUE_HEADERS),
        unit=_find_header(headers, UNIT_HEADERS),
        date=_find_header(headers, DATE_HEADERS),
        reference_range=_find_header(headers, RANGE_HEADERS),
    )


def _is_bound_header(header: str) -> bool:
    return str(header).strip().lower() in BOUND_HEADERS


def _range_text(record: Mapping[str, Any], roles: ColumnRoles) -> str | None:
    if roles.reference_range is None:
        return None
    raw = record.get(roles.reference_range)
    if raw is None or not str(raw).strip():
        return None
    return str(raw).strip()


# ==================== Row Extraction ====================


def _extract_explicit_tall(
    records: list[Mapping[str, Any]], roles: ColumnRoles, file_name: str | None, now: datetime
) -> list[RawNutrientRow]:
    rows: list[RawNutrientRow] = []
    for record in records:
        raw_name = record.get(roles.name)
        raw_value = record.get(roles.value)
        raw_unit = record.get(roles.unit)
        if raw_name is None or raw_value is None or raw_unit is None:
            continue

        value = parse_numeric(raw_value)
        nutrient = normalize_name(str(raw_name))
        if value is None or not nutrient:
            logger.debug("Skipping row %r: no numeric value", raw_name)
            continue

        rows.append(
            RawNutrientRow(
                measured_at=parse_timestamp(record.get(roles.date), now) if roles.date else now,
                nutrient=nutrient,
                value=value,
                unit=normalize_unit(raw_unit, nutrient),
                reference_range=_range_text(record, roles),
                file_name=file_name,
            )
        )
    return rows


def _extract_implicit_tall(
    records: list[Mapping[str, Any]], roles: ColumnRoles, file_name: str | None, now: datetime
) -> list[RawNutrientRow]:
    rows: list[RawNutrientRow] = []
    skipped = roles.role_keys
    for record in records:
        raw_name = record.get(roles.name)
        if raw_name is None:
            continue
        nutrient = normalize_name(str(raw_name))
        if not nutrient:
            continue

        value = None
        for key, cell in record.items():
            if key in skipped or _is_bound_header(key):
                continue
            value = parse_numeric(cell)
            if value is not None:
                break
        if value is None:
            continue

        rows.append(
            RawNutrientRow(
                measured_at=parse_timestamp(record.get(roles.date), now) if roles.date else now,
                nutrient=nutrient,
                value=value,
                unit=normalize_unit(record.get(roles.unit) if roles.unit else None, nutrient),
                reference_range=_range_text(record, roles),
                file_name=file_name,
            )
        )
    return rows


def _extract_wide(
    records: list[Mapping[str, Any]], roles: ColumnRoles, file_name: str | None, now: datetime
) -> list[RawNutrientRow]:
    rows: list[RawNutrientRow] = []
    for record in records:
        measured_at = parse_timestamp(record.get(roles.date), now) if roles.date else now
        for key, cell in record.items():
            if key == roles.date:
                continue
            value = parse_numeric(cell)
            nutrient = normalize_name(str(key))
            if value is None or not nutrient:
                continue
            rows.append(
                RawNutrientRow(
                    measured_at=measured_at,
                    nutrient=nutrient,
                    value=value,
                    unit=normalize_unit(None, nutrient),
                    file_name=file_name,
                )
            )
    return rows


def extract_rows(
    records: Iterable[Mapping[str, Any]],
    file_name: str | None = None,
    now: datetime | None = None,
) -> list[RawNutrientRow]:
    """Extract normalized nutrient rows from tabular records.

    Layouts are tried in order, first match wins:
        1. explicit tall: name, value and unit headers all present
        2. implicit tall: only a name header; the first numeric
           non-bound column is the value (falls through if nothing found)
        3. wide: every numeric cell, its header being the nutrient name

    Args:
        records: Rows keyed by column header; roles come from the first row
        file_name: Source file name recorded on each row
        now: Timestamp for rows without a date column (defaults to now)

    Returns:
        Normalized rows; non-numeric cells are skipped, never fatal
    """
    records = [r for r in records if r is not None]
    if not records:
        return []
    if now is None:
        now = datetime.utcnow()

    roles = detect_columns(records[0].keys())

    if roles.is_explicit_tall:
        return _extract_explicit_tall(records, roles, file_name, now)

    if roles.name is not None:
        rows = _extract_implicit_tall(records, roles, file_name, now)
        if rows:
            return rows
        logger.debug("Name column %r found but no values; reading as wide format", roles.name)

    return _extract_wide(records, roles, file_name, now)
