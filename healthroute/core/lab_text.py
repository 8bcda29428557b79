"""Lab Report Text Extraction - Nutrient rows from extracted report text.

Text comes from a PDF/OCR extraction done upstream. Two passes:

    1. structured lines, one per text line: "<name> <value> <unit> [Reference Range:] [<min>-<max> <unit>]"
    2. loose mentions: "<nutrient>: <value> <unit>" for key nutrients not yet found
"""

import logging
import re
from datetime import datetime

from .models import LabReportInfo, RawNutrientRow
from .normalizer import normalize_name, normalize_unit, parse_numeric


logger = logging.getLogger(__name__)

UNITS = r"ng/mL|mcg/dL|mg/dL|g/dL|IU/L|μg/dL|µg/dL|pg/mL|mIU/mL|μmol/L|pmol/L|nmol/L"

TABLE_ROW_PATTERN = re.compile(
    rf"([A-Za-z0-9\s,()%-]+?)\s+([\d.]+)\s*({UNITS})"
    rf"(?:\s+(?:Reference\s+Range\s*:?\s*)?([0-9.-]+\s*(?:to|-|–)\s*[0-9.-]+\s*(?:{UNITS}))?)?",
    re.IGNORECASE,
)

KEY_NUTRIENTS = (
    "vitamin d", "vitamin b12", "iron", "ferritin", "calcium", "magnesium",
    "zinc", "folate", "vitamin a", "vitamin e", "vitamin k", "vitamin c",
    "hemoglobin", "protein",
)

NUTRIENT_KEYWORDS = (
    "vitamin", "iron", "ferritin", "calcium", "magnesium", "zinc", "folate",
    "b12", "b-12", "d3", "d-3", "hemoglobin", "protein", "albumin",
    "selenium", "copper", "iodine", "potassium", "sodium", "phosphorus",
    "manganese", "chromium",
)

PATIENT_NAME_PATTERN = re.compile(r"Patient(?:\s*name)?(?:\s*:)?\s*([A-Za-z\s]+?)(?:\n|,|;|$)", re.IGNORECASE)
PATIENT_ID_PATTERN = re.compile(r"(?:Patient\s+ID|ID|MRN)(?:\s*:)?\s*([A-Za-z0-9-]+)(?:\n|,|;|$)", re.IGNORECASE)
REPORT_DATE_PATTERN = re.compile(
    r"(?:Report\s+Date|Date\s+of\s+Report|Collection\s+Date)(?:\s*:)?\s*([A-Za-z0-9 \t,/-]+)(?:\n|,|;|$)",
    re.IGNORECASE,
)
LAB_NAME_PATTERN = re.compile(r"(?:Laboratory|Lab\s+Name|Facility)(?:\s*:)?\s*([A-Za-z0-9 \t,/.&-]+)(?:\n|,|;|$)", re.IGNORECASE)


def is_nutrient_of_interest(name: str) -> bool:
    """True if the name mentions a vitamin, mineral or related marker."""
    lowered = name.lower()
    return any(keyword in lowered for keyword in NUTRIENT_KEYWORDS)


def _first_group(pattern: re.Pattern[str], text: str) -> str | None:
    match = pattern.search(text)
    if not match:
        return None
    return match.group(1).strip() or None


def extract_report_info(text: str) -> LabReportInfo:
    """Best-effort header fields of a lab report."""
    return LabReportInfo(
        patient_name=_first_group(PATIENT_NAME_PATTERN, text),
        patient_id=_first_group(PATIENT_ID_PATTERN, text),
        report_date=_first_group(REPORT_DATE_PATTERN, text),
        lab_name=_first_group(LAB_NAME_PATTERN, text),
    )


def _make_row(
    name: str, value: str, unit: str, reference_range: str | None, file_name: str | None, now: datetime
) -> RawNutrientRow | None:
    number = parse_numeric(value)
    if number is None:
        return None
    nutrient = normalize_name(name)
    return RawNutrientRow(
        measured_at=now,
        nutrient=nutrient,
        value=number,
        unit=normalize_unit(unit, nutrient),
        reference_range=reference_range,
        file_name=file_name,
    )


def extract_lab_values(
    text: str, file_name: str | None = None, now: datetime | None = None
) -> list[RawNutrientRow]:
    """Extract nutrient measurements from report text.

    Args:
        text: Plain text of the report
        file_name: Source file name recorded on each row
        now: Measurement timestamp (defaults to now)

    Returns:
        Normalized rows, structured matches first
    """
    if now is None:
        now = datetime.utcnow()

    rows: list[RawNutrientRow] = []
    found_names: list[str] = []

    for line in text.splitlines():
        for match in TABLE_ROW_PATTERN.finditer(line):
            name = match.group(1).strip().lower()
            if not is_nutrient_of_interest(name):
                continue
            row = _make_row(name, match.group(2), match.group(3), match.group(4), file_name, now)
            if row is None:
                logger.debug("Skipping %r: value %r is not a number", name, match.group(2))
                continue
            rows.append(row)
            found_names.append(name)

    for nutrient in KEY_NUTRIENTS:
        if any(nutrient in name for name in found_names):
            continue
        pattern = re.compile(rf"{re.escape(nutrient)}[\s:]*([\d.]+)\s*({UNITS})", re.IGNORECASE)
        match = pattern.search(text)
        if not match:
            continue
        row = _make_row(nutrient, match.group(1), match.group(2), None, file_name, now)
        if row is not None:
            rows.append(row)
            found_names.append(nutrient)

    return rows


def extract_lab_report(
    text: str, file_name: str | None = None, now: datetime | None = None
) -> tuple[LabReportInfo, list[RawNutrientRow]]:
    """Header info and nutrient rows of a lab report."""
    return extract_report_info(text or ""), extract_lab_values(text or "", file_name, now)
