"""Unit tests for lab report text extraction - pure functions, no mocks needed."""

from datetime import datetime

from healthroute.core.classifier import classify_rows
from healthroute.core.lab_text import (
    extract_lab_report,
    extract_lab_values,
    extract_report_info,
    is_nutrient_of_interest,
)
from healthroute.core.models import NutrientStatus


NOW = datetime(2025, 1, 15, 9, 30)

REPORT = """City Diagnostics
Patient Name: Jane Doe
Patient ID: AB-1234
Report Date: 2024-11-02
Laboratory: City Lab

Vitamin D 25-OH 18.5 ng/mL 30 - 100 ng/mL
Serum Iron 45 mcg/dL Reference Range: 60-170 mcg/dL
Calcium 9.2 mg/dL
Glucose 95 mg/dL
"""


class TestStructuredLines:
    """Lines of the form name, value, unit and optional range."""

    def test_values_and_units(self):
        rows = extract_lab_values(REPORT, "report.pdf", now=NOW)
        assert [(r.nutrient, r.value, r.unit) for r in rows] == [
            ("Vitamin D – 25-OH", 18.5, "ng/mL"),
            ("serum iron", 45.0, "mcg/dL"),
            ("Calcium", 9.2, "mg/dL"),
        ]
        assert all(r.file_name == "report.pdf" for r in rows)
        assert all(r.measured_at == NOW for r in rows)

    def test_reference_ranges_kept(self):
        rows = extract_lab_values(REPORT, now=NOW)
        assert [r.reference_range for r in rows] == ["30 - 100 ng/mL", "60-170 mcg/dL", None]

    def test_non_nutrients_ignored(self):
        rows = extract_lab_values("Glucose 95 mg/dL\nCholesterol 180 mg/dL", now=NOW)
        assert rows == []

    def test_printed_ranges_drive_status(self):
        """Ranges printed on the report are used for classification."""
        observations = classify_rows(extract_lab_values(REPORT, now=NOW), "user-123", source="report")
        assert [o.status for o in observations] == [
            NutrientStatus.DEFICIENT,
            NutrientStatus.DEFICIENT,
            NutrientStatus.NORMAL,
        ]
        assert [o.reference_source for o in observations] == ["report", "report", "static"]


class TestKeywordMentions:
    """Loose "<nutrient>: <value> <unit>" mentions."""

    def test_colon_form(self):
        rows = extract_lab_values("Results\nMagnesium: 1.9 mg/dL", now=NOW)
        assert [(r.nutrient, r.value, r.unit) for r in rows] == [("Magnesium", 1.9, "mg/dL")]

    def test_not_duplicated_after_structured_match(self):
        rows = extract_lab_values("Zinc 80 mcg/dL\nZinc: 82 mcg/dL", now=NOW)
        assert [r.value for r in rows] == [80.0]


class TestReportInfo:
    """Header fields of a report."""

    def test_all_fields(self):
        info = extract_report_info(REPORT)
        assert info.patient_name == "Jane Doe"
        assert info.patient_id == "AB-1234"
        assert info.report_date == "2024-11-02"
        assert info.lab_name == "City Lab"

    def test_missing_fields_are_none(self):
        info = extract_report_info("Calcium 9.2 mg/dL")
        assert info.patient_name is None
        assert info.patient_id is None
        assert info.report_date is None
        assert info.lab_name is None

    def test_empty_report(self):
        info, rows = extract_lab_report("", now=NOW)
        assert info.patient_name is None
        assert rows == []


class TestNutrientOfInterest:
    """Tests for is_nutrient_of_interest."""

    def test_keywords(self):
        assert is_nutrient_of_interest("Vitamin B12")
        assert is_nutrient_of_interest("serum ferritin")
        assert not is_nutrient_of_interest("LDL Cholesterol")


class TestOversizedValues:
    """Values too large for a float are skipped."""

    def test_overflowing_digits(self):
        text = f"Zinc {'9' * 400} mcg/dL\nCalcium 9.2 mg/dL"
        rows = extract_lab_values(text, now=NOW)
        assert [r.nutrient for r in rows] == ["Calcium"]
