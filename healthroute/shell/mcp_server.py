"""MCP Server - Tool definitions for assistant integration.

Defines the MCP tools an assistant can invoke to generate meal plans and
import lab results. The completion itself happens on the assistant side:
it asks for the prompt, generates the plan text and hands it back here.
"""

import logging
import os
from datetime import date
from typing import Any

from mcp.server.fastmcp import FastMCP
from mcp.server.transport_security import TransportSecuritySettings
from pydantic import ValidationError

from ..core.classifier import classify_rows
from ..core.insights import nutrient_history, summarize_observations
from ..core.lab_text import extract_lab_report
from ..core.macros import calculate_total_prep_time, calculate_week_totals
from ..core.meal_parser import parse_meal_plan as parse_plan_text
from ..core.models import MealPlanRecord, NutrientObservation, RawNutrientRow, ReferenceRange
from ..core.normalizer import extract_rows
from ..core.prompts import build_meal_plan_prompt
from .firestore_client import HealthFirestoreClient, FirestoreConfig


logger = logging.getLogger(__name__)

# Configure transport security; extra hosts come from ALLOWED_HOSTS
transport_security = TransportSecuritySettings(
    enable_dns_rebinding_protection=True,
    allowed_hosts=[
        "localhost:*",
        "127.0.0.1:*",
        *[h.strip() for h in os.environ.get("ALLOWED_HOSTS", "").split(",") if h.strip()],
    ],
)

# Initialize FastMCP server with stateless HTTP for cloud deployments
mcp = FastMCP(
    "healthroute",
    instructions="""HealthRoute - Personal health and meal planning assistant.

To create a meal plan: call meal_plan_prompt, generate the plan text from
the returned prompt, then call save_meal_plan_text with that text.
To import lab results: pass spreadsheet rows to import_lab_rows, or the
text of a lab report to import_lab_report.
Use get_nutrient_summary to discuss deficiencies and excesses, and
get_nutrient_history to follow one nutrient over time.""",
    stateless_http=True,
    transport_security=transport_security,
)

# Lazy-initialized client
_firestore_client: HealthFirestoreClient | None = None


def get_firestore_client() -> HealthFirestoreClient:
    """Get or create Firestore client."""
    global _firestore_client
    if _firestore_client is None:
        config = FirestoreConfig(
            project_id=os.environ.get("GOOGLE_CLOUD_PROJECT"),
            database=os.environ.get("FIRESTORE_DATABASE", "healthroute"),
        )
        _firestore_client = HealthFirestoreClient(config)
    return _firestore_client


def classify_and_store(
    user_id: str,
    rows: list[RawNutrientRow],
    sex: str = "any",
    source: str = "import",
) -> tuple[list[NutrientObservation], int]:
    """Classify normalized rows against the stored ranges and persist them.

    Returns:
        Tuple of (observations, number saved)
    """
    db = get_firestore_client()
    observations = classify_rows(rows, user_id, db.get_reference_ranges(), sex=sex, source=source)
    saved = db.save_observations(user_id, observations)
    return observations, saved


def week_plan_payload(record_or_plan: Any) -> dict:
    """JSON-ready dict of a plan with per-day totals and prep minutes."""
    plan = getattr(record_or_plan, "week_plan", record_or_plan)
    data = record_or_plan.model_dump(mode="json")
    data["totals"] = {day: t.model_dump() for day, t in calculate_week_totals(plan).items()}
    data["prep_time"] = {day.day_name: calculate_total_prep_time(day) for day in plan.days}
    return data


# ==================== Meal Plan Tools ====================


@mcp.tool()
def meal_plan_prompt(request: str | None = None, allergies: list[str] | None = None) -> str:
    """Build the prompt for generating a 7-day meal plan.

    Args:
        request: What the user asked for (optional)
        allergies: Allergens no meal may contain (optional)

    Returns:
        Prompt text including the exact output format to use
    """
    return build_meal_plan_prompt(request, allergies)


@mcp.tool()
def parse_meal_plan(text: str) -> dict:
    """Parse generated meal plan text into a structured week without saving it.

    Args:
        text: Meal plan in the "# Day / ## Meal / Recipe: name, ingredients" format

    Returns:
        Week plan with all 7 days and per-day nutrient totals
    """
    return week_plan_payload(parse_plan_text(text))


@mcp.tool()
def save_meal_plan_text(user_id: str, text: str, name: str | None = None) -> dict:
    """Parse generated meal plan text and save it as the user's latest plan.

    Args:
        user_id: The user the plan belongs to
        text: Meal plan text in the format given by meal_plan_prompt
        name: Plan name (defaults to "Meal Plan - <today>")

    Returns:
        The saved plan with its ID, or an error
    """
    try:
        record = MealPlanRecord(
            user_id=user_id,
            name=name or f"Meal Plan - {date.today().isoformat()}",
            week_plan=parse_plan_text(text),
        )
    except ValidationError as e:
        return {"error": f"Invalid meal plan: {e.errors()[0]['msg']}"}

    if not get_firestore_client().save_meal_plan(record):
        return {"error": "Failed to save meal plan. Please try again."}
    return week_plan_payload(record)


@mcp.tool()
def get_latest_meal_plan(user_id: str) -> dict:
    """Get the user's most recent meal plan.

    Args:
        user_id: The user's ID

    Returns:
        The plan, or an error if the user has none
    """
    record = get_firestore_client().get_latest_meal_plan(user_id)
    if record is None:
        return {"error": "No meal plan found. Generate one first."}
    return week_plan_payload(record)


# ==================== Nutrient Tools ====================


@mcp.tool()
def import_lab_rows(
    user_id: str,
    rows: list[dict[str, Any]],
    file_name: str | None = None,
    sex: str = "any",
) -> dict:
    """Import lab results given as spreadsheet rows.

    Accepts tall rows ({"Test": "Calcium", "Result": "9.8", "Unit": "mg/dL"})
    or wide rows ({"Vitamin D": 25, "Zinc": 80}).

    Args:
        user_id: The user the results belong to
        rows: Records keyed by column header
        file_name: Name of the source file (optional)
        sex: "male", "female" or "any", used to pick reference ranges

    Returns:
        Imported observations with their status
    """
    if not user_id.strip():
        return {"error": "user_id is required"}
    observations, saved = classify_and_store(user_id, extract_rows(rows, file_name), sex=sex)
    return {
        "imported": saved,
        "observations": [o.model_dump(mode="json") for o in observations],
    }


@mcp.tool()
def import_lab_report(user_id: str, text: str, file_name: str | None = None) -> dict:
    """Import lab results from the plain text of a lab report.

    Args:
        user_id: The user the results belong to
        text: Text extracted from the report
        file_name: Name of the source file (optional)

    Returns:
        Report header info and imported observations
    """
    if not user_id.strip():
        return {"error": "user_id is required"}
    info, rows = extract_lab_report(text, file_name)
    observations, saved = classify_and_store(user_id, rows, source="report")
    return {
        "lab_info": info.model_dump(),
        "imported": saved,
        "observations": [o.model_dump(mode="json") for o in observations],
    }


@mcp.tool()
def get_nutrient_summary(user_id: str) -> dict:
    """Summarize the user's latest nutrient levels.

    Args:
        user_id: The user's ID

    Returns:
        Nutrient score, deficiencies, excesses and advice per nutrient
    """
    observations = get_firestore_client().get_observations(user_id)
    return summarize_observations(observations).model_dump(mode="json")


@mcp.tool()
def get_nutrient_history(user_id: str, nutrient: str) -> list[dict]:
    """Get every stored reading of a nutrient, oldest first.

    Args:
        user_id: The user's ID
        nutrient: Name or part of it, case-insensitive (e.g. "vitamin d")

    Returns:
        Matching observations
    """
    observations = get_firestore_client().get_observations(user_id)
    return [o.model_dump(mode="json") for o in nutrient_history(observations, nutrient)]


@mcp.tool()
def upsert_reference_ranges(ranges: list[dict[str, Any]]) -> str:
    """Add or update reference ranges, keyed by nutrient and sex.

    Args:
        ranges: Items like {"nutrient": "Calcium", "optimal_min": 8.5,
            "optimal_max": 10.5, "unit": "mg/dL", "sex": "any"}

    Returns:
        Confirmation message
    """
    try:
        parsed = [ReferenceRange(**r) for r in ranges]
    except ValidationError as e:
        return f"Invalid reference range: {e.errors()[0]['msg']}"

    count = get_firestore_client().upsert_reference_ranges(parsed)
    if count == 0 and parsed:
        return "Failed to save reference ranges. Please try again."
    return f"Upserted {count} reference ranges."
