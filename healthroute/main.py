"""HealthRoute API - Entry point.

Runs the REST API and the MCP server with HTTP transport.
Uses Starlette with the MCP HTTP app mounted at root.
"""

import json
import logging
import os
from datetime import date

import uvicorn
from pydantic import ValidationError
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route, Mount

from .core.insights import summarize_observations
from .core.lab_text import extract_lab_report
from .core.meal_parser import parse_meal_plan
from .core.models import (
    HealthEntry,
    MealPlanRecord,
    NutrientObservation,
    RawNutrientRow,
    ReferenceRange,
)
from .core.classifier import classify
from .core.normalizer import extract_rows
from .core.prompts import build_meal_plan_prompt
from .shell.mcp_server import mcp, classify_and_store, get_firestore_client, week_plan_payload


logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def error(message: str, status_code: int = 400) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


async def read_body(request: Request) -> dict | None:
    """Request JSON body as a dict, or None if it isn't a JSON object."""
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None
    return body if isinstance(body, dict) else None


def user_id_of(body: dict) -> str | None:
    user_id = body.get("userId")
    if user_id is None or not str(user_id).strip():
        return None
    return str(user_id)


def validation_message(e: ValidationError) -> str:
    first = e.errors()[0]
    location = ".".join(str(part) for part in first["loc"])
    return f"Invalid {location}: {first['msg']}" if location else f"Invalid payload: {first['msg']}"


# ==================== Route Handlers ====================


async def health_check(request: Request) -> JSONResponse:
    """Health check endpoint."""
    return JSONResponse({"status": "healthy", "service": "healthroute-api"})


async def meal_plan_prompt(request: Request) -> JSONResponse:
    """Build the completion prompt for a weekly plan."""
    body = await read_body(request)
    if body is None:
        return error("JSON object body is required")

    allergies = body.get("allergies") or []
    if not isinstance(allergies, list):
        return error("allergies must be a list")
    return JSONResponse({"prompt": build_meal_plan_prompt(body.get("request"), [str(a) for a in allergies])})


async def parse_meal_plan_text(request: Request) -> JSONResponse:
    """Parse completion text into a week plan, optionally saving it."""
    body = await read_body(request)
    if body is None:
        return error("JSON object body is required")

    text = body.get("text")
    if not isinstance(text, str):
        return error("text is required")

    plan = parse_meal_plan(text)
    if not body.get("save"):
        return JSONResponse(week_plan_payload(plan))

    user_id = user_id_of(body)
    if user_id is None:
        return error("userId is required to save a plan")

    try:
        record = MealPlanRecord(
            user_id=user_id,
            name=body.get("name") or f"Meal Plan - {date.today().isoformat()}",
            week_plan=plan,
        )
    except ValidationError as e:
        return error(validation_message(e))
    if not get_firestore_client().save_meal_plan(record):
        return error("Failed to save meal plan.", 500)
    return JSONResponse(week_plan_payload(record))


async def save_meal_plan(request: Request) -> JSONResponse:
    """Save an already structured meal plan."""
    body = await read_body(request)
    if body is None:
        return error("JSON object body is required")

    user_id = user_id_of(body)
    if user_id is None:
        return error("userId is required")

    try:
        fields = {
            "user_id": user_id,
            "name": body.get("name") or f"Meal Plan - {date.today().isoformat()}",
            "source": body.get("source") or "chatbot",
            "week_plan": body.get("weekPlan"),
        }
        if body.get("date"):
            fields["plan_date"] = body["date"]
        record = MealPlanRecord(**fields)
    except ValidationError as e:
        return error(validation_message(e))

    if not get_firestore_client().save_meal_plan(record):
        return error("Failed to save meal plan.", 500)
    return JSONResponse({"id": record.id})


async def latest_meal_plan(request: Request) -> JSONResponse:
    """Most recent plan for a user, or null."""
    user_id = request.query_params.get("userId")
    if not user_id:
        return error("userId is required")

    record = get_firestore_client().get_latest_meal_plan(user_id)
    if record is None:
        return JSONResponse(None)
    return JSONResponse(week_plan_payload(record))


async def import_nutrient_rows(request: Request) -> JSONResponse:
    """Normalize, classify and store spreadsheet rows."""
    body = await read_body(request)
    if body is None:
        return error("JSON object body is required")

    user_id = user_id_of(body)
    rows = body.get("rows")
    if user_id is None:
        return error("userId is required")
    if not isinstance(rows, list) or not all(isinstance(r, dict) for r in rows):
        return error("rows must be an array of objects")

    sex = body.get("sex") or "any"
    if sex not in ("male", "female", "any"):
        return error("sex must be male, female or any")

    observations, saved = classify_and_store(user_id, extract_rows(rows, body.get("fileName")), sex=sex)
    if observations and saved == 0:
        return error("Failed to save nutrient levels.", 500)
    return JSONResponse({
        "inserted": saved,
        "observations": [o.model_dump(mode="json") for o in observations],
    })


async def import_lab_report(request: Request) -> JSONResponse:
    """Extract, classify and store nutrient levels from report text."""
    body = await read_body(request)
    if body is None:
        return error("JSON object body is required")

    user_id = user_id_of(body)
    text = body.get("text")
    if user_id is None:
        return error("userId is required")
    if not isinstance(text, str):
        return error("text is required")

    info, rows = extract_lab_report(text, body.get("fileName"))
    observations, saved = classify_and_store(user_id, rows, source="report")
    if observations and saved == 0:
        return error("Failed to save nutrient levels.", 500)
    return JSONResponse({
        "lab_info": info.model_dump(),
        "inserted": saved,
        "observations": [o.model_dump(mode="json") for o in observations],
    })


async def bulk_nutrients(request: Request) -> JSONResponse:
    """Store rows that were already normalized by the client.

    Each row: { measured_at?, nutrient, value, unit, reference_range?, file_name? }.
    Status is always computed from the reference ranges; a client-sent
    status is ignored.
    """
    body = await read_body(request)
    if body is None:
        return error("JSON object body is required")

    user_id = user_id_of(body)
    rows = body.get("rows")
    if user_id is None:
        return error("userId is required")
    if not isinstance(rows, list):
        return error("rows must be an array")

    db = get_firestore_client()
    table = db.get_reference_ranges()
    observations = []
    for r in rows:
        if not isinstance(r, dict):
            return error("rows must be an array of objects")
        try:
            raw = RawNutrientRow(**{k: v for k, v in r.items() if k in RawNutrientRow.model_fields and v is not None})
            status, ref_source = classify(raw.nutrient, raw.value, raw.reference_range, table)
            observations.append(
                NutrientObservation(
                    user_id=user_id,
                    status=status,
                    reference_source=ref_source,
                    source=r.get("source") or "import",
                    **raw.model_dump(),
                )
            )
        except ValidationError as e:
            return error(validation_message(e))

    saved = db.save_observations(user_id, observations)
    if observations and saved == 0:
        return error("Failed to save nutrient levels.", 500)
    return JSONResponse({"inserted": saved})


async def list_nutrients(request: Request) -> JSONResponse:
    """A user's stored observations, optionally for one nutrient."""
    user_id = request.query_params.get("userId")
    if not user_id:
        return error("userId is required")

    observations = get_firestore_client().get_observations(user_id, request.query_params.get("nutrient"))
    return JSONResponse([o.model_dump(mode="json") for o in observations])


async def nutrient_summary(request: Request) -> JSONResponse:
    """Score, deficiencies and excesses over the latest observations."""
    user_id = request.query_params.get("userId")
    if not user_id:
        return error("userId is required")

    observations = get_firestore_client().get_observations(user_id)
    return JSONResponse(summarize_observations(observations).model_dump(mode="json"))


async def bulk_reference_ranges(request: Request) -> JSONResponse:
    """Upsert reference ranges keyed by (nutrient, sex)."""
    body = await read_body(request)
    if body is None:
        return error("JSON object body is required")

    rows = body.get("rows")
    if not isinstance(rows, list):
        return error("rows must be an array")

    try:
        ranges = [ReferenceRange(**{k: v for k, v in r.items() if v is not None}) for r in rows]
    except ValidationError as e:
        return error(validation_message(e))
    except AttributeError:
        return error("rows must be an array of objects")

    upserted = get_firestore_client().upsert_reference_ranges(ranges)
    if ranges and upserted == 0:
        return error("Failed to save reference ranges.", 500)
    return JSONResponse({"upserted": upserted})


async def health_entry(request: Request) -> JSONResponse:
    """Store a manually logged health entry."""
    body = await read_body(request)
    if body is None:
        return error("JSON object body is required")

    user_id = user_id_of(body)
    if user_id is None:
        return error("userId is required")

    try:
        fields = {k: v for k, v in body.items() if k in HealthEntry.model_fields and v is not None}
        if body.get("conditions") is None and body.get("diseases"):
            fields["conditions"] = body["diseases"]
        entry = HealthEntry(**{**fields, "user_id": user_id})
    except ValidationError as e:
        return error(validation_message(e))

    if not get_firestore_client().save_health_entry(entry):
        return error("Failed to save health entry.", 500)
    return JSONResponse({"id": entry.id})


# ==================== Create ASGI App ====================


def cors_origins() -> list[str]:
    raw = os.environ.get("CORS_ORIGINS", "http://localhost:5173")
    return [o.strip() for o in raw.split(",") if o.strip()]


def create_app() -> Starlette:
    """Create the Starlette application with MCP at root.

    The MCP streamable_http_app() handles /mcp/ internally when mounted at root.
    We use its lifespan context to ensure proper initialization.
    """
    mcp_app = mcp.streamable_http_app()

    # Custom routes first, then MCP app at root
    routes = [
        Route("/health", health_check, methods=["GET"]),
        Route("/api/mealplans/prompt", meal_plan_prompt, methods=["POST"]),
        Route("/api/mealplans/parse", parse_meal_plan_text, methods=["POST"]),
        Route("/api/mealplans/latest", latest_meal_plan, methods=["GET"]),
        Route("/api/mealplans", save_meal_plan, methods=["POST"]),
        Route("/api/nutrients/import", import_nutrient_rows, methods=["POST"]),
        Route("/api/nutrients/report", import_lab_report, methods=["POST"]),
        Route("/api/nutrients/bulk", bulk_nutrients, methods=["POST"]),
        Route("/api/nutrients/summary", nutrient_summary, methods=["GET"]),
        Route("/api/nutrients/reference/bulk", bulk_reference_ranges, methods=["POST"]),
        Route("/api/nutrients", list_nutrients, methods=["GET"]),
        Route("/api/health/entry", health_entry, methods=["POST"]),
        Mount("/", app=mcp_app),
    ]

    app = Starlette(
        routes=routes,
        middleware=[
            Middleware(
                CORSMiddleware,
                allow_origins=cors_origins(),
                allow_methods=["GET", "POST", "OPTIONS"],
                allow_headers=["*"],
            ),
        ],
        lifespan=mcp_app.router.lifespan_context,
    )

    return app


# Create app at module level for uvicorn
app = create_app()


def main() -> None:
    """Run the server."""
    port = int(os.environ.get("PORT", 8080))
    host = os.environ.get("HOST", "0.0.0.0")

    logger.info("Starting HealthRoute API on %s:%d", host, port)

    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    main()
