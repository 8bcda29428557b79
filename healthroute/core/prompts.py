"""Meal plan prompt construction.

The completion source is opaque; these prompts only steer it toward the
heading/recipe grammar understood by meal_parser.
"""

DEFAULT_REQUEST = (
    "Generate a detailed 7-day meal plan with breakfast, lunch, dinner, and snacks "
    "for each day. Include specific meal names and list key ingredients for each meal. "
    "Format it clearly with days and meal types as headings."
)

FORMAT_INSTRUCTIONS = """Please generate a comprehensive 7-day meal plan with breakfast, lunch, dinner, and snacks for each day. Use this exact format:

# Monday
## Breakfast
Recipe: [Recipe Name], [ingredient1], [ingredient2], [ingredient3]
## Lunch
Recipe: [Recipe Name], [ingredient1], [ingredient2], [ingredient3]
## Dinner
Recipe: [Recipe Name], [ingredient1], [ingredient2], [ingredient3]
## Snack
Recipe: [Recipe Name], [ingredient1], [ingredient2]

Repeat this format for all 7 days (Monday through Sunday). Focus on nutritious, balanced options."""


def allergy_clause(allergies: list[str]) -> str:
    """Sentence forbidding the given allergens, or empty string if none."""
    cleaned = [a.strip() for a in allergies if a and a.strip()]
    if not cleaned:
        return ""
    return (
        f" IMPORTANT: The user has the following food allergies: {', '.join(cleaned)}. "
        "Please ensure that NO meals contain any of these allergens."
    )


def build_meal_plan_prompt(request: str | None = None, allergies: list[str] | None = None) -> str:
    """Build the completion prompt for a weekly meal plan.

    Args:
        request: Free-text request from the user (defaults to a generic one)
        allergies: Allergens the plan must avoid

    Returns:
        Prompt text ending with the exact output format instructions
    """
    body = (request or DEFAULT_REQUEST).strip()
    body += allergy_clause(allergies or [])
    return f"{body}\n{FORMAT_INSTRUCTIONS}"
