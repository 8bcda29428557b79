"""Nutrient Insights - Pure functions summarizing classified observations.

All functions are pure: same input always produces same output, no side effects.
"""

from .models import NutrientObservation, NutrientStatus, NutrientSummary


DEFAULT_NUTRIENT_SCORE = 92


def calculate_nutrient_score(observations: list[NutrientObservation]) -> int:
    """Percentage of observations in the normal range.

    Args:
        observations: Observations to score

    Returns:
        Rounded percentage, or DEFAULT_NUTRIENT_SCORE when there is no data
    """
    if not observations:
        return DEFAULT_NUTRIENT_SCORE
    normal = sum(1 for o in observations if o.status == NutrientStatus.NORMAL)
    return round(normal / len(observations) * 100)


def status_message(observation: NutrientObservation) -> str:
    """Human-readable advice for one observation."""
    reading = f"{observation.value:g} {observation.unit}".strip()
    level = f"Your {observation.nutrient} levels ({reading})"

    if observation.status == NutrientStatus.DEFICIENT:
        return f"{level} are below the recommended range. Consider increasing intake through diet or supplements."
    if observation.status == NutrientStatus.EXCESS:
        return f"{level} are above the recommended range. Consider reducing intake to maintain optimal health."
    if observation.reference_source is None:
        return f"{level} have no reference range on file and are being monitored."
    return f"{level} are within the normal range. Continue with your current diet and supplementation."


def latest_by_nutrient(observations: list[NutrientObservation]) -> list[NutrientObservation]:
    """Most recent observation per nutrient, ordered by nutrient name.

    Args:
        observations: Observations in any order

    Returns:
        One observation per nutrient
    """
    latest: dict[str, NutrientObservation] = {}
    for o in sorted(observations, key=lambda x: x.measured_at):
        latest[o.nutrient] = o
    return [latest[name] for name in sorted(latest)]


def nutrient_history(observations: list[NutrientObservation], nutrient: str) -> list[NutrientObservation]:
    """Observations whose name contains ``nutrient`` (case-insensitive), oldest first."""
    needle = nutrient.lower()
    return sorted(
        (o for o in observations if needle in o.nutrient.lower()),
        key=lambda x: x.measured_at,
    )


def summarize_observations(observations: list[NutrientObservation]) -> NutrientSummary:
    """Summarize a user's current nutrient status.

    Only the latest observation of each nutrient counts, so an old
    deficiency that has since been corrected is not reported.

    Args:
        observations: All observations for a user

    Returns:
        NutrientSummary with score, concerns and advice messages
    """
    current = latest_by_nutrient(observations)

    return NutrientSummary(
        nutrient_score=calculate_nutrient_score(current),
        normal_count=sum(1 for o in current if o.status == NutrientStatus.NORMAL),
        total_count=len(current),
        deficiencies=[o for o in current if o.status == NutrientStatus.DEFICIENT],
        excesses=[o for o in current if o.status == NutrientStatus.EXCESS],
        messages=[status_message(o) for o in current],
    )
