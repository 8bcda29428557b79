"""Firestore Client - Persistence for meal plans, nutrient levels and health entries.

This module handles all database I/O. All I/O is contained here; parsing,
normalization and classification live in the core module.
"""

import logging
from dataclasses import dataclass
from typing import Any

from google.cloud import firestore

from ..core.classifier import upsert_reference_ranges
from ..core.models import HealthEntry, MealPlanRecord, NutrientObservation, ReferenceRange


logger = logging.getLogger(__name__)

# Firestore caps a batch at 500 writes
BATCH_LIMIT = 500


@dataclass
class FirestoreConfig:
    """Configuration for Firestore client.

    Attributes:
        project_id: GCP project ID (None for default)
        database: Firestore database name (None for default database)
    """

    project_id: str | None = None
    database: str | None = None


def reference_range_id(nutrient: str, sex: str) -> str:
    """Document ID for a reference range; '/' is not allowed in IDs."""
    return f"{nutrient}__{sex}".replace("/", "_")


class HealthFirestoreClient:
    """Client for persisting health data to Firestore.

    Document structure:
        users/{user_id}/
            meal_plans/{plan_id}: { name, plan_date, source, week_plan, ... }
            nutrients/{observation_id}: { nutrient, value, unit, status, ... }
            health_entries/{entry_id}: { blood_pressure, blood_sugar, ... }
        reference_ranges/{nutrient}__{sex}: { nutrient, optimal_min, optimal_max, unit, sex }
    """

    def __init__(self, config: FirestoreConfig | None = None) -> None:
        """Initialize Firestore client.

        Args:
            config: Firestore configuration
        """
        self.config = config or FirestoreConfig()
        self._client: firestore.Client | None = None

    @property
    def client(self) -> firestore.Client:
        """Lazy initialization of Firestore client."""
        if self._client is None:
            kwargs: dict[str, Any] = {}
            if self.config.project_id:
                kwargs["project"] = self.config.project_id
            if self.config.database:
                kwargs["database"] = self.config.database
            self._client = firestore.Client(**kwargs)
        return self._client

    def _user_ref(self, user_id: str) -> firestore.DocumentReference:
        """Get reference to user document."""
        return self.client.collection("users").document(user_id)

    def _plans_ref(self, user_id: str) -> firestore.CollectionReference:
        return self._user_ref(user_id).collection("meal_plans")

    def _nutrients_ref(self, user_id: str) -> firestore.CollectionReference:
        return self._user_ref(user_id).collection("nutrients")

    def _ranges_ref(self) -> firestore.CollectionReference:
        return self.client.collection("reference_ranges")

    # ==================== Meal Plan Operations ====================

    def save_meal_plan(self, record: MealPlanRecord) -> bool:
        """Save a meal plan for its owner.

        Args:
            record: The plan to save

        Returns:
            True if successful
        """
        logger.info("Saving meal plan for %s: %s", record.user_id[:8], record.name)
        try:
            data = record.model_dump(mode="json")
            self._plans_ref(record.user_id).document(record.id).set(data)
            return True
        except Exception as e:
            logger.error("Failed to save meal plan: %s", str(e))
            return False

    def get_latest_meal_plan(self, user_id: str) -> MealPlanRecord | None:
        """Fetch the user's most recent meal plan.

        Args:
            user_id: The user's ID

        Returns:
            MealPlanRecord if one exists, None otherwise
        """
        logger.debug("Fetching latest meal plan for %s", user_id[:8])
        try:
            query = (
                self._plans_ref(user_id)
                .order_by("plan_date", direction=firestore.Query.DESCENDING)
                .order_by("created_at", direction=firestore.Query.DESCENDING)
                .limit(1)
            )
            for doc in query.stream():
                return MealPlanRecord(**doc.to_dict())
            return None
        except Exception as e:
            logger.error("Failed to fetch latest meal plan: %s", str(e))
            return None

    # ==================== Nutrient Operations ====================

    def save_observations(self, user_id: str, observations: list[NutrientObservation]) -> int:
        """Save classified nutrient observations in batches.

        Args:
            user_id: The owner of the observations
            observations: Observations to store

        Returns:
            Number of observations written (0 on failure)
        """
        if not observations:
            return 0
        logger.info("Saving %d nutrient observations for %s", len(observations), user_id[:8])
        try:
            collection = self._nutrients_ref(user_id)
            for start in range(0, len(observations), BATCH_LIMIT):
                batch = self.client.batch()
                for obs in observations[start:start + BATCH_LIMIT]:
                    batch.set(collection.document(obs.id), obs.model_dump(mode="json"))
                batch.commit()
            return len(observations)
        except Exception as e:
            logger.error("Failed to save observations: %s", str(e))
            return 0

    def get_observations(self, user_id: str, nutrient: str | None = None) -> list[NutrientObservation]:
        """Fetch a user's observations, oldest first.

        Args:
            user_id: The user's ID
            nutrient: Restrict to one canonical nutrient name

        Returns:
            List of observations found (may be empty)
        """
        logger.debug("Fetching observations for %s (nutrient=%s)", user_id[:8], nutrient)
        try:
            query = self._nutrients_ref(user_id)
            if nutrient:
                query = query.where("nutrient", "==", nutrient)
            docs = query.order_by("measured_at").stream()
            return [NutrientObservation(**doc.to_dict()) for doc in docs]
        except Exception as e:
            logger.error("Failed to fetch observations: %s", str(e))
            return []

    # ==================== Reference Range Operations ====================

    def get_reference_ranges(self) -> list[ReferenceRange]:
        """Fetch the externally maintained reference range table.

        Returns:
            All stored ranges (empty if none or on failure)
        """
        try:
            return [ReferenceRange(**doc.to_dict()) for doc in self._ranges_ref().stream()]
        except Exception as e:
            logger.error("Failed to fetch reference ranges: %s", str(e))
            return []

    def upsert_reference_ranges(self, ranges: list[ReferenceRange]) -> int:
        """Insert or update ranges keyed by (nutrient, sex).

        Existing keys only get their bounds overwritten.

        Args:
            ranges: Ranges to upsert

        Returns:
            Number of ranges upserted (0 on failure)
        """
        logger.info("Upserting %d reference ranges", len(ranges))
        try:
            existing = self.get_reference_ranges()
            merged = {r.key: r for r in upsert_reference_ranges(existing, ranges)}
            batch = self.client.batch()
            for r in ranges:
                stored = merged[r.key]
                batch.set(self._ranges_ref().document(reference_range_id(*r.key)), stored.model_dump())
            batch.commit()
            return len(ranges)
        except Exception as e:
            logger.error("Failed to upsert reference ranges: %s", str(e))
            return 0

    # ==================== Health Entry Operations ====================

    def save_health_entry(self, entry: HealthEntry) -> bool:
        """Save a manually logged health entry.

        Args:
            entry: The entry to save

        Returns:
            True if successful
        """
        logger.info("Saving health entry for %s", entry.user_id[:8])
        try:
            self._user_ref(entry.user_id).collection("health_entries").document(entry.id).set(
                entry.model_dump(mode="json")
            )
            return True
        except Exception as e:
            logger.error("Failed to save health entry: %s", str(e))
            return False
