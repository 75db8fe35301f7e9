"""Recommendation store protocol."""

from __future__ import annotations

from typing import Protocol

from caprec.recommendations.schemas import (
    ItemSuccessRate,
    NewRecommendation,
    RecommendationAction,
    RecommendationRecord,
    RecommendationStats,
    RecommendationType,
)


class RecommendationStore(Protocol):
    """Persistence for issued recommendations and their outcomes."""

    async def initialize(self) -> None: ...

    async def record_recommendation(self, fields: NewRecommendation) -> RecommendationRecord:
        """Persist *fields* and return the stored record with its id."""
        ...

    async def get_recommendation(self, recommendation_id: int) -> RecommendationRecord | None: ...

    async def record_recommendation_action(
        self,
        recommendation_id: int,
        action: RecommendationAction,
    ) -> None:
        """Attach *action*; raises ``RecommendationNotFoundError`` for unknown ids."""
        ...

    async def get_recommendation_stats(self) -> RecommendationStats: ...

    async def get_top_performing_items(
        self,
        recommendation_type: RecommendationType | None = None,
        min_samples: int = 3,
        limit: int = 20,
    ) -> list[ItemSuccessRate]: ...

    async def was_recently_recommended(
        self,
        item_id: int,
        recommendation_type: RecommendationType,
        session_id: str | None,
        window_size: int = 10,
    ) -> bool:
        """Whether the item is among the last *window_size* issued to the session.

        A ``None`` session checks the most recent records of every session.
        """
        ...

    async def get_recommendations_for_session(
        self, session_id: str, limit: int = 50
    ) -> list[RecommendationRecord]: ...

    async def get_recommendations_for_project(
        self, project_path: str, limit: int = 50
    ) -> list[RecommendationRecord]: ...

    async def get_pending_recommendations(
        self, session_id: str | None = None, limit: int = 20
    ) -> list[RecommendationRecord]: ...

    async def cleanup_old_recommendations(self, max_age_days: int = 90) -> int: ...
