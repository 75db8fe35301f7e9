"""Historical performance tracking.

Turns the store's aggregated accept/reject counts into the boost mapping
the scoring engines consult, keyed ``"{type}:{item_id}"``.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from caprec.errors import HistoricalReadError
from caprec.recommendations.schemas import ItemSuccessRate, RecommendationType, boost_key

if TYPE_CHECKING:
    from caprec.storage.base import RecommendationStore

logger = logging.getLogger(__name__)

HistoricalBoost = dict[str, float]


class HistoricalPerformanceTracker:
    """Reads per-item success rates from a recommendation store."""

    def __init__(
        self,
        store: RecommendationStore,
        min_samples: int = 2,
        limit: int = 20,
    ) -> None:
        self._store = store
        self.min_samples = min_samples
        self.limit = limit

    async def get_top_performing_items(
        self,
        recommendation_type: RecommendationType,
        min_samples: int | None = None,
        limit: int | None = None,
    ) -> list[ItemSuccessRate]:
        """Items of *recommendation_type* ordered by success rate.

        Raises:
            HistoricalReadError: the store could not be read.
        """
        try:
            return await self._store.get_top_performing_items(
                recommendation_type,
                self.min_samples if min_samples is None else min_samples,
                self.limit if limit is None else limit,
            )
        except Exception as e:
            raise HistoricalReadError(
                f"Failed to read {recommendation_type.value} success rates: {e}"
            ) from e

    async def build_boosts(
        self,
        min_samples: int | None = None,
        limit: int | None = None,
    ) -> HistoricalBoost:
        """Success rates for both agents and skills, read concurrently.

        Raises:
            HistoricalReadError: either read failed.
        """
        agents, skills = await asyncio.gather(
            self.get_top_performing_items(RecommendationType.AGENT, min_samples, limit),
            self.get_top_performing_items(RecommendationType.SKILL, min_samples, limit),
        )
        boosts: HistoricalBoost = {}
        for item in [*agents, *skills]:
            boosts[boost_key(item.type, item.item_id)] = item.success_rate
        logger.debug(f"Built {len(boosts)} historical boosts")
        return boosts
