"""Feedback recording - the write side of the learning loop."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from caprec.errors import FeedbackWriteError
from caprec.recommendations.events import (
    RecommendationEvent,
    RecommendationEventBus,
    RecommendationEventType,
)
from caprec.recommendations.schemas import FeedbackEvent, RecommendationAction, to_payload

if TYPE_CHECKING:
    from caprec.storage.base import RecommendationStore

logger = logging.getLogger(__name__)


class FeedbackRecorder:
    """Attaches user actions to issued recommendations."""

    def __init__(self, store: RecommendationStore, event_bus: RecommendationEventBus) -> None:
        self._store = store
        self._event_bus = event_bus

    async def record_action(
        self,
        recommendation_id: int,
        action: RecommendationAction | str,
    ) -> None:
        """Store *action* against *recommendation_id*, then publish it.

        Raises:
            RecommendationNotFoundError: the id was never persisted.
            FeedbackWriteError: the store rejected the write.
            ValueError: *action* is not a known action.
        """
        action = RecommendationAction(action)
        try:
            await self._store.record_recommendation_action(recommendation_id, action)
        except FeedbackWriteError:
            raise
        except Exception as e:
            raise FeedbackWriteError(
                f"Failed to record {action.value} for recommendation {recommendation_id}: {e}"
            ) from e

        await self._event_bus.publish(
            RecommendationEvent(
                type=RecommendationEventType.FEEDBACK,
                data=to_payload(FeedbackEvent(recommendation_id=recommendation_id, action=action)),
            )
        )
        logger.debug(f"Recommendation {recommendation_id} {action.value}")
