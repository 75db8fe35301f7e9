"""In-memory recommendation store for tests and ephemeral engines."""

from __future__ import annotations

import threading
from collections import defaultdict
from datetime import UTC, datetime, timedelta

from caprec.errors import RecommendationNotFoundError
from caprec.recommendations.schemas import (
    AcceptedItem,
    ItemSuccessRate,
    NewRecommendation,
    RateBreakdown,
    RecommendationAction,
    RecommendationRecord,
    RecommendationStats,
    RecommendationType,
)


def _rate(accepted: int, total: int) -> float:
    return accepted / total if total > 0 else 0.0


def compute_stats(records: list[RecommendationRecord]) -> RecommendationStats:
    """Aggregate acceptance statistics over *records*."""
    stats = RecommendationStats(total_recommendations=len(records))
    type_counts: dict[str, list[int]] = defaultdict(lambda: [0, 0])
    source_counts: dict[str, list[int]] = defaultdict(lambda: [0, 0])
    accepted_items: dict[tuple[RecommendationType, int], AcceptedItem] = {}

    for rec in records:
        accepted = rec.action == RecommendationAction.ACCEPTED
        if rec.action is None:
            stats.pending_count += 1
        elif accepted:
            stats.accepted_count += 1
        elif rec.action == RecommendationAction.REJECTED:
            stats.rejected_count += 1
        else:
            stats.ignored_count += 1

        type_counts[rec.recommendation_type.value][0] += 1
        source_counts[rec.source.value][0] += 1
        if accepted:
            type_counts[rec.recommendation_type.value][1] += 1
            source_counts[rec.source.value][1] += 1
            key = (rec.recommendation_type, rec.item_id)
            if key in accepted_items:
                accepted_items[key].accepted_count += 1
            else:
                accepted_items[key] = AcceptedItem(
                    item_id=rec.item_id,
                    item_slug=rec.item_slug,
                    item_name=rec.item_name,
                    type=rec.recommendation_type,
                    accepted_count=1,
                )

    for name, (total, accepted) in type_counts.items():
        stats.by_type[name] = RateBreakdown(total=total, accepted=accepted, rate=_rate(accepted, total))
    for name, (total, accepted) in source_counts.items():
        stats.by_source[name] = RateBreakdown(
            total=total, accepted=accepted, rate=_rate(accepted, total)
        )

    stats.acceptance_rate = _rate(stats.accepted_count, stats.accepted_count + stats.rejected_count)
    stats.top_accepted_items = sorted(
        accepted_items.values(), key=lambda i: -i.accepted_count
    )[:10]
    return stats


def compute_top_performing(
    records: list[RecommendationRecord],
    recommendation_type: RecommendationType | None,
    min_samples: int,
    limit: int,
) -> list[ItemSuccessRate]:
    """Success rates per item with at least *min_samples* recommendations."""
    grouped: dict[tuple[RecommendationType, int], list[RecommendationRecord]] = defaultdict(list)
    for rec in records:
        if recommendation_type is None or rec.recommendation_type == recommendation_type:
            grouped[(rec.recommendation_type, rec.item_id)].append(rec)

    items: list[ItemSuccessRate] = []
    for (rec_type, item_id), group in grouped.items():
        if len(group) < min_samples:
            continue
        accepted = sum(1 for r in group if r.action == RecommendationAction.ACCEPTED)
        latest = group[-1]
        items.append(
            ItemSuccessRate(
                type=rec_type,
                item_id=item_id,
                item_slug=latest.item_slug,
                item_name=latest.item_name,
                total_recommendations=len(group),
                accepted_count=accepted,
                success_rate=_rate(accepted, len(group)),
            )
        )

    items.sort(key=lambda i: (-i.success_rate, -i.accepted_count))
    return items[:limit]


class InMemoryRecommendationStore:
    """Process-local store. Records are kept in insertion order."""

    def __init__(self) -> None:
        self._records: list[RecommendationRecord] = []
        self._next_id = 1
        self._lock = threading.Lock()

    async def initialize(self) -> None:
        pass

    async def record_recommendation(self, fields: NewRecommendation) -> RecommendationRecord:
        with self._lock:
            record = RecommendationRecord(id=self._next_id, **fields.model_dump())
            self._next_id += 1
            self._records.append(record)
            return record.model_copy()

    async def get_recommendation(self, recommendation_id: int) -> RecommendationRecord | None:
        with self._lock:
            for rec in self._records:
                if rec.id == recommendation_id:
                    return rec.model_copy()
        return None

    async def record_recommendation_action(
        self,
        recommendation_id: int,
        action: RecommendationAction,
    ) -> None:
        with self._lock:
            for rec in self._records:
                if rec.id == recommendation_id:
                    rec.action = RecommendationAction(action)
                    rec.action_timestamp = datetime.now(UTC)
                    return
        raise RecommendationNotFoundError(recommendation_id)

    async def get_recommendation_stats(self) -> RecommendationStats:
        with self._lock:
            records = list(self._records)
        return compute_stats(records)

    async def get_top_performing_items(
        self,
        recommendation_type: RecommendationType | None = None,
        min_samples: int = 3,
        limit: int = 20,
    ) -> list[ItemSuccessRate]:
        with self._lock:
            records = list(self._records)
        return compute_top_performing(records, recommendation_type, min_samples, limit)

    async def was_recently_recommended(
        self,
        item_id: int,
        recommendation_type: RecommendationType,
        session_id: str | None,
        window_size: int = 10,
    ) -> bool:
        if window_size <= 0:
            return False
        with self._lock:
            recent = [
                r for r in reversed(self._records) if session_id is None or r.session_id == session_id
            ][:window_size]
        return any(
            r.item_id == item_id and r.recommendation_type == recommendation_type for r in recent
        )

    def _newest_first(self, predicate, limit: int) -> list[RecommendationRecord]:
        with self._lock:
            return [r.model_copy() for r in reversed(self._records) if predicate(r)][:limit]

    async def get_recommendations_for_session(
        self, session_id: str, limit: int = 50
    ) -> list[RecommendationRecord]:
        return self._newest_first(lambda r: r.session_id == session_id, limit)

    async def get_recommendations_for_project(
        self, project_path: str, limit: int = 50
    ) -> list[RecommendationRecord]:
        return self._newest_first(lambda r: r.project_path == project_path, limit)

    async def get_pending_recommendations(
        self, session_id: str | None = None, limit: int = 20
    ) -> list[RecommendationRecord]:
        return self._newest_first(
            lambda r: r.action is None and (session_id is None or r.session_id == session_id),
            limit,
        )

    async def cleanup_old_recommendations(self, max_age_days: int = 90) -> int:
        cutoff = datetime.now(UTC) - timedelta(days=max_age_days)
        with self._lock:
            before = len(self._records)
            self._records = [r for r in self._records if r.created_at >= cutoff]
            return before - len(self._records)
