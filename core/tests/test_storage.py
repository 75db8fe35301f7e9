"""Tests for the recommendation stores.

Each test runs against both the in-memory and the SQLite store.
"""

from __future__ import annotations

import sqlite3
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from caprec.errors import PersistenceWriteError, RecommendationNotFoundError
from caprec.recommendations.schemas import (
    RecommendationAction,
    RecommendationSource,
    RecommendationType,
)
from caprec.storage import InMemoryRecommendationStore, SQLiteRecommendationStore

from conftest import new_record

SKILL = RecommendationType.SKILL
AGENT = RecommendationType.AGENT


@pytest.fixture(params=["memory", "sqlite"])
def any_store(request: pytest.FixtureRequest, tmp_path: Path):
    """Yield an initialised store of each kind."""
    if request.param == "memory":
        yield InMemoryRecommendationStore()
    else:
        store = SQLiteRecommendationStore(tmp_path / "db" / "recommendations.db")
        yield store
        store.close()


class TestRecording:
    @pytest.mark.asyncio
    async def test_record_assigns_increasing_ids(self, any_store) -> None:
        await any_store.initialize()
        first = await any_store.record_recommendation(new_record(1))
        second = await any_store.record_recommendation(new_record(2))

        assert second.id > first.id
        assert first.action is None
        assert first.matched_keywords == ["test"]
        assert first.created_at.tzinfo is not None

    @pytest.mark.asyncio
    async def test_get_recommendation(self, any_store) -> None:
        record = await any_store.record_recommendation(new_record(5, AGENT))

        loaded = await any_store.get_recommendation(record.id)

        assert loaded is not None
        assert loaded.item_id == 5
        assert loaded.recommendation_type == AGENT
        assert await any_store.get_recommendation(record.id + 100) is None

    @pytest.mark.asyncio
    async def test_record_action(self, any_store) -> None:
        record = await any_store.record_recommendation(new_record(1))

        await any_store.record_recommendation_action(record.id, RecommendationAction.REJECTED)
        loaded = await any_store.get_recommendation(record.id)

        assert loaded.action == RecommendationAction.REJECTED
        assert loaded.action_timestamp is not None

    @pytest.mark.asyncio
    async def test_action_for_unknown_id(self, any_store) -> None:
        with pytest.raises(RecommendationNotFoundError) as exc_info:
            await any_store.record_recommendation_action(42, RecommendationAction.ACCEPTED)
        assert exc_info.value.recommendation_id == 42


class TestDedupWindow:
    @pytest.mark.asyncio
    async def test_recent_item_in_same_session(self, any_store) -> None:
        await any_store.record_recommendation(new_record(1, session_id="s-1"))

        assert await any_store.was_recently_recommended(1, SKILL, "s-1", 10)
        assert not await any_store.was_recently_recommended(1, AGENT, "s-1", 10)
        assert not await any_store.was_recently_recommended(1, SKILL, "s-2", 10)

    @pytest.mark.asyncio
    async def test_window_counts_only_session_records(self, any_store) -> None:
        await any_store.record_recommendation(new_record(1, session_id="s-1"))
        for i in range(5):
            await any_store.record_recommendation(new_record(50 + i, session_id="other"))
        for i in range(2):
            await any_store.record_recommendation(new_record(60 + i, session_id="s-1"))

        assert await any_store.was_recently_recommended(1, SKILL, "s-1", 3)
        assert not await any_store.was_recently_recommended(1, SKILL, "s-1", 2)

    @pytest.mark.asyncio
    async def test_none_session_checks_every_session(self, any_store) -> None:
        await any_store.record_recommendation(new_record(1, session_id="s-1"))

        assert await any_store.was_recently_recommended(1, SKILL, None, 10)

    @pytest.mark.asyncio
    async def test_zero_window(self, any_store) -> None:
        await any_store.record_recommendation(new_record(1, session_id="s-1"))

        assert not await any_store.was_recently_recommended(1, SKILL, "s-1", 0)


class TestAggregates:
    @pytest.mark.asyncio
    async def test_top_performing_items(self, any_store) -> None:
        actions = {
            1: [RecommendationAction.ACCEPTED, RecommendationAction.ACCEPTED, None],
            2: [RecommendationAction.ACCEPTED, RecommendationAction.REJECTED],
            3: [RecommendationAction.ACCEPTED],
        }
        for item_id, outcomes in actions.items():
            for outcome in outcomes:
                record = await any_store.record_recommendation(new_record(item_id))
                if outcome is not None:
                    await any_store.record_recommendation_action(record.id, outcome)

        items = await any_store.get_top_performing_items(SKILL, min_samples=2, limit=10)

        assert [i.item_id for i in items] == [1, 2]
        assert items[0].success_rate == pytest.approx(2 / 3)
        assert items[0].total_recommendations == 3
        assert items[1].success_rate == pytest.approx(0.5)

    @pytest.mark.asyncio
    async def test_top_performing_filters_type(self, any_store) -> None:
        for _ in range(2):
            await any_store.record_recommendation(new_record(1, AGENT))
            await any_store.record_recommendation(new_record(1, SKILL))

        items = await any_store.get_top_performing_items(AGENT, min_samples=1)

        assert [(i.type, i.item_id) for i in items] == [(AGENT, 1)]

    @pytest.mark.asyncio
    async def test_stats(self, any_store) -> None:
        a = await any_store.record_recommendation(new_record(1, SKILL))
        b = await any_store.record_recommendation(
            new_record(2, AGENT, source=RecommendationSource.HISTORICAL)
        )
        c = await any_store.record_recommendation(new_record(3, SKILL))
        await any_store.record_recommendation(new_record(4, SKILL))
        await any_store.record_recommendation_action(a.id, RecommendationAction.ACCEPTED)
        await any_store.record_recommendation_action(b.id, RecommendationAction.REJECTED)
        await any_store.record_recommendation_action(c.id, RecommendationAction.IGNORED)

        stats = await any_store.get_recommendation_stats()

        assert stats.total_recommendations == 4
        assert (stats.accepted_count, stats.rejected_count, stats.ignored_count) == (1, 1, 1)
        assert stats.pending_count == 1
        assert stats.acceptance_rate == pytest.approx(0.5)
        assert stats.by_type["skill"].total == 3
        assert stats.by_type["skill"].accepted == 1
        assert stats.by_source["historical"].total == 1
        assert stats.by_source["context"].total == 0
        assert [i.item_id for i in stats.top_accepted_items] == [1]

    @pytest.mark.asyncio
    async def test_empty_stats(self, any_store) -> None:
        stats = await any_store.get_recommendation_stats()

        assert stats.total_recommendations == 0
        assert stats.acceptance_rate == 0.0
        assert set(stats.by_type) == {"agent", "skill"}


class TestQueries:
    @pytest.mark.asyncio
    async def test_session_project_and_pending(self, any_store) -> None:
        first = await any_store.record_recommendation(
            new_record(1, session_id="s-1", project_path="/repo")
        )
        await any_store.record_recommendation(new_record(2, session_id="s-1"))
        await any_store.record_recommendation(new_record(3, session_id="s-2", project_path="/repo"))
        await any_store.record_recommendation_action(first.id, RecommendationAction.ACCEPTED)

        session = await any_store.get_recommendations_for_session("s-1")
        project = await any_store.get_recommendations_for_project("/repo")
        pending = await any_store.get_pending_recommendations()
        pending_s1 = await any_store.get_pending_recommendations("s-1")

        assert [r.item_id for r in session] == [2, 1]
        assert [r.item_id for r in project] == [3, 1]
        assert [r.item_id for r in pending] == [3, 2]
        assert [r.item_id for r in pending_s1] == [2]

    @pytest.mark.asyncio
    async def test_cleanup_keeps_recent_records(self, any_store) -> None:
        await any_store.record_recommendation(new_record(1))

        assert await any_store.cleanup_old_recommendations(max_age_days=90) == 0
        assert await any_store.cleanup_old_recommendations(max_age_days=-1) == 1
        assert await any_store.get_recommendations_for_session("s-1") == []


class TestSQLiteStore:
    @pytest.mark.asyncio
    async def test_data_survives_reopen(self, tmp_path: Path) -> None:
        path = tmp_path / "recs.db"
        store = SQLiteRecommendationStore(path)
        record = await store.record_recommendation(new_record(1))
        store.close()

        reopened = SQLiteRecommendationStore(path)
        loaded = await reopened.get_recommendation(record.id)
        reopened.close()

        assert loaded is not None
        assert loaded.item_slug == "skill-1"

    @pytest.mark.asyncio
    async def test_schema_and_indexes(self, tmp_path: Path) -> None:
        path = tmp_path / "recs.db"
        store = SQLiteRecommendationStore(path)
        await store.initialize()
        store.close()

        conn = sqlite3.connect(path)
        indexes = {
            row[0]
            for row in conn.execute(
                "SELECT name FROM sqlite_master WHERE type = 'index' AND tbl_name = 'recommendations'"
            )
        }
        conn.close()

        assert {
            "idx_recommendations_session",
            "idx_recommendations_project",
            "idx_recommendations_item",
            "idx_recommendations_created",
        } <= indexes

    @pytest.mark.asyncio
    async def test_write_failure_is_persistence_error(self, tmp_path: Path) -> None:
        path = tmp_path / "recs.db"
        store = SQLiteRecommendationStore(path)
        await store.initialize()
        conn = sqlite3.connect(path)
        conn.execute("DROP TABLE recommendations")
        conn.commit()
        conn.close()

        with pytest.raises(PersistenceWriteError):
            await store.record_recommendation(new_record(1))
        store.close()

    @pytest.mark.asyncio
    async def test_cleanup_by_age(self, tmp_path: Path) -> None:
        path = tmp_path / "recs.db"
        store = SQLiteRecommendationStore(path)
        old = await store.record_recommendation(new_record(1))
        await store.record_recommendation(new_record(2))
        store.close()

        stale = (datetime.now(UTC) - timedelta(days=120)).isoformat()
        conn = sqlite3.connect(path)
        conn.execute("UPDATE recommendations SET created_at = ? WHERE id = ?", (stale, old.id))
        conn.commit()
        conn.close()

        store = SQLiteRecommendationStore(path)
        assert await store.cleanup_old_recommendations(90) == 1
        remaining = await store.get_recommendations_for_session("s-1")
        store.close()
        assert [r.item_id for r in remaining] == [2]
