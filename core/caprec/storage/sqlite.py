"""SQLite recommendation store.

Storage layout: a single ``recommendations`` table (one row per issued
recommendation, the user's action attached in place) plus lookup
indexes. The connection is shared across worker threads behind a lock;
every public coroutine runs its query with ``asyncio.to_thread``.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
import threading
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

from caprec.errors import PersistenceWriteError, RecommendationNotFoundError
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

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS recommendations (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id TEXT,
    project_path TEXT,
    recommendation_type TEXT NOT NULL CHECK (recommendation_type IN ('agent', 'skill')),
    item_id INTEGER NOT NULL,
    item_slug TEXT NOT NULL,
    item_name TEXT NOT NULL,
    confidence_score REAL NOT NULL CHECK (confidence_score >= 0 AND confidence_score <= 1),
    source TEXT NOT NULL CHECK (source IN ('prompt', 'project', 'context', 'historical')),
    matched_keywords TEXT DEFAULT '[]',
    prompt_snippet TEXT,
    action TEXT CHECK (action IN ('accepted', 'rejected', 'ignored') OR action IS NULL),
    action_timestamp TEXT,
    created_at TEXT NOT NULL
)
"""

_INDEXES = (
    "CREATE INDEX IF NOT EXISTS idx_recommendations_session ON recommendations(session_id)",
    "CREATE INDEX IF NOT EXISTS idx_recommendations_project ON recommendations(project_path)",
    "CREATE INDEX IF NOT EXISTS idx_recommendations_type ON recommendations(recommendation_type)",
    "CREATE INDEX IF NOT EXISTS idx_recommendations_item "
    "ON recommendations(item_id, recommendation_type)",
    "CREATE INDEX IF NOT EXISTS idx_recommendations_action ON recommendations(action)",
    "CREATE INDEX IF NOT EXISTS idx_recommendations_created ON recommendations(created_at DESC)",
)


def _now() -> str:
    return datetime.now(UTC).isoformat()


def _row_to_record(row: sqlite3.Row) -> RecommendationRecord:
    try:
        keywords = json.loads(row["matched_keywords"] or "[]")
    except json.JSONDecodeError:
        keywords = []
    return RecommendationRecord(
        id=row["id"],
        session_id=row["session_id"],
        project_path=row["project_path"],
        recommendation_type=row["recommendation_type"],
        item_id=row["item_id"],
        item_slug=row["item_slug"],
        item_name=row["item_name"],
        confidence_score=row["confidence_score"],
        source=row["source"],
        matched_keywords=keywords,
        prompt_snippet=row["prompt_snippet"],
        action=row["action"],
        action_timestamp=row["action_timestamp"],
        created_at=row["created_at"],
    )


def _rate(accepted: int, total: int) -> float:
    return accepted / total if total > 0 else 0.0


class SQLiteRecommendationStore:
    """Recommendation store backed by a SQLite file (or ``:memory:``)."""

    def __init__(self, db_path: Path | str) -> None:
        self._db_path = str(db_path)
        self._lock = threading.Lock()
        self._conn: sqlite3.Connection | None = None

    # ------------------------------------------------------------------
    # Connection management
    # ------------------------------------------------------------------

    def _connect(self) -> sqlite3.Connection:
        if self._conn is None:
            if self._db_path != ":memory:":
                Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(self._db_path, check_same_thread=False)
            conn.row_factory = sqlite3.Row
            conn.execute(_SCHEMA)
            for statement in _INDEXES:
                conn.execute(statement)
            conn.commit()
            self._conn = conn
            logger.info(f"Recommendation store ready at {self._db_path}")
        return self._conn

    def _query(self, sql: str, params: tuple[Any, ...] = ()) -> list[sqlite3.Row]:
        with self._lock:
            return self._connect().execute(sql, params).fetchall()

    def _execute(self, sql: str, params: tuple[Any, ...] = ()) -> sqlite3.Cursor:
        with self._lock:
            conn = self._connect()
            cursor = conn.execute(sql, params)
            conn.commit()
            return cursor

    async def initialize(self) -> None:
        def _init() -> None:
            with self._lock:
                self._connect()

        await asyncio.to_thread(_init)

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _insert(self, fields: NewRecommendation) -> RecommendationRecord:
        try:
            cursor = self._execute(
                """
                INSERT INTO recommendations (
                    session_id, project_path, recommendation_type, item_id, item_slug,
                    item_name, confidence_score, source, matched_keywords, prompt_snippet,
                    created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    fields.session_id,
                    fields.project_path,
                    fields.recommendation_type.value,
                    fields.item_id,
                    fields.item_slug,
                    fields.item_name,
                    fields.confidence_score,
                    fields.source.value,
                    json.dumps(fields.matched_keywords),
                    fields.prompt_snippet,
                    _now(),
                ),
            )
        except sqlite3.Error as e:
            raise PersistenceWriteError(
                f"Failed to record {fields.recommendation_type.value} {fields.item_id}: {e}"
            ) from e
        record = self._get(cursor.lastrowid)
        if record is None:
            raise PersistenceWriteError(f"Recommendation {cursor.lastrowid} vanished after insert")
        return record

    async def record_recommendation(self, fields: NewRecommendation) -> RecommendationRecord:
        return await asyncio.to_thread(self._insert, fields)

    def _set_action(self, recommendation_id: int, action: RecommendationAction) -> None:
        cursor = self._execute(
            "UPDATE recommendations SET action = ?, action_timestamp = ? WHERE id = ?",
            (RecommendationAction(action).value, _now(), recommendation_id),
        )
        if cursor.rowcount == 0:
            raise RecommendationNotFoundError(recommendation_id)

    async def record_recommendation_action(
        self,
        recommendation_id: int,
        action: RecommendationAction,
    ) -> None:
        await asyncio.to_thread(self._set_action, recommendation_id, action)

    def _delete_older_than(self, max_age_days: int) -> int:
        cutoff = (datetime.now(UTC) - timedelta(days=max_age_days)).isoformat()
        cursor = self._execute("DELETE FROM recommendations WHERE created_at < ?", (cutoff,))
        return cursor.rowcount

    async def cleanup_old_recommendations(self, max_age_days: int = 90) -> int:
        removed = await asyncio.to_thread(self._delete_older_than, max_age_days)
        if removed:
            logger.info(f"Removed {removed} recommendations older than {max_age_days} days")
        return removed

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _get(self, recommendation_id: int | None) -> RecommendationRecord | None:
        rows = self._query("SELECT * FROM recommendations WHERE id = ?", (recommendation_id,))
        return _row_to_record(rows[0]) if rows else None

    async def get_recommendation(self, recommendation_id: int) -> RecommendationRecord | None:
        return await asyncio.to_thread(self._get, recommendation_id)

    def _records(self, where: str, params: tuple[Any, ...], limit: int) -> list[RecommendationRecord]:
        rows = self._query(
            f"SELECT * FROM recommendations WHERE {where} ORDER BY id DESC LIMIT ?",
            (*params, limit),
        )
        return [_row_to_record(row) for row in rows]

    async def get_recommendations_for_session(
        self, session_id: str, limit: int = 50
    ) -> list[RecommendationRecord]:
        return await asyncio.to_thread(self._records, "session_id = ?", (session_id,), limit)

    async def get_recommendations_for_project(
        self, project_path: str, limit: int = 50
    ) -> list[RecommendationRecord]:
        return await asyncio.to_thread(self._records, "project_path = ?", (project_path,), limit)

    async def get_pending_recommendations(
        self, session_id: str | None = None, limit: int = 20
    ) -> list[RecommendationRecord]:
        if session_id is None:
            return await asyncio.to_thread(self._records, "action IS NULL", (), limit)
        return await asyncio.to_thread(
            self._records, "action IS NULL AND session_id = ?", (session_id,), limit
        )

    def _recent_hit(
        self,
        item_id: int,
        recommendation_type: RecommendationType,
        session_id: str | None,
        window_size: int,
    ) -> bool:
        rows = self._query(
            """
            SELECT COUNT(*) AS hits FROM (
                SELECT item_id, recommendation_type FROM recommendations
                WHERE (session_id = ? OR ? IS NULL)
                ORDER BY id DESC
                LIMIT ?
            )
            WHERE item_id = ? AND recommendation_type = ?
            """,
            (session_id, session_id, window_size, item_id, RecommendationType(recommendation_type).value),
        )
        return rows[0]["hits"] > 0

    async def was_recently_recommended(
        self,
        item_id: int,
        recommendation_type: RecommendationType,
        session_id: str | None,
        window_size: int = 10,
    ) -> bool:
        if window_size <= 0:
            return False
        return await asyncio.to_thread(
            self._recent_hit, item_id, recommendation_type, session_id, window_size
        )

    def _top_performing(
        self,
        recommendation_type: RecommendationType | None,
        min_samples: int,
        limit: int,
    ) -> list[ItemSuccessRate]:
        sql = """
            SELECT item_id, item_slug, item_name, recommendation_type AS type,
                   COUNT(*) AS total,
                   SUM(CASE WHEN action = 'accepted' THEN 1 ELSE 0 END) AS accepted
            FROM recommendations
        """
        params: list[Any] = []
        if recommendation_type is not None:
            sql += " WHERE recommendation_type = ?"
            params.append(RecommendationType(recommendation_type).value)
        sql += """
            GROUP BY item_id, recommendation_type
            HAVING total >= ?
            ORDER BY (CAST(accepted AS REAL) / total) DESC, accepted DESC
            LIMIT ?
        """
        params.extend([min_samples, limit])
        return [
            ItemSuccessRate(
                type=row["type"],
                item_id=row["item_id"],
                item_slug=row["item_slug"],
                item_name=row["item_name"],
                total_recommendations=row["total"],
                accepted_count=row["accepted"],
                success_rate=_rate(row["accepted"], row["total"]),
            )
            for row in self._query(sql, tuple(params))
        ]

    async def get_top_performing_items(
        self,
        recommendation_type: RecommendationType | None = None,
        min_samples: int = 3,
        limit: int = 20,
    ) -> list[ItemSuccessRate]:
        return await asyncio.to_thread(self._top_performing, recommendation_type, min_samples, limit)

    def _stats(self) -> RecommendationStats:
        overall = self._query(
            """
            SELECT
                COUNT(*) AS total,
                COALESCE(SUM(CASE WHEN action = 'accepted' THEN 1 ELSE 0 END), 0) AS accepted,
                COALESCE(SUM(CASE WHEN action = 'rejected' THEN 1 ELSE 0 END), 0) AS rejected,
                COALESCE(SUM(CASE WHEN action = 'ignored' THEN 1 ELSE 0 END), 0) AS ignored,
                COALESCE(SUM(CASE WHEN action IS NULL THEN 1 ELSE 0 END), 0) AS pending
            FROM recommendations
            """
        )[0]

        stats = RecommendationStats(
            total_recommendations=overall["total"],
            accepted_count=overall["accepted"],
            rejected_count=overall["rejected"],
            ignored_count=overall["ignored"],
            pending_count=overall["pending"],
            acceptance_rate=_rate(overall["accepted"], overall["accepted"] + overall["rejected"]),
        )

        for column, target in (("recommendation_type", stats.by_type), ("source", stats.by_source)):
            rows = self._query(
                f"""
                SELECT {column} AS name, COUNT(*) AS total,
                       SUM(CASE WHEN action = 'accepted' THEN 1 ELSE 0 END) AS accepted
                FROM recommendations
                GROUP BY {column}
                """
            )
            for row in rows:
                target[row["name"]] = RateBreakdown(
                    total=row["total"],
                    accepted=row["accepted"],
                    rate=_rate(row["accepted"], row["total"]),
                )

        top = self._query(
            """
            SELECT item_id, item_slug, item_name, recommendation_type AS type,
                   COUNT(*) AS accepted_count
            FROM recommendations
            WHERE action = 'accepted'
            GROUP BY item_id, recommendation_type
            ORDER BY accepted_count DESC
            LIMIT 10
            """
        )
        stats.top_accepted_items = [
            AcceptedItem(
                item_id=row["item_id"],
                item_slug=row["item_slug"],
                item_name=row["item_name"],
                type=row["type"],
                accepted_count=row["accepted_count"],
            )
            for row in top
        ]
        return stats

    async def get_recommendation_stats(self) -> RecommendationStats:
        return await asyncio.to_thread(self._stats)
