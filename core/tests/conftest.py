"""
Shared fixtures for caprec tests.

Provides fake collaborators (catalog, notification sink, clock) and
factories for engines wired to an in-memory store.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest

from caprec.config import EngineConfig
from caprec.recommendations.engine import RecommendationEngine
from caprec.recommendations.schemas import (
    CatalogMatch,
    NewRecommendation,
    ProjectContext,
    PromptAnalysis,
    RecommendationRecord,
    RecommendationSource,
    RecommendationType,
)
from caprec.storage.memory import InMemoryRecommendationStore


def match(
    item_id: int,
    rec_type: RecommendationType = RecommendationType.SKILL,
    name: str | None = None,
    base: float = 0.5,
    tags: tuple[str, ...] = (),
    triggers: tuple[str, ...] = (),
    description: str | None = None,
) -> CatalogMatch:
    """Create a CatalogMatch with sensible defaults."""
    name = name or f"{rec_type.value}-{item_id}"
    return CatalogMatch(
        item_id=item_id,
        type=rec_type,
        slug=name.lower().replace(" ", "-"),
        name=name,
        description=description,
        base_score=base,
        applicability_tags=tags,
        triggers=triggers,
    )


def new_record(
    item_id: int,
    rec_type: RecommendationType = RecommendationType.SKILL,
    session_id: str | None = "s-1",
    project_path: str | None = None,
    source: RecommendationSource = RecommendationSource.PROMPT,
    confidence: float = 0.5,
) -> NewRecommendation:
    """Create the fields of a recommendation to persist."""
    return NewRecommendation(
        session_id=session_id,
        project_path=project_path,
        recommendation_type=rec_type,
        item_id=item_id,
        item_slug=f"{rec_type.value}-{item_id}",
        item_name=f"{rec_type.value.title()} {item_id}",
        confidence_score=confidence,
        source=source,
        matched_keywords=["test"],
        prompt_snippet="fix the failing unit tests",
    )


class StaticCatalog:
    """Catalog returning fixed matches per type, optionally failing."""

    def __init__(self, matches: list[CatalogMatch] | None = None) -> None:
        self.matches = list(matches or [])
        self.failures: dict[RecommendationType, Exception] = {}
        self.calls: list[tuple[RecommendationType, PromptAnalysis, ProjectContext | None]] = []

    async def search_candidates(
        self,
        recommendation_type: RecommendationType,
        analysis: PromptAnalysis,
        context: ProjectContext | None = None,
    ) -> list[CatalogMatch]:
        self.calls.append((recommendation_type, analysis, context))
        if recommendation_type in self.failures:
            raise self.failures[recommendation_type]
        return [m for m in self.matches if m.type == recommendation_type]


class FlakyStore(InMemoryRecommendationStore):
    """In-memory store whose individual operations can be made to fail."""

    def __init__(self) -> None:
        super().__init__()
        self.fail_items: set[int] = set()
        self.fail_history = False
        self.fail_dedup = False
        self.record_calls = 0

    async def record_recommendation(self, fields: NewRecommendation) -> RecommendationRecord:
        self.record_calls += 1
        if fields.item_id in self.fail_items:
            raise RuntimeError(f"disk full writing {fields.item_id}")
        return await super().record_recommendation(fields)

    async def get_top_performing_items(self, *args: Any, **kwargs: Any):
        if self.fail_history:
            raise RuntimeError("database is locked")
        return await super().get_top_performing_items(*args, **kwargs)

    async def was_recently_recommended(self, *args: Any, **kwargs: Any) -> bool:
        if self.fail_dedup:
            raise RuntimeError("database is locked")
        return await super().was_recently_recommended(*args, **kwargs)


class RecordingSink:
    """Notification sink that keeps every payload it receives."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, dict[str, Any]]] = []

    def send(self, channel: str, payload: dict[str, Any]) -> None:
        self.sent.append((channel, payload))


class FakeClock:
    """Manually advanced millisecond clock."""

    def __init__(self, start: float = 1_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


@pytest.fixture
def store() -> FlakyStore:
    """Create a fresh in-memory store."""
    return FlakyStore()


@pytest.fixture
def catalog() -> StaticCatalog:
    """Create an empty static catalog."""
    return StaticCatalog()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_engine(
    catalog: StaticCatalog,
    store: FlakyStore,
    sink: RecordingSink,
    clock: FakeClock,
) -> Callable[..., RecommendationEngine]:
    """
    Factory fixture building an engine around the shared fakes.

    Keyword arguments are forwarded to ``RecommendationEngine``; ``config``
    may also be given as a dict of overrides.
    """

    def _make(**kwargs: Any) -> RecommendationEngine:
        config = kwargs.pop("config", None)
        if isinstance(config, dict):
            config = EngineConfig().merged(**config)
        kwargs.setdefault("notifier", sink)
        kwargs.setdefault("clock", clock)
        return RecommendationEngine(catalog=catalog, store=store, config=config, **kwargs)

    return _make
