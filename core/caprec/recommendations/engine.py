"""Recommendation engine - the pipeline controller.

Turns a free-text prompt (plus an optional project path) into a ranked,
deduplicated list of agent and skill recommendations:

* analyse the prompt; stop early when it yields no keywords;
* load the project context, if a path is given (failure -> no context);
* read historical success rates (failure -> no boosts);
* score agents and skills concurrently;
* rank, threshold and truncate;
* drop items already issued to the session within the dedup window;
* persist each survivor independently;
* publish ``recommendations:generated`` and push to the UI surface.

The engine is an explicit instance; construct one at startup and pass it
to callers.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import weakref
from typing import TYPE_CHECKING, Any

from caprec.config import EngineConfig
from caprec.errors import CatalogSearchError, ContextScanError, HistoricalReadError
from caprec.recommendations.analyzer import analyze_prompt
from caprec.recommendations.cache import TTLCache, now_ms
from caprec.recommendations.context import ProjectContextAnalyzer, ProjectScanner, scan_project
from caprec.recommendations.events import (
    UI_CHANNEL,
    NotificationSink,
    RecommendationEvent,
    RecommendationEventBus,
    RecommendationEventType,
    UINotifier,
)
from caprec.recommendations.feedback import FeedbackRecorder
from caprec.recommendations.history import HistoricalBoost, HistoricalPerformanceTracker
from caprec.recommendations.schemas import (
    PROMPT_SNIPPET_LENGTH,
    Candidate,
    GeneratedEvent,
    NewRecommendation,
    ProjectContext,
    ProjectContextCacheEntry,
    PromptAnalysis,
    Recommendation,
    RecommendationAction,
    RecommendationStats,
    RecommendationType,
    SessionCacheEntry,
    to_payload,
)
from caprec.recommendations.scoring import ScoringEngine, ranking_key

if TYPE_CHECKING:
    from collections.abc import Callable

    from caprec.catalog.base import CapabilityCatalog
    from caprec.storage.base import RecommendationStore

logger = logging.getLogger(__name__)


def _prompt_hash(prompt: str) -> str:
    return hashlib.sha256(prompt.encode("utf-8")).hexdigest()


def _collapse(candidates: list[Candidate]) -> list[Candidate]:
    """Rank *candidates*, keeping the best entry per ``(type, item_id)``."""
    seen: set[tuple[RecommendationType, int]] = set()
    ranked: list[Candidate] = []
    for candidate in sorted(candidates, key=ranking_key):
        if candidate.key in seen:
            continue
        seen.add(candidate.key)
        ranked.append(candidate)
    return ranked


class RecommendationEngine:
    """Prompt-driven agent and skill recommendations.

    Usage::

        engine = RecommendationEngine(
            catalog=InMemoryCatalog.from_json_file("catalog.json"),
            store=SQLiteRecommendationStore("~/.caprec/recommendations.db"),
        )
        await engine.initialize()
        recs = await engine.get_recommendations_for_prompt(
            "fix the failing unit tests", session_id="s-1"
        )
        await engine.record_feedback(recs[0].id, RecommendationAction.ACCEPTED)
    """

    def __init__(
        self,
        catalog: CapabilityCatalog,
        store: RecommendationStore,
        config: EngineConfig | None = None,
        event_bus: RecommendationEventBus | None = None,
        notifier: NotificationSink | None = None,
        scanner: ProjectScanner = scan_project,
        clock: Callable[[], float] = now_ms,
    ) -> None:
        self._config = config or EngineConfig()
        self._store = store
        self._event_bus = event_bus or RecommendationEventBus()
        self._notifier = UINotifier(notifier)

        self._session_cache: TTLCache[str, SessionCacheEntry] = TTLCache(
            self._config.cache_timeout_ms, clock
        )
        self._context_cache: TTLCache[str, ProjectContextCacheEntry] = TTLCache(
            self._config.cache_timeout_ms, clock
        )
        self._context_analyzer = ProjectContextAnalyzer(self._context_cache, scanner)
        self._history = HistoricalPerformanceTracker(
            store, self._config.history_min_samples, self._config.history_limit
        )
        self._scorers = [
            ScoringEngine(RecommendationType.AGENT, catalog),
            ScoringEngine(RecommendationType.SKILL, catalog),
        ]
        self._feedback = FeedbackRecorder(store, self._event_bus)
        self._initialized = False
        # Serialises dedup + persist per session; entries vanish once unused.
        self._session_locks: weakref.WeakValueDictionary[str | None, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    # ------------------------------------------------------------------
    # Lifecycle and configuration
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        """Prepare the store. Safe to call more than once."""
        if self._initialized:
            return
        await self._store.initialize()
        self._initialized = True
        logger.info("Recommendation engine initialized")

    @property
    def config(self) -> EngineConfig:
        """The current configuration snapshot."""
        return self._config

    def configure(self, **overrides: Any) -> EngineConfig:
        """Replace the configuration with one built from the current values.

        In-flight requests keep the snapshot they started with.

        Raises:
            TypeError: an override names an unknown setting.
            ValueError: an override is out of range.
        """
        config = self._config.merged(**overrides)
        self._config = config
        self._session_cache.ttl_ms = config.cache_timeout_ms
        self._context_cache.ttl_ms = config.cache_timeout_ms
        logger.debug(f"Engine reconfigured: {overrides}")
        return config

    @property
    def event_bus(self) -> RecommendationEventBus:
        return self._event_bus

    @property
    def notifier(self) -> UINotifier:
        return self._notifier

    @property
    def session_cache(self) -> TTLCache[str, SessionCacheEntry]:
        return self._session_cache

    @property
    def context_cache(self) -> TTLCache[str, ProjectContextCacheEntry]:
        return self._context_cache

    # ------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------

    def analyze_prompt(self, prompt: str) -> PromptAnalysis:
        return analyze_prompt(prompt)

    async def analyze_project_context(self, project_path: str) -> ProjectContext:
        """Project context for *project_path*, cached for ``cache_timeout_ms``.

        Raises:
            ContextScanError: the directory could not be scanned.
        """
        return await self._context_analyzer.analyze(project_path, self._config.cache_timeout_ms)

    async def _context_or_none(
        self, project_path: str, config: EngineConfig
    ) -> ProjectContext | None:
        try:
            pending = self._context_analyzer.analyze(project_path, config.cache_timeout_ms)
            if config.context_scan_timeout_ms > 0:
                return await asyncio.wait_for(pending, config.context_scan_timeout_ms / 1000)
            return await pending
        except ContextScanError as e:
            logger.warning(f"Continuing without project context: {e}")
        except TimeoutError:
            logger.warning(
                f"Project scan of {project_path} exceeded "
                f"{config.context_scan_timeout_ms}ms, continuing without context"
            )
        return None

    async def _boosts_or_empty(self, config: EngineConfig) -> HistoricalBoost:
        try:
            return await self._history.build_boosts(
                config.history_min_samples, config.history_limit
            )
        except HistoricalReadError as e:
            logger.warning(f"Continuing without historical boosts: {e}")
            return {}

    # ------------------------------------------------------------------
    # Prompt pipeline
    # ------------------------------------------------------------------

    async def get_recommendations_for_prompt(
        self,
        prompt: str,
        session_id: str | None = None,
        project_path: str | None = None,
    ) -> list[Recommendation]:
        """Recommend agents and skills for *prompt*.

        Args:
            prompt: The user's free-text request.
            session_id: Session the recommendations are issued to; used
                for deduplication and the session cache.
            project_path: Project directory whose stack adjusts scores.

        Returns:
            The persisted recommendations, best first. Empty when nothing
            relevant survived scoring, thresholding or deduplication.

        Raises:
            CatalogSearchError: both agent and skill searches failed.
        """
        config = self._config

        analysis = analyze_prompt(prompt)
        if analysis.is_empty:
            logger.debug("Prompt produced no keywords, skipping recommendations")
            return []

        await self.initialize()

        context = await self._context_or_none(project_path, config) if project_path else None
        boosts = await self._boosts_or_empty(config)

        candidates = await self._score(analysis, context, boosts, config)
        ranked = _collapse(candidates)
        shortlisted = [
            c for c in ranked if c.confidence_score >= config.min_confidence_score
        ][: config.max_recommendations]

        async with self._session_lock(session_id):
            fresh = await self._drop_recent(shortlisted, session_id, config)
            persisted = await self._persist(fresh, prompt, session_id, project_path)

        logger.debug(
            f"Prompt pipeline: {len(candidates)} candidates, {len(shortlisted)} shortlisted, "
            f"{len(fresh)} fresh, {len(persisted)} persisted"
        )

        if session_id is not None:
            self._session_cache.set(
                session_id,
                SessionCacheEntry(
                    recommendations=persisted,
                    timestamp=self._session_cache.now(),
                    prompt_hash=_prompt_hash(prompt),
                ),
            )

        await self._announce(persisted, session_id, project_path)
        return persisted

    def _session_lock(self, session_id: str | None) -> asyncio.Lock:
        lock = self._session_locks.get(session_id)
        if lock is None:
            lock = asyncio.Lock()
            self._session_locks[session_id] = lock
        return lock

    async def _score(
        self,
        analysis: PromptAnalysis,
        context: ProjectContext | None,
        boosts: HistoricalBoost,
        config: EngineConfig,
    ) -> list[Candidate]:
        results = await asyncio.gather(
            *(scorer.search(analysis, context, boosts, config) for scorer in self._scorers),
            return_exceptions=True,
        )

        candidates: list[Candidate] = []
        failures: list[CatalogSearchError] = []
        for scorer, result in zip(self._scorers, results):
            if isinstance(result, CatalogSearchError):
                logger.error(f"{scorer.recommendation_type.value} candidates unavailable: {result}")
                failures.append(result)
            elif isinstance(result, BaseException):
                raise result
            else:
                candidates.extend(result)

        if failures and len(failures) == len(self._scorers):
            raise failures[0]
        return candidates

    async def _drop_recent(
        self,
        candidates: list[Candidate],
        session_id: str | None,
        config: EngineConfig,
    ) -> list[Candidate]:
        """Remove candidates issued to the session within the dedup window.

        Dropped slots are not backfilled.
        """

        async def is_recent(candidate: Candidate) -> bool:
            try:
                return await self._store.was_recently_recommended(
                    candidate.item_id, candidate.type, session_id, config.dedup_window
                )
            except Exception as e:
                logger.warning(
                    f"Dedup check failed for {candidate.type.value} {candidate.item_id}, "
                    f"dropping it: {e}"
                )
                return True

        flags = await asyncio.gather(*(is_recent(c) for c in candidates))
        return [c for c, recent in zip(candidates, flags) if not recent]

    async def _persist(
        self,
        candidates: list[Candidate],
        prompt: str,
        session_id: str | None,
        project_path: str | None,
    ) -> list[Recommendation]:
        snippet = prompt[:PROMPT_SNIPPET_LENGTH]

        async def persist_one(candidate: Candidate) -> Recommendation | None:
            fields = NewRecommendation(
                session_id=session_id,
                project_path=project_path,
                recommendation_type=candidate.type,
                item_id=candidate.item_id,
                item_slug=candidate.slug,
                item_name=candidate.name,
                confidence_score=candidate.confidence_score,
                source=candidate.source,
                matched_keywords=list(candidate.matched_keywords),
                prompt_snippet=snippet,
            )
            try:
                record = await self._store.record_recommendation(fields)
            except Exception as e:
                logger.warning(
                    f"Dropping {candidate.type.value} {candidate.item_id}, persist failed: {e}"
                )
                return None
            return Recommendation(id=record.id, **candidate.model_dump())

        results = await asyncio.gather(*(persist_one(c) for c in candidates))
        return [r for r in results if r is not None]

    async def _announce(
        self,
        recommendations: list[Recommendation],
        session_id: str | None,
        project_path: str | None,
    ) -> None:
        event = GeneratedEvent(
            session_id=session_id,
            project_path=project_path,
            count=len(recommendations),
            recommendations=recommendations,
        )
        await self._event_bus.publish(
            RecommendationEvent(type=RecommendationEventType.GENERATED, data=to_payload(event))
        )
        self._notifier.notify(
            UI_CHANNEL,
            {
                "session_id": session_id,
                "recommendations": [to_payload(r) for r in recommendations],
            },
        )

    # ------------------------------------------------------------------
    # Project-only suggestions
    # ------------------------------------------------------------------

    async def get_recommendations_for_project(self, project_path: str) -> list[Candidate]:
        """Suggestions from the project's stack alone.

        Nothing is persisted, deduplicated or announced. A failed scan or
        an empty stack yields ``[]``; a failed catalog type is skipped.
        """
        config = self._config
        context = await self._context_or_none(project_path, config)
        if context is None or not context.stack:
            return []

        results = await asyncio.gather(
            *(scorer.search_for_project(context, config) for scorer in self._scorers),
            return_exceptions=True,
        )
        candidates: list[Candidate] = []
        for scorer, result in zip(self._scorers, results):
            if isinstance(result, CatalogSearchError):
                logger.error(f"{scorer.recommendation_type.value} project search failed: {result}")
            elif isinstance(result, BaseException):
                raise result
            else:
                candidates.extend(result)

        return _collapse(candidates)[: config.max_recommendations]

    # ------------------------------------------------------------------
    # Feedback and statistics
    # ------------------------------------------------------------------

    async def record_feedback(
        self,
        recommendation_id: int,
        action: RecommendationAction | str,
    ) -> None:
        """Record the user's response to a recommendation.

        Raises:
            RecommendationNotFoundError: unknown id.
            FeedbackWriteError: the store rejected the write.
        """
        await self.initialize()
        await self._feedback.record_action(recommendation_id, action)

    async def get_stats(self) -> RecommendationStats:
        await self.initialize()
        return await self._store.get_recommendation_stats()

    # ------------------------------------------------------------------
    # Caches
    # ------------------------------------------------------------------

    def get_cached_recommendations(self, session_id: str) -> list[Recommendation] | None:
        """Last result issued to *session_id*, if still fresh."""
        entry = self._session_cache.get(session_id, self._config.cache_timeout_ms)
        return None if entry is None else list(entry.recommendations)

    def clear_caches(self) -> None:
        self._session_cache.clear()
        self._context_cache.clear()
        logger.debug("Recommendation caches cleared")

    def clear_session_cache(self, session_id: str) -> bool:
        return self._session_cache.delete(session_id)
