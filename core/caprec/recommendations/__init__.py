"""Capability recommendation pipeline - public API.

Suggests reusable agents and skills for a free-text prompt, adjusted by
the project's detected stack and by how often each item was accepted in
the past.

Quick-start::

    from caprec.catalog import InMemoryCatalog
    from caprec.recommendations import RecommendationAction, RecommendationEngine
    from caprec.storage import InMemoryRecommendationStore

    engine = RecommendationEngine(
        catalog=InMemoryCatalog.from_dicts([
            {"id": 1, "type": "skill", "slug": "test-runner",
             "name": "Test Runner", "tags": ["testing"], "triggers": ["test"]},
        ]),
        store=InMemoryRecommendationStore(),
    )
    recs = await engine.get_recommendations_for_prompt(
        "fix the failing unit tests", session_id="s-1"
    )
    for rec in recs:
        print(rec.name, rec.confidence_score, rec.reasoning)
    await engine.record_feedback(recs[0].id, RecommendationAction.ACCEPTED)
"""

from caprec.recommendations.analyzer import analyze_prompt
from caprec.recommendations.cache import TTLCache
from caprec.recommendations.context import ProjectContextAnalyzer, scan_project
from caprec.recommendations.engine import RecommendationEngine
from caprec.recommendations.events import (
    UI_CHANNEL,
    NotificationSink,
    RecommendationEvent,
    RecommendationEventBus,
    RecommendationEventType,
)
from caprec.recommendations.feedback import FeedbackRecorder
from caprec.recommendations.history import HistoricalPerformanceTracker
from caprec.recommendations.schemas import (
    Candidate,
    CatalogMatch,
    Intent,
    ItemSuccessRate,
    NewRecommendation,
    ProjectContext,
    PromptAnalysis,
    Recommendation,
    RecommendationAction,
    RecommendationRecord,
    RecommendationSource,
    RecommendationStats,
    RecommendationType,
)
from caprec.recommendations.scoring import ScoringEngine

__all__ = [
    # Engine
    "RecommendationEngine",
    # Pipeline stages
    "analyze_prompt",
    "scan_project",
    "ProjectContextAnalyzer",
    "HistoricalPerformanceTracker",
    "ScoringEngine",
    "FeedbackRecorder",
    "TTLCache",
    # Events
    "RecommendationEventBus",
    "RecommendationEvent",
    "RecommendationEventType",
    "NotificationSink",
    "UI_CHANNEL",
    # Schemas
    "PromptAnalysis",
    "ProjectContext",
    "CatalogMatch",
    "Candidate",
    "Recommendation",
    "NewRecommendation",
    "RecommendationRecord",
    "ItemSuccessRate",
    "RecommendationStats",
    "RecommendationType",
    "RecommendationSource",
    "RecommendationAction",
    "Intent",
]
