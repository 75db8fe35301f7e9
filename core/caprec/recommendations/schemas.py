"""Recommendation pipeline - data models.

Defines the request-scoped analysis models, the catalog and scoring
models, the persisted recommendation record, and the aggregate
statistics exposed to the feedback loop.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class RecommendationType(StrEnum):
    """Kind of capability being recommended."""

    AGENT = "agent"
    SKILL = "skill"


class RecommendationSource(StrEnum):
    """Signal that dominated a recommendation."""

    PROMPT = "prompt"
    PROJECT = "project"
    CONTEXT = "context"
    HISTORICAL = "historical"


class RecommendationAction(StrEnum):
    """Outcome a user applied to an issued recommendation."""

    ACCEPTED = "accepted"
    REJECTED = "rejected"
    IGNORED = "ignored"


class Intent(StrEnum):
    """What the user is trying to do."""

    BUILD = "build"
    FIX = "fix"
    TEST = "test"
    DEPLOY = "deploy"
    REFACTOR = "refactor"
    DOCUMENT = "document"
    SECURITY = "security"
    PERFORMANCE = "performance"
    DATABASE = "database"
    API = "api"
    FRONTEND = "frontend"
    BACKEND = "backend"
    STYLING = "styling"
    HOOKS = "hooks"
    STATE_MANAGEMENT = "state-management"
    FORMS = "forms"
    ANIMATION = "animation"
    CICD = "cicd"
    CONFIG = "config"
    ERROR_HANDLING = "error-handling"


def boost_key(recommendation_type: RecommendationType | str, item_id: int) -> str:
    """Key used in a historical boost mapping."""
    return f"{RecommendationType(recommendation_type).value}:{item_id}"


# ---------------------------------------------------------------------------
# Analysis models
# ---------------------------------------------------------------------------


class PromptAnalysis(BaseModel):
    """Structured signal extracted from a free-text prompt."""

    model_config = ConfigDict(frozen=True)

    keywords: tuple[str, ...] = ()
    intents: tuple[Intent, ...] = ()
    technologies: tuple[str, ...] = ()
    frameworks: tuple[str, ...] = ()
    actions: tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.keywords

    def search_terms(self, limit: int = 10) -> list[str]:
        """Ordered, de-duplicated query terms for a catalog search."""
        terms: list[str] = []
        for term in (*self.keywords, *self.technologies, *self.intents):
            value = str(term)
            if value not in terms:
                terms.append(value)
        return terms[:limit]


class ProjectContext(BaseModel):
    """Technology profile of a project directory."""

    model_config = ConfigDict(frozen=True)

    path: str
    name: str | None = None
    package_manager: str | None = None
    technologies: tuple[str, ...] = ()
    frameworks: tuple[str, ...] = ()
    package_dependencies: tuple[str, ...] = ()
    file_patterns: tuple[str, ...] = ()
    has_tests: bool = False
    has_docker: bool = False
    has_typescript: bool = False
    computed_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def stack(self) -> tuple[str, ...]:
        """Technologies followed by frameworks, without repeats."""
        return tuple(dict.fromkeys((*self.technologies, *self.frameworks)))


# ---------------------------------------------------------------------------
# Catalog and scoring models
# ---------------------------------------------------------------------------


class CatalogMatch(BaseModel):
    """A catalog search hit with the catalog's own relevance score."""

    item_id: int
    type: RecommendationType
    slug: str
    name: str
    description: str | None = None
    base_score: float = Field(ge=0.0, le=1.0)
    applicability_tags: tuple[str, ...] = ()
    triggers: tuple[str, ...] = ()

    @property
    def searchable_text(self) -> str:
        return " ".join(
            [self.name, self.description or "", *self.applicability_tags, *self.triggers]
        )


class Candidate(BaseModel):
    """A scored, not yet persisted recommendation."""

    model_config = ConfigDict(frozen=True)

    item_id: int
    type: RecommendationType
    slug: str
    name: str
    description: str | None = None
    confidence_score: float = Field(ge=0.0, le=1.0)
    base_score: float = Field(default=0.0, ge=0.0, le=1.0)
    source: RecommendationSource = RecommendationSource.PROMPT
    matched_keywords: tuple[str, ...] = ()
    reasoning: str = ""

    @property
    def key(self) -> tuple[RecommendationType, int]:
        return (self.type, self.item_id)


class Recommendation(Candidate):
    """A candidate that the store accepted and assigned an id to."""

    id: int


# ---------------------------------------------------------------------------
# Persistence models
# ---------------------------------------------------------------------------

PROMPT_SNIPPET_LENGTH = 200


class NewRecommendation(BaseModel):
    """Fields of a recommendation about to be persisted."""

    session_id: str | None = None
    project_path: str | None = None
    recommendation_type: RecommendationType
    item_id: int
    item_slug: str
    item_name: str
    confidence_score: float = Field(ge=0.0, le=1.0)
    source: RecommendationSource
    matched_keywords: list[str] = Field(default_factory=list)
    prompt_snippet: str | None = Field(default=None, max_length=PROMPT_SNIPPET_LENGTH)


class RecommendationRecord(BaseModel):
    """A persisted recommendation row."""

    id: int
    session_id: str | None = None
    project_path: str | None = None
    recommendation_type: RecommendationType
    item_id: int
    item_slug: str
    item_name: str
    confidence_score: float = Field(ge=0.0, le=1.0)
    source: RecommendationSource
    matched_keywords: list[str] = Field(default_factory=list)
    prompt_snippet: str | None = None
    action: RecommendationAction | None = None
    action_timestamp: datetime | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class ItemSuccessRate(BaseModel):
    """Historical acceptance of a single catalog item."""

    type: RecommendationType
    item_id: int
    item_slug: str = ""
    item_name: str = ""
    total_recommendations: int = 0
    accepted_count: int = 0
    success_rate: float = Field(default=0.0, ge=0.0, le=1.0)


class RateBreakdown(BaseModel):
    total: int = 0
    accepted: int = 0
    rate: float = 0.0


class AcceptedItem(BaseModel):
    item_id: int
    item_slug: str
    item_name: str
    type: RecommendationType
    accepted_count: int


class RecommendationStats(BaseModel):
    """Aggregate recommendation accuracy."""

    total_recommendations: int = 0
    accepted_count: int = 0
    rejected_count: int = 0
    ignored_count: int = 0
    pending_count: int = 0
    acceptance_rate: float = 0.0
    by_type: dict[str, RateBreakdown] = Field(
        default_factory=lambda: {t.value: RateBreakdown() for t in RecommendationType}
    )
    by_source: dict[str, RateBreakdown] = Field(
        default_factory=lambda: {s.value: RateBreakdown() for s in RecommendationSource}
    )
    top_accepted_items: list[AcceptedItem] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Cache entries and events
# ---------------------------------------------------------------------------


class SessionCacheEntry(BaseModel):
    recommendations: list[Recommendation] = Field(default_factory=list)
    timestamp: float
    prompt_hash: str


class ProjectContextCacheEntry(BaseModel):
    context: ProjectContext
    timestamp: float


class GeneratedEvent(BaseModel):
    """Payload of ``recommendations:generated``."""

    session_id: str | None = None
    project_path: str | None = None
    count: int = 0
    recommendations: list[Recommendation] = Field(default_factory=list)


class FeedbackEvent(BaseModel):
    """Payload of ``recommendations:feedback``."""

    recommendation_id: int
    action: RecommendationAction


def to_payload(model: BaseModel) -> dict[str, Any]:
    """JSON-safe dict for a model, as sent to the UI surface."""
    return model.model_dump(mode="json")
