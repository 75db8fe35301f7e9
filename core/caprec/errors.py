"""Error taxonomy for the recommendation pipeline.

Recoverable errors (context scan, historical read, per-candidate
persistence) are caught inside the engine and degrade the result.
Catalog and feedback errors propagate to the caller.
"""


class CaprecError(Exception):
    """Base class for all recommendation pipeline errors."""


class ContextScanError(CaprecError):
    """Scanning a project directory failed (missing path, permissions, ...)."""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Cannot scan project at {path}: {reason}")


class HistoricalReadError(CaprecError):
    """Reading aggregated success rates from the store failed."""


class CatalogSearchError(CaprecError):
    """The capability catalog failed to answer a search."""

    def __init__(self, recommendation_type: str, message: str):
        self.recommendation_type = recommendation_type
        super().__init__(f"{recommendation_type} search failed: {message}")


class PersistenceWriteError(CaprecError):
    """Writing a recommendation record failed."""


class FeedbackWriteError(CaprecError):
    """Recording a user action against a recommendation failed."""


class RecommendationNotFoundError(FeedbackWriteError):
    """The referenced recommendation id was never persisted."""

    def __init__(self, recommendation_id: int):
        self.recommendation_id = recommendation_id
        super().__init__(f"Recommendation {recommendation_id} does not exist")
