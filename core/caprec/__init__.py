"""caprec - agent and skill recommendations for coding prompts."""

from caprec.config import EngineConfig
from caprec.errors import (
    CaprecError,
    CatalogSearchError,
    ContextScanError,
    FeedbackWriteError,
    HistoricalReadError,
    PersistenceWriteError,
    RecommendationNotFoundError,
)
from caprec.recommendations import RecommendationEngine
from caprec.catalog import InMemoryCatalog
from caprec.storage import InMemoryRecommendationStore, SQLiteRecommendationStore

__version__ = "0.1.0"

__all__ = [
    "EngineConfig",
    "RecommendationEngine",
    "InMemoryCatalog",
    "InMemoryRecommendationStore",
    "SQLiteRecommendationStore",
    "CaprecError",
    "ContextScanError",
    "HistoricalReadError",
    "CatalogSearchError",
    "PersistenceWriteError",
    "FeedbackWriteError",
    "RecommendationNotFoundError",
]
