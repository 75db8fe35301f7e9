"""Recommendation stores."""

from caprec.storage.base import RecommendationStore
from caprec.storage.memory import InMemoryRecommendationStore
from caprec.storage.sqlite import SQLiteRecommendationStore

__all__ = [
    "RecommendationStore",
    "InMemoryRecommendationStore",
    "SQLiteRecommendationStore",
]
