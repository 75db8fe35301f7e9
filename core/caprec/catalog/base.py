"""Capability catalog protocol.

The catalog owns indexing and relevance; the scoring engine treats each
match's ``base_score`` as authoritative.
"""

from __future__ import annotations

from typing import Protocol

from caprec.recommendations.schemas import (
    CatalogMatch,
    ProjectContext,
    PromptAnalysis,
    RecommendationType,
)


class CapabilityCatalog(Protocol):
    """Searchable index of agents and skills."""

    async def search_candidates(
        self,
        recommendation_type: RecommendationType,
        analysis: PromptAnalysis,
        context: ProjectContext | None = None,
    ) -> list[CatalogMatch]:
        """Return matches of *recommendation_type* ordered by relevance."""
        ...
