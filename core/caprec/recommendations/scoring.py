"""Candidate scoring.

One :class:`ScoringEngine` per recommendation type. Each asks the catalog
for matches and combines the catalog's base relevance with a project
context adjustment and a historical adjustment:

    confidence = clamp(base
                       + context_match_fraction * project_context_weight
                       + success_rate * historical_boost_weight)
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING

from caprec.config import EngineConfig
from caprec.errors import CatalogSearchError
from caprec.recommendations.schemas import (
    Candidate,
    CatalogMatch,
    ProjectContext,
    PromptAnalysis,
    RecommendationSource,
    RecommendationType,
    boost_key,
)

if TYPE_CHECKING:
    from caprec.catalog.base import CapabilityCatalog

logger = logging.getLogger(__name__)

# Above this success rate the historical signal names the source.
HISTORICAL_SOURCE_THRESHOLD = 0.5

# Project-only confidence: min(cap, floor + step * matched stack tags)
_PROJECT_SCORE_FLOOR = 0.2
_PROJECT_SCORE_STEP = 0.2
_PROJECT_SCORE_CAP = 0.9


def find_matching_keywords(text: str, keywords: Iterable[str]) -> list[str]:
    """Keywords occurring in *text* (case-insensitive substring), in order."""
    haystack = text.lower()
    matched = [k for k in keywords if k.lower() in haystack]
    return list(dict.fromkeys(matched))


def generate_reasoning(
    analysis: PromptAnalysis,
    matched_keywords: list[str],
    source: RecommendationSource,
) -> str:
    """Short human-readable explanation of why a candidate was chosen."""
    parts: list[str] = []
    if source == RecommendationSource.HISTORICAL:
        parts.append("High historical success rate")
    if source == RecommendationSource.CONTEXT:
        parts.append("Matches project context")
    if matched_keywords:
        parts.append(f"Keywords: {', '.join(matched_keywords[:3])}")
    if analysis.intents:
        parts.append(f"Intent: {analysis.intents[0]}")
    return ". ".join(parts) if parts else "Keyword match"


def ranking_key(candidate: Candidate) -> tuple[float, float, str]:
    """Sort key: confidence desc, then base score desc, then name asc."""
    return (-candidate.confidence_score, -candidate.base_score, candidate.name)


def _clamp(value: float) -> float:
    return min(1.0, max(0.0, value))


def _stack_overlap(match: CatalogMatch, context: ProjectContext | None) -> tuple[int, int]:
    """(matched tags, declared tags) between a match and the project stack."""
    if context is None or not match.applicability_tags:
        return 0, len(match.applicability_tags)
    stack = {t.lower() for t in context.stack}
    tags = {t.lower() for t in match.applicability_tags}
    return len(tags & stack), len(tags)


class ScoringEngine:
    """Scores catalog matches of a single recommendation type."""

    def __init__(self, recommendation_type: RecommendationType, catalog: CapabilityCatalog) -> None:
        self.recommendation_type = recommendation_type
        self._catalog = catalog

    async def _search_catalog(
        self,
        analysis: PromptAnalysis,
        context: ProjectContext | None,
    ) -> list[CatalogMatch]:
        try:
            matches = await self._catalog.search_candidates(
                self.recommendation_type, analysis, context
            )
        except CatalogSearchError:
            raise
        except Exception as e:
            raise CatalogSearchError(self.recommendation_type.value, str(e)) from e
        return [m for m in matches if m.type == self.recommendation_type]

    def score(
        self,
        match: CatalogMatch,
        analysis: PromptAnalysis,
        context: ProjectContext | None,
        boosts: dict[str, float],
        config: EngineConfig,
    ) -> Candidate:
        """Combine base, context and historical signals for one match."""
        matched, declared = _stack_overlap(match, context)
        context_adjustment = (matched / declared) * config.project_context_weight if declared else 0.0

        success_rate = boosts.get(boost_key(self.recommendation_type, match.item_id), 0.0)
        historical_adjustment = success_rate * config.historical_boost_weight

        confidence = _clamp(match.base_score + context_adjustment + historical_adjustment)

        if success_rate > HISTORICAL_SOURCE_THRESHOLD:
            source = RecommendationSource.HISTORICAL
        elif matched > 0:
            source = RecommendationSource.CONTEXT
        else:
            source = RecommendationSource.PROMPT

        keywords = find_matching_keywords(match.searchable_text, analysis.keywords)
        matched_keywords = keywords
        if self.recommendation_type == RecommendationType.SKILL and match.triggers:
            trigger_hits = find_matching_keywords(" ".join(match.triggers), analysis.keywords)
            matched_keywords = list(dict.fromkeys([*keywords, *trigger_hits]))

        return Candidate(
            item_id=match.item_id,
            type=self.recommendation_type,
            slug=match.slug,
            name=match.name,
            description=match.description,
            confidence_score=confidence,
            base_score=match.base_score,
            source=source,
            matched_keywords=tuple(matched_keywords),
            reasoning=generate_reasoning(analysis, keywords, source),
        )

    async def search(
        self,
        analysis: PromptAnalysis,
        context: ProjectContext | None,
        boosts: dict[str, float],
        config: EngineConfig,
    ) -> list[Candidate]:
        """Score every catalog match for *analysis*, best first.

        Raises:
            CatalogSearchError: the catalog failed to answer.
        """
        matches = await self._search_catalog(analysis, context)
        candidates = [self.score(m, analysis, context, boosts, config) for m in matches]
        candidates.sort(key=ranking_key)
        logger.debug(
            f"Scored {len(candidates)} {self.recommendation_type.value} candidates"
        )
        return candidates

    async def search_for_project(
        self,
        context: ProjectContext,
        config: EngineConfig,
    ) -> list[Candidate]:
        """Score matches by project stack alone (no prompt, no history).

        Matches that share nothing with the stack are dropped.

        Raises:
            CatalogSearchError: the catalog failed to answer.
        """
        stack = list(context.stack)
        if not stack:
            return []

        analysis = PromptAnalysis(
            keywords=tuple(stack),
            technologies=context.technologies,
            frameworks=context.frameworks,
        )
        matches = await self._search_catalog(analysis, context)

        candidates: list[Candidate] = []
        for match in matches:
            matched = find_matching_keywords(match.searchable_text, stack)
            if not matched:
                continue
            confidence = min(_PROJECT_SCORE_CAP, _PROJECT_SCORE_FLOOR + _PROJECT_SCORE_STEP * len(matched))
            candidates.append(
                Candidate(
                    item_id=match.item_id,
                    type=self.recommendation_type,
                    slug=match.slug,
                    name=match.name,
                    description=match.description,
                    confidence_score=confidence,
                    base_score=match.base_score,
                    source=RecommendationSource.PROJECT,
                    matched_keywords=tuple(matched),
                    reasoning=f"Matches project technologies: {', '.join(matched)}",
                )
            )
        candidates.sort(key=ranking_key)
        return candidates
