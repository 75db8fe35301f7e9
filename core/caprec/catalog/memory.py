"""In-memory capability catalog.

Keyword-overlap scoring over a fixed list of catalog items. Useful for
tests, demos and small local catalogs loaded from JSON.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from caprec.recommendations.schemas import (
    CatalogMatch,
    ProjectContext,
    PromptAnalysis,
    RecommendationType,
)

logger = logging.getLogger(__name__)

_MAX_RESULTS = 15
_MAX_QUERY_TERMS = 10


class CatalogItem(BaseModel):
    """An agent or skill definition held by the catalog."""

    id: int
    type: RecommendationType
    slug: str
    name: str
    description: str | None = None
    tags: list[str] = Field(default_factory=list)
    triggers: list[str] = Field(default_factory=list)

    def text(self) -> str:
        return " ".join([self.name, self.description or "", *self.tags, *self.triggers]).lower()


def _score(term_matches: int, trigger_matches: int) -> float:
    base = min(0.9, 0.25 + 0.1 * term_matches) + 0.15 * trigger_matches
    return min(1.0, round(base, 4))


class InMemoryCatalog:
    """Catalog backed by a list of :class:`CatalogItem`.

    An item matches when any query term (prompt keywords, technologies and
    intents, first ten) occurs in its name, description, tags or triggers.
    """

    def __init__(self, items: list[CatalogItem] | None = None) -> None:
        self._items: dict[tuple[RecommendationType, int], CatalogItem] = {}
        for item in items or []:
            self.add(item)

    def add(self, item: CatalogItem) -> None:
        self._items[(item.type, item.id)] = item

    def items(self, recommendation_type: RecommendationType | None = None) -> list[CatalogItem]:
        return [
            item
            for item in self._items.values()
            if recommendation_type is None or item.type == recommendation_type
        ]

    async def search_candidates(
        self,
        recommendation_type: RecommendationType,
        analysis: PromptAnalysis,
        context: ProjectContext | None = None,
    ) -> list[CatalogMatch]:
        terms = [t.lower() for t in analysis.search_terms(_MAX_QUERY_TERMS)]
        if not terms:
            return []

        matches: list[CatalogMatch] = []
        for item in self.items(recommendation_type):
            text = item.text()
            term_matches = sum(1 for t in terms if t in text)
            if term_matches == 0:
                continue
            trigger_text = " ".join(item.triggers).lower()
            trigger_matches = sum(1 for t in terms if t in trigger_text) if trigger_text else 0
            matches.append(
                CatalogMatch(
                    item_id=item.id,
                    type=item.type,
                    slug=item.slug,
                    name=item.name,
                    description=item.description,
                    base_score=_score(term_matches, trigger_matches),
                    applicability_tags=tuple(item.tags),
                    triggers=tuple(item.triggers),
                )
            )

        matches.sort(key=lambda m: (-m.base_score, m.name))
        return matches[:_MAX_RESULTS]

    @classmethod
    def from_dicts(cls, rows: list[dict[str, Any]]) -> InMemoryCatalog:
        return cls([CatalogItem(**row) for row in rows])

    @classmethod
    def from_json_file(cls, path: Path | str) -> InMemoryCatalog:
        """Load a catalog from a JSON file.

        Accepts either a list of items or an object with ``agents`` and
        ``skills`` lists (the ``type`` field is filled in from the key).
        """
        data = json.loads(Path(path).read_text(encoding="utf-8"))
        rows: list[dict[str, Any]] = []
        if isinstance(data, list):
            rows = data
        elif isinstance(data, dict):
            for key, rec_type in (("agents", "agent"), ("skills", "skill")):
                for row in data.get(key, []):
                    rows.append({"type": rec_type, **row})
        else:
            raise ValueError(f"Unsupported catalog format in {path}")
        catalog = cls.from_dicts(rows)
        logger.info(f"Loaded {len(rows)} catalog items from {path}")
        return catalog
