"""In-memory knowledge and catalog store backed by TF-IDF similarity.

Stands in for an external vector store: tool documents and curated knowledge
entries are indexed separately, and the catalog records double as the
read-only metadata source for quality scoring.
"""

from __future__ import annotations

import time
from typing import Any, Iterable, Optional

from src.toolmatch.errors import StoreUnavailableError

from .base import CatalogStore, KnowledgeStore
from .keyword import TfidfIndex
from .models import (
    Candidate,
    CatalogTool,
    KnowledgeEntry,
    KnowledgeMatch,
    KnowledgeStats,
    SearchFilter,
)


class InMemoryToolStore(KnowledgeStore, CatalogStore):
    """Read-only store over a fixed tool catalog and knowledge base."""

    def __init__(
        self,
        tools: Iterable[CatalogTool] = (),
        descriptions: Optional[dict[str, str]] = None,
        knowledge: Iterable[KnowledgeEntry] = (),
    ) -> None:
        self._tools: dict[str, CatalogTool] = {t.tool_id: t for t in tools}
        self._descriptions = dict(descriptions or {})
        self._knowledge: dict[str, KnowledgeEntry] = {k.id: k for k in knowledge}
        self._tool_index = TfidfIndex()
        self._knowledge_index = TfidfIndex()
        self._last_updated = time.time()
        # Flip to False to simulate an outage of the backing store
        self.available = True
        self._rebuild()

    @classmethod
    def from_catalog_config(cls, catalog: Any) -> "InMemoryToolStore":
        """Build from a CatalogConfig (tools + knowledge sections of the YAML config)."""
        return cls(
            tools=[entry.to_catalog_tool() for entry in catalog.tools],
            descriptions={entry.id: entry.description for entry in catalog.tools},
            knowledge=[entry.to_entry() for entry in catalog.knowledge],
        )

    def _rebuild(self) -> None:
        self._tool_index.rebuild({
            tool_id: (
                tool.name,
                " ".join([self._descriptions.get(tool_id, ""), *tool.categories]),
            )
            for tool_id, tool in self._tools.items()
        })
        self._knowledge_index.rebuild({
            entry_id: (
                " ".join([entry.title, *entry.keywords]),
                " ".join([entry.content, *entry.categories]),
            )
            for entry_id, entry in self._knowledge.items()
        })
        self._last_updated = time.time()

    def _check_available(self) -> None:
        if not self.available:
            raise StoreUnavailableError("in-memory store is marked unavailable")

    async def similarity_search(
        self,
        query: str,
        top_k: int,
        search_filter: Optional[SearchFilter] = None,
    ) -> list[Candidate]:
        self._check_available()
        if not self._tools:
            return []

        keys: Optional[list[str]] = None
        min_score = 0.0
        if search_filter is not None:
            min_score = search_filter.min_similarity
            if search_filter.categories:
                wanted = set(search_filter.categories)
                keys = [
                    tool_id for tool_id, tool in self._tools.items()
                    if wanted & set(tool.categories)
                ]

        results = []
        for tool_id, score in self._tool_index.search(query, top_k, min_score, keys):
            tool = self._tools[tool_id]
            results.append(Candidate(
                tool_id=tool_id,
                name=tool.name,
                similarity=score,
                raw_metadata=tool.metadata(),
            ))
        return results

    async def knowledge_search(self, query: str, top_k: int) -> list[KnowledgeMatch]:
        self._check_available()
        return [
            KnowledgeMatch(entry=self._knowledge[entry_id], similarity=score)
            for entry_id, score in self._knowledge_index.search(query, top_k)
        ]

    async def knowledge_stats(self) -> KnowledgeStats:
        self._check_available()
        entries = list(self._knowledge.values())
        quality = sum(e.quality for e in entries) / len(entries) if entries else 0.0
        return KnowledgeStats(
            total_entries=len(entries),
            quality_score=quality,
            last_updated=self._last_updated,
        )

    async def get_tools(self, tool_ids: Iterable[str]) -> dict[str, CatalogTool]:
        self._check_available()
        return {tid: self._tools[tid] for tid in tool_ids if tid in self._tools}

    async def list_tools(self) -> list[CatalogTool]:
        return sorted(self._tools.values(), key=lambda t: t.name.lower())
