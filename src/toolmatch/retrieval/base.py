"""Abstract interfaces for the stores consumed by the retriever."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterable, Optional

from .models import (
    Candidate,
    CatalogTool,
    KnowledgeMatch,
    KnowledgeStats,
    SearchFilter,
)


class KnowledgeStore(ABC):
    """Read-only similarity search over tool embeddings and curated knowledge."""

    @abstractmethod
    async def similarity_search(
        self,
        query: str,
        top_k: int,
        search_filter: Optional[SearchFilter] = None,
    ) -> list[Candidate]:
        """Return catalog candidates ordered by similarity descending.

        Implementations MUST return an empty list for an empty catalog
        and MUST NOT mutate the returned candidates afterwards.
        """
        ...

    @abstractmethod
    async def knowledge_search(self, query: str, top_k: int) -> list[KnowledgeMatch]:
        """Return curated knowledge entries most similar to the query."""
        ...

    @abstractmethod
    async def knowledge_stats(self) -> KnowledgeStats:
        ...


class CatalogStore(ABC):
    """Read-only tool metadata and review aggregates keyed by toolId."""

    @abstractmethod
    async def get_tools(self, tool_ids: Iterable[str]) -> dict[str, CatalogTool]:
        """Return the catalog records found for the given ids. Unknown ids are omitted."""
        ...

    async def list_tools(self) -> list[CatalogTool]:
        return []
