"""
Hierarchy Store Interface

Abstract persistence contract shared by the PostgreSQL store and the
in-memory store. Engine components (resolver, seeder, ingestion) only ever
talk to this interface.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, AsyncContextManager, Dict, List, Optional, Sequence, Tuple

from ..ingestion.models import StagedQuestion
from ..taxonomy.models import TopicDraft, TopicNode, VectorColumn


class HierarchyStore(ABC):
    """
    Persisted topic tree with per-node vector variants.

    Writes issued inside ``transaction()`` are committed together when the
    block exits normally and rolled back when it raises.
    """

    @abstractmethod
    def transaction(self) -> AsyncContextManager[None]:
        """Open a unit of work; commit on success, roll back and re-raise on failure."""

    # -----------------------------------------------------------------
    # Lookups
    # -----------------------------------------------------------------

    @abstractmethod
    async def get_topic(self, topic_id: str) -> Optional[TopicNode]:
        ...

    @abstractmethod
    async def get_topic_by_slug(self, slug: str) -> Optional[TopicNode]:
        ...

    @abstractmethod
    async def find_topic(
        self,
        level: int,
        name: str,
        parent_id: Optional[str] = None,
    ) -> Optional[TopicNode]:
        """Exact-name lookup at ``level``, optionally restricted to one parent."""

    @abstractmethod
    async def list_roots(self) -> List[TopicNode]:
        ...

    @abstractmethod
    async def list_children(self, parent_id: str) -> List[TopicNode]:
        """Direct children of ``parent_id`` ordered by name."""

    @abstractmethod
    async def nearest(
        self,
        query_vector: Sequence[float],
        column: VectorColumn,
        k: int,
        parent_id: Optional[str] = None,
        level: Optional[int] = None,
    ) -> List[Tuple[TopicNode, float]]:
        """
        Top-``k`` nodes by descending cosine similarity on ``column``.

        Nodes without a value in ``column`` are never returned.
        """

    @abstractmethod
    async def search_topics(
        self,
        subject: str,
        query: str,
        levels: Sequence[int] = (3, 4),
        limit: int = 8,
    ) -> List[TopicNode]:
        """Case-insensitive substring match on ancestry path and name."""

    # -----------------------------------------------------------------
    # Writes
    # -----------------------------------------------------------------

    @abstractmethod
    async def upsert_topic(
        self,
        draft: TopicDraft,
        overwrite: Sequence[str],
    ) -> TopicNode:
        """
        Insert ``draft``; on slug conflict update only ``overwrite`` columns.

        The existing node keeps its id.
        """

    @abstractmethod
    async def update_vectors(self, topic_id: str, **vectors: Optional[List[float]]) -> None:
        ...

    @abstractmethod
    async def insert_question(self, question: StagedQuestion) -> int:
        """Insert a question with its statement / pair rows, returning the new id."""

    @abstractmethod
    async def link_question_topic(self, question_id: int, topic_id: str) -> None:
        """Link a question to a topic; linking twice is a no-op."""

    @abstractmethod
    async def get_stats(self) -> Dict[str, Any]:
        ...
