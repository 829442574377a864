"""
In-Memory Hierarchy Store

Process-local implementation of ``HierarchyStore`` backed by plain dicts and
numpy similarity. Used for dry runs and by the test-suite.
"""

from __future__ import annotations

import copy
import uuid
from collections import Counter
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence, Set, Tuple

from ..core.errors import TopicNotFoundError
from ..core.vector_math import cosine_similarity
from ..ingestion.models import StagedQuestion
from ..taxonomy.models import TopicDraft, TopicNode, VectorColumn
from ..taxonomy.slugs import slugify
from .store import HierarchyStore


class InMemoryHierarchyStore(HierarchyStore):
    """
    Dict-backed hierarchy store.

    Transactions snapshot the whole state on entry and restore it if the
    block raises. Nested blocks join the outermost one.
    """

    def __init__(self) -> None:
        self.topics: Dict[str, TopicNode] = {}
        self.questions: Dict[int, StagedQuestion] = {}
        self.links: Set[Tuple[int, str]] = set()
        self._next_question_id = 1
        self._depth = 0

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        if self._depth:
            self._depth += 1
            try:
                yield
            finally:
                self._depth -= 1
            return

        snapshot = self._snapshot()
        self._depth = 1
        try:
            yield
        except Exception:
            self._restore(snapshot)
            raise
        finally:
            self._depth = 0

    def _snapshot(self) -> Dict[str, Any]:
        return {
            "topics": dict(self.topics),
            "questions": copy.deepcopy(self.questions),
            "links": set(self.links),
            "next_question_id": self._next_question_id,
        }

    def _restore(self, snapshot: Dict[str, Any]) -> None:
        self.topics = snapshot["topics"]
        self.questions = snapshot["questions"]
        self.links = snapshot["links"]
        self._next_question_id = snapshot["next_question_id"]

    # -----------------------------------------------------------------
    # Lookups
    # -----------------------------------------------------------------

    async def get_topic(self, topic_id: str) -> Optional[TopicNode]:
        return self.topics.get(str(topic_id))

    async def get_topic_by_slug(self, slug: str) -> Optional[TopicNode]:
        return next((n for n in self.topics.values() if n.slug == slug), None)

    async def find_topic(
        self,
        level: int,
        name: str,
        parent_id: Optional[str] = None,
    ) -> Optional[TopicNode]:
        for node in self.topics.values():
            if node.level != level or node.name != name:
                continue
            if parent_id is not None and node.primary_parent_id != str(parent_id):
                continue
            return node
        return None

    async def list_roots(self) -> List[TopicNode]:
        roots = [n for n in self.topics.values() if n.level == 1]
        return sorted(roots, key=lambda n: n.name)

    async def list_children(self, parent_id: str) -> List[TopicNode]:
        children = [
            n for n in self.topics.values() if n.primary_parent_id == str(parent_id)
        ]
        return sorted(children, key=lambda n: n.name)

    async def nearest(
        self,
        query_vector: Sequence[float],
        column: VectorColumn,
        k: int,
        parent_id: Optional[str] = None,
        level: Optional[int] = None,
    ) -> List[Tuple[TopicNode, float]]:
        scored: List[Tuple[TopicNode, float]] = []
        for node in self.topics.values():
            vector = node.vector(column)
            if vector is None:
                continue
            if parent_id is not None and node.primary_parent_id != str(parent_id):
                continue
            if level is not None and node.level != level:
                continue
            scored.append((node, cosine_similarity(query_vector, vector)))

        scored.sort(key=lambda pair: pair[1], reverse=True)
        return scored[:k]

    async def search_topics(
        self,
        subject: str,
        query: str,
        levels: Sequence[int] = (3, 4),
        limit: int = 8,
    ) -> List[TopicNode]:
        subject_key = slugify(subject)
        needle = query.strip().lower()
        hits = [
            n
            for n in self.topics.values()
            if n.level in levels
            and subject_key in n.ancestry_path.lower()
            and needle in n.name.lower()
        ]
        hits.sort(key=lambda n: (n.level, n.name))
        return hits[:limit]

    # -----------------------------------------------------------------
    # Writes
    # -----------------------------------------------------------------

    async def upsert_topic(
        self,
        draft: TopicDraft,
        overwrite: Sequence[str],
    ) -> TopicNode:
        existing = next(
            (n for n in self.topics.values() if n.slug == draft.slug), None
        )
        if existing is not None:
            values = draft.model_dump()
            node = existing.model_copy(update={col: values[col] for col in overwrite})
        else:
            node = TopicNode(id=str(uuid.uuid4()), **draft.model_dump())

        self.topics[node.id] = node
        return node

    async def update_vectors(self, topic_id: str, **vectors: Optional[List[float]]) -> None:
        allowed = {c.value for c in VectorColumn}
        unknown = set(vectors) - allowed
        if unknown:
            raise ValueError(f"Unknown vector columns: {sorted(unknown)}")

        node = self.topics.get(str(topic_id))
        if node is None:
            raise TopicNotFoundError(f"Topic {topic_id} not found")
        self.topics[node.id] = node.model_copy(update=vectors)

    async def insert_question(self, question: StagedQuestion) -> int:
        question_id = self._next_question_id
        self._next_question_id += 1
        self.questions[question_id] = question.model_copy(deep=True)
        return question_id

    async def link_question_topic(self, question_id: int, topic_id: str) -> None:
        if question_id not in self.questions:
            raise ValueError(f"Question {question_id} does not exist")
        if str(topic_id) not in self.topics:
            raise TopicNotFoundError(f"Topic {topic_id} not found")
        self.links.add((question_id, str(topic_id)))

    async def get_stats(self) -> Dict[str, Any]:
        by_level = Counter(n.level for n in self.topics.values())
        by_type = Counter(n.topic_type.value for n in self.topics.values())
        return {
            "topics_by_level": dict(by_level),
            "topics_by_type": dict(by_type),
            "questions": len(self.questions),
            "links": len(self.links),
        }
