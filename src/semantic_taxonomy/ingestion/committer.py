"""
Batch Commit Pipeline

Persists a reviewed ingestion batch in a single transaction:

Phase 1: create pending level-3 topics
Phase 2: create pending level-4 topics (their parents now exist)
Phase 3: insert questions with their statement / pair rows and link each
         question to its final topics

Any failure rolls the whole batch back. Topics created here are marked
provisional until reviewed.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Set, Tuple

from ..core.errors import TopicNotFoundError
from ..core.vector_math import normalize, sharpen
from ..db.store import HierarchyStore
from ..embeddings.embedder import Embedder, TaskType
from ..taxonomy.models import COMMIT_OVERWRITE, TopicDraft, TopicNode, TopicType
from ..taxonomy.slugs import child_path, child_slug
from .models import ChainNode, CommitResult, IngestionItem, NodeStatus, TopicChain
from .validation import validate_item

logger = logging.getLogger("taxonomy.commit")

CacheKey = Tuple[int, str, str]


class BatchCommitter:
    """
    All-or-nothing writer for staged batches.

    Parameters
    ----------
    store : HierarchyStore
        Destination store; its ``transaction()`` scopes the whole batch.
    embedder : Embedder
        Embeds names of topics created during the commit.
    """

    def __init__(self, store: HierarchyStore, embedder: Embedder) -> None:
        self.store = store
        self.embedder = embedder

    async def commit(self, items: List[IngestionItem]) -> CommitResult:
        """
        Commit ``items`` or nothing.

        Items are re-validated here rather than trusting their ``is_valid``
        flag. The input list is never modified.

        Returns
        -------
        CommitResult
            ``success=False`` with a reason when any item is invalid or any
            phase fails.
        """
        if not items:
            return CommitResult(success=False, error="Nothing to commit")

        invalid = [item.id for item in items if validate_item(item)]
        if invalid:
            return CommitResult(
                success=False,
                error=f"{len(invalid)} item(s) are not valid: {', '.join(invalid)}",
            )

        staged = [item.model_copy(deep=True) for item in items]
        created: Dict[CacheKey, TopicNode] = {}
        inserted: Set[str] = set()
        question_ids: List[int] = []

        try:
            async with self.store.transaction():
                chains = [chain for item in staged for chain in item.topic_chains]

                for chain in chains:
                    if chain.l3.status == NodeStatus.PENDING_CREATE:
                        parent_id = chain.l2.db_id or chain.l3.temp_parent_id
                        chain.l3 = await self._materialize(
                            created, inserted, chain.l3, parent_id
                        )

                for chain in chains:
                    if chain.l4 is not None and chain.l4.status == NodeStatus.PENDING_CREATE:
                        parent_id = chain.l3.db_id or chain.l4.temp_parent_id
                        chain.l4 = await self._materialize(
                            created, inserted, chain.l4, parent_id
                        )

                for item in staged:
                    question_id = await self.store.insert_question(item.question)
                    for topic_id in _final_topic_ids(item.topic_chains):
                        await self.store.link_question_topic(question_id, topic_id)
                    question_ids.append(question_id)
        except Exception as exc:
            logger.exception("Batch commit failed, rolled back %d item(s)", len(items))
            return CommitResult(success=False, error=str(exc))

        logger.info(
            "Committed %d question(s), created %d topic(s)",
            len(question_ids),
            len(inserted),
        )
        return CommitResult(
            success=True,
            count=len(question_ids),
            created_topics=len(inserted),
            question_ids=question_ids,
        )

    async def _materialize(
        self,
        created: Dict[CacheKey, TopicNode],
        inserted: Set[str],
        node: ChainNode,
        parent_id: Optional[str],
    ) -> ChainNode:
        if not parent_id:
            raise TopicNotFoundError(f'Level {node.level - 1} parent missing for "{node.name}"')

        key = (node.level, node.name, parent_id)
        topic = created.get(key)
        if topic is None:
            topic, is_new = await self._create_topic(node.name, node.level, parent_id)
            created[key] = topic
            if is_new:
                inserted.add(topic.id)

        return node.model_copy(
            update={
                "status": NodeStatus.GREEN,
                "db_id": topic.id,
                "slug": topic.slug,
                "temp_parent_id": None,
            }
        )

    async def _create_topic(
        self, name: str, level: int, parent_id: str
    ) -> Tuple[TopicNode, bool]:
        """Upsert a provisional topic; the flag is False when its slug already existed."""
        parent = await self.store.get_topic(parent_id)
        if parent is None:
            raise TopicNotFoundError(f'Level {level - 1} parent missing for "{name}"')

        slug = child_slug(parent.slug, name)
        existing = await self.store.get_topic_by_slug(slug)

        raw = await self.embedder.embed(name, task_type=TaskType.DOCUMENT)
        sharp = sharpen(raw, parent.raw_vector) if parent.raw_vector else normalize(raw)

        draft = TopicDraft(
            name=name,
            slug=slug,
            level=level,
            primary_parent_id=parent.id,
            ancestry_path=child_path(parent.ancestry_path, name),
            topic_type=TopicType.PROVISIONAL,
            raw_vector=raw,
            sharp_vector=sharp,
        )
        topic = await self.store.upsert_topic(draft, overwrite=COMMIT_OVERWRITE)
        return topic, existing is None


def _final_topic_ids(chains: List[TopicChain]) -> List[str]:
    # Sub-topic when present, else topic; each id once, in chain order
    seen: List[str] = []
    for chain in chains:
        topic_id = chain.final_node().db_id
        if topic_id and topic_id not in seen:
            seen.append(topic_id)
    return seen
