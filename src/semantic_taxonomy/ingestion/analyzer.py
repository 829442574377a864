"""
Batch Ingestion Resolver

Turns a raw batch of extracted questions into staged ingestion items.

For every declared topic intent the analyzer:

1. looks up the subject (level 2) by exact name; a missing subject kills the
   chain, subjects are never created from ingestion
2. looks up the anchor (level 3) by exact name under the subject, falling
   back to scoped candidates when absent
3. only when the anchor resolved, does the same for the detailed topic
   (level 4)

Nothing is written. Red nodes carry candidates for a reviewer to map, create
or remove (see ``actions.py``).
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, List, Optional, Union

from pydantic import TypeAdapter, ValidationError

from ..config import settings
from ..core.errors import BatchFormatError, InvalidHierarchyError, TopicNotFoundError
from ..db.store import HierarchyStore
from ..embeddings.embedder import EmbeddingError
from ..taxonomy.models import TopicCandidate, TopicNode
from ..taxonomy.resolver import HierarchyResolver, is_same_concept
from ..taxonomy.slugs import child_path, child_slug, slugify
from .models import (
    BatchRecord,
    ChainNode,
    IngestionItem,
    IntentTrace,
    LevelTrace,
    McqQuestion,
    NodeStatus,
    PairQuestion,
    StagedQuestion,
    StatementQuestion,
    TopicChain,
    TopicIntent,
)
from .validation import revalidate

logger = logging.getLogger("taxonomy.ingestion")

_BATCH_ADAPTER = TypeAdapter(List[BatchRecord])

TRACE_COMPETITORS = 5


def parse_batch(payload: Union[str, bytes, List[Dict[str, Any]]]) -> List[BatchRecord]:
    """
    Parse a batch from JSON text or already-decoded records.

    Raises
    ------
    BatchFormatError
        If the payload is not a list of well-formed records.
    """
    try:
        if isinstance(payload, (str, bytes)):
            return _BATCH_ADAPTER.validate_json(payload)
        return _BATCH_ADAPTER.validate_python(payload)
    except ValidationError as exc:
        first = exc.errors()[0]
        location = ".".join(str(part) for part in first["loc"]) or "<root>"
        raise BatchFormatError(
            f"Failed to parse batch: {first['msg']} at {location}"
        ) from exc


def build_question(question_id: str, record: BatchRecord) -> StagedQuestion:
    meta, q = record.meta, record.question
    common: Dict[str, Any] = dict(
        id=question_id,
        text=q.question_text,
        year=meta.year,
        paper=meta.paper or settings.default_paper,
        source=meta.source or settings.default_source,
        correct_option=q.correct_option,
        options=q.options,
    )

    kind = (meta.question_type or "mcq").strip().lower()
    if kind == "statement":
        return StatementQuestion(**common, statements=q.statements)
    if kind == "pair":
        return PairQuestion(**common, pairs=q.pairs)
    return McqQuestion(**common)


def bound_node(node: TopicNode) -> ChainNode:
    """A green chain node bound to an existing topic."""
    return ChainNode(
        name=node.name,
        level=node.level,
        status=NodeStatus.GREEN,
        db_id=node.id,
        slug=node.slug,
    )


class BatchAnalyzer:
    """
    Read-only resolution of ingestion batches against the hierarchy.

    Parameters
    ----------
    store : HierarchyStore
        Exact-name lookups and manual search.
    resolver : HierarchyResolver
        Scoped sibling matching for names with no exact hit.
    """

    def __init__(self, store: HierarchyStore, resolver: HierarchyResolver) -> None:
        self.store = store
        self.resolver = resolver

    async def analyze(
        self,
        payload: Union[str, bytes, List[Dict[str, Any]]],
    ) -> List[IngestionItem]:
        """
        Stage every record of a batch.

        Returns
        -------
        List[IngestionItem]
            One item per record, in input order, with validity computed.
        """
        records = parse_batch(payload)
        batch_key = uuid.uuid4().hex[:8]

        items: List[IngestionItem] = []
        for idx, record in enumerate(records):
            chains = [
                await self.resolve_chain(f"chain-{idx}-{t_idx}", intent)
                for t_idx, intent in enumerate(record.topics)
            ]
            item = IngestionItem(
                id=f"item-{idx}",
                question=build_question(f"q-{batch_key}-{idx}", record),
                topic_chains=chains,
            )
            items.append(revalidate(item))

        logger.info(
            "Analyzed batch %s: %d item(s), %d valid",
            batch_key,
            len(items),
            sum(1 for i in items if i.is_valid),
        )
        return items

    async def resolve_chain(self, chain_id: str, intent: TopicIntent) -> TopicChain:
        raw_string = " > ".join(
            part for part in (intent.subject, intent.anchor, intent.detailed) if part
        )
        l4 = ChainNode(name=intent.detailed, level=4) if intent.detailed else None

        subject = await self.store.find_topic(2, intent.subject)
        if subject is None:
            return TopicChain(
                id=chain_id,
                raw_string=raw_string,
                l1=ChainNode(name=settings.default_paper, level=1),
                l2=ChainNode(name=intent.subject, level=2),
                l3=ChainNode(name=intent.anchor, level=3),
                l4=l4,
            )

        paper = (
            await self.store.get_topic(subject.primary_parent_id)
            if subject.primary_parent_id
            else None
        )
        l1 = bound_node(paper) if paper is not None else ChainNode(
            name=settings.default_paper, level=1
        )
        l2 = bound_node(subject)

        anchor = await self.store.find_topic(3, intent.anchor, parent_id=subject.id)
        if anchor is not None:
            l3 = bound_node(anchor)
        else:
            l3 = await self._unresolved_node(subject.id, 3, intent.anchor)

        # Detailed topics are only looked at once their anchor is settled
        if intent.detailed and l3.status == NodeStatus.GREEN:
            detailed = await self.store.find_topic(4, intent.detailed, parent_id=l3.db_id)
            if detailed is not None:
                l4 = bound_node(detailed)
            else:
                l4 = await self._unresolved_node(l3.db_id, 4, intent.detailed)

        return TopicChain(id=chain_id, raw_string=raw_string, l1=l1, l2=l2, l3=l3, l4=l4)

    async def _unresolved_node(self, parent_id: str, level: int, name: str) -> ChainNode:
        """A red node carrying scoped candidates, or the reason there are none."""
        try:
            candidates = await self.resolver.match_under_parent(parent_id, level, name)
        except EmbeddingError as exc:
            logger.warning("Candidate lookup for %r failed: %s", name, exc)
            return ChainNode(name=name, level=level, error=f"Embedding failed: {exc}")
        return ChainNode(name=name, level=level, candidates=candidates)

    # -----------------------------------------------------------------
    # Manual resolution helpers
    # -----------------------------------------------------------------

    async def search_subject_topics(
        self,
        subject: str,
        query: str,
        limit: int = 8,
    ) -> List[TopicNode]:
        """Level 3/4 topics under ``subject`` whose name contains ``query``."""
        if not query.strip():
            return []
        return await self.store.search_topics(subject, query, levels=(3, 4), limit=limit)

    async def attach_topic(
        self,
        item: IngestionItem,
        topic_id: str,
        chain_id: Optional[str] = None,
    ) -> IngestionItem:
        """
        Bind ``item`` to an existing level 3 or 4 topic.

        The new chain is built from the topic's ancestry and replaces the
        chain ``chain_id`` when given, otherwise it is appended.

        Raises
        ------
        TopicNotFoundError
            If the topic or one of its ancestors does not exist.
        InvalidHierarchyError
            If the topic is not at level 3 or 4.
        """
        node = await self.store.get_topic(topic_id)
        if node is None:
            raise TopicNotFoundError(f"Topic {topic_id} not found")
        if node.level not in (3, 4):
            raise InvalidHierarchyError("Only level 3 or 4 topics can be attached")

        lineage: Dict[int, TopicNode] = {node.level: node}
        current = node
        while current.level > 1:
            if not current.primary_parent_id:
                raise InvalidHierarchyError(f'"{current.name}" has no parent')
            parent = await self.store.get_topic(current.primary_parent_id)
            if parent is None:
                raise TopicNotFoundError(f"Topic {current.primary_parent_id} not found")
            lineage[parent.level] = parent
            current = parent

        chain = TopicChain(
            id=chain_id or f"chain-manual-{uuid.uuid4().hex[:8]}",
            raw_string=" > ".join(lineage[lvl].name for lvl in range(2, node.level + 1)),
            l1=bound_node(lineage[1]),
            l2=bound_node(lineage[2]),
            l3=bound_node(lineage[3]),
            l4=bound_node(lineage[4]) if 4 in lineage else None,
        )

        chains = list(item.topic_chains)
        position = next((i for i, c in enumerate(chains) if c.id == chain_id), None)
        if position is None:
            chains.append(chain)
        else:
            chains[position] = chain

        return revalidate(item.model_copy(update={"topic_chains": chains}))

    # -----------------------------------------------------------------
    # Isolated semantic trace
    # -----------------------------------------------------------------

    async def trace_intent(
        self,
        subject: str,
        anchor: str,
        detailed: Optional[str] = None,
    ) -> IntentTrace:
        """
        Show how an intent would land in the tree without staging anything.

        The subject must match exactly. Anchor and detailed topic are matched
        semantically; each level reports its best match, its competitors and
        whether the match is close enough to reuse. The proposed slug and
        path reuse matched names and fall back to the given ones.
        """
        l2 = await self.store.find_topic(2, subject)
        if l2 is None:
            return IntentTrace(success=False, error=f'Subject "{subject}" not found.')

        trace = [LevelTrace(level=2, name=l2.name, score=1.0, status="root-lock")]

        try:
            l3_matches = await self.resolver.match_under_parent(
                l2.id, 3, anchor, limit=TRACE_COMPETITORS
            )
            l3_step = _level_trace(3, l3_matches)
            l3_reused = l3_step.status == "canonical"
            l4_matches: List[TopicCandidate] = []
            if detailed and l3_reused:
                l4_matches = await self.resolver.match_under_parent(
                    l3_matches[0].id, 4, detailed, limit=TRACE_COMPETITORS
                )
        except EmbeddingError as exc:
            return IntentTrace(success=False, error=f"Embedding failed: {exc}")

        trace.append(l3_step)
        final_l3 = l3_matches[0].name if l3_reused else anchor

        final_l4: Optional[str] = None
        if detailed:
            if l3_reused:
                l4_step = _level_trace(4, l4_matches)
            else:
                # A new anchor has no children to compete with
                l4_step = LevelTrace(level=4, name=detailed, score=0.0, status="provisional")
            trace.append(l4_step)
            final_l4 = l4_step.name if l4_step.status == "canonical" else detailed

        slug = child_slug(l2.slug, final_l3)
        path = child_path(l2.ancestry_path, final_l3)
        if final_l4:
            slug = f"{slug}-{slugify(final_l4)}"
            path = f"{path}.{slugify(final_l4)}"

        return IntentTrace(success=True, trace=trace, proposed_slug=slug, proposed_path=path)


def _level_trace(level: int, matches: List[TopicCandidate]) -> LevelTrace:
    if not matches:
        return LevelTrace(level=level, name="NONE", score=0.0, status="missing")
    best = matches[0]
    return LevelTrace(
        level=level,
        name=best.name,
        score=best.similarity,
        status="canonical" if is_same_concept(best.similarity) else "provisional",
        competitors=matches[1:],
    )
