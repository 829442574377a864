"""
Hierarchical Resolver

Matches free text against the topic tree.

Two search modes are provided:

- ``resolve_path``: trickle-down search. Picks the best root by raw vector,
  then the best child of each winner by sharp vector, down to level 4.
- ``match_under_parent``: scoped sibling match. Returns the top candidates
  among one parent's children at one level, without accepting or rejecting
  any of them.

Neither mode applies a similarity cutoff; callers judge acceptance through
``is_same_concept``.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Tuple

from pydantic import BaseModel, Field

from ..config import settings
from ..db.store import HierarchyStore
from ..embeddings.embedder import Embedder, EmbeddingError, TaskType
from .models import MAX_LEVEL, TopicCandidate, TopicNode, VectorColumn

logger = logging.getLogger("taxonomy.resolver")

CONTENDER_COUNT = 3
RAW_LENS_WEIGHT = 0.7
PURE_LENS_WEIGHT = 0.3


def is_same_concept(score: float, threshold: Optional[float] = None) -> bool:
    """
    True when ``score`` is high enough to auto-link without review.

    The unrounded score is compared; round only for display.
    """
    limit = settings.auto_link_threshold if threshold is None else threshold
    return score >= limit


# ---------------------------------------------------------------------
# Result Models
# ---------------------------------------------------------------------

class TraceStep(BaseModel):
    level: int
    name: str
    score: float


class PathResolution(BaseModel):
    success: bool
    trace: List[TraceStep] = Field(default_factory=list)
    final_node: Optional[TopicCandidate] = None
    contenders: List[TopicCandidate] = Field(default_factory=list)
    note: Optional[str] = None
    error: Optional[str] = None


class LensMatch(BaseModel):
    id: str
    name: str
    ancestry_path: str
    level: int
    raw_score: float
    pure_score: Optional[float] = None
    hybrid_score: float


class LensComparison(BaseModel):
    raw: List[TopicCandidate] = Field(default_factory=list)
    pure: List[TopicCandidate] = Field(default_factory=list)
    hybrid: List[LensMatch] = Field(default_factory=list)


# ---------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------

class HierarchyResolver:
    """
    Read-only search over a ``HierarchyStore``.

    Parameters
    ----------
    store : HierarchyStore
        Source of topic nodes and similarity queries.
    embedder : Embedder
        Used to embed the incoming text; one call per search.
    """

    def __init__(self, store: HierarchyStore, embedder: Embedder) -> None:
        self.store = store
        self.embedder = embedder

    async def resolve_path(self, query_text: str) -> PathResolution:
        """
        Descend the tree from the best root to the deepest reachable level.

        Search stops early, with ``note`` set to the level it stopped at,
        when the current winner has no sharp-vectored children. At level 4
        the top three matches are kept as contenders.

        Returns
        -------
        PathResolution
            ``success=False`` with a reason when there are no roots or the
            query cannot be embedded.
        """
        try:
            query_vector = await self.embedder.embed(query_text, task_type=TaskType.QUERY)
        except EmbeddingError as exc:
            logger.warning("Could not embed query %r: %s", query_text[:60], exc)
            return PathResolution(success=False, error=f"Embedding failed: {exc}")

        roots = await self.store.nearest(query_vector, VectorColumn.RAW, k=1, level=1)
        if not roots:
            return PathResolution(success=False, error="No roots found")

        winner, score = roots[0]
        trace = [TraceStep(level=1, name=winner.name, score=score)]
        contenders: List[TopicCandidate] = []
        note: Optional[str] = None

        for level in range(2, MAX_LEVEL + 1):
            k = CONTENDER_COUNT if level == MAX_LEVEL else 1
            matches = await self.store.nearest(
                query_vector,
                VectorColumn.SHARP,
                k=k,
                parent_id=winner.id,
                level=level,
            )
            if not matches:
                note = f"stopped at L{level - 1}"
                break

            winner, score = matches[0]
            trace.append(TraceStep(level=level, name=winner.name, score=score))
            if level == MAX_LEVEL:
                contenders = [TopicCandidate.from_node(n, s) for n, s in matches]

        logger.debug(
            "Resolved %r to %s (%s)",
            query_text[:60],
            winner.slug,
            note or "full depth",
        )

        return PathResolution(
            success=True,
            trace=trace,
            final_node=TopicCandidate.from_node(winner, score),
            contenders=contenders,
            note=note,
        )

    async def match_under_parent(
        self,
        parent_id: str,
        level: int,
        query_text: str,
        limit: Optional[int] = None,
    ) -> List[TopicCandidate]:
        """
        Rank the children of ``parent_id`` at exactly ``level`` against
        ``query_text`` by sharp vector.

        Never decides: every scored child up to ``limit`` is returned, best
        first, possibly none. Embedding errors propagate.
        """
        query_vector = await self.embedder.embed(query_text, task_type=TaskType.DOCUMENT)
        matches = await self.store.nearest(
            query_vector,
            VectorColumn.SHARP,
            k=limit or settings.scoped_match_limit,
            parent_id=parent_id,
            level=level,
        )
        return [TopicCandidate.from_node(node, score) for node, score in matches]

    async def compare_lenses(self, query_text: str, k: int = 5) -> LensComparison:
        """
        Rank the whole tree three ways: by raw vector, by pure vector, and by
        a hybrid ``0.7 * raw + 0.3 * pure`` score (raw stands in for nodes
        without a pure vector).
        """
        query_vector = await self.embedder.embed(query_text, task_type=TaskType.QUERY)

        # Hybrid re-ranks a wider pool than it returns
        pool_size = max(k * 10, 50)
        raw_pool = await self.store.nearest(query_vector, VectorColumn.RAW, k=pool_size)
        pure_pool = await self.store.nearest(query_vector, VectorColumn.PURE, k=pool_size)
        pure_scores = {node.id: score for node, score in pure_pool}

        hybrid: List[Tuple[float, LensMatch]] = []
        for node, raw_score in raw_pool:
            pure_score = pure_scores.get(node.id)
            combined = (
                raw_score * RAW_LENS_WEIGHT
                + (pure_score if pure_score is not None else raw_score) * PURE_LENS_WEIGHT
            )
            hybrid.append(
                (
                    combined,
                    LensMatch(
                        id=node.id,
                        name=node.name,
                        ancestry_path=node.ancestry_path,
                        level=node.level,
                        raw_score=raw_score,
                        pure_score=pure_score,
                        hybrid_score=combined,
                    ),
                )
            )
        hybrid.sort(key=lambda pair: pair[0], reverse=True)

        return LensComparison(
            raw=[TopicCandidate.from_node(n, s) for n, s in raw_pool[:k]],
            pure=[TopicCandidate.from_node(n, s) for n, s in pure_pool[:k]],
            hybrid=[match for _, match in hybrid[:k]],
        )
