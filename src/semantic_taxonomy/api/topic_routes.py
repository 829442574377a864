"""
Topic Tree Routes

This module exposes endpoints for:
- Browsing the tree (roots, children, counts)
- Growing it (root creation, bulk seeding, mode calibration)
- Querying it (trickle-down resolution, scoped sibling match, lens comparison)

Domain failures surface through the registered ``TaxonomyError`` handler;
embedding failures through the embedding error handler.
"""

from typing import Annotated, Any, Dict, List

from fastapi import APIRouter, Depends

from .dependencies import get_hierarchy_store, get_resolver, get_seeder
from .models import (
    CalibrateRequest,
    LensRequest,
    MatchRequest,
    ResolveRequest,
    RootRequest,
    SeedRequest,
    TopicSummary,
)
from ..core.errors import TopicNotFoundError
from ..db.store import HierarchyStore
from ..taxonomy.calibration import CalibrationResult, calibrate_children
from ..taxonomy.models import TopicCandidate
from ..taxonomy.resolver import HierarchyResolver, LensComparison, PathResolution
from ..taxonomy.seeder import SeedResult, TaxonomySeeder

router = APIRouter(prefix="/topics", tags=["topics"])


# ---------------------------------------------------------------------
# Browsing
# ---------------------------------------------------------------------

@router.get(
    "/roots",
    response_model=List[TopicSummary],
    summary="List level-1 topics",
)
async def list_roots(
    store: Annotated[HierarchyStore, Depends(get_hierarchy_store)],
) -> List[TopicSummary]:
    return [TopicSummary.from_node(n) for n in await store.list_roots()]


@router.get(
    "/stats",
    summary="Topic and question counts",
)
async def get_stats(
    store: Annotated[HierarchyStore, Depends(get_hierarchy_store)],
) -> Dict[str, Any]:
    return await store.get_stats()


@router.get(
    "/{topic_id}/children",
    response_model=List[TopicSummary],
    summary="List the direct children of a topic",
)
async def list_children(
    topic_id: str,
    store: Annotated[HierarchyStore, Depends(get_hierarchy_store)],
) -> List[TopicSummary]:
    if await store.get_topic(topic_id) is None:
        raise TopicNotFoundError(f"Topic {topic_id} not found")
    return [TopicSummary.from_node(n) for n in await store.list_children(topic_id)]


# ---------------------------------------------------------------------
# Growing
# ---------------------------------------------------------------------

@router.post(
    "/roots",
    response_model=TopicSummary,
    summary="Create or refresh a level-1 topic",
)
async def create_root(
    req: RootRequest,
    seeder: Annotated[TaxonomySeeder, Depends(get_seeder)],
) -> TopicSummary:
    node = await seeder.seed_root(req.name, req.boost)
    return TopicSummary.from_node(node)


@router.post(
    "/seed",
    response_model=SeedResult,
    summary="Seed a block of +/-/-- lines under a topic",
)
async def seed_topics(
    req: SeedRequest,
    seeder: Annotated[TaxonomySeeder, Depends(get_seeder)],
) -> SeedResult:
    """
    Lines are committed one at a time; per-line failures are reported in
    ``errors`` and do not fail the request.
    """
    return await seeder.seed(req.parent_id, req.text)


@router.post(
    "/{topic_id}/calibrate",
    response_model=CalibrationResult,
    summary="Derive pure vectors for a topic's children from their shared mode",
)
async def calibrate(
    topic_id: str,
    req: CalibrateRequest,
    store: Annotated[HierarchyStore, Depends(get_hierarchy_store)],
) -> CalibrationResult:
    return await calibrate_children(store, topic_id, overwrite=req.overwrite)


# ---------------------------------------------------------------------
# Querying
# ---------------------------------------------------------------------

@router.post(
    "/resolve",
    response_model=PathResolution,
    summary="Trickle-down search from the best root",
)
async def resolve_path(
    req: ResolveRequest,
    resolver: Annotated[HierarchyResolver, Depends(get_resolver)],
) -> PathResolution:
    return await resolver.resolve_path(req.query)


@router.post(
    "/match",
    response_model=List[TopicCandidate],
    summary="Top candidates among one parent's children",
)
async def match_under_parent(
    req: MatchRequest,
    resolver: Annotated[HierarchyResolver, Depends(get_resolver)],
) -> List[TopicCandidate]:
    return await resolver.match_under_parent(req.parent_id, req.level, req.query, req.limit)


@router.post(
    "/lenses",
    response_model=LensComparison,
    summary="Compare raw, pure and hybrid rankings",
)
async def compare_lenses(
    req: LensRequest,
    resolver: Annotated[HierarchyResolver, Depends(get_resolver)],
) -> LensComparison:
    return await resolver.compare_lenses(req.query, k=req.k)
