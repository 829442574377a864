from functools import lru_cache
from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..db.hierarchy_store import PgHierarchyStore
from ..db.session import get_async_session
from ..db.store import HierarchyStore
from ..embeddings.embedder import Embedder
from ..ingestion.analyzer import BatchAnalyzer
from ..ingestion.committer import BatchCommitter
from ..taxonomy.resolver import HierarchyResolver
from ..taxonomy.seeder import TaxonomySeeder


@lru_cache
def get_embedder() -> Embedder:
    return Embedder()


async def get_hierarchy_store(
    session: Annotated[AsyncSession, Depends(get_async_session)],
) -> HierarchyStore:
    return PgHierarchyStore(session)


def get_resolver(
    store: Annotated[HierarchyStore, Depends(get_hierarchy_store)],
    embedder: Annotated[Embedder, Depends(get_embedder)],
) -> HierarchyResolver:
    return HierarchyResolver(store, embedder)


def get_seeder(
    store: Annotated[HierarchyStore, Depends(get_hierarchy_store)],
    embedder: Annotated[Embedder, Depends(get_embedder)],
) -> TaxonomySeeder:
    return TaxonomySeeder(store, embedder)


def get_analyzer(
    store: Annotated[HierarchyStore, Depends(get_hierarchy_store)],
    resolver: Annotated[HierarchyResolver, Depends(get_resolver)],
) -> BatchAnalyzer:
    return BatchAnalyzer(store, resolver)


def get_committer(
    store: Annotated[HierarchyStore, Depends(get_hierarchy_store)],
    embedder: Annotated[Embedder, Depends(get_embedder)],
) -> BatchCommitter:
    return BatchCommitter(store, embedder)
