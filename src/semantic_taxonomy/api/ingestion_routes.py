"""
Ingestion Routes

This module exposes the batch ingestion workflow:
- Analyze a raw batch into staged items
- Apply reviewer actions (create / map / remove) and manual attachments
- Trace a single intent through the tree
- Commit a fully valid batch

Staged items are held by the client between calls; the service keeps no
batch state.
"""

from typing import Annotated, List

from fastapi import APIRouter, Depends, Query

from .dependencies import get_analyzer, get_committer
from .models import (
    ActionRequest,
    AnalyzeRequest,
    AttachRequest,
    CommitRequest,
    TopicSummary,
    TraceRequest,
)
from ..ingestion.actions import apply_action
from ..ingestion.analyzer import BatchAnalyzer
from ..ingestion.committer import BatchCommitter
from ..ingestion.models import CommitResult, IngestionItem, IntentTrace

router = APIRouter(prefix="/ingestion", tags=["ingestion"])


@router.post(
    "/analyze",
    response_model=List[IngestionItem],
    summary="Resolve a raw batch against the topic tree",
)
async def analyze_batch(
    req: AnalyzeRequest,
    analyzer: Annotated[BatchAnalyzer, Depends(get_analyzer)],
) -> List[IngestionItem]:
    return await analyzer.analyze(req.records)


@router.post(
    "/actions",
    response_model=List[IngestionItem],
    summary="Apply a resolution action to a staged batch",
)
async def apply_chain_action(req: ActionRequest) -> List[IngestionItem]:
    return apply_action(req.items, req.action)


@router.get(
    "/search",
    response_model=List[TopicSummary],
    summary="Find level 3/4 topics under a subject by name",
)
async def search_topics(
    analyzer: Annotated[BatchAnalyzer, Depends(get_analyzer)],
    subject: str = Query(..., min_length=1),
    q: str = Query(..., min_length=1),
    limit: int = Query(8, ge=1, le=50),
) -> List[TopicSummary]:
    nodes = await analyzer.search_subject_topics(subject, q, limit=limit)
    return [TopicSummary.from_node(n) for n in nodes]


@router.post(
    "/attach",
    response_model=IngestionItem,
    summary="Attach an existing topic to a staged item",
)
async def attach_topic(
    req: AttachRequest,
    analyzer: Annotated[BatchAnalyzer, Depends(get_analyzer)],
) -> IngestionItem:
    return await analyzer.attach_topic(req.item, req.topic_id, req.chain_id)


@router.post(
    "/trace",
    response_model=IntentTrace,
    summary="Trace one subject/anchor/detailed intent without staging",
)
async def trace_intent(
    req: TraceRequest,
    analyzer: Annotated[BatchAnalyzer, Depends(get_analyzer)],
) -> IntentTrace:
    return await analyzer.trace_intent(req.subject, req.anchor, req.detailed)


@router.post(
    "/commit",
    response_model=CommitResult,
    summary="Commit a fully valid batch in one transaction",
)
async def commit_batch(
    req: CommitRequest,
    committer: Annotated[BatchCommitter, Depends(get_committer)],
) -> CommitResult:
    """
    All-or-nothing: a failed commit leaves no topics or questions behind
    and reports the reason in ``error``.
    """
    return await committer.commit(req.items)
