"""
API Models for the Taxonomy Service

This module defines the Pydantic models used for request/response validation
across the topic tree and ingestion endpoints.

Engine result types (``SeedResult``, ``PathResolution``, ``IngestionItem``,
``CommitResult`` ...) are returned as-is; only request envelopes and the
vector-free topic view live here.

Design Goals
------------
- Strong typing
- Safe defaults (no shared mutable state)
- Vectors never leave the service
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..ingestion.actions import ChainAction
from ..ingestion.models import IngestionItem
from ..taxonomy.models import TopicNode, TopicType


# ---------------------------------------------------------------------
# Topic Views
# ---------------------------------------------------------------------

class TopicSummary(BaseModel):
    """
    Client-facing view of a topic node.
    """
    id: str
    name: str
    slug: str
    level: int
    primary_parent_id: Optional[str] = None
    ancestry_path: str = ""
    topic_type: TopicType
    keywords: List[str] = Field(default_factory=list)
    has_sharp_vector: bool = False
    has_pure_vector: bool = False

    @classmethod
    def from_node(cls, node: TopicNode) -> "TopicSummary":
        return cls(
            id=node.id,
            name=node.name,
            slug=node.slug,
            level=node.level,
            primary_parent_id=node.primary_parent_id,
            ancestry_path=node.ancestry_path,
            topic_type=node.topic_type,
            keywords=list(node.keywords),
            has_sharp_vector=node.sharp_vector is not None,
            has_pure_vector=node.pure_vector is not None,
        )


# ---------------------------------------------------------------------
# Topic Tree Requests
# ---------------------------------------------------------------------

class SeedRequest(BaseModel):
    parent_id: str = Field(..., min_length=1)
    text: str = Field(..., min_length=1)

    model_config = ConfigDict(extra="forbid")


class RootRequest(BaseModel):
    name: str = Field(..., min_length=1)
    boost: Optional[str] = None

    model_config = ConfigDict(extra="forbid")


class ResolveRequest(BaseModel):
    query: str = Field(..., min_length=1)

    model_config = ConfigDict(extra="forbid")


class MatchRequest(BaseModel):
    parent_id: str = Field(..., min_length=1)
    level: int = Field(..., ge=2, le=4)
    query: str = Field(..., min_length=1)
    limit: Optional[int] = Field(default=None, ge=1, le=20)

    model_config = ConfigDict(extra="forbid")


class LensRequest(BaseModel):
    query: str = Field(..., min_length=1)
    k: int = Field(default=5, ge=1, le=50)

    model_config = ConfigDict(extra="forbid")


class CalibrateRequest(BaseModel):
    overwrite: bool = False

    model_config = ConfigDict(extra="forbid")


# ---------------------------------------------------------------------
# Ingestion Requests
# ---------------------------------------------------------------------

class AnalyzeRequest(BaseModel):
    """
    Raw extracted records; parsed and validated by the analyzer so that
    malformed batches surface as ``invalid_batch`` errors.
    """
    records: List[Dict[str, Any]]

    model_config = ConfigDict(extra="forbid")


class ActionRequest(BaseModel):
    items: List[IngestionItem] = Field(..., min_length=1)
    action: ChainAction


class AttachRequest(BaseModel):
    item: IngestionItem
    topic_id: str = Field(..., min_length=1)
    chain_id: Optional[str] = None


class TraceRequest(BaseModel):
    subject: str = Field(..., min_length=1)
    anchor: str = Field(..., min_length=1)
    detailed: Optional[str] = None

    model_config = ConfigDict(extra="forbid")


class CommitRequest(BaseModel):
    items: List[IngestionItem]
