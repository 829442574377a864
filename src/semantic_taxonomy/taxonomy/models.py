"""
Taxonomy Data Models

Canonical in-memory representation of topic nodes as exchanged between the
hierarchy store, the resolver, the seeder and the ingestion pipeline.

A topic tree has exactly four levels:
    1 = paper, 2 = subject, 3 = topic, 4 = sub-topic
"""

from __future__ import annotations

import enum
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

MAX_LEVEL = 4


class TopicType(str, enum.Enum):
    CANONICAL = "canonical"
    PROVISIONAL = "provisional"


class VectorColumn(str, enum.Enum):
    """Named vector variants stored per node."""

    RAW = "raw_vector"
    SHARP = "sharp_vector"
    PURE = "pure_vector"


def _coerce_vector(value):
    # pgvector hands back numpy arrays
    if value is None:
        return None
    if hasattr(value, "tolist"):
        value = value.tolist()
    return [float(x) for x in value]


class TopicNode(BaseModel):
    """
    A persisted vertex of the topic tree.

    ``ancestry_path`` mirrors the slug chain (dot-delimited, lowercase);
    ``sharp_vector`` is only meaningful relative to the parent's raw vector.
    """

    id: str
    name: str = Field(..., min_length=1)
    slug: str = Field(..., min_length=1)
    level: int = Field(..., ge=1, le=MAX_LEVEL)
    primary_parent_id: Optional[str] = None
    ancestry_path: str = ""
    topic_type: TopicType = TopicType.CANONICAL
    keywords: List[str] = Field(default_factory=list)

    raw_vector: Optional[List[float]] = None
    sharp_vector: Optional[List[float]] = None
    pure_vector: Optional[List[float]] = None

    model_config = ConfigDict(frozen=True)

    @field_validator("raw_vector", "sharp_vector", "pure_vector", mode="before")
    @classmethod
    def _vectors_as_lists(cls, v):
        return _coerce_vector(v)

    def vector(self, column: VectorColumn) -> Optional[List[float]]:
        return getattr(self, column.value)


class TopicDraft(BaseModel):
    """
    Values for a node about to be inserted (or upserted by slug).
    """

    name: str = Field(..., min_length=1)
    slug: str = Field(..., min_length=1)
    level: int = Field(..., ge=1, le=MAX_LEVEL)
    primary_parent_id: Optional[str] = None
    ancestry_path: str = ""
    topic_type: TopicType = TopicType.CANONICAL
    keywords: List[str] = Field(default_factory=list)

    raw_vector: Optional[List[float]] = None
    sharp_vector: Optional[List[float]] = None
    pure_vector: Optional[List[float]] = None

    @field_validator("raw_vector", "sharp_vector", "pure_vector", mode="before")
    @classmethod
    def _vectors_as_lists(cls, v):
        return _coerce_vector(v)


# Columns refreshed when an existing slug is re-seeded
SEED_OVERWRITE: Tuple[str, ...] = (
    "name",
    "keywords",
    "ancestry_path",
    "raw_vector",
    "sharp_vector",
    "pure_vector",
)

# Columns refreshed when the commit pipeline hits an existing slug
COMMIT_OVERWRITE: Tuple[str, ...] = ("name",)


class TopicCandidate(BaseModel):
    """A scored node returned by a similarity query."""

    id: str
    name: str
    slug: str
    level: int
    primary_parent_id: Optional[str] = None
    ancestry_path: str = ""
    similarity: float

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_node(cls, node: TopicNode, similarity: float) -> "TopicCandidate":
        return cls(
            id=node.id,
            name=node.name,
            slug=node.slug,
            level=node.level,
            primary_parent_id=node.primary_parent_id,
            ancestry_path=node.ancestry_path,
            similarity=float(similarity),
        )
