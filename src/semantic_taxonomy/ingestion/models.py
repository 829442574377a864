"""
Ingestion Data Models

This module defines the shapes used by the batch ingestion pipeline:

- Batch input records (as produced by upstream question extraction)
- Staged questions, a tagged union over the ``mcq`` / ``statement`` / ``pair``
  variants keyed by ``type``
- Topic chains binding one question to one candidate hierarchy path
- Ingestion items (question + chains + validity verdict)

Design Goals
------------
- Input aliases accept the upstream snake_case JSON as-is
- Staged objects tolerate unknown keys so they can round-trip through clients
- Validity is never enforced by raising; see ``validation.py``
"""

from __future__ import annotations

import enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
)

from ..taxonomy.models import TopicCandidate


# ---------------------------------------------------------------------
# Question Variants
# ---------------------------------------------------------------------

class QuestionOption(BaseModel):
    label: str
    text: str = ""


class StatementLine(BaseModel):
    idx: int = Field(..., validation_alias=AliasChoices("idx", "index", "statement_number"))
    text: str
    is_true: bool = Field(
        default=False,
        validation_alias=AliasChoices("is_true", "isTrue", "is_statement_true"),
    )

    model_config = ConfigDict(populate_by_name=True)


class PairLine(BaseModel):
    left: str = Field(..., validation_alias=AliasChoices("left", "col1"))
    right: str = Field(..., validation_alias=AliasChoices("right", "col2"))
    is_correct_match: bool = Field(
        default=False,
        validation_alias=AliasChoices("is_correct_match", "isCorrectMatch", "correct_match"),
    )

    model_config = ConfigDict(populate_by_name=True)


class QuestionBase(BaseModel):
    id: str
    text: str = ""
    year: Optional[int] = None
    paper: Optional[str] = None
    source: Optional[str] = None
    correct_option: Optional[str] = None
    options: List[QuestionOption] = Field(default_factory=list)

    model_config = ConfigDict(extra="ignore")


class McqQuestion(QuestionBase):
    type: Literal["mcq"] = "mcq"


class StatementQuestion(QuestionBase):
    type: Literal["statement"] = "statement"
    statements: List[StatementLine] = Field(default_factory=list)


class PairQuestion(QuestionBase):
    type: Literal["pair"] = "pair"
    pairs: List[PairLine] = Field(default_factory=list)


StagedQuestion = Annotated[
    Union[McqQuestion, StatementQuestion, PairQuestion],
    Field(discriminator="type"),
]


# ---------------------------------------------------------------------
# Topic Chains
# ---------------------------------------------------------------------

class NodeStatus(str, enum.Enum):
    GREEN = "green"
    RED = "red"
    PENDING_CREATE = "pending-create"


class ChainNode(BaseModel):
    """
    One level of a staged chain.

    green: ``db_id`` is bound. red: unresolved, ``candidates`` may hold
    suggestions and ``error`` why none could be looked up. pending-create:
    accepted for creation under ``temp_parent_id``.
    """

    name: str
    level: Literal[1, 2, 3, 4]
    status: NodeStatus = NodeStatus.RED
    db_id: Optional[str] = None
    slug: Optional[str] = None
    temp_parent_id: Optional[str] = None
    candidates: List[TopicCandidate] = Field(default_factory=list)
    error: Optional[str] = None

    model_config = ConfigDict(extra="ignore")

    @property
    def is_settled(self) -> bool:
        return self.status in (NodeStatus.GREEN, NodeStatus.PENDING_CREATE)


class TopicChain(BaseModel):
    id: str
    raw_string: str = ""
    l1: ChainNode
    l2: ChainNode
    l3: ChainNode
    l4: Optional[ChainNode] = None

    model_config = ConfigDict(extra="ignore")

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_fully_resolved(self) -> bool:
        return all(node.is_settled for node in self.present_nodes())

    def present_nodes(self) -> List[ChainNode]:
        nodes = [self.l1, self.l2, self.l3]
        if self.l4 is not None:
            nodes.append(self.l4)
        return nodes

    def final_node(self) -> ChainNode:
        """The node a question is linked to: L4 when present, else L3."""
        return self.l4 if self.l4 is not None else self.l3


class IngestionItem(BaseModel):
    id: str
    question: StagedQuestion
    topic_chains: List[TopicChain] = Field(default_factory=list)
    is_valid: bool = False
    validation_errors: List[str] = Field(default_factory=list)

    model_config = ConfigDict(extra="ignore")


# ---------------------------------------------------------------------
# Batch Input Records
# ---------------------------------------------------------------------

class TopicIntent(BaseModel):
    subject: str = Field(..., min_length=1)
    anchor: str = Field(..., min_length=1)
    detailed: Optional[str] = None


class RecordMeta(BaseModel):
    year: Optional[int] = None
    paper: Optional[str] = None
    source: Optional[str] = None
    question_type: str = "mcq"

    model_config = ConfigDict(extra="ignore")


class RecordQuestion(BaseModel):
    question_text: str = ""
    options: List[QuestionOption] = Field(default_factory=list)
    correct_option: Optional[str] = None
    statements: List[StatementLine] = Field(default_factory=list)
    pairs: List[PairLine] = Field(default_factory=list)

    model_config = ConfigDict(extra="ignore")


class BatchRecord(BaseModel):
    meta: RecordMeta = Field(default_factory=RecordMeta)
    question: RecordQuestion
    topics: List[TopicIntent] = Field(default_factory=list)

    model_config = ConfigDict(extra="ignore")


# ---------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------

class CommitResult(BaseModel):
    success: bool
    count: int = 0
    created_topics: int = 0
    question_ids: List[int] = Field(default_factory=list)
    error: Optional[str] = None


class LevelTrace(BaseModel):
    level: int
    name: str
    score: float
    status: Literal["root-lock", "canonical", "provisional", "missing"]
    competitors: List[TopicCandidate] = Field(default_factory=list)


class IntentTrace(BaseModel):
    success: bool
    trace: List[LevelTrace] = Field(default_factory=list)
    proposed_slug: Optional[str] = None
    proposed_path: Optional[str] = None
    error: Optional[str] = None
