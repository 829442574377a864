"""
SQLAlchemy Models

Defines the database schema for:
- Topic nodes (four-level tree with pgvector raw / sharp / pure vectors)
- Prelim questions and their statement / pair child rows
- The question-to-topic mapping table
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional, List

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    String,
    Integer,
    Text,
    DateTime,
    ForeignKey,
    Index,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import ARRAY, UUID, JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from pgvector.sqlalchemy import Vector

from ..config import settings


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


# ---------------------------------------------------------------------
# Topic Model
# ---------------------------------------------------------------------

class Topic(Base):
    """
    A node of the paper -> subject -> topic -> sub-topic tree.

    Vectors share the embedding provider's output dimensionality.
    """
    __tablename__ = "topics"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    slug: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    level: Mapped[int] = mapped_column(Integer, nullable=False)
    topic_type: Mapped[str] = mapped_column(String(16), nullable=False, default="canonical")
    primary_parent_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("topics.id"),
        nullable=True,
    )
    ancestry_path: Mapped[str] = mapped_column(Text, nullable=False, default="")
    is_navigable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    keywords: Mapped[List[str]] = mapped_column(ARRAY(Text), nullable=False, default=list)

    raw_vector = Column(Vector(settings.embedding_dimension), nullable=True)
    sharp_vector = Column(Vector(settings.embedding_dimension), nullable=True)
    pure_vector = Column(Vector(settings.embedding_dimension), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    __table_args__ = (
        Index("idx_topic_parent_level", "primary_parent_id", "level"),
        Index("idx_topic_level_name", "level", "name"),
    )


# ---------------------------------------------------------------------
# Prelim Question Models
# ---------------------------------------------------------------------

class PrelimQuestion(Base):
    """
    One committed exam item. Options are stored as an ordered JSON list of
    ``{"label", "text"}`` objects.
    """
    __tablename__ = "prelim_questions"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    paper: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    year: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    source: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    question_type: Mapped[str] = mapped_column(String(20), nullable=False)  # mcq | statement | pair
    question_text: Mapped[str] = mapped_column(Text, nullable=False)
    options: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    correct_option: Mapped[Optional[str]] = mapped_column(String(4), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        server_default=func.now(),
    )

    statements: Mapped[List["PrelimQuestionStatement"]] = relationship(
        "PrelimQuestionStatement",
        cascade="all, delete-orphan",
        order_by="PrelimQuestionStatement.statement_number",
    )
    pairs: Mapped[List["PrelimQuestionPair"]] = relationship(
        "PrelimQuestionPair",
        cascade="all, delete-orphan",
        order_by="PrelimQuestionPair.position",
    )


class PrelimQuestionStatement(Base):
    __tablename__ = "prelim_question_statements"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    question_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("prelim_questions.id", ondelete="CASCADE"),
        nullable=False,
    )
    statement_number: Mapped[int] = mapped_column(Integer, nullable=False)
    statement_text: Mapped[str] = mapped_column(Text, nullable=False)
    correct_truth: Mapped[bool] = mapped_column(Boolean, nullable=False)


class PrelimQuestionPair(Base):
    __tablename__ = "prelim_question_pairs"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    question_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("prelim_questions.id", ondelete="CASCADE"),
        nullable=False,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    left_text: Mapped[str] = mapped_column(Text, nullable=False)
    right_text: Mapped[str] = mapped_column(Text, nullable=False)
    is_correct_match: Mapped[bool] = mapped_column(Boolean, nullable=False)


# ---------------------------------------------------------------------
# Question <-> Topic Mapping
# ---------------------------------------------------------------------

class PrelimQuestionTopic(Base):
    __tablename__ = "prelim_question_topics"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    question_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("prelim_questions.id", ondelete="CASCADE"),
        nullable=False,
    )
    topic_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("topics.id", ondelete="CASCADE"),
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint("question_id", "topic_id", name="uq_question_topic"),
    )
