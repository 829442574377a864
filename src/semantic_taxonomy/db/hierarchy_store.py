"""
Hierarchy Store

PostgreSQL + pgvector backed topic tree with similarity search.
"""

from __future__ import annotations

import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.errors import TopicNotFoundError
from ..ingestion.models import (
    McqQuestion,
    PairQuestion,
    StagedQuestion,
    StatementQuestion,
)
from ..taxonomy.models import TopicDraft, TopicNode, VectorColumn
from ..taxonomy.slugs import slugify
from .models import (
    PrelimQuestion,
    PrelimQuestionPair,
    PrelimQuestionStatement,
    PrelimQuestionTopic,
    Topic,
)
from .store import HierarchyStore

_VECTOR_COLUMNS = {c.value for c in VectorColumn}


def _as_uuid(value: Optional[str]) -> Optional[uuid.UUID]:
    if value is None:
        return None
    return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))


def _to_node(row: Topic) -> TopicNode:
    return TopicNode(
        id=str(row.id),
        name=row.name,
        slug=row.slug,
        level=row.level,
        primary_parent_id=str(row.primary_parent_id) if row.primary_parent_id else None,
        ancestry_path=row.ancestry_path or "",
        topic_type=row.topic_type,
        keywords=list(row.keywords or []),
        raw_vector=row.raw_vector,
        sharp_vector=row.sharp_vector,
        pure_vector=row.pure_vector,
    )


class PgHierarchyStore(HierarchyStore):
    """
    PostgreSQL-backed hierarchy store using pgvector for similarity search.

    One instance wraps one ``AsyncSession``; it is not safe to share across
    concurrent requests.
    """

    def __init__(self, session: AsyncSession) -> None:
        """
        Initialize with an async database session.

        Parameters
        ----------
        session : AsyncSession
            SQLAlchemy async session for database operations.
        """
        self._session = session
        self._depth = 0

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        # Nested blocks join the outermost unit of work
        if self._depth:
            self._depth += 1
            try:
                yield
            finally:
                self._depth -= 1
            return

        self._depth = 1
        try:
            yield
            await self._session.commit()
        except Exception:
            await self._session.rollback()
            raise
        finally:
            self._depth = 0

    # -----------------------------------------------------------------
    # Lookups
    # -----------------------------------------------------------------

    async def get_topic(self, topic_id: str) -> Optional[TopicNode]:
        try:
            key = _as_uuid(topic_id)
        except ValueError:
            return None
        row = await self._session.get(Topic, key)
        return _to_node(row) if row is not None else None

    async def get_topic_by_slug(self, slug: str) -> Optional[TopicNode]:
        result = await self._session.execute(select(Topic).where(Topic.slug == slug))
        row = result.scalars().first()
        return _to_node(row) if row is not None else None

    async def find_topic(
        self,
        level: int,
        name: str,
        parent_id: Optional[str] = None,
    ) -> Optional[TopicNode]:
        stmt = select(Topic).where(Topic.level == level, Topic.name == name)
        if parent_id is not None:
            stmt = stmt.where(Topic.primary_parent_id == _as_uuid(parent_id))
        result = await self._session.execute(stmt.order_by(Topic.created_at).limit(1))
        row = result.scalars().first()
        return _to_node(row) if row is not None else None

    async def list_roots(self) -> List[TopicNode]:
        stmt = select(Topic).where(Topic.level == 1).order_by(Topic.name)
        result = await self._session.execute(stmt)
        return [_to_node(row) for row in result.scalars()]

    async def list_children(self, parent_id: str) -> List[TopicNode]:
        stmt = (
            select(Topic)
            .where(Topic.primary_parent_id == _as_uuid(parent_id))
            .order_by(Topic.name)
        )
        result = await self._session.execute(stmt)
        return [_to_node(row) for row in result.scalars()]

    async def nearest(
        self,
        query_vector: Sequence[float],
        column: VectorColumn,
        k: int,
        parent_id: Optional[str] = None,
        level: Optional[int] = None,
    ) -> List[Tuple[TopicNode, float]]:
        """
        Search for the closest nodes using cosine similarity.

        Parameters
        ----------
        query_vector : Sequence[float]
            Query vector.
        column : VectorColumn
            Which stored vector variant to compare against.
        k : int
            Number of results to return.
        parent_id : Optional[str]
            If provided, only children of this node are scored.
        level : Optional[int]
            If provided, only nodes at this level are scored.

        Returns
        -------
        List[Tuple[TopicNode, float]]
            (node, similarity) pairs, best first.
        """
        vector_col = getattr(Topic, column.value)
        # pgvector's <=> operator
        cosine_distance = vector_col.cosine_distance(list(query_vector))

        stmt = (
            select(Topic, (1 - cosine_distance).label("score"))
            .where(vector_col.isnot(None))
            .order_by(cosine_distance)
            .limit(k)
        )
        if parent_id is not None:
            stmt = stmt.where(Topic.primary_parent_id == _as_uuid(parent_id))
        if level is not None:
            stmt = stmt.where(Topic.level == level)

        result = await self._session.execute(stmt)
        return [(_to_node(row), float(score)) for row, score in result.all()]

    async def search_topics(
        self,
        subject: str,
        query: str,
        levels: Sequence[int] = (3, 4),
        limit: int = 8,
    ) -> List[TopicNode]:
        stmt = (
            select(Topic)
            .where(
                Topic.level.in_(list(levels)),
                Topic.ancestry_path.ilike(f"%{slugify(subject)}%"),
                Topic.name.ilike(f"%{query.strip()}%"),
            )
            .order_by(Topic.level, Topic.name)
            .limit(limit)
        )
        result = await self._session.execute(stmt)
        return [_to_node(row) for row in result.scalars()]

    # -----------------------------------------------------------------
    # Writes
    # -----------------------------------------------------------------

    async def upsert_topic(
        self,
        draft: TopicDraft,
        overwrite: Sequence[str],
    ) -> TopicNode:
        values: Dict[str, Any] = draft.model_dump()
        values["topic_type"] = draft.topic_type.value
        values["primary_parent_id"] = _as_uuid(draft.primary_parent_id)

        stmt = pg_insert(Topic).values(**values)
        set_ = {col: stmt.excluded[col] for col in overwrite}
        set_["updated_at"] = func.now()
        stmt = (
            stmt.on_conflict_do_update(index_elements=[Topic.slug], set_=set_)
            .returning(Topic)
            .execution_options(populate_existing=True)
        )

        result = await self._session.execute(stmt)
        return _to_node(result.scalar_one())

    async def update_vectors(self, topic_id: str, **vectors: Optional[List[float]]) -> None:
        unknown = set(vectors) - _VECTOR_COLUMNS
        if unknown:
            raise ValueError(f"Unknown vector columns: {sorted(unknown)}")
        if not vectors:
            return

        stmt = (
            update(Topic)
            .where(Topic.id == _as_uuid(topic_id))
            .values(**vectors, updated_at=func.now())
        )
        result = await self._session.execute(stmt)
        if result.rowcount == 0:
            raise TopicNotFoundError(f"Topic {topic_id} not found")

    async def insert_question(self, question: StagedQuestion) -> int:
        row = PrelimQuestion(
            paper=question.paper,
            year=question.year,
            source=question.source,
            question_type=question.type,
            question_text=question.text,
            options=[o.model_dump() for o in question.options],
            correct_option=question.correct_option,
        )

        if isinstance(question, StatementQuestion):
            row.statements = [
                PrelimQuestionStatement(
                    statement_number=s.idx,
                    statement_text=s.text,
                    correct_truth=s.is_true,
                )
                for s in question.statements
            ]
        elif isinstance(question, PairQuestion):
            row.pairs = [
                PrelimQuestionPair(
                    position=i + 1,
                    left_text=p.left,
                    right_text=p.right,
                    is_correct_match=p.is_correct_match,
                )
                for i, p in enumerate(question.pairs)
            ]
        elif not isinstance(question, McqQuestion):
            raise TypeError(f"Unsupported question variant: {type(question).__name__}")

        self._session.add(row)
        await self._session.flush()
        return row.id

    async def link_question_topic(self, question_id: int, topic_id: str) -> None:
        stmt = (
            pg_insert(PrelimQuestionTopic)
            .values(question_id=question_id, topic_id=_as_uuid(topic_id))
            .on_conflict_do_nothing(index_elements=["question_id", "topic_id"])
        )
        await self._session.execute(stmt)

    async def get_stats(self) -> Dict[str, Any]:
        """
        Get topic and question counts.

        Returns
        -------
        Dict[str, Any]
            ``topics_by_level``, ``topics_by_type``, ``questions`` and ``links``.
        """
        by_level = await self._session.execute(
            select(Topic.level, func.count()).group_by(Topic.level)
        )
        by_type = await self._session.execute(
            select(Topic.topic_type, func.count()).group_by(Topic.topic_type)
        )
        questions = await self._session.execute(
            select(func.count()).select_from(PrelimQuestion)
        )
        links = await self._session.execute(
            select(func.count()).select_from(PrelimQuestionTopic)
        )

        return {
            "topics_by_level": {int(level): count for level, count in by_level.all()},
            "topics_by_type": {str(kind): count for kind, count in by_type.all()},
            "questions": questions.scalar_one(),
            "links": links.scalar_one(),
        }
