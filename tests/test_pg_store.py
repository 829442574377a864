"""
PostgreSQL hierarchy store tests.

No database is needed: the session is mocked and the statements the store
issues are compiled with the PostgreSQL dialect and inspected.
"""

import uuid
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.dialects import postgresql

from semantic_taxonomy.core.errors import TopicNotFoundError
from semantic_taxonomy.db.hierarchy_store import PgHierarchyStore
from semantic_taxonomy.db.models import Topic
from semantic_taxonomy.ingestion.models import StatementLine, StatementQuestion
from semantic_taxonomy.taxonomy.models import (
    COMMIT_OVERWRITE,
    SEED_OVERWRITE,
    TopicDraft,
    VectorColumn,
)


@pytest.fixture
def session():
    session = MagicMock()
    # Awaited results are plain mocks so .scalar_one() / .scalars() / .all() are sync
    session.execute = AsyncMock(return_value=MagicMock())
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.flush = AsyncMock()
    session.get = AsyncMock()
    return session


def _sql(session) -> str:
    stmt = session.execute.await_args.args[0]
    return str(stmt.compile(dialect=postgresql.dialect()))


def _topic_row(**overrides):
    values = dict(
        id=uuid.uuid4(),
        name="Polity",
        slug="gs-polity",
        level=2,
        primary_parent_id=uuid.uuid4(),
        ancestry_path="gs.polity",
        topic_type="canonical",
        keywords=[],
        raw_vector=None,
        sharp_vector=None,
        pure_vector=None,
    )
    values.update(overrides)
    return Topic(**values)


class TestTransactions:

    async def test_commit_on_success(self, session):
        store = PgHierarchyStore(session)

        async with store.transaction():
            pass

        session.commit.assert_awaited_once()
        session.rollback.assert_not_awaited()

    async def test_rollback_and_reraise_on_failure(self, session):
        store = PgHierarchyStore(session)

        with pytest.raises(RuntimeError):
            async with store.transaction():
                raise RuntimeError("boom")

        session.rollback.assert_awaited_once()
        session.commit.assert_not_awaited()

    async def test_nested_blocks_commit_once(self, session):
        store = PgHierarchyStore(session)

        async with store.transaction():
            async with store.transaction():
                pass
            session.commit.assert_not_awaited()

        session.commit.assert_awaited_once()


class TestUpsert:

    async def test_commit_overwrite_only_updates_name(self, session):
        row = _topic_row()
        session.execute.return_value.scalar_one.return_value = row
        store = PgHierarchyStore(session)

        draft = TopicDraft(name="Polity", slug="gs-polity", level=2, primary_parent_id=str(row.primary_parent_id))
        node = await store.upsert_topic(draft, overwrite=COMMIT_OVERWRITE)

        sql = _sql(session)
        assert "ON CONFLICT (slug) DO UPDATE SET" in sql
        assert "name = excluded.name" in sql
        assert "raw_vector = excluded.raw_vector" not in sql
        assert "RETURNING" in sql
        assert node.id == str(row.id)
        assert node.primary_parent_id == str(row.primary_parent_id)

    async def test_seed_overwrite_refreshes_vectors(self, session):
        session.execute.return_value.scalar_one.return_value = _topic_row()
        store = PgHierarchyStore(session)

        draft = TopicDraft(name="Polity", slug="gs-polity", level=2, raw_vector=[0.1] * 4)
        await store.upsert_topic(draft, overwrite=SEED_OVERWRITE)

        sql = _sql(session)
        for column in ("raw_vector", "sharp_vector", "pure_vector", "keywords", "ancestry_path"):
            assert f"{column} = excluded.{column}" in sql


class TestQueries:

    async def test_nearest_uses_cosine_distance_on_present_vectors(self, session):
        parent_id = uuid.uuid4()
        row = _topic_row(sharp_vector=[0.0] * 4)
        session.execute.return_value.all.return_value = [(row, 0.87)]
        store = PgHierarchyStore(session)

        matches = await store.nearest(
            [0.1, 0.2, 0.3, 0.4],
            VectorColumn.SHARP,
            k=3,
            parent_id=str(parent_id),
            level=3,
        )

        sql = _sql(session)
        assert "<=>" in sql
        assert "topics.sharp_vector IS NOT NULL" in sql
        assert "topics.primary_parent_id =" in sql
        assert "topics.level =" in sql
        assert "ORDER BY" in sql and "LIMIT" in sql
        assert matches[0][0].name == "Polity"
        assert matches[0][1] == pytest.approx(0.87)

    async def test_get_topic_with_malformed_id_is_not_found(self, session):
        store = PgHierarchyStore(session)

        assert await store.get_topic("not-a-uuid") is None
        session.get.assert_not_awaited()

    async def test_get_topic_by_slug(self, session):
        session.execute.return_value.scalars.return_value.first.return_value = _topic_row()
        store = PgHierarchyStore(session)

        node = await store.get_topic_by_slug("gs-polity")

        assert node.slug == "gs-polity"
        assert "WHERE topics.slug =" in _sql(session)

    async def test_search_topics_is_case_insensitive(self, session):
        session.execute.return_value.scalars.return_value = []
        store = PgHierarchyStore(session)

        await store.search_topics("Indian Polity", "parliament")

        sql = _sql(session)
        assert "ILIKE" in sql.upper()
        assert "topics.level IN" in sql


class TestWrites:

    async def test_link_is_idempotent_insert(self, session):
        store = PgHierarchyStore(session)

        await store.link_question_topic(7, str(uuid.uuid4()))

        assert "ON CONFLICT (question_id, topic_id) DO NOTHING" in _sql(session)

    async def test_update_vectors_missing_topic(self, session):
        session.execute.return_value = MagicMock(rowcount=0)
        store = PgHierarchyStore(session)

        with pytest.raises(TopicNotFoundError):
            await store.update_vectors(str(uuid.uuid4()), pure_vector=[0.0] * 4)

    async def test_update_vectors_rejects_unknown_columns(self, session):
        store = PgHierarchyStore(session)

        with pytest.raises(ValueError):
            await store.update_vectors(str(uuid.uuid4()), name="nope")
        session.execute.assert_not_awaited()

    async def test_insert_statement_question_adds_child_rows(self, session):
        store = PgHierarchyStore(session)
        question = StatementQuestion(
            id="q-1",
            text="Consider the following statements",
            statements=[
                StatementLine(idx=1, text="First", is_true=True),
                StatementLine(idx=2, text="Second", is_true=False),
            ],
        )

        await store.insert_question(question)

        row = session.add.call_args.args[0]
        assert row.question_type == "statement"
        assert [(s.statement_number, s.correct_truth) for s in row.statements] == [
            (1, True),
            (2, False),
        ]
        session.flush.assert_awaited_once()
