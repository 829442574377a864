"""
Database Model Tests

Simple tests for the ORM layer including:
- Topic construction
- Question child rows
- Table constraints
"""

from uuid import uuid4

from semantic_taxonomy.db.models import (
    PrelimQuestion,
    PrelimQuestionPair,
    PrelimQuestionStatement,
    PrelimQuestionTopic,
    Topic,
)
from semantic_taxonomy.config import settings


class TestTopicModel:
    """Tests for the Topic model."""

    def test_topic_creation(self):
        """Verify Topic creates with the given fields."""
        parent_id = uuid4()
        topic = Topic(
            name="Parliament",
            slug="gs-polity-parliament",
            level=3,
            primary_parent_id=parent_id,
            ancestry_path="gs.polity.parliament",
        )

        assert topic.slug == "gs-polity-parliament"
        assert topic.primary_parent_id == parent_id
        # Vectors are filled by the seeder or the commit pipeline
        assert topic.raw_vector is None
        assert topic.pure_vector is None

    def test_vector_columns_use_configured_dimension(self):
        """Verify every vector column matches the embedding dimension."""
        for column in ("raw_vector", "sharp_vector", "pure_vector"):
            assert Topic.__table__.c[column].type.dim == settings.embedding_dimension

    def test_slug_is_unique(self):
        """Verify upserts can target the slug."""
        assert Topic.__table__.c.slug.unique


class TestQuestionModels:
    """Tests for PrelimQuestion and its child rows."""

    def test_statement_rows_attach_to_question(self):
        """Verify statements are reachable through the relationship."""
        question = PrelimQuestion(
            paper="GS",
            year=2021,
            source="UPSC",
            question_type="statement",
            question_text="Consider the following statements",
            options=[{"label": "A", "text": "1 only"}],
            correct_option="A",
        )
        question.statements.append(
            PrelimQuestionStatement(statement_number=1, statement_text="First", correct_truth=True)
        )
        question.pairs.append(
            PrelimQuestionPair(position=0, left_text="Kosi", right_text="Bihar", is_correct_match=True)
        )

        assert question.statements[0].statement_number == 1
        assert question.pairs[0].left_text == "Kosi"

    def test_question_topic_link_is_unique(self):
        """Verify a question links to a topic at most once."""
        names = {c.name for c in PrelimQuestionTopic.__table__.constraints}
        assert "uq_question_topic" in names
