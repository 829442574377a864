"""
Taxonomy seeder tests: grammar, vector construction, per-line transactions
and domino skip.
"""

import uuid
from unittest.mock import AsyncMock, MagicMock

import numpy as np
import pytest

from semantic_taxonomy.core.vector_math import dot
from semantic_taxonomy.db.hierarchy_store import PgHierarchyStore
from semantic_taxonomy.db.models import Topic
from semantic_taxonomy.embeddings.embedder import EmbeddingError, TaskType
from semantic_taxonomy.taxonomy.models import TopicType
from semantic_taxonomy.taxonomy.seeder import (
    ActiveParent,
    SeedCursor,
    TaxonomySeeder,
    parse_line,
)

from conftest import FakeEmbedder


@pytest.fixture
def sleep():
    return AsyncMock()


@pytest.fixture
def seeder(store, embedder, sleep):
    return TaxonomySeeder(store, embedder, sleep=sleep, line_delay=1.5)


@pytest.fixture
async def root(seeder):
    return await seeder.seed_root("GS")


def _by_name(store):
    return {n.name: n for n in store.topics.values()}


class TestParseLine:

    def test_prefixes_map_to_levels(self):
        assert parse_line("+ Polity").level == 2
        assert parse_line("- Parliament").level == 3
        assert parse_line("-- Money Bill").level == 4
        assert parse_line("   --Money Bill  ").name == "Money Bill"

    def test_boost_and_scalpel(self):
        entry = parse_line(r"-- Money Bill \ article 110, speaker | finance bill")

        assert entry.name == "Money Bill"
        assert entry.boost == "article 110, speaker"
        assert entry.scalpel == "finance bill"
        assert entry.embedding_input == "Money Bill article 110, speaker"
        assert entry.keywords == ["article 110", "speaker"]

    def test_scalpel_without_boost(self):
        entry = parse_line("- Buddhism | jainism")

        assert entry.boost is None
        assert entry.scalpel == "jainism"
        assert entry.embedding_input == "Buddhism"

    @pytest.mark.parametrize("line", ["Polity", "-", r"+ \ boost only"])
    def test_malformed_lines(self, line):
        with pytest.raises(ValueError):
            parse_line(line)


class TestSeed:

    async def test_builds_branch_under_level_one_parent(self, store, seeder, root, sleep):
        result = await seeder.seed(root.id, "+ A\n- B\n-- C\n-- D")

        assert result.success
        assert result.created == 4
        assert result.errors == []

        nodes = _by_name(store)
        assert nodes["A"].primary_parent_id == root.id
        assert nodes["B"].primary_parent_id == nodes["A"].id
        assert nodes["C"].primary_parent_id == nodes["B"].id
        assert nodes["D"].primary_parent_id == nodes["B"].id
        assert nodes["C"].ancestry_path.startswith(nodes["B"].ancestry_path + ".")
        assert nodes["D"].ancestry_path.startswith(nodes["B"].ancestry_path + ".")
        assert nodes["C"].slug == "gs-a-b-c"
        assert nodes["C"].ancestry_path == "gs.a.b.c"
        assert all(n.topic_type == TopicType.CANONICAL for n in nodes.values())
        assert sleep.await_count == 4
        sleep.assert_awaited_with(1.5)

    async def test_sharp_vector_rejects_parent_raw(self, store, seeder, root):
        await seeder.seed(root.id, "+ Polity")

        polity = _by_name(store)["Polity"]
        assert dot(polity.sharp_vector, root.raw_vector) == pytest.approx(0.0, abs=1e-9)
        assert np.linalg.norm(polity.sharp_vector) == pytest.approx(1.0)
        assert polity.pure_vector is None

    async def test_boost_and_scalpel_shape_vectors(self, store, embedder, seeder, root):
        await seeder.seed(root.id, r"+ Polity \ constitution, parliament | economy")

        polity = _by_name(store)["Polity"]
        assert embedder.calls[-2:] == [
            ("Polity constitution, parliament", TaskType.DOCUMENT),
            ("economy", TaskType.DOCUMENT),
        ]
        assert polity.name == "Polity"
        assert polity.keywords == ["constitution", "parliament"]
        noise = await embedder.embed("economy")
        assert dot(polity.pure_vector, noise) == pytest.approx(0.0, abs=1e-9)

    async def test_failed_parent_skips_children_without_embedding(self, store, embedder, seeder, root):
        embedder.failures["B"] = EmbeddingError("quota exhausted")
        before = len(embedder.calls)

        result = await seeder.seed(root.id, "+ A\n- B\n-- C")

        assert result.created == 1
        assert len(result.errors) == 2
        assert "quota exhausted" in result.errors[0]
        assert "failed" in result.errors[1]
        assert "C" not in embedder.texts[before:]
        assert set(_by_name(store)) == {"GS", "A"}

    async def test_failed_subject_skips_whole_branch(self, store, embedder, seeder, root):
        embedder.failures["A"] = EmbeddingError("boom")

        result = await seeder.seed(root.id, "+ A\n- B\n-- C\n+ E\n- F")

        assert result.created == 2
        assert all("failed" in err for err in result.errors[1:3])
        nodes = _by_name(store)
        assert nodes["F"].primary_parent_id == nodes["E"].id

    async def test_later_sibling_recovers_the_pointer(self, store, embedder, seeder, root):
        embedder.failures["B"] = EmbeddingError("boom")

        result = await seeder.seed(root.id, "+ A\n- B\n-- C\n- E\n-- F")

        assert result.created == 3
        nodes = _by_name(store)
        assert nodes["F"].primary_parent_id == nodes["E"].id

    async def test_write_failure_only_loses_that_line(self, store, seeder, root):
        original = store.upsert_topic

        async def flaky(draft, overwrite):
            if draft.name == "B":
                raise RuntimeError("unique violation")
            return await original(draft, overwrite)

        store.upsert_topic = flaky

        result = await seeder.seed(root.id, "+ A\n- B\n-- C\n- D")

        assert result.created == 2
        assert "unique violation" in result.errors[0]
        assert "failed" in result.errors[1]
        assert set(_by_name(store)) == {"GS", "A", "D"}

    async def test_subject_line_rejected_under_subject_parent(self, store, seeder, root):
        await seeder.seed(root.id, "+ Polity")
        polity = _by_name(store)["Polity"]

        result = await seeder.seed(polity.id, "+ Economy\n- Parliament")

        assert result.created == 1
        assert "cannot add level 2" in result.errors[0]
        assert _by_name(store)["Parliament"].primary_parent_id == polity.id

    async def test_sub_topic_needs_an_active_topic(self, seeder, root):
        result = await seeder.seed(root.id, "+ A\n-- Orphan")

        assert result.created == 1
        assert "no active level 3 parent" in result.errors[0]

    async def test_level_three_parent_takes_sub_topics_directly(self, store, seeder, root):
        await seeder.seed(root.id, "+ A\n- B")
        b = _by_name(store)["B"]

        result = await seeder.seed(b.id, "-- C\n-- D")

        assert result.created == 2
        assert _by_name(store)["D"].primary_parent_id == b.id

    async def test_reseed_refreshes_in_place(self, store, seeder, root):
        await seeder.seed(root.id, r"+ Polity \ constitution")
        first = _by_name(store)["Polity"]

        await seeder.seed(root.id, r"+ Polity \ parliament, courts")
        second = _by_name(store)["Polity"]

        assert second.id == first.id
        assert second.keywords == ["parliament", "courts"]
        assert second.raw_vector != first.raw_vector
        assert len(store.topics) == 2

    async def test_missing_parent(self, seeder):
        result = await seeder.seed("missing", "+ A")

        assert not result.success
        assert result.errors == ["Parent node not found"]

    async def test_blank_and_malformed_lines(self, seeder, root):
        result = await seeder.seed(root.id, "\n+ A\n\n   \nnot a line\n")

        assert result.created == 1
        assert len(result.errors) == 1
        assert "missing level prefix" in result.errors[0]


async def test_process_line_skip_leaves_cursor_untouched(seeder, embedder, root):
    cursor = SeedCursor(
        parent=ActiveParent.from_node(root),
        active_l2=ActiveParent.from_node(root),
        active_l3=ActiveParent.failed_marker("B", 3),
    )
    before = len(embedder.calls)

    next_cursor, outcome = await seeder.process_line(cursor, "-- C")

    assert next_cursor is cursor
    assert outcome.node is None
    assert "failed" in outcome.error
    assert len(embedder.calls) == before


async def test_parent_lookup_is_closed_before_embedding():
    events = []

    class RecordingEmbedder(FakeEmbedder):
        async def embed(self, text, **kwargs):
            events.append(("embed", text))
            return await super().embed(text, **kwargs)

    parent = Topic(
        id=uuid.uuid4(),
        name="GS",
        slug="gs",
        level=1,
        primary_parent_id=None,
        ancestry_path="gs",
        topic_type="canonical",
        keywords=[],
        raw_vector=[1.0] + [0.0] * 7,
        sharp_vector=None,
        pure_vector=None,
    )
    child = Topic(
        id=uuid.uuid4(),
        name="Polity",
        slug="gs-polity",
        level=2,
        primary_parent_id=parent.id,
        ancestry_path="gs.polity",
        topic_type="canonical",
        keywords=[],
        raw_vector=None,
        sharp_vector=None,
        pure_vector=None,
    )
    session = MagicMock()
    session.get = AsyncMock(return_value=parent)
    session.execute = AsyncMock(return_value=MagicMock())
    session.execute.return_value.scalar_one.return_value = child
    session.commit = AsyncMock(side_effect=lambda: events.append("commit"))
    session.rollback = AsyncMock()

    seeder = TaxonomySeeder(PgHierarchyStore(session), RecordingEmbedder(), sleep=AsyncMock())
    result = await seeder.seed(str(parent.id), "+ Polity")

    assert result.created == 1
    assert events == ["commit", ("embed", "Polity"), "commit"]


async def test_seed_root_creates_level_one(store, seeder):
    node = await seeder.seed_root("General Studies", "paper one")

    assert node.level == 1
    assert node.slug == "general-studies"
    assert node.primary_parent_id is None
    assert node.raw_vector is not None
    assert node.sharp_vector is None
