"""
Trickle-down search and scoped sibling match tests.
"""

import pytest

from semantic_taxonomy.embeddings.embedder import EmbeddingError, TaskType
from semantic_taxonomy.taxonomy.resolver import HierarchyResolver, is_same_concept

from conftest import FakeEmbedder


def e(i, dim=8):
    v = [0.0] * dim
    v[i] = 1.0
    return v


QUERY = "revolt of 1857 causes"
# Leans towards e1 (History), e3 (Modern) and e5 > e6 > e7 at level 4
QUERY_VECTOR = [0.1, 0.5, 0.0, 0.5, 0.0, 0.6, 0.3, 0.1]


@pytest.fixture
def embedder():
    return FakeEmbedder(vectors={QUERY: QUERY_VECTOR})


@pytest.fixture
async def tree(make_topic):
    gs = await make_topic("GS", 1, raw=e(0))
    history = await make_topic("History", 2, gs, raw=e(1), sharp=e(1))
    await make_topic("Geography", 2, gs, raw=e(2), sharp=e(2))
    modern = await make_topic("Modern", 3, history, raw=e(3), sharp=e(3))
    await make_topic("Ancient", 3, history, raw=e(4), sharp=e(4))
    await make_topic("Revolt of 1857", 4, modern, sharp=e(5))
    await make_topic("Gandhian Era", 4, modern, sharp=e(6))
    await make_topic("Partition", 4, modern, sharp=e(7))
    await make_topic("Unrelated", 4, modern, sharp=[-x for x in e(5)])
    return {"gs": gs, "history": history, "modern": modern}


class TestResolvePath:

    async def test_descends_to_level_four(self, store, embedder, tree):
        resolver = HierarchyResolver(store, embedder)

        result = await resolver.resolve_path(QUERY)

        assert result.success
        assert [(s.level, s.name) for s in result.trace] == [
            (1, "GS"),
            (2, "History"),
            (3, "Modern"),
            (4, "Revolt of 1857"),
        ]
        assert result.final_node.name == "Revolt of 1857"
        assert result.note is None

    async def test_keeps_three_contenders_at_level_four(self, store, embedder, tree):
        resolver = HierarchyResolver(store, embedder)

        result = await resolver.resolve_path(QUERY)

        assert [c.name for c in result.contenders] == [
            "Revolt of 1857",
            "Gandhian Era",
            "Partition",
        ]
        scores = [c.similarity for c in result.contenders]
        assert scores == sorted(scores, reverse=True)

    async def test_embeds_query_once_with_query_task(self, store, embedder, tree):
        resolver = HierarchyResolver(store, embedder)

        await resolver.resolve_path(QUERY)

        assert embedder.calls == [(QUERY, TaskType.QUERY)]

    async def test_single_root_stops_at_level_one(self, store, embedder, make_topic):
        await make_topic("GS", 1, raw=e(0))
        resolver = HierarchyResolver(store, embedder)

        result = await resolver.resolve_path(QUERY)

        assert result.success
        assert result.note == "stopped at L1"
        assert [s.level for s in result.trace] == [1]
        assert result.final_node.name == "GS"
        assert result.contenders == []

    async def test_children_without_sharp_vectors_stop_the_descent(self, store, embedder, make_topic):
        gs = await make_topic("GS", 1, raw=e(0))
        history = await make_topic("History", 2, gs, raw=e(1), sharp=e(1))
        await make_topic("Modern", 3, history, raw=e(3))

        result = await HierarchyResolver(store, embedder).resolve_path(QUERY)

        assert result.note == "stopped at L2"
        assert result.final_node.name == "History"

    async def test_no_roots_is_a_failure(self, store, embedder):
        result = await HierarchyResolver(store, embedder).resolve_path(QUERY)

        assert not result.success
        assert result.error == "No roots found"

    async def test_embedding_failure_is_reported(self, store, embedder, tree):
        embedder.failures[QUERY] = EmbeddingError("quota")

        result = await HierarchyResolver(store, embedder).resolve_path(QUERY)

        assert not result.success
        assert "quota" in result.error


class TestMatchUnderParent:

    async def test_returns_at_most_three_in_descending_order(self, store, embedder, tree):
        resolver = HierarchyResolver(store, embedder)

        candidates = await resolver.match_under_parent(tree["modern"].id, 4, QUERY)

        assert len(candidates) == 3
        scores = [c.similarity for c in candidates]
        assert all(a >= b for a, b in zip(scores, scores[1:]))
        assert embedder.calls == [(QUERY, TaskType.DOCUMENT)]

    async def test_only_scores_the_requested_level(self, store, embedder, tree):
        resolver = HierarchyResolver(store, embedder)

        candidates = await resolver.match_under_parent(tree["history"].id, 3, QUERY)

        assert {c.name for c in candidates} == {"Modern", "Ancient"}
        assert all(c.level == 3 for c in candidates)

    async def test_no_scored_children_gives_empty_list(self, store, embedder, make_topic):
        gs = await make_topic("GS", 1, raw=e(0))

        assert await HierarchyResolver(store, embedder).match_under_parent(gs.id, 2, QUERY) == []

    async def test_never_filters_low_scores(self, store, embedder, tree):
        candidates = await HierarchyResolver(store, embedder).match_under_parent(
            tree["history"].id, 3, QUERY
        )

        assert any(c.similarity < 0.5 for c in candidates)


async def test_compare_lenses_blends_raw_and_pure(store, make_topic):
    gs = await make_topic("GS", 1, raw=e(0))
    await make_topic("Scalpel", 2, gs, raw=[0.8, 0.6] + [0.0] * 6, pure=e(1))
    await make_topic("Plain", 2, gs, raw=[0.6, 0.8] + [0.0] * 6)
    embedder = FakeEmbedder(vectors={"query": e(0)})

    lenses = await HierarchyResolver(store, embedder).compare_lenses("query", k=3)

    assert lenses.raw[0].name == "GS"
    assert [p.name for p in lenses.pure] == ["Scalpel"]
    by_name = {m.name: m for m in lenses.hybrid}
    assert by_name["Scalpel"].hybrid_score == pytest.approx(0.8 * 0.7 + 0.0 * 0.3)
    assert by_name["Plain"].hybrid_score == pytest.approx(0.6 * 0.7 + 0.6 * 0.3)
    assert by_name["Plain"].pure_score is None


def test_same_concept_threshold_uses_unrounded_scores():
    assert is_same_concept(0.95)
    assert is_same_concept(0.97)
    assert not is_same_concept(0.9499)
    assert not is_same_concept(0.94999999)
    assert is_same_concept(0.8, threshold=0.8)
