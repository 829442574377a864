"""
Shared fixtures.

Engine tests run against ``InMemoryHierarchyStore`` and a deterministic
``FakeEmbedder`` working in a small vector space.
"""

import hashlib
from typing import Dict, List, Optional, Sequence

import pytest

from semantic_taxonomy.db.memory_store import InMemoryHierarchyStore
from semantic_taxonomy.embeddings.embedder import TaskType
from semantic_taxonomy.taxonomy.models import SEED_OVERWRITE, TopicDraft, TopicNode, TopicType
from semantic_taxonomy.taxonomy.slugs import child_path, child_slug

DIM = 8


def hashed_vector(text: str, dimension: int = DIM) -> List[float]:
    digest = hashlib.sha256(text.encode("utf-8")).digest()
    return [(b - 127.5) / 127.5 for b in digest[:dimension]]


class FakeEmbedder:
    """
    Stand-in for ``Embedder``.

    Known texts map to fixed vectors, anything else to a hash-derived one.
    Texts listed in ``failures`` raise the mapped exception.
    """

    def __init__(self, vectors: Optional[Dict[str, Sequence[float]]] = None, dimension: int = DIM):
        self.dimension = dimension
        self.vectors: Dict[str, Sequence[float]] = dict(vectors or {})
        self.failures: Dict[str, Exception] = {}
        self.calls: List[tuple] = []

    async def embed(self, text, task_type=TaskType.DOCUMENT, output_dimension=None):
        self.calls.append((text, task_type))
        if text in self.failures:
            raise self.failures[text]
        if text in self.vectors:
            return [float(x) for x in self.vectors[text]]
        return hashed_vector(text, self.dimension)

    @property
    def texts(self) -> List[str]:
        return [text for text, _ in self.calls]


def unit(i: int, dimension: int = DIM) -> List[float]:
    v = [0.0] * dimension
    v[i] = 1.0
    return v


def make_record(
    subject: str = "Polity",
    anchor: str = "Parliament",
    detailed: Optional[str] = None,
    question_type: str = "mcq",
    year: Optional[int] = 2021,
    **question,
) -> dict:
    """One batch record in upstream extraction format."""
    body = {
        "question_text": "Which of the following is correct?",
        "options": [{"label": "A", "text": "One"}, {"label": "B", "text": "Two"}],
        "correct_option": "A",
    }
    body.update(question)
    topic = {"subject": subject, "anchor": anchor}
    if detailed:
        topic["detailed"] = detailed
    return {
        "meta": {"year": year, "paper": "GS", "source": "UPSC", "question_type": question_type},
        "question": body,
        "topics": [topic],
    }


@pytest.fixture
def store():
    return InMemoryHierarchyStore()


@pytest.fixture
def embedder():
    return FakeEmbedder()


@pytest.fixture
def make_topic(store):
    """Insert a topic directly, bypassing embedding."""

    async def _make(
        name: str,
        level: int,
        parent: Optional[TopicNode] = None,
        raw=None,
        sharp=None,
        pure=None,
        topic_type: TopicType = TopicType.CANONICAL,
    ) -> TopicNode:
        draft = TopicDraft(
            name=name,
            slug=child_slug(parent.slug if parent else "", name),
            level=level,
            primary_parent_id=parent.id if parent else None,
            ancestry_path=child_path(parent.ancestry_path if parent else "", name),
            topic_type=topic_type,
            raw_vector=raw,
            sharp_vector=sharp,
            pure_vector=pure,
        )
        return await store.upsert_topic(draft, overwrite=SEED_OVERWRITE)

    return _make


@pytest.fixture
async def polity_tree(make_topic):
    """GS > Polity > {Parliament > Money Bill, Judiciary}."""
    gs = await make_topic("GS", 1, raw=unit(0))
    polity = await make_topic("Polity", 2, gs, raw=unit(1), sharp=unit(1))
    parliament = await make_topic("Parliament", 3, polity, raw=unit(2), sharp=unit(2))
    judiciary = await make_topic("Judiciary", 3, polity, raw=unit(4), sharp=unit(4))
    money_bill = await make_topic("Money Bill", 4, parliament, raw=unit(3), sharp=unit(3))
    return {
        "gs": gs,
        "polity": polity,
        "parliament": parliament,
        "judiciary": judiciary,
        "money_bill": money_bill,
    }
