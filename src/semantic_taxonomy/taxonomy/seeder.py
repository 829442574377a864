"""
Taxonomy Seeder

Grows the topic tree from a block of seed text, one entry per line:

    + Subject                 level 2 under the supplied level-1 parent
    - Topic                   level 3 under the active level-2 node
    -- Sub-topic              level 4 under the active level-3 node

After the prefix each line reads ``name [\\ boost] [| scalpel]``:

- ``boost`` words are appended to the embedding input (and stored as
  keywords) without changing the stored name.
- ``scalpel`` is embedded separately and rejected from the raw vector to
  build the node's pure vector.

Lines are processed strictly in order. Each line embeds first and only then
opens its own short transaction, so one failed line never rolls back the
others. Children of a failed line are skipped without embedding or writing.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from typing import Awaitable, Callable, List, NamedTuple, Optional, Tuple

from pydantic import BaseModel, Field

from ..config import settings
from ..db.store import HierarchyStore
from ..core.vector_math import normalize, sharpen
from ..embeddings.embedder import Embedder, TaskType
from .models import (
    MAX_LEVEL,
    SEED_OVERWRITE,
    TopicDraft,
    TopicNode,
    TopicType,
)
from .slugs import child_path, child_slug, slugify

logger = logging.getLogger("taxonomy.seeder")

SleepFn = Callable[[float], Awaitable[None]]

_PREFIXES = (("--", 4), ("-", 3), ("+", 2))
_LINE_PREVIEW = 40


# ---------------------------------------------------------------------
# Line Grammar
# ---------------------------------------------------------------------

class SeedLine(NamedTuple):
    level: int
    name: str
    boost: Optional[str]
    scalpel: Optional[str]

    @property
    def embedding_input(self) -> str:
        return f"{self.name} {self.boost or ''}".strip()

    @property
    def keywords(self) -> List[str]:
        if not self.boost:
            return []
        return [k.strip() for k in self.boost.split(",") if k.strip()]


def parse_line(line: str) -> SeedLine:
    """
    Parse one non-blank seed line.

    Raises
    ------
    ValueError
        If the line has no level prefix or no name.
    """
    text = line.strip()
    for prefix, level in _PREFIXES:
        if text.startswith(prefix):
            body = text[len(prefix):].strip()
            break
    else:
        raise ValueError("missing level prefix (+, - or --)")

    scalpel: Optional[str] = None
    if "|" in body:
        body, scalpel = (part.strip() for part in body.split("|", 1))

    boost: Optional[str] = None
    if "\\" in body:
        body, boost = (part.strip() for part in body.split("\\", 1))

    name = body.strip()
    if not name:
        raise ValueError("missing topic name")

    return SeedLine(level=level, name=name, boost=boost or None, scalpel=scalpel or None)


def _preview(line: str) -> str:
    text = line.strip()
    if len(text) > _LINE_PREVIEW:
        return text[:_LINE_PREVIEW] + "..."
    return text


# ---------------------------------------------------------------------
# Cursor State
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class ActiveParent:
    """The most recent node at one level, as seen by later lines."""

    id: Optional[str]
    name: str
    level: int
    slug: str = ""
    path: str = ""
    vector: Optional[List[float]] = None
    failed: bool = False

    @classmethod
    def from_node(cls, node: TopicNode) -> "ActiveParent":
        return cls(
            id=node.id,
            name=node.name,
            level=node.level,
            slug=node.slug,
            path=node.ancestry_path,
            vector=node.raw_vector,
        )

    @classmethod
    def failed_marker(cls, name: str, level: int) -> "ActiveParent":
        return cls(id=None, name=name, level=level, failed=True)


@dataclass(frozen=True)
class SeedCursor:
    """
    Accumulator threaded through the line loop.

    ``parent`` is the node the run was started under; ``active_l2`` and
    ``active_l3`` follow the lines processed so far.
    """

    parent: ActiveParent
    active_l2: Optional[ActiveParent] = None
    active_l3: Optional[ActiveParent] = None

    @classmethod
    def start(cls, parent: TopicNode) -> "SeedCursor":
        active = ActiveParent.from_node(parent)
        return cls(
            parent=active,
            active_l2=active if parent.level == 2 else None,
            active_l3=active if parent.level == 3 else None,
        )

    def parent_for(self, level: int) -> Optional[ActiveParent]:
        if level == 2:
            return self.parent if self.parent.level == 1 else None
        if level == 3:
            return self.active_l2
        return self.active_l3

    def advance(self, level: int, node: TopicNode) -> "SeedCursor":
        if level == 2:
            return replace(self, active_l2=ActiveParent.from_node(node), active_l3=None)
        if level == 3:
            return replace(self, active_l3=ActiveParent.from_node(node))
        return self

    def mark_failed(self, level: int, name: str) -> "SeedCursor":
        marker = ActiveParent.failed_marker(name, level)
        if level == 2:
            return replace(
                self,
                active_l2=marker,
                active_l3=ActiveParent.failed_marker(name, 3),
            )
        if level == 3:
            return replace(self, active_l3=marker)
        return self


class LineOutcome(NamedTuple):
    node: Optional[TopicNode] = None
    error: Optional[str] = None


class SeedResult(BaseModel):
    success: bool
    created: int = 0
    errors: List[str] = Field(default_factory=list)


# ---------------------------------------------------------------------
# Seeder
# ---------------------------------------------------------------------

class TaxonomySeeder:
    """
    Sequential, per-line transactional tree builder.

    Parameters
    ----------
    store : HierarchyStore
        Destination for the new nodes.
    embedder : Embedder
        Provides document embeddings for names, boosts and scalpels.
    sleep : SleepFn
        Awaited with ``line_delay`` after every committed line.
    line_delay : Optional[float]
        Defaults to ``settings.seed_line_delay``.
    """

    def __init__(
        self,
        store: HierarchyStore,
        embedder: Embedder,
        sleep: SleepFn = asyncio.sleep,
        line_delay: Optional[float] = None,
    ) -> None:
        self.store = store
        self.embedder = embedder
        self._sleep = sleep
        self.line_delay = settings.seed_line_delay if line_delay is None else line_delay

    async def seed(self, parent_id: str, text: str) -> SeedResult:
        """
        Seed every line of ``text`` under the node ``parent_id``.

        Partial success is normal: ``errors`` lists one entry per rejected
        or skipped line and ``created`` counts committed nodes.
        """
        # Closed before the first embedding call
        async with self.store.transaction():
            parent = await self.store.get_topic(parent_id)
        if parent is None:
            return SeedResult(success=False, errors=["Parent node not found"])
        if parent.level >= MAX_LEVEL:
            return SeedResult(
                success=False,
                errors=[f'Cannot seed under level {parent.level} node "{parent.name}"'],
            )

        cursor = SeedCursor.start(parent)
        result = SeedResult(success=True)

        for line in text.splitlines():
            if not line.strip():
                continue
            cursor, outcome = await self.process_line(cursor, line)
            if outcome.error:
                result.errors.append(outcome.error)
            else:
                result.created += 1

        logger.info(
            "Seeded %d node(s) under %s with %d error(s)",
            result.created,
            parent.slug,
            len(result.errors),
        )
        return result

    async def process_line(
        self,
        cursor: SeedCursor,
        line: str,
    ) -> Tuple[SeedCursor, LineOutcome]:
        """
        Process one line and return the next cursor with the line's outcome.

        Skipped and rejected lines return ``cursor`` unchanged; lines that
        fail while embedding or writing mark their own level as failed.
        """
        label = _preview(line)

        try:
            entry = parse_line(line)
        except ValueError as exc:
            return cursor, LineOutcome(error=f'"{label}": {exc}')

        parent = cursor.parent_for(entry.level)
        if parent is None:
            if entry.level == 2:
                reason = f'cannot add level 2 under "{cursor.parent.name}"'
            else:
                reason = f"no active level {entry.level - 1} parent"
            return cursor, LineOutcome(error=f'"{label}": {reason}')

        if parent.failed:
            logger.info("Skipping %r: parent %r failed", label, parent.name)
            return cursor, LineOutcome(
                error=f'"{label}": skipped, parent "{parent.name}" failed'
            )

        try:
            node = await self._create(entry, parent)
        except Exception as exc:
            logger.warning("Seed line %r failed: %s", label, exc)
            return (
                cursor.mark_failed(entry.level, entry.name),
                LineOutcome(error=f'"{label}": {exc}'),
            )

        await self._sleep(self.line_delay)
        return cursor.advance(entry.level, node), LineOutcome(node=node)

    async def _create(self, entry: SeedLine, parent: ActiveParent) -> TopicNode:
        # Network calls happen before the transaction opens
        raw = await self.embedder.embed(entry.embedding_input, task_type=TaskType.DOCUMENT)

        pure = None
        if entry.scalpel:
            noise = await self.embedder.embed(entry.scalpel, task_type=TaskType.DOCUMENT)
            pure = sharpen(raw, noise)

        sharp = sharpen(raw, parent.vector) if parent.vector else normalize(raw)

        draft = TopicDraft(
            name=entry.name,
            slug=child_slug(parent.slug, entry.name),
            level=entry.level,
            primary_parent_id=parent.id,
            ancestry_path=child_path(parent.path, entry.name),
            topic_type=TopicType.CANONICAL,
            keywords=entry.keywords,
            raw_vector=raw,
            sharp_vector=sharp,
            pure_vector=pure,
        )

        async with self.store.transaction():
            return await self.store.upsert_topic(draft, overwrite=SEED_OVERWRITE)

    async def seed_root(self, name: str, boost: Optional[str] = None) -> TopicNode:
        """
        Create or refresh a level-1 node. Roots carry a raw vector only.
        """
        name = name.strip()
        if not name:
            raise ValueError("Root name must not be empty")

        text = f"{name} {boost or ''}".strip()
        raw = await self.embedder.embed(text, task_type=TaskType.DOCUMENT)
        draft = TopicDraft(
            name=name,
            slug=slugify(name),
            level=1,
            ancestry_path=slugify(name),
            keywords=SeedLine(1, name, boost, None).keywords,
            raw_vector=raw,
        )

        async with self.store.transaction():
            node = await self.store.upsert_topic(draft, overwrite=SEED_OVERWRITE)

        logger.info("Seeded root %s", node.slug)
        return node
