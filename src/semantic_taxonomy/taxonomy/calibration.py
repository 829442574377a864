"""
Mode calibration.

Derives the direction a set of siblings has in common (their dominant axis)
and rejects it from each sibling's raw vector, producing pure vectors for
siblings that were seeded without an explicit scalpel.
"""

from __future__ import annotations

import logging

from pydantic import BaseModel

from ..core.errors import InvalidHierarchyError, TopicNotFoundError
from ..core.vector_math import compute_dominant_axis, sharpen
from ..db.store import HierarchyStore

logger = logging.getLogger("taxonomy.calibration")


class CalibrationResult(BaseModel):
    parent_id: str
    siblings: int
    updated: int
    skipped: int


async def calibrate_children(
    store: HierarchyStore,
    parent_id: str,
    overwrite: bool = False,
) -> CalibrationResult:
    """
    Write ``pure_vector = sharpen(raw, mode)`` for the children of ``parent_id``.

    Children that already hold a pure vector keep it unless ``overwrite``.

    Raises
    ------
    TopicNotFoundError
        If the parent does not exist.
    InvalidHierarchyError
        If fewer than two children have a raw vector.
    """
    parent = await store.get_topic(parent_id)
    if parent is None:
        raise TopicNotFoundError(f"Topic {parent_id} not found")

    children = [c for c in await store.list_children(parent_id) if c.raw_vector]
    if len(children) < 2:
        raise InvalidHierarchyError(
            f'"{parent.name}" needs at least two embedded children to calibrate'
        )

    mode = compute_dominant_axis([c.raw_vector for c in children])

    updated = 0
    async with store.transaction():
        for child in children:
            if child.pure_vector is not None and not overwrite:
                continue
            await store.update_vectors(child.id, pure_vector=sharpen(child.raw_vector, mode).tolist())
            updated += 1

    logger.info("Calibrated %d of %d children of %s", updated, len(children), parent.slug)
    return CalibrationResult(
        parent_id=parent.id,
        siblings=len(children),
        updated=updated,
        skipped=len(children) - updated,
    )
