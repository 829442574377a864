"""
Resolution actions on staged topic chains.

Actions are pure: they take the staged batch and return a new one, leaving
the input untouched. By default an action applied to one chain is applied
to every chain in the batch naming the same subject / topic (/ sub-topic),
so one decision resolves a repeated intent everywhere.
"""

from __future__ import annotations

import enum
from typing import List, Literal, Optional

from pydantic import BaseModel

from ..core.errors import BatchFormatError, ChainNotFoundError, InvalidHierarchyError
from ..taxonomy.models import TopicCandidate
from .models import ChainNode, IngestionItem, NodeStatus, TopicChain
from .validation import revalidate


class ActionKind(str, enum.Enum):
    CREATE = "create"
    MAP = "map"
    REMOVE = "remove"


class ChainAction(BaseModel):
    """
    One reviewer decision.

    ``create`` marks the node pending-create under its resolved parent,
    ``map`` binds it to ``candidate`` and ``remove`` drops the chain (or, at
    level 4, only the sub-topic).
    """

    action: ActionKind
    item_id: str
    chain_id: str
    level: Literal[3, 4]
    candidate: Optional[TopicCandidate] = None
    batch_wide: bool = True


def apply_action(items: List[IngestionItem], action: ChainAction) -> List[IngestionItem]:
    """
    Apply ``action`` and return the revalidated batch.

    Raises
    ------
    ChainNotFoundError
        If the targeted item or chain does not exist.
    InvalidHierarchyError
        If the action does not fit the targeted chain.
    BatchFormatError
        If a ``map`` action carries no candidate of the right level.
    """
    target = _find_chain(items, action.item_id, action.chain_id)
    _check(target, action)

    updated: List[IngestionItem] = []
    for item in items:
        chains: List[TopicChain] = []
        for chain in item.topic_chains:
            in_scope = chain is target or (
                action.batch_wide and _same_intent(chain, target, action.level)
            )
            if not in_scope:
                chains.append(chain)
                continue
            changed = _apply(chain, action)
            if changed is not None:
                chains.append(changed)
        updated.append(revalidate(item.model_copy(update={"topic_chains": chains})))
    return updated


def _find_chain(items: List[IngestionItem], item_id: str, chain_id: str) -> TopicChain:
    item = next((i for i in items if i.id == item_id), None)
    if item is None:
        raise ChainNotFoundError(f"Item {item_id} not found")
    chain = next((c for c in item.topic_chains if c.id == chain_id), None)
    if chain is None:
        raise ChainNotFoundError(f"Chain {chain_id} not found on item {item_id}")
    return chain


def _check(chain: TopicChain, action: ChainAction) -> None:
    if action.level == 4 and chain.l4 is None:
        raise InvalidHierarchyError(f'Chain "{chain.raw_string}" has no level 4 topic')

    if action.action is ActionKind.MAP:
        if action.candidate is None:
            raise BatchFormatError("map requires a candidate")
        if action.candidate.level != action.level:
            raise BatchFormatError(
                f"Candidate is level {action.candidate.level}, expected {action.level}"
            )
        parent = chain.l2 if action.level == 3 else chain.l3
        if parent.db_id is None or action.candidate.primary_parent_id != parent.db_id:
            raise InvalidHierarchyError(
                f'"{action.candidate.name}" is not a child of "{parent.name}"'
            )

    if action.action is ActionKind.CREATE:
        parent = chain.l2 if action.level == 3 else chain.l3
        if not parent.is_settled:
            raise InvalidHierarchyError(
                f'Resolve "{parent.name}" before creating topics under it'
            )


def _same_intent(chain: TopicChain, target: TopicChain, level: int) -> bool:
    same_topic = chain.l2.name == target.l2.name and chain.l3.name == target.l3.name
    if level == 3:
        return same_topic
    return (
        same_topic
        and chain.l4 is not None
        and target.l4 is not None
        and chain.l4.name == target.l4.name
    )


def _apply(chain: TopicChain, action: ChainAction) -> Optional[TopicChain]:
    field = "l3" if action.level == 3 else "l4"

    if action.action is ActionKind.REMOVE:
        # Dropping a sub-topic keeps the topic-level link
        return None if action.level == 3 else chain.model_copy(update={"l4": None})

    current = getattr(chain, field)
    parent = chain.l2 if action.level == 3 else chain.l3
    if action.action is ActionKind.CREATE:
        if not parent.is_settled:
            return chain
        node = current.model_copy(
            update={
                "status": NodeStatus.PENDING_CREATE,
                "temp_parent_id": parent.db_id,
                "db_id": None,
                "slug": None,
                "error": None,
            }
        )
    else:
        candidate = action.candidate
        if candidate.primary_parent_id != parent.db_id:
            return chain
        node = current.model_copy(
            update={
                "status": NodeStatus.GREEN,
                "db_id": candidate.id,
                "slug": candidate.slug,
                "name": candidate.name,
                "temp_parent_id": None,
                "error": None,
            }
        )

    update = {field: node}
    rebound = (node.status, node.db_id) != (current.status, current.db_id)
    if action.level == 3 and rebound and chain.l4 is not None:
        # A sub-topic bound under the old topic no longer fits the new one
        update["l4"] = ChainNode(name=chain.l4.name, level=4)
    return chain.model_copy(update=update)
