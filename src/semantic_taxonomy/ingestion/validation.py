"""
Item validation.

Validation never raises: every rule that fails contributes one
human-readable message, and an item is valid only when there are none.
"""

from __future__ import annotations

from collections import Counter
from typing import List

from .models import (
    IngestionItem,
    McqQuestion,
    PairQuestion,
    StagedQuestion,
    StatementQuestion,
)


def validate_question(question: StagedQuestion) -> List[str]:
    errors: List[str] = []

    labels = [o.label for o in question.options]
    if not labels:
        errors.append("Options are missing")
    elif "A" not in labels:
        errors.append("Option A is missing")

    duplicates = sorted(label for label, n in Counter(labels).items() if n > 1)
    if duplicates:
        errors.append(f"Duplicate option labels: {', '.join(duplicates)}")

    if not question.correct_option:
        errors.append("Correct option missing")
    elif labels and question.correct_option not in labels:
        errors.append(f'Correct option "{question.correct_option}" is not one of the options')

    if (question.source or "").upper() == "UPSC":
        if not question.paper:
            errors.append("UPSC source requires Paper")
        if not question.year:
            errors.append("UPSC source requires Year")

    if isinstance(question, StatementQuestion):
        if not question.statements:
            errors.append("Statements are missing")
    elif isinstance(question, PairQuestion):
        if not question.pairs:
            errors.append("Pairs are missing")
    elif not isinstance(question, McqQuestion):
        errors.append(f"Unknown question type: {getattr(question, 'type', None)!r}")

    return errors


def validate_item(item: IngestionItem) -> List[str]:
    """
    Collect every reason ``item`` cannot be committed yet.
    """
    errors = validate_question(item.question)

    if not item.topic_chains:
        errors.append("At least one fully resolved topic is required")
    for chain in item.topic_chains:
        if not chain.is_fully_resolved:
            errors.append(f'Topic "{chain.raw_string}" is not fully resolved')
        for node in chain.present_nodes():
            if node.error:
                errors.append(f'Topic "{chain.raw_string}": {node.error}')

    return errors


def revalidate(item: IngestionItem) -> IngestionItem:
    """Return a copy of ``item`` with ``is_valid`` and ``validation_errors`` refreshed."""
    errors = validate_item(item)
    return item.model_copy(update={"is_valid": not errors, "validation_errors": errors})
