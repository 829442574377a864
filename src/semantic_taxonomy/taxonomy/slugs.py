"""Slug and ancestry-path derivation for topic nodes."""

from __future__ import annotations

import re

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def slugify(text: str) -> str:
    return _NON_ALNUM.sub("-", text.lower().strip()).strip("-")


def child_slug(parent_slug: str, name: str) -> str:
    fragment = slugify(name)
    return f"{parent_slug}-{fragment}" if parent_slug else fragment


def child_path(parent_path: str, name: str) -> str:
    """Parent path plus this node's fragment, dot-delimited and lowercase."""
    fragment = slugify(name)
    prefix = normalize_path(parent_path)
    return f"{prefix}.{fragment}" if prefix else fragment


def normalize_path(path: str) -> str:
    # Older rows used " > " as the separator
    return (path or "").lower().replace(" > ", ".").strip(".")
