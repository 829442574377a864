"""
Database Package

Provides SQLAlchemy async session management, model definitions
for PostgreSQL with pgvector, and the hierarchy store implementations.
"""

from .session import get_async_session, async_engine, AsyncSessionLocal
from .models import (
    Base,
    Topic,
    PrelimQuestion,
    PrelimQuestionStatement,
    PrelimQuestionPair,
    PrelimQuestionTopic,
)
from .store import HierarchyStore
from .hierarchy_store import PgHierarchyStore
from .memory_store import InMemoryHierarchyStore

__all__ = [
    "get_async_session",
    "async_engine",
    "AsyncSessionLocal",
    "Base",
    "Topic",
    "PrelimQuestion",
    "PrelimQuestionStatement",
    "PrelimQuestionPair",
    "PrelimQuestionTopic",
    "HierarchyStore",
    "PgHierarchyStore",
    "InMemoryHierarchyStore",
]
