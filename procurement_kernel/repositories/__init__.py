"""
Repository interfaces and their in-memory and SQLAlchemy foundations.

Aggregate repositories in ``procurement_modules`` build on the helpers
here; the kernel itself only owns audit entries and sequence counters.
"""

from procurement_kernel.repositories.base import AuditRepository, SequenceAllocator
from procurement_kernel.repositories.memory import (
    InMemoryAuditRepository,
    InMemoryRepository,
    InMemorySequenceAllocator,
    InMemoryStore,
)
from procurement_kernel.repositories.sql import SqlAuditRepository, SqlRepository

__all__ = [
    "AuditRepository",
    "InMemoryAuditRepository",
    "InMemoryRepository",
    "InMemorySequenceAllocator",
    "InMemoryStore",
    "SequenceAllocator",
    "SqlAuditRepository",
    "SqlRepository",
]
