"""Entity store adapters.

Provides:
- EntityStore protocol used by every engine component
- CassandraEntityStore (prepared statements, lightweight transactions)
- InMemoryEntityStore (embedding and tests)
"""

from .base import EntityStore
from .cassandra import CassandraEntityStore
from .memory import InMemoryEntityStore


__all__ = [
    "CassandraEntityStore",
    "EntityStore",
    "InMemoryEntityStore",
]
