"""Database connection module."""

from progression.core.database.cassandra import (
    CassandraConnection,
    init_cassandra,
    init_keyspace,
    init_tables,
    shutdown_cassandra,
)


__all__ = [
    "CassandraConnection",
    "init_cassandra",
    "init_keyspace",
    "init_tables",
    "shutdown_cassandra",
]
