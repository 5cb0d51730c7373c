"""Async Cassandra connection using cassandra-asyncio-driver.

Provides:
- Cluster connection and session lifecycle
- Session with aexecute() for non-blocking queries
- Keyspace and table initialization for content, exam and progress tables
"""

import structlog
from cassandra.auth import PlainTextAuthProvider
from cassandra.policies import DCAwareRoundRobinPolicy, TokenAwarePolicy
from cassandra_asyncio.cluster import Cluster

from progression.config.settings import Settings, get_settings
from progression.courses.models import COURSES_TABLES_CQL
from progression.exams.models import EXAMS_TABLES_CQL
from progression.progress.models import PROGRESS_TABLES_CQL


logger = structlog.get_logger(__name__)


class CassandraConnection:
    """Cassandra connection manager.

    Connection setup is synchronous; queries go through ``aexecute()``.
    """

    _cluster: Cluster | None = None
    _session = None  # Session type from cassandra_asyncio

    @classmethod
    def connect(cls, settings: Settings | None = None):
        """Establish connection to Cassandra cluster.

        Returns:
            Active Cassandra session with aexecute() support

        Raises:
            ConnectionError: If connection fails
        """
        if cls._session is not None:
            return cls._session

        settings = settings or get_settings()

        auth_provider = None
        if settings.cassandra_username and settings.cassandra_password:
            auth_provider = PlainTextAuthProvider(
                username=settings.cassandra_username,
                password=settings.cassandra_password,
            )

        cls._cluster = Cluster(
            contact_points=settings.cassandra_hosts,
            port=settings.cassandra_port,
            auth_provider=auth_provider,
            protocol_version=settings.cassandra_protocol_version,
            load_balancing_policy=TokenAwarePolicy(DCAwareRoundRobinPolicy()),
            connect_timeout=settings.cassandra_connect_timeout,
        )

        try:
            cls._session = cls._cluster.connect()
            cls._session.default_timeout = settings.cassandra_request_timeout
            logger.info(
                "cassandra_connected",
                hosts=settings.cassandra_hosts,
                port=settings.cassandra_port,
                protocol_version=settings.cassandra_protocol_version,
            )
        except Exception as e:
            logger.error("cassandra_connection_failed", error=str(e))
            raise ConnectionError(f"Failed to connect to Cassandra: {e}") from e

        return cls._session

    @classmethod
    def get_session(cls):
        """Get active session, connecting if necessary."""
        if cls._session is None:
            return cls.connect()
        return cls._session

    @classmethod
    def disconnect(cls) -> None:
        """Close connection to Cassandra."""
        if cls._session is not None:
            cls._session.shutdown()
            cls._session = None
            logger.info("cassandra_session_closed")

        if cls._cluster is not None:
            cls._cluster.shutdown()
            cls._cluster = None
            logger.info("cassandra_cluster_closed")

    @classmethod
    def is_connected(cls) -> bool:
        return cls._session is not None and not cls._session.is_shutdown


async def init_keyspace(session, keyspace: str, settings: Settings | None = None) -> None:
    """Create keyspace if not exists."""
    settings = settings or get_settings()

    # Replication strategy based on environment
    if settings.is_production:
        replication = """
            'class': 'NetworkTopologyStrategy',
            'datacenter1': 3
        """
    else:
        replication = """
            'class': 'SimpleStrategy',
            'replication_factor': 1
        """

    cql = f"""
        CREATE KEYSPACE IF NOT EXISTS {keyspace}
        WITH replication = {{{replication}}}
        AND durable_writes = true
    """

    await session.aexecute(cql)
    logger.info("keyspace_created", keyspace=keyspace)


async def init_tables(session, keyspace: str) -> None:
    """Create content, exam and progress tables."""
    groups = {
        "courses": COURSES_TABLES_CQL,
        "exams": EXAMS_TABLES_CQL,
        "progress": PROGRESS_TABLES_CQL,
    }
    for name, statements in groups.items():
        for cql_template in statements:
            await session.aexecute(cql_template.format(keyspace=keyspace))
        logger.info("tables_created", group=name, keyspace=keyspace)


async def init_cassandra(settings: Settings | None = None):
    """Connect and create the schema if it doesn't exist.

    Returns:
        Configured Cassandra session with aexecute() support
    """
    settings = settings or get_settings()

    session = CassandraConnection.connect(settings)
    await init_keyspace(session, settings.cassandra_keyspace, settings)
    session.set_keyspace(settings.cassandra_keyspace)
    await init_tables(session, settings.cassandra_keyspace)

    logger.info("cassandra_initialized", keyspace=settings.cassandra_keyspace)
    return session


async def shutdown_cassandra() -> None:
    CassandraConnection.disconnect()
