# ============================================================================
# MODULE CONTEXT - POSTGRESQL REPOSITORY
# ============================================================================
# STATUS: Core Infrastructure - PostgreSQL connection management
# PURPOSE: Scoped, read-only PostGIS connections for subset queries and health checks
# EXPORTS: PostgreSQLRepository
# DEPENDENCIES: psycopg, config
# SCOPE: Read-only database operations
# PATTERNS: Repository pattern, explicit connection handles, context managers
# ============================================================================

"""
PostgreSQL Repository - Read-Only Database Access

Connection management shared by the point subset repository:
- Connection string from the config module (password or managed identity)
- connect() yields a connection and always closes it, including on errors
- cursor(conn) runs on a caller-supplied connection

Connections are handles, not hidden state: callers open one with connect()
and pass it to every query method, so a session can hold one connection for
its lifetime while one-shot callers open one per request.

Usage:
    repo = PostgreSQLRepository(schema_name='public')
    with repo.connect() as conn:
        with repo.cursor(conn) as cur:
            cur.execute("SELECT 1")
"""

import logging
from contextlib import contextmanager
from typing import Iterator, Optional

import psycopg
from psycopg import sql
from psycopg.rows import dict_row

logger = logging.getLogger(__name__)


class PostgreSQLRepository:
    """
    PostgreSQL repository base class with connection management.

    Connections are opened with autocommit (every statement here is a read)
    and a dict_row factory. A statement timeout is applied per connection.
    """

    def __init__(self, connection_string: Optional[str] = None,
                 schema_name: str = 'public',
                 statement_timeout_seconds: Optional[int] = None):
        """
        Args:
            connection_string: Explicit connection string. Resolved lazily from
                the config module on first connect when not provided.
            schema_name: Database schema holding the tables
            statement_timeout_seconds: Per-statement timeout applied on connect
        """
        self.schema_name = schema_name
        self._conn_string = connection_string
        self.statement_timeout_seconds = statement_timeout_seconds

    @property
    def conn_string(self) -> str:
        if self._conn_string is None:
            from config import get_postgres_connection_string
            self._conn_string = get_postgres_connection_string()
        return self._conn_string

    @contextmanager
    def connect(self) -> Iterator[psycopg.Connection]:
        """
        Context manager for a PostgreSQL connection.

        Yields:
            psycopg.Connection with dict_row factory and autocommit on

        Raises:
            psycopg.Error: On connection failures (network, auth, etc.)
        """
        conn = None
        try:
            logger.debug(f"Opening PostgreSQL connection (schema: {self.schema_name})")
            conn = psycopg.connect(self.conn_string, row_factory=dict_row, autocommit=True)

            if self.statement_timeout_seconds:
                conn.execute(
                    sql.SQL("SET statement_timeout = {}").format(
                        sql.Literal(f"{int(self.statement_timeout_seconds)}s")
                    )
                )

            yield conn

        except psycopg.Error as e:
            logger.error(f"PostgreSQL error ({type(e).__name__}): {e}")
            raise

        finally:
            if conn is not None:
                conn.close()
                logger.debug("Connection closed")

    @contextmanager
    def cursor(self, conn: psycopg.Connection) -> Iterator[psycopg.Cursor]:
        """Cursor on a caller-supplied connection."""
        with conn.cursor() as cur:
            yield cur

    def table_exists(self, conn: psycopg.Connection, table_name: str) -> bool:
        """True if table_name exists in the configured schema."""
        with self.cursor(conn) as cur:
            cur.execute("""
                SELECT EXISTS (
                    SELECT FROM information_schema.tables
                    WHERE table_schema = %s
                    AND table_name = %s
                ) AS exists
            """, (self.schema_name, table_name))
            result = cur.fetchone()
            return bool(result['exists']) if result else False
