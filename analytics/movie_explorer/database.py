"""
Database connection utilities for the Movie Explorer pipeline.

A Session owns exactly one DB-API connection (psycopg2 or sqlite3), hands out
TableProxy objects for named tables, and executes the SQL compiled from them.
Sessions are context managers and close() is idempotent.
"""

import logging
import sqlite3
from contextlib import contextmanager
from typing import Any, Dict, Generator, List, Optional, Sequence, Tuple
import pandas as pd
import psycopg2

from .config import Config, get_config
from .dialects import Dialect, get_dialect
from .errors import DatabaseConnectionError, MovieExplorerError, NotFoundError
from .query import TableProxy, find_sources, source_proxy
from .schema_inspector import MOVIES_SCHEMA, TableSchema

logger = logging.getLogger(__name__)

DRIVER_ERRORS = (psycopg2.Error, sqlite3.Error)


class Session:
    """An open connection to the movies data source."""

    def __init__(self, config: Config, connection, dialect: Dialect):
        """
        Initialize the session. Use connect() rather than calling this directly.

        Args:
            config: Validated configuration
            connection: Open DB-API connection
            dialect: SQL dialect matching the connection's driver
        """
        self.config = config
        self.dialect = dialect
        self._conn = connection
        self._verified_tables = set()

    @property
    def closed(self) -> bool:
        return self._conn is None

    @contextmanager
    def cursor(self) -> Generator:
        """
        Context manager yielding a cursor; commits on success, rolls back on error.

        Driver exceptions are translated into pipeline errors by the dialect.

        Example:
            >>> with session.cursor() as cursor:
            >>>     cursor.execute("SELECT 1")
        """
        if self._conn is None:
            raise DatabaseConnectionError("Session is closed")

        cursor = None
        try:
            cursor = self._conn.cursor()
            yield cursor
            self._conn.commit()
        except DRIVER_ERRORS as e:
            self._rollback()
            logger.error(f"Database error: {e}")
            raise self.dialect.classify_error(e) from e
        except Exception:
            self._rollback()
            raise
        finally:
            if cursor is not None:
                try:
                    cursor.close()
                except DRIVER_ERRORS as e:
                    logger.warning(f"Failed to close cursor: {e}")

    def _rollback(self):
        try:
            self._conn.rollback()
        except DRIVER_ERRORS as e:
            logger.warning(f"Rollback failed: {e}")

    def execute(self, query: str, params: Optional[Sequence] = None, fetch: bool = True) -> Optional[List[Dict[str, Any]]]:
        """
        Execute a SQL query and return results.

        Args:
            query: SQL query string
            params: Query parameters (optional)
            fetch: Whether to fetch results (default: True)

        Returns:
            list of dict: Query results (if fetch=True)
            None: If fetch=False
        """
        with self.cursor() as cursor:
            cursor.execute(query, params or ())
            if not fetch:
                return None
            names = [d[0] for d in cursor.description]
            return [dict(zip(names, row)) for row in cursor.fetchall()]

    def execute_many(self, query: str, data: List[Tuple]):
        """
        Execute a query multiple times with different parameter sets.

        Example:
            >>> session.execute_many(
            >>>     'INSERT INTO "movies" ("name", "year") VALUES (?, ?)',
            >>>     [("Alien", 1979), ("Heat", 1995)]
            >>> )
        """
        with self.cursor() as cursor:
            cursor.executemany(query, data)
        logger.info(f"Executed batch insert/update: {len(data)} rows")

    def fetch_frame(self, query: str, params: Optional[Sequence] = None) -> pd.DataFrame:
        """Execute a query and return its rows as a DataFrame (column order preserved)."""
        with self.cursor() as cursor:
            cursor.execute(query, params or ())
            names = [d[0] for d in cursor.description]
            rows = cursor.fetchall()
        return pd.DataFrame.from_records(rows, columns=names)

    def list_tables(self) -> List[str]:
        """Tables visible to this session (views included when use_views is set)."""
        with self.cursor() as cursor:
            return self.dialect.list_tables(cursor, include_views=self.config.use_views)

    def table_columns(self, table: str) -> List[Tuple[str, str]]:
        """(column name, declared type) pairs for a table, in ordinal order."""
        with self.cursor() as cursor:
            return self.dialect.table_columns(cursor, table)

    def row_count(self, table: str) -> int:
        with self.cursor() as cursor:
            cursor.execute(self.dialect.row_count_sql(table))
            return cursor.fetchone()[0]

    def table(self, name: Optional[str] = None, schema: Optional[TableSchema] = MOVIES_SCHEMA) -> TableProxy:
        """
        Get a lazy proxy for a named table.

        Args:
            name: Table (or view) name; defaults to the configured table
            schema: Expected schema, verified on first materialization (None skips the check)

        Returns:
            TableProxy: Proxy bound to this session

        Raises:
            NotFoundError: If the table does not exist
        """
        name = name or self.config.table
        if name not in self.list_tables():
            kind = "table or view" if self.config.use_views else "table"
            raise NotFoundError(f"No {kind} named '{name}' in database '{self.config.database}'")

        columns = self.table_columns(name)
        return source_proxy(
            name,
            [column for column, _ in columns],
            session=self,
            column_types=dict(columns),
            schema=schema,
        )

    def verify_sources(self, proxy: TableProxy):
        """Check each source table of a proxy against its schema, once per table."""
        for source in find_sources(proxy.node):
            if source.schema is None or source.table in self._verified_tables:
                continue
            source.schema.verify(source.table, source.columns, dict(source.column_types))
            self._verified_tables.add(source.table)

    def materialize(self, proxy: TableProxy) -> pd.DataFrame:
        """
        Compile a proxy and fetch its rows.

        Raises:
            SchemaError: If a source table does not match its schema
            QueryError: If the query is malformed
            DatabaseConnectionError: On transport failure
        """
        self.verify_sources(proxy)
        query = self.dialect.compile(proxy.node)
        logger.debug(f"Materializing: {query}")
        df = self.fetch_frame(query)
        logger.debug(f"Fetched {len(df)} rows")
        return df

    def close(self):
        """Close the connection. Safe to call more than once."""
        if self._conn is None:
            return
        conn, self._conn = self._conn, None
        try:
            conn.close()
            logger.info("Database connection closed")
        except DRIVER_ERRORS as e:
            logger.warning(f"Error while closing connection: {e}")

    def __enter__(self) -> "Session":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    def __repr__(self) -> str:
        state = "closed" if self.closed else "open"
        return f"Session(driver={self.dialect.name!r}, database={self.config.database!r}, {state})"


def connect(config: Optional[Config] = None) -> Session:
    """
    Open a session against the configured data source.

    The configuration is validated before any driver call is made.

    Args:
        config: Configuration (default: global config from the environment)

    Returns:
        Session: Open session; close it (or use it as a context manager)

    Raises:
        ConfigError: If the configuration is incomplete or invalid
        DatabaseConnectionError: If the data source is unreachable or rejects the credentials
    """
    if config is None:
        config = get_config()
    config.validate()

    dialect = get_dialect(config.driver)
    logger.info(f"Connecting to {config.driver} database '{config.database}' ({config.session_mode})")
    connection = dialect.connect(config)
    logger.info("Database connection established")
    return Session(config, connection, dialect)


def test_connection(config: Optional[Config] = None) -> bool:
    """
    Test the database connection.

    Returns:
        bool: True if connection is successful, False otherwise
    """
    session = None
    try:
        session = connect(config)
        with session.cursor() as cursor:
            cursor.execute("SELECT 1")
            result = cursor.fetchone()
        logger.info("Database connection test successful")
        return result[0] == 1
    except MovieExplorerError as e:
        logger.error(f"Database connection test failed: {e}")
        return False
    finally:
        if session is not None:
            session.close()
