"""
SQL backends for the Movie Explorer query builder.

Each Dialect knows how to open a DB-API connection for its driver, how to
classify that driver's exceptions into the pipeline error taxonomy, how to
list tables and columns, and how to compile plan nodes and expressions into
its SQL text. PostgreSQL goes through psycopg2; SQLite through the standard
library sqlite3 module.
"""

import logging
import math
import numbers
import sqlite3
from typing import List, Tuple

import psycopg2
import psycopg2.errors

from .errors import DatabaseConnectionError, MovieExplorerError, NotFoundError, QueryError
from .query import (
    Aggregate, BinaryOp, Case, Column, Filter, IsNull, Limit, Literal, NullIf,
    OrderBy, Select, Source, validate_plan,
)

logger = logging.getLogger(__name__)


class Dialect:
    """Base SQL dialect. Subclasses provide the driver-specific parts."""

    name = "generic"
    placeholder = "%s"
    float_type = "DOUBLE PRECISION"
    text_type = "TEXT"

    # -------------------------------------------------------------------------
    # Driver
    # -------------------------------------------------------------------------

    def connect(self, config):
        raise NotImplementedError

    def classify_error(self, exc: Exception) -> MovieExplorerError:
        """Map a driver exception to a pipeline error (not raised here)."""
        return QueryError(str(exc).strip())

    def list_tables(self, cursor, include_views: bool = False) -> List[str]:
        raise NotImplementedError

    def table_columns(self, cursor, table: str) -> List[Tuple[str, str]]:
        raise NotImplementedError

    # -------------------------------------------------------------------------
    # Expressions
    # -------------------------------------------------------------------------

    def quote_identifier(self, name: str) -> str:
        return '"' + str(name).replace('"', '""') + '"'

    def render_bool(self, value: bool) -> str:
        return "TRUE" if value else "FALSE"

    def render_literal(self, value) -> str:
        if value is None:
            return "NULL"
        if isinstance(value, bool):
            return self.render_bool(value)
        if isinstance(value, numbers.Integral):
            return str(int(value))
        if isinstance(value, numbers.Real):
            value = float(value)
            if math.isnan(value) or math.isinf(value):
                raise QueryError(f"Cannot render non-finite number {value} as SQL")
            return repr(value)
        if isinstance(value, str):
            return "'" + value.replace("'", "''") + "'"
        raise QueryError(f"Unsupported literal type: {type(value).__name__}")

    def cast_float(self, sql: str) -> str:
        return f"CAST({sql} AS {self.float_type})"

    def compile_expr(self, expr) -> str:
        if isinstance(expr, Column):
            return self.quote_identifier(expr.name)
        if isinstance(expr, Literal):
            return self.render_literal(expr.value)
        if isinstance(expr, BinaryOp):
            return f"({self.compile_expr(expr.left)} {expr.op} {self.compile_expr(expr.right)})"
        if isinstance(expr, Case):
            return (
                f"CASE WHEN {self.compile_expr(expr.condition)} "
                f"THEN {self.compile_expr(expr.then)} "
                f"ELSE {self.compile_expr(expr.otherwise)} END"
            )
        if isinstance(expr, IsNull):
            keyword = "IS NOT NULL" if expr.negate else "IS NULL"
            return f"({self.compile_expr(expr.operand)} {keyword})"
        if isinstance(expr, NullIf):
            return f"NULLIF({self.compile_expr(expr.operand)}, {self.compile_expr(expr.value)})"
        raise QueryError(f"Unsupported expression node: {type(expr).__name__}")

    def compile_reduction(self, reducer: str, operand) -> str:
        if operand is None:
            return "COUNT(*)"
        inner = self.compile_expr(operand)
        if reducer == "mean":
            return f"AVG({self.cast_float(inner)})"
        if reducer == "sum":
            return f"SUM({self.cast_float(inner)})"
        if reducer == "count":
            return f"COUNT({inner})"
        raise QueryError(f"Unknown reducer '{reducer}'")

    # -------------------------------------------------------------------------
    # Plans
    # -------------------------------------------------------------------------

    def compile(self, node) -> str:
        """
        Compile a plan tree into one SQL statement.

        Raises:
            QueryError: If the plan references unknown columns or reducers
        """
        validate_plan(node)
        return self._compile(node, 0)

    def _from(self, child, depth: int) -> str:
        if isinstance(child, Source):
            return self.quote_identifier(child.table)
        alias = self.quote_identifier(f"t{depth + 1}")
        return f"({self._compile(child, depth + 1)}) AS {alias}"

    def _compile(self, node, depth: int) -> str:
        if isinstance(node, Source):
            return f"SELECT * FROM {self.quote_identifier(node.table)}"

        source = self._from(node.child, depth)

        if isinstance(node, Select):
            items = []
            for name, expr in node.items:
                if isinstance(expr, Column) and expr.name == name:
                    items.append(self.quote_identifier(name))
                else:
                    items.append(f"{self.compile_expr(expr)} AS {self.quote_identifier(name)}")
            return f"SELECT {', '.join(items)} FROM {source}"

        if isinstance(node, Filter):
            return f"SELECT * FROM {source} WHERE {self.compile_expr(node.predicate)}"

        if isinstance(node, Aggregate):
            groups = [self.quote_identifier(name) for name in node.group_by]
            items = groups + [
                f"{self.compile_reduction(reducer, operand)} AS {self.quote_identifier(name)}"
                for name, reducer, operand in node.aggregations
            ]
            sql = f"SELECT {', '.join(items)} FROM {source}"
            if groups:
                sql += f" GROUP BY {', '.join(groups)} ORDER BY {', '.join(groups)}"
            return sql

        if isinstance(node, OrderBy):
            keys = [
                self.quote_identifier(name) + (" DESC" if descending else "")
                for name, descending in node.keys
            ]
            return f"SELECT * FROM {source} ORDER BY {', '.join(keys)}"

        if isinstance(node, Limit):
            return f"SELECT * FROM {source} LIMIT {int(node.count)}"

        raise QueryError(f"Unsupported plan node: {type(node).__name__}")

    # -------------------------------------------------------------------------
    # DDL / DML
    # -------------------------------------------------------------------------

    def create_table_sql(self, table: str, schema) -> str:
        columns = [
            f"{self.quote_identifier(c.name)} {self.float_type if c.is_numeric else self.text_type}"
            for c in schema.columns
        ]
        return f"CREATE TABLE IF NOT EXISTS {self.quote_identifier(table)} ({', '.join(columns)})"

    def insert_sql(self, table: str, columns: List[str]) -> str:
        names = ", ".join(self.quote_identifier(c) for c in columns)
        values = ", ".join([self.placeholder] * len(columns))
        return f"INSERT INTO {self.quote_identifier(table)} ({names}) VALUES ({values})"

    def row_count_sql(self, table: str) -> str:
        return f"SELECT COUNT(*) FROM {self.quote_identifier(table)}"


class PostgresDialect(Dialect):
    """PostgreSQL through psycopg2."""

    name = "postgresql"
    placeholder = "%s"
    float_type = "DOUBLE PRECISION"

    def connect(self, config):
        kwargs = {
            "host": config.host,
            "port": config.port,
            "dbname": config.database,
            "user": config.username,
            "password": config.password,
        }
        kwargs = {k: v for k, v in kwargs.items() if v is not None}
        kwargs.update(config.options)

        try:
            conn = psycopg2.connect(**kwargs)
        except psycopg2.Error as e:
            raise DatabaseConnectionError(
                f"Could not connect to postgresql database '{config.database}' on {config.host}: {e}"
            ) from e

        try:
            conn.set_session(readonly=config.session_mode == "read_only")
        except psycopg2.Error as e:
            conn.close()
            raise DatabaseConnectionError(
                f"Could not start a {config.session_mode} session on '{config.database}': {e}"
            ) from e
        return conn

    def classify_error(self, exc: Exception) -> MovieExplorerError:
        message = str(exc).strip()
        if isinstance(exc, (psycopg2.OperationalError, psycopg2.InterfaceError)):
            return DatabaseConnectionError(message)
        if isinstance(exc, psycopg2.errors.UndefinedTable):
            return NotFoundError(message)
        return QueryError(message)

    def list_tables(self, cursor, include_views: bool = False) -> List[str]:
        table_types = ["BASE TABLE", "VIEW"] if include_views else ["BASE TABLE"]
        cursor.execute(
            """
            SELECT table_name
            FROM information_schema.tables
            WHERE table_schema = current_schema()
            AND table_type = ANY(%s)
            ORDER BY table_name;
            """,
            (table_types,)
        )
        return [row[0] for row in cursor.fetchall()]

    def table_columns(self, cursor, table: str) -> List[Tuple[str, str]]:
        cursor.execute(
            """
            SELECT column_name, data_type
            FROM information_schema.columns
            WHERE table_schema = current_schema()
            AND table_name = %s
            ORDER BY ordinal_position;
            """,
            (table,)
        )
        return [(row[0], row[1]) for row in cursor.fetchall()]


class SqliteDialect(Dialect):
    """SQLite through the standard library driver."""

    name = "sqlite"
    placeholder = "?"
    float_type = "REAL"

    def render_bool(self, value: bool) -> str:
        return "1" if value else "0"

    def connect(self, config):
        kwargs = {}
        if "timeout" in config.options:
            kwargs["timeout"] = float(config.options["timeout"])

        try:
            if config.session_mode == "read_only" and config.database != ":memory:":
                conn = sqlite3.connect(f"file:{config.database}?mode=ro", uri=True, **kwargs)
            else:
                conn = sqlite3.connect(config.database, **kwargs)
        except sqlite3.Error as e:
            raise DatabaseConnectionError(f"Could not open sqlite database '{config.database}': {e}") from e
        return conn

    def classify_error(self, exc: Exception) -> MovieExplorerError:
        message = str(exc).strip()
        if isinstance(exc, sqlite3.ProgrammingError) and "closed" in message:
            return DatabaseConnectionError(message)
        if isinstance(exc, sqlite3.OperationalError):
            if "no such table" in message:
                return NotFoundError(message)
            if "unable to open" in message or "disk I/O" in message:
                return DatabaseConnectionError(message)
        return QueryError(message)

    def list_tables(self, cursor, include_views: bool = False) -> List[str]:
        types = "('table', 'view')" if include_views else "('table')"
        cursor.execute(
            f"SELECT name FROM sqlite_master WHERE type IN {types} "
            "AND name NOT LIKE 'sqlite_%' ORDER BY name"
        )
        return [row[0] for row in cursor.fetchall()]

    def table_columns(self, cursor, table: str) -> List[Tuple[str, str]]:
        cursor.execute(f"PRAGMA table_info({self.quote_identifier(table)})")
        # (cid, name, type, notnull, dflt_value, pk)
        return [(row[1], row[2]) for row in cursor.fetchall()]


_DIALECTS = {
    "postgresql": PostgresDialect,
    "sqlite": SqliteDialect,
}


def get_dialect(driver: str) -> Dialect:
    """
    Get the dialect for a driver name.

    Raises:
        QueryError: If the driver has no SQL backend
    """
    try:
        return _DIALECTS[driver]()
    except KeyError:
        raise QueryError(f"No SQL dialect for driver '{driver}'") from None
