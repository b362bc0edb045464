"""
Movies table schema descriptor and inspection tools.

Declares the fixed 15-column movies schema with semantic types, verifies a
live table against it, and prints table/column information.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple
import pandas as pd

from .errors import SchemaError

logger = logging.getLogger(__name__)

NUMERIC = "numeric"
CATEGORICAL = "categorical"
TEXT = "text"

_NUMERIC_TYPE_NAMES = frozenset({
    "INT", "INTEGER", "TINYINT", "SMALLINT", "MEDIUMINT", "BIGINT", "UNSIGNED BIG INT",
    "INT2", "INT4", "INT8", "SERIAL", "SMALLSERIAL", "BIGSERIAL",
    "REAL", "FLOAT", "FLOAT4", "FLOAT8", "DOUBLE", "DOUBLE PRECISION",
    "NUMERIC", "DECIMAL",
})


@dataclass(frozen=True)
class ColumnSpec:
    """A single column: its name, semantic kind and missing-value convention."""

    name: str
    kind: str
    zero_is_missing: bool = False

    @property
    def is_numeric(self) -> bool:
        return self.kind == NUMERIC

    @property
    def is_categorical(self) -> bool:
        return self.kind == CATEGORICAL


@dataclass(frozen=True)
class TableSchema:
    """Ordered set of column specs for one logical table."""

    name: str
    columns: Tuple[ColumnSpec, ...]

    @property
    def column_names(self) -> List[str]:
        return [c.name for c in self.columns]

    @property
    def numeric_columns(self) -> List[str]:
        return [c.name for c in self.columns if c.is_numeric]

    @property
    def categorical_columns(self) -> List[str]:
        return [c.name for c in self.columns if c.is_categorical]

    def get(self, name: str) -> Optional[ColumnSpec]:
        for column in self.columns:
            if column.name == name:
                return column
        return None

    def kind_of(self, name: str) -> Optional[str]:
        spec = self.get(name)
        return spec.kind if spec else None

    def verify(self, table: str, actual_columns: Sequence[str], actual_types: Optional[Dict[str, str]] = None):
        """
        Verify that a live table matches this schema.

        Args:
            table: Live table name (for error messages)
            actual_columns: Column names reported by the data source
            actual_types: Optional mapping of column name to declared storage type

        Raises:
            SchemaError: If columns are missing or unexpected, or a numeric
                column is stored with a non-numeric type
        """
        expected = set(self.column_names)
        actual = set(actual_columns)

        missing = sorted(expected - actual)
        unexpected = sorted(actual - expected)
        if missing or unexpected:
            parts = []
            if missing:
                parts.append(f"missing columns: {', '.join(missing)}")
            if unexpected:
                parts.append(f"unexpected columns: {', '.join(unexpected)}")
            raise SchemaError(f"Table '{table}' does not match the {self.name} schema ({'; '.join(parts)})")

        if actual_types:
            for name in self.numeric_columns:
                declared = actual_types.get(name) or ""
                # SQLite allows untyped columns; nothing to check there
                if declared and not is_numeric_type(declared):
                    raise SchemaError(
                        f"Column '{table}.{name}' must be numeric but is stored as '{declared}'"
                    )

        logger.debug(f"Table '{table}' matches the {self.name} schema")


def is_numeric_type(type_name: str) -> bool:
    """
    True if a declared SQL storage type holds numbers (covers PostgreSQL and SQLite names).

    Precision and scale are ignored, so NUMERIC(10, 2) is numeric; INTERVAL and POINT are not.
    """
    base = type_name.split("(", 1)[0]
    return " ".join(base.upper().split()) in _NUMERIC_TYPE_NAMES


MOVIES_SCHEMA = TableSchema(
    name="movies",
    columns=(
        ColumnSpec("budget", NUMERIC, zero_is_missing=True),
        ColumnSpec("company", CATEGORICAL),
        ColumnSpec("country", CATEGORICAL),
        ColumnSpec("director", TEXT),
        ColumnSpec("genre", CATEGORICAL),
        ColumnSpec("gross", NUMERIC),
        ColumnSpec("name", TEXT),
        ColumnSpec("rating", CATEGORICAL),
        ColumnSpec("released", TEXT),
        ColumnSpec("runtime", NUMERIC),
        ColumnSpec("score", NUMERIC),
        ColumnSpec("star", TEXT),
        ColumnSpec("votes", NUMERIC),
        ColumnSpec("writer", TEXT),
        ColumnSpec("year", NUMERIC),
    ),
)


def inspect_schema(session, tables_of_interest: List[str] = None) -> pd.DataFrame:
    """
    Inspect database schema and return a summary DataFrame.

    Args:
        session: Open Session
        tables_of_interest: List of table names to inspect (default: all tables)

    Returns:
        pd.DataFrame: One row per column with table_name, column_name,
            data_type and table_row_count
    """
    all_tables = session.list_tables()

    if tables_of_interest:
        tables_to_inspect = [t for t in all_tables if t in tables_of_interest]
    else:
        tables_to_inspect = all_tables

    schema_info = []

    for table in tables_to_inspect:
        columns = session.table_columns(table)
        row_count = session.row_count(table)

        for column_name, data_type in columns:
            schema_info.append({
                "table_name": table,
                "column_name": column_name,
                "data_type": data_type,
                "table_row_count": row_count
            })

    return pd.DataFrame(schema_info, columns=["table_name", "column_name", "data_type", "table_row_count"])


def print_schema_summary(session, table: str = "movies", schema: TableSchema = MOVIES_SCHEMA):
    """
    Print a human-readable summary of one table next to its expected schema.
    """
    print("=" * 80)
    print("SCHEMA INSPECTION")
    print("=" * 80)

    all_tables = session.list_tables()
    print(f"\nTotal tables in database: {len(all_tables)}")

    print(f"\n{'-' * 80}")
    print(f"TABLE: {table}")
    print(f"{'-' * 80}")

    if table not in all_tables:
        print(f"  ⚠️  Table '{table}' does NOT exist in the database!")
        print(f"  → Load it first: python -m analytics.movie_explorer.run --load-csv movies.csv")
        return

    print(f"  Row count: {session.row_count(table)}")

    columns = session.table_columns(table)
    print(f"  Columns ({len(columns)}):")
    for column_name, data_type in columns:
        kind = schema.kind_of(column_name) or "UNEXPECTED"
        print(f"    - {column_name:<30} {data_type:<20} {kind}")

    missing = [c for c in schema.column_names if c not in {name for name, _ in columns}]
    for column_name in missing:
        print(f"    - {column_name:<30} {'MISSING':<20} {schema.kind_of(column_name)}")

    print("\n" + "=" * 80)
    print("SCHEMA INSPECTION COMPLETE")
    print("=" * 80)
