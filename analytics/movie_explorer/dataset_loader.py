"""
Load the movies dataset into the database.

Creates the movies table from the schema descriptor and bulk-inserts rows
from a CSV file (or an in-memory DataFrame). Needs a read_write session.
"""

import logging
from pathlib import Path
from typing import List, Optional, Tuple, Union
import pandas as pd

from .errors import SchemaError
from .schema_inspector import MOVIES_SCHEMA, TableSchema

logger = logging.getLogger(__name__)

BATCH_SIZE = 1000


def create_movies_table(session, table: Optional[str] = None, schema: TableSchema = MOVIES_SCHEMA):
    """Create the table (if it does not exist) with one column per schema entry."""
    table = table or session.config.table
    session.execute(session.dialect.create_table_sql(table, schema), fetch=False)
    logger.info(f"   ✓ Table '{table}' ready")


def _to_records(frame: pd.DataFrame, schema: TableSchema) -> List[Tuple]:
    records = []
    for row in frame.itertuples(index=False, name=None):
        record = []
        for spec, value in zip(schema.columns, row):
            if pd.isna(value):
                record.append(None)
            elif spec.is_numeric:
                record.append(float(value))
            else:
                record.append(str(value))
        records.append(tuple(record))
    return records


def load_movies_frame(
    session,
    frame: pd.DataFrame,
    table: Optional[str] = None,
    schema: TableSchema = MOVIES_SCHEMA,
    create: bool = True
) -> int:
    """
    Insert the rows of a DataFrame into the movies table.

    Args:
        session: Open read_write Session
        frame: Rows holding at least every schema column (extra columns are ignored)
        table: Target table (default: the configured table)
        schema: Table schema
        create: Create the table first if it does not exist

    Returns:
        int: Number of rows inserted

    Raises:
        SchemaError: If the frame lacks schema columns
    """
    table = table or session.config.table

    missing = [c for c in schema.column_names if c not in frame.columns]
    if missing:
        raise SchemaError(f"Input rows are missing columns: {', '.join(missing)}")

    extra = [c for c in frame.columns if c not in schema.column_names]
    if extra:
        logger.warning(f"   ⚠️  Ignoring columns not in the {schema.name} schema: {', '.join(extra)}")

    if create:
        create_movies_table(session, table, schema)

    frame = frame[schema.column_names]
    if frame.empty:
        logger.info("No rows to insert")
        return 0

    records = _to_records(frame, schema)
    query = session.dialect.insert_sql(table, schema.column_names)

    for start in range(0, len(records), BATCH_SIZE):
        session.execute_many(query, records[start:start + BATCH_SIZE])

    logger.info(f"   ✓ Inserted {len(records)} rows into '{table}'")
    return len(records)


def load_movies_csv(
    session,
    csv_path: Union[str, Path],
    table: Optional[str] = None,
    schema: TableSchema = MOVIES_SCHEMA
) -> int:
    """
    Load a movies CSV file into the database.

    Returns:
        int: Number of rows inserted
    """
    csv_path = Path(csv_path)
    if not csv_path.exists():
        raise FileNotFoundError(f"CSV file not found: {csv_path}")

    logger.info(f"📄 Reading CSV: {csv_path}")
    frame = pd.read_csv(csv_path)
    logger.info(f"   ✓ Read {len(frame)} rows")

    return load_movies_frame(session, frame, table=table, schema=schema)
