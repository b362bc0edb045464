"""
Movie Explorer - exploratory analysis pipeline over a movies table.

Modules:
- config: Configuration management and environment variables
- errors: Error types
- schema_inspector: Movies schema descriptor and schema inspection
- query: Lazy query builder (TableProxy)
- dialects: SQL backends (PostgreSQL, SQLite)
- database: Connector and sessions
- aggregator: Grouped summary queries
- plots: Bar charts
- correlation_analyzer: Pairwise correlations, shaved and ranked
- models: Local and in-database linear regression
- translate: Model-to-SQL translation
- dataset_loader: Load the movies CSV into the database
- results_export: Write results to disk
- run: CLI entry point for running the full pipeline
"""

__version__ = "1.0.0"

from .config import Config
from .errors import (
    ConfigError,
    DatabaseConnectionError,
    FitError,
    MovieExplorerError,
    NotFoundError,
    QueryError,
    SchemaError,
)
from .database import Session, connect
from .query import TableProxy, col, lit
from .aggregator import group_summary, count_by, materialize
from .plots import Chart, bar_chart, correlation_chart
from .correlation_analyzer import CorrelationMatrix, CorrelationEdge, correlate, shave_and_rank
from .models import LocalModel, RemoteModel, predict, compare_predictions, parse_model
from .translate import model_to_sql, predict_in_database

__all__ = [
    "Config",
    "ConfigError",
    "DatabaseConnectionError",
    "FitError",
    "MovieExplorerError",
    "NotFoundError",
    "QueryError",
    "SchemaError",
    "Session",
    "connect",
    "TableProxy",
    "col",
    "lit",
    "group_summary",
    "count_by",
    "materialize",
    "Chart",
    "bar_chart",
    "correlation_chart",
    "CorrelationMatrix",
    "CorrelationEdge",
    "correlate",
    "shave_and_rank",
    "LocalModel",
    "RemoteModel",
    "predict",
    "compare_predictions",
    "parse_model",
    "model_to_sql",
    "predict_in_database",
]
