"""
Grouped summary queries over a TableProxy.

All functions here are lazy: they return new proxies describing a GROUP BY
query. Rows are only fetched by materialize().
"""

import logging
from typing import Mapping, Optional, Tuple, Union
import pandas as pd

from .query import Column, Expr, TableProxy

logger = logging.getLogger(__name__)

Source = Union[str, Expr]


def group_summary(
    proxy: TableProxy,
    group_col: Optional[str],
    aggregations: Mapping[str, Tuple[Source, str]]
) -> TableProxy:
    """
    Build a grouped summary query.

    Args:
        proxy: Input table
        group_col: Column to group by, or None to aggregate the whole table
        aggregations: Mapping of output column name to (source, reducer), where
            source is a column name or an expression and reducer is one of
            'mean', 'count' or 'sum'. Nulls are excluded by every reducer.

    Returns:
        TableProxy: Lazy proxy with one row per group, ordered by the group column

    Example:
        >>> summary = group_summary(movies, "rating", {"avg_runtime": ("runtime", "mean")})
        >>> materialize(summary)
          rating  avg_runtime
        0     PG         90.0
        1      R        110.0
    """
    items = []
    for name, (source, reducer) in aggregations.items():
        operand = Column(source) if isinstance(source, str) else source
        items.append((name, reducer, operand))

    group_by = (group_col,) if group_col is not None else ()
    return proxy.aggregate(group_by, items)


def count_by(proxy: TableProxy, group_col: str, name: str = "n", descending: bool = False) -> TableProxy:
    """
    Count rows per category (null categories form their own group).

    Args:
        proxy: Input table
        group_col: Category column
        name: Output column name for the counts
        descending: Order by count, largest first, instead of by category
    """
    summary = proxy.aggregate((group_col,), ((name, "count", None),))
    if descending:
        summary = summary.order_by(f"-{name}", group_col)
    return summary


def materialize(proxy: TableProxy) -> pd.DataFrame:
    """
    Fetch the rows of a proxy.

    Returns:
        pd.DataFrame: Materialized rows, in query order

    Raises:
        QueryError: For malformed requests (unknown column or reducer)
        DatabaseConnectionError: On transport failure during fetch
    """
    df = proxy.materialize()
    logger.info(f"Materialized {len(df)} rows x {len(df.columns)} columns")
    return df
