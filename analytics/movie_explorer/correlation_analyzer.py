"""
Correlation analyzer module for the Movie Explorer pipeline.

Computes pairwise-complete Pearson (or Spearman) correlations across the
numeric movie columns, then shaves the matrix down to unique pairs ranked by
strength.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple
import pandas as pd
import numpy as np
from scipy import stats

from .query import Column, Literal, NullIf, TableProxy
from .schema_inspector import MOVIES_SCHEMA, TableSchema

logger = logging.getLogger(__name__)

Pair = Tuple[str, str]


@dataclass(frozen=True, eq=False)
class CorrelationMatrix:
    """
    Symmetric correlation matrix.

    An undefined coefficient (zero variance or fewer than two complete
    observations) is stored as None, never as 0.0. The diagonal is 1.0.
    """

    columns: Tuple[str, ...]
    method: str
    coefficients: Dict[Pair, Optional[float]]
    p_values: Dict[Pair, Optional[float]]
    n_samples: Dict[Pair, int]

    def coefficient(self, a: str, b: str) -> Optional[float]:
        return self.coefficients[(a, b)]

    def is_defined(self, a: str, b: str) -> bool:
        return self.coefficients[(a, b)] is not None

    def to_frame(self) -> pd.DataFrame:
        """Square DataFrame view; undefined coefficients become NaN."""
        data = [
            [np.nan if self.coefficients[(a, b)] is None else self.coefficients[(a, b)] for b in self.columns]
            for a in self.columns
        ]
        return pd.DataFrame(data, index=list(self.columns), columns=list(self.columns))


@dataclass(frozen=True)
class CorrelationEdge:
    """One unordered pair of columns and its coefficient."""

    x: str
    y: str
    coefficient: float
    p_value: Optional[float]
    n_samples: int


def compute_correlation(
    x: pd.Series,
    y: pd.Series,
    method: str = "pearson"
) -> Dict[str, Optional[float]]:
    """
    Compute correlation between two variables on their pairwise-complete rows.

    Args:
        x: First variable
        y: Second variable
        method: Correlation method ('pearson' or 'spearman')

    Returns:
        dict: {
            'correlation': float or None when undefined,
            'p_value': float or None,
            'n_samples': int
        }
    """
    if method not in ("pearson", "spearman"):
        raise ValueError(f"Unknown correlation method: {method}")

    # Remove rows with missing values
    valid_mask = x.notna() & y.notna()
    x_clean = x[valid_mask]
    y_clean = y[valid_mask]

    n_samples = int(len(x_clean))
    undefined = {"correlation": None, "p_value": None, "n_samples": n_samples}

    if n_samples < 2:
        return undefined

    # Zero variance within the complete rows makes the coefficient undefined
    if x_clean.nunique() < 2 or y_clean.nunique() < 2:
        return undefined

    if method == "pearson":
        corr, p_value = stats.pearsonr(x_clean, y_clean)
    else:
        corr, p_value = stats.spearmanr(x_clean, y_clean)

    if np.isnan(corr):
        return undefined

    return {
        "correlation": float(corr),
        "p_value": None if np.isnan(p_value) else float(p_value),
        "n_samples": n_samples
    }


def _default_columns(rows: pd.DataFrame, schema: TableSchema) -> List[str]:
    columns = [c for c in schema.numeric_columns if c in rows.columns]
    if columns:
        return columns
    return rows.select_dtypes(include="number").columns.tolist()


def correlate(
    rows: pd.DataFrame,
    columns: Optional[Sequence[str]] = None,
    method: str = "pearson",
    schema: TableSchema = MOVIES_SCHEMA
) -> CorrelationMatrix:
    """
    Correlate every pair of numeric columns.

    Each pair uses only the rows where both of its columns are non-null; rows
    are never dropped globally. Each pair is computed once and stored under
    both orientations, so the matrix is exactly symmetric.

    Args:
        rows: Materialized rows
        columns: Numeric columns to correlate (default: the schema's numeric
            columns present in rows, falling back to all numeric dtypes)
        method: 'pearson' or 'spearman'
        schema: Schema used to pick default columns

    Returns:
        CorrelationMatrix
    """
    if method not in ("pearson", "spearman"):
        raise ValueError(f"Unknown correlation method: {method}")

    columns = list(columns) if columns is not None else _default_columns(rows, schema)
    missing = [c for c in columns if c not in rows.columns]
    if missing:
        raise ValueError(f"Columns not found in rows: {', '.join(missing)}")

    data = rows[columns].apply(pd.to_numeric, errors="coerce").astype(float)

    coefficients = {}
    p_values = {}
    n_samples = {}

    for i, a in enumerate(columns):
        coefficients[(a, a)] = 1.0
        p_values[(a, a)] = None
        n_samples[(a, a)] = int(data[a].notna().sum())

        for b in columns[i + 1:]:
            result = compute_correlation(data[a], data[b], method=method)
            for pair in ((a, b), (b, a)):
                coefficients[pair] = result["correlation"]
                p_values[pair] = result["p_value"]
                n_samples[pair] = result["n_samples"]

            if result["correlation"] is None:
                logger.warning(f"   ⚠️  Correlation {a} ~ {b} is undefined (n={result['n_samples']})")

    return CorrelationMatrix(
        columns=tuple(columns),
        method=method,
        coefficients=coefficients,
        p_values=p_values,
        n_samples=n_samples,
    )


def shave_and_rank(matrix: CorrelationMatrix) -> List[CorrelationEdge]:
    """
    Reduce a correlation matrix to ranked unique pairs.

    Drops the diagonal, the upper triangle and undefined coefficients, then
    sorts by absolute coefficient (largest first). Each pair is named with
    x < y, so ties are ordered by column names regardless of column order.

    Returns:
        list of CorrelationEdge
    """
    edges = []
    for i, a in enumerate(matrix.columns):
        for b in matrix.columns[i + 1:]:
            r = matrix.coefficients[(a, b)]
            if r is None:
                continue
            x, y = sorted((a, b))
            edges.append(CorrelationEdge(
                x=x,
                y=y,
                coefficient=r,
                p_value=matrix.p_values[(a, b)],
                n_samples=matrix.n_samples[(a, b)],
            ))

    edges.sort(key=lambda e: (-abs(e.coefficient), e.x, e.y))
    return edges


def edges_to_frame(edges: Sequence[CorrelationEdge]) -> pd.DataFrame:
    """Tidy DataFrame of ranked edges (x, y, correlation, p_value, n_samples)."""
    return pd.DataFrame(
        [
            {
                "x": e.x,
                "y": e.y,
                "correlation": e.coefficient,
                "p_value": e.p_value,
                "n_samples": e.n_samples,
            }
            for e in edges
        ],
        columns=["x", "y", "correlation", "p_value", "n_samples"],
    )


def numeric_view(proxy: TableProxy, schema: TableSchema = MOVIES_SCHEMA) -> TableProxy:
    """
    Select the schema's numeric columns, reading zero-as-missing columns as NULL.
    """
    exprs = {}
    for name in schema.numeric_columns:
        if name not in proxy.columns:
            continue
        spec = schema.get(name)
        exprs[name] = NullIf(Column(name), Literal(0)) if spec.zero_is_missing else Column(name)
    return proxy.select(**exprs)


def log_correlation_summary(edges: Sequence[CorrelationEdge], top_n: int = 5):
    """Log the strongest positive and negative correlations."""
    logger.info("=" * 80)
    logger.info("CORRELATION SUMMARY")
    logger.info("=" * 80)

    if not edges:
        logger.info("   No defined correlations")
        return

    positive = [e for e in edges if e.coefficient > 0][:top_n]
    negative = [e for e in edges if e.coefficient < 0][:top_n]

    if positive:
        logger.info(f"   Top {len(positive)} positive correlations:")
        for e in positive:
            logger.info(f"      {e.x + ' ~ ' + e.y:40} {e.coefficient:+.4f} (n={e.n_samples})")

    if negative:
        logger.info(f"   Top {len(negative)} negative correlations:")
        for e in negative:
            logger.info(f"      {e.x + ' ~ ' + e.y:40} {e.coefficient:+.4f} (n={e.n_samples})")
