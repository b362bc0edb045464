"""
Translate fitted linear models into query expressions.

A fitted model becomes an expression tree (intercept plus coefficient times
term, where a categorical term is a CASE indicator), which any Dialect can
compile to SQL. predict_in_database() attaches that expression to a proxy so
the data source computes the predictions row by row.
"""

import logging
from typing import List, Optional, Sequence, Union

from .query import Case, Column, Expr, Literal, TableProxy

logger = logging.getLogger(__name__)

RowKey = Union[str, Sequence[str]]


def key_columns(id_col: Optional[RowKey]) -> List[str]:
    """Normalize a row identifier (one column name or several) to a list of names."""
    if not id_col:
        return []
    if isinstance(id_col, str):
        return [id_col]
    return list(id_col)


def term_expression(term) -> Expr:
    """The value of one design term for a row: the column, or a 0/1 level indicator."""
    if term.level is None:
        return Column(term.column)
    return Case(Column(term.column).eq(term.level), Literal(1), Literal(0))


def model_to_expression(model) -> Expr:
    """
    Build the prediction formula of a fitted model.

    Categorical levels not seen at fit time (and NULL categories) match no
    indicator and therefore get the reference-level prediction.
    """
    expr = Literal(float(model.intercept))
    for term in model.terms:
        expr = expr + Literal(float(term.coefficient)) * term_expression(term)
    return expr


def model_to_sql(model, dialect) -> str:
    """
    Render a fitted model as a SQL expression for the given dialect.

    Example:
        >>> model_to_sql(model, SqliteDialect())
        '((100.0 + (4.0 * "budget")) + (0.0 * "runtime"))'
    """
    return dialect.compile_expr(model_to_expression(model))


def predict_in_database(model, proxy: TableProxy, id_col: Optional[RowKey] = None, output: str = "fit") -> TableProxy:
    """
    Derive a proxy whose rows hold the model's predictions, computed by the data source.

    Args:
        model: Fitted model
        proxy: Rows to score
        id_col: Row identifier column(s) to carry alongside the prediction
        output: Name of the prediction column

    Returns:
        TableProxy: Lazy proxy with columns (*id_col, output) or (output,)
    """
    expr = model_to_expression(model)
    logger.debug(f"Prediction expression for {model.target}: {expr}")
    return proxy.select(*key_columns(id_col), **{output: expr})
