"""
Query builder for the Movie Explorer pipeline.

Queries are built as an immutable tree of plan nodes (Source, Select, Filter,
Aggregate, OrderBy, Limit) holding expression trees (Column, Literal, BinaryOp,
Case, IsNull, NullIf). Nothing touches the database while the tree is built:
a TableProxy only compiles to SQL (see dialects.py) when asked for its text
or materialized through its Session.

Example:
    >>> movies = session.table("movies")
    >>> dramas = movies.filter(col("genre").eq("Drama")).select("name", "gross")
    >>> dramas.sql()
    'SELECT "name", "gross" FROM (SELECT * FROM "movies" WHERE ("genre" = \\'Drama\\')) AS "t1"'
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple, Union

from .errors import QueryError

REDUCERS = ("mean", "count", "sum")


# =============================================================================
# Expressions
# =============================================================================

class Expr:
    """Base class for expression nodes. Supports +, -, * and / with numbers or other expressions."""

    def __add__(self, other):
        return BinaryOp("+", self, as_expr(other))

    def __radd__(self, other):
        return BinaryOp("+", as_expr(other), self)

    def __sub__(self, other):
        return BinaryOp("-", self, as_expr(other))

    def __rsub__(self, other):
        return BinaryOp("-", as_expr(other), self)

    def __mul__(self, other):
        return BinaryOp("*", self, as_expr(other))

    def __rmul__(self, other):
        return BinaryOp("*", as_expr(other), self)

    def __truediv__(self, other):
        return BinaryOp("/", self, as_expr(other))

    # == is kept for structural equality of trees; comparisons are explicit methods
    def eq(self, other) -> "BinaryOp":
        return BinaryOp("=", self, as_expr(other))

    def ne(self, other) -> "BinaryOp":
        return BinaryOp("<>", self, as_expr(other))

    def gt(self, other) -> "BinaryOp":
        return BinaryOp(">", self, as_expr(other))

    def ge(self, other) -> "BinaryOp":
        return BinaryOp(">=", self, as_expr(other))

    def lt(self, other) -> "BinaryOp":
        return BinaryOp("<", self, as_expr(other))

    def le(self, other) -> "BinaryOp":
        return BinaryOp("<=", self, as_expr(other))

    def and_(self, other) -> "BinaryOp":
        return BinaryOp("AND", self, as_expr(other))

    def or_(self, other) -> "BinaryOp":
        return BinaryOp("OR", self, as_expr(other))

    def is_null(self) -> "IsNull":
        return IsNull(self)

    def not_null(self) -> "IsNull":
        return IsNull(self, negate=True)

    def references(self) -> Set[str]:
        """Names of all columns this expression reads."""
        return set()


@dataclass(frozen=True)
class Column(Expr):
    name: str

    def references(self) -> Set[str]:
        return {self.name}


@dataclass(frozen=True)
class Literal(Expr):
    value: Any


@dataclass(frozen=True)
class BinaryOp(Expr):
    op: str
    left: Expr
    right: Expr

    def references(self) -> Set[str]:
        return self.left.references() | self.right.references()


@dataclass(frozen=True)
class Case(Expr):
    """CASE WHEN condition THEN then ELSE otherwise END"""

    condition: Expr
    then: Expr
    otherwise: Expr

    def references(self) -> Set[str]:
        return self.condition.references() | self.then.references() | self.otherwise.references()


@dataclass(frozen=True)
class IsNull(Expr):
    operand: Expr
    negate: bool = False

    def references(self) -> Set[str]:
        return self.operand.references()


@dataclass(frozen=True)
class NullIf(Expr):
    operand: Expr
    value: Expr

    def references(self) -> Set[str]:
        return self.operand.references() | self.value.references()


def col(name: str) -> Column:
    return Column(name)


def lit(value: Any) -> Literal:
    return Literal(value)


def as_expr(value: Any) -> Expr:
    """Wrap plain Python values as literals; expressions pass through."""
    if isinstance(value, Expr):
        return value
    return Literal(value)


def all_of(predicates: Iterable[Expr]) -> Optional[Expr]:
    """AND together a sequence of predicates (None when empty)."""
    combined = None
    for predicate in predicates:
        combined = predicate if combined is None else combined.and_(predicate)
    return combined


# =============================================================================
# Plan nodes
# =============================================================================

@dataclass(frozen=True)
class Source:
    """A named table as reported by the data source."""

    table: str
    columns: Tuple[str, ...]
    column_types: Tuple[Tuple[str, str], ...] = ()
    schema: Any = field(default=None, compare=False, repr=False)

    @property
    def children(self) -> tuple:
        return ()


@dataclass(frozen=True)
class Select:
    child: Any
    items: Tuple[Tuple[str, Expr], ...]

    @property
    def columns(self) -> Tuple[str, ...]:
        return tuple(name for name, _ in self.items)

    @property
    def children(self) -> tuple:
        return (self.child,)


@dataclass(frozen=True)
class Filter:
    child: Any
    predicate: Expr

    @property
    def columns(self) -> Tuple[str, ...]:
        return self.child.columns

    @property
    def children(self) -> tuple:
        return (self.child,)


@dataclass(frozen=True)
class Aggregate:
    """
    Grouped aggregation. Each aggregation is (output name, reducer, operand);
    a None operand with the 'count' reducer counts rows.
    """

    child: Any
    group_by: Tuple[str, ...]
    aggregations: Tuple[Tuple[str, str, Optional[Expr]], ...]

    @property
    def columns(self) -> Tuple[str, ...]:
        return self.group_by + tuple(name for name, _, _ in self.aggregations)

    @property
    def children(self) -> tuple:
        return (self.child,)


@dataclass(frozen=True)
class OrderBy:
    child: Any
    keys: Tuple[Tuple[str, bool], ...]  # (column, descending)

    @property
    def columns(self) -> Tuple[str, ...]:
        return self.child.columns

    @property
    def children(self) -> tuple:
        return (self.child,)


@dataclass(frozen=True)
class Limit:
    child: Any
    count: int

    @property
    def columns(self) -> Tuple[str, ...]:
        return self.child.columns

    @property
    def children(self) -> tuple:
        return (self.child,)


def validate_plan(node) -> None:
    """
    Check every column reference and reducer in a plan tree.

    Raises:
        QueryError: On the first unknown column, unknown reducer,
            duplicate output column or invalid limit
    """
    for child in node.children:
        validate_plan(child)

    if isinstance(node, Source):
        return

    available = set(node.child.columns)

    def check(expr: Expr, where: str):
        unknown = sorted(expr.references() - available)
        if unknown:
            raise QueryError(
                f"Unknown column(s) {', '.join(unknown)} in {where}; "
                f"available: {', '.join(node.child.columns)}"
            )

    if isinstance(node, Select):
        for name, expr in node.items:
            check(expr, f"select item '{name}'")
    elif isinstance(node, Filter):
        check(node.predicate, "filter")
    elif isinstance(node, Aggregate):
        for name in node.group_by:
            check(Column(name), "group by")
        for name, reducer, operand in node.aggregations:
            if reducer not in REDUCERS:
                raise QueryError(
                    f"Unknown reducer '{reducer}' for '{name}'; expected one of: {', '.join(REDUCERS)}"
                )
            if operand is None:
                if reducer != "count":
                    raise QueryError(f"Reducer '{reducer}' for '{name}' needs a source column")
            else:
                check(operand, f"aggregation '{name}'")
    elif isinstance(node, OrderBy):
        for name, _ in node.keys:
            check(Column(name), "order by")
    elif isinstance(node, Limit):
        if node.count < 0:
            raise QueryError(f"Limit must be non-negative, got {node.count}")

    columns = node.columns
    duplicates = sorted({c for c in columns if columns.count(c) > 1})
    if duplicates:
        raise QueryError(f"Duplicate output column(s): {', '.join(duplicates)}")


def find_sources(node) -> List[Source]:
    """All Source leaves of a plan tree, left to right."""
    if isinstance(node, Source):
        return [node]
    sources = []
    for child in node.children:
        sources.extend(find_sources(child))
    return sources


# =============================================================================
# TableProxy
# =============================================================================

ColumnOrExpr = Union[str, Expr]


class TableProxy:
    """
    Lazy, immutable handle to a (derived) table.

    Every derivation returns a new proxy sharing the same session. No data is
    fetched until materialize() is called.
    """

    __slots__ = ("_node", "_session")

    def __init__(self, node, session=None):
        self._node = node
        self._session = session

    @property
    def node(self):
        return self._node

    @property
    def session(self):
        return self._session

    @property
    def columns(self) -> List[str]:
        return list(self._node.columns)

    def _derive(self, node) -> "TableProxy":
        return TableProxy(node, self._session)

    def select(self, *names: str, **exprs: ColumnOrExpr) -> "TableProxy":
        """Keep the named columns, plus computed columns given as keyword arguments."""
        items = [(name, Column(name)) for name in names]
        items.extend((name, _column_or_expr(value)) for name, value in exprs.items())
        return self._derive(Select(self._node, tuple(items)))

    def mutate(self, **exprs: ColumnOrExpr) -> "TableProxy":
        """Keep every column and add (or replace) computed columns."""
        replaced = {name: _column_or_expr(value) for name, value in exprs.items()}
        items = [(name, replaced.pop(name, Column(name))) for name in self._node.columns]
        items.extend(replaced.items())
        return self._derive(Select(self._node, tuple(items)))

    def filter(self, predicate: Expr) -> "TableProxy":
        return self._derive(Filter(self._node, predicate))

    def aggregate(self, group_by: Iterable[str], aggregations: Iterable[Tuple[str, str, Optional[Expr]]]) -> "TableProxy":
        return self._derive(Aggregate(self._node, tuple(group_by), tuple(aggregations)))

    def order_by(self, *keys: str) -> "TableProxy":
        """Order by columns; prefix a name with '-' for descending order."""
        parsed = tuple((k[1:], True) if k.startswith("-") else (k, False) for k in keys)
        return self._derive(OrderBy(self._node, parsed))

    def limit(self, count: int) -> "TableProxy":
        return self._derive(Limit(self._node, int(count)))

    def sql(self, dialect=None) -> str:
        """Compile to SQL text for the given dialect (defaults to the session's dialect)."""
        if dialect is None:
            if self._session is None:
                raise QueryError("A dialect is required to compile a proxy without a session")
            dialect = self._session.dialect
        return dialect.compile(self._node)

    def materialize(self):
        """Fetch the rows this proxy describes as a pandas DataFrame."""
        if self._session is None:
            raise QueryError("Cannot materialize a proxy that is not bound to a session")
        return self._session.materialize(self)

    def __repr__(self) -> str:
        return f"TableProxy(columns={self.columns})"


def _column_or_expr(value: ColumnOrExpr) -> Expr:
    if isinstance(value, str):
        return Column(value)
    if isinstance(value, Expr):
        return value
    return Literal(value)


def source_proxy(table: str, columns: Iterable[str], session=None, column_types: Dict[str, str] = None, schema=None) -> TableProxy:
    """Build a proxy over a named table with known columns."""
    types = tuple((column_types or {}).items())
    return TableProxy(Source(table, tuple(columns), types, schema), session)
