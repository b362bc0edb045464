"""
Unit tests for the query builder and SQL dialects.
"""

import pytest

# Import functions to test
import sys
import os
sys.path.append(os.path.dirname(os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))))

from analytics.movie_explorer.dialects import PostgresDialect, SqliteDialect, get_dialect
from analytics.movie_explorer.errors import QueryError
from analytics.movie_explorer.query import Case, col, lit, source_proxy
from analytics.movie_explorer.schema_inspector import MOVIES_SCHEMA

POSTGRES = PostgresDialect()
SQLITE = SqliteDialect()


@pytest.fixture
def proxy():
    """Unbound proxy over the movies columns."""
    return source_proxy("movies", MOVIES_SCHEMA.column_names)


def test_filter_then_select_sql(proxy):
    dramas = proxy.filter(col("genre").eq("Drama")).select("name", "gross")

    assert dramas.sql(SQLITE) == (
        'SELECT "name", "gross" FROM (SELECT * FROM "movies" WHERE ("genre" = \'Drama\')) AS "t1"'
    )
    assert dramas.columns == ["name", "gross"]


def test_grouped_mean_sql_per_dialect(proxy):
    summary = proxy.aggregate(["rating"], [("avg_runtime", "mean", col("runtime"))])

    assert summary.sql(SQLITE) == (
        'SELECT "rating", AVG(CAST("runtime" AS REAL)) AS "avg_runtime" '
        'FROM "movies" GROUP BY "rating" ORDER BY "rating"'
    )
    assert summary.sql(POSTGRES) == (
        'SELECT "rating", AVG(CAST("runtime" AS DOUBLE PRECISION)) AS "avg_runtime" '
        'FROM "movies" GROUP BY "rating" ORDER BY "rating"'
    )


def test_count_rows_without_group(proxy):
    total = proxy.aggregate([], [("n", "count", None)])

    assert total.sql(SQLITE) == 'SELECT COUNT(*) AS "n" FROM "movies"'


def test_nested_derivations_get_distinct_aliases(proxy):
    top = proxy.filter(col("year").ge(1980)).order_by("-gross", "name").limit(3)

    assert top.sql(SQLITE) == (
        'SELECT * FROM (SELECT * FROM (SELECT * FROM "movies" WHERE ("year" >= 1980)) AS "t2" '
        'ORDER BY "gross" DESC, "name") AS "t1" LIMIT 3'
    )


def test_computed_columns(proxy):
    derived = proxy.select("name", ratio=col("gross") / col("budget"), flag=Case(col("score").gt(8), lit(1), lit(0)))

    assert derived.columns == ["name", "ratio", "flag"]
    assert derived.sql(SQLITE) == (
        'SELECT "name", ("gross" / "budget") AS "ratio", '
        'CASE WHEN ("score" > 8) THEN 1 ELSE 0 END AS "flag" FROM "movies"'
    )


def test_mutate_replaces_in_place(proxy):
    mutated = proxy.mutate(budget=col("budget") * 2, margin=col("gross") - col("budget"))

    assert mutated.columns == MOVIES_SCHEMA.column_names + ["margin"]
    assert '("budget" * 2) AS "budget"' in mutated.sql(SQLITE)


def test_reverse_operators(proxy):
    expr = 100.0 + 4.0 * col("budget")

    assert proxy.select(fit=expr).sql(SQLITE) == 'SELECT (100.0 + (4.0 * "budget")) AS "fit" FROM "movies"'


def test_null_predicates(proxy):
    expr = col("score").is_null().or_(col("budget").not_null())

    assert SQLITE.compile_expr(expr) == '(("score" IS NULL) OR ("budget" IS NOT NULL))'


def test_literal_quoting():
    assert SQLITE.render_literal("Heaven's Gate") == "'Heaven''s Gate'"
    assert SQLITE.render_literal(None) == "NULL"
    assert SQLITE.render_literal(True) == "1"
    assert POSTGRES.render_literal(True) == "TRUE"
    assert POSTGRES.render_literal(3) == "3"
    assert POSTGRES.render_literal(0.1) == "0.1"


def test_identifier_quoting():
    assert SQLITE.quote_identifier('odd"name') == '"odd""name"'


def test_non_finite_literal_rejected():
    with pytest.raises(QueryError, match="non-finite"):
        SQLITE.render_literal(float("nan"))

    with pytest.raises(QueryError):
        POSTGRES.render_literal(float("inf"))


def test_unknown_column_is_lazy(proxy):
    """Building a bad query is fine; compiling it is not."""
    bad = proxy.select("name", "box_office")

    with pytest.raises(QueryError, match="box_office"):
        bad.sql(SQLITE)


def test_unknown_reducer_is_lazy(proxy):
    bad = proxy.aggregate(["genre"], [("m", "median", col("gross"))])

    with pytest.raises(QueryError, match="median"):
        bad.sql(SQLITE)


def test_non_count_reducer_needs_operand(proxy):
    with pytest.raises(QueryError):
        proxy.aggregate([], [("s", "sum", None)]).sql(SQLITE)


def test_duplicate_outputs_rejected(proxy):
    with pytest.raises(QueryError, match="Duplicate"):
        proxy.aggregate(["genre"], [("genre", "count", None)]).sql(SQLITE)


def test_negative_limit_rejected(proxy):
    with pytest.raises(QueryError):
        proxy.limit(-1).sql(SQLITE)


def test_columns_after_select_are_enforced(proxy):
    narrowed = proxy.select("name", "gross")

    with pytest.raises(QueryError, match="budget"):
        narrowed.filter(col("budget").gt(0)).sql(SQLITE)


def test_proxies_are_immutable(proxy):
    before = proxy.sql(SQLITE)
    proxy.filter(col("genre").eq("Drama"))
    proxy.select("name")

    assert proxy.sql(SQLITE) == before == 'SELECT * FROM "movies"'

    with pytest.raises(AttributeError):
        proxy.extra = 1


def test_unbound_proxy_needs_dialect(proxy):
    with pytest.raises(QueryError):
        proxy.sql()

    with pytest.raises(QueryError):
        proxy.materialize()


def test_get_dialect():
    assert get_dialect("sqlite").name == "sqlite"
    assert get_dialect("postgresql").placeholder == "%s"

    with pytest.raises(QueryError):
        get_dialect("oracle")


def test_query_against_sqlite(movies):
    """Compiled SQL runs on a live session."""
    top = (
        movies.filter(col("rating").eq("PG"))
        .select("name", "gross")
        .order_by("-gross")
        .limit(2)
        .materialize()
    )

    assert top["name"].tolist() == ["Star Wars: Episode V", "Superman II"]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
