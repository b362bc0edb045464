"""
Unit tests for the aggregator module.
"""

import pytest

# Import functions to test
import sys
import os
sys.path.append(os.path.dirname(os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))))

from analytics.movie_explorer.aggregator import count_by, group_summary, materialize
from analytics.movie_explorer.dialects import SqliteDialect
from analytics.movie_explorer.errors import QueryError
from analytics.movie_explorer.query import col


@pytest.fixture
def rated(load_movies):
    return load_movies([
        {"name": "A", "rating": "R", "runtime": 100, "genre": "Drama", "gross": 10},
        {"name": "B", "rating": "R", "runtime": 120, "genre": "Drama", "gross": 20},
        {"name": "C", "rating": "PG", "runtime": 90, "genre": "Comedy", "gross": 30},
        {"name": "D", "rating": "PG", "runtime": None, "genre": None, "gross": None},
    ])


def test_group_mean_by_rating(rated):
    """Mean per group, one row per group, nulls excluded."""
    df = materialize(group_summary(rated, "rating", {"avg_runtime": ("runtime", "mean")}))

    assert df["rating"].tolist() == ["PG", "R"]
    assert df["avg_runtime"].tolist() == [90.0, 110.0]


def test_group_summary_is_lazy(rated):
    summary = group_summary(rated, "rating", {"avg_runtime": ("runtime", "mean")})

    assert summary.columns == ["rating", "avg_runtime"]
    assert summary.sql() == (
        'SELECT "rating", AVG(CAST("runtime" AS REAL)) AS "avg_runtime" '
        'FROM "movies" GROUP BY "rating" ORDER BY "rating"'
    )


def test_materialize_twice_gives_same_rows(rated):
    summary = group_summary(rated, "rating", {"avg_runtime": ("runtime", "mean")})

    first = materialize(summary)
    second = materialize(summary)

    assert first.equals(second)


def test_count_and_sum_exclude_nulls(rated):
    df = materialize(group_summary(rated, "rating", {
        "n_runtime": ("runtime", "count"),
        "total_gross": ("gross", "sum"),
    }))

    assert df.set_index("rating")["n_runtime"].to_dict() == {"PG": 1, "R": 2}
    assert df.set_index("rating")["total_gross"].to_dict() == {"PG": 30.0, "R": 30.0}


def test_whole_table_summary(rated):
    df = materialize(group_summary(rated, None, {
        "avg_runtime": ("runtime", "mean"),
        "movies": ("name", "count"),
    }))

    assert len(df) == 1
    assert df.loc[0, "avg_runtime"] == pytest.approx(310 / 3)
    assert df.loc[0, "movies"] == 4


def test_expression_source(rated):
    df = materialize(group_summary(rated, "rating", {"hours": (col("runtime") / 60.0, "mean")}))

    assert df.set_index("rating")["hours"]["R"] == pytest.approx(110 / 60)


def test_unknown_column_fails_at_materialize(rated):
    summary = group_summary(rated, "rating", {"avg": ("box_office", "mean")})

    with pytest.raises(QueryError, match="box_office"):
        materialize(summary)


def test_unknown_reducer_fails_at_materialize(rated):
    summary = group_summary(rated, "rating", {"med": ("runtime", "median")})

    with pytest.raises(QueryError, match="median"):
        materialize(summary)


def test_count_by_keeps_null_group(rated):
    df = materialize(count_by(rated, "genre"))

    counts = dict(zip(df["genre"].fillna("NA"), df["n"]))
    assert counts == {"NA": 1, "Comedy": 1, "Drama": 2}


def test_count_by_descending(rated):
    summary = count_by(rated, "genre", descending=True)

    assert summary.sql(SqliteDialect()) == (
        'SELECT * FROM (SELECT "genre", COUNT(*) AS "n" FROM "movies" GROUP BY "genre" ORDER BY "genre") AS "t1" '
        'ORDER BY "n" DESC, "genre"'
    )

    df = materialize(summary)
    assert df.loc[0, "genre"] == "Drama"
    assert df.loc[0, "n"] == 2


def test_genre_counts_on_sample(movies):
    df = materialize(count_by(movies, "genre", name="movies", descending=True))

    assert df.iloc[0].to_dict() == {"genre": "Action", "movies": 3}
    assert df["movies"].sum() == 12


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
