"""
Unit tests for the results_export module.
"""

import json

import pytest
import pandas as pd
import matplotlib
matplotlib.use("Agg")

# Import functions to test
import sys
import os
sys.path.append(os.path.dirname(os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))))

from analytics.movie_explorer.correlation_analyzer import CorrelationEdge
from analytics.movie_explorer.models import LocalModel, parse_model
from analytics.movie_explorer.plots import bar_chart
from analytics.movie_explorer.results_export import (
    save_chart,
    store_correlation_results,
    store_model_results,
    store_predictions
)


def test_store_correlation_results(tmp_path):
    edges = [
        CorrelationEdge('budget', 'gross', 0.74, 0.001, 11),
        CorrelationEdge('runtime', 'score', -0.31, None, 11),
    ]

    path = store_correlation_results(edges, tmp_path / "out")
    df = pd.read_csv(path)

    assert path.name == "correlations.csv"
    assert df['x'].tolist() == ['budget', 'runtime']
    assert df['correlation'].tolist() == [0.74, -0.31]
    assert pd.isna(df.loc[1, 'p_value'])


def test_store_model_results(tmp_path):
    rows = pd.DataFrame({
        'budget': [100, 200, 150],
        'runtime': [90, 120, 100],
        'gross': [500, 900, 700],
    })
    model = LocalModel.fit(rows, 'gross', ['budget', 'runtime'])

    path = store_model_results({'local': model}, tmp_path, {'local': {'r2': 1.0, 'n_samples': 3}})

    with open(path) as f:
        payload = json.load(f)

    assert 'exported_at' in payload
    stored = payload['models']['local']
    assert stored['metrics'] == {'r2': 1.0, 'n_samples': 3}
    assert parse_model(stored) == model


def test_store_predictions(tmp_path):
    comparison = pd.DataFrame({
        'name': ['Alien', 'Heat'],
        'actual': [1.0, 2.0],
        'local_fit': [1.1, 1.9],
        'remote_fit': [1.1, 1.9],
    })

    path = store_predictions(comparison, tmp_path)

    assert pd.read_csv(path).equals(comparison)


def test_save_chart(tmp_path):
    chart = bar_chart(pd.DataFrame({'rating': ['PG', 'R'], 'n': [3, 9]}), 'rating', 'n', title="Movies per rating")

    png_path = save_chart(chart, tmp_path, "movies_by_rating")

    assert png_path.exists()
    assert png_path.stat().st_size > 0
    with open(tmp_path / "movies_by_rating.json") as f:
        assert json.load(f)['categories'] == ['PG', 'R']


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
