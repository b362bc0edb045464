"""
Results export module for the Movie Explorer pipeline.

Writes the pipeline's artifacts to the output directory: ranked correlations
(CSV), parsed models (JSON), prediction comparisons (CSV) and charts (PNG
plus a JSON description).
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Sequence, Union
import pandas as pd
import matplotlib.pyplot as plt

from .correlation_analyzer import CorrelationEdge, edges_to_frame
from .models import FittedModel
from .plots import Chart

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def _ensure_dir(output_dir: PathLike) -> Path:
    path = Path(output_dir)
    path.mkdir(parents=True, exist_ok=True)
    return path


def store_correlation_results(edges: Sequence[CorrelationEdge], output_dir: PathLike) -> Path:
    """
    Write ranked correlation edges to correlations.csv.

    Returns:
        Path: Written file
    """
    path = _ensure_dir(output_dir) / "correlations.csv"
    edges_to_frame(edges).to_csv(path, index=False)
    logger.info(f"   ✓ Stored {len(edges)} correlation results in {path}")
    return path


def store_model_results(models: Dict[str, FittedModel], output_dir: PathLike, metrics: Dict[str, Dict] = None) -> Path:
    """
    Write parsed model descriptions (and optional metrics) to models.json.

    Args:
        models: Mapping of model name to fitted model
        output_dir: Output directory
        metrics: Optional mapping of model name to evaluation metrics

    Returns:
        Path: Written file
    """
    metrics = metrics or {}
    payload = {
        "exported_at": datetime.now(timezone.utc).isoformat(),
        "models": {
            name: {**model.to_dict(), "metrics": metrics.get(name)}
            for name, model in models.items()
        },
    }

    path = _ensure_dir(output_dir) / "models.json"
    with open(path, "w") as f:
        json.dump(payload, f, indent=2, default=_json_default)

    logger.info(f"   ✓ Stored {len(models)} model descriptions in {path}")
    return path


def store_predictions(comparison: pd.DataFrame, output_dir: PathLike) -> Path:
    """Write the prediction comparison table to predictions.csv."""
    path = _ensure_dir(output_dir) / "predictions.csv"
    comparison.to_csv(path, index=False)
    logger.info(f"   ✓ Stored {len(comparison)} predictions in {path}")
    return path


def save_chart(chart: Chart, output_dir: PathLike, name: str) -> Path:
    """
    Render a chart to <name>.png and its description to <name>.json.

    Returns:
        Path: The PNG file
    """
    directory = _ensure_dir(output_dir)
    png_path = directory / f"{name}.png"

    fig = chart.to_figure()
    try:
        fig.savefig(png_path, dpi=120)
    finally:
        plt.close(fig)

    with open(directory / f"{name}.json", "w") as f:
        json.dump(chart.to_dict(), f, indent=2)

    logger.info(f"   ✓ Saved chart '{chart.title}' to {png_path}")
    return png_path


def _json_default(value):
    # numpy scalars
    if hasattr(value, "item"):
        return value.item()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")
