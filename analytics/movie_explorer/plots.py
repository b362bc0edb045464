"""
Bar charts for the Movie Explorer pipeline.

bar_chart() and correlation_chart() are pure: they turn rows into a Chart
value (ordered categories and values plus labels). Chart.to_figure() renders
it with matplotlib/seaborn.
"""

import logging
from dataclasses import dataclass, asdict
from typing import Dict, Optional, Sequence, Tuple
import math
import pandas as pd
import matplotlib.pyplot as plt
import seaborn as sns

logger = logging.getLogger(__name__)

PRIMARY_COLOR = "#3b82f6"
NEGATIVE_COLOR = "#ff6b6b"
MISSING_LABEL = "NA"
SORT_KEYS = ("value_desc", "value_asc", "category")


@dataclass(frozen=True)
class Chart:
    """A rendered-independent bar chart description."""

    title: str
    x_label: str
    y_label: str
    categories: Tuple[str, ...]
    values: Tuple[float, ...]
    kind: str = "bar"

    def to_dict(self) -> Dict:
        data = asdict(self)
        data["categories"] = list(self.categories)
        data["values"] = [None if math.isnan(v) else v for v in self.values]
        return data

    def to_figure(self) -> plt.Figure:
        """
        Render as a horizontal bar chart.

        Returns:
            plt.Figure: matplotlib Figure (caller closes it)
        """
        if not self.categories:
            fig, ax = plt.subplots(figsize=(10, 4))
            ax.text(0.5, 0.5, "No data to display", ha="center", va="center", fontsize=14)
            ax.set_xlim(0, 1)
            ax.set_ylim(0, 1)
            ax.axis("off")
            return fig

        sns.set_style("whitegrid")
        fig, ax = plt.subplots(figsize=(10, max(4, len(self.categories) * 0.35)))

        colors = [NEGATIVE_COLOR if v < 0 else PRIMARY_COLOR for v in self.values]
        sns.barplot(
            x=list(self.values),
            y=list(self.categories),
            order=list(self.categories),
            hue=list(self.categories),
            palette=colors,
            legend=False,
            orient="h",
            ax=ax,
        )

        if any(v < 0 for v in self.values):
            ax.axvline(x=0, color="black", linestyle="-", linewidth=0.5, alpha=0.5)

        # Values on the value axis, categories on the category axis
        ax.set_xlabel(self.y_label, fontsize=12)
        ax.set_ylabel(self.x_label, fontsize=12)
        ax.set_title(self.title, fontsize=14, fontweight="bold", pad=20)
        ax.grid(axis="x", alpha=0.3, linestyle="--")

        fig.tight_layout()
        return fig


def bar_chart(
    rows: pd.DataFrame,
    category_col: str,
    value_col: Optional[str] = None,
    title: str = "",
    axis_labels: Optional[Tuple[str, str]] = None,
    sort_by: Optional[str] = None
) -> Chart:
    """
    Build a bar chart of values (or row counts) per category.

    Categories keep the order in which they first appear in rows unless
    sort_by is given; sorting is stable, so ties keep first-appearance order.
    Null categories are shown as "NA". Repeated categories are summed.

    Args:
        rows: Materialized rows
        category_col: Column holding the categories
        value_col: Column holding the bar heights (default: count rows per category)
        title: Chart title
        axis_labels: (category axis label, value axis label)
        sort_by: None, 'value_desc', 'value_asc' or 'category'

    Returns:
        Chart
    """
    if category_col not in rows.columns:
        raise ValueError(f"Category column '{category_col}' not found")
    if value_col is not None and value_col not in rows.columns:
        raise ValueError(f"Value column '{value_col}' not found")
    if sort_by is not None and sort_by not in SORT_KEYS:
        raise ValueError(f"Unknown sort key '{sort_by}'; expected one of: {', '.join(SORT_KEYS)}")

    raw = rows[category_col]
    categories = raw.astype(object).where(raw.notna(), MISSING_LABEL).astype(str)

    if value_col is None:
        grouped = categories.groupby(categories, sort=False).size()
    else:
        values = pd.to_numeric(rows[value_col], errors="coerce")
        grouped = values.groupby(categories, sort=False).sum(min_count=1)

    pairs = [(str(k), float(v)) for k, v in grouped.items()]

    if sort_by == "value_desc":
        pairs = sorted(pairs, key=lambda p: (math.isnan(p[1]), -p[1] if not math.isnan(p[1]) else 0.0))
    elif sort_by == "value_asc":
        pairs = sorted(pairs, key=lambda p: (math.isnan(p[1]), p[1] if not math.isnan(p[1]) else 0.0))
    elif sort_by == "category":
        pairs = sorted(pairs, key=lambda p: p[0])

    if axis_labels is None:
        axis_labels = (category_col, value_col or "count")

    return Chart(
        title=title,
        x_label=axis_labels[0],
        y_label=axis_labels[1],
        categories=tuple(p[0] for p in pairs),
        values=tuple(p[1] for p in pairs),
    )


def correlation_chart(edges: Sequence, top_n: int = 20, title: str = "Strongest correlations") -> Chart:
    """
    Bar chart of ranked correlation edges (already ordered by shave_and_rank).
    """
    top = list(edges)[:top_n]
    return Chart(
        title=title,
        x_label="pair",
        y_label="correlation",
        categories=tuple(f"{e.x} ~ {e.y}" for e in top),
        values=tuple(float(e.coefficient) for e in top),
    )
