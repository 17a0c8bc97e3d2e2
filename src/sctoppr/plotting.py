"""
Interactive Plotly charts for ToppFun results.

Provides:
- Dot plots: top terms of one category for each cluster
- Balloon plots: cluster x term grid comparing enrichment across clusters

Figures can be shown in notebooks, or saved as HTML (``write_html``) or as
static images (``write_image``, requires kaleido).

Usage:
    from sctoppr.plotting import topp_plot, topp_balloon

    figs = topp_plot(topp_data, category="GeneOntologyBiologicalProcess")
    figs["CD14 Mono"].show()

    fig = topp_balloon(topp_data, categories=["Pathway"], balloons=3)
    fig.write_html("balloon.html")
"""

import logging
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

import numpy as np
import pandas as pd
import plotly.graph_objects as go

from sctoppr.config import (
    CLUSTER_COLUMN,
    DEFAULT_FILE_PREFIX,
    P_VALUE_COLUMNS,
    normalize_categories,
)
from sctoppr.errors import ConfigurationError
from sctoppr.export import resolve_save_dir, sanitize_filename_part

logger = logging.getLogger(__name__)

IMAGE_FORMATS = ("png", "pdf", "svg", "jpeg", "webp")
PLOT_FORMATS = ("html",) + IMAGE_FORMATS

# Column holding -log10 of the selected p-value in plot data
SIGNIFICANCE = "neg_log10_p"
GENE_RATIO = "GeneRatio"

# Label used when the result has no Cluster column (single-cluster query)
SINGLE_CLUSTER_LABEL = "query"


def significance_column(p_val_adj: str) -> str:
    """Map a correction name (BH, BY, Bonferroni, none) to its result column."""
    if p_val_adj not in P_VALUE_COLUMNS:
        raise ConfigurationError(
            f"Invalid p_val_adj {p_val_adj!r}; choose one of {', '.join(P_VALUE_COLUMNS)}"
        )
    return P_VALUE_COLUMNS[p_val_adj]


def _with_scores(frame: pd.DataFrame, p_col: str) -> pd.DataFrame:
    frame = frame.copy()
    p = pd.to_numeric(frame[p_col], errors="coerce").clip(lower=1e-300)
    frame[SIGNIFICANCE] = -np.log10(p)
    in_query = pd.to_numeric(frame["GenesInQuery"], errors="coerce").replace(0, np.nan)
    frame[GENE_RATIO] = (
        pd.to_numeric(frame["GenesInTermInQuery"], errors="coerce") / in_query
    ).fillna(0.0)
    return frame


def _clusters_in(topp_data: pd.DataFrame) -> List:
    if CLUSTER_COLUMN not in topp_data.columns:
        return []
    return list(pd.unique(topp_data[CLUSTER_COLUMN]))


def dot_plot_data(
    topp_data: pd.DataFrame,
    category: str,
    cluster: Optional[object] = None,
    num_terms: int = 10,
    p_val_adj: str = "BH",
) -> pd.DataFrame:
    """
    Long-form data for one dot plot: top terms by significance.

    Args:
        topp_data: Results from toppfun()
        category: ToppFun category to plot
        cluster: Cluster to plot (ignored if the result has no Cluster column)
        num_terms: Number of terms to keep
        p_val_adj: Which p-value ranks terms: BH, BY, Bonferroni or none

    Returns:
        Rows sorted most significant first, with GeneRatio and neg_log10_p
    """
    p_col = significance_column(p_val_adj)
    rows = topp_data[topp_data["Category"] == category]
    if cluster is not None and CLUSTER_COLUMN in rows.columns:
        rows = rows[rows[CLUSTER_COLUMN] == cluster]
    rows = rows.sort_values(p_col, kind="mergesort").head(num_terms)
    return _with_scores(rows, p_col).reset_index(drop=True)


def balloon_plot_data(
    topp_data: pd.DataFrame,
    categories: Optional[Sequence[str]] = None,
    balloons: int = 3,
    p_val_adj: str = "BH",
) -> pd.DataFrame:
    """
    Long-form data for a balloon plot.

    Takes the top ``balloons`` terms per cluster and category, then keeps
    every row (from any cluster) whose term is in that union so clusters can
    be compared on the same terms.

    Returns:
        Rows with Cluster, Category, Name, GenesInTermInQuery and neg_log10_p
    """
    p_col = significance_column(p_val_adj)
    rows = topp_data
    if categories is not None:
        rows = rows[rows["Category"].isin(normalize_categories(categories))]
    rows = rows.copy()
    if CLUSTER_COLUMN not in rows.columns:
        rows[CLUSTER_COLUMN] = SINGLE_CLUSTER_LABEL

    top = (
        rows.sort_values(p_col, kind="mergesort")
        .groupby([CLUSTER_COLUMN, "Category"], sort=False)
        .head(balloons)
    )
    terms = set(zip(top["Category"], top["Name"]))
    keep = [(c, n) in terms for c, n in zip(rows["Category"], rows["Name"])]
    return _with_scores(rows[keep], p_col).reset_index(drop=True)


class ToppPlotter:
    """Plotly charts for ToppFun results."""

    def __init__(self, template: str = "plotly_white"):
        """
        Initialize plotter.

        Args:
            template: Plotly template (plotly_white, plotly_dark, ggplot2, etc.)
        """
        self.template = template

    def dot_plot(
        self,
        data: pd.DataFrame,
        title: str,
        p_val_adj: str = "BH",
        height: int = 600,
        width: int = 800,
    ) -> go.Figure:
        """
        Dot plot of terms: x = gene ratio, size = overlap, colour = significance.

        Args:
            data: Output of dot_plot_data()
            title: Chart title
            p_val_adj: Correction used, for the colour bar label
            height: Figure height in pixels
            width: Figure width in pixels

        Returns:
            Plotly Figure object
        """
        if data.empty:
            return self._empty_figure("No terms to display")

        overlap = data["GenesInTermInQuery"].astype(float)
        fig = go.Figure(go.Scatter(
            x=data[GENE_RATIO],
            y=data["Name"],
            mode="markers",
            marker=dict(
                size=overlap,
                sizemode="area",
                sizeref=2.0 * max(overlap.max(), 1.0) / (30.0 ** 2),
                sizemin=4,
                color=data[SIGNIFICANCE],
                colorscale="Viridis",
                showscale=True,
                colorbar=dict(title=f"-log10({P_VALUE_COLUMNS[p_val_adj]})"),
            ),
            customdata=data[["ID", "GenesInTermInQuery", SIGNIFICANCE]].to_numpy(),
            hovertemplate=(
                "<b>%{y}</b><br>ID: %{customdata[0]}<br>Gene ratio: %{x:.3f}"
                "<br>Genes: %{customdata[1]:.0f}<br>-log10 p: %{customdata[2]:.2f}<extra></extra>"
            ),
        ))

        fig.update_layout(
            title=dict(text=title, x=0.5, font=dict(size=18)),
            xaxis_title="Gene Ratio",
            yaxis=dict(
                title="",
                categoryorder="array",
                # most significant term on top
                categoryarray=list(data["Name"])[::-1],
            ),
            template=self.template,
            height=height,
            width=width,
        )
        return fig

    def balloon_plot(
        self,
        data: pd.DataFrame,
        title: str = "ToppFun terms by cluster",
        p_val_adj: str = "BH",
        height: int = 700,
        width: int = 900,
    ) -> go.Figure:
        """
        Balloon plot: cluster x term grid, size = overlap, colour = significance.

        Args:
            data: Output of balloon_plot_data()
            title: Chart title
            p_val_adj: Correction used, for the colour bar label
            height: Figure height in pixels
            width: Figure width in pixels

        Returns:
            Plotly Figure object
        """
        if data.empty:
            return self._empty_figure("No terms to display")

        overlap = data["GenesInTermInQuery"].astype(float)
        clusters = [str(c) for c in pd.unique(data[CLUSTER_COLUMN])]
        # the same term name can appear in more than one category
        labels = data["Name"].astype(str) + " (" + data["Category"].astype(str) + ")"
        terms = list(pd.unique(labels.loc[data.sort_values(["Category", "Name"]).index]))

        fig = go.Figure(go.Scatter(
            x=data[CLUSTER_COLUMN].astype(str),
            y=labels,
            mode="markers",
            marker=dict(
                size=overlap,
                sizemode="area",
                sizeref=2.0 * max(overlap.max(), 1.0) / (25.0 ** 2),
                sizemin=3,
                color=data[SIGNIFICANCE],
                colorscale="Reds",
                showscale=True,
                colorbar=dict(title=f"-log10({P_VALUE_COLUMNS[p_val_adj]})"),
                line=dict(width=0.5, color="gray"),
            ),
            customdata=data[["Category", "GenesInTermInQuery"]].to_numpy(),
            hovertemplate=(
                "<b>%{y}</b><br>Cluster: %{x}<br>Category: %{customdata[0]}"
                "<br>Genes: %{customdata[1]}<extra></extra>"
            ),
        ))

        fig.update_layout(
            title=dict(text=title, x=0.5, font=dict(size=18)),
            xaxis=dict(title="Cluster", categoryorder="array", categoryarray=clusters),
            yaxis=dict(title="", categoryorder="array", categoryarray=terms[::-1]),
            template=self.template,
            height=height,
            width=width,
        )
        return fig

    def _empty_figure(self, message: str) -> go.Figure:
        """Create an empty figure with a message."""
        fig = go.Figure()
        fig.add_annotation(
            text=message,
            xref="paper", yref="paper",
            x=0.5, y=0.5,
            showarrow=False,
            font=dict(size=16, color="gray"),
        )
        fig.update_layout(
            template=self.template,
            xaxis=dict(visible=False),
            yaxis=dict(visible=False),
        )
        return fig

    def save(self, fig: go.Figure, path: Path) -> Path:
        """
        Save a figure; the suffix picks HTML or a static image format.

        Args:
            fig: Plotly Figure object
            path: Output path ending in .html, .png, .pdf, .svg, ...
        """
        suffix = path.suffix.lstrip(".").lower()
        if suffix == "html":
            fig.write_html(path, include_plotlyjs=True, full_html=True)
        else:
            fig.write_image(path)
        logger.info("Saving file: %s", path.name)
        return path


def _check_file_type(file_type: str) -> str:
    if file_type not in PLOT_FORMATS:
        raise ConfigurationError(
            f"Invalid file_type {file_type!r}; choose one of {', '.join(PLOT_FORMATS)}"
        )
    return file_type


def topp_plot(
    topp_data: pd.DataFrame,
    category: str,
    clusters: Optional[Union[str, Sequence[str]]] = None,
    num_terms: int = 10,
    p_val_adj: str = "BH",
    save: bool = False,
    save_dir: Optional[Union[str, Path]] = None,
    file_prefix: Optional[str] = None,
    file_type: str = "html",
    height: int = 600,
    width: int = 800,
) -> Union[go.Figure, Dict[object, go.Figure]]:
    """
    Dot plots of the top ToppFun terms of one category.

    Args:
        topp_data: Results from toppfun()
        category: ToppFun category to plot
        clusters: None for every cluster, one name for a single figure, or a
            list of names
        num_terms: Terms per plot
        p_val_adj: BH, BY, Bonferroni or none
        save: Save each figure as ``[{file_prefix}_]{category}_{cluster}_dotplot``
        save_dir: Directory for saved figures (default: current directory)
        file_prefix: Optional file name prefix
        file_type: html, png, pdf, svg, jpeg or webp
        height: Figure height in pixels
        width: Figure width in pixels

    Returns:
        One Figure when a single cluster is requested or the result has no
        Cluster column, otherwise a dict of cluster -> Figure
    """
    significance_column(p_val_adj)
    normalize_categories(category)
    _check_file_type(file_type)
    if not (topp_data["Category"] == category).any():
        raise ConfigurationError(f"Category {category!r} not found in results")

    available = _clusters_in(topp_data)
    single = clusters is None and not available or isinstance(clusters, str)
    if clusters is None:
        selected = available or [None]
    elif isinstance(clusters, str):
        selected = [clusters]
    else:
        selected = list(clusters)
    unknown = [c for c in selected if c is not None and c not in available]
    if unknown:
        raise ConfigurationError(f"Clusters not found in results: {', '.join(map(str, unknown))}")

    plotter = ToppPlotter()
    directory = resolve_save_dir(save_dir) if save else None
    figures = {}
    for cluster in selected:
        data = dot_plot_data(topp_data, category, cluster, num_terms, p_val_adj)
        title = category if cluster is None else f"{cluster}: {category}"
        fig = plotter.dot_plot(data, title, p_val_adj=p_val_adj, height=height, width=width)
        if save:
            parts = [file_prefix, category] + ([] if cluster is None else [str(cluster)])
            stem = "_".join(sanitize_filename_part(p) for p in parts if p)
            plotter.save(fig, directory / f"{stem}_dotplot.{file_type}")
        figures[cluster] = fig

    if single:
        return next(iter(figures.values()))
    return figures


def topp_balloon(
    topp_data: pd.DataFrame,
    categories: Optional[Union[str, Sequence[str]]] = None,
    balloons: int = 3,
    p_val_adj: str = "BH",
    save: bool = False,
    save_dir: Optional[Union[str, Path]] = None,
    file_prefix: Optional[str] = None,
    file_type: str = "html",
    height: int = 700,
    width: int = 900,
) -> go.Figure:
    """
    Balloon plot comparing the top ToppFun terms across clusters.

    Args:
        topp_data: Results from toppfun()
        categories: Categories to include (None for all present)
        balloons: Top terms per cluster and category
        p_val_adj: BH, BY, Bonferroni or none
        save: Save the figure as ``{file_prefix}_balloonplot``
        save_dir: Directory for the saved figure (default: current directory)
        file_prefix: File name prefix (default "toppData")
        file_type: html, png, pdf, svg, jpeg or webp
        height: Figure height in pixels
        width: Figure width in pixels

    Returns:
        Plotly Figure object
    """
    _check_file_type(file_type)
    if balloons < 1:
        raise ConfigurationError("balloons must be at least 1")
    data = balloon_plot_data(topp_data, categories, balloons, p_val_adj)
    if data.empty:
        raise ConfigurationError("No results for the requested categories")

    plotter = ToppPlotter()
    fig = plotter.balloon_plot(data, p_val_adj=p_val_adj, height=height, width=width)
    if save:
        directory = resolve_save_dir(save_dir)
        prefix = sanitize_filename_part(file_prefix or DEFAULT_FILE_PREFIX)
        plotter.save(fig, directory / f"{prefix}_balloonplot.{file_type}")
    return fig
