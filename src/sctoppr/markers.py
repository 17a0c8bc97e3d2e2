"""
Marker selection from differential expression tables.

Turns a long table of per-cluster DE statistics into ranked, size-bounded
gene lists, one per cluster, and normalises the two pre-filtered input
shapes (a bare gene list, or a wide table with one column per cluster).

Example:
    from sctoppr.config import MarkerColumns
    from sctoppr.markers import filter_markers

    columns = MarkerColumns(cluster="celltype", gene="gene",
                            p_value="p_val_adj", log_fc="avg_log2FC")
    gene_lists = filter_markers(de_table, columns, pval_cutoff=0.05,
                                fc_cutoff=0.25, fc_filter="UPREG", num_genes=200)
"""

import logging
from typing import Dict, Iterable, List, Optional, Sequence, Union

import pandas as pd

from sctoppr.config import Direction, MarkerColumns
from sctoppr.errors import ConfigurationError

logger = logging.getLogger(__name__)

# Bookkeeping columns written by R/pandas exports of wide marker tables
IGNORED_MARKER_COLUMNS = ("rank", "X")


def filter_markers(
    table: pd.DataFrame,
    columns: MarkerColumns,
    pval_cutoff: float = 0.5,
    fc_cutoff: float = 0.0,
    fc_filter: Union[str, Direction] = Direction.ALL,
    num_genes: Optional[int] = 1000,
) -> Dict[str, List[str]]:
    """
    Select and rank genes per cluster.

    Args:
        table: DE results with one row per (cluster, gene)
        columns: Column names for cluster, gene, p-value and log fold change
        pval_cutoff: Keep rows with p-value strictly below this
        fc_cutoff: Log fold-change cutoff applied according to ``fc_filter``
        fc_filter: ALL (|FC| > cutoff), UP (FC > cutoff) or DOWN (FC < -cutoff)
        num_genes: Maximum genes per cluster (None keeps every passing gene)

    Returns:
        Mapping of cluster -> ranked gene list, clusters in order of first
        appearance. Clusters with no passing genes map to an empty list.
    """
    columns.validate(table)
    direction = Direction.parse(fc_filter)
    if num_genes is not None and num_genes < 1:
        raise ConfigurationError("num_genes must be at least 1")

    gene_lists: Dict[str, List[str]] = {}
    for cluster, rows in table.groupby(columns.cluster, sort=False, observed=True):
        rows = rows[rows[columns.p_value] < pval_cutoff]
        selected = _select_direction(rows, columns.log_fc, fc_cutoff, direction)
        genes = selected[columns.gene].dropna()
        if num_genes is not None:
            genes = genes.iloc[:num_genes]
        gene_lists[cluster] = [str(g) for g in genes]
        logger.debug(
            "Cluster %s: %d of %d rows pass filters", cluster, len(gene_lists[cluster]), len(rows)
        )
    return gene_lists


def _select_direction(
    rows: pd.DataFrame,
    fc_col: str,
    fc_cutoff: float,
    direction: Direction,
) -> pd.DataFrame:
    """Apply the fold-change predicate and rank rows for one cluster."""
    fc = rows[fc_col]
    # mergesort is stable, so ties keep their input order
    if direction == Direction.ALL:
        kept = rows[fc.abs() > fc_cutoff]
        order = kept[fc_col].abs().sort_values(ascending=False, kind="mergesort").index
    elif direction == Direction.UP:
        kept = rows[fc > fc_cutoff]
        order = kept[fc_col].sort_values(ascending=False, kind="mergesort").index
    else:
        kept = rows[fc < -fc_cutoff]
        order = kept[fc_col].sort_values(ascending=True, kind="mergesort").index
    return kept.loc[order]


def subset_clusters(
    table: pd.DataFrame, cluster_col: str, clusters: Optional[Iterable[str]]
) -> pd.DataFrame:
    """
    Restrict a DE table to the requested clusters.

    Labels are matched as text, so "0" selects an integer cluster 0 read
    from a csv file. The table keeps its original labels.
    """
    if clusters is None:
        return table
    wanted = [str(c) for c in clusters]
    labels = table[cluster_col].astype(str)
    subset = table[labels.isin(wanted)]
    present = set(labels[labels.isin(wanted)])
    absent = [c for c in wanted if c not in present]
    if absent:
        logger.warning("Requested clusters not present in data: %s", ", ".join(map(str, absent)))
    return subset


def markers_from_list(genes: Sequence[str], name: str = "genes") -> Dict[str, List[str]]:
    """Wrap a plain gene list as a single unnamed cluster."""
    if isinstance(genes, str):
        genes = [genes]
    return {name: [str(g) for g in genes if not pd.isna(g)]}


def markers_from_wide(table: pd.DataFrame) -> Dict[str, List[str]]:
    """
    Read a wide marker table whose columns are clusters.

    Cells are gene names; shorter columns may be padded with NaN. Columns
    named ``rank`` or ``X`` are row bookkeeping and are skipped.
    """
    gene_lists: Dict[str, List[str]] = {}
    for col in table.columns:
        if col in IGNORED_MARKER_COLUMNS:
            continue
        gene_lists[col] = [str(g) for g in table[col].dropna()]
    return gene_lists
