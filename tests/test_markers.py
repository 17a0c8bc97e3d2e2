"""Unit tests for sctoppr.markers: per-cluster marker selection."""

import numpy as np
import pandas as pd
import pytest

from sctoppr.config import Direction, MarkerColumns
from sctoppr.errors import ConfigurationError
from sctoppr.markers import (
    filter_markers,
    markers_from_list,
    markers_from_wide,
    subset_clusters,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

COLUMNS = MarkerColumns()


def _make_de_table(rows):
    """Build a DE table from (cluster, gene, p_val_adj, avg_log2FC) tuples."""
    return pd.DataFrame(rows, columns=["cluster", "gene", "p_val_adj", "avg_log2FC"])


def _example_table():
    return _make_de_table([
        ("A", "g1", 0.01, 2.0),
        ("A", "g2", 0.01, -3.0),
        ("A", "g3", 0.01, 0.2),
    ])


# ---------------------------------------------------------------------------
# Direction policies
# ---------------------------------------------------------------------------

class TestDirectionPolicies:

    def test_all_ranks_by_absolute_effect(self):
        result = filter_markers(_example_table(), COLUMNS, fc_cutoff=0.5, fc_filter="ALL")
        assert result == {"A": ["g2", "g1"]}

    def test_up(self):
        result = filter_markers(_example_table(), COLUMNS, fc_cutoff=0.5, fc_filter="UPREG")
        assert result == {"A": ["g1"]}

    def test_down(self):
        result = filter_markers(_example_table(), COLUMNS, fc_cutoff=0.5, fc_filter=Direction.DOWN)
        assert result == {"A": ["g2"]}

    def test_cutoff_is_strict(self):
        table = _make_de_table([("A", "g1", 0.01, 0.5), ("A", "g2", 0.01, -0.5)])
        assert filter_markers(table, COLUMNS, fc_cutoff=0.5) == {"A": []}

    def test_ties_keep_input_order(self):
        table = _make_de_table([
            ("A", "g1", 0.01, 1.0),
            ("A", "g2", 0.01, -1.0),
            ("A", "g3", 0.01, 1.0),
        ])
        assert filter_markers(table, COLUMNS) == {"A": ["g1", "g2", "g3"]}


# ---------------------------------------------------------------------------
# Predicates and bounds
# ---------------------------------------------------------------------------

class TestFilterMarkers:

    def test_pvalue_cutoff_is_strict(self):
        table = _make_de_table([
            ("A", "g1", 0.04, 1.0),
            ("A", "g2", 0.05, 2.0),
            ("A", "g3", 0.20, 3.0),
        ])
        result = filter_markers(table, COLUMNS, pval_cutoff=0.05)
        assert result == {"A": ["g1"]}

    def test_num_genes_truncates_after_ranking(self):
        table = _make_de_table([("A", f"g{i}", 0.01, float(i)) for i in range(1, 6)])
        result = filter_markers(table, COLUMNS, num_genes=2)
        assert result == {"A": ["g5", "g4"]}

    def test_num_genes_none_keeps_everything(self):
        table = _make_de_table([("A", f"g{i}", 0.01, float(i)) for i in range(1, 6)])
        assert len(filter_markers(table, COLUMNS, num_genes=None)["A"]) == 5

    def test_num_genes_zero_raises(self):
        with pytest.raises(ConfigurationError):
            filter_markers(_example_table(), COLUMNS, num_genes=0)

    def test_clusters_in_order_of_first_appearance(self):
        table = _make_de_table([
            ("B", "g1", 0.01, 1.0),
            ("A", "g2", 0.01, 1.0),
            ("B", "g3", 0.01, 2.0),
        ])
        result = filter_markers(table, COLUMNS)
        assert list(result) == ["B", "A"]
        assert result["B"] == ["g3", "g1"]

    def test_cluster_without_passing_genes_maps_to_empty_list(self):
        table = _make_de_table([("A", "g1", 0.01, 1.0), ("B", "g2", 0.9, 1.0)])
        assert filter_markers(table, COLUMNS) == {"A": ["g1"], "B": []}

    def test_missing_gene_names_are_dropped(self):
        table = _make_de_table([("A", np.nan, 0.01, 3.0), ("A", "g2", 0.01, 1.0)])
        assert filter_markers(table, COLUMNS) == {"A": ["g2"]}

    def test_custom_columns(self):
        table = pd.DataFrame({
            "celltype": ["T", "T"],
            "symbol": ["CD3E", "CD8A"],
            "padj": [0.001, 0.002],
            "lfc": [1.0, 2.0],
        })
        columns = MarkerColumns(cluster="celltype", gene="symbol", p_value="padj", log_fc="lfc")
        assert filter_markers(table, columns) == {"T": ["CD8A", "CD3E"]}

    def test_missing_column_raises(self):
        table = _example_table().drop(columns=["avg_log2FC"])
        with pytest.raises(ConfigurationError, match="logFC_col"):
            filter_markers(table, COLUMNS)

    def test_every_gene_satisfies_predicates(self):
        rng = np.random.default_rng(0)
        table = _make_de_table([
            (f"c{i % 3}", f"g{i}", float(p), float(fc))
            for i, (p, fc) in enumerate(zip(rng.uniform(0, 1, 60), rng.normal(0, 2, 60)))
        ])
        lookup = table.set_index("gene")
        for direction in Direction:
            result = filter_markers(
                table, COLUMNS, pval_cutoff=0.3, fc_cutoff=0.5, fc_filter=direction, num_genes=5
            )
            for genes in result.values():
                assert len(genes) <= 5
                for gene in genes:
                    assert lookup.loc[gene, "p_val_adj"] < 0.3
                    fc = lookup.loc[gene, "avg_log2FC"]
                    if direction is Direction.UP:
                        assert fc > 0.5
                    elif direction is Direction.DOWN:
                        assert fc < -0.5
                    else:
                        assert abs(fc) > 0.5


# ---------------------------------------------------------------------------
# Cluster subsetting and other input shapes
# ---------------------------------------------------------------------------

class TestSubsetClusters:

    def test_none_returns_table(self):
        table = _example_table()
        assert subset_clusters(table, "cluster", None) is table

    def test_absent_clusters_logged(self, caplog):
        table = _make_de_table([("A", "g1", 0.01, 1.0), ("B", "g2", 0.01, 1.0)])
        with caplog.at_level("WARNING", logger="sctoppr.markers"):
            subset = subset_clusters(table, "cluster", ["B", "Z"])
        assert list(subset["cluster"]) == ["B"]
        assert "Z" in caplog.text

    def test_numeric_labels_match_text(self):
        table = _make_de_table([(0, "g1", 0.01, 1.0), (1, "g2", 0.01, 1.0)])
        subset = subset_clusters(table, "cluster", ["1"])
        assert list(subset["gene"]) == ["g2"]
        assert list(subset["cluster"]) == [1]


class TestOtherInputs:

    def test_marker_list(self):
        assert markers_from_list(["IFNG", "FOXP3"]) == {"genes": ["IFNG", "FOXP3"]}

    def test_marker_list_single_string(self):
        assert markers_from_list("IFNG") == {"genes": ["IFNG"]}

    def test_wide_table_skips_bookkeeping_columns(self):
        table = pd.DataFrame({
            "rank": [1, 2, 3],
            "X": [1, 2, 3],
            "T cells": ["CD3E", "CD8A", "IL7R"],
            "B cells": ["MS4A1", "CD79A", np.nan],
        })
        assert markers_from_wide(table) == {
            "T cells": ["CD3E", "CD8A", "IL7R"],
            "B cells": ["MS4A1", "CD79A"],
        }
