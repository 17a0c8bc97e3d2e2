"""
ToppFun queries over clustered marker tables.

Selects genes per cluster, resolves them to Entrez IDs, submits each cluster
to the ToppGene enrichment API and merges the annotations into one table
with a ``Cluster`` column.

The use of data from ToppGene is governed by their Terms of Use:
https://toppgene.cchmc.org/navigation/termsofuse.jsp

Example:
    from sctoppr import toppfun

    topp_data = toppfun(
        ifnb_de,
        cluster_col="celltype",
        gene_col="gene",
        p_val_col="p_val_adj",
        logFC_col="avg_log2FC",
    )
"""

import logging
import threading
import warnings
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Optional, Sequence

import pandas as pd

from sctoppr.clients.enrich import ToppGeneClient
from sctoppr.config import (
    CLUSTER_COLUMN,
    TERMS_NOTICE,
    ApiSettings,
    MarkerColumns,
    QueryConfig,
)
from sctoppr.errors import ConfigurationError, EmptyResultWarning
from sctoppr.markers import (
    filter_markers,
    markers_from_list,
    markers_from_wide,
    subset_clusters,
)
from sctoppr.model import ANNOTATION_COLUMNS, AnnotationRecord, records_to_frame

logger = logging.getLogger(__name__)

_notice_lock = threading.Lock()
_notice_shown = False


def _show_terms_notice() -> None:
    """Log the ToppGene terms-of-use notice once per process."""
    global _notice_shown
    with _notice_lock:
        if not _notice_shown:
            logger.info(TERMS_NOTICE)
            _notice_shown = True


class ToppFunQuery:
    """
    Runs a configured ToppFun query over every cluster of an input table.

    Example:
        config = QueryConfig(columns=MarkerColumns(cluster="celltype"),
                             fc_filter="UPREG", categories=["Pathway"])
        result = ToppFunQuery(config).run(de_table)
        missing = result.attrs["missing_clusters"]
    """

    def __init__(
        self,
        config: Optional[QueryConfig] = None,
        client: Optional[ToppGeneClient] = None,
    ):
        """
        Initialize the query.

        Args:
            config: Query parameters (validated here, before any request)
            client: Enrichment client (default: one configured from the environment)
        """
        self.config = (config or QueryConfig()).validate()
        self.client = client or ToppGeneClient(ApiSettings.from_env())

    def build_gene_lists(self, input_data: Any) -> Dict[Any, List[str]]:
        """Turn the input into cluster -> gene list according to ``input_type``."""
        config = self.config
        if config.input_type == "marker_list":
            return markers_from_list(input_data)
        if config.input_type == "marker_df":
            return markers_from_wide(pd.DataFrame(input_data))

        table = pd.DataFrame(input_data)
        config.columns.validate(table)
        table = subset_clusters(table, config.columns.cluster, config.clusters)
        return filter_markers(
            table,
            config.columns,
            pval_cutoff=config.pval_cutoff,
            fc_cutoff=config.fc_cutoff,
            fc_filter=config.fc_filter,
            num_genes=config.num_genes,
        )

    def run(self, input_data: Any) -> pd.DataFrame:
        """
        Query ToppFun for each cluster and merge the annotations.

        Args:
            input_data: DE table, gene list or wide marker table

        Returns:
            DataFrame of annotations; a ``Cluster`` column is added when more
            than one cluster was built. Clusters without results are listed
            in ``result.attrs["missing_clusters"]``.

        Raises:
            ConfigurationError: on invalid columns or parameters
            TransportError: if the ToppGene API cannot be reached
            ParseError: if a response cannot be interpreted
        """
        gene_lists = self.build_gene_lists(input_data)
        _show_terms_notice()

        eligible = [
            cluster for cluster, genes in gene_lists.items()
            if len(genes) >= self.config.min_genes
        ]
        hits = self._query_all({cluster: gene_lists[cluster] for cluster in eligible})

        tag = len(gene_lists) > 1
        frames = []
        missing = []
        for cluster in gene_lists:
            records = hits.get(cluster)
            if not records:
                missing.append(cluster)
                continue
            frame = records_to_frame(records)
            if tag:
                frame[CLUSTER_COLUMN] = cluster
            frames.append(frame)

        columns = ANNOTATION_COLUMNS + ([CLUSTER_COLUMN] if tag else [])
        if frames:
            result = pd.concat(frames, ignore_index=True)
        else:
            result = pd.DataFrame(columns=columns)
        result.attrs["missing_clusters"] = missing

        if missing:
            warnings.warn(
                f"No results found for clusters {', '.join(map(str, missing))}",
                EmptyResultWarning,
                stacklevel=2,
            )
        return result

    def _query_all(self, gene_lists: Dict[Any, List[str]]) -> Dict[Any, List[AnnotationRecord]]:
        """Query each cluster, sequentially or on a bounded thread pool."""
        if self.config.max_workers == 1 or len(gene_lists) < 2:
            return {cluster: self._query_cluster(cluster, genes) for cluster, genes in gene_lists.items()}

        with ThreadPoolExecutor(max_workers=self.config.max_workers) as executor:
            futures = {
                cluster: executor.submit(self._query_cluster, cluster, genes)
                for cluster, genes in gene_lists.items()
            }
            try:
                # Collect in cluster order so the merge never depends on timing
                return {cluster: future.result() for cluster, future in futures.items()}
            except BaseException:
                for future in futures.values():
                    future.cancel()
                raise

    def _query_cluster(self, cluster: Any, genes: List[str]) -> List[AnnotationRecord]:
        """Resolve and enrich one cluster's genes."""
        config = self.config
        logger.info("Working on cluster: %s", cluster)

        if config.key_type == "ENTREZ":
            identifiers = genes
        else:
            lookup = self.client.lookup.lookup(genes)
            if lookup.unresolved:
                logger.info(
                    "Cluster %s: %d of %d genes not recognised by ToppGene",
                    cluster, len(lookup.unresolved), len(genes),
                )
            identifiers = lookup.identifiers

        if not identifiers:
            logger.info("Cluster %s: no genes left to submit", cluster)
            return []

        records = self.client.enrich(
            identifiers,
            categories=config.categories,
            pval_cutoff=config.pval_cutoff,
            min_genes=config.min_genes,
            max_genes=config.max_genes,
            max_results=config.max_results,
            correction=config.correction,
            strict=config.strict_parse,
        )
        logger.info("Cluster %s: %d annotations", cluster, len(records))
        return records


def toppfun(
    input_data: Any,
    input_type: str = "degs",
    topp_categories: Optional[Sequence[str]] = None,
    cluster_col: str = "cluster",
    gene_col: str = "gene",
    p_val_col: str = "p_val_adj",
    logFC_col: str = "avg_log2FC",
    num_genes: Optional[int] = 1000,
    pval_cutoff: float = 0.5,
    fc_cutoff: float = 0.0,
    fc_filter: str = "ALL",
    clusters: Optional[Sequence[str]] = None,
    correction: str = "FDR",
    key_type: str = "SYMBOL",
    min_genes: int = 2,
    max_genes: int = 1500,
    max_results: int = 50,
    max_workers: int = 1,
    strict_parse: bool = False,
    client: Optional[ToppGeneClient] = None,
) -> pd.DataFrame:
    """
    Get results from ToppFun for every cluster of a marker table.

    Args:
        input_data: DE table ("degs"), list of genes ("marker_list") or a
            table with one column of genes per cluster ("marker_df")
        input_type: One of "degs", "marker_list", "marker_df"
        topp_categories: ToppFun categories to query (None for all)
        cluster_col: Column with the cluster/celltype labels
        gene_col: Column with gene names
        p_val_col: Column with the (adjusted) p-value
        logFC_col: Column with the average log fold change
        num_genes: Maximum genes per cluster submitted to ToppGene
        pval_cutoff: P-value cutoff for selecting genes and for ToppFun terms
        fc_cutoff: Log fold change cutoff for selecting genes
        fc_filter: "ALL", "UPREG" or "DOWNREG"
        clusters: Restrict the query to these clusters
        correction: P-value correction method ("FDR" is Benjamini-Hochberg)
        key_type: "SYMBOL" or "ENTREZ"
        min_genes: Minimum genes per cluster and per ToppFun term
        max_genes: Maximum genes per ToppFun term
        max_results: Maximum results per category and cluster
        max_workers: Clusters queried concurrently
        strict_parse: Fail on the first malformed annotation instead of
            skipping it
        client: Pre-configured ToppGeneClient

    Returns:
        DataFrame of ToppFun annotations
    """
    if input_type == "marker_list" and isinstance(input_data, pd.DataFrame):
        raise ConfigurationError("input_type 'marker_list' expects a sequence of genes")
    config = QueryConfig(
        columns=MarkerColumns(
            cluster=cluster_col, gene=gene_col, p_value=p_val_col, log_fc=logFC_col
        ),
        input_type=input_type,
        categories=topp_categories,
        num_genes=num_genes,
        pval_cutoff=pval_cutoff,
        fc_cutoff=fc_cutoff,
        fc_filter=fc_filter,
        clusters=clusters,
        correction=correction,
        key_type=key_type,
        min_genes=min_genes,
        max_genes=max_genes,
        max_results=max_results,
        max_workers=max_workers,
        strict_parse=strict_parse,
    )
    return ToppFunQuery(config, client=client).run(input_data)


query = toppfun
