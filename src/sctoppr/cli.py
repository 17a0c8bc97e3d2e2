from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Optional

import click
import pandas as pd
from dotenv import load_dotenv

from sctoppr.config import (
    CLUSTER_COLUMN,
    CORRECTIONS,
    EXPORT_FORMATS,
    P_VALUE_COLUMNS,
    get_topp_categories,
)
from sctoppr.errors import SctopprError
from sctoppr.export import topp_save
from sctoppr.plotting import PLOT_FORMATS, topp_balloon, topp_plot
from sctoppr.runner import toppfun


def read_table(path: Path) -> pd.DataFrame:
    """Read a csv, tsv or xlsx table chosen by file suffix."""
    suffix = path.suffix.lower()
    if suffix == ".xlsx":
        return pd.read_excel(path, engine="openpyxl")
    if suffix in (".tsv", ".txt"):
        return pd.read_csv(path, sep="\t")
    return pd.read_csv(path)


@click.group()
@click.option("--verbose", is_flag=True, help="Enable verbose logging.")
def cli(verbose: bool) -> None:
    """Query ToppGene's ToppFun for clustered marker genes."""
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO)
    load_dotenv()


@cli.command("categories")
def categories_command() -> None:
    """List the ToppFun categories accepted by the API."""
    for category in get_topp_categories():
        click.echo(category)


@cli.command("query")
@click.argument("input_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--input-type",
    type=click.Choice(["degs", "marker_df"]),
    default="degs",
    show_default=True,
    help="Long DE table, or a table with one column of genes per cluster.",
)
@click.option(
    "--category",
    "categories",
    multiple=True,
    help="ToppFun category to query (repeat for multiple). Defaults to all.",
)
@click.option("--cluster-col", default="cluster", show_default=True)
@click.option("--gene-col", default="gene", show_default=True)
@click.option("--p-val-col", default="p_val_adj", show_default=True)
@click.option("--logfc-col", default="avg_log2FC", show_default=True)
@click.option(
    "--cluster",
    "clusters",
    multiple=True,
    help="Only query this cluster (repeat for multiple).",
)
@click.option("--num-genes", type=click.IntRange(1), default=1000, show_default=True)
@click.option("--pval-cutoff", type=float, default=0.5, show_default=True)
@click.option("--fc-cutoff", type=float, default=0.0, show_default=True)
@click.option(
    "--fc-filter",
    type=click.Choice(["ALL", "UPREG", "DOWNREG"], case_sensitive=False),
    default="ALL",
    show_default=True,
)
@click.option("--correction", type=click.Choice(CORRECTIONS), default="FDR", show_default=True)
@click.option(
    "--key-type",
    type=click.Choice(["SYMBOL", "ENTREZ"]),
    default="SYMBOL",
    show_default=True,
)
@click.option("--min-genes", type=click.IntRange(1), default=2, show_default=True)
@click.option("--max-genes", type=click.IntRange(1), default=1500, show_default=True)
@click.option("--max-results", type=click.IntRange(1), default=50, show_default=True)
@click.option(
    "--workers",
    type=click.IntRange(1, 16),
    default=1,
    show_default=True,
    help="Clusters queried concurrently.",
)
@click.option(
    "--out-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=Path("."),
    show_default=True,
    help="Directory to write result files to.",
)
@click.option("--filename", default="toppData", show_default=True, help="Output file prefix.")
@click.option(
    "--format",
    "fmt",
    type=click.Choice(sorted(EXPORT_FORMATS)),
    default="xlsx",
    show_default=True,
)
@click.option("--split/--no-split", default=True, show_default=True, help="One file per cluster.")
def query_command(
    input_path: Path,
    input_type: str,
    categories: Iterable[str],
    cluster_col: str,
    gene_col: str,
    p_val_col: str,
    logfc_col: str,
    clusters: Iterable[str],
    num_genes: int,
    pval_cutoff: float,
    fc_cutoff: float,
    fc_filter: str,
    correction: str,
    key_type: str,
    min_genes: int,
    max_genes: int,
    max_results: int,
    workers: int,
    out_dir: Path,
    filename: str,
    fmt: str,
    split: bool,
) -> None:
    """Run ToppFun on every cluster of INPUT_PATH and save the results."""
    try:
        table = read_table(input_path)
        result = toppfun(
            table,
            input_type=input_type,
            topp_categories=list(categories) or None,
            cluster_col=cluster_col,
            gene_col=gene_col,
            p_val_col=p_val_col,
            logFC_col=logfc_col,
            num_genes=num_genes,
            pval_cutoff=pval_cutoff,
            fc_cutoff=fc_cutoff,
            fc_filter=fc_filter,
            clusters=list(clusters) or None,
            correction=correction,
            key_type=key_type,
            min_genes=min_genes,
            max_genes=max_genes,
            max_results=max_results,
            max_workers=workers,
        )
        if result.empty:
            click.echo("No ToppFun results; nothing saved.", err=True)
            return
        out_dir.mkdir(parents=True, exist_ok=True)
        paths = topp_save(result, filename=filename, save_dir=out_dir, split=split, format=fmt)
    except SctopprError as e:
        raise click.ClickException(str(e)) from e

    click.echo(f"{len(result)} annotations written to {len(paths)} file(s) in {out_dir}.")


@cli.command("plot")
@click.argument("result_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--kind",
    type=click.Choice(["dot", "balloon"]),
    default="dot",
    show_default=True,
)
@click.option(
    "--category",
    "categories",
    multiple=True,
    help="Category to plot. Dot plots need exactly one; balloon plots default to all.",
)
@click.option("--cluster", "clusters", multiple=True, help="Cluster to plot (dot plots).")
@click.option("--num-terms", type=click.IntRange(1), default=10, show_default=True)
@click.option("--balloons", type=click.IntRange(1), default=3, show_default=True)
@click.option(
    "--p-val-adj",
    type=click.Choice(sorted(P_VALUE_COLUMNS)),
    default="BH",
    show_default=True,
)
@click.option(
    "--out-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=Path("."),
    show_default=True,
)
@click.option("--prefix", default=None, help="Output file prefix.")
@click.option("--file-type", type=click.Choice(PLOT_FORMATS), default="html", show_default=True)
def plot_command(
    result_path: Path,
    kind: str,
    categories: Iterable[str],
    clusters: Iterable[str],
    num_terms: int,
    balloons: int,
    p_val_adj: str,
    out_dir: Path,
    prefix: Optional[str],
    file_type: str,
) -> None:
    """Plot ToppFun results saved by ``sctoppr query``."""
    categories = list(categories)
    clusters = list(clusters) or None
    if kind == "dot" and len(categories) != 1:
        raise click.BadParameter("dot plots need exactly one --category.", param_hint="--category")

    try:
        result = read_table(result_path)
        if CLUSTER_COLUMN in result.columns:
            # cluster names from the command line are strings
            result[CLUSTER_COLUMN] = result[CLUSTER_COLUMN].astype(str)
        out_dir.mkdir(parents=True, exist_ok=True)
        if kind == "dot":
            figures = topp_plot(
                result,
                categories[0],
                clusters=clusters,
                num_terms=num_terms,
                p_val_adj=p_val_adj,
                save=True,
                save_dir=out_dir,
                file_prefix=prefix,
                file_type=file_type,
            )
            count = len(figures) if isinstance(figures, dict) else 1
        else:
            topp_balloon(
                result,
                categories=categories or None,
                balloons=balloons,
                p_val_adj=p_val_adj,
                save=True,
                save_dir=out_dir,
                file_prefix=prefix,
                file_type=file_type,
            )
            count = 1
    except SctopprError as e:
        raise click.ClickException(str(e)) from e

    click.echo(f"{count} plot(s) saved to {out_dir}.")


if __name__ == "__main__":
    cli()
