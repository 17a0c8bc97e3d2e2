"""Constants, vocabularies and configuration dataclasses for ToppFun queries.

Defines the ToppGene API endpoints, the fixed category vocabulary, the
accepted enumerated values, and the validated configuration objects that the
query orchestrator consumes.
"""

import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence, Union

import pandas as pd

from sctoppr.errors import ConfigurationError

# =============================================================================
# API
# =============================================================================

DEFAULT_API_URL = "https://toppgene.cchmc.org/API"
DEFAULT_TIMEOUT = 60.0
USER_AGENT = "sctoppr/0.3 (+https://toppgene.cchmc.org/)"

TERMS_NOTICE = (
    "This package returns data generated from ToppGene (https://toppgene.cchmc.org/). "
    "Any use of this data must be done so under the Terms of Use and citation guide "
    "established by ToppGene. "
    "Terms of Use: https://toppgene.cchmc.org/navigation/termsofuse.jsp "
    "Citations: https://toppgene.cchmc.org/help/publications.jsp"
)

# =============================================================================
# Vocabularies
# =============================================================================

TOPP_CATEGORIES = (
    "GeneOntologyMolecularFunction",
    "GeneOntologyBiologicalProcess",
    "GeneOntologyCellularComponent",
    "HumanPheno",
    "MousePheno",
    "Domain",
    "Pathway",
    "Pubmed",
    "Interaction",
    "Cytoband",
    "TFBS",
    "GeneFamily",
    "Coexpression",
    "CoexpressionAtlas",
    "ToppCell",
    "Computational",
    "MicroRNA",
    "Drug",
    "Disease",
)

CORRECTIONS = ("none", "FDR", "Bonferroni")

INPUT_TYPES = ("degs", "marker_list", "marker_df")

KEY_TYPES = ("SYMBOL", "ENTREZ")

# Export format -> file extension
EXPORT_FORMATS: Dict[str, str] = {
    "xlsx": "xlsx",
    "spreadsheet": "xlsx",
    "csv": "csv",
    "tsv": "tsv",
}

# Plot significance option -> result column
P_VALUE_COLUMNS: Dict[str, str] = {
    "BH": "QValueFDRBH",
    "BY": "QValueFDRBY",
    "Bonferroni": "QValueBonferroni",
    "none": "PValue",
}

CLUSTER_COLUMN = "Cluster"
DEFAULT_FILE_PREFIX = "toppData"


class Direction(Enum):
    """Fold-change direction policy for marker selection."""

    ALL = "ALL"  # |log2FC| > cutoff
    UP = "UP"  # log2FC > cutoff
    DOWN = "DOWN"  # log2FC < -cutoff

    @classmethod
    def parse(cls, value: Union[str, "Direction"]) -> "Direction":
        """Accept an enum member or a case-insensitive name (UPREG/DOWNREG too)."""
        if isinstance(value, cls):
            return value
        aliases = {"UPREG": "UP", "DOWNREG": "DOWN"}
        key = str(value).strip().upper()
        key = aliases.get(key, key)
        try:
            return cls(key)
        except ValueError:
            raise ConfigurationError(
                f"Invalid fc_filter {value!r}; choose one of 'ALL', 'UPREG' or 'DOWNREG'"
            ) from None


def get_topp_categories() -> List[str]:
    """Return the ToppFun categories accepted by the enrichment API."""
    return list(TOPP_CATEGORIES)


def normalize_categories(
    categories: Optional[Union[str, Sequence[str]]],
) -> List[str]:
    """Validate requested categories, defaulting to the full vocabulary."""
    if categories is None:
        return get_topp_categories()
    if isinstance(categories, str):
        categories = [categories]
    categories = list(categories)
    if not categories:
        raise ConfigurationError("At least one ToppFun category must be requested")
    unknown = [c for c in categories if c not in TOPP_CATEGORIES]
    if unknown:
        raise ConfigurationError(
            f"Unknown ToppFun categories: {', '.join(map(str, unknown))}. "
            "See get_topp_categories() for valid names."
        )
    return categories


def validate_correction(correction: str) -> str:
    if correction not in CORRECTIONS:
        raise ConfigurationError(
            "Invalid P-value correction method, please select either "
            "'none', 'FDR', or 'Bonferroni'"
        )
    return correction


# =============================================================================
# Configuration
# =============================================================================


@dataclass(frozen=True)
class MarkerColumns:
    """Names of the columns holding cluster, gene and DE statistics."""

    cluster: str = "cluster"
    gene: str = "gene"
    p_value: str = "p_val_adj"
    log_fc: str = "avg_log2FC"

    def validate(self, table: pd.DataFrame) -> None:
        """Raise ConfigurationError naming every column absent from ``table``."""
        roles = {
            "cluster_col": self.cluster,
            "gene_col": self.gene,
            "p_val_col": self.p_value,
            "logFC_col": self.log_fc,
        }
        missing = [
            f"{role}={name!r}" for role, name in roles.items() if name not in table.columns
        ]
        if missing:
            raise ConfigurationError(
                f"Column(s) not found in data: {', '.join(missing)}. Please specify."
            )


@dataclass(frozen=True)
class ApiSettings:
    """Connection settings for the ToppGene API."""

    base_url: str = DEFAULT_API_URL
    timeout: float = DEFAULT_TIMEOUT
    max_retries: int = 0

    @classmethod
    def from_env(cls) -> "ApiSettings":
        """Read ``TOPPGENE_API_URL`` and ``TOPPGENE_TIMEOUT`` overrides."""
        timeout = os.environ.get("TOPPGENE_TIMEOUT")
        try:
            timeout_value = float(timeout) if timeout else DEFAULT_TIMEOUT
        except ValueError:
            raise ConfigurationError(
                f"TOPPGENE_TIMEOUT must be a number of seconds, got {timeout!r}"
            ) from None
        return cls(
            base_url=os.environ.get("TOPPGENE_API_URL", DEFAULT_API_URL).rstrip("/"),
            timeout=timeout_value,
        )


@dataclass
class QueryConfig:
    """
    Parameters for a ToppFun query over one or more clusters.

    Attributes:
        columns: Column names for cluster, gene, p-value and log fold change
        input_type: "degs", "marker_list" or "marker_df"
        categories: ToppFun categories (None for all)
        num_genes: Maximum genes submitted per cluster (None for no limit)
        pval_cutoff: Rows need p-value strictly below this to be submitted;
            also sent to ToppGene as the term p-value threshold
        fc_cutoff: Log fold-change magnitude cutoff
        fc_filter: Direction policy ("ALL", "UPREG"/"UP", "DOWNREG"/"DOWN")
        clusters: Restrict a "degs" query to these clusters
        correction: "none", "FDR" (Benjamini-Hochberg) or "Bonferroni"
        key_type: "SYMBOL" to resolve via the lookup API, "ENTREZ" to skip it
        min_genes: Minimum genes per cluster, and per term on the server
        max_genes: Maximum genes per term on the server
        max_results: Maximum terms returned per category
        max_workers: Clusters queried concurrently
        strict_parse: Fail the batch on the first malformed annotation
    """

    columns: MarkerColumns = field(default_factory=MarkerColumns)
    input_type: str = "degs"
    categories: Optional[Sequence[str]] = None
    num_genes: Optional[int] = 1000
    pval_cutoff: float = 0.5
    fc_cutoff: float = 0.0
    fc_filter: Union[str, Direction] = "ALL"
    clusters: Optional[Sequence[str]] = None
    correction: str = "FDR"
    key_type: str = "SYMBOL"
    min_genes: int = 2
    max_genes: int = 1500
    max_results: int = 50
    max_workers: int = 1
    strict_parse: bool = False

    def validate(self) -> "QueryConfig":
        """Check every enumerated value and bound; normalise in place."""
        if self.input_type not in INPUT_TYPES:
            raise ConfigurationError(
                f"Invalid input type {self.input_type!r}; choose one of {', '.join(INPUT_TYPES)}"
            )
        if self.key_type not in KEY_TYPES:
            raise ConfigurationError(
                f"Invalid key_type {self.key_type!r}; choose one of {', '.join(KEY_TYPES)}"
            )
        self.fc_filter = Direction.parse(self.fc_filter)
        validate_correction(self.correction)
        self.categories = normalize_categories(self.categories)
        if self.num_genes is not None and self.num_genes < 1:
            raise ConfigurationError("num_genes must be at least 1")
        if self.min_genes < 1:
            raise ConfigurationError("min_genes must be at least 1")
        if self.max_genes < self.min_genes:
            raise ConfigurationError("max_genes must not be smaller than min_genes")
        if self.max_results < 1:
            raise ConfigurationError("max_results must be at least 1")
        if self.max_workers < 1:
            raise ConfigurationError("max_workers must be at least 1")
        if not 0 < self.pval_cutoff <= 1:
            raise ConfigurationError("pval_cutoff must be in (0, 1]")
        if isinstance(self.clusters, str):
            self.clusters = [self.clusters]
        elif self.clusters is not None:
            self.clusters = list(self.clusters)
        return self
