"""sctoppr: ToppGene ToppFun enrichment for clustered single-cell marker genes.

Selects marker genes per cluster from a differential-expression table,
resolves them to Entrez IDs, queries the ToppFun enrichment API and returns
the merged annotations as a pandas DataFrame, with helpers to save and plot
the results.
"""

from sctoppr.clients import GeneLookup, ToppGeneClient
from sctoppr.config import (
    ApiSettings,
    Direction,
    MarkerColumns,
    QueryConfig,
    get_topp_categories,
)
from sctoppr.errors import (
    ConfigurationError,
    EmptyResultWarning,
    ParseError,
    SctopprError,
    TransportError,
)
from sctoppr.export import topp_save
from sctoppr.markers import filter_markers
from sctoppr.model import ANNOTATION_COLUMNS, AnnotationRecord, LookupResult
from sctoppr.plotting import topp_balloon, topp_plot
from sctoppr.runner import ToppFunQuery, query, toppfun

__version__ = "0.3.0"

__all__ = [
    "ANNOTATION_COLUMNS",
    "AnnotationRecord",
    "ApiSettings",
    "ConfigurationError",
    "Direction",
    "EmptyResultWarning",
    "GeneLookup",
    "LookupResult",
    "MarkerColumns",
    "ParseError",
    "QueryConfig",
    "SctopprError",
    "ToppFunQuery",
    "ToppGeneClient",
    "TransportError",
    "filter_markers",
    "get_topp_categories",
    "query",
    "topp_balloon",
    "topp_plot",
    "topp_save",
    "toppfun",
]
