"""
ToppGene API clients.

Provides:
- GeneLookup: gene symbol -> Entrez ID resolution (/API/lookup)
- ToppGeneClient: ToppFun enrichment (/API/enrich)
"""
from sctoppr.clients.enrich import ToppGeneClient, build_category_specs, parse_annotations
from sctoppr.clients.http_utils import create_session
from sctoppr.clients.lookup import GeneLookup

__all__ = [
    "GeneLookup",
    "ToppGeneClient",
    "build_category_specs",
    "create_session",
    "parse_annotations",
]
