"""
Client for the ToppGene ToppFun enrichment API.

API Endpoint: https://toppgene.cchmc.org/API/enrich

Request body (identifiers shared, one threshold block per category)::

    {
      "Genes": [3458, 50943],
      "Categories": [
        {"Type": "GeneOntologyBiologicalProcess", "PValue": 0.05,
         "MinGenes": 2, "MaxGenes": 1500, "MaxResults": 50, "Correction": "FDR"},
        ...
      ]
    }

Response body::

    {"Annotations": [{"Category": ..., "ID": ..., "Name": ..., "PValue": ...,
                      "QValueFDRBH": ..., "QValueFDRBY": ..., "QValueBonferroni": ...,
                      "TotalGenes": ..., "GenesInTerm": ..., "GenesInQuery": ...,
                      "GenesInTermInQuery": ..., "Source": ..., "URL": ...,
                      "Genes": [...]}, ...]}

All statistics and multiple-testing correction are computed server side.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence, Union

import requests

from sctoppr.clients.http_utils import create_session, post_json
from sctoppr.clients.lookup import GeneLookup
from sctoppr.config import ApiSettings, normalize_categories, validate_correction
from sctoppr.errors import ConfigurationError, ParseError
from sctoppr.model import AnnotationRecord

logger = logging.getLogger(__name__)


def build_category_specs(
    categories: Sequence[str],
    pval_cutoff: float,
    min_genes: int,
    max_genes: int,
    max_results: int,
    correction: str,
) -> List[Dict[str, Any]]:
    """Build one threshold block per category for the enrich payload."""
    return [
        {
            "Type": category,
            "PValue": pval_cutoff,
            "MinGenes": min_genes,
            "MaxGenes": max_genes,
            "MaxResults": max_results,
            "Correction": correction,
        }
        for category in categories
    ]


def parse_annotations(body: Any, strict: bool = False) -> List[AnnotationRecord]:
    """
    Flatten an enrich response into annotation records.

    Args:
        body: Decoded JSON response
        strict: Re-raise the first record-level ParseError instead of
            dropping the record

    Returns:
        Parsed records in response order (empty if the service found nothing)

    Raises:
        ParseError: if the top-level structure is unusable, or on a bad
            record when ``strict`` is set
    """
    if not isinstance(body, dict) or "Annotations" not in body:
        raise ParseError("Enrich response has no 'Annotations' field")
    annotations = body["Annotations"]
    if annotations is None:
        return []
    if not isinstance(annotations, list):
        raise ParseError(
            f"Enrich response 'Annotations' is {type(annotations).__name__}, expected a list"
        )

    records = []
    dropped = 0
    for raw in annotations:
        try:
            records.append(AnnotationRecord.from_api(raw))
        except ParseError as e:
            if strict:
                raise
            dropped += 1
            logger.warning("Skipping malformed annotation: %s", e)
    if dropped:
        logger.warning("Dropped %d of %d annotations", dropped, len(annotations))
    return records


def _as_entrez(identifier: Union[str, int]) -> Union[str, int]:
    text = str(identifier).strip()
    return int(text) if text.isdigit() else text


class ToppGeneClient:
    """
    Enrichment client for ToppFun.

    Owns a GeneLookup for symbol resolution; both share one HTTP session.

    Example:
        client = ToppGeneClient()
        ids = client.lookup.resolve(["IFNG", "FOXP3", "IL2RA"])
        records = client.enrich(ids, categories=["Pathway"], pval_cutoff=0.05)
    """

    def __init__(
        self,
        settings: Optional[ApiSettings] = None,
        session: Optional[requests.Session] = None,
        lookup: Optional[GeneLookup] = None,
    ):
        """
        Initialize the enrichment client.

        Args:
            settings: API base URL, timeout and retry settings
            session: Pre-configured session (a new one is created if None)
            lookup: Symbol resolver (defaults to one sharing this session)
        """
        self.settings = settings or ApiSettings()
        self.session = session or create_session(max_retries=self.settings.max_retries)
        self.lookup = lookup or GeneLookup(self.settings, session=self.session)

    @property
    def url(self) -> str:
        return f"{self.settings.base_url}/enrich"

    def enrich(
        self,
        identifiers: Sequence[Union[str, int]],
        categories: Optional[Sequence[str]] = None,
        pval_cutoff: float = 0.05,
        min_genes: int = 2,
        max_genes: int = 1500,
        max_results: int = 50,
        correction: str = "FDR",
        strict: bool = False,
    ) -> List[AnnotationRecord]:
        """
        Run a ToppFun enrichment for one gene set.

        Args:
            identifiers: Entrez gene IDs
            categories: ToppFun categories (None for all)
            pval_cutoff: Term p-value threshold applied by the service
            min_genes: Minimum term size
            max_genes: Maximum term size
            max_results: Maximum terms returned per category
            correction: "none", "FDR" or "Bonferroni"
            strict: Fail on the first malformed annotation

        Returns:
            List of AnnotationRecord (empty if nothing was enriched)

        Raises:
            ConfigurationError: on invalid categories or correction, before
                any request is made
            TransportError: on network failure or a non-2xx response
            ParseError: if the response body cannot be interpreted
        """
        categories = normalize_categories(categories)
        validate_correction(correction)
        if not identifiers:
            raise ConfigurationError("At least one gene identifier is required")

        payload = {
            "Genes": [_as_entrez(i) for i in identifiers],
            "Categories": build_category_specs(
                categories, pval_cutoff, min_genes, max_genes, max_results, correction
            ),
        }
        logger.debug(
            "Submitting %d genes across %d categories", len(payload["Genes"]), len(categories)
        )
        response = post_json(self.session, self.url, payload, self.settings.timeout)
        try:
            body = response.json()
        except ValueError as e:
            raise ParseError(f"Enrich response from {self.url} is not JSON") from e
        return parse_annotations(body, strict=strict)
