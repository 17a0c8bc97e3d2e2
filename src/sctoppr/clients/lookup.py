"""
Gene symbol to Entrez ID resolution using the ToppGene lookup API.

API Endpoint: https://toppgene.cchmc.org/API/lookup

Request body::

    {"Symbols": ["IFNG", "FOXP3"]}

Response body::

    {"Genes": [{"Submitted": "IFNG", "Entrez": 3458, "OfficialSymbol": "IFNG"}, ...]}

Symbols the service cannot match are simply absent from ``Genes``; the
response order is not guaranteed to follow the submitted order.
"""

import logging
from typing import List, Optional, Sequence

import requests

from sctoppr.clients.http_utils import create_session, post_json
from sctoppr.config import ApiSettings
from sctoppr.errors import TransportError
from sctoppr.model import LookupResult

logger = logging.getLogger(__name__)


class GeneLookup:
    """
    Client for the ToppGene symbol lookup endpoint.

    Example:
        lookup = GeneLookup()
        entrez_ids = lookup.resolve(["IFNG", "FOXP3"])
    """

    def __init__(
        self,
        settings: Optional[ApiSettings] = None,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize the lookup client.

        Args:
            settings: API base URL, timeout and retry settings
            session: Pre-configured session (created lazily if None)
        """
        self.settings = settings or ApiSettings()
        self._session = session

    @property
    def session(self) -> requests.Session:
        """Get or create the requests session."""
        if self._session is None:
            self._session = create_session(max_retries=self.settings.max_retries)
        return self._session

    @property
    def url(self) -> str:
        return f"{self.settings.base_url}/lookup"

    def lookup(self, symbols: Sequence[str]) -> LookupResult:
        """
        Resolve gene symbols, reporting the ones the service did not match.

        Args:
            symbols: Gene symbols in any order

        Returns:
            LookupResult with Entrez IDs in service order and unresolved symbols

        Raises:
            TransportError: on network failure or a malformed response body
        """
        symbols = [str(s) for s in symbols]
        if not symbols:
            return LookupResult()

        response = post_json(self.session, self.url, {"Symbols": symbols}, self.settings.timeout)
        try:
            body = response.json()
        except ValueError as e:
            raise TransportError(f"Lookup response from {self.url} is not JSON") from e

        if not isinstance(body, dict):
            raise TransportError(f"Lookup response from {self.url} is not a JSON object")
        # An empty match set comes back as null or without the key at all
        genes = body.get("Genes") or []
        if not isinstance(genes, list):
            raise TransportError(f"Lookup response from {self.url} has no 'Genes' list")

        result = LookupResult()
        matched = set()
        for gene in genes:
            entrez = gene.get("Entrez") if isinstance(gene, dict) else None
            if entrez in (None, ""):
                logger.debug("Dropping lookup record without Entrez ID: %r", gene)
                continue
            result.identifiers.append(str(entrez))
            matched.add(str(gene.get("Submitted", "")).upper())

        result.unresolved = [s for s in symbols if s.upper() not in matched]
        logger.debug(
            "Resolved %d of %d symbols (%d unresolved)",
            len(result.identifiers), len(symbols), len(result.unresolved),
        )
        return result

    def resolve(self, symbols: Sequence[str]) -> List[str]:
        """Resolve gene symbols to Entrez IDs, silently dropping unmatched ones."""
        return self.lookup(symbols).identifiers
