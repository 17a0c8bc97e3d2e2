"""Data model for ToppFun annotations and identifier lookups.

Pure dataclasses plus the helpers that convert them to and from the
ToppGene JSON field names used as column headers in every exported table.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping

import pandas as pd

from sctoppr.errors import ParseError

# (attribute, API field, type) in export column order
_FIELDS = (
    ("category", "Category", str),
    ("term_id", "ID", str),
    ("name", "Name", str),
    ("pvalue", "PValue", float),
    ("qvalue_fdr_bh", "QValueFDRBH", float),
    ("qvalue_fdr_by", "QValueFDRBY", float),
    ("qvalue_bonferroni", "QValueBonferroni", float),
    ("total_genes", "TotalGenes", int),
    ("genes_in_term", "GenesInTerm", int),
    ("genes_in_query", "GenesInQuery", int),
    ("genes_in_term_in_query", "GenesInTermInQuery", int),
    ("source", "Source", str),
    ("url", "URL", str),
)

ANNOTATION_COLUMNS: List[str] = [api for _, api, _ in _FIELDS]


@dataclass(frozen=True)
class AnnotationRecord:
    """A single ToppFun enrichment hit."""

    category: str
    term_id: str
    name: str
    pvalue: float
    qvalue_fdr_bh: float
    qvalue_fdr_by: float
    qvalue_bonferroni: float
    total_genes: int
    genes_in_term: int
    genes_in_query: int
    genes_in_term_in_query: int
    source: str
    url: str

    @property
    def gene_ratio(self) -> float:
        """Fraction of the query genes found in the term."""
        if not self.genes_in_query:
            return 0.0
        return self.genes_in_term_in_query / self.genes_in_query

    @classmethod
    def from_api(cls, record: Mapping[str, Any]) -> "AnnotationRecord":
        """Build a record from one element of the ``Annotations`` array.

        Raises:
            ParseError: if a field is missing or cannot be coerced
        """
        if not isinstance(record, Mapping):
            raise ParseError(f"Annotation is not an object: {record!r}")
        missing = [api for _, api, _ in _FIELDS if api not in record]
        if missing:
            raise ParseError(
                f"Annotation {record.get('ID', '?')!r} missing field(s): {', '.join(missing)}"
            )
        values = {}
        for attr, api, kind in _FIELDS:
            raw = record[api]
            try:
                # Source and URL are sometimes null for computed categories
                values[attr] = "" if raw is None and kind is str else kind(raw)
            except (TypeError, ValueError) as e:
                raise ParseError(
                    f"Annotation {record.get('ID', '?')!r} has invalid {api}: {raw!r}"
                ) from e
        return cls(**values)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a dict keyed by the ToppGene field names."""
        return {api: getattr(self, attr) for attr, api, _ in _FIELDS}


def records_to_frame(records: List[AnnotationRecord]) -> pd.DataFrame:
    """Tabulate annotation records, keeping the columns even when empty."""
    return pd.DataFrame([r.to_dict() for r in records], columns=ANNOTATION_COLUMNS)


@dataclass
class LookupResult:
    """Outcome of resolving gene symbols to Entrez identifiers."""

    identifiers: List[str] = field(default_factory=list)
    unresolved: List[str] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.identifiers)
