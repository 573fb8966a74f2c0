"""
Result records for differential expression and enrichment analysis.

The fitted model is a frozen record; anything whose name inside PyDESeq2
has moved between releases is read through an accessor function below
rather than straight off the ``DeseqDataSet``.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
import pandas as pd

# Result Table columns, in output order
ID_COLUMN = "gene_id"
STAT_COLUMNS = ["baseMean", "log2FoldChange", "lfcSE", "stat", "pvalue", "padj"]
MAPPING_COLUMNS = ["symbol", "entrez_id"]
RESULT_COLUMNS = [ID_COLUMN] + STAT_COLUMNS + MAPPING_COLUMNS


@dataclass(frozen=True)
class FittedModel:
    """
    A fitted negative binomial model and the inputs it was fitted on.

    Attributes:
        counts: Count matrix the model was fitted on (genes x samples)
        metadata: Sample metadata with ``factor`` as a categorical
        design: Design formula, e.g. ``"~condition"``
        factor: Condition column name
        levels: Level order at fit time; ``levels[0]`` is the reference
        dds: The underlying ``pydeseq2.dds.DeseqDataSet``
    """

    counts: pd.DataFrame
    metadata: pd.DataFrame
    design: str
    factor: str
    levels: Tuple[str, ...]
    dds: Any = field(repr=False, compare=False)
    fitted_at: str = field(default_factory=lambda: datetime.now().isoformat())

    @property
    def reference(self) -> str:
        return self.levels[0]

    @property
    def n_samples(self) -> int:
        return self.counts.shape[1]

    @property
    def n_genes(self) -> int:
        return self.counts.shape[0]

    def __repr__(self) -> str:
        return (
            f"FittedModel({self.design}, genes={self.n_genes}, "
            f"samples={self.n_samples}, reference={self.reference!r})"
        )


def default_test_level(model: FittedModel) -> str:
    """The non-reference level of a two-level factor."""
    if len(model.levels) != 2:
        raise ValueError(
            f"Factor {model.factor!r} has {len(model.levels)} levels; "
            "pass test_level explicitly"
        )
    return model.levels[1]


def lfc_coefficient(model: FittedModel, test_level: Optional[str] = None) -> str:
    """
    Name of the LFC coefficient for ``test_level`` vs the reference.

    PyDESeq2 >= 0.5 names coefficients ``condition[T.treated]``; earlier
    releases used ``condition_treated_vs_untreated``.

    Raises:
        ValueError: If the fit has no such coefficient (e.g. the requested
            comparison was not against the fitted reference level).
    """
    test_level = test_level or default_test_level(model)
    candidates = (
        f"{model.factor}[T.{test_level}]",
        f"{model.factor}_{test_level}_vs_{model.reference}",
        f"{model.factor}[{test_level}]",
    )
    available = list(model.dds.varm["LFC"].columns)
    for name in candidates:
        if name in available:
            return name
    raise ValueError(
        f"No coefficient for {test_level!r} vs {model.reference!r} in fit "
        f"(available: {available}); re-level and re-fit first"
    )


def size_factors(model: FittedModel) -> pd.Series:
    """Per-sample size factors."""
    dds = model.dds
    if "size_factors" in dds.obsm:
        values = dds.obsm["size_factors"]
    else:
        values = dds.obs["size_factors"]
    return pd.Series(np.asarray(values), index=list(dds.obs_names), name="size_factors")


def normalized_counts(model: FittedModel) -> pd.DataFrame:
    """Size-factor normalized counts, genes x samples."""
    dds = model.dds
    if "normed_counts" in dds.layers:
        values = np.asarray(dds.layers["normed_counts"])
    else:
        values = np.asarray(dds.X) / size_factors(model).to_numpy()[:, None]
    return pd.DataFrame(values.T, index=list(dds.var_names), columns=list(dds.obs_names))


def base_means(model: FittedModel) -> pd.Series:
    """Mean of normalized counts per gene."""
    return normalized_counts(model).mean(axis=1).rename("baseMean")


def dispersions(model: FittedModel) -> pd.Series:
    """Final (MAP or gene-wise) dispersion per gene."""
    dds = model.dds
    if "dispersions" in dds.var:
        values = dds.var["dispersions"].to_numpy()
    else:
        values = np.asarray(dds.varm["dispersions"])
    return pd.Series(
        values,
        index=list(dds.var_names),
        name="dispersion",
    )


@dataclass
class DESummary:
    """DESeq2-style summary of a result table."""

    n_tested: int
    n_up: int
    n_down: int
    n_missing_padj: int
    n_outliers: int
    alpha: float
    lfc_threshold: float

    def to_dict(self) -> dict:
        return {
            "genes_tested": self.n_tested,
            "n_upregulated": self.n_up,
            "n_downregulated": self.n_down,
            "n_missing_padj": self.n_missing_padj,
            "n_outliers": self.n_outliers,
            "alpha": self.alpha,
            "lfc_threshold": self.lfc_threshold,
        }

    def __str__(self) -> str:
        def pct(n: int) -> float:
            return 100.0 * n / self.n_tested if self.n_tested else 0.0

        return (
            f"out of {self.n_tested} genes with nonzero total read count\n"
            f"adjusted p-value < {self.alpha}\n"
            f"LFC > {self.lfc_threshold} (up)    : {self.n_up}, {pct(self.n_up):.1f}%\n"
            f"LFC < -{self.lfc_threshold} (down) : {self.n_down}, {pct(self.n_down):.1f}%\n"
            f"outliers [1]       : {self.n_outliers}, {pct(self.n_outliers):.1f}%\n"
            f"missing padj [2]   : {self.n_missing_padj}, {pct(self.n_missing_padj):.1f}%"
        )


@dataclass
class SignificantSubset:
    """Significant identifiers and the background they were drawn from."""

    genes: List[str]
    universe: List[str]
    padj_threshold: float
    lfc_threshold: float
    direction: str

    @property
    def n_genes(self) -> int:
        return len(self.genes)

    def __repr__(self) -> str:
        return (
            f"SignificantSubset({self.direction}, genes={self.n_genes}, "
            f"universe={len(self.universe)})"
        )


# =============================================================================
# Enrichment Analysis Result Dataclasses
# =============================================================================


@dataclass
class EnrichedTerm:
    """
    A single over-represented term from GO, KEGG, Reactome, etc.
    """

    term_id: str  # GO:XXXXXXX, REAC:R-HSA-XXXXX, KEGG:00000
    term_name: str
    source: str  # GO:BP, GO:CC, GO:MF, KEGG, REAC
    pvalue: float
    pvalue_adjusted: float
    term_size: int  # Total genes in term
    query_size: int  # Genes submitted
    intersection_size: int  # Genes overlapping
    genes: List[str] = field(default_factory=list)

    @property
    def gene_ratio(self) -> float:
        """Hits over significant genes submitted."""
        return self.intersection_size / self.query_size if self.query_size else 0.0

    @property
    def background_ratio(self) -> float:
        """Hits over term size."""
        return self.intersection_size / self.term_size if self.term_size else 0.0

    def __repr__(self) -> str:
        return (
            f"EnrichedTerm({self.term_id}, {self.term_name!r}, "
            f"p_adj={self.pvalue_adjusted:.2e}, genes={self.intersection_size})"
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "term_id": self.term_id,
            "term_name": self.term_name,
            "source": self.source,
            "pvalue": self.pvalue,
            "pvalue_adjusted": self.pvalue_adjusted,
            "term_size": self.term_size,
            "query_size": self.query_size,
            "intersection_size": self.intersection_size,
            "gene_ratio": self.gene_ratio,
            "genes": self.genes,
        }


ENRICHMENT_COLUMNS = [
    "term_id",
    "term_name",
    "source",
    "pvalue",
    "pvalue_adjusted",
    "term_size",
    "query_size",
    "intersection_size",
    "gene_ratio",
    "genes",
]


@dataclass
class EnrichmentProvenance:
    """
    Provenance record for enrichment analysis.
    """

    backend: str  # "gprofiler"
    organism: str  # "hsapiens", "mmusculus"
    sources: List[str]
    significance_threshold: float
    correction_method: str  # "g_SCS", "fdr", "bonferroni"
    background_size: Optional[int] = None
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "backend": self.backend,
            "organism": self.organism,
            "sources": self.sources,
            "significance_threshold": self.significance_threshold,
            "correction_method": self.correction_method,
            "background_size": self.background_size,
            "timestamp": self.timestamp,
        }


@dataclass
class EnrichmentResult:
    """
    Over-representation result for one gene list.

    An empty ``terms`` list is a valid outcome, not an error.
    """

    provenance: EnrichmentProvenance
    direction: str
    input_genes: List[str]
    n_genes_mapped: int = 0
    terms: List[EnrichedTerm] = field(default_factory=list)

    @property
    def n_terms(self) -> int:
        """Number of significant enriched terms."""
        return len(self.terms)

    @property
    def is_empty(self) -> bool:
        return not self.terms

    def get_top_terms(self, n: int = 10, source: Optional[str] = None) -> List[EnrichedTerm]:
        """
        Get top N terms by adjusted p-value.

        Args:
            n: Number of terms to return
            source: Filter by source (GO:BP, GO:CC, GO:MF, KEGG, REAC)

        Returns:
            List of top enriched terms
        """
        terms = self.terms
        if source:
            terms = [t for t in terms if t.source == source]
        sorted_terms = sorted(terms, key=lambda t: t.pvalue_adjusted)
        return sorted_terms[:n]

    def to_frame(self) -> pd.DataFrame:
        """Terms as a DataFrame ranked by adjusted p-value."""
        if not self.terms:
            return pd.DataFrame(columns=ENRICHMENT_COLUMNS)
        rows = []
        for term in self.get_top_terms(n=len(self.terms)):
            row = term.to_dict()
            row["genes"] = ",".join(term.genes)
            rows.append(row)
        return pd.DataFrame(rows, columns=ENRICHMENT_COLUMNS)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "provenance": self.provenance.to_dict(),
            "direction": self.direction,
            "input_genes": len(self.input_genes),
            "n_genes_mapped": self.n_genes_mapped,
            "n_significant_terms": self.n_terms,
            "terms": [t.to_dict() for t in self.terms],
        }

    def __repr__(self) -> str:
        return f"EnrichmentResult({self.direction}, terms={self.n_terms})"


def summary_counts(by_direction: Dict[str, EnrichmentResult]) -> Dict[str, int]:
    """Number of terms per direction."""
    return {direction: result.n_terms for direction, result in by_direction.items()}
