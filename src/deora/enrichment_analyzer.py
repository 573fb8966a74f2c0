"""
Over-representation analysis using g:Profiler.

Tests the significant gene subset against GO, KEGG and Reactome with a
hypergeometric test computed server-side by g:Profiler. When a background
universe is supplied the test is restricted to it (``domain_scope="custom"``),
matching the tested-gene universe of the DE analysis.

Example:
    from deora.enrichment_analyzer import EnrichmentAnalyzer, EnrichmentConfig

    analyzer = EnrichmentAnalyzer(EnrichmentConfig(organism="hsapiens"))
    result = analyzer.analyze(subset)
"""

import logging
from typing import Dict, List, Optional, Protocol, Tuple

import pandas as pd

from .config import EnrichmentConfig, SignificanceConfig
from .de_result import (
    EnrichedTerm,
    EnrichmentProvenance,
    EnrichmentResult,
    SignificantSubset,
)
from .gene_ranker import select_from_config

logger = logging.getLogger(__name__)


class EnrichmentBackend(Protocol):
    """Protocol for enrichment analysis backends."""

    name: str

    def analyze(
        self,
        genes: List[str],
        organism: str,
        sources: List[str],
        threshold: float,
        correction: str,
        background: Optional[List[str]] = None,
    ) -> Tuple[List[EnrichedTerm], int]:
        """
        Run enrichment analysis on a gene list.

        Args:
            genes: Significant gene identifiers
            organism: Organism identifier
            sources: Data sources to query
            threshold: Significance threshold
            correction: Multiple testing correction method
            background: Universe of tested identifiers, or None for the
                whole annotated genome

        Returns:
            Tuple of (list of enriched terms, number of genes mapped)
        """
        ...


class GProfilerBackend:
    """
    Enrichment analysis using g:Profiler API.

    Uses the gprofiler-official package for server-side computation.
    This is fast and requires no local database.
    """

    name = "gprofiler"

    def __init__(self, numeric_namespace: str = "ENTREZGENE_ACC"):
        """Initialize g:Profiler backend."""
        self.numeric_namespace = numeric_namespace
        self._gp = None

    def _get_client(self):
        """Lazy initialization of g:Profiler client."""
        if self._gp is None:
            from gprofiler import GProfiler

            self._gp = GProfiler(user_agent="deora", return_dataframe=False)
        return self._gp

    def analyze(
        self,
        genes: List[str],
        organism: str,
        sources: List[str],
        threshold: float,
        correction: str,
        background: Optional[List[str]] = None,
    ) -> Tuple[List[EnrichedTerm], int]:
        """
        Run g:Profiler enrichment analysis.

        Returns:
            Tuple of (list of EnrichedTerm objects, number of genes mapped)
        """
        if not genes:
            return [], 0

        gp = self._get_client()

        kwargs = {}
        if background:
            kwargs = {"domain_scope": "custom", "background": background}

        result = gp.profile(
            organism=organism,
            query=genes,
            sources=sources,
            user_threshold=threshold,
            significance_threshold_method=correction,
            numeric_namespace=self.numeric_namespace,
            no_evidences=False,  # Include intersections (gene lists)
            **kwargs,
        )

        if not result:
            return [], 0

        # Extract number of genes mapped (from first result's query_size)
        n_mapped = result[0].get("query_size", len(genes))

        terms = []
        for r in result:
            terms.append(
                EnrichedTerm(
                    term_id=r["native"],
                    term_name=r["name"],
                    source=r["source"],
                    pvalue=r["p_value"],
                    pvalue_adjusted=r["p_value"],  # g:Profiler returns adjusted by default
                    term_size=r["term_size"],
                    query_size=r["query_size"],
                    intersection_size=r["intersection_size"],
                    genes=_intersection_genes(r, genes),
                )
            )

        return terms, n_mapped


def _intersection_genes(record: dict, genes: List[str]) -> List[str]:
    """Query genes that carry evidence for a term."""
    intersections = record.get("intersections")
    if not intersections:
        return []
    # With no_evidences=False, intersections is aligned with the query
    return [gene for gene, evidence in zip(genes, intersections) if evidence]


class EnrichmentAnalyzer:
    """
    Over-representation analyzer.

    Runs the configured backend (default: g:Profiler) on a
    SignificantSubset. Too few genes or no significant terms give an empty
    EnrichmentResult rather than an error.
    """

    def __init__(
        self,
        config: Optional[EnrichmentConfig] = None,
        backend: Optional[EnrichmentBackend] = None,
    ):
        """
        Initialize enrichment analyzer.

        Args:
            config: Analysis configuration
            backend: Enrichment backend (default: GProfilerBackend)
        """
        self.config = config or EnrichmentConfig()
        self.backend = backend or GProfilerBackend(self.config.numeric_namespace)

    def provenance(self, background: Optional[List[str]]) -> EnrichmentProvenance:
        return EnrichmentProvenance(
            backend=getattr(self.backend, "name", type(self.backend).__name__),
            organism=self.config.organism,
            sources=list(self.config.sources),
            significance_threshold=self.config.significance_threshold,
            correction_method=self.config.correction_method,
            background_size=len(background) if background else None,
        )

    def analyze(self, subset: SignificantSubset) -> EnrichmentResult:
        """
        Run over-representation analysis on a significant subset.

        Args:
            subset: Significant genes plus their background universe

        Returns:
            EnrichmentResult (possibly with no terms)
        """
        background = subset.universe if self.config.use_background else None
        provenance = self.provenance(background)

        if len(subset.genes) < self.config.min_genes:
            logger.warning(
                "Only %d significant genes (%s); skipping enrichment (min %d)",
                len(subset.genes),
                subset.direction,
                self.config.min_genes,
            )
            return EnrichmentResult(
                provenance=provenance,
                direction=subset.direction,
                input_genes=subset.genes,
            )

        terms, n_mapped = self.backend.analyze(
            genes=subset.genes,
            organism=self.config.organism,
            sources=self.config.sources,
            threshold=self.config.significance_threshold,
            correction=self.config.correction_method,
            background=background,
        )
        if not terms:
            logger.info("No enriched terms for %d %s genes", len(subset.genes), subset.direction)

        return EnrichmentResult(
            provenance=provenance,
            direction=subset.direction,
            input_genes=subset.genes,
            n_genes_mapped=n_mapped,
            terms=terms,
        )

    def analyze_by_direction(
        self,
        table: pd.DataFrame,
        significance: Optional[SignificanceConfig] = None,
        id_column: str = "entrez_id",
    ) -> Dict[str, EnrichmentResult]:
        """
        Separate runs for up- and down-regulated genes.

        Both runs share the same universe (all identifiers in ``table``).
        """
        significance = significance or SignificanceConfig()
        return {
            direction: self.analyze(
                select_from_config(table, significance, id_column, direction=direction)
            )
            for direction in ("up", "down")
        }
