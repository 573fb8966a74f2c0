"""Tests for over-representation analysis (g:Profiler is mocked)."""

from unittest.mock import MagicMock, patch

import pandas as pd
import pytest

from deora.config import EnrichmentConfig, SignificanceConfig
from deora.de_result import EnrichedTerm, SignificantSubset
from deora.enrichment_analyzer import EnrichmentAnalyzer, GProfilerBackend


def _make_term(term_id="GO:0006955", padj=1e-4, genes=("2289", "1831")):
    return EnrichedTerm(
        term_id=term_id,
        term_name="immune response",
        source="GO:BP",
        pvalue=padj,
        pvalue_adjusted=padj,
        term_size=100,
        query_size=6,
        intersection_size=len(genes),
        genes=list(genes),
    )


def _make_subset(n_genes=6, direction="both"):
    universe = [str(i) for i in range(1, 51)]
    return SignificantSubset(
        genes=universe[:n_genes],
        universe=universe,
        padj_threshold=0.05,
        lfc_threshold=1.0,
        direction=direction,
    )


def _mock_backend(terms=None, n_mapped=6):
    backend = MagicMock()
    backend.name = "mock"
    backend.analyze.return_value = (terms if terms is not None else [_make_term()], n_mapped)
    return backend


class TestEnrichmentAnalyzer:

    def test_passes_universe_as_background(self):
        backend = _mock_backend()
        analyzer = EnrichmentAnalyzer(EnrichmentConfig(), backend)
        subset = _make_subset()

        result = analyzer.analyze(subset)

        kwargs = backend.analyze.call_args.kwargs
        assert kwargs["genes"] == subset.genes
        assert kwargs["background"] == subset.universe
        assert result.provenance.background_size == 50
        assert result.n_terms == 1

    def test_background_can_be_disabled(self):
        backend = _mock_backend()
        analyzer = EnrichmentAnalyzer(EnrichmentConfig(use_background=False), backend)
        result = analyzer.analyze(_make_subset())
        assert backend.analyze.call_args.kwargs["background"] is None
        assert result.provenance.background_size is None

    def test_too_few_genes_skips_backend(self):
        backend = _mock_backend()
        analyzer = EnrichmentAnalyzer(EnrichmentConfig(min_genes=10), backend)
        result = analyzer.analyze(_make_subset(n_genes=3))
        backend.analyze.assert_not_called()
        assert result.is_empty
        assert result.input_genes == ["1", "2", "3"]

    def test_no_terms_is_not_an_error(self):
        analyzer = EnrichmentAnalyzer(EnrichmentConfig(), _mock_backend(terms=[], n_mapped=0))
        result = analyzer.analyze(_make_subset())
        assert result.is_empty
        assert result.to_frame().empty
        assert "term_id" in result.to_frame().columns

    def test_config_forwarded(self):
        backend = _mock_backend()
        config = EnrichmentConfig(
            organism="mmusculus",
            sources=["KEGG"],
            significance_threshold=0.01,
            correction_method="g_SCS",
        )
        EnrichmentAnalyzer(config, backend).analyze(_make_subset())
        kwargs = backend.analyze.call_args.kwargs
        assert kwargs["organism"] == "mmusculus"
        assert kwargs["sources"] == ["KEGG"]
        assert kwargs["threshold"] == 0.01
        assert kwargs["correction"] == "g_SCS"

    def test_analyze_by_direction(self):
        table = pd.DataFrame({
            "gene_id": [f"g{i}" for i in range(12)],
            "log2FoldChange": [2.0] * 6 + [-2.0] * 6,
            "padj": [0.001] * 12,
            "entrez_id": [str(i) for i in range(12)],
        })
        backend = _mock_backend()
        analyzer = EnrichmentAnalyzer(EnrichmentConfig(min_genes=1), backend)

        results = analyzer.analyze_by_direction(table, SignificanceConfig())

        assert set(results) == {"up", "down"}
        assert results["up"].input_genes == [str(i) for i in range(6)]
        assert results["down"].input_genes == [str(i) for i in range(6, 12)]
        # Both directions share one universe
        backgrounds = [c.kwargs["background"] for c in backend.analyze.call_args_list]
        assert backgrounds[0] == backgrounds[1]


class TestEnrichmentResult:

    def test_frame_ranked_by_padj(self):
        backend = _mock_backend(terms=[
            _make_term("GO:2", padj=0.01),
            _make_term("GO:1", padj=0.0001),
            _make_term("GO:3", padj=0.001),
        ])
        result = EnrichmentAnalyzer(EnrichmentConfig(), backend).analyze(_make_subset())
        frame = result.to_frame()
        assert list(frame["term_id"]) == ["GO:1", "GO:3", "GO:2"]
        assert frame.loc[0, "genes"] == "2289,1831"
        assert frame.loc[0, "gene_ratio"] == pytest.approx(2 / 6)

    def test_to_dict(self):
        result = EnrichmentAnalyzer(EnrichmentConfig(), _mock_backend()).analyze(_make_subset())
        payload = result.to_dict()
        assert payload["n_significant_terms"] == 1
        assert payload["provenance"]["backend"] == "mock"
        assert payload["input_genes"] == 6


class TestGProfilerBackend:

    def _profile_result(self):
        return [
            {
                "native": "GO:0006955",
                "name": "immune response",
                "source": "GO:BP",
                "p_value": 1e-5,
                "term_size": 120,
                "query_size": 3,
                "intersection_size": 2,
                "intersections": [["IEA"], [], ["TAS"]],
            }
        ]

    @patch("gprofiler.GProfiler")
    def test_profile_call_and_parsing(self, mock_gprofiler):
        client = MagicMock()
        client.profile.return_value = self._profile_result()
        mock_gprofiler.return_value = client

        backend = GProfilerBackend()
        terms, n_mapped = backend.analyze(
            genes=["2289", "1831", "4609"],
            organism="hsapiens",
            sources=["GO:BP"],
            threshold=0.05,
            correction="fdr",
            background=["2289", "1831", "4609", "60"],
        )

        kwargs = client.profile.call_args.kwargs
        assert kwargs["domain_scope"] == "custom"
        assert kwargs["background"] == ["2289", "1831", "4609", "60"]
        assert kwargs["numeric_namespace"] == "ENTREZGENE_ACC"
        assert kwargs["no_evidences"] is False

        assert n_mapped == 3
        assert len(terms) == 1
        assert terms[0].term_id == "GO:0006955"
        assert terms[0].genes == ["2289", "4609"]

    @patch("gprofiler.GProfiler")
    def test_without_background(self, mock_gprofiler):
        client = MagicMock()
        client.profile.return_value = []
        mock_gprofiler.return_value = client

        terms, n_mapped = GProfilerBackend().analyze(
            ["2289"], "hsapiens", ["GO:BP"], 0.05, "fdr"
        )
        assert (terms, n_mapped) == ([], 0)
        assert "domain_scope" not in client.profile.call_args.kwargs

    def test_empty_query(self):
        backend = GProfilerBackend()
        backend._gp = MagicMock()
        assert backend.analyze([], "hsapiens", ["GO:BP"], 0.05, "fdr") == ([], 0)
        backend._gp.profile.assert_not_called()
