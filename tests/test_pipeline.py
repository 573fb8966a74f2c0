"""End-to-end tests on the bundled demo dataset.

PyDESeq2 runs for real; identifier mapping uses the bundled gene map and
enrichment uses a mock backend, so no network access is needed.
"""

import json
from unittest.mock import MagicMock

import pandas as pd
import pytest
import requests

from deora.config import (
    BUNDLED_GENE_MAP,
    EnrichmentConfig,
    IdMappingConfig,
    PipelineConfig,
    PlotConfig,
)
from deora.de_result import EnrichedTerm
from deora.gene_mapper import FallbackIdMapper, StaticFileIdMapper
from deora.pipeline import PipelineResult, run_pipeline, target_levels

FKBP5 = "ENSG00000096060"
IL6 = "ENSG00000136244"
UNMAPPED = "ENSG00000227232"


def _mock_backend():
    backend = MagicMock()
    backend.name = "mock"
    term = EnrichedTerm(
        term_id="GO:0071385",
        term_name="cellular response to glucocorticoid stimulus",
        source="GO:BP",
        pvalue=1e-4,
        pvalue_adjusted=1e-4,
        term_size=80,
        query_size=6,
        intersection_size=3,
        genes=["2289", "1831", "5187"],
    )
    backend.analyze.return_value = ([term], 6)
    return backend


def _config(tmp_path, **overrides):
    defaults = dict(
        enrichment=EnrichmentConfig(min_genes=1),
        plots=PlotConfig(output_dir=tmp_path / "results"),
    )
    defaults.update(overrides)
    return PipelineConfig(**defaults)


@pytest.fixture(scope="module")
def demo_run(tmp_path_factory):
    tmp_path = tmp_path_factory.mktemp("demo")
    backend = _mock_backend()
    result = run_pipeline(
        _config(tmp_path),
        mapper=StaticFileIdMapper(BUNDLED_GENE_MAP),
        enrichment_backend=backend,
    )
    return result, backend


class TestDemoRun:

    def test_initial_fit_uses_sorted_reference(self, demo_run):
        result, _ = demo_run
        assert result.initial_model.reference == "treated"

    def test_refit_uses_configured_reference(self, demo_run):
        result, _ = demo_run
        assert result.model.reference == "untreated"
        assert result.model is not result.initial_model

    def test_effects_point_the_right_way(self, demo_run):
        result, _ = demo_run
        table = result.shrunk.set_index("gene_id")
        assert table.loc[FKBP5, "log2FoldChange"] > 1
        assert table.loc[IL6, "log2FoldChange"] < -1

    def test_cleaned_table(self, demo_run):
        result, _ = demo_run
        cleaned = result.cleaned
        assert cleaned["padj"].notna().all()
        assert cleaned["entrez_id"].dropna().is_unique
        assert list(cleaned.columns[:2]) == ["gene_id", "baseMean"]

    def test_unmapped_gene_kept_in_annotated(self, demo_run):
        result, _ = demo_run
        annotated = result.annotated.set_index("gene_id")
        # Low-count gene is either filtered before fitting or kept unmapped
        if UNMAPPED in annotated.index:
            assert pd.isna(annotated.loc[UNMAPPED, "entrez_id"])

    def test_subset_within_universe(self, demo_run):
        result, _ = demo_run
        assert result.subset.n_genes > 0
        assert set(result.subset.genes) < set(result.subset.universe)
        assert "2289" in result.subset.genes

    def test_enrichment_uses_universe(self, demo_run):
        result, backend = demo_run
        kwargs = backend.analyze.call_args.kwargs
        assert kwargs["background"] == result.subset.universe
        assert result.enrichment["both"].n_terms == 1

    def test_outputs_written(self, demo_run):
        result, _ = demo_run
        out = result.config.plots.output_dir
        for name in (
            "results_all.tsv",
            "results_clean.tsv",
            "results.json",
            "enrichment.tsv",
            "ma_plot.png",
            "volcano_plot.png",
            "enrichment_dotplot.png",
            "enrichment_barplot.png",
            "ma_plot.html",
            "volcano_plot.html",
            "enrichment_dotplot.html",
        ):
            assert (out / name).is_file(), name

    def test_json_report(self, demo_run):
        result, _ = demo_run
        data = json.loads(result.outputs["report"].read_text())
        assert data["summary"]["genes_tested"] == result.summary.n_tested
        assert data["config"]["de"]["reference"] == "untreated"
        assert "warnings" not in data

    def test_stats(self, demo_run):
        result, _ = demo_run
        stats = result.get_stats()
        assert stats["rows_cleaned"] == len(result.cleaned)
        assert stats["terms_both"] == 1


class TestDegradedRuns:

    def test_offline_mapping_failure_still_completes(self, tmp_path):
        primary = MagicMock()
        primary.map_ids.side_effect = requests.ConnectionError("offline")
        mapper = FallbackIdMapper(primary, StaticFileIdMapper(tmp_path / "absent.tsv"))
        backend = _mock_backend()

        result = run_pipeline(
            _config(tmp_path, plots=PlotConfig(output_dir=tmp_path / "out", interactive=False)),
            mapper=mapper,
            enrichment_backend=backend,
            write_outputs=False,
        )

        assert len(result.warnings) == 2
        assert result.annotated["entrez_id"].isna().all()
        # Rows without an alternate ID are kept by default
        assert len(result.cleaned) > 0
        assert result.subset.genes == []
        backend.analyze.assert_not_called()
        assert result.enrichment["both"].is_empty
        assert result.outputs == {}

    def test_enrichment_failure_is_reported(self, tmp_path):
        backend = _mock_backend()
        backend.analyze.side_effect = requests.ConnectionError("g:Profiler down")

        result = run_pipeline(
            _config(tmp_path),
            mapper=StaticFileIdMapper(BUNDLED_GENE_MAP),
            enrichment_backend=backend,
            write_outputs=False,
        )
        assert result.enrichment["both"].is_empty
        assert any("Enrichment" in w for w in result.warnings)

    def test_split_directions_and_no_shrink(self, tmp_path):
        config = _config(tmp_path, enrichment=EnrichmentConfig(min_genes=1, split_directions=True))
        config.de.shrink = False
        result = run_pipeline(
            config,
            mapper=StaticFileIdMapper(BUNDLED_GENE_MAP),
            enrichment_backend=_mock_backend(),
        )
        assert set(result.enrichment) == {"both", "up", "down"}
        assert result.shrunk is result.results
        assert (tmp_path / "results" / "enrichment_up.tsv").is_file()
        assert (tmp_path / "results" / "enrichment_dotplot_down.png").is_file()

    def test_enrichment_disabled(self, tmp_path):
        config = _config(
            tmp_path,
            enrichment=EnrichmentConfig(enabled=False),
            id_mapping=IdMappingConfig(backend="file"),
        )
        result = run_pipeline(config, write_outputs=False)
        assert result.enrichment == {}
        assert "enrichment_dotplot" not in result.figures
        assert "volcano_plot" in result.figures


class TestTargetLevels:

    def _metadata(self):
        return pd.DataFrame({"condition": pd.Categorical(["a", "b", "c"])})

    def test_reference(self):
        config = PipelineConfig()
        config.de.reference = "c"
        assert target_levels(config, self._metadata()) == ["c", "a", "b"]

    def test_explicit_levels(self):
        config = PipelineConfig()
        config.de.reference = None
        config.de.levels = ["b", "c", "a"]
        assert target_levels(config, self._metadata()) == ["b", "c", "a"]

    def test_nothing_requested(self):
        config = PipelineConfig()
        config.de.reference = None
        assert target_levels(config, self._metadata()) is None

    def test_empty_result_stats(self):
        assert PipelineResult(PipelineConfig()).get_stats() == {}


class TestMappingEdgeCases:

    def test_ma_plot_has_one_point_per_feature(self, tmp_path):
        gene_map = tmp_path / "gene_map.tsv"
        lines = BUNDLED_GENE_MAP.read_text().splitlines()
        lines.append(f"{FKBP5}\tFKBP5\t999999")
        gene_map.write_text("\n".join(lines) + "\n")

        result = run_pipeline(
            _config(tmp_path, plots=PlotConfig(output_dir=tmp_path / "out")),
            mapper=StaticFileIdMapper(gene_map),
            enrichment_backend=_mock_backend(),
            write_outputs=False,
        )

        assert len(result.annotated) == len(result.shrunk) + 1
        n_points = sum(
            len(c.get_offsets()) for c in result.figures["ma_plot"].axes[0].collections
        )
        n_features = int((result.shrunk["baseMean"] > 0).sum())
        assert n_points == n_features
        n_interactive = sum(
            len(trace.x) for trace in result.figures["ma_plot_interactive"].data
        )
        assert n_interactive == n_features

    def test_offline_without_static_map_continues(self, tmp_path):
        config = _config(
            tmp_path,
            enrichment=EnrichmentConfig(enabled=False),
            id_mapping=IdMappingConfig(backend="file", fallback_path=tmp_path / "absent.tsv"),
        )
        result = run_pipeline(config, write_outputs=False)

        assert result.annotated["entrez_id"].isna().all()
        assert len(result.warnings) == 1
        assert "absent.tsv" in result.warnings[0]
        assert len(result.cleaned) > 0
