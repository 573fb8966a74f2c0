"""
Walkthrough pipeline orchestrator.

Runs the stages strictly in order:

    load -> fit -> relevel + re-fit -> Wald results -> shrink
         -> map identifiers -> clean -> select significant -> enrich -> plot

Each stage returns a new table; nothing is modified in place.
"""

import dataclasses
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import pandas as pd
import requests

from .config import PipelineConfig
from .data_loader import load_counts_and_metadata, load_dataset, prepare_metadata
from .de_analysis import DifferentialExpressionAnalyzer
from .de_result import (
    DESummary,
    EnrichmentResult,
    FittedModel,
    SignificantSubset,
    summary_counts,
)
from .enrichment_analyzer import EnrichmentAnalyzer, EnrichmentBackend
from .gene_mapper import FallbackIdMapper, GeneIdMapper, annotate_results, build_id_mapper
from .gene_ranker import select_from_config
from .plotly_visualizer import PlotlyVisualizer
from .releveling import current_levels
from .report_generator import ReportGenerator
from .table_cleaner import clean_results
from . import visualizer

logger = logging.getLogger(__name__)


class PipelineResult:
    """Container for every intermediate product of a pipeline run."""

    def __init__(self, config: PipelineConfig):
        self.config = config
        self.counts: Optional[pd.DataFrame] = None
        self.metadata: Optional[pd.DataFrame] = None
        self.initial_model: Optional[FittedModel] = None
        self.model: Optional[FittedModel] = None
        self.results: Optional[pd.DataFrame] = None
        self.shrunk: Optional[pd.DataFrame] = None
        self.annotated: Optional[pd.DataFrame] = None
        self.cleaned: Optional[pd.DataFrame] = None
        self.summary: Optional[DESummary] = None
        self.subset: Optional[SignificantSubset] = None
        self.enrichment: Dict[str, EnrichmentResult] = {}
        self.figures: Dict[str, Any] = {}
        self.outputs: Dict[str, Path] = {}
        self.warnings: List[str] = []

    def warn(self, message: str) -> None:
        logger.warning(message)
        self.warnings.append(message)

    def get_stats(self) -> Dict[str, int]:
        stats = {}
        for name in ("results", "annotated", "cleaned"):
            df = getattr(self, name)
            if df is not None:
                stats[f"rows_{name}"] = len(df)
        if self.subset is not None:
            stats["significant_genes"] = self.subset.n_genes
            stats["universe_size"] = len(self.subset.universe)
        for direction, n_terms in summary_counts(self.enrichment).items():
            stats[f"terms_{direction}"] = n_terms
        return stats


def target_levels(config: PipelineConfig, metadata: pd.DataFrame) -> Optional[List[str]]:
    """Level order requested by the config, or None to keep the default."""
    de = config.de
    if de.levels is not None:
        return list(de.levels)
    if de.reference is not None:
        existing = current_levels(metadata, de.factor)
        return [de.reference] + [level for level in existing if level != de.reference]
    return None


def load_inputs(config: PipelineConfig):
    """Stage 1: counts and metadata from files or a bundled dataset."""
    factor = config.de.factor
    if config.counts_path is not None:
        counts, metadata = load_counts_and_metadata(config.counts_path, config.metadata_path)
        return prepare_metadata(counts, metadata, factor)
    return load_dataset(config.dataset, factor=factor)


def run_pipeline(
    config: Optional[PipelineConfig] = None,
    mapper: Optional[GeneIdMapper] = None,
    enrichment_backend: Optional[EnrichmentBackend] = None,
    write_outputs: bool = True,
) -> PipelineResult:
    """
    Run the full walkthrough.

    Args:
        config: Pipeline configuration (defaults: bundled demo data,
            reference level "untreated")
        mapper: Identifier mapper; built from ``config.id_mapping`` if None
        enrichment_backend: Enrichment backend; g:Profiler if None
        write_outputs: Write tables, report and figures to
            ``config.plots.output_dir``

    Returns:
        PipelineResult
    """
    config = config or PipelineConfig()
    result = PipelineResult(config)

    # 1. Load
    counts, metadata = load_inputs(config)
    result.counts, result.metadata = counts, metadata

    # 2. Fit with the default (sorted) level order
    analyzer = DifferentialExpressionAnalyzer(
        dataclasses.replace(config.de, reference=None, levels=None)
    )
    model = analyzer.fit(counts, metadata)
    result.initial_model = model

    # 3. Re-level and always re-fit
    levels = target_levels(config, model.metadata)
    if levels is not None:
        model = analyzer.relevel_and_refit(model, levels)
    result.model = model

    # 4. Wald results and shrinkage
    result.results = analyzer.results(model)
    result.shrunk = analyzer.shrink(model) if config.de.shrink else result.results
    result.summary = analyzer.summarize(result.shrunk)
    logger.info("DESeq2 summary:\n%s", result.summary)

    # 5. Map identifiers
    mapper = mapper or build_id_mapper(config.id_mapping)
    result.annotated = annotate_results(result.shrunk, mapper)
    if isinstance(mapper, FallbackIdMapper):
        result.warnings.extend(mapper.warnings)

    # 6. Clean
    id_column = config.cleaning.id_column
    result.cleaned = clean_results(
        result.annotated,
        id_column=id_column,
        drop_missing_ids=config.cleaning.drop_missing_ids,
    )

    # 7. Significant subset and enrichment
    result.subset = select_from_config(result.cleaned, config.significance, id_column)
    logger.info(
        "%d significant genes out of a universe of %d",
        result.subset.n_genes,
        len(result.subset.universe),
    )
    if config.enrichment.enabled:
        _run_enrichment(result, enrichment_backend)

    # 8. Figures and outputs
    _build_figures(result)
    if write_outputs:
        _write_outputs(result)

    return result


def _run_enrichment(result: PipelineResult, backend: Optional[EnrichmentBackend]) -> None:
    config = result.config
    analyzer = EnrichmentAnalyzer(config.enrichment, backend)
    id_column = config.cleaning.id_column

    subsets = {result.subset.direction: result.subset}
    if config.enrichment.split_directions and result.subset.direction == "both":
        for direction in ("up", "down"):
            subsets[direction] = select_from_config(
                result.cleaned, config.significance, id_column, direction=direction
            )

    for direction, subset in subsets.items():
        try:
            result.enrichment[direction] = analyzer.analyze(subset)
        except (requests.RequestException, OSError, ValueError) as exc:
            result.warn(f"Enrichment ({direction}) failed: {exc}; reporting no terms")
            background = subset.universe if config.enrichment.use_background else None
            result.enrichment[direction] = EnrichmentResult(
                provenance=analyzer.provenance(background),
                direction=direction,
                input_genes=subset.genes,
            )


def _build_figures(result: PipelineResult) -> None:
    config = result.config
    sig = config.significance
    top_n = config.plots.top_n_terms
    # One point per feature; the mapped table repeats features with several IDs
    features = result.annotated.drop_duplicates(subset="gene_id")

    figures = {
        "ma_plot": visualizer.ma_plot(features, sig.padj_threshold),
        "volcano_plot": visualizer.volcano_plot(
            result.cleaned, sig.padj_threshold, sig.lfc_threshold
        ),
    }
    for direction, enrichment in result.enrichment.items():
        suffix = "" if direction == sig.direction else f"_{direction}"
        title = f"Enriched terms ({direction})"
        figures[f"enrichment_dotplot{suffix}"] = visualizer.enrichment_dotplot(
            enrichment, top_n, title=title
        )
        figures[f"enrichment_barplot{suffix}"] = visualizer.enrichment_barplot(
            enrichment, top_n, title=title
        )

    if config.plots.interactive:
        viz = PlotlyVisualizer()
        figures["ma_plot_interactive"] = viz.ma_plot(features, sig.padj_threshold)
        figures["volcano_plot_interactive"] = viz.volcano(
            result.cleaned, sig.padj_threshold, sig.lfc_threshold
        )
        for direction, enrichment in result.enrichment.items():
            suffix = "" if direction == sig.direction else f"_{direction}"
            figures[f"enrichment_dotplot{suffix}_interactive"] = viz.enrichment_dotplot(
                enrichment, top_n
            )

    result.figures = figures


def _write_outputs(result: PipelineResult) -> None:
    config = result.config
    out = config.plots.output_dir
    reporter = ReportGenerator()
    viz = PlotlyVisualizer()

    result.outputs["results_all"] = reporter.to_tsv(result.annotated, out / "results_all.tsv")
    result.outputs["results_clean"] = reporter.to_tsv(result.cleaned, out / "results_clean.tsv")
    for direction, enrichment in result.enrichment.items():
        name = "enrichment" if direction == config.significance.direction else f"enrichment_{direction}"
        result.outputs[name] = reporter.enrichment_to_tsv(enrichment, out / f"{name}.tsv")

    payload = reporter.build_report(
        result.summary,
        subset=result.subset,
        enrichment=result.enrichment,
        config=config.to_dict(),
        warnings=result.warnings,
    )
    result.outputs["report"] = reporter.to_json(payload, out / "results.json")

    for name, fig in result.figures.items():
        if name.endswith("_interactive"):
            path = out / f"{name[: -len('_interactive')]}.html"
            result.outputs[name] = viz.save_html(fig, path)
        else:
            path = out / f"{name}.{config.plots.static_format}"
            result.outputs[name] = visualizer.save_figure(fig, path, dpi=config.plots.dpi)

    logger.info("Wrote %d output files to %s", len(result.outputs), out)
