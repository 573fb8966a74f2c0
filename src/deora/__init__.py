"""
deora: Differential Expression and Over-Representation Analysis

A walkthrough of a bulk RNA-seq analysis: negative binomial modelling with
PyDESeq2, log2 fold change shrinkage, identifier mapping, result cleaning,
over-representation analysis with g:Profiler and static/interactive plots.

## Full run

```python
from deora import PipelineConfig, run_pipeline

result = run_pipeline(PipelineConfig(dataset="demo"))
print(result.summary)
result.cleaned.head()
```

## Step by step

```python
from deora import DEConfig, DifferentialExpressionAnalyzer, load_dataset

counts, metadata = load_dataset("demo")
analyzer = DifferentialExpressionAnalyzer(DEConfig())
model = analyzer.fit(counts, metadata)            # reference = first sorted level
model = analyzer.relevel_and_refit(model, ["untreated", "treated"])
table = analyzer.shrink(model)
```

## Command Line Interface

```bash
deora run --dataset demo --reference untreated --output-dir results
deora run --offline            # static gene map, no enrichment
```
"""

from .config import (
    CleaningConfig,
    DEConfig,
    EnrichmentConfig,
    IdMappingConfig,
    PipelineConfig,
    PlotConfig,
    SignificanceConfig,
)
from .data_loader import (
    align_samples,
    as_categorical,
    filter_low_counts,
    load_counts_and_metadata,
    load_dataset,
)
from .de_result import (
    FittedModel,
    DESummary,
    SignificantSubset,
    # Enrichment result dataclasses
    EnrichedTerm,
    EnrichmentProvenance,
    EnrichmentResult,
    lfc_coefficient,
    normalized_counts,
    size_factors,
)
from .releveling import LevelMismatchError, relevel, set_reference
from .de_analysis import DifferentialExpressionAnalyzer, compare_reference_levels
from .table_cleaner import clean_results, deduplicate
from .gene_ranker import (
    RankingMethod,
    flag_significant,
    rank_genes,
    select_significant,
    separate_by_direction,
)
from .gene_mapper import (
    FallbackIdMapper,
    GProfilerIdMapper,
    StaticFileIdMapper,
    annotate_results,
    build_id_mapper,
)
from .enrichment_analyzer import EnrichmentAnalyzer, GProfilerBackend
from .report_generator import ReportGenerator, format_gene_table, load_results
from .pipeline import PipelineResult, run_pipeline

__version__ = "0.1.0"

__all__ = [
    # Configuration
    "CleaningConfig",
    "DEConfig",
    "EnrichmentConfig",
    "IdMappingConfig",
    "PipelineConfig",
    "PlotConfig",
    "SignificanceConfig",
    # Loading
    "align_samples",
    "as_categorical",
    "filter_low_counts",
    "load_counts_and_metadata",
    "load_dataset",
    # Result records
    "FittedModel",
    "DESummary",
    "SignificantSubset",
    "EnrichedTerm",
    "EnrichmentProvenance",
    "EnrichmentResult",
    "lfc_coefficient",
    "normalized_counts",
    "size_factors",
    # Re-levelling
    "LevelMismatchError",
    "relevel",
    "set_reference",
    # DE Analysis
    "DifferentialExpressionAnalyzer",
    "compare_reference_levels",
    # Cleaning and ranking
    "clean_results",
    "deduplicate",
    "RankingMethod",
    "flag_significant",
    "rank_genes",
    "select_significant",
    "separate_by_direction",
    # Identifier mapping
    "FallbackIdMapper",
    "GProfilerIdMapper",
    "StaticFileIdMapper",
    "annotate_results",
    "build_id_mapper",
    # Enrichment Analysis
    "EnrichmentAnalyzer",
    "GProfilerBackend",
    # Report Generation
    "ReportGenerator",
    "format_gene_table",
    "load_results",
    # Pipeline
    "PipelineResult",
    "run_pipeline",
]
