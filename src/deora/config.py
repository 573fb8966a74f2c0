"""Configuration dataclasses for the differential expression walkthrough.

Each pipeline stage reads its own small config; ``PipelineConfig`` bundles
them and can be loaded from a JSON file.
"""

import json
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import List, Literal, Optional, Union

Direction = Literal["both", "up", "down"]
MappingBackend = Literal["gprofiler", "file"]

# Gene map shipped with the package; used when g:Profiler is unreachable.
BUNDLED_GENE_MAP = Path(__file__).parent / "data" / "gene_map.tsv"

DEFAULT_SOURCES = ["GO:BP", "GO:CC", "GO:MF", "KEGG", "REAC"]


@dataclass
class DEConfig:
    """Configuration for model fitting and shrinkage.

    Attributes:
        factor: Metadata column holding the experimental condition.
        reference: Level to use as the statistical baseline. ``None`` keeps
            the default (sorted) level order.
        levels: Full level order to apply instead of ``reference``. Must be
            a permutation of the existing levels.
        alpha: Significance level used by PyDESeq2's independent filtering.
        min_total_count: Features with fewer total reads are dropped before
            fitting.
        shrink: Apply log2 fold change shrinkage to the final table.
        refit_cooks: Refit outlier counts flagged by Cook's distance.
        n_cpus: Worker processes handed to PyDESeq2's inference object.
    """

    factor: str = "condition"
    reference: Optional[str] = None
    levels: Optional[List[str]] = None
    alpha: float = 0.05
    min_total_count: int = 10
    shrink: bool = True
    refit_cooks: bool = True
    n_cpus: int = 1

    def __post_init__(self):
        if not 0 < self.alpha < 1:
            raise ValueError(f"alpha must be in (0, 1), got {self.alpha}")
        if self.min_total_count < 0:
            raise ValueError("min_total_count must be non-negative")
        if self.n_cpus < 1:
            raise ValueError("n_cpus must be at least 1")
        if self.levels is not None and self.reference is not None:
            if self.levels[0] != self.reference:
                raise ValueError(
                    f"reference {self.reference!r} conflicts with first level "
                    f"{self.levels[0]!r}"
                )

    @property
    def design(self) -> str:
        return f"~{self.factor}"


@dataclass
class CleaningConfig:
    """Options for the result-table cleaner."""

    id_column: str = "entrez_id"
    drop_missing_ids: bool = False


@dataclass
class SignificanceConfig:
    """Thresholds for picking the significant subset.

    ``padj_threshold`` is strict (``padj < t``), ``lfc_threshold`` is
    inclusive (``|log2FC| >= t``).
    """

    padj_threshold: float = 0.05
    lfc_threshold: float = 1.0
    direction: Direction = "both"

    def __post_init__(self):
        if not 0 < self.padj_threshold <= 1:
            raise ValueError(
                f"padj_threshold must be in (0, 1], got {self.padj_threshold}"
            )
        if self.lfc_threshold < 0:
            raise ValueError("lfc_threshold must be non-negative")
        if self.direction not in ("both", "up", "down"):
            raise ValueError(f"Unknown direction: {self.direction!r}")


@dataclass
class IdMappingConfig:
    """Identifier mapping backend selection.

    Attributes:
        backend: ``"gprofiler"`` queries g:Convert and falls back to
            ``fallback_path``; ``"file"`` only reads ``fallback_path``.
        organism: g:Profiler organism code.
        target_namespace: g:Convert namespace for the alternate ID.
        fallback_path: Static TSV with columns gene_id, symbol, entrez_id.
        write_cache: After a successful remote lookup, write the mapping to
            ``cache_path`` for later offline runs.
        cache_path: Where to write the cache; required with ``write_cache``.
            Point ``fallback_path`` at the same file to reuse it offline.
    """

    backend: MappingBackend = "gprofiler"
    organism: str = "hsapiens"
    target_namespace: str = "ENTREZGENE_ACC"
    fallback_path: Optional[Path] = BUNDLED_GENE_MAP
    write_cache: bool = False
    cache_path: Optional[Path] = None

    def __post_init__(self):
        if self.backend not in ("gprofiler", "file"):
            raise ValueError(f"Unknown mapping backend: {self.backend!r}")
        if self.fallback_path is not None:
            self.fallback_path = Path(self.fallback_path)
        if self.cache_path is not None:
            self.cache_path = Path(self.cache_path)
        if self.write_cache and self.cache_path is None:
            raise ValueError("write_cache requires cache_path")
        if self.backend == "file" and self.fallback_path is None:
            raise ValueError("The file backend requires fallback_path")


@dataclass
class EnrichmentConfig:
    """
    Configuration for over-representation analysis.

    Attributes:
        organism: Organism identifier (hsapiens, mmusculus, etc.)
        sources: Data sources to query (GO:BP, GO:CC, GO:MF, KEGG, REAC)
        significance_threshold: Adjusted p-value threshold for terms
        correction_method: Multiple testing correction (g_SCS, fdr, bonferroni)
        min_genes: Minimum significant genes required to run the test
        use_background: Restrict the test to the tested-gene universe
        numeric_namespace: How g:Profiler interprets purely numeric IDs
        split_directions: Also test up- and down-regulated genes separately
    """

    enabled: bool = True
    split_directions: bool = False
    organism: str = "hsapiens"
    sources: List[str] = field(default_factory=lambda: list(DEFAULT_SOURCES))
    significance_threshold: float = 0.05
    correction_method: str = "fdr"
    min_genes: int = 5
    use_background: bool = True
    numeric_namespace: str = "ENTREZGENE_ACC"


@dataclass
class PlotConfig:
    """Where and how figures are written."""

    output_dir: Path = Path("results")
    static_format: str = "png"
    interactive: bool = True
    top_n_terms: int = 15
    dpi: int = 150

    def __post_init__(self):
        self.output_dir = Path(self.output_dir)
        if self.static_format not in ("png", "pdf", "svg"):
            raise ValueError(f"Unsupported static format: {self.static_format!r}")
        if self.top_n_terms < 1:
            raise ValueError("top_n_terms must be at least 1")


_SECTIONS = {
    "de": DEConfig,
    "cleaning": CleaningConfig,
    "significance": SignificanceConfig,
    "id_mapping": IdMappingConfig,
    "enrichment": EnrichmentConfig,
    "plots": PlotConfig,
}


@dataclass
class PipelineConfig:
    """All settings for one walkthrough run."""

    dataset: str = "demo"
    counts_path: Optional[Path] = None
    metadata_path: Optional[Path] = None
    de: DEConfig = field(default_factory=lambda: DEConfig(reference="untreated"))
    cleaning: CleaningConfig = field(default_factory=CleaningConfig)
    significance: SignificanceConfig = field(default_factory=SignificanceConfig)
    id_mapping: IdMappingConfig = field(default_factory=IdMappingConfig)
    enrichment: EnrichmentConfig = field(default_factory=EnrichmentConfig)
    plots: PlotConfig = field(default_factory=PlotConfig)

    def __post_init__(self):
        if (self.counts_path is None) != (self.metadata_path is None):
            raise ValueError("counts_path and metadata_path must be given together")

    @classmethod
    def from_dict(cls, payload: dict) -> "PipelineConfig":
        """Build a config from a nested dict, e.g. parsed JSON."""
        known = {f.name for f in fields(cls)}
        unknown = set(payload) - known
        if unknown:
            raise ValueError(f"Unknown config keys: {sorted(unknown)}")

        kwargs = {}
        for key, value in payload.items():
            section = _SECTIONS.get(key)
            if section is not None:
                kwargs[key] = section(**value)
            else:
                kwargs[key] = value
        return cls(**kwargs)

    @classmethod
    def load(cls, path: Union[str, Path]) -> "PipelineConfig":
        with Path(path).open("r", encoding="utf-8") as fh:
            return cls.from_dict(json.load(fh))

    def to_dict(self) -> dict:
        """Convert to a JSON-serializable dictionary."""
        payload = asdict(self)

        def _stringify(value):
            if isinstance(value, Path):
                return str(value)
            if isinstance(value, dict):
                return {k: _stringify(v) for k, v in value.items()}
            return value

        return _stringify(payload)
