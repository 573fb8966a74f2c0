"""
Differential expression analysis engine.

Uses PyDESeq2 (Python implementation of DESeq2) for statistical testing.
DESeq2 handles library-size normalization internally via median-of-ratios,
models count data with a negative binomial distribution, and applies
log2 fold change shrinkage.

Re-levelling the condition factor always produces a fresh fit: the
shrinkage coefficient only exists for comparisons against the reference
level the model was fitted with.
"""

import logging
from typing import Optional, Sequence

import numpy as np
import pandas as pd
from pydeseq2.dds import DeseqDataSet
from pydeseq2.default_inference import DefaultInference
from pydeseq2.ds import DeseqStats

from .config import DEConfig
from .data_loader import as_categorical, filter_low_counts
from .de_result import DESummary, FittedModel, default_test_level, lfc_coefficient
from .releveling import current_levels, relevel, set_reference
from .table_cleaner import results_frame

logger = logging.getLogger(__name__)


class DifferentialExpressionAnalyzer:
    """
    Fits DESeq2 models and extracts Wald-test and shrunken result tables.

    Example:
        analyzer = DifferentialExpressionAnalyzer(DEConfig(reference="untreated"))
        model = analyzer.fit(counts, metadata)
        table = analyzer.shrink(model)
        print(analyzer.summarize(table))
    """

    def __init__(self, config: Optional[DEConfig] = None):
        """
        Initialize the analyzer.

        Args:
            config: Analysis configuration (uses defaults if None)
        """
        self.config = config or DEConfig()
        self._inference = DefaultInference(n_cpus=self.config.n_cpus)

    def fit(self, counts: pd.DataFrame, metadata: pd.DataFrame) -> FittedModel:
        """
        Fit a model, applying the configured level order first.

        Args:
            counts: Raw count matrix (genes x samples)
            metadata: Sample metadata indexed by sample ID

        Returns:
            FittedModel
        """
        factor = self.config.factor
        metadata = metadata.loc[list(counts.columns)]
        if not isinstance(metadata[factor].dtype, pd.CategoricalDtype):
            metadata = as_categorical(metadata, factor)

        if self.config.levels is not None:
            metadata = relevel(metadata, factor, self.config.levels)
        elif self.config.reference is not None:
            metadata = set_reference(metadata, factor, self.config.reference)

        counts = filter_low_counts(counts, self.config.min_total_count)
        if counts.empty:
            raise ValueError("No features left after low-count filtering")
        return self._fit(counts, metadata)

    def relevel_and_refit(self, model: FittedModel, levels: Sequence[str]) -> FittedModel:
        """
        Re-level the model's condition factor and fit again from counts.

        The old model is left untouched; a new FittedModel is returned even
        when ``levels`` equals the current order.
        """
        metadata = relevel(model.metadata, model.factor, levels)
        logger.info(
            "Re-levelled %s: reference %r -> %r, re-fitting",
            model.factor,
            model.reference,
            metadata[model.factor].cat.categories[0],
        )
        return self._fit(model.counts, metadata)

    def _fit(self, counts: pd.DataFrame, metadata: pd.DataFrame) -> FittedModel:
        factor = self.config.factor
        levels = tuple(current_levels(metadata, factor))
        if len(levels) < 2:
            raise ValueError(f"Factor {factor!r} needs at least two levels, got {levels}")

        logger.info(
            "Running DESeq2 on %d genes x %d samples (design %s, reference %r)",
            counts.shape[0],
            counts.shape[1],
            self.config.design,
            levels[0],
        )

        # PyDESeq2 expects (samples x genes)
        dds = DeseqDataSet(
            counts=counts.T,
            metadata=metadata,
            design=self.config.design,
            refit_cooks=self.config.refit_cooks,
            inference=self._inference,
            quiet=True,
        )
        dds.deseq2()

        return FittedModel(
            counts=counts,
            metadata=metadata,
            design=self.config.design,
            factor=factor,
            levels=levels,
            dds=dds,
        )

    def _stats(self, model: FittedModel, test_level: Optional[str]) -> DeseqStats:
        test_level = test_level or default_test_level(model)
        if test_level == model.reference:
            raise ValueError(f"Test level {test_level!r} is the reference level")
        stat_res = DeseqStats(
            model.dds,
            contrast=[model.factor, test_level, model.reference],
            alpha=self.config.alpha,
            cooks_filter=True,
            independent_filter=True,
            inference=self._inference,
            quiet=True,
        )
        stat_res.summary()
        return stat_res

    def results(self, model: FittedModel, test_level: Optional[str] = None) -> pd.DataFrame:
        """
        Wald-test results for ``test_level`` vs the reference.

        Independent filtering leaves padj missing for low-mean genes and
        Cook's filtering leaves pvalue missing for outliers.
        """
        return results_frame(self._stats(model, test_level))

    def shrink(self, model: FittedModel, test_level: Optional[str] = None) -> pd.DataFrame:
        """
        Results with shrunken log2 fold changes and standard errors.

        Raises:
            ValueError: If the fit has no coefficient for ``test_level`` vs
                the reference; re-level and re-fit first.
        """
        coeff = lfc_coefficient(model, test_level)
        stat_res = self._stats(model, test_level)
        stat_res.lfc_shrink(coeff=coeff)
        logger.info("Shrunk log2 fold changes for coefficient %s", coeff)
        return results_frame(stat_res)

    def summarize(
        self,
        table: pd.DataFrame,
        alpha: Optional[float] = None,
        lfc_threshold: float = 0.0,
    ) -> DESummary:
        """Count up/down genes, outliers and missing padj in a result table."""
        alpha = self.config.alpha if alpha is None else alpha
        tested = table[table["baseMean"] > 0]
        padj = tested["padj"]
        lfc = tested["log2FoldChange"]
        significant = padj.notna() & (padj < alpha)

        return DESummary(
            n_tested=len(tested),
            n_up=int((significant & (lfc > lfc_threshold)).sum()),
            n_down=int((significant & (lfc < -lfc_threshold)).sum()),
            n_missing_padj=int((padj.isna() & tested["pvalue"].notna()).sum()),
            n_outliers=int(tested["pvalue"].isna().sum()),
            alpha=alpha,
            lfc_threshold=lfc_threshold,
        )


def compare_reference_levels(
    analyzer: DifferentialExpressionAnalyzer,
    model: FittedModel,
    levels: Sequence[str],
) -> pd.DataFrame:
    """
    Side-by-side Wald log2 fold changes before and after re-levelling.

    Useful for checking that only the sign of the effect changes.
    """
    refit = analyzer.relevel_and_refit(model, levels)
    before = analyzer.results(model).set_index("gene_id")
    after = analyzer.results(refit).set_index("gene_id")
    return pd.DataFrame(
        {
            "log2FoldChange_before": before["log2FoldChange"],
            "log2FoldChange_after": after["log2FoldChange"],
            "pvalue_before": before["pvalue"],
            "pvalue_after": after["pvalue"],
            "sign_flipped": np.sign(before["log2FoldChange"])
            == -np.sign(after["log2FoldChange"]),
        }
    )
