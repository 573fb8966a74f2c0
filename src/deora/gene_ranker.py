"""
Significance filtering and ranking of differential expression results.

Provides the significant-gene subset handed to enrichment analysis and a
few ranking strategies for reporting top genes.
"""

from enum import Enum
from typing import Dict, Optional

import numpy as np
import pandas as pd

from .config import Direction, SignificanceConfig
from .de_result import SignificantSubset


class RankingMethod(Enum):
    """Methods for ranking genes."""

    EFFECT_SIZE = "effect_size"  # |log2FC|
    PVALUE = "pvalue"  # -log10(p_adj)
    COMBINED = "combined"  # -log10(p_adj) * sign(log2FC)
    VOLCANO = "volcano"  # |log2FC| * -log10(p_adj)


def flag_significant(
    table: pd.DataFrame,
    padj_threshold: float = 0.05,
    lfc_threshold: float = 1.0,
    direction: Direction = "both",
) -> pd.Series:
    """
    Boolean Series: padj below threshold AND a large enough effect.

    Missing padj is never significant.
    """
    padj = table["padj"]
    lfc = table["log2FoldChange"]
    passes_padj = padj.notna() & (padj < padj_threshold)

    if direction == "up":
        passes_lfc = lfc >= lfc_threshold
    elif direction == "down":
        passes_lfc = lfc <= -lfc_threshold
    elif direction == "both":
        passes_lfc = lfc.abs() >= lfc_threshold
    else:
        raise ValueError(f"Unknown direction: {direction!r}")

    return (passes_padj & passes_lfc).rename("significant")


def select_significant(
    table: pd.DataFrame,
    padj_threshold: float = 0.05,
    lfc_threshold: float = 1.0,
    direction: Direction = "both",
    id_column: str = "entrez_id",
) -> SignificantSubset:
    """
    Pick significant identifiers and the background universe.

    Args:
        table: Cleaned result table
        padj_threshold: Strict upper bound on padj
        lfc_threshold: Inclusive lower bound on the effect size
        direction: "both" uses |log2FC|, "up"/"down" use the signed value
        id_column: Identifier column reported for genes and universe

    Returns:
        SignificantSubset; ``universe`` holds every non-missing identifier
        in the table, in table order.
    """
    mask = flag_significant(table, padj_threshold, lfc_threshold, direction)
    ids = table[id_column]
    genes = _as_id_list(ids[mask & ids.notna()])
    universe = _as_id_list(ids[ids.notna()])
    return SignificantSubset(
        genes=genes,
        universe=universe,
        padj_threshold=padj_threshold,
        lfc_threshold=lfc_threshold,
        direction=direction,
    )


def select_from_config(
    table: pd.DataFrame,
    config: SignificanceConfig,
    id_column: str = "entrez_id",
    direction: Optional[Direction] = None,
) -> SignificantSubset:
    """``select_significant`` driven by a SignificanceConfig."""
    return select_significant(
        table,
        padj_threshold=config.padj_threshold,
        lfc_threshold=config.lfc_threshold,
        direction=direction or config.direction,
        id_column=id_column,
    )


def _as_id_list(values: pd.Series) -> list:
    # Entrez IDs may have been read back as floats
    out = []
    for value in values.tolist():
        if isinstance(value, float) and value.is_integer():
            value = int(value)
        out.append(str(value))
    return list(dict.fromkeys(out))


def separate_by_direction(
    table: pd.DataFrame,
    padj_threshold: float = 0.05,
    lfc_threshold: float = 1.0,
) -> Dict[str, pd.DataFrame]:
    """Split significant rows into "up" and "down" tables."""
    return {
        direction: table[flag_significant(table, padj_threshold, lfc_threshold, direction)]
        for direction in ("up", "down")
    }


def rank_genes(
    table: pd.DataFrame,
    method: RankingMethod = RankingMethod.COMBINED,
    top_n: Optional[int] = None,
) -> pd.DataFrame:
    """
    Sort a result table by a ranking score (descending).

    Rows with missing padj are ranked last for score-based methods.
    """
    lfc = table["log2FoldChange"]
    # Floor at the smallest positive double so padj == 0 stays finite
    neg_log_padj = -np.log10(table["padj"].clip(lower=np.finfo(float).tiny))

    if method == RankingMethod.EFFECT_SIZE:
        score = lfc.abs()
    elif method == RankingMethod.PVALUE:
        score = neg_log_padj
    elif method == RankingMethod.COMBINED:
        score = neg_log_padj * np.sign(lfc)
    elif method == RankingMethod.VOLCANO:
        score = lfc.abs() * neg_log_padj
    else:
        raise ValueError(f"Unknown ranking method: {method}")

    ranked = table.assign(score=score).sort_values(
        "score", ascending=False, na_position="last", kind="mergesort"
    )
    if top_n is not None:
        ranked = ranked.head(top_n)
    return ranked
