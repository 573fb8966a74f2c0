"""
Static figures for differential expression and enrichment results.

Every function takes a result table (or EnrichmentResult) and returns a new
matplotlib Figure; nothing is drawn onto shared state, so figures can be
built in any order. Figures are created without pyplot and can be saved
from headless environments.
"""

import logging
from pathlib import Path
from typing import Optional, Union

import matplotlib
import numpy as np
import pandas as pd
from matplotlib.cm import ScalarMappable
from matplotlib.colors import Normalize
from matplotlib.figure import Figure

from .de_result import EnrichmentResult
from .gene_ranker import flag_significant

logger = logging.getLogger(__name__)

COLORS = {
    "up": "#e74c3c",
    "down": "#3498db",
    "significant": "#e74c3c",
    "neutral": "#95a5a6",
    "guide": "#7f8c8d",
}

ENRICHMENT_CMAP = "viridis_r"


def neg_log10(values: pd.Series) -> pd.Series:
    """-log10 with zeros floored at the smallest positive double."""
    return -np.log10(values.clip(lower=np.finfo(float).tiny))


def _empty_figure(message: str, figsize=(6, 4)) -> Figure:
    fig = Figure(figsize=figsize)
    ax = fig.subplots()
    ax.text(0.5, 0.5, message, ha="center", va="center", color="gray", fontsize=12)
    ax.set_axis_off()
    return fig


def ma_plot(
    table: pd.DataFrame,
    padj_threshold: float = 0.05,
    title: str = "MA plot",
    figsize=(6, 4.5),
) -> Figure:
    """
    Log2 fold change against mean normalized expression.

    Genes with padj below the threshold are highlighted; genes with a zero
    mean cannot be placed on the log axis and are left out.
    """
    data = table[table["baseMean"] > 0]
    if data.empty:
        return _empty_figure("No genes to display", figsize)

    significant = data["padj"].notna() & (data["padj"] < padj_threshold)

    fig = Figure(figsize=figsize)
    ax = fig.subplots()
    ax.scatter(
        data.loc[~significant, "baseMean"],
        data.loc[~significant, "log2FoldChange"],
        s=8,
        c=COLORS["neutral"],
        alpha=0.6,
        linewidths=0,
        label="not significant",
    )
    ax.scatter(
        data.loc[significant, "baseMean"],
        data.loc[significant, "log2FoldChange"],
        s=10,
        c=COLORS["significant"],
        alpha=0.8,
        linewidths=0,
        label=f"padj < {padj_threshold}",
    )
    ax.axhline(0, color=COLORS["guide"], linewidth=0.8)
    ax.set_xscale("log")
    ax.set_xlabel("mean of normalized counts")
    ax.set_ylabel("log2 fold change")
    ax.set_title(title)
    ax.legend(loc="upper right", frameon=False, fontsize=8)
    fig.tight_layout()
    return fig


def volcano_plot(
    table: pd.DataFrame,
    padj_threshold: float = 0.05,
    lfc_threshold: float = 1.0,
    label_column: Optional[str] = "symbol",
    label_top: int = 10,
    title: str = "Volcano plot",
    figsize=(6, 5),
) -> Figure:
    """
    Log2 fold change against -log10(padj).

    Points are coloured by ``significant AND |log2FC| >= lfc_threshold``;
    the top ``label_top`` of those are labelled.
    """
    data = table[table["padj"].notna()]
    if data.empty:
        return _empty_figure("No genes with adjusted p-values", figsize)

    y = neg_log10(data["padj"])
    flagged = flag_significant(data, padj_threshold, lfc_threshold)
    up = flagged & (data["log2FoldChange"] > 0)
    down = flagged & (data["log2FoldChange"] < 0)

    fig = Figure(figsize=figsize)
    ax = fig.subplots()
    for mask, color, label in (
        (~flagged, COLORS["neutral"], "not significant"),
        (up, COLORS["up"], f"up ({int(up.sum())})"),
        (down, COLORS["down"], f"down ({int(down.sum())})"),
    ):
        ax.scatter(
            data.loc[mask, "log2FoldChange"],
            y[mask],
            s=10,
            c=color,
            alpha=0.7,
            linewidths=0,
            label=label,
        )

    ax.axhline(-np.log10(padj_threshold), color=COLORS["guide"], linestyle="--", linewidth=0.8)
    for x in (-lfc_threshold, lfc_threshold):
        ax.axvline(x, color=COLORS["guide"], linestyle="--", linewidth=0.8)

    if label_column and label_column in data.columns and label_top > 0:
        top = y[flagged].sort_values(ascending=False).head(label_top).index
        for idx in top:
            label = data.at[idx, label_column]
            if pd.isna(label):
                label = data.at[idx, "gene_id"]
            ax.annotate(
                str(label),
                (data.at[idx, "log2FoldChange"], y[idx]),
                fontsize=7,
                xytext=(3, 3),
                textcoords="offset points",
            )

    ax.set_xlabel("log2 fold change")
    ax.set_ylabel("-log10 adjusted p-value")
    ax.set_title(title)
    ax.legend(loc="upper left", frameon=False, fontsize=8)
    fig.tight_layout()
    return fig


def _top_terms_frame(result: EnrichmentResult, top_n: int) -> pd.DataFrame:
    df = result.to_frame().head(top_n)
    # Best term at the top of the y axis
    return df.iloc[::-1].reset_index(drop=True)


def enrichment_dotplot(
    result: EnrichmentResult,
    top_n: int = 15,
    title: str = "Enriched terms",
    figsize=(7, 5),
) -> Figure:
    """Top terms by padj; x = gene ratio, colour = padj, size = hit count."""
    if result.is_empty:
        return _empty_figure("No enriched terms", figsize)

    df = _top_terms_frame(result, top_n)
    fig = Figure(figsize=figsize)
    ax = fig.subplots()
    points = ax.scatter(
        df["gene_ratio"],
        df["term_name"],
        s=40 + 20 * df["intersection_size"],
        c=df["pvalue_adjusted"],
        cmap=ENRICHMENT_CMAP,
        edgecolors="black",
        linewidths=0.3,
    )
    fig.colorbar(points, ax=ax, label="adjusted p-value")
    ax.set_xlabel("gene ratio")
    ax.set_title(title)
    fig.tight_layout()
    return fig


def enrichment_barplot(
    result: EnrichmentResult,
    top_n: int = 15,
    title: str = "Enriched terms",
    figsize=(7, 5),
) -> Figure:
    """Top terms by padj; bar length = gene ratio, colour = padj."""
    if result.is_empty:
        return _empty_figure("No enriched terms", figsize)

    df = _top_terms_frame(result, top_n)
    fig = Figure(figsize=figsize)
    ax = fig.subplots()
    norm = Normalize(vmin=df["pvalue_adjusted"].min(), vmax=df["pvalue_adjusted"].max())
    cmap = matplotlib.colormaps[ENRICHMENT_CMAP]
    ax.barh(df["term_name"], df["gene_ratio"], color=cmap(norm(df["pvalue_adjusted"])))
    fig.colorbar(ScalarMappable(norm=norm, cmap=cmap), ax=ax, label="adjusted p-value")
    ax.set_xlabel("gene ratio")
    ax.set_title(title)
    fig.tight_layout()
    return fig


def save_figure(fig: Figure, path: Union[str, Path], dpi: int = 150) -> Path:
    """Save a figure, creating parent directories."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(path, dpi=dpi, bbox_inches="tight")
    logger.info("Saved %s", path)
    return path
