"""
Interactive Plotly visualizations for differential expression results.

Interactive twins of the static figures in ``deora.visualizer``:
- MA plot
- Volcano plot (hover shows gene ID, symbol and statistics)
- Enrichment dot and bar plots

Usage:
    from deora.plotly_visualizer import PlotlyVisualizer

    viz = PlotlyVisualizer()
    fig = viz.volcano(table)
    viz.save_html(fig, "volcano.html")
"""

import logging
from pathlib import Path
from typing import Union

import numpy as np
import pandas as pd
import plotly.graph_objects as go

from .de_result import EnrichmentResult
from .gene_ranker import flag_significant
from .visualizer import COLORS, neg_log10

logger = logging.getLogger(__name__)

ENRICHMENT_COLORSCALE = "Viridis_r"


def _hover_text(data: pd.DataFrame) -> list:
    has_symbol = "symbol" in data.columns
    text = []
    for _, row in data.iterrows():
        symbol = row["symbol"] if has_symbol else None
        name = row["gene_id"] if pd.isna(symbol) else f"{symbol} ({row['gene_id']})"
        padj = "NA" if pd.isna(row["padj"]) else f"{row['padj']:.2e}"
        text.append(
            f"{name}<br>log2FC={row['log2FoldChange']:.2f}"
            f"<br>padj={padj}<br>baseMean={row['baseMean']:.1f}"
        )
    return text


class PlotlyVisualizer:
    """Interactive visualization components for DE and enrichment results."""

    def __init__(self, template: str = "plotly_white"):
        """
        Initialize visualizer.

        Args:
            template: Plotly template (plotly_white, plotly_dark, ggplot2, etc.)
        """
        self.template = template

    def ma_plot(
        self,
        table: pd.DataFrame,
        padj_threshold: float = 0.05,
        title: str = "MA plot",
        height: int = 500,
        width: int = 700,
    ) -> go.Figure:
        """Log2 fold change against mean expression (log x axis)."""
        data = table[table["baseMean"] > 0]
        if data.empty:
            return self._empty_figure("No genes to display")

        significant = data["padj"].notna() & (data["padj"] < padj_threshold)
        fig = go.Figure()
        for mask, color, name in (
            (~significant, COLORS["neutral"], "not significant"),
            (significant, COLORS["significant"], f"padj < {padj_threshold}"),
        ):
            subset = data[mask]
            fig.add_trace(go.Scatter(
                x=subset["baseMean"],
                y=subset["log2FoldChange"],
                mode="markers",
                marker=dict(size=5, color=color, opacity=0.7),
                name=name,
                hoverinfo="text",
                hovertext=_hover_text(subset),
            ))

        fig.add_hline(y=0, line=dict(color=COLORS["guide"], width=1))
        fig.update_layout(
            title=dict(text=title, x=0.5),
            xaxis=dict(title="mean of normalized counts", type="log"),
            yaxis=dict(title="log2 fold change"),
            template=self.template,
            height=height,
            width=width,
        )
        return fig

    def volcano(
        self,
        table: pd.DataFrame,
        padj_threshold: float = 0.05,
        lfc_threshold: float = 1.0,
        title: str = "Volcano plot",
        height: int = 550,
        width: int = 700,
    ) -> go.Figure:
        """
        Log2 fold change against -log10(padj), coloured up/down/neutral.
        """
        data = table[table["padj"].notna()]
        if data.empty:
            return self._empty_figure("No genes with adjusted p-values")

        flagged = flag_significant(data, padj_threshold, lfc_threshold)
        groups = (
            (~flagged, COLORS["neutral"], "not significant"),
            (flagged & (data["log2FoldChange"] > 0), COLORS["up"], "up"),
            (flagged & (data["log2FoldChange"] < 0), COLORS["down"], "down"),
        )

        fig = go.Figure()
        for mask, color, name in groups:
            subset = data[mask]
            fig.add_trace(go.Scatter(
                x=subset["log2FoldChange"],
                y=neg_log10(subset["padj"]),
                mode="markers",
                marker=dict(size=6, color=color, opacity=0.75),
                name=f"{name} ({len(subset)})",
                hoverinfo="text",
                hovertext=_hover_text(subset),
            ))

        guide = dict(color=COLORS["guide"], width=1, dash="dash")
        fig.add_hline(y=-np.log10(padj_threshold), line=guide)
        fig.add_vline(x=lfc_threshold, line=guide)
        fig.add_vline(x=-lfc_threshold, line=guide)
        fig.update_layout(
            title=dict(text=title, x=0.5),
            xaxis=dict(title="log2 fold change"),
            yaxis=dict(title="-log10 adjusted p-value"),
            template=self.template,
            height=height,
            width=width,
        )
        return fig

    def enrichment_dotplot(
        self,
        result: EnrichmentResult,
        top_n: int = 15,
        title: str = "Enriched terms",
        height: int = 550,
        width: int = 850,
    ) -> go.Figure:
        """Top terms: x = gene ratio, colour = padj, marker size = hits."""
        if result.is_empty:
            return self._empty_figure("No enriched terms")

        df = result.to_frame().head(top_n).iloc[::-1]
        fig = go.Figure(go.Scatter(
            x=df["gene_ratio"],
            y=df["term_name"],
            mode="markers",
            marker=dict(
                size=8 + 3 * df["intersection_size"],
                sizemode="diameter",
                color=df["pvalue_adjusted"],
                colorscale=ENRICHMENT_COLORSCALE,
                colorbar=dict(title="padj"),
                line=dict(width=0.5, color="black"),
            ),
            customdata=df[["term_id", "source", "intersection_size", "pvalue_adjusted"]],
            hovertemplate=(
                "%{y}<br>%{customdata[0]} (%{customdata[1]})"
                "<br>hits=%{customdata[2]}<br>padj=%{customdata[3]:.2e}<extra></extra>"
            ),
        ))
        fig.update_layout(
            title=dict(text=title, x=0.5),
            xaxis=dict(title="gene ratio"),
            template=self.template,
            height=height,
            width=width,
            margin=dict(l=20, r=20, t=60, b=40),
        )
        return fig

    def enrichment_barplot(
        self,
        result: EnrichmentResult,
        top_n: int = 15,
        title: str = "Enriched terms",
        height: int = 550,
        width: int = 850,
    ) -> go.Figure:
        """Top terms: bar length = gene ratio, colour = padj."""
        if result.is_empty:
            return self._empty_figure("No enriched terms")

        df = result.to_frame().head(top_n).iloc[::-1]
        fig = go.Figure(go.Bar(
            x=df["gene_ratio"],
            y=df["term_name"],
            orientation="h",
            marker=dict(
                color=df["pvalue_adjusted"],
                colorscale=ENRICHMENT_COLORSCALE,
                colorbar=dict(title="padj"),
            ),
            hovertext=df["term_id"],
        ))
        fig.update_layout(
            title=dict(text=title, x=0.5),
            xaxis=dict(title="gene ratio"),
            template=self.template,
            height=height,
            width=width,
            margin=dict(l=20, r=20, t=60, b=40),
        )
        return fig

    def _empty_figure(self, message: str) -> go.Figure:
        """Create an empty figure with a message."""
        fig = go.Figure()
        fig.add_annotation(
            text=message,
            xref="paper", yref="paper",
            x=0.5, y=0.5,
            showarrow=False,
            font=dict(size=16, color="gray"),
        )
        fig.update_layout(
            template=self.template,
            xaxis=dict(visible=False),
            yaxis=dict(visible=False),
        )
        return fig

    def save_html(
        self,
        fig: go.Figure,
        filepath: Union[str, Path],
        include_plotlyjs: Union[bool, str] = True,
    ) -> Path:
        """
        Save figure to an HTML file.

        Args:
            fig: Plotly Figure object
            filepath: Output file path
            include_plotlyjs: Whether to include plotly.js in the file
        """
        filepath = Path(filepath)
        filepath.parent.mkdir(parents=True, exist_ok=True)
        fig.write_html(
            str(filepath),
            include_plotlyjs=include_plotlyjs,
            full_html=True,
        )
        logger.info("Saved %s", filepath)
        return filepath
