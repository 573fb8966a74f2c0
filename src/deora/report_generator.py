"""
Report generation for differential expression results.

Supports multiple output formats:
- TSV: result tables (readable back with ``load_results``)
- JSON: summary, thresholds and enrichment terms
- Console: human-readable summary
"""

import json
from pathlib import Path
from typing import Dict, Optional, Union

import numpy as np
import pandas as pd

from .de_result import (
    ID_COLUMN,
    DESummary,
    EnrichmentResult,
    SignificantSubset,
)
from .gene_ranker import flag_significant
from .table_cleaner import order_columns

# Identifier columns must survive a round trip as strings (Entrez IDs would
# otherwise come back as floats once a column has missing values)
_STRING_COLUMNS = {ID_COLUMN: str, "symbol": str, "entrez_id": str}


def load_results(path: Union[str, Path]) -> pd.DataFrame:
    """Read a result table written by ``ReportGenerator.to_tsv``."""
    return pd.read_csv(path, sep="\t", dtype=_STRING_COLUMNS, float_precision="round_trip")


class ReportGenerator:
    """
    Generates reports from result tables and enrichment results.

    Example:
        generator = ReportGenerator()
        generator.to_tsv(table, "results/results_clean.tsv")
        generator.print_summary(summary, table)
    """

    def to_tsv(self, table: pd.DataFrame, path: Union[str, Path]) -> Path:
        """
        Write a result table to TSV, known columns first.

        Missing values are written as empty fields.
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        order_columns(table).to_csv(path, sep="\t", index=False, na_rep="")
        return path

    def enrichment_to_tsv(self, result: EnrichmentResult, path: Union[str, Path]) -> Path:
        """Write enriched terms (ranked by padj) to TSV."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        result.to_frame().to_csv(path, sep="\t", index=False)
        return path

    def build_report(
        self,
        summary: DESummary,
        subset: Optional[SignificantSubset] = None,
        enrichment: Optional[Dict[str, EnrichmentResult]] = None,
        config: Optional[dict] = None,
        warnings: Optional[list] = None,
    ) -> dict:
        """Assemble the JSON report payload."""
        report = {"summary": summary.to_dict()}
        if subset is not None:
            report["significant"] = {
                "direction": subset.direction,
                "padj_threshold": subset.padj_threshold,
                "lfc_threshold": subset.lfc_threshold,
                "n_genes": subset.n_genes,
                "universe_size": len(subset.universe),
                "genes": subset.genes,
            }
        if enrichment:
            report["enrichment"] = {k: v.to_dict() for k, v in enrichment.items()}
        if config is not None:
            report["config"] = config
        if warnings:
            report["warnings"] = list(warnings)
        return report

    def to_json(self, payload: dict, path: Union[str, Path], indent: int = 2) -> Path:
        """
        Write a report payload to a JSON file.

        Args:
            payload: Output of ``build_report``
            path: Output file path
            indent: JSON indentation level
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w") as f:
            json.dump(payload, f, indent=indent, default=_json_default)
        return path

    def to_console_summary(
        self,
        summary: DESummary,
        table: pd.DataFrame,
        top_n: int = 10,
        lfc_threshold: float = 1.0,
    ) -> str:
        """
        Generate human-readable console summary.

        Args:
            summary: DESeq2-style summary counts
            table: Cleaned result table
            top_n: Number of top genes to show per direction
            lfc_threshold: Effect size threshold for the top-gene lists

        Returns:
            Formatted string report
        """
        lines = []

        lines.append("=" * 70)
        lines.append("DIFFERENTIAL EXPRESSION ANALYSIS RESULTS")
        lines.append("=" * 70)
        lines.append("")
        lines.append(str(summary))

        for direction, ascending in (("up", False), ("down", True)):
            mask = flag_significant(table, summary.alpha, lfc_threshold, direction)
            genes = table[mask].sort_values("log2FoldChange", ascending=ascending)
            if genes.empty:
                continue
            label = "UPREGULATED" if direction == "up" else "DOWNREGULATED"
            lines.append("")
            lines.append("-" * 70)
            lines.append(f"TOP {min(top_n, len(genes))} {label} GENES")
            lines.append("-" * 70)
            lines.append(format_gene_table(genes.head(top_n)))

        lines.append("")
        lines.append("=" * 70)

        return "\n".join(lines)

    def print_summary(
        self,
        summary: DESummary,
        table: pd.DataFrame,
        top_n: int = 10,
        lfc_threshold: float = 1.0,
    ) -> None:
        """Print human-readable summary to stdout."""
        print(self.to_console_summary(summary, table, top_n, lfc_threshold))


def format_gene_table(table: pd.DataFrame) -> str:
    """Fixed-width gene table: symbol (or ID), log2FC, padj, baseMean."""
    lines = [f"  {'Gene':<18} {'Log2FC':>10} {'P-adj':>12} {'BaseMean':>12}", "  " + "-" * 56]
    for _, row in table.iterrows():
        name = row.get("symbol")
        if pd.isna(name):
            name = row[ID_COLUMN]
        padj = "N/A" if pd.isna(row["padj"]) else f"{row['padj']:.2e}"
        lines.append(
            f"  {str(name):<18} {row['log2FoldChange']:>10.2f} {padj:>12} {row['baseMean']:>12.1f}"
        )
    return "\n".join(lines)


def _json_default(value):
    if isinstance(value, (np.integer,)):
        return int(value)
    if isinstance(value, (np.floating,)):
        return float(value)
    if isinstance(value, Path):
        return str(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")
