"""
Flattening and cleaning of differential expression result tables.

After ``clean_results`` every row has an adjusted p-value and the secondary
identifier (Entrez ID by default) is unique among rows that have one.
"""

import logging

import pandas as pd

from .de_result import ID_COLUMN, RESULT_COLUMNS, STAT_COLUMNS

logger = logging.getLogger(__name__)


def results_frame(stat_res) -> pd.DataFrame:
    """
    Convert a PyDESeq2 ``DeseqStats`` (after ``summary()``) to a flat table.

    The gene index becomes a ``gene_id`` column and the statistics columns
    are put in a fixed order.
    """
    df = stat_res.results_df.copy()
    df.index = df.index.astype(str)
    df.index.name = ID_COLUMN
    df = df.reset_index()
    return df[[ID_COLUMN] + [c for c in STAT_COLUMNS if c in df.columns]]


def order_columns(table: pd.DataFrame) -> pd.DataFrame:
    """Known result columns first, anything else after."""
    known = [c for c in RESULT_COLUMNS if c in table.columns]
    extra = [c for c in table.columns if c not in known]
    return table[known + extra]


def drop_missing_padj(table: pd.DataFrame) -> pd.DataFrame:
    """Remove rows with a missing adjusted p-value."""
    return table[table["padj"].notna()]


def deduplicate(table: pd.DataFrame, id_column: str = "entrez_id") -> pd.DataFrame:
    """
    Keep one row per ``id_column`` value: the one with the smallest padj.

    Ties go to the row that came first. Rows with a missing identifier are
    all kept. Output preserves input order.
    """
    positional = table.reset_index(drop=True)
    has_id = positional[id_column].notna()
    ranked = positional[has_id].sort_values("padj", kind="mergesort")
    winners = ranked[~ranked[id_column].duplicated(keep="first")].index
    keep = positional.index.isin(winners) | ~has_id.to_numpy()
    return table[keep]


def clean_results(
    table: pd.DataFrame,
    id_column: str = "entrez_id",
    drop_missing_ids: bool = False,
) -> pd.DataFrame:
    """
    Clean a result table for enrichment analysis and export.

    Steps:
    1. Drop rows with missing padj
    2. Optionally drop rows with a missing ``id_column``
    3. Deduplicate on ``id_column`` keeping the smallest padj per group

    Args:
        table: Result table (one row per feature, may contain repeats after
            a one-to-many identifier join)
        id_column: Secondary identifier column used for deduplication
        drop_missing_ids: Also drop rows where ``id_column`` is missing

    Returns:
        A new table with a fresh RangeIndex
    """
    if id_column not in table.columns:
        raise ValueError(f"Result table has no column {id_column!r}")

    n_start = len(table)
    cleaned = drop_missing_padj(table)
    n_padj = n_start - len(cleaned)

    n_ids = 0
    if drop_missing_ids:
        before = len(cleaned)
        cleaned = cleaned[cleaned[id_column].notna()]
        n_ids = before - len(cleaned)

    before = len(cleaned)
    cleaned = deduplicate(cleaned, id_column)
    n_dups = before - len(cleaned)

    logger.info(
        "Cleaned result table: %d -> %d rows (%d missing padj, %d missing %s, %d duplicates)",
        n_start,
        len(cleaned),
        n_padj,
        n_ids,
        id_column,
        n_dups,
    )
    return cleaned.reset_index(drop=True)
