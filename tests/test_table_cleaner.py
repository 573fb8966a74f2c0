"""Tests for result-table cleaning and deduplication."""

from unittest.mock import MagicMock

import numpy as np
import pandas as pd
import pytest

from deora.table_cleaner import (
    clean_results,
    deduplicate,
    drop_missing_padj,
    order_columns,
    results_frame,
)


def _make_table():
    return pd.DataFrame({
        "gene_id": ["ENSG1", "ENSG2", "ENSG3", "ENSG4", "ENSG5", "ENSG6"],
        "baseMean": [100.0, 80.0, 60.0, 40.0, 20.0, 10.0],
        "log2FoldChange": [2.0, -1.2, 0.5, 1.1, -0.3, 0.8],
        "lfcSE": [0.2] * 6,
        "stat": [10.0, -6.0, 2.5, 5.5, -1.5, 4.0],
        "pvalue": [1e-6, 1e-4, 0.01, 1e-3, 0.2, 1e-3],
        "padj": [1e-5, 1e-3, 0.05, np.nan, 0.3, 1e-3],
        "symbol": ["A", "B", "C", "D", None, "F"],
        "entrez_id": ["1", "2", "2", "4", None, None],
    })


class TestResultsFrame:

    def test_flattens_index(self):
        stat_res = MagicMock()
        stat_res.results_df = pd.DataFrame(
            {
                "padj": [0.1],
                "baseMean": [5.0],
                "log2FoldChange": [1.0],
                "lfcSE": [0.3],
                "stat": [3.0],
                "pvalue": [0.01],
            },
            index=["ENSG1"],
        )
        table = results_frame(stat_res)
        assert list(table.columns) == [
            "gene_id", "baseMean", "log2FoldChange", "lfcSE", "stat", "pvalue", "padj",
        ]
        assert table.loc[0, "gene_id"] == "ENSG1"


class TestOrderColumns:

    def test_known_first(self):
        table = _make_table()[["entrez_id", "padj", "gene_id"]].assign(extra=1)
        assert list(order_columns(table).columns) == ["gene_id", "padj", "entrez_id", "extra"]


class TestDropMissingPadj:

    def test_drops_nan(self):
        assert drop_missing_padj(_make_table())["padj"].notna().all()


class TestDeduplicate:

    def test_keeps_smallest_padj(self):
        result = deduplicate(_make_table())
        kept = result[result["entrez_id"] == "2"]
        assert list(kept["gene_id"]) == ["ENSG2"]

    def test_tie_goes_to_first_row(self):
        table = _make_table()
        table.loc[2, "padj"] = table.loc[1, "padj"]
        result = deduplicate(table)
        assert list(result[result["entrez_id"] == "2"]["gene_id"]) == ["ENSG2"]

    def test_missing_ids_all_kept(self):
        result = deduplicate(_make_table())
        assert result["entrez_id"].isna().sum() == 2

    def test_preserves_order(self):
        result = deduplicate(_make_table())
        assert list(result["gene_id"]) == ["ENSG1", "ENSG2", "ENSG4", "ENSG5", "ENSG6"]

    def test_duplicate_index_labels(self):
        table = _make_table()
        table.index = [0, 0, 1, 1, 2, 2]
        result = deduplicate(table)
        assert len(result) == 5

    def test_one_to_many_join(self):
        # One gene mapped to two Entrez IDs stays twice
        table = pd.DataFrame({
            "gene_id": ["ENSG1", "ENSG1"],
            "padj": [0.01, 0.01],
            "entrez_id": ["10", "11"],
        })
        assert len(deduplicate(table)) == 2


class TestCleanResults:

    def test_no_missing_padj_and_unique_ids(self):
        cleaned = clean_results(_make_table())
        assert cleaned["padj"].notna().all()
        ids = cleaned["entrez_id"].dropna()
        assert ids.is_unique

    def test_fresh_index(self):
        cleaned = clean_results(_make_table())
        assert list(cleaned.index) == list(range(len(cleaned)))

    def test_idempotent(self):
        once = clean_results(_make_table())
        twice = clean_results(once)
        pd.testing.assert_frame_equal(once, twice)

    def test_drop_missing_ids(self):
        cleaned = clean_results(_make_table(), drop_missing_ids=True)
        assert cleaned["entrez_id"].notna().all()
        assert list(cleaned["gene_id"]) == ["ENSG1", "ENSG2"]

    def test_input_untouched(self):
        table = _make_table()
        before = table.copy()
        clean_results(table)
        pd.testing.assert_frame_equal(table, before)

    def test_missing_id_column(self):
        with pytest.raises(ValueError, match="no column"):
            clean_results(_make_table().drop(columns="entrez_id"))

    def test_five_percent_missing_padj(self):
        rng = np.random.RandomState(0)
        n = 200
        table = pd.DataFrame({
            "gene_id": [f"ENSG{i}" for i in range(n)],
            "padj": rng.uniform(0, 1, n),
            "entrez_id": [str(i // 2) for i in range(n)],
        })
        missing = rng.choice(n, size=n // 20, replace=False)
        table.loc[missing, "padj"] = np.nan

        cleaned = clean_results(table)
        assert cleaned["padj"].notna().all()
        assert cleaned["entrez_id"].is_unique
        # Every identifier with at least one non-missing padj survives
        expected = table.dropna(subset=["padj"])["entrez_id"].nunique()
        assert len(cleaned) == expected
