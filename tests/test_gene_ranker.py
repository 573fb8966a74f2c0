"""Tests for significance filtering and gene ranking."""

import numpy as np
import pandas as pd
import pytest

from deora.config import SignificanceConfig
from deora.gene_ranker import (
    RankingMethod,
    flag_significant,
    rank_genes,
    select_from_config,
    select_significant,
    separate_by_direction,
)


def _make_table():
    return pd.DataFrame({
        "gene_id": ["g1", "g2", "g3", "g4", "g5", "g6", "g7"],
        "log2FoldChange": [2.0, -2.0, 1.0, 0.5, 3.0, -1.0, 1.5],
        "padj": [0.001, 0.01, 0.04, 0.001, 0.05, 0.049, np.nan],
        "entrez_id": ["1", "2", "3", "4", "5", None, "7"],
    })


class TestFlagSignificant:

    def test_padj_is_strict(self):
        flags = flag_significant(_make_table(), 0.05, 0.0)
        # g5 sits exactly on the threshold, g7 has no padj
        assert list(flags) == [True, True, True, True, False, True, False]

    def test_lfc_is_inclusive(self):
        flags = flag_significant(_make_table(), 0.05, 1.0)
        assert list(flags) == [True, True, True, False, False, True, False]

    def test_direction_up(self):
        flags = flag_significant(_make_table(), 0.05, 1.0, "up")
        assert list(flags) == [True, False, True, False, False, False, False]

    def test_direction_down(self):
        flags = flag_significant(_make_table(), 0.05, 1.0, "down")
        assert list(flags) == [False, True, False, False, False, True, False]

    def test_unknown_direction(self):
        with pytest.raises(ValueError):
            flag_significant(_make_table(), direction="left")


class TestSelectSignificant:

    def test_genes_subset_of_universe(self):
        subset = select_significant(_make_table(), 0.05, 1.0)
        assert set(subset.genes) <= set(subset.universe)
        assert subset.genes == ["1", "2", "3"]

    def test_padj_gate_overrides_larger_effect(self):
        table = pd.DataFrame({
            "gene_id": ["a", "b"],
            "log2FoldChange": [2.0, 3.0],
            "padj": [0.01, 0.2],
            "entrez_id": ["10", "20"],
        })
        subset = select_significant(table, padj_threshold=0.05, lfc_threshold=1.0)
        assert subset.genes == ["10"]
        assert subset.universe == ["10", "20"]

    def test_universe_is_every_non_missing_id(self):
        subset = select_significant(_make_table())
        assert subset.universe == ["1", "2", "3", "4", "5", "7"]

    def test_no_significant_genes(self):
        subset = select_significant(_make_table(), padj_threshold=1e-9)
        assert subset.genes == []
        assert subset.n_genes == 0
        assert len(subset.universe) == 6

    def test_float_ids_become_integers(self):
        table = _make_table().assign(entrez_id=[1.0, 2.0, 3.0, 4.0, 5.0, np.nan, 7.0])
        subset = select_significant(table)
        assert subset.universe[0] == "1"

    def test_from_config_direction_override(self):
        config = SignificanceConfig(padj_threshold=0.05, lfc_threshold=1.0)
        subset = select_from_config(_make_table(), config, direction="up")
        assert subset.direction == "up"
        assert subset.genes == ["1", "3"]

    def test_records_thresholds(self):
        subset = select_significant(_make_table(), 0.01, 0.5, "down")
        assert (subset.padj_threshold, subset.lfc_threshold, subset.direction) == (
            0.01, 0.5, "down",
        )


class TestSeparateByDirection:

    def test_split(self):
        groups = separate_by_direction(_make_table(), 0.05, 1.0)
        assert list(groups["up"]["gene_id"]) == ["g1", "g3"]
        assert list(groups["down"]["gene_id"]) == ["g2", "g6"]


class TestRankGenes:

    def test_effect_size(self):
        ranked = rank_genes(_make_table(), RankingMethod.EFFECT_SIZE)
        assert ranked.iloc[0]["gene_id"] == "g5"

    def test_combined_puts_down_genes_last(self):
        ranked = rank_genes(_make_table(), RankingMethod.COMBINED)
        assert ranked.iloc[0]["gene_id"] in ("g1", "g4")
        # Missing padj ranks after all scored rows
        assert ranked.iloc[-1]["gene_id"] == "g7"

    def test_top_n(self):
        assert len(rank_genes(_make_table(), RankingMethod.PVALUE, top_n=3)) == 3

    def test_zero_padj_is_finite(self):
        table = _make_table()
        table.loc[0, "padj"] = 0.0
        ranked = rank_genes(table, RankingMethod.VOLCANO)
        assert np.isfinite(ranked.iloc[0]["score"])
