"""Re-levelling of the categorical condition covariate.

The first category of the condition column is the reference group. Changing
the order changes the sign of the fitted effect sizes, so a model must be
re-fitted after re-levelling (see ``DifferentialExpressionAnalyzer.relevel_and_refit``).
"""

from collections import Counter
from typing import List, Sequence

import pandas as pd


class LevelMismatchError(ValueError):
    """Requested levels are not a permutation of the existing levels."""


def current_levels(metadata: pd.DataFrame, factor: str) -> List[str]:
    """Level order of ``factor``; sorted unique values if not categorical."""
    if factor not in metadata.columns:
        raise ValueError(f"Metadata has no column {factor!r}")
    column = metadata[factor]
    if isinstance(column.dtype, pd.CategoricalDtype):
        return [str(c) for c in column.cat.categories]
    return sorted(column.dropna().astype(str).unique())


def relevel(metadata: pd.DataFrame, factor: str, levels: Sequence[str]) -> pd.DataFrame:
    """
    Return a copy of ``metadata`` with ``factor`` re-ordered to ``levels``.

    Args:
        metadata: Sample metadata table
        factor: Categorical column to re-level
        levels: New level order; ``levels[0]`` becomes the reference

    Raises:
        LevelMismatchError: If ``levels`` has duplicates, misses an existing
            level, or names a level that does not exist.
    """
    existing = current_levels(metadata, factor)
    requested = [str(level) for level in levels]

    duplicated = sorted(level for level, n in Counter(requested).items() if n > 1)
    missing = sorted(set(existing) - set(requested))
    unexpected = sorted(set(requested) - set(existing))
    if duplicated or missing or unexpected:
        problems = []
        if missing:
            problems.append(f"missing {missing}")
        if unexpected:
            problems.append(f"unexpected {unexpected}")
        if duplicated:
            problems.append(f"duplicated {duplicated}")
        raise LevelMismatchError(
            f"Levels for {factor!r} must be a permutation of {existing}: "
            + ", ".join(problems)
        )

    releveled = metadata.copy()
    releveled[factor] = pd.Categorical(
        releveled[factor].astype(str), categories=requested
    )
    return releveled


def set_reference(metadata: pd.DataFrame, factor: str, reference: str) -> pd.DataFrame:
    """Move ``reference`` to the front, keeping the other levels in order."""
    existing = current_levels(metadata, factor)
    if reference not in existing:
        raise LevelMismatchError(
            f"Reference {reference!r} is not a level of {factor!r} ({existing})"
        )
    return relevel(metadata, factor, [reference] + [l for l in existing if l != reference])
