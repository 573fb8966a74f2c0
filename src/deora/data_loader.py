"""
Loading of count matrices and sample metadata.

Counts are held genes x samples (one row per feature) and metadata samples x
covariates. PyDESeq2 wants the transpose; the model fitter handles that.

Bundled resources:
    demo       25 human genes (one without an Entrez ID), 3 untreated and 3 treated samples (package data)
    synthetic  PyDESeq2's example dataset (fetched by pydeseq2)
"""

import logging
from pathlib import Path
from typing import List, Optional, Sequence, Tuple, Union

import pandas as pd

logger = logging.getLogger(__name__)

DATA_DIR = Path(__file__).parent / "data"

BUNDLED_DATASETS = {
    "demo": ("demo_counts.csv", "demo_metadata.csv"),
}


def load_dataset(
    name: str = "demo",
    factor: str = "condition",
) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """
    Load a named bundled dataset.

    Args:
        name: Dataset name ("demo" or "synthetic")
        factor: Condition column to validate and cast to categorical

    Returns:
        Tuple of (counts genes x samples, metadata samples x covariates)

    Raises:
        FileNotFoundError: If the dataset name or its files are unknown.
    """
    if name == "synthetic":
        counts, metadata = _load_pydeseq2_example()
    elif name in BUNDLED_DATASETS:
        counts_file, metadata_file = BUNDLED_DATASETS[name]
        counts, metadata = load_counts_and_metadata(
            DATA_DIR / counts_file, DATA_DIR / metadata_file
        )
    else:
        available = sorted(list(BUNDLED_DATASETS) + ["synthetic"])
        raise FileNotFoundError(
            f"No bundled dataset named {name!r} (available: {', '.join(available)})"
        )

    return prepare_metadata(counts, metadata, factor)


def _load_pydeseq2_example() -> Tuple[pd.DataFrame, pd.DataFrame]:
    from pydeseq2.utils import load_example_data

    counts = load_example_data(modality="raw_counts", dataset="synthetic", debug=False)
    metadata = load_example_data(modality="metadata", dataset="synthetic", debug=False)
    # pydeseq2 ships counts as samples x genes
    return counts.T, metadata


def load_counts_and_metadata(
    counts_path: Union[str, Path],
    metadata_path: Union[str, Path],
    sep: Optional[str] = None,
) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """
    Read a count matrix and a metadata table from delimited files.

    The first column of each file is used as the index (feature IDs for
    counts, sample IDs for metadata).

    Args:
        counts_path: Count matrix, genes x samples
        metadata_path: Sample metadata, one row per sample
        sep: Delimiter; inferred from the suffix when None

    Returns:
        Tuple of (counts, metadata)
    """
    counts_path = Path(counts_path)
    metadata_path = Path(metadata_path)
    for path in (counts_path, metadata_path):
        if not path.is_file():
            raise FileNotFoundError(f"Input file not found: {path}")

    counts = pd.read_csv(counts_path, sep=sep or _infer_sep(counts_path), index_col=0)
    metadata = pd.read_csv(
        metadata_path, sep=sep or _infer_sep(metadata_path), index_col=0
    )
    counts.index = counts.index.astype(str)
    counts.columns = counts.columns.astype(str)
    metadata.index = metadata.index.astype(str)

    if (counts < 0).to_numpy().any():
        raise ValueError("Count matrix contains negative values")
    counts = counts.round().astype(int)

    logger.info(
        "Loaded %d features x %d samples from %s", counts.shape[0], counts.shape[1], counts_path
    )
    return counts, metadata


def _infer_sep(path: Path) -> str:
    suffixes = [s.lower() for s in path.suffixes]
    if ".tsv" in suffixes or ".txt" in suffixes or ".tab" in suffixes:
        return "\t"
    return ","


def prepare_metadata(
    counts: pd.DataFrame,
    metadata: pd.DataFrame,
    factor: str = "condition",
    levels: Optional[Sequence[str]] = None,
) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """Align samples and cast the condition column to a categorical."""
    counts, metadata = align_samples(counts, metadata, factor)
    return counts, as_categorical(metadata, factor, levels)


def align_samples(
    counts: pd.DataFrame,
    metadata: pd.DataFrame,
    factor: str = "condition",
) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """
    Enforce that every count column has a metadata row.

    Samples with a missing condition are dropped from both tables, and
    metadata rows without a count column are dropped from the metadata.
    Metadata is reordered to match the count columns.

    Raises:
        ValueError: If the factor column is absent or count columns lack
            metadata rows.
    """
    if factor not in metadata.columns:
        raise ValueError(
            f"Metadata has no column {factor!r} (columns: {list(metadata.columns)})"
        )

    missing = [s for s in counts.columns if s not in metadata.index]
    if missing:
        raise ValueError(f"Samples missing from metadata: {missing}")

    unlabelled = set(metadata.index[metadata[factor].isna()])
    if unlabelled:
        logger.info("Dropping %d samples with no %s value", len(unlabelled), factor)
    keep: List[str] = [s for s in counts.columns if s not in unlabelled]

    extra = metadata.index.difference(counts.columns)
    if len(extra) > 0:
        logger.debug("Ignoring %d metadata rows without counts", len(extra))

    return counts[keep], metadata.loc[keep].copy()


def as_categorical(
    metadata: pd.DataFrame,
    factor: str,
    levels: Optional[Sequence[str]] = None,
) -> pd.DataFrame:
    """
    Return a copy of metadata with ``factor`` as a categorical column.

    Levels default to sorted order, so the alphabetically first level is
    the reference unless re-levelled.
    """
    metadata = metadata.copy()
    values = metadata[factor].astype(str)
    if levels is None:
        levels = sorted(values.unique())
    metadata[factor] = pd.Categorical(values, categories=list(levels))
    if metadata[factor].isna().any():
        unknown = sorted(set(values[metadata[factor].isna()]))
        raise ValueError(f"Values {unknown} are not among levels {list(levels)}")
    return metadata


def filter_low_counts(counts: pd.DataFrame, min_total_count: int = 10) -> pd.DataFrame:
    """Remove features whose total count across samples is below threshold."""
    total = counts.sum(axis=1)
    keep = total >= min_total_count
    n_removed = int((~keep).sum())
    if n_removed > 0:
        logger.info(
            "Low-count filter: removed %d features (total count < %d)",
            n_removed,
            min_total_count,
        )
    return counts.loc[keep]
