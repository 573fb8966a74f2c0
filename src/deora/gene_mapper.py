"""Gene identifier cross-referencing with an offline fallback.

Maps primary feature IDs (Ensembl gene IDs) to a gene symbol and an Entrez
(NCBI Gene) ID. Two implementations share the ``GeneIdMapper`` protocol:

- ``GProfilerIdMapper`` queries g:Profiler's g:Convert service.
- ``StaticFileIdMapper`` reads a pre-downloaded TSV with the same schema.

``build_id_mapper`` is the only place where one is chosen; with the
``gprofiler`` backend the file mapper is wrapped in as a fallback.
"""

import logging
from pathlib import Path
from typing import List, Optional, Protocol, Sequence

import pandas as pd
import requests

from .config import IdMappingConfig
from .de_result import ID_COLUMN
from .table_cleaner import order_columns

logger = logging.getLogger(__name__)

MAPPING_COLUMNS = [ID_COLUMN, "symbol", "entrez_id"]

# g:Convert reports unmapped inputs with these placeholders
_UNMAPPED_VALUES = {"None", "N/A", "nan", ""}


def empty_mapping() -> pd.DataFrame:
    """A cross-reference table with no rows."""
    return pd.DataFrame({col: pd.Series(dtype="object") for col in MAPPING_COLUMNS})


def read_mapping(path: Path) -> pd.DataFrame:
    """Read a static mapping TSV (gene_id, symbol, entrez_id)."""
    df = pd.read_csv(path, sep="\t", dtype=str)
    missing = [c for c in MAPPING_COLUMNS if c not in df.columns]
    if missing:
        raise ValueError(f"Mapping file {path} is missing columns {missing}")
    return df[MAPPING_COLUMNS]


def write_mapping(mapping: pd.DataFrame, path: Path) -> None:
    """Write a mapping as TSV, creating parent directories."""
    path.parent.mkdir(parents=True, exist_ok=True)
    mapping[MAPPING_COLUMNS].to_csv(path, sep="\t", index=False)


class GeneIdMapper(Protocol):
    """Protocol for identifier mapping backends."""

    def map_ids(self, ids: Sequence[str]) -> pd.DataFrame:
        """
        Map primary IDs to alternate identifiers.

        Args:
            ids: Primary feature identifiers

        Returns:
            DataFrame with columns gene_id, symbol, entrez_id; zero or more
            rows per input ID
        """
        ...


class GProfilerIdMapper:
    """
    Identifier mapping through g:Profiler g:Convert.

    Uses the gprofiler-official package; network errors propagate so a
    wrapping ``FallbackIdMapper`` can react to them.
    """

    def __init__(
        self,
        organism: str = "hsapiens",
        target_namespace: str = "ENTREZGENE_ACC",
        cache_path: Optional[Path] = None,
    ):
        self.organism = organism
        self.target_namespace = target_namespace
        self.cache_path = Path(cache_path) if cache_path is not None else None
        self._gp = None

    def _get_client(self):
        """Lazy initialization of g:Profiler client."""
        if self._gp is None:
            from gprofiler import GProfiler

            self._gp = GProfiler(user_agent="deora", return_dataframe=True)
        return self._gp

    def map_ids(self, ids: Sequence[str]) -> pd.DataFrame:
        ids = list(dict.fromkeys(str(i) for i in ids))
        if not ids:
            return empty_mapping()

        logger.info("Querying g:Convert for %d identifiers (%s)", len(ids), self.organism)
        result = self._get_client().convert(
            organism=self.organism,
            query=ids,
            target_namespace=self.target_namespace,
        )
        if result is None or len(result) == 0:
            return empty_mapping()

        mapping = result.rename(
            columns={"incoming": ID_COLUMN, "converted": "entrez_id", "name": "symbol"}
        )[MAPPING_COLUMNS].astype("object")
        mapping = mapping.mask(mapping.isin(_UNMAPPED_VALUES))
        mapping = mapping[mapping[ID_COLUMN].notna()].drop_duplicates().reset_index(drop=True)

        if self.cache_path is not None:
            write_mapping(mapping, self.cache_path)
            logger.info("Cached %d mappings to %s", len(mapping), self.cache_path)
        return mapping


class StaticFileIdMapper:
    """
    Identifier mapping from a pre-downloaded TSV file.

    Args:
        path: TSV with columns gene_id, symbol, entrez_id
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._mapping: Optional[pd.DataFrame] = None

    def map_ids(self, ids: Sequence[str]) -> pd.DataFrame:
        if self._mapping is None:
            if not self.path.is_file():
                raise FileNotFoundError(f"Static gene map not found: {self.path}")
            logger.info("Loading static gene map from %s", self.path)
            self._mapping = read_mapping(self.path)
        wanted = set(str(i) for i in ids)
        subset = self._mapping[self._mapping[ID_COLUMN].isin(wanted)]
        return subset.reset_index(drop=True)


class FallbackIdMapper:
    """
    Try ``primary``; on a service failure use ``fallback``.

    With no primary (offline use) the fallback is read directly.
    If the fallback is missing as well, an empty mapping is returned so the
    caller continues with unmapped identifiers. Every degradation is logged
    and recorded in ``warnings``.
    """

    def __init__(self, primary: Optional[GeneIdMapper], fallback: Optional[GeneIdMapper] = None):
        self.primary = primary
        self.fallback = fallback
        self.warnings: List[str] = []

    def _warn(self, message: str) -> None:
        logger.warning(message)
        self.warnings.append(message)

    def map_ids(self, ids: Sequence[str]) -> pd.DataFrame:
        if self.primary is not None:
            try:
                return self.primary.map_ids(ids)
            except (requests.RequestException, OSError, ValueError, KeyError) as exc:
                self._warn(f"Remote identifier mapping failed ({exc}); using static gene map")

        if self.fallback is None:
            self._warn("No static gene map configured; alternate IDs will be missing")
            return empty_mapping()

        try:
            return self.fallback.map_ids(ids)
        except FileNotFoundError as exc:
            self._warn(f"{exc}; alternate IDs will be missing")
            return empty_mapping()


def build_id_mapper(config: Optional[IdMappingConfig] = None) -> GeneIdMapper:
    """Create the mapper selected by ``config.backend``."""
    config = config or IdMappingConfig()

    if config.backend == "file":
        return FallbackIdMapper(None, StaticFileIdMapper(config.fallback_path))

    remote = GProfilerIdMapper(
        organism=config.organism,
        target_namespace=config.target_namespace,
        cache_path=config.cache_path if config.write_cache else None,
    )
    fallback = (
        StaticFileIdMapper(config.fallback_path)
        if config.fallback_path is not None
        else None
    )
    return FallbackIdMapper(remote, fallback)


def annotate_results(table: pd.DataFrame, mapper: GeneIdMapper) -> pd.DataFrame:
    """
    Left-join symbol and Entrez ID onto a result table.

    Features without a mapping keep missing alternate IDs; features with
    several mappings appear once per mapping.
    """
    mapping = mapper.map_ids(table[ID_COLUMN].astype(str).unique().tolist())
    base = table.drop(columns=[c for c in ("symbol", "entrez_id") if c in table.columns])
    base = base.assign(**{ID_COLUMN: base[ID_COLUMN].astype(str)})
    merged = base.merge(mapping, on=ID_COLUMN, how="left")

    n_unmapped = int(merged["entrez_id"].isna().sum())
    if n_unmapped:
        logger.info("%d of %d features have no Entrez ID", n_unmapped, len(merged))
    return order_columns(merged)
