from __future__ import annotations
import logging
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from ..core.constants import PEAKS_COUNT, SPECTRUM_ID, PeakFormat
from ..core.errors import DataCorruptionError, InvalidArgumentError
from ..core.PeakCodec import get_codec
from ..core.Spectra import Spectra
from .connection import ConnectionHandle, id_blocks
from .schema import PEAKS_BLOB_TABLE, PEAKS_TABLE, SPECTRA_TABLE, StoreSettings

logger = logging.getLogger(__name__)

PeakArrays = Tuple[np.ndarray, np.ndarray]


class SqlStore:
    """
    Spectra store on a DB-API 2.0 connection created by ``create_store``.

    The settings record is read once at construction. Every fetch is one
    query per block of at most ``max_query_params`` identifiers.
    """
    kind = "sql"

    def __init__(
        self,
        connection=None,
        *,
        connect: Optional[Callable[[], Any]] = None,
        max_query_params: int = 900,
    ):
        if isinstance(max_query_params, bool) or not isinstance(max_query_params, int) or max_query_params <= 0:
            raise InvalidArgumentError(f"max_query_params must be a positive integer, got {max_query_params!r}")
        self._handle = ConnectionHandle(connection, connect=connect)
        self.max_query_params = max_query_params
        with self._handle.cursor() as cur:
            self.settings = StoreSettings.load(cur)
        self.store_uuid = self.settings.store_uuid
        self._codec = get_codec(self.settings.peak_format, self.settings.intensity_dtype)
        logger.debug("Opened %r", self)

    def __repr__(self) -> str:
        return (
            f"SqlStore(uuid={self.store_uuid}, peak_format={self.peak_format.value}, "
            f"dialect={self._handle.dialect.family})"
        )

    @property
    def peak_format(self) -> PeakFormat:
        return self.settings.peak_format

    @property
    def variables(self) -> Tuple[str, ...]:
        return (SPECTRUM_ID,) + tuple(self.settings.variables) + (PEAKS_COUNT,)

    def is_same(self, other) -> bool:
        if other is self:
            return True
        return (
            isinstance(other, SqlStore)
            and other.store_uuid == self.store_uuid
            and self._handle.is_same(other._handle)
        )

    def _in_list(self, n: int) -> str:
        return f"{SPECTRUM_ID} IN ({self._handle.dialect.placeholders(n)})"

    # --- identifiers & variables ---
    def identifiers(self) -> np.ndarray:
        with self._handle.cursor() as cur:
            cur.execute(f"SELECT {SPECTRUM_ID} FROM {SPECTRA_TABLE} ORDER BY {SPECTRUM_ID}")
            rows = cur.fetchall()
        return np.asarray([r[0] for r in rows], dtype=np.int64)

    def fetch_variables(self, ids: np.ndarray, names: Sequence[str]) -> pd.DataFrame:
        """
        Values of ``names`` for ``ids`` (duplicates allowed), row-aligned with ``ids``.
        """
        ids = np.asarray(ids, dtype=np.int64)
        names = list(names)
        unknown = [n for n in names if n not in self.variables]
        if unknown:
            raise KeyError(f"Variables {unknown} are not stored")
        if ids.size == 0:
            return pd.DataFrame({name: pd.Series([], dtype=object) for name in names})

        unique = np.unique(ids)
        columns = [n for n in names if n != SPECTRUM_ID]
        rows: List[tuple] = []
        if columns and unique.size:
            dialect = self._handle.dialect
            with self._handle.cursor() as cur:
                for block in id_blocks(unique, self.max_query_params):
                    cur.execute(
                        f"SELECT {SPECTRUM_ID}, {', '.join(columns)} FROM {SPECTRA_TABLE} "
                        f"WHERE {self._in_list(block.size)}",
                        dialect.bind(block.tolist()),
                    )
                    rows.extend(tuple(r) for r in cur.fetchall())
            logger.debug("Fetched %s for %d spectra", columns, unique.size)

        if columns:
            table = pd.DataFrame.from_records(rows, columns=[SPECTRUM_ID] + columns)
            table = table.set_index(SPECTRUM_ID)
            for name in columns:
                # all-NULL numeric columns come back as None objects
                if self.settings.sql_type(name) in ("INTEGER", "REAL") and table[name].isna().all():
                    table[name] = table[name].astype("float64")
            missing = np.setdiff1d(unique, table.index.to_numpy(dtype=np.int64))
            if missing.size:
                raise KeyError(f"Spectrum identifiers not in store: {missing[:10].tolist()}")
            out = table.loc[ids].reset_index()
        else:
            out = pd.DataFrame({SPECTRUM_ID: ids})
        if SPECTRUM_ID not in names:
            out = out.drop(columns=SPECTRUM_ID)
        else:
            out[SPECTRUM_ID] = ids
        return out[names].reset_index(drop=True)

    # --- peaks ---
    def _fetch_packed(self, ids: np.ndarray) -> Dict[int, PeakArrays]:
        dialect = self._handle.dialect
        decoded: Dict[int, PeakArrays] = {}
        with self._handle.cursor() as cur:
            for block in id_blocks(ids, self.max_query_params):
                cur.execute(
                    f"SELECT s.{SPECTRUM_ID}, s.{PEAKS_COUNT}, b.payload "
                    f"FROM {SPECTRA_TABLE} s LEFT JOIN {PEAKS_BLOB_TABLE} b "
                    f"ON s.{SPECTRUM_ID} = b.{SPECTRUM_ID} "
                    f"WHERE s.{self._in_list(block.size)}",
                    dialect.bind(block.tolist()),
                )
                for spectrum_id, peaks_count, payload in cur.fetchall():
                    try:
                        decoded[int(spectrum_id)] = self._codec.decode(payload, int(peaks_count))
                    except DataCorruptionError as err:
                        raise DataCorruptionError(f"Spectrum {spectrum_id}: {err}") from err
        return decoded

    def _fetch_exploded(self, ids: np.ndarray) -> Dict[int, PeakArrays]:
        dialect = self._handle.dialect
        decoded: Dict[int, PeakArrays] = {}
        with self._handle.cursor() as cur:
            for block in id_blocks(ids, self.max_query_params):
                params = dialect.bind(block.tolist())
                cur.execute(
                    f"SELECT {SPECTRUM_ID}, {PEAKS_COUNT} FROM {SPECTRA_TABLE} "
                    f"WHERE {self._in_list(block.size)}",
                    params,
                )
                counts = {int(sid): int(n) for sid, n in cur.fetchall()}
                cur.execute(
                    f"SELECT {SPECTRUM_ID}, peak_index, mz, intensity FROM {PEAKS_TABLE} "
                    f"WHERE {self._in_list(block.size)}",
                    params,
                )
                rows = cur.fetchall()
                if rows:
                    sid, pidx, mz, intensity = (np.asarray(c) for c in zip(*rows))
                else:
                    sid = pidx = mz = intensity = np.empty(0)
                decoded.update(self._codec.decode_many(sid, pidx, mz, intensity, peaks_counts=counts))
        return decoded

    def fetch_peaks(self, ids: np.ndarray) -> List[PeakArrays]:
        """
        Decoded (mz, intensity) pairs aligned with ``ids``. Each distinct
        identifier is fetched and decoded once; duplicates share the same
        read-only arrays.
        """
        ids = np.asarray(ids, dtype=np.int64)
        unique = np.unique(ids)
        if unique.size == 0:
            return []
        if self.peak_format == PeakFormat.PACKED:
            decoded = self._fetch_packed(unique)
        else:
            decoded = self._fetch_exploded(unique)
        logger.debug("Decoded peaks of %d spectra", len(decoded))
        missing = [int(i) for i in unique if int(i) not in decoded]
        if missing:
            raise KeyError(f"Spectrum identifiers not in store: {missing[:10]}")
        return [decoded[int(i)] for i in ids]


def open_collection(connection=None, *, connect: Optional[Callable[[], Any]] = None, max_query_params: int = 900) -> Spectra:
    """
    Collection spanning every stored spectrum in identifier order.

    Args:
        connection: Live DB-API 2.0 connection to a store made by create_store.
        connect: Zero-argument connection factory; every storage round trip
            then opens and closes its own connection.
        max_query_params: Maximum identifiers bound per query.
    """
    store = SqlStore(connection, connect=connect, max_query_params=max_query_params)
    return Spectra.from_store(store)
