from __future__ import annotations
import logging
import numpy as np
import pandas as pd
import torch
from typing import overload, Any, Callable, Iterator, List, Optional, Sequence, Tuple, Union

from .constants import PEAK_VARIABLES, PEAKS_COUNT
from .ChunkedIterator import chunked_apply, iter_chunks
from .Overlay import Overlay
from .PeakSeries import PeakSeries
from .SpecCondition import (
    SpecCondition,
    MsLevelCondition,
    RtRangeCondition,
    PrecursorMzRangeCondition,
)
from .SpectraIndex import SpectraIndex, Positions, resolve_positions
from .SpectraStore import SpectraStore

logger = logging.getLogger(__name__)

PeakArrays = Tuple[np.ndarray, np.ndarray]


class Spectra:
    """
    Ordered collection of spectra backed by one or more stores.

    A collection is a view: an identifier index into its stores plus a
    per-collection overlay of metadata written through ``write_variable``.
    Subsetting, reordering, duplicating and combining only touch the index
    and the overlay; storage is read lazily and never written.

    Example:
        sps = open_collection(conn)
        ms2 = sps.filter_ms_level(2)
        ms2["rtime"] = ms2["rtime"] / 60
        counts = ms2.chunked_apply(lambda mz, inten: mz.size, chunk_size=1000)
    """

    def __init__(self, index: SpectraIndex, overlay: Optional[Overlay] = None):
        if overlay is None:
            overlay = Overlay(len(index))
        assert len(overlay) == len(index), "overlay length must match index length"
        self._index = index
        self._overlay = overlay

    @classmethod
    def from_store(cls, store: SpectraStore) -> "Spectra":
        """Collection spanning every spectrum of ``store`` in identifier order."""
        return cls(SpectraIndex.from_store(store))

    def __repr__(self) -> str:
        return (
            f"Spectra(n_spectra={len(self)}, backend={self.backend}, "
            f"overlay={self._overlay.names})"
        )

    def __len__(self) -> int:
        return len(self._index)

    @property
    def backend(self) -> str:
        """Kind of the backing store(s), e.g. 'sql' or 'memory'."""
        return self._index.stores[0].kind

    @property
    def stores(self) -> Tuple[SpectraStore, ...]:
        return self._index.stores

    @property
    def index(self) -> SpectraIndex:
        return self._index

    @property
    def spectra_variables(self) -> List[str]:
        """Stored variable names followed by overlay-only names."""
        names = list(self._stored_variables)
        for name in self._overlay.names:
            if name not in names:
                names.append(name)
        return names

    @property
    def peaks_variables(self) -> List[str]:
        return list(PEAK_VARIABLES)

    @property
    def _stored_variables(self) -> Tuple[str, ...]:
        # all stores of one collection share the same variable set
        return self._index.stores[0].variables

    # --- views ---
    def subset(self, positions: Positions) -> "Spectra":
        """
        New collection over the given logical positions (repeats and any
        order allowed). The overlay is re-projected; no I/O is performed.

        Raises:
            IndexRangeError: If a position lies outside [0, len(self)).
        """
        pos = resolve_positions(positions, len(self))
        return Spectra(self._index.subset(pos), self._overlay.subset(pos))

    @overload
    def __getitem__(self, key: str) -> np.ndarray: ...
    @overload
    def __getitem__(self, key: Union[int, slice, Sequence[int], np.ndarray, torch.Tensor]) -> "Spectra": ...

    def __getitem__(self, key):
        """
        - str                       → values of a variable (see read_variable)
        - int/slice/sequence/mask   → subset collection
        """
        if isinstance(key, str):
            return self.read_variable(key)
        return self.subset(key)

    def __setitem__(self, key: str, values: Any):
        if not isinstance(key, str):
            raise TypeError(f"Variable name must be a string, got {type(key)}")
        self.write_variable(key, values)

    @classmethod
    def combine(cls, collections: Sequence["Spectra"]) -> "Spectra":
        """
        Concatenate collections in order.

        Overlay entries present in only some inputs are kept for those
        sub-ranges; the other positions read from storage.

        Raises:
            StoreCompatibilityError: If the inputs' stores cannot share one collection.
        """
        if not collections:
            raise ValueError("No collections provided for combination")
        index = SpectraIndex.combine([c._index for c in collections])
        overlay = Overlay.concat([c._overlay for c in collections])
        return cls(index, overlay)

    # --- variables ---
    def _fetch_stored(self, names: Sequence[str], positions: Optional[np.ndarray] = None) -> pd.DataFrame:
        """
        Stored values of ``names`` at ``positions``, one bulk query per store,
        returned as a DataFrame with a 0..len(positions)-1 row index.
        """
        n = len(self) if positions is None else len(positions)
        frames = []
        for store, where, ids in self._index.groups(positions):
            df = store.fetch_variables(ids, names)
            df.index = where
            frames.append(df)
        if not frames:
            return pd.DataFrame({name: pd.Series([], dtype=object) for name in names})
        if len(frames) == 1:
            out = frames[0]
        else:
            out = pd.concat(frames).sort_index()
        assert len(out) == n, "store returned a misaligned result"
        return out.reset_index(drop=True)

    def read_variable(self, name: str) -> np.ndarray:
        """
        Values of variable ``name`` for every logical position, in order.

        Overlay values take precedence; everything else is resolved from
        storage with one query per store.

        Raises:
            KeyError: If ``name`` is a peak variable or is neither stored nor in the overlay.
        """
        if name in PEAK_VARIABLES:
            raise KeyError(f"'{name}' is a peak variable; use peaks_at(), mz() or intensity()")

        entry = self._overlay.get(name)
        stored = name in self._stored_variables
        if entry is None:
            if not stored:
                raise KeyError(
                    f"Variable '{name}' not in available variables {self.spectra_variables}"
                )
            return self._fetch_stored([name])[name].to_numpy()
        if not entry.is_partial:
            return entry.values.copy()

        out = np.empty(len(self), dtype=object)
        for pos, value in enumerate(entry.values):
            out[pos] = value
        missing = np.flatnonzero(~entry.mask)
        if stored and missing.size:
            fetched = self._fetch_stored([name], missing)[name].to_numpy()
            for pos, value in zip(missing.tolist(), fetched):
                out[pos] = value
        else:
            out[missing] = None
        return pd.Series(out).infer_objects().to_numpy()

    def write_variable(self, name: str, values: Any) -> None:
        """
        Shadow (or create) variable ``name`` for this collection only.
        Storage and other collections sharing it are unaffected.

        Raises:
            ReadOnlyViolationError: For spectrum_id, peaks_count, mz or intensity.
            LengthMismatchError: If ``values`` does not have one entry per spectrum.
        """
        self._overlay.write(name, values)
        logger.debug("Overlay entry '%s' written for %d spectra", name, len(self))

    def reset_variable(self, name: str) -> bool:
        """Drop the overlay entry of ``name`` so reads fall back to storage."""
        return self._overlay.remove(name)

    def spectra_data(self, columns: Optional[Sequence[str]] = None) -> pd.DataFrame:
        """
        Variables as a DataFrame (one row per logical position), overlay applied.
        Stored columns without an overlay entry are fetched in one query per store.
        """
        if columns is None:
            columns = self.spectra_variables
        columns = list(columns)
        unknown = [c for c in columns if c not in self.spectra_variables]
        if unknown:
            raise KeyError(f"Unknown variables {unknown}")

        plain = [c for c in columns if c in self._stored_variables and c not in self._overlay]
        base = self._fetch_stored(plain) if plain else None
        data = {}
        for col in columns:
            data[col] = base[col].to_numpy() if col in plain else self.read_variable(col)
        return pd.DataFrame(data, columns=columns)

    def peaks_count(self) -> np.ndarray:
        return self._fetch_stored([PEAKS_COUNT])[PEAKS_COUNT].to_numpy()

    # --- peaks ---
    def peaks_at(self, positions: Positions = None) -> List[PeakArrays]:
        """
        Decoded (mz, intensity) pairs for the given logical positions, in
        request order including duplicates. One batched fetch per store.

        The returned arrays are read-only.
        """
        pos = resolve_positions(positions, len(self))
        result: List[Optional[PeakArrays]] = [None] * pos.size
        for store, where, ids in self._index.groups(pos):
            decoded = store.fetch_peaks(ids)
            assert len(decoded) == ids.size, "store returned a misaligned result"
            for w, peaks in zip(where.tolist(), decoded):
                result[w] = peaks
        return result

    def mz(self, positions: Positions = None) -> List[np.ndarray]:
        return [mz for mz, _ in self.peaks_at(positions)]

    def intensity(self, positions: Positions = None) -> List[np.ndarray]:
        return [intensity for _, intensity in self.peaks_at(positions)]

    def peak_series(
        self,
        positions: Positions = None,
        device: Optional[Union[str, torch.device]] = None,
    ) -> PeakSeries:
        """Peaks of the selected positions concatenated into a torch PeakSeries."""
        return PeakSeries.from_arrays(self.peaks_at(positions), device=device)

    # --- bulk processing ---
    def chunked_apply(self, fn: Callable[[np.ndarray, np.ndarray], Any], chunk_size: Optional[int] = None) -> List[Any]:
        return chunked_apply(self, fn, chunk_size)

    def iter_chunks(self, chunk_size: Optional[int] = None) -> Iterator[Tuple[np.ndarray, List[PeakArrays]]]:
        return iter_chunks(self, chunk_size)

    # --- filtering ---
    def filter(self, condition: SpecCondition) -> "Spectra":
        """
        Subset of spectra satisfying ``condition``, in their current order.

        Example:
            cond = MsLevelCondition(2) & RtRangeCondition(60, 120)
            selected = sps.filter(cond)
        """
        if not isinstance(condition, SpecCondition):
            raise TypeError("condition must be an instance of SpecCondition")
        mask = np.asarray(condition.evaluate(self), dtype=bool)
        return self.subset(np.flatnonzero(mask))

    def filter_ms_level(self, levels: Union[int, Sequence[int]]) -> "Spectra":
        return self.filter(MsLevelCondition(levels))

    def filter_rt(self, low: Optional[float] = None, high: Optional[float] = None) -> "Spectra":
        return self.filter(RtRangeCondition(low, high))

    def filter_precursor_mz(self, low: Optional[float] = None, high: Optional[float] = None) -> "Spectra":
        return self.filter(PrecursorMzRangeCondition(low, high))

    def unique_ms_levels(self) -> List[int]:
        levels = pd.Series(self.read_variable("ms_level")).dropna()
        return sorted(int(v) for v in levels.unique())

    # --- materialization ---
    def to_memory(self, device: Optional[Union[str, torch.device]] = None) -> "Spectra":
        """
        Copy this collection (overlay included) into a new in-memory store.
        Loads every spectrum's peaks; use on collections that fit in memory.
        """
        from ..io.memory_store import MemoryStore

        store = MemoryStore.from_collection(self, device=device)
        return Spectra.from_store(store)
