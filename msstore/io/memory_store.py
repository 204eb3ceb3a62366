from __future__ import annotations
import logging
import uuid
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
import torch
from tqdm import tqdm

from ..core.constants import CORE_VARIABLES, PEAKS_COUNT, RESERVED_VARIABLES, SPECTRUM_ID
from ..core.PeakCodec import prepare_peaks
from ..core.PeakSeries import PeakSeries
from .schema import SpectrumInput, as_spectrum_input

if TYPE_CHECKING:
    from ..core.Spectra import Spectra

logger = logging.getLogger(__name__)

PeakArrays = Tuple[np.ndarray, np.ndarray]


class MemoryStore:
    """
    Spectra store held in process memory: a pandas DataFrame of spectrum
    variables and a torch PeakSeries with the concatenated peaks.

    Identifiers are 1..N in row order.
    """
    kind = "memory"
    peak_format = None

    def __init__(
        self,
        spectrum_meta: pd.DataFrame,
        peak_series: PeakSeries,
        store_uuid: Optional[str] = None,
    ):
        assert spectrum_meta.shape[0] == len(peak_series), \
            "Number of spectra in metadata must match PeakSeries"
        reserved = [c for c in RESERVED_VARIABLES if c in spectrum_meta.columns]
        self._meta = spectrum_meta.drop(columns=reserved).reset_index(drop=True)
        self._peak_series = peak_series
        self._counts = peak_series.length.cpu().numpy().astype(np.int64)
        self.store_uuid = store_uuid or uuid.uuid4().hex

    def __repr__(self) -> str:
        return (
            f"MemoryStore(n_spectra={len(self._meta)}, "
            f"n_peaks={self._peak_series.n_all_peaks}, uuid={self.store_uuid})"
        )

    def __len__(self) -> int:
        return len(self._meta)

    @property
    def variables(self) -> Tuple[str, ...]:
        return (SPECTRUM_ID,) + tuple(self._meta.columns) + (PEAKS_COUNT,)

    @property
    def peak_series(self) -> PeakSeries:
        return self._peak_series

    def is_same(self, other) -> bool:
        return other is self

    def _rows(self, ids: np.ndarray) -> np.ndarray:
        ids = np.asarray(ids, dtype=np.int64)
        bad = (ids < 1) | (ids > len(self))
        if bad.any():
            raise KeyError(f"Spectrum identifiers not in store: {ids[bad][:10].tolist()}")
        return ids - 1

    def identifiers(self) -> np.ndarray:
        return np.arange(1, len(self) + 1, dtype=np.int64)

    def fetch_variables(self, ids: np.ndarray, names: Sequence[str]) -> pd.DataFrame:
        rows = self._rows(ids)
        data = {}
        for name in names:
            if name == SPECTRUM_ID:
                data[name] = rows + 1
            elif name == PEAKS_COUNT:
                data[name] = self._counts[rows]
            elif name in self._meta.columns:
                data[name] = self._meta[name].to_numpy()[rows]
            else:
                raise KeyError(f"Variable '{name}' is not stored")
        return pd.DataFrame(data, columns=list(names))

    def fetch_peaks(self, ids: np.ndarray) -> List[PeakArrays]:
        rows = self._rows(ids)
        decoded: Dict[int, PeakArrays] = {}
        out = []
        for r in rows.tolist():
            if r not in decoded:
                decoded[r] = self._peak_series.arrays(r)
            out.append(decoded[r])
        return out

    # --- constructors ---
    @classmethod
    def from_spectra(
        cls,
        spectra: Iterable[Union[SpectrumInput, Mapping[str, Any]]],
        device: Optional[Union[str, torch.device]] = None,
        show_progress: bool = False,
    ) -> "MemoryStore":
        """
        Build a store from the same SpectrumInput source used by create_store.
        Every ``extra`` key seen becomes a variable (missing values are None).
        """
        records: List[Dict[str, Any]] = []
        peaks: List[PeakArrays] = []
        extra_names: List[str] = []
        for record in tqdm(spectra, desc="[Load] spectra", unit="spectra", disable=not show_progress):
            record = as_spectrum_input(record)
            peaks.append(prepare_peaks(record.mz, record.intensity))
            row = {name: record.value(name) for name in CORE_VARIABLES}
            for name, value in record.extra.items():
                if name in CORE_VARIABLES or name in RESERVED_VARIABLES:
                    continue
                if name not in extra_names:
                    extra_names.append(name)
                row[name] = value
            records.append(row)

        columns = list(CORE_VARIABLES) + extra_names
        meta = pd.DataFrame.from_records(records, columns=columns)
        logger.info("Loaded %d spectra into memory", len(records))
        return cls(meta, PeakSeries.from_arrays(peaks, device=device))

    @classmethod
    def from_collection(
        cls,
        spectra: "Spectra",
        chunk_size: Optional[int] = None,
        device: Optional[Union[str, torch.device]] = None,
    ) -> "MemoryStore":
        """Copy a collection's variables (overlay applied) and peaks."""
        meta = spectra.spectra_data()
        peaks: List[PeakArrays] = []
        for _, chunk in spectra.iter_chunks(chunk_size):
            peaks.extend(chunk)
        return cls(meta, PeakSeries.from_arrays(peaks, device=device))
