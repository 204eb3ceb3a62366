from typing import List, Optional, Protocol, Sequence, Tuple, runtime_checkable

import numpy as np
import pandas as pd


@runtime_checkable
class SpectraStore(Protocol):
    """
    Capability interface of a spectra arena.

    A store owns immutable spectra keyed by stable integer identifiers.
    Collections (``Spectra``) only hold identifier sequences into one or
    more stores and resolve variables and peaks through these methods.
    Implementations: ``msstore.io.sql_store.SqlStore`` and
    ``msstore.io.memory_store.MemoryStore``.
    """

    kind: str
    store_uuid: str

    @property
    def peak_format(self) -> Optional[str]:
        ...

    @property
    def variables(self) -> Tuple[str, ...]:
        """Stored variable names, including spectrum_id and peaks_count."""
        ...

    def identifiers(self) -> np.ndarray:
        """All stored identifiers in ascending order."""
        ...

    def fetch_variables(self, ids: np.ndarray, names: Sequence[str]) -> pd.DataFrame:
        """Values of ``names`` for ``ids``, row-aligned with ``ids`` (duplicates allowed)."""
        ...

    def fetch_peaks(self, ids: np.ndarray) -> List[Tuple[np.ndarray, np.ndarray]]:
        """Decoded (mz, intensity) pairs aligned with ``ids``."""
        ...

    def is_same(self, other: "SpectraStore") -> bool:
        """True if ``other`` is a handle onto the same identifier space through the same connection."""
        ...
