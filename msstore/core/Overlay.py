from __future__ import annotations
import numpy as np
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence

from .constants import RESERVED_VARIABLES, PEAK_VARIABLES
from .errors import LengthMismatchError, ReadOnlyViolationError


@dataclass(frozen=True)
class OverlayEntry:
    """
    Shadow values of one variable.

    ``mask`` is None when every position is defined; otherwise positions
    where it is False fall through to the stored values.
    """
    values: np.ndarray
    mask: Optional[np.ndarray] = None

    @property
    def is_partial(self) -> bool:
        return self.mask is not None


def _as_vector(values) -> np.ndarray:
    if isinstance(values, np.ndarray):
        return values.copy()
    if hasattr(values, "to_numpy"):
        return values.to_numpy(copy=True)
    if hasattr(values, "detach"):
        return values.detach().cpu().numpy().copy()
    values = list(values)
    try:
        arr = np.asarray(values)
    except ValueError:
        arr = None
    if arr is None or arr.ndim != 1:
        # ragged or nested values are kept as objects
        arr = np.empty(len(values), dtype=object)
        for i, value in enumerate(values):
            arr[i] = value
    return arr


class Overlay:
    """
    In-memory, per-collection mapping from variable name to a dense vector
    aligned with the collection's logical positions. Never written back
    to storage.
    """

    def __init__(self, length: int, entries: Optional[Dict[str, OverlayEntry]] = None):
        self._length = int(length)
        self._entries: Dict[str, OverlayEntry] = dict(entries or {})

    def __repr__(self) -> str:
        return f"Overlay(length={self._length}, names={self.names})"

    def __len__(self) -> int:
        return self._length

    def __contains__(self, name: str) -> bool:
        return name in self._entries

    @property
    def names(self) -> List[str]:
        return list(self._entries)

    def get(self, name: str) -> Optional[OverlayEntry]:
        return self._entries.get(name)

    def write(self, name: str, values) -> None:
        """
        Replace (or create) the overlay entry ``name`` wholesale.

        Raises:
            ReadOnlyViolationError: For storage-derived variables and peak data.
            LengthMismatchError: If the number of values differs from the collection length.
        """
        if name in RESERVED_VARIABLES:
            raise ReadOnlyViolationError(f"'{name}' is derived from storage and cannot be written")
        if name in PEAK_VARIABLES:
            raise ReadOnlyViolationError(f"Peak data '{name}' is immutable")
        if (
            isinstance(values, (str, bytes))
            or not hasattr(values, "__len__")
            or getattr(values, "ndim", 1) == 0
        ):
            raise LengthMismatchError(
                f"Expected {self._length} values for '{name}', got a scalar"
            )
        vector = _as_vector(values)
        if vector.shape[0] != self._length:
            raise LengthMismatchError(
                f"Expected {self._length} values for '{name}', got {vector.shape[0]}"
            )
        self._entries[name] = OverlayEntry(vector)

    def remove(self, name: str) -> bool:
        """Drop the entry for ``name``. Returns True if one existed."""
        return self._entries.pop(name, None) is not None

    def copy(self) -> "Overlay":
        return Overlay(self._length, self._entries)

    def subset(self, positions: np.ndarray) -> "Overlay":
        """Re-project every entry through ``positions``."""
        entries = {
            name: OverlayEntry(
                entry.values[positions],
                None if entry.mask is None else entry.mask[positions],
            )
            for name, entry in self._entries.items()
        }
        return Overlay(len(positions), entries)

    @classmethod
    def concat(cls, overlays: Sequence["Overlay"]) -> "Overlay":
        """
        Concatenate overlays of consecutive collections.

        Entries present in every input are concatenated. Entries present
        in only some inputs keep their values for those sub-ranges and get
        a mask; the other sub-ranges fall through to storage on read.
        """
        lengths = [len(o) for o in overlays]
        names: List[str] = []
        for o in overlays:
            for name in o.names:
                if name not in names:
                    names.append(name)

        entries: Dict[str, OverlayEntry] = {}
        for name in names:
            parts: List[np.ndarray] = []
            masks: List[np.ndarray] = []
            partial = False
            for o, n in zip(overlays, lengths):
                entry = o.get(name)
                if entry is None:
                    partial = True
                    filler = np.empty(n, dtype=object)
                    filler[:] = None
                    parts.append(filler)
                    masks.append(np.zeros(n, dtype=bool))
                else:
                    parts.append(entry.values)
                    masks.append(np.ones(n, dtype=bool) if entry.mask is None else entry.mask)
                    partial = partial or entry.mask is not None
            values = _concat_values(parts)
            entries[name] = OverlayEntry(values, np.concatenate(masks) if partial else None)
        return cls(sum(lengths), entries)


def _concat_values(parts: Iterable[np.ndarray]) -> np.ndarray:
    parts = list(parts)
    kinds = {p.dtype.kind for p in parts}
    # text never promotes with numbers
    if "O" not in kinds and (kinds <= {"U", "S"} or not kinds & {"U", "S"}):
        try:
            np.result_type(*parts)
        except TypeError:
            pass
        else:
            return np.concatenate(parts)
    out = np.empty(sum(len(p) for p in parts), dtype=object)
    i = 0
    for p in parts:
        for value in p:
            out[i] = value
            i += 1
    return out
