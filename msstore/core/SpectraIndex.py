from __future__ import annotations
import numpy as np
import pandas as pd
import torch
from typing import Iterator, List, Optional, Sequence, Tuple, Union

from .SpectraStore import SpectraStore
from .errors import IndexRangeError, StoreCompatibilityError

Positions = Union[slice, Sequence[int], np.ndarray, torch.Tensor, pd.Series, None]


def resolve_positions(positions: Positions, n: int) -> np.ndarray:
    """
    Normalize a position selector into an int64 array of positions in [0, n).

    Accepts None (all positions), a slice, an integer sequence/array/tensor,
    or a boolean mask of length n. Negative positions are not wrapped.

    Raises:
        IndexRangeError: If any position lies outside [0, n).
    """
    if positions is None:
        return np.arange(n, dtype=np.int64)
    if isinstance(positions, slice):
        return np.arange(n, dtype=np.int64)[positions]
    if isinstance(positions, torch.Tensor):
        positions = positions.detach().cpu().numpy()
    elif isinstance(positions, pd.Series):
        positions = positions.to_numpy()
    elif isinstance(positions, (int, np.integer)):
        positions = [positions]

    arr = np.asarray(positions)
    if arr.dtype == bool:
        if arr.shape != (n,):
            raise IndexRangeError(
                f"Boolean mask of length {arr.size} does not match collection length {n}"
            )
        return np.flatnonzero(arr).astype(np.int64)
    if arr.size == 0:
        return np.empty(0, dtype=np.int64)
    if not np.issubdtype(arr.dtype, np.integer):
        raise TypeError(f"Positions must be integers or a boolean mask, got dtype {arr.dtype}")
    arr = arr.astype(np.int64).reshape(-1)
    bad = (arr < 0) | (arr >= n)
    if bad.any():
        raise IndexRangeError(
            f"Position {int(arr[bad][0])} out of range for collection of length {n}"
        )
    return arr


class SpectraIndex:
    """
    Ordered sequence of stored identifiers, each tagged with the store it
    belongs to. Subsetting and combining only touch these arrays.
    """
    __slots__ = ("_ids", "_codes", "_stores")

    def __init__(
        self,
        ids: Sequence[int],
        stores: Sequence[SpectraStore],
        codes: Optional[Sequence[int]] = None,
    ):
        self._ids = np.asarray(ids, dtype=np.int64).reshape(-1)
        self._stores = tuple(stores)
        assert len(self._stores) >= 1, "an index needs at least one store"
        if codes is None:
            assert len(self._stores) == 1, "codes are required for multi-store indices"
            self._codes = np.zeros(self._ids.size, dtype=np.int16)
        else:
            self._codes = np.asarray(codes, dtype=np.int16).reshape(-1)
        assert self._codes.shape == self._ids.shape, "ids and codes must be aligned"

    @classmethod
    def from_store(cls, store: SpectraStore) -> "SpectraIndex":
        return cls(store.identifiers(), [store])

    def __len__(self) -> int:
        return self._ids.size

    def __repr__(self) -> str:
        return f"SpectraIndex(n={len(self)}, stores={len(self._stores)})"

    @property
    def ids(self) -> np.ndarray:
        return self._ids

    @property
    def codes(self) -> np.ndarray:
        return self._codes

    @property
    def stores(self) -> Tuple[SpectraStore, ...]:
        return self._stores

    def subset(self, positions: Positions) -> "SpectraIndex":
        pos = resolve_positions(positions, len(self))
        return SpectraIndex(self._ids[pos], self._stores, self._codes[pos])

    def groups(self, positions: Optional[np.ndarray] = None) -> Iterator[Tuple[SpectraStore, np.ndarray, np.ndarray]]:
        """
        Split positions by store.

        Yields:
            (store, positions, ids) where positions index into ``positions``'
            result order (i.e. 0..len(positions)-1) and ids are the stored
            identifiers at those positions.
        """
        if positions is None:
            ids, codes = self._ids, self._codes
        else:
            ids, codes = self._ids[positions], self._codes[positions]
        if len(self._stores) == 1:
            yield self._stores[0], np.arange(ids.size, dtype=np.int64), ids
            return
        for code, store in enumerate(self._stores):
            where = np.flatnonzero(codes == code)
            if where.size:
                yield store, where, ids[where]

    @staticmethod
    def _check_compatible(a: SpectraStore, b: SpectraStore):
        if a.kind != b.kind:
            raise StoreCompatibilityError(
                f"Cannot combine spectra from a '{a.kind}' store with a '{b.kind}' store"
            )
        if a.peak_format != b.peak_format:
            raise StoreCompatibilityError(
                f"Cannot combine stores with different peak formats "
                f"('{a.peak_format}' and '{b.peak_format}')"
            )
        if set(a.variables) != set(b.variables):
            raise StoreCompatibilityError("Cannot combine stores with different variables")
        if a.store_uuid == b.store_uuid:
            raise StoreCompatibilityError(
                f"Store {a.store_uuid} is opened through two different handles; "
                "identifiers would be ambiguous"
            )

    @classmethod
    def combine(cls, indices: Sequence["SpectraIndex"]) -> "SpectraIndex":
        """
        Ordered concatenation of identifier sequences.

        Raises:
            StoreCompatibilityError: If the inputs reference stores that
                cannot share one collection.
        """
        if not indices:
            raise ValueError("No indices provided for combination")

        stores: List[SpectraStore] = []
        ids_parts, codes_parts = [], []
        for index in indices:
            remap = np.empty(len(index._stores), dtype=np.int16)
            for code, store in enumerate(index._stores):
                for j, known in enumerate(stores):
                    if known is store or known.is_same(store):
                        remap[code] = j
                        break
                else:
                    for known in stores:
                        cls._check_compatible(known, store)
                    stores.append(store)
                    remap[code] = len(stores) - 1
            ids_parts.append(index._ids)
            codes_parts.append(remap[index._codes])

        return cls(np.concatenate(ids_parts), stores, np.concatenate(codes_parts))
