from __future__ import annotations
import torch
import numpy as np
from typing import overload, Iterator, Optional, Sequence, Tuple, Union

PeakArrays = Tuple[np.ndarray, np.ndarray]


class PeakSeries:
    """
    Torch arena of peaks for many spectra.

    ``arena[:, 0]`` holds m/z values and ``arena[:, 1]`` intensities; the
    peaks of arena spectrum k are ``arena[bounds[k]:bounds[k + 1]]``.
    A series is a view: ``rows`` selects which arena spectra are visible and
    in which order, so subsets and repeats share the arena.
    """
    def __init__(
        self,
        arena: torch.Tensor,
        bounds: torch.Tensor,
        rows: Optional[torch.Tensor] = None,
        device: Optional[Union[torch.device, str]] = None,
    ):
        assert isinstance(arena, torch.Tensor) and arena.ndim == 2 and arena.shape[1] == 2, \
            "arena must be a (n_peaks, 2) tensor"
        assert isinstance(bounds, torch.Tensor) and bounds.ndim == 1 and bounds.dtype == torch.int64, \
            "bounds must be a 1D int64 tensor"
        assert bounds.numel() >= 1 and int(bounds[-1]) == arena.shape[0], \
            "last bound must equal the number of peaks"

        target = torch.device(device) if device is not None else arena.device
        self._arena = arena.to(target)
        self._bounds = bounds.to(target)
        if rows is None:
            rows = torch.arange(bounds.numel() - 1, dtype=torch.int64)
        self._rows = rows.to(device=target, dtype=torch.int64)

    @classmethod
    def from_arrays(
        cls,
        peaks: Sequence[PeakArrays],
        dtype: torch.dtype = torch.float64,
        device: Optional[Union[torch.device, str]] = None,
    ) -> "PeakSeries":
        """Concatenate (mz, intensity) pairs into a new arena."""
        sizes = np.fromiter((len(mz) for mz, _ in peaks), dtype=np.int64, count=len(peaks))
        bounds = np.zeros(sizes.size + 1, dtype=np.int64)
        np.cumsum(sizes, out=bounds[1:])
        if bounds[-1] > 0:
            arena = np.empty((int(bounds[-1]), 2), dtype=np.float64)
            for k, (mz, intensity) in enumerate(peaks):
                arena[bounds[k]:bounds[k + 1], 0] = mz
                arena[bounds[k]:bounds[k + 1], 1] = intensity
            tensor = torch.from_numpy(arena).to(dtype)
        else:
            tensor = torch.empty((0, 2), dtype=dtype)
        return cls(tensor, torch.from_numpy(bounds), device=device)

    def __len__(self) -> int:
        return self._rows.numel()

    def __repr__(self):
        return f"PeakSeries(n_spectra={len(self)}, n_peaks={self.n_all_peaks}, device={self.device})"

    def __iter__(self) -> Iterator[PeakArrays]:
        for k in range(len(self)):
            yield self.arrays(k)

    @property
    def device(self) -> torch.device:
        return self._arena.device

    @property
    def length(self) -> torch.Tensor:
        """Number of peaks of every visible spectrum."""
        return (self._bounds[1:] - self._bounds[:-1])[self._rows]

    @property
    def offsets(self) -> torch.Tensor:
        """Bounds of the visible spectra within ``mz`` / ``intensity``."""
        out = torch.zeros(len(self) + 1, dtype=torch.int64, device=self.device)
        out[1:] = torch.cumsum(self.length, dim=0)
        return out

    @property
    def n_all_peaks(self) -> int:
        return int(self.length.sum())

    @property
    def n_stored_peaks(self) -> int:
        """Peaks held by the arena, visible or not."""
        return self._arena.shape[0]

    def n_peaks(self, index: int) -> int:
        k = int(self._rows[index])
        return int(self._bounds[k + 1] - self._bounds[k])

    def _gather(self) -> torch.Tensor:
        # arena row of every visible peak, in view order
        length = self.length
        if int(length.sum()) == 0:
            return self._arena[0:0]
        starts = self._bounds[:-1][self._rows]
        shift = torch.repeat_interleave(starts - self.offsets[:-1], length)
        return self._arena[torch.arange(shift.numel(), device=self.device) + shift]

    @property
    def mz(self) -> torch.Tensor:
        return self._gather()[:, 0]

    @property
    def intensity(self) -> torch.Tensor:
        return self._gather()[:, 1]

    def arrays(self, index: int) -> PeakArrays:
        """Peaks of one visible spectrum as read-only float64 numpy arrays."""
        if not 0 <= index < len(self):
            raise IndexError(f"Index {index} out of range for {len(self)} spectra")
        k = int(self._rows[index])
        segment = self._arena[int(self._bounds[k]):int(self._bounds[k + 1])].detach().cpu().numpy()
        mz = segment[:, 0].astype(np.float64)
        intensity = segment[:, 1].astype(np.float64)
        mz.flags.writeable = False
        intensity.flags.writeable = False
        return mz, intensity

    @overload
    def __getitem__(self, i: int) -> PeakArrays: ...
    @overload
    def __getitem__(self, i: Union[slice, Sequence[int], torch.Tensor]) -> "PeakSeries": ...

    def __getitem__(self, i):
        """
        - int                       → (mz, intensity) of one spectrum
        - slice / sequence / tensor → view sharing the arena
        """
        if isinstance(i, (int, np.integer)):
            return self.arrays(int(i))
        if isinstance(i, slice):
            rows = self._rows[i]
        else:
            rows = self._rows[torch.as_tensor(np.asarray(i, dtype=np.int64), device=self.device)]
        return PeakSeries(self._arena, self._bounds, rows=rows)

    def copy(self) -> "PeakSeries":
        """Compact copy holding only the visible spectra."""
        return PeakSeries(self._gather().clone(), self.offsets, device=self.device)

    def to(self, device: Union[torch.device, str]) -> "PeakSeries":
        """View of the same spectra on ``device``."""
        return PeakSeries(self._arena, self._bounds, rows=self._rows, device=device)
