from __future__ import annotations
import struct
import numpy as np
from typing import Dict, Iterator, Optional, Sequence, Tuple, Union

from .constants import PeakFormat, INTENSITY_DTYPES
from .errors import DataCorruptionError

PeakArrays = Tuple[np.ndarray, np.ndarray]


def _readonly(*arrays: np.ndarray) -> Tuple[np.ndarray, ...]:
    for a in arrays:
        a.flags.writeable = False
    return arrays


def _empty_peaks(intensity_dtype: np.dtype) -> PeakArrays:
    return _readonly(np.empty(0, dtype=np.float64), np.empty(0, dtype=intensity_dtype))


def prepare_peaks(mz: Sequence[float], intensity: Sequence[float]) -> PeakArrays:
    """
    Normalize a raw peak pair for import.

    Converts both arrays to float64, checks they have equal length and
    non-negative intensities, and sorts peaks by ascending m/z (stable).

    Raises:
        ValueError: On shape mismatch or negative intensities.
    """
    mz = np.asarray(mz, dtype=np.float64).reshape(-1)
    intensity = np.asarray(intensity, dtype=np.float64).reshape(-1)
    if mz.shape != intensity.shape:
        raise ValueError(
            f"m/z and intensity arrays differ in length ({mz.size} != {intensity.size})"
        )
    if np.any(intensity < 0):
        raise ValueError("Intensity values must be non-negative")
    if mz.size > 1 and np.any(np.diff(mz) < 0):
        order = np.argsort(mz, kind="stable")
        mz = mz[order]
        intensity = intensity[order]
    return mz, intensity


class PackedPeakCodec:
    """
    Single-blob encoding of a peak pair.

    Layout (little endian):
        header      : uint64 peak count, uint8 intensity item size (4 or 8)
        m/z         : count x float64
        intensity   : count x float32/float64
    """
    peak_format = PeakFormat.PACKED
    _HEADER = struct.Struct("<QB")

    def __init__(self, intensity_dtype: str = "float64"):
        if intensity_dtype not in INTENSITY_DTYPES:
            raise ValueError(f"Unsupported intensity dtype '{intensity_dtype}'")
        self.intensity_dtype = np.dtype(intensity_dtype).newbyteorder("<")
        self._mz_dtype = np.dtype("<f8")

    def __repr__(self) -> str:
        return f"PackedPeakCodec(intensity_dtype={self.intensity_dtype.name})"

    def encode(self, mz: np.ndarray, intensity: np.ndarray) -> bytes:
        mz = np.ascontiguousarray(mz, dtype=self._mz_dtype)
        intensity = np.ascontiguousarray(intensity, dtype=self.intensity_dtype)
        assert mz.ndim == 1 and mz.shape == intensity.shape, "m/z and intensity must be 1D of equal length"
        header = self._HEADER.pack(mz.size, self.intensity_dtype.itemsize)
        return header + mz.tobytes() + intensity.tobytes()

    def decode(self, payload: Union[bytes, bytearray, memoryview], peaks_count: Optional[int] = None) -> PeakArrays:
        """
        Decode a payload into (mz, intensity).

        Args:
            payload: Blob produced by encode().
            peaks_count: Expected number of peaks (as recorded with the spectrum).

        Raises:
            DataCorruptionError: If the header, the payload length and the
                expected peaks count are not consistent.
        """
        if payload is None:
            raise DataCorruptionError("Missing peak payload")
        buf = memoryview(payload).cast("B")
        if buf.nbytes < self._HEADER.size:
            raise DataCorruptionError(
                f"Peak payload of {buf.nbytes} bytes is shorter than its header"
            )
        count, itemsize = self._HEADER.unpack_from(buf, 0)
        if itemsize != self.intensity_dtype.itemsize:
            raise DataCorruptionError(
                f"Payload intensity item size {itemsize} does not match store "
                f"item size {self.intensity_dtype.itemsize}"
            )
        expected = self._HEADER.size + count * (self._mz_dtype.itemsize + itemsize)
        if buf.nbytes != expected:
            raise DataCorruptionError(
                f"Payload header declares {count} peaks ({expected} bytes) "
                f"but payload holds {buf.nbytes} bytes"
            )
        if peaks_count is not None and count != peaks_count:
            raise DataCorruptionError(
                f"Payload holds {count} peaks but peaks_count is {peaks_count}"
            )
        if count == 0:
            return _empty_peaks(self.intensity_dtype)

        offset = self._HEADER.size
        mz = np.frombuffer(buf, dtype=self._mz_dtype, count=count, offset=offset)
        offset += count * self._mz_dtype.itemsize
        intensity = np.frombuffer(buf, dtype=self.intensity_dtype, count=count, offset=offset)
        # frombuffer over bytes is already read-only; copy so the blob can be released
        return _readonly(mz.astype(np.float64), intensity.astype(self.intensity_dtype.newbyteorder("=")))


class ExplodedPeakCodec:
    """
    One-row-per-peak encoding: (spectrum_id, peak_index, mz, intensity).

    Rows are written directly by the import; decoding groups rows by
    spectrum, orders them by peak index and checks the indices form a
    contiguous 0..count-1 run.
    """
    peak_format = PeakFormat.EXPLODED

    def __init__(self, intensity_dtype: str = "float64"):
        if intensity_dtype not in INTENSITY_DTYPES:
            raise ValueError(f"Unsupported intensity dtype '{intensity_dtype}'")
        self.intensity_dtype = np.dtype(intensity_dtype)

    def __repr__(self) -> str:
        return f"ExplodedPeakCodec(intensity_dtype={self.intensity_dtype.name})"

    def encode(self, mz: np.ndarray, intensity: np.ndarray) -> None:
        return None

    @staticmethod
    def rows(spectrum_id: int, mz: np.ndarray, intensity: np.ndarray) -> Iterator[Tuple[int, int, float, float]]:
        for i, (m, v) in enumerate(zip(mz.tolist(), intensity.tolist())):
            yield (spectrum_id, i, m, v)

    def decode(
        self,
        peak_index: Sequence[int],
        mz: Sequence[float],
        intensity: Sequence[float],
        peaks_count: Optional[int] = None,
    ) -> PeakArrays:
        """Decode the rows of a single spectrum."""
        peak_index = np.asarray(peak_index, dtype=np.int64)
        ids = np.zeros(peak_index.size, dtype=np.int64)
        counts = None if peaks_count is None else {0: peaks_count}
        decoded = self.decode_many(ids, peak_index, mz, intensity, peaks_counts=counts)
        if 0 not in decoded:
            return _empty_peaks(self.intensity_dtype)
        return decoded[0]

    def decode_many(
        self,
        spectrum_ids: Sequence[int],
        peak_index: Sequence[int],
        mz: Sequence[float],
        intensity: Sequence[float],
        peaks_counts: Optional[Dict[int, int]] = None,
    ) -> Dict[int, PeakArrays]:
        """
        Decode the rows of many spectra at once.

        Args:
            spectrum_ids, peak_index, mz, intensity: Row-aligned columns, in any order.
            peaks_counts: Optional mapping spectrum_id -> recorded peaks count.
                Every id listed here gets an entry in the result, including
                spectra without rows (which must have a count of 0).

        Returns:
            Dict mapping spectrum_id -> (mz, intensity).

        Raises:
            DataCorruptionError: On gaps or repeats in peak indices, or when
                the row count disagrees with the recorded peaks count.
        """
        sid = np.asarray(spectrum_ids, dtype=np.int64)
        pidx = np.asarray(peak_index, dtype=np.int64)
        mz = np.asarray(mz, dtype=np.float64)
        intensity = np.asarray(intensity, dtype=np.float64)
        assert sid.shape == pidx.shape == mz.shape == intensity.shape, "row columns must be aligned"

        order = np.lexsort((pidx, sid))
        sid, pidx, mz, intensity = sid[order], pidx[order], mz[order], intensity[order]

        result: Dict[int, PeakArrays] = {}
        if sid.size > 0:
            starts = np.flatnonzero(np.r_[True, sid[1:] != sid[:-1]])
            ends = np.r_[starts[1:], sid.size]
            for s, e in zip(starts.tolist(), ends.tolist()):
                spectrum_id = int(sid[s])
                run = pidx[s:e]
                if not np.array_equal(run, np.arange(e - s)):
                    raise DataCorruptionError(
                        f"Peak indices of spectrum {spectrum_id} are not a contiguous "
                        f"0..{e - s - 1} run"
                    )
                result[spectrum_id] = _readonly(
                    mz[s:e].copy(), intensity[s:e].astype(self.intensity_dtype)
                )

        if peaks_counts is not None:
            for spectrum_id, count in peaks_counts.items():
                decoded = result.get(spectrum_id)
                n = 0 if decoded is None else decoded[0].size
                if n != count:
                    raise DataCorruptionError(
                        f"Spectrum {spectrum_id} has {n} peak rows but peaks_count is {count}"
                    )
                if decoded is None:
                    result[spectrum_id] = _empty_peaks(self.intensity_dtype)
        return result


def get_codec(peak_format: Union[PeakFormat, str], intensity_dtype: str = "float64"):
    peak_format = PeakFormat(peak_format)
    if peak_format == PeakFormat.PACKED:
        return PackedPeakCodec(intensity_dtype)
    elif peak_format == PeakFormat.EXPLODED:
        return ExplodedPeakCodec(intensity_dtype)
    else:
        raise ValueError(f"Unsupported peak format '{peak_format}'")
