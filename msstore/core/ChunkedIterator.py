from __future__ import annotations
import logging
import numpy as np
from typing import TYPE_CHECKING, Any, Callable, Iterator, List, Optional, Tuple

from .errors import InvalidArgumentError

if TYPE_CHECKING:
    from .Spectra import Spectra

logger = logging.getLogger(__name__)

PeakFunction = Callable[[np.ndarray, np.ndarray], Any]


def _check_chunk_size(chunk_size: Optional[int], n: int) -> int:
    if chunk_size is None:
        return max(n, 1)
    if isinstance(chunk_size, bool) or not isinstance(chunk_size, (int, np.integer)):
        raise InvalidArgumentError(f"chunk_size must be a positive integer, got {chunk_size!r}")
    if chunk_size <= 0:
        raise InvalidArgumentError(f"chunk_size must be a positive integer, got {chunk_size}")
    return int(chunk_size)


def iter_chunks(spectra: "Spectra", chunk_size: Optional[int] = None) -> Iterator[Tuple[np.ndarray, List[Tuple[np.ndarray, np.ndarray]]]]:
    """
    Iterate over contiguous runs of a collection, decoding the peaks of one
    run at a time.

    Args:
        spectra: Collection to iterate.
        chunk_size: Number of spectra per run. None reads the whole
            collection in one run; the caller is responsible for choosing a
            bounded value on large collections.

    Yields:
        (positions, peaks) with positions the logical positions of the run
        and peaks the list of (mz, intensity) pairs for them.

    Raises:
        InvalidArgumentError: If chunk_size is not a positive integer.
    """
    n = len(spectra)
    size = _check_chunk_size(chunk_size, n)
    for start in range(0, n, size):
        positions = np.arange(start, min(start + size, n), dtype=np.int64)
        logger.debug("Decoding peaks of positions [%d, %d)", start, start + positions.size)
        yield positions, spectra.peaks_at(positions)


def chunked_apply(spectra: "Spectra", fn: PeakFunction, chunk_size: Optional[int] = None) -> List[Any]:
    """
    Apply ``fn(mz, intensity)`` to every spectrum of a collection in bounded
    batches, returning one result per logical position in original order.

    At most ``chunk_size`` decoded spectra are resident at once. The result
    is identical for every chunk size.

    Example:
        n_peaks = chunked_apply(spectra, lambda mz, inten: mz.size, chunk_size=1000)
    """
    n = len(spectra)
    results: List[Any] = [None] * n
    for positions, peaks in iter_chunks(spectra, chunk_size):
        for pos, (mz, intensity) in zip(positions.tolist(), peaks):
            results[pos] = fn(mz, intensity)
        del peaks
    return results
