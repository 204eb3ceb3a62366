from __future__ import annotations
import io
import logging
import os
from datetime import datetime, timezone
from typing import List, Optional, Union

import h5py
import numpy as np
import pandas as pd
import pyarrow.parquet as pq
import torch

from ..core.constants import FORMAT_VERSION, RESERVED_VARIABLES
from ..core.PeakSeries import PeakSeries
from ..core.Spectra import Spectra
from .memory_store import MemoryStore

logger = logging.getLogger(__name__)

# Keep a margin under Arrow's ~2GB cap
_ARROW_BYTES_LIMIT = 2_147_483_646
_MAX_PART_BYTES = 1_000_000_000


# -------------------------------------------------
# Parquet <-> bytes helpers
# -------------------------------------------------
def _dump_parquet_to_bytes(df: pd.DataFrame) -> bytes:
    buf = io.BytesIO()
    df.to_parquet(buf, engine="pyarrow")
    return buf.getvalue()


def _read_parquet_from_bytes(blob: bytes) -> pd.DataFrame:
    return pd.read_parquet(io.BytesIO(blob), engine="pyarrow")


def _parquet_uncompressed_bytes(blob: bytes) -> int:
    """Uncompressed size from the Parquet footer, without decoding the table."""
    md = pq.ParquetFile(io.BytesIO(blob)).metadata
    return int(sum(md.row_group(i).total_byte_size for i in range(md.num_row_groups)))


# -------------------------------------------------
# HDF5 bytes I/O helpers (uint8 1D datasets)
# -------------------------------------------------
def _save_bytes_h5(grp: h5py.Group, name: str, blob: bytes, compression: Optional[str] = "gzip") -> None:
    if name in grp:
        del grp[name]
    arr = np.frombuffer(memoryview(blob), dtype=np.uint8)
    kwargs = {"chunks": True} if arr.size else {}
    if compression is not None and arr.size:
        kwargs["compression"] = compression
    ds = grp.create_dataset(name, data=arr, **kwargs)
    ds.attrs["nbytes"] = int(len(blob))


def _load_bytes_h5(grp: h5py.Group, name: str) -> bytes:
    if name not in grp:
        raise KeyError(f"Dataset '{name}' not found in group '{grp.name}'")
    return grp[name][...].tobytes()


def _save_parquet_h5(grp: h5py.Group, name: str, df: pd.DataFrame, max_part_bytes: int = _MAX_PART_BYTES) -> None:
    """
    Save a DataFrame as Parquet bytes. Blobs above ``max_part_bytes`` are
    split by rows into name__part_000, name__part_001, ...
    """
    blob = _dump_parquet_to_bytes(df)
    if max(len(blob), _parquet_uncompressed_bytes(blob)) <= max_part_bytes:
        _save_bytes_h5(grp, name, blob)
        grp.attrs[f"{name}__num_parts"] = 1
        return

    n = len(df)
    rows = max(1, n // 2)
    parts: List[bytes] = []
    start = 0
    while start < n:
        end = min(n, start + rows)
        part = _dump_parquet_to_bytes(df.iloc[start:end].reset_index(drop=True))
        if max(len(part), _parquet_uncompressed_bytes(part)) > max_part_bytes:
            if rows == 1:
                raise ValueError(
                    f"Even 1 row Parquet exceeds max_part_bytes={max_part_bytes}. "
                    "A cell may contain an extremely large object."
                )
            rows = max(1, rows // 2)
            continue
        parts.append(part)
        start = end

    for i, part in enumerate(parts):
        _save_bytes_h5(grp, f"{name}__part_{i:03d}", part)
    grp.attrs[f"{name}__num_parts"] = len(parts)


def _load_parquet_h5(grp: h5py.Group, name: str) -> pd.DataFrame:
    num_parts = int(grp.attrs.get(f"{name}__num_parts", 1))
    if num_parts > 1:
        return pd.concat(
            [_read_parquet_from_bytes(_load_bytes_h5(grp, f"{name}__part_{i:03d}")) for i in range(num_parts)],
            ignore_index=True,
        )
    blob = _load_bytes_h5(grp, name)
    if len(blob) > _ARROW_BYTES_LIMIT:
        raise ValueError(
            f"'{name}' is stored as a single Parquet blob of {len(blob)} bytes (> ~2GB). "
            "Cannot load with pyarrow."
        )
    return _read_parquet_from_bytes(blob)


# -------------------------------------------------
# Collection export / import
# -------------------------------------------------
def write_hdf5(spectra: Spectra, path: str, chunk_size: Optional[int] = 10_000) -> None:
    """
    Save a collection (overlay values included) into a self-contained HDF5 file.

    Peaks are appended chunk by chunk, so at most ``chunk_size`` decoded
    spectra are resident while writing.

    Layout:
        /metadata                     attrs: format_version, created_at, n_spectra
        /spectra/spectrum_meta_parquet
        /spectra/peaks/data           float64 [n_peaks, 2] (mz, intensity)
        /spectra/peaks/offsets        int64 [n_spectra + 1]
    """
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)

    meta = spectra.spectra_data()
    meta = meta.drop(columns=[c for c in RESERVED_VARIABLES if c in meta.columns])

    with h5py.File(path, "w") as f:
        meta_grp = f.create_group("metadata")
        meta_grp.attrs["format_version"] = FORMAT_VERSION
        meta_grp.attrs["created_at"] = datetime.now(timezone.utc).isoformat()
        meta_grp.attrs["n_spectra"] = len(spectra)

        grp = f.create_group("spectra")
        _save_parquet_h5(grp, "spectrum_meta_parquet", meta)

        peaks_grp = grp.create_group("peaks")
        data = peaks_grp.create_dataset("data", shape=(0, 2), maxshape=(None, 2), dtype=np.float64, chunks=True)
        offsets = [0]
        for positions, chunk in spectra.iter_chunks(chunk_size):
            n_new = sum(mz.size for mz, _ in chunk)
            if n_new:
                start = data.shape[0]
                data.resize(start + n_new, axis=0)
                data[start:start + n_new, 0] = np.concatenate([mz for mz, _ in chunk])
                data[start:start + n_new, 1] = np.concatenate([inten for _, inten in chunk])
            for mz, _ in chunk:
                offsets.append(offsets[-1] + mz.size)
            logger.debug("Wrote peaks of %d spectra to %s", positions.size, path)
        peaks_grp.create_dataset("offsets", data=np.asarray(offsets, dtype=np.int64))

    logger.info("Saved %d spectra to %s", len(spectra), path)


def read_hdf5(path: str, device: Optional[Union[str, torch.device]] = None) -> Spectra:
    """Load a file written by write_hdf5 as a memory-backed collection."""
    with h5py.File(path, "r") as f:
        if "spectra" not in f:
            raise KeyError(f"No '/spectra' group found in {path}")
        grp = f["spectra"]
        meta = _load_parquet_h5(grp, "spectrum_meta_parquet")
        data = torch.from_numpy(grp["peaks"]["data"][...])
        offsets = torch.from_numpy(grp["peaks"]["offsets"][...].astype(np.int64))

    store = MemoryStore(meta, PeakSeries(data, offsets, device=device))
    logger.info("Loaded %d spectra from %s", len(store), path)
    return Spectra.from_store(store)
