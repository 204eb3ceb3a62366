import os
from typing import Any, Iterator, Optional

from ..core.Spectra import Spectra
from .constants import MS_FILE_READERS
from .hdf5 import read_hdf5
from .memory_store import MemoryStore
from .mgf import read_mgf_spectra
from .msp import read_msp_spectra
from .schema import SpectrumInput, StoreOptions, create_store


def _file_type(input_file: str, file_type: Optional[str]) -> str:
    if file_type is not None:
        return file_type
    ext = os.path.splitext(input_file)[1].lower()
    if ext in MS_FILE_READERS:
        return MS_FILE_READERS[ext]
    if ext in (".h5", ".hdf5"):
        return "hdf5"
    raise ValueError("Cannot determine file type from extension. Please specify 'file_type' parameter.")


def iter_ms_file(input_file: str, *, file_type: Optional[str] = None, **reader_kwargs: Any) -> Iterator[SpectrumInput]:
    """Stream SpectrumInput records of an MGF or MSP file."""
    file_type = _file_type(input_file, file_type)
    if file_type == "mgf":
        return read_mgf_spectra(input_file, **reader_kwargs)
    elif file_type == "msp":
        return read_msp_spectra(input_file, **reader_kwargs)
    raise ValueError(f"Unsupported file type '{file_type}'. Use 'msp' or 'mgf'.")


def import_ms_file(
    connection,
    input_file: str,
    options: Optional[StoreOptions] = None,
    *,
    file_type: Optional[str] = None,
    **reader_kwargs: Any,
) -> int:
    """
    Create a store on ``connection`` from an MGF or MSP file, streaming
    records so the file is never held in memory.

    Header items other than the core variables are stored only when declared
    in ``options.extra_variables`` (e.g. ``{"title": "TEXT"}``).

    Returns:
        int: Number of spectra imported.
    """
    options = options or StoreOptions()
    reader_kwargs.setdefault("show_progress", options.show_progress)
    return create_store(connection, iter_ms_file(input_file, file_type=file_type, **reader_kwargs), options)


def load_ms_data(input_file: str, *, file_type: Optional[str] = None, **reader_kwargs: Any) -> Spectra:
    """Load an MGF, MSP or HDF5 file as a memory-backed collection."""
    file_type = _file_type(input_file, file_type)
    if file_type == "hdf5":
        return read_hdf5(input_file)
    store = MemoryStore.from_spectra(iter_ms_file(input_file, file_type=file_type, **reader_kwargs))
    return Spectra.from_store(store)
