import logging

from .core.constants import PeakFormat, Polarity
from .core.errors import (
    MsStoreError,
    IndexRangeError,
    LengthMismatchError,
    ReadOnlyViolationError,
    DataCorruptionError,
    StoreCompatibilityError,
    StorageIOError,
    AlreadyInitializedError,
    InvalidArgumentError,
)
from .core.Spectra import Spectra
from .core.ChunkedIterator import chunked_apply
from .core.SpecCondition import (
    MsLevelCondition,
    RtRangeCondition,
    PrecursorMzRangeCondition,
    DataOriginCondition,
    PolarityCondition,
)
from .io.schema import StoreOptions, SpectrumInput, create_store
from .io.sql_store import SqlStore, open_collection
from .io.memory_store import MemoryStore
from .io.hdf5 import write_hdf5, read_hdf5
from .io.mgf import read_mgf_spectra
from .io.msp import read_msp_spectra
from .io.prepare_ms_data import import_ms_file, load_ms_data
from .utils.inspect import print_store_structure

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "create_store",
    "open_collection",
    "StoreOptions",
    "SpectrumInput",
    "Spectra",
    "SqlStore",
    "MemoryStore",
    "chunked_apply",
    "PeakFormat",
    "Polarity",
    "MsStoreError",
    "IndexRangeError",
    "LengthMismatchError",
    "ReadOnlyViolationError",
    "DataCorruptionError",
    "StoreCompatibilityError",
    "StorageIOError",
    "AlreadyInitializedError",
    "InvalidArgumentError",
    "MsLevelCondition",
    "RtRangeCondition",
    "PrecursorMzRangeCondition",
    "DataOriginCondition",
    "PolarityCondition",
    "read_mgf_spectra",
    "read_msp_spectra",
    "import_ms_file",
    "load_ms_data",
    "write_hdf5",
    "read_hdf5",
    "print_store_structure",
]
