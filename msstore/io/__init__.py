from .constants import ErrorLogLevel
from .schema import StoreOptions, SpectrumInput, StoreSettings, create_store
from .sql_store import SqlStore, open_collection
from .memory_store import MemoryStore
from .hdf5 import write_hdf5, read_hdf5
from .mgf import read_mgf_spectra
from .msp import read_msp_spectra
from .prepare_ms_data import import_ms_file, load_ms_data

__all__ = [
    "ErrorLogLevel",
    "StoreOptions",
    "SpectrumInput",
    "StoreSettings",
    "create_store",
    "SqlStore",
    "open_collection",
    "MemoryStore",
    "write_hdf5",
    "read_hdf5",
    "read_mgf_spectra",
    "read_msp_spectra",
    "import_ms_file",
    "load_ms_data",
]
