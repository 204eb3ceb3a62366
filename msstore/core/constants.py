from enum import Enum, IntEnum
from typing import Dict


class PeakFormat(str, Enum):
    PACKED = "packed"       # one binary blob per spectrum
    EXPLODED = "exploded"   # one row per peak


class Polarity(IntEnum):
    NEGATIVE = 0
    POSITIVE = 1
    UNKNOWN = -1


FORMAT_VERSION = "1"

SPECTRUM_ID = "spectrum_id"
PEAKS_COUNT = "peaks_count"
PEAK_VARIABLES = ("mz", "intensity")

# Storage-derived variables, never shadowed by an overlay
RESERVED_VARIABLES = (SPECTRUM_ID, PEAKS_COUNT)

# Core spectrum variables and their SQL column types (stored in this order)
CORE_VARIABLES: Dict[str, str] = {
    "ms_level": "INTEGER",
    "rtime": "REAL",
    "acquisition_num": "INTEGER",
    "scan_index": "INTEGER",
    "data_origin": "TEXT",
    "polarity": "INTEGER",
    "precursor_mz": "REAL",
    "precursor_intensity": "REAL",
    "precursor_charge": "INTEGER",
    "collision_energy": "REAL",
    "centroided": "INTEGER",
}

SQL_TYPES = ("INTEGER", "REAL", "TEXT")

# Column DDL per SQL type; REAL is a 4-byte float on some engines (PostgreSQL, DuckDB)
COLUMN_DDL: Dict[str, str] = {
    "INTEGER": "INTEGER",
    "REAL": "DOUBLE PRECISION",
    "TEXT": "TEXT",
}

INTENSITY_DTYPES = ("float64", "float32")
