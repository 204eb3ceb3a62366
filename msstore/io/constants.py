from enum import IntEnum

class ErrorLogLevel(IntEnum):
    NONE = 0    # Do not write any error log
    BASIC = 1   # Write line number and error message only
    DETAIL = 2  # Write BASIC info + record content that caused the error

# MGF and MSP hold fragment spectra unless a record says otherwise
DEFAULT_MS_LEVEL = 2

MS_FILE_READERS = {
    ".mgf": "mgf",
    ".msp": "msp",
}
