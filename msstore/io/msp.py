from typing import Iterator, Optional

from .IOContext import ReaderContext, parse_peak_line
from .constants import ErrorLogLevel, DEFAULT_MS_LEVEL
from .schema import SpectrumInput


def read_msp_spectra(filepath: str,
                     encoding: str = "utf-8",
                     error_log_level: ErrorLogLevel = ErrorLogLevel.NONE,
                     error_log_file: Optional[str] = None,
                     show_progress: bool = False,
                     ms_level: int = DEFAULT_MS_LEVEL,
                     ) -> Iterator[SpectrumInput]:
    """
    Stream the spectra of an MSP (NIST library) file.

    A record is a block of "Key: value" lines followed, after its
    "Num Peaks" line, by peak lines; blank lines separate records.
    Records with unparsable lines are skipped.

    Yields:
        SpectrumInput
    """
    msp_reader = ReaderContext(
        filepath,
        "msp",
        error_log_level=error_log_level,
        error_log_file=error_log_file,
        encoding=encoding,
        show_progress=show_progress,
        ms_level=ms_level,
    )

    try:
        with open(filepath, "r", encoding=encoding) as f:
            peak_flag = False
            for line in f:
                msp_reader.update(line)
                stripped = line.strip()
                try:
                    if not stripped:
                        if msp_reader.meta or peak_flag:
                            record = msp_reader.finish_record()
                            peak_flag = False
                            if record is not None:
                                yield record
                        continue

                    if peak_flag:
                        items = stripped.split()
                        if len(items) >= 2 and items[0].lower() == "mz" and items[1].lower() == "intensity":
                            continue
                        for mz, intensity in parse_peak_line(stripped):
                            msp_reader.add_peak(mz, intensity)
                    else:
                        if ":" not in stripped:
                            raise ValueError(f"Error: Metadata line '{stripped}' does not contain ':' character.")
                        k, v = stripped.split(":", 1)
                        parsed_k, _ = msp_reader.add_meta(k, v)
                        if parsed_k == "num_peaks":
                            peak_flag = True

                except ValueError as e:
                    msp_reader.record_error(str(e), line_text=line)

        record = msp_reader.finish_record()
        if record is not None:
            yield record
    finally:
        msp_reader.close()
