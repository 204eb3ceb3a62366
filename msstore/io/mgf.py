from typing import Iterator, Optional

from .IOContext import ReaderContext, parse_peak_line
from .constants import ErrorLogLevel, DEFAULT_MS_LEVEL
from .schema import SpectrumInput


def read_mgf_spectra(filepath: str,
                     encoding: str = "utf-8",
                     error_log_level: ErrorLogLevel = ErrorLogLevel.NONE,
                     error_log_file: Optional[str] = None,
                     show_progress: bool = False,
                     ms_level: int = DEFAULT_MS_LEVEL,
                     ) -> Iterator[SpectrumInput]:
    """
    Stream the spectra of an MGF (Mascot Generic Format) file.

    Records are yielded one at a time, so a file of any size can be passed
    straight to create_store. Records with unparsable lines are skipped.

    Args:
        filepath (str): Path to MGF file.
        encoding (str): File encoding.
        error_log_level (ErrorLogLevel): What to write to the error log for skipped records.
        error_log_file (str): Error log path (default: next to the input file).
        show_progress (bool): Display tqdm progress bar.
        ms_level (int): MS level of records without an MSLEVEL item.

    Yields:
        SpectrumInput
    """
    mgf_reader = ReaderContext(
        filepath,
        "mgf",
        error_log_level=error_log_level,
        error_log_file=error_log_file,
        encoding=encoding,
        show_progress=show_progress,
        ms_level=ms_level,
    )

    try:
        with open(filepath, "r", encoding=encoding) as f:
            in_ions = False
            for line in f:
                mgf_reader.update(line)
                stripped = line.strip()
                try:
                    if not stripped or stripped.startswith(("#", ";", "!")):
                        continue

                    # --- MGF block delimiters ---
                    upper = stripped.upper()
                    if upper.startswith("BEGIN IONS"):
                        in_ions = True
                    elif upper.startswith("END IONS"):
                        in_ions = False
                        record = mgf_reader.finish_record()
                        if record is not None:
                            yield record

                    # --- Inside an IONS block ---
                    elif not in_ions:
                        # global parameters before the first block are not spectra
                        continue
                    elif "=" in stripped and not stripped[0].isdigit():
                        k, v = stripped.split("=", 1)
                        mgf_reader.add_meta(k, v)
                    else:
                        items = stripped.split()
                        if len(items) >= 2 and items[0].lower() == "mz" and items[1].lower() == "intensity":
                            continue
                        for mz, intensity in parse_peak_line(stripped):
                            mgf_reader.add_peak(mz, intensity)

                except ValueError as e:
                    mgf_reader.record_error(str(e), line_text=line)

        # unterminated last block
        if in_ions:
            record = mgf_reader.finish_record()
            if record is not None:
                yield record
    finally:
        mgf_reader.close()
