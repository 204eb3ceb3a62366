import logging
import os
import re
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from tqdm import tqdm

from ..core.constants import CORE_VARIABLES, Polarity
from .ItemParser import ItemParser
from .constants import ErrorLogLevel, DEFAULT_MS_LEVEL
from .schema import SpectrumInput

logger = logging.getLogger(__name__)

_QUOTED = re.compile(r"\"[^\"]*\"|'[^']*'")


def default_error_log_path(file_path: str) -> str:
    """
    Timestamped log path next to ``file_path`` that does not exist yet,
    e.g. ``data_error_20240101120000.txt`` or ``..._2.txt`` on collision.
    """
    stem = f"{os.path.splitext(file_path)[0]}_error_{datetime.now():%Y%m%d%H%M%S}"
    candidate, n = f"{stem}.txt", 1
    while os.path.exists(candidate):
        candidate = f"{stem}_{n}.txt"
        n += 1
    return candidate


class ReaderContext:
    """
    Per-file state of a streaming MGF/MSP reader.

    Lines are fed with ``update``; header items and peaks of the current
    record are collected with ``add_meta`` / ``add_peak``; ``finish_record``
    turns them into a SpectrumInput, or skips the record when a line of it
    failed to parse (writing the error log according to ``error_log_level``).
    """

    def __init__(
        self,
        file_path: str,
        file_type_name: str,
        error_log_level: ErrorLogLevel = ErrorLogLevel.NONE,
        error_log_file: Optional[str] = None,
        encoding: str = "utf-8",
        show_progress: bool = False,
        ms_level: int = DEFAULT_MS_LEVEL,
    ):
        if error_log_file is not None:
            log_dir = os.path.dirname(error_log_file)
            if log_dir and not os.path.isdir(log_dir):
                raise ValueError(f"Error: Directory '{log_dir}' does not exist.")

        self.file_path = file_path
        self.file_type_name = file_type_name
        self.encoding = encoding
        self.error_log_level = error_log_level
        self.error_log_path = error_log_file or default_error_log_path(file_path)
        self.default_ms_level = ms_level
        self.data_origin = os.path.basename(file_path)
        self.parser = ItemParser()
        self.source_keys: Dict[str, str] = {}

        self.n_lines = 0
        self.n_bytes = 0
        self.n_records = 0
        self.n_parsed = 0
        self._start_record()

        self.progress = None
        if show_progress:
            self.progress = tqdm(
                total=os.path.getsize(file_path),
                desc=f"[Reading {file_type_name}]{self.data_origin}",
                mininterval=0.5,
            )

    def close(self):
        if self.progress is not None:
            self.progress.close()
        logger.info(
            "Read %d/%d %s records from %s",
            self.n_parsed, self.n_records, self.file_type_name, self.file_path,
        )

    def update(self, line: str):
        self.n_lines += 1
        self.raw_lines.append(line)

    def _start_record(self):
        self.meta: Dict[str, Any] = {}
        self.peaks: Tuple[List[float], List[float]] = ([], [])
        self.raw_lines: List[str] = []
        self.first_line: Optional[int] = None
        self.errors: List[str] = []

    def _mark_start(self):
        if self.first_line is None:
            self.first_line = self.n_lines

    def add_meta(self, key: str, value: str) -> Tuple[str, Any]:
        name, parsed = self.parser.parse_item_pair(key, value)
        if name in self.meta:
            raise ValueError(f"Duplicate meta key: ({key} & {self.source_keys.get(name)}) -> {name}")
        self.source_keys.setdefault(name, key.strip())
        self.meta[name] = parsed
        self._mark_start()
        return name, parsed

    def add_peak(self, mz: float, intensity: float):
        self.peaks[0].append(mz)
        self.peaks[1].append(intensity)
        self._mark_start()

    def record_error(self, message: str, line_text: str):
        """Mark the current record as failed; it is skipped at ``finish_record``."""
        flat = [s.strip().replace("\n", "\\n") for s in (line_text, message)]
        self.errors.append(f"[ERROR] Line ({self.n_lines:05d}){flat[0]} | {flat[1]}")

    def _write_error_log(self):
        if self.error_log_level == ErrorLogLevel.NONE:
            return
        entry = list(self.errors)
        if self.error_log_level == ErrorLogLevel.DETAIL:
            entry.append("".join(self.raw_lines).strip())
        with open(self.error_log_path, "a", encoding=self.encoding) as ef:
            ef.write("\n".join(entry) + "\n\n")

    def _build_input(self) -> SpectrumInput:
        meta = dict(self.meta)
        kwargs: Dict[str, Any] = {}

        precursor = meta.pop("precursor_mz", None)
        if isinstance(precursor, tuple):
            kwargs["precursor_mz"], precursor_intensity = precursor
            if precursor_intensity is not None and "precursor_intensity" not in meta:
                kwargs["precursor_intensity"] = precursor_intensity

        meta.pop("num_peaks", None)
        for name in list(meta):
            if name in CORE_VARIABLES:
                kwargs[name] = meta.pop(name)
        kwargs.setdefault("data_origin", self.data_origin)

        if len(self.peaks[0]) != len(self.peaks[1]):
            raise ValueError(
                f"Peak list has {len(self.peaks[0])} m/z values but {len(self.peaks[1])} intensities"
            )
        if any(v < 0 for v in self.peaks[1]):
            raise ValueError("Peak list has negative intensities")

        kwargs.setdefault("ms_level", self.default_ms_level)
        charge = kwargs.get("precursor_charge")
        if kwargs.get("polarity", Polarity.UNKNOWN) == Polarity.UNKNOWN and charge:
            kwargs["polarity"] = Polarity.POSITIVE if charge > 0 else Polarity.NEGATIVE
        return SpectrumInput(
            mz=self.peaks[0],
            intensity=self.peaks[1],
            extra=meta,
            **kwargs,
        )

    def finish_record(self) -> Optional[SpectrumInput]:
        """
        Close the current record.

        Returns:
            The parsed SpectrumInput, or None for empty or failed records.
        """
        record = None
        if self.meta or self.peaks[0]:
            self.n_records += 1
            if not self.errors:
                try:
                    record = self._build_input()
                except ValueError as e:
                    self.record_error(str(e), line_text="")
            if self.errors:
                logger.warning(
                    "Skipping %s record starting at line %s of %s: %s",
                    self.file_type_name, self.first_line, self.file_path, self.errors[0],
                )
                self._write_error_log()
            else:
                self.n_parsed += 1

        consumed = sum(len(line.encode(self.encoding)) for line in self.raw_lines)
        self.n_bytes += consumed
        if self.progress is not None:
            self.progress.update(consumed)
            self.progress.set_postfix_str(f"Success: {self.n_parsed}/{self.n_records}")

        self._start_record()
        return record


def parse_peak_line(line: str) -> List[Tuple[float, float]]:
    """
    Parse one peak line into (mz, intensity) pairs.

    Quoted annotations are dropped; several pairs may share a line when
    separated by ';' (e.g. "100 10; 101 20;").
    """
    text = _QUOTED.sub("", line).strip()
    pairs = []
    for segment in text.split(";"):
        items = segment.replace(",", " ").split()
        if not items:
            continue
        if len(items) < 2:
            raise ValueError(f"Error: Peak line '{line.strip()}' does not have m/z and intensity values.")
        pairs.append((float(items[0]), float(items[1])))
    return pairs
