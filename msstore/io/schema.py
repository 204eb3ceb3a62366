from __future__ import annotations
import json
import logging
import re
import uuid
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple, Union

import numpy as np
from tqdm import tqdm

from ..core.constants import (
    COLUMN_DDL,
    CORE_VARIABLES,
    FORMAT_VERSION,
    INTENSITY_DTYPES,
    PEAK_VARIABLES,
    PEAKS_COUNT,
    RESERVED_VARIABLES,
    SPECTRUM_ID,
    SQL_TYPES,
    PeakFormat,
    Polarity,
)
from ..core.errors import AlreadyInitializedError, InvalidArgumentError, StorageIOError
from ..core.PeakCodec import get_codec, prepare_peaks
from .connection import ConnectionHandle, SqlDialect

logger = logging.getLogger(__name__)

SETTINGS_TABLE = "settings"
SPECTRA_TABLE = "spectra"
PEAKS_BLOB_TABLE = "peaks_blob"
PEAKS_TABLE = "peaks"

_VARIABLE_NAME = re.compile(r"^[a-z_][a-z0-9_]*$")


@dataclass
class StoreOptions:
    """
    Options of create_store.

    Attributes:
        peak_format: Persisted peak layout, recorded once in ``settings``.
        intensity_dtype: "float64" or "float32" (packed payloads only).
        partition_hint: Number of hash partitions for the peak table. Only
            honoured by MySQL-family drivers, ignored otherwise.
        batch_size: Spectra per insert batch; each batch is committed.
        extra_variables: Additional spectrum variables, name -> SQL type.
        show_progress: Display a tqdm progress bar.
    """
    peak_format: Union[PeakFormat, str] = PeakFormat.PACKED
    intensity_dtype: str = "float64"
    partition_hint: Optional[int] = None
    batch_size: int = 1000
    extra_variables: Dict[str, str] = field(default_factory=dict)
    show_progress: bool = False

    def __post_init__(self):
        try:
            self.peak_format = PeakFormat(self.peak_format)
        except ValueError as err:
            raise InvalidArgumentError(f"Unknown peak format '{self.peak_format}'") from err
        if self.intensity_dtype not in INTENSITY_DTYPES:
            raise InvalidArgumentError(
                f"intensity_dtype must be one of {INTENSITY_DTYPES}, got '{self.intensity_dtype}'"
            )
        if isinstance(self.batch_size, bool) or not isinstance(self.batch_size, int) or self.batch_size <= 0:
            raise InvalidArgumentError(f"batch_size must be a positive integer, got {self.batch_size!r}")
        if self.partition_hint is not None and (
            isinstance(self.partition_hint, bool)
            or not isinstance(self.partition_hint, int)
            or self.partition_hint <= 0
        ):
            raise InvalidArgumentError(
                f"partition_hint must be a positive integer or None, got {self.partition_hint!r}"
            )
        extra = {}
        for name, sql_type in dict(self.extra_variables).items():
            sql_type = str(sql_type).upper()
            if not _VARIABLE_NAME.match(name):
                raise InvalidArgumentError(f"Invalid variable name '{name}'")
            if name in CORE_VARIABLES or name in RESERVED_VARIABLES or name in PEAK_VARIABLES:
                raise InvalidArgumentError(f"Variable '{name}' shadows a built-in variable")
            if sql_type not in SQL_TYPES:
                raise InvalidArgumentError(
                    f"Unsupported SQL type '{sql_type}' for '{name}'; use one of {SQL_TYPES}"
                )
            extra[name] = sql_type
        self.extra_variables = extra

    @property
    def variables(self) -> Dict[str, str]:
        """Stored metadata columns (core then extra) and their SQL types."""
        return {**CORE_VARIABLES, **self.extra_variables}


@dataclass
class SpectrumInput:
    """
    One parsed spectrum handed to create_store or MemoryStore.from_spectra.
    ``extra`` holds values of caller-declared variables.
    """
    mz: Any
    intensity: Any
    ms_level: int = 1
    rtime: Optional[float] = None
    acquisition_num: Optional[int] = None
    scan_index: Optional[int] = None
    data_origin: Optional[str] = None
    polarity: Union[Polarity, int] = Polarity.UNKNOWN
    precursor_mz: Optional[float] = None
    precursor_intensity: Optional[float] = None
    precursor_charge: Optional[int] = None
    collision_energy: Optional[float] = None
    centroided: Optional[bool] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, record: Mapping[str, Any]) -> "SpectrumInput":
        """Build from a mapping; keys that are not fields go to ``extra``."""
        names = {f.name for f in fields(cls)} - {"extra"}
        kwargs = {k: v for k, v in record.items() if k in names}
        extra = dict(record.get("extra", {}))
        extra.update({k: v for k, v in record.items() if k not in names and k != "extra"})
        if "mz" not in kwargs or "intensity" not in kwargs:
            raise ValueError("A spectrum record needs 'mz' and 'intensity'")
        return cls(extra=extra, **kwargs)

    def value(self, name: str) -> Any:
        if name in CORE_VARIABLES:
            value = getattr(self, name)
        else:
            value = self.extra.get(name)
        if name == "polarity":
            value = int(Polarity.UNKNOWN if value is None else Polarity(int(value)))
        elif name == "centroided" and value is not None:
            value = int(bool(value))
        return value


def as_spectrum_input(record: Union[SpectrumInput, Mapping[str, Any]]) -> SpectrumInput:
    if isinstance(record, SpectrumInput):
        return record
    if isinstance(record, Mapping):
        return SpectrumInput.from_mapping(record)
    raise TypeError(f"Expected SpectrumInput or a mapping, got {type(record)}")


@dataclass(frozen=True)
class StoreSettings:
    """The single row of the ``settings`` table."""
    peak_format: PeakFormat
    intensity_dtype: str
    format_version: str
    created_at: str
    store_uuid: str
    variables: Tuple[str, ...]
    variable_types: Tuple[str, ...] = ()

    _COLUMNS = ("peak_format", "intensity_dtype", "format_version", "created_at", "store_uuid", "variables")

    @classmethod
    def new(cls, options: StoreOptions) -> "StoreSettings":
        return cls(
            peak_format=options.peak_format,
            intensity_dtype=options.intensity_dtype,
            format_version=FORMAT_VERSION,
            created_at=datetime.now(timezone.utc).isoformat(),
            store_uuid=uuid.uuid4().hex,
            variables=tuple(options.variables),
            variable_types=tuple(options.variables.values()),
        )

    def to_row(self) -> Tuple[str, ...]:
        return (
            self.peak_format.value,
            self.intensity_dtype,
            self.format_version,
            self.created_at,
            self.store_uuid,
            json.dumps(dict(zip(self.variables, self.variable_types))),
        )

    @classmethod
    def from_row(cls, row: Tuple[Any, ...]) -> "StoreSettings":
        peak_format, intensity_dtype, format_version, created_at, store_uuid, variables = row
        # name -> SQL type, in column order
        declared = json.loads(variables)
        return cls(
            peak_format=PeakFormat(peak_format),
            intensity_dtype=str(intensity_dtype),
            format_version=str(format_version),
            created_at=str(created_at),
            store_uuid=str(store_uuid),
            variables=tuple(declared),
            variable_types=tuple(declared.values()),
        )

    def sql_type(self, name: str) -> Optional[str]:
        """Declared SQL type of a stored variable, None for storage-derived ones."""
        return dict(zip(self.variables, self.variable_types)).get(name)

    @classmethod
    def load(cls, cursor) -> "StoreSettings":
        cursor.execute(f"SELECT {', '.join(cls._COLUMNS)} FROM {SETTINGS_TABLE}")
        rows = cursor.fetchall()
        if len(rows) != 1:
            raise StorageIOError(
                f"Expected exactly one settings record, found {len(rows)}; "
                "was the store created with create_store?"
            )
        return cls.from_row(tuple(rows[0]))


# --- DDL ---
def _partition_clause(dialect: SqlDialect, partition_hint: Optional[int]) -> str:
    if partition_hint is None:
        return ""
    if not dialect.is_mysql:
        logger.debug(
            "partition_hint=%d ignored: driver '%s' has no hash partitioning support",
            partition_hint, dialect.family,
        )
        return ""
    return f" PARTITION BY HASH({SPECTRUM_ID}) PARTITIONS {int(partition_hint)}"


def schema_statements(dialect: SqlDialect, options: StoreOptions) -> List[str]:
    """CREATE TABLE statements for a store with the given options."""
    settings = (
        f"CREATE TABLE IF NOT EXISTS {SETTINGS_TABLE} ("
        + ", ".join(f"{c} TEXT NOT NULL" for c in StoreSettings._COLUMNS)
        + ")"
    )
    columns = [f"{SPECTRUM_ID} INTEGER NOT NULL PRIMARY KEY"]
    columns += [f"{name} {COLUMN_DDL[sql_type]}" for name, sql_type in options.variables.items()]
    columns.append(f"{PEAKS_COUNT} INTEGER NOT NULL")
    spectra = f"CREATE TABLE IF NOT EXISTS {SPECTRA_TABLE} ({', '.join(columns)})"

    partition = _partition_clause(dialect, options.partition_hint)
    if options.peak_format == PeakFormat.PACKED:
        peaks = (
            f"CREATE TABLE IF NOT EXISTS {PEAKS_BLOB_TABLE} ("
            f"{SPECTRUM_ID} INTEGER NOT NULL PRIMARY KEY, "
            f"payload {dialect.blob_type} NOT NULL)"
            + partition
        )
    else:
        peaks = (
            f"CREATE TABLE IF NOT EXISTS {PEAKS_TABLE} ("
            f"{SPECTRUM_ID} INTEGER NOT NULL, "
            "peak_index INTEGER NOT NULL, "
            f"mz {COLUMN_DDL['REAL']} NOT NULL, "
            f"intensity {COLUMN_DDL['REAL']} NOT NULL, "
            f"PRIMARY KEY ({SPECTRUM_ID}, peak_index))"
            + partition
        )
    return [settings, spectra, peaks]


def _has_rows(conn, dialect: SqlDialect, table: str) -> bool:
    cur = conn.cursor()
    try:
        cur.execute(f"SELECT COUNT(*) FROM {table}")
        return int(cur.fetchone()[0]) > 0
    except dialect.error:
        # missing table; some engines need the failed statement rolled back,
        # others refuse a rollback when no transaction is open
        try:
            conn.rollback()
        except dialect.error as err:
            logger.debug("Rollback after missing table '%s' failed: %s", table, err)
        return False
    finally:
        cur.close()


def _batched(records: Iterable, size: int) -> Iterator[List]:
    batch = []
    for record in records:
        batch.append(record)
        if len(batch) >= size:
            yield batch
            batch = []
    if batch:
        yield batch


# --- import ---
def create_store(
    connection=None,
    spectra: Iterable[Union[SpectrumInput, Mapping[str, Any]]] = (),
    options: Optional[StoreOptions] = None,
    *,
    connect=None,
) -> int:
    """
    Create the msstore schema on an empty DB-API connection and import spectra.

    Spectra get identifiers 1, 2, 3, ... in input order. Peaks are sorted
    by m/z before encoding. Each batch of ``options.batch_size`` spectra is
    committed; a failure part-way leaves the batches already committed.

    Args:
        connection: Live DB-API 2.0 connection.
        spectra: Iterable of SpectrumInput (or mappings with the same keys).
        options: StoreOptions; defaults to packed float64 peaks.
        connect: Zero-argument connection factory, instead of ``connection``.

    Returns:
        int: Number of spectra imported.

    Raises:
        AlreadyInitializedError: If the store already holds settings or spectra.
        StorageIOError: On any driver error.
        ValueError: On malformed peak arrays.
    """
    options = options or StoreOptions()
    handle = ConnectionHandle(connection, connect=connect)
    codec = get_codec(options.peak_format, options.intensity_dtype)
    variables = list(options.variables)

    with handle.session() as conn:
        dialect = handle.dialect
        for table in (SETTINGS_TABLE, SPECTRA_TABLE):
            if _has_rows(conn, dialect, table):
                raise AlreadyInitializedError(f"Table '{table}' already holds rows")

        cur = conn.cursor()
        try:
            for statement in schema_statements(dialect, options):
                cur.execute(statement)
            settings = StoreSettings.new(options)
            cur.execute(
                f"INSERT INTO {SETTINGS_TABLE} ({', '.join(StoreSettings._COLUMNS)}) "
                f"VALUES ({dialect.placeholders(len(StoreSettings._COLUMNS))})",
                dialect.bind(settings.to_row()),
            )
            conn.commit()
            logger.info(
                "Created %s store %s (intensity %s, %d variables)",
                settings.peak_format.value, settings.store_uuid,
                settings.intensity_dtype, len(variables),
            )

            spectra_sql = (
                f"INSERT INTO {SPECTRA_TABLE} ({', '.join([SPECTRUM_ID] + variables + [PEAKS_COUNT])}) "
                f"VALUES ({dialect.placeholders(len(variables) + 2)})"
            )
            if options.peak_format == PeakFormat.PACKED:
                peaks_sql = (
                    f"INSERT INTO {PEAKS_BLOB_TABLE} ({SPECTRUM_ID}, payload) "
                    f"VALUES ({dialect.placeholders(2)})"
                )
            else:
                peaks_sql = (
                    f"INSERT INTO {PEAKS_TABLE} ({SPECTRUM_ID}, peak_index, mz, intensity) "
                    f"VALUES ({dialect.placeholders(4)})"
                )

            undeclared = set()
            n_imported = 0
            pbar = tqdm(desc="[Import] spectra", unit="spectra", disable=not options.show_progress, mininterval=0.5)
            try:
                for batch in _batched(spectra, options.batch_size):
                    spectra_rows, peak_rows = [], []
                    for record in batch:
                        record = as_spectrum_input(record)
                        spectrum_id = n_imported + 1
                        mz, intensity = prepare_peaks(record.mz, record.intensity)
                        for name in record.extra:
                            if name not in options.extra_variables and name not in undeclared:
                                undeclared.add(name)
                                logger.warning("Ignoring undeclared variable '%s'", name)
                        spectra_rows.append(dialect.bind(
                            [spectrum_id] + [record.value(v) for v in variables] + [mz.size]
                        ))
                        if options.peak_format == PeakFormat.PACKED:
                            peak_rows.append(dialect.bind((spectrum_id, codec.encode(mz, intensity))))
                        else:
                            peak_rows.extend(dialect.bind(row) for row in codec.rows(spectrum_id, mz, intensity))
                        n_imported += 1

                    cur.executemany(spectra_sql, spectra_rows)
                    if peak_rows:
                        cur.executemany(peaks_sql, peak_rows)
                    conn.commit()
                    pbar.update(len(batch))
                    logger.debug("Committed %d spectra (total %d)", len(batch), n_imported)
            finally:
                pbar.close()
        finally:
            cur.close()

    logger.info("Imported %d spectra", n_imported)
    return n_imported
