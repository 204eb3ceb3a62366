from typing import Any, Callable, Optional

from ..io.connection import ConnectionHandle
from ..io.schema import (
    PEAKS_BLOB_TABLE,
    PEAKS_TABLE,
    SETTINGS_TABLE,
    SPECTRA_TABLE,
    StoreSettings,
)
from ..core.constants import PeakFormat


def print_store_structure(
    connection=None,
    *,
    connect: Optional[Callable[[], Any]] = None,
    show_variables: bool = True,
) -> None:
    """
    Print the settings and table sizes of a store created by create_store.

    Args:
        connection: Live DB-API 2.0 connection.
        connect: Zero-argument connection factory, instead of ``connection``.
        show_variables (bool): Whether to list the stored spectrum variables.
    """
    handle = ConnectionHandle(connection, connect=connect)
    with handle.cursor() as cur:
        settings = StoreSettings.load(cur)
        peak_table = PEAKS_BLOB_TABLE if settings.peak_format == PeakFormat.PACKED else PEAKS_TABLE
        counts = {}
        for table in (SETTINGS_TABLE, SPECTRA_TABLE, peak_table):
            cur.execute(f"SELECT COUNT(*) FROM {table}")
            counts[table] = int(cur.fetchone()[0])

    print(f"msstore ({handle.dialect.family}, paramstyle={handle.dialect.paramstyle})")
    print("[Settings]")
    print(f"  @store_uuid      : {settings.store_uuid}")
    print(f"  @peak_format     : {settings.peak_format.value}")
    print(f"  @intensity_dtype : {settings.intensity_dtype}")
    print(f"  @format_version  : {settings.format_version}")
    print(f"  @created_at      : {settings.created_at}")
    for table, n in counts.items():
        print(f"[Table] {table} rows={n}")
    if show_variables:
        for name in settings.variables:
            print(f"  [Variable] {name} {settings.sql_type(name)}")
