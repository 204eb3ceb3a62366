from __future__ import annotations
import logging
import sys
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, Optional, Sequence, Tuple, Union

import numpy as np

from ..core.errors import InvalidArgumentError, MsStoreError, StorageIOError

logger = logging.getLogger(__name__)

# driver modules that understand MySQL's partitioning and LONGBLOB
MYSQL_FAMILY = ("pymysql", "MySQLdb", "mysql")

Params = Union[Tuple[Any, ...], Dict[str, Any]]


@dataclass(frozen=True)
class SqlDialect:
    """
    What msstore needs to know about a DB-API 2.0 driver: its placeholder
    style, its base error class and the driver family name.
    """
    paramstyle: str
    error: type
    family: str

    @classmethod
    def of(cls, connection) -> "SqlDialect":
        family = type(connection).__module__.split(".")[0].lstrip("_")
        module = sys.modules.get(family)
        paramstyle = getattr(module, "paramstyle", None)
        if paramstyle is None:
            logger.debug("Driver '%s' declares no paramstyle; assuming qmark", family)
            paramstyle = "qmark"
        error = getattr(module, "Error", None)
        if not (isinstance(error, type) and issubclass(error, Exception)):
            error = Exception
        return cls(paramstyle, error, family)

    @property
    def is_mysql(self) -> bool:
        return self.family in MYSQL_FAMILY

    @property
    def blob_type(self) -> str:
        return "LONGBLOB" if self.is_mysql else "BLOB"

    def placeholders(self, n: int) -> str:
        """Comma separated placeholders for ``n`` positional parameters."""
        if self.paramstyle == "qmark":
            marks = ["?"] * n
        elif self.paramstyle in ("format", "pyformat"):
            marks = ["%s"] * n
        elif self.paramstyle == "numeric":
            marks = [f":{i + 1}" for i in range(n)]
        elif self.paramstyle == "named":
            marks = [f":p{i + 1}" for i in range(n)]
        else:
            raise InvalidArgumentError(f"Unsupported DB-API paramstyle '{self.paramstyle}'")
        return ", ".join(marks)

    def bind(self, values: Sequence[Any]) -> Params:
        """Parameters in the shape the driver expects for ``placeholders(len(values))``."""
        values = tuple(to_sql_value(v) for v in values)
        if self.paramstyle == "named":
            return {f"p{i + 1}": v for i, v in enumerate(values)}
        return values


def to_sql_value(value: Any) -> Any:
    """Plain Python value for binding: numpy scalars unwrapped, NaN as NULL."""
    if isinstance(value, np.generic):
        value = value.item()
    if isinstance(value, float) and value != value:
        return None
    return value


def id_blocks(ids: np.ndarray, max_params: int) -> Iterator[np.ndarray]:
    """Split identifiers into blocks that fit the engine's bound-parameter limit."""
    for start in range(0, ids.size, max_params):
        yield ids[start:start + max_params]


class ConnectionHandle:
    """
    Either a live DB-API connection or a zero-argument factory returning one.

    With a factory every ``session()`` opens and closes its own connection,
    so a handle can be shared by workers that must not share a connection.
    Driver errors raised inside a session surface as StorageIOError.
    """

    def __init__(self, connection=None, *, connect: Optional[Callable[[], Any]] = None):
        if (connection is None) == (connect is None):
            raise InvalidArgumentError("Provide exactly one of 'connection' or 'connect'")
        self._connection = connection
        self._connect = connect
        self._dialect: Optional[SqlDialect] = None if connection is None else SqlDialect.of(connection)

    def __repr__(self) -> str:
        mode = "factory" if self._connect is not None else "connection"
        return f"ConnectionHandle({mode}, dialect={self._dialect})"

    @property
    def dialect(self) -> SqlDialect:
        if self._dialect is None:
            with self.session():
                pass
        return self._dialect

    def is_same(self, other: "ConnectionHandle") -> bool:
        if not isinstance(other, ConnectionHandle):
            return False
        if self._connection is not None:
            return self._connection is other._connection
        return self._connect is other._connect

    def _open(self):
        if self._connection is not None:
            return self._connection
        try:
            conn = self._connect()
        except Exception as err:
            raise StorageIOError(f"Could not open a storage connection: {err}") from err
        if self._dialect is None:
            self._dialect = SqlDialect.of(conn)
        return conn

    @contextmanager
    def session(self):
        """Yield a connection; close it afterwards if it came from the factory."""
        conn = self._open()
        error = self._dialect.error
        try:
            yield conn
        except error as err:
            if isinstance(err, MsStoreError):
                raise
            raise StorageIOError(f"Storage operation failed: {err}") from err
        finally:
            if self._connect is not None:
                try:
                    conn.close()
                except error as err:
                    logger.warning("Closing storage connection failed: %s", err)

    @contextmanager
    def cursor(self):
        """Yield a cursor within a session, closing it afterwards."""
        with self.session() as conn:
            cur = conn.cursor()
            try:
                yield cur
            finally:
                cur.close()
