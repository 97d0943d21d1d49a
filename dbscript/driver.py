from __future__ import annotations
import logging
import sys
import typing as t
from contextlib import contextmanager

import mysql.connector

from dbscript.config import Environment

logger = logging.getLogger(__name__)


@contextmanager
def connection(env: Environment):
    """
    Context‑manager that yields a **connection already inside the target
    database**.  The transaction is committed when the block exits cleanly;
    the connection is always closed.
    """
    conn = mysql.connector.connect(**env.dsn(), autocommit=False, get_warnings=True)
    try:
        yield conn
        conn.commit()
    finally:
        conn.close()


def _exception_types(*candidates: t.Any) -> tuple[type[BaseException], ...]:
    return tuple(
        exc_type
        for exc_type in candidates
        if isinstance(exc_type, type) and issubclass(exc_type, BaseException)
    )


def _module_errors(conn: t.Any) -> tuple[type[BaseException], ...]:
    # Innermost module first: "oracledb.connection", then "oracledb".
    parts = type(conn).__module__.split(".")
    while parts:
        name = ".".join(parts)
        parts.pop()
        module = sys.modules.get(name)
        if module is None or name == "builtins":
            continue
        found = _exception_types(getattr(module, "Error", None), getattr(module, "Warning", None))
        if found:
            return found
    return ()


def driver_errors(conn: t.Any) -> tuple[type[BaseException], ...]:
    """
    Exception types that mean "the database rejected the statement".

    PEP 249 drivers may expose their ``Error`` and ``Warning`` classes on the
    connection (sqlite3 and psycopg do).  Others, such as python‑oracledb,
    only export them from the driver module, which is looked up from the
    connection's class.  mysql‑connector's are the last resort.
    """
    return (
        _exception_types(getattr(conn, "Error", None), getattr(conn, "Warning", None))
        or _module_errors(conn)
        or (mysql.connector.Error, mysql.connector.Warning)
    )


class StatementHandle:
    """
    One cursor shared by every statement of a script run, plus the driver's
    error types so callers can tell SQL failures from programming errors.
    """

    def __init__(self, cursor: t.Any, errors: tuple[type[BaseException], ...]) -> None:
        self.cursor = cursor
        self.errors = errors

    def execute(self, sql: str) -> None:
        self.cursor.execute(sql)

    @property
    def update_count(self) -> int:
        return getattr(self.cursor, "rowcount", -1)

    def warnings(self) -> list[t.Any]:
        fetch = getattr(self.cursor, "fetchwarnings", None)
        if fetch is None:
            return []
        return list(fetch() or [])

    def close(self) -> None:
        self.cursor.close()


@contextmanager
def open_statement(conn: t.Any, errors: tuple[type[BaseException], ...] | None = None):
    """Yield a :class:`StatementHandle` on *conn*, closing it in all cases."""
    handle = StatementHandle(conn.cursor(), errors or driver_errors(conn))
    try:
        yield handle
    finally:
        try:
            handle.close()
        except Exception:
            logger.debug("Could not close statement cursor", exc_info=True)
