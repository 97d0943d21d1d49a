import typing

import pytest


class FakeError(Exception):
    pass


class FakeCursor:
    def __init__(self, conn: "FakeConnection") -> None:
        self.conn = conn
        self.rowcount = -1
        self.closed = False

    def execute(self, sql: str) -> None:
        self.conn.executed.append(sql)
        failure = self.conn.fail(sql)
        if failure is not None:
            raise failure
        self.rowcount = 1

    def fetchwarnings(self) -> list[tuple[str, int, str]]:
        return list(self.conn.warnings)

    def close(self) -> None:
        if self.conn.fail_close:
            raise FakeError("cursor already gone")
        self.closed = True


class FakeConnection:
    """Records every statement; *fail* maps SQL to the exception to raise."""

    Error = FakeError

    def __init__(
        self,
        fail: typing.Callable[[str], BaseException | None] | None = None,
        fail_close: bool = False,
    ) -> None:
        self.executed: list[str] = []
        self.cursors: list[FakeCursor] = []
        self.warnings: list[tuple[str, int, str]] = []
        self.fail = fail or (lambda sql: None)
        self.fail_close = fail_close

    def cursor(self) -> FakeCursor:
        cursor = FakeCursor(self)
        self.cursors.append(cursor)
        return cursor


@pytest.fixture
def fake_conn() -> typing.Callable[..., FakeConnection]:
    return FakeConnection


@pytest.fixture
def fake_error() -> type[FakeError]:
    return FakeError
