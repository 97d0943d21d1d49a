import io
import logging
import sqlite3
import sys
import types

import pytest

from dbscript.config import ScriptOptions
from dbscript.driver import open_statement
from dbscript.errors import CannotReadScriptError, ScriptParseError, UncategorizedScriptError
from dbscript.executor import ScriptExecutor, execute_sql_script
from dbscript.model import ExecutionOutcome
from dbscript.resource import InlineResource


def outcomes(executor):
    return [outcome for _, outcome in executor.outcomes]


def test_short_circuit_single_procedure(fake_conn):
    conn = fake_conn()
    executor = ScriptExecutor()
    executor.execute(conn, InlineResource("CREATE PROCEDURE p IS BEGIN NULL; END;\n/"))

    assert conn.executed == ["CREATE PROCEDURE p IS BEGIN NULL;  END"]
    assert outcomes(executor) == [ExecutionOutcome.EXECUTED]
    assert executor.recovery_outcomes == []
    assert conn.cursors[0].closed


def test_two_inserts(fake_conn):
    conn = fake_conn()
    executor = ScriptExecutor()
    executor.execute(conn, InlineResource("INSERT INTO t VALUES (1);\nINSERT INTO t VALUES (2);"))

    assert conn.executed == ["INSERT INTO t VALUES (1)", "INSERT INTO t VALUES (2)"]
    assert outcomes(executor) == [ExecutionOutcome.EXECUTED, ExecutionOutcome.EXECUTED]
    assert len(conn.cursors) == 1


def test_unclassified_statements_are_skipped(fake_conn):
    conn = fake_conn()
    executor = ScriptExecutor()
    executor.execute(conn, InlineResource("select 1;\ndrop table t;\ninsert into t values (1);"))

    assert conn.executed == ["insert into t values (1)"]
    assert outcomes(executor) == [
        ExecutionOutcome.SKIPPED_NOT_CLASSIFIED,
        ExecutionOutcome.SKIPPED_NOT_CLASSIFIED,
        ExecutionOutcome.EXECUTED,
    ]


def test_failed_statement_is_logged_and_loop_continues(fake_conn, fake_error, caplog):
    caplog.set_level(logging.DEBUG, logger="dbscript")
    conn = fake_conn(fail=lambda sql: fake_error("no such table") if "bad" in sql else None)
    executor = ScriptExecutor()
    executor.execute(conn, InlineResource("insert into bad values (1);\ninsert into t values (2);", "seed.sql"))

    assert conn.executed == ["insert into bad values (1)", "insert into t values (2)"]
    assert outcomes(executor) == [ExecutionOutcome.FAILED_FATAL, ExecutionOutcome.EXECUTED]
    errors = [r for r in caplog.records if r.levelno == logging.ERROR]
    assert len(errors) == 1
    assert errors[0].getMessage() == (
        "Failed to execute SQL script statement #1 of seed.sql: insert into bad values (1)"
    )


def test_continue_on_error_logs_at_debug(fake_conn, fake_error, caplog):
    caplog.set_level(logging.DEBUG, logger="dbscript")
    conn = fake_conn(fail=lambda sql: fake_error("boom") if "bad" in sql else None)
    executor = ScriptExecutor(ScriptOptions(continue_on_error=True))
    executor.execute(conn, InlineResource("update bad set a = 1;\ndelete from t;"))

    assert outcomes(executor) == [ExecutionOutcome.FAILED_TOLERATED, ExecutionOutcome.EXECUTED]
    assert not [r for r in caplog.records if r.levelno >= logging.ERROR]


def test_update_count_and_warnings_are_logged(fake_conn, caplog):
    caplog.set_level(logging.DEBUG, logger="dbscript")
    conn = fake_conn()
    conn.warnings.append(("Note", 1051, "Unknown table"))
    ScriptExecutor().execute(conn, InlineResource("delete from t;"))

    messages = [r.getMessage() for r in caplog.records]
    assert "1 returned as update count for SQL: delete from t" in messages
    assert "SQL warning ignored: ('Note', 1051, 'Unknown table')" in messages


def test_prompt_and_slash_artifacts_are_cleaned(fake_conn):
    conn = fake_conn()
    script = "create table t (a int);\nprompt a prompt b prompt\ninsert into t values (1);\n/ insert into t values (2);"
    executor = ScriptExecutor()
    executor.execute(conn, InlineResource(script))

    assert conn.executed[:3] == [
        "create table t (a int)",
        " insert into t values (1)",
        "insert into t values (2)",
    ]


def test_recovery_rebuilds_procedure(fake_conn, fake_error):
    broken = "CREATE PROCEDURE p AS BEGIN INSERT INTO t VALUES (1)"
    conn = fake_conn(fail=lambda sql: fake_error("PLS-00103") if sql == broken else None)
    script = (
        "CREATE TABLE t (a int);\n"
        "CREATE PROCEDURE p AS\n"
        "BEGIN\n"
        "  INSERT INTO t VALUES (1);\n"
        "END;\n"
        "/"
    )
    executor = ScriptExecutor()
    executor.execute(conn, InlineResource(script))

    assert outcomes(executor) == [
        ExecutionOutcome.EXECUTED,
        ExecutionOutcome.FAILED_FATAL,
        ExecutionOutcome.SKIPPED_NOT_CLASSIFIED,
        ExecutionOutcome.SKIPPED_NOT_CLASSIFIED,
    ]
    assert conn.executed == [
        "CREATE TABLE t (a int)",
        broken,
        "CREATE PROCEDURE p AS\nBEGIN\n  INSERT INTO t VALUES (1);\nEND;",
    ]
    assert [outcome for _, outcome in executor.recovery_outcomes] == [ExecutionOutcome.EXECUTED]


def test_recovery_falls_back_to_create_prefix(fake_conn, fake_error):
    def fail(sql):
        if sql.strip().endswith(";"):
            return fake_error("ORA-00911: invalid character")
        return None

    conn = fake_conn(fail=fail)
    script = "create table t (a int);\ncreate view v as\nselect a from t;\ninsert into t values (1);"
    executor = ScriptExecutor()
    executor.execute(conn, InlineResource(script))

    assert conn.executed == [
        "create table t (a int)",
        "create view v as select a from t",
        "insert into t values (1)",
        "CREATE view v as\nselect a from t;\ninsert into t values (1);\n",
        "CREATE view v as\nselect a from t;\n",
        "CREATE view v as\nselect a from t",
    ]
    assert [outcome for _, outcome in executor.recovery_outcomes] == [ExecutionOutcome.EXECUTED]


def test_run_single_retries_without_terminator(fake_conn, fake_error):
    conn = fake_conn(fail=lambda sql: fake_error("ORA-00911: invalid character") if sql.endswith(";") else None)
    with open_statement(conn) as handle:
        outcome = ScriptExecutor().run_single(handle, "create view v as select 1 from dual;", "res")

    assert outcome is ExecutionOutcome.EXECUTED
    assert conn.executed == ["create view v as select 1 from dual;", "create view v as select 1 from dual"]


def test_run_single_retry_happens_once(fake_conn, fake_error, caplog):
    caplog.set_level(logging.DEBUG, logger="dbscript")
    conn = fake_conn(fail=lambda sql: fake_error("ORA-00911: invalid character"))
    with open_statement(conn) as handle:
        outcome = ScriptExecutor().run_single(handle, "create view v as select 1 from dual;", "res")

    assert outcome is ExecutionOutcome.FAILED_FATAL
    assert len(conn.executed) == 2
    assert [r.levelno for r in caplog.records] == [logging.ERROR]


def test_run_single_tolerates_drop(fake_conn, fake_error, caplog):
    caplog.set_level(logging.DEBUG, logger="dbscript")
    conn = fake_conn(fail=lambda sql: fake_error("does not exist"))
    executor = ScriptExecutor()
    with open_statement(conn) as handle:
        assert executor.run_single(handle, "DROP VIEW v", "res") is ExecutionOutcome.FAILED_TOLERATED
        assert executor.run_single(handle, "create view v as x", "res") is ExecutionOutcome.FAILED_FATAL

    levels = [r.levelno for r in caplog.records]
    assert levels == [logging.DEBUG, logging.ERROR]


def test_non_driver_error_is_uncategorized(fake_conn):
    boom = RuntimeError("boom")
    conn = fake_conn(fail=lambda sql: boom)
    with pytest.raises(UncategorizedScriptError, match=r"resource \[view.sql\]") as excinfo:
        ScriptExecutor().execute(conn, InlineResource("create view v as select 1", "view.sql"))

    assert excinfo.value.__cause__ is boom
    assert conn.cursors[0].closed


def test_cursor_close_failure_is_not_raised(fake_conn):
    conn = fake_conn(fail_close=True)
    ScriptExecutor().execute(conn, InlineResource("insert into t values (1);"))
    assert conn.executed == ["insert into t values (1)"]


def test_parse_error_runs_nothing(fake_conn):
    conn = fake_conn()
    with pytest.raises(ScriptParseError):
        ScriptExecutor().execute(conn, InlineResource("insert into t values (1); /* oops"))
    assert conn.executed == []
    assert conn.cursors == []


def test_unreadable_script(fake_conn, tmp_path):
    with pytest.raises(CannotReadScriptError):
        ScriptExecutor().execute(fake_conn(), tmp_path / "missing.sql")


@pytest.mark.parametrize("text", ["   \n", "-- nothing here\n"])
def test_blank_script_is_rejected(fake_conn, text):
    with pytest.raises(ValueError):
        ScriptExecutor().execute(fake_conn(), InlineResource(text))


def test_execute_sql_script_overrides(fake_conn, fake_error):
    conn = fake_conn(fail=lambda sql: fake_error("x"))
    assert execute_sql_script(conn, InlineResource("insert into t values (1)"), continue_on_error=True) is None
    assert conn.executed == ["insert into t values (1)"]


def test_sqlite_script(caplog):
    conn = sqlite3.connect(":memory:")
    script = (
        "-- demo data\n"
        "CREATE TABLE t (id INTEGER PRIMARY KEY, name TEXT);\n"
        "INSERT INTO t (name) VALUES ('a;b');\n"
        "INSERT INTO t (name) VALUES ('it''s');\n"
        "select * from t;\n"
        "INSERT INTO missing VALUES (1);\n"
        "UPDATE t SET name = 'c' WHERE id = 1;\n"
    )
    executor = ScriptExecutor()
    executor.execute(conn, InlineResource(script, "demo.sql"))

    assert conn.execute("SELECT id, name FROM t ORDER BY id").fetchall() == [(1, "c"), (2, "it's")]
    assert outcomes(executor) == [
        ExecutionOutcome.EXECUTED,
        ExecutionOutcome.EXECUTED,
        ExecutionOutcome.EXECUTED,
        ExecutionOutcome.SKIPPED_NOT_CLASSIFIED,
        ExecutionOutcome.FAILED_FATAL,
        ExecutionOutcome.EXECUTED,
    ]
    assert "statement #5 of demo.sql" in caplog.text


def test_sqlite_trigger_short_circuit():
    conn = sqlite3.connect(":memory:")
    conn.execute("CREATE TABLE t (id INTEGER, n INTEGER)")
    script = (
        "CREATE TRIGGER bump AFTER INSERT ON t\n"
        "BEGIN\n"
        "  UPDATE t SET n = 1 WHERE id = new.id;\n"
        "END;\n"
        "/\n"
    )
    executor = ScriptExecutor()
    executor.execute(conn, InlineResource(script))
    assert len(executor.outcomes) == 1

    conn.execute("INSERT INTO t (id) VALUES (7)")
    assert conn.execute("SELECT n FROM t WHERE id = 7").fetchone() == (1,)


def _module_driver(monkeypatch, fail):
    """A driver whose connection has no ``Error`` attribute, like python-oracledb."""
    module = types.ModuleType("acmedb")

    class Error(Exception):
        pass

    class DatabaseError(Error):
        pass

    class Cursor:
        def __init__(self, conn):
            self.conn = conn
            self.rowcount = -1

        def execute(self, sql):
            self.conn.executed.append(sql)
            if fail(sql):
                raise DatabaseError(fail(sql))
            self.rowcount = 1

        def close(self):
            pass

    class Connection:
        def __init__(self):
            self.executed = []

        def cursor(self):
            return Cursor(self)

    Connection.__module__ = "acmedb.connection"
    module.Error, module.DatabaseError, module.Connection = Error, DatabaseError, Connection
    monkeypatch.setitem(sys.modules, "acmedb", module)
    return module


def test_errors_of_driver_without_connection_error_attribute(monkeypatch):
    fail = lambda sql: "ORA-00942: table or view does not exist" if "bad" in sql else None
    conn = _module_driver(monkeypatch, fail).Connection()
    executor = ScriptExecutor()
    executor.execute(conn, InlineResource("insert into bad values (1);\ninsert into t values (2);"))

    assert conn.executed == ["insert into bad values (1)", "insert into t values (2)"]
    assert outcomes(executor) == [ExecutionOutcome.FAILED_FATAL, ExecutionOutcome.EXECUTED]


def test_explicit_driver_errors(fake_conn):
    class Rejected(Exception):
        pass

    conn = fake_conn(fail=lambda sql: Rejected("nope") if "bad" in sql else None)
    executor = ScriptExecutor(driver_errors=(Rejected,))
    executor.execute(conn, InlineResource("insert into bad values (1);\ninsert into t values (2);"))
    assert outcomes(executor) == [ExecutionOutcome.FAILED_FATAL, ExecutionOutcome.EXECUTED]

    with pytest.raises(UncategorizedScriptError):
        ScriptExecutor().execute(conn, InlineResource("insert into bad values (1);"))


def test_execute_sql_script_passes_driver_errors(fake_conn):
    class Rejected(Exception):
        pass

    conn = fake_conn(fail=lambda sql: Rejected("nope") if "bad" in sql else None)
    execute_sql_script(conn, InlineResource("insert into bad values (1);\ninsert into t values (2);"), None, (Rejected,))
    assert conn.executed == ["insert into bad values (1)", "insert into t values (2)"]


def test_open_text_stream(fake_conn):
    conn = fake_conn()
    stream = io.StringIO("-- seed\ninsert into t values (1);\ninsert into t values (2);\n")
    executor = ScriptExecutor()
    executor.execute(conn, stream)

    assert conn.executed == ["insert into t values (1)", "insert into t values (2)"]
    assert not stream.closed


def test_unreadable_source_is_wrapped(fake_conn):
    with pytest.raises(CannotReadScriptError, match="Cannot read SQL script"):
        ScriptExecutor().execute(fake_conn(), object())


def test_failing_drop_is_skipped_even_when_drops_are_ignored(fake_conn, fake_error):
    conn = fake_conn(fail=lambda sql: fake_error("ORA-00942") if sql.lower().startswith("drop") else None)
    executor = ScriptExecutor(ScriptOptions(ignore_failed_drops=True))
    executor.execute(conn, InlineResource("drop table gone;\ninsert into t values (1);"))

    # drop is not an executable keyword, so it never reaches the database
    assert conn.executed == ["insert into t values (1)"]
    assert outcomes(executor) == [ExecutionOutcome.SKIPPED_NOT_CLASSIFIED, ExecutionOutcome.EXECUTED]
