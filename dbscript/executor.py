"""
Replay an SQL script against a DB‑API connection.

A run goes through up to three phases, all on one shared cursor:

1. **short‑circuit** – a script that, once cleaned, is a single non‑table
   ``CREATE`` (procedure, view, trigger, sequence …) is executed in one go
   and nothing else happens;
2. **per‑statement pass** – every split statement whose leading keyword is
   DDL/DML is executed; failures are logged and the loop carries on;
3. **recovery pass** – ``CREATE`` blocks are rebuilt from the raw text and
   re‑attempted, which repairs procedural bodies the splitter cut apart.

Failures of individual statements are never raised.  Only reading and
parsing problems, and unexpected non‑driver errors (wrapped in
:class:`UncategorizedScriptError`), reach the caller.
"""
from __future__ import annotations

import logging
import time
import typing as t

from dbscript.config import ScriptOptions
from dbscript.constants import EXECUTABLE_KEYWORDS, INVALID_CHARACTER_MARKERS, STATEMENT_TERMINATOR
from dbscript.driver import StatementHandle, open_statement
from dbscript.errors import ScriptError, ScriptStatementFailedError, UncategorizedScriptError
from dbscript.model import ExecutionOutcome, Script, Statement
from dbscript.preprocess import preprocess
from dbscript.recovery import RecoveryBlock, build_recovery_blocks
from dbscript.resource import as_resource, load_script
from dbscript.splitter import resolve_separator, split_sql_script
from dbscript.utils import is_drop, starts_with_keyword

logger = logging.getLogger(__name__)

_LEADING_SLASH = "/ "
_NON_TABLE_CREATE = "create "
_TABLE_MARKERS = ("table ", "TABLE ")


def combine_statements(statements: t.Iterable[Statement]) -> str:
    """Join the cleaned, non-blank statements (bare ``commit`` excluded)."""
    parts = []
    for stmt in statements:
        sql = preprocess(stmt.text)
        if sql.strip() and sql.strip().lower() != "commit":
            parts.append(f" {sql}{STATEMENT_TERMINATOR} ")
    return "".join(parts)


def is_single_non_table_create(combined: str) -> bool:
    return combined.strip().lower().startswith(_NON_TABLE_CREATE) and not any(
        marker in combined for marker in _TABLE_MARKERS
    )


def is_executable(sql: str) -> bool:
    return starts_with_keyword(sql.strip(), EXECUTABLE_KEYWORDS)


def _is_invalid_character(exc: BaseException) -> bool:
    message = str(exc)
    return any(marker in message for marker in INVALID_CHARACTER_MARKERS)


class ScriptExecutor:
    """
    Executes scripts with one set of :class:`ScriptOptions`.

    ``outcomes`` and ``recovery_outcomes`` describe the last run; they are
    diagnostics only and reset by every :meth:`execute` call.

    *driver_errors* overrides the exception types that count as a rejected
    statement; by default they are looked up from the connection.
    """

    def __init__(
        self,
        options: ScriptOptions | None = None,
        driver_errors: tuple[type[BaseException], ...] | None = None,
    ) -> None:
        self.options: ScriptOptions = options or ScriptOptions()
        self.driver_errors = driver_errors
        self.outcomes: list[tuple[Statement, ExecutionOutcome]] = []
        self.recovery_outcomes: list[tuple[RecoveryBlock, ExecutionOutcome]] = []

    # ------------------------------------------------------------------ #
    # Entry point
    # ------------------------------------------------------------------ #
    def execute(self, conn: t.Any, resource: t.Any) -> None:
        """
        Run the script behind *resource* on *conn*.  *resource* may be a
        path, a resource object or an open text stream.

        The connection is neither committed nor closed; that is up to the
        caller.
        """
        resource = as_resource(resource, self.options.encoding)
        opts = self.options
        self.outcomes = []
        self.recovery_outcomes = []

        logger.info("Executing SQL script from %s", resource)
        start = time.perf_counter()

        text = load_script(resource, opts.comment_prefix, opts.separator)
        script = Script(text, resource, resolve_separator(text, opts.separator))
        statements = split_sql_script(
            script.text,
            script.separator,
            opts.comment_prefix,
            opts.block_comment_start,
            opts.block_comment_end,
            resource=resource,
        )

        try:
            with open_statement(conn, self.driver_errors) as handle:
                if not self._short_circuit(handle, script, statements):
                    self._execute_statements(handle, script, statements)
                    self._recover(handle, script)
        except ScriptError:
            raise
        except Exception as exc:
            raise UncategorizedScriptError(resource, exc) from exc

        elapsed_ms = int((time.perf_counter() - start) * 1000)
        logger.info("Executed SQL script from %s in %d ms.", resource, elapsed_ms)

    # ------------------------------------------------------------------ #
    # Phases
    # ------------------------------------------------------------------ #
    def _short_circuit(self, handle: StatementHandle, script: Script, statements: list[Statement]) -> bool:
        combined = combine_statements(statements)
        if not is_single_non_table_create(combined):
            return False

        sql = combined.strip()
        if sql.endswith(STATEMENT_TERMINATOR):
            sql = sql[: -len(STATEMENT_TERMINATOR)]
        logger.debug("Script looks like a single non-table CREATE, executing it whole")
        outcome = self.run_single(handle, sql, script.resource)
        self.outcomes.append((Statement(sql, 0, script.resource), outcome))
        return True

    def _execute_statements(self, handle: StatementHandle, script: Script, statements: list[Statement]) -> None:
        opts = self.options
        for stmt in statements:
            stmt = stmt.with_text(preprocess(stmt.text))
            if stmt.text.startswith(_LEADING_SLASH):
                stmt = stmt.with_text(stmt.text[len(_LEADING_SLASH):])
            sql = stmt.text

            if not is_executable(sql):
                logger.debug("Statement #%d is not DDL/DML, skipped: %s", stmt.number, sql)
                self.outcomes.append((stmt, ExecutionOutcome.SKIPPED_NOT_CLASSIFIED))
                continue

            try:
                handle.execute(sql)
            except handle.errors as exc:
                message = ScriptStatementFailedError.build_error_message(sql, stmt.number, script.resource)
                # DROP is not in EXECUTABLE_KEYWORDS, so a drop only gets here
                # if the keyword table is widened; until then it is skipped.
                if opts.continue_on_error or (is_drop(sql) and opts.ignore_failed_drops):
                    logger.debug(message, exc_info=exc)
                    self.outcomes.append((stmt, ExecutionOutcome.FAILED_TOLERATED))
                else:
                    logger.error(message, exc_info=exc)
                    self.outcomes.append((stmt, ExecutionOutcome.FAILED_FATAL))
                continue

            self.outcomes.append((stmt, ExecutionOutcome.EXECUTED))
            if logger.isEnabledFor(logging.DEBUG):
                logger.debug("%d returned as update count for SQL: %s", handle.update_count, sql)
                for warning in handle.warnings():
                    logger.debug("SQL warning ignored: %s", warning)

    def _recover(self, handle: StatementHandle, script: Script) -> None:
        for block in build_recovery_blocks(script.text):
            try:
                handle.execute(block.body)
            except handle.errors as exc:
                logger.debug("Recovery of CREATE block failed: %s", block.body, exc_info=exc)
                if block.fallback_allowed():
                    outcome = self.run_single(handle, block.prefix, script.resource)
                else:
                    outcome = ExecutionOutcome.FAILED_TOLERATED
            else:
                outcome = ExecutionOutcome.EXECUTED
            self.recovery_outcomes.append((block, outcome))

    # ------------------------------------------------------------------ #
    # Single statement
    # ------------------------------------------------------------------ #
    def run_single(self, handle: StatementHandle, sql: str, resource: t.Any) -> ExecutionOutcome:
        """
        Execute *sql* once.  An "invalid character" rejection is retried a
        single time without the trailing terminator.  Driver errors are
        logged, never raised.
        """
        try:
            handle.execute(sql)
            return ExecutionOutcome.EXECUTED
        except handle.errors as exc:
            if _is_invalid_character(exc):
                return self._retry_without_terminator(handle, sql, resource)
            message = ScriptStatementFailedError.build_error_message(sql, 0, resource)
            if is_drop(sql):
                logger.debug(message, exc_info=exc)
                return ExecutionOutcome.FAILED_TOLERATED
            logger.error(message, exc_info=exc)
            return ExecutionOutcome.FAILED_FATAL

    def _retry_without_terminator(self, handle: StatementHandle, sql: str, resource: t.Any) -> ExecutionOutcome:
        sql = sql.strip()
        if sql.endswith(STATEMENT_TERMINATOR):
            sql = sql[: -len(STATEMENT_TERMINATOR)]
        try:
            handle.execute(sql)
            return ExecutionOutcome.EXECUTED
        except handle.errors as exc:
            logger.error(ScriptStatementFailedError.build_error_message(sql, 0, resource), exc_info=exc)
            return ExecutionOutcome.FAILED_FATAL


def execute_sql_script(
    conn: t.Any,
    resource: t.Any,
    options: ScriptOptions | None = None,
    driver_errors: tuple[type[BaseException], ...] | None = None,
    **overrides: t.Any,
) -> None:
    """
    Execute one script with *options*; keyword *overrides* win.  Use
    :class:`ScriptExecutor` directly to inspect per-statement outcomes.
    """
    options = (options or ScriptOptions()).merged(**overrides)
    ScriptExecutor(options, driver_errors).execute(conn, resource)
