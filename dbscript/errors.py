"""
Exceptions raised while reading, splitting or executing an SQL script.

Argument problems (blank script, empty delimiters) are plain ``ValueError``;
everything else derives from :class:`ScriptError`.
"""
from __future__ import annotations

import typing as t


class ScriptError(RuntimeError):
    """Root of every script-related failure."""


class CannotReadScriptError(ScriptError):
    """The script source could not be read."""

    def __init__(self, resource: t.Any, cause: BaseException | None = None) -> None:
        super().__init__(f"Cannot read SQL script from {resource}")
        self.resource = resource
        self.__cause__ = cause


class ScriptParseError(ScriptError):
    """The script could not be split, e.g. an unterminated block comment."""

    def __init__(self, message: str, resource: t.Any = None) -> None:
        super().__init__(self.build_error_message(message, resource))
        self.resource = resource

    @staticmethod
    def build_error_message(message: str, resource: t.Any) -> str:
        if resource is None:
            return f"Failed to parse SQL script: {message}"
        return f"Failed to parse SQL script from resource [{resource}]: {message}"


class ScriptStatementFailedError(ScriptError):
    """
    One statement failed.  The executor only uses
    :meth:`build_error_message` to format log lines; the error itself is
    never raised by the replay passes.
    """

    def __init__(self, statement: str, number: int, resource: t.Any, cause: BaseException | None = None) -> None:
        super().__init__(self.build_error_message(statement, number, resource))
        self.statement = statement
        self.number = number
        self.resource = resource
        self.__cause__ = cause

    @staticmethod
    def build_error_message(statement: str, number: int, resource: t.Any) -> str:
        return f"Failed to execute SQL script statement #{number} of {resource}: {statement}"


class UncategorizedScriptError(ScriptError):
    """Wraps any unexpected failure escaping the pipeline."""

    def __init__(self, resource: t.Any, cause: BaseException | None = None) -> None:
        super().__init__(f"Failed to execute database script from resource [{resource}]")
        self.resource = resource
        self.__cause__ = cause
