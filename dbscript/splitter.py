"""
Quote- and comment-aware statement splitting.

Nothing here parses SQL: statements are cut on lexical cues only (quote
characters, comment delimiters and the separator token).
"""
from __future__ import annotations

import typing as t

from dbscript.constants import (
    DEFAULT_BLOCK_COMMENT_END_DELIMITER,
    DEFAULT_BLOCK_COMMENT_START_DELIMITER,
    DEFAULT_COMMENT_PREFIX,
    DEFAULT_STATEMENT_SEPARATOR,
    EOF_STATEMENT_SEPARATOR,
    FALLBACK_STATEMENT_SEPARATOR,
)
from dbscript.errors import ScriptParseError
from dbscript.model import Statement

_WHITESPACE = (" ", "\n", "\t")


def _require_text(value: str | None, name: str) -> None:
    if not value or not value.strip():
        raise ValueError(f"'{name}' must not be null or empty")


def split_sql_script(
    script: str,
    separator: str | None = DEFAULT_STATEMENT_SEPARATOR,
    comment_prefix: str = DEFAULT_COMMENT_PREFIX,
    block_comment_start: str = DEFAULT_BLOCK_COMMENT_START_DELIMITER,
    block_comment_end: str = DEFAULT_BLOCK_COMMENT_END_DELIMITER,
    *,
    resource: t.Any = None,
) -> list[Statement]:
    """
    Split *script* into statements delimited by *separator*.

    Text from *comment_prefix* to the end of the line and text enclosed in
    block comments is dropped, and runs of whitespace are collapsed into a
    single space.  Quoted text (single or double quotes) is copied verbatim,
    and a backslash escapes the character that follows it (MySQL style).

    Raises :class:`ValueError` for blank arguments and
    :class:`ScriptParseError` for an unterminated block comment.
    """
    _require_text(script, "script")
    if separator is None:
        raise ValueError("'separator' must not be null")
    _require_text(comment_prefix, "commentPrefix")
    _require_text(block_comment_start, "blockCommentStartDelimiter")
    _require_text(block_comment_end, "blockCommentEndDelimiter")

    statements: list[Statement] = []
    buf: list[str] = []
    in_single_quote = False
    in_double_quote = False
    in_escape = False

    def emit() -> None:
        statements.append(Statement("".join(buf), len(statements) + 1, resource))
        buf.clear()

    i = 0
    length = len(script)
    while i < length:
        c = script[i]
        if in_escape:
            in_escape = False
            buf.append(c)
            i += 1
            continue
        if c == "\\":
            in_escape = True
            buf.append(c)
            i += 1
            continue

        if c == "'" and not in_double_quote:
            in_single_quote = not in_single_quote
        elif c == '"' and not in_single_quote:
            in_double_quote = not in_double_quote

        if not in_single_quote and not in_double_quote:
            if separator and script.startswith(separator, i):
                if buf:
                    emit()
                i += len(separator)
                continue
            if script.startswith(comment_prefix, i):
                eol = script.find("\n", i)
                if eol == -1:
                    break
                i = eol + 1
                continue
            if script.startswith(block_comment_start, i):
                end = script.find(block_comment_end, i)
                if end == -1:
                    raise ScriptParseError(
                        f"Missing block comment end delimiter: {block_comment_end}", resource
                    )
                i = end + len(block_comment_end)
                continue
            if c in _WHITESPACE:
                if buf and buf[-1] != " ":
                    buf.append(" ")
                i += 1
                continue

        buf.append(c)
        i += 1

    if "".join(buf).strip():
        emit()
    return statements


def contains_sql_script_delimiters(script: str, delimiter: str) -> bool:
    """
    Return ``True`` if *delimiter* occurs in *script* outside a single-quoted
    literal.  Double quotes are not tracked here.
    """
    in_literal = False
    for i, c in enumerate(script):
        if c == "'":
            in_literal = not in_literal
        if not in_literal and script.startswith(delimiter, i):
            return True
    return False


def resolve_separator(script: str, separator: str | None) -> str:
    """
    Pick the separator to split *script* with.

    ``None`` means the default ``;``.  The end-of-script sentinel is kept as
    is; any other separator that never occurs outside a literal is replaced
    by a newline.
    """
    if separator is None:
        separator = DEFAULT_STATEMENT_SEPARATOR
    if separator == EOF_STATEMENT_SEPARATOR:
        return separator
    if not contains_sql_script_delimiters(script, separator):
        return FALLBACK_STATEMENT_SEPARATOR
    return separator
