"""
Where scripts come from.

A resource only has to know how to open itself as a text stream and how to
describe itself in log lines and error messages.
"""
from __future__ import annotations

import contextlib
import io
import pathlib
import typing as t

from dbscript.constants import DEFAULT_COMMENT_PREFIX, DEFAULT_STATEMENT_SEPARATOR
from dbscript.errors import CannotReadScriptError


class ScriptResource:
    """An SQL script file on disk."""

    def __init__(self, path: pathlib.Path | str, encoding: str = "utf-8") -> None:
        self.path: pathlib.Path = pathlib.Path(path)
        self.encoding: str = encoding

    def open(self) -> t.TextIO:
        return self.path.open("r", encoding=self.encoding)

    def __str__(self) -> str:
        return f"file [{self.path}]"

    def __repr__(self) -> str:
        return f"ScriptResource({str(self.path)!r}, encoding={self.encoding!r})"


class InlineResource:
    """Script text that is already in memory."""

    def __init__(self, text: str, name: str = "<inline>") -> None:
        self.text: str = text
        self.name: str = name

    def open(self) -> t.TextIO:
        return io.StringIO(self.text)

    def __str__(self) -> str:
        return self.name

    def __repr__(self) -> str:
        return f"InlineResource(name={self.name!r})"


class StreamResource:
    """An already open text stream; it is read but never closed here."""

    def __init__(self, stream: t.TextIO, name: str | None = None) -> None:
        self.stream = stream
        self.name: str = name or str(getattr(stream, "name", "<stream>"))

    def open(self) -> t.ContextManager[t.TextIO]:
        return contextlib.nullcontext(self.stream)

    def __str__(self) -> str:
        return self.name

    def __repr__(self) -> str:
        return f"StreamResource(name={self.name!r})"


def as_resource(source: t.Any, encoding: str = "utf-8") -> t.Any:
    """Paths become :class:`ScriptResource`, bare streams :class:`StreamResource`."""
    if isinstance(source, (str, pathlib.Path)):
        return ScriptResource(source, encoding)
    if not hasattr(source, "open") and hasattr(source, "read"):
        return StreamResource(source)
    return source


def _append_separator_if_necessary(script: str, separator: str | None) -> str:
    # A separator ending in whitespace (e.g. ";\n") would miss the last
    # statement once the final line break is gone.
    if separator is None:
        return script
    trimmed = separator.strip()
    if len(trimmed) == len(separator):
        return script
    if script.endswith(trimmed):
        return script + separator[len(trimmed):]
    return script


def read_script(
    reader: t.Iterable[str],
    comment_prefix: str | None = DEFAULT_COMMENT_PREFIX,
    separator: str | None = DEFAULT_STATEMENT_SEPARATOR,
) -> str:
    """
    Build the script text from the lines of *reader*.

    Lines *beginning* with *comment_prefix* are dropped; comments anywhere
    else are kept and left to the splitter.
    """
    lines: list[str] = []
    for line in reader:
        line = line.rstrip("\r\n")
        if comment_prefix is None or not line.startswith(comment_prefix):
            lines.append(line)
    return _append_separator_if_necessary("\n".join(lines), separator)


def load_script(
    resource: t.Any,
    comment_prefix: str | None = DEFAULT_COMMENT_PREFIX,
    separator: str | None = DEFAULT_STATEMENT_SEPARATOR,
) -> str:
    """
    Open *resource* and return its script text.  I/O problems, and sources
    that cannot be opened or read at all, are wrapped.
    """
    resource = as_resource(resource)
    try:
        with resource.open() as fh:
            return read_script(fh, comment_prefix, separator)
    except (OSError, UnicodeDecodeError, AttributeError, TypeError) as exc:
        raise CannotReadScriptError(resource, exc) from exc
