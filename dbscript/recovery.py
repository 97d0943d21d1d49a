"""
Rebuild ``CREATE`` blocks straight from the raw script text.

Export tools often emit procedures, triggers and packages whose bodies
contain the statement separator, so the splitter cuts them into fragments
that cannot run on their own.  The recovery pass ignores the split
statements, cuts the raw text on ``\\nCREATE `` instead and feeds every
block line by line through :class:`RecoveryBlockBuilder`.
"""
from __future__ import annotations

import dataclasses
import enum
import re
import typing as t

from dbscript.constants import BLOCK_STOP_KEYWORDS, DML_KEYWORDS
from dbscript.preprocess import PROMPT, SLASH_TERMINATOR, strip_spool_off, strip_trailing_slash
from dbscript.utils import starts_with_keyword

CREATE = "CREATE "
CREATE_BOUNDARY = "\n" + CREATE

_BEGIN_MARKERS = ("begin", "BEGIN")
_END_RE = re.compile(r"\bend\b", re.IGNORECASE)

# Shorter bodies cannot be a real statement.
MIN_BODY_LENGTH = 5
MIN_PREFIX_LENGTH = 10


class BlockState(enum.Enum):
    ACCUMULATING = "accumulating"
    PREFIX_CAPTURED = "prefix-captured"
    STOPPED = "stopped"


@dataclasses.dataclass(frozen=True)
class RecoveryBlock:
    """A rebuilt ``CREATE`` block and the CREATE-only prefix to fall back to."""

    body: str
    prefix: str

    def fallback_allowed(self) -> bool:
        """Table DDL was already replayed by the main pass and is never retried."""
        return (
            "table " not in self.prefix
            and "TABLE " not in self.prefix
            and len(self.prefix) > MIN_PREFIX_LENGTH
        )


class RecoveryBlockBuilder:
    """
    Line state machine for one block.

    * ``ACCUMULATING``: lines are appended to the body.
    * ``PREFIX_CAPTURED``: the first DML line froze the prefix; the body keeps
      growing so the full block can be attempted first.
    * ``STOPPED``: an ALTER/COMMENT/COMMIT/DROP line ended the block.
    """

    def __init__(self) -> None:
        self.state = BlockState.ACCUMULATING
        self._lines: list[str] = []
        self._prefix: str | None = None

    @property
    def body(self) -> str:
        return "".join(self._lines)

    @property
    def prefix(self) -> str:
        return self._prefix or ""

    def _capture_prefix(self) -> None:
        if self._prefix is None:
            self._prefix = self.body

    def feed(self, line: str) -> None:
        if self.state is BlockState.STOPPED:
            return

        trimmed = line.strip()
        if starts_with_keyword(trimmed, DML_KEYWORDS):
            self._capture_prefix()
            self.state = BlockState.PREFIX_CAPTURED
        if starts_with_keyword(trimmed, BLOCK_STOP_KEYWORDS):
            self._capture_prefix()
            self.state = BlockState.STOPPED
            return

        if starts_with_keyword(trimmed, (PROMPT,)) or trimmed == SLASH_TERMINATOR:
            return
        self._lines.append(line + "\n")

    def build(self) -> RecoveryBlock | None:
        body = repair_block(self.body)
        if len(body.strip()) <= MIN_BODY_LENGTH:
            return None
        prefix = strip_trailing_slash(strip_spool_off(self.prefix))
        return RecoveryBlock(CREATE + body, CREATE + prefix)


def repair_block(body: str) -> str:
    """
    Strip ``spool off`` and a trailing ``/``; a procedural block is cut
    right after its last ``END`` and closed with ``END;``.
    """
    body = strip_trailing_slash(strip_spool_off(body))
    if any(marker in body for marker in _BEGIN_MARKERS):
        last_end = None
        for last_end in _END_RE.finditer(body):
            pass
        if last_end is not None:
            body = body[: last_end.start()] + "END;"
    return body


def split_create_blocks(script: str) -> list[str]:
    """
    Cut *script* on ``CREATE`` at the start of a line, returning the text
    after each ``CREATE ``.  Text before the first ``CREATE`` is dropped.
    """
    normalized = script.replace("create ", CREATE)
    head, *rest = normalized.split(CREATE_BOUNDARY)
    head = head.lstrip()
    if head.startswith(CREATE):
        rest.insert(0, head[len(CREATE):])
    return rest


def build_recovery_blocks(script: str) -> t.Iterator[RecoveryBlock]:
    for raw in split_create_blocks(script):
        lines = raw.split("\n")
        if len(lines) <= 1:
            continue
        builder = RecoveryBlockBuilder()
        for line in lines:
            builder.feed(line)
        block = builder.build()
        if block is not None:
            yield block
