from __future__ import annotations

import dataclasses
import enum
import typing as t


@dataclasses.dataclass(frozen=True)
class Script:
    """Raw script text together with where it came from and its separator."""

    text: str
    resource: t.Any
    separator: str

    def __post_init__(self) -> None:
        if not self.text.strip():
            raise ValueError("'script' must not be null or empty")


@dataclasses.dataclass(frozen=True)
class Statement:
    """One statement emitted by the splitter; ``number`` is 1-based."""

    text: str
    number: int
    resource: t.Any = None

    def with_text(self, text: str) -> Statement:
        return dataclasses.replace(self, text=text)

    def __str__(self) -> str:
        return self.text


class ExecutionOutcome(enum.Enum):
    EXECUTED = "executed"
    SKIPPED_NOT_CLASSIFIED = "skipped-not-classified"
    FAILED_TOLERATED = "failed-tolerated"
    FAILED_FATAL = "failed-fatal"
