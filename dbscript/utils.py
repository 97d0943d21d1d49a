"""
Generic helpers that are reused across sub‑modules.
"""
from __future__ import annotations

import functools
import re
import typing as t


@functools.lru_cache(maxsize=None)
def _keyword_re(keywords: tuple[str, ...]) -> re.Pattern[str]:
    return re.compile(r"(?:%s)\b" % "|".join(map(re.escape, keywords)), re.IGNORECASE)


def starts_with_keyword(sql: str, keywords: t.Iterable[str]) -> bool:
    """
    Return ``True`` if *sql* (leading whitespace ignored) begins with one of
    *keywords* as a whole word, case-insensitively.
    """
    return _keyword_re(tuple(keywords)).match(sql.lstrip()) is not None


def is_drop(sql: str) -> bool:
    return sql.strip().lower().startswith("drop")
