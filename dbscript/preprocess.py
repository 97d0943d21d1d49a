"""
Clean-up of SQL*Plus artefacts left in statements by export tools.
"""
from __future__ import annotations

PROMPT = "prompt"
SPOOL_OFF = "spool off"
SLASH_TERMINATOR = "/"

# Fewer prompts than this are assumed to be part of the statement itself.
_PROMPT_CHATTER_THRESHOLD = 3


def strip_prompt_chatter(sql: str) -> str:
    """Keep only the text after the last ``prompt`` once it repeats enough."""
    if sql.count(PROMPT) >= _PROMPT_CHATTER_THRESHOLD:
        return sql[sql.rindex(PROMPT) + len(PROMPT):]
    return sql


def strip_spool_off(sql: str) -> str:
    return sql.replace(SPOOL_OFF, " ")


def strip_trailing_slash(sql: str) -> str:
    """Drop a trailing ``/`` block terminator (and the whitespace after it)."""
    stripped = sql.rstrip()
    if stripped.endswith(SLASH_TERMINATOR):
        return stripped[: stripped.rindex(SLASH_TERMINATOR)]
    return sql


def preprocess(sql: str) -> str:
    """
    Return *sql* without ``prompt`` chatter, ``spool off`` directives and a
    trailing ``/``.  Clean statements come back unchanged.
    """
    return strip_trailing_slash(strip_spool_off(strip_prompt_chatter(sql)))
