"""
Delimiters and keyword tables shared by the splitter and the executor.
"""
from __future__ import annotations

DEFAULT_STATEMENT_SEPARATOR = ";"

# Used when the configured separator never occurs outside a literal.
FALLBACK_STATEMENT_SEPARATOR = "\n"

# Virtual separator: the whole script is one statement.  A script should
# never actually contain this text.
EOF_STATEMENT_SEPARATOR = "^^^ END OF SCRIPT ^^^"

DEFAULT_COMMENT_PREFIX = "--"
DEFAULT_BLOCK_COMMENT_START_DELIMITER = "/*"
DEFAULT_BLOCK_COMMENT_END_DELIMITER = "*/"

STATEMENT_TERMINATOR = ";"

# Leading keywords of statements replayed by the per-statement pass.
EXECUTABLE_KEYWORDS = ("alter", "comment", "insert", "update", "delete", "commit", "create")

# Recovery pass: DML lines mark the end of the CREATE part of a block ...
DML_KEYWORDS = ("insert", "update", "delete")
# ... and these end the block altogether.
BLOCK_STOP_KEYWORDS = ("alter", "comment", "commit", "drop")

# Oracle reports a stray ';' as ORA-00911.
INVALID_CHARACTER_MARKERS = ("ORA-00911", "invalid character", "无效字符")
