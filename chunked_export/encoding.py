"""
CSV field encoding for exported rows.

Values are quoted only when they contain a delimiter, a double quote or a line
break; embedded double quotes are doubled (RFC 4180). ``None`` renders as an
empty field rather than the literal string "None".
"""

from __future__ import annotations

from typing import Iterable, Optional

DELIMITER = ","
QUOTE = '"'
_QUOTE_TRIGGERS = (DELIMITER, QUOTE, "\r", "\n")


def encode_field(value: Optional[str]) -> str:
    """Escape a single value for a comma-delimited line."""
    if value is None:
        return ""
    if not any(trigger in value for trigger in _QUOTE_TRIGGERS):
        return value
    return QUOTE + value.replace(QUOTE, QUOTE * 2) + QUOTE


def encode_row(fields: Iterable[Optional[str]]) -> str:
    """Encode every field and join them into one line (without terminator)."""
    return DELIMITER.join(encode_field(field) for field in fields)


__all__ = ["encode_field", "encode_row"]
