from __future__ import annotations

import re
from typing import Optional

_ARRAY_INDEX = re.compile(r"^(.*?)(\[[0-9]\])$")


def wrap_identifier(
    value: str,
    quote: str = '"',
    close_quote: Optional[str] = None,
    array_index: bool = True,
) -> str:
    if value == "*":
        return value
    if array_index:
        matched = _ARRAY_INDEX.match(value)
        if matched:
            base, suffix = matched.groups()
            return wrap_identifier(base, quote, close_quote, array_index) + suffix
    closing = close_quote or quote
    return f"{quote}{value.replace(closing, closing * 2)}{closing}"


def wrap_double_quoted(value: str) -> str:
    return wrap_identifier(value, '"')


def wrap_backticked(value: str) -> str:
    return wrap_identifier(value, "`", array_index=False)


def wrap_bracketed(value: str) -> str:
    return wrap_identifier(value, "[", "]", array_index=False)


def quote_literal(value: str) -> str:
    return "'" + str(value).replace("'", "''") + "'"
