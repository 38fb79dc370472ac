from __future__ import annotations

from typing import List, Optional

import sqlparse
from loguru import logger
from sqlparse import tokens as T
from sqlparse.sql import Statement

from clients.models import StatementKind

_OBJECT_TYPES = {
    "TABLE": "TABLE",
    "VIEW": "VIEW",
    "INDEX": "INDEX",
    "TRIGGER": "TRIGGER",
    "FUNCTION": "FUNCTION",
    "PROCEDURE": "PROCEDURE",
    "PROC": "PROCEDURE",
    "DATABASE": "DATABASE",
    "KEYSPACE": "DATABASE",
    "SCHEMA": "SCHEMA",
}

_LEADING_KEYWORDS = {
    "SELECT": StatementKind.SELECT,
    "INSERT": StatementKind.INSERT,
    "UPDATE": StatementKind.UPDATE,
    "DELETE": StatementKind.DELETE,
    "MERGE": StatementKind.MERGE,
    "REPLACE": StatementKind.REPLACE,
    "UPSERT": StatementKind.UPSERT,
    "TRUNCATE": StatementKind.TRUNCATE,
    "SHOW": StatementKind.SHOW,
    "USE": StatementKind.USE,
    "EXPLAIN": StatementKind.EXPLAIN,
    "GRANT": StatementKind.GRANT,
    "REVOKE": StatementKind.REVOKE,
    "BEGIN": StatementKind.BEGIN,
    "START": StatementKind.BEGIN,
    "COMMIT": StatementKind.COMMIT,
    "ROLLBACK": StatementKind.ROLLBACK,
}

_DDL_VERBS = {"CREATE", "DROP", "ALTER"}


def _has_content(sql: str) -> bool:
    stripped = sqlparse.format(sql, strip_comments=True).strip()
    return bool(stripped.strip(";").strip())


def split_statements(text: str) -> List[str]:
    return [stmt.strip() for stmt in sqlparse.split(text or "") if _has_content(stmt)]


def _leading_words(statement: Statement, limit: int = 8) -> List[str]:
    words: List[str] = []
    for token in statement.flatten():
        if token.is_whitespace or token.ttype in T.Comment:
            continue
        if token.ttype in T.Punctuation or token.ttype in T.Operator:
            continue
        words.extend(token.value.upper().split())
        if len(words) >= limit:
            break
    return words[:limit]


def _ddl_kind(verb: str, words: List[str]) -> StatementKind:
    for word in words:
        object_type = _OBJECT_TYPES.get(word)
        if object_type:
            return StatementKind(f"{verb}_{object_type}")
    return StatementKind(verb)


def _classify(statement: Statement) -> Optional[StatementKind]:
    words = _leading_words(statement)
    if not words:
        return None
    statement_type = statement.get_type().split()[0]
    if statement_type in _DDL_VERBS or words[0] in _DDL_VERBS:
        verb = statement_type if statement_type in _DDL_VERBS else words[0]
        return _ddl_kind(verb, words[1:])
    if statement_type != "UNKNOWN":
        try:
            return StatementKind(statement_type)
        except ValueError:
            pass
    return _LEADING_KEYWORDS.get(words[0])


def identify_commands(text: str) -> List[StatementKind]:
    """Statement kinds of every statement in ``text``, in order.

    Returns an empty list when any statement cannot be classified; callers
    treat every result set as unlabelled in that case.
    """
    try:
        kinds: List[StatementKind] = []
        for statement in sqlparse.parse(text or ""):
            if not _has_content(str(statement)):
                continue
            kind = _classify(statement)
            if kind is None:
                logger.debug(f"Unable to classify statement: {str(statement).strip()[:80]!r}")
                return []
            kinds.append(kind)
        return kinds
    except Exception as exc:
        logger.debug(f"Statement classification failed: {exc}")
        return []
