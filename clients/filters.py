from __future__ import annotations

from typing import Iterable

from clients.identifiers import quote_literal
from clients.models import Filter, FilterLike


def _literal_list(names: Iterable[str]) -> str:
    return ", ".join(quote_literal(name) for name in sorted({name.lower() for name in names}))


def build_filter(filter: FilterLike, field: str) -> str:
    """Predicate fragment restricting ``field`` to the filter, or "" when unconstrained.

    Matching is case-insensitive. When both ``only`` and ``ignore`` are set,
    ``only`` is used and ``ignore`` is dropped.
    """
    spec = Filter.coerce(filter)
    if spec.only:
        return f"LOWER({field}) IN ({_literal_list(spec.only)})"
    if spec.ignore:
        return f"LOWER({field}) NOT IN ({_literal_list(spec.ignore)})"
    return ""


def build_schema_filter(filter: FilterLike, field: str = "schema_name") -> str:
    return build_filter(filter, field)


def build_database_filter(filter: FilterLike, field: str = "database_name") -> str:
    return build_filter(filter, field)


def and_clause(fragment: str) -> str:
    return f"AND {fragment}" if fragment else ""


def where_clause(fragment: str) -> str:
    return f"WHERE {fragment}" if fragment else ""


def matches_filter(name: str, filter: FilterLike) -> bool:
    spec = Filter.coerce(filter)
    lowered = (name or "").lower()
    if spec.only:
        return lowered in {value.lower() for value in spec.only}
    if spec.ignore:
        return lowered not in {value.lower() for value in spec.ignore}
    return True
