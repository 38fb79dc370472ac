from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from clients.models import Field, QueryResult, StatementKind


@dataclass
class RawResultSet:
    """Rows of one executed statement plus the driver's affected-row count, if any."""

    rows: List[Dict[str, Any]] = field(default_factory=list)
    affected_rows: Optional[int] = None


RawRows = Sequence[Mapping[str, Any]]
RawBatch = Union[RawRows, Sequence[Union[RawRows, RawResultSet]]]


def parse_row_query_result(
    rows: Optional[RawRows],
    command: Optional[StatementKind],
    affected_rows: Optional[int] = None,
) -> QueryResult:
    data = [dict(row) for row in (rows or [])]
    fields = [Field(name=str(name)) for name in (data[0].keys() if data else [])]
    row_count = len(data)
    if affected_rows is None or affected_rows < 0:
        affected_rows = row_count
    return QueryResult(
        command=command,
        rows=data,
        fields=fields,
        row_count=row_count,
        affected_rows=affected_rows,
    )


def _is_result_set(item: Any) -> bool:
    return isinstance(item, RawResultSet) or (
        isinstance(item, Sequence) and not isinstance(item, (str, bytes, Mapping))
    )


def normalize_results(raw: Optional[RawBatch], commands: Sequence[Optional[StatementKind]]) -> List[QueryResult]:
    batch: List[Any] = list(raw or [])
    if not batch or not _is_result_set(batch[0]):
        batch = [batch]

    results: List[QueryResult] = []
    for idx, result_set in enumerate(batch):
        command = commands[idx] if idx < len(commands) else None
        if isinstance(result_set, RawResultSet):
            results.append(parse_row_query_result(result_set.rows, command, result_set.affected_rows))
        else:
            results.append(parse_row_query_result(result_set, command))
    return results
