from __future__ import annotations

import re
import sqlite3
from typing import Any, Dict, List, Optional, Sequence

from clients.base import DatabaseAdapter, QueryHandle
from clients.commands import split_statements
from clients.models import ColumnInfo, ConnectionConfig, FilterLike, IndexInfo, KeyInfo, TableInfo, TriggerInfo
from clients.results import RawResultSet

_TRIGGER_HEADER = re.compile(
    r"CREATE\s+(?:TEMP(?:ORARY)?\s+)?TRIGGER\s+(?:IF\s+NOT\s+EXISTS\s+)?\S+\s+"
    r"(BEFORE|AFTER|INSTEAD\s+OF)?\s*(INSERT|UPDATE|DELETE)",
    re.IGNORECASE,
)


class SQLiteAdapter(DatabaseAdapter):
    engine = "sqlite"

    @classmethod
    async def open_connection(cls, config: ConnectionConfig) -> Any:
        try:
            import aiosqlite  # type: ignore
        except ImportError as exc:
            raise ImportError("No SQLite driver found. Install it with `python -m pip install aiosqlite`.") from exc

        conn = await aiosqlite.connect(config.database or ":memory:", isolation_level=None)
        conn.row_factory = sqlite3.Row
        return conn

    async def _close(self) -> None:
        await self.connection.close()

    async def _fetch(self, sql: str, params: Sequence[Any] = ()) -> List[Dict[str, Any]]:
        async with self.connection.execute(sql, tuple(params)) as cursor:
            return [dict(row) for row in await cursor.fetchall()]

    async def _run_batch(self, text: str) -> List[RawResultSet]:
        result_sets: List[RawResultSet] = []
        for statement in split_statements(text):
            async with self.connection.execute(statement) as cursor:
                if cursor.description:
                    result_sets.append(RawResultSet(rows=[dict(row) for row in await cursor.fetchall()]))
                else:
                    result_sets.append(RawResultSet(rows=[], affected_rows=cursor.rowcount))
        return result_sets

    def query(self, text: str) -> QueryHandle:
        return QueryHandle(text, lambda: self.execute_query(text))

    async def _master_names(self, object_type: str, table: Optional[str] = None) -> List[Dict[str, Any]]:
        sql = "SELECT name, tbl_name, sql FROM sqlite_master WHERE type = ? AND name NOT LIKE 'sqlite\\_%' ESCAPE '\\'"
        params: List[Any] = [object_type]
        if table is not None:
            sql += " AND tbl_name = ?"
            params.append(table)
        return await self.fetch(sql + " ORDER BY name", params)

    async def list_tables(self, filter: FilterLike = None) -> List[TableInfo]:
        return [TableInfo(name=row["name"]) for row in await self._master_names("table")]

    async def list_views(self, filter: FilterLike = None) -> List[TableInfo]:
        return [TableInfo(name=row["name"]) for row in await self._master_names("view")]

    async def list_table_columns(
        self, database: Optional[str], table: str, schema: Optional[str] = None
    ) -> List[ColumnInfo]:
        rows = await self.fetch(f"PRAGMA table_info({self.wrap_identifier(table)})")
        return [
            ColumnInfo(column_name=row["name"], data_type=row["type"] or "", position=int(row["cid"]) + 1)
            for row in sorted(rows, key=lambda r: int(r["cid"]))
        ]

    async def list_table_triggers(self, table: str, schema: Optional[str] = None) -> List[TriggerInfo]:
        triggers: List[TriggerInfo] = []
        for row in await self._master_names("trigger", table):
            matched = _TRIGGER_HEADER.search(row["sql"] or "")
            timing = event = None
            if matched:
                timing = " ".join((matched.group(1) or "BEFORE").upper().split())
                event = matched.group(2).upper()
            triggers.append(TriggerInfo(name=row["name"], timing=timing, event=event))
        return triggers

    async def list_table_indexes(
        self, database: Optional[str], table: str, schema: Optional[str] = None
    ) -> List[IndexInfo]:
        indexes: List[IndexInfo] = []
        for index in await self.fetch(f"PRAGMA index_list({self.wrap_identifier(table)})"):
            columns = await self.fetch(f"PRAGMA index_info({self.wrap_identifier(index['name'])})")
            indexes.append(
                IndexInfo(
                    name=index["name"],
                    columns=[col["name"] for col in sorted(columns, key=lambda c: int(c["seqno"]))],
                    unique=bool(index["unique"]),
                    primary=index.get("origin") == "pk",
                )
            )
        return sorted(indexes, key=lambda idx: idx.name)

    async def list_schemas(self, filter: FilterLike = None) -> List[str]:
        return []

    async def get_table_references(self, table: str, schema: Optional[str] = None) -> List[str]:
        rows = await self.fetch(f"PRAGMA foreign_key_list({self.wrap_identifier(table)})")
        return sorted({row["table"] for row in rows})

    async def get_table_keys(
        self, database: Optional[str], table: str, schema: Optional[str] = None
    ) -> List[KeyInfo]:
        columns = await self.fetch(f"PRAGMA table_info({self.wrap_identifier(table)})")
        keys = [
            KeyInfo(column_name=col["name"], key_type="PRIMARY KEY")
            for col in sorted(columns, key=lambda c: int(c["pk"]))
            if int(col["pk"]) > 0
        ]
        for fk in await self.fetch(f"PRAGMA foreign_key_list({self.wrap_identifier(table)})"):
            keys.append(KeyInfo(column_name=fk["from"], key_type="FOREIGN KEY", referenced_table=fk["table"]))
        return keys

    async def _script(self, object_type: str, name: str) -> str:
        rows = await self.fetch(
            "SELECT sql FROM sqlite_master WHERE type = ? AND name = ?",
            (object_type, name),
        )
        return (rows[0]["sql"] or "") if rows else ""

    async def get_table_create_script(self, table: str, schema: Optional[str] = None) -> str:
        return await self._script("table", table)

    async def get_view_create_script(self, view: str, schema: Optional[str] = None) -> str:
        return await self._script("view", view)

    async def _list_table_names(self, database: str) -> List[str]:
        return [row["name"] for row in await self._master_names("table")]

    def truncate_statement(self, database: str, table: str) -> str:
        return f"DELETE FROM {self.wrap_identifier(table)}"
