from __future__ import annotations

import asyncio
from collections import OrderedDict
from typing import Any, Dict, List, Optional, Sequence

from clients.base import DatabaseAdapter, QueryHandle
from clients.filters import and_clause, build_database_filter, build_schema_filter, where_clause
from clients.identifiers import wrap_bracketed
from clients.models import (
    ColumnInfo,
    ConnectionConfig,
    FilterLike,
    IndexInfo,
    KeyInfo,
    RoutineInfo,
    TableInfo,
    TriggerInfo,
)
from clients.results import RawResultSet

_SIZED_TYPES = {"char", "varchar", "nchar", "nvarchar", "binary", "varbinary"}


def _driver():
    try:
        import pymssql  # type: ignore
    except ImportError as exc:
        raise ImportError("No SQL Server driver found. Install it with `python -m pip install pymssql`.") from exc
    return pymssql


class SqlServerAdapter(DatabaseAdapter):
    engine = "sqlserver"
    fallback_schema = "dbo"

    @classmethod
    async def open_connection(cls, config: ConnectionConfig) -> Any:
        pymssql = _driver()
        user = config.user
        if config.domain and user:
            user = f"{config.domain}\\{user}"
        params: Dict[str, Any] = {
            "server": config.host or "localhost",
            "port": str(config.port or 1433),
            "user": user,
            "password": config.password,
            "database": config.database,
            "as_dict": True,
            "autocommit": True,
        }
        if config.ssl:
            params["encryption"] = "require"
        params = {key: value for key, value in params.items() if value is not None}
        return await asyncio.to_thread(pymssql.connect, **params)

    async def _close(self) -> None:
        await asyncio.to_thread(self.connection.close)

    def _fetch_sync(self, sql: str, params: Sequence[Any]) -> List[Dict[str, Any]]:
        cursor = self.connection.cursor()
        try:
            cursor.execute(sql, tuple(params) if params else None)
            return [dict(row) for row in cursor.fetchall()]
        finally:
            cursor.close()

    def _run_batch_sync(self, text: str) -> List[RawResultSet]:
        result_sets: List[RawResultSet] = []
        cursor = self.connection.cursor()
        try:
            cursor.execute(text)
            while True:
                if cursor.description:
                    result_sets.append(RawResultSet(rows=[dict(row) for row in cursor.fetchall()]))
                else:
                    result_sets.append(RawResultSet(rows=[], affected_rows=cursor.rowcount))
                if not cursor.nextset():
                    break
        finally:
            cursor.close()
        return result_sets

    async def _fetch(self, sql: str, params: Sequence[Any] = ()) -> List[Dict[str, Any]]:
        return await asyncio.to_thread(self._fetch_sync, sql, params)

    async def _run_batch(self, text: str) -> List[RawResultSet]:
        return await asyncio.to_thread(self._run_batch_sync, text)

    def wrap_identifier(self, value: str) -> str:
        return wrap_bracketed(value)

    def query(self, text: str) -> QueryHandle:
        async def cancel() -> None:
            self.log.debug("cancelling running query")
            # pymssql only exposes cancel on the underlying _mssql connection.
            await asyncio.to_thread(self.connection._conn.cancel)

        return QueryHandle(text, lambda: self.execute_query(text), cancel)

    async def _list_objects(self, source: str, extra: str, filter: FilterLike) -> List[TableInfo]:
        schema_filter = build_schema_filter(filter, "table_schema")
        conditions = " AND ".join(part for part in (extra, schema_filter) if part)
        rows = await self.fetch(
            f"""
            SELECT table_schema, table_name
            FROM {source}
            {where_clause(conditions)}
            ORDER BY table_schema, table_name
            """
        )
        return [TableInfo(schema=row["table_schema"], name=row["table_name"]) for row in rows]

    async def list_tables(self, filter: FilterLike = None) -> List[TableInfo]:
        return await self._list_objects("information_schema.tables", "table_type = 'BASE TABLE'", filter)

    async def list_views(self, filter: FilterLike = None) -> List[TableInfo]:
        return await self._list_objects("information_schema.views", "", filter)

    async def list_routines(self, filter: FilterLike = None) -> List[RoutineInfo]:
        schema_filter = build_schema_filter(filter, "routine_schema")
        rows = await self.fetch(
            f"""
            SELECT routine_schema, routine_name, routine_type, routine_definition
            FROM information_schema.routines
            {where_clause(schema_filter)}
            ORDER BY routine_schema, routine_name
            """
        )
        return [
            RoutineInfo(
                schema=row["routine_schema"],
                routine_name=row["routine_name"],
                routine_type=row["routine_type"],
                routine_definition=row["routine_definition"],
            )
            for row in rows
        ]

    async def list_table_columns(
        self, database: Optional[str], table: str, schema: Optional[str] = None
    ) -> List[ColumnInfo]:
        rows = await self.fetch(
            """
            SELECT column_name, data_type, ordinal_position
            FROM information_schema.columns
            WHERE table_schema = %s
              AND table_name = %s
            ORDER BY ordinal_position
            """,
            (schema or self.default_schema, table),
        )
        return [
            ColumnInfo(
                column_name=row["column_name"],
                data_type=row["data_type"],
                position=int(row["ordinal_position"]),
            )
            for row in rows
        ]

    async def list_table_triggers(self, table: str, schema: Optional[str] = None) -> List[TriggerInfo]:
        rows = await self.fetch(
            """
            SELECT
                tr.name AS trigger_name,
                CASE WHEN tr.is_instead_of_trigger = 1 THEN 'INSTEAD OF' ELSE 'AFTER' END AS action_timing,
                te.type_desc AS event_manipulation
            FROM sys.triggers tr
            JOIN sys.tables t ON t.object_id = tr.parent_id
            JOIN sys.schemas s ON s.schema_id = t.schema_id
            JOIN sys.trigger_events te ON te.object_id = tr.object_id
            WHERE s.name = %s
              AND t.name = %s
            ORDER BY tr.name
            """,
            (schema or self.default_schema, table),
        )
        return [
            TriggerInfo(name=row["trigger_name"], timing=row["action_timing"], event=row["event_manipulation"])
            for row in rows
        ]

    async def list_table_indexes(
        self, database: Optional[str], table: str, schema: Optional[str] = None
    ) -> List[IndexInfo]:
        rows = await self.fetch(
            """
            SELECT
                i.name AS index_name,
                c.name AS column_name,
                i.is_unique,
                i.is_primary_key
            FROM sys.indexes i
            JOIN sys.index_columns ic ON ic.object_id = i.object_id AND ic.index_id = i.index_id
            JOIN sys.columns c ON c.object_id = ic.object_id AND c.column_id = ic.column_id
            JOIN sys.tables t ON t.object_id = i.object_id
            JOIN sys.schemas s ON s.schema_id = t.schema_id
            WHERE s.name = %s
              AND t.name = %s
              AND i.name IS NOT NULL
            ORDER BY i.name, ic.key_ordinal
            """,
            (schema or self.default_schema, table),
        )
        grouped: "OrderedDict[str, Dict[str, Any]]" = OrderedDict()
        for row in rows:
            entry = grouped.setdefault(
                row["index_name"],
                {"columns": [], "unique": bool(row["is_unique"]), "primary": bool(row["is_primary_key"])},
            )
            entry["columns"].append(row["column_name"])
        return [IndexInfo(name=name, **entry) for name, entry in grouped.items()]

    async def list_schemas(self, filter: FilterLike = None) -> List[str]:
        schema_filter = build_schema_filter(filter, "schema_name")
        rows = await self.fetch(
            f"""
            SELECT schema_name
            FROM information_schema.schemata
            {where_clause(schema_filter)}
            ORDER BY schema_name
            """
        )
        return [row["schema_name"] for row in rows]

    async def get_table_references(self, table: str, schema: Optional[str] = None) -> List[str]:
        rows = await self.fetch(
            """
            SELECT DISTINCT OBJECT_NAME(fk.referenced_object_id) AS referenced_table
            FROM sys.foreign_keys fk
            WHERE fk.parent_object_id = OBJECT_ID(%s)
            ORDER BY referenced_table
            """,
            (self.qualified(table, schema or self.default_schema),),
        )
        return [row["referenced_table"] for row in rows]

    async def get_table_keys(
        self, database: Optional[str], table: str, schema: Optional[str] = None
    ) -> List[KeyInfo]:
        rows = await self.fetch(
            """
            SELECT
                tc.constraint_name,
                kcu.column_name,
                CASE WHEN tc.constraint_type = 'FOREIGN KEY'
                     THEN OBJECT_NAME(sfk.referenced_object_id) ELSE NULL END AS referenced_table,
                tc.constraint_type
            FROM information_schema.table_constraints tc
            JOIN information_schema.key_column_usage kcu
              ON kcu.constraint_name = tc.constraint_name
             AND kcu.table_schema = tc.table_schema
            LEFT JOIN sys.foreign_keys sfk ON sfk.name = tc.constraint_name
            WHERE tc.table_schema = %s
              AND tc.table_name = %s
              AND tc.constraint_type IN ('PRIMARY KEY', 'FOREIGN KEY')
            ORDER BY tc.constraint_name, kcu.ordinal_position
            """,
            (schema or self.default_schema, table),
        )
        return [
            KeyInfo(
                constraint_name=row["constraint_name"],
                column_name=row["column_name"],
                referenced_table=row["referenced_table"],
                key_type=row["constraint_type"],
            )
            for row in rows
        ]

    async def list_databases(self, filter: FilterLike = None) -> List[str]:
        database_filter = build_database_filter(filter, "name")
        rows = await self.fetch(
            f"""
            SELECT name
            FROM sys.databases
            {where_clause(database_filter)}
            ORDER BY name
            """
        )
        return [row["name"] for row in rows]

    def get_query_select_top(self, table: str, limit: int, schema: Optional[str] = None) -> str:
        return f"SELECT TOP {int(limit)} * FROM {self.qualified(table, schema or self.default_schema)}"

    async def get_table_create_script(self, table: str, schema: Optional[str] = None) -> str:
        target_schema = schema or self.default_schema
        columns = await self.fetch(
            """
            SELECT column_name, data_type, character_maximum_length, is_nullable, column_default
            FROM information_schema.columns
            WHERE table_schema = %s
              AND table_name = %s
            ORDER BY ordinal_position
            """,
            (target_schema, table),
        )
        if not columns:
            return ""
        keys = await self.get_table_keys(None, table, target_schema)

        lines = []
        for col in columns:
            data_type = col["data_type"]
            length = col["character_maximum_length"]
            if data_type in _SIZED_TYPES and length is not None:
                data_type += "(max)" if int(length) == -1 else f"({int(length)})"
            line = f"  {self.wrap_identifier(col['column_name'])} {data_type}"
            if col["is_nullable"] == "NO":
                line += " NOT NULL"
            if col["column_default"] is not None:
                line += f" DEFAULT {col['column_default']}"
            lines.append(line)

        primary = [key for key in keys if key.key_type == "PRIMARY KEY"]
        if primary:
            key_columns = ", ".join(self.wrap_identifier(key.column_name) for key in primary)
            lines.append(f"  CONSTRAINT {self.wrap_identifier(primary[0].constraint_name)} PRIMARY KEY ({key_columns})")
        body = ",\n".join(lines)
        return f"CREATE TABLE {self.qualified(table, target_schema)} (\n{body}\n)"

    async def _object_definition(self, name: str, schema: Optional[str]) -> str:
        rows = await self.fetch(
            "SELECT OBJECT_DEFINITION(OBJECT_ID(%s)) AS definition",
            (self.qualified(name, schema or self.default_schema),),
        )
        return (rows[0]["definition"] or "") if rows else ""

    async def get_view_create_script(self, view: str, schema: Optional[str] = None) -> str:
        return await self._object_definition(view, schema)

    async def get_routine_create_script(self, routine: str, schema: Optional[str] = None) -> str:
        return await self._object_definition(routine, schema)

    async def _list_table_names(self, database: str) -> List[str]:
        rows = await self.fetch(
            f"""
            SELECT table_name
            FROM information_schema.tables
            WHERE table_type = 'BASE TABLE'
              AND table_schema = %s
              {and_clause("table_catalog = %s" if database else "")}
            ORDER BY table_name
            """,
            (self.default_schema, database) if database else (self.default_schema,),
        )
        return [row["table_name"] for row in rows]

    def truncate_statement(self, database: str, table: str) -> str:
        target = self.qualified(table, self.default_schema)
        if database:
            target = f"{self.wrap_identifier(database)}.{target}"
        return f"TRUNCATE TABLE {target}"
