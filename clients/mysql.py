from __future__ import annotations

from collections import OrderedDict
from typing import Any, Dict, List, Optional, Sequence

from clients.base import DatabaseAdapter, QueryHandle
from clients.filters import and_clause, build_database_filter, build_schema_filter, where_clause
from clients.identifiers import wrap_backticked
from clients.models import (
    ColumnInfo,
    ConnectionConfig,
    Filter,
    FilterLike,
    IndexInfo,
    KeyInfo,
    RoutineInfo,
    TableInfo,
    TriggerInfo,
)
from clients.results import RawResultSet


def _driver():
    try:
        import aiomysql  # type: ignore
    except ImportError as exc:
        raise ImportError("No MySQL driver found. Install it with `python -m pip install aiomysql`.") from exc
    return aiomysql


def _connect_params(config: ConnectionConfig) -> Dict[str, Any]:
    from pymysql.constants import CLIENT  # type: ignore

    ssl_context = None
    if config.ssl:
        import ssl

        ssl_context = ssl.create_default_context()
    params: Dict[str, Any] = {
        "host": config.host or "localhost",
        "port": config.port or 3306,
        "user": config.user,
        "password": config.password or "",
        "db": config.database,
        "unix_socket": config.socket_path,
        "ssl": ssl_context,
        "autocommit": True,
        "client_flag": CLIENT.MULTI_STATEMENTS,
    }
    return {key: value for key, value in params.items() if value is not None}


class MySQLAdapter(DatabaseAdapter):
    engine = "mysql"

    @classmethod
    async def open_connection(cls, config: ConnectionConfig) -> Any:
        aiomysql = _driver()
        return await aiomysql.connect(cursorclass=aiomysql.DictCursor, **_connect_params(config))

    async def _close(self) -> None:
        self.connection.close()

    async def _fetch(self, sql: str, params: Sequence[Any] = ()) -> List[Dict[str, Any]]:
        async with self.connection.cursor() as cur:
            await cur.execute(sql, params or None)
            return [dict(row) for row in await cur.fetchall()]

    async def _run_batch(self, text: str) -> List[RawResultSet]:
        result_sets: List[RawResultSet] = []
        async with self.connection.cursor() as cur:
            await cur.execute(text)
            while True:
                if cur.description:
                    result_sets.append(RawResultSet(rows=[dict(row) for row in await cur.fetchall()]))
                else:
                    result_sets.append(RawResultSet(rows=[], affected_rows=cur.rowcount))
                if not await cur.nextset():
                    break
        return result_sets

    def wrap_identifier(self, value: str) -> str:
        return wrap_backticked(value)

    @property
    def default_schema(self) -> Optional[str]:
        return self.config.database

    def _database(self, *candidates: Optional[str]) -> Optional[str]:
        for candidate in candidates:
            if candidate:
                return candidate
        return self.config.database

    def query(self, text: str) -> QueryHandle:
        async def cancel() -> None:
            thread_id = self.connection.server_thread_id[0]
            self.log.debug(f"killing running query on thread {thread_id}")
            aiomysql = _driver()
            killer = await aiomysql.connect(**_connect_params(self.config))
            try:
                async with killer.cursor() as cur:
                    await cur.execute(f"KILL QUERY {int(thread_id)}")
            finally:
                killer.close()

        return QueryHandle(text, lambda: self.execute_query(text), cancel)

    def _scope(self, filter: FilterLike, field: str) -> str:
        # Without an explicit filter, listings are scoped to the connected database.
        if Filter.coerce(filter).is_empty:
            return f"{field} = DATABASE()"
        return build_schema_filter(filter, field)

    async def list_tables(self, filter: FilterLike = None) -> List[TableInfo]:
        rows = await self.fetch(
            f"""
            SELECT table_schema AS table_schema, table_name AS table_name
            FROM information_schema.tables
            WHERE table_type = 'BASE TABLE'
              AND {self._scope(filter, "table_schema")}
            ORDER BY table_schema, table_name
            """
        )
        return [TableInfo(schema=row["table_schema"], name=row["table_name"]) for row in rows]

    async def list_views(self, filter: FilterLike = None) -> List[TableInfo]:
        rows = await self.fetch(
            f"""
            SELECT table_schema AS table_schema, table_name AS table_name
            FROM information_schema.views
            WHERE {self._scope(filter, "table_schema")}
            ORDER BY table_schema, table_name
            """
        )
        return [TableInfo(schema=row["table_schema"], name=row["table_name"]) for row in rows]

    async def list_routines(self, filter: FilterLike = None) -> List[RoutineInfo]:
        rows = await self.fetch(
            f"""
            SELECT
                routine_schema AS routine_schema,
                routine_name AS routine_name,
                routine_type AS routine_type,
                routine_definition AS routine_definition
            FROM information_schema.routines
            WHERE {self._scope(filter, "routine_schema")}
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
            SELECT
                column_name AS column_name,
                data_type AS data_type,
                ordinal_position AS ordinal_position
            FROM information_schema.columns
            WHERE table_schema = %s
              AND table_name = %s
            ORDER BY ordinal_position
            """,
            (self._database(schema, database), table),
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
                trigger_name AS trigger_name,
                action_timing AS action_timing,
                event_manipulation AS event_manipulation
            FROM information_schema.triggers
            WHERE event_object_schema = %s
              AND event_object_table = %s
            ORDER BY trigger_name
            """,
            (self._database(schema), table),
        )
        return [
            TriggerInfo(name=row["trigger_name"], timing=row["action_timing"], event=row["event_manipulation"])
            for row in rows
        ]

    async def list_table_indexes(
        self, database: Optional[str], table: str, schema: Optional[str] = None
    ) -> List[IndexInfo]:
        target = self._database(schema, database)
        rows = await self.fetch(f"SHOW INDEX FROM {self.qualified(table, target)}")
        grouped: "OrderedDict[str, Dict[str, Any]]" = OrderedDict()
        for row in sorted(rows, key=lambda r: (r["Key_name"], int(r["Seq_in_index"]))):
            entry = grouped.setdefault(
                row["Key_name"],
                {"columns": [], "unique": not int(row["Non_unique"]), "primary": row["Key_name"] == "PRIMARY"},
            )
            entry["columns"].append(row["Column_name"])
        return [IndexInfo(name=name, **entry) for name, entry in grouped.items()]

    async def list_schemas(self, filter: FilterLike = None) -> List[str]:
        return []

    async def get_table_references(self, table: str, schema: Optional[str] = None) -> List[str]:
        rows = await self.fetch(
            """
            SELECT DISTINCT referenced_table_name AS referenced_table
            FROM information_schema.key_column_usage
            WHERE referenced_table_name IS NOT NULL
              AND table_schema = %s
              AND table_name = %s
            ORDER BY referenced_table
            """,
            (self._database(schema), table),
        )
        return [row["referenced_table"] for row in rows]

    async def get_table_keys(
        self, database: Optional[str], table: str, schema: Optional[str] = None
    ) -> List[KeyInfo]:
        rows = await self.fetch(
            """
            SELECT
                constraint_name AS constraint_name,
                column_name AS column_name,
                referenced_table_name AS referenced_table
            FROM information_schema.key_column_usage
            WHERE table_schema = %s
              AND table_name = %s
              AND (referenced_table_name IS NOT NULL OR constraint_name = 'PRIMARY')
            ORDER BY constraint_name, ordinal_position
            """,
            (self._database(schema, database), table),
        )
        return [
            KeyInfo(
                constraint_name=row["constraint_name"],
                column_name=row["column_name"],
                referenced_table=row["referenced_table"],
                key_type="FOREIGN KEY" if row["referenced_table"] else "PRIMARY KEY",
            )
            for row in rows
        ]

    async def list_databases(self, filter: FilterLike = None) -> List[str]:
        database_filter = build_database_filter(filter, "schema_name")
        rows = await self.fetch(
            f"""
            SELECT schema_name AS database_name
            FROM information_schema.schemata
            {where_clause(database_filter)}
            ORDER BY schema_name
            """
        )
        return [row["database_name"] for row in rows]

    async def _show_create(self, kind: str, name: str, schema: Optional[str], column: str) -> str:
        rows = await self.fetch(f"SHOW CREATE {kind} {self.qualified(name, schema)}")
        if not rows:
            return ""
        return rows[0].get(column) or ""

    async def get_table_create_script(self, table: str, schema: Optional[str] = None) -> str:
        return await self._show_create("TABLE", table, schema, "Create Table")

    async def get_view_create_script(self, view: str, schema: Optional[str] = None) -> str:
        return await self._show_create("VIEW", view, schema, "Create View")

    async def get_routine_create_script(self, routine: str, schema: Optional[str] = None) -> str:
        rows = await self.fetch(
            f"""
            SELECT routine_type AS routine_type
            FROM information_schema.routines
            WHERE routine_name = %s
              {and_clause("routine_schema = %s" if schema else "routine_schema = DATABASE()")}
            """,
            (routine, schema) if schema else (routine,),
        )
        if not rows:
            return ""
        routine_type = str(rows[0]["routine_type"]).upper()
        return await self._show_create(routine_type, routine, schema, f"Create {routine_type.title()}")

    async def _list_table_names(self, database: str) -> List[str]:
        rows = await self.fetch(
            """
            SELECT table_name AS table_name
            FROM information_schema.tables
            WHERE table_schema = %s
              AND table_type = 'BASE TABLE'
            ORDER BY table_name
            """,
            (self._database(database),),
        )
        return [row["table_name"] for row in rows]

    def truncate_statement(self, database: str, table: str) -> str:
        target = self.qualified(table, self._database(database))
        return f"SET FOREIGN_KEY_CHECKS = 0; TRUNCATE TABLE {target}; SET FOREIGN_KEY_CHECKS = 1;"
