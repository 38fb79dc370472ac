from __future__ import annotations

from collections import OrderedDict
from typing import Any, Dict, List, Optional, Sequence

from clients.base import DatabaseAdapter, QueryHandle
from clients.filters import and_clause, build_database_filter, build_schema_filter, where_clause
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


class PostgresAdapter(DatabaseAdapter):
    engine = "postgresql"
    fallback_schema = "public"

    @classmethod
    async def open_connection(cls, config: ConnectionConfig) -> Any:
        try:
            import psycopg  # type: ignore
            from psycopg.rows import dict_row  # type: ignore
        except ImportError as exc:
            raise ImportError(
                'No PostgreSQL driver found. Install it with `python -m pip install "psycopg[binary]"`.'
            ) from exc

        params: Dict[str, Any] = {
            "host": config.socket_path or config.host,
            "port": config.port,
            "dbname": config.database,
            "user": config.user,
            "password": config.password,
            "sslmode": "require" if config.ssl else "prefer",
        }
        params = {key: value for key, value in params.items() if value is not None}
        return await psycopg.AsyncConnection.connect(autocommit=True, row_factory=dict_row, **params)

    async def _close(self) -> None:
        await self.connection.close()

    async def _fetch(self, sql: str, params: Sequence[Any] = ()) -> List[Dict[str, Any]]:
        async with self.connection.cursor() as cur:
            await cur.execute(sql, params or None)
            return list(await cur.fetchall())

    async def _run_batch(self, text: str) -> List[RawResultSet]:
        result_sets: List[RawResultSet] = []
        async with self.connection.cursor() as cur:
            await cur.execute(text)
            while True:
                if cur.description is not None:
                    result_sets.append(RawResultSet(rows=list(await cur.fetchall())))
                else:
                    result_sets.append(RawResultSet(rows=[], affected_rows=cur.rowcount))
                if not cur.nextset():
                    break
        return result_sets

    def query(self, text: str) -> QueryHandle:
        async def cancel() -> None:
            self.log.debug("cancelling running query")
            self.connection.cancel()

        return QueryHandle(text, lambda: self.execute_query(text), cancel)

    async def list_tables(self, filter: FilterLike = None) -> List[TableInfo]:
        schema_filter = build_schema_filter(filter, "table_schema")
        rows = await self.fetch(
            f"""
            SELECT table_schema, table_name
            FROM information_schema.tables
            WHERE table_type = 'BASE TABLE'
            {and_clause(schema_filter)}
            ORDER BY table_schema, table_name
            """
        )
        return [TableInfo(schema=row["table_schema"], name=row["table_name"]) for row in rows]

    async def list_views(self, filter: FilterLike = None) -> List[TableInfo]:
        schema_filter = build_schema_filter(filter, "table_schema")
        rows = await self.fetch(
            f"""
            SELECT table_schema, table_name
            FROM information_schema.views
            {where_clause(schema_filter)}
            ORDER BY table_schema, table_name
            """
        )
        return [TableInfo(schema=row["table_schema"], name=row["table_name"]) for row in rows]

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
            SELECT DISTINCT trigger_name, action_timing, event_manipulation
            FROM information_schema.triggers
            WHERE event_object_schema = %s
              AND event_object_table = %s
            ORDER BY trigger_name, event_manipulation
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
                i.relname AS index_name,
                a.attname AS column_name,
                ix.indisunique AS is_unique,
                ix.indisprimary AS is_primary
            FROM pg_class t
            JOIN pg_namespace n ON n.oid = t.relnamespace
            JOIN pg_index ix ON ix.indrelid = t.oid
            JOIN pg_class i ON i.oid = ix.indexrelid
            JOIN pg_attribute a ON a.attrelid = t.oid AND a.attnum = ANY(ix.indkey)
            WHERE n.nspname = %s
              AND t.relname = %s
            ORDER BY i.relname, array_position(ix.indkey::int2[], a.attnum)
            """,
            (schema or self.default_schema, table),
        )
        grouped: "OrderedDict[str, Dict[str, Any]]" = OrderedDict()
        for row in rows:
            entry = grouped.setdefault(
                row["index_name"],
                {"columns": [], "unique": bool(row["is_unique"]), "primary": bool(row["is_primary"])},
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
            SELECT DISTINCT ccu.table_name AS referenced_table
            FROM information_schema.table_constraints tc
            JOIN information_schema.constraint_column_usage ccu
              ON ccu.constraint_name = tc.constraint_name
             AND ccu.constraint_schema = tc.constraint_schema
            WHERE tc.constraint_type = 'FOREIGN KEY'
              AND tc.table_schema = %s
              AND tc.table_name = %s
            ORDER BY referenced_table
            """,
            (schema or self.default_schema, table),
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
                CASE WHEN tc.constraint_type = 'FOREIGN KEY' THEN (
                    SELECT DISTINCT ccu.table_name
                    FROM information_schema.constraint_column_usage ccu
                    WHERE ccu.constraint_name = tc.constraint_name
                      AND ccu.constraint_schema = tc.constraint_schema
                ) ELSE NULL END AS referenced_table,
                tc.constraint_type
            FROM information_schema.table_constraints tc
            JOIN information_schema.key_column_usage kcu
              ON kcu.constraint_name = tc.constraint_name
             AND kcu.constraint_schema = tc.constraint_schema
             AND kcu.table_name = tc.table_name
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
        database_filter = build_database_filter(filter, "datname")
        rows = await self.fetch(
            f"""
            SELECT datname
            FROM pg_database
            WHERE datistemplate = false
            {and_clause(database_filter)}
            ORDER BY datname
            """
        )
        return [row["datname"] for row in rows]

    def get_query_select_top(self, table: str, limit: int, schema: Optional[str] = None) -> str:
        return f"SELECT * FROM {self.qualified(table, schema or self.default_schema)} LIMIT {int(limit)}"

    async def get_table_create_script(self, table: str, schema: Optional[str] = None) -> str:
        target_schema = schema or self.default_schema
        columns = await self.fetch(
            """
            SELECT
                a.attname AS column_name,
                pg_catalog.format_type(a.atttypid, a.atttypmod) AS data_type,
                a.attnotnull AS not_null,
                pg_catalog.pg_get_expr(d.adbin, d.adrelid) AS column_default
            FROM pg_attribute a
            JOIN pg_class c ON c.oid = a.attrelid
            JOIN pg_namespace n ON n.oid = c.relnamespace
            LEFT JOIN pg_attrdef d ON d.adrelid = a.attrelid AND d.adnum = a.attnum
            WHERE n.nspname = %s
              AND c.relname = %s
              AND a.attnum > 0
              AND NOT a.attisdropped
            ORDER BY a.attnum
            """,
            (target_schema, table),
        )
        if not columns:
            return ""
        constraints = await self.fetch(
            """
            SELECT con.conname, pg_catalog.pg_get_constraintdef(con.oid, true) AS definition
            FROM pg_constraint con
            JOIN pg_class c ON c.oid = con.conrelid
            JOIN pg_namespace n ON n.oid = c.relnamespace
            WHERE n.nspname = %s
              AND c.relname = %s
            ORDER BY CASE con.contype WHEN 'p' THEN 0 ELSE 1 END, con.conname
            """,
            (target_schema, table),
        )

        lines = []
        for col in columns:
            line = f"  {self.wrap_identifier(col['column_name'])} {col['data_type']}"
            if col["not_null"]:
                line += " NOT NULL"
            if col["column_default"] is not None:
                line += f" DEFAULT {col['column_default']}"
            lines.append(line)
        for con in constraints:
            lines.append(f"  CONSTRAINT {self.wrap_identifier(con['conname'])} {con['definition']}")
        body = ",\n".join(lines)
        return f"CREATE TABLE {self.qualified(table, target_schema)} (\n{body}\n);"

    async def get_view_create_script(self, view: str, schema: Optional[str] = None) -> str:
        qualified = self.qualified(view, schema or self.default_schema)
        rows = await self.fetch("SELECT pg_get_viewdef(%s::regclass, true) AS definition", (qualified,))
        if not rows or rows[0]["definition"] is None:
            return ""
        return f"CREATE OR REPLACE VIEW {qualified} AS\n{rows[0]['definition']}"

    async def get_routine_create_script(self, routine: str, schema: Optional[str] = None) -> str:
        rows = await self.fetch(
            """
            SELECT pg_catalog.pg_get_functiondef(p.oid) AS definition
            FROM pg_proc p
            JOIN pg_namespace n ON n.oid = p.pronamespace
            WHERE p.proname = %s
              AND n.nspname = %s
            ORDER BY p.oid
            """,
            (routine, schema or self.default_schema),
        )
        return "\n".join(row["definition"] for row in rows if row["definition"])

    async def _list_table_names(self, database: str) -> List[str]:
        rows = await self.fetch(
            """
            SELECT table_name
            FROM information_schema.tables
            WHERE table_schema = %s
              AND table_type = 'BASE TABLE'
            ORDER BY table_name
            """,
            (database or self.default_schema,),
        )
        return [row["table_name"] for row in rows]

    def truncate_statement(self, database: str, table: str) -> str:
        return f"TRUNCATE TABLE {self.qualified(table, database or self.default_schema)} RESTART IDENTITY CASCADE"
