from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional, Sequence

from clients.base import DatabaseAdapter
from clients.commands import split_statements
from clients.filters import and_clause, build_schema_filter, where_clause
from clients.models import ColumnInfo, ConnectionConfig, FilterLike, KeyInfo, TableInfo
from clients.results import RawResultSet


def build_connection_string(config: ConnectionConfig) -> str:
    parts = [
        f"DATABASE={config.database or ''}",
        f"HOSTNAME={config.host or ''}",
        f"PORT={config.port or ''}",
        "PROTOCOL=TCPIP",
        f"UID={config.user or ''}",
        f"PWD={config.password or ''}",
    ]
    # TODO: accept SSLServerCertificate=<arm file> once server configs carry a certificate path.
    if config.ssl:
        parts.append("Security=SSL")
    return ";".join(parts) + ";"


def _fetch_all(ibm_db: Any, stmt: Any) -> List[Dict[str, Any]]:
    rows: List[Dict[str, Any]] = []
    row = ibm_db.fetch_assoc(stmt)
    while row:
        rows.append(dict(row))
        row = ibm_db.fetch_assoc(stmt)
    return rows


class IbmDb2Adapter(DatabaseAdapter):
    engine = "ibm_db2"

    @staticmethod
    def _driver():
        try:
            import ibm_db  # type: ignore
        except ImportError as exc:
            raise ImportError(
                "No IBM DB2 driver found. Install it with `python -m pip install ibm_db`."
            ) from exc
        return ibm_db

    @classmethod
    async def open_connection(cls, config: ConnectionConfig) -> Any:
        ibm_db = cls._driver()
        return await asyncio.to_thread(ibm_db.connect, build_connection_string(config), "", "")

    @property
    def default_schema(self) -> Optional[str]:
        return self.config.schema or (self.config.user or "").upper() or None

    async def _close(self) -> None:
        await asyncio.to_thread(self._driver().close, self.connection)

    def _fetch_sync(self, sql: str, params: Sequence[Any]) -> List[Dict[str, Any]]:
        ibm_db = self._driver()
        stmt = ibm_db.prepare(self.connection, sql)
        try:
            ibm_db.execute(stmt, tuple(params))
            return [{key.lower(): value for key, value in row.items()} for row in _fetch_all(ibm_db, stmt)]
        finally:
            ibm_db.free_stmt(stmt)

    def _run_batch_sync(self, text: str) -> List[RawResultSet]:
        ibm_db = self._driver()
        result_sets: List[RawResultSet] = []
        for statement in split_statements(text):
            stmt = ibm_db.exec_immediate(self.connection, statement.rstrip(";"))
            try:
                if ibm_db.num_fields(stmt) > 0:
                    result_sets.append(RawResultSet(rows=_fetch_all(ibm_db, stmt)))
                else:
                    result_sets.append(RawResultSet(rows=[], affected_rows=ibm_db.num_rows(stmt)))
            finally:
                ibm_db.free_stmt(stmt)
        return result_sets

    async def _fetch(self, sql: str, params: Sequence[Any] = ()) -> List[Dict[str, Any]]:
        return await asyncio.to_thread(self._fetch_sync, sql, params)

    async def _run_batch(self, text: str) -> List[RawResultSet]:
        return await asyncio.to_thread(self._run_batch_sync, text)

    async def _list_objects(self, object_type: str, filter: FilterLike) -> List[TableInfo]:
        schema_filter = build_schema_filter(filter, "RTRIM(creator)")
        rows = await self.fetch(
            f"""
            SELECT RTRIM(creator) AS creator, name
            FROM sysibm.systables
            WHERE type = ?
            {and_clause(schema_filter)}
            ORDER BY creator, name
            """,
            (object_type,),
        )
        return [TableInfo(schema=row["creator"], name=row["name"]) for row in rows]

    async def list_tables(self, filter: FilterLike = None) -> List[TableInfo]:
        return await self._list_objects("T", filter)

    async def list_views(self, filter: FilterLike = None) -> List[TableInfo]:
        return await self._list_objects("V", filter)

    async def list_table_columns(
        self, database: Optional[str], table: str, schema: Optional[str] = None
    ) -> List[ColumnInfo]:
        rows = await self.fetch(
            """
            SELECT colno AS position, colname AS column_name, typename AS data_type
            FROM syscat.columns
            WHERE tabschema = ?
              AND tabname = ?
            ORDER BY colno
            """,
            (schema or self.default_schema, table),
        )
        return [
            ColumnInfo(
                column_name=row["column_name"],
                data_type=str(row["data_type"]).strip(),
                position=int(row["position"]) + 1,
            )
            for row in rows
        ]

    async def list_schemas(self, filter: FilterLike = None) -> List[str]:
        schema_filter = build_schema_filter(filter, "RTRIM(schemaname)")
        rows = await self.fetch(
            f"""
            SELECT RTRIM(schemaname) AS name
            FROM syscat.schemata
            {where_clause(schema_filter)}
            ORDER BY name
            """
        )
        return [row["name"] for row in rows]

    async def get_table_keys(
        self, database: Optional[str], table: str, schema: Optional[str] = None
    ) -> List[KeyInfo]:
        rows = await self.fetch(
            """
            SELECT
                RTRIM(k.constname) AS constraint_name,
                RTRIM(k.colname) AS column_name,
                RTRIM(r.reftabname) AS referenced_table,
                c.type AS constraint_type
            FROM syscat.keycoluse k
            JOIN syscat.tabconst c
              ON c.constname = k.constname
             AND c.tabschema = k.tabschema
             AND c.tabname = k.tabname
            LEFT JOIN syscat.references r
              ON r.constname = k.constname
             AND r.tabschema = k.tabschema
             AND r.tabname = k.tabname
            WHERE k.tabschema = ?
              AND k.tabname = ?
              AND c.type IN ('P', 'F')
            ORDER BY k.constname, k.colseq
            """,
            (schema or self.default_schema, table),
        )
        return [
            KeyInfo(
                constraint_name=row["constraint_name"],
                column_name=row["column_name"],
                referenced_table=row["referenced_table"],
                key_type="PRIMARY KEY" if row["constraint_type"] == "P" else "FOREIGN KEY",
            )
            for row in rows
        ]

    async def _list_table_names(self, database: str) -> List[str]:
        rows = await self.fetch(
            """
            SELECT name
            FROM sysibm.systables
            WHERE type = 'T'
              AND RTRIM(creator) = ?
            ORDER BY name
            """,
            (database,),
        )
        return [row["name"] for row in rows]

    def truncate_statement(self, database: str, table: str) -> str:
        return f"TRUNCATE TABLE {self.qualified(table, database)} IMMEDIATE"
