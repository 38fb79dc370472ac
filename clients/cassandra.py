from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional, Sequence

from clients.base import DatabaseAdapter
from clients.commands import split_statements
from clients.filters import matches_filter
from clients.models import ColumnInfo, ConnectionConfig, Filter, FilterLike, KeyInfo, TableInfo
from clients.results import RawResultSet

_COLUMN_KIND_ORDER = {"partition_key": 0, "clustering": 1, "static": 2, "regular": 3}
_KEY_TYPES = {"partition_key": "PRIMARY KEY", "clustering": "CLUSTERING KEY"}


class CassandraAdapter(DatabaseAdapter):
    engine = "cassandra"

    @classmethod
    async def open_connection(cls, config: ConnectionConfig) -> Any:
        try:
            from cassandra.auth import PlainTextAuthProvider  # type: ignore
            from cassandra.cluster import Cluster  # type: ignore
            from cassandra.query import dict_factory  # type: ignore
        except ImportError as exc:
            raise ImportError(
                "No Cassandra driver found. Install it with `python -m pip install cassandra-driver`."
            ) from exc

        auth_provider = None
        if config.user:
            auth_provider = PlainTextAuthProvider(username=config.user, password=config.password or "")
        cluster = Cluster(
            contact_points=[config.host or "127.0.0.1"],
            port=config.port or 9042,
            auth_provider=auth_provider,
        )
        try:
            session = await asyncio.to_thread(cluster.connect, config.database or None)
        except Exception:
            cluster.shutdown()
            raise
        session.row_factory = dict_factory
        session.default_fetch_size = None
        return session

    @property
    def keyspace(self) -> Optional[str]:
        return self.config.database

    async def _close(self) -> None:
        await asyncio.to_thread(self.connection.cluster.shutdown)

    def _submit(self, statement: str, params: Optional[Sequence[Any]] = None) -> "asyncio.Future[List[Dict[str, Any]]]":
        loop = asyncio.get_running_loop()
        future: "asyncio.Future[List[Dict[str, Any]]]" = loop.create_future()

        def resolve(rows: Any) -> None:
            if not future.done():
                future.set_result([dict(row) for row in (rows or [])])

        def reject(exc: BaseException) -> None:
            if not future.done():
                future.set_exception(exc)

        response = self.connection.execute_async(statement, params)
        response.add_callbacks(
            callback=lambda rows: loop.call_soon_threadsafe(resolve, rows),
            errback=lambda exc: loop.call_soon_threadsafe(reject, exc),
        )
        return future

    async def _fetch(self, sql: str, params: Sequence[Any] = ()) -> List[Dict[str, Any]]:
        return await self._submit(sql, tuple(params) or None)

    async def _run_batch(self, text: str) -> List[RawResultSet]:
        result_sets: List[RawResultSet] = []
        for statement in split_statements(text):
            rows = await self._submit(statement.rstrip(";"))
            result_sets.append(RawResultSet(rows=rows))
        return result_sets

    async def _keyspaces(self, filter: FilterLike) -> List[str]:
        spec = Filter.coerce(filter)
        if spec.is_empty:
            return [self.keyspace] if self.keyspace else []
        return [name for name in await self.list_databases() if matches_filter(name, spec)]

    async def _list_objects(self, source: str, name_column: str, filter: FilterLike) -> List[TableInfo]:
        found: List[TableInfo] = []
        for keyspace in await self._keyspaces(filter):
            rows = await self.fetch(
                f"SELECT {name_column} FROM system_schema.{source} WHERE keyspace_name = %s",
                (keyspace,),
            )
            found.extend(TableInfo(schema=keyspace, name=row[name_column]) for row in rows)
        return sorted(found, key=lambda info: (info.schema or "", info.name))

    async def list_tables(self, filter: FilterLike = None) -> List[TableInfo]:
        return await self._list_objects("tables", "table_name", filter)

    async def list_views(self, filter: FilterLike = None) -> List[TableInfo]:
        return await self._list_objects("views", "view_name", filter)

    async def _columns(self, keyspace: Optional[str], table: str) -> List[Dict[str, Any]]:
        rows = await self.fetch(
            """
            SELECT column_name, type, kind, position
            FROM system_schema.columns
            WHERE keyspace_name = %s
              AND table_name = %s
            """,
            (keyspace or self.keyspace, table),
        )
        return sorted(
            rows,
            key=lambda row: (_COLUMN_KIND_ORDER.get(row["kind"], 99), row["position"], row["column_name"]),
        )

    async def list_table_columns(
        self, database: Optional[str], table: str, schema: Optional[str] = None
    ) -> List[ColumnInfo]:
        rows = await self._columns(database or schema, table)
        return [
            ColumnInfo(column_name=row["column_name"], data_type=row["type"], position=idx)
            for idx, row in enumerate(rows, start=1)
        ]

    async def list_schemas(self, filter: FilterLike = None) -> List[str]:
        return []

    async def get_table_keys(
        self, database: Optional[str], table: str, schema: Optional[str] = None
    ) -> List[KeyInfo]:
        rows = await self._columns(database or schema, table)
        return [
            KeyInfo(column_name=row["column_name"], key_type=_KEY_TYPES[row["kind"]])
            for row in rows
            if row["kind"] in _KEY_TYPES
        ]

    async def list_databases(self, filter: FilterLike = None) -> List[str]:
        rows = await self.fetch("SELECT keyspace_name FROM system_schema.keyspaces")
        return sorted(row["keyspace_name"] for row in rows if matches_filter(row["keyspace_name"], filter))

    async def _list_table_names(self, database: str) -> List[str]:
        rows = await self.fetch(
            "SELECT table_name FROM system_schema.tables WHERE keyspace_name = %s",
            (database or self.keyspace,),
        )
        return sorted(row["table_name"] for row in rows)

    def truncate_statement(self, database: str, table: str) -> str:
        return f"TRUNCATE {self.qualified(table, database or self.keyspace)}"
