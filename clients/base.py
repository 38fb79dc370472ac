from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from loguru import logger

from clients.commands import identify_commands
from clients.errors import AdapterError, QueryError, UnsupportedOperationError
from clients.identifiers import wrap_double_quoted
from clients.models import (
    ColumnInfo,
    ConnectionConfig,
    FeatureFlag,
    FilterLike,
    IndexInfo,
    KeyInfo,
    QueryResult,
    RoutineInfo,
    TableInfo,
    TriggerInfo,
)
from clients.registry import ClientDescriptor
from clients.results import RawBatch, normalize_results


class QueryHandle:
    """Interactive query: run it with ``execute()``; ``cancel()`` only where the backend can."""

    def __init__(
        self,
        text: str,
        execute: Callable[[], Awaitable[List[QueryResult]]],
        cancel: Optional[Callable[[], Awaitable[None]]] = None,
    ):
        self.text = text
        self._execute = execute
        self._cancel = cancel
        self.running = False

    @property
    def can_cancel(self) -> bool:
        return self._cancel is not None

    async def execute(self) -> List[QueryResult]:
        self.running = True
        try:
            return await self._execute()
        finally:
            self.running = False

    async def cancel(self) -> None:
        if self._cancel is None:
            raise UnsupportedOperationError("Query cancellation is not supported by this client")
        if self.running:
            await self._cancel()


class DatabaseAdapter(ABC):
    engine: str = "unknown"
    fallback_schema: Optional[str] = None

    def __init__(self, descriptor: ClientDescriptor, config: ConnectionConfig, connection: Any):
        self.descriptor = descriptor
        self.config = config
        self.connection = connection
        self._lock = asyncio.Lock()
        self.log = logger.bind(client=self.engine)

    @classmethod
    async def connect(cls, descriptor: ClientDescriptor, config: ConnectionConfig) -> "DatabaseAdapter":
        connection = await cls.open_connection(config)
        return cls(descriptor, config, connection)

    @classmethod
    @abstractmethod
    async def open_connection(cls, config: ConnectionConfig) -> Any:
        raise NotImplementedError

    @abstractmethod
    async def _close(self) -> None:
        raise NotImplementedError

    @abstractmethod
    async def _fetch(self, sql: str, params: Sequence[Any] = ()) -> List[Dict[str, Any]]:
        raise NotImplementedError

    @abstractmethod
    async def _run_batch(self, text: str) -> RawBatch:
        raise NotImplementedError

    @abstractmethod
    async def _list_table_names(self, database: str) -> List[str]:
        raise NotImplementedError

    @property
    def default_schema(self) -> Optional[str]:
        return self.config.schema or self.fallback_schema

    async def fetch(self, sql: str, params: Sequence[Any] = ()) -> List[Dict[str, Any]]:
        try:
            async with self._lock:
                return await self._fetch(sql, tuple(params))
        except AdapterError:
            raise
        except Exception as exc:
            raise QueryError(str(exc), sql=sql, original=exc) from exc

    async def run_batch(self, text: str) -> RawBatch:
        try:
            async with self._lock:
                return await self._run_batch(text)
        except AdapterError:
            raise
        except Exception as exc:
            raise QueryError(str(exc), sql=text, original=exc) from exc

    async def disconnect(self) -> None:
        try:
            await self._close()
        except Exception as exc:
            self.log.warning(f"Error while closing connection: {exc}")
        self.log.debug("disconnected")

    @abstractmethod
    async def list_tables(self, filter: FilterLike = None) -> List[TableInfo]:
        raise NotImplementedError

    @abstractmethod
    async def list_views(self, filter: FilterLike = None) -> List[TableInfo]:
        raise NotImplementedError

    async def list_routines(self, filter: FilterLike = None) -> List[RoutineInfo]:
        return []

    @abstractmethod
    async def list_table_columns(
        self, database: Optional[str], table: str, schema: Optional[str] = None
    ) -> List[ColumnInfo]:
        raise NotImplementedError

    async def list_table_triggers(self, table: str, schema: Optional[str] = None) -> List[TriggerInfo]:
        return []

    async def list_table_indexes(
        self, database: Optional[str], table: str, schema: Optional[str] = None
    ) -> List[IndexInfo]:
        return []

    @abstractmethod
    async def list_schemas(self, filter: FilterLike = None) -> List[str]:
        raise NotImplementedError

    async def get_table_references(self, table: str, schema: Optional[str] = None) -> List[str]:
        return []

    @abstractmethod
    async def get_table_keys(
        self, database: Optional[str], table: str, schema: Optional[str] = None
    ) -> List[KeyInfo]:
        raise NotImplementedError

    def query(self, text: str) -> QueryHandle:
        raise UnsupportedOperationError(f'"query" is not implemented by the {self.engine} client')

    async def execute_query(self, text: str) -> List[QueryResult]:
        commands = identify_commands(text)
        self.log.debug(f"executing query ({len(commands)} classified statements)")
        raw = await self.run_batch(text)
        return normalize_results(raw, commands)

    async def list_databases(self, filter: FilterLike = None) -> List[str]:
        return [self.config.database] if self.config.database else []

    def get_query_select_top(self, table: str, limit: int, schema: Optional[str] = None) -> str:
        return f"SELECT * FROM {self.qualified(table, schema)} LIMIT {int(limit)}"

    async def get_table_create_script(self, table: str, schema: Optional[str] = None) -> str:
        return ""

    async def get_view_create_script(self, view: str, schema: Optional[str] = None) -> str:
        return ""

    async def get_routine_create_script(self, routine: str, schema: Optional[str] = None) -> str:
        return ""

    def truncate_statement(self, database: str, table: str) -> str:
        return f"TRUNCATE TABLE {self.wrap_identifier(database)}.{self.wrap_identifier(table)}"

    async def truncate_all_tables(self, database: str) -> None:
        tables = await self._list_table_names(database)
        self.log.debug(f"truncating {len(tables)} tables in {database}")
        statements = [self.truncate_statement(database, table) for table in tables]
        outcomes = await asyncio.gather(
            *(self.execute_query(statement) for statement in statements),
            return_exceptions=True,
        )
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                raise outcome

    def wrap_identifier(self, value: str) -> str:
        return wrap_double_quoted(value)

    def qualified(self, name: str, schema: Optional[str] = None) -> str:
        if schema:
            return f"{self.wrap_identifier(schema)}.{self.wrap_identifier(name)}"
        return self.wrap_identifier(name)

    def supports(self, feature: FeatureFlag | str) -> bool:
        return self.descriptor.supports(feature)
