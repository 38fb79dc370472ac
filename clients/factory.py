from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Optional, Type

from loguru import logger

from clients.base import DatabaseAdapter
from clients.cassandra import CassandraAdapter
from clients.config import DatabaseConfig, ServerConfig, build_connection_config
from clients.errors import AdapterError, ClientConnectionError
from clients.ibm_db2 import IbmDb2Adapter
from clients.mysql import MySQLAdapter
from clients.postgresql import PostgresAdapter
from clients.registry import ClientRegistry, get_client_descriptor
from clients.sqlite import SQLiteAdapter
from clients.sqlserver import SqlServerAdapter

ADAPTERS: Dict[str, Type[DatabaseAdapter]] = {
    "mysql": MySQLAdapter,
    "postgresql": PostgresAdapter,
    "sqlserver": SqlServerAdapter,
    "sqlite": SQLiteAdapter,
    "cassandra": CassandraAdapter,
    "ibm_db2": IbmDb2Adapter,
}


def get_adapter_class(key: str) -> Type[DatabaseAdapter]:
    adapter_class = ADAPTERS.get(key)
    if adapter_class is None:
        raise AdapterError(f"No adapter registered for client: {key}")
    return adapter_class


async def open_adapter(
    server: ServerConfig,
    database: Optional[DatabaseConfig] = None,
    registry: Optional[ClientRegistry] = None,
) -> DatabaseAdapter:
    descriptor = get_client_descriptor(server.client, registry)
    adapter_class = get_adapter_class(descriptor.key)
    config = build_connection_config(descriptor, server, database)
    log = logger.bind(client=descriptor.key)
    log.debug(f"creating database client with config {config.redacted()}")
    try:
        adapter = await adapter_class.connect(descriptor, config)
    except Exception as exc:
        log.debug(f"connection failed: {exc}")
        raise ClientConnectionError(f"Could not connect to {descriptor.name}: {exc}", original=exc) from exc
    log.debug("connected")
    return adapter


@asynccontextmanager
async def adapter_session(
    server: ServerConfig,
    database: Optional[DatabaseConfig] = None,
    registry: Optional[ClientRegistry] = None,
) -> AsyncIterator[DatabaseAdapter]:
    adapter = await open_adapter(server, database, registry)
    try:
        yield adapter
    finally:
        await adapter.disconnect()
