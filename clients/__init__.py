"""Uniform client layer over MySQL, PostgreSQL, SQL Server, SQLite, Cassandra and IBM DB2."""

from clients.base import DatabaseAdapter, QueryHandle
from clients.config import DatabaseConfig, ServerConfig
from clients.errors import (
    AdapterError,
    ClientConnectionError,
    QueryError,
    UnknownClientError,
    UnsupportedOperationError,
)
from clients.factory import adapter_session, open_adapter
from clients.models import FeatureFlag, Filter, QueryResult, StatementKind
from clients.registry import CLIENTS, ClientDescriptor, ClientRegistry, get_client_descriptor

__all__ = [
    "CLIENTS",
    "AdapterError",
    "ClientConnectionError",
    "ClientDescriptor",
    "ClientRegistry",
    "DatabaseAdapter",
    "DatabaseConfig",
    "FeatureFlag",
    "Filter",
    "QueryError",
    "QueryHandle",
    "QueryResult",
    "ServerConfig",
    "StatementKind",
    "UnknownClientError",
    "UnsupportedOperationError",
    "adapter_session",
    "get_client_descriptor",
    "open_adapter",
]
