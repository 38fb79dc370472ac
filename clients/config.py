from __future__ import annotations

import os
from typing import Optional

from pydantic import BaseModel, Field

from clients.models import ConnectionConfig
from clients.registry import ClientDescriptor
from utils.env_loader import load_environments


def _env_flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str) -> Optional[int]:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return None
    return int(raw)


class ServerConfig(BaseModel):
    client: str = Field(..., min_length=2, max_length=30)
    host: Optional[str] = None
    port: Optional[int] = Field(default=None, ge=1, le=65535)
    user: Optional[str] = None
    password: Optional[str] = None
    ssl: bool = False
    socket_path: Optional[str] = None
    domain: Optional[str] = None
    ssh_tunnel: bool = False
    local_host: Optional[str] = None
    local_port: Optional[int] = Field(default=None, ge=1, le=65535)

    @classmethod
    def from_env(cls) -> "ServerConfig":
        load_environments()
        local_host = os.getenv("DB_SSH_LOCAL_HOST")
        local_port = _env_int("DB_SSH_LOCAL_PORT")
        return cls(
            client=os.getenv("DB_CLIENT", "postgresql"),
            host=os.getenv("DB_HOST"),
            port=_env_int("DB_PORT"),
            user=os.getenv("DB_USER"),
            password=os.getenv("DB_PASSWORD"),
            ssl=_env_flag("DB_SSL"),
            socket_path=os.getenv("DB_SOCKET_PATH"),
            domain=os.getenv("DB_DOMAIN"),
            ssh_tunnel=bool(local_host or local_port),
            local_host=local_host,
            local_port=local_port,
        )


class DatabaseConfig(BaseModel):
    database: Optional[str] = None
    schema_name: Optional[str] = None

    @classmethod
    def from_env(cls) -> "DatabaseConfig":
        load_environments()
        return cls(database=os.getenv("DB_NAME"), schema_name=os.getenv("DB_SCHEMA"))


def build_connection_config(
    descriptor: ClientDescriptor,
    server: ServerConfig,
    database: Optional[DatabaseConfig] = None,
) -> ConnectionConfig:
    database = database or DatabaseConfig()
    host = server.host
    port = server.port or descriptor.default_port
    if server.ssh_tunnel:
        host = server.local_host or "127.0.0.1"
        port = server.local_port or port
    return ConnectionConfig(
        client=descriptor.key,
        host=host,
        port=port,
        user=server.user,
        password=server.password,
        database=database.database or descriptor.default_database,
        schema=database.schema_name,
        ssl=server.ssl,
        socket_path=server.socket_path,
        domain=server.domain,
    )
