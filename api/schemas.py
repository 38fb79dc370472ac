from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from clients.config import DatabaseConfig, ServerConfig


class FilterModel(BaseModel):
    only: Optional[List[str]] = None
    ignore: Optional[List[str]] = None

    def as_mapping(self) -> Dict[str, Any]:
        return {"only": self.only, "ignore": self.ignore}


class ConnectionRequest(BaseModel):
    server: ServerConfig
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)


class IntrospectRequest(ConnectionRequest):
    filter: Optional[FilterModel] = None
    table: Optional[str] = Field(default=None, min_length=1, max_length=255)
    schema_name: Optional[str] = Field(default=None, max_length=255)


class QueryRequest(ConnectionRequest):
    sql: str = Field(..., min_length=1, max_length=100000)


class ClientListResponse(BaseModel):
    clients: List[Dict[str, Any]]
    count: int


class IntrospectResponse(BaseModel):
    client: str
    operation: str
    items: List[Any]


class QueryResponse(BaseModel):
    client: str
    results: List[Dict[str, Any]]
