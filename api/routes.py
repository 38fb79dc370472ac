from dataclasses import asdict, is_dataclass
from typing import Any, List

from fastapi import APIRouter, HTTPException
from loguru import logger

from api.schemas import (
    ClientListResponse,
    IntrospectRequest,
    IntrospectResponse,
    QueryRequest,
    QueryResponse,
)
from clients.base import DatabaseAdapter
from clients.errors import (
    AdapterError,
    ClientConnectionError,
    QueryError,
    UnknownClientError,
    UnsupportedOperationError,
)
from clients.factory import adapter_session
from clients.registry import CLIENTS, get_client_descriptor

router = APIRouter()

INTROSPECT_OPERATIONS = ("tables", "views", "schemas", "databases", "columns")


def _status_for(exc: AdapterError) -> int:
    if isinstance(exc, UnknownClientError):
        return 404
    if isinstance(exc, ClientConnectionError):
        return 502
    if isinstance(exc, UnsupportedOperationError):
        return 501
    if isinstance(exc, QueryError):
        return 400
    return 500


def _to_http_error(exc: AdapterError) -> HTTPException:
    return HTTPException(status_code=_status_for(exc), detail=str(exc))


def _serialize(items: List[Any]) -> List[Any]:
    return [asdict(item) if is_dataclass(item) else item for item in items]


async def _introspect(adapter: DatabaseAdapter, operation: str, request: IntrospectRequest) -> List[Any]:
    filter = request.filter.as_mapping() if request.filter else None
    if operation == "tables":
        return await adapter.list_tables(filter)
    if operation == "views":
        return await adapter.list_views(filter)
    if operation == "schemas":
        return await adapter.list_schemas(filter)
    if operation == "databases":
        return await adapter.list_databases(filter)
    return await adapter.list_table_columns(request.database.database, request.table, request.schema_name)


@router.get("/health")
def health() -> dict:
    return {"status": "ok"}


@router.get("/clients", response_model=ClientListResponse)
def list_clients() -> ClientListResponse:
    clients = [descriptor.to_dict() for descriptor in CLIENTS.descriptors()]
    return ClientListResponse(clients=clients, count=len(clients))


@router.get("/clients/{key}")
def client_detail(key: str) -> dict:
    try:
        return get_client_descriptor(key, CLIENTS).to_dict()
    except UnknownClientError as exc:
        raise _to_http_error(exc) from exc


@router.post("/introspect/{operation}", response_model=IntrospectResponse)
async def introspect(operation: str, request: IntrospectRequest) -> IntrospectResponse:
    if operation not in INTROSPECT_OPERATIONS:
        raise HTTPException(status_code=404, detail=f"Unknown introspection operation: {operation}")
    if operation == "columns" and not request.table:
        raise HTTPException(status_code=400, detail="'table' is required to list columns")
    try:
        async with adapter_session(request.server, request.database, CLIENTS) as adapter:
            items = await _introspect(adapter, operation, request)
    except AdapterError as exc:
        logger.debug(f"introspect {operation} failed: {exc}")
        raise _to_http_error(exc) from exc
    return IntrospectResponse(client=request.server.client, operation=operation, items=_serialize(items))


@router.post("/query", response_model=QueryResponse)
async def run_query(request: QueryRequest) -> QueryResponse:
    try:
        async with adapter_session(request.server, request.database, CLIENTS) as adapter:
            results = await adapter.execute_query(request.sql)
    except AdapterError as exc:
        logger.debug(f"query failed: {exc}")
        raise _to_http_error(exc) from exc
    return QueryResponse(client=request.server.client, results=[result.to_dict() for result in results])
