import argparse
import asyncio
import json
from dataclasses import asdict, is_dataclass
from typing import Any, List, Optional

from clients.config import DatabaseConfig, ServerConfig
from clients.errors import AdapterError
from clients.factory import adapter_session
from clients.registry import CLIENTS
from utils.logging_setup import configure_logging

OPERATIONS = ("clients", "tables", "views", "routines", "schemas", "databases", "columns", "keys", "query", "truncate")


def _jsonable(items: List[Any]) -> List[Any]:
    return [asdict(item) if is_dataclass(item) else item for item in items]


async def run_operation(
    operation: str,
    server: ServerConfig,
    database: DatabaseConfig,
    table: Optional[str] = None,
    sql: Optional[str] = None,
) -> Any:
    if operation == "clients":
        return [descriptor.to_dict() for descriptor in CLIENTS.descriptors()]
    async with adapter_session(server, database, CLIENTS) as adapter:
        if operation == "tables":
            return _jsonable(await adapter.list_tables())
        if operation == "views":
            return _jsonable(await adapter.list_views())
        if operation == "routines":
            return _jsonable(await adapter.list_routines())
        if operation == "schemas":
            return await adapter.list_schemas()
        if operation == "databases":
            return await adapter.list_databases()
        if operation == "columns":
            return _jsonable(await adapter.list_table_columns(database.database, table, database.schema_name))
        if operation == "keys":
            return _jsonable(await adapter.get_table_keys(database.database, table, database.schema_name))
        if operation == "query":
            return [result.to_dict() for result in await adapter.execute_query(sql)]
        target = database.schema_name or database.database or ""
        await adapter.truncate_all_tables(target)
        return {"truncated": target}


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Inspect or query a database using the DB_* settings from .env.")
    parser.add_argument("operation", choices=OPERATIONS, help="Operation to run against the configured database.")
    parser.add_argument("--client", default=None, help="Override DB_CLIENT.")
    parser.add_argument("--database", default=None, help="Override DB_NAME.")
    parser.add_argument("--table", default=None, help="Table name for columns/keys.")
    parser.add_argument("--sql", default=None, help="SQL text for the query operation.")
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL.")
    args = parser.parse_args(argv)

    if args.operation in {"columns", "keys"} and not args.table:
        parser.error(f"--table is required for {args.operation}")
    if args.operation == "query" and not args.sql:
        parser.error("--sql is required for query")

    configure_logging(args.log_level)
    server = ServerConfig.from_env()
    if args.client:
        server = server.model_copy(update={"client": args.client})
    database = DatabaseConfig.from_env()
    if args.database:
        database = database.model_copy(update={"database": args.database})

    try:
        result = asyncio.run(run_operation(args.operation, server, database, args.table, args.sql))
    except AdapterError as exc:
        print(json.dumps({"status": "error", "error": type(exc).__name__, "message": str(exc)}))
        return 1
    print(json.dumps({"status": "ok", "result": result}, default=str))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
