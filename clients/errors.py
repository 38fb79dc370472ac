from __future__ import annotations

from typing import Optional


class AdapterError(RuntimeError):
    pass


class UnknownClientError(AdapterError, KeyError):
    def __init__(self, key: str):
        super().__init__(f"Unsupported database client: {key}")
        self.key = key

    def __str__(self) -> str:
        return self.args[0]


class ClientConnectionError(AdapterError):
    def __init__(self, message: str, original: Optional[BaseException] = None):
        super().__init__(message)
        self.original = original


class QueryError(AdapterError):
    def __init__(self, message: str, sql: Optional[str] = None, original: Optional[BaseException] = None):
        super().__init__(message)
        self.sql = sql
        self.original = original


class UnsupportedOperationError(AdapterError):
    pass
