from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Union


class FeatureFlag(str, Enum):
    SERVER_SSL = "server:ssl"
    SERVER_HOST = "server:host"
    SERVER_PORT = "server:port"
    SERVER_SOCKET_PATH = "server:socketPath"
    SERVER_USER = "server:user"
    SERVER_PASSWORD = "server:password"
    SERVER_SCHEMA = "server:schema"
    SERVER_DOMAIN = "server:domain"
    SERVER_SSH = "server:ssh"
    SCRIPT_CREATE_TABLE = "scriptCreateTable"
    CANCEL_QUERY = "cancelQuery"


class StatementKind(str, Enum):
    SELECT = "SELECT"
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    MERGE = "MERGE"
    REPLACE = "REPLACE"
    UPSERT = "UPSERT"
    TRUNCATE = "TRUNCATE"
    CREATE = "CREATE"
    CREATE_TABLE = "CREATE_TABLE"
    CREATE_VIEW = "CREATE_VIEW"
    CREATE_INDEX = "CREATE_INDEX"
    CREATE_TRIGGER = "CREATE_TRIGGER"
    CREATE_FUNCTION = "CREATE_FUNCTION"
    CREATE_PROCEDURE = "CREATE_PROCEDURE"
    CREATE_DATABASE = "CREATE_DATABASE"
    CREATE_SCHEMA = "CREATE_SCHEMA"
    DROP = "DROP"
    DROP_TABLE = "DROP_TABLE"
    DROP_VIEW = "DROP_VIEW"
    DROP_INDEX = "DROP_INDEX"
    DROP_TRIGGER = "DROP_TRIGGER"
    DROP_FUNCTION = "DROP_FUNCTION"
    DROP_PROCEDURE = "DROP_PROCEDURE"
    DROP_DATABASE = "DROP_DATABASE"
    DROP_SCHEMA = "DROP_SCHEMA"
    ALTER = "ALTER"
    ALTER_TABLE = "ALTER_TABLE"
    ALTER_VIEW = "ALTER_VIEW"
    ALTER_INDEX = "ALTER_INDEX"
    ALTER_TRIGGER = "ALTER_TRIGGER"
    ALTER_FUNCTION = "ALTER_FUNCTION"
    ALTER_PROCEDURE = "ALTER_PROCEDURE"
    ALTER_DATABASE = "ALTER_DATABASE"
    ALTER_SCHEMA = "ALTER_SCHEMA"
    SHOW = "SHOW"
    USE = "USE"
    EXPLAIN = "EXPLAIN"
    GRANT = "GRANT"
    REVOKE = "REVOKE"
    BEGIN = "BEGIN"
    COMMIT = "COMMIT"
    ROLLBACK = "ROLLBACK"


FilterLike = Union[None, str, Iterable[str], Mapping[str, Any], "Filter"]


def _name_set(values: Optional[Iterable[str]]) -> Optional[FrozenSet[str]]:
    if values is None:
        return None
    if isinstance(values, str):
        values = [values]
    names = frozenset(str(v) for v in values if v is not None and str(v) != "")
    return names or None


@dataclass(frozen=True)
class Filter:
    only: Optional[FrozenSet[str]] = None
    ignore: Optional[FrozenSet[str]] = None

    @classmethod
    def coerce(cls, value: FilterLike) -> "Filter":
        if value is None:
            return cls()
        if isinstance(value, Filter):
            return value
        if isinstance(value, str):
            return cls(only=_name_set([value]))
        if isinstance(value, Mapping):
            return cls(only=_name_set(value.get("only")), ignore=_name_set(value.get("ignore")))
        return cls(only=_name_set(value))

    @property
    def is_empty(self) -> bool:
        return not self.only and not self.ignore


@dataclass
class ConnectionConfig:
    client: str
    host: Optional[str] = None
    port: Optional[int] = None
    user: Optional[str] = None
    password: Optional[str] = None
    database: Optional[str] = None
    schema: Optional[str] = None
    ssl: bool = False
    socket_path: Optional[str] = None
    domain: Optional[str] = None

    def redacted(self) -> Dict[str, Any]:
        params = asdict(self)
        if params.get("password"):
            params["password"] = "***"
        return params


@dataclass(frozen=True)
class TableInfo:
    name: str
    schema: Optional[str] = None


@dataclass(frozen=True)
class ColumnInfo:
    column_name: str
    data_type: str
    position: int


@dataclass(frozen=True)
class KeyInfo:
    column_name: str
    key_type: str
    constraint_name: Optional[str] = None
    referenced_table: Optional[str] = None


@dataclass(frozen=True)
class RoutineInfo:
    routine_name: str
    routine_type: str
    schema: Optional[str] = None
    routine_definition: Optional[str] = None


@dataclass(frozen=True)
class TriggerInfo:
    name: str
    timing: Optional[str] = None
    event: Optional[str] = None


@dataclass(frozen=True)
class IndexInfo:
    name: str
    columns: List[str] = field(default_factory=list)
    unique: bool = False
    primary: bool = False


@dataclass(frozen=True)
class Field:
    name: str


@dataclass
class QueryResult:
    command: Optional[StatementKind]
    rows: List[Dict[str, Any]]
    fields: List[Field]
    row_count: int
    affected_rows: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "command": self.command.value if self.command else None,
            "rows": self.rows,
            "fields": [{"name": f.name} for f in self.fields],
            "rowCount": self.row_count,
            "affectedRows": self.affected_rows,
        }
