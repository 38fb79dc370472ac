from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterable, Iterator, List, Mapping, Optional

from clients.errors import UnknownClientError
from clients.models import FeatureFlag


@dataclass(frozen=True)
class ClientDescriptor:
    key: str
    name: str
    default_port: Optional[int] = None
    default_database: Optional[str] = None
    disabled_features: FrozenSet[FeatureFlag] = field(default_factory=frozenset)

    def supports(self, feature: FeatureFlag | str) -> bool:
        return FeatureFlag(feature) not in self.disabled_features

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "name": self.name,
            "defaultPort": self.default_port,
            "defaultDatabase": self.default_database,
            "disabledFeatures": sorted(flag.value for flag in self.disabled_features),
        }


class ClientRegistry(Mapping[str, ClientDescriptor]):
    """Read-only table of supported database clients, keyed by client key."""

    def __init__(self, descriptors: Iterable[ClientDescriptor]):
        table: Dict[str, ClientDescriptor] = {}
        for descriptor in descriptors:
            if descriptor.key in table:
                raise ValueError(f"Duplicate client key: {descriptor.key}")
            table[descriptor.key] = descriptor
        self._table = table

    def __getitem__(self, key: str) -> ClientDescriptor:
        try:
            return self._table[key]
        except KeyError:
            raise UnknownClientError(key) from None

    def __iter__(self) -> Iterator[str]:
        return iter(self._table)

    def __len__(self) -> int:
        return len(self._table)

    def descriptors(self) -> List[ClientDescriptor]:
        return list(self._table.values())


def _disabled(*flags: FeatureFlag) -> FrozenSet[FeatureFlag]:
    return frozenset(flags)


CLIENTS = ClientRegistry(
    [
        ClientDescriptor(
            key="mysql",
            name="MySQL",
            default_port=3306,
            disabled_features=_disabled(FeatureFlag.SERVER_SCHEMA, FeatureFlag.SERVER_DOMAIN),
        ),
        ClientDescriptor(
            key="postgresql",
            name="PostgreSQL",
            default_port=5432,
            default_database="postgres",
            disabled_features=_disabled(FeatureFlag.SERVER_DOMAIN),
        ),
        ClientDescriptor(
            key="sqlserver",
            name="Microsoft SQL Server",
            default_port=1433,
        ),
        ClientDescriptor(
            key="sqlite",
            name="SQLite",
            default_database=":memory:",
            disabled_features=_disabled(
                FeatureFlag.SERVER_SSL,
                FeatureFlag.SERVER_HOST,
                FeatureFlag.SERVER_PORT,
                FeatureFlag.SERVER_SOCKET_PATH,
                FeatureFlag.SERVER_USER,
                FeatureFlag.SERVER_PASSWORD,
                FeatureFlag.SERVER_SCHEMA,
                FeatureFlag.SERVER_DOMAIN,
                FeatureFlag.SERVER_SSH,
                FeatureFlag.SCRIPT_CREATE_TABLE,
                FeatureFlag.CANCEL_QUERY,
            ),
        ),
        ClientDescriptor(
            key="cassandra",
            name="Cassandra",
            default_port=9042,
            disabled_features=_disabled(
                FeatureFlag.SERVER_SSL,
                FeatureFlag.SERVER_SOCKET_PATH,
                FeatureFlag.SERVER_USER,
                FeatureFlag.SERVER_PASSWORD,
                FeatureFlag.SERVER_SCHEMA,
                FeatureFlag.SERVER_DOMAIN,
                FeatureFlag.SCRIPT_CREATE_TABLE,
                FeatureFlag.CANCEL_QUERY,
            ),
        ),
        ClientDescriptor(
            key="ibm_db2",
            name="IBM DB2",
            default_port=50000,
            disabled_features=_disabled(FeatureFlag.SERVER_DOMAIN, FeatureFlag.CANCEL_QUERY),
        ),
    ]
)


def get_client_descriptor(key: str, registry: Optional[ClientRegistry] = None) -> ClientDescriptor:
    lookup = registry if registry is not None else CLIENTS
    return lookup[(key or "").strip().lower()]
