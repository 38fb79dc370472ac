import sqlite3
from contextlib import asynccontextmanager

from fastapi.testclient import TestClient

from api.main import app
from clients.errors import ClientConnectionError, QueryError, UnsupportedOperationError
from clients.models import TableInfo


def _fake_session(adapter=None, error=None):
    @asynccontextmanager
    async def session(server, database=None, registry=None):
        if error is not None:
            raise error
        yield adapter

    return session


class StubAdapter:
    def __init__(self, error=None):
        self.error = error

    async def list_tables(self, filter=None):
        if self.error:
            raise self.error
        names = ["orders", "users"]
        if filter and filter.get("only"):
            names = [name for name in names if name in filter["only"]]
        return [TableInfo(schema="public", name=name) for name in names]

    async def list_schemas(self, filter=None):
        raise UnsupportedOperationError("schemas are not available")


def test_health_endpoint():
    client = TestClient(app)
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_clients_endpoint_lists_registry():
    client = TestClient(app)
    response = client.get("/clients")
    assert response.status_code == 200
    body = response.json()
    assert body["count"] == 6
    sqlite = next(item for item in body["clients"] if item["key"] == "sqlite")
    assert sqlite["defaultDatabase"] == ":memory:"
    assert "cancelQuery" in sqlite["disabledFeatures"]


def test_client_detail_and_unknown_client():
    client = TestClient(app)
    assert client.get("/clients/postgresql").json()["defaultPort"] == 5432

    response = client.get("/clients/oracle")
    assert response.status_code == 404
    assert response.json()["detail"] == "Unsupported database client: oracle"


def test_introspect_tables(monkeypatch):
    client = TestClient(app)
    monkeypatch.setattr("api.routes.adapter_session", _fake_session(StubAdapter()))

    response = client.post(
        "/introspect/tables",
        json={"server": {"client": "postgresql"}, "database": {"database": "shop"}, "filter": {"only": ["users"]}},
    )
    assert response.status_code == 200
    body = response.json()
    assert body["operation"] == "tables"
    assert body["items"] == [{"name": "users", "schema": "public"}]


def test_introspect_error_mapping(monkeypatch):
    client = TestClient(app)
    payload = {"server": {"client": "postgresql"}}

    monkeypatch.setattr("api.routes.adapter_session", _fake_session(error=ClientConnectionError("refused")))
    assert client.post("/introspect/tables", json=payload).status_code == 502

    monkeypatch.setattr("api.routes.adapter_session", _fake_session(StubAdapter(error=QueryError("bad sql"))))
    assert client.post("/introspect/tables", json=payload).status_code == 400

    monkeypatch.setattr("api.routes.adapter_session", _fake_session(StubAdapter()))
    assert client.post("/introspect/schemas", json=payload).status_code == 501
    assert client.post("/introspect/sequences", json=payload).status_code == 404
    assert client.post("/introspect/columns", json=payload).status_code == 400


def test_query_against_sqlite_file(tmp_path):
    db_path = tmp_path / "api.db"
    conn = sqlite3.connect(str(db_path))
    try:
        conn.execute("CREATE TABLE items (id INTEGER PRIMARY KEY, label TEXT)")
        conn.execute("INSERT INTO items(label) VALUES ('first')")
        conn.commit()
    finally:
        conn.close()

    client = TestClient(app)
    response = client.post(
        "/query",
        json={
            "server": {"client": "sqlite"},
            "database": {"database": str(db_path)},
            "sql": "SELECT id, label FROM items; DELETE FROM items;",
        },
    )
    assert response.status_code == 200
    select, delete = response.json()["results"]
    assert select["command"] == "SELECT"
    assert select["rows"] == [{"id": 1, "label": "first"}]
    assert select["fields"] == [{"name": "id"}, {"name": "label"}]
    assert delete["command"] == "DELETE"
    assert delete["affectedRows"] == 1


def test_query_unknown_client():
    client = TestClient(app)
    response = client.post("/query", json={"server": {"client": "oracle"}, "sql": "SELECT 1"})
    assert response.status_code == 404
