import asyncio

import pytest

from clients.cassandra import CassandraAdapter
from clients.errors import QueryError, UnsupportedOperationError
from clients.ibm_db2 import IbmDb2Adapter, build_connection_string
from clients.models import ConnectionConfig, IndexInfo, KeyInfo, TableInfo
from clients.mysql import MySQLAdapter
from clients.postgresql import PostgresAdapter
from clients.registry import CLIENTS
from clients.sqlserver import SqlServerAdapter


def _adapter(adapter_class, key, responses=None, **config):
    adapter = adapter_class(CLIENTS[key], ConnectionConfig(client=key, **config), connection=None)
    adapter.executed = []
    queue = list(responses or [])

    async def fake_fetch(sql, params=()):
        adapter.executed.append((" ".join(sql.split()), params))
        return queue.pop(0) if queue else []

    adapter._fetch = fake_fetch
    return adapter


def test_postgres_list_tables_with_schema_filter():
    adapter = _adapter(
        PostgresAdapter,
        "postgresql",
        [[{"table_schema": "public", "table_name": "users"}, {"table_schema": "sales", "table_name": "orders"}]],
    )
    tables = asyncio.run(adapter.list_tables({"ignore": ["pg_catalog", "information_schema"]}))
    assert tables == [TableInfo(schema="public", name="users"), TableInfo(schema="sales", name="orders")]
    sql, _ = adapter.executed[0]
    assert "AND LOWER(table_schema) NOT IN ('information_schema', 'pg_catalog')" in sql


def test_postgres_columns_default_to_public_schema():
    adapter = _adapter(
        PostgresAdapter,
        "postgresql",
        [[{"column_name": "id", "data_type": "integer", "ordinal_position": 1}]],
    )
    columns = asyncio.run(adapter.list_table_columns("shop", "users"))
    assert [(c.column_name, c.data_type, c.position) for c in columns] == [("id", "integer", 1)]
    assert adapter.executed[0][1] == ("public", "users")


def test_postgres_indexes_are_grouped_by_name():
    rows = [
        {"index_name": "orders_pkey", "column_name": "id", "is_unique": True, "is_primary": True},
        {"index_name": "orders_user_day", "column_name": "user_id", "is_unique": False, "is_primary": False},
        {"index_name": "orders_user_day", "column_name": "day", "is_unique": False, "is_primary": False},
    ]
    adapter = _adapter(PostgresAdapter, "postgresql", [rows])
    indexes = asyncio.run(adapter.list_table_indexes("shop", "orders"))
    assert indexes == [
        IndexInfo(name="orders_pkey", columns=["id"], unique=True, primary=True),
        IndexInfo(name="orders_user_day", columns=["user_id", "day"]),
    ]


def test_postgres_composite_keys_yield_one_row_per_column():
    rows = [
        {"constraint_name": "line_pkey", "column_name": "order_id", "referenced_table": None, "constraint_type": "PRIMARY KEY"},
        {"constraint_name": "line_pkey", "column_name": "line_no", "referenced_table": None, "constraint_type": "PRIMARY KEY"},
    ]
    adapter = _adapter(PostgresAdapter, "postgresql", [rows])
    keys = asyncio.run(adapter.get_table_keys(None, "order_lines"))
    assert [k.column_name for k in keys] == ["order_id", "line_no"]

    sql, params = adapter.executed[0]
    assert params == ("public", "order_lines")
    assert "JOIN information_schema.constraint_column_usage" not in sql
    assert "SELECT DISTINCT ccu.table_name" in sql


def test_postgres_table_create_script():
    columns = [
        {"column_name": "id", "data_type": "integer", "not_null": True, "column_default": "nextval('users_id_seq')"},
        {"column_name": "email", "data_type": "text", "not_null": False, "column_default": None},
    ]
    constraints = [{"conname": "users_pkey", "definition": "PRIMARY KEY (id)"}]
    adapter = _adapter(PostgresAdapter, "postgresql", [columns, constraints])
    script = asyncio.run(adapter.get_table_create_script("users"))
    assert script == (
        'CREATE TABLE "public"."users" (\n'
        '  "id" integer NOT NULL DEFAULT nextval(\'users_id_seq\'),\n'
        '  "email" text,\n'
        '  CONSTRAINT "users_pkey" PRIMARY KEY (id)\n'
        ");"
    )


def test_postgres_statements():
    adapter = _adapter(PostgresAdapter, "postgresql", schema="sales")
    assert adapter.get_query_select_top("orders", 5) == 'SELECT * FROM "sales"."orders" LIMIT 5'
    assert adapter.truncate_statement("", "orders") == 'TRUNCATE TABLE "sales"."orders" RESTART IDENTITY CASCADE'
    assert adapter.query("SELECT 1").can_cancel


def test_mysql_scopes_listings_to_connected_database():
    adapter = _adapter(MySQLAdapter, "mysql", [[{"table_schema": "shop", "table_name": "users"}]], database="shop")
    tables = asyncio.run(adapter.list_tables())
    assert tables == [TableInfo(schema="shop", name="users")]
    assert "AND table_schema = DATABASE()" in adapter.executed[0][0]


def test_mysql_keys_and_quoting():
    rows = [
        {"constraint_name": "PRIMARY", "column_name": "id", "referenced_table": None},
        {"constraint_name": "fk_user", "column_name": "user_id", "referenced_table": "users"},
    ]
    adapter = _adapter(MySQLAdapter, "mysql", [rows], database="shop")
    keys = asyncio.run(adapter.get_table_keys(None, "orders"))
    assert keys == [
        KeyInfo(column_name="id", key_type="PRIMARY KEY", constraint_name="PRIMARY"),
        KeyInfo(column_name="user_id", key_type="FOREIGN KEY", constraint_name="fk_user", referenced_table="users"),
    ]
    assert adapter.executed[0][1] == ("shop", "orders")
    assert adapter.wrap_identifier("tags[1]") == "`tags[1]`"
    assert adapter.get_query_select_top("users", 3, "shop") == "SELECT * FROM `shop`.`users` LIMIT 3"


def test_mysql_schemas_are_not_a_concept():
    adapter = _adapter(MySQLAdapter, "mysql", database="shop")
    assert asyncio.run(adapter.list_schemas()) == []
    assert adapter.executed == []


def test_mysql_truncate_disables_foreign_key_checks():
    adapter = _adapter(MySQLAdapter, "mysql", database="shop")
    assert adapter.truncate_statement("", "users") == (
        "SET FOREIGN_KEY_CHECKS = 0; TRUNCATE TABLE `shop`.`users`; SET FOREIGN_KEY_CHECKS = 1;"
    )


def test_sqlserver_brackets_and_top():
    adapter = _adapter(SqlServerAdapter, "sqlserver")
    assert adapter.wrap_identifier("order") == "[order]"
    assert adapter.get_query_select_top("users", 10) == "SELECT TOP 10 * FROM [dbo].[users]"
    assert adapter.truncate_statement("shop", "users") == "TRUNCATE TABLE [shop].[dbo].[users]"


def test_sqlserver_database_filter():
    adapter = _adapter(SqlServerAdapter, "sqlserver", [[{"name": "shop"}]])
    assert asyncio.run(adapter.list_databases({"only": ["Shop"]})) == ["shop"]
    assert "WHERE LOWER(name) IN ('shop')" in adapter.executed[0][0]


def test_sqlserver_table_create_script_includes_primary_key():
    columns = [
        {"column_name": "id", "data_type": "int", "character_maximum_length": None, "is_nullable": "NO", "column_default": None},
        {"column_name": "name", "data_type": "nvarchar", "character_maximum_length": -1, "is_nullable": "YES", "column_default": None},
    ]
    keys = [{"constraint_name": "PK_users", "column_name": "id", "referenced_table": None, "constraint_type": "PRIMARY KEY"}]
    adapter = _adapter(SqlServerAdapter, "sqlserver", [columns, keys])
    script = asyncio.run(adapter.get_table_create_script("users"))
    assert script == (
        "CREATE TABLE [dbo].[users] (\n"
        "  [id] int NOT NULL,\n"
        "  [name] nvarchar(max),\n"
        "  CONSTRAINT [PK_users] PRIMARY KEY ([id])\n"
        ")"
    )


def test_db2_connection_string():
    config = ConnectionConfig(client="ibm_db2", host="db2", port=50000, user="app", password="pw", database="SAMPLE", ssl=True)
    assert build_connection_string(config) == (
        "DATABASE=SAMPLE;HOSTNAME=db2;PORT=50000;PROTOCOL=TCPIP;UID=app;PWD=pw;Security=SSL;"
    )


def test_db2_columns_are_one_based_and_scoped_to_user_schema():
    rows = [
        {"position": 0, "column_name": "ID", "data_type": "INTEGER "},
        {"position": 1, "column_name": "NAME", "data_type": "VARCHAR"},
    ]
    adapter = _adapter(IbmDb2Adapter, "ibm_db2", [rows], user="app")
    columns = asyncio.run(adapter.list_table_columns(None, "USERS"))
    assert [(c.column_name, c.data_type, c.position) for c in columns] == [("ID", "INTEGER", 1), ("NAME", "VARCHAR", 2)]
    assert adapter.executed[0][1] == ("APP", "USERS")


class FakeIbmDb:
    def __init__(self, rows=None, fail_execute=False):
        self.rows = list(rows or [])
        self.fail_execute = fail_execute
        self.opened = 0
        self.freed = 0

    def prepare(self, conn, sql):
        self.opened += 1
        return object()

    def exec_immediate(self, conn, sql):
        self.opened += 1
        return object()

    def execute(self, stmt, params):
        if self.fail_execute:
            raise RuntimeError("SQL0204N undefined name")
        return True

    def fetch_assoc(self, stmt):
        return self.rows.pop(0) if self.rows else False

    def num_fields(self, stmt):
        return 0

    def num_rows(self, stmt):
        return 3

    def free_stmt(self, stmt):
        self.freed += 1
        return True


def test_db2_statement_handles_are_released(monkeypatch):
    fake = FakeIbmDb(rows=[{"NAME": "APP"}])
    monkeypatch.setattr(IbmDb2Adapter, "_driver", staticmethod(lambda: fake))
    adapter = IbmDb2Adapter(CLIENTS["ibm_db2"], ConnectionConfig(client="ibm_db2"), connection=object())

    assert asyncio.run(adapter.fetch("SELECT schemaname AS name FROM syscat.schemata")) == [{"name": "APP"}]
    batch = asyncio.run(adapter.run_batch("DELETE FROM a; DELETE FROM b;"))
    assert [result_set.affected_rows for result_set in batch] == [3, 3]
    assert fake.opened == fake.freed == 3


def test_db2_statement_handle_released_when_execute_fails(monkeypatch):
    fake = FakeIbmDb(fail_execute=True)
    monkeypatch.setattr(IbmDb2Adapter, "_driver", staticmethod(lambda: fake))
    adapter = IbmDb2Adapter(CLIENTS["ibm_db2"], ConnectionConfig(client="ibm_db2"), connection=object())

    with pytest.raises(QueryError, match="SQL0204N"):
        asyncio.run(adapter.fetch("SELECT * FROM missing"))
    assert fake.freed == 1


def test_db2_statements_and_unsupported_query():
    adapter = _adapter(IbmDb2Adapter, "ibm_db2")
    assert adapter.truncate_statement("APP", "USERS") == 'TRUNCATE TABLE "APP"."USERS" IMMEDIATE'
    assert asyncio.run(adapter.list_routines()) == []
    with pytest.raises(UnsupportedOperationError):
        adapter.query("SELECT 1 FROM sysibm.sysdummy1")


def test_cassandra_columns_ordered_by_kind_then_position():
    rows = [
        {"column_name": "body", "type": "text", "kind": "regular", "position": -1},
        {"column_name": "created", "type": "timestamp", "kind": "clustering", "position": 0},
        {"column_name": "user_id", "type": "uuid", "kind": "partition_key", "position": 0},
    ]
    adapter = _adapter(CassandraAdapter, "cassandra", [rows, rows], database="chat")
    columns = asyncio.run(adapter.list_table_columns(None, "messages"))
    assert [(c.column_name, c.position) for c in columns] == [("user_id", 1), ("created", 2), ("body", 3)]

    keys = asyncio.run(adapter.get_table_keys(None, "messages"))
    assert [(k.column_name, k.key_type) for k in keys] == [
        ("user_id", "PRIMARY KEY"),
        ("created", "CLUSTERING KEY"),
    ]


def test_cassandra_databases_are_filtered_keyspaces():
    rows = [{"keyspace_name": "system"}, {"keyspace_name": "chat"}, {"keyspace_name": "system_auth"}]
    adapter = _adapter(CassandraAdapter, "cassandra", [rows], database="chat")
    assert asyncio.run(adapter.list_databases({"ignore": ["system", "system_auth"]})) == ["chat"]


def test_cassandra_has_no_schemas_or_query_handle():
    adapter = _adapter(CassandraAdapter, "cassandra", database="chat")
    assert asyncio.run(adapter.list_schemas()) == []
    assert adapter.truncate_statement("chat", "messages") == 'TRUNCATE "chat"."messages"'
    with pytest.raises(UnsupportedOperationError):
        adapter.query("SELECT * FROM messages")
