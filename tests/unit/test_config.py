from clients.config import DatabaseConfig, ServerConfig, build_connection_config
from clients.registry import CLIENTS
from utils.env_loader import load_environments, read_env_file


def test_default_port_and_database_are_applied():
    config = build_connection_config(CLIENTS["postgresql"], ServerConfig(client="postgresql", host="db"))
    assert config.port == 5432
    assert config.database == "postgres"
    assert config.host == "db"


def test_explicit_values_win_over_defaults():
    server = ServerConfig(client="postgresql", host="db", port=6543)
    config = build_connection_config(CLIENTS["postgresql"], server, DatabaseConfig(database="shop", schema_name="sales"))
    assert config.port == 6543
    assert config.database == "shop"
    assert config.schema == "sales"


def test_tunnel_endpoint_overrides_host_and_port():
    server = ServerConfig(client="mysql", host="remote", ssh_tunnel=True, local_port=13306)
    config = build_connection_config(CLIENTS["mysql"], server)
    assert config.host == "127.0.0.1"
    assert config.port == 13306


def test_redacted_config_hides_password():
    server = ServerConfig(client="mysql", user="app", password="secret")
    assert build_connection_config(CLIENTS["mysql"], server).redacted()["password"] == "***"


def test_read_env_file(tmp_path):
    env_file = tmp_path / ".env"
    env_file.write_text("# comment\nexport DB_HOST=db.local\nDB_PASSWORD='p=w'\nbroken line\n", encoding="utf-8")
    assert read_env_file(str(env_file)) == {"DB_HOST": "db.local", "DB_PASSWORD": "p=w"}
    assert read_env_file(str(tmp_path / "missing.env")) == {}


def test_environment_wins_over_env_file(tmp_path, monkeypatch):
    env_file = tmp_path / ".env"
    env_file.write_text("DB_CLIENT=mysql\nDB_PORT=3307\nDB_NAME=shop\n", encoding="utf-8")
    monkeypatch.setenv("DB_CLIENT", "sqlserver")
    for name in ("DB_PORT", "DB_NAME", "DB_SSH_LOCAL_HOST", "DB_SSH_LOCAL_PORT"):
        # set first so monkeypatch also removes what load_environments adds
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    monkeypatch.setenv("DB_ENV_FILE", str(env_file))

    applied = load_environments()
    assert applied == {"DB_PORT": "3307", "DB_NAME": "shop"}

    server = ServerConfig.from_env()
    assert server.client == "sqlserver"
    assert server.port == 3307
    assert server.ssh_tunnel is False
    assert DatabaseConfig.from_env().database == "shop"
