import pytest

from ticketdesk.auth import LocalProvider, OIDCProvider, new_provider
from ticketdesk.config import DEFAULT_DATABASE_URL, Settings
from ticketdesk.infra.sql import normalize_async_url, open_database
from ticketdesk.server import create_app

ENV_VARS = [
    "BASE_URL", "DATABASE_URL", "POSTGRES_HOST", "POSTGRES_PORT",
    "POSTGRES_USER", "POSTGRES_PASSWORD", "POSTGRES_DB", "AUTH_SECRET",
    "AUTH_CLIENT_ID", "AUTH_ISSUER_BASE_URL", "STAFF_USERNAME",
    "STAFF_PASSWORD", "HOST", "PORT", "DB_POOL_SIZE", "DB_MAX_OVERFLOW",
    "DB_POOL_TIMEOUT", "DB_GATE_LIMIT", "LOG_LEVEL",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    s = Settings.from_env(dotenv=False)
    assert s.database_url == DEFAULT_DATABASE_URL
    assert s.base_url == "http://localhost:3000"
    assert s.port == 3000
    assert s.db_pool_size == 10
    assert s.db_gate_limit is None
    assert s.log_level == "INFO"
    assert not s.uses_oidc


def test_postgres_parts(monkeypatch):
    monkeypatch.setenv("POSTGRES_HOST", "db")
    monkeypatch.setenv("POSTGRES_PORT", "5433")
    monkeypatch.setenv("POSTGRES_USER", "tickets")
    monkeypatch.setenv("POSTGRES_PASSWORD", "s3cret")
    monkeypatch.setenv("POSTGRES_DB", "events")
    s = Settings.from_env(dotenv=False)
    assert s.database_url == "postgresql+asyncpg://tickets:s3cret@db:5433/events"


def test_database_url_wins(monkeypatch):
    monkeypatch.setenv("POSTGRES_HOST", "db")
    monkeypatch.setenv("DATABASE_URL", "postgres://u:p@other/x")
    s = Settings.from_env(dotenv=False)
    assert s.database_url == "postgres://u:p@other/x"


@pytest.mark.parametrize("url,expected", [
    ("sqlite:///./t.db", "sqlite+aiosqlite:///./t.db"),
    ("postgresql://u@h/d", "postgresql+asyncpg://u@h/d"),
    ("postgres://u@h/d", "postgresql+asyncpg://u@h/d"),
    ("postgresql+asyncpg://u@h/d", "postgresql+asyncpg://u@h/d"),
])
def test_normalize_async_url(url, expected):
    assert normalize_async_url(url) == expected


def test_provider_selection(monkeypatch):
    assert isinstance(new_provider(Settings.from_env(dotenv=False)),
                      LocalProvider)

    monkeypatch.setenv("AUTH_ISSUER_BASE_URL", "https://idp.example.com/")
    with pytest.raises(RuntimeError):
        new_provider(Settings.from_env(dotenv=False))

    monkeypatch.setenv("AUTH_CLIENT_ID", "cid")
    provider = new_provider(Settings.from_env(dotenv=False))
    assert isinstance(provider, OIDCProvider)
    assert provider.redirect_uri == "http://localhost:3000/callback"


def test_pool_settings_from_env(monkeypatch):
    monkeypatch.setenv("DB_POOL_SIZE", "4")
    monkeypatch.setenv("DB_MAX_OVERFLOW", "2")
    monkeypatch.setenv("DB_POOL_TIMEOUT", "7")
    monkeypatch.setenv("DB_GATE_LIMIT", "3")
    monkeypatch.setenv("LOG_LEVEL", "debug")
    s = Settings.from_env(dotenv=False)
    assert (s.db_pool_size, s.db_max_overflow, s.db_pool_timeout) == (4, 2, 7)
    assert s.db_gate_limit == 3
    assert s.log_level == "debug"


def test_open_database_uses_pool_settings():
    # no connection is made until the first query
    db = open_database("postgresql://u:p@db/events", pool_size=4,
                       max_overflow=2, pool_timeout=7, gate_limit=3)
    assert db.engine.pool.size() == 4
    assert db.engine.pool.timeout() == 7
    assert db.gate_limit == 3

    db = open_database("postgresql://u:p@db/events", pool_size=4)
    assert db.gate_limit == 4


def test_app_gate_follows_settings(tmp_path):
    app = create_app(Settings(
        database_url=f"sqlite:///{tmp_path / 'tickets.db'}",
        db_pool_size=6,
        db_gate_limit=2,
    ))
    assert app.state.db.gate_limit == 2

    app = create_app(Settings(
        database_url=f"sqlite:///{tmp_path / 'tickets.db'}",
        db_pool_size=6,
    ))
    assert app.state.db.gate_limit == 6
