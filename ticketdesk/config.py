from __future__ import annotations
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from .infra.sql import postgres_url

DEFAULT_DATABASE_URL = "sqlite:///./tickets.db"


# ----------------------------
# Config
# ----------------------------
@dataclass(frozen=True)
class Settings:
    base_url: str = "http://localhost:3000"
    database_url: str = DEFAULT_DATABASE_URL
    session_secret: str = "dev-secret-change-me"

    # OpenID Connect; without an issuer the local staff login is used
    auth_client_id: Optional[str] = None
    auth_issuer_base_url: Optional[str] = None

    staff_username: str = "staff"
    staff_password: str = "changeme"

    # pool sizing; the gate defaults to the pool size
    db_pool_size: int = 10
    db_max_overflow: int = 10
    db_pool_timeout: int = 30
    db_gate_limit: Optional[int] = None

    host: str = "127.0.0.1"
    port: int = 3000
    log_level: str = "INFO"

    @property
    def uses_oidc(self) -> bool:
        return bool(self.auth_issuer_base_url)

    @classmethod
    def from_env(cls, dotenv: bool = True) -> "Settings":
        if dotenv:
            load_dotenv()
        env = os.environ
        return cls(
            base_url=env.get("BASE_URL", cls.base_url),
            database_url=_database_url_from_env(),
            session_secret=env.get("AUTH_SECRET", cls.session_secret),
            auth_client_id=env.get("AUTH_CLIENT_ID") or None,
            auth_issuer_base_url=env.get("AUTH_ISSUER_BASE_URL") or None,
            staff_username=env.get("STAFF_USERNAME", cls.staff_username),
            staff_password=env.get("STAFF_PASSWORD", cls.staff_password),
            host=env.get("HOST", cls.host),
            port=int(env.get("PORT", cls.port)),
            db_pool_size=int(env.get("DB_POOL_SIZE", cls.db_pool_size)),
            db_max_overflow=int(
                env.get("DB_MAX_OVERFLOW", cls.db_max_overflow)
            ),
            db_pool_timeout=int(
                env.get("DB_POOL_TIMEOUT", cls.db_pool_timeout)
            ),
            db_gate_limit=_optional_int(env.get("DB_GATE_LIMIT")),
            log_level=env.get("LOG_LEVEL", cls.log_level),
        )


def _database_url_from_env() -> str:
    url = os.environ.get("DATABASE_URL")
    if url:
        return url
    host = os.environ.get("POSTGRES_HOST")
    if host:
        return postgres_url(
            host=host,
            port=int(os.environ.get("POSTGRES_PORT", "5432")),
            user=os.environ.get("POSTGRES_USER"),
            password=os.environ.get("POSTGRES_PASSWORD"),
            database=os.environ.get("POSTGRES_DB"),
        )
    return DEFAULT_DATABASE_URL


def _optional_int(value: Optional[str]) -> Optional[int]:
    return int(value) if value else None
