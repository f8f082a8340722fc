"""Application configuration helpers."""
from __future__ import annotations

import math
import os
from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Tuple

_DEV_JWT_SECRET = "dev-secret-change-me"


@dataclass(frozen=True)
class AppConfig:
    """Runtime settings for the membership API."""

    db_host: str
    db_port: int
    db_name: str
    db_user: str
    db_password: str
    db_connect_timeout: int
    db_statement_timeout_ms: int
    db_init_schema: bool
    jwt_secret_key: str
    jwt_algorithm: str
    session_cookie_name: str
    member_id_prefix: str
    expiry_sweep_enabled: bool
    expiry_sweep_interval_seconds: int
    cors_allowed_origins: Tuple[str, ...]
    app_env: str

    def db_connect_kwargs(self) -> Dict[str, object]:
        """Keyword arguments for ``psycopg2.connect``."""

        return dict(
            host=self.db_host,
            port=self.db_port,
            dbname=self.db_name,
            user=self.db_user,
            password=self.db_password,
            connect_timeout=self.db_connect_timeout,
            options=f"-c statement_timeout={self.db_statement_timeout_ms}",
        )


def _to_bool(value: Optional[str], *, default: bool) -> bool:
    if value is None:
        return default
    lowered = value.strip().lower()
    if lowered in {"1", "true", "yes", "on"}:
        return True
    if lowered in {"0", "false", "no", "off"}:
        return False
    return default


def _to_int(value: Optional[str], *, default: int, name: str) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{name} must be an integer, got {value!r}") from exc


def _parse_connect_timeout(raw_value: Optional[str]) -> int:
    if raw_value is None or raw_value == "":
        return 5
    try:
        timeout = float(raw_value)
    except ValueError as exc:
        raise ValueError("DB_CONNECT_TIMEOUT must be a number") from exc
    if timeout < 0:
        raise ValueError("DB_CONNECT_TIMEOUT must be non-negative")
    return int(math.ceil(timeout))


def _split_origins(value: Optional[str]) -> Tuple[str, ...]:
    if not value:
        return ("http://localhost:5173",)
    return tuple(origin.strip().rstrip("/") for origin in value.split(",") if origin.strip())


def load_config(env: Optional[Mapping[str, str]] = None) -> AppConfig:
    """Load :class:`AppConfig` from environment variables."""

    env_mapping = os.environ if env is None else env

    statement_timeout = _to_int(env_mapping.get("DB_STATEMENT_TIMEOUT_MS"), default=10000, name="DB_STATEMENT_TIMEOUT_MS")
    if statement_timeout < 0:
        raise ValueError("DB_STATEMENT_TIMEOUT_MS must be non-negative")
    sweep_interval = _to_int(
        env_mapping.get("EXPIRY_SWEEP_INTERVAL_SECONDS"),
        default=300,
        name="EXPIRY_SWEEP_INTERVAL_SECONDS",
    )
    if sweep_interval <= 0:
        raise ValueError("EXPIRY_SWEEP_INTERVAL_SECONDS must be positive")

    app_env = (env_mapping.get("APP_ENV") or "development").strip().lower()
    jwt_secret_key = env_mapping.get("JWT_SECRET_KEY") or ""
    if not jwt_secret_key:
        if app_env == "production":
            raise ValueError("JWT_SECRET_KEY must be set when APP_ENV is production")
        jwt_secret_key = _DEV_JWT_SECRET

    return AppConfig(
        db_host=env_mapping.get("DB_HOST", "127.0.0.1"),
        db_port=_to_int(env_mapping.get("DB_PORT"), default=5432, name="DB_PORT"),
        db_name=env_mapping.get("DB_NAME", "gym_db"),
        db_user=env_mapping.get("DB_USER", "gym_user"),
        db_password=env_mapping.get("DB_PASSWORD", "gym_pass"),
        db_connect_timeout=_parse_connect_timeout(env_mapping.get("DB_CONNECT_TIMEOUT")),
        db_statement_timeout_ms=statement_timeout,
        db_init_schema=_to_bool(env_mapping.get("DB_INIT_SCHEMA"), default=False),
        jwt_secret_key=jwt_secret_key,
        jwt_algorithm=env_mapping.get("JWT_ALGORITHM", "HS256"),
        session_cookie_name=env_mapping.get("SESSION_COOKIE_NAME", "accessToken"),
        member_id_prefix=(env_mapping.get("MEMBER_ID_PREFIX") or "KN").strip() or "KN",
        expiry_sweep_enabled=_to_bool(env_mapping.get("EXPIRY_SWEEP_ENABLED"), default=True),
        expiry_sweep_interval_seconds=sweep_interval,
        cors_allowed_origins=_split_origins(env_mapping.get("CORS_ALLOWED_ORIGINS")),
        app_env=app_env,
    )


__all__ = ["AppConfig", "load_config"]
