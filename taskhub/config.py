"""Configuration management for the task service."""
from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from datetime import timedelta
from pathlib import Path
from typing import Dict, Mapping, Optional

import yaml

DEFAULT_MONGODB_URI = "mongodb://localhost:27017"
DEFAULT_DATABASE_NAME = "task_management"


@dataclass(frozen=True)
class AppSettings:
    name: str = "task-management-system"
    version: str = "1.0.0"
    env: str = "production"

    @property
    def is_development(self) -> bool:
        return self.env.strip().lower() == "development"


@dataclass(frozen=True)
class ServerSettings:
    http_host: str = "0.0.0.0"
    http_port: int = 8080
    grpc_port: int = 50051
    grpc_max_workers: int = 10


@dataclass(frozen=True)
class DatabaseSettings:
    uri: str = DEFAULT_MONGODB_URI
    name: str = DEFAULT_DATABASE_NAME
    timeout: timedelta = timedelta(seconds=10)


@dataclass(frozen=True)
class AuthSettings:
    jwt_secret: str = ""
    jwt_expiry: timedelta = timedelta(hours=24)


@dataclass(frozen=True)
class Settings:
    """Process-wide configuration, built once at startup."""

    app: AppSettings = field(default_factory=AppSettings)
    server: ServerSettings = field(default_factory=ServerSettings)
    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    auth: AuthSettings = field(default_factory=AuthSettings)

    @staticmethod
    def from_dict(data: Mapping[str, object]) -> "Settings":
        """Create :class:`Settings` from the nested layout of ``config.yaml``."""

        app_raw = _section(data, "app")
        server_raw = _section(data, "server")
        http_raw = _section(server_raw, "http")
        grpc_raw = _section(server_raw, "grpc")
        mongo_raw = _section(_section(data, "database"), "mongodb")
        jwt_raw = _section(_section(data, "auth"), "jwt")

        defaults = Settings()
        return Settings(
            app=AppSettings(
                name=str(app_raw.get("name", defaults.app.name)),
                version=str(app_raw.get("version", defaults.app.version)),
                env=str(app_raw.get("env", defaults.app.env)),
            ),
            server=ServerSettings(
                http_host=str(http_raw.get("host", defaults.server.http_host)),
                http_port=_as_int(http_raw.get("port"), defaults.server.http_port, "server.http.port"),
                grpc_port=_as_int(grpc_raw.get("port"), defaults.server.grpc_port, "server.grpc.port"),
                grpc_max_workers=_as_int(
                    grpc_raw.get("max_workers"), defaults.server.grpc_max_workers, "server.grpc.max_workers"
                ),
            ),
            database=DatabaseSettings(
                uri=str(mongo_raw.get("uri", defaults.database.uri)),
                name=str(mongo_raw.get("name", defaults.database.name)),
                timeout=timedelta(
                    seconds=_as_int(
                        mongo_raw.get("timeout"),
                        int(defaults.database.timeout.total_seconds()),
                        "database.mongodb.timeout",
                    )
                ),
            ),
            auth=AuthSettings(
                jwt_secret=str(jwt_raw.get("secret") or ""),
                jwt_expiry=timedelta(
                    hours=_as_int(
                        jwt_raw.get("expiry"),
                        int(defaults.auth.jwt_expiry.total_seconds() // 3600),
                        "auth.jwt.expiry",
                    )
                ),
            ),
        )


def _section(data: Mapping[str, object], key: str) -> Mapping[str, object]:
    value = data.get(key) or {}
    if not isinstance(value, Mapping):
        raise ValueError(f"Configuration section '{key}' must be a mapping")
    return value


def _as_int(value: object, default: int, name: str) -> int:
    if value is None or (isinstance(value, str) and value.strip() == ""):
        return default
    try:
        parsed = int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid integer value {value!r} for {name}") from exc
    if parsed < 0:
        raise ValueError(f"{name} must not be negative")
    return parsed


def apply_env_overrides(settings: Settings, environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Return ``settings`` with ``TASKHUB_*`` environment variables applied."""

    env = os.environ if environ is None else environ

    app = settings.app
    if env.get("TASKHUB_ENV"):
        app = replace(app, env=env["TASKHUB_ENV"].strip())

    server = settings.server
    if env.get("TASKHUB_HTTP_PORT"):
        server = replace(server, http_port=_as_int(env["TASKHUB_HTTP_PORT"], server.http_port, "TASKHUB_HTTP_PORT"))
    if env.get("TASKHUB_GRPC_PORT"):
        server = replace(server, grpc_port=_as_int(env["TASKHUB_GRPC_PORT"], server.grpc_port, "TASKHUB_GRPC_PORT"))

    database = settings.database
    if env.get("TASKHUB_MONGODB_URI"):
        database = replace(database, uri=env["TASKHUB_MONGODB_URI"].strip())
    if env.get("TASKHUB_MONGODB_NAME"):
        database = replace(database, name=env["TASKHUB_MONGODB_NAME"].strip())

    auth = settings.auth
    if env.get("TASKHUB_JWT_SECRET"):
        auth = replace(auth, jwt_secret=env["TASKHUB_JWT_SECRET"])
    if env.get("TASKHUB_JWT_EXPIRY_HOURS"):
        hours = _as_int(env["TASKHUB_JWT_EXPIRY_HOURS"], 24, "TASKHUB_JWT_EXPIRY_HOURS")
        auth = replace(auth, jwt_expiry=timedelta(hours=hours))

    return Settings(app=app, server=server, database=database, auth=auth)


def load_settings(config_path: Path, environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Load settings from a YAML file, falling back to defaults when it is absent."""

    raw: Dict[str, object] = {}
    if config_path.exists():
        with config_path.open("r", encoding="utf-8") as handle:
            loaded = yaml.safe_load(handle) or {}
        if not isinstance(loaded, dict):
            raise ValueError("Configuration file must contain a mapping at the top level")
        raw = loaded

    return apply_env_overrides(Settings.from_dict(raw), environ)


def resolve_config_path(env_value: Optional[str]) -> Path:
    """Resolve the path to the configuration file."""
    if env_value:
        candidate = Path(env_value).expanduser().resolve(strict=False)
    else:
        candidate = (Path(__file__).resolve().parent.parent / "config" / "config.yaml").resolve(strict=False)
    return candidate


__all__ = [
    "AppSettings",
    "AuthSettings",
    "DatabaseSettings",
    "ServerSettings",
    "Settings",
    "apply_env_overrides",
    "load_settings",
    "resolve_config_path",
]
