"""Configuration management for the batch operations service."""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Literal

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator

_config_logger = logging.getLogger(__name__)


class LoggingSettings(BaseModel):
    level: str = Field(default="INFO", description="Python logging level name")
    file: str | None = Field(default=None, description="Optional log file path")


class ExecutionSettings(BaseModel):
    mutation_timeout_seconds: float = Field(
        default=30.0,
        ge=0.1,
        le=600.0,
        description="Upper bound for a single entity mutator call.",
    )
    recent_operations_limit: int = Field(default=10, ge=1, le=1000)
    audit_failure_policy: Literal["log", "fail"] = Field(
        default="log",
        description=(
            "'log' keeps a completed operation completed when the audit write fails; "
            "'fail' marks it failed with error_kind=AuditWriteFailure."
        ),
    )
    default_actor: str = Field(default="system", min_length=1)


class StorageSettings(BaseModel):
    sqlite_path: str = Field(default="./data/batch_ops.sqlite")
    sqlite_wal: bool = Field(default=True)


class SchemaSettings(BaseModel):
    path: str | None = Field(
        default=None,
        description="Optional record_schema.yaml overriding the default student mapping",
    )


class ServerSettings(BaseModel):
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=8000, ge=1024, le=65535)
    enable_cors: bool = Field(default=False)
    allowed_origins: tuple[str, ...] = Field(default=())

    @field_validator("allowed_origins")
    @classmethod
    def _strip_trailing_slash(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        return tuple(origin.rstrip("/") for origin in value)


class Settings(BaseModel):
    server: ServerSettings = Field(default_factory=ServerSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    execution: ExecutionSettings = Field(default_factory=ExecutionSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    schema_mapping: SchemaSettings = Field(default_factory=SchemaSettings)


ENV_KEYS = {
    "host": "BATCH_OPS_HOST",
    "port": "BATCH_OPS_PORT",
    "enable_cors": "BATCH_OPS_ENABLE_CORS",
    "allowed_origins": "BATCH_OPS_ALLOWED_ORIGINS",
    "log_level": "LOG_LEVEL",
    "log_file": "LOG_FILE",
    "mutation_timeout": "MUTATION_TIMEOUT_SECONDS",
    "recent_limit": "RECENT_OPERATIONS_LIMIT",
    "audit_failure_policy": "AUDIT_FAILURE_POLICY",
    "default_actor": "BATCH_OPS_DEFAULT_ACTOR",
    "sqlite_path": "SQLITE_PATH",
    "sqlite_wal": "SQLITE_WAL",
    "schema_path": "RECORD_SCHEMA_PATH",
}

_TRUE_VALUES = frozenset({"1", "true", "yes"})


def _split_csv_preserve_case(value: str | None) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def _project_root() -> Path:
    return Path(__file__).resolve().parents[2]


def _resolve_path(path: str) -> str:
    candidate = Path(path)
    root = _project_root().resolve()
    if candidate.is_absolute():
        resolved = candidate.resolve()
    else:
        resolved = (root / candidate).resolve()
    if not resolved.is_relative_to(root):
        raise ValueError(f"Path traversal detected: '{path}' resolves outside project root")
    return str(resolved)


def _env_bool(key: str, default: bool) -> bool:
    value = os.getenv(key)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


def _env_int(key: str, default: int) -> int:
    value = os.getenv(key)
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError:
        _config_logger.warning(
            "Invalid integer value for %s: %r, using default %d", key, value, default
        )
        return default


def _env_float(key: str, default: float) -> float:
    value = os.getenv(key)
    if value is None or value.strip() == "":
        return default
    try:
        return float(value)
    except ValueError:
        _config_logger.warning(
            "Invalid float value for %s: %r, using default %s", key, value, default
        )
        return default


def load_settings() -> Settings:
    """Load configuration and cache the result."""

    return _load_settings_cached()


@lru_cache(maxsize=1)
def _load_settings_cached() -> Settings:
    load_dotenv(dotenv_path=_project_root() / ".env")
    log_file_env = os.getenv(ENV_KEYS["log_file"])
    schema_path_env = os.getenv(ENV_KEYS["schema_path"])
    sqlite_path = os.getenv(ENV_KEYS["sqlite_path"], StorageSettings().sqlite_path)

    settings_data: dict[str, object] = {
        "server": {
            "host": os.getenv(ENV_KEYS["host"], ServerSettings().host),
            "port": _env_int(ENV_KEYS["port"], ServerSettings().port),
            "enable_cors": _env_bool(ENV_KEYS["enable_cors"], ServerSettings().enable_cors),
            "allowed_origins": tuple(
                _split_csv_preserve_case(os.getenv(ENV_KEYS["allowed_origins"]))
            ),
        },
        "logging": {
            "level": os.getenv(ENV_KEYS["log_level"], LoggingSettings().level),
            "file": _resolve_path(log_file_env) if log_file_env else None,
        },
        "execution": {
            "mutation_timeout_seconds": _env_float(
                ENV_KEYS["mutation_timeout"],
                ExecutionSettings().mutation_timeout_seconds,
            ),
            "recent_operations_limit": _env_int(
                ENV_KEYS["recent_limit"],
                ExecutionSettings().recent_operations_limit,
            ),
            "audit_failure_policy": os.getenv(
                ENV_KEYS["audit_failure_policy"],
                ExecutionSettings().audit_failure_policy,
            )
            .strip()
            .lower(),
            "default_actor": os.getenv(
                ENV_KEYS["default_actor"], ExecutionSettings().default_actor
            ),
        },
        "storage": {
            "sqlite_path": (
                sqlite_path if sqlite_path == ":memory:" else _resolve_path(sqlite_path)
            ),
            "sqlite_wal": _env_bool(ENV_KEYS["sqlite_wal"], StorageSettings().sqlite_wal),
        },
        "schema_mapping": {
            "path": _resolve_path(schema_path_env) if schema_path_env else None,
        },
    }

    try:
        settings = Settings.model_validate(settings_data)
    except ValidationError as exc:
        raise RuntimeError(f"Invalid configuration: {exc}") from exc

    if settings.storage.sqlite_path != ":memory:":
        Path(settings.storage.sqlite_path).parent.mkdir(parents=True, exist_ok=True)

    return settings
