"""Application configuration models and loader utilities."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, cast

from dotenv import dotenv_values
from pydantic import BaseModel, Field, model_validator


class RemoteSettings(BaseModel):
    """Settings for the remote generation service."""

    base_url: str = Field(
        default="http://localhost:5000", description="Generation API base URL"
    )
    api_key: str | None = Field(default=None, description="Bearer token for the API")
    timeout_seconds: float = Field(
        default=20.0, gt=0, description="HTTP timeout applied by the transport"
    )
    generate_path: str = Field(
        default="api/messages/generate", description="Message generation endpoint"
    )
    categories_path: str = Field(
        default="api/messages/categories", description="Category listing endpoint"
    )


class RetrySettings(BaseModel):
    """Backoff parameters used to build quality-dependent retry policies."""

    base_delay_seconds: float = Field(default=0.4, ge=0.0)
    growth_factor: float = Field(default=2.0, ge=1.0)
    max_delay_seconds: float = Field(default=5.0, ge=0.0)
    jitter_min: float = Field(default=0.8, gt=0.0)
    jitter_max: float = Field(default=1.3, gt=0.0)
    rate_limit_min_delay_seconds: float = Field(
        default=2.0, ge=0.0, description="Lower bound for waits after HTTP 429"
    )
    attempt_timeout_seconds: float = Field(
        default=20.0, gt=0, description="Deadline for a single remote attempt"
    )
    excellent_attempts: int = Field(default=4, ge=1)
    good_attempts: int = Field(default=3, ge=1)
    poor_attempts: int = Field(default=2, ge=1)
    offline_attempts: int = Field(default=1, ge=1)

    @model_validator(mode="after")
    def _check_jitter(self) -> RetrySettings:
        if self.jitter_min > self.jitter_max:
            raise ValueError("jitter_min must not exceed jitter_max")
        return self


class ConnectionSettings(BaseModel):
    """Thresholds for classifying connection quality."""

    window_size: int = Field(
        default=10, ge=1, description="Number of recent attempts considered"
    )
    failure_rate_threshold: float = Field(default=0.5, ge=0.0, le=1.0)
    poor_latency_seconds: float = Field(default=3.0, gt=0.0)
    excellent_latency_seconds: float = Field(default=0.75, gt=0.0)
    consecutive_failure_threshold: int = Field(
        default=3, ge=1, description="Trailing failures that mark the link degraded"
    )


class CacheSettings(BaseModel):
    """Settings for the memory/disk cache layer."""

    directory: Path = Field(
        default=Path("./.nudge_cache"), description="Disk cache directory"
    )
    default_ttl_seconds: float | None = Field(
        default=3600.0, description="TTL applied when callers do not pass one"
    )
    memory_max_items: int = Field(default=100, ge=1)
    categories_ttl_seconds: float = Field(default=3600.0, gt=0.0)
    clear_on_user_change: bool = Field(
        default=True, description="Drop cached entries when the user changes"
    )


class StorageSettings(BaseModel):
    """Settings for local persistence."""

    db_path: Path = Field(
        default=Path("./nudge_ai.db"), description="SQLite database path"
    )
    max_stored_messages: int = Field(default=1000, ge=1)
    max_generation_records: int = Field(default=500, ge=1)
    max_message_age_days: int = Field(default=90, ge=1)
    clear_on_user_change: bool = Field(
        default=False, description="Wipe stored messages when the user changes"
    )


class GenerationSettings(BaseModel):
    """Settings for the generation workflow."""

    fallback_enabled: bool = Field(
        default=True, description="Use template fallback when the service fails"
    )
    fallback_message_count: int = Field(default=3, ge=1, le=10)


class LoggingSettings(BaseModel):
    """Logging preferences."""

    level: str = Field(default="INFO", description="Root logging level")
    structured: bool = Field(
        default=False, description="Toggle structured logging format"
    )


class AppSettings(BaseModel):
    """Aggregated application configuration."""

    remote: RemoteSettings = Field(default_factory=RemoteSettings)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    connection: ConnectionSettings = Field(default_factory=ConnectionSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    generation: GenerationSettings = Field(default_factory=GenerationSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


ENV_PREFIX = "NUDGE_AI_"


def _normalize_key(raw_key: str) -> list[str]:
    """Convert an environment variable key into a nested attribute path."""
    trimmed = raw_key.removeprefix(ENV_PREFIX)
    return [segment.lower() for segment in trimmed.split("__") if segment]


def _merge_into_tree(tree: dict[str, Any], path: list[str], value: Any) -> None:
    """Assign a value to a nested dictionary given a path."""
    cursor = tree
    for segment in path[:-1]:
        next_node = cursor.setdefault(segment, {})
        cursor = cast(dict[str, Any], next_node)
    cursor[path[-1]] = value


def _normalize_value(value: Any) -> Any:
    if not isinstance(value, str):
        return value
    if value == "":
        return None
    lowercase_value = value.lower()
    if lowercase_value == "true":
        return True
    if lowercase_value == "false":
        return False
    return value


def _collect_env_values(
    env_file: Path | str | None, *, include_environment: bool
) -> dict[str, Any]:
    """Load configuration values from environment variables and optional file."""
    collected: dict[str, Any] = {}

    file_values: dict[str, Any] = {}
    if env_file:
        env_path = Path(env_file)
        if env_path.is_file():
            file_values = {
                key: value
                for key, value in dotenv_values(env_path).items()
                if key and key.startswith(ENV_PREFIX)
            }

    env_values: dict[str, Any] = {}
    if include_environment:
        env_values = {
            key: value
            for key, value in os.environ.items()
            if key.startswith(ENV_PREFIX)
        }

    combined: dict[str, Any] = {**file_values, **env_values}

    for key, value in combined.items():
        path = _normalize_key(key)
        if not path:
            continue
        _merge_into_tree(collected, path, _normalize_value(value))

    return collected


@lru_cache(maxsize=1)
def load_app_settings(
    env_file: Path | str | None = None, *, include_environment: bool = True
) -> AppSettings:
    """Load application settings from an optional env file and the environment.

    Values from the process environment win over values from ``env_file``.
    """
    collected = _collect_env_values(env_file, include_environment=include_environment)
    return AppSettings.model_validate(collected)


__all__ = [
    "AppSettings",
    "CacheSettings",
    "ConnectionSettings",
    "GenerationSettings",
    "LoggingSettings",
    "RemoteSettings",
    "RetrySettings",
    "StorageSettings",
    "load_app_settings",
]
