from __future__ import annotations

import os
from typing import Any, List, Optional

import yaml
from pydantic import BaseModel, Field

from .constants import (
    DEFAULT_AUTO_SAVE_INTERVAL_MS,
    DEFAULT_BACKOFF_DELAYS,
    DEFAULT_ERROR_LOG_SIZE,
    DEFAULT_MAX_RETRIES,
    DEFAULT_RATE_LIMIT_WAIT,
    DEFAULT_RETRY_DELAY,
)
from .contracts import StepDefinition, WorkflowConfig


class RedisConfig(BaseModel):
    """Connection settings for the Redis state store."""

    host: str = "localhost"
    port: int = 6379
    db: int = 0
    password: Optional[str] = None


class StoreConfig(BaseModel):
    """State store settings."""

    database_url: Optional[str] = None
    redis: RedisConfig = RedisConfig()


class EngineDefaults(BaseModel):
    """Defaults applied to workflows that do not set their own values."""

    auto_save: bool = True
    auto_save_interval: int = DEFAULT_AUTO_SAVE_INTERVAL_MS
    max_retries: int = DEFAULT_MAX_RETRIES
    retry_delay: float = DEFAULT_RETRY_DELAY


class ErrorHandlingConfig(BaseModel):
    """Error classifier and recovery settings."""

    log_size: int = DEFAULT_ERROR_LOG_SIZE
    backoff_delays: List[float] = Field(
        default_factory=lambda: list(DEFAULT_BACKOFF_DELAYS)
    )
    rate_limit_wait: float = DEFAULT_RATE_LIMIT_WAIT


class StepflowConfig(BaseModel):
    """Top-level configuration model."""

    store: StoreConfig = StoreConfig()
    engine: EngineDefaults = EngineDefaults()
    errors: ErrorHandlingConfig = ErrorHandlingConfig()


def load_config(path: Optional[str] = None) -> StepflowConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to STEPFLOW_CONFIG env
            variable or 'config.yaml' in the current directory.
    """

    config_path = path or os.getenv("STEPFLOW_CONFIG", "config.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = StepflowConfig(**data)
    else:
        config = StepflowConfig()

    env_db_url = os.getenv("STEPFLOW_DATABASE_URL") or os.getenv("DATABASE_URL")
    if env_db_url:
        config.store.database_url = env_db_url
    return config


def build_workflow_config(
    id: str,
    name: str,
    steps: List[StepDefinition],
    config: Optional[StepflowConfig] = None,
    **overrides: Any,
) -> WorkflowConfig:
    """Create a :class:`WorkflowConfig` using configured engine defaults.

    Keyword ``overrides`` take precedence over the loaded defaults.
    """

    config = config or load_config()
    settings = {**config.engine.model_dump(), **overrides}
    return WorkflowConfig(id=id, name=name, steps=steps, **settings)
