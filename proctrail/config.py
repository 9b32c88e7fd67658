from __future__ import annotations

import os
from typing import List, Optional

import yaml
from pydantic import BaseModel, Field

from .constants import DEFAULT_CONFIG_PATH


class RetryPolicyConfig(BaseModel):
    """Retry settings applied to every logging activity."""

    maximum_attempts: int = Field(default=5, ge=1)
    initial_interval: float = Field(default=1.0, ge=0)
    backoff_coefficient: float = Field(default=2.0, ge=1)
    maximum_interval: float = Field(default=30.0, ge=0)
    jitter: float = Field(default=0.5, ge=0)
    non_retryable_error_types: List[str] = Field(default_factory=list)


class ActivityConfig(BaseModel):
    """Activity dispatch settings."""

    start_to_close_timeout: Optional[float] = 30.0
    retry: RetryPolicyConfig = RetryPolicyConfig()


class ProctrailConfig(BaseModel):
    """Top-level configuration model."""

    database_url: Optional[str] = None
    log_level: str = "INFO"
    activity: ActivityConfig = ActivityConfig()


def load_config(path: Optional[str] = None) -> ProctrailConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to PROCTRAIL_CONFIG env
            variable or 'proctrail.yaml' in the current directory.
    """

    config_path = path or os.getenv("PROCTRAIL_CONFIG", DEFAULT_CONFIG_PATH)
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = ProctrailConfig(**data)
    else:
        config = ProctrailConfig()

    env_db_url = os.getenv("PROCTRAIL_DATABASE_URL") or os.getenv("DATABASE_URL")
    if env_db_url:
        config.database_url = env_db_url
    return config
