from __future__ import annotations

import os
from typing import Optional

import yaml
from pydantic import BaseModel

CONFIG_ENV = "ASSESSFLOW_CONFIG"
DEFAULT_CONFIG_PATH = "assessflow.yaml"


class AssessFlowConfig(BaseModel):
    """Top-level configuration model."""

    database_url: Optional[str] = None
    trace_conditions: bool = False
    log_level: str = "INFO"


def _env_flag(name: str) -> Optional[bool]:
    value = os.getenv(name)
    if value is None:
        return None
    return value.strip().lower() in {"1", "true", "yes", "on"}


def load_config(path: Optional[str] = None) -> AssessFlowConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to ASSESSFLOW_CONFIG env
            variable or 'assessflow.yaml' in the current directory.
    """

    config_path = path or os.getenv(CONFIG_ENV, DEFAULT_CONFIG_PATH)
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = AssessFlowConfig(**data)
    else:
        config = AssessFlowConfig()

    env_db_url = os.getenv("ASSESSFLOW_DATABASE_URL") or os.getenv("DATABASE_URL")
    if env_db_url:
        config.database_url = env_db_url
    trace = _env_flag("ASSESSFLOW_TRACE_CONDITIONS")
    if trace is not None:
        config.trace_conditions = trace
    return config
