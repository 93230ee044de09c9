"""
Configuration loader for stockledger.

What it does:
- Reads optional settings from `config/config.yaml`.
- Applies environment variable overrides (`STOCKLEDGER_*`, `PROMETHEUS_PORT`).
- Validates the resulting configuration using Pydantic models.

Where it is used:
- Called by `stockledger.main` to build a `Settings` object for a run.

Key outputs:
- `Settings` model with the input list file, log level and the optional
  metrics port, audit log path and report path.
"""

import logging
import os
import pathlib
import yaml
from typing import Optional, Dict, Any
from pydantic import BaseModel, field_validator

ENV_OVERRIDES = {
    "input_list_file": "STOCKLEDGER_INPUT_LIST",
    "log_level": "STOCKLEDGER_LOG_LEVEL",
    "metrics_port": "PROMETHEUS_PORT",
    "audit_log_path": "STOCKLEDGER_AUDIT_LOG",
    "report_path": "STOCKLEDGER_REPORT_PATH",
}

_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}


class Settings(BaseModel):
    """Runtime settings assembled from YAML + environment variables."""
    input_list_file: str = "input_files.txt"
    log_level: str = "WARNING"
    metrics_port: Optional[int] = None
    audit_log_path: Optional[str] = None
    report_path: Optional[str] = None

    @field_validator("log_level")
    @classmethod
    def known_level(cls, v: str):
        level = str(v).upper()
        if level not in _LEVELS:
            raise ValueError(f"Unknown log level: {v}")
        return level

    @field_validator("metrics_port")
    @classmethod
    def valid_port(cls, v):
        if v is not None and not (1 <= v <= 65535):
            raise ValueError(f"metrics_port out of range: {v}")
        return v

    @property
    def log_level_value(self) -> int:
        return getattr(logging, self.log_level)


def _read_yaml(path: str) -> Dict[str, Any]:
    p = pathlib.Path(path)
    if not p.exists():
        return {}
    with open(p, "r") as f:
        return yaml.safe_load(f) or {}


def load_settings(path: str = "config/config.yaml") -> Settings:
    """Load YAML config (if present), apply env-var overrides, return Settings.

    Empty environment values are treated as unset.
    """
    config = _read_yaml(path)
    for field_name, env_name in ENV_OVERRIDES.items():
        value = os.getenv(env_name, "")
        if value:
            config[field_name] = value
    return Settings(**config)
