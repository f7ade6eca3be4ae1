"""YAML configuration loader with env var resolution and Pydantic validation.

Loads config from (priority order):
1. --config <path> CLI flag (or TRACKPOOL_CONFIG_PATH)
2. ./trackpool.yaml (working directory)
3. ~/.trackpool/config.yaml (user home)

Environment variables override YAML: TRACKPOOL_<SECTION>_<KEY>.
${VAR} references in YAML values resolve from environment at load time.
"""

import logging
import os
import re
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, field_validator

from src.services.assignment_engine import (
    DEFAULT_TRACKING_URL_TEMPLATE,
    DEFAULT_WEIGHT_THRESHOLD_GRAMS,
    WeightPolicy,
)
from src.services.order_events import DEFAULT_READY_STATUS
from src.utils.paths import get_log_dir, get_report_dir

logger = logging.getLogger(__name__)

_ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")

ENV_PREFIX = "TRACKPOOL_"


def resolve_env_vars(value: str) -> str:
    """Resolve ${VAR} references in a string from environment variables.

    Missing env vars resolve to empty string.
    """
    def _replace(match: re.Match) -> str:
        return os.environ.get(match.group(1), "")

    return _ENV_VAR_PATTERN.sub(_replace, value)


def _resolve_env_vars_recursive(data: Any) -> Any:
    """Recursively resolve ${VAR} references in a nested data structure."""
    if isinstance(data, str):
        return resolve_env_vars(data)
    elif isinstance(data, dict):
        return {k: _resolve_env_vars_recursive(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [_resolve_env_vars_recursive(item) for item in data]
    return data


class DaemonConfig(BaseModel):
    """Configuration for the TrackPool API daemon process."""

    host: str = "127.0.0.1"
    port: int = 8000
    workers: int = 1
    pid_file: str = "~/.trackpool/daemon.pid"
    log_level: str = "info"
    log_format: Literal["text", "json"] = "text"
    log_file: str | None = None


class AssignmentConfig(BaseModel):
    """Tracking assignment rules."""

    ready_status: str = DEFAULT_READY_STATUS
    weight_threshold_grams: float = DEFAULT_WEIGHT_THRESHOLD_GRAMS
    weight_policy: WeightPolicy = WeightPolicy.known_items_only
    tracking_url_template: str = DEFAULT_TRACKING_URL_TEMPLATE

    @field_validator("weight_threshold_grams")
    @classmethod
    def threshold_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("weight_threshold_grams must be positive")
        return v

    @field_validator("tracking_url_template")
    @classmethod
    def template_has_placeholder(cls, v: str) -> str:
        if "{tracking_number}" not in v:
            raise ValueError("tracking_url_template must contain {tracking_number}")
        return v


class StorageConfig(BaseModel):
    """Where upload logs and reports are kept."""

    log_dir: str | None = None
    report_dir: str | None = None
    max_upload_bytes: int = 10 * 1024 * 1024

    def resolved_log_dir(self) -> Path:
        return Path(self.log_dir).expanduser() if self.log_dir else get_log_dir()

    def resolved_report_dir(self) -> Path:
        return Path(self.report_dir).expanduser() if self.report_dir else get_report_dir()


class TrackPoolConfig(BaseModel):
    """Top-level TrackPool configuration."""

    daemon: DaemonConfig = DaemonConfig()
    assignment: AssignmentConfig = AssignmentConfig()
    storage: StorageConfig = StorageConfig()


def _find_config_file() -> Path | None:
    """Search for config file in standard locations."""
    candidates = [
        Path.cwd() / "trackpool.yaml",
        Path.cwd() / "trackpool.yml",
        Path.home() / ".trackpool" / "config.yaml",
        Path.home() / ".trackpool" / "config.yml",
    ]
    for candidate in candidates:
        if candidate.exists():
            return candidate
    return None


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Apply TRACKPOOL_<SECTION>_<KEY> env var overrides to config data.

    For example, ``TRACKPOOL_ASSIGNMENT_WEIGHT_THRESHOLD_GRAMS`` maps to
    section ``assignment``, field ``weight_threshold_grams``.
    """
    known_sections = sorted(TrackPoolConfig.model_fields.keys(), key=len, reverse=True)
    for key, value in os.environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        suffix = key[len(ENV_PREFIX):].lower()
        matched_section = None
        matched_field = None
        for section in known_sections:
            section_prefix = section + "_"
            if suffix.startswith(section_prefix):
                matched_section = section
                matched_field = suffix[len(section_prefix):]
                break
        if matched_section is None or not matched_field:
            continue
        if not isinstance(data.get(matched_section), dict):
            data[matched_section] = {}
        try:
            data[matched_section][matched_field] = int(value)
        except ValueError:
            if value.lower() in ("true", "false"):
                data[matched_section][matched_field] = value.lower() == "true"
            else:
                data[matched_section][matched_field] = value
    return data


def load_config(config_path: str | None = None) -> TrackPoolConfig | None:
    """Load TrackPool configuration from YAML file with env var resolution.

    Args:
        config_path: Explicit path to config file. If None, uses
            TRACKPOOL_CONFIG_PATH, then searches standard locations.

    Returns:
        Parsed and validated TrackPoolConfig, or None if no config found.

    Raises:
        FileNotFoundError: An explicit config path does not exist.
    """
    config_path = config_path or os.environ.get("TRACKPOOL_CONFIG_PATH") or None
    if config_path:
        path = Path(config_path).expanduser()
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
    else:
        path = _find_config_file()
        if path is None:
            return None

    logger.info("Loading config from %s", path)

    with open(path) as f:
        raw_data = yaml.safe_load(f) or {}

    data = _resolve_env_vars_recursive(raw_data)
    data = _apply_env_overrides(data)
    return TrackPoolConfig(**data)


def get_config(config_path: str | None = None) -> TrackPoolConfig:
    """Load configuration, falling back to defaults plus env overrides."""
    config = load_config(config_path)
    if config is None:
        config = TrackPoolConfig(**_apply_env_overrides({}))
    return config
