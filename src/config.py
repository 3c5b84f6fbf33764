"""YAML configuration loader with env var resolution and Pydantic validation.

Loads config from (priority order):
1. Explicit path (STORECOMMAND_CONFIG env var or load_config argument)
2. ./storecommand.yaml (working directory)
3. ~/.storecommand/config.yaml (user home)

Environment variables override YAML: STORECOMMAND_<SECTION>_<KEY>.
${VAR} references in YAML values resolve from environment at load time.
When no file exists, defaults plus env overrides are used.
"""

import logging
import os
import re
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

_ENV_PREFIX = "STORECOMMAND_"
_ENV_REFERENCE = re.compile(r"\$\{([^}]+)\}")
_TIME_OF_DAY_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


def resolve_env_vars(value: str) -> str:
    """Substitute ${VAR} references from the environment; unset vars become ''."""
    return _ENV_REFERENCE.sub(lambda m: os.environ.get(m.group(1), ""), value)


def _expand_env_refs(node: Any) -> Any:
    """Apply resolve_env_vars to every string in a parsed YAML tree."""
    if isinstance(node, dict):
        return {key: _expand_env_refs(val) for key, val in node.items()}
    if isinstance(node, list):
        return [_expand_env_refs(item) for item in node]
    return resolve_env_vars(node) if isinstance(node, str) else node


class LLMSettings(BaseModel):
    """Language model settings for command interpretation and scheduling."""

    model: str | None = None
    max_tokens: int = Field(default=2048, ge=256)
    min_confidence: float = Field(default=0.5, ge=0.0, le=1.0)


class ExecutionSettings(BaseModel):
    """Execution engine throttling and transport settings."""

    batch_size: int = Field(default=10, ge=1)
    batch_delay_seconds: float = Field(default=0.5, ge=0.0)
    request_timeout_seconds: float = Field(default=30.0, gt=0.0)
    products_page_limit: int = Field(default=250, ge=1, le=250)
    parallel_platforms: bool = False


class SchedulerSettings(BaseModel):
    """Intelligent scheduler thresholds."""

    window_minutes: int = Field(default=5, ge=1)
    auto_apply_confidence: float = Field(default=0.7, ge=0.0, le=1.0)
    default_time_of_day: str = "09:00"
    history_limit: int = Field(default=200, ge=1)

    @field_validator("default_time_of_day")
    @classmethod
    def validate_time_of_day(cls, v: str) -> str:
        """Require HH:MM 24-hour format."""
        if not _TIME_OF_DAY_PATTERN.match(v):
            raise ValueError(f"default_time_of_day must be HH:MM, got {v!r}")
        return v


class StoreCommandConfig(BaseModel):
    """Top-level configuration for StoreCommand."""

    llm: LLMSettings = LLMSettings()
    execution: ExecutionSettings = ExecutionSettings()
    scheduler: SchedulerSettings = SchedulerSettings()


def _config_candidates() -> list[Path]:
    user_dir = Path.home() / ".storecommand"
    return [
        *(Path.cwd() / f"storecommand{ext}" for ext in (".yaml", ".yml")),
        *(user_dir / f"config{ext}" for ext in (".yaml", ".yml")),
    ]


def _find_config_file() -> Path | None:
    return next((p for p in _config_candidates() if p.is_file()), None)


def _env_overrides() -> dict[str, dict[str, Any]]:
    """Collect STORECOMMAND_<SECTION>_<KEY> variables by section.

    ``STORECOMMAND_EXECUTION_BATCH_SIZE=3`` becomes
    ``{"execution": {"batch_size": "3"}}``. Only true/false are converted
    here; Pydantic coerces numerics. Variables naming no known section
    (STORECOMMAND_API_KEY, STORECOMMAND_CREDENTIAL_KEY, ...) are ignored.
    """
    sections = StoreCommandConfig.model_fields.keys()
    overrides: dict[str, dict[str, Any]] = {}
    for name, raw in os.environ.items():
        if not name.startswith(_ENV_PREFIX):
            continue
        section, _, field_name = name[len(_ENV_PREFIX):].lower().partition("_")
        if section not in sections or not field_name:
            continue
        flag = raw.strip().lower()
        overrides.setdefault(section, {})[field_name] = (
            flag == "true" if flag in ("true", "false") else raw
        )
    return overrides


def load_config(config_path: str | None = None) -> StoreCommandConfig:
    """Load StoreCommand configuration.

    Args:
        config_path: Explicit path to config file. If None, uses
            STORECOMMAND_CONFIG or searches standard locations.

    Raises:
        FileNotFoundError: If an explicit path does not exist.
        ValueError: If the file's top level is not a mapping.
    """
    explicit = config_path or os.environ.get("STORECOMMAND_CONFIG", "").strip()
    path = Path(explicit) if explicit else _find_config_file()
    if explicit and not path.exists():
        raise FileNotFoundError(f"Config file not found: {explicit}")

    data: dict[str, Any] = {}
    if path is not None:
        logger.info("Loading config from %s", path)
        parsed = yaml.safe_load(path.read_text()) or {}
        if not isinstance(parsed, dict):
            raise ValueError(f"Config file {path} must contain a mapping at the top level")
        data = _expand_env_refs(parsed)

    for section, fields in _env_overrides().items():
        current = data.get(section)
        data[section] = {**(current if isinstance(current, dict) else {}), **fields}
    return StoreCommandConfig(**data)


@lru_cache(maxsize=1)
def get_settings() -> StoreCommandConfig:
    """Return the process-wide configuration, loaded once."""
    return load_config()
