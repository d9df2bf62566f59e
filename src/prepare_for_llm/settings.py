from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from dotenv import dotenv_values, find_dotenv
from pydantic import BaseModel, ConfigDict, Field, field_validator

from prepare_for_llm.config import (
    DEFAULT_ENCODING,
    DEFAULT_EXCLUSIONS,
    DEFAULT_IGNORE_FILE,
    DEFAULT_MAX_DEPTH,
    DEFAULT_SIZE_CAP_BYTES,
    DEFAULT_TOKEN_LIMIT,
    MAX_TOKEN_LIMIT,
    MIN_TOKEN_LIMIT,
)

ENV_FILE = find_dotenv(usecwd=True)
ENV_PREFIX = "PREPARE_FOR_LLM_"

# camelCase keys of the project config file -> Settings fields
_CONFIG_FILE_KEYS: dict[str, str] = {
    "tokenLimit": "token_limit",
    "exclusions": "exclusions",
    "sizeCapBytes": "size_cap_bytes",
    "ignoreFile": "ignore_file",
    "encoding": "encoding",
    "maxDepth": "max_depth",
    "pollInterval": "poll_interval",
}


class Settings(BaseModel):
    """Configuration settings for the prepare_for_llm package."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    repo: Path = Field(default_factory=Path.cwd, description="Project root.")
    token_limit: int = Field(
        default=DEFAULT_TOKEN_LIMIT,
        ge=MIN_TOKEN_LIMIT,
        le=MAX_TOKEN_LIMIT,
        description="Maximum tokens per batch.",
    )
    exclusions: list[str] = Field(
        default_factory=lambda: list(DEFAULT_EXCLUSIONS),
        description="Path substrings never packed.",
    )
    size_cap_bytes: int = Field(
        default=DEFAULT_SIZE_CAP_BYTES,
        gt=0,
        description="Maximum cumulative size of the packed files.",
    )
    ignore_file: str = Field(default=DEFAULT_IGNORE_FILE, description="Ignore file at the project root.")
    encoding: str = Field(default=DEFAULT_ENCODING, description="tiktoken encoding name.")
    max_depth: int = Field(default=DEFAULT_MAX_DEPTH, ge=0, description="Maximum directory depth walked.")
    poll_interval: float = Field(default=1.0, gt=0, description="Watcher poll interval (seconds).")

    files: list[Path] = Field(default_factory=list, description="Files to pack, in order.")
    extensions: list[str] = Field(default_factory=list, description="Pack files with these extensions.")
    all: bool = Field(default=False, description="Pack every candidate file.")
    output_dir: Path | None = Field(default=None, description="Directory for the batch documents.")
    log_file: str = Field(default="", description="Log file path.")

    @field_validator("exclusions", "extensions", mode="before")
    @classmethod
    def _split_comma_list(cls, value: Any) -> Any:  # noqa: ANN401
        if isinstance(value, str):
            return [v.strip() for v in value.split(",") if v.strip()]
        return value

    @classmethod
    def from_sources(
        cls,
        config_file: Path | None = None,
        env: dict[str, str | None] | None = None,
        **overrides: Any,  # noqa: ANN401
    ) -> Settings:
        """Build settings from, by increasing priority: the project config file,
        the environment (`.env` included) and `overrides`.

        Args:
            config_file (Path | None): YAML file with camelCase keys (`tokenLimit`, `exclusions`, ...)
            env (dict[str, str | None] | None): environment to read. Defaults to `.env` + `os.environ`.
            **overrides: explicit values, e.g. parsed CLI flags. None values are ignored.

        Returns:
            Settings: the merged settings
        """
        values: dict[str, Any] = {}
        if config_file is not None and config_file.is_file():
            values.update(load_config_file(config_file))
        values.update(env_values(env))
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


def load_config_file(path: Path) -> dict[str, Any]:
    """Read the YAML project config file and map its keys to Settings fields.

    Unknown keys are ignored.
    """
    data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        return {}
    return {_CONFIG_FILE_KEYS[k]: v for k, v in data.items() if k in _CONFIG_FILE_KEYS}


def env_values(env: dict[str, str | None] | None = None) -> dict[str, Any]:
    """Collect `PREPARE_FOR_LLM_*` variables as Settings fields.

    Args:
        env (dict[str, str | None] | None): variables to read. Defaults to the
            `.env` file found from the working directory, overridden by `os.environ`.

    Returns:
        dict[str, Any]: field name -> raw value
    """
    if env is None:
        env = {**(dotenv_values(ENV_FILE) if ENV_FILE else {}), **os.environ}
    fields = set(Settings.model_fields)
    out: dict[str, Any] = {}
    for name, value in env.items():
        if not name.startswith(ENV_PREFIX) or value is None:
            continue
        field = name.removeprefix(ENV_PREFIX).lower()
        if field in fields:
            out[field] = value
    return out
