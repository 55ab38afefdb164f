"""
subline.config - YAML config loading, validation, credentials.

Handles loading subline.yaml (or an explicit config file), validating the
downloader, transcription, and retry settings, and reading the API key
from the environment.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator

from subline.exceptions import ConfigError
from subline.extract.strategies import DEFAULT_STRATEGIES, Strategy

CONFIG_FILENAME = "subline.yaml"
API_KEY_ENV = "OPENAI_API_KEY"


class DownloaderConfig(BaseModel):
    """External downloader settings and the ordered strategy chain."""

    binary: str = "yt-dlp"
    audio_format: str = "bestaudio"
    output_dir: Path = Path(".")
    output_prefix: str = "yt-audio"
    strategies: list[Strategy] = Field(default_factory=lambda: list(DEFAULT_STRATEGIES))

    @field_validator("binary", "audio_format", "output_prefix")
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be blank")
        return v


class TranscriptionConfig(BaseModel):
    """Transcription backend settings."""

    model: str = "whisper-1"
    response_format: str = "verbose_json"

    @field_validator("response_format")
    @classmethod
    def validate_response_format(cls, v: str) -> str:
        if v != "verbose_json":
            raise ValueError("response_format must be 'verbose_json' (segment timestamps required)")
        return v


class RetryConfig(BaseModel):
    """Backoff settings for transcription calls."""

    initial_delay: float = Field(default=0.2, gt=0.0)
    multiplier: float = Field(default=2.0, ge=1.0)
    max_elapsed: float = Field(default=10.0, gt=0.0)
    jitter: bool = True


class SublineConfig(BaseModel):
    """Resolved configuration for a Subline run."""

    downloader: DownloaderConfig = Field(default_factory=DownloaderConfig)
    transcription: TranscriptionConfig = Field(default_factory=TranscriptionConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)

    config_path: Path | None = None


def load_config(path: Path | None = None) -> SublineConfig:
    """Load and validate configuration.

    Args:
        path: Explicit config file. If None, subline.yaml in the working
            directory is used when present, otherwise defaults apply.

    Returns:
        Validated SublineConfig

    Raises:
        ConfigError: If an explicit file is missing, YAML is malformed, or a
            value fails validation
    """
    if path is None:
        candidate = Path.cwd() / CONFIG_FILENAME
        if not candidate.exists():
            return SublineConfig()
        path = candidate
    elif not path.exists():
        raise ConfigError(f"Config file not found: {path}")

    try:
        with open(path, encoding="utf-8") as f:
            raw_config = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Could not read config file {path}: {e}") from e

    if not isinstance(raw_config, dict):
        raise ConfigError(f"Invalid config in {path}: root must be a mapping")

    raw_config["config_path"] = path

    try:
        return SublineConfig(**raw_config)
    except ValidationError as e:
        raise ConfigError(f"Invalid config in {path}: {e}") from e


def load_api_key(env_file: Path | None = None) -> str:
    """Read the transcription API key from the environment.

    A .env file is loaded first without overriding variables that are
    already set.

    Raises:
        ConfigError: If the key is missing or empty
    """
    if env_file is not None:
        load_dotenv(env_file, override=False)
    else:
        load_dotenv(find_dotenv(usecwd=True), override=False)

    api_key = os.getenv(API_KEY_ENV, "").strip()
    if not api_key:
        raise ConfigError(f"{API_KEY_ENV} is not set. Add it to your environment or a .env file.")
    return api_key


def write_config(config: dict[str, Any], path: Path) -> None:
    """Write configuration to a YAML file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        yaml.dump(config, f, default_flow_style=False, sort_keys=False)
