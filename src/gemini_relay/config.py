"""Configuration loader with YAML parsing, env-var interpolation, and Pydantic validation."""

from __future__ import annotations

import os
import re
from pathlib import Path

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

DEFAULT_SYSTEM_INSTRUCTION = (
    "You are a Telegram bot with a backend system which uses the Google Gemini API. "
    "Respond to the user's message as precisely as possible."
)


class ModelsConfig(BaseModel):
    text: str = "gemini-2.5-flash"
    image: str = "gemini-2.5-flash-image"
    video: str = "veo-2.0-generate-001"
    speech: str = "gemini-2.5-flash-preview-tts"


class TimeoutsConfig(BaseModel):
    """Per-stage deadlines, in seconds."""

    answer: int = 180
    request: int = 60
    ignorable_request: int = 3
    fetch_url: int = 10
    long_request: int = 600  # image/video/speech generation


class AppConfig(BaseModel):
    log_level: str = "INFO"
    verbose: bool = False

    telegram_bot_token: str
    google_ai_api_key: str

    system_instruction: str = DEFAULT_SYSTEM_INSTRUCTION
    models: ModelsConfig = Field(default_factory=ModelsConfig)
    speech_voice: str | None = "Kore"
    harm_block_threshold: str = "BLOCK_ONLY_HIGH"

    allowed_telegram_users: list[str] = Field(default_factory=list)
    db_path: str = "./data/gemini_relay.db"

    timeouts: TimeoutsConfig = Field(default_factory=TimeoutsConfig)
    media_group_wait_seconds: float = 1.0
    max_message_length: int = 4096
    caption_preview_length: int = 128
    ffmpeg_path: str = "ffmpeg"

    @model_validator(mode="after")
    def _verbose_implies_debug(self) -> "AppConfig":
        if self.verbose:
            self.log_level = "DEBUG"
        return self

    @property
    def secrets(self) -> list[str]:
        """Values that must never appear in logs or chat messages."""
        return [s for s in (self.telegram_bot_token, self.google_ai_api_key) if s]

    @property
    def allowed_users(self) -> frozenset[str]:
        return frozenset(u.lstrip("@") for u in self.allowed_telegram_users)


_ENV_VAR_PATTERN = re.compile(r"\$\{(\w+)\}")


def _interpolate_env_vars(text: str) -> str:
    """Replace ${VAR_NAME} patterns with environment variable values."""

    def _replace(match: re.Match) -> str:
        value = os.environ.get(match.group(1))
        if value is None:
            return match.group(0)
        return value

    return _ENV_VAR_PATTERN.sub(_replace, text)


def load_config(config_path: str | Path = "config.yaml", env_path: str | Path = ".env") -> AppConfig:
    """Load and validate configuration from YAML file with env-var interpolation."""
    env_file = Path(env_path)
    if env_file.exists():
        load_dotenv(env_file)

    config_file = Path(config_path)
    if not config_file.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_file}")

    raw_text = config_file.read_text(encoding="utf-8")
    data = yaml.safe_load(_interpolate_env_vars(raw_text)) or {}

    return AppConfig(**data)
