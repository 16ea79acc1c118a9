"""Configuration management for the orchestration core.

Supports YAML configuration files and environment variable overrides.
Configuration is loaded once and cached.
"""

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_TEXT_SYSTEM_PROMPT = "You are a helpful assistant."


class ProviderSettings(BaseSettings):
    """LLM provider configuration."""
    provider: str = Field(default="openrouter", description="Provider: openrouter, mock")
    api_key: Optional[str] = Field(default=None, description="Provider API key")
    base_url: str = Field(default="https://openrouter.ai/api/v1")
    text_model: str = Field(default="anthropic/claude-sonnet-4")
    svg_model: str = Field(default="anthropic/claude-sonnet-4")
    image_model: str = Field(default="google/gemini-2.5-flash-image")
    enhance_model: str = Field(default="openai/gpt-5.1", description="Model for prompt enhancement")
    temperature: float = Field(default=0.7, ge=0, le=2)
    max_tokens: int = Field(default=16384, gt=0)
    timeout_seconds: float = Field(default=120.0, gt=0)

    # Client identification headers
    referer: str = Field(default="https://github.com/pixel-minion-vscode")
    app_title: str = Field(default="Pixel Minion")

    model_config = SettingsConfigDict(
        env_prefix="OPENROUTER_",
        env_file=".env",
        extra="ignore"
    )


class ConversationSettings(BaseSettings):
    """Conversation bookkeeping configuration."""
    max_turns: int = Field(default=10, ge=0, description="Turn ceiling for text conversations")
    text_system_prompt: str = Field(default=DEFAULT_TEXT_SYSTEM_PROMPT)

    model_config = SettingsConfigDict(
        env_prefix="CONVERSATION_",
        env_file=".env",
        extra="ignore"
    )


class Settings(BaseSettings):
    """Main application settings."""
    environment: str = Field(default="development")
    debug: bool = Field(default=False)
    log_level: str = Field(default="INFO")
    json_logs: bool = Field(default=False)

    provider: ProviderSettings = Field(default_factory=ProviderSettings)
    conversation: ConversationSettings = Field(default_factory=ConversationSettings)

    model_config = SettingsConfigDict(
        env_prefix="PIXEL_MINION_",
        env_file=".env",
        extra="ignore"
    )

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Settings":
        """Load settings from a YAML file, falling back to defaults when absent."""
        data = load_yaml_config(path)
        return cls(**data)


def load_yaml_config(path: str | Path) -> dict[str, Any]:
    """Load a YAML configuration file."""
    path = Path(path)
    if not path.exists():
        return {}

    with open(path) as f:
        return yaml.safe_load(f) or {}


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    config_path = os.environ.get("PIXEL_MINION_CONFIG_PATH", "config/settings.yaml")
    return Settings.from_yaml(config_path)
