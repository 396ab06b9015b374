"""Configuration management for the chat orchestrator.

Supports YAML configuration files and environment variable overrides.
Configuration is loaded once and cached for performance.
"""

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class LLMSettings(BaseSettings):
    """LLM provider configuration."""
    provider: str = Field(default="gemini", description="LLM provider: gemini, openai, azure_openai, mock")
    model: str = Field(default="gemini-2.5-pro", description="Model name")
    api_key: Optional[str] = Field(default=None, description="API key")
    api_base: Optional[str] = Field(default=None, description="API base URL")
    api_version: Optional[str] = Field(default="2024-02-15-preview", description="API version")
    deployment_name: Optional[str] = Field(default=None, description="Azure deployment name")
    temperature: float = Field(default=0.7, ge=0, le=2)
    max_tokens: int = Field(default=4096, gt=0)

    model_config = SettingsConfigDict(
        env_prefix="LLM_",
        env_file=".env",
        extra="ignore"
    )


class SearchSettings(BaseSettings):
    """Web search capability configuration (Google Custom Search)."""
    api_key: Optional[str] = Field(default=None, description="Custom Search API key")
    engine_id: Optional[str] = Field(default=None, description="Programmable search engine id (cx)")
    endpoint: str = Field(default="https://www.googleapis.com/customsearch/v1")
    num_results: int = Field(default=3, ge=1, le=10)
    timeout_seconds: float = Field(default=15.0, gt=0)

    model_config = SettingsConfigDict(
        env_prefix="SEARCH_",
        env_file=".env",
        extra="ignore"
    )


class RetrySettings(BaseSettings):
    """Upstream retry policy."""
    max_attempts: int = Field(default=5, ge=1)
    base_delay_ms: float = Field(default=2000, ge=0, description="Initial backoff for overloaded upstream")
    rate_limit_margin_ms: float = Field(default=500, ge=0, description="Added to advised rate-limit delays")

    model_config = SettingsConfigDict(
        env_prefix="RETRY_",
        env_file=".env",
        extra="ignore"
    )


class OrchestratorSettings(BaseSettings):
    """Orchestrator configuration."""
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)

    # Conversation
    max_tool_calls: int = Field(default=5, ge=1, description="Tool-calling rounds per request")
    assistant_name: str = Field(default="Assistant")
    fallback_reply: str = Field(
        default="Sorry, {assistant_name} couldn't come up with a proper reply this time."
    )
    system_prompt_path: Optional[str] = Field(default=None, description="Optional prompt template file")

    cors_origins: list[str] = Field(default_factory=lambda: ["*"])

    model_config = SettingsConfigDict(
        env_prefix="ORCHESTRATOR_",
        env_file=".env",
        extra="ignore"
    )


class Settings(BaseSettings):
    """Main application settings."""
    environment: str = Field(default="development")
    debug: bool = Field(default=False)
    log_level: str = Field(default="INFO")

    # Component settings
    llm: LLMSettings = Field(default_factory=LLMSettings)
    search: SearchSettings = Field(default_factory=SearchSettings)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    orchestrator: OrchestratorSettings = Field(default_factory=OrchestratorSettings)

    model_config = SettingsConfigDict(
        env_prefix="CHAT_",
        env_file=".env",
        extra="ignore"
    )

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Settings":
        """Load settings from a YAML file."""
        return cls(**load_yaml_config(path))


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
    config_path = os.environ.get("CHAT_CONFIG_PATH", "config/settings.yaml")
    return Settings.from_yaml(config_path)
