"""
Configuration management for the SpaceMolt agent.

Uses pydantic-settings for environment variable parsing and validation.
"""

import os
from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_GAME_URL = "https://game.spacemolt.com/api/v1"

# Providers served through an OpenAI-compatible endpoint on localhost
LOCAL_BASE_URLS = {
    "ollama": "http://localhost:11434/v1",
    "lmstudio": "http://localhost:1234/v1",
    "vllm": "http://localhost:8000/v1",
}


class LLMConfig(BaseSettings):
    """Configuration for a single LLM provider."""

    model_config = SettingsConfigDict(extra="ignore")

    provider: str = "anthropic"
    model: str = "claude-sonnet-4-20250514"
    api_key: str = ""
    base_url: str | None = None
    max_tokens: int = 4096
    temperature: float = 0.7


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_nested_delimiter="__",
    )

    # Application
    app_name: str = "SpaceMolt-Agent"
    debug: bool = False
    log_level: str = "INFO"

    # Game server
    spacemolt_url: str = Field(default=DEFAULT_GAME_URL, description="Family A (v1) API base URL")
    spacemolt_v2_url: str = Field(default="", description="Family B (v2) API base URL, derived from v1 if empty")
    request_timeout: float = Field(default=30.0, description="HTTP timeout per game request in seconds")
    v2_direct_commands: str = Field(
        default="v2_get_player,v2_get_ship,v2_get_cargo,v2_get_skills,v2_get_map",
        description="Comma-separated commands always sent to the v2 API (prefix stripped)",
    )
    v2_routed_commands: str = Field(
        default="storage,market,faction,missions,fleet",
        description="Comma-separated commands routed to v2 when the payload carries an action",
    )

    # LLM Providers (API Keys)
    anthropic_api_key: str = Field(default="", description="Anthropic API key for Claude")
    openai_api_key: str = Field(default="", description="OpenAI API key")
    openrouter_api_key: str = Field(default="", description="OpenRouter API key")
    groq_api_key: str = Field(default="", description="Groq API key")
    xai_api_key: str = Field(default="", description="xAI API key")
    mistral_api_key: str = Field(default="", description="Mistral API key")
    ollama_base_url: str = Field(default=LOCAL_BASE_URLS["ollama"], description="Ollama endpoint")

    # Default model settings
    default_model: str = Field(
        default="anthropic/claude-sonnet-4-20250514",
        description="Model string in provider/model-id form",
    )
    max_tokens: int = 4096
    temperature: float = 0.7
    context_window: int = Field(default=128_000, description="Model context window in tokens")

    # Agent
    sessions_dir: str = Field(default="./sessions", description="Directory holding per-session state")
    prompt_file: str = Field(default="PROMPT.md", description="Game knowledge prompt file")
    turn_interval_seconds: float = Field(default=2.0, description="Pause between agent turns")

    @field_validator("spacemolt_url", "spacemolt_v2_url", mode="before")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.strip().rstrip("/") if v else ""

    @property
    def v2_url(self) -> str:
        """Base URL of the v2 endpoint family."""
        if self.spacemolt_v2_url:
            return self.spacemolt_v2_url
        if self.spacemolt_url.endswith("/v1"):
            return self.spacemolt_url[: -len("/v1")] + "/v2"
        return self.spacemolt_url + "/v2"

    @property
    def v2_direct_commands_set(self) -> frozenset[str]:
        return frozenset(c.strip() for c in self.v2_direct_commands.split(",") if c.strip())

    @property
    def v2_routed_commands_set(self) -> frozenset[str]:
        return frozenset(c.strip() for c in self.v2_routed_commands.split(",") if c.strip())

    @property
    def sessions_path(self) -> Path:
        return Path(self.sessions_dir).expanduser()

    def get_llm_config(self, model_string: str | None = None) -> LLMConfig:
        """Get LLM configuration for a ``provider/model-id`` string."""
        model_string = model_string or self.default_model
        if "/" not in model_string:
            raise ValueError(
                f'Invalid model string "{model_string}". '
                "Expected format: provider/model-id (e.g. ollama/qwen3:8b)"
            )
        provider, model = model_string.split("/", 1)

        api_key_map = {
            "anthropic": self.anthropic_api_key,
            "openai": self.openai_api_key,
            "openrouter": self.openrouter_api_key,
            "groq": self.groq_api_key,
            "xai": self.xai_api_key,
            "mistral": self.mistral_api_key,
        }

        base_url_map = {
            "openrouter": "https://openrouter.ai/api/v1",
            "groq": "https://api.groq.com/openai/v1",
            "xai": "https://api.x.ai/v1",
            "mistral": "https://api.mistral.ai/v1",
            **LOCAL_BASE_URLS,
            "ollama": self.ollama_base_url,
        }

        # Local servers ignore the key but the SDK requires one
        if provider in LOCAL_BASE_URLS:
            api_key = "local"
        else:
            api_key = api_key_map.get(provider) or os.getenv(f"{provider.upper()}_API_KEY", "")

        return LLMConfig(
            provider=provider,
            model=model,
            api_key=api_key,
            base_url=base_url_map.get(provider),
            max_tokens=self.max_tokens,
            temperature=self.temperature,
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
