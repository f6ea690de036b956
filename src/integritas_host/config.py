"""Application configuration using Pydantic Settings."""

import json
import os
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

LLMProvider = Literal["anthropic", "openai", "openrouter", "mock"]

DEFAULT_CORS_ORIGIN = "http://localhost:3000"
DEFAULT_ANTHROPIC_MODEL = "claude-3-5-sonnet-20240620"
DEFAULT_OPENAI_MODEL = "gpt-4o-mini"
DEFAULT_OPENROUTER_MODEL = "deepseek/deepseek-chat-v3.1:free"
DEFAULT_OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"

# Server-side model allowlists. The mock provider is unrestricted.
ALLOWED_MODELS: dict[str, tuple[str, ...]] = {
    "anthropic": (
        "claude-3-5-sonnet-20240620",
        "claude-3-5-haiku-20241022",
    ),
    "openai": (
        "gpt-4o-mini",
        "gpt-4.1-mini",
    ),
    "openrouter": (
        "google/gemma-2-9b-it:free",
        "openai/gpt-4o-mini",
        "deepseek/deepseek-chat-v3.1:free",
    ),
}

SECRET_FILE_ENV_VARS = (
    "ANTHROPIC_API_KEY",
    "OPENAI_API_KEY",
    "OPENROUTER_API_KEY",
)


def _load_secret_file_env_vars() -> None:
    """Allow secrets to be sourced from *_FILE env vars (Docker secrets)."""
    for env_var in SECRET_FILE_ENV_VARS:
        file_var = f"{env_var}_FILE"
        file_path = os.getenv(file_var)
        if not file_path:
            continue
        try:
            value = Path(file_path).read_text(encoding="utf-8").strip()
        except OSError as exc:
            raise RuntimeError(f"Failed to read {file_var} at {file_path}") from exc
        if not value:
            raise ValueError(f"{file_var} is empty")
        os.environ[env_var] = value


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # ----- Application -----
    app_env: Literal["development", "staging", "production"] = "development"
    log_level: Literal["debug", "info", "warning", "error"] = "info"
    host: str = "0.0.0.0"
    port: int = 8788

    # ----- LLM Provider Selection -----
    llm_provider: LLMProvider = "anthropic"
    llm_max_tokens: int = 4096
    llm_json_mode: bool = True
    max_tool_rounds: int = 3

    # ----- Anthropic -----
    anthropic_api_key: str = ""
    anthropic_model: str = DEFAULT_ANTHROPIC_MODEL

    # ----- OpenAI -----
    openai_api_key: str = ""
    openai_model: str = DEFAULT_OPENAI_MODEL

    # ----- OpenRouter (OpenAI-compatible) -----
    openrouter_api_key: str = ""
    openrouter_model: str = DEFAULT_OPENROUTER_MODEL
    openrouter_base_url: str = DEFAULT_OPENROUTER_BASE_URL

    # ----- MCP tool server -----
    mcp_mode: Literal["stdio", "http", "sse"] = "stdio"
    mcp_stdio_cmd: str = "python"
    mcp_stdio_args_str: str = Field(default="", alias="mcp_stdio_args")
    mcp_cwd: str | None = None
    mcp_http_url: str | None = None
    mcp_sse_url: str | None = None
    mcp_request_timeout_seconds: float = 240.0
    tool_call_timeout_seconds: float = 120.0

    # ----- CORS -----
    # Can be set as JSON list or comma-separated string
    cors_origins_str: str = Field(default=DEFAULT_CORS_ORIGIN, alias="cors_origins")

    @property
    def cors_origins(self) -> list[str]:
        """Parse cors_origins from comma-separated string or JSON list."""
        v = self.cors_origins_str
        if not v:
            return [DEFAULT_CORS_ORIGIN]
        if v.startswith("["):
            raw = json.loads(v)
            if not isinstance(raw, list) or not all(isinstance(origin, str) for origin in raw):
                raise ValueError("CORS_ORIGINS must be a JSON list of strings")
            return raw
        return [origin.strip() for origin in v.split(",") if origin.strip()]

    @property
    def mcp_stdio_args(self) -> list[str]:
        """Arguments for the stdio tool server launch (whitespace separated)."""
        args = self.mcp_stdio_args_str.split()
        return args or ["-m", "integritas_mcp_server", "--stdio"]

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    def default_model(self, provider: str) -> str:
        """Fallback model for a provider when the request names none."""
        return {
            "anthropic": self.anthropic_model,
            "openai": self.openai_model,
            "openrouter": self.openrouter_model,
            "mock": "mock",
        }[provider]

    def api_key_for(self, provider: str) -> str:
        """Configured credential for a provider ("" when missing)."""
        return {
            "anthropic": self.anthropic_api_key,
            "openai": self.openai_api_key,
            "openrouter": self.openrouter_api_key,
        }.get(provider, "")

    @model_validator(mode="after")
    def validate_mcp_settings(self) -> "Settings":
        """The selected MCP transport needs its target."""
        if self.mcp_mode == "http" and not self.mcp_http_url:
            raise ValueError("MCP_HTTP_URL is required when MCP_MODE=http")
        if self.mcp_mode == "sse" and not self.mcp_sse_url:
            raise ValueError("MCP_SSE_URL is required when MCP_MODE=sse")
        if self.max_tool_rounds < 1:
            raise ValueError("MAX_TOOL_ROUNDS must be at least 1")
        return self

    @model_validator(mode="after")
    def validate_production_settings(self) -> "Settings":
        """Ensure restrictive settings in production environment."""
        if self.is_production:
            if self.log_level == "debug":
                raise ValueError("LOG_LEVEL=debug is not allowed in production!")
            if any(origin in {"*", DEFAULT_CORS_ORIGIN} for origin in self.cors_origins):
                raise ValueError("CORS_ORIGINS must be restricted in production!")
            if self.llm_provider == "mock":
                raise ValueError("LLM_PROVIDER=mock is not allowed in production!")
        return self


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    _load_secret_file_env_vars()
    return Settings()
