"""
Application configuration using Pydantic Settings.

Supports hierarchical environment configuration:
- .env.base: Common non-secret defaults (committed to git)
- .env.{ENVIRONMENT}: Environment-specific overrides (gitignored)
- Environment variables: Highest priority
"""

import os
from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

# Get environment from env var, default to development
ENV = os.getenv("ENVIRONMENT", "development")


class Settings(BaseSettings):
    """Application settings with hierarchical env file support."""

    model_config = SettingsConfigDict(
        env_file=[
            ".env.base",
            f".env.{ENV}",
        ],
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    environment: Literal["development", "test", "production"] = "development"
    cors_origins: list[str] = ["http://localhost:3000", "http://127.0.0.1:3000"]

    # External APIs - LLM providers (read-only, never mutated at runtime)
    xai_api_key: str = ""
    openai_api_key: str = ""
    dashscope_api_key: str = ""  # Alibaba Cloud DashScope (Qwen)
    perplexity_api_key: str = ""

    # External APIs - Market data
    alpha_vantage_api_key: str = ""

    # Collaborator services (history search, per-user custom instructions)
    history_search_url: str = ""
    custom_instructions_url: str = ""
    collaborator_api_token: str = ""

    # LLM Configuration
    default_llm_temperature: float = 0.7
    max_output_tokens: int = 4000

    # Request orchestration
    request_timeout_seconds: float = 120.0  # Whole-request deadline
    subfetch_timeout_seconds: float = 10.0  # Cap per context lookup
    tool_loop_max_rounds: int = 5  # Reasoning/tool rounds in portfolio mode
    max_ticker_symbols: int = 3  # Limit quote lookups per request

    # Combined analysis: three branch models + one synthesis model
    combined_branch_models: list[str] = ["gpt-4o", "grok-4", "sonar-pro"]
    synthesis_model: str = "gpt-4o"

    # Phrases that switch a conversation into portfolio (tool-calling) mode
    portfolio_trigger_phrases: list[str] = [
        "portfolio mode",
        "analyze my portfolio",
        "portfolio analysis",
    ]

    def credential_for(self, name: str) -> str:
        """Return the configured secret for a credential field name ("" if unset)."""
        value = getattr(self, name, "")
        return value if isinstance(value, str) else ""


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
