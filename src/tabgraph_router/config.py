"""
Configuration management for the query router.
"""

import logging
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Router settings loaded from environment variables (prefix ``TABGRAPH_``)."""

    # Local inference endpoint (OpenAI-compatible, e.g. llama.cpp / vLLM / Ollama)
    model_api_base_url: str = "http://localhost:11434/v1"
    model_api_key: str = "local"

    # Model Configuration
    compact_model: str = "flan-t5-small"
    reasoning_model: str = "phi-3.5-mini-instruct"
    reasoning_model_cpu: str = "qwen2.5-1.5b-instruct"
    compact_max_tokens: int = 10
    reasoning_max_tokens: int = 200

    # Tier timeouts (seconds)
    compact_tier_timeout_s: float = 2.0
    reasoning_tier_timeout_s: float = 8.0
    model_load_timeout_s: float = 30.0

    # Remote tier
    remote_tier_enabled: bool = True
    remote_model_label: str = "Remote LLM"

    # Graph / history
    max_event_history: int = 1000
    session_gap_minutes: float = 30.0

    # Logging
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="TABGRAPH_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


# Cached settings instance
settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get or create the cached settings instance."""
    global settings
    if settings is None:
        settings = Settings()
    return settings


def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure process-wide logging.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance for a module.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Logger instance
    """
    return logging.getLogger(name)
