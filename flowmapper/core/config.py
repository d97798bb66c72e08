"""
Configuration management using Pydantic Settings.
Loads from environment variables and .env file.
"""

from typing import Literal
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    """Application configuration loaded from environment."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # LLM Provider
    llm_provider: Literal["openai", "anthropic"] = Field(
        default="openai",
        description="Which LLM provider backs the decision stage"
    )
    decision_provider: Literal["llm", "heuristic"] = Field(
        default="llm",
        description="Decision policy: LLM-backed or deterministic heuristic"
    )

    # OpenAI
    openai_api_key: str = Field(default="", description="OpenAI API key")
    openai_model: str = Field(default="gpt-4o", description="OpenAI model name")

    # Anthropic
    anthropic_api_key: str = Field(default="", description="Anthropic API key")
    anthropic_model: str = Field(
        default="claude-sonnet-4-5",
        description="Anthropic model name"
    )
    llm_temperature: float = Field(
        default=0.1,
        description="Sampling temperature for decisions"
    )

    # Database
    database_path: str = Field(
        default="./data/flowmapper.db",
        description="SQLite database path for the state/transition graph"
    )

    # Server
    api_host: str = Field(default="0.0.0.0", description="API host")
    api_port: int = Field(default=8000, description="API port")

    # Browser
    headless: bool = Field(default=True, description="Run browser in headless mode")
    browser_timeout: int = Field(default=30000, description="Browser timeout in ms")
    network_idle_timeout: int = Field(
        default=30000,
        description="How long to wait for network idle after a batch, in ms"
    )

    # Exploration
    max_iterations: int = Field(
        default=20,
        description="Default iteration cap per session"
    )
    history_tail_size: int = Field(
        default=5,
        description="How many recent history entries the decision provider sees"
    )
    action_settle_delay: float = Field(
        default=0.5,
        description="Pause between actions of one batch, in seconds"
    )
    terminate_on_cycle: bool = Field(
        default=True,
        description="End the session on an exact state revisit (otherwise backtrack)"
    )
    ignore_selectors: list[str] = Field(
        default_factory=list,
        description="CSS selectors of page regions never offered as actions (cookie banners, chat widgets)"
    )

    # Story replay
    replay_step_delay: float = Field(
        default=1.0,
        description="Pause after each replay step, in seconds"
    )

    # Credentials for automatic login
    cred_username: str = Field(default="", description="Login username")
    cred_password: str = Field(default="", description="Login password")

    # Logging
    log_level: Literal["debug", "info", "warning", "error"] = Field(
        default="info",
        description="Root log level"
    )
    log_file: str | None = Field(default=None, description="Optional log file path")


# Global settings instance
settings = Settings()
