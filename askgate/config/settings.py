"""
Application settings and configuration management.

Uses Pydantic Settings for validation and environment variable support.
"""

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class LLMSettings(BaseSettings):
    """Generative model configuration."""

    model: str = Field(
        default="ollama/gemma3",
        description="LiteLLM model string, e.g. 'ollama/gemma3', 'openai/gpt-4o'. "
                    "The provider prefix tells LiteLLM which API to route the request to.",
    )
    api_base: str | None = Field(
        default="http://localhost:11434",
        description="Base URL of the model server. None lets LiteLLM use the provider default.",
    )
    api_key: str = Field(default="", description="API key for the model's provider")
    temperature: float = Field(
        default=0.5, ge=0.0, le=2.0, description="Sampling temperature for answers"
    )
    timeout: float = Field(
        default=120.0, gt=0.0, description="Deadline in seconds for a whole query"
    )
    tokenizer_encoding: str = Field(
        default="cl100k_base",
        description="tiktoken encoding used to count tokens for metrics",
    )

    model_config = SettingsConfigDict(env_prefix="LLM_")


class GateSettings(BaseSettings):
    """
    Similarity thresholds that gate each resolution path.

    A score must be strictly greater than its threshold to qualify.
    """

    min_confidence_rag: float = Field(
        default=0.80, ge=0.0, le=1.0,
        description="Minimum similarity for a fact to be added to the prompt context",
    )
    min_confidence_tool: float = Field(
        default=0.60, ge=0.0, le=1.0,
        description="Minimum similarity for a tool descriptor to trigger a tool call",
    )
    min_confidence_cache: float = Field(
        default=0.90, ge=0.0, le=1.0,
        description="Minimum similarity for a cache hit, and minimum model "
                    "confidence for an answer to be cached",
    )

    model_config = SettingsConfigDict(env_prefix="GATE_", frozen=True)


class StoreSettings(BaseSettings):
    """Vector store and embedding configuration."""

    vector_db_path: str = Field(
        default="data/vector_db",
        description="Path to vector database storage"
    )
    cache_collection: str = Field(
        default="cache", description="ChromaDB collection holding cached answers"
    )
    facts_collection: str = Field(
        default="rag", description="ChromaDB collection holding facts and tool descriptors"
    )
    max_results: int = Field(
        default=25, gt=0, description="Maximum number of results per similarity query"
    )

    # Local embeddings configuration (Sentence Transformers)
    embedding_model: str = Field(
        default="sentence-transformers/all-MiniLM-L6-v2",
        description="Sentence Transformers model name (local, no API key needed)"
    )
    embedding_device: Literal["cpu", "cuda"] = Field(
        default="cpu",
        description="Device for embedding generation (cpu or cuda)"
    )
    embedding_batch_size: int = Field(
        default=32,
        description="Batch size for embedding generation"
    )

    model_config = SettingsConfigDict(env_prefix="STORE_")


class ToolSettings(BaseSettings):
    """Deterministic tool configuration."""

    database_url: str = Field(
        default="sqlite+aiosqlite:///data/tools.db",
        description="SQLAlchemy async URL of the time-series database",
    )

    model_config = SettingsConfigDict(env_prefix="TOOL_")


class Settings(BaseSettings):
    """Main application settings."""

    # Environment
    environment: Literal["development", "production"] = Field(
        default="development", description="Deployment environment"
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )
    log_file: Path | None = Field(default=None, description="Log file path")

    # Sub-configurations
    llm: LLMSettings = Field(default_factory=LLMSettings)
    gate: GateSettings = Field(default_factory=GateSettings)
    store: StoreSettings = Field(default_factory=StoreSettings)
    tools: ToolSettings = Field(default_factory=ToolSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )


# Global settings instance
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get or create the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def load_settings(env_file: str | Path | None = None) -> Settings:
    """
    Load settings from file and environment.

    Args:
        env_file: Path to .env file (optional)

    Returns:
        Loaded settings instance
    """
    global _settings
    if env_file:
        _settings = Settings(_env_file=env_file)
    else:
        _settings = Settings()
    return _settings
