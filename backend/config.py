"""
Grounded Report Engine - Configuration

Application configuration using Pydantic Settings.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class LLMSettings(BaseSettings):
    """Ollama LLM configuration."""

    model_config = SettingsConfigDict(env_prefix="LLM_")

    base_url: str = Field(
        default="http://localhost:11434",
        description="Ollama API base URL"
    )
    model: str = Field(
        default="llama3.2:latest",
        description="Default model for outline and report generation"
    )
    timeout: float = Field(
        default=120.0,
        description="Request timeout in seconds"
    )
    max_retries: int = Field(
        default=3,
        description="Transport-level retry attempts for timeouts and 5xx"
    )
    temperature: float = Field(
        default=0.2,
        description="Sampling temperature for report generation"
    )
    max_tokens: int = Field(
        default=8192,
        description="Maximum tokens for the narrative call"
    )


class AnalysisSettings(BaseSettings):
    """Analysis engine configuration."""

    model_config = SettingsConfigDict(env_prefix="ANALYSIS_")

    # Relationships
    relationship_min_overlap: float = Field(
        default=0.5,
        description="Minimum share of shared values for a relationship"
    )
    cross_stat_top_n: int = Field(
        default=15,
        description="Groups kept per cross-dataset statistic"
    )

    # Charts
    bar_max_categories: int = Field(
        default=15,
        description="Maximum categories in a bar candidate"
    )
    line_min_points: int = Field(
        default=3,
        description="Minimum time buckets for a line candidate"
    )

    # Citations
    citation_limit: int = Field(
        default=20,
        description="Citation entries exposed to prompts and stored reports"
    )


class QualitySettings(BaseSettings):
    """Quality gate configuration."""

    model_config = SettingsConfigDict(env_prefix="QUALITY_")

    tolerance: float = Field(
        default=0.02,
        description="Relative tolerance for magnitude-normalized citations"
    )
    strict_threshold: int = Field(
        default=5,
        description="Citation warnings above this mark the report for review"
    )
    total_margin: float = Field(
        default=0.5,
        description="Relative error above which a 'total' metric is overwritten"
    )


class SQLSettings(BaseSettings):
    """SQL analysis path configuration."""

    model_config = SettingsConfigDict(env_prefix="SQL_")

    query_timeout_seconds: float = Field(
        default=10.0,
        description="Per-query execution budget"
    )
    max_rows: int = Field(
        default=500,
        description="Rows fetched per query"
    )


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Application
    app_name: str = "Grounded Report Engine"
    app_version: str = "1.0.0"
    debug: bool = Field(default=False, description="Debug mode")

    # Server
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port")

    # File Upload
    max_file_size_mb: int = Field(
        default=5,
        description="Maximum file size in MB"
    )

    # Persistence
    reports_dir: str = Field(
        default="./data/reports",
        description="Directory for generated reports"
    )

    # Session
    session_ttl_hours: int = Field(
        default=24,
        description="Uploaded dataset time-to-live in hours"
    )

    # Nested settings
    llm: LLMSettings = Field(default_factory=LLMSettings)
    analysis: AnalysisSettings = Field(default_factory=AnalysisSettings)
    quality: QualitySettings = Field(default_factory=QualitySettings)
    sql: SQLSettings = Field(default_factory=SQLSettings)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
