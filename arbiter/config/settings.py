"""Configuration settings for llm-arbiter."""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from arbiter.errors import ConfigurationError


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="ARBITER_",
        extra="ignore",
    )

    # Provider credentials (required at startup, see require_credentials)
    nvidia_api_key: str | None = None
    gemini_api_key: str | None = None

    # Chat-completion backend (one per registered model)
    chat_base_url: str = "https://integrate.api.nvidia.com/v1"
    default_model: str = "meta/llama3-70b-instruct"
    temperature: float = 0.7
    max_tokens: int = 512

    # Judge / analysis backend
    judge_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    judge_model: str = "gemini-2.0-flash"
    judge_max_output_tokens: int = 10
    judge_temperature: float = 0.1
    analysis_max_output_tokens: int = 100
    judge_excerpt_chars: int = 200

    # Retries and deadlines (seconds)
    max_retries: int = Field(default=3, ge=0)
    retry_base_delay: float = Field(default=2.0, ge=0.0)
    model_timeout: float = 20.0
    judge_timeout: float = 15.0
    analysis_timeout: float = 15.0

    # Candidate admission and fan-out ranking
    min_candidate_length: int = 20
    fanout_selector: Literal["judge", "heuristic"] = "judge"

    # Token buckets per channel (permits per second, burst capacity)
    analysis_rate_per_second: float = 5.0
    analysis_burst: int = 5
    generation_rate_per_second: float = 10.0
    generation_burst: int = 10
    judge_rate_per_second: float = 5.0
    judge_burst: int = 5

    # Response cache
    cache_max_entries: int = Field(default=1024, ge=1)

    # API settings
    api_host: str = "127.0.0.1"
    api_port: int = 3000
    api_key: str | None = None
    api_cors_origins: list[str] = Field(default=["*"])
    environment: Literal["development", "production"] = "production"

    # Logging
    log_level: str = "INFO"
    log_format: Literal["json", "console"] = "console"

    def require_credentials(self) -> None:
        """Fail hard when either provider key is absent."""
        missing = [
            name
            for name, value in (
                ("ARBITER_NVIDIA_API_KEY", self.nvidia_api_key),
                ("ARBITER_GEMINI_API_KEY", self.gemini_api_key),
            )
            if not value
        ]
        if missing:
            raise ConfigurationError(
                f"Missing API keys in environment variables: {', '.join(missing)}"
            )

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


settings = Settings()
