"""Application settings using Pydantic."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

from coursegen.models import PipelineConfig


class Settings(BaseSettings):
    """Pipeline defaults loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="COURSEGEN_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Prompt Configuration
    prompt_version: str = "v1.0"
    max_input_chars: int = 50_000

    # Processing Configuration
    max_retries: int = 3
    retry_delay_seconds: float = 2.0
    min_response_chars: int = 100
    strict: bool = False

    # Quiz Defaults
    pass_mark: int = 80

    # Logging
    log_level: str = "INFO"
    log_json: bool = True

    def pipeline_config(self, **overrides) -> PipelineConfig:
        """Build a PipelineConfig seeded from these settings.

        Args:
            **overrides: Field values that take precedence (None values ignored).

        Returns:
            PipelineConfig for a single run.
        """
        values = {
            "prompt_version": self.prompt_version,
            "max_input_chars": self.max_input_chars,
            "max_retries": self.max_retries,
            "retry_delay_seconds": self.retry_delay_seconds,
            "min_response_chars": self.min_response_chars,
            "strict": self.strict,
            "pass_mark": self.pass_mark,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return PipelineConfig(**values)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
