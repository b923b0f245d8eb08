"""Application settings configuration."""

from functools import lru_cache
from typing import List, Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings

from .ingestion import IngestionSettings


class DatabaseSettings(BaseSettings):
    """Database configuration settings."""

    url: str = Field(default="postgresql+asyncpg://postgres:@localhost:5432/pressroom")
    echo: bool = Field(default=False)
    pool_size: int = Field(default=10)
    max_overflow: int = Field(default=20)
    create_all: bool = Field(default=False)

    model_config = {
        "env_prefix": "DB_",
        "case_sensitive": False,
    }

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith("sqlite")


class LLMSettings(BaseSettings):
    """Large Language Model configuration settings."""

    provider: str = Field(default="none")  # none, openai, anthropic
    openai_api_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("LLM_OPENAI_API_KEY", "OPENAI_API_KEY", "openai_api_key"),
    )
    openai_model: str = Field(default="gpt-4o-mini")
    anthropic_api_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices(
            "LLM_ANTHROPIC_API_KEY", "ANTHROPIC_API_KEY", "CLAUDE_API_KEY", "anthropic_api_key"
        ),
    )
    anthropic_model: str = Field(default="claude-3-haiku-20240307")

    max_tokens: int = Field(default=1024)
    temperature: float = Field(default=0.0)
    timeout_seconds: float = Field(default=20.0)

    model_config = {
        "env_prefix": "LLM_",
        "case_sensitive": False,
        "populate_by_name": True,
    }

    @field_validator("provider")
    @classmethod
    def validate_provider(cls, v: str) -> str:
        """Validate LLM provider."""
        v = v.lower()
        if v not in ["none", "openai", "anthropic"]:
            raise ValueError("LLM provider must be none, openai, or anthropic")
        return v

    @field_validator("timeout_seconds")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        """LLM calls must always be bounded."""
        if v <= 0 or v > 120:
            raise ValueError("LLM timeout must be between 0 and 120 seconds")
        return v

    @property
    def api_key(self) -> Optional[str]:
        """Credential for the selected provider."""
        if self.provider == "openai":
            return self.openai_api_key
        if self.provider == "anthropic":
            return self.anthropic_api_key
        return None


class SecuritySettings(BaseSettings):
    """Security configuration settings."""

    cors_allowed_origins: List[str] = Field(default=["*"])

    model_config = {
        "env_prefix": "SECURITY_",
        "case_sensitive": False,
    }


class MonitoringSettings(BaseSettings):
    """Monitoring and observability settings."""

    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")  # json, console

    model_config = {
        "env_prefix": "MONITORING_",
        "case_sensitive": False,
    }

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        if v not in ["json", "console"]:
            raise ValueError("Log format must be json or console")
        return v


class Settings(BaseSettings):
    """Main application settings."""

    # Application
    environment: str = Field(default="development")
    debug: bool = Field(default=False)
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    llm: LLMSettings = Field(default_factory=LLMSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)
    ingestion: IngestionSettings = Field(default_factory=IngestionSettings)

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
    }


@lru_cache()
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
