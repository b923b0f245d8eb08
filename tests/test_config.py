"""Tests for configuration management."""

import pytest
from pydantic import ValidationError

from pressroom.config.ingestion import IngestionSettings
from pressroom.config.settings import LLMSettings, MonitoringSettings, Settings
from pressroom.exceptions import LlmExtractionError
from pressroom.services.llm import (
    AnthropicExtractor,
    LLMExtractor,
    LLMResponse,
    OpenAIExtractor,
    build_llm_extractor,
)


@pytest.fixture
def clean_llm_env(monkeypatch):
    for name in ("OPENAI_API_KEY", "LLM_OPENAI_API_KEY", "ANTHROPIC_API_KEY",
                 "LLM_ANTHROPIC_API_KEY", "CLAUDE_API_KEY", "LLM_PROVIDER"):
        monkeypatch.delenv(name, raising=False)


class TestIngestionSettings:
    """Ingestion tunables and their bounds."""

    def test_defaults(self):
        settings = IngestionSettings()

        assert settings.webhook_api_key is None
        assert settings.default_agency_id == "agency_default"
        assert settings.llm_confidence_threshold == 0.8
        assert settings.fingerprint_prefix_length == 10
        assert settings.similar_match_limit == 5

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("INGESTION_WEBHOOK_API_KEY", "s3cret")
        monkeypatch.setenv("INGESTION_DEFAULT_AGENCY_ID", "agency_42")
        monkeypatch.setenv("INGESTION_SIMILAR_MATCH_LIMIT", "3")

        settings = IngestionSettings()

        assert settings.webhook_api_key == "s3cret"
        assert settings.default_agency_id == "agency_42"
        assert settings.similar_match_limit == 3

    @pytest.mark.parametrize("field,value", [
        ("structured_confidence", 1.5),
        ("llm_confidence_threshold", -0.1),
        ("fingerprint_prefix_length", 3),
        ("fingerprint_prefix_length", 11),
        ("similar_match_limit", 0),
    ])
    def test_out_of_range_values_rejected(self, field, value):
        with pytest.raises(ValidationError):
            IngestionSettings(**{field: value})


class TestLLMSettings:

    def test_provider_is_normalised(self, clean_llm_env):
        assert LLMSettings(provider="OpenAI").provider == "openai"

    def test_unknown_provider_rejected(self, clean_llm_env):
        with pytest.raises(ValidationError):
            LLMSettings(provider="cohere")

    def test_timeout_must_be_bounded(self, clean_llm_env):
        with pytest.raises(ValidationError):
            LLMSettings(timeout_seconds=0)

    def test_api_key_follows_provider(self, clean_llm_env):
        settings = LLMSettings(provider="anthropic", openai_api_key="sk-o", anthropic_api_key="sk-a")
        assert settings.api_key == "sk-a"
        assert LLMSettings(provider="none", openai_api_key="sk-o").api_key is None

    def test_provider_key_from_environment(self, clean_llm_env, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
        assert LLMSettings(provider="openai").api_key == "sk-env"


class TestExtractorFactory:
    """build_llm_extractor returns a backend only when fully configured."""

    def test_disabled_by_default(self, clean_llm_env):
        assert build_llm_extractor(LLMSettings()) is None

    def test_missing_key_disables(self, clean_llm_env):
        assert build_llm_extractor(LLMSettings(provider="openai")) is None
        assert build_llm_extractor(LLMSettings(provider="anthropic")) is None

    def test_openai(self, clean_llm_env):
        extractor = build_llm_extractor(LLMSettings(provider="openai", openai_api_key="sk-test"))

        assert isinstance(extractor, OpenAIExtractor)
        assert extractor.name == "openai"
        assert extractor.timeout_seconds == 20.0

    def test_anthropic(self, clean_llm_env):
        extractor = build_llm_extractor(
            LLMSettings(provider="anthropic", anthropic_api_key="sk-test", anthropic_model="claude-test")
        )

        assert isinstance(extractor, AnthropicExtractor)
        assert extractor.model == "claude-test"


class TestExtractorBase:
    """Shared timeout and error handling around a provider call."""

    def test_base_class_cannot_be_instantiated(self):
        with pytest.raises(TypeError):
            LLMExtractor(model="m", max_tokens=10, temperature=0.0, timeout_seconds=1.0)

    def test_subclass_must_implement_complete(self):
        class Incomplete(LLMExtractor):
            name = "incomplete"

        with pytest.raises(TypeError):
            Incomplete(model="m", max_tokens=10, temperature=0.0, timeout_seconds=1.0)

    @pytest.mark.asyncio
    async def test_provider_errors_are_wrapped(self):
        class Failing(LLMExtractor):
            name = "failing"

            async def _complete(self, messages):
                raise RuntimeError("rate limited")

        extractor = Failing(model="m", max_tokens=10, temperature=0.0, timeout_seconds=1.0)

        with pytest.raises(LlmExtractionError):
            await extractor.extract("prompt")

    @pytest.mark.asyncio
    async def test_returns_provider_text(self):
        class Echo(LLMExtractor):
            name = "echo"

            async def _complete(self, messages):
                return LLMResponse(content=messages[0].content, model_used=self.model, provider=self.name)

        extractor = Echo(model="m", max_tokens=10, temperature=0.0, timeout_seconds=1.0)

        assert await extractor.extract("Find the outlet.") == "Find the outlet."


class TestApplicationSettings:

    def test_nested_sections(self, clean_llm_env):
        settings = Settings()

        assert settings.environment == "development"
        assert settings.monitoring.log_format == "json"
        assert settings.ingestion.default_agency_id == "agency_default"
        assert settings.database.url.startswith("postgresql+asyncpg://")

    def test_sqlite_detection(self, monkeypatch):
        monkeypatch.setenv("DB_URL", "sqlite+aiosqlite:///./pressroom.db")
        assert Settings().database.is_sqlite is True

    def test_log_format_validated(self):
        with pytest.raises(ValidationError):
            MonitoringSettings(log_format="xml")
