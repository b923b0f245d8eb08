"""LLM extraction backends with config-driven provider selection."""

import asyncio
from abc import ABC, abstractmethod
from typing import List, Optional

import anthropic
import openai
import structlog
from pydantic import BaseModel

from ..config.settings import LLMSettings
from ..exceptions import LlmExtractionError

logger = structlog.get_logger(__name__)


class LLMMessage(BaseModel):
    """LLM message with role and content."""
    role: str  # "system", "user", "assistant"
    content: str


class LLMResponse(BaseModel):
    """LLM response with content and metadata."""
    content: str
    model_used: str
    provider: str


class LLMExtractor(ABC):
    """Sends a single extraction prompt to a provider and returns the raw text.

    Subclasses implement ``_complete``; ``extract`` bounds every call with
    the configured timeout and converts provider failures into
    ``LlmExtractionError``.
    """

    name = "base"

    def __init__(self, model: str, max_tokens: int, temperature: float, timeout_seconds: float):
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.timeout_seconds = timeout_seconds

    async def extract(self, prompt: str) -> str:
        messages = [LLMMessage(role="user", content=prompt)]
        try:
            response = await asyncio.wait_for(self._complete(messages), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            raise LlmExtractionError(self.name, f"timed out after {self.timeout_seconds}s")
        except LlmExtractionError:
            raise
        except Exception as exc:
            raise LlmExtractionError(self.name, str(exc)) from exc

        logger.info("LLM extraction completed",
                    provider=response.provider,
                    model=response.model_used,
                    response_chars=len(response.content))
        return response.content

    @abstractmethod
    async def _complete(self, messages: List[LLMMessage]) -> LLMResponse:
        """Send ``messages`` to the provider."""


class OpenAIExtractor(LLMExtractor):
    """OpenAI chat completions in JSON mode."""

    name = "openai"

    def __init__(self, api_key: str, **kwargs):
        super().__init__(**kwargs)
        self._client = openai.AsyncOpenAI(api_key=api_key)

    async def _complete(self, messages: List[LLMMessage]) -> LLMResponse:
        completion = await self._client.chat.completions.create(
            model=self.model,
            messages=[{"role": msg.role, "content": msg.content} for msg in messages],
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            response_format={"type": "json_object"},
        )
        content = completion.choices[0].message.content if completion.choices else None
        return LLMResponse(content=content or "{}", model_used=self.model, provider=self.name)


class AnthropicExtractor(LLMExtractor):
    """Anthropic messages API."""

    name = "anthropic"

    def __init__(self, api_key: str, **kwargs):
        super().__init__(**kwargs)
        self._client = anthropic.AsyncAnthropic(api_key=api_key)

    async def _complete(self, messages: List[LLMMessage]) -> LLMResponse:
        message = await self._client.messages.create(
            model=self.model,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            messages=[{"role": msg.role, "content": msg.content} for msg in messages],
        )
        text = "".join(block.text for block in message.content if block.type == "text")
        return LLMResponse(content=text or "{}", model_used=self.model, provider=self.name)


def build_llm_extractor(settings: LLMSettings) -> Optional[LLMExtractor]:
    """Pick the configured backend; None when no provider or key is configured."""
    common = {
        "max_tokens": settings.max_tokens,
        "temperature": settings.temperature,
        "timeout_seconds": settings.timeout_seconds,
    }

    if settings.provider == "openai":
        if not settings.openai_api_key:
            logger.warning("OpenAI API key not configured, LLM extraction disabled")
            return None
        return OpenAIExtractor(api_key=settings.openai_api_key, model=settings.openai_model, **common)

    if settings.provider == "anthropic":
        if not settings.anthropic_api_key:
            logger.warning("Anthropic API key not configured, LLM extraction disabled")
            return None
        return AnthropicExtractor(api_key=settings.anthropic_api_key, model=settings.anthropic_model, **common)

    logger.info("LLM extraction disabled", provider=settings.provider)
    return None
