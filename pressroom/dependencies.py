"""FastAPI dependency providers for services built from settings."""

from functools import lru_cache
from typing import Optional

from .config.settings import get_settings
from .database.engine import get_session_factory
from .ingestion.pipeline import IngestionPipeline
from .services.llm import LLMExtractor, build_llm_extractor
from .services.review import ReviewService


@lru_cache()
def get_llm_extractor() -> Optional[LLMExtractor]:
    """LLM backend chosen once per process from settings."""
    return build_llm_extractor(get_settings().llm)


async def get_ingestion_pipeline() -> IngestionPipeline:
    session_factory = await get_session_factory()
    return IngestionPipeline(
        session_factory,
        settings=get_settings().ingestion,
        llm_extractor=get_llm_extractor(),
    )


async def get_review_service() -> ReviewService:
    return ReviewService(await get_session_factory())
