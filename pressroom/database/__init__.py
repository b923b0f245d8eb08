"""Database package for Pressroom."""

from .engine import get_database_engine, get_database_url, get_session_factory
from .session import get_database_session
from .models import Base, IngestionJob, ParsedQuery, ParseEvidence
from .repository import QueryStore

__all__ = [
    "get_database_engine",
    "get_database_url",
    "get_session_factory",
    "get_database_session",
    "Base",
    "IngestionJob",
    "ParsedQuery",
    "ParseEvidence",
    "QueryStore",
]
