from __future__ import annotations

import os
from functools import lru_cache
from typing import Optional, Tuple

from dotenv import load_dotenv


load_dotenv()


def _phrases(raw: str) -> Tuple[str, ...]:
    return tuple(p.strip().lower() for p in raw.split(",") if p.strip())


class Settings:
    """Application settings loaded from environment variables.

    Keep all credentials and config centralized here.
    """

    app_env: str = os.getenv("APP_ENV", "development")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    google_api_key: Optional[str] = os.getenv("GOOGLE_API_KEY")
    gemini_model: str = os.getenv("GEMINI_MODEL", "gemini-2.0-flash")
    embedding_model: str = os.getenv("EMBEDDING_MODEL", "models/text-embedding-004")
    temperature: float = float(os.getenv("MODEL_TEMPERATURE", "0.7"))
    max_output_tokens: int = int(os.getenv("MODEL_MAX_TOKENS", "150"))

    # No URL means an in-process store that lives as long as the server does.
    qdrant_url: Optional[str] = os.getenv("QDRANT_URL")
    qdrant_api_key: Optional[str] = os.getenv("QDRANT_API_KEY")
    qdrant_collection: str = os.getenv("QDRANT_COLLECTION", "memory_store")

    trigger_phrases: Tuple[str, ...] = _phrases(
        os.getenv("TRIGGER_PHRASES", "forgot,don't remember")
    )
    similarity_threshold: float = float(os.getenv("SIMILARITY_THRESHOLD", "0.4"))
    recall_top_k: int = int(os.getenv("RECALL_TOP_K", "5"))
    buffer_timeout_seconds: float = float(os.getenv("BUFFER_TIMEOUT_SECONDS", "5.0"))
    question_collection_seconds: float = float(
        os.getenv("QUESTION_COLLECTION_SECONDS", "2.0")
    )
    long_utterance_chars: int = int(os.getenv("LONG_UTTERANCE_CHARS", "50"))

    session_idle_seconds: float = float(os.getenv("SESSION_IDLE_SECONDS", "1800"))
    eviction_interval_seconds: float = float(os.getenv("EVICTION_INTERVAL_SECONDS", "60"))


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
