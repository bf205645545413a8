from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol

from langchain_google_genai import GoogleGenerativeAIEmbeddings
from qdrant_client import AsyncQdrantClient
from qdrant_client import models as qdrant_models

from agent.errors import ProviderError
from config.settings import Settings, get_settings


logger = logging.getLogger(__name__)


class Embedder(Protocol):
    async def aembed_query(self, text: str) -> List[float]: ...


class MemoryWriter(Protocol):
    async def save_text(self, text: str, session_id: str) -> str: ...


@dataclass
class MemoryMatch:
    document: str
    distance: float
    metadata: Dict[str, Any]


def _session_filter(session_id: str) -> qdrant_models.Filter:
    return qdrant_models.Filter(
        must=[
            qdrant_models.FieldCondition(
                key="session_id",
                match=qdrant_models.MatchValue(value=session_id),
            )
        ]
    )


class MemoryStore:
    """Embeds transcript text and keeps it in a Qdrant collection.

    Points carry ``{document, session_id, timestamp}`` payloads. Cosine
    similarity scores are reported as distances (``1 - score``) so that lower
    means closer.
    """

    def __init__(
        self,
        client: AsyncQdrantClient,
        embedder: Embedder,
        collection_name: str = "memory_store",
    ) -> None:
        self._client = client
        self._embedder = embedder
        self._collection = collection_name
        self._collection_ready = False
        self._collection_lock = asyncio.Lock()

    @property
    def collection_name(self) -> str:
        return self._collection

    async def embed(self, text: str) -> List[float]:
        try:
            return list(await self._embedder.aembed_query(text))
        except Exception as exc:
            raise ProviderError(f"Embedding request failed: {exc}") from exc

    async def _ensure_collection(self, vector_size: int) -> None:
        if self._collection_ready:
            return
        async with self._collection_lock:
            if self._collection_ready:
                return
            if not await self._client.collection_exists(self._collection):
                logger.info(
                    "Creating Qdrant collection '%s' with %dd vectors",
                    self._collection,
                    vector_size,
                )
                await self._client.create_collection(
                    collection_name=self._collection,
                    vectors_config=qdrant_models.VectorParams(
                        size=vector_size, distance=qdrant_models.Distance.COSINE
                    ),
                )
                await self._client.create_payload_index(
                    collection_name=self._collection,
                    field_name="session_id",
                    field_schema=qdrant_models.PayloadSchemaType.KEYWORD,
                )
            self._collection_ready = True

    async def store(self, vector: List[float], text: str, session_id: str) -> str:
        point_id = str(uuid.uuid4())
        payload = {
            "document": text,
            "session_id": session_id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        try:
            await self._ensure_collection(len(vector))
            await self._client.upsert(
                collection_name=self._collection,
                points=[qdrant_models.PointStruct(id=point_id, vector=vector, payload=payload)],
            )
        except Exception as exc:
            raise ProviderError(f"Vector store write failed: {exc}") from exc
        logger.info("Stored memory %s for session %s (%s chars)", point_id, session_id, len(text))
        return point_id

    async def query(self, vector: List[float], session_id: str, top_k: int = 5) -> List[MemoryMatch]:
        try:
            if not self._collection_ready and not await self._client.collection_exists(
                self._collection
            ):
                return []
            response = await self._client.query_points(
                collection_name=self._collection,
                query=vector,
                query_filter=_session_filter(session_id),
                limit=top_k,
                with_payload=True,
            )
        except Exception as exc:
            raise ProviderError(f"Vector search failed: {exc}") from exc

        matches: List[MemoryMatch] = []
        for point in response.points:
            payload = dict(point.payload or {})
            document = payload.pop("document", "")
            score = float(point.score) if point.score is not None else 0.0
            matches.append(MemoryMatch(document=document, distance=1.0 - score, metadata=payload))
        matches.sort(key=lambda m: m.distance)
        return matches

    async def save_text(self, text: str, session_id: str) -> str:
        vector = await self.embed(text)
        return await self.store(vector, text, session_id)

    async def search(self, text: str, session_id: str, top_k: int = 5) -> List[MemoryMatch]:
        vector = await self.embed(text)
        return await self.query(vector, session_id, top_k)

    async def close(self) -> None:
        await self._client.close()


def build_memory_store(settings: Optional[Settings] = None) -> MemoryStore:
    settings = settings or get_settings()
    if not settings.google_api_key:
        raise RuntimeError(
            "GOOGLE_API_KEY not set. Please configure it in environment or .env"
        )

    embedder = GoogleGenerativeAIEmbeddings(
        model=settings.embedding_model,
        google_api_key=settings.google_api_key,
    )
    if settings.qdrant_url:
        logger.info("Connecting to Qdrant at %s", settings.qdrant_url)
        client = AsyncQdrantClient(url=settings.qdrant_url, api_key=settings.qdrant_api_key)
    else:
        logger.info("QDRANT_URL not provided; using in-process vector store")
        client = AsyncQdrantClient(location=":memory:")
    return MemoryStore(client, embedder, collection_name=settings.qdrant_collection)
