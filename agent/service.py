from __future__ import annotations

import asyncio
import logging
import time
from typing import Iterable, List, Optional

from agent.agent import build_response_generator
from agent.core.buffer import Clock, SessionBufferStore
from agent.core.memory import MemoryStore, build_memory_store
from agent.pipeline.ingest import SegmentIngestor, StaleBufferReaper, normalize_fragment
from agent.pipeline.recall import AnswerGenerator, RecallDispatcher, TriggerWatcher
from agent.pipeline.timers import TimerRegistry
from agent.records import MemoryRecord, store_memory_record
from config.settings import Settings, get_settings


logger = logging.getLogger(__name__)


class TranscriptService:
    """Owns every session buffer and the components that act on them."""

    def __init__(
        self,
        memory: MemoryStore,
        generator: AnswerGenerator,
        settings: Optional[Settings] = None,
        clock: Clock = time.monotonic,
    ) -> None:
        settings = settings or get_settings()
        self.settings = settings
        self.memory = memory
        self.store = SessionBufferStore(clock=clock)
        self.timers = TimerRegistry()
        self.ingestor = SegmentIngestor(
            self.store, memory, long_utterance_chars=settings.long_utterance_chars
        )
        self.reaper = StaleBufferReaper(
            self.store, self.ingestor, self.timers, timeout=settings.buffer_timeout_seconds
        )
        self.dispatcher = RecallDispatcher(
            self.store,
            memory,
            generator,
            threshold=settings.similarity_threshold,
            top_k=settings.recall_top_k,
        )
        self.watcher = TriggerWatcher(
            self.store,
            self.dispatcher,
            self.timers,
            phrases=settings.trigger_phrases,
            window_seconds=settings.question_collection_seconds,
        )

    async def handle_segments(self, session_id: str, texts: Iterable[Optional[str]]) -> Optional[str]:
        """Run one ingestion batch; return an answer waiting for this session, if any."""
        texts = list(texts)
        # Blank segments still count toward the batch size.
        fragments = [f for f in (normalize_fragment(t) for t in texts) if f]
        buffer = self.store.get(session_id)
        async with buffer.lock:
            for fragment in fragments:
                await self.ingestor.ingest(session_id, fragment, batch_size=len(texts))
                self.watcher.on_fragment(session_id, fragment)
        if fragments:
            self.reaper.schedule(session_id)
        if buffer.responses:
            return buffer.responses.popleft()
        return None

    def drain_responses(self, session_id: str) -> List[str]:
        if session_id not in self.store:
            return []
        buffer = self.store.get(session_id)
        messages = list(buffer.responses)
        buffer.responses.clear()
        return messages

    async def store_record(self, record: MemoryRecord, uid: str) -> int:
        return await store_memory_record(self.memory, record, uid)

    def evict_idle(self) -> List[str]:
        return self.store.evict_idle(self.settings.session_idle_seconds)

    async def run_janitor(self, interval: Optional[float] = None) -> None:
        interval = interval or self.settings.eviction_interval_seconds
        while True:
            await asyncio.sleep(interval)
            self.evict_idle()

    async def shutdown(self) -> None:
        await self.timers.cancel_all()
        logger.info("Transcript service stopped")


def build_service(settings: Optional[Settings] = None) -> TranscriptService:
    settings = settings or get_settings()
    return TranscriptService(
        memory=build_memory_store(settings),
        generator=build_response_generator(settings),
        settings=settings,
    )
