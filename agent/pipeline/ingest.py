from __future__ import annotations

import logging
from typing import Optional

from agent.core.buffer import SessionBufferStore
from agent.core.memory import MemoryWriter
from agent.pipeline.timers import TimerRegistry


logger = logging.getLogger(__name__)

SENTENCE_TERMINALS = (".", "!", "?")


def normalize_fragment(text: Optional[str]) -> str:
    return (text or "").strip().lower()


class SegmentIngestor:
    """Accumulates fragments per session and flushes them on sentence boundaries.

    Callers hold the session lock around ``ingest`` and ``flush``.
    """

    def __init__(
        self,
        store: SessionBufferStore,
        memory: MemoryWriter,
        long_utterance_chars: int = 50,
    ) -> None:
        self._store = store
        self._memory = memory
        self._long_utterance_chars = long_utterance_chars

    def should_flush(self, fragment: str, batch_size: int) -> bool:
        if fragment.endswith(SENTENCE_TERMINALS):
            return True
        # A lone long fragment is treated as a whole utterance.
        return batch_size == 1 and len(fragment) > self._long_utterance_chars

    async def ingest(self, session_id: str, fragment_text: str, batch_size: int) -> bool:
        fragment = fragment_text.lower()
        buffer = self._store.get(session_id)
        buffer.pending_messages.append(fragment)
        buffer.last_activity_at = self._store.now()

        if not self.should_flush(fragment, batch_size):
            return False
        await self.flush(session_id)
        return True

    async def flush(self, session_id: str) -> Optional[str]:
        buffer = self._store.get(session_id)
        if not buffer.pending_messages:
            return None
        text = " ".join(buffer.pending_messages)
        buffer.pending_messages = []
        # Text is not restored if the write fails.
        await self._memory.save_text(text, session_id)
        logger.info("Flushed %s chars for session %s", len(text), session_id)
        return text


class StaleBufferReaper:
    """Flushes buffers left without a sentence boundary for too long."""

    def __init__(
        self,
        store: SessionBufferStore,
        ingestor: SegmentIngestor,
        timers: TimerRegistry,
        timeout: float = 5.0,
    ) -> None:
        self._store = store
        self._ingestor = ingestor
        self._timers = timers
        self._timeout = timeout

    def schedule(self, session_id: str) -> None:
        buffer = self._store.get(session_id)
        if buffer.reaper_task is not None and not buffer.reaper_task.done():
            buffer.reaper_task.cancel()
        anchor = buffer.last_activity_at
        buffer.reaper_task = self._timers.schedule(
            self._timeout,
            lambda: self.reap(session_id, anchor=anchor),
            name=f"reaper:{session_id}",
        )

    async def reap(self, session_id: str, anchor: Optional[float] = None) -> bool:
        """Flush ``session_id`` if it has been inactive since ``anchor``.

        Without an anchor the buffer is flushed once it has been idle for the
        configured timeout.
        """
        if session_id not in self._store:
            return False
        buffer = self._store.get(session_id)
        async with buffer.lock:
            if anchor is not None:
                if buffer.last_activity_at != anchor:
                    logger.debug("Reaper for %s superseded by newer activity", session_id)
                    return False
            elif self._store.now() - buffer.last_activity_at < self._timeout:
                return False
            flushed = await self._ingestor.flush(session_id)
        return flushed is not None
