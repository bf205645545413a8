"""Per-session transcript state.

Sessions are ephemeral: they live only while the server is running and are
dropped by ``evict_idle`` once nothing is left to flush or deliver.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Deque, Dict, List, Optional


logger = logging.getLogger(__name__)

Clock = Callable[[], float]


@dataclass
class SessionBuffer:
    session_id: str
    last_activity_at: float

    pending_messages: List[str] = field(default_factory=list)

    trigger_open: bool = False
    trigger_opened_at: float = 0.0
    trigger_cycle: int = 0
    collected_question: List[str] = field(default_factory=list)
    response_sent: bool = False

    # Answers waiting for the caller to pick them up.
    responses: Deque[str] = field(default_factory=deque)

    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)
    reaper_task: Optional[asyncio.Task] = field(default=None, repr=False)
    window_task: Optional[asyncio.Task] = field(default=None, repr=False)

    def is_idle(self) -> bool:
        return (
            not self.pending_messages
            and not self.trigger_open
            and not self.responses
            and not self.lock.locked()
            and (self.window_task is None or self.window_task.done())
        )


class SessionBufferStore:
    """Registry of session id -> SessionBuffer, created on first reference."""

    def __init__(self, clock: Clock = time.monotonic) -> None:
        self._clock = clock
        self._buffers: Dict[str, SessionBuffer] = {}

    def now(self) -> float:
        return self._clock()

    def get(self, session_id: str) -> SessionBuffer:
        buffer = self._buffers.get(session_id)
        if buffer is None:
            buffer = SessionBuffer(session_id=session_id, last_activity_at=self._clock())
            self._buffers[session_id] = buffer
            logger.debug("Created buffer for session %s", session_id)
        return buffer

    def evict_idle(self, max_idle: float) -> List[str]:
        """Drop sessions untouched for ``max_idle`` seconds with nothing pending."""
        now = self._clock()
        evicted: List[str] = []
        for session_id, buffer in list(self._buffers.items()):
            if now - buffer.last_activity_at < max_idle or not buffer.is_idle():
                continue
            if buffer.reaper_task is not None and not buffer.reaper_task.done():
                buffer.reaper_task.cancel()
            del self._buffers[session_id]
            evicted.append(session_id)
        if evicted:
            logger.info("Evicted %s idle session(s)", len(evicted))
        return evicted

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._buffers

    def __len__(self) -> int:
        return len(self._buffers)
