from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Protocol, Sequence, Tuple

from agent.core.buffer import SessionBufferStore
from agent.core.memory import MemoryMatch
from agent.core.prompt import NOTHING_REMEMBERED
from agent.pipeline.timers import TimerRegistry


logger = logging.getLogger(__name__)

DEFAULT_TRIGGER_PHRASES: Tuple[str, ...] = ("forgot", "don't remember")


class MemorySearcher(Protocol):
    async def search(self, text: str, session_id: str, top_k: int = 5) -> List[MemoryMatch]: ...


class AnswerGenerator(Protocol):
    async def complete(self, question: str, context: str) -> str: ...


class RecallDispatcher:
    """Resolves a question-collection window into at most one response."""

    def __init__(
        self,
        store: SessionBufferStore,
        memory: MemorySearcher,
        generator: AnswerGenerator,
        threshold: float = 0.4,
        top_k: int = 5,
    ) -> None:
        self._store = store
        self._memory = memory
        self._generator = generator
        self._threshold = threshold
        self._top_k = top_k

    def accepts(self, matches: Sequence[MemoryMatch]) -> bool:
        return bool(matches) and matches[0].distance <= self._threshold

    async def answer(self, question: str, session_id: str) -> str:
        matches = await self._memory.search(question, session_id, top_k=self._top_k)
        if not self.accepts(matches):
            logger.info(
                "No memory close enough for session %s (best=%s)",
                session_id,
                matches[0].distance if matches else None,
            )
            return NOTHING_REMEMBERED
        context = "\n".join(match.document for match in matches)
        return await self._generator.complete(question, context)

    async def dispatch(self, session_id: str, cycle: Optional[int] = None) -> Optional[str]:
        """Answer the open question for ``session_id``.

        Returns None without side effects when the window is closed, already
        answered, or belongs to a different trigger cycle than ``cycle``.
        """
        if session_id not in self._store:
            return None
        buffer = self._store.get(session_id)
        async with buffer.lock:
            if not buffer.trigger_open or buffer.response_sent:
                return None
            if cycle is not None and cycle != buffer.trigger_cycle:
                return None
            question = " ".join(buffer.collected_question)
            buffer.response_sent = True
            buffer.trigger_open = False
            buffer.collected_question = []

        logger.info("Recall window closed for session %s: %r", session_id, question)
        message = await self.answer(question, session_id)
        buffer.responses.append(message)
        return message


class TriggerWatcher:
    """Opens a question-collection window when a trigger phrase is heard.

    While a window is open every fragment of the session is added to the
    question; the window's timer hands it to the dispatcher when it expires.
    Callers hold the session lock around ``on_fragment``.
    """

    def __init__(
        self,
        store: SessionBufferStore,
        dispatcher: RecallDispatcher,
        timers: TimerRegistry,
        phrases: Iterable[str] = DEFAULT_TRIGGER_PHRASES,
        window_seconds: float = 2.0,
    ) -> None:
        self._store = store
        self._dispatcher = dispatcher
        self._timers = timers
        self._phrases = tuple(p.lower() for p in phrases)
        self._window_seconds = window_seconds

    def matches(self, fragment: str) -> bool:
        fragment = fragment.lower()
        return any(phrase in fragment for phrase in self._phrases)

    def on_fragment(self, session_id: str, fragment_text: str) -> bool:
        """Returns True when this fragment opened a new window."""
        fragment = fragment_text.lower()
        buffer = self._store.get(session_id)
        if buffer.trigger_open:
            buffer.collected_question.append(fragment)
            return False
        if not self.matches(fragment):
            return False

        buffer.trigger_open = True
        buffer.trigger_opened_at = self._store.now()
        buffer.trigger_cycle += 1
        buffer.collected_question = [fragment]
        buffer.response_sent = False

        cycle = buffer.trigger_cycle
        buffer.window_task = self._timers.schedule(
            self._window_seconds,
            lambda: self._dispatcher.dispatch(session_id, cycle),
            name=f"recall:{session_id}:{cycle}",
        )
        logger.info("Trigger detected for session %s (cycle %s)", session_id, cycle)
        return True
