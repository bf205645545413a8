from typing import List, Optional, Tuple

from agent.core.memory import MemoryMatch
from agent.errors import ProviderError
from agent.service import TranscriptService
from config.settings import Settings


class FakeMemory:
    """In-process stand-in for MemoryStore that records every call."""

    def __init__(self, matches: Optional[List[MemoryMatch]] = None, fail: bool = False):
        self.saved: List[Tuple[str, str]] = []
        self.searches: List[Tuple[str, str, int]] = []
        self.matches = list(matches or [])
        self.fail = fail

    async def save_text(self, text: str, session_id: str) -> str:
        if self.fail:
            raise ProviderError("embedding service unavailable")
        self.saved.append((text, session_id))
        return f"mem-{len(self.saved)}"

    async def search(self, text: str, session_id: str, top_k: int = 5) -> List[MemoryMatch]:
        self.searches.append((text, session_id, top_k))
        return self.matches[:top_k]

    async def close(self) -> None:
        pass


class FakeGenerator:
    def __init__(self, answer: str = "you were talking about the pizza place on main st"):
        self.answer = answer
        self.calls: List[Tuple[str, str]] = []

    async def complete(self, question: str, context: str) -> str:
        self.calls.append((question, context))
        return self.answer


class ManualClock:
    def __init__(self, start: float = 100.0):
        self.value = start

    def __call__(self) -> float:
        return self.value

    def advance(self, seconds: float) -> None:
        self.value += seconds


def match(document: str, distance: float) -> MemoryMatch:
    return MemoryMatch(document=document, distance=distance, metadata={})


def make_settings(**overrides) -> Settings:
    settings = Settings()
    settings.trigger_phrases = ("forgot", "don't remember")
    settings.similarity_threshold = 0.4
    settings.recall_top_k = 5
    settings.long_utterance_chars = 50
    settings.buffer_timeout_seconds = 5.0
    settings.question_collection_seconds = 2.0
    settings.session_idle_seconds = 1800.0
    settings.eviction_interval_seconds = 60.0
    for key, value in overrides.items():
        setattr(settings, key, value)
    return settings


def make_service(memory=None, generator=None, clock=None, **overrides) -> TranscriptService:
    kwargs = {}
    if clock is not None:
        kwargs["clock"] = clock
    return TranscriptService(
        memory=memory if memory is not None else FakeMemory(),
        generator=generator if generator is not None else FakeGenerator(),
        settings=make_settings(**overrides),
        **kwargs,
    )
