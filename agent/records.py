from __future__ import annotations

import logging
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from agent.core.memory import MemoryWriter


logger = logging.getLogger(__name__)


class TranscriptSegment(BaseModel):
    model_config = ConfigDict(extra="ignore")

    text: Optional[str] = None
    speaker: Optional[str] = None
    speaker_id: Optional[int] = Field(default=None, alias="speakerId")
    is_user: Optional[bool] = None
    start: Optional[float] = None
    end: Optional[float] = None


class ActionItem(BaseModel):
    model_config = ConfigDict(extra="ignore")

    description: str
    completed: bool = False


class StructuredSummary(BaseModel):
    model_config = ConfigDict(extra="ignore")

    title: str = ""
    overview: str = ""
    emoji: str = ""
    category: str = ""
    action_items: List[ActionItem] = Field(default_factory=list)
    events: List[Any] = Field(default_factory=list)


class AppResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    app_id: Optional[str] = None
    content: str = ""


class MemoryRecord(BaseModel):
    """A finished conversation as delivered by the memory-creation webhook."""

    model_config = ConfigDict(extra="ignore")

    id: Optional[int] = None
    created_at: Optional[str] = None
    started_at: Optional[str] = None
    finished_at: Optional[str] = None
    transcript: str = ""
    transcript_segments: List[TranscriptSegment] = Field(default_factory=list)
    photos: List[Any] = Field(default_factory=list)
    structured: StructuredSummary = Field(default_factory=StructuredSummary)
    apps_response: List[AppResponse] = Field(default_factory=list)
    discarded: bool = False


def record_entries(record: MemoryRecord) -> List[str]:
    """Texts stored for a record, one memory entry each."""
    entries: List[str] = []
    if record.transcript.strip():
        entries.append(record.transcript)

    structured = record.structured
    entries.append(
        f"Title: {structured.title}\nOverview: {structured.overview}\nCategory: {structured.category}"
    )

    if structured.action_items:
        items = "\n".join(item.description for item in structured.action_items)
        entries.append(f"Action Items:\n{items}")

    if record.apps_response:
        entries.append("\n".join(response.content for response in record.apps_response))
    return entries


async def store_memory_record(memory: MemoryWriter, record: MemoryRecord, uid: str) -> int:
    entries = record_entries(record)
    for text in entries:
        await memory.save_text(text, uid)
    logger.info("Stored %s entries for memory record %s (uid=%s)", len(entries), record.id, uid)
    return len(entries)
