from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, Field


@dataclass
class EntityCounters:
    """One entity's running totals for one day. Fields only ever grow."""

    total_time_ms: int = 0
    user_msg_count: int = 0
    ai_msg_count: int = 0
    user_word_count: int = 0
    ai_word_count: int = 0

    def add(self, delta: IncrementDelta) -> None:
        # non-positive fields are no-ops
        if delta.time_ms > 0:
            self.total_time_ms += delta.time_ms
        if delta.user_messages > 0:
            self.user_msg_count += delta.user_messages
        if delta.ai_messages > 0:
            self.ai_msg_count += delta.ai_messages
        if delta.user_words > 0:
            self.user_word_count += delta.user_words
        if delta.ai_words > 0:
            self.ai_word_count += delta.ai_words

    def to_dict(self) -> dict[str, int]:
        return {
            "totalTimeMs": self.total_time_ms,
            "userMsgCount": self.user_msg_count,
            "aiMsgCount": self.ai_msg_count,
            "userWordCount": self.user_word_count,
            "aiWordCount": self.ai_word_count,
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> EntityCounters:
        """Lenient decode of a stored record: bad or missing values become 0."""

        def _count(name: str) -> int:
            value = raw.get(name, 0)
            if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
                return 0
            return int(value)

        return cls(
            total_time_ms=_count("totalTimeMs"),
            user_msg_count=_count("userMsgCount"),
            ai_msg_count=_count("aiMsgCount"),
            user_word_count=_count("userWordCount"),
            ai_word_count=_count("aiWordCount"),
        )


@dataclass(frozen=True)
class IncrementDelta:
    time_ms: int = 0
    user_messages: int = 0
    ai_messages: int = 0
    user_words: int = 0
    ai_words: int = 0


# entity id -> counters, for one day
DayBucket = dict[str, EntityCounters]


# -------------------------
# HTTP models
# -------------------------
class TrackRequest(BaseModel):
    # Increments are left untyped on purpose: non-numeric values are dropped, not rejected.
    entityId: str | None = Field(None, description="Character or group identifier")
    timeIncrementMs: Any = Field(None, description="Chat time to add, in milliseconds")
    messageIncrement: Any = Field(None, description="Messages to add")
    wordIncrement: Any = Field(None, description="Words to add alongside messageIncrement")
    isUser: Any = Field(None, description="True when the message came from the user")


class TrackResponse(BaseModel):
    success: bool = True


class EntityStats(BaseModel):
    totalTimeMs: int = Field(0, ge=0)
    userMsgCount: int = Field(0, ge=0)
    aiMsgCount: int = Field(0, ge=0)
    userWordCount: int = Field(0, ge=0)
    aiWordCount: int = Field(0, ge=0)


class LastFlush(BaseModel):
    at: str | None = Field(None, description="ISO-8601 UTC time the flush finished")
    forced: bool = False
    written: list[str] = Field(default_factory=list)
    failed: list[str] = Field(default_factory=list)


class ServiceStatus(BaseModel):
    running: bool
    data_dir: str
    flush_interval_seconds: float
    today: str
    cached_days: list[str]
    dirty_days: list[str]
    last_flush: LastFlush
    uptime_seconds: int
