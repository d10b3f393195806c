"""Persisted recording metadata and speaking-rate categories."""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Any


class SpeedCategory(Enum):
    """Speaking-rate bucket derived from words per minute."""
    SLOW = "Slow"
    NORMAL = "Normal"
    FAST = "Fast"
    VERY_FAST = "Very Fast"
    UNCLEAR = "Unclear"  # no reliable signal, never assigned by rate alone


@dataclass(frozen=True)
class RecordingMetadata:
    """A saved recording. Immutable once persisted."""
    id: str
    name: str
    timestamp: datetime
    duration: float  # seconds
    words_per_minute: int
    speech_speed: SpeedCategory
    transcript: str
    storage_uri: str

    def __post_init__(self):
        if self.duration < 0:
            raise ValueError(f"duration must be >= 0, got {self.duration}")
        if self.words_per_minute < 0:
            raise ValueError(f"words_per_minute must be >= 0, got {self.words_per_minute}")

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the persisted record shape."""
        return {
            "id": self.id,
            "name": self.name,
            "timestamp": self.timestamp.isoformat(),
            "duration": float(self.duration),
            "wordsPerMinute": int(self.words_per_minute),
            "speechSpeed": self.speech_speed.value,
            "transcript": self.transcript,
            "storageUri": self.storage_uri,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RecordingMetadata":
        """Build a record from its persisted shape.

        Timestamps may be ISO-8601 strings or epoch seconds; naive values
        are taken as UTC.
        """
        raw_timestamp = data["timestamp"]
        if isinstance(raw_timestamp, (int, float)):
            timestamp = datetime.fromtimestamp(raw_timestamp, tz=timezone.utc)
        else:
            timestamp = datetime.fromisoformat(raw_timestamp)
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)

        return cls(
            id=data["id"],
            name=data["name"],
            timestamp=timestamp,
            duration=float(data["duration"]),
            words_per_minute=int(data["wordsPerMinute"]),
            speech_speed=SpeedCategory(data["speechSpeed"]),
            transcript=data.get("transcript", ""),
            storage_uri=data["storageUri"],
        )
