"""Data models for the SpeechPace application."""

from .audio import AudioStats, AudioFrame
from .engine import EngineState, EngineSnapshot
from .events import TranscriptEvent, TranscriptEventKind
from .recording import RecordingMetadata, SpeedCategory

__all__ = [
    "AudioStats",
    "AudioFrame",
    "EngineState",
    "EngineSnapshot",
    "TranscriptEvent",
    "TranscriptEventKind",
    "RecordingMetadata",
    "SpeedCategory",
]
