"""Services layer for SpeechPace application logic."""

from .recording_engine import RecordingEngine, SessionState, CompletedSession, ENGINE_TOPIC
from .factory import create_recording_engine, create_speech_engine, create_catalog

__all__ = [
    "RecordingEngine",
    "SessionState",
    "CompletedSession",
    "ENGINE_TOPIC",
    "create_recording_engine",
    "create_speech_engine",
    "create_catalog",
]
