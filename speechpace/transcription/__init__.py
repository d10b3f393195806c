"""Transcription module for SpeechPace."""

from .base import AbstractSpeechEngine, EngineHandle, RecognitionConfig
from .session import TranscriptionSession

__all__ = [
    "AbstractSpeechEngine",
    "EngineHandle",
    "RecognitionConfig",
    "TranscriptionSession",
]
