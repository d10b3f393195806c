"""Abstract interface of a streaming speech engine."""

import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable
import logging

from ..models.events import TranscriptEvent

logger = logging.getLogger(__name__)

EventCallback = Callable[[TranscriptEvent], None]


@dataclass(frozen=True)
class RecognitionConfig:
    """Parameters for one recognition stream."""
    sample_rate: int = 44100
    channels: int = 2
    language: str = "en-US"
    partial_results: bool = True


@dataclass(frozen=True)
class EngineHandle:
    """Opaque reference to an open recognition stream."""
    handle_id: str = field(default_factory=lambda: uuid.uuid4().hex)


class AbstractSpeechEngine(ABC):
    """Black-box streaming speech-to-text engine.

    After ``open`` the engine delivers zero or more PARTIAL events and at
    most one terminal event (FINAL or ERROR) to the callback, from a thread
    of its choosing. PARTIAL and FINAL text is cumulative for the stream.
    After ``cancel`` no further events are delivered.
    """

    @abstractmethod
    def is_available(self) -> bool:
        """Whether the engine can accept a new stream right now."""
        pass

    @abstractmethod
    def open(self, config: RecognitionConfig, on_event: EventCallback) -> EngineHandle:
        """Open a recognition stream.

        Args:
            config: Audio format and recognition options
            on_event: Receives every event for this stream

        Returns:
            Handle used to feed, end or cancel the stream
        """
        pass

    @abstractmethod
    def feed(self, handle: EngineHandle, audio_data: bytes) -> None:
        """Push 16-bit PCM audio into an open stream."""
        pass

    @abstractmethod
    def end_audio(self, handle: EngineHandle) -> None:
        """Signal that no more audio will be fed; the engine should finalize."""
        pass

    @abstractmethod
    def cancel(self, handle: EngineHandle) -> None:
        """Abort the stream. Safe to call more than once."""
        pass

    def cleanup(self) -> None:
        """Release engine-wide resources."""
        pass
