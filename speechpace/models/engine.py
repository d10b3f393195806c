"""Published recording-engine state."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .recording import RecordingMetadata, SpeedCategory


class EngineState(Enum):
    """Lifecycle of a session: IDLE -> RECORDING -> FINALIZING -> IDLE."""
    IDLE = "idle"
    RECORDING = "recording"
    FINALIZING = "finalizing"


@dataclass(frozen=True)
class EngineSnapshot:
    """Immutable view of the engine, published on every state change."""
    state: EngineState = EngineState.IDLE
    session_id: Optional[str] = None
    transcript: str = ""
    word_count: int = 0
    words_per_minute: int = 0
    speed: SpeedCategory = SpeedCategory.NORMAL
    analyzed: bool = False
    unclear_speech: bool = False
    is_playing: bool = False
    has_artifact: bool = False
    has_completed_session: bool = False
    error_message: Optional[str] = None
    last_saved: Optional[RecordingMetadata] = None

    @property
    def is_recording(self) -> bool:
        return self.state is EngineState.RECORDING

    @property
    def is_processing(self) -> bool:
        return self.state is EngineState.FINALIZING

    @property
    def can_analyze(self) -> bool:
        return self.state is EngineState.IDLE and self.has_completed_session

    @property
    def is_playback_available(self) -> bool:
        return self.state is EngineState.IDLE and self.has_artifact
