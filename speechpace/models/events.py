"""Event models exchanged between the speech engine and the recording engine."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ..exceptions import SpeechPaceError


class TranscriptEventKind(Enum):
    PARTIAL = "partial"
    FINAL = "final"
    ERROR = "error"


@dataclass(frozen=True)
class TranscriptEvent:
    """A single speech-engine notification.

    ``text`` is always the engine's cumulative best hypothesis for the whole
    session so far, and ``segment_count`` the number of recognized words in
    it. ``session_id`` is stamped by the TranscriptionSession that opened
    the engine handle.
    """
    kind: TranscriptEventKind
    text: str = ""
    segment_count: int = 0
    error: Optional[SpeechPaceError] = None
    session_id: Optional[str] = None

    @classmethod
    def partial(cls, text: str, segment_count: int) -> "TranscriptEvent":
        return cls(TranscriptEventKind.PARTIAL, text=text, segment_count=segment_count)

    @classmethod
    def final(cls, text: str, segment_count: int) -> "TranscriptEvent":
        return cls(TranscriptEventKind.FINAL, text=text, segment_count=segment_count)

    @classmethod
    def failure(cls, error: SpeechPaceError) -> "TranscriptEvent":
        return cls(TranscriptEventKind.ERROR, error=error)
