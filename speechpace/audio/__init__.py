"""Audio capture, playback and file reading."""

from .capture import AudioCaptureSession, peak_level
from .player import PlaybackSession
from .reader import AudioFileReader

__all__ = [
    'AudioCaptureSession',
    'PlaybackSession',
    'AudioFileReader',
    'peak_level',
]
