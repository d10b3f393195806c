"""Audio-related data models."""

from dataclasses import dataclass


@dataclass
class AudioStats:
    """Audio recording statistics."""
    is_recording: bool
    duration_seconds: float
    sample_rate: int
    channels: int
    chunk_size: int
    total_chunks: int
    peak_level: float


@dataclass
class AudioFrame:
    """A single block of interleaved 16-bit PCM audio."""
    data: bytes
    timestamp: float  # Time when this frame was captured
    frame_number: int
    sample_rate: int = 44100
    channels: int = 2
    peak_level: float = 0.0  # 0.0 - 1.0 of full scale

    @property
    def duration_seconds(self) -> float:
        bytes_per_second = self.sample_rate * self.channels * 2
        return len(self.data) / bytes_per_second if bytes_per_second else 0.0
