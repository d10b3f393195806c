"""Reads a WAV file as a sequence of audio frames for whole-file transcription."""

import time
import wave
import logging
from pathlib import Path
from typing import Iterator, Optional

from ..exceptions import ImportFailed
from ..models.audio import AudioFrame
from .capture import peak_level

logger = logging.getLogger(__name__)


class AudioFileReader:
    """16-bit PCM WAV file reader."""

    def __init__(self, path: str, chunk_size: int = 1024):
        self.path = Path(path)
        self.chunk_size = chunk_size
        self._wav: Optional[wave.Wave_read] = None

        try:
            self._wav = wave.open(str(self.path), 'rb')
        except (OSError, EOFError, wave.Error) as e:
            raise ImportFailed(f"Unsupported or unreadable audio file {self.path.name}: {e}") from e

        if self._wav.getsampwidth() != 2:
            sample_width = self._wav.getsampwidth()
            self.close()
            raise ImportFailed(f"Only 16-bit PCM WAV is supported, got {sample_width * 8}-bit audio")

        self.sample_rate = self._wav.getframerate()
        self.channels = self._wav.getnchannels()
        self.total_frames = self._wav.getnframes()
        logger.info(f"Opened {self.path.name}: {self.sample_rate}Hz, {self.channels}ch, "
                    f"{self.duration_seconds:.2f}s")

    @property
    def duration_seconds(self) -> float:
        return self.total_frames / self.sample_rate if self.sample_rate else 0.0

    def iter_frames(self) -> Iterator[AudioFrame]:
        """Yield the file's audio from the beginning in chunk-sized frames."""
        self._wav.rewind()
        frame_number = 0
        while True:
            data = self._wav.readframes(self.chunk_size)
            if not data:
                break
            frame_number += 1
            yield AudioFrame(
                data=data,
                timestamp=time.time(),
                frame_number=frame_number,
                sample_rate=self.sample_rate,
                channels=self.channels,
                peak_level=peak_level(data),
            )

    def close(self) -> None:
        if self._wav:
            self._wav.close()
            self._wav = None

    def __enter__(self) -> "AudioFileReader":
        return self

    def __exit__(self, *args) -> None:
        self.close()
