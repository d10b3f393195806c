"""Playback of a local WAV artifact."""

import wave
import logging
from pathlib import Path
from threading import Thread, Event
from typing import Optional, Callable

import pyaudio

from ..exceptions import CaptureDeviceError

logger = logging.getLogger(__name__)


class PlaybackSession:
    """Plays a WAV file through the default output device on a background thread.

    ``on_finished`` is called from the playback thread with True when the
    file played to the end and False when playback was stopped early.
    """

    def __init__(self, path: str, chunk_size: int = 1024,
                 on_finished: Optional[Callable[[bool], None]] = None):
        self.path = Path(path)
        self.chunk_size = chunk_size
        self.on_finished = on_finished

        self.playback_thread: Optional[Thread] = None
        self.stop_event = Event()
        self.is_playing = False
        self.pyaudio_instance: Optional[pyaudio.PyAudio] = None

    def start(self) -> None:
        """Open the file and the output device, then start playing.

        Raises:
            CaptureDeviceError: The file or the output device could not be opened
        """
        if self.is_playing:
            logger.warning("Playback already in progress")
            return

        try:
            wav_file = wave.open(str(self.path), 'rb')
        except (OSError, EOFError, wave.Error) as e:
            raise CaptureDeviceError(f"Cannot open {self.path} for playback: {e}") from e

        self.pyaudio_instance = pyaudio.PyAudio()
        try:
            stream = self.pyaudio_instance.open(
                format=self.pyaudio_instance.get_format_from_width(wav_file.getsampwidth()),
                channels=wav_file.getnchannels(),
                rate=wav_file.getframerate(),
                output=True,
            )
        except OSError as e:
            wav_file.close()
            self.pyaudio_instance.terminate()
            self.pyaudio_instance = None
            raise CaptureDeviceError(f"Could not open audio output device: {e}") from e

        logger.info(f"Playing {self.path}")
        self.stop_event.clear()
        self.is_playing = True
        self.playback_thread = Thread(target=self._play, args=(stream, wav_file), daemon=True)
        self.playback_thread.name = "AudioPlaybackThread"
        self.playback_thread.start()

    def stop(self) -> None:
        """Stop playback and release the output device."""
        if not self.is_playing:
            return
        self.stop_event.set()
        if self.playback_thread and self.playback_thread.is_alive():
            self.playback_thread.join(timeout=2.0)
            if self.playback_thread.is_alive():
                logger.warning("Playback thread did not stop cleanly")
        self.is_playing = False

    def _play(self, stream: pyaudio.Stream, wav_file: wave.Wave_read) -> None:
        completed = False
        try:
            data = wav_file.readframes(self.chunk_size)
            while data and not self.stop_event.is_set():
                stream.write(data)
                data = wav_file.readframes(self.chunk_size)
            completed = not self.stop_event.is_set()
        except OSError as e:
            logger.error(f"Playback failed: {e}")
        finally:
            stream.stop_stream()
            stream.close()
            wav_file.close()
            if self.pyaudio_instance:
                self.pyaudio_instance.terminate()
                self.pyaudio_instance = None
            self.is_playing = False
            logger.info(f"Playback {'finished' if completed else 'stopped'}: {self.path}")
            if self.on_finished:
                self.on_finished(completed)
