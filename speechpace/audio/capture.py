"""Microphone capture that streams frames and writes the session's WAV artifact."""

import errno
import time
import wave
import logging
from pathlib import Path
from threading import Thread, Event
from typing import Optional, Callable

import numpy as np
import pyaudio

from ..exceptions import AlreadyRecording, CaptureDeviceError, NotPermittedToRecord
from ..models.audio import AudioFrame, AudioStats

logger = logging.getLogger(__name__)

FrameCallback = Callable[[AudioFrame], None]
ErrorCallback = Callable[[Exception], None]


def peak_level(audio_data: bytes) -> float:
    """Peak absolute amplitude of 16-bit PCM data, as a fraction of full scale."""
    if not audio_data:
        return 0.0
    samples = np.frombuffer(audio_data, dtype=np.int16)
    if samples.size == 0:
        return 0.0
    return float(np.abs(samples.astype(np.int32)).max()) / 32768.0


class AudioCaptureSession:
    """Owns the input device and the WAV writer for one recording session.

    The device is opened synchronously in ``start`` so that open failures
    reach the caller; frames are then read on a background thread, written
    to ``output_path`` and handed to the frame callback. The thread releases
    the stream, PyAudio and the WAV file on every exit path.
    """

    def __init__(
        self,
        output_path: str,
        sample_rate: int = 44100,
        chunk_size: int = 1024,
        channels: int = 2,
        format: int = pyaudio.paInt16,
    ):
        """Initialize a capture session.

        Args:
            output_path: Well-known temporary WAV file, overwritten per session
            sample_rate: Audio sample rate in Hz
            chunk_size: Size of each audio chunk in samples
            channels: Number of audio channels
            format: PyAudio sample format (16-bit signed int)
        """
        self.output_path = Path(output_path)
        self.sample_rate = sample_rate
        self.chunk_size = chunk_size
        self.channels = channels
        self.format = format

        # Recording thread management
        self.recording_thread: Optional[Thread] = None
        self.stop_event = Event()
        self.is_recording = False

        # Statistics tracking
        self.start_time: Optional[float] = None
        self.total_chunks = 0
        self.total_frames = 0
        self.peak_level = 0.0

        self.pyaudio_instance: Optional[pyaudio.PyAudio] = None
        self._frame_callback: Optional[FrameCallback] = None
        self._error_callback: Optional[ErrorCallback] = None

    def start(self, on_frame: FrameCallback, on_error: Optional[ErrorCallback] = None) -> None:
        """Open the microphone and begin capturing in a background thread.

        Args:
            on_frame: Called on the capture thread with every AudioFrame
            on_error: Called on the capture thread if reading fails mid-session

        Raises:
            AlreadyRecording: A capture is already active on this session
            NotPermittedToRecord: The OS denied microphone access
            CaptureDeviceError: The device or the WAV file could not be opened
        """
        if self.is_recording:
            raise AlreadyRecording()

        logger.info("Starting audio capture")
        self.stop_event.clear()
        self.total_chunks = 0
        self.total_frames = 0
        self.peak_level = 0.0
        self._frame_callback = on_frame
        self._error_callback = on_error

        stream = self.__open_audio_stream()
        try:
            wav_file = self.__open_wav_file()
        except Exception:
            self.__release(stream, None)
            raise

        self.start_time = time.time()
        self.recording_thread = Thread(target=self._record_continuously, args=(stream, wav_file), daemon=True)
        self.recording_thread.name = "AudioCaptureThread"
        self.is_recording = True
        self.recording_thread.start()

    def stop(self) -> None:
        """Stop capturing, flush the WAV file and release the device."""
        if not self.is_recording:
            logger.debug("No capture in progress")
            return

        logger.info("Stopping audio capture")
        self.stop_event.set()

        if self.recording_thread and self.recording_thread.is_alive():
            self.recording_thread.join(timeout=2.0)
            if self.recording_thread.is_alive():
                logger.warning("Capture thread did not stop cleanly")

        self.is_recording = False
        logger.info(f"Capture stopped. Total chunks: {self.total_chunks}, "
                    f"audio duration: {self.audio_duration_seconds:.2f}s")

    @property
    def audio_duration_seconds(self) -> float:
        """Duration of the audio written to the artifact so far."""
        return self.total_frames / self.sample_rate if self.sample_rate else 0.0

    def __open_audio_stream(self) -> pyaudio.Stream:
        self.pyaudio_instance = pyaudio.PyAudio()
        try:
            self.pyaudio_instance.get_default_input_device_info()
            stream = self.pyaudio_instance.open(
                format=self.format,
                channels=self.channels,
                rate=self.sample_rate,
                input=True,
                frames_per_buffer=self.chunk_size,
                stream_callback=None
            )
        except OSError as e:
            self.pyaudio_instance.terminate()
            self.pyaudio_instance = None
            if getattr(e, "errno", None) in (errno.EACCES, errno.EPERM):
                raise NotPermittedToRecord() from e
            raise CaptureDeviceError(f"Could not open audio input device: {e}") from e

        logger.info(f"Audio stream opened: {self.sample_rate}Hz, {self.channels}ch, "
                    f"{self.chunk_size} samples/chunk")
        return stream

    def __open_wav_file(self) -> wave.Wave_write:
        try:
            self.output_path.parent.mkdir(parents=True, exist_ok=True)
            wav_file = wave.open(str(self.output_path), 'wb')
            wav_file.setnchannels(self.channels)
            wav_file.setsampwidth(self.pyaudio_instance.get_sample_size(self.format))
            wav_file.setframerate(self.sample_rate)
        except (OSError, wave.Error) as e:
            raise CaptureDeviceError(f"Could not open audio file {self.output_path}: {e}") from e
        logger.debug(f"Writing capture to {self.output_path}")
        return wav_file

    def __read_audio_chunk(self, stream: pyaudio.Stream) -> bytes:
        audio_chunk = stream.read(self.chunk_size, exception_on_overflow=False)
        self.total_chunks += 1
        return audio_chunk

    def _record_continuously(self, stream: pyaudio.Stream, wav_file: wave.Wave_write) -> None:
        """Internal method: continuous recording loop in background thread."""
        try:
            while not self.stop_event.is_set():
                audio_chunk = self.__read_audio_chunk(stream)
                wav_file.writeframes(audio_chunk)
                self.total_frames += len(audio_chunk) // (2 * self.channels)

                level = peak_level(audio_chunk)
                self.peak_level = max(self.peak_level, level)
                frame = AudioFrame(
                    data=audio_chunk,
                    timestamp=time.time(),
                    frame_number=self.total_chunks,
                    sample_rate=self.sample_rate,
                    channels=self.channels,
                    peak_level=level,
                )
                self._frame_callback(frame)
        except Exception as e:
            logger.error(f"Audio capture failed: {e}", exc_info=True)
            if self._error_callback:
                self._error_callback(CaptureDeviceError(f"Audio capture failed: {e}"))
        finally:
            self.__release(stream, wav_file)

    def __release(self, stream: Optional[pyaudio.Stream], wav_file: Optional[wave.Wave_write]) -> None:
        if stream:
            try:
                stream.stop_stream()
                stream.close()
            except OSError as e:
                logger.warning(f"Error closing audio stream: {e}")
        if self.pyaudio_instance:
            self.pyaudio_instance.terminate()
            self.pyaudio_instance = None
        if wav_file:
            wav_file.close()
        logger.debug("Audio capture resources released")

    def get_recording_stats(self) -> AudioStats:
        """Get current recording statistics."""
        duration = 0.0
        if self.start_time:
            duration = time.time() - self.start_time

        return AudioStats(
            is_recording=self.is_recording,
            duration_seconds=duration,
            sample_rate=self.sample_rate,
            channels=self.channels,
            chunk_size=self.chunk_size,
            total_chunks=self.total_chunks,
            peak_level=self.peak_level,
        )

    def __enter__(self) -> "AudioCaptureSession":
        return self

    def __exit__(self, *args) -> None:
        self.stop()

    def __del__(self):
        """Ensure resources are cleaned up on deletion."""
        if self.is_recording:
            self.stop()
