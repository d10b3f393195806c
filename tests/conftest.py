"""Pytest configuration and fixtures for SpeechPace tests."""

import pytest
import tempfile
import time
import logging
import threading
from pathlib import Path
from typing import Dict, List, Optional
from unittest.mock import Mock, patch
import numpy as np
import wave

from speechpace.models.events import TranscriptEvent
from speechpace.storage import AbstractBlobStore, AbstractMetadataStore, RecordingCatalog
from speechpace.transcription.base import AbstractSpeechEngine, EngineHandle, RecognitionConfig


# Configure logging for tests
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast tests without audio hardware or network")
    config.addinivalue_line("markers", "integration: tests wiring several components together")


@pytest.fixture
def temp_data_dir():
    """Create temporary directory for test data."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield temp_dir


@pytest.fixture
def sample_audio_chunk():
    """Generate a sample audio chunk for testing."""
    # 1024 stereo frames of a 440 Hz sine wave at 44.1 kHz
    sample_rate = 44100
    duration = 1024 / sample_rate
    t = np.linspace(0, duration, 1024, False)
    wave_data = np.sin(2 * np.pi * 440 * t) * 0.5

    mono = (wave_data * 32767).astype(np.int16)
    return np.repeat(mono, 2).tobytes()


@pytest.fixture
def mock_pyaudio():
    """Mock PyAudio for testing without actual audio hardware."""
    with patch('pyaudio.PyAudio') as mock_pyaudio_class:
        mock_pyaudio_instance = Mock()
        mock_stream = Mock()

        def read_silence(*args, **kwargs):
            time.sleep(0.005)
            return b'\x00' * 4096  # 1024 stereo 16-bit frames

        mock_stream.read.side_effect = read_silence
        mock_stream.write.return_value = None
        mock_stream.stop_stream.return_value = None
        mock_stream.close.return_value = None

        mock_pyaudio_instance.open.return_value = mock_stream
        mock_pyaudio_instance.terminate.return_value = None
        mock_pyaudio_instance.get_sample_size.return_value = 2
        mock_pyaudio_instance.get_format_from_width.return_value = 8

        mock_pyaudio_class.return_value = mock_pyaudio_instance

        yield {
            'class': mock_pyaudio_class,
            'instance': mock_pyaudio_instance,
            'stream': mock_stream
        }


@pytest.fixture
def wav_file_factory(temp_data_dir):
    """Write 16-bit PCM WAV files of a given length or byte size."""
    def make_wav(name="speech.wav", seconds=None, size_bytes=None, sample_rate=44100, channels=2):
        path = Path(temp_data_dir) / name
        frame_bytes = 2 * channels
        if size_bytes is not None:
            n_frames = max(0, (size_bytes - 44) // frame_bytes)
        else:
            n_frames = int((seconds or 1.0) * sample_rate)

        with wave.open(str(path), 'wb') as wf:
            wf.setnchannels(channels)
            wf.setsampwidth(2)
            wf.setframerate(sample_rate)
            wf.writeframes(b'\x00' * (n_frames * frame_bytes))
        return str(path)

    return make_wav


@pytest.fixture
def sample_audio_file(wav_file_factory):
    """Create a two-second stereo WAV file for testing."""
    return wav_file_factory("test_audio.wav", seconds=2.0)


class ManualClock:
    """Monotonic clock the test advances by hand."""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def manual_clock():
    return ManualClock()


class ScriptedSpeechEngine(AbstractSpeechEngine):
    """Speech engine driven by the test.

    Events are emitted synchronously from whichever thread calls ``emit_*``
    or ``end_audio``. With ``final_text`` set, ``end_audio`` answers with a
    FINAL event; otherwise it stays silent so grace-period expiry can be
    exercised.
    """

    def __init__(self):
        self.available = True
        self.open_error: Optional[Exception] = None
        self.final_text: Optional[str] = None
        self.configs: List[RecognitionConfig] = []
        self.fed_bytes = 0
        self.fed_chunks = 0
        self.ended = threading.Event()
        self.cancelled: List[EngineHandle] = []
        self._callbacks: Dict[str, object] = {}
        self.last_handle: Optional[EngineHandle] = None

    def is_available(self) -> bool:
        return self.available

    def open(self, config, on_event):
        if self.open_error is not None:
            raise self.open_error
        handle = EngineHandle()
        self.configs.append(config)
        self._callbacks[handle.handle_id] = on_event
        self.last_handle = handle
        self.ended.clear()
        return handle

    def feed(self, handle, audio_data):
        self.fed_bytes += len(audio_data)
        self.fed_chunks += 1

    def end_audio(self, handle):
        self.ended.set()
        if self.final_text is not None:
            self._emit(handle, TranscriptEvent.final(self.final_text, len(self.final_text.split())))

    def cancel(self, handle):
        self.cancelled.append(handle)
        self._callbacks.pop(handle.handle_id, None)

    def _emit(self, handle, event):
        callback = self._callbacks.get(handle.handle_id)
        if callback is not None:
            callback(event)

    def emit_partial(self, text: str, handle: Optional[EngineHandle] = None) -> None:
        self._emit(handle or self.last_handle, TranscriptEvent.partial(text, len(text.split())))

    def emit_final(self, text: str, handle: Optional[EngineHandle] = None) -> None:
        self._emit(handle or self.last_handle, TranscriptEvent.final(text, len(text.split())))

    def emit_error(self, error: Exception, handle: Optional[EngineHandle] = None) -> None:
        self._emit(handle or self.last_handle, TranscriptEvent.failure(error))


@pytest.fixture
def speech_engine():
    return ScriptedSpeechEngine()


class InMemoryBlobStore(AbstractBlobStore):
    """Blob store kept in a dict, with switchable failures."""

    def __init__(self):
        self.blobs: Dict[str, bytes] = {}
        self.fail_upload = False
        self.fail_delete = False

    def upload(self, local_path, key):
        if self.fail_upload:
            raise IOError("upload refused")
        uri = f"mem://{key}"
        self.blobs[uri] = Path(local_path).read_bytes()
        return uri

    def download(self, uri):
        return self.blobs[uri]

    def delete(self, uri):
        if self.fail_delete:
            raise IOError("delete refused")
        self.blobs.pop(uri, None)


class InMemoryMetadataStore(AbstractMetadataStore):
    """Metadata store kept in a dict, with switchable failures."""

    def __init__(self):
        self.records: Dict[str, Dict[str, object]] = {}
        self.fail_put = False
        self.fail_delete = False

    def list_by_owner(self, owner_id):
        return list(self.records.get(owner_id, {}).values())

    def put(self, owner_id, metadata):
        if self.fail_put:
            raise IOError("put refused")
        self.records.setdefault(owner_id, {})[metadata.id] = metadata

    def delete(self, owner_id, recording_id):
        if self.fail_delete:
            raise IOError("delete refused")
        self.records.get(owner_id, {}).pop(recording_id, None)


@pytest.fixture
def blob_store():
    return InMemoryBlobStore()


@pytest.fixture
def metadata_store():
    return InMemoryMetadataStore()


@pytest.fixture
def catalog(metadata_store, blob_store):
    return RecordingCatalog(metadata_store, blob_store, owner_id="tester", topic="test.catalog")
