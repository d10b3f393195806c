"""Unit tests for GoogleStreamingSpeechEngine with a mocked Speech client."""

import threading
from unittest.mock import Mock

import pytest
from google.api_core import exceptions as gax_exceptions

from speechpace.exceptions import EngineUnavailable, NotAuthorizedToRecognize, TranscriptionFailed
from speechpace.models.events import TranscriptEventKind
from speechpace.transcription.base import RecognitionConfig
from speechpace.transcription.google_backend import GoogleStreamingSpeechEngine


def result(transcript, is_final, words=None):
    alternative = Mock(transcript=transcript, words=words if words is not None else transcript.split())
    return Mock(is_final=is_final, alternatives=[alternative])


def response(*results):
    return Mock(results=list(results))


class EventCollector:
    def __init__(self):
        self.events = []
        self.terminal = threading.Event()

    def __call__(self, event):
        self.events.append(event)
        if event.kind is not TranscriptEventKind.PARTIAL:
            self.terminal.set()


@pytest.fixture
def google_engine():
    engine = GoogleStreamingSpeechEngine(credentials_path="/nonexistent/creds.json")
    engine.client = Mock()
    yield engine
    engine.cleanup()


def streaming_returns(responses, seen_chunks=None):
    """Build a streaming_recognize stand-in that drains the request stream first."""
    def streaming_recognize(config, requests):
        for request in requests:
            if seen_chunks is not None:
                seen_chunks.append(request.audio_content)
        return iter(responses)
    return streaming_recognize


@pytest.mark.unit
class TestGoogleStreamingSpeechEngine:

    def test_requires_credentials(self):
        with pytest.raises(NotAuthorizedToRecognize):
            GoogleStreamingSpeechEngine(credentials_path=None)

    def test_bad_credentials_file(self, temp_data_dir):
        engine = GoogleStreamingSpeechEngine(credentials_path=f"{temp_data_dir}/missing.json")
        with pytest.raises(NotAuthorizedToRecognize):
            engine.initialize()
        assert engine.is_available() is False

    def test_open_without_client(self):
        engine = GoogleStreamingSpeechEngine(credentials_path="/nonexistent/creds.json")
        with pytest.raises(EngineUnavailable):
            engine.open(RecognitionConfig(), lambda event: None)

    def test_cumulative_transcript(self, google_engine):
        chunks = []
        google_engine.client.streaming_recognize.side_effect = streaming_returns([
            response(result("hello", is_final=False)),
            response(result("hello world", is_final=True)),
            response(result("how are", is_final=False)),
            response(result("how are you", is_final=True)),
        ], seen_chunks=chunks)
        collector = EventCollector()

        handle = google_engine.open(RecognitionConfig(sample_rate=16000, channels=1), collector)
        google_engine.feed(handle, b'\x01\x00' * 10)
        google_engine.feed(handle, b'\x02\x00' * 10)
        google_engine.end_audio(handle)

        assert collector.terminal.wait(2.0)
        assert chunks == [b'\x01\x00' * 10, b'\x02\x00' * 10]
        assert [(e.kind, e.text, e.segment_count) for e in collector.events] == [
            (TranscriptEventKind.PARTIAL, "hello", 1),
            (TranscriptEventKind.PARTIAL, "hello world", 2),
            (TranscriptEventKind.PARTIAL, "hello world how are", 4),
            (TranscriptEventKind.PARTIAL, "hello world how are you", 5),
            (TranscriptEventKind.FINAL, "hello world how are you", 5),
        ]

    def test_word_count_falls_back_to_text(self, google_engine):
        google_engine.client.streaming_recognize.side_effect = streaming_returns([
            response(result("three little words", is_final=True, words=[])),
        ])
        collector = EventCollector()

        handle = google_engine.open(RecognitionConfig(), collector)
        google_engine.end_audio(handle)

        assert collector.terminal.wait(2.0)
        assert collector.events[-1].segment_count == 3

    @pytest.mark.parametrize("api_error,expected", [
        (gax_exceptions.PermissionDenied("denied"), NotAuthorizedToRecognize),
        (gax_exceptions.Unauthenticated("no token"), NotAuthorizedToRecognize),
        (gax_exceptions.ServiceUnavailable("down"), EngineUnavailable),
        (gax_exceptions.InternalServerError("oops"), TranscriptionFailed),
        (gax_exceptions.DeadlineExceeded("too slow"), TranscriptionFailed),
        (ValueError("malformed response"), TranscriptionFailed),
    ])
    def test_api_errors_are_mapped(self, google_engine, api_error, expected):
        google_engine.client.streaming_recognize.side_effect = api_error
        collector = EventCollector()

        google_engine.open(RecognitionConfig(), collector)

        assert collector.terminal.wait(2.0)
        event = collector.events[-1]
        assert event.kind is TranscriptEventKind.ERROR
        assert isinstance(event.error, expected)

    def test_crash_mid_stream_ends_with_error(self, google_engine):
        def responses():
            yield response(result("partial words", is_final=False))
            raise RuntimeError("connection dropped")

        def streaming_recognize(config, requests):
            for _ in requests:
                pass
            return responses()

        google_engine.client.streaming_recognize.side_effect = streaming_recognize
        collector = EventCollector()

        handle = google_engine.open(RecognitionConfig(), collector)
        google_engine.end_audio(handle)

        assert collector.terminal.wait(2.0)
        assert [e.kind for e in collector.events] == [TranscriptEventKind.PARTIAL, TranscriptEventKind.ERROR]
        assert isinstance(collector.events[-1].error, TranscriptionFailed)
        assert "connection dropped" in collector.events[-1].error.message

    def test_cancel_suppresses_events(self, google_engine):
        release = threading.Event()

        def streaming_recognize(config, requests):
            for _ in requests:
                pass
            release.wait(2.0)
            return iter([response(result("too late", is_final=True))])

        google_engine.client.streaming_recognize.side_effect = streaming_recognize
        collector = EventCollector()

        handle = google_engine.open(RecognitionConfig(), collector)
        google_engine.cancel(handle)
        google_engine.cancel(handle)
        release.set()

        assert collector.terminal.wait(0.5) is False
        assert collector.events == []
