"""Google Speech-to-Text streaming engine."""

import queue
import logging
import threading
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional

from google.cloud import speech
from google.api_core import exceptions as gax_exceptions
from google.auth import exceptions as auth_exceptions
from google.oauth2 import service_account

from .base import AbstractSpeechEngine, EngineHandle, EventCallback, RecognitionConfig
from ..exceptions import EngineUnavailable, NotAuthorizedToRecognize, TranscriptionFailed
from ..models.events import TranscriptEvent

logger = logging.getLogger(__name__)


@dataclass
class _StreamState:
    """Book-keeping for one streaming_recognize call."""
    handle: EngineHandle
    on_event: EventCallback
    audio_queue: "queue.Queue[Optional[bytes]]" = field(default_factory=queue.Queue)
    cancelled: threading.Event = field(default_factory=threading.Event)
    input_ended: bool = False
    final_segments: List[str] = field(default_factory=list)
    final_word_count: int = 0
    thread: Optional[threading.Thread] = None

    def emit(self, event: TranscriptEvent) -> None:
        if not self.cancelled.is_set():
            self.on_event(event)


class GoogleStreamingSpeechEngine(AbstractSpeechEngine):
    """Google Speech-to-Text streaming recognition.

    Google reports results per utterance; finalized utterances are
    accumulated so every event carries the cumulative session transcript.
    """

    def __init__(self,
                 credentials_path: Optional[str] = None,
                 model: str = "latest_long",
                 use_enhanced: bool = True,
                 enable_automatic_punctuation: bool = True):
        """Initialize Google Speech engine.

        Args:
            credentials_path: Path to Google Cloud service account JSON file
            model: Recognition model name
            use_enhanced: Whether to use enhanced model (costs more but better quality)
            enable_automatic_punctuation: Enable automatic punctuation
        """
        if not credentials_path:
            raise NotAuthorizedToRecognize("Google credentials path is required")
        self.credentials_path = credentials_path
        self.model = model
        self.use_enhanced = use_enhanced
        self.enable_automatic_punctuation = enable_automatic_punctuation
        self.client: Optional[speech.SpeechClient] = None
        self.project_id = None
        self.service_name = "Google Speech-to-Text"
        self._streams: Dict[str, _StreamState] = {}
        self._lock = threading.Lock()

    def initialize(self) -> bool:
        """Load credentials and create the Speech client."""
        logger.info(f"Loading Google credentials from: {self.credentials_path}")
        try:
            credentials = service_account.Credentials.from_service_account_file(self.credentials_path)
        except (OSError, ValueError, auth_exceptions.GoogleAuthError) as e:
            raise NotAuthorizedToRecognize(f"Invalid Google credentials: {e}") from e

        self.client = speech.SpeechClient(credentials=credentials)
        self.project_id = credentials.project_id
        logger.info(f"Using Google Cloud project: {self.project_id}")
        return True

    def is_available(self) -> bool:
        return self.client is not None

    def _streaming_config(self, config: RecognitionConfig) -> speech.StreamingRecognitionConfig:
        recognition_config = speech.RecognitionConfig(
            encoding=speech.RecognitionConfig.AudioEncoding.LINEAR16,
            sample_rate_hertz=config.sample_rate,
            audio_channel_count=config.channels,
            language_code=config.language,
            use_enhanced=self.use_enhanced,
            enable_automatic_punctuation=self.enable_automatic_punctuation,
            # Word offsets give us a recognized-word count per result
            enable_word_time_offsets=True,
            model=self.model,
        )
        return speech.StreamingRecognitionConfig(
            config=recognition_config,
            interim_results=config.partial_results,
        )

    def open(self, config: RecognitionConfig, on_event: EventCallback) -> EngineHandle:
        if not self.is_available():
            raise EngineUnavailable()

        handle = EngineHandle()
        stream = _StreamState(handle=handle, on_event=on_event)
        stream.thread = threading.Thread(
            target=self._run_stream,
            args=(stream, self._streaming_config(config)),
            daemon=True,
        )
        stream.thread.name = f"GoogleStream_{handle.handle_id[:8]}"
        with self._lock:
            self._streams[handle.handle_id] = stream
        stream.thread.start()
        logger.info(f"Opened recognition stream {handle.handle_id} "
                    f"({config.sample_rate}Hz, {config.channels}ch, {config.language})")
        return handle

    def feed(self, handle: EngineHandle, audio_data: bytes) -> None:
        stream = self._get_stream(handle)
        if stream and not stream.input_ended and audio_data:
            stream.audio_queue.put(audio_data)

    def end_audio(self, handle: EngineHandle) -> None:
        stream = self._get_stream(handle)
        if stream and not stream.input_ended:
            stream.input_ended = True
            stream.audio_queue.put(None)
            logger.debug(f"Ended audio input for stream {handle.handle_id}")

    def cancel(self, handle: EngineHandle) -> None:
        with self._lock:
            stream = self._streams.pop(handle.handle_id, None)
        if stream is None:
            return
        stream.cancelled.set()
        if not stream.input_ended:
            stream.input_ended = True
            stream.audio_queue.put(None)
        logger.info(f"Cancelled recognition stream {handle.handle_id}")

    def cleanup(self) -> None:
        with self._lock:
            handles = [stream.handle for stream in self._streams.values()]
        for handle in handles:
            self.cancel(handle)

    def _get_stream(self, handle: EngineHandle) -> Optional[_StreamState]:
        with self._lock:
            return self._streams.get(handle.handle_id)

    def _requests(self, stream: _StreamState) -> Iterator[speech.StreamingRecognizeRequest]:
        while not stream.cancelled.is_set():
            chunk = stream.audio_queue.get()
            if chunk is None:
                return
            yield speech.StreamingRecognizeRequest(audio_content=chunk)

    def _run_stream(self, stream: _StreamState, streaming_config: speech.StreamingRecognitionConfig) -> None:
        """Internal method: consume streaming responses on the stream's thread."""
        try:
            responses = self.client.streaming_recognize(
                config=streaming_config,
                requests=self._requests(stream),
            )
            for response in responses:
                if stream.cancelled.is_set():
                    return
                text, word_count = self.__accumulate(stream, response)
                logger.debug(f"Partial transcript ({word_count} words): '{text}'")
                stream.emit(TranscriptEvent.partial(text, word_count))

            text = " ".join(stream.final_segments)
            logger.info(f"Recognition stream {stream.handle.handle_id} finished: {stream.final_word_count} words")
            stream.emit(TranscriptEvent.final(text, stream.final_word_count))
        except (gax_exceptions.PermissionDenied, gax_exceptions.Unauthenticated) as e:
            logger.error(f"Google STT rejected credentials: {e}")
            stream.emit(TranscriptEvent.failure(NotAuthorizedToRecognize(str(e))))
        except gax_exceptions.DeadlineExceeded as e:
            logger.error(f"Google STT streaming deadline exceeded: {e}")
            stream.emit(TranscriptEvent.failure(TranscriptionFailed(f"recognition timed out: {e}")))
        except gax_exceptions.ServiceUnavailable as e:
            logger.error(f"Google STT service unavailable: {e}")
            stream.emit(TranscriptEvent.failure(EngineUnavailable(str(e))))
        except gax_exceptions.GoogleAPICallError as e:
            logger.error(f"Google STT API call error: {e}")
            stream.emit(TranscriptEvent.failure(TranscriptionFailed(str(e))))
        except Exception as e:
            logger.error(f"Recognition stream {stream.handle.handle_id} crashed: {e}", exc_info=True)
            stream.emit(TranscriptEvent.failure(TranscriptionFailed(str(e) or e.__class__.__name__)))
        finally:
            with self._lock:
                self._streams.pop(stream.handle.handle_id, None)

    @staticmethod
    def __accumulate(stream: _StreamState, response: speech.StreamingRecognizeResponse):
        interim_segments = []
        interim_word_count = 0
        for result in response.results:
            if not result.alternatives:
                continue
            alternative = result.alternatives[0]
            transcript = alternative.transcript.strip()
            word_count = len(alternative.words) or len(transcript.split())
            if result.is_final:
                if transcript:
                    stream.final_segments.append(transcript)
                stream.final_word_count += word_count
            elif transcript:
                interim_segments.append(transcript)
                interim_word_count += word_count

        text = " ".join(stream.final_segments + interim_segments)
        return text, stream.final_word_count + interim_word_count
