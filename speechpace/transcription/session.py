"""One transcription session: drives the speech engine and holds the running transcript."""

import logging
import threading
from dataclasses import replace
from typing import Callable, Optional

from .base import AbstractSpeechEngine, EngineHandle, RecognitionConfig
from ..audio.reader import AudioFileReader
from ..exceptions import EngineUnavailable, ImportFailed, SpeechPaceError
from ..models.audio import AudioFrame
from ..models.events import TranscriptEvent

logger = logging.getLogger(__name__)


class TranscriptionSession:
    """Feeds audio to one engine stream and accumulates its transcript.

    Engine events are stamped with ``session_id`` and forwarded to ``sink``;
    the owner applies them with ``update_transcript`` and ``handle_error``
    on its own thread, so this class does no locking of its own.
    """

    def __init__(self,
                 engine: AbstractSpeechEngine,
                 config: RecognitionConfig,
                 session_id: str,
                 sink: Callable[[TranscriptEvent], None]):
        self.engine = engine
        self.config = config
        self.session_id = session_id
        self.sink = sink

        self.handle: Optional[EngineHandle] = None
        self.transcript = ""
        self.word_count = 0
        self.input_ended = False
        self.cancelled = False
        self.feeder_thread: Optional[threading.Thread] = None

    def open(self) -> None:
        """Open the engine stream.

        Raises:
            EngineUnavailable: The engine cannot accept a stream right now
            SpeechPaceError: Any error the engine raises while opening
        """
        if not self.engine.is_available():
            raise EngineUnavailable()
        self.handle = self.engine.open(self.config, self._on_engine_event)
        logger.info(f"Transcription session {self.session_id} opened")

    def _on_engine_event(self, event: TranscriptEvent) -> None:
        if self.cancelled:
            return
        self.sink(replace(event, session_id=self.session_id))

    def feed(self, frame: AudioFrame) -> None:
        if self.handle is None or self.input_ended or self.cancelled:
            return
        self.engine.feed(self.handle, frame.data)

    def end_audio(self) -> None:
        """Tell the engine no more audio is coming."""
        if self.handle is None or self.input_ended:
            return
        self.input_ended = True
        self.engine.end_audio(self.handle)

    def cancel(self) -> None:
        """Cancel the engine stream; later engine events are dropped."""
        if self.cancelled:
            return
        self.cancelled = True
        self.input_ended = True
        if self.handle is not None:
            self.engine.cancel(self.handle)
            logger.info(f"Transcription session {self.session_id} cancelled")

    def update_transcript(self, text: str, segment_count: int) -> bool:
        """Replace the running transcript with the engine's latest hypothesis.

        The engine's text is cumulative, so it replaces rather than appends,
        and the word count is the engine's recognized-segment count for it.

        Args:
            text: Cumulative best-hypothesis text
            segment_count: Number of recognized words in ``text``

        Returns:
            True if the word count grew
        """
        increased = segment_count > self.word_count
        self.transcript = text
        self.word_count = segment_count
        return increased

    def handle_error(self, error: SpeechPaceError) -> Optional[SpeechPaceError]:
        """Decide whether an engine error should fail the session.

        Returns:
            The error if no transcript text exists yet, otherwise None
        """
        if not self.transcript.strip():
            return error
        logger.warning(f"Engine error after {self.word_count} words, keeping partial transcript: {error}")
        return None

    def transcribe_file(self, reader: AudioFileReader) -> None:
        """Feed a whole file to the engine on a feeder thread, then end input."""
        self.feeder_thread = threading.Thread(target=self._feed_file, args=(reader,), daemon=True)
        self.feeder_thread.name = "TranscriptionFeederThread"
        self.feeder_thread.start()

    def _feed_file(self, reader: AudioFileReader) -> None:
        frames = 0
        try:
            for frame in reader.iter_frames():
                if self.cancelled:
                    break
                self.feed(frame)
                frames += 1
            logger.info(f"Fed {frames} frames from {reader.path.name}")
            self.end_audio()
        except (OSError, EOFError) as e:
            logger.error(f"Failed reading {reader.path}: {e}")
            self._on_engine_event(TranscriptEvent.failure(ImportFailed(f"Failed reading audio: {e}")))
        finally:
            reader.close()
