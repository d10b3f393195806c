"""Recording engine: the session state machine tying capture, transcription and analysis together."""

import shutil
import time
import uuid
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from pathlib import Path
from queue import Queue
from typing import Any, Callable, NamedTuple, Optional

from pubsub import pub

from ..analysis.speed import analyze_speech
from ..analysis.stall import StallDetector, DEFAULT_STALL_THRESHOLD_SECONDS
from ..audio.capture import AudioCaptureSession
from ..audio.player import PlaybackSession
from ..audio.reader import AudioFileReader
from ..exceptions import (
    AlreadyRecording,
    ImportFailed,
    ImportTooLarge,
    InvalidEngineState,
    SpeechPaceError,
)
from ..models.engine import EngineSnapshot, EngineState
from ..models.events import TranscriptEvent, TranscriptEventKind
from ..models.recording import RecordingMetadata
from ..storage.catalog import RecordingCatalog
from ..transcription.base import AbstractSpeechEngine, RecognitionConfig
from ..transcription.session import TranscriptionSession

logger = logging.getLogger(__name__)

ENGINE_TOPIC = "engine.state"

LIVE = "live"
FILE = "file"

DEFAULT_GRACE_PERIOD_SECONDS = 1.5
DEFAULT_IMPORT_MAX_BYTES = 10 * 1024 * 1024
DEFAULT_IMPORT_TIMEOUT_SECONDS = 30.0


@dataclass
class SessionState:
    """Transient state of the active session, owned by the engine thread."""
    session_id: str
    mode: str
    start_time: float
    transcription: TranscriptionSession
    stall_detector: StallDetector
    artifact_path: Path
    capture: Optional[AudioCaptureSession] = None
    end_time: Optional[float] = None
    audio_duration: float = 0.0
    grace_timer: Optional[threading.Timer] = None
    save_name: Optional[str] = None
    done_future: Optional[Future] = None


@dataclass(frozen=True)
class CompletedSession:
    """What survives a finalized session for analyze, save and play."""
    session_id: str
    transcript: str
    word_count: int
    elapsed_seconds: float
    audio_duration: float
    artifact_path: Path


class _Message(NamedTuple):
    """A unit of work for the engine thread."""
    handler: Callable[..., None]
    args: tuple


class RecordingEngine:
    """Owns one recording session at a time and publishes its state.

    Commands return immediately; their effects are applied on a single
    engine thread that also consumes speech-engine events, timer expiries
    and playback completions from one FIFO inbox. Every state change is
    published as an EngineSnapshot on ``topic``. Catalog I/O runs on a
    separate executor and is reported through futures.
    """

    def __init__(self,
                 speech_engine: AbstractSpeechEngine,
                 catalog: RecordingCatalog,
                 work_dir: str,
                 sample_rate: int = 44100,
                 channels: int = 2,
                 chunk_size: int = 1024,
                 language: str = "en-US",
                 grace_period_seconds: float = DEFAULT_GRACE_PERIOD_SECONDS,
                 unclear_speech_threshold_seconds: float = DEFAULT_STALL_THRESHOLD_SECONDS,
                 import_max_bytes: int = DEFAULT_IMPORT_MAX_BYTES,
                 import_timeout_seconds: float = DEFAULT_IMPORT_TIMEOUT_SECONDS,
                 clock: Callable[[], float] = time.monotonic,
                 topic: str = ENGINE_TOPIC):
        """Initialize the recording engine.

        Args:
            speech_engine: Streaming speech-to-text engine
            catalog: Catalog of saved recordings
            work_dir: Private directory for session artifacts and imports
            sample_rate: Capture sample rate in Hz
            channels: Capture channel count
            chunk_size: Samples per captured frame
            language: Recognition language code
            grace_period_seconds: How long to wait for a final result after stop
            unclear_speech_threshold_seconds: Stall length that flags unclear speech
            import_max_bytes: Largest accepted import file
            import_timeout_seconds: How long to wait for a final result on imports
            clock: Monotonic time source in seconds
            topic: Pub/sub topic for EngineSnapshot updates
        """
        self.speech_engine = speech_engine
        self.catalog = catalog
        self.work_dir = Path(work_dir)
        self.work_dir.mkdir(parents=True, exist_ok=True)
        self.artifact_path = self.work_dir / "speechRecording.wav"
        self.sample_rate = sample_rate
        self.channels = channels
        self.chunk_size = chunk_size
        self.language = language
        self.grace_period_seconds = grace_period_seconds
        self.unclear_speech_threshold_seconds = unclear_speech_threshold_seconds
        self.import_max_bytes = import_max_bytes
        self.import_timeout_seconds = import_timeout_seconds
        self.clock = clock
        self.topic = topic

        # Owned by the engine thread
        self._session: Optional[SessionState] = None
        self._completed: Optional[CompletedSession] = None
        self._player: Optional[PlaybackSession] = None
        self._snapshot = EngineSnapshot()

        # Session claim, checked synchronously by start() and import_recording()
        self._lock = threading.Lock()
        self._claim_mode: Optional[str] = None
        self._closed = False

        self._state_changed = threading.Condition()
        self._inbox: "Queue[Optional[_Message]]" = Queue()
        self._executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="CatalogIO")
        self._worker = threading.Thread(target=self._worker_loop, daemon=True)
        self._worker.name = "RecordingEngineThread"
        self._worker.start()
        logger.info(f"RecordingEngine initialized: {sample_rate}Hz, {channels}ch, work_dir={self.work_dir}")

    # ------------------------------------------------------------------
    # Published state

    @property
    def snapshot(self) -> EngineSnapshot:
        return self._snapshot

    def wait_for(self, predicate: Callable[[EngineSnapshot], bool], timeout: Optional[float] = None) -> bool:
        """Block until ``predicate(snapshot)`` holds or ``timeout`` expires."""
        with self._state_changed:
            return self._state_changed.wait_for(lambda: predicate(self._snapshot), timeout=timeout)

    def wait_until_processed(self) -> None:
        """Block until every message queued so far has been handled."""
        self._inbox.join()

    def _publish(self, **changes: Any) -> None:
        self._snapshot = replace(self._snapshot, **changes)
        logger.debug(f"State: {self._snapshot.state.value}, words={self._snapshot.word_count}")
        try:
            pub.sendMessage(self.topic, snapshot=self._snapshot)
        except Exception as e:
            logger.error(f"Listener on {self.topic} failed: {e}", exc_info=True)
        finally:
            with self._state_changed:
                self._state_changed.notify_all()

    # ------------------------------------------------------------------
    # Engine thread

    def _post(self, handler: Callable[..., None], *args: Any) -> None:
        self._inbox.put(_Message(handler, args))

    def _worker_loop(self) -> None:
        """Process inbox messages in order until the shutdown sentinel arrives."""
        while True:
            message = self._inbox.get()
            if message is None:
                self._inbox.task_done()
                break
            try:
                message.handler(*message.args)
            except Exception as e:
                logger.error(f"Unhandled error in {message.handler.__name__}: {e}", exc_info=True)
                try:
                    self._recover(e)
                except Exception as recover_error:
                    logger.error(f"Recovery after {message.handler.__name__} failed: {recover_error}",
                                 exc_info=True)
            finally:
                self._inbox.task_done()
        logger.debug("Engine thread exiting")

    def _recover(self, error: Exception) -> None:
        session = self._session
        if session is not None:
            self._fail_session(session, error)
        else:
            self._publish(error_message=self._error_message(error))

    @staticmethod
    def _error_message(error: Exception) -> str:
        if isinstance(error, SpeechPaceError):
            return error.message
        return str(error) or error.__class__.__name__

    # ------------------------------------------------------------------
    # Claims

    def _claim(self, mode: str) -> None:
        with self._lock:
            if self._closed:
                raise InvalidEngineState("Recording engine is shut down")
            if self._claim_mode is not None:
                raise AlreadyRecording()
            self._claim_mode = mode

    def _release_claim(self) -> None:
        with self._lock:
            self._claim_mode = None

    # ------------------------------------------------------------------
    # Live recording

    def start(self) -> None:
        """Begin a live recording session.

        Raises:
            AlreadyRecording: A recording or import is already active; the
                active session is left untouched
        """
        self._claim(LIVE)
        self._post(self._do_start)

    def _do_start(self) -> None:
        self._stop_playback_now()

        session_id = uuid.uuid4().hex
        transcription = TranscriptionSession(
            engine=self.speech_engine,
            config=RecognitionConfig(sample_rate=self.sample_rate, channels=self.channels, language=self.language),
            session_id=session_id,
            sink=self._on_engine_event,
        )
        capture = AudioCaptureSession(
            str(self.artifact_path),
            sample_rate=self.sample_rate,
            chunk_size=self.chunk_size,
            channels=self.channels,
        )
        session = SessionState(
            session_id=session_id,
            mode=LIVE,
            start_time=self.clock(),
            transcription=transcription,
            stall_detector=StallDetector(self.unclear_speech_threshold_seconds),
            artifact_path=self.artifact_path,
            capture=capture,
        )
        self._session = session
        self._completed = None

        try:
            transcription.open()
            capture.start(on_frame=transcription.feed,
                          on_error=lambda error: self._post(self._handle_capture_error, session_id, error))
        except Exception as e:
            logger.error(f"Failed to start session {session_id}: {e}")
            self._fail_session(session, e)
            return

        session.start_time = self.clock()
        session.stall_detector.reset(session.start_time)
        logger.info(f"Recording session {session_id} started")
        self._publish(
            state=EngineState.RECORDING,
            session_id=session_id,
            transcript="",
            word_count=0,
            words_per_minute=0,
            analyzed=False,
            unclear_speech=False,
            has_artifact=False,
            has_completed_session=False,
            error_message=None,
        )

    def stop(self) -> bool:
        """Request the end of the live session.

        Returns:
            False if no live session is active, True if the stop was queued
        """
        with self._lock:
            if self._claim_mode != LIVE:
                logger.warning("No recording in progress")
                return False
        self._post(self._do_stop)
        return True

    def _do_stop(self) -> None:
        session = self._session
        if session is None or session.mode != LIVE or self._snapshot.state is not EngineState.RECORDING:
            logger.debug("Stop ignored, session already finalizing or gone")
            return
        self._begin_finalizing(session)

    def _begin_finalizing(self, session: SessionState, error_message: Optional[str] = None) -> None:
        session.end_time = self.clock()
        self._publish(state=EngineState.FINALIZING, error_message=error_message)

        session.capture.stop()
        session.audio_duration = session.capture.audio_duration_seconds
        session.transcription.end_audio()
        self._arm_grace_timer(session, self.grace_period_seconds)
        logger.info(f"Session {session.session_id} finalizing, waiting up to "
                    f"{self.grace_period_seconds}s for the final transcript")

    def _handle_capture_error(self, session_id: str, error: SpeechPaceError) -> None:
        session = self._session
        if session is None or session.session_id != session_id:
            return
        if self._snapshot.state is EngineState.RECORDING:
            self._begin_finalizing(session, error_message=error.message)

    # ------------------------------------------------------------------
    # Speech engine events

    def _on_engine_event(self, event: TranscriptEvent) -> None:
        """Called from the speech engine's thread."""
        self._post(self._handle_transcript_event, event)

    def _handle_transcript_event(self, event: TranscriptEvent) -> None:
        session = self._session
        if session is None or event.session_id != session.session_id:
            logger.debug(f"Dropping {event.kind.value} event for stale session {event.session_id}")
            return

        if event.kind is TranscriptEventKind.ERROR:
            self._handle_engine_error(session, event.error)
            return

        now = self.clock()
        grew = session.transcription.update_transcript(event.text, event.segment_count)
        if grew:
            session.stall_detector.on_word_count_increased(now)
        elif session.stall_detector.check_stalled(now):
            logger.info(f"Session {session.session_id}: unclear speech")

        self._publish(
            transcript=session.transcription.transcript,
            word_count=session.transcription.word_count,
            unclear_speech=session.stall_detector.stalled,
        )

        if event.kind is TranscriptEventKind.FINAL:
            self._finalize(session)

    def _handle_engine_error(self, session: SessionState, error: SpeechPaceError) -> None:
        if self._snapshot.state is EngineState.FINALIZING:
            logger.warning(f"Engine error while finalizing session {session.session_id}: {error}")
            if session.mode == FILE and not session.transcription.transcript.strip():
                self._fail_session(session, error)
            else:
                self._finalize(session)
            return

        surfaced = session.transcription.handle_error(error)
        if surfaced is not None:
            logger.error(f"Session {session.session_id} failed: {surfaced}")
            self._fail_session(session, surfaced)

    # ------------------------------------------------------------------
    # Finalization

    def _arm_grace_timer(self, session: SessionState, seconds: float) -> None:
        timer = threading.Timer(seconds, self._post, args=(self._handle_grace_expired, session.session_id))
        timer.daemon = True
        timer.name = "FinalizeGraceTimer"
        session.grace_timer = timer
        timer.start()

    def _handle_grace_expired(self, session_id: str) -> None:
        session = self._session
        if session is None or session.session_id != session_id:
            return
        logger.warning(f"No final transcript for session {session_id} within the grace period, "
                       f"finalizing with {session.transcription.word_count} words")
        self._finalize(session)

    def _teardown(self, session: SessionState) -> None:
        if session.grace_timer:
            session.grace_timer.cancel()
        session.transcription.cancel()
        if session.capture:
            session.capture.stop()
            session.audio_duration = session.capture.audio_duration_seconds

    def _finalize(self, session: SessionState) -> None:
        self._teardown(session)
        if session.end_time is None:
            session.end_time = self.clock()

        if session.mode == FILE:
            elapsed = session.audio_duration
        else:
            elapsed = session.end_time - session.start_time

        self._completed = CompletedSession(
            session_id=session.session_id,
            transcript=session.transcription.transcript,
            word_count=session.transcription.word_count,
            elapsed_seconds=elapsed,
            audio_duration=session.audio_duration,
            artifact_path=session.artifact_path,
        )
        self._session = None
        self._release_claim()
        logger.info(f"Session {session.session_id} finalized: {self._completed.word_count} words "
                    f"in {elapsed:.1f}s")

        self._publish(
            state=EngineState.IDLE,
            transcript=self._completed.transcript,
            word_count=self._completed.word_count,
            has_artifact=session.artifact_path.exists(),
            has_completed_session=True,
        )

        if session.save_name is not None:
            self._do_analyze()
            self._do_save(session.save_name, session.done_future)
        elif session.done_future is not None:
            session.done_future.set_result(None)

    def _fail_session(self, session: SessionState, error: Exception) -> None:
        self._teardown(session)
        self._session = None
        self._completed = None
        self._release_claim()
        self._publish(
            state=EngineState.IDLE,
            has_artifact=False,
            has_completed_session=False,
            error_message=self._error_message(error),
        )
        if session.done_future is not None and not session.done_future.done():
            session.done_future.set_exception(error)

    # ------------------------------------------------------------------
    # Analysis

    def analyze(self) -> None:
        """Compute words per minute and speed category for the last session."""
        self._post(self._do_analyze)

    def _do_analyze(self) -> None:
        completed = self._completed
        if self._snapshot.state is not EngineState.IDLE or completed is None:
            logger.warning("Nothing to analyze")
            self._publish(error_message=InvalidEngineState("No completed recording to analyze").message)
            return

        wpm, speed = analyze_speech(completed.word_count, completed.elapsed_seconds)
        logger.info(f"Session {completed.session_id}: {wpm} WPM ({speed.value})")
        self._publish(words_per_minute=wpm, speed=speed, analyzed=True)

    # ------------------------------------------------------------------
    # Saving and the catalog

    def save(self, name: str) -> "Future[RecordingMetadata]":
        """Upload the last session's artifact and persist its metadata.

        Returns:
            Future resolving to the saved RecordingMetadata, or failing with
            UploadFailed / MetadataWriteFailed / InvalidEngineState
        """
        future: "Future[RecordingMetadata]" = Future()
        self._post(self._do_save, name, future)
        return future

    def _do_save(self, name: str, future: Optional[Future]) -> None:
        completed = self._completed
        if self._snapshot.state is not EngineState.IDLE or completed is None:
            error = InvalidEngineState("No completed recording to save")
            self._publish(error_message=error.message)
            if future is not None:
                future.set_exception(error)
            return

        if not self._snapshot.analyzed:
            self._do_analyze()

        recording_id = str(uuid.uuid4())
        staging_path = self.work_dir / f"upload-{recording_id}{completed.artifact_path.suffix}"
        try:
            shutil.copyfile(completed.artifact_path, staging_path)
        except OSError as e:
            error = InvalidEngineState(f"Recording artifact is not available: {e}")
            self._publish(error_message=error.message)
            if future is not None:
                future.set_exception(error)
            return

        snapshot = self._snapshot
        io_future = self._executor.submit(
            self._upload_and_persist,
            staging_path,
            recording_id,
            name,
            completed,
            snapshot.words_per_minute,
            snapshot.speed,
        )
        io_future.add_done_callback(lambda f: self._post(self._on_save_done, f, future))
        logger.info(f"Saving session {completed.session_id} as '{name}' ({recording_id})")

    def _upload_and_persist(self, staging_path: Path, recording_id: str, name: str,
                            completed: CompletedSession, words_per_minute: int, speed) -> RecordingMetadata:
        """Runs on the I/O executor."""
        try:
            storage_uri = self.catalog.upload_artifact(str(staging_path), recording_id)
        finally:
            staging_path.unlink(missing_ok=True)

        metadata = RecordingMetadata(
            id=recording_id,
            name=name,
            timestamp=datetime.now(timezone.utc),
            duration=max(0.0, completed.audio_duration),
            words_per_minute=words_per_minute,
            speech_speed=speed,
            transcript=completed.transcript,
            storage_uri=storage_uri,
        )
        self.catalog.append(metadata)
        return metadata

    def _on_save_done(self, io_future: Future, future: Optional[Future]) -> None:
        error = io_future.exception()
        if error is not None:
            logger.error(f"Save failed: {error}")
            self._publish(error_message=self._error_message(error))
            if future is not None:
                future.set_exception(error)
            return

        metadata = io_future.result()
        self._publish(last_saved=metadata, error_message=None)
        if future is not None:
            future.set_result(metadata)

    def load_catalog(self) -> Future:
        """Reload the catalog from the metadata store."""
        return self._executor.submit(self.catalog.load)

    def delete(self, recording_id: str) -> Future:
        """Delete a saved recording; resolves to a RemovalResult."""
        return self._executor.submit(self.catalog.remove, recording_id)

    def export(self, recording_id: str, dest_dir: Optional[str] = None) -> Future:
        """Download a saved recording; resolves to the local file path."""
        return self._executor.submit(self.catalog.export, recording_id, dest_dir or str(self.work_dir / "exports"))

    # ------------------------------------------------------------------
    # Playback

    def play(self) -> None:
        """Play the last session's local artifact."""
        self._post(self._do_play)

    def stop_playback(self) -> None:
        self._post(self._stop_playback_now)

    def _do_play(self) -> None:
        completed = self._completed
        if self._snapshot.state is not EngineState.IDLE or completed is None or not completed.artifact_path.exists():
            logger.warning("No recording available for playback")
            self._publish(error_message=InvalidEngineState("No recording available for playback").message)
            return
        if self._player is not None:
            return

        player = PlaybackSession(str(completed.artifact_path), chunk_size=self.chunk_size)
        player.on_finished = lambda played_to_end: self._post(self._on_playback_finished, player)
        try:
            player.start()
        except SpeechPaceError as e:
            logger.error(f"Playback failed: {e}")
            self._publish(error_message=e.message)
            return
        self._player = player
        self._publish(is_playing=True, error_message=None)

    def _on_playback_finished(self, player: PlaybackSession) -> None:
        if self._player is player:
            self._player = None
            self._publish(is_playing=False)

    def _stop_playback_now(self) -> None:
        player = self._player
        if player is None:
            return
        self._player = None
        player.stop()
        self._publish(is_playing=False)

    # ------------------------------------------------------------------
    # Import

    def import_recording(self, source_path: str, name: Optional[str] = None) -> Future:
        """Transcribe an existing audio file as a new session.

        The size cap is checked before anything else, so a rejected file
        leaves the engine untouched.

        Args:
            source_path: 16-bit PCM WAV file to import
            name: If given, the session is analyzed and saved under this name

        Returns:
            Future resolving to the saved RecordingMetadata when ``name`` is
            given, otherwise to None once the transcript is final

        Raises:
            ImportFailed: The file does not exist
            ImportTooLarge: The file exceeds the size cap
            AlreadyRecording: Another session is active
        """
        source = Path(source_path)
        if not source.is_file():
            raise ImportFailed(f"File not found: {source_path}")
        size = source.stat().st_size
        if size > self.import_max_bytes:
            logger.warning(f"Rejected import of {source.name}: {size} bytes")
            raise ImportTooLarge(size, self.import_max_bytes)

        self._claim(FILE)
        future: Future = Future()
        self._post(self._do_import, source, name, future)
        return future

    def _do_import(self, source: Path, name: Optional[str], future: Future) -> None:
        self._stop_playback_now()
        self._completed = None

        target = self.work_dir / f"imported{source.suffix.lower() or '.wav'}"
        try:
            shutil.copyfile(source, target)
            reader = AudioFileReader(str(target), chunk_size=self.chunk_size)
        except (OSError, ImportFailed) as e:
            error = e if isinstance(e, ImportFailed) else ImportFailed(f"Could not copy {source.name}: {e}")
            logger.error(f"Import of {source} failed: {error}")
            self._release_claim()
            self._publish(state=EngineState.IDLE, has_artifact=False, has_completed_session=False,
                          error_message=error.message)
            future.set_exception(error)
            return

        session_id = uuid.uuid4().hex
        transcription = TranscriptionSession(
            engine=self.speech_engine,
            config=RecognitionConfig(sample_rate=reader.sample_rate, channels=reader.channels,
                                     language=self.language),
            session_id=session_id,
            sink=self._on_engine_event,
        )
        now = self.clock()
        session = SessionState(
            session_id=session_id,
            mode=FILE,
            start_time=now,
            transcription=transcription,
            stall_detector=StallDetector(self.unclear_speech_threshold_seconds),
            artifact_path=target,
            audio_duration=reader.duration_seconds,
            save_name=name,
            done_future=future,
        )
        session.stall_detector.reset(now)
        self._session = session

        try:
            transcription.open()
        except Exception as e:
            reader.close()
            logger.error(f"Failed to open transcription for import {source.name}: {e}")
            self._fail_session(session, e)
            return

        logger.info(f"Importing {source.name} as session {session_id} ({reader.duration_seconds:.1f}s of audio)")
        self._publish(
            state=EngineState.FINALIZING,
            session_id=session_id,
            transcript="",
            word_count=0,
            words_per_minute=0,
            analyzed=False,
            unclear_speech=False,
            has_artifact=False,
            has_completed_session=False,
            error_message=None,
        )
        transcription.transcribe_file(reader)
        self._arm_grace_timer(session, self.import_timeout_seconds)

    # ------------------------------------------------------------------
    # Shutdown

    def shutdown(self, timeout: float = 5.0) -> None:
        """Cancel any active session, release audio devices and stop the engine thread."""
        with self._lock:
            if self._closed:
                return
            self._closed = True

        logger.info("Shutting down RecordingEngine...")
        if self._worker.is_alive() and threading.current_thread() is not self._worker:
            self._post(self._do_shutdown)
            self._inbox.put(None)
            self._worker.join(timeout)
            if self._worker.is_alive():
                logger.warning("Engine thread did not stop cleanly, releasing resources directly")
                self._do_shutdown()
        else:
            self._do_shutdown()

        self._executor.shutdown(wait=False)
        logger.info("RecordingEngine shutdown complete")

    def _do_shutdown(self) -> None:
        self._stop_playback_now()
        session = self._session
        if session is not None:
            logger.info(f"Cancelling active session {session.session_id}")
            self._teardown(session)
            self._session = None
            self._release_claim()
            if session.done_future is not None and not session.done_future.done():
                session.done_future.cancel()
            self._publish(state=EngineState.IDLE)

    def __enter__(self) -> "RecordingEngine":
        return self

    def __exit__(self, *args) -> None:
        self.shutdown()
