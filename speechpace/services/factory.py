"""Builds the recording engine and its collaborators from configuration."""

import logging
from pathlib import Path
from typing import Optional

from ..config import SpeechPaceConfig
from ..storage import JsonMetadataStore, LocalBlobStore, RecordingCatalog
from ..transcription.base import AbstractSpeechEngine
from .recording_engine import RecordingEngine

logger = logging.getLogger(__name__)


def create_speech_engine(config: SpeechPaceConfig) -> AbstractSpeechEngine:
    """Create and initialize the Google speech engine."""
    from ..transcription.google_backend import GoogleStreamingSpeechEngine

    credentials_path = config.get_google_credentials_path()
    model = config.get('google_cloud.model', 'latest_long')
    use_enhanced = config.get('google_cloud.use_enhanced_model', True)
    enable_punctuation = config.get('google_cloud.enable_automatic_punctuation', True)

    logger.info("Initializing Google Speech engine...")
    logger.debug(f"Config: model={model}, enhanced={use_enhanced}, punctuation={enable_punctuation}")

    engine = GoogleStreamingSpeechEngine(
        credentials_path=credentials_path,
        model=model,
        use_enhanced=use_enhanced,
        enable_automatic_punctuation=enable_punctuation,
    )
    engine.initialize()
    logger.info("Google Speech engine initialized")
    return engine


def create_catalog(config: SpeechPaceConfig) -> RecordingCatalog:
    data_dir = Path(config.get_data_directory())
    return RecordingCatalog(
        metadata_store=JsonMetadataStore(str(data_dir / "metadata")),
        blob_store=LocalBlobStore(str(data_dir / "blobs")),
        owner_id=config.get_owner_id(),
    )


def create_recording_engine(config: SpeechPaceConfig,
                            speech_engine: Optional[AbstractSpeechEngine] = None,
                            catalog: Optional[RecordingCatalog] = None) -> RecordingEngine:
    """Wire a RecordingEngine from the ``audio``, ``google_cloud`` and ``recording`` sections.

    Args:
        config: Loaded configuration
        speech_engine: Engine to use instead of Google Speech-to-Text
        catalog: Catalog to use instead of the local stores under the data directory
    """
    data_dir = Path(config.get_data_directory())
    return RecordingEngine(
        speech_engine=speech_engine or create_speech_engine(config),
        catalog=catalog or create_catalog(config),
        work_dir=str(data_dir / "tmp"),
        sample_rate=config.get('audio.sample_rate', 44100),
        channels=config.get('audio.channels', 2),
        chunk_size=config.get('audio.chunk_size', 1024),
        language=config.get('google_cloud.language', 'en-US'),
        grace_period_seconds=config.get('recording.grace_period_seconds', 1.5),
        unclear_speech_threshold_seconds=config.get('recording.unclear_speech_threshold_seconds', 3.0),
        import_max_bytes=config.get('recording.import_max_bytes', 10 * 1024 * 1024),
        import_timeout_seconds=config.get('recording.import_timeout_seconds', 30.0),
    )
