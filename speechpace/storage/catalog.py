"""Catalog of saved recordings with a time-sorted in-memory cache."""

import re
import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from pubsub import pub

from .blob_store import AbstractBlobStore
from .metadata_store import AbstractMetadataStore
from ..exceptions import ExportFailed, MetadataWriteFailed, RecordingNotFound, UploadFailed
from ..models.recording import RecordingMetadata

logger = logging.getLogger(__name__)

CATALOG_TOPIC = "catalog.updated"


@dataclass(frozen=True)
class RemovalResult:
    """Outcome of deleting a recording.

    The metadata record is gone whenever a RemovalResult is returned; if the
    artifact could not be deleted ``orphaned_uri`` names it for out-of-band
    cleanup.
    """
    recording_id: str
    blob_deleted: bool
    orphaned_uri: Optional[str] = None


class RecordingCatalog:
    """CRUD over RecordingMetadata for one owner.

    The metadata store is authoritative. The cache is only mutated after the
    corresponding remote operation succeeded, and is kept sorted by
    timestamp, newest first. Every change is published on ``topic``.
    """

    def __init__(self,
                 metadata_store: AbstractMetadataStore,
                 blob_store: AbstractBlobStore,
                 owner_id: str,
                 topic: str = CATALOG_TOPIC):
        self.metadata_store = metadata_store
        self.blob_store = blob_store
        self.owner_id = owner_id
        self.topic = topic
        self._recordings: List[RecordingMetadata] = []
        self._lock = threading.Lock()
        # Held across a store call and the cache update that follows it
        self._store_lock = threading.Lock()

    @property
    def recordings(self) -> List[RecordingMetadata]:
        with self._lock:
            return list(self._recordings)

    def get(self, recording_id: str) -> RecordingMetadata:
        with self._lock:
            for recording in self._recordings:
                if recording.id == recording_id:
                    return recording
        raise RecordingNotFound(recording_id)

    def load(self) -> List[RecordingMetadata]:
        """Replace the cache with the full set from the metadata store."""
        with self._store_lock:
            recordings = self.metadata_store.list_by_owner(self.owner_id)
            recordings.sort(key=lambda r: r.timestamp, reverse=True)
            with self._lock:
                self._recordings = recordings
        logger.info(f"Loaded {len(recordings)} recordings for {self.owner_id}")
        self._publish()
        return list(recordings)

    def upload_artifact(self, local_path: str, recording_id: str) -> str:
        """Upload a session artifact and return its storage URI.

        Raises:
            UploadFailed: The blob store rejected the upload
        """
        key = f"recordings/{self.owner_id}/{recording_id}{Path(local_path).suffix or '.wav'}"
        try:
            return self.blob_store.upload(local_path, key)
        except Exception as e:
            logger.error(f"Error uploading {local_path}: {e}")
            raise UploadFailed(f"Upload failed: {e}") from e

    def append(self, metadata: RecordingMetadata) -> None:
        """Persist a new record, then add it to the cache.

        Raises:
            MetadataWriteFailed: The record was not persisted. Its artifact,
                already uploaded, is reported as ``orphaned_uri``.
        """
        with self._store_lock:
            try:
                self.metadata_store.put(self.owner_id, metadata)
            except Exception as e:
                logger.error(f"Error saving metadata for {metadata.id}, "
                             f"blob {metadata.storage_uri} is now orphaned: {e}")
                raise MetadataWriteFailed(f"Metadata write failed: {e}", orphaned_uri=metadata.storage_uri) from e

            with self._lock:
                self._recordings.append(metadata)
                self._recordings.sort(key=lambda r: r.timestamp, reverse=True)
        logger.info(f"Recording {metadata.id} ('{metadata.name}') added to catalog")
        self._publish()

    def remove(self, recording_id: str) -> RemovalResult:
        """Delete a record and its artifact.

        Raises:
            RecordingNotFound: The id is not in the cache
            MetadataWriteFailed: The metadata store refused the delete; the
                cache is unchanged
        """
        recording = self.get(recording_id)
        with self._store_lock:
            try:
                self.metadata_store.delete(self.owner_id, recording_id)
            except Exception as e:
                logger.error(f"Error deleting metadata for {recording_id}: {e}")
                raise MetadataWriteFailed(f"Metadata delete failed: {e}") from e

            with self._lock:
                self._recordings = [r for r in self._recordings if r.id != recording_id]
        self._publish()

        try:
            self.blob_store.delete(recording.storage_uri)
        except Exception as e:
            logger.warning(f"Recording {recording_id} deleted but its blob {recording.storage_uri} "
                           f"could not be removed: {e}")
            return RemovalResult(recording_id, blob_deleted=False, orphaned_uri=recording.storage_uri)

        logger.info(f"Recording {recording_id} deleted")
        return RemovalResult(recording_id, blob_deleted=True)

    def export(self, recording_id: str, dest_dir: str) -> str:
        """Download a recording's artifact into ``dest_dir``.

        Returns:
            Path of the written file

        Raises:
            RecordingNotFound: The id is not in the cache
            ExportFailed: Download or local write failed
        """
        recording = self.get(recording_id)
        safe_name = re.sub(r"[^\w\-. ]", "_", recording.name).strip() or "recording"
        suffix = Path(recording.storage_uri).suffix or ".wav"
        target = Path(dest_dir) / f"{safe_name}_{recording.id[:8]}{suffix}"

        try:
            data = self.blob_store.download(recording.storage_uri)
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except Exception as e:
            logger.error(f"Error exporting {recording_id}: {e}")
            raise ExportFailed(f"Export failed: {e}") from e

        logger.info(f"Exported {recording_id} to {target} ({len(data)} bytes)")
        return str(target)

    def _publish(self) -> None:
        pub.sendMessage(self.topic, recordings=self.recordings)
