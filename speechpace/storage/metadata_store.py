"""Metadata storage for saved recordings."""

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List

from ..models.recording import RecordingMetadata

logger = logging.getLogger(__name__)


class AbstractMetadataStore(ABC):
    """Authoritative store of RecordingMetadata, partitioned by owner."""

    @abstractmethod
    def list_by_owner(self, owner_id: str) -> List[RecordingMetadata]:
        pass

    @abstractmethod
    def put(self, owner_id: str, metadata: RecordingMetadata) -> None:
        pass

    @abstractmethod
    def delete(self, owner_id: str, recording_id: str) -> None:
        pass


class JsonMetadataStore(AbstractMetadataStore):
    """One JSON document per recording under ``<root>/<owner_id>/<id>.json``."""

    def __init__(self, root_dir: str):
        self.root_dir = Path(root_dir)
        self.root_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"JsonMetadataStore initialized at {self.root_dir}")

    def _owner_dir(self, owner_id: str) -> Path:
        return self.root_dir / owner_id

    def list_by_owner(self, owner_id: str) -> List[RecordingMetadata]:
        owner_dir = self._owner_dir(owner_id)
        if not owner_dir.exists():
            return []

        recordings = []
        for path in sorted(owner_dir.glob("*.json")):
            try:
                with open(path, 'r', encoding='utf-8') as f:
                    recordings.append(RecordingMetadata.from_dict(json.load(f)))
            except (ValueError, KeyError) as e:
                logger.warning(f"Skipping unreadable metadata file {path}: {e}")
        logger.debug(f"Found {len(recordings)} recordings for {owner_id}")
        return recordings

    def put(self, owner_id: str, metadata: RecordingMetadata) -> None:
        owner_dir = self._owner_dir(owner_id)
        owner_dir.mkdir(parents=True, exist_ok=True)
        path = owner_dir / f"{metadata.id}.json"
        tmp_path = path.with_suffix(".json.tmp")

        with open(tmp_path, 'w', encoding='utf-8') as f:
            json.dump(metadata.to_dict(), f, indent=2, ensure_ascii=False)
        tmp_path.replace(path)
        logger.info(f"Metadata saved: {path}")

    def delete(self, owner_id: str, recording_id: str) -> None:
        path = self._owner_dir(owner_id) / f"{recording_id}.json"
        path.unlink()
        logger.info(f"Metadata deleted: {path}")
