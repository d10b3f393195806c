"""Blob storage for recording artifacts."""

import os
import shutil
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from urllib.parse import urlparse, unquote

logger = logging.getLogger(__name__)


class AbstractBlobStore(ABC):
    """Stores audio artifacts and hands back a URI for each.

    Implementations raise an exception (any ``Exception``) on failure; the
    catalog translates failures into UploadFailed / ExportFailed.
    """

    @abstractmethod
    def upload(self, local_path: str, key: str) -> str:
        """Store ``local_path`` under ``key`` and return its remote URI."""
        pass

    @abstractmethod
    def download(self, uri: str) -> bytes:
        pass

    @abstractmethod
    def delete(self, uri: str) -> None:
        pass


class LocalBlobStore(AbstractBlobStore):
    """Blob store backed by a directory tree, addressed by ``file://`` URIs."""

    def __init__(self, root_dir: str):
        self.root_dir = Path(root_dir).absolute()
        self.root_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"LocalBlobStore initialized at {self.root_dir}")

    def upload(self, local_path: str, key: str) -> str:
        target = Path(os.path.normpath(self.root_dir / key))
        if self.root_dir not in target.parents:
            raise ValueError(f"Blob key escapes the store root: {key}")
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(local_path, target)
        uri = target.as_uri()
        logger.info(f"Uploaded {local_path} -> {uri} ({target.stat().st_size} bytes)")
        return uri

    def download(self, uri: str) -> bytes:
        path = self._path_for(uri)
        data = path.read_bytes()
        logger.debug(f"Downloaded {uri} ({len(data)} bytes)")
        return data

    def delete(self, uri: str) -> None:
        path = self._path_for(uri)
        path.unlink()
        logger.info(f"Deleted blob {uri}")

    def _path_for(self, uri: str) -> Path:
        parsed = urlparse(uri)
        if parsed.scheme != "file":
            raise ValueError(f"Unsupported blob URI: {uri}")
        return Path(unquote(parsed.path))
