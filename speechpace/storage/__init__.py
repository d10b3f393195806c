"""Persistence of saved recordings."""

from .blob_store import AbstractBlobStore, LocalBlobStore
from .metadata_store import AbstractMetadataStore, JsonMetadataStore
from .catalog import RecordingCatalog, RemovalResult, CATALOG_TOPIC

__all__ = [
    "AbstractBlobStore",
    "LocalBlobStore",
    "AbstractMetadataStore",
    "JsonMetadataStore",
    "RecordingCatalog",
    "RemovalResult",
    "CATALOG_TOPIC",
]
