"""SpeechPace exception hierarchy.

Every error the recording engine and the catalog report inherits from
SpeechPaceError, so the CLI and the published engine state can render a
single user-visible message for any failure.
"""

from typing import Optional


class SpeechPaceError(Exception):
    """Base exception for all SpeechPace errors."""

    def __init__(self, detail: str = "An unexpected error occurred", code: str = "SPEECHPACE_ERROR"):
        self.detail = detail
        self.code = code
        super().__init__(detail)

    @property
    def message(self) -> str:
        """User-visible message for this error."""
        return self.detail


class EngineUnavailable(SpeechPaceError):
    """Raised when the speech engine cannot currently accept a session."""

    def __init__(self, detail: str = "Recognizer is unavailable"):
        super().__init__(detail=detail, code="ENGINE_UNAVAILABLE")


class NotAuthorizedToRecognize(SpeechPaceError):
    """Raised when the speech engine rejects our credentials."""

    def __init__(self, detail: str = "Not authorized to recognize speech"):
        super().__init__(detail=detail, code="NOT_AUTHORIZED_TO_RECOGNIZE")


class NotPermittedToRecord(SpeechPaceError):
    """Raised when the OS denies access to the microphone."""

    def __init__(self, detail: str = "Not permitted to record audio"):
        super().__init__(detail=detail, code="NOT_PERMITTED_TO_RECORD")


class TranscriptionFailed(SpeechPaceError):
    """Raised when the speech engine fails before producing any text."""

    def __init__(self, detail: str = "unknown error"):
        super().__init__(detail=f"Transcription failed: {detail}", code="TRANSCRIPTION_FAILED")


class AlreadyRecording(SpeechPaceError):
    """Raised when a session is started while another one is active."""

    def __init__(self):
        super().__init__(detail="A recording is already active", code="ALREADY_RECORDING")


class CaptureDeviceError(SpeechPaceError):
    """Raised when the audio input device cannot be opened or read."""

    def __init__(self, detail: str = "Audio capture device error"):
        super().__init__(detail=detail, code="CAPTURE_DEVICE_ERROR")


class ImportTooLarge(SpeechPaceError):
    """Raised when an imported audio file exceeds the size cap."""

    def __init__(self, size_bytes: int, max_bytes: int):
        self.size_bytes = size_bytes
        self.max_bytes = max_bytes
        super().__init__(
            detail=f"Import file is {size_bytes} bytes, limit is {max_bytes} bytes",
            code="IMPORT_TOO_LARGE",
        )


class ImportFailed(SpeechPaceError):
    """Raised when an imported audio file cannot be read."""

    def __init__(self, detail: str = "Import failed"):
        super().__init__(detail=detail, code="IMPORT_FAILED")


class UploadFailed(SpeechPaceError):
    """Raised when the audio artifact cannot be uploaded to blob storage."""

    def __init__(self, detail: str = "Upload failed"):
        super().__init__(detail=detail, code="UPLOAD_FAILED")


class MetadataWriteFailed(SpeechPaceError):
    """Raised when a metadata record cannot be written or deleted.

    When raised after a successful upload, ``orphaned_uri`` names the blob
    that now has no metadata record pointing at it.
    """

    def __init__(self, detail: str = "Metadata write failed", orphaned_uri: Optional[str] = None):
        self.orphaned_uri = orphaned_uri
        super().__init__(detail=detail, code="METADATA_WRITE_FAILED")


class ExportFailed(SpeechPaceError):
    """Raised when a saved recording cannot be exported to a local file."""

    def __init__(self, detail: str = "Export failed"):
        super().__init__(detail=detail, code="EXPORT_FAILED")


class RecordingNotFound(SpeechPaceError):
    """Raised when a recording ID is not in the catalog."""

    def __init__(self, recording_id: str):
        self.recording_id = recording_id
        super().__init__(detail=f"Recording not found: {recording_id}", code="RECORDING_NOT_FOUND")


class InvalidEngineState(SpeechPaceError):
    """Raised when a command is issued in a state where it is not valid."""

    def __init__(self, detail: str):
        super().__init__(detail=detail, code="INVALID_ENGINE_STATE")
