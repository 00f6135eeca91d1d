"""Error kinds raised by the DICOM service.

Request-level errors (``InvalidInputError``, ``NotFoundError`` and
``InternalFailureError``) carry the status code and problem title that the
HTTP layer reports. Component errors are raised by the blob store and the
DICOM parser and are translated into request-level errors by the router.
"""

from typing import Optional


class DicomServiceError(Exception):
    """Base class for errors reported to API clients."""

    status_code = 500

    def __init__(self, title: str, detail: Optional[str] = None) -> None:
        self.title = title
        self.detail = detail
        super().__init__(title if detail is None else f"{title}: {detail}")


class InvalidInputError(DicomServiceError):
    status_code = 400


class NotFoundError(DicomServiceError):
    status_code = 404


class InternalFailureError(DicomServiceError):
    status_code = 500


class BlobStoreError(Exception):
    """Raised when the storage medium cannot be written or read."""


class BlobNotFoundError(BlobStoreError):
    """Raised when no blob exists at a storage path."""

    def __init__(self, storage_path: str) -> None:
        self.storage_path = storage_path
        super().__init__(f"Blob not found: {storage_path}")


class UnsafeStoragePathError(BlobStoreError):
    """Raised when a storage path resolves outside the store root."""

    def __init__(self, storage_path: str) -> None:
        self.storage_path = storage_path
        super().__init__(f"Storage path escapes the store root: {storage_path}")


class InvalidTagError(ValueError):
    """Raised for a tag key that is not in GGGG,EEEE form."""


class TagNotFoundError(KeyError):
    """Raised when a tag has no single value in the dataset."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else ""


class FrameIndexError(IndexError):
    """Raised when a frame index is outside [0, frame count)."""

    def __init__(self, frame_index: int, frame_count: int) -> None:
        self.frame_index = frame_index
        self.frame_count = frame_count
        super().__init__(f"Frame index {frame_index} is out of range. Total frames: {frame_count}")
