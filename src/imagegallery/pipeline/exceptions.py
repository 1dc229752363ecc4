"""Custom exceptions for the upload pipeline and storage layer."""


class GalleryException(Exception):
    """Base exception for the image gallery service."""
    pass


class IngestError(GalleryException):
    """Exception raised when an upload cannot be staged."""
    pass


class UploadTooLargeError(IngestError):
    """Exception raised when the upload stream exceeds the byte ceiling."""

    def __init__(self, max_bytes: int):
        super().__init__(f"Upload exceeds the limit of {max_bytes} bytes")
        self.max_bytes = max_bytes


class UploadAbortedError(IngestError):
    """Exception raised when the client disconnects before the upload completes."""
    pass


class StagingWriteError(IngestError):
    """Exception raised when the staging file cannot be written."""
    pass


class UnsupportedImageError(GalleryException):
    """Exception raised when staged bytes do not look like a known image format."""
    pass


class ConversionError(GalleryException):
    """Exception raised when an image conversion fails."""
    pass


class ConversionProcessError(ConversionError):
    """Exception raised when the conversion executable exits with a nonzero status."""

    def __init__(self, returncode: int, diagnostics: str):
        super().__init__(f"Conversion process exited with status {returncode}: {diagnostics}")
        self.returncode = returncode
        self.diagnostics = diagnostics


class ConversionTimeoutError(ConversionError):
    """Exception raised when the conversion executable runs past its timeout."""
    pass


class StorageError(GalleryException):
    """Exception raised when the storage directories cannot be created."""
    pass


class NotFoundError(GalleryException):
    """Exception raised when a requested file does not exist."""
    pass


class PathTraversalError(GalleryException):
    """Exception raised when a requested path or identifier escapes its root."""
    pass
