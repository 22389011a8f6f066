class StorageError(Exception):
    """Base exception for document blob storage."""


class UnsafeBlobPathError(StorageError):
    """Raised when a blob path resolves outside the files root."""
