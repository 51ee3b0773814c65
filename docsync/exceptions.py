"""Exceptions raised by docsync."""


class DocsyncError(Exception):
    """Base exception for all docsync errors."""


class DocsyncConfigError(DocsyncError):
    """Raised when the configuration file is missing or invalid."""


class WalkError(DocsyncError):
    """Raised when a directory cannot be listed."""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Could not list {path}: {reason}")


class ManifestLoadError(DocsyncError):
    """Raised when a serialized manifest cannot be restored."""


class PatternError(ManifestLoadError):
    """Raised when a pattern string does not compile to a regular expression."""

    def __init__(self, pattern: str, reason: str):
        self.pattern = pattern
        self.reason = reason
        super().__init__(f"{pattern!r} is not a valid regexp: {reason}")


class ExtractionError(DocsyncError):
    """Raised when text cannot be extracted from a document."""


class MoveError(DocsyncError):
    """Raised when a planned move could not be carried out."""

    def __init__(self, source: str, target: str, reason: str):
        self.source = source
        self.target = target
        self.reason = reason
        super().__init__(f"moving {source!r} to {target!r}: {reason}")


class MoveCollisionError(MoveError):
    """Raised when the move target already exists."""

    def __init__(self, source: str, target: str):
        super().__init__(
            source, target, "declined as destination already exists"
        )


class EncryptionError(DocsyncError):
    """Raised when a payload cannot be decrypted."""


class StorageError(DocsyncError):
    """Base exception for object store errors."""


class StorageAuthenticationError(StorageError):
    """Raised when the object store rejects the credentials."""


class StorageNotFoundError(StorageError):
    """Raised when an object does not exist in the store."""


class StorageNetworkError(StorageError):
    """Raised on network failures talking to the object store."""
