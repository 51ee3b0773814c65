"""docsync - Back up document folders and file documents by content."""

from .crypt import Encryption
from .exceptions import (
    DocsyncConfigError,
    DocsyncError,
    EncryptionError,
    ExtractionError,
    ManifestLoadError,
    MoveCollisionError,
    MoveError,
    PatternError,
    StorageAuthenticationError,
    StorageError,
    StorageNetworkError,
    StorageNotFoundError,
    WalkError,
)
from .extract import PdfToTextExtractor, TextExtractor
from .filters import FileFilter, PatternSet
from .manifest import Manifest, ManifestEntry
from .router import ContentRouter, Rule, ScanResult, SeenRecord
from .runner import CycleStats, SyncRunner
from .storage import StorageClient
from .walker import DirectoryWalker, DirEntry, ErrorPolicy

__all__ = [
    "ContentRouter",
    "CycleStats",
    "DirEntry",
    "DirectoryWalker",
    "DocsyncConfigError",
    "DocsyncError",
    "Encryption",
    "EncryptionError",
    "ErrorPolicy",
    "ExtractionError",
    "FileFilter",
    "Manifest",
    "ManifestEntry",
    "ManifestLoadError",
    "MoveCollisionError",
    "MoveError",
    "PatternError",
    "PatternSet",
    "PdfToTextExtractor",
    "Rule",
    "ScanResult",
    "SeenRecord",
    "StorageAuthenticationError",
    "StorageClient",
    "StorageError",
    "StorageNetworkError",
    "StorageNotFoundError",
    "SyncRunner",
    "TextExtractor",
    "WalkError",
]
