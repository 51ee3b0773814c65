"""Utility functions for docsync."""

import hashlib
import re
from pathlib import Path
from typing import Union

# =============================================================================
# Constants
# =============================================================================

# Configuration file used when none is given on the command line
DEFAULT_CONFIG_FILE: str = "$HOME/.docsync/config.json"

# Shortest accepted polling interval for the sync loop (seconds)
MIN_SYNC_INTERVAL: float = 10.0

# Default polling interval for the mover loop (seconds)
DEFAULT_MOVE_INTERVAL: float = 60.0

# Read buffer when streaming a file into a digest
HASH_CHUNK_SIZE: int = 1024 * 1024

# Retry configuration for transient storage errors
DEFAULT_MAX_RETRIES: int = 3
DEFAULT_RETRY_DELAY: float = 1.0  # seconds


# =============================================================================
# Hash calculation utilities
# =============================================================================


def md5_digest(data: bytes) -> bytes:
    """Return the 16-byte MD5 digest of ``data``.

    Used by the manifest to fingerprint tracked files.

    Examples:
        >>> md5_digest(b"").hex()
        'd41d8cd98f00b204e9800998ecf8427e'
    """
    return hashlib.md5(data).digest()


def sha256_file(file_path: Union[str, Path]) -> str:
    """Return the SHA-256 hex digest of a file, read in chunks.

    Args:
        file_path: File to digest

    Returns:
        Lowercase hex digest

    Raises:
        OSError: If the file cannot be read
    """
    h = hashlib.sha256()
    with open(file_path, "rb") as f:
        for chunk in iter(lambda: f.read(HASH_CHUNK_SIZE), b""):
            h.update(chunk)
    return h.hexdigest()


# =============================================================================
# Duration parsing utilities
# =============================================================================

_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")

_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}


def parse_duration(value: Union[str, int, float]) -> float:
    """Parse a duration into seconds.

    Accepts plain numbers (seconds) or duration strings made of
    number/unit pairs such as ``"90s"``, ``"5m"`` or ``"1h30m"``.

    Args:
        value: Duration to parse

    Returns:
        Duration in seconds

    Raises:
        ValueError: If the duration cannot be parsed

    Examples:
        >>> parse_duration("1h30m")
        5400.0
        >>> parse_duration(45)
        45.0
    """
    if isinstance(value, bool):
        raise ValueError(f"invalid duration {value!r}")
    if isinstance(value, (int, float)):
        return float(value)

    text = value.strip()
    if not text:
        raise ValueError("empty duration")

    total = 0.0
    pos = 0
    for match in _DURATION_PART.finditer(text):
        if match.start() != pos:
            break
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    if pos != len(text):
        raise ValueError(f"invalid duration {value!r}")
    return total


# =============================================================================
# Formatting utilities
# =============================================================================


def format_size(size_bytes: int) -> str:
    """Format file size in human-readable format.

    Args:
        size_bytes: Size in bytes

    Returns:
        Formatted size string (e.g., "1.5 MB", "256 B")
    """
    if size_bytes < 1024:
        return f"{size_bytes} B"
    elif size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KB"
    elif size_bytes < 1024 * 1024 * 1024:
        return f"{size_bytes / 1024 / 1024:.1f} MB"
    else:
        return f"{size_bytes / 1024 / 1024 / 1024:.1f} GB"


def remote_name_for(local_path: str, local_root: str, remote_root: str) -> str:
    """Map a local file path to its object name in the store.

    The first occurrence of ``local_root`` is replaced by ``remote_root``.

    Examples:
        >>> remote_name_for("/home/me/scans/a.pdf", "/home/me/scans", "scans")
        'scans/a.pdf'
    """
    return local_path.replace(local_root, remote_root, 1)
