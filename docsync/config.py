"""Configuration loading and validation.

All settings live in a single JSON file. Each consumer parses only the
section it needs, so the ``move`` command works with a file that carries
no storage settings and vice versa.
"""

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Union

from .exceptions import DocsyncConfigError, PatternError
from .filters import PatternSet
from .router import Rule
from .utils import DEFAULT_CONFIG_FILE, MIN_SYNC_INTERVAL, parse_duration

logger = logging.getLogger(__name__)

API_KEY_ENV_VAR = "DOCSYNC_API_KEY"


def expand_path(path: Union[str, Path]) -> Path:
    """Expand environment variables and ``~`` in a path."""
    return Path(os.path.expanduser(os.path.expandvars(str(path))))


def default_config_path() -> Path:
    """Return the configuration file used when none is given."""
    return expand_path(DEFAULT_CONFIG_FILE)


def read_config_file(config_path: Union[str, Path]) -> dict[str, Any]:
    """Read and decode a JSON configuration file.

    Args:
        config_path: Path to the configuration file

    Returns:
        Decoded JSON object

    Raises:
        DocsyncConfigError: If the file cannot be read or is not a JSON object
    """
    path = expand_path(config_path)
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except OSError as e:
        raise DocsyncConfigError(f"Could not read config {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise DocsyncConfigError(f"Invalid JSON in config {path}: {e}") from e

    if not isinstance(data, dict):
        raise DocsyncConfigError(f"Config {path} must contain a JSON object")
    return data


def _require_dir(path: Path, context: str) -> None:
    if not path.exists():
        raise DocsyncConfigError(f"{context} {str(path)!r} invalid: does not exist")
    if not path.is_dir():
        raise DocsyncConfigError(
            f"{context} {str(path)!r} invalid: file, not directory"
        )


def _patterns(value: Any, context: str) -> PatternSet:
    if value is None:
        return PatternSet()
    if not isinstance(value, list):
        raise DocsyncConfigError(f"{context} must be a list of regexps")
    try:
        return PatternSet.of(value)
    except PatternError as e:
        raise DocsyncConfigError(f"{e} in {context}") from e


# =============================================================================
# Upload settings
# =============================================================================


@dataclass
class StorageConfig:
    """Connection settings for the object store."""

    url: str
    """Base URL of the object store"""

    bucket_name: str
    """Bucket holding the uploaded objects"""

    api_key: Optional[str] = None
    """Bearer token sent with every request"""

    def validate(self) -> None:
        if not self.url:
            raise DocsyncConfigError("storage url empty")
        if not self.url.startswith(("http://", "https://")):
            raise DocsyncConfigError(f"storage url {self.url!r} must be http(s)")
        if not self.bucket_name:
            raise DocsyncConfigError("storage bucket_name empty")

    @classmethod
    def from_dict(cls, data: Any) -> "StorageConfig":
        if not isinstance(data, dict):
            raise DocsyncConfigError("storage must be an object")
        return cls(
            url=str(data.get("url") or "").rstrip("/"),
            bucket_name=str(data.get("bucket_name") or ""),
            api_key=data.get("api_key") or os.environ.get(API_KEY_ENV_VAR),
        )


@dataclass
class UploadConfig:
    """Minimum configuration to upload encrypted files."""

    aes_passphrase: str
    """Passphrase the encryption key is derived from"""

    storage: StorageConfig
    """Object store connection settings"""

    def validate(self) -> None:
        if not self.aes_passphrase:
            raise DocsyncConfigError("aes_passphrase empty")
        self.storage.validate()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "UploadConfig":
        if "storage" not in data:
            raise DocsyncConfigError("storage missing")
        return cls(
            aes_passphrase=str(data.get("aes_passphrase") or ""),
            storage=StorageConfig.from_dict(data["storage"]),
        )


# =============================================================================
# Sync settings
# =============================================================================


@dataclass
class SyncConfig(UploadConfig):
    """Configuration for syncing a set of directories to the store."""

    dirs: dict[Path, str] = field(default_factory=dict)
    """Local directories mapped to the remote prefix their files go under"""

    interval: float = 0.0
    """Seconds between two sync cycles"""

    manifest_file: Optional[Path] = None
    """Local copy of the manifest"""

    remote_manifest_file: str = ""
    """Object name of the manifest in the store"""

    include: PatternSet = field(default_factory=PatternSet)
    exclude: PatternSet = field(default_factory=PatternSet)

    def validate(self) -> None:
        if not self.dirs:
            raise DocsyncConfigError(
                "dirs empty: at least one dir needs to be provided"
            )
        for local in self.dirs:
            _require_dir(local, "dirs entry")
        if self.interval < MIN_SYNC_INTERVAL:
            raise DocsyncConfigError(
                f"interval too small: at least {MIN_SYNC_INTERVAL:g} seconds"
            )
        if not self.manifest_file:
            raise DocsyncConfigError("manifest_file empty")
        if not self.remote_manifest_file:
            raise DocsyncConfigError("remote_manifest_file empty")
        super().validate()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SyncConfig":
        upload = UploadConfig.from_dict(data)

        raw_dirs = data.get("dirs") or {}
        if not isinstance(raw_dirs, dict):
            raise DocsyncConfigError("dirs must be an object of local -> remote")

        raw_interval = data.get("interval", 0)
        try:
            interval = parse_duration(raw_interval)
        except (TypeError, ValueError) as e:
            raise DocsyncConfigError(f"interval invalid: {e}") from e

        manifest_file = data.get("manifest_file")
        return cls(
            aes_passphrase=upload.aes_passphrase,
            storage=upload.storage,
            dirs={expand_path(k): str(v) for k, v in raw_dirs.items()},
            interval=interval,
            manifest_file=expand_path(manifest_file) if manifest_file else None,
            remote_manifest_file=str(data.get("remote_manifest_file") or ""),
            include=_patterns(data.get("include"), "include"),
            exclude=_patterns(data.get("exclude"), "exclude"),
        )


# =============================================================================
# Mover settings
# =============================================================================


@dataclass
class RuleConfig:
    """Which patterns send a document to which directory."""

    patterns: list[str]
    to: Optional[Path]

    def validate(self) -> None:
        if self.to is None:
            raise DocsyncConfigError(f"rule {self.patterns!r}: to is required")
        if not self.patterns:
            raise DocsyncConfigError(
                f"rule for {str(self.to)!r}: at least one pattern is required"
            )
        _patterns(self.patterns, f"mover rule for {str(self.to)!r}")
        if not self.to.exists():
            try:
                self.to.mkdir(mode=0o744, parents=True)
            except OSError as e:
                raise DocsyncConfigError(
                    f"{str(self.to)!r} in mover: tried to create: {e}"
                ) from e
            logger.info(f"Created mover destination {self.to}")
        if not self.to.is_dir():
            raise DocsyncConfigError(f"{str(self.to)!r} in mover is not a directory")

    def to_rule(self) -> Rule:
        return Rule.of(self.patterns, self.to)

    @classmethod
    def from_dict(cls, data: Any) -> "RuleConfig":
        if not isinstance(data, dict):
            raise DocsyncConfigError("mover rules must be objects")
        patterns = data.get("patterns") or []
        if not isinstance(patterns, list):
            raise DocsyncConfigError("mover rule patterns must be a list")
        to = data.get("to") or ""
        return cls(patterns=patterns, to=expand_path(to) if to else None)


@dataclass
class MoverConfig:
    """Configuration of the content router.

    Rule order matters: the first rule matching a document decides where
    it goes and no further rules are evaluated.
    """

    from_dirs: list[Path] = field(default_factory=list)
    rules: list[RuleConfig] = field(default_factory=list)

    def validate(self) -> None:
        if not self.from_dirs:
            raise DocsyncConfigError("nothing specified in from field")
        for directory in self.from_dirs:
            _require_dir(directory, "mover from")
        if not self.rules:
            raise DocsyncConfigError("nothing specified in rules field")
        for rule in self.rules:
            rule.validate()

    def to_rules(self) -> list[Rule]:
        return [rule.to_rule() for rule in self.rules]

    @classmethod
    def from_dict(cls, data: Any) -> "MoverConfig":
        if not isinstance(data, dict):
            raise DocsyncConfigError("mover must be an object")
        from_dirs = data.get("from") or []
        rules = data.get("rules") or []
        if not isinstance(from_dirs, list) or not isinstance(rules, list):
            raise DocsyncConfigError("mover from and rules must be lists")
        return cls(
            from_dirs=[expand_path(d) for d in from_dirs],
            rules=[RuleConfig.from_dict(r) for r in rules],
        )


# =============================================================================
# Loaders
# =============================================================================


def load_upload_config(config_path: Union[str, Path]) -> UploadConfig:
    """Load and validate the upload settings of a configuration file."""
    cfg = UploadConfig.from_dict(read_config_file(config_path))
    cfg.validate()
    return cfg


def load_sync_config(config_path: Union[str, Path]) -> SyncConfig:
    """Load and validate the sync settings of a configuration file.

    Raises:
        DocsyncConfigError: If the file is unreadable or a setting is invalid
    """
    cfg = SyncConfig.from_dict(read_config_file(config_path))
    cfg.validate()
    logger.debug(f"Loaded sync config with {len(cfg.dirs)} dir(s)")
    return cfg


def load_mover_config(config_path: Union[str, Path]) -> MoverConfig:
    """Load and validate the ``mover`` section of a configuration file.

    Missing destination directories are created.

    Raises:
        DocsyncConfigError: If the section is missing or invalid
    """
    data = read_config_file(config_path)
    if data.get("mover") is None:
        raise DocsyncConfigError("mover not present")
    cfg = MoverConfig.from_dict(data["mover"])
    cfg.validate()
    return cfg
