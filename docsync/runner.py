"""Sync runner: one polling cycle of routing, change detection and upload."""

import logging
import time
from dataclasses import asdict, dataclass
from typing import Callable, Optional

from .config import SyncConfig
from .crypt import Encryption
from .exceptions import (
    DocsyncError,
    ManifestLoadError,
    StorageError,
    StorageNotFoundError,
)
from .manifest import Manifest
from .output import OutputFormatter
from .router import ContentRouter
from .storage import StorageClient
from .utils import format_size, remote_name_for

logger = logging.getLogger(__name__)


@dataclass
class CycleStats:
    """Counters for one sync cycle."""

    moves: int = 0
    move_errors: int = 0
    changed: int = 0
    uploaded: int = 0
    upload_errors: int = 0
    manifest_saved: bool = False

    def to_dict(self) -> dict:
        return asdict(self)


class SyncRunner:
    """Runs sync cycles for a validated :class:`SyncConfig`.

    A cycle first lets the router move documents, then updates the
    manifest for every configured directory, uploads the changed files
    (encrypted) and finally stores the manifest itself when anything
    changed.

    Examples:
        >>> runner = SyncRunner(cfg, storage, Encryption(cfg.aes_passphrase))
        >>> runner.restore_manifest()
        >>> stats = runner.run_once()
    """

    def __init__(
        self,
        config: SyncConfig,
        storage: StorageClient,
        encryption: Encryption,
        router: Optional[ContentRouter] = None,
        manifest: Optional[Manifest] = None,
        output: Optional[OutputFormatter] = None,
        dry_run: bool = True,
    ):
        """Initialize the runner.

        Args:
            config: Sync configuration
            storage: Object store client
            encryption: Encryption applied before every upload
            router: Optional content router run at the start of each cycle
            manifest: Manifest to use (defaults to one built from the config
                include/exclude patterns)
            output: Output formatter for user-facing messages
            dry_run: If True, nothing is written to the store or moved
        """
        self.config = config
        self.storage = storage
        self.encryption = encryption
        self.router = router
        if manifest is None:
            manifest = Manifest(
                include=config.include.patterns, exclude=config.exclude.patterns
            )
        self.manifest = manifest
        self.output = output or OutputFormatter(quiet=True)
        self.dry_run = dry_run

    # =========================
    # Manifest persistence
    # =========================

    def _fetch_manifest(self) -> Optional[bytes]:
        name = self.config.remote_manifest_file
        try:
            return self.encryption.decrypt(self.storage.download(name))
        except StorageNotFoundError:
            logger.info(f"No remote manifest at {name!r}")
        except StorageError as e:
            logger.warning(f"Could not restore manifest from remote file {name!r}: {e}")

        local = self.config.manifest_file
        if local is not None and local.is_file():
            logger.info(f"Restoring manifest from local copy {local}")
            return local.read_bytes()
        return None

    def restore_manifest(self) -> bool:
        """Restore the manifest from the store, or from the local copy.

        Returns:
            True if a manifest was restored, False if starting empty

        Raises:
            EncryptionError: If the remote manifest cannot be decrypted
        """
        data = self._fetch_manifest()
        if data is None:
            logger.info("Initializing empty manifest")
            return False
        try:
            self.manifest.loads(data)
        except ManifestLoadError as e:
            logger.warning(f"Could not load manifest: {e}")
            return False
        self.output.info(f"Restored manifest with {len(self.manifest)} entries")
        return True

    def save_manifest(self) -> bool:
        """Store the manifest locally and in the object store.

        Returns:
            True if the remote copy was stored, False on failure or in a dry run
        """
        data = self.manifest.dumps()
        local = self.config.manifest_file
        if local is not None and not self.dry_run:
            try:
                local.parent.mkdir(parents=True, exist_ok=True)
                local.write_bytes(data)
            except OSError as e:
                logger.warning(f"Could not write local manifest {local}: {e}")
        try:
            self.upload_content(self.config.remote_manifest_file, data)
        except StorageError as e:
            logger.error(
                f"Could not upload manifest to {self.config.remote_manifest_file!r}: {e}"
            )
            return False
        return not self.dry_run

    # =========================
    # Uploads
    # =========================

    def upload_content(self, name: str, data: bytes) -> None:
        """Encrypt ``data`` and store it under ``name``."""
        payload = self.encryption.encrypt(data)
        if self.dry_run:
            logger.info(f"dry run: uploading to {name} ({format_size(len(payload))})")
            return
        self.storage.upload(name, payload)

    def upload_file(self, source: str, name: str) -> None:
        """Read, encrypt and upload one local file.

        Raises:
            OSError: If the file cannot be read
            StorageError: If the upload fails
        """
        with open(source, "rb") as f:
            data = f.read()
        self.upload_content(name, data)

    # =========================
    # Cycles
    # =========================

    def _route(self, stats: CycleStats) -> None:
        if self.router is None:
            return
        result = self.router.scan(self.dry_run)
        stats.moves = result.total
        stats.move_errors = len(result.errors)
        for error in result.errors:
            logger.warning(f"Could not perform move: {error}")

    def run_once(self) -> CycleStats:
        """Run a single sync cycle.

        A manifest update failure stops the directory loop for this cycle;
        upload failures are logged and counted per file.

        Returns:
            CycleStats for the cycle
        """
        stats = CycleStats()
        self._route(stats)

        for local, remote in self.config.dirs.items():
            try:
                changed = self.manifest.update(local)
            except DocsyncError as e:
                logger.error(f"Breaking update loop due to error: {e}")
                break
            for file_path in changed:
                stats.changed += 1
                name = remote_name_for(file_path, str(local), remote)
                try:
                    self.upload_file(file_path, name)
                except (OSError, StorageError) as e:
                    logger.error(f"Could not upload {file_path!r} to {name!r}: {e}")
                    stats.upload_errors += 1
                    continue
                stats.uploaded += 1

        if stats.changed > 0:
            stats.manifest_saved = self.save_manifest()

        logger.info(f"Changed entries {stats.changed}")
        return stats

    def run_forever(
        self,
        interval: Optional[float] = None,
        max_cycles: Optional[int] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Run sync cycles until interrupted.

        Args:
            interval: Seconds between cycles (defaults to the config interval)
            max_cycles: Stop after this many cycles (None runs forever)
            sleep: Sleep function
        """
        interval = self.config.interval if interval is None else interval
        cycles = 0
        while True:
            stats = self.run_once()
            cycles += 1
            self.output.info(
                f"Changed entries {stats.changed}; sleeping {interval:g}s"
            )
            if max_cycles is not None and cycles >= max_cycles:
                return
            sleep(interval)
