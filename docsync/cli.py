"""CLI interface for docsync."""

import logging
import os
import time
from pathlib import Path
from typing import Any, Optional

import click

from .config import (
    expand_path,
    load_mover_config,
    load_sync_config,
    load_upload_config,
    read_config_file,
)
from .crypt import Encryption
from .exceptions import DocsyncConfigError, DocsyncError, StorageError
from .net import wait_for_connectivity
from .output import OutputFormatter
from .router import ContentRouter
from .runner import SyncRunner
from .storage import StorageClient
from .utils import (
    DEFAULT_CONFIG_FILE,
    DEFAULT_MOVE_INTERVAL,
    format_size,
    parse_duration,
)

logger = logging.getLogger(__name__)


def _duration(ctx: Any, param: Any, value: Optional[str]) -> Optional[float]:
    """Click callback turning a duration string into seconds."""
    if value is None:
        return None
    try:
        return parse_duration(value)
    except ValueError as e:
        raise click.BadParameter(str(e)) from e


config_option = click.option(
    "--config",
    "-c",
    "config_file",
    envvar="DOCSYNC_CONFIG",
    default=DEFAULT_CONFIG_FILE,
    show_default=True,
    help="The configuration file to read",
)


def _storage_client(cfg: Any) -> StorageClient:
    return StorageClient(
        cfg.storage.url, cfg.storage.bucket_name, api_key=cfg.storage.api_key
    )


def _enable_progress_logging(ctx: Any) -> None:
    """Show INFO records of docsync in the long-running commands."""
    if not ctx.obj["verbose"] and not ctx.obj["out"].quiet:
        logging.getLogger("docsync").setLevel(logging.INFO)


@click.group()
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output")
@click.option("--json", is_flag=True, help="Output in JSON format")
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose/debug logging output",
)
@click.version_option(package_name="docsync")
@click.pass_context
def main(ctx: Any, quiet: bool, json: bool, verbose: bool) -> None:
    """docsync - Back up document folders and file documents by content."""
    ctx.ensure_object(dict)
    ctx.obj["out"] = OutputFormatter(json_output=json, quiet=quiet)
    ctx.obj["verbose"] = verbose

    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%H:%M:%S",
        )
        logging.getLogger("docsync").setLevel(logging.DEBUG)
    else:
        logging.basicConfig(level=logging.WARNING)


@main.command()
@config_option
@click.option(
    "--dry-run/--no-dry-run",
    default=True,
    show_default=True,
    help="Simulate running but don't write anything to storage or move files",
)
@click.option("--once", is_flag=True, help="Run a single cycle and exit")
@click.option(
    "--network-timeout",
    callback=_duration,
    default="10m",
    show_default=True,
    help="How long to wait for internet access before giving up (0 to skip)",
)
@click.pass_context
def sync(
    ctx: Any,
    config_file: str,
    dry_run: bool,
    once: bool,
    network_timeout: float,
) -> None:
    """Upload changed files of the configured directories.

    Every cycle first files documents according to the mover rules (when
    the configuration has a mover section), then uploads every file that
    changed since the last cycle, encrypted, and stores the manifest.

    Examples:
        docsync sync --once                     # Preview one cycle
        docsync sync --no-dry-run               # Run forever
        docsync -v sync -c ./config.json --once
    """
    out: OutputFormatter = ctx.obj["out"]
    _enable_progress_logging(ctx)

    config_path = expand_path(config_file)
    out.info(f"Started with config: {config_path}")

    try:
        cfg = load_sync_config(config_path)
        router = None
        if read_config_file(config_path).get("mover") is not None:
            mover_cfg = load_mover_config(config_path)
            router = ContentRouter(mover_cfg.from_dirs, mover_cfg.to_rules())
    except DocsyncConfigError as e:
        out.error(f"Could not load config from {config_path}: {e}")
        ctx.exit(1)
        return

    if dry_run:
        out.info("Dry run: No changes will be made")

    try:
        if network_timeout > 0:
            wait_for_connectivity(timeout=network_timeout)

        with _storage_client(cfg) as storage:
            runner = SyncRunner(
                cfg,
                storage,
                Encryption(cfg.aes_passphrase),
                router=router,
                output=out,
                dry_run=dry_run,
            )
            runner.restore_manifest()
            if once:
                stats = runner.run_once()
                if out.json_output:
                    out.output_json(stats.to_dict())
                else:
                    out.print_summary(
                        "Sync cycle",
                        [
                            ("Moves", stats.moves),
                            ("Move errors", stats.move_errors),
                            ("Changed", stats.changed),
                            ("Uploaded", stats.uploaded),
                            ("Upload errors", stats.upload_errors),
                        ],
                    )
            else:
                runner.run_forever()
    except KeyboardInterrupt:
        out.warning("\nSync cancelled by user")
        ctx.exit(130)
    except DocsyncError as e:
        out.error(f"Error: {e}")
        ctx.exit(1)


@main.command()
@config_option
@click.option(
    "--dry-run/--no-dry-run",
    default=True,
    show_default=True,
    help="If set, just print the moves, don't carry them out",
)
@click.option(
    "--interval",
    callback=_duration,
    default=f"{DEFAULT_MOVE_INTERVAL:g}s",
    show_default=True,
    help="How long to sleep between scans (e.g. 30s, 5m)",
)
@click.option("--once", is_flag=True, help="Scan once and exit")
@click.pass_context
def move(
    ctx: Any, config_file: str, dry_run: bool, interval: float, once: bool
) -> None:
    """File documents into directories based on their content.

    Scans the mover "from" directories and moves every document whose
    text matches all patterns of a rule into that rule's "to" directory.
    The first matching rule wins.
    """
    out: OutputFormatter = ctx.obj["out"]
    _enable_progress_logging(ctx)

    config_path = expand_path(config_file)
    out.info(f"Started with config: {config_path}")
    try:
        cfg = load_mover_config(config_path)
    except DocsyncConfigError as e:
        out.error(f"Could not load config from {config_path}: {e}")
        ctx.exit(1)
        return

    router = ContentRouter(cfg.from_dirs, cfg.to_rules())
    try:
        while True:
            result = router.scan(dry_run=dry_run)
            if out.json_output:
                out.output_json(
                    {"moves": result.moves, "errors": [str(e) for e in result.errors]}
                )
            else:
                for dst, files in sorted(result.moves.items()):
                    for file_path in files:
                        out.info(f"{file_path} -> {dst}")
            if not result.ok:
                for error in result.errors:
                    out.error(str(error))
                ctx.exit(1)
            if once:
                return
            out.info(f"Sleeping {interval:g}s")
            time.sleep(interval)
    except KeyboardInterrupt:
        out.warning("\nMove cancelled by user")
        ctx.exit(130)


@main.command()
@click.argument("filename", type=click.Path(exists=True, dir_okay=False))
@config_option
@click.option(
    "--name", "-n", help="Object name in the store (defaults to FILENAME)"
)
@click.pass_context
def upload(ctx: Any, filename: str, config_file: str, name: Optional[str]) -> None:
    """Encrypt and upload a single file."""
    out: OutputFormatter = ctx.obj["out"]
    try:
        cfg = load_upload_config(config_file)
    except DocsyncConfigError as e:
        out.error(f"Could not parse config from {config_file}: {e}")
        ctx.exit(1)
        return

    name = name or filename
    try:
        data = Path(filename).read_bytes()
        payload = Encryption(cfg.aes_passphrase).encrypt(data)
        out.info(f"Uploading {filename!r} ({format_size(len(payload))})")
        with _storage_client(cfg) as storage:
            storage.upload(name, payload)
    except (OSError, DocsyncError) as e:
        out.error(f"Could not upload {filename!r}: {e}")
        ctx.exit(1)
        return
    out.success(f"Uploaded {filename} as {name}")


@main.command()
@click.argument("name")
@click.argument("destination", type=click.Path(dir_okay=False))
@config_option
@click.pass_context
def download(ctx: Any, name: str, destination: str, config_file: str) -> None:
    """Download and decrypt the object NAME into DESTINATION."""
    out: OutputFormatter = ctx.obj["out"]
    try:
        cfg = load_upload_config(config_file)
    except DocsyncConfigError as e:
        out.error(f"Could not parse config from {config_file}: {e}")
        ctx.exit(1)
        return

    out.info(f"Downloading {name!r} to {destination!r}")
    try:
        with _storage_client(cfg) as storage:
            payload = storage.download(name)
        data = Encryption(cfg.aes_passphrase).decrypt(payload)
    except StorageError as e:
        out.error(f"Could not download {name!r}: {e}")
        ctx.exit(1)
        return
    except DocsyncError as e:
        out.error(f"Decryption failed: {e}")
        ctx.exit(1)
        return

    try:
        fd = os.open(destination, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "wb") as f:
            f.write(data)
    except OSError as e:
        out.error(f"Could not write bytes to {destination!r}: {e}")
        ctx.exit(1)
        return
    out.success(f"Downloaded {name} to {destination}")


if __name__ == "__main__":
    main()
