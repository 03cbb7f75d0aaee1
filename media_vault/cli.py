"""Command line interface for media-vault."""

import asyncio
import dataclasses
import logging
import os
import sys
from typing import List, Optional

import click

from . import __version__
from ._storage import CloudFrontInvalidator, S3ObjectStorage
from ._utils import format_bytes, get_backup_root_dir, get_default_backup_path
from .backup import BackupManager, cleanup_old_backups
from .cdn_sync import CDNSync
from .config import BackupConfig, CDNSyncConfig, load_env_files
from .exceptions import MediaVaultError
from .uploads import collect_images_from_directory, upload_images

LOG_FORMAT = '%(asctime)s - [%(name)s] - %(levelname)s - %(message)s'
LOG_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def configure_logging(verbose: bool = False) -> logging.Logger:
    """Attach the app-managed stdout handler to the package logger."""
    package_logger = logging.getLogger("media-vault")
    package_logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    package_logger.propagate = False
    package_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
    package_logger.addHandler(console_handler)

    # Hand logging back to the host process when embedded
    if os.getenv("DISABLE_APP_LOGGING", "false").lower() == "true":
        package_logger.handlers.clear()
        package_logger.propagate = True

    return package_logger


def _usage_exit(ctx: click.Context, error: click.UsageError) -> None:
    click.echo(f"Error: {error.format_message()}", err=True)
    click.echo(ctx.get_usage(), err=True)
    ctx.exit(1)


class MediaVaultCommand(click.Command):
    """Command that exits with status 1 and usage on stderr for bad arguments."""

    def parse_args(self, ctx: click.Context, args: List[str]) -> List[str]:
        try:
            return super().parse_args(ctx, args)
        except click.UsageError as e:
            _usage_exit(ctx, e)


class MediaVaultGroup(click.Group):
    """Group that exits with status 1 and usage on stderr for unknown commands or bad arguments."""

    command_class = MediaVaultCommand

    def parse_args(self, ctx: click.Context, args: List[str]) -> List[str]:
        try:
            return super().parse_args(ctx, args)
        except click.UsageError as e:
            _usage_exit(ctx, e)

    def resolve_command(self, ctx: click.Context, args: List[str]):
        try:
            return super().resolve_command(ctx, args)
        except click.UsageError as e:
            _usage_exit(ctx, e)


def _fail(message: str) -> None:
    click.secho(f"Error: {message}", fg="red", err=True)
    sys.exit(1)


def _run(coro):
    """Run a coroutine; expected failures become exit status 1."""
    try:
        return asyncio.run(coro)
    except (MediaVaultError, OSError) as e:
        _fail(str(e))


def _backup_config(require_bucket: bool = True) -> BackupConfig:
    try:
        config = BackupConfig.from_env()
        if require_bucket:
            config.require_bucket()
    except (MediaVaultError, ValueError) as e:
        _fail(str(e))
    return config


@click.group(cls=MediaVaultGroup, invoke_without_command=True)
@click.version_option(version=__version__, prog_name="media-vault")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """media-vault: back up, restore and publish S3 media."""
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_usage(), err=True)
        ctx.exit(1)

    configure_logging(verbose)
    load_env_files()


@cli.command()
@click.argument("local_dir", required=False)
def backup(local_dir: Optional[str]) -> None:
    """Back up the bucket into LOCAL_DIR (default: backups/s3-<timestamp>).

    Old snapshots beyond S3_MAX_BACKUPS are deleted afterwards.
    """
    config = _backup_config()
    manager = BackupManager(config, storage_factory=S3ObjectStorage)
    target = local_dir or get_default_backup_path(config.backups_root)

    snapshot = _run(manager.create_backup(target))

    try:
        deleted = manager.cleanup(get_backup_root_dir(target))
    except OSError as e:
        _fail(f"Retention cleanup failed: {e}")

    if snapshot.total_files:
        click.secho(
            f"Backed up {snapshot.total_files} file(s), {format_bytes(snapshot.total_size)}, to {target}",
            fg="green",
        )
    else:
        click.secho("Nothing downloaded", fg="yellow")
    if deleted:
        click.echo(f"Removed {deleted} old backup(s)")


@cli.command()
@click.argument("local_dir")
@click.option("--overwrite", "-f", is_flag=True, help="Replace objects that already exist in the bucket.")
def restore(local_dir: str, overwrite: bool) -> None:
    """Restore the snapshot in LOCAL_DIR to the bucket."""
    config = _backup_config()
    manager = BackupManager(config, storage_factory=S3ObjectStorage)

    result = _run(manager.restore_backup(local_dir, overwrite=overwrite))

    color = "red" if result.failed else "green"
    click.secho(
        f"Restore: {result.successful} successful, {result.failed} failed, {result.skipped} skipped",
        fg=color,
    )
    for error in result.errors:
        click.echo(f"  {error.key}: {error.error}", err=True)
    if result.failed:
        sys.exit(1)


cli.add_command(restore, name="upload")


@cli.command("list")
@click.argument("backups_root", required=False)
def list_backups_cmd(backups_root: Optional[str]) -> None:
    """List local snapshots in BACKUPS_ROOT (default: backups), newest first."""
    config = _backup_config(require_bucket=False)
    root = backups_root or config.backups_root
    listings = _run(BackupManager(config).list_backups(root))

    if not listings:
        click.secho(f"No S3 backups found in {root}/", fg="yellow")
        return

    click.secho(f"S3 backups in {root} ({len(listings)}):", bold=True)
    for listing in listings:
        click.secho(f"  {listing.name}", fg="cyan")
        if listing.status == "missing":
            click.echo("    (no metadata)")
            continue
        if listing.status == "unreadable":
            click.echo("    (metadata read error)")
            continue

        snapshot = listing.snapshot
        click.echo(f"    Date: {snapshot.timestamp}")
        click.echo(f"    Bucket: {snapshot.source}")
        if snapshot.key_prefix:
            click.echo(f"    Prefix: {snapshot.key_prefix}")
        click.echo(f"    Files: {snapshot.total_files}")
        click.echo(f"    Size: {format_bytes(snapshot.total_size)}")


@cli.command()
@click.argument("backups_root", required=False)
@click.option("--keep", "-k", type=click.IntRange(min=1), default=None,
              help="Snapshots to keep (default: S3_MAX_BACKUPS or 5).")
def cleanup(backups_root: Optional[str], keep: Optional[int]) -> None:
    """Delete all but the newest snapshots in BACKUPS_ROOT."""
    config = _backup_config(require_bucket=False)
    root = backups_root or config.backups_root
    keep = keep or config.max_backups

    try:
        deleted = cleanup_old_backups(root, keep)
    except OSError as e:
        _fail(str(e))

    click.secho(f"Deleted {deleted} old backup(s), keeping {keep}", fg="green")


@cli.command()
@click.argument("paths", nargs=-1)
@click.option("--dir", "-d", "directory", type=click.Path(), default=None,
              help="Upload every image below this directory.")
@click.option("--prefix", "-p", default=None, help="Key prefix (default: media).")
@click.option("--invalidate/--no-invalidate", default=True,
              help="Invalidate uploaded paths on CloudFront.")
def images(paths, directory: Optional[str], prefix: Optional[str], invalidate: bool) -> None:
    """Upload image files to the bucket.

    PATHS may be given as separate arguments or comma-separated.
    """
    config = _backup_config()

    base_dir = None
    if directory:
        try:
            file_paths = collect_images_from_directory(directory)
        except OSError as e:
            _fail(str(e))
        base_dir = directory
        click.echo(f"Found {len(file_paths)} image(s) in {directory}")
    else:
        file_paths = [item.strip() for path in paths for item in path.split(",") if item.strip()]
        if not file_paths:
            _fail("No file paths specified")

    if not file_paths:
        click.secho("No images to upload", fg="yellow")
        return

    invalidator = None
    if invalidate and config.distribution_id:
        invalidator = CloudFrontInvalidator(config.distribution_id, caller_prefix="upload-images")

    async def run_uploads():
        async with S3ObjectStorage(config.bucket, config.region) as storage:
            return await upload_images(storage, file_paths, prefix=prefix, base_dir=base_dir, invalidator=invalidator)

    result = _run(run_uploads())

    click.secho(
        f"Upload: {result.successful} successful, {result.failed} failed, {result.skipped} skipped",
        fg="red" if result.failed else "green",
    )
    for error in result.errors:
        click.echo(f"  {error.key}: {error.error}", err=True)
    if result.failed:
        sys.exit(1)


@cli.command("cdn-sync")
@click.option("--skip-build", is_flag=True, help="Do not run the build command.")
@click.option("--skip-invalidation", is_flag=True, help="Do not invalidate the CloudFront cache.")
def cdn_sync(skip_build: bool, skip_invalidation: bool) -> None:
    """Sync the site build, public files and media folders to the CDN bucket."""
    try:
        config = CDNSyncConfig.from_env()
    except ValueError as e:
        _fail(str(e))

    config = dataclasses.replace(
        config,
        skip_build=config.skip_build or skip_build,
        skip_invalidation=config.skip_invalidation or skip_invalidation,
    )
    uploaded = _run(CDNSync(config, storage_factory=S3ObjectStorage).run())
    click.secho(f"Synced {uploaded} file(s) to {config.cdn_domain}", fg="green")


def main() -> None:
    cli(prog_name="media-vault")


if __name__ == "__main__":
    main()
