"""Backup and restore orchestration between an S3 bucket and local snapshots."""

from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, List, Optional, Tuple, Union

from .._storage.base import BaseObjectStorage
from .._storage.cdn import CloudFrontInvalidator
from .._storage.s3 import S3ObjectStorage
from .._utils import (
    format_bytes,
    get_backup_root_dir,
    get_default_backup_path,
    logger,
    METADATA_FILENAME,
    to_iso8601,
)
from ..config import BackupConfig
from ..exceptions import StorageError
from .manifest import build_manifest, drop_unsafe_keys, has_changed
from .models import BackupSnapshot, SnapshotListing, TransferResult
from .retention import cleanup_old_backups
from .transfer import download_all, upload_all
from .utils import find_latest_snapshot, list_snapshot_dirs, load_snapshot, save_snapshot, walk_files

StorageFactory = Callable[[str, str], BaseObjectStorage]

PathLike = Union[str, Path]


async def invalidate_cloudfront_cache(
    distribution_id: Optional[str],
    region: str = "us-east-1",
    invalidator: Optional[Any] = None,
    caller_prefix: str = "s3-restore",
) -> Optional[str]:
    """Invalidate every path of a CloudFront distribution.

    Args:
        distribution_id: Distribution to invalidate; empty skips with a warning
        region: Region for the CloudFront client
        invalidator: Pre-built ``CloudFrontInvalidator`` (tests)
        caller_prefix: Prefix of the invalidation caller reference

    Returns:
        Invalidation id, or None when skipped or the response has no id

    Raises:
        StorageError: The CloudFront API call failed
    """
    if not distribution_id:
        logger.warning("CLOUDFRONT_DISTRIBUTION_ID not set, skipping cache invalidation")
        return None

    invalidator = invalidator or CloudFrontInvalidator(distribution_id, region, caller_prefix=caller_prefix)
    logger.info(f"Creating CloudFront invalidation for distribution {distribution_id}...")
    try:
        invalidation_id = await invalidator.invalidate_all()
    except StorageError as e:
        logger.error(f"Failed to create CloudFront invalidation: {e}")
        raise

    if invalidation_id:
        logger.info(f"CloudFront invalidation created: {invalidation_id}")
    else:
        logger.warning("CloudFront invalidation response did not include an ID")
    return invalidation_id


class BackupManager:
    """Orchestrate backup, restore, listing and retention of bucket snapshots."""

    def __init__(
        self,
        config: BackupConfig,
        storage_factory: Optional[StorageFactory] = None,
        invalidator: Optional[Any] = None,
    ):
        """Initialize backup manager.

        Args:
            config: Bucket, region, prefix and retention settings
            storage_factory: Builds the storage for ``(bucket, region)``;
                defaults to ``S3ObjectStorage``
            invalidator: CDN invalidator used after restores; built from
                ``config.distribution_id`` when omitted
        """
        self.config = config
        self.storage_factory = storage_factory or S3ObjectStorage
        self.invalidator = invalidator

    async def create_backup(self, local_dir: Optional[PathLike] = None) -> BackupSnapshot:
        """Download eligible bucket objects into a snapshot directory.

        The download is skipped when the bucket listing matches the newest
        previous snapshot; the returned snapshot is then empty and nothing is
        written.

        Args:
            local_dir: Snapshot directory; defaults to ``backups/s3-<timestamp>``

        Returns:
            Snapshot of the run
        """
        bucket = self.config.require_bucket()
        prefix = self.config.prefix
        destination = Path(local_dir or get_default_backup_path(self.config.backups_root))

        logger.info(f"Starting S3 backup from bucket: {bucket}")
        if prefix:
            logger.info(f"Filtering by prefix: {prefix}")

        snapshot = BackupSnapshot(
            timestamp=to_iso8601(datetime.now(timezone.utc)),
            source=bucket,
            key_prefix=prefix,
            region=self.config.region,
        )

        try:
            async with self.storage_factory(bucket, self.config.region) as storage:
                logger.info("Fetching list of objects from S3...")

                async def fetch_page(token: Optional[str]):
                    return await storage.list_page(prefix, token)

                listed = await build_manifest(fetch_page, self.config.allowed_extensions)
                manifest = drop_unsafe_keys(listed, destination)
                skipped = len(listed) - len(manifest)

                previous = await self._find_previous_snapshot(destination)
                if previous is None:
                    logger.info("No previous backup found, performing full backup")
                else:
                    previous_dir, previous_snapshot = previous
                    if not has_changed(manifest, previous_snapshot):
                        logger.info(f"No changes detected since last backup ({previous_dir.name}), skipping download")
                        return snapshot
                    logger.info(f"Changes detected since last backup ({previous_dir.name})")

                entries, total_size = await download_all(storage, manifest, destination)
        except Exception as e:
            logger.error(f"Backup failed: {e}")
            raise

        snapshot.entries = entries
        snapshot.total_files = len(entries)
        snapshot.total_size = total_size
        await save_snapshot(snapshot, destination)

        failed = len(manifest) - len(entries)
        if failed:
            logger.warning(f"Backup finished with errors: {failed} of {len(manifest)} object(s) not downloaded")
        else:
            logger.info("Backup complete!")
        logger.info(f"Summary: {len(entries)} downloaded, {failed} failed, {skipped} skipped")
        logger.info(f"Total files: {snapshot.total_files}")
        logger.info(f"Total size: {format_bytes(snapshot.total_size)}")
        logger.info(f"Backup saved to: {destination}")
        return snapshot

    async def restore_backup(self, local_dir: PathLike, overwrite: bool = False) -> TransferResult:
        """Upload a snapshot directory to the configured bucket.

        Args:
            local_dir: Snapshot directory
            overwrite: Replace objects that already exist in the bucket

        Returns:
            Tally of the restore
        """
        bucket = self.config.require_bucket()
        source = Path(local_dir)

        logger.info(f"Starting restore to S3 bucket: {bucket}")
        logger.info(f"Restore source: {source}")

        if not source.is_dir():
            raise FileNotFoundError(f"Backup directory not found: {source}")

        snapshot = await load_snapshot(source)
        if snapshot is not None:
            logger.info(f"Found backup metadata from {snapshot.timestamp}")
            logger.info(f"Original bucket: {snapshot.source}")
            logger.info(f"Files to restore: {snapshot.total_files}")

        if snapshot is not None and snapshot.entries:
            candidates = [(record.key, record.content_type) for record in snapshot.entries]
        else:
            logger.warning("No metadata found, scanning directory...")
            candidates = [(key, None) for key in walk_files(source)]

        try:
            async with self.storage_factory(bucket, self.config.region) as storage:
                result = await upload_all(storage, source, candidates, overwrite=overwrite)
        except Exception as e:
            logger.error(f"Restore failed: {e}")
            raise

        self._log_restore_summary(result)

        if result.successful and self.config.distribution_id:
            try:
                await invalidate_cloudfront_cache(self.config.distribution_id, invalidator=self.invalidator)
            except StorageError:
                logger.warning("Restore finished but the CDN cache was not invalidated")

        return result

    async def list_backups(self, backups_root: Optional[PathLike] = None) -> List[SnapshotListing]:
        """List snapshot directories, newest first.

        Returns:
            One listing per ``s3-*`` directory with its metadata when readable
        """
        root = Path(backups_root or self.config.backups_root)
        if not root.is_dir():
            logger.warning(f"No backups directory found: {root}")
            return []

        listings = []
        for snapshot_dir in list_snapshot_dirs(root):
            if not (snapshot_dir / METADATA_FILENAME).exists():
                listings.append(SnapshotListing(name=snapshot_dir.name, path=str(snapshot_dir), status="missing"))
                continue
            snapshot = await load_snapshot(snapshot_dir)
            listings.append(SnapshotListing(
                name=snapshot_dir.name,
                path=str(snapshot_dir),
                status="ok" if snapshot is not None else "unreadable",
                snapshot=snapshot,
            ))

        if not listings:
            logger.warning("No S3 backups found")
        return listings

    def cleanup(self, backups_root: Optional[PathLike] = None) -> int:
        """Apply the ``max_backups`` retention policy to ``backups_root``."""
        root = backups_root or self.config.backups_root
        return cleanup_old_backups(root, self.config.max_backups)

    # Private helper methods

    async def _find_previous_snapshot(self, destination: Path) -> Optional[Tuple[Path, BackupSnapshot]]:
        """Newest snapshot next to ``destination``, else one inside it."""
        latest = await find_latest_snapshot(get_backup_root_dir(str(destination)))
        if latest is not None:
            return latest
        own = await load_snapshot(destination)
        if own is not None:
            return destination, own
        return None

    @staticmethod
    def _log_restore_summary(result: TransferResult) -> None:
        logger.info("Restore complete!")
        logger.info(f"Successful: {result.successful}")
        if result.skipped:
            logger.warning(f"Skipped: {result.skipped}")
        if result.failed:
            logger.error(f"Failed: {result.failed}")
            for error in result.errors:
                logger.error(f"  {error.key}: {error.error}")
        logger.info(
            f"Summary: {result.successful} successful, {result.failed} failed, {result.skipped} skipped"
        )
