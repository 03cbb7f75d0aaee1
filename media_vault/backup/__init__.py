"""Snapshot backup, restore and retention for an S3 media bucket."""

from .manager import BackupManager, invalidate_cloudfront_cache
from .models import BackupSnapshot, FileRecord, SnapshotListing, TransferError, TransferResult
from .retention import cleanup_old_backups

__all__ = [
    "BackupManager",
    "invalidate_cloudfront_cache",
    "BackupSnapshot",
    "FileRecord",
    "SnapshotListing",
    "TransferError",
    "TransferResult",
    "cleanup_old_backups",
]
