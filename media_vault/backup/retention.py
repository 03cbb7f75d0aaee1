"""Retention policy for local snapshot directories."""

from pathlib import Path
from typing import Union

from .._utils import logger
from .utils import list_snapshot_dirs, remove_tree


def cleanup_old_backups(backups_root: Union[str, Path], max_to_keep: int) -> int:
    """Keep the ``max_to_keep`` newest snapshots and delete the rest.

    A directory that cannot be deleted is logged and skipped; it is not
    counted and does not stop the remaining deletions.

    Args:
        backups_root: Directory holding ``s3-*`` snapshot directories
        max_to_keep: Number of snapshots to keep, at least 1

    Returns:
        Number of snapshot directories actually deleted
    """
    if max_to_keep < 1:
        raise ValueError(f"max_to_keep must be positive, got {max_to_keep}")

    root = Path(backups_root)
    if not root.exists():
        return 0

    snapshot_dirs = list_snapshot_dirs(root)
    expired = snapshot_dirs[max_to_keep:]
    if not expired:
        logger.debug(f"{len(snapshot_dirs)} snapshot(s) found, nothing to clean up (max {max_to_keep})")
        return 0

    logger.info(f"Cleaning up {len(expired)} old backup(s), keeping {max_to_keep}")
    deleted = 0
    for snapshot_dir in expired:
        try:
            remove_tree(snapshot_dir)
        except OSError as e:
            logger.error(f"Failed to delete old backup {snapshot_dir.name}: {e}")
            continue
        deleted += 1
        logger.info(f"Deleted old backup: {snapshot_dir.name}")

    return deleted
