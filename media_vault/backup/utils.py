"""Utility functions for backup/restore operations."""

import os
import tempfile
from pathlib import Path, PurePosixPath
from typing import FrozenSet, List, Optional, Tuple, Union

from pydantic import ValidationError

from .._utils import logger, METADATA_FILENAME, SNAPSHOT_DIR_PATTERN
from .models import BackupSnapshot

PathLike = Union[str, Path]


async def save_snapshot(snapshot: BackupSnapshot, destination_dir: PathLike) -> Path:
    """Write snapshot metadata JSON into ``destination_dir``.

    The document is written to a temporary file and renamed into place, so a
    reader never sees a half-written snapshot.

    Args:
        snapshot: Snapshot to persist
        destination_dir: Snapshot directory

    Returns:
        Path of the metadata file
    """
    destination = Path(destination_dir)
    destination.mkdir(parents=True, exist_ok=True)
    metadata_path = destination / METADATA_FILENAME

    payload = snapshot.model_dump_json(by_alias=True, exclude_none=True, indent=2)
    fd, tmp_name = tempfile.mkstemp(prefix=".backup-metadata-", suffix=".tmp", dir=destination)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(payload)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, metadata_path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise

    logger.debug(f"Snapshot metadata saved: {metadata_path}")
    return metadata_path


async def load_snapshot(snapshot_dir: PathLike) -> Optional[BackupSnapshot]:
    """Load snapshot metadata from ``snapshot_dir``.

    Returns:
        The snapshot, or None when the file is absent or cannot be parsed
    """
    metadata_path = Path(snapshot_dir) / METADATA_FILENAME
    if not metadata_path.is_file():
        return None

    try:
        snapshot = BackupSnapshot.model_validate_json(metadata_path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, ValidationError) as e:
        logger.warning(f"Could not read backup metadata {metadata_path}: {e}")
        return None

    logger.debug(f"Snapshot metadata loaded: {metadata_path}")
    return snapshot


def list_snapshot_dirs(backups_root: PathLike) -> List[Path]:
    """Snapshot directories under ``backups_root``, newest first.

    Only names of the form ``s3-YYYY-MM-DDTHH-MM-SS`` count. They embed a
    sortable timestamp, so descending name order is
    newest-first order.
    """
    root = Path(backups_root)
    if not root.is_dir():
        return []
    snapshot_dirs = [
        path for path in root.iterdir()
        if SNAPSHOT_DIR_PATTERN.match(path.name) and path.is_dir()
    ]
    return sorted(snapshot_dirs, key=lambda path: path.name, reverse=True)


async def find_latest_snapshot(backups_root: PathLike) -> Optional[Tuple[Path, BackupSnapshot]]:
    """Newest snapshot under ``backups_root`` whose metadata loads."""
    for snapshot_dir in list_snapshot_dirs(backups_root):
        snapshot = await load_snapshot(snapshot_dir)
        if snapshot is not None:
            return snapshot_dir, snapshot
    return None


def walk_files(root: PathLike, skip_root_names: FrozenSet[str] = frozenset({METADATA_FILENAME})) -> List[str]:
    """Relative forward-slash paths of all files below ``root``.

    Walks with an explicit stack. Symlinked directories are not descended
    into, and names in ``skip_root_names`` are ignored at the top level only.
    Errors reading a directory propagate.
    """
    files: List[str] = []
    stack: List[Tuple[Path, PurePosixPath]] = [(Path(root), PurePosixPath())]

    while stack:
        directory, relative = stack.pop()
        with os.scandir(directory) as it:
            entries = sorted(it, key=lambda entry: entry.name)

        subdirs = []
        for entry in entries:
            if not relative.parts and entry.name in skip_root_names:
                continue
            if entry.is_dir(follow_symlinks=False):
                subdirs.append((Path(entry.path), relative / entry.name))
            elif entry.is_file():
                files.append(str(relative / entry.name))

        stack.extend(reversed(subdirs))

    return files


def remove_tree(path: PathLike) -> None:
    """Delete ``path`` depth-first: files, then subdirectories, then itself."""
    directories: List[Path] = []
    stack = [Path(path)]

    while stack:
        directory = stack.pop()
        directories.append(directory)
        with os.scandir(directory) as it:
            for entry in it:
                if entry.is_dir(follow_symlinks=False):
                    stack.append(Path(entry.path))
                else:
                    os.unlink(entry.path)

    for directory in reversed(directories):
        os.rmdir(directory)
