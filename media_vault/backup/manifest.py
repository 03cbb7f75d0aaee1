"""Bucket manifest construction and change detection."""

import posixpath
from datetime import datetime
from pathlib import Path
from typing import AbstractSet, Awaitable, Callable, Dict, List, Optional, Tuple, Union

from .._storage.base import ListPage
from .._utils import logger, to_iso8601
from ..sanitize import PathSanitizationError, sanitize
from .models import BackupSnapshot, FileRecord

PageFetcher = Callable[[Optional[str]], Awaitable[ListPage]]


def has_allowed_extension(key: str, allowed_extensions: AbstractSet[str]) -> bool:
    extension = posixpath.splitext(key)[1].lower()
    return bool(extension) and extension in allowed_extensions


def _format_last_modified(value: Union[datetime, str, None]) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        return to_iso8601(value)
    return str(value)


async def build_manifest(list_page: PageFetcher, allowed_extensions: AbstractSet[str]) -> List[FileRecord]:
    """Page through a bucket listing and collect eligible entries.

    Args:
        list_page: Awaitable fetcher called with the continuation token
            (None for the first page)
        allowed_extensions: Lower-case extensions with leading dot

    Returns:
        Manifest in listing order; nothing is downloaded
    """
    manifest: List[FileRecord] = []
    token: Optional[str] = None
    pages = 0

    while True:
        page = await list_page(token)
        pages += 1

        for entry in page.entries:
            if not entry.key:
                continue
            if not has_allowed_extension(entry.key, allowed_extensions):
                logger.debug(f"Skipping non-media object: {entry.key}")
                continue
            manifest.append(FileRecord(
                key=entry.key,
                size=entry.size or 0,
                last_modified=_format_last_modified(entry.last_modified),
            ))

        token = page.next_token
        if not token:
            break

    logger.debug(f"Listed {pages} page(s), {len(manifest)} eligible object(s)")
    if not manifest:
        logger.warning("No eligible media files found in bucket")
    return manifest


def has_changed(current: List[FileRecord], previous: BackupSnapshot) -> bool:
    """Whether ``current`` differs from ``previous`` by key, size or mtime.

    Provider-reported size and modification time stand in for content
    identity; an overwrite that keeps both is not detected.
    """
    if len(current) != len(previous.entries):
        return True

    previous_by_key: Dict[str, Tuple[int, str]] = {
        record.key: (record.size, record.last_modified) for record in previous.entries
    }
    for record in current:
        if previous_by_key.get(record.key) != (record.size, record.last_modified):
            return True
    return False


def drop_unsafe_keys(manifest: List[FileRecord], destination_dir: Union[str, Path]) -> List[FileRecord]:
    """Entries whose key sanitizes inside ``destination_dir``; the rest are logged and dropped."""
    safe: List[FileRecord] = []
    for record in manifest:
        try:
            sanitize(record.key, destination_dir)
        except PathSanitizationError as e:
            logger.warning(f"Skipping object with invalid key: {record.key} ({e})")
            continue
        safe.append(record)
    return safe
