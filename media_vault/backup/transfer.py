"""Sequential object transfers between a bucket and a local directory.

Every entry ends in exactly one of skipped, succeeded or failed; a failing
entry is logged and the run moves on to the next one. There are no retries.
"""

import mimetypes
from pathlib import Path
from typing import Iterable, List, Optional, Tuple, Union

from .._storage.base import BaseObjectStorage, ObjectBody
from .._utils import format_bytes, logger
from ..sanitize import PathSanitizationError, sanitize
from .models import FileRecord, TransferResult, TransferTally

DEFAULT_CONTENT_TYPE = "application/octet-stream"

# Not registered by every platform's mime.types.
for _type, _extension in (("image/webp", ".webp"), ("image/avif", ".avif"), ("audio/mp4", ".m4a"), ("audio/opus", ".opus")):
    mimetypes.add_type(_type, _extension)

UploadCandidate = Tuple[str, Optional[str]]


def guess_content_type(path: Union[str, Path], stored: Optional[str] = None) -> str:
    """Stored metadata first, then the extension, then a generic fallback."""
    if stored:
        return stored
    guessed, _ = mimetypes.guess_type(str(path))
    return guessed or DEFAULT_CONTENT_TYPE


async def _stream_to_file(body: ObjectBody, local_path: Path) -> None:
    try:
        with open(local_path, "wb") as f:
            async for chunk in body.chunks:
                f.write(chunk)
    except BaseException:
        local_path.unlink(missing_ok=True)
        raise


async def download_all(
    storage: BaseObjectStorage,
    manifest: List[FileRecord],
    destination_dir: Union[str, Path],
) -> Tuple[List[FileRecord], int]:
    """Download every manifest entry into ``destination_dir``.

    Args:
        storage: Source bucket
        manifest: Entries to fetch, in order
        destination_dir: Created if missing

    Returns:
        Records of the entries that completed (with the content type seen on
        download) and their total size in bytes
    """
    destination = Path(destination_dir)
    destination.mkdir(parents=True, exist_ok=True)

    completed: List[FileRecord] = []
    total_size = 0

    for record in manifest:
        try:
            safe_path = sanitize(record.key, destination)
        except PathSanitizationError as e:
            logger.warning(f"Skipping object with invalid key: {record.key} ({e})")
            continue

        local_path = safe_path.join(destination)
        logger.info(f"Downloading: {record.key} ({format_bytes(record.size)})")

        try:
            body = await storage.get_object(record.key)
            if body is None:
                logger.warning(f"No body for {record.key}")
                continue
            local_path.parent.mkdir(parents=True, exist_ok=True)
            await _stream_to_file(body, local_path)
        except Exception as e:
            logger.error(f"Error downloading {record.key}: {e}")
            continue

        completed.append(record.model_copy(update={"content_type": body.content_type}))
        total_size += record.size
        logger.info(f"Downloaded: {record.key}")

    return completed, total_size


async def _upload_one(
    storage: BaseObjectStorage,
    local_dir: Path,
    key: str,
    stored_content_type: Optional[str],
    overwrite: bool,
    tally: TransferTally,
) -> None:
    try:
        safe_path = sanitize(key, local_dir)
    except PathSanitizationError as e:
        logger.warning(f"Skipping file with invalid key: {key} ({e})")
        tally.skip()
        return

    local_path = safe_path.join(local_dir)
    if not local_path.is_file():
        logger.warning(f"File not found locally: {key}")
        tally.skip()
        return

    try:
        if not overwrite and await storage.object_exists(key):
            logger.warning(f"Skipping (already exists): {key}")
            tally.skip()
            return

        logger.info(f"Uploading: {key}")
        size = local_path.stat().st_size
        content_type = guess_content_type(local_path, stored_content_type)
        await storage.put_file(key, local_path, content_type)
    except Exception as e:
        logger.error(f"Error uploading {key}: {e}")
        tally.fail(key, str(e))
        return

    logger.info(f"Uploaded: {key} ({format_bytes(size)})")
    tally.succeed(key)


async def upload_all(
    storage: BaseObjectStorage,
    local_dir: Union[str, Path],
    candidates: Iterable[UploadCandidate],
    overwrite: bool = False,
) -> TransferResult:
    """Upload ``(key, content_type)`` candidates from ``local_dir``.

    Args:
        storage: Destination bucket
        local_dir: Directory the keys are relative to
        candidates: Keys with their stored content type, if any
        overwrite: When False, objects already in the bucket are skipped

    Returns:
        Immutable tally of the run
    """
    base = Path(local_dir)
    tally = TransferTally()
    for key, content_type in candidates:
        await _upload_one(storage, base, key, content_type, overwrite, tally)
    return tally.freeze()
