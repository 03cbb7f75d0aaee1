"""Ad-hoc image uploads to the media bucket."""

import logging
import os
import posixpath
import re
from pathlib import Path
from typing import Any, Iterator, List, Optional, Sequence, Union

from ._storage.base import BaseObjectStorage
from ._storage.cdn import MAX_PATHS_PER_INVALIDATION
from ._utils import format_bytes
from .backup.models import TransferResult, TransferTally
from .backup.transfer import guess_content_type
from .config import IMAGE_EXTENSIONS
from .exceptions import StorageError
from .sanitize import PathSanitizationError, sanitize

logger = logging.getLogger("media-vault.uploads")

DEFAULT_KEY_PREFIX = "media"

_SEPARATORS = re.compile(r"[\\/]+")


def is_image_file(path: Union[str, Path]) -> bool:
    return os.path.splitext(str(path))[1].lower() in IMAGE_EXTENSIONS


def generate_s3_key(file_path: Union[str, Path], prefix: Optional[str] = None) -> str:
    """Derive an object key from a local file path.

    Everything up to a ``public/`` directory is dropped, then the key is put
    under ``prefix`` (``media`` when None, nothing when empty) unless it
    already starts with it.

    Args:
        file_path: Local path, absolute or relative, either separator style
        prefix: Key prefix; surrounding slashes are ignored

    Returns:
        Forward-slash object key
    """
    normalized = posixpath.normpath(str(file_path).replace("\\", "/"))
    key = normalized

    public_index = normalized.find("/public/")
    if public_index != -1:
        key = normalized[public_index + len("/public/"):]
    elif normalized.startswith("public/"):
        key = normalized[len("public/"):]
    elif normalized.startswith("./"):
        key = normalized[2:]

    key = key.lstrip("/")

    effective_prefix = DEFAULT_KEY_PREFIX if prefix is None else prefix
    clean_prefix = effective_prefix.strip("/")
    if clean_prefix and not key.startswith(f"{clean_prefix}/"):
        key = f"{clean_prefix}/{key}"

    return key


def _sorted_entries(directory: Union[str, Path]) -> Iterator[os.DirEntry]:
    with os.scandir(directory) as it:
        return iter(sorted(it, key=lambda entry: entry.name))


def collect_images_from_directory(directory: Union[str, Path]) -> List[str]:
    """Image files below ``directory`` in depth-first, name-sorted order.

    Symlinked directories are not descended into.

    Raises:
        FileNotFoundError: ``directory`` does not exist
        NotADirectoryError: ``directory`` is not a directory
    """
    if not os.path.exists(directory):
        raise FileNotFoundError(f"Directory not found: {directory}")
    if not os.path.isdir(directory):
        raise NotADirectoryError(f"Not a directory: {directory}")

    images: List[str] = []
    stack = [_sorted_entries(directory)]
    while stack:
        entry = next(stack[-1], None)
        if entry is None:
            stack.pop()
            continue
        if entry.is_dir(follow_symlinks=False):
            stack.append(_sorted_entries(entry.path))
        elif entry.is_file() and is_image_file(entry.name):
            images.append(entry.path)

    return images


def _relative_to_base(resolved_path: str, resolved_base: str) -> Optional[str]:
    """Relative forward-slash path of ``resolved_path``, None when outside the base."""
    try:
        relative = os.path.relpath(resolved_path, resolved_base)
    except ValueError:
        return None
    if ".." in _SEPARATORS.split(relative) or os.path.isabs(relative):
        return None
    return relative.replace("\\", "/")


async def _upload_image(storage: BaseObjectStorage, local_path: str, key: str, tally: TransferTally) -> None:
    path = Path(local_path)
    try:
        if not path.exists():
            logger.error(f"File not found: {local_path}")
            tally.fail(local_path, "File not found")
            return
        if not path.is_file():
            logger.warning(f"Not a file: {local_path}")
            tally.skip()
            return
        if not is_image_file(path):
            logger.warning(f"Skipping non-image file: {local_path}")
            tally.skip()
            return

        logger.info(f"Uploading: {local_path} -> s3://{storage.bucket}/{key}")
        size = path.stat().st_size
        await storage.put_file(key, path, guess_content_type(path))
    except Exception as e:
        logger.error(f"Error uploading {local_path}: {e}")
        tally.fail(local_path, str(e))
        return

    logger.info(f"Uploaded: {key} ({format_bytes(size)})")
    tally.succeed(key)


async def invalidate_uploaded_keys(invalidator: Any, keys: Sequence[str]) -> Optional[str]:
    """Invalidate the CDN paths of uploaded keys.

    Failures are logged as warnings; the upload itself already succeeded.
    """
    if not keys:
        return None

    if len(keys) > MAX_PATHS_PER_INVALIDATION:
        logger.info(f"Invalidating CloudFront cache using wildcard for {len(keys)} file(s)...")
    else:
        logger.info(f"Invalidating CloudFront cache for {len(keys)} file(s)...")

    try:
        invalidation_id = await invalidator.invalidate(list(keys))
    except StorageError as e:
        logger.warning(f"Failed to invalidate CloudFront cache: {e}")
        return None

    logger.info(f"CloudFront cache invalidation initiated: {invalidation_id}")
    return invalidation_id


async def upload_images(
    storage: BaseObjectStorage,
    file_paths: Sequence[Union[str, Path]],
    prefix: Optional[str] = None,
    base_dir: Optional[Union[str, Path]] = None,
    invalidator: Optional[Any] = None,
) -> TransferResult:
    """Upload image files to the bucket, one at a time.

    With ``base_dir`` the keys keep the layout relative to it (and no default
    prefix is applied); files outside ``base_dir`` are skipped.

    Args:
        storage: Destination bucket
        file_paths: Local image paths
        prefix: Key prefix, see :func:`generate_s3_key`
        base_dir: Directory the files were collected from
        invalidator: CDN invalidator for the uploaded keys, if any

    Returns:
        Tally of the run
    """
    tally = TransferTally()
    logger.info(f"Starting upload to S3 bucket: {storage.bucket}")
    logger.info(f"Using S3 prefix: {prefix if prefix is not None else 'media (default)'}")

    resolved_base = os.path.abspath(base_dir) if base_dir else None
    effective_prefix = "" if resolved_base and prefix is None else prefix

    for file_path in file_paths:
        file_path = str(file_path)
        resolved_path = os.path.abspath(file_path)

        path_for_key = file_path
        if resolved_base is not None:
            relative = _relative_to_base(resolved_path, resolved_base)
            if relative is None:
                message = f'Skipping file outside base directory: file_path="{file_path}", base_dir="{base_dir}"'
                logger.error(message)
                tally.skip(file_path, message)
                continue
            path_for_key = relative

        key = generate_s3_key(path_for_key, effective_prefix)
        try:
            key = sanitize(key, ".").key
        except PathSanitizationError as e:
            logger.warning(f"Skipping file with invalid key: {key} ({e})")
            tally.skip(file_path, f"Invalid key {key}: {e}")
            continue

        await _upload_image(storage, resolved_path, key, tally)

    if invalidator is not None and tally.uploaded_keys:
        await invalidate_uploaded_keys(invalidator, tally.uploaded_keys)

    result = tally.freeze()
    logger.info(
        f"Upload Summary: {result.successful} successful, {result.failed} failed, {result.skipped} skipped"
    )
    return result
