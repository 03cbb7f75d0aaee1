"""Sync a static site build and media folders to the CDN bucket."""

import asyncio
import fnmatch
import logging
import os
import re
import shlex
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, List, Optional, Sequence, Union

from ._storage.base import BaseObjectStorage
from ._storage.s3 import S3ObjectStorage
from .backup.manager import invalidate_cloudfront_cache
from .backup.transfer import guess_content_type
from .config import CDNSyncConfig
from .exceptions import BuildError, ErrorKind, StorageError

logger = logging.getLogger("media-vault.cdn-sync")

STATIC_CACHE_CONTROL = "public, max-age=31536000, immutable"
ASSET_CACHE_CONTROL = "public, max-age=86400"
HTML_CACHE_CONTROL = "public, max-age=300"

STATIC_EXCLUDES = ("*.map", "*.DS_Store")
PUBLIC_EXCLUDES = ("*.DS_Store",)
MEDIA_EXCLUDES = ("*.DS_Store", "*.tmp")

# Keys probed after a sync, relative to the key prefix.
SAMPLE_KEYS = ("_next/static/chunks/webpack.js", "next.svg", "index.html")

_ACCESS_HINTS = {
    ErrorKind.NOT_FOUND: "S3 bucket '{bucket}' does not exist or is not accessible",
    ErrorKind.FORBIDDEN: (
        "AWS credentials are missing, invalid or lack permission for this bucket "
        "(required: s3:ListBucket, s3:PutObject, s3:GetObject)"
    ),
    ErrorKind.TRANSIENT: "Network error connecting to AWS. Check your internet connection",
    ErrorKind.UNKNOWN: "Please check your AWS configuration and try again",
}


@dataclass
class SyncFile:
    """A local file and the object it is uploaded to."""
    local_path: Path
    key: str
    content_type: str
    cache_control: str


def _is_excluded(name: str, exclude_patterns: Sequence[str]) -> bool:
    return any(fnmatch.fnmatch(name, pattern) for pattern in exclude_patterns)


def collect_sync_files(
    local_dir: Union[str, Path],
    key_prefix: str,
    cache_control: str,
    exclude_patterns: Sequence[str] = (),
) -> List[SyncFile]:
    """Files below ``local_dir`` mapped under ``key_prefix``.

    Names matching an exclude pattern are skipped, directories included.

    Args:
        local_dir: Directory to walk
        key_prefix: Key prefix the relative paths are appended to
        cache_control: ``Cache-Control`` for every collected file
        exclude_patterns: ``fnmatch`` patterns matched against entry names

    Returns:
        Files in depth-first, name-sorted order
    """
    files: List[SyncFile] = []
    stack = [(Path(local_dir), "")]

    while stack:
        directory, relative = stack.pop()
        with os.scandir(directory) as it:
            entries = sorted(it, key=lambda entry: entry.name)

        subdirs = []
        for entry in entries:
            if _is_excluded(entry.name, exclude_patterns):
                continue
            if entry.is_dir(follow_symlinks=False):
                subdirs.append((Path(entry.path), f"{relative}/{entry.name}"))
            elif entry.is_file():
                key = re.sub(r"/+", "/", f"{key_prefix}{relative}/{entry.name}")
                files.append(SyncFile(
                    local_path=Path(entry.path),
                    key=key,
                    content_type=guess_content_type(entry.path),
                    cache_control=cache_control,
                ))

        stack.extend(reversed(subdirs))

    return files


class CDNSync:
    """Build the site, upload its assets to the CDN bucket and invalidate the cache."""

    def __init__(
        self,
        config: CDNSyncConfig,
        storage_factory: Optional[Callable[[str, str], BaseObjectStorage]] = None,
        invalidator: Optional[Any] = None,
        project_root: Union[str, Path] = ".",
    ):
        self.config = config
        self.storage_factory = storage_factory or S3ObjectStorage
        self.invalidator = invalidator
        self.project_root = Path(project_root)
        self.skip_invalidation = config.skip_invalidation

    async def run(self) -> int:
        """Run the whole sync.

        Returns:
            Number of uploaded files

        Raises:
            ConfigurationError: Bucket or CDN domain missing
            StorageError: Bucket not accessible, an upload or the invalidation failed
            BuildError: Build command failed or left no build directory
        """
        logger.info("Starting CDN sync process...")
        logger.info(f"S3 Bucket: {self.config.bucket}")
        logger.info(f"CDN Domain: {self.config.cdn_domain}")

        self._validate_config()

        try:
            async with self.storage_factory(self.config.bucket, self.config.region) as storage:
                await self._check_access(storage)

                await self._build_application()
                self._validate_build_directory()

                uploaded = await self._sync_static_files(storage)
                uploaded += await self._sync_public_files(storage)
                uploaded += await self._sync_media_dirs(storage)

                await self._invalidate()
                await self._confirm_sample_file(storage)
        except Exception as e:
            logger.error(f"Sync failed: {e}")
            raise

        logger.info("CDN sync completed successfully!")
        logger.info(f"Static assets are now available at: {self.config.cdn_domain}")
        return uploaded

    def _validate_config(self) -> None:
        self.config.require_settings()
        if not self.config.distribution_id and not self.skip_invalidation:
            logger.warning("CLOUDFRONT_DISTRIBUTION_ID not set, skipping invalidation")
            self.skip_invalidation = True

    async def _check_access(self, storage: BaseObjectStorage) -> None:
        logger.info(f"Testing access to S3 bucket: {self.config.bucket}")
        try:
            await storage.check_access()
        except StorageError as e:
            logger.error(f"AWS validation failed: {e}")
            logger.error(_ACCESS_HINTS[e.kind].format(bucket=self.config.bucket))
            logger.info(f"AWS Region: {self.config.region}")
            logger.info(f"Using AWS Profile: {os.getenv('AWS_PROFILE', 'default')}")
            raise
        logger.info("AWS credentials and S3 access validated")

    async def _build_application(self) -> None:
        if self.config.skip_build:
            logger.warning("Skipping build (SKIP_BUILD=true)")
            return

        logger.info(f"Building application: {self.config.build_command}")
        try:
            process = await asyncio.create_subprocess_exec(
                *shlex.split(self.config.build_command),
                cwd=str(self.project_root),
            )
        except OSError as e:
            raise BuildError(f"Build process error: {e}") from e

        return_code = await process.wait()
        if return_code != 0:
            raise BuildError(f"Build failed with exit code {return_code}")
        logger.info("Build completed")

    def _validate_build_directory(self) -> None:
        build_dir = self.project_root / self.config.build_dir
        if not build_dir.is_dir():
            raise BuildError(
                f"Build directory '{self.config.build_dir}' not found. "
                f"Make sure to run '{self.config.build_command}' first."
            )

    async def _sync_static_files(self, storage: BaseObjectStorage) -> int:
        logger.info("Syncing static build files...")
        static_dir = self.project_root / self.config.build_dir / "static"
        if not static_dir.is_dir():
            logger.warning("No static files found to sync")
            return 0

        files = collect_sync_files(
            static_dir,
            f"{self.config.key_prefix}/_next/static",
            STATIC_CACHE_CONTROL,
            STATIC_EXCLUDES,
        )
        await self._upload_batch(storage, files)
        logger.info(f"Uploaded {len(files)} static files")
        return len(files)

    async def _sync_public_files(self, storage: BaseObjectStorage) -> int:
        logger.info("Syncing public directory files...")
        public_dir = self.project_root / self.config.public_dir
        if not public_dir.is_dir():
            logger.warning("Public directory not found, skipping")
            return 0

        regular_files = collect_sync_files(
            public_dir, self.config.key_prefix, ASSET_CACHE_CONTROL, ("*.html",) + PUBLIC_EXCLUDES
        )
        html_files = [
            file for file in collect_sync_files(public_dir, self.config.key_prefix, HTML_CACHE_CONTROL, PUBLIC_EXCLUDES)
            if file.local_path.name.endswith(".html")
        ]
        files = regular_files + html_files
        if not files:
            logger.warning("No public files to sync")
            return 0

        await self._upload_batch(storage, files)
        logger.info(f"Uploaded {len(files)} public files")
        return len(files)

    async def _sync_media_dirs(self, storage: BaseObjectStorage) -> int:
        logger.info("Syncing additional media assets...")
        total = 0
        for name in self.config.media_dirs:
            media_dir = self.project_root / name
            if not media_dir.is_dir():
                continue

            logger.info(f"Found {name} directory, syncing...")
            files = collect_sync_files(
                media_dir, f"{self.config.key_prefix}/{name}", ASSET_CACHE_CONTROL, MEDIA_EXCLUDES
            )
            if files:
                await self._upload_batch(storage, files)
                total += len(files)
                logger.info(f"Synced {len(files)} files from {name}/")

        if total:
            logger.info(f"Total media files synced: {total}")
        else:
            logger.info("No additional media assets found to sync")
        return total

    async def _upload_batch(self, storage: BaseObjectStorage, files: List[SyncFile]) -> None:
        """Upload ``files`` concurrently; the first failure is raised once the batch settles."""
        semaphore = asyncio.Semaphore(self.config.upload_concurrency)

        async def upload_one(file: SyncFile) -> None:
            async with semaphore:
                try:
                    await storage.put_file(file.key, file.local_path, file.content_type, file.cache_control)
                except Exception as e:
                    logger.error(f"Failed to upload {file.key}: {e}")
                    raise
                logger.debug(f"Uploaded {file.key}")

        results = await asyncio.gather(*(upload_one(file) for file in files), return_exceptions=True)
        for result in results:
            if isinstance(result, BaseException):
                raise result

    async def _invalidate(self) -> Optional[str]:
        if self.skip_invalidation:
            logger.warning("Skipping CloudFront invalidation")
            return None

        invalidation_id = await invalidate_cloudfront_cache(
            self.config.distribution_id,
            invalidator=self.invalidator,
            caller_prefix="cdn-sync",
        )
        logger.info("Invalidation may take 5-15 minutes to complete")
        return invalidation_id

    async def _confirm_sample_file(self, storage: BaseObjectStorage) -> bool:
        for sample in SAMPLE_KEYS:
            key = f"{self.config.key_prefix}/{sample}"
            try:
                if await storage.object_exists(key):
                    logger.info(f"Sample file confirmed: {self.config.cdn_domain}/{key}")
                    return True
            except StorageError as e:
                logger.debug(f"Sample probe failed for {key}: {e}")
        logger.warning("Could not confirm any sample files (this might be normal)")
        return False
