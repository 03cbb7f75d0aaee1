"""Configuration management for media-vault."""

import os
from dataclasses import dataclass, field
from typing import FrozenSet, Optional

from dotenv import load_dotenv

from .exceptions import ConfigurationError

IMAGE_EXTENSIONS = frozenset({
    ".jpg", ".jpeg", ".png", ".gif", ".webp", ".svg", ".ico",
    ".bmp", ".tiff", ".tif", ".avif",
})
AUDIO_EXTENSIONS = frozenset({".mp3", ".wav", ".flac", ".aac", ".m4a", ".ogg", ".opus"})
VIDEO_EXTENSIONS = frozenset({".mp4", ".mov", ".webm", ".m4v"})
MEDIA_EXTENSIONS = IMAGE_EXTENSIONS | AUDIO_EXTENSIONS | VIDEO_EXTENSIONS


def load_env_files() -> None:
    """Load ``.env.local`` then ``.env``; variables already set are kept."""
    load_dotenv(".env.local")
    load_dotenv()


def _parse_extensions(raw: str) -> FrozenSet[str]:
    extensions = set()
    for item in raw.split(","):
        item = item.strip().lower()
        if not item:
            continue
        extensions.add(item if item.startswith(".") else f".{item}")
    return frozenset(extensions)


def _env_flag(name: str) -> bool:
    return os.getenv(name, "false").lower() == "true"


@dataclass(frozen=True)
class BackupConfig:
    """Settings shared by backup, restore, list and cleanup."""
    bucket: str = ""
    region: str = "us-east-1"
    prefix: str = ""
    max_backups: int = 5
    distribution_id: Optional[str] = None
    backups_root: str = "backups"
    allowed_extensions: FrozenSet[str] = field(default_factory=lambda: MEDIA_EXTENSIONS)

    @classmethod
    def from_env(cls) -> 'BackupConfig':
        """Create config from environment variables."""
        raw_extensions = os.getenv("S3_BACKUP_EXTENSIONS", "")
        return cls(
            bucket=os.getenv("S3_BUCKET", ""),
            region=os.getenv("AWS_REGION") or "us-east-1",
            prefix=os.getenv("S3_BACKUP_PREFIX", ""),
            max_backups=int(os.getenv("S3_MAX_BACKUPS", "5")),
            distribution_id=os.getenv("CLOUDFRONT_DISTRIBUTION_ID") or None,
            allowed_extensions=_parse_extensions(raw_extensions) if raw_extensions else MEDIA_EXTENSIONS,
        )

    def __post_init__(self):
        """Validate configuration."""
        if self.max_backups <= 0:
            raise ValueError(f"max_backups must be positive, got {self.max_backups}")
        if not self.allowed_extensions:
            raise ValueError("allowed_extensions must not be empty")

    def require_bucket(self) -> str:
        if not self.bucket:
            raise ConfigurationError(
                "S3_BUCKET environment variable is not set. "
                "Please ensure your .env.local or .env file contains S3_BUCKET"
            )
        return self.bucket


@dataclass(frozen=True)
class CDNSyncConfig:
    """Settings for syncing a static site build to the CDN bucket."""
    bucket: str = ""
    cdn_domain: str = ""
    region: str = "us-east-1"
    distribution_id: Optional[str] = None
    build_dir: str = ".next"
    public_dir: str = "public"
    media_dirs: tuple = ("music", "images", "videos")
    key_prefix: str = "media"
    build_command: str = "npm run build"
    skip_build: bool = False
    skip_invalidation: bool = False
    upload_concurrency: int = 8

    @classmethod
    def from_env(cls) -> 'CDNSyncConfig':
        """Create config from environment variables."""
        return cls(
            bucket=os.getenv("S3_BUCKET", ""),
            cdn_domain=os.getenv("CDN_DOMAIN", ""),
            region=os.getenv("AWS_REGION") or "us-east-1",
            distribution_id=os.getenv("CLOUDFRONT_DISTRIBUTION_ID") or None,
            build_command=os.getenv("CDN_BUILD_COMMAND", "npm run build"),
            skip_build=_env_flag("SKIP_BUILD"),
            skip_invalidation=_env_flag("SKIP_INVALIDATION"),
        )

    def __post_init__(self):
        """Validate configuration."""
        if self.upload_concurrency <= 0:
            raise ValueError(f"upload_concurrency must be positive, got {self.upload_concurrency}")

    def require_settings(self) -> None:
        if not self.bucket:
            raise ConfigurationError("S3_BUCKET environment variable must be set")
        if not self.cdn_domain:
            raise ConfigurationError("CDN_DOMAIN environment variable must be set")
