import logging
import os
import re
from datetime import datetime, timezone

logger = logging.getLogger("media-vault")

SNAPSHOT_DIR_PREFIX = "s3-"
SNAPSHOT_DIR_PATTERN = re.compile(r"^s3-\d{4}-\d{2}-\d{2}T\d{2}-\d{2}-\d{2}$")
METADATA_FILENAME = "backup-metadata.json"
DEFAULT_BACKUPS_ROOT = "backups"

_SIZE_UNITS = ["Bytes", "KB", "MB", "GB", "TB"]


def format_bytes(num_bytes: int) -> str:
    """Format a byte count as a human-readable string (``1.5 KB``)."""
    if num_bytes <= 0:
        return "0 Bytes"
    exponent = 0
    while exponent < len(_SIZE_UNITS) - 1 and num_bytes >= 1024 ** (exponent + 1):
        exponent += 1
    value = round(num_bytes / 1024 ** exponent, 2)
    return f"{value:g} {_SIZE_UNITS[exponent]}"


def generate_timestamp() -> str:
    """UTC timestamp usable in a directory name: ``YYYY-MM-DDTHH-MM-SS``."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S")


def to_iso8601(value: datetime) -> str:
    """Render a datetime as ``YYYY-MM-DDTHH:MM:SS.mmmZ``.

    Naive datetimes are taken to be UTC. The millisecond precision matches the
    format of snapshot files written by earlier versions of the tool, so
    change detection keeps working across them.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def get_default_backup_path(backups_root: str = DEFAULT_BACKUPS_ROOT) -> str:
    return os.path.join(backups_root, f"{SNAPSHOT_DIR_PREFIX}{generate_timestamp()}")


def get_backup_root_dir(local_dir: str) -> str:
    """Return the directory that holds snapshot directories for ``local_dir``.

    ``backups/s3-2026-01-15T00-00-00`` lives in ``backups``; any directory not
    named like a snapshot is itself treated as the root.
    """
    trimmed = local_dir.rstrip("/\\") or local_dir
    if os.path.basename(trimmed).startswith(SNAPSHOT_DIR_PREFIX):
        return os.path.dirname(trimmed) or "."
    return local_dir
