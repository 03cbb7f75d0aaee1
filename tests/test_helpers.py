"""Tests for shared helpers in media_vault._utils."""

import os
import re
from datetime import datetime, timedelta, timezone

import pytest

from media_vault._utils import (
    format_bytes,
    generate_timestamp,
    get_backup_root_dir,
    get_default_backup_path,
    to_iso8601,
)


@pytest.mark.parametrize("num_bytes,expected", [
    (0, "0 Bytes"),
    (512, "512 Bytes"),
    (1024, "1 KB"),
    (1536, "1.5 KB"),
    (1048576, "1 MB"),
    (1073741824, "1 GB"),
    (1234567, "1.18 MB"),
])
def test_format_bytes(num_bytes, expected):
    assert format_bytes(num_bytes) == expected


def test_generate_timestamp_is_directory_safe():
    timestamp = generate_timestamp()
    assert re.fullmatch(r"\d{4}-\d{2}-\d{2}T\d{2}-\d{2}-\d{2}", timestamp)
    assert ":" not in timestamp


def test_default_backup_path():
    path = get_default_backup_path("backups")
    assert os.path.dirname(path) == "backups"
    assert os.path.basename(path).startswith("s3-")


def test_to_iso8601_milliseconds():
    value = datetime(2026, 1, 15, 12, 30, 45, 123456, tzinfo=timezone.utc)
    assert to_iso8601(value) == "2026-01-15T12:30:45.123Z"


def test_to_iso8601_converts_to_utc():
    value = datetime(2026, 1, 15, 14, 0, 0, tzinfo=timezone(timedelta(hours=2)))
    assert to_iso8601(value) == "2026-01-15T12:00:00.000Z"


def test_to_iso8601_naive_is_utc():
    assert to_iso8601(datetime(2026, 1, 15)) == "2026-01-15T00:00:00.000Z"


class TestBackupRootDir:
    """Snapshot directories resolve to their parent."""

    def test_snapshot_dir(self):
        assert get_backup_root_dir(os.path.join("backups", "s3-2026-01-15T00-00-00")) == "backups"

    def test_snapshot_dir_trailing_slash(self):
        assert get_backup_root_dir("backups/s3-2026-01-15T00-00-00/") == "backups"

    def test_bare_snapshot_dir(self):
        assert get_backup_root_dir("s3-2026-01-15T00-00-00") == "."

    def test_plain_dir(self):
        assert get_backup_root_dir("my-backup") == "my-backup"
