"""Tests for manifest construction and change detection."""

import logging
from datetime import datetime, timezone

import pytest

from media_vault._storage.base import ListedObject, ListPage
from media_vault.backup.manifest import build_manifest, drop_unsafe_keys, has_allowed_extension, has_changed
from media_vault.backup.models import BackupSnapshot, FileRecord
from media_vault.config import MEDIA_EXTENSIONS
from tests.utils import FakeObjectStorage


def snapshot_of(records) -> BackupSnapshot:
    return BackupSnapshot(timestamp="2026-01-15T00:00:00.000Z", source="b", entries=list(records))


class TestAllowedExtension:
    """Extension filter."""

    @pytest.mark.parametrize("key", ["a.jpg", "music/A.MP3", "v/clip.webm", "x/y.tar.png"])
    def test_allowed(self, key):
        assert has_allowed_extension(key, MEDIA_EXTENSIONS)

    @pytest.mark.parametrize("key", ["notes.txt", "folder/", "README", "images.d/file", ".jpg.bak"])
    def test_rejected(self, key):
        assert not has_allowed_extension(key, MEDIA_EXTENSIONS)


@pytest.mark.asyncio
async def test_build_manifest_pages_and_filters():
    """All pages are consumed; only allowed extensions are kept."""
    storage = FakeObjectStorage(page_size=2)
    storage.add("a.jpg", b"1234", last_modified=datetime(2026, 1, 14, 10, 0, tzinfo=timezone.utc))
    storage.add("b.txt", b"12")
    storage.add("c/d.mp3", b"123")
    storage.add("e.png", b"1")
    storage.add("f.MOV", b"12345")

    async def fetch(token):
        return await storage.list_page("", token)

    manifest = await build_manifest(fetch, MEDIA_EXTENSIONS)

    assert [r.key for r in manifest] == ["a.jpg", "c/d.mp3", "e.png", "f.MOV"]
    assert manifest[0].size == 4
    assert manifest[0].last_modified == "2026-01-14T10:00:00.000Z"
    assert storage.list_calls == [None, "2", "4"]


@pytest.mark.asyncio
async def test_build_manifest_missing_fields_and_empty_keys():
    pages = {
        None: ListPage(entries=[ListedObject(key=None), ListedObject(key="")], next_token="t"),
        "t": ListPage(entries=[ListedObject(key="a.jpg")], next_token=""),
    }

    async def fetch(token):
        return pages[token]

    manifest = await build_manifest(fetch, MEDIA_EXTENSIONS)

    assert manifest == [FileRecord(key="a.jpg", size=0, last_modified="")]


@pytest.mark.asyncio
async def test_build_manifest_empty_warns(caplog):
    async def fetch(token):
        return ListPage()

    with caplog.at_level(logging.WARNING, logger="media-vault"):
        manifest = await build_manifest(fetch, MEDIA_EXTENSIONS)

    assert manifest == []
    assert "No eligible media files" in caplog.text


@pytest.mark.asyncio
async def test_build_manifest_listing_error_propagates():
    storage = FakeObjectStorage()
    storage.list_error = RuntimeError("listing failed")

    async def fetch(token):
        return await storage.list_page("", token)

    with pytest.raises(RuntimeError, match="listing failed"):
        await build_manifest(fetch, MEDIA_EXTENSIONS)


class TestHasChanged:
    """Change detection by key, size and modification time."""

    base = [
        FileRecord(key="a.jpg", size=10, last_modified="2026-01-14T10:00:00.000Z"),
        FileRecord(key="b.mp3", size=20, last_modified="2026-01-14T11:00:00.000Z"),
    ]

    def test_identical(self):
        assert has_changed(list(self.base), snapshot_of(self.base)) is False

    def test_order_does_not_matter(self):
        assert has_changed(list(reversed(self.base)), snapshot_of(self.base)) is False

    def test_count_differs(self):
        assert has_changed(self.base[:1], snapshot_of(self.base)) is True

    def test_size_differs(self):
        current = [self.base[0].model_copy(update={"size": 11}), self.base[1]]
        assert has_changed(current, snapshot_of(self.base)) is True

    def test_mtime_differs(self):
        current = [self.base[0], self.base[1].model_copy(update={"last_modified": "2026-01-15T00:00:00.000Z"})]
        assert has_changed(current, snapshot_of(self.base)) is True

    def test_key_differs(self):
        current = [self.base[0], self.base[1].model_copy(update={"key": "c.mp3"})]
        assert has_changed(current, snapshot_of(self.base)) is True

    def test_same_size_and_mtime_is_not_detected(self):
        """Content changes that keep size and mtime go unnoticed."""
        current = [r.model_copy(update={"content_type": "changed/type"}) for r in self.base]
        assert has_changed(current, snapshot_of(self.base)) is False


def test_drop_unsafe_keys(temp_dir, caplog):
    records = [FileRecord(key=key, size=1) for key in ["a.jpg", "../up.jpg", "/abs.jpg", "b\x01.png", "c//d.gif"]]

    with caplog.at_level(logging.WARNING, logger="media-vault"):
        safe = drop_unsafe_keys(records, temp_dir)

    assert [r.key for r in safe] == ["a.jpg", "c//d.gif"]
    assert caplog.text.count("Skipping object with invalid key") == 3
