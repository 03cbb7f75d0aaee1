"""Test utilities for media-vault tests."""
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from media_vault._storage.base import BaseObjectStorage, ListedObject, ListPage, ObjectBody
from media_vault.exceptions import ErrorKind, StorageError

DEFAULT_MTIME = datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


@dataclass
class FakeObject:
    data: Optional[bytes]
    size: int
    last_modified: datetime = DEFAULT_MTIME
    content_type: Optional[str] = None
    cache_control: Optional[str] = None


async def _chunks(data: bytes, chunk_size: int = 4):
    for start in range(0, len(data), chunk_size):
        yield data[start:start + chunk_size]


class FakeObjectStorage(BaseObjectStorage):
    """In-memory bucket recording every call."""

    def __init__(self, bucket: str = "test-bucket", page_size: int = 1000):
        self.bucket = bucket
        self.page_size = page_size
        self.objects: Dict[str, FakeObject] = {}
        self.list_calls: List[Optional[str]] = []
        self.get_calls: List[str] = []
        self.put_calls: List[tuple] = []
        self.head_calls: List[str] = []
        self.list_error: Optional[Exception] = None
        self.get_errors: Dict[str, Exception] = {}
        self.put_errors: Dict[str, Exception] = {}
        self.head_errors: Dict[str, Exception] = {}

    def add(
        self,
        key: str,
        data: Optional[bytes] = b"",
        size: Optional[int] = None,
        last_modified: datetime = DEFAULT_MTIME,
        content_type: Optional[str] = None,
    ) -> None:
        """Store an object; ``data=None`` simulates a response without a body."""
        if size is None:
            size = len(data) if data is not None else 0
        self.objects[key] = FakeObject(data, size, last_modified, content_type)

    async def list_page(self, prefix="", continuation_token=None, max_keys=None) -> ListPage:
        self.list_calls.append(continuation_token)
        if self.list_error is not None:
            raise self.list_error

        keys = sorted(key for key in self.objects if key.startswith(prefix))
        start = int(continuation_token or 0)
        end = start + (max_keys or self.page_size)
        entries = [
            ListedObject(key=key, size=self.objects[key].size, last_modified=self.objects[key].last_modified)
            for key in keys[start:end]
        ]
        return ListPage(entries=entries, next_token=str(end) if end < len(keys) else None)

    async def get_object(self, key: str) -> Optional[ObjectBody]:
        self.get_calls.append(key)
        if key in self.get_errors:
            raise self.get_errors[key]
        obj = self.objects.get(key)
        if obj is None:
            raise StorageError(f"Fetching {key} failed", ErrorKind.NOT_FOUND, "NoSuchKey")
        if obj.data is None:
            return None
        return ObjectBody(chunks=_chunks(obj.data), content_type=obj.content_type)

    async def put_file(self, key, local_path, content_type, cache_control=None) -> None:
        self.put_calls.append((key, Path(local_path), content_type, cache_control))
        if key in self.put_errors:
            raise self.put_errors[key]
        data = Path(local_path).read_bytes()
        self.objects[key] = FakeObject(data, len(data), datetime.now(timezone.utc), content_type, cache_control)

    async def object_exists(self, key: str) -> bool:
        self.head_calls.append(key)
        if key in self.head_errors:
            raise self.head_errors[key]
        return key in self.objects

    @property
    def put_keys(self) -> List[str]:
        return [call[0] for call in self.put_calls]


class FakeInvalidator:
    """Records invalidation requests instead of calling CloudFront."""

    def __init__(self, invalidation_id: Optional[str] = "I2ABCDEF", error: Optional[Exception] = None):
        self.invalidation_id = invalidation_id
        self.error = error
        self.calls: List[List[str]] = []

    async def invalidate(self, paths: Sequence[str]) -> Optional[str]:
        self.calls.append(list(paths))
        if self.error is not None:
            raise self.error
        return self.invalidation_id

    async def invalidate_all(self) -> Optional[str]:
        return await self.invalidate(["/*"])


def storage_factory(storage: FakeObjectStorage):
    """Factory returning ``storage`` for any bucket/region."""
    def factory(bucket: str, region: str) -> FakeObjectStorage:
        return storage
    return factory


def write_file(path: Path, data: bytes = b"x") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    return path
