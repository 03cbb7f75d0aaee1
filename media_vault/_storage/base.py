"""Object storage abstraction used by the backup, restore and sync paths."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import AsyncIterator, List, Optional, Union


@dataclass
class ListedObject:
    """One entry of a bucket listing; fields the provider omits are ``None``."""
    key: Optional[str]
    size: Optional[int] = None
    last_modified: Optional[datetime] = None


@dataclass
class ListPage:
    entries: List[ListedObject] = field(default_factory=list)
    next_token: Optional[str] = None


@dataclass
class ObjectBody:
    """Streaming body of a fetched object."""
    chunks: AsyncIterator[bytes]
    content_type: Optional[str] = None


class BaseObjectStorage(ABC):
    """Bucket-scoped object storage.

    Implementations normalize provider errors into
    :class:`media_vault.exceptions.StorageError` so callers branch on
    ``StorageError.kind`` only.
    """

    bucket: str

    async def __aenter__(self) -> "BaseObjectStorage":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        return None

    @abstractmethod
    async def list_page(
        self,
        prefix: str = "",
        continuation_token: Optional[str] = None,
        max_keys: Optional[int] = None,
    ) -> ListPage:
        """Fetch one page of the listing under ``prefix``."""
        raise NotImplementedError

    @abstractmethod
    async def get_object(self, key: str) -> Optional[ObjectBody]:
        """Fetch an object; ``None`` when the provider returns no body."""
        raise NotImplementedError

    @abstractmethod
    async def put_file(
        self,
        key: str,
        local_path: Union[str, Path],
        content_type: str,
        cache_control: Optional[str] = None,
    ) -> None:
        """Upload a local file, streaming it from disk."""
        raise NotImplementedError

    @abstractmethod
    async def object_exists(self, key: str) -> bool:
        """Probe for ``key``.

        Returns False only for a not-found outcome; every other failure is
        raised as ``StorageError``.
        """
        raise NotImplementedError

    async def check_access(self) -> None:
        """Raise ``StorageError`` when the bucket cannot be listed."""
        await self.list_page(max_keys=1)
