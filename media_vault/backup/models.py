"""Data models for backup/restore operations."""

from dataclasses import dataclass, field
from typing import List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


class FileRecord(BaseModel):
    """One object's metadata at backup time."""

    model_config = ConfigDict(populate_by_name=True)

    key: str = Field(..., description="Object key, forward-slash separated")
    size: int = Field(0, description="Byte length, 0 when unknown at listing time")
    last_modified: str = Field("", alias="lastModified", description="Provider modification instant")
    content_type: Optional[str] = Field(None, alias="contentType", description="MIME type captured on download")


class BackupSnapshot(BaseModel):
    """Record of one completed backup run.

    Serialized with the ``backup-metadata.json`` field names (``bucket``,
    ``prefix``, ``files``, ...) so snapshot directories stay readable by every
    tool that shares them.
    """

    model_config = ConfigDict(populate_by_name=True)

    timestamp: str = Field(..., description="Creation instant, ISO-8601")
    source: str = Field(..., alias="bucket", description="Bucket the snapshot was taken from")
    key_prefix: str = Field("", alias="prefix", description="Key prefix filter of the run")
    region: str = Field("us-east-1", description="Bucket region")
    total_files: int = Field(0, alias="totalFiles")
    total_size: int = Field(0, alias="totalSize")
    entries: List[FileRecord] = Field(default_factory=list, alias="files")


class TransferError(BaseModel):
    """A single failed transfer."""

    model_config = ConfigDict(frozen=True)

    key: str
    error: str


class TransferResult(BaseModel):
    """Final tally of a restore or upload run."""

    model_config = ConfigDict(frozen=True)

    successful: int = 0
    failed: int = 0
    skipped: int = 0
    errors: Tuple[TransferError, ...] = ()
    uploaded_keys: Tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        return self.failed == 0


@dataclass
class TransferTally:
    """Mutable counters for a run in progress; frozen by :meth:`freeze`."""

    successful: int = 0
    failed: int = 0
    skipped: int = 0
    errors: List[TransferError] = field(default_factory=list)
    uploaded_keys: List[str] = field(default_factory=list)

    def succeed(self, key: str) -> None:
        self.successful += 1
        self.uploaded_keys.append(key)

    def skip(self, key: Optional[str] = None, message: Optional[str] = None) -> None:
        self.skipped += 1
        if message:
            self.errors.append(TransferError(key=key or "", error=message))

    def fail(self, key: str, message: str) -> None:
        self.failed += 1
        self.errors.append(TransferError(key=key, error=message))

    def freeze(self) -> TransferResult:
        return TransferResult(
            successful=self.successful,
            failed=self.failed,
            skipped=self.skipped,
            errors=tuple(self.errors),
            uploaded_keys=tuple(self.uploaded_keys),
        )


class SnapshotListing(BaseModel):
    """One snapshot directory as shown by ``list``."""

    name: str
    path: str
    status: Literal["ok", "missing", "unreadable"]
    snapshot: Optional[BackupSnapshot] = None
