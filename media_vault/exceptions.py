"""Exception hierarchy for media-vault."""

from enum import Enum
from typing import Optional


class MediaVaultError(Exception):
    """Base exception for media-vault operations."""
    pass


class ConfigurationError(MediaVaultError):
    """Required configuration is missing or invalid."""
    pass


class ErrorKind(str, Enum):
    """Normalized outcome of a failed storage or CDN call."""
    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"
    TRANSIENT = "transient"
    UNKNOWN = "unknown"


class StorageError(MediaVaultError):
    """Object storage call failed."""

    def __init__(self, message: str, kind: ErrorKind = ErrorKind.UNKNOWN, code: Optional[str] = None):
        super().__init__(message)
        self.kind = kind
        self.code = code

    @property
    def is_not_found(self) -> bool:
        return self.kind is ErrorKind.NOT_FOUND


class BuildError(MediaVaultError):
    """Site build failed or produced no output."""
    pass
