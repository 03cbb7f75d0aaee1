from .backup import BackupManager, BackupSnapshot, FileRecord, TransferResult
from .config import BackupConfig, CDNSyncConfig
from .exceptions import ConfigurationError, ErrorKind, MediaVaultError, StorageError
from .sanitize import PathSanitizationError, SafeRelativePath, sanitize

__version__ = "0.3.0"
__author__ = "media-vault"

__all__ = [
    "BackupManager",
    "BackupSnapshot",
    "FileRecord",
    "TransferResult",
    "BackupConfig",
    "CDNSyncConfig",
    "ConfigurationError",
    "ErrorKind",
    "MediaVaultError",
    "StorageError",
    "PathSanitizationError",
    "SafeRelativePath",
    "sanitize",
]
