"""Validation of relative object keys against a local base directory.

Every object key that is turned into a local path, or every local path that is
turned back into an object key, goes through :func:`sanitize`. A key that
fails is rejected, never rewritten.
"""

import ntpath
import os
import posixpath
import re
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Union

# Control characters other than tab and LF.
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b-\x1f]")
_SEPARATORS = re.compile(r"[\\/]+")


class PathSanitizationError(ValueError):
    """Base class for rejected paths."""

    def __init__(self, path_key: str, reason: str):
        super().__init__(reason)
        self.path_key = path_key
        self.reason = reason


class EmptyPathError(PathSanitizationError):
    def __init__(self, path_key: str, reason: str = "Path key cannot be empty"):
        super().__init__(path_key, reason)


class ControlCharacterError(PathSanitizationError):
    def __init__(self, path_key: str, reason: str = "Path contains control characters"):
        super().__init__(path_key, reason)


class AbsolutePathError(PathSanitizationError):
    def __init__(self, path_key: str, reason: str = "Absolute paths are not allowed"):
        super().__init__(path_key, reason)


class TraversalError(PathSanitizationError):
    def __init__(self, path_key: str, reason: str = "Path traversal attempt detected (..)"):
        super().__init__(path_key, reason)


class EscapesBaseDirError(PathSanitizationError):
    def __init__(self, path_key: str, reason: str = "Resolved path escapes base directory"):
        super().__init__(path_key, reason)


@dataclass(frozen=True)
class SafeRelativePath:
    """A normalized relative path known to stay inside its base directory."""

    parts: tuple

    @property
    def key(self) -> str:
        """Forward-slash form, for object storage keys."""
        return "/".join(self.parts)

    @property
    def local(self) -> str:
        """Platform-separator form, for local filesystem joins."""
        return os.path.join(*self.parts)

    def join(self, base_dir: Union[str, Path]) -> Path:
        return Path(base_dir).joinpath(*self.parts)

    def __str__(self) -> str:
        return self.key


def _is_absolute(path_key: str) -> bool:
    if path_key.startswith(("/", "\\")):
        return True
    if os.path.isabs(path_key):
        return True
    drive, _ = ntpath.splitdrive(path_key)
    return bool(drive)


def sanitize(path_key: str, base_dir: Union[str, Path]) -> SafeRelativePath:
    """Validate ``path_key`` as a relative path inside ``base_dir``.

    Args:
        path_key: Candidate relative path, with ``/`` or ``\\`` separators
        base_dir: Directory the path must stay within

    Returns:
        The normalized path

    Raises:
        EmptyPathError: Empty input, or input that normalizes to the base itself
        ControlCharacterError: Null byte or control character in the input
        AbsolutePathError: Absolute path or drive-qualified path
        TraversalError: Any ``..`` segment
        EscapesBaseDirError: Resolved candidate is not a descendant of ``base_dir``
    """
    if not path_key:
        raise EmptyPathError(path_key)

    if "\x00" in path_key:
        raise ControlCharacterError(path_key, "Path contains null bytes")
    if _CONTROL_CHARS.search(path_key):
        raise ControlCharacterError(path_key)

    if _is_absolute(path_key):
        raise AbsolutePathError(path_key)

    segments = _SEPARATORS.split(path_key)
    if ".." in segments:
        raise TraversalError(path_key)

    normalized = posixpath.normpath("/".join(segments))
    if normalized == ".":
        raise EmptyPathError(path_key, "Path resolves to the base directory")

    parts = PurePosixPath(normalized).parts
    resolved_base = os.path.abspath(base_dir)
    resolved_path = os.path.abspath(os.path.join(resolved_base, *parts))
    if os.path.commonpath([resolved_base, resolved_path]) != resolved_base or resolved_path == resolved_base:
        raise EscapesBaseDirError(path_key)

    return SafeRelativePath(parts=parts)
