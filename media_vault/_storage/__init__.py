"""Storage and CDN adapters."""

from .base import BaseObjectStorage, ListedObject, ListPage, ObjectBody
from .cdn import CloudFrontInvalidator, build_invalidation_paths, MAX_PATHS_PER_INVALIDATION
from .s3 import S3ObjectStorage, classify_client_error

__all__ = [
    "BaseObjectStorage",
    "ListedObject",
    "ListPage",
    "ObjectBody",
    "S3ObjectStorage",
    "classify_client_error",
    "CloudFrontInvalidator",
    "build_invalidation_paths",
    "MAX_PATHS_PER_INVALIDATION",
]
