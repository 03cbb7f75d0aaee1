"""Amazon S3 storage backend built on aioboto3."""

from contextlib import AsyncExitStack, contextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Optional, Union

import aioboto3
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectionClosedError,
    ConnectTimeoutError,
    EndpointConnectionError,
    NoCredentialsError,
    PartialCredentialsError,
    ReadTimeoutError,
)

from ..exceptions import ErrorKind, StorageError
from .base import BaseObjectStorage, ListedObject, ListPage, ObjectBody

NOT_FOUND_CODES = {"404", "NotFound", "NoSuchKey"}
FORBIDDEN_CODES = {"403", "AccessDenied", "Forbidden", "InvalidAccessKeyId", "SignatureDoesNotMatch"}
TRANSIENT_CODES = {"SlowDown", "RequestTimeout", "Throttling", "ThrottlingException", "InternalError", "ServiceUnavailable"}
TRANSIENT_BOTOCORE_ERRORS = (EndpointConnectionError, ConnectionClosedError, ConnectTimeoutError, ReadTimeoutError)

DEFAULT_CHUNK_SIZE = 1024 * 1024


def classify_client_error(error: ClientError) -> ErrorKind:
    """Map a botocore ``ClientError`` onto an ``ErrorKind``.

    S3 reports a missing key as HTTP 404 on HEAD requests (no body, so no
    error code) and as ``NoSuchKey`` on GET, so status and code are both
    checked.
    """
    response = getattr(error, "response", None) or {}
    code = str(response.get("Error", {}).get("Code", ""))
    status = response.get("ResponseMetadata", {}).get("HTTPStatusCode")

    if status == 404 or code in NOT_FOUND_CODES:
        return ErrorKind.NOT_FOUND
    if status == 403 or code in FORBIDDEN_CODES:
        return ErrorKind.FORBIDDEN
    if code in TRANSIENT_CODES or (isinstance(status, int) and status >= 500):
        return ErrorKind.TRANSIENT
    return ErrorKind.UNKNOWN


def to_storage_error(error: Exception, action: str) -> StorageError:
    if isinstance(error, ClientError):
        code = str(error.response.get("Error", {}).get("Code", "")) or None
        return StorageError(f"{action} failed: {error}", classify_client_error(error), code)
    if isinstance(error, (NoCredentialsError, PartialCredentialsError)):
        return StorageError(f"{action} failed: {error}", ErrorKind.FORBIDDEN, type(error).__name__)
    if isinstance(error, TRANSIENT_BOTOCORE_ERRORS):
        return StorageError(f"{action} failed: {error}", ErrorKind.TRANSIENT, type(error).__name__)
    return StorageError(f"{action} failed: {error}", ErrorKind.UNKNOWN, type(error).__name__)


@contextmanager
def translate_errors(action: str):
    """Re-raise botocore failures raised inside the block as ``StorageError``."""
    try:
        yield
    except (ClientError, BotoCoreError) as e:
        raise to_storage_error(e, action) from e


class S3ObjectStorage(BaseObjectStorage):
    """S3 bucket accessed through a single aioboto3 client.

    Use as an async context manager; the client stays open for the whole run
    so object bodies can be streamed after ``get_object`` returns.
    """

    def __init__(
        self,
        bucket: str,
        region: str = "us-east-1",
        session: Optional[Any] = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ):
        self.bucket = bucket
        self.region = region
        self.session = session or aioboto3.Session()
        self.chunk_size = chunk_size
        self._client = None
        self._stack: Optional[AsyncExitStack] = None

    async def __aenter__(self) -> "S3ObjectStorage":
        self._stack = AsyncExitStack()
        self._client = await self._stack.enter_async_context(
            self.session.client("s3", region_name=self.region)
        )
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._stack is not None:
            await self._stack.aclose()
        self._client = None
        self._stack = None

    @property
    def client(self):
        if self._client is None:
            raise RuntimeError("S3ObjectStorage must be used as an async context manager")
        return self._client

    async def list_page(
        self,
        prefix: str = "",
        continuation_token: Optional[str] = None,
        max_keys: Optional[int] = None,
    ) -> ListPage:
        params = {"Bucket": self.bucket, "Prefix": prefix}
        if continuation_token:
            params["ContinuationToken"] = continuation_token
        if max_keys is not None:
            params["MaxKeys"] = max_keys

        with translate_errors(f"Listing s3://{self.bucket}/{prefix}"):
            response = await self.client.list_objects_v2(**params)

        entries = [
            ListedObject(
                key=item.get("Key"),
                size=item.get("Size"),
                last_modified=item.get("LastModified"),
            )
            for item in response.get("Contents") or []
        ]
        return ListPage(entries=entries, next_token=response.get("NextContinuationToken"))

    async def get_object(self, key: str) -> Optional[ObjectBody]:
        with translate_errors(f"Fetching {key}"):
            response = await self.client.get_object(Bucket=self.bucket, Key=key)

        body = response.get("Body")
        if body is None:
            return None
        return ObjectBody(chunks=self._iter_body(body, key), content_type=response.get("ContentType"))

    async def _iter_body(self, body, key: str) -> AsyncIterator[bytes]:
        with translate_errors(f"Reading {key}"):
            async for chunk in body.iter_chunks(self.chunk_size):
                yield chunk

    async def put_file(
        self,
        key: str,
        local_path: Union[str, Path],
        content_type: str,
        cache_control: Optional[str] = None,
    ) -> None:
        extra_args = {"ContentType": content_type}
        if cache_control:
            extra_args["CacheControl"] = cache_control

        with translate_errors(f"Uploading {key}"):
            await self.client.upload_file(str(local_path), self.bucket, key, ExtraArgs=extra_args)

    async def object_exists(self, key: str) -> bool:
        try:
            with translate_errors(f"Checking {key}"):
                await self.client.head_object(Bucket=self.bucket, Key=key)
        except StorageError as e:
            if e.is_not_found:
                return False
            raise
        return True
