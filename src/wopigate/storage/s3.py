# SPDX-License-Identifier: MIT
"""S3-compatible object storage backend.

The bucket is a flat key space; everything below ``key_prefix`` is the
document tree.  Folders are synthesized from ``/``-delimited common
prefixes, and only objects whose extension is in the configured allow-list
are visible as files.

Identifiers decode to full object keys (prefix included).  The root is the
prefix itself, or ``"."`` when the prefix is empty.
"""

from __future__ import annotations

import base64
import datetime
import hashlib
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import anyio
import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError, EndpointConnectionError

from ..config import StorageOptions, get_storage_options
from ..exceptions import BackendUnavailableError, IoFailureError, MalformedIdentifierError, NotFoundError
from ..identifiers import decode_identifier, encode_identifier
from ..security import validate_object_key
from .protocol import DEFAULT_CHUNK_SIZE, File, Folder, split_extension

logger = logging.getLogger("wopigate")

DELIMITER = "/"
EMPTY_PREFIX_ROOT = "."
CHECKSUM_METADATA_KEY = "sha256"

_NOT_FOUND_CODES = frozenset({"404", "NoSuchKey", "NotFound"})


def _etag_checksum(etag: str | None) -> str | None:
    # ETags of multipart uploads are not content digests; accepted approximation
    return etag.strip('"') if etag else None


def _last_segment(key: str) -> str:
    return key.rstrip(DELIMITER).rsplit(DELIMITER, 1)[-1]


def _head_checksum(head: dict[str, Any]) -> str | None:
    """Stored SHA-256 metadata when present, the ETag otherwise."""
    return head.get("Metadata", {}).get(CHECKSUM_METADATA_KEY) or _etag_checksum(head.get("ETag"))


class S3StorageBackend:
    """Document storage in an S3 bucket under a key prefix.

    Required options::

        bucket_name     Target bucket (WOPI_S3_BUCKET)

    Optional options::

        key_prefix      Root key prefix (WOPI_KEY_PREFIX)
        region_name     Bucket region (WOPI_S3_REGION)
        access_key / secret_key   Static credentials; default boto3 chain otherwise
        endpoint_url    Custom endpoint for MinIO and other S3-compatible stores
        extensions      File extensions visible to clients

    Args:
        options: Storage options.  Defaults to :func:`get_storage_options`.
        client: Pre-built boto3 S3 client (tests).

    Raises:
        BackendUnavailableError: If the client cannot be created or the
            bucket owner cannot be resolved.
    """

    def __init__(self, options: StorageOptions | None = None, client: Any | None = None) -> None:
        options = options or get_storage_options()
        if not options.bucket_name:
            raise BackendUnavailableError("S3 storage requires a bucket name. Set WOPI_S3_BUCKET")

        self._bucket = options.bucket_name
        self._prefix = options.key_prefix
        self._extensions = options.extensions

        try:
            self._client = client or self._create_client(options)
            acl = self._client.get_bucket_acl(Bucket=self._bucket)
        except (BotoCoreError, ClientError) as e:
            raise BackendUnavailableError(f"Cannot access bucket {self._bucket!r}: {e}") from e

        owner = acl.get("Owner", {})
        self._owner_id = owner.get("ID") or owner.get("DisplayName") or ""

        root_key = self._prefix or EMPTY_PREFIX_ROOT
        root_name = _last_segment(self._prefix) if self._prefix else self._bucket
        self._root = Folder(identifier=encode_identifier(root_key), name=root_name)
        logger.info("S3 storage on bucket %s (prefix %r)", self._bucket, self._prefix)

    @staticmethod
    def _create_client(options: StorageOptions) -> Any:
        session = boto3.session.Session(
            aws_access_key_id=options.access_key.get_secret_value() if options.access_key else None,
            aws_secret_access_key=options.secret_key.get_secret_value() if options.secret_key else None,
            region_name=options.region_name,
        )
        return session.client(
            "s3",
            endpoint_url=options.endpoint_url,
            config=Config(retries={"mode": "standard"}),
        )

    @property
    def root(self) -> Folder:
        return self._root

    @property
    def owner_id(self) -> str:
        return self._owner_id

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _key(self, identifier: str) -> str:
        """Decode *identifier* into an object key under the prefix."""
        key = decode_identifier(identifier) if identifier else self._prefix
        if key == EMPTY_PREFIX_ROOT:
            key = ""
        return validate_object_key(self._prefix, key)

    def _folder_prefix(self, identifier: str) -> str:
        key = self._key(identifier)
        if key and not key.endswith(DELIMITER):
            key += DELIMITER
        return key

    def _is_root(self, prefix: str) -> bool:
        return prefix == self._prefix

    def _translate(self, exc: Exception, key: str, action: str) -> Exception:
        if isinstance(exc, ClientError):
            code = str(exc.response.get("Error", {}).get("Code", ""))
            if code in _NOT_FOUND_CODES:
                return NotFoundError(f"Not found: {key}")
        if isinstance(exc, EndpointConnectionError):
            return BackendUnavailableError(f"Cannot reach storage while trying to {action} {key}: {exc}")
        return IoFailureError(f"Failed to {action} {key}: {exc}")

    async def _call(self, action: str, key: str, method: str, **kwargs: Any) -> Any:
        fn = getattr(self._client, method)
        try:
            return await anyio.to_thread.run_sync(lambda: fn(**kwargs))
        except (BotoCoreError, ClientError) as e:
            raise self._translate(e, key, action) from e

    async def _list(self, prefix: str) -> tuple[list[dict[str, Any]], list[str]]:
        """Delimiter listing of *prefix*: (direct objects, direct common prefixes)."""

        def _run() -> tuple[list[dict[str, Any]], list[str]]:
            paginator = self._client.get_paginator("list_objects_v2")
            contents: list[dict[str, Any]] = []
            prefixes: list[str] = []
            for page in paginator.paginate(Bucket=self._bucket, Prefix=prefix, Delimiter=DELIMITER):
                contents.extend(page.get("Contents", []))
                prefixes.extend(p["Prefix"] for p in page.get("CommonPrefixes", []))
            return contents, prefixes

        try:
            return await anyio.to_thread.run_sync(_run)
        except (BotoCoreError, ClientError) as e:
            raise self._translate(e, prefix, "list") from e

    def _describe(self, key: str, size: int, last_modified: datetime.datetime, checksum: str | None) -> File:
        name = _last_segment(key)
        return File(
            identifier=encode_identifier(key),
            name=name,
            extension=split_extension(name),
            length=size,
            last_write_time_utc=last_modified.astimezone(datetime.timezone.utc),
            owner=self._owner_id,
            checksum=checksum,
        )

    # ------------------------------------------------------------------
    # Descriptors
    # ------------------------------------------------------------------

    async def get_file(self, identifier: str, *, checksum: bool = True) -> File:
        key = self._key(identifier)
        if not key or key.endswith(DELIMITER):
            raise NotFoundError(f"File not found: {key}")

        head = await self._call("describe", key, "head_object", Bucket=self._bucket, Key=key)
        digest = _head_checksum(head) if checksum else None
        return self._describe(key, head.get("ContentLength", 0), head["LastModified"], digest)

    async def get_folder(self, identifier: str = "") -> Folder:
        prefix = self._folder_prefix(identifier)
        if self._is_root(prefix):
            return self._root

        resp = await self._call("describe", prefix, "list_objects_v2", Bucket=self._bucket, Prefix=prefix, MaxKeys=1)
        if not resp.get("KeyCount", len(resp.get("Contents", []))):
            raise NotFoundError(f"Folder not found: {prefix}")
        return Folder(identifier=encode_identifier(prefix), name=_last_segment(prefix))

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    async def list_files(self, identifier: str = "", *, checksum: bool = False) -> list[File]:
        prefix = self._folder_prefix(identifier)
        contents, _ = await self._list(prefix)

        files = []
        for obj in contents:
            key = obj["Key"]
            if key == prefix or obj.get("Size", 0) <= 0:
                continue
            if split_extension(_last_segment(key)).lower() not in self._extensions:
                continue
            digest = None
            if checksum:
                # Listings carry only the ETag; match get_file by reading the stored digest
                head = await self._call("describe", key, "head_object", Bucket=self._bucket, Key=key)
                digest = _head_checksum(head)
            files.append(self._describe(key, obj["Size"], obj["LastModified"], digest))
        files.sort(key=lambda f: f.name)
        logger.debug("Listed %d file(s) under %r", len(files), prefix)
        return files

    async def list_folders(self, identifier: str = "") -> list[Folder]:
        prefix = self._folder_prefix(identifier)
        _, prefixes = await self._list(prefix)

        folders = []
        for common in prefixes:
            try:
                validate_object_key(self._prefix, common)
            except MalformedIdentifierError:
                logger.warning("Skipping unaddressable prefix %r", common)
                continue
            folders.append(Folder(identifier=encode_identifier(common), name=_last_segment(common)))
        folders.sort(key=lambda f: f.name)
        logger.debug("Listed %d folder(s) under %r", len(folders), prefix)
        return folders

    # ------------------------------------------------------------------
    # Content
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def read_stream(self, identifier: str, chunk_size: int = DEFAULT_CHUNK_SIZE):
        """Yield the object body as byte chunks; the response body is closed on exit."""
        key = self._key(identifier)
        if not key or key.endswith(DELIMITER):
            raise NotFoundError(f"File not found: {key}")
        resp = await self._call("read", key, "get_object", Bucket=self._bucket, Key=key)
        body = resp["Body"]

        async def _chunks() -> AsyncIterator[bytes]:
            try:
                while chunk := await anyio.to_thread.run_sync(body.read, chunk_size):
                    yield chunk
            except (BotoCoreError, OSError) as e:
                raise IoFailureError(f"Read failed for {key}: {e}") from e

        try:
            logger.debug("Reading s3://%s/%s", self._bucket, key)
            yield _chunks()
        finally:
            body.close()

    async def write_stream(self, identifier: str, chunks: AsyncIterator[bytes]) -> None:
        """Replace an existing object's content in a single ``put_object``.

        .. warning::

            The whole stream is buffered in memory so the SHA-256 digest can
            be stored alongside the object before the upload starts.
        """
        key = self._key(identifier)
        if not key or key.endswith(DELIMITER):
            raise NotFoundError(f"File not found: {key}")
        await self._call("describe", key, "head_object", Bucket=self._bucket, Key=key)

        buf = bytearray()
        digest = hashlib.sha256()
        try:
            async for chunk in chunks:
                buf.extend(chunk)
                digest.update(chunk)
        except OSError as e:
            raise IoFailureError(f"Reading upload for {key} failed: {e}") from e

        await self._call(
            "write",
            key,
            "put_object",
            Bucket=self._bucket,
            Key=key,
            Body=bytes(buf),
            Metadata={CHECKSUM_METADATA_KEY: base64.b64encode(digest.digest()).decode("ascii")},
        )
        logger.debug("Wrote %d bytes to s3://%s/%s", len(buf), self._bucket, key)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def aclose(self) -> None:
        """Close the underlying boto3 client."""
        close = getattr(self._client, "close", None)
        if close is not None:
            await anyio.to_thread.run_sync(close)

    async def __aenter__(self) -> S3StorageBackend:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.aclose()
