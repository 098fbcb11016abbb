"""
S3 / MinIO storage adapter for content-addressable blob storage.

Requires ``aiobotocore``. The adapter is a stateless relay: it keeps no
knowledge of existing keys, never retries, and is safe to share between
concurrent callers.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, Dict, Optional

from ..faults import (
    AccessPolicyFault,
    BlobNotFoundFault,
    CopyFault,
    ExistsFault,
    RetrieveFault,
    StreamStateFault,
    UnlinkFault,
    UploadFault,
    is_not_found,
)
from .base import BaseStorageAdapter, BlobSource
from .config import S3StoreConfig
from .multipart import upload_stream
from .results import CopyResult, UploadResult
from .streams import ByteSink, ByteStream, close_sink, write_to_sink

logger = logging.getLogger("cafstore.storage.s3")


class S3StorageAdapter(BaseStorageAdapter):
    """
    Store blobs in an S3-compatible bucket.

    Usage::

        async with create_client(S3ClientSettings.from_env()) as client:
            adapter = S3StorageAdapter(S3StoreConfig(client=client, bucket="blobs"))
            await adapter.store("a.txt", b"hello, world!")
            sink = BufferSink()
            await adapter.retrieve("a.txt", sink)
    """

    def __init__(self, config: S3StoreConfig):
        self.config = config
        self.client = config.client
        self.bucket = config.bucket
        self.log = config.log

    def _warn(self, operation: str, key: str, exc: BaseException) -> None:
        logger.warning("S3 %s of %s/%s failed: %s", operation, self.bucket, key, exc)

    # ── Store ───────────────────────────────────────────────────────

    async def store(self, key: str, source: BlobSource) -> UploadResult:
        stream = ByteStream.of(source)
        try:
            # read through our own branch; other consumers of ``stream``
            # may already be attached
            branch = stream.tee()
            stream.on_data(lambda data: self.log("Uploading %d bytes to s3", len(data)))
            stream.on_end(lambda: self.log("Finalizing s3-upload"))
        except StreamStateFault as exc:
            self._warn("upload", key, exc)
            raise UploadFault(key, exc, bucket=self.bucket) from exc

        self.log("Creating s3-upload")
        try:
            result = await upload_stream(
                self.client,
                self.bucket,
                key,
                branch,
                part_size=self.config.part_size,
                log=self.log,
            )
        except Exception as exc:
            self._warn("upload", key, exc)
            raise UploadFault(key, exc, bucket=self.bucket) from exc
        finally:
            branch.close()

        self.log("S3-Upload completed successfully: %r", result.to_dict())
        return result

    # ── Retrieve ────────────────────────────────────────────────────

    async def retrieve(self, key: str, sink: ByteSink, *, end: bool = True) -> None:
        try:
            response = await self.client.get_object(Bucket=self.bucket, Key=key)
        except Exception as exc:
            if is_not_found(exc):
                self.log("S3 object %s does not exist", key)
                raise BlobNotFoundFault(key, exc, bucket=self.bucket) from exc
            self._warn("retrieve", key, exc)
            raise RetrieveFault(key, exc, bucket=self.bucket) from exc

        body = response["Body"]
        size = 0
        try:
            while True:
                chunk = await body.read(self.config.chunk_size)
                if not chunk:
                    break
                size += len(chunk)
                await write_to_sink(sink, chunk)
            if end:
                await close_sink(sink)
        except Exception as exc:
            self._warn("retrieve", key, exc)
            raise RetrieveFault(key, exc, bucket=self.bucket) from exc
        finally:
            body.close()

        self.log("Streamed %d bytes of %s out of s3", size, key)

    # ── Copy / Exists / Unlink ──────────────────────────────────────

    async def copy(
        self, source_key: str, dest_key: str, *, acl: Optional[Any] = None,
    ) -> CopyResult:
        params: Dict[str, Any] = {
            "Bucket": self.bucket,
            "Key": dest_key,
            "CopySource": {"Bucket": self.bucket, "Key": source_key},
        }
        if acl is not None:
            params["ACL"] = acl
        try:
            response = await self.client.copy_object(**params)
        except Exception as exc:
            self._warn("copy", source_key, exc)
            raise CopyFault(source_key, dest_key, exc, bucket=self.bucket) from exc

        self.log("Copied %s to %s", source_key, dest_key)
        return CopyResult.from_response(self.bucket, dest_key, response)

    async def exists(self, key: str) -> bool:
        try:
            await self.client.head_object(Bucket=self.bucket, Key=key)
        except Exception as exc:
            if not is_not_found(exc):
                self._warn("existence check", key, exc)
                raise ExistsFault(key, exc, bucket=self.bucket) from exc
        else:
            return True

        # HEAD answers a bare 404 for a missing bucket too
        try:
            await self.client.head_bucket(Bucket=self.bucket)
        except Exception as exc:
            self._warn("existence check", key, exc)
            raise ExistsFault(
                key, exc, bucket=self.bucket, metadata={"bucket_missing": is_not_found(exc)},
            ) from exc
        return False

    async def unlink(self, key: str) -> None:
        try:
            await self.client.delete_object(Bucket=self.bucket, Key=key)
        except Exception as exc:
            self._warn("delete", key, exc)
            raise UnlinkFault(key, exc, bucket=self.bucket) from exc
        self.log("Deleted %s", key)

    # ── Access policy / location ────────────────────────────────────

    async def set_access_policy(self, key: str, policy: Any) -> Dict[str, Any]:
        """
        Proxy to ``put_object_acl``.

        A string is sent as a canned ``ACL``; a mapping as the full
        ``AccessControlPolicy``. Returns the raw response.
        """
        params: Dict[str, Any] = {"Bucket": self.bucket, "Key": key}
        if isinstance(policy, Mapping):
            params["AccessControlPolicy"] = policy
        else:
            params["ACL"] = policy
        try:
            return await self.client.put_object_acl(**params)
        except Exception as exc:
            self._warn("ACL update", key, exc)
            raise AccessPolicyFault(key, exc, bucket=self.bucket) from exc

    def resolve_location(self, key: str) -> str:
        return f"/{self.bucket}/{key}"

    def __repr__(self) -> str:
        return f"S3StorageAdapter(bucket={self.bucket!r})"
