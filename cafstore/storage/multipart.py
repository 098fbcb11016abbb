"""
Managed upload of a byte stream whose length is not known up front.

Blobs smaller than one part go up with a single ``put_object``; larger
ones use the S3 multipart API, buffering at most one part in memory.
A failed multipart upload is aborted so no uncommitted parts linger.
"""

from __future__ import annotations

import logging
from typing import Any, AsyncIterable, Callable, Dict, List, Optional
from urllib.parse import quote

from .results import UploadResult

logger = logging.getLogger("cafstore.storage.multipart")


def object_location(client: Any, bucket: str, key: str) -> str:
    """Public URL of ``key`` on the client's endpoint, or an ``s3://`` URI."""
    endpoint = getattr(getattr(client, "meta", None), "endpoint_url", None)
    if endpoint:
        return f"{endpoint.rstrip('/')}/{bucket}/{quote(key)}"
    return f"s3://{bucket}/{key}"


class MultipartUpload:
    """State of one in-flight multipart upload."""

    def __init__(self, client: Any, bucket: str, key: str, log: Callable[..., None]):
        self.client = client
        self.bucket = bucket
        self.key = key
        self.log = log
        self.upload_id: Optional[str] = None
        self.parts: List[Dict[str, Any]] = []

    async def begin(self) -> None:
        response = await self.client.create_multipart_upload(Bucket=self.bucket, Key=self.key)
        self.upload_id = response["UploadId"]
        self.log("Started multipart upload %s for %s", self.upload_id, self.key)

    async def send_part(self, data: bytes) -> None:
        number = len(self.parts) + 1
        response = await self.client.upload_part(
            Bucket=self.bucket,
            Key=self.key,
            UploadId=self.upload_id,
            PartNumber=number,
            Body=data,
        )
        self.parts.append({"ETag": response["ETag"], "PartNumber": number})
        self.log("Uploaded part %d (%d bytes) of %s", number, len(data), self.key)

    async def complete(self) -> Dict[str, Any]:
        return await self.client.complete_multipart_upload(
            Bucket=self.bucket,
            Key=self.key,
            UploadId=self.upload_id,
            MultipartUpload={"Parts": self.parts},
        )

    async def abort(self) -> None:
        try:
            await self.client.abort_multipart_upload(
                Bucket=self.bucket, Key=self.key, UploadId=self.upload_id,
            )
            self.log("Aborted multipart upload %s for %s", self.upload_id, self.key)
        except Exception as exc:
            # the caller re-raises the original failure
            logger.warning(
                "Could not abort multipart upload %s for %s/%s: %s",
                self.upload_id, self.bucket, self.key, exc,
            )


async def upload_stream(
    client: Any,
    bucket: str,
    key: str,
    chunks: AsyncIterable[bytes],
    *,
    part_size: int,
    log: Callable[..., None],
) -> UploadResult:
    """
    Upload every chunk of ``chunks`` to ``bucket``/``key``.

    Returns once the object is committed. Errors from the remote client
    or from ``chunks`` propagate unchanged.
    """
    buffer = bytearray()
    size = 0
    upload: Optional[MultipartUpload] = None

    try:
        async for chunk in chunks:
            buffer += chunk
            size += len(chunk)
            while len(buffer) >= part_size:
                if upload is None:
                    upload = MultipartUpload(client, bucket, key, log)
                    await upload.begin()
                part = bytes(buffer[:part_size])
                del buffer[:part_size]
                await upload.send_part(part)

        if upload is None:
            response = await client.put_object(Bucket=bucket, Key=key, Body=bytes(buffer))
            return UploadResult(
                location=object_location(client, bucket, key),
                bucket=bucket,
                key=key,
                size=size,
                etag=response.get("ETag"),
                version_id=response.get("VersionId"),
                raw=response,
            )

        if buffer:
            await upload.send_part(bytes(buffer))
            buffer.clear()
        response = await upload.complete()
    except Exception:
        if upload is not None and upload.upload_id is not None:
            await upload.abort()
        raise

    return UploadResult(
        location=response.get("Location") or object_location(client, bucket, key),
        bucket=bucket,
        key=key,
        size=size,
        etag=response.get("ETag"),
        version_id=response.get("VersionId"),
        raw=response,
    )
