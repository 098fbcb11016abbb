"""
Storage configuration.

- S3StoreConfig: options recognised by :class:`S3StorageAdapter`
- S3ClientSettings: how to build an aiobotocore S3 client
- create_client(): aiobotocore client factory
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional

from aiobotocore.config import AioConfig
from aiobotocore.session import get_session

from ..faults import StorageConfigFault
from .streams import DEFAULT_CHUNK_SIZE

logger = logging.getLogger("cafstore.storage.s3")

# S3 rejects multipart parts smaller than this (except the last one)
MIN_PART_SIZE = 5 * 1024 * 1024
DEFAULT_PART_SIZE = 8 * 1024 * 1024


@dataclass(frozen=True)
class S3StoreConfig:
    """
    Adapter configuration.

    Attributes:
        client: Pre-authenticated async S3 client (aiobotocore)
        bucket: The single bucket every operation is scoped to
        log: printf-style diagnostic function ``log(fmt, *args)``;
            defaults to the ``cafstore.storage.s3`` debug logger
        part_size: Multipart part size in bytes (>= 5 MiB)
        chunk_size: Read size when relaying a blob to a sink
    """

    client: Any
    bucket: str
    log: Optional[Callable[..., None]] = None
    part_size: int = DEFAULT_PART_SIZE
    chunk_size: int = DEFAULT_CHUNK_SIZE

    def __post_init__(self) -> None:
        if self.client is None:
            raise StorageConfigFault("client", "an S3 client is required")
        if not isinstance(self.bucket, str) or not self.bucket:
            raise StorageConfigFault("bucket", "must be a non-empty string")
        if "/" in self.bucket:
            raise StorageConfigFault("bucket", "must not contain '/'")
        if self.part_size < MIN_PART_SIZE:
            raise StorageConfigFault(
                "part_size", f"must be at least {MIN_PART_SIZE} bytes, got {self.part_size}"
            )
        if self.chunk_size < 1:
            raise StorageConfigFault("chunk_size", "must be positive")
        if self.log is None:
            object.__setattr__(self, "log", logger.debug)


@dataclass(frozen=True)
class S3ClientSettings:
    """Connection settings for an aiobotocore S3 client."""

    region_name: str = "us-east-1"
    endpoint_url: Optional[str] = None  # for MinIO and other S3-compatible services
    aws_access_key_id: Optional[str] = None
    aws_secret_access_key: Optional[str] = None
    aws_session_token: Optional[str] = None
    bucket: Optional[str] = None
    connect_timeout: float = 10.0
    read_timeout: float = 60.0

    @classmethod
    def from_env(
        cls,
        prefix: str = "CAFS_S3_",
        environ: Optional[Mapping[str, str]] = None,
    ) -> S3ClientSettings:
        """
        Build settings from environment variables.

        Recognised variables (with the default prefix): ``CAFS_S3_REGION``,
        ``CAFS_S3_ENDPOINT_URL``, ``CAFS_S3_ACCESS_KEY_ID``,
        ``CAFS_S3_SECRET_ACCESS_KEY``, ``CAFS_S3_SESSION_TOKEN``,
        ``CAFS_S3_BUCKET``, ``CAFS_S3_CONNECT_TIMEOUT``,
        ``CAFS_S3_READ_TIMEOUT``. Unset credentials fall back to botocore's
        own discovery (environment, shared config, IAM role).
        """
        env = os.environ if environ is None else environ

        def get(name: str) -> Optional[str]:
            return env.get(prefix + name) or None

        def get_float(name: str, default: float) -> float:
            raw = get(name)
            if raw is None:
                return default
            try:
                return float(raw)
            except ValueError:
                raise StorageConfigFault(prefix + name, f"expected a number, got {raw!r}")

        return cls(
            region_name=get("REGION") or cls.region_name,
            endpoint_url=get("ENDPOINT_URL"),
            aws_access_key_id=get("ACCESS_KEY_ID"),
            aws_secret_access_key=get("SECRET_ACCESS_KEY"),
            aws_session_token=get("SESSION_TOKEN"),
            bucket=get("BUCKET"),
            connect_timeout=get_float("CONNECT_TIMEOUT", cls.connect_timeout),
            read_timeout=get_float("READ_TIMEOUT", cls.read_timeout),
        )

    def client_kwargs(self) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {
            "region_name": self.region_name,
            "config": AioConfig(
                connect_timeout=self.connect_timeout,
                read_timeout=self.read_timeout,
            ),
        }
        if self.endpoint_url:
            kwargs["endpoint_url"] = self.endpoint_url
        if self.aws_access_key_id:
            kwargs["aws_access_key_id"] = self.aws_access_key_id
            kwargs["aws_secret_access_key"] = self.aws_secret_access_key
        if self.aws_session_token:
            kwargs["aws_session_token"] = self.aws_session_token
        return kwargs


def create_client(settings: S3ClientSettings):
    """
    Return the aiobotocore client context manager for ``settings``.

    Usage::

        async with create_client(settings) as client:
            adapter = S3StorageAdapter(S3StoreConfig(client=client, bucket="blobs"))
    """
    session = get_session()
    return session.create_client("s3", **settings.client_kwargs())
