"""
Blob storage backends for content-addressable file stores.

- S3StorageAdapter (aiobotocore)      — cafstore.storage.s3
- FilesystemStorageAdapter (local)    — cafstore.storage.filesystem
"""

from .base import BaseStorageAdapter, BlobSource
from .config import S3ClientSettings, S3StoreConfig, create_client
from .filesystem import FilesystemStorageAdapter
from .results import CopyResult, UploadResult
from .s3 import S3StorageAdapter
from .streams import BufferSink, ByteSink, ByteStream, StreamBranch

__all__ = [
    "BaseStorageAdapter",
    "BlobSource",
    "S3StorageAdapter",
    "FilesystemStorageAdapter",
    "S3StoreConfig",
    "S3ClientSettings",
    "create_client",
    "UploadResult",
    "CopyResult",
    "ByteStream",
    "StreamBranch",
    "ByteSink",
    "BufferSink",
]
