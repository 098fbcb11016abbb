"""
cafstore - pluggable blob storage backends for content-addressable file stores.

The content store decides keys, caching and eviction; a backend only
persists, fetches, relocates and removes blobs.

Example::

    from cafstore import S3StorageAdapter, S3StoreConfig, create_client, S3ClientSettings

    async with create_client(S3ClientSettings.from_env()) as client:
        store = S3StorageAdapter(S3StoreConfig(client=client, bucket="blobs"))
        await store.store("a.txt", b"hello, world!")
        assert await store.exists("a.txt")
"""

__version__ = "0.1.0"

from .faults import (
    AccessPolicyFault,
    BlobNotFoundFault,
    CopyFault,
    ExistsFault,
    Fault,
    FaultDomain,
    InvalidKeyFault,
    MoveFault,
    RetrieveFault,
    Severity,
    StorageConfigFault,
    StorageFault,
    StreamStateFault,
    UnlinkFault,
    UploadFault,
)
from .storage import (
    BaseStorageAdapter,
    BufferSink,
    ByteStream,
    CopyResult,
    FilesystemStorageAdapter,
    S3ClientSettings,
    S3StorageAdapter,
    S3StoreConfig,
    UploadResult,
    create_client,
)

__all__ = [
    "__version__",
    # Backends
    "BaseStorageAdapter",
    "S3StorageAdapter",
    "FilesystemStorageAdapter",
    # Configuration
    "S3StoreConfig",
    "S3ClientSettings",
    "create_client",
    # Streams & results
    "ByteStream",
    "BufferSink",
    "UploadResult",
    "CopyResult",
    # Faults
    "Fault",
    "FaultDomain",
    "Severity",
    "StorageFault",
    "UploadFault",
    "RetrieveFault",
    "BlobNotFoundFault",
    "CopyFault",
    "MoveFault",
    "UnlinkFault",
    "AccessPolicyFault",
    "ExistsFault",
    "InvalidKeyFault",
    "StorageConfigFault",
    "StreamStateFault",
]
