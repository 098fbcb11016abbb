"""
Base storage adapter — the contract every blob backend implements.

A content-addressable file store picks the key for each blob and calls
into a backend only to persist, fetch, relocate or remove it. Backends
implementing this contract are interchangeable.
"""

from __future__ import annotations

import abc
from typing import Any, AsyncIterable, Optional, Union

from ..faults import MoveFault, StorageFault
from .results import CopyResult, UploadResult
from .streams import ByteSink, ByteStream

BlobSource = Union[ByteStream, bytes, AsyncIterable[bytes]]


class BaseStorageAdapter(abc.ABC):
    """Abstract base for blob storage backends."""

    @abc.abstractmethod
    async def store(self, key: str, source: BlobSource) -> UploadResult:
        """
        Store every byte of ``source`` under ``key``.

        The backend reads ``source`` through its own ByteStream branch,
        never directly, so other consumers of the same stream still see
        every byte.
        """

    @abc.abstractmethod
    async def retrieve(self, key: str, sink: ByteSink, *, end: bool = True) -> None:
        """Relay the blob at ``key`` into ``sink``; close the sink if ``end``."""

    @abc.abstractmethod
    async def copy(
        self, source_key: str, dest_key: str, *, acl: Optional[Any] = None,
    ) -> CopyResult:
        """Duplicate ``source_key`` at ``dest_key``. The caller owns the copy."""

    @abc.abstractmethod
    async def exists(self, key: str) -> bool:
        """True if ``key`` holds a blob; only "not found" maps to False."""

    @abc.abstractmethod
    async def unlink(self, key: str) -> None:
        """Delete ``key``. Deleting a missing key succeeds."""

    @abc.abstractmethod
    async def set_access_policy(self, key: str, policy: Any) -> Any:
        """Apply ``policy`` to ``key`` and return the backend's answer."""

    @abc.abstractmethod
    def resolve_location(self, key: str) -> str:
        """Fully-qualified location of ``key``. Performs no I/O."""

    async def move(self, source_key: str, dest_key: str) -> None:
        """
        Copy ``source_key`` to ``dest_key``, then delete ``source_key``.

        The two steps are not atomic and nothing is rolled back:

        - copy fails: ``MoveFault(stage="copy")``, source untouched
        - delete fails: ``MoveFault(stage="delete")``, source still present
          and a duplicate left at ``dest_key``
        """
        try:
            await self.copy(source_key, dest_key)
        except StorageFault as fault:
            raise MoveFault(source_key, dest_key, "copy", fault) from fault
        try:
            await self.unlink(source_key)
        except StorageFault as fault:
            raise MoveFault(source_key, dest_key, "delete", fault) from fault
