"""
Filesystem storage adapter — stores blobs on local disk.
"""

from __future__ import annotations

import logging
import os
import shutil
import stat
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

import aiofiles

from ..faults import (
    AccessPolicyFault,
    BlobNotFoundFault,
    CopyFault,
    ExistsFault,
    InvalidKeyFault,
    RetrieveFault,
    StreamStateFault,
    UnlinkFault,
    UploadFault,
)
from .base import BaseStorageAdapter, BlobSource
from .results import CopyResult, UploadResult
from .streams import DEFAULT_CHUNK_SIZE, ByteSink, ByteStream, close_sink, write_to_sink

logger = logging.getLogger("cafstore.storage.filesystem")


class FilesystemStorageAdapter(BaseStorageAdapter):
    """
    Store blobs as files below a root directory.

    Keys map to paths relative to ``root``; ``"ab/cdef.txt"`` lands in
    ``<root>/ab/cdef.txt``. Writes go to a temporary file that is renamed
    into place, so readers never observe a partial blob.
    """

    POLICY_MODES: Dict[str, int] = {
        "private": 0o600,
        "public-read": 0o644,
        "public-read-write": 0o666,
    }

    def __init__(self, root: str = ".cafs-blobs", *, chunk_size: int = DEFAULT_CHUNK_SIZE):
        self.root = Path(root).resolve()
        self.root.mkdir(parents=True, exist_ok=True)
        self.chunk_size = chunk_size

    def _path(self, key: str) -> Path:
        if not key:
            raise InvalidKeyFault(key, "key must not be empty")
        path = (self.root / key).resolve()
        if self.root not in path.parents:
            raise InvalidKeyFault(key, "key escapes the storage root")
        return path

    @staticmethod
    def _temp_path(path: Path) -> Path:
        return path.with_name(f".{path.name}.{uuid.uuid4().hex}.tmp")

    async def store(self, key: str, source: BlobSource) -> UploadResult:
        path = self._path(key)
        stream = ByteStream.of(source)
        try:
            branch = stream.tee()
        except StreamStateFault as exc:
            raise UploadFault(key, exc) from exc

        tmp = self._temp_path(path)
        size = 0
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(tmp, "wb") as fh:
                async for chunk in branch:
                    await fh.write(chunk)
                    size += len(chunk)
            os.replace(tmp, path)
        except Exception as exc:
            tmp.unlink(missing_ok=True)
            logger.warning("Storing blob %s failed: %s", key, exc)
            raise UploadFault(key, exc) from exc
        finally:
            branch.close()

        logger.debug("Stored blob %s (%d bytes)", key, size)
        return UploadResult(location=str(path), bucket=str(self.root), key=key, size=size)

    async def retrieve(self, key: str, sink: ByteSink, *, end: bool = True) -> None:
        path = self._path(key)
        try:
            fh = await aiofiles.open(path, "rb")
        except FileNotFoundError as exc:
            raise BlobNotFoundFault(key, exc) from exc
        except OSError as exc:
            raise RetrieveFault(key, exc) from exc

        try:
            async with fh:
                while True:
                    chunk = await fh.read(self.chunk_size)
                    if not chunk:
                        break
                    await write_to_sink(sink, chunk)
            if end:
                await close_sink(sink)
        except Exception as exc:
            logger.warning("Retrieving blob %s failed: %s", key, exc)
            raise RetrieveFault(key, exc) from exc

    async def copy(
        self, source_key: str, dest_key: str, *, acl: Optional[Any] = None,
    ) -> CopyResult:
        src = self._path(source_key)
        dest = self._path(dest_key)
        tmp = self._temp_path(dest)
        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(src, tmp)
            if acl is not None:
                os.chmod(tmp, self._mode_for(dest_key, acl))
            os.replace(tmp, dest)
            modified = dest.stat().st_mtime
        except (OSError, AccessPolicyFault) as exc:
            tmp.unlink(missing_ok=True)
            raise CopyFault(source_key, dest_key, exc) from exc

        return CopyResult(
            bucket=str(self.root),
            key=dest_key,
            last_modified=datetime.fromtimestamp(modified, tz=timezone.utc),
        )

    async def exists(self, key: str) -> bool:
        path = self._path(key)
        try:
            info = path.stat()
        except (FileNotFoundError, NotADirectoryError):
            return False
        except OSError as exc:
            raise ExistsFault(key, exc) from exc
        return stat.S_ISREG(info.st_mode)

    async def unlink(self, key: str) -> None:
        try:
            self._path(key).unlink(missing_ok=True)
        except OSError as exc:
            raise UnlinkFault(key, exc) from exc

    def _mode_for(self, key: str, policy: Any) -> int:
        if isinstance(policy, int) and not isinstance(policy, bool):
            return policy
        if isinstance(policy, str) and policy in self.POLICY_MODES:
            return self.POLICY_MODES[policy]
        raise AccessPolicyFault(key, ValueError(f"unsupported access policy {policy!r}"))

    async def set_access_policy(self, key: str, policy: Any) -> int:
        """Apply a canned policy or an integer mode; return the new mode."""
        mode = self._mode_for(key, policy)
        try:
            os.chmod(self._path(key), mode)
        except OSError as exc:
            raise AccessPolicyFault(key, exc) from exc
        return mode

    def resolve_location(self, key: str) -> str:
        return str(self._path(key))

    def __repr__(self) -> str:
        return f"FilesystemStorageAdapter(root={str(self.root)!r})"
