"""
Storage Fault Domain — structured errors for blob storage backends.

Every contract operation has its own fault so callers can tell which
operation failed without inspecting messages.

Fault Taxonomy::

    StorageFault (base)
    ├── UploadFault
    ├── RetrieveFault
    │   └── BlobNotFoundFault
    ├── CopyFault
    ├── MoveFault
    ├── UnlinkFault
    ├── AccessPolicyFault
    ├── ExistsFault
    └── InvalidKeyFault
    StorageConfigFault
    StreamStateFault
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from botocore.exceptions import ConnectionError as BotocoreConnectionError
from botocore.exceptions import HTTPClientError

from .core import Fault, FaultDomain, Severity

# ── Remote error classification ──────────────────────────────────────────

NOT_FOUND_CODES = frozenset({
    "404",
    "NoSuchKey",
    "NotFound",
})

NOT_FOUND_MESSAGES = frozenset({
    "Object does not exist",
    "The specified key does not exist.",
})

_TRANSIENT_CODES = frozenset({
    "500",
    "503",
    "InternalError",
    "RequestTimeout",
    "ServiceUnavailable",
    "SlowDown",
    "Throttling",
    "ThrottlingException",
})


def error_code(error: BaseException) -> str:
    """Return the remote error code of a botocore ``ClientError`` (or "")."""
    response = getattr(error, "response", None)
    if not isinstance(response, dict):
        return ""
    code = response.get("Error", {}).get("Code", "")
    if not code:
        status = response.get("ResponseMetadata", {}).get("HTTPStatusCode")
        code = str(status) if status else ""
    return str(code)


def error_message(error: BaseException) -> str:
    response = getattr(error, "response", None)
    if isinstance(response, dict):
        message = response.get("Error", {}).get("Message")
        if message:
            return str(message)
    return str(error)


def is_not_found(error: BaseException) -> bool:
    """True only for the remote "object does not exist" condition."""
    if error_code(error) in NOT_FOUND_CODES:
        return True
    return error_message(error) in NOT_FOUND_MESSAGES


def is_transient(error: BaseException) -> bool:
    if isinstance(error, (HTTPClientError, BotocoreConnectionError, ConnectionError, TimeoutError)):
        return True
    return error_code(error) in _TRANSIENT_CODES


# ── Base ─────────────────────────────────────────────────────────────────

class StorageFault(Fault):
    """Base fault for blob storage operations."""

    operation: str = "storage"

    def __init__(
        self,
        code: str,
        message: str,
        *,
        key: str = "",
        bucket: str = "",
        cause: Optional[BaseException] = None,
        severity: Severity = Severity.ERROR,
        metadata: Optional[Dict[str, Any]] = None,
        **kwargs: Any,
    ):
        meta: Dict[str, Any] = {"operation": self.operation, "key": key}
        if bucket:
            meta["bucket"] = bucket
        if cause is not None:
            meta["remote_code"] = error_code(cause)
            meta["remote_message"] = error_message(cause)
        meta.update(metadata or {})
        kwargs.setdefault("domain", FaultDomain.STORAGE)
        kwargs.setdefault("retryable", cause is not None and is_transient(cause))
        super().__init__(
            code=code,
            message=message,
            severity=severity,
            metadata=meta,
            **kwargs,
        )
        self.key = key
        self.bucket = bucket


def _reason(cause: Optional[BaseException]) -> str:
    if cause is None:
        return ""
    return f": {error_message(cause)}"


# ── Operation Faults ─────────────────────────────────────────────────────

class UploadFault(StorageFault):
    """Storing a blob failed (remote error or source stream error)."""

    operation = "store"

    def __init__(self, key: str, cause: Optional[BaseException] = None, **kwargs: Any):
        super().__init__(
            code="BLOB_UPLOAD_FAILED",
            message=f"Failed to store blob '{key}'{_reason(cause)}",
            key=key,
            cause=cause,
            **kwargs,
        )


class RetrieveFault(StorageFault):
    """Streaming a blob out of storage failed."""

    operation = "retrieve"

    def __init__(self, key: str, cause: Optional[BaseException] = None, **kwargs: Any):
        kwargs.setdefault("code", "BLOB_RETRIEVE_FAILED")
        kwargs.setdefault("message", f"Failed to retrieve blob '{key}'{_reason(cause)}")
        super().__init__(key=key, cause=cause, **kwargs)


class BlobNotFoundFault(RetrieveFault):
    """Requested key does not exist in the container."""

    def __init__(self, key: str, cause: Optional[BaseException] = None, **kwargs: Any):
        super().__init__(
            key,
            cause,
            code="BLOB_NOT_FOUND",
            message=f"Blob '{key}' not found",
            severity=Severity.WARN,
            **kwargs,
        )


class CopyFault(StorageFault):
    """Server-side copy failed (missing source or remote error)."""

    operation = "copy"

    def __init__(
        self,
        source_key: str,
        dest_key: str,
        cause: Optional[BaseException] = None,
        **kwargs: Any,
    ):
        extra_meta = kwargs.pop("metadata", {})
        super().__init__(
            code="BLOB_COPY_FAILED",
            message=f"Failed to copy blob '{source_key}' to '{dest_key}'{_reason(cause)}",
            key=source_key,
            cause=cause,
            metadata={"dest_key": dest_key, **extra_meta},
            **kwargs,
        )
        self.dest_key = dest_key


class MoveFault(StorageFault):
    """
    Move (copy then delete) failed.

    ``stage`` is ``"copy"`` when the source was left untouched, or
    ``"delete"`` when a duplicate now exists at ``dest_key`` and the source
    is still present.
    """

    operation = "move"

    def __init__(
        self,
        source_key: str,
        dest_key: str,
        stage: str,
        cause: Optional[BaseException] = None,
        **kwargs: Any,
    ):
        extra_meta = kwargs.pop("metadata", {})
        meta = {
            "dest_key": dest_key,
            "stage": stage,
            "duplicate_left": stage == "delete",
            **extra_meta,
        }
        super().__init__(
            code="BLOB_MOVE_FAILED",
            message=f"Failed to move blob '{source_key}' to '{dest_key}' during {stage}",
            key=source_key,
            metadata=meta,
            **kwargs,
        )
        # the wrapped fault already carries the remote details
        if cause is not None:
            self.metadata["cause_code"] = getattr(cause, "code", type(cause).__name__)
            self.retryable = getattr(cause, "retryable", False)
        self.dest_key = dest_key
        self.stage = stage


class UnlinkFault(StorageFault):
    """Deleting a blob failed with a genuine remote error."""

    operation = "unlink"

    def __init__(self, key: str, cause: Optional[BaseException] = None, **kwargs: Any):
        super().__init__(
            code="BLOB_UNLINK_FAILED",
            message=f"Failed to delete blob '{key}'{_reason(cause)}",
            key=key,
            cause=cause,
            **kwargs,
        )


class AccessPolicyFault(StorageFault):
    """Updating a blob's access policy failed."""

    operation = "set_access_policy"

    def __init__(self, key: str, cause: Optional[BaseException] = None, **kwargs: Any):
        super().__init__(
            code="BLOB_ACL_FAILED",
            message=f"Failed to set access policy on blob '{key}'{_reason(cause)}",
            key=key,
            cause=cause,
            **kwargs,
        )


class ExistsFault(StorageFault):
    """Existence check failed for a reason other than not-found."""

    operation = "exists"

    def __init__(self, key: str, cause: Optional[BaseException] = None, **kwargs: Any):
        super().__init__(
            code="BLOB_EXISTS_FAILED",
            message=f"Failed to check whether blob '{key}' exists{_reason(cause)}",
            key=key,
            cause=cause,
            **kwargs,
        )


class InvalidKeyFault(StorageFault):
    """Key cannot be mapped into the backend's namespace."""

    operation = "resolve_location"

    def __init__(self, key: str, reason: str = "", **kwargs: Any):
        extra_meta = kwargs.pop("metadata", {})
        super().__init__(
            code="BLOB_KEY_INVALID",
            message=f"Invalid blob key '{key}': {reason}",
            key=key,
            metadata={"reason": reason, **extra_meta},
            **kwargs,
        )


# ── Configuration & Stream Faults ────────────────────────────────────────

class StorageConfigFault(Fault):
    """Adapter or client configuration is invalid."""

    def __init__(self, field: str, reason: str, **kwargs: Any):
        extra_meta = kwargs.pop("metadata", {})
        super().__init__(
            code="STORAGE_CONFIG_INVALID",
            message=f"Invalid storage configuration '{field}': {reason}",
            domain=FaultDomain.CONFIG,
            metadata={"field": field, "reason": reason, **extra_meta},
            **kwargs,
        )
        self.field = field


class StreamStateFault(Fault):
    """A ByteStream was used in a way its current state does not allow."""

    def __init__(self, reason: str, **kwargs: Any):
        extra_meta = kwargs.pop("metadata", {})
        super().__init__(
            code="STREAM_STATE_INVALID",
            message=f"Invalid stream state: {reason}",
            domain=FaultDomain.IO,
            metadata={"reason": reason, **extra_meta},
            **kwargs,
        )
