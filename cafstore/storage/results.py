"""
Result types returned by storage backends.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional


@dataclass
class UploadResult:
    """Result of ``store()`` once the backend confirmed the commit."""

    location: str
    bucket: str
    key: str
    size: int
    etag: Optional[str] = None
    version_id: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "location": self.location,
            "bucket": self.bucket,
            "key": self.key,
            "size": self.size,
            "etag": self.etag,
            "version_id": self.version_id,
        }


@dataclass
class CopyResult:
    """Metadata reported for a server-side copy."""

    bucket: str
    key: str
    etag: Optional[str] = None
    last_modified: Optional[datetime] = None
    version_id: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_response(cls, bucket: str, key: str, response: Dict[str, Any]) -> CopyResult:
        details = response.get("CopyObjectResult", {})
        return cls(
            bucket=bucket,
            key=key,
            etag=details.get("ETag"),
            last_modified=details.get("LastModified"),
            version_id=response.get("VersionId"),
            raw=response,
        )
