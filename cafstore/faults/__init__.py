"""
cafstore faults - structured fault handling.

Errors raised by storage backends are typed fault signals carrying a
stable code, a domain, a severity and metadata describing the failed call.
The original remote exception is always chained as ``__cause__``.
"""

from .core import (
    Fault,
    FaultDomain,
    Severity,
)

from .storage import (
    AccessPolicyFault,
    BlobNotFoundFault,
    CopyFault,
    ExistsFault,
    InvalidKeyFault,
    MoveFault,
    RetrieveFault,
    StorageConfigFault,
    StorageFault,
    StreamStateFault,
    UnlinkFault,
    UploadFault,
    error_code,
    is_not_found,
)

__all__ = [
    # Core types
    "Fault",
    "FaultDomain",
    "Severity",

    # Storage taxonomy
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

    # Classification helpers
    "error_code",
    "is_not_found",
]
