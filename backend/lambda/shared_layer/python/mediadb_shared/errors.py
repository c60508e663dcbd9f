"""mediadb_shared.errors — Error taxonomy for document sync and store access.

Each error carries the HTTP status, envelope code and retry hint that the
Lambda handlers copy into the standard error response.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, Optional


class SyncError(Exception):
    """Base class for failures surfaced by the sync core."""

    status_code = 500
    code = "INTERNAL_ERROR"
    retryable = False

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = {k: v for k, v in details.items() if v is not None}


class InvalidPayload(SyncError):
    """Request body is not a JSON object."""

    status_code = 400
    code = "INVALID_INPUT"


class Unauthorized(SyncError):
    """A protected key was touched without the admin credential."""

    status_code = 401
    code = "PERMISSION_DENIED"

    def __init__(self, message: str, keys: Optional[Iterable[str]] = None, **details: Any) -> None:
        super().__init__(message, keys=sorted(keys) if keys else None, **details)


class StoreError(SyncError):
    """Backing store failure. `written_keys` lists keys persisted before the failure."""

    def __init__(
        self,
        message: str,
        key: Optional[str] = None,
        status: Optional[int] = None,
        written_keys: Optional[Iterable[str]] = None,
        **details: Any,
    ) -> None:
        super().__init__(
            message,
            key=key,
            upstream_status=status,
            written_keys=list(written_keys) if written_keys else None,
            **details,
        )
        self.key = key
        self.status = status
        self.written_keys = list(written_keys or [])


class StoreUnavailable(StoreError):
    status_code = 502
    code = "UPSTREAM_ERROR"
    retryable = True


class StoreWriteConflict(StoreError):
    """The version token presented with a write is stale. Re-read and retry."""

    status_code = 409
    code = "CONFLICT"
