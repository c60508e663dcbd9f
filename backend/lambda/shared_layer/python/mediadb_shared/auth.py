"""mediadb_shared.auth — Admin credential checks for the media database Lambdas.

The admin credential is a shared password. Browsers send it in the
`X-Admin-Token` header; the login endpoint receives it in the JSON body.

Reads environment variables:
    ADMIN_PASS            — active admin password
    ADMIN_PASS_PREVIOUS   — optional rollover password accepted during rotation
    ADMIN_PASS_SECRET     — optional Secrets Manager secret id holding the password
"""

from __future__ import annotations

import hmac
import logging
import os
from typing import Any, Dict, Optional

from botocore.exceptions import BotoCoreError, ClientError

from .aws_clients import _get_secret_string

logger = logging.getLogger(__name__)


def _normalize_api_keys(*raw_values: str) -> tuple[str, ...]:
    """Return deduplicated, non-empty key values from scalar/csv env sources."""
    keys: list[str] = []
    seen: set[str] = set()
    for raw in raw_values:
        if not raw:
            continue
        for part in str(raw).split(","):
            key = part.strip()
            if not key or key in seen:
                continue
            seen.add(key)
            keys.append(key)
    return tuple(keys)


# ---------------------------------------------------------------------------
# Configuration (read from env; callers may override at import time)
# ---------------------------------------------------------------------------

ADMIN_PASS: str = os.environ.get("ADMIN_PASS", "")
ADMIN_PASS_PREVIOUS: str = os.environ.get("ADMIN_PASS_PREVIOUS", "")
ADMIN_PASS_SECRET: str = os.environ.get("ADMIN_PASS_SECRET", "")

ADMIN_TOKEN_HEADER = "x-admin-token"


def _admin_passwords() -> tuple[str, ...]:
    """All passwords currently accepted as the admin credential."""
    secret_value = ""
    if ADMIN_PASS_SECRET:
        try:
            secret_value = _get_secret_string(ADMIN_PASS_SECRET).strip()
        except (BotoCoreError, ClientError) as exc:
            raise RuntimeError(f"Failed reading admin password secret: {exc}") from exc
    return _normalize_api_keys(secret_value, ADMIN_PASS, ADMIN_PASS_PREVIOUS)


def _admin_configured() -> bool:
    return bool(_admin_passwords())


def _check_password(candidate: Optional[str]) -> bool:
    """Constant-time comparison of `candidate` against every accepted password."""
    if not candidate or not isinstance(candidate, str):
        return False
    matched = False
    for password in _admin_passwords():
        if hmac.compare_digest(candidate.encode("utf-8"), password.encode("utf-8")):
            matched = True
    return matched


def _extract_admin_token(event: Dict[str, Any]) -> Optional[str]:
    headers = event.get("headers") or {}
    for name, value in headers.items():
        if str(name).lower() == ADMIN_TOKEN_HEADER and value:
            return str(value).strip()
    return None


def _is_admin(event: Dict[str, Any]) -> bool:
    """True when the request presents a valid admin credential."""
    token = _extract_admin_token(event)
    if not token:
        return False
    if _check_password(token):
        return True
    logger.warning("auth: admin token presented but rejected")
    return False
