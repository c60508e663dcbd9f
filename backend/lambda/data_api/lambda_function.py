"""data_api/lambda_function.py

Lambda API serving the media database document (series, characters,
episodes, settings) to the public site and the admin panel.

Routes (via API Gateway proxy):
    GET     /api/data              — document with inline image payloads stripped
    GET     /api/data?admin=1      — full document (admin credential required)
    POST    /api/data              — merge an admin edit into the stored document
    POST    /api/data?purge=1      — replace keys verbatim, no image restoration
    OPTIONS /api/data              — CORS preflight

Auth:
    Admin credential in the X-Admin-Token header (see mediadb_shared.auth).

Environment variables:
    DATA_STORE_BACKEND     dynamodb | rest | github (default: dynamodb)
    ADMIN_PASS             admin password (or ADMIN_PASS_SECRET)
    See mediadb_shared.config for the store-specific variables.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from mediadb_shared.auth import _is_admin
from mediadb_shared.config import DATA_STORE_BACKEND, build_schema, build_store
from mediadb_shared.errors import SyncError
from mediadb_shared.http_utils import (
    _error,
    _flag,
    _parse_body,
    _path_method,
    _preflight,
    _query_params,
    _response,
    _sync_error,
)
from mediadb_shared.sync import DocumentSync

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logger = logging.getLogger()
logger.setLevel(logging.INFO)

_NO_STORE = {"Cache-Control": "no-store"}

# ---------------------------------------------------------------------------
# Sync singleton (module-level for container reuse; owns the read cache)
# ---------------------------------------------------------------------------

_sync: Optional[DocumentSync] = None


def _get_sync() -> DocumentSync:
    global _sync
    if _sync is None:
        _sync = DocumentSync(build_store(), build_schema())
    return _sync


# ---------------------------------------------------------------------------
# Route handlers
# ---------------------------------------------------------------------------


def _handle_read(params: Dict[str, str], privileged: bool) -> Dict[str, Any]:
    full = _flag(params, "admin")
    if full and not privileged:
        return _error(401, "Admin credential required for the full document.")
    document = _get_sync().read(privileged=full)
    return _response(200, document, extra_headers=_NO_STORE)


def _handle_write(event: Dict[str, Any], params: Dict[str, str], privileged: bool) -> Dict[str, Any]:
    try:
        incoming = _parse_body(event)
    except ValueError:
        return _error(400, "Invalid JSON")
    bypass_merge = _flag(params, "purge")
    result = _get_sync().write(incoming, privileged=privileged, bypass_merge=bypass_merge)
    return _response(200, result, extra_headers=_NO_STORE)


# ---------------------------------------------------------------------------
# Handler
# ---------------------------------------------------------------------------


def lambda_handler(event: Dict, context: Any) -> Dict:
    method, path = _path_method(event)

    # CORS preflight
    if method == "OPTIONS":
        return _preflight()

    if method not in ("GET", "POST"):
        return _error(405, "Method not allowed")

    params = _query_params(event)
    try:
        privileged = _is_admin(event)
        if method == "GET":
            return _handle_read(params, privileged)
        return _handle_write(event, params, privileged)
    except SyncError as exc:
        logger.warning("data_api %s %s failed: %s %s", method, path, exc.code, exc.message)
        return _sync_error(exc)
    except (RuntimeError, ValueError) as exc:
        logger.error("data_api misconfigured (backend=%s): %s", DATA_STORE_BACKEND, exc)
        return _error(500, "Server misconfigured")
