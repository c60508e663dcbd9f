"""blob_cleanup/lambda_function.py

Admin-only maintenance endpoint that removes inline base64 image blobs from
every entity collection in one server-side operation. Dry run unless
`write=1` is passed. Safe to run multiple times.

Route (via API Gateway proxy):
    GET|POST /api/cleanup[?write=1]
    OPTIONS  /api/cleanup             (CORS preflight)

Auth:
    X-Admin-Token header (see mediadb_shared.auth).

Response:
    text/plain progress log; 500 with the partial log when the store fails.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from mediadb_shared.auth import _is_admin
from mediadb_shared.cleanup import run_cleanup
from mediadb_shared.config import build_schema, build_store
from mediadb_shared.errors import SyncError
from mediadb_shared.http_utils import _flag, _path_method, _preflight, _query_params, _text_response
from mediadb_shared.sync import DocumentSync

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logger = logging.getLogger()
logger.setLevel(logging.INFO)

_sync: Optional[DocumentSync] = None


def _get_sync() -> DocumentSync:
    global _sync
    if _sync is None:
        # Maintenance reads must see the live store, not a cached snapshot.
        _sync = DocumentSync(build_store(cache_ttl=0), build_schema())
    return _sync


def lambda_handler(event: Dict, context: Any) -> Dict:
    method, _path = _path_method(event)

    if method == "OPTIONS":
        return _preflight()
    if method not in ("GET", "POST"):
        return _text_response(405, "Method not allowed")

    try:
        authorized = _is_admin(event)
    except RuntimeError as exc:
        logger.error("blob cleanup: %s", exc)
        return _text_response(500, "Server misconfigured")
    if not authorized:
        return _text_response(401, "Unauthorized. Send the admin password in the X-Admin-Token header.")

    write = _flag(_query_params(event), "write")
    lines: list[str] = []
    try:
        run_cleanup(_get_sync(), write=write, log=lines.append)
    except SyncError as exc:
        lines.append(f"ERROR: {exc.message}")
        if getattr(exc, "written_keys", None):
            lines.append(f"Already written before the failure: {', '.join(exc.written_keys)}")
        logger.error("blob cleanup failed: %s", exc.message)
        return _text_response(500, "\n".join(lines))
    except ValueError as exc:
        logger.error("blob cleanup misconfigured: %s", exc)
        return _text_response(500, "Server misconfigured")

    return _text_response(200, "\n".join(lines))
