"""admin_auth/lambda_function.py

Lambda endpoint the admin panel calls to check a password before unlocking
editing. The password it accepts is the same credential data_api expects in
the X-Admin-Token header.

Route (via API Gateway proxy):
    POST    /api/auth   body: {"password": "..."}
    OPTIONS /api/auth   (CORS preflight)

Responses:
    200 {"ok": true}        password accepted
    401 {"ok": false}       password rejected
    500 {"error": ...}      no admin password configured

Environment variables:
    ADMIN_PASS / ADMIN_PASS_PREVIOUS / ADMIN_PASS_SECRET
"""

from __future__ import annotations

import logging
from typing import Any, Dict

from mediadb_shared.auth import _admin_configured, _check_password
from mediadb_shared.http_utils import _error, _parse_body, _path_method, _preflight, _response

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logger = logging.getLogger()
logger.setLevel(logging.INFO)

_METHODS = "POST, OPTIONS"


def lambda_handler(event: Dict, context: Any) -> Dict:
    method, _path = _path_method(event)

    # CORS preflight
    if method == "OPTIONS":
        return _preflight(_METHODS)

    if method != "POST":
        return _error(405, "Method not allowed")

    try:
        body = _parse_body(event)
    except ValueError:
        return _error(400, "Invalid JSON")
    password = body.get("password") if isinstance(body, dict) else None

    try:
        if not _admin_configured():
            logger.error("admin auth: no admin password configured")
            return _error(500, "Server misconfigured")
        accepted = _check_password(password)
    except RuntimeError as exc:
        logger.error("admin auth: %s", exc)
        return _error(500, "Server misconfigured")

    if accepted:
        logger.info("admin auth accepted")
        return _response(200, {"ok": True}, methods=_METHODS)

    logger.warning("admin auth rejected")
    return _response(401, {"ok": False}, methods=_METHODS)
