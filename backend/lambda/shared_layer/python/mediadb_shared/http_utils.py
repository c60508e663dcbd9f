"""mediadb_shared.http_utils — HTTP response helpers with CORS.

Standard response envelope and error formatting used by all media database
API Lambda functions.
"""

from __future__ import annotations

import base64
import json
import logging
import os
from decimal import Decimal
from typing import Any, Dict, Optional, Tuple

from .errors import SyncError

logger = logging.getLogger(__name__)

CORS_ORIGIN = os.environ.get("CORS_ORIGIN", "*")


def _cors_headers(methods: str = "GET, POST, OPTIONS") -> Dict[str, str]:
    return {
        "Access-Control-Allow-Origin": CORS_ORIGIN,
        "Access-Control-Allow-Methods": methods,
        "Access-Control-Allow-Headers": "Content-Type, X-Admin-Token",
    }


def _json_default(obj: Any) -> Any:
    if isinstance(obj, Decimal):
        if obj % 1 == 0:
            return int(obj)
        return float(obj)
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def _response(
    status_code: int,
    body: Any,
    extra_headers: Optional[Dict[str, str]] = None,
    methods: str = "GET, POST, OPTIONS",
) -> Dict[str, Any]:
    """Build a standard API Gateway response with CORS headers."""
    headers = {**_cors_headers(methods), "Content-Type": "application/json"}
    if extra_headers:
        headers.update(extra_headers)
    return {
        "statusCode": status_code,
        "headers": headers,
        "body": json.dumps(body, default=_json_default),
    }


def _text_response(status_code: int, text: str, methods: str = "GET, POST, OPTIONS") -> Dict[str, Any]:
    return {
        "statusCode": status_code,
        "headers": {**_cors_headers(methods), "Content-Type": "text/plain"},
        "body": text,
    }


def _preflight(methods: str = "GET, POST, OPTIONS") -> Dict[str, Any]:
    return {"statusCode": 204, "headers": _cors_headers(methods), "body": ""}


def _error(status_code: int, message: str, **extra: Any) -> Dict[str, Any]:
    """Build a standard error response.

    Args:
        status_code: HTTP status code.
        message: Human-readable error message.
        **extra: `code` / `retryable` override the envelope defaults; any
            other field lands in the envelope details and the top level.
    """
    code = str(extra.pop("code", "") or "").strip().upper()
    if not code:
        if status_code == 400:
            code = "INVALID_INPUT"
        elif status_code in (401, 403):
            code = "PERMISSION_DENIED"
        elif status_code == 404:
            code = "NOT_FOUND"
        elif status_code == 405:
            code = "METHOD_NOT_ALLOWED"
        elif status_code == 409:
            code = "CONFLICT"
        else:
            code = "INTERNAL_ERROR"
    retryable = bool(extra.pop("retryable", status_code >= 500))
    details = dict(extra)
    body: Dict[str, Any] = {
        "success": False,
        "error": message,
        "error_envelope": {
            "code": code,
            "message": message,
            "retryable": retryable,
            "details": details,
        },
    }
    body.update(details)
    return _response(status_code, body)


def _sync_error(exc: SyncError) -> Dict[str, Any]:
    """Translate a sync-core exception into the standard error response."""
    return _error(
        exc.status_code,
        exc.message,
        code=exc.code,
        retryable=exc.retryable,
        **exc.details,
    )


def _parse_body(event: Dict[str, Any]) -> Any:
    """Parse JSON body from API Gateway event (handles base64).

    Raises ValueError when the body is not valid JSON.
    """
    raw = event.get("body")
    if raw in (None, ""):
        return {}
    if isinstance(raw, (dict, list)):
        return raw
    if event.get("isBase64Encoded"):
        raw = base64.b64decode(raw).decode("utf-8")
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, TypeError) as exc:
        raise ValueError(f"Invalid JSON body: {exc}") from exc


def _path_method(event: Dict[str, Any]) -> Tuple[str, str]:
    """Extract HTTP method and path from API Gateway v1/v2 event."""
    rc = event.get("requestContext") or {}
    http = rc.get("http") or {}
    method = (http.get("method") or event.get("httpMethod") or "GET").upper()
    path = http.get("path") or event.get("rawPath") or event.get("path") or "/"
    return method, path


def _query_params(event: Dict[str, Any]) -> Dict[str, str]:
    return dict(event.get("queryStringParameters") or {})


def _flag(params: Dict[str, str], name: str) -> bool:
    return str(params.get(name) or "").strip().lower() in {"1", "true", "yes"}
