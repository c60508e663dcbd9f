"""client_config/lambda_function.py

Public configuration the browser needs before talking to the REST table
directly (read-only, anonymous key).

Route (via API Gateway proxy):
    GET     /api/config
    OPTIONS /api/config   (CORS preflight)

Environment variables:
    REST_URL        PostgREST base URL
    REST_ANON_KEY   anonymous (public) key
"""

from __future__ import annotations

from typing import Any, Dict

from mediadb_shared.config import REST_ANON_KEY, REST_URL
from mediadb_shared.http_utils import _error, _path_method, _preflight, _response

_METHODS = "GET, OPTIONS"
_PUBLIC_CACHE = {"Cache-Control": "public, max-age=3600"}


def lambda_handler(event: Dict, context: Any) -> Dict:
    method, _path = _path_method(event)
    if method == "OPTIONS":
        return _preflight(_METHODS)
    if method != "GET":
        return _error(405, "Method not allowed")
    return _response(
        200,
        {"restUrl": REST_URL, "restAnonKey": REST_ANON_KEY},
        extra_headers=_PUBLIC_CACHE,
        methods=_METHODS,
    )
