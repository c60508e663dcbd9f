"""mediadb_shared.config — Environment configuration and store wiring.

Environment variables:
    DATA_STORE_BACKEND          dynamodb | rest | github (default: dynamodb)
    STORE_TABLE                 DynamoDB table (default: media-db-store)
    REST_URL / REST_KEY         PostgREST base URL and service key
    REST_TABLE                  default: store
    REPO_OWNER / REPO_NAME      GitHub repository holding the database file
    DB_FILE_PATH                default: data/database.json
    DB_FILE_BRANCH              optional branch (default: repository default)
    GITHUB_TOKEN                GitHub token, or
    GITHUB_TOKEN_SECRET         Secrets Manager secret id holding it
    COLLECTION_KEYS             default: series,characters,episodes
    SETTINGS_KEYS               default: settings
    PROTECTED_KEYS              default: * (every key needs the admin credential)
    STORE_CACHE_TTL_SECONDS     default: 10 (0 disables the read cache)
    STORE_STALE_FALLBACK        1 to serve the last cached snapshot on display-read failure
    STORE_STALE_MAX_AGE_SECONDS default: 300 (oldest snapshot the fallback may serve)
    STORE_HTTP_TIMEOUT_SECONDS  default: 10
"""

from __future__ import annotations

import os
from typing import List, Optional

from .aws_clients import _get_ddb, _get_secret_string
from .schema import DocumentSchema
from .stores import DocumentStore, DynamoTableStore, GitHubFileStore, RestTableStore


def _csv(raw: str) -> List[str]:
    return [part.strip() for part in str(raw or "").split(",") if part.strip()]


def _env_flag(name: str, default: str = "0") -> bool:
    return os.environ.get(name, default).strip().lower() in {"1", "true", "yes"}


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

DATA_STORE_BACKEND = os.environ.get("DATA_STORE_BACKEND", "dynamodb").strip().lower()
STORE_TABLE = os.environ.get("STORE_TABLE", "media-db-store")
REST_URL = os.environ.get("REST_URL", "")
REST_KEY = os.environ.get("REST_KEY", "")
REST_TABLE = os.environ.get("REST_TABLE", "store")
REST_ANON_KEY = os.environ.get("REST_ANON_KEY", "")
REPO_OWNER = os.environ.get("REPO_OWNER", "")
REPO_NAME = os.environ.get("REPO_NAME", "")
DB_FILE_PATH = os.environ.get("DB_FILE_PATH", "data/database.json")
DB_FILE_BRANCH = os.environ.get("DB_FILE_BRANCH", "")
GITHUB_TOKEN = os.environ.get("GITHUB_TOKEN", "")
GITHUB_TOKEN_SECRET = os.environ.get("GITHUB_TOKEN_SECRET", "")
COLLECTION_KEYS = _csv(os.environ.get("COLLECTION_KEYS", "series,characters,episodes"))
SETTINGS_KEYS = _csv(os.environ.get("SETTINGS_KEYS", "settings"))
PROTECTED_KEYS = _csv(os.environ.get("PROTECTED_KEYS", "*"))
STORE_CACHE_TTL_SECONDS = float(os.environ.get("STORE_CACHE_TTL_SECONDS", "10"))
STORE_STALE_FALLBACK = _env_flag("STORE_STALE_FALLBACK")
STORE_STALE_MAX_AGE_SECONDS = float(os.environ.get("STORE_STALE_MAX_AGE_SECONDS", "300"))
STORE_HTTP_TIMEOUT_SECONDS = float(os.environ.get("STORE_HTTP_TIMEOUT_SECONDS", "10"))

_VALID_BACKENDS = ("dynamodb", "rest", "github")


def build_schema() -> DocumentSchema:
    return DocumentSchema.from_lists(COLLECTION_KEYS, SETTINGS_KEYS, PROTECTED_KEYS)


def _github_token() -> str:
    if GITHUB_TOKEN:
        return GITHUB_TOKEN
    if GITHUB_TOKEN_SECRET:
        return _get_secret_string(GITHUB_TOKEN_SECRET).strip()
    raise ValueError("GITHUB_TOKEN or GITHUB_TOKEN_SECRET must be set for the github backend")


def build_store(backend: Optional[str] = None, cache_ttl: Optional[float] = None) -> DocumentStore:
    """Construct the store adapter named by `backend` (default: DATA_STORE_BACKEND)."""
    backend = (backend or DATA_STORE_BACKEND).strip().lower()
    common = {
        "cache_ttl": STORE_CACHE_TTL_SECONDS if cache_ttl is None else cache_ttl,
        "stale_fallback": STORE_STALE_FALLBACK,
        "stale_max_age": STORE_STALE_MAX_AGE_SECONDS,
    }
    if backend == "dynamodb":
        return DynamoTableStore(STORE_TABLE, _get_ddb, **common)
    if backend == "rest":
        if not REST_URL or not REST_KEY:
            raise ValueError("REST_URL and REST_KEY must be set for the rest backend")
        return RestTableStore(REST_URL, REST_KEY, REST_TABLE, timeout=STORE_HTTP_TIMEOUT_SECONDS, **common)
    if backend == "github":
        if not REPO_OWNER or not REPO_NAME:
            raise ValueError("REPO_OWNER and REPO_NAME must be set for the github backend")
        return GitHubFileStore(
            REPO_OWNER,
            REPO_NAME,
            DB_FILE_PATH,
            _github_token,
            branch=DB_FILE_BRANCH,
            timeout=STORE_HTTP_TIMEOUT_SECONDS,
            **common,
        )
    raise ValueError(f"Unknown DATA_STORE_BACKEND '{backend}' (expected one of {', '.join(_VALID_BACKENDS)})")
