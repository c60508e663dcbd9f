"""mediadb_shared.aws_clients — Lazy-singleton AWS service clients.

Provides factory functions that create boto3 clients on first call and
cache them for subsequent invocations. This avoids paying the boto3 client
construction cost on cold starts until the client is actually needed.
"""

from __future__ import annotations

import os
import time
from typing import Dict, Optional, Tuple

import boto3
from botocore.config import Config

# ---------------------------------------------------------------------------
# Default region / timeouts (overridable via env)
# ---------------------------------------------------------------------------

DYNAMODB_REGION: str = os.environ.get("DYNAMODB_REGION", "us-west-2")
SECRETS_REGION: str = os.environ.get("SECRETS_REGION", os.environ.get("DYNAMODB_REGION", "us-west-2"))
AWS_CONNECT_TIMEOUT: float = float(os.environ.get("AWS_CONNECT_TIMEOUT_SECONDS", "3"))
AWS_READ_TIMEOUT: float = float(os.environ.get("AWS_READ_TIMEOUT_SECONDS", "10"))

# ---------------------------------------------------------------------------
# Client singletons
# ---------------------------------------------------------------------------

_ddb = None
_secretsmanager = None


def _client_config(max_attempts: int) -> Config:
    return Config(
        connect_timeout=AWS_CONNECT_TIMEOUT,
        read_timeout=AWS_READ_TIMEOUT,
        retries={"max_attempts": max_attempts, "mode": "standard"},
    )


def _get_ddb(region: Optional[str] = None):
    """Get (or create) the DynamoDB client singleton."""
    global _ddb
    if _ddb is None:
        _ddb = boto3.client(
            "dynamodb",
            region_name=region or DYNAMODB_REGION,
            config=_client_config(5),
        )
    return _ddb


def _get_secretsmanager(region: Optional[str] = None):
    """Get (or create) the Secrets Manager client singleton."""
    global _secretsmanager
    if _secretsmanager is None:
        _secretsmanager = boto3.client(
            "secretsmanager",
            region_name=region or SECRETS_REGION,
            config=_client_config(3),
        )
    return _secretsmanager


# ---------------------------------------------------------------------------
# Secret cache
# ---------------------------------------------------------------------------

_secret_cache: Dict[str, Tuple[str, float]] = {}
_SECRET_TTL: float = 3600.0  # re-fetch from Secrets Manager every hour


def _get_secret_string(secret_id: str) -> str:
    """Fetch a SecretString from Secrets Manager (cached)."""
    now = time.time()
    cached = _secret_cache.get(secret_id)
    if cached and (now - cached[1]) < _SECRET_TTL:
        return cached[0]

    sm = _get_secretsmanager()
    resp = sm.get_secret_value(SecretId=secret_id)
    value = resp["SecretString"]
    _secret_cache[secret_id] = (value, now)
    return value
