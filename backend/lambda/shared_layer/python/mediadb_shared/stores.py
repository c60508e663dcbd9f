"""mediadb_shared.stores — Document store adapters.

Every adapter exposes the same operations over an opaque backing store:

    read_all()                      -> StoreSnapshot(data, version)
    set(key, value, version=None)
    delete(key, version=None)
    write(document, keys, version=None)

Row stores keep one row per top-level key (DynamoDB table, PostgREST table).
The file store keeps the whole document in one JSON file committed through
the GitHub contents API, with the blob sha as the version token.

Each adapter instance owns its ReadCache; nothing is shared between
instances.
"""

from __future__ import annotations

import base64
import json
import logging
import time
import urllib.error
import urllib.request
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple
from urllib.parse import quote

from botocore.exceptions import BotoCoreError, ClientError

from .errors import StoreError, StoreUnavailable, StoreWriteConflict
from .serialization import _deserialize, _now_z, _serialize, _unix_now

logger = logging.getLogger(__name__)

__all__ = [
    "DocumentStore",
    "DynamoTableStore",
    "GitHubFileStore",
    "ReadCache",
    "RestTableStore",
    "RowTableStore",
    "StoreSnapshot",
]

DEFAULT_HTTP_TIMEOUT = 10.0
DEFAULT_STALE_MAX_AGE = 300.0


@dataclass
class StoreSnapshot:
    data: Dict[str, Any]
    version: Any = None


# ---------------------------------------------------------------------------
# Read cache
# ---------------------------------------------------------------------------


class ReadCache:
    """Time-bounded cache of the last snapshot read or written by one adapter."""

    def __init__(self, ttl_seconds: float = 0.0, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = max(0.0, float(ttl_seconds))
        self._clock = clock
        self._snapshot: Optional[StoreSnapshot] = None
        self._stored_at = 0.0

    @property
    def enabled(self) -> bool:
        return self.ttl_seconds > 0

    def get(self) -> Optional[StoreSnapshot]:
        """Return the cached snapshot while it is inside the freshness window."""
        if not self.enabled or self._snapshot is None:
            return None
        if (self._clock() - self._stored_at) >= self.ttl_seconds:
            return None
        return self._snapshot

    def last(self, max_age: Optional[float] = None) -> Optional[StoreSnapshot]:
        """Return the cached snapshot past its freshness window, up to `max_age` seconds old."""
        if self._snapshot is None:
            return None
        if max_age is not None and (self._clock() - self._stored_at) >= max_age:
            return None
        return self._snapshot

    def put(self, snapshot: StoreSnapshot) -> None:
        if not self.enabled:
            return
        self._snapshot = snapshot
        self._stored_at = self._clock()

    def invalidate(self) -> None:
        self._snapshot = None
        self._stored_at = 0.0


# ---------------------------------------------------------------------------
# HTTP transport (REST table + GitHub)
# ---------------------------------------------------------------------------


def _http_request(
    method: str,
    url: str,
    headers: Dict[str, str],
    payload: Any = None,
    timeout: float = DEFAULT_HTTP_TIMEOUT,
) -> Tuple[int, str]:
    """Perform one HTTP call. Returns (status, body) for every HTTP status.

    Transport failures (DNS, refused connection, timeout) raise StoreUnavailable.
    """
    data = None
    if payload is not None:
        data = json.dumps(payload).encode("utf-8")
    req = urllib.request.Request(url, method=method, data=data, headers=headers)
    try:
        with urllib.request.urlopen(req, timeout=timeout) as resp:
            return resp.status, resp.read().decode("utf-8")
    except urllib.error.HTTPError as exc:
        body = exc.read().decode("utf-8", errors="replace")
        return exc.code, body
    except (urllib.error.URLError, OSError) as exc:
        raise StoreUnavailable(f"{method} {url} failed: {exc}") from exc


def _ok(status: int) -> bool:
    return 200 <= status < 300


# ---------------------------------------------------------------------------
# Base adapter
# ---------------------------------------------------------------------------


class DocumentStore:
    """Common read/write flow: cache lookup, stale fallback, cache refresh."""

    backend = "abstract"

    def __init__(
        self,
        cache_ttl: float = 0.0,
        stale_fallback: bool = False,
        stale_max_age: float = DEFAULT_STALE_MAX_AGE,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.cache = ReadCache(cache_ttl, clock or time.monotonic)
        self.stale_fallback = stale_fallback
        self.stale_max_age = max(0.0, float(stale_max_age))

    def read_all(self, allow_stale: bool = False) -> StoreSnapshot:
        """Return the current document and its version token.

        With `allow_stale` (display reads only, never the write path) a failed
        fetch falls back to the last cached snapshot when the adapter was built
        with `stale_fallback` and that snapshot is under `stale_max_age` seconds old.
        """
        cached = self.cache.get()
        if cached is not None:
            return StoreSnapshot(dict(cached.data), cached.version)
        try:
            snapshot = self._fetch_all()
        except StoreUnavailable as exc:
            last = self.cache.last(self.stale_max_age) if (allow_stale and self.stale_fallback) else None
            if last is not None:
                logger.warning("%s read failed, serving cached snapshot: %s", self.backend, exc)
                return StoreSnapshot(dict(last.data), last.version)
            raise
        self.cache.put(snapshot)
        return StoreSnapshot(dict(snapshot.data), snapshot.version)

    def set(self, key: str, value: Any, version: Any = None) -> None:
        raise NotImplementedError

    def delete(self, key: str, version: Any = None) -> None:
        raise NotImplementedError

    def write(self, document: Dict[str, Any], keys: Iterable[str], version: Any = None) -> None:
        raise NotImplementedError

    def _fetch_all(self) -> StoreSnapshot:
        raise NotImplementedError


# ---------------------------------------------------------------------------
# Row stores
# ---------------------------------------------------------------------------


class RowTableStore(DocumentStore):
    """One row per top-level key. `version` is a {key: row_version} mapping or None."""

    def _put_row(self, key: str, value: Any, versions: Optional[Dict[str, Any]]) -> Any:
        raise NotImplementedError

    def _delete_row(self, key: str, versions: Optional[Dict[str, Any]]) -> None:
        raise NotImplementedError

    def set(self, key: str, value: Any, version: Any = None) -> None:
        self.write({key: value}, [key], version)

    def delete(self, key: str, version: Any = None) -> None:
        try:
            self._delete_row(key, version)
        except StoreError:
            self.cache.invalidate()
            raise
        last = self.cache.last()
        if last is not None:
            data = {k: v for k, v in last.data.items() if k != key}
            versions = last.version
            if versions is not None:
                versions = {k: v for k, v in versions.items() if k != key}
            self.cache.put(StoreSnapshot(data, versions))

    def write(self, document: Dict[str, Any], keys: Iterable[str], version: Any = None) -> None:
        """Persist `keys` of `document` one row at a time. Not transactional."""
        written: List[str] = []
        new_versions: Dict[str, Any] = {}
        for key in keys:
            try:
                new_versions[key] = self._put_row(key, document.get(key), version)
            except StoreError as exc:
                self.cache.invalidate()
                exc.written_keys = list(written)
                if written:
                    exc.details["written_keys"] = list(written)
                    logger.error(
                        "%s partial write: key=%s failed after %s were written",
                        self.backend, key, written,
                    )
                raise
            written.append(key)

        last = self.cache.last()
        if last is not None:
            data = dict(last.data)
            data.update({k: document.get(k) for k in written})
            versions = last.version
            if versions is not None:
                versions = {**versions, **new_versions}
            self.cache.put(StoreSnapshot(data, versions))


class DynamoTableStore(RowTableStore):
    """DynamoDB table with items {store_key, value, version, updated_at}.

    Writes that carry a version mapping are conditional: an existing row must
    still have the version that was read, a row that did not exist must still
    not exist.
    """

    backend = "dynamodb"

    def __init__(self, table_name: str, client_factory: Callable[[], Any], **kwargs: Any):
        super().__init__(**kwargs)
        self.table_name = table_name
        self._client_factory = client_factory

    def _fetch_all(self) -> StoreSnapshot:
        ddb = self._client_factory()
        data: Dict[str, Any] = {}
        versions: Dict[str, int] = {}
        params: Dict[str, Any] = {"TableName": self.table_name, "ConsistentRead": True}
        try:
            while True:
                resp = ddb.scan(**params)
                for raw in resp.get("Items", []):
                    row = _deserialize(raw)
                    key = row.get("store_key")
                    if not key:
                        continue
                    data[key] = row.get("value")
                    versions[key] = int(row.get("version") or 0)
                last_key = resp.get("LastEvaluatedKey")
                if not last_key:
                    break
                params["ExclusiveStartKey"] = last_key
        except (BotoCoreError, ClientError) as exc:
            raise StoreUnavailable(
                f"DynamoDB read failed: {exc}", status=_client_error_status(exc)
            ) from exc
        return StoreSnapshot(data, versions)

    def _condition(self, key: str, versions: Optional[Dict[str, Any]], attr_values: Dict[str, Any]) -> Optional[str]:
        if versions is None:
            return None
        if key in versions:
            attr_values[":expected"] = _serialize(int(versions[key]))
            return "#ver = :expected"
        return "attribute_not_exists(store_key)"

    def _put_row(self, key: str, value: Any, versions: Optional[Dict[str, Any]]) -> int:
        ddb = self._client_factory()
        attr_values: Dict[str, Any] = {
            ":val": _serialize(value),
            ":zero": _serialize(0),
            ":one": _serialize(1),
            ":ts": _serialize(_now_z()),
            ":epoch": _serialize(_unix_now()),
        }
        params: Dict[str, Any] = {
            "TableName": self.table_name,
            "Key": {"store_key": _serialize(key)},
            "UpdateExpression": (
                "SET #val = :val, #ver = if_not_exists(#ver, :zero) + :one, "
                "updated_at = :ts, updated_epoch = :epoch"
            ),
            "ExpressionAttributeNames": {"#val": "value", "#ver": "version"},
            "ReturnValues": "UPDATED_NEW",
        }
        condition = self._condition(key, versions, attr_values)
        if condition:
            params["ConditionExpression"] = condition
        params["ExpressionAttributeValues"] = attr_values

        try:
            resp = ddb.update_item(**params)
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException":
                raise StoreWriteConflict(
                    f"Row '{key}' was modified concurrently. Re-read and retry.", key=key, status=409
                ) from exc
            raise StoreUnavailable(
                f"DynamoDB write failed for '{key}': {exc}", key=key, status=_client_error_status(exc)
            ) from exc
        except BotoCoreError as exc:
            raise StoreUnavailable(f"DynamoDB write failed for '{key}': {exc}", key=key) from exc

        attrs = _deserialize(resp.get("Attributes") or {})
        return int(attrs.get("version") or 0)

    def _delete_row(self, key: str, versions: Optional[Dict[str, Any]]) -> None:
        ddb = self._client_factory()
        params: Dict[str, Any] = {
            "TableName": self.table_name,
            "Key": {"store_key": _serialize(key)},
        }
        if versions and key in versions:
            params["ConditionExpression"] = "#ver = :expected"
            params["ExpressionAttributeNames"] = {"#ver": "version"}
            params["ExpressionAttributeValues"] = {":expected": _serialize(int(versions[key]))}
        try:
            ddb.delete_item(**params)
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException":
                raise StoreWriteConflict(
                    f"Row '{key}' was modified concurrently. Re-read and retry.", key=key, status=409
                ) from exc
            raise StoreUnavailable(
                f"DynamoDB delete failed for '{key}': {exc}", key=key, status=_client_error_status(exc)
            ) from exc
        except BotoCoreError as exc:
            raise StoreUnavailable(f"DynamoDB delete failed for '{key}': {exc}", key=key) from exc


def _client_error_status(exc: Exception) -> Optional[int]:
    if isinstance(exc, ClientError):
        return exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
    return None


class RestTableStore(RowTableStore):
    """PostgREST table `store(key, value)`. Upserts with merge-duplicates; no version tokens."""

    backend = "rest"

    def __init__(
        self,
        base_url: str,
        api_key: str,
        table: str = "store",
        timeout: float = DEFAULT_HTTP_TIMEOUT,
        **kwargs: Any,
    ):
        super().__init__(**kwargs)
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.table = table
        self.timeout = timeout

    @property
    def _table_url(self) -> str:
        return f"{self.base_url}/rest/v1/{self.table}"

    def _headers(self, **extra: str) -> Dict[str, str]:
        headers = {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        headers.update(extra)
        return headers

    def _fetch_all(self) -> StoreSnapshot:
        status, body = _http_request(
            "GET", f"{self._table_url}?select=key,value", self._headers(), timeout=self.timeout
        )
        if not _ok(status):
            logger.error("REST read error: %s %s", status, body[:500])
            raise StoreUnavailable(f"DB read failed: {status}", status=status)
        try:
            rows = json.loads(body or "[]")
        except ValueError as exc:
            logger.error("REST read returned non-JSON body: %s", body[:500])
            raise StoreUnavailable(f"DB read returned an unreadable body: {exc}", status=status) from exc
        if not isinstance(rows, list):
            raise StoreUnavailable("DB read did not return a list of rows", status=status)
        return StoreSnapshot(
            {row["key"]: row.get("value") for row in rows if isinstance(row, dict) and row.get("key")},
            None,
        )

    def _put_row(self, key: str, value: Any, versions: Optional[Dict[str, Any]]) -> None:
        status, body = _http_request(
            "POST",
            self._table_url,
            self._headers(Prefer="resolution=merge-duplicates"),
            payload={"key": key, "value": value},
            timeout=self.timeout,
        )
        if not _ok(status):
            logger.error("REST write error for %s: %s %s", key, status, body[:500])
            raise StoreUnavailable(f'DB write failed for "{key}": {status}', key=key, status=status)
        return None

    def _delete_row(self, key: str, versions: Optional[Dict[str, Any]]) -> None:
        status, body = _http_request(
            "DELETE",
            f"{self._table_url}?key=eq.{quote(key, safe='')}",
            self._headers(),
            timeout=self.timeout,
        )
        if not _ok(status):
            logger.error("REST delete error for %s: %s %s", key, status, body[:500])
            raise StoreUnavailable(f'DB delete failed for "{key}": {status}', key=key, status=status)


# ---------------------------------------------------------------------------
# File store (GitHub contents API)
# ---------------------------------------------------------------------------

GITHUB_API_BASE = "https://api.github.com"


class GitHubFileStore(DocumentStore):
    """Whole document in one JSON file; the blob sha is the version token."""

    backend = "github"

    def __init__(
        self,
        owner: str,
        repo: str,
        path: str,
        token_provider: Callable[[], str],
        branch: str = "",
        commit_message: str = "Update database via admin panel",
        api_base: str = GITHUB_API_BASE,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
        **kwargs: Any,
    ):
        super().__init__(**kwargs)
        self.owner = owner
        self.repo = repo
        self.path = path.lstrip("/")
        self.branch = branch
        self.commit_message = commit_message
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout
        self._token_provider = token_provider

    @property
    def _contents_url(self) -> str:
        return f"{self.api_base}/repos/{self.owner}/{self.repo}/contents/{quote(self.path)}"

    def _headers(self) -> Dict[str, str]:
        return {
            "Accept": "application/vnd.github+json",
            "Authorization": f"Bearer {self._token_provider()}",
            "X-GitHub-Api-Version": "2022-11-28",
            "Content-Type": "application/json",
            "User-Agent": "mediadb-lambda",
        }

    def _fetch_all(self) -> StoreSnapshot:
        url = self._contents_url
        if self.branch:
            url = f"{url}?ref={quote(self.branch)}"
        status, body = _http_request("GET", url, self._headers(), timeout=self.timeout)
        if status == 404:
            # File does not exist yet: empty document, created on first write.
            return StoreSnapshot({}, None)
        if not _ok(status):
            logger.error("GitHub read error: %s %s", status, body[:500])
            raise StoreUnavailable(f"GitHub read failed: {status}", status=status)

        try:
            meta = json.loads(body)
            if not isinstance(meta, dict):
                raise ValueError("contents response is not a JSON object")
            sha = meta.get("sha")
            if meta.get("encoding") == "base64" and meta.get("content"):
                raw = base64.b64decode(meta["content"]).decode("utf-8")
            else:
                # Files over 1 MB come back without inline content.
                raw = self._fetch_blob(sha)
            data = json.loads(raw) if raw.strip() else {}
        except ValueError as exc:
            logger.error("GitHub read returned unreadable content for %s: %s", self.path, exc)
            raise StoreUnavailable(f"GitHub file {self.path} could not be decoded: {exc}", status=status) from exc
        if not isinstance(data, dict):
            raise StoreUnavailable(f"GitHub file {self.path} does not hold a JSON object", status=status)
        return StoreSnapshot(data, sha)

    def _fetch_blob(self, sha: str) -> str:
        url = f"{self.api_base}/repos/{self.owner}/{self.repo}/git/blobs/{sha}"
        status, body = _http_request("GET", url, self._headers(), timeout=self.timeout)
        if not _ok(status):
            logger.error("GitHub blob read error: %s %s", status, body[:500])
            raise StoreUnavailable(f"GitHub blob read failed: {status}", status=status)
        try:
            blob = json.loads(body)
            return base64.b64decode(blob.get("content") or "").decode("utf-8")
        except (ValueError, AttributeError) as exc:
            raise StoreUnavailable(f"GitHub blob {sha} could not be decoded: {exc}", status=status) from exc

    def _commit(self, document: Dict[str, Any], sha: Optional[str]) -> Optional[str]:
        content = base64.b64encode(json.dumps(document, indent=2).encode("utf-8")).decode("ascii")
        payload: Dict[str, Any] = {"message": self.commit_message, "content": content}
        if sha:
            payload["sha"] = sha
        if self.branch:
            payload["branch"] = self.branch

        status, body = _http_request("PUT", self._contents_url, self._headers(), payload=payload, timeout=self.timeout)
        if _ok(status):
            # The commit landed; an unreadable reply leaves the new sha unknown.
            try:
                resp = json.loads(body or "{}")
                return (resp.get("content") or {}).get("sha")
            except (ValueError, AttributeError) as exc:
                logger.error("GitHub write succeeded with unreadable reply: %s", body[:500])
                raise StoreUnavailable(
                    f"GitHub write reply could not be decoded: {exc}", status=status
                ) from exc

        logger.error("GitHub write error: %s %s", status, body[:500])
        if status == 409 or (status == 422 and "sha" in body.lower()):
            raise StoreWriteConflict(
                "Database file changed since it was read. Re-read and retry.",
                status=status,
                sha=sha,
            )
        raise StoreUnavailable(f"GitHub write failed: {status}", status=status)

    def write(self, document: Dict[str, Any], keys: Iterable[str], version: Any = None) -> None:
        """Commit the whole document; `keys` is informational for file stores."""
        try:
            new_sha = self._commit(dict(document), version)
        except StoreError:
            self.cache.invalidate()
            raise
        if new_sha:
            self.cache.put(StoreSnapshot(dict(document), new_sha))
        else:
            self.cache.invalidate()

    def set(self, key: str, value: Any, version: Any = None) -> None:
        snapshot = self.read_all()
        data = dict(snapshot.data)
        data[key] = value
        self.write(data, [key], version if version is not None else snapshot.version)

    def delete(self, key: str, version: Any = None) -> None:
        snapshot = self.read_all()
        data = {k: v for k, v in snapshot.data.items() if k != key}
        self.write(data, [key], version if version is not None else snapshot.version)
