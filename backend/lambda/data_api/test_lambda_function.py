"""test_lambda_function.py — Mock-based integration tests for data_api.

Covers the public read, admin read, merge write and purge write flows,
including auth, payload validation and store failures. The store is an
in-memory row store, so everything runs without AWS credentials.

Run: python3 -m pytest test_lambda_function.py -v
"""

from __future__ import annotations

import importlib.util
import json
import os
import sys
import unittest
from unittest.mock import patch

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "shared_layer", "python"))
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "shared_layer"))

import mediadb_shared.stores as stores
from mediadb_shared.errors import StoreUnavailable, StoreWriteConflict
from mediadb_shared.stores import RestTableStore
from mediadb_shared.sync import DocumentSync
from memory_store import MemoryStore

_spec = importlib.util.spec_from_file_location(
    "data_api",
    os.path.join(os.path.dirname(__file__), "lambda_function.py"),
)
data_api = importlib.util.module_from_spec(_spec)
_spec.loader.exec_module(data_api)

PAYLOAD = "data:image/png;base64,iVBORw0KGgo="


def _make_event(method="GET", path="/api/data", body=None, token=None, query_params=None):
    """Build a mock API Gateway v2 event."""
    headers = {"host": "example.com"}
    if token is not None:
        headers["x-admin-token"] = token
    event = {
        "requestContext": {"http": {"method": method, "path": path}},
        "headers": headers,
        "rawPath": path,
        "queryStringParameters": query_params or {},
    }
    if body is not None:
        event["body"] = json.dumps(body) if not isinstance(body, str) else body
    return event


def _body(resp):
    return json.loads(resp["body"])


class _HandlerCase(unittest.TestCase):
    def setUp(self):
        self.store = MemoryStore({
            "series": [{
                "id": "s1",
                "title": "Show",
                "images": [
                    {"id": "i1", "data": PAYLOAD, "iscover": True},
                    {"id": "i2", "data": PAYLOAD},
                ],
            }],
            "characters": [{"id": 1, "name": "A", "image": PAYLOAD}],
            "settings": {"siteTitle": "Archive"},
        })
        self.sync = DocumentSync(self.store)
        patcher = patch.object(data_api, "_get_sync", return_value=self.sync)
        patcher.start()
        self.addCleanup(patcher.stop)

    def _as_admin(self, admin=True):
        patcher = patch.object(data_api, "_is_admin", return_value=admin)
        patcher.start()
        self.addCleanup(patcher.stop)


class OptionsTests(unittest.TestCase):
    def test_options_returns_204(self):
        resp = data_api.lambda_handler(_make_event(method="OPTIONS"), None)
        self.assertEqual(resp["statusCode"], 204)
        self.assertIn("Access-Control-Allow-Origin", resp["headers"])

    def test_unsupported_method(self):
        resp = data_api.lambda_handler(_make_event(method="DELETE"), None)
        self.assertEqual(_body(resp)["error_envelope"]["code"], "METHOD_NOT_ALLOWED")
        self.assertEqual(resp["statusCode"], 405)


class ReadTests(_HandlerCase):
    def test_public_read_is_stripped(self):
        self._as_admin(False)
        resp = data_api.lambda_handler(_make_event(), None)
        self.assertEqual(resp["statusCode"], 200)
        self.assertEqual(resp["headers"]["Cache-Control"], "no-store")
        doc = _body(resp)
        images = doc["series"][0]["images"]
        self.assertEqual(images[0]["data"], PAYLOAD)
        self.assertNotIn("data", images[1])
        self.assertIsNone(doc["characters"][0]["image"])
        self.assertEqual(doc["episodes"], [])

    def test_admin_read_requires_credential(self):
        self._as_admin(False)
        resp = data_api.lambda_handler(_make_event(query_params={"admin": "1"}), None)
        self.assertEqual(resp["statusCode"], 401)

    def test_admin_read_is_full(self):
        self._as_admin(True)
        resp = data_api.lambda_handler(_make_event(query_params={"admin": "1"}), None)
        doc = _body(resp)
        self.assertEqual(doc["series"][0]["images"][1]["data"], PAYLOAD)
        self.assertEqual(doc["characters"][0]["image"], PAYLOAD)

    def test_store_unavailable_is_502(self):
        self._as_admin(False)
        with patch.object(self.sync, "read", side_effect=StoreUnavailable("down", status=503)):
            resp = data_api.lambda_handler(_make_event(), None)
        self.assertEqual(resp["statusCode"], 502)
        self.assertTrue(_body(resp)["error_envelope"]["retryable"])


class WriteTests(_HandlerCase):
    def test_write_requires_credential(self):
        self._as_admin(False)
        resp = data_api.lambda_handler(_make_event(method="POST", body={"settings": {}}), None)
        self.assertEqual(resp["statusCode"], 401)
        self.assertEqual(_body(resp)["keys"], ["settings"])
        self.assertEqual(self.store.rows["settings"], {"siteTitle": "Archive"})

    def test_stripped_edit_keeps_stored_images(self):
        self._as_admin(True)
        public = data_api.lambda_handler(_make_event(), None)
        doc = _body(public)
        doc["series"][0]["title"] = "Renamed"
        doc["characters"][0]["name"] = "Alpha"

        resp = data_api.lambda_handler(_make_event(method="POST", body={
            "series": doc["series"],
            "characters": doc["characters"],
        }), None)

        self.assertEqual(resp["statusCode"], 200)
        self.assertEqual(_body(resp), {"success": True, "keys": ["series", "characters"]})
        series = self.store.rows["series"][0]
        self.assertEqual(series["title"], "Renamed")
        self.assertEqual([img["data"] for img in series["images"]], [PAYLOAD, PAYLOAD])
        self.assertEqual(self.store.rows["characters"][0], {"id": 1, "name": "Alpha", "image": PAYLOAD})

    def test_purge_requires_credential(self):
        self._as_admin(False)
        resp = data_api.lambda_handler(
            _make_event(method="POST", body={"characters": []}, query_params={"purge": "1"}), None
        )
        self.assertEqual(resp["statusCode"], 401)

    def test_purge_overwrites_verbatim(self):
        self._as_admin(True)
        resp = data_api.lambda_handler(_make_event(
            method="POST",
            body={"characters": [{"id": 1, "name": "A", "image": None}]},
            query_params={"purge": "true"},
        ), None)
        self.assertEqual(resp["statusCode"], 200)
        self.assertIsNone(self.store.rows["characters"][0]["image"])

    def test_invalid_json(self):
        self._as_admin(True)
        resp = data_api.lambda_handler(_make_event(method="POST", body="{nope"), None)
        self.assertEqual(resp["statusCode"], 400)
        self.assertEqual(_body(resp)["error"], "Invalid JSON")

    def test_non_object_body(self):
        self._as_admin(True)
        resp = data_api.lambda_handler(_make_event(method="POST", body="[1, 2]"), None)
        self.assertEqual(resp["statusCode"], 400)
        self.assertEqual(_body(resp)["error_envelope"]["code"], "INVALID_INPUT")

    def test_conflict_is_409(self):
        self._as_admin(True)
        self.store.fail_on = "settings"
        self.store.fail_with = StoreWriteConflict("stale", key="settings", status=409)
        resp = data_api.lambda_handler(_make_event(method="POST", body={"settings": {}}), None)
        self.assertEqual(resp["statusCode"], 409)
        self.assertEqual(_body(resp)["error_envelope"]["code"], "CONFLICT")


class MisconfigurationTests(unittest.TestCase):
    def test_bad_backend_is_500(self):
        with patch.object(data_api, "_is_admin", return_value=False), \
                patch.object(data_api, "_get_sync", side_effect=ValueError("Unknown DATA_STORE_BACKEND")):
            resp = data_api.lambda_handler(_make_event(), None)
        self.assertEqual(resp["statusCode"], 500)
        self.assertEqual(_body(resp)["error"], "Server misconfigured")

    def test_secret_lookup_failure_is_500(self):
        with patch.object(data_api, "_is_admin", side_effect=RuntimeError("secret unavailable")):
            resp = data_api.lambda_handler(_make_event(), None)
        self.assertEqual(resp["statusCode"], 500)

    def test_unreadable_upstream_body_is_502(self):
        sync = DocumentSync(RestTableStore("https://db.example.co", "k"))
        with patch.object(data_api, "_is_admin", return_value=False), \
                patch.object(data_api, "_get_sync", return_value=sync), \
                patch.object(stores, "_http_request", return_value=(200, "<html>gateway</html>")):
            resp = data_api.lambda_handler(_make_event(), None)
        self.assertEqual(resp["statusCode"], 502)
        self.assertEqual(_body(resp)["upstream_status"], 200)


if __name__ == "__main__":
    unittest.main()
