"""test_layer.py — Unit tests for mediadb_shared helper modules.

Run from shared_layer directory:
    python3 -m pytest test_layer.py -v
"""

from __future__ import annotations

import base64
import json
import os
import sys
import unittest
from decimal import Decimal
from unittest.mock import MagicMock, patch

# Ensure the layer's python/ directory is importable.
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "python"))

from botocore.exceptions import ClientError

import mediadb_shared.auth as auth_mod
from mediadb_shared.aws_clients import _get_ddb
from mediadb_shared.errors import StoreUnavailable, StoreWriteConflict, Unauthorized
from mediadb_shared.http_utils import _error, _parse_body, _path_method, _response, _sync_error
from mediadb_shared.serialization import _deserialize, _now_z, _serialize, _unix_now


class _AdminPasswords:
    """Temporarily replace the admin password configuration."""

    def __init__(self, active="", previous="", secret=""):
        self.values = (active, previous, secret)

    def __enter__(self):
        self.orig = (auth_mod.ADMIN_PASS, auth_mod.ADMIN_PASS_PREVIOUS, auth_mod.ADMIN_PASS_SECRET)
        auth_mod.ADMIN_PASS, auth_mod.ADMIN_PASS_PREVIOUS, auth_mod.ADMIN_PASS_SECRET = self.values
        return self

    def __exit__(self, *exc):
        auth_mod.ADMIN_PASS, auth_mod.ADMIN_PASS_PREVIOUS, auth_mod.ADMIN_PASS_SECRET = self.orig
        return False


class AuthTests(unittest.TestCase):
    def test_extract_admin_token_any_header_case(self):
        event = {"headers": {"X-Admin-Token": " s3cret "}}
        self.assertEqual(auth_mod._extract_admin_token(event), "s3cret")

    def test_extract_admin_token_missing(self):
        self.assertIsNone(auth_mod._extract_admin_token({"headers": {"cookie": "a=b"}}))
        self.assertIsNone(auth_mod._extract_admin_token({}))

    def test_is_admin_with_active_password(self):
        with _AdminPasswords(active="s3cret"):
            self.assertTrue(auth_mod._is_admin({"headers": {"x-admin-token": "s3cret"}}))
            self.assertFalse(auth_mod._is_admin({"headers": {"x-admin-token": "wrong"}}))

    def test_is_admin_accepts_previous_password(self):
        with _AdminPasswords(active="new-pass", previous="old-pass"):
            self.assertTrue(auth_mod._is_admin({"headers": {"x-admin-token": "old-pass"}}))

    def test_nothing_accepted_when_unconfigured(self):
        with _AdminPasswords():
            self.assertFalse(auth_mod._admin_configured())
            self.assertFalse(auth_mod._check_password(""))
            self.assertFalse(auth_mod._check_password("anything"))

    def test_password_from_secrets_manager(self):
        with _AdminPasswords(secret="mediadb/admin-pass"):
            with patch.object(auth_mod, "_get_secret_string", return_value="from-secret\n") as mock_secret:
                self.assertTrue(auth_mod._check_password("from-secret"))
                mock_secret.assert_called_with("mediadb/admin-pass")

    def test_secret_failure_raises_runtime_error(self):
        err = ClientError({"Error": {"Code": "AccessDeniedException", "Message": "no"}}, "GetSecretValue")
        with _AdminPasswords(secret="mediadb/admin-pass"):
            with patch.object(auth_mod, "_get_secret_string", side_effect=err):
                with self.assertRaises(RuntimeError):
                    auth_mod._admin_passwords()

    def test_normalize_api_keys_dedupes_csv(self):
        self.assertEqual(auth_mod._normalize_api_keys("a, b", "b", "", "c"), ("a", "b", "c"))


class HttpUtilsTests(unittest.TestCase):
    def test_response_format(self):
        resp = _response(200, {"key": "val", "n": Decimal("2")})
        self.assertEqual(resp["statusCode"], 200)
        self.assertIn("Access-Control-Allow-Origin", resp["headers"])
        body = json.loads(resp["body"])
        self.assertEqual(body, {"key": "val", "n": 2})

    def test_error_format(self):
        resp = _error(400, "bad input")
        self.assertEqual(resp["statusCode"], 400)
        body = json.loads(resp["body"])
        self.assertFalse(body["success"])
        self.assertEqual(body["error"], "bad input")
        self.assertEqual(body["error_envelope"]["code"], "INVALID_INPUT")
        self.assertFalse(body["error_envelope"]["retryable"])

    def test_error_codes_by_status(self):
        codes = {
            status: json.loads(_error(status, "x")["body"])["error_envelope"]["code"]
            for status in (401, 404, 405, 409, 500, 502)
        }
        self.assertEqual(codes, {
            401: "PERMISSION_DENIED",
            404: "NOT_FOUND",
            405: "METHOD_NOT_ALLOWED",
            409: "CONFLICT",
            500: "INTERNAL_ERROR",
            502: "INTERNAL_ERROR",
        })

    def test_sync_error_conflict(self):
        resp = _sync_error(StoreWriteConflict("stale", key="series", status=409))
        self.assertEqual(resp["statusCode"], 409)
        body = json.loads(resp["body"])
        self.assertEqual(body["error_envelope"]["code"], "CONFLICT")
        self.assertEqual(body["key"], "series")
        self.assertEqual(body["upstream_status"], 409)

    def test_sync_error_unavailable_is_retryable(self):
        resp = _sync_error(StoreUnavailable("down", status=503, written_keys=["series"]))
        self.assertEqual(resp["statusCode"], 502)
        body = json.loads(resp["body"])
        self.assertTrue(body["error_envelope"]["retryable"])
        self.assertEqual(body["written_keys"], ["series"])

    def test_sync_error_unauthorized_lists_keys(self):
        body = json.loads(_sync_error(Unauthorized("nope", keys={"settings", "series"}))["body"])
        self.assertEqual(body["keys"], ["series", "settings"])

    def test_parse_body(self):
        event = {"body": '{"key": "val"}', "isBase64Encoded": False}
        self.assertEqual(_parse_body(event), {"key": "val"})

    def test_parse_body_base64(self):
        raw = base64.b64encode(b'{"key": "b64"}').decode()
        event = {"body": raw, "isBase64Encoded": True}
        self.assertEqual(_parse_body(event), {"key": "b64"})

    def test_parse_body_invalid_json_raises(self):
        with self.assertRaises(ValueError):
            _parse_body({"body": "{not json"})

    def test_parse_body_keeps_non_object(self):
        self.assertEqual(_parse_body({"body": "[1, 2]"}), [1, 2])

    def test_path_method(self):
        event = {
            "requestContext": {"http": {"method": "POST", "path": "/api/data"}},
        }
        self.assertEqual(_path_method(event), ("POST", "/api/data"))

    def test_path_method_v1(self):
        self.assertEqual(_path_method({"httpMethod": "get", "path": "/api/data"}), ("GET", "/api/data"))


class SerializationTests(unittest.TestCase):
    def test_serialize_nested_float(self):
        result = _serialize({"rating": 4.5, "tags": ["a"]})
        self.assertEqual(result["M"]["rating"], {"N": "4.5"})

    def test_deserialize_item(self):
        item = {
            "store_key": {"S": "series"},
            "version": {"N": "42"},
            "value": {"L": [{"M": {"id": {"S": "s1"}, "rating": {"N": "4.5"}}}]},
        }
        result = _deserialize(item)
        self.assertEqual(result["store_key"], "series")
        self.assertEqual(result["version"], 42)
        self.assertEqual(result["value"], [{"id": "s1", "rating": 4.5}])

    def test_now_z_format(self):
        self.assertRegex(_now_z(), r"\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}Z")

    def test_unix_now(self):
        import time

        self.assertAlmostEqual(_unix_now(), int(time.time()), delta=2)


class AwsClientTests(unittest.TestCase):
    @patch("mediadb_shared.aws_clients.boto3")
    def test_get_ddb_singleton(self, mock_boto3):
        import mediadb_shared.aws_clients as clients

        clients._ddb = None  # Reset singleton
        mock_client = MagicMock()
        mock_boto3.client.return_value = mock_client

        result1 = _get_ddb()
        result2 = _get_ddb()

        self.assertIs(result1, result2)
        mock_boto3.client.assert_called_once()

        clients._ddb = None  # Clean up

    @patch("mediadb_shared.aws_clients._get_secretsmanager")
    def test_secret_string_cached(self, mock_sm):
        import mediadb_shared.aws_clients as clients

        clients._secret_cache.clear()
        mock_sm.return_value.get_secret_value.return_value = {"SecretString": "tok"}

        self.assertEqual(clients._get_secret_string("gh/token"), "tok")
        self.assertEqual(clients._get_secret_string("gh/token"), "tok")
        mock_sm.return_value.get_secret_value.assert_called_once_with(SecretId="gh/token")

        clients._secret_cache.clear()


if __name__ == "__main__":
    unittest.main()
