"""
tests/test_backend_client.py -- Unit tests for core.backend.ParseClient.

The pooled requests.Session is replaced with a MagicMock so no request leaves
the process. Tests assert on the headers, URLs and bodies the client sends and
on how BaaS answers become return values or BackendError.
"""

from __future__ import annotations

import json
from unittest.mock import MagicMock

import pytest
import requests

from core.backend import BackendError, ParseClient


def _response(status_code: int = 200, body: dict | None = None) -> MagicMock:
    resp = MagicMock()
    resp.status_code = status_code
    payload = body if body is not None else {}
    resp.content = json.dumps(payload).encode()
    resp.json.return_value = payload
    return resp


@pytest.fixture
def client() -> ParseClient:
    c = ParseClient(
        server_url="https://baas.example.com/parse/",
        application_id="app-id",
        rest_api_key="rest-key",
        master_key="master-key",
        timeout=5.0,
    )
    c._session = MagicMock()
    return c


def _sent(client: ParseClient) -> tuple[tuple, dict]:
    call = client._session.request.call_args
    return call.args, call.kwargs


class TestHeaders:
    def test_public_call_has_no_master_key(self, client):
        client._session.request.return_value = _response(body={"objectId": "u1", "sessionToken": "r:abc"})
        client.log_in("alice", "secret1")
        args, kwargs = _sent(client)
        assert args == ("POST", "https://baas.example.com/parse/login")
        headers = kwargs["headers"]
        assert headers["X-Parse-Application-Id"] == "app-id"
        assert headers["X-Parse-REST-API-Key"] == "rest-key"
        assert headers["X-Parse-Revocable-Session"] == "1"
        assert "X-Parse-Master-Key" not in headers
        assert kwargs["timeout"] == 5.0

    def test_privileged_call_sends_master_key(self, client):
        client._session.request.return_value = _response(body={"objectId": "u1"})
        client.get_user("u1")
        args, kwargs = _sent(client)
        assert args == ("GET", "https://baas.example.com/parse/users/u1")
        assert kwargs["headers"]["X-Parse-Master-Key"] == "master-key"

    def test_session_token_forwarded(self, client):
        client._session.request.return_value = _response(body={"objectId": "u1"})
        client.get_me("r:token")
        _, kwargs = _sent(client)
        assert kwargs["headers"]["X-Parse-Session-Token"] == "r:token"
        assert "X-Parse-Master-Key" not in kwargs["headers"]


class TestErrors:
    def test_baas_error_message_passed_through(self, client):
        client._session.request.return_value = _response(404, {"code": 101, "error": "Invalid username/password."})
        with pytest.raises(BackendError) as exc_info:
            client.log_in("alice", "wrong")
        assert exc_info.value.message == "Invalid username/password."
        assert exc_info.value.code == 101
        assert exc_info.value.status_code == 404

    def test_error_without_body_uses_status(self, client):
        resp = _response(502)
        resp.content = b""
        client._session.request.return_value = resp
        with pytest.raises(BackendError, match="Request failed with status 502"):
            client.get_user("u1")

    def test_transport_failure_becomes_backend_error(self, client):
        client._session.request.side_effect = requests.ConnectionError("boom")
        with pytest.raises(BackendError) as exc_info:
            client.list_users()
        assert exc_info.value.message == "Unable to reach the authentication service"
        assert exc_info.value.status_code is None


class TestOperations:
    def test_sign_up_merges_submitted_fields(self, client):
        client._session.request.return_value = _response(
            201, {"objectId": "u9", "createdAt": "2024-05-01T10:00:00.000Z", "sessionToken": "r:new"}
        )
        record = client.sign_up("alice", "alice@example.com", "secret1")
        assert record == {
            "objectId": "u9",
            "username": "alice",
            "email": "alice@example.com",
            "role": "user",
            "emailVerified": False,
            "createdAt": "2024-05-01T10:00:00.000Z",
            "updatedAt": "2024-05-01T10:00:00.000Z",
            "sessionToken": "r:new",
        }
        _, kwargs = _sent(client)
        assert kwargs["json"]["role"] == "user"

    def test_list_users_orders_newest_first(self, client):
        client._session.request.return_value = _response(body={"results": [{"objectId": "u2"}, {"objectId": "u1"}]})
        users = client.list_users()
        assert [u["objectId"] for u in users] == ["u2", "u1"]
        _, kwargs = _sent(client)
        assert kwargs["params"]["order"] == "-createdAt"

    def test_find_user_by_username_none_when_missing(self, client):
        client._session.request.return_value = _response(body={"results": []})
        assert client.find_user_by_username("ghost") is None
        _, kwargs = _sent(client)
        assert json.loads(kwargs["params"]["where"]) == {"username": "ghost"}

    def test_upload_file_sanitizes_name_and_sends_raw_bytes(self, client):
        client._session.request.return_value = _response(201, {"name": "x_my_photo.png", "url": "https://f/x"})
        stored = client.upload_file("my photo.png", b"PNGDATA", "image/png")
        assert stored["url"] == "https://f/x"
        args, kwargs = _sent(client)
        assert args == ("POST", "https://baas.example.com/parse/files/my_photo.png")
        assert kwargs["data"] == b"PNGDATA"
        assert kwargs["headers"]["Content-Type"] == "image/png"

    def test_object_ids_are_path_quoted(self, client):
        client._session.request.return_value = _response(body={})
        client.delete_user("a/b")
        args, _ = _sent(client)
        assert args[1] == "https://baas.example.com/parse/users/a%2Fb"
