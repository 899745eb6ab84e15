"""API client tests — token cache, refresh-on-401, problem details.

Responses come from a fake transport adapter mounted on the client's
``requests.Session``; no server is started.
"""

from __future__ import annotations

import json
import uuid
from datetime import date
from urllib.parse import parse_qs, urlparse

import pytest
import requests
from requests.adapters import BaseAdapter

from attendease.client import AttendEaseClient, ClientError

BASE_URL = "http://hr.test"
USER = {"id": str(uuid.uuid4()), "email": "ada@acme.io", "role": "employee"}


class FakeAdapter(BaseAdapter):
    """Routes every request to *handler(request) -> (status, body)*."""

    def __init__(self, handler):
        super().__init__()
        self.handler = handler
        self.calls: list[requests.PreparedRequest] = []

    def send(self, request, **kwargs):
        self.calls.append(request)
        status, body = self.handler(request)
        resp = requests.Response()
        resp.status_code = status
        resp._content = b"" if body is None else json.dumps(body).encode()
        resp.headers["Content-Type"] = "application/json"
        resp.reason = "Error" if status >= 400 else "OK"
        resp.url = request.url
        resp.request = request
        return resp

    def close(self):
        pass


def _path(request) -> str:
    return urlparse(request.url).path


def _body(request) -> dict:
    return json.loads(request.body) if request.body else {}


def _client(handler, **kwargs) -> tuple[AttendEaseClient, FakeAdapter]:
    adapter = FakeAdapter(handler)
    session = requests.Session()
    session.mount(BASE_URL, adapter)
    return AttendEaseClient(BASE_URL, session=session, **kwargs), adapter


def _tokens(suffix: str) -> dict:
    return {
        "access_token": f"access-{suffix}",
        "refresh_token": f"refresh-{suffix}",
        "token_type": "bearer",
        "user": USER,
    }


# ── Sign-in and cache ───────────────────────────────────────────────


def test_sign_in_persists_token_cache(tmp_path):
    cache = tmp_path / "session.json"

    def handler(request):
        assert _path(request) == "/api/v1/auth/sign-in"
        assert "Authorization" not in request.headers
        assert _body(request) == {"email": "ada@acme.io", "password": "pw-123456"}
        return 200, _tokens("1")

    client, _ = _client(handler, token_cache=cache)
    user = client.sign_in("ada@acme.io", "pw-123456")

    assert user == USER
    assert client.is_authenticated
    stored = json.loads(cache.read_text())
    assert stored["access_token"] == "access-1"
    assert stored["refresh_token"] == "refresh-1"

    restored, _ = _client(handler, token_cache=cache)
    assert restored.access_token == "access-1"
    assert restored.user["email"] == "ada@acme.io"


def test_unreadable_cache_is_ignored(tmp_path):
    cache = tmp_path / "session.json"
    cache.write_text("{not json")

    client, _ = _client(lambda r: (200, {}), token_cache=cache)
    assert not client.is_authenticated


# ── Refresh on 401 ──────────────────────────────────────────────────


def test_expired_access_token_is_refreshed_and_retried(tmp_path):
    cache = tmp_path / "session.json"
    cache.write_text(json.dumps(_tokens("old")))

    def handler(request):
        if _path(request) == "/api/v1/auth/refresh":
            assert _body(request) == {"refresh_token": "refresh-old"}
            return 200, _tokens("new")
        if request.headers.get("Authorization") == "Bearer access-new":
            return 200, {"id": USER["id"], "permissions": ["checkin"]}
        return 401, {"detail": "Token has expired."}

    client, adapter = _client(handler, token_cache=cache)
    me = client.me()

    assert me["permissions"] == ["checkin"]
    assert [_path(c) for c in adapter.calls] == [
        "/api/v1/auth/me", "/api/v1/auth/refresh", "/api/v1/auth/me",
    ]
    assert json.loads(cache.read_text())["access_token"] == "access-new"


def test_failed_refresh_clears_session(tmp_path):
    cache = tmp_path / "session.json"
    cache.write_text(json.dumps(_tokens("old")))

    def handler(request):
        if _path(request) == "/api/v1/auth/refresh":
            return 401, {"detail": "Refresh token reuse detected."}
        return 401, {"detail": "Token has expired."}

    client, adapter = _client(handler, token_cache=cache)
    with pytest.raises(ClientError) as exc:
        client.today_attendance()

    assert exc.value.status_code == 401
    assert exc.value.detail == "Token has expired."
    assert not client.is_authenticated
    assert not cache.exists()
    assert len(adapter.calls) == 2


def test_no_retry_without_refresh_token():
    client, adapter = _client(lambda r: (401, {"detail": "Not authenticated."}))

    with pytest.raises(ClientError):
        client.me()
    assert len(adapter.calls) == 1


# ── Responses and errors ────────────────────────────────────────────


def test_problem_detail_becomes_client_error():
    problem = {
        "type": "https://attendease.app/errors/validation-error",
        "title": "Validation Error",
        "status": 422,
        "detail": "End date cannot be before start date.",
        "errors": {"end_date": ["End date cannot be before start date."]},
    }
    client, _ = _client(lambda r: (422, problem))
    client.access_token = "access-1"

    with pytest.raises(ClientError) as exc:
        client.submit_leave(uuid.uuid4(), date(2024, 3, 10), date(2024, 3, 9))

    assert exc.value.status_code == 422
    assert exc.value.detail == "End date cannot be before start date."
    assert "end_date" in exc.value.errors
    assert str(exc.value).startswith("[422]")


def test_non_json_error_falls_back_to_reason():
    def handler(request):
        return 502, None

    client, _ = _client(handler)
    with pytest.raises(ClientError) as exc:
        client.request("GET", "/health", auth=False)
    assert exc.value.detail == "Error"
    assert exc.value.errors == {}


def test_empty_bodies_return_none():
    def handler(request):
        if request.method == "DELETE":
            return 204, None
        return 200, None

    client, _ = _client(handler)
    client.access_token = "access-1"

    assert client.request("DELETE", f"/leave/requests/{uuid.uuid4()}") is None
    assert client.today_attendance() is None


def test_params_drop_none_and_serialise_dates():
    captured = {}

    def handler(request):
        captured.update(parse_qs(urlparse(request.url).query))
        return 200, {"data": [], "meta": {"total": 0}}

    client, _ = _client(handler)
    client.access_token = "access-1"
    client.leave_requests(status="pending", from_date=date(2024, 3, 1), employee_id=None)

    assert captured == {"status": ["pending"], "from_date": ["2024-03-01"]}


def test_company_header_is_sent():
    company_id = uuid.uuid4()

    def handler(request):
        assert request.headers["X-Company-Id"] == str(company_id)
        assert request.headers["Authorization"] == "Bearer access-1"
        return 200, []

    client, _ = _client(handler)
    client.access_token = "access-1"
    client.company_id = company_id

    assert client.pending_leave() == []


def test_sign_out_clears_session_even_on_error(tmp_path):
    cache = tmp_path / "session.json"
    cache.write_text(json.dumps(_tokens("1")))
    client, adapter = _client(lambda r: (401, {"detail": "Session has been revoked."}), token_cache=cache)

    with pytest.raises(ClientError):
        client.sign_out()

    assert not client.is_authenticated
    assert not cache.exists()
    assert [_path(c) for c in adapter.calls] == ["/api/v1/auth/logout"]
