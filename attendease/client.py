"""AttendEase API client with a persistent session.

Stores the access/refresh token pair in a JSON file so that a device (or a
script) stays signed in across runs, refreshes the pair once on a 401 and
surfaces server problem details as ``ClientError``.

Usage:
    client = AttendEaseClient("https://hr.example.com", token_cache=Path("~/.attendease.json"))
    client.sign_in("ada@acme.io", "s3cret-pass")
    client.check_in(notes="From the office")
    print(client.today_attendance())
"""

from __future__ import annotations

import json
import logging
import uuid
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

import requests

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"
USER_AGENT = "AttendEase-Client/1.0"


class ClientError(Exception):
    """Non-2xx response; carries the RFC 7807 ``detail`` and field ``errors``."""

    def __init__(self, status_code: int, detail: str, errors: Optional[Dict[str, Any]] = None):
        self.status_code = status_code
        self.detail = detail
        self.errors = errors or {}
        super().__init__(f"[{status_code}] {detail}")


def _jsonable(value: Any) -> Any:
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, uuid.UUID):
        return str(value)
    return value


def _clean(params: Dict[str, Any]) -> Dict[str, Any]:
    """Drop ``None`` values and serialise dates / UUIDs."""
    return {k: _jsonable(v) for k, v in params.items() if v is not None}


class AttendEaseClient:
    """Synchronous AttendEase API client."""

    def __init__(
        self,
        base_url: str,
        *,
        token_cache: Optional[Path] = None,
        session: Optional[requests.Session] = None,
        timeout: float = 30,
    ):
        self.base_url = base_url.rstrip("/")
        self.token_cache = Path(token_cache).expanduser() if token_cache else None
        self.timeout = timeout
        self.company_id: Optional[uuid.UUID] = None

        self.access_token: Optional[str] = None
        self.refresh_token: Optional[str] = None
        self.user: Optional[Dict[str, Any]] = None

        self.session = session or requests.Session()
        self.session.headers.update({
            "Accept": "application/json",
            "User-Agent": USER_AGENT,
        })

        self._load_cached_tokens()

    # ── Token cache ───────────────────────────────────────────────────

    def _load_cached_tokens(self) -> None:
        if not self.token_cache or not self.token_cache.exists():
            return
        try:
            data = json.loads(self.token_cache.read_text())
            self.access_token = data["access_token"]
            self.refresh_token = data["refresh_token"]
            self.user = data.get("user")
        except (json.JSONDecodeError, KeyError):
            logger.warning("Ignoring unreadable token cache at %s", self.token_cache)
            return
        logger.info("Loaded cached session for %s", (self.user or {}).get("email", "unknown user"))

    def _save_cached_tokens(self) -> None:
        if not self.token_cache:
            return
        self.token_cache.parent.mkdir(parents=True, exist_ok=True)
        self.token_cache.write_text(json.dumps({
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "user": self.user,
            "cached_at": datetime.now(timezone.utc).isoformat(),
        }))

    def clear_session(self) -> None:
        """Forget the tokens in memory and on disk."""
        self.access_token = None
        self.refresh_token = None
        self.user = None
        if self.token_cache and self.token_cache.exists():
            self.token_cache.unlink()

    @property
    def is_authenticated(self) -> bool:
        return self.access_token is not None

    # ── HTTP ──────────────────────────────────────────────────────────

    def _headers(self, auth: bool) -> Dict[str, str]:
        headers: Dict[str, str] = {}
        if auth and self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"
        if self.company_id:
            headers["X-Company-Id"] = str(self.company_id)
        return headers

    @staticmethod
    def _raise_for_problem(resp: requests.Response) -> None:
        try:
            body = resp.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        detail = body.get("detail") or resp.reason or "Request failed"
        if not isinstance(detail, str):
            detail = json.dumps(detail)
        raise ClientError(resp.status_code, detail, body.get("errors"))

    def request(
        self,
        method: str,
        path: str,
        *,
        json_body: Any = None,
        params: Optional[Dict[str, Any]] = None,
        auth: bool = True,
        retry_on_401: bool = True,
    ) -> Any:
        """Send a request to ``/api/v1{path}`` and return the decoded body."""
        url = f"{self.base_url}{API_PREFIX}{path}"
        resp = self.session.request(
            method,
            url,
            json=json_body,
            params=_clean(params or {}),
            headers=self._headers(auth),
            timeout=self.timeout,
        )

        if resp.status_code == 401 and auth and retry_on_401 and self.refresh_token:
            logger.info("Access token rejected; refreshing session")
            if self.refresh():
                return self.request(
                    method, path,
                    json_body=json_body, params=params, auth=auth, retry_on_401=False,
                )

        if resp.status_code >= 400:
            self._raise_for_problem(resp)
        if resp.status_code == 204 or not resp.content:
            return None
        return resp.json()

    # ── Session ───────────────────────────────────────────────────────

    def _store_tokens(self, data: Dict[str, Any]) -> None:
        self.access_token = data["access_token"]
        self.refresh_token = data["refresh_token"]
        if "user" in data:
            self.user = data["user"]
        self._save_cached_tokens()

    def sign_in(self, email: str, password: str) -> Dict[str, Any]:
        data = self.request(
            "POST", "/auth/sign-in",
            json_body={"email": email, "password": password}, auth=False,
        )
        self._store_tokens(data)
        return data["user"]

    def sign_up(self, name: str, email: str, password: str) -> Dict[str, Any]:
        data = self.request(
            "POST", "/auth/sign-up",
            json_body={"name": name, "email": email, "password": password}, auth=False,
        )
        self._store_tokens(data)
        return data["user"]

    def refresh(self) -> bool:
        """Rotate the token pair; on failure the stored session is cleared."""
        if not self.refresh_token:
            return False
        try:
            data = self.request(
                "POST", "/auth/refresh",
                json_body={"refresh_token": self.refresh_token}, auth=False,
            )
        except ClientError as exc:
            logger.warning("Session refresh failed: %s", exc.detail)
            self.clear_session()
            return False
        self._store_tokens(data)
        return True

    def sign_out(self) -> None:
        try:
            if self.access_token:
                self.request("POST", "/auth/logout", retry_on_401=False)
        finally:
            self.clear_session()

    def request_password_reset(self, email: str) -> Dict[str, Any]:
        return self.request(
            "POST", "/auth/password-reset/request", json_body={"email": email}, auth=False,
        )

    def confirm_password_reset(self, token: str, new_password: str) -> Dict[str, Any]:
        return self.request(
            "POST", "/auth/password-reset/confirm",
            json_body={"token": token, "new_password": new_password}, auth=False,
        )

    def me(self) -> Dict[str, Any]:
        return self.request("GET", "/auth/me")

    # ── Attendance ────────────────────────────────────────────────────

    def check_in(self, *, location: Optional[Dict[str, Any]] = None, notes: Optional[str] = None) -> Dict[str, Any]:
        return self.request("POST", "/attendance/check-in", json_body={"location": location, "notes": notes})

    def check_out(self, *, notes: Optional[str] = None) -> Dict[str, Any]:
        return self.request("POST", "/attendance/check-out", json_body={"notes": notes})

    def today_attendance(self) -> Optional[Dict[str, Any]]:
        """Today's record, or ``None`` before checking in."""
        return self.request("GET", "/attendance/today")

    def recent_attendance(self, limit: int = 30) -> list:
        return self.request("GET", "/attendance/recent", params={"limit": limit})

    def list_attendance(self, **filters: Any) -> Dict[str, Any]:
        return self.request("GET", "/attendance", params=filters)

    def mark_attendance(self, employee_id: uuid.UUID, day: date, status: str, reason: str) -> Dict[str, Any]:
        return self.request("POST", "/attendance/mark", json_body=_clean({
            "employee_id": employee_id, "date": day, "status": status, "reason": reason,
        }))

    def holidays(self, year: Optional[int] = None) -> list:
        return self.request("GET", "/holidays", params={"year": year})

    # ── Leave ─────────────────────────────────────────────────────────

    def leave_types(self) -> list:
        return self.request("GET", "/leave/types")

    def submit_leave(
        self,
        leave_type_id: uuid.UUID,
        start_date: date,
        end_date: date,
        reason: Optional[str] = None,
    ) -> Dict[str, Any]:
        return self.request("POST", "/leave/requests", json_body=_clean({
            "leave_type_id": leave_type_id,
            "start_date": start_date,
            "end_date": end_date,
            "reason": reason,
        }))

    def leave_requests(self, **filters: Any) -> Dict[str, Any]:
        return self.request("GET", "/leave/requests", params=filters)

    def pending_leave(self) -> list:
        return self.request("GET", "/leave/requests/pending")

    def approve_leave(self, request_id: uuid.UUID, comments: Optional[str] = None) -> Dict[str, Any]:
        return self.request("POST", f"/leave/requests/{request_id}/approve", json_body={"comments": comments})

    def reject_leave(self, request_id: uuid.UUID, comments: Optional[str] = None) -> Dict[str, Any]:
        return self.request("POST", f"/leave/requests/{request_id}/reject", json_body={"comments": comments})

    def leave_balances(self, year: Optional[int] = None) -> list:
        return self.request("GET", "/leave/balances", params={"year": year})

    # ── Employees ─────────────────────────────────────────────────────

    def employees(self, **filters: Any) -> Dict[str, Any]:
        return self.request("GET", "/employees", params=filters)

    def create_employee(self, **fields: Any) -> Dict[str, Any]:
        """Privileged: admins / super-admins only."""
        return self.request("POST", "/employees", json_body=_clean(fields))

    # ── Reports ───────────────────────────────────────────────────────

    def attendance_summary(self, period: str = "month", **filters: Any) -> Dict[str, Any]:
        return self.request("GET", "/reports/attendance-summary", params={"period": period, **filters})

    def leave_summary(self, period: str = "month", **filters: Any) -> Dict[str, Any]:
        return self.request("GET", "/reports/leave-summary", params={"period": period, **filters})

    def daily_report(self, day: Optional[date] = None, department: Optional[str] = None) -> Dict[str, Any]:
        return self.request("GET", "/reports/daily", params={"date": day, "department": department})
