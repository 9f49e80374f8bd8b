import json
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qsl

import httpx
import pytest

from config import get_settings
from db.connection import get_client
from db.rest_client import SupabaseClient
from models.schemas import AuthSession

USER_ID = uuid.UUID("11111111-1111-4111-8111-111111111111")
OTHER_USER_ID = uuid.UUID("22222222-2222-4222-8222-222222222222")
EMAIL = "user@example.com"
PASSWORD = "secret123"


def _fmt(value) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    return str(value)


def _parse_dt(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _matches(row: dict, column: str, expr: str) -> bool:
    op, _, expected = expr.partition(".")
    actual = row.get(column)
    if op == "eq":
        return _fmt(actual) == expected
    if op == "is":
        return _fmt(actual) == expected
    if op in ("gte", "lt"):
        left, right = _parse_dt(actual), _parse_dt(expected)
        return left >= right if op == "gte" else left < right
    raise AssertionError(f"Unsupported filter operator {op!r}")


class FakeSupabase:
    """In-memory stand-in for the Supabase auth + PostgREST APIs.

    Mirrors the pieces the client relies on: the token grants, ``eq``/``is``/
    ``gte``/``lt`` filters, ``checklist_items(*)`` embedding, newest-first
    ordering, and ON DELETE CASCADE from tasks to checklist items.
    """

    def __init__(self):
        self.tables: dict[str, list[dict]] = {"tasks": [], "checklist_items": []}
        self.requests: list[httpx.Request] = []
        self.confirm_email = False
        self.fail_next: list[int] = []
        self._tick = 0

    # ─── Helpers for tests ────────────────────────────────────────────────────

    def token_payload(self, *, expires_in: int = 3600, email: str = EMAIL) -> dict:
        return {
            "access_token": f"access-{uuid.uuid4()}",
            "refresh_token": f"refresh-{uuid.uuid4()}",
            "token_type": "bearer",
            "expires_in": expires_in,
            "expires_at": int(datetime.now(timezone.utc).timestamp()) + expires_in,
            "user": {"id": str(USER_ID), "email": email},
        }

    def _now(self) -> str:
        # Strictly increasing timestamps so newest-first ordering is stable
        self._tick += 1
        return (datetime.now(timezone.utc) + timedelta(milliseconds=self._tick)).isoformat()

    def add_row(self, table: str, row: dict) -> dict:
        stored = {
            "id": str(uuid.uuid4()),
            "created_at": self._now(),
            "updated_at": self._now(),
            **row,
        }
        if table == "tasks":
            stored.setdefault("status", "pending")
            stored.setdefault("is_today", True)
            stored.setdefault("jira_ticket_link", None)
            stored.setdefault("completed_at", None)
        else:
            stored.setdefault("completed", False)
        self.tables[table].append(stored)
        return stored

    def rest_requests(self, method: str | None = None) -> list[httpx.Request]:
        return [
            r
            for r in self.requests
            if r.url.path.startswith("/rest/v1/") and (method is None or r.method == method)
        ]

    # ─── Transport ────────────────────────────────────────────────────────────

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_next:
            return httpx.Response(self.fail_next.pop(0), json={"message": "unavailable"})
        path = request.url.path
        if path.startswith("/auth/v1/"):
            return self._auth(request, path.removeprefix("/auth/v1/"))
        if path.startswith("/rest/v1/"):
            return self._rest(request, path.removeprefix("/rest/v1/"))
        return httpx.Response(404, json={"message": "not found"})

    def _auth(self, request: httpx.Request, endpoint: str) -> httpx.Response:
        body = json.loads(request.content or b"{}")
        if endpoint == "signup":
            if self.confirm_email:
                return httpx.Response(200, json={"id": str(USER_ID), "email": body["email"]})
            return httpx.Response(200, json=self.token_payload(email=body["email"]))
        if endpoint == "token":
            grant = request.url.params.get("grant_type")
            if grant == "password" and body.get("password") == PASSWORD:
                return httpx.Response(200, json=self.token_payload(email=body["email"]))
            if grant == "refresh_token" and body.get("refresh_token", "").startswith("refresh-"):
                return httpx.Response(200, json=self.token_payload())
            return httpx.Response(
                400,
                json={"error_code": "invalid_credentials", "msg": "Invalid login credentials"},
            )
        if endpoint == "logout":
            return httpx.Response(204)
        if endpoint == "user":
            return httpx.Response(200, json={"id": str(USER_ID), "email": EMAIL})
        return httpx.Response(404, json={"msg": "not found"})

    def _rest(self, request: httpx.Request, table: str) -> httpx.Response:
        rows = self.tables[table]
        params = parse_qsl(request.url.query.decode(), keep_blank_values=True)
        select = "*"
        order = None
        limit = None
        filters: list[tuple[str, str]] = []
        for key, value in params:
            if key == "select":
                select = value
            elif key == "order":
                order = value
            elif key == "limit":
                limit = int(value)
            else:
                filters.append((key, value))

        def selected() -> list[dict]:
            return [r for r in rows if all(_matches(r, c, e) for c, e in filters)]

        if request.method == "GET":
            result = [dict(r) for r in selected()]
            if "checklist_items(*)" in select:
                for r in result:
                    r["checklist_items"] = [
                        dict(i) for i in self.tables["checklist_items"] if i["task_id"] == r["id"]
                    ]
            if order:
                column, _, direction = order.partition(".")
                result.sort(key=lambda r: r[column], reverse=direction == "desc")
            if limit is not None:
                result = result[:limit]
            return httpx.Response(200, json=result)

        if request.method == "POST":
            body = json.loads(request.content)
            created = [self.add_row(table, row) for row in (body if isinstance(body, list) else [body])]
            return httpx.Response(201, json=created)

        if request.method == "PATCH":
            body = json.loads(request.content)
            updated = []
            for r in selected():
                r.update(body)
                r["updated_at"] = self._now()
                updated.append(dict(r))
            return httpx.Response(200, json=updated)

        if request.method == "DELETE":
            doomed = selected()
            self.tables[table] = [r for r in rows if r not in doomed]
            if table == "tasks":
                ids = {r["id"] for r in doomed}
                self.tables["checklist_items"] = [
                    i for i in self.tables["checklist_items"] if i["task_id"] not in ids
                ]
            return httpx.Response(200, json=doomed)

        return httpx.Response(405)


# ─── Fixtures ─────────────────────────────────────────────────────────────────


@pytest.fixture(autouse=True)
def _isolated_settings(tmp_path, monkeypatch):
    """Point settings at a fake project and a per-test session file."""
    monkeypatch.setenv("SUPABASE_URL", "https://project.supabase.co")
    monkeypatch.setenv("SUPABASE_ANON_KEY", "anon-key")
    monkeypatch.setenv("SESSION_FILE", str(tmp_path / "session.json"))
    monkeypatch.setenv("DEBUG", "false")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def passphrase():
    return EMAIL


@pytest.fixture
def backend():
    return FakeSupabase()


@pytest.fixture
async def client(backend):
    client = SupabaseClient(
        "https://project.supabase.co",
        "anon-key",
        transport=httpx.MockTransport(backend.handler),
    )
    try:
        yield client
    finally:
        await client.aclose()


@pytest.fixture
def session():
    return AuthSession(
        access_token="access-token",
        refresh_token="refresh-token",
        user_id=USER_ID,
        email=EMAIL,
    )


@pytest.fixture
def cli_backend(backend, monkeypatch):
    """Route every CLI command's client through the in-memory backend."""

    @asynccontextmanager
    async def fake_get_client():
        async with get_client(transport=httpx.MockTransport(backend.handler)) as c:
            yield c

    monkeypatch.setattr("cli.app.get_client", fake_get_client)
    return backend
