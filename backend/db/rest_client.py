"""Async client for the Supabase auth (GoTrue) and table (PostgREST) APIs.

All row access goes through the anon key plus the user's access token, so the
backend's row-level security policies decide what each call can see.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from typing import Any

import httpx

logger = logging.getLogger(__name__)

# A filter value is a plain value (eq), an (operator, value) pair, or a list
# of pairs, e.g. {"created_at": [("gte", start), ("lt", end)]}.
FilterValue = Any


class StoreError(Exception):
    """A request to the record store failed."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        code: str = "store_error",
        retryable: bool = False,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code
        self.retryable = retryable


class AuthError(StoreError):
    """The auth API rejected the request (bad credentials, expired token...)."""


def _is_retryable_status(status_code: int) -> bool:
    return status_code == 429 or status_code >= 500


def _format_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    return str(value)


def build_filter_params(filters: Mapping[str, FilterValue] | None) -> list[tuple[str, str]]:
    """Translate ``{column: value}`` into PostgREST ``column=op.value`` params.

    A list of (operator, value) pairs applies several conditions to one column.
    """
    params: list[tuple[str, str]] = []
    for column, raw in (filters or {}).items():
        conditions = raw if isinstance(raw, list) else [raw]
        for condition in conditions:
            if isinstance(condition, tuple):
                op, value = condition
            else:
                op, value = ("is" if condition is None else "eq"), condition
            params.append((column, f"{op}.{_format_value(value)}"))
    return params


def _error_from_response(response: httpx.Response, *, auth: bool = False) -> StoreError:
    code = "http_error"
    message = f"Request failed with status {response.status_code}"
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        code = str(body.get("error_code") or body.get("error") or body.get("code") or code)
        message = str(
            body.get("message")
            or body.get("msg")
            or body.get("error_description")
            or message
        )

    cls = AuthError if auth or response.status_code == 401 else StoreError
    return cls(
        message,
        status_code=response.status_code,
        code=code,
        retryable=_is_retryable_status(response.status_code),
    )


def _json_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError as exc:
        raise StoreError(
            f"Record store returned a non-JSON response (status {response.status_code})",
            status_code=response.status_code,
            code="invalid_response",
        ) from exc


class SupabaseClient:
    """Thin wrapper over ``httpx.AsyncClient`` for the two Supabase APIs."""

    def __init__(
        self,
        base_url: str,
        anon_key: str,
        *,
        timeout: float = 20.0,
        max_retries: int = 2,
        retry_base_delay_ms: int = 300,
        retry_max_delay_ms: int = 3000,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        if not base_url or not anon_key:
            raise StoreError(
                "Missing SUPABASE_URL or SUPABASE_ANON_KEY in environment",
                code="store_not_configured",
            )
        self.base = base_url.rstrip("/")
        self.anon_key = anon_key
        self.max_retries = max(0, max_retries)
        self.base_delay = max(50, retry_base_delay_ms) / 1000
        self.max_delay = max(self.base_delay, retry_max_delay_ms / 1000)
        self.access_token: str | None = None
        self._http = httpx.AsyncClient(
            base_url=self.base,
            timeout=timeout,
            headers={"apikey": anon_key, "Content-Type": "application/json"},
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    def _auth_headers(self, access_token: str | None = None) -> dict[str, str]:
        token = access_token or self.access_token or self.anon_key
        return {"Authorization": f"Bearer {token}"}

    async def _request(
        self,
        method: str,
        path: str,
        *,
        auth: bool = False,
        access_token: str | None = None,
        params: Mapping[str, str] | list[tuple[str, str]] | None = None,
        json: Any = None,
        headers: Mapping[str, str] | None = None,
    ) -> httpx.Response:
        """Send a request; GETs are retried on 429/5xx and transport errors."""
        all_headers = self._auth_headers(access_token)
        if headers:
            all_headers.update(headers)

        attempts = self.max_retries + 1 if method == "GET" else 1
        for attempt in range(attempts):
            try:
                response = await self._http.request(
                    method, path, params=params, json=json, headers=all_headers
                )
            except httpx.TransportError as exc:
                if attempt + 1 >= attempts:
                    raise StoreError(
                        f"Could not reach the record store: {exc.__class__.__name__}",
                        code="store_unreachable",
                        retryable=True,
                    ) from exc
                logger.warning("%s %s failed (%s), retrying", method, path, exc.__class__.__name__)
            else:
                if response.is_success:
                    return response
                if not _is_retryable_status(response.status_code) or attempt + 1 >= attempts:
                    raise _error_from_response(response, auth=auth)
                logger.warning("%s %s returned %d, retrying", method, path, response.status_code)

            delay = min(self.max_delay, self.base_delay * (2**attempt))
            await asyncio.sleep(delay)

        raise AssertionError("unreachable")  # pragma: no cover

    # ─── Auth ─────────────────────────────────────────────────────────────────

    async def sign_up(self, email: str, password: str) -> dict[str, Any]:
        response = await self._request(
            "POST", "/auth/v1/signup", auth=True, json={"email": email, "password": password}
        )
        return _json_body(response)

    async def sign_in_with_password(self, email: str, password: str) -> dict[str, Any]:
        response = await self._request(
            "POST",
            "/auth/v1/token",
            auth=True,
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        return _json_body(response)

    async def refresh_session(self, refresh_token: str) -> dict[str, Any]:
        response = await self._request(
            "POST",
            "/auth/v1/token",
            auth=True,
            params={"grant_type": "refresh_token"},
            json={"refresh_token": refresh_token},
        )
        return _json_body(response)

    async def get_user(self, access_token: str) -> dict[str, Any]:
        response = await self._request(
            "GET", "/auth/v1/user", auth=True, access_token=access_token
        )
        return _json_body(response)

    async def sign_out(self, access_token: str) -> None:
        await self._request("POST", "/auth/v1/logout", auth=True, access_token=access_token)

    # ─── Tables ───────────────────────────────────────────────────────────────

    async def select(
        self,
        table: str,
        *,
        columns: str = "*",
        filters: Mapping[str, FilterValue] | None = None,
        order: str | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """
        order: "created_at.desc" or "created_at.asc"
        """
        params = [("select", columns), *build_filter_params(filters)]
        if order:
            params.append(("order", order))
        if limit is not None:
            params.append(("limit", str(limit)))
        response = await self._request("GET", f"/rest/v1/{table}", params=params)
        return _json_body(response)

    async def insert(
        self, table: str, rows: dict[str, Any] | list[dict[str, Any]]
    ) -> list[dict[str, Any]]:
        response = await self._request(
            "POST",
            f"/rest/v1/{table}",
            json=rows,
            headers={"Prefer": "return=representation"},
        )
        return _json_body(response)

    async def update(
        self,
        table: str,
        values: dict[str, Any],
        *,
        filters: Mapping[str, FilterValue],
    ) -> list[dict[str, Any]]:
        if not filters:
            raise ValueError("update() requires at least one filter")
        response = await self._request(
            "PATCH",
            f"/rest/v1/{table}",
            params=build_filter_params(filters),
            json=values,
            headers={"Prefer": "return=representation"},
        )
        return _json_body(response)

    async def delete(
        self, table: str, *, filters: Mapping[str, FilterValue]
    ) -> list[dict[str, Any]]:
        if not filters:
            raise ValueError("delete() requires at least one filter")
        response = await self._request(
            "DELETE",
            f"/rest/v1/{table}",
            params=build_filter_params(filters),
            headers={"Prefer": "return=representation"},
        )
        return _json_body(response)
