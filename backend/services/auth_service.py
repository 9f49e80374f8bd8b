"""Sign-up / sign-in against the Supabase auth API and local session storage.

The signed-in user's email doubles as the encryption passphrase for every
task field, so callers pass ``session.email`` explicitly to the codec.
"""

from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from config import get_settings
from db.rest_client import AuthError, SupabaseClient
from models.schemas import AuthSession

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6


class NotAuthenticatedError(Exception):
    """No usable session; the user has to sign in first."""


class SignUpPendingConfirmation(Exception):
    """Sign-up succeeded but the backend wants the email confirmed first."""


def _session_path(path: str | Path | None = None) -> Path:
    return Path(path or get_settings().session_file).expanduser()


def session_from_payload(payload: dict[str, Any]) -> AuthSession:
    """Build an AuthSession from a GoTrue token response."""
    user = payload.get("user") or {}
    expires_at = payload.get("expires_at")
    return AuthSession(
        access_token=payload["access_token"],
        refresh_token=payload["refresh_token"],
        user_id=user["id"],
        email=user["email"],
        expires_at=datetime.fromtimestamp(expires_at, tz=timezone.utc) if expires_at else None,
    )


def save_session(session: AuthSession, path: str | Path | None = None) -> Path:
    """Write the session file, readable by the owner only from creation on."""
    target = _session_path(path)
    target.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
    fd = os.open(target, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    # O_CREAT's mode does not apply to a file that already exists
    os.fchmod(fd, 0o600)
    with os.fdopen(fd, "w", encoding="utf-8") as fh:
        fh.write(session.model_dump_json())
    return target


def load_session(path: str | Path | None = None) -> AuthSession | None:
    target = _session_path(path)
    if not target.exists():
        return None
    try:
        return AuthSession.model_validate_json(target.read_text(encoding="utf-8"))
    except (ValidationError, OSError) as exc:
        logger.warning("Ignoring unreadable session file %s: %s", target, exc.__class__.__name__)
        return None


def clear_session(path: str | Path | None = None) -> None:
    target = _session_path(path)
    if target.exists():
        target.unlink()


async def sign_up(
    client: SupabaseClient, email: str, password: str, path: str | Path | None = None
) -> AuthSession:
    """Create an account.

    Raises SignUpPendingConfirmation when the project requires email
    confirmation (no session is issued until the link is clicked).
    """
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValueError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    payload = await client.sign_up(email.strip(), password)
    if not payload.get("access_token"):
        raise SignUpPendingConfirmation("Please check your email to confirm your account!")
    session = session_from_payload(payload)
    save_session(session, path)
    logger.info("Signed up user %s", session.user_id)
    return session


async def sign_in(
    client: SupabaseClient, email: str, password: str, path: str | Path | None = None
) -> AuthSession:
    payload = await client.sign_in_with_password(email.strip(), password)
    session = session_from_payload(payload)
    save_session(session, path)
    logger.info("Signed in user %s", session.user_id)
    return session


async def sign_out(client: SupabaseClient, path: str | Path | None = None) -> None:
    """Revoke the remote session (best effort) and always drop the local one."""
    session = load_session(path)
    try:
        if session is not None:
            await client.sign_out(session.access_token)
    except AuthError as exc:
        logger.info("Remote sign-out rejected (%s); clearing local session anyway", exc.code)
    finally:
        clear_session(path)


async def current_session(
    client: SupabaseClient, path: str | Path | None = None
) -> AuthSession | None:
    """Return the stored session, refreshing it once if it is about to expire."""
    session = load_session(path)
    margin = get_settings().session_refresh_margin_seconds
    if session is None or not session.expires_within(margin):
        return session

    try:
        payload = await client.refresh_session(session.refresh_token)
    except AuthError as exc:
        logger.info("Session refresh failed (%s); signing out locally", exc.code)
        clear_session(path)
        return None

    session = session_from_payload(payload)
    save_session(session, path)
    return session


async def require_session(
    client: SupabaseClient, path: str | Path | None = None
) -> AuthSession:
    session = await current_session(client, path)
    if session is None:
        raise NotAuthenticatedError("Not signed in. Run `todays-tasks login` first.")
    client.access_token = session.access_token
    return session
