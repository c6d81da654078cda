# Overview: Service-layer operations for bearer-token sessions; issue, validate and revoke.

"""
Session Management Service

WHY: Every request must carry a bearer token that maps to one user. Tokens
are random, stored hashed, and expire.

SECURITY:
- Token: 32 random bytes, URL-safe base64
- Storage: SHA-256 hash only; the plain token is returned once at login
- Absolute timeout: SESSION_ABSOLUTE_TIMEOUT_HOURS after creation
- Idle timeout: SESSION_IDLE_TIMEOUT_HOURS after last use
"""

from __future__ import annotations

import hashlib
import secrets
from dataclasses import dataclass
from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import EntityStatus, Role, SessionToken, User
from ..time_utils import utcnow


@dataclass(frozen=True)
class Identity:
    """Who is calling. Built once per request by require_auth."""
    user_id: str
    role: Role
    location_id: str | None

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    @property
    def is_seller(self) -> bool:
        return self.role == Role.SELLER

    @classmethod
    def for_user(cls, user: User) -> "Identity":
        return cls(user_id=user.id, role=user.role, location_id=user.location_id)


@dataclass(frozen=True)
class SessionContext:
    user: User
    session: SessionToken
    identity: Identity


def _hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _timeout(name: str, default: int) -> timedelta:
    return timedelta(hours=int(current_app.config.get(name, default)))


def create_session(user_id: str) -> tuple[SessionToken, str]:
    """
    Create a session for a user.

    Returns (session row, plain token). Only the hash is persisted.
    """
    token = secrets.token_urlsafe(32)
    now = utcnow()
    session = SessionToken(
        user_id=user_id,
        token_hash=_hash_token(token),
        created_at=now,
        last_used_at=now,
        expires_at=now + _timeout("SESSION_ABSOLUTE_TIMEOUT_HOURS", 24),
    )
    db.session.add(session)
    db.session.commit()
    return session, token


def validate_session(token: str | None) -> SessionContext | None:
    """
    Resolve a bearer token to its user.

    Returns None for unknown, revoked, expired or idle sessions and for
    inactive users. A valid session has last_used_at refreshed.
    """
    if not token:
        return None

    session = db.session.query(SessionToken).filter_by(token_hash=_hash_token(token)).first()
    if session is None or session.is_revoked:
        return None

    now = utcnow()
    if session.expires_at <= now:
        return None
    if session.last_used_at + _timeout("SESSION_IDLE_TIMEOUT_HOURS", 8) <= now:
        return None

    user = db.session.get(User, session.user_id)
    if user is None or user.status != EntityStatus.ACTIVE:
        return None

    session.last_used_at = now
    db.session.commit()

    return SessionContext(user=user, session=session, identity=Identity.for_user(user))


def revoke_session(token: str) -> bool:
    session = db.session.query(SessionToken).filter_by(token_hash=_hash_token(token)).first()
    if session is None or session.is_revoked:
        return False
    session.is_revoked = True
    session.revoked_at = utcnow()
    db.session.commit()
    return True


def revoke_all_user_sessions(user_id: str) -> int:
    now = utcnow()
    count = (
        db.session.query(SessionToken)
        .filter_by(user_id=user_id, is_revoked=False)
        .update({"is_revoked": True, "revoked_at": now}, synchronize_session=False)
    )
    db.session.commit()
    return count
