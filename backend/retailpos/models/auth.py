from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow
from .base import EntityStatus, Role, enum_column, id_column


class User(db.Model):
    """
    User accounts for authentication and attribution.

    ROLES:
    - ADMIN: sees every location, may cancel any sale
    - SELLER: bound to a home location (location_id); sells and runs a
      cash session there

    WHY: Every action must be attributable. No shared logins.
    """
    __tablename__ = "users"

    id = id_column()
    username = db.Column(db.String(64), nullable=False, unique=True, index=True)

    # Bcrypt hashed password
    password_hash = db.Column(db.String(255), nullable=False)

    role = enum_column(Role, nullable=False, default=Role.SELLER)
    location_id = db.Column(db.String(36), db.ForeignKey("locations.id"), nullable=True, index=True)
    status = enum_column(EntityStatus, nullable=False, default=EntityStatus.ACTIVE)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)

    location = db.relationship("Location", backref=db.backref("users", lazy=True))

    @property
    def is_active(self) -> bool:
        return self.status == EntityStatus.ACTIVE

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "role": self.role.value,
            "location_id": self.location_id,
            "status": self.status.value,
            "created_at": to_utc_z(self.created_at),
            "last_login_at": to_utc_z(self.last_login_at),
        }


class SessionToken(db.Model):
    """
    Bearer token session.

    SECURITY: only the SHA-256 hash of the token is stored. The plain token
    is returned once at login and never persisted.

    TIMEOUTS:
    - absolute: expires_at, fixed at creation
    - idle: last_used_at + SESSION_IDLE_TIMEOUT_HOURS
    """
    __tablename__ = "session_tokens"

    id = id_column()
    user_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=False, index=True)
    token_hash = db.Column(db.String(64), nullable=False, unique=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)
    last_used_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    is_revoked = db.Column(db.Boolean, nullable=False, default=False)
    revoked_at = db.Column(db.DateTime(timezone=True), nullable=True)

    user = db.relationship("User", backref=db.backref("session_tokens", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "created_at": to_utc_z(self.created_at),
            "expires_at": to_utc_z(self.expires_at),
            "last_used_at": to_utc_z(self.last_used_at),
            "is_revoked": self.is_revoked,
        }
