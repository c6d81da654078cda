# Overview: Service-layer operations for auth; password hashing, login and user creation.

"""
Authentication Service

WHY: Every action must be attributable. Uses bcrypt for password hashing.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor from BCRYPT_ROUNDS, default 12)
- Minimum 8 characters, at least one letter and one digit
- Session tokens managed separately (see session_service.py)
- Inactive users cannot authenticate
"""

import re

import bcrypt
from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import LocationNotFound, ValidationError
from ..models import EntityStatus, Location, Role, User
from ..time_utils import utcnow


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""
    code = "WEAK_PASSWORD"


def validate_password_strength(password: str) -> None:
    if not password or len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")
    if not re.search(r"[A-Za-z]", password):
        raise PasswordValidationError("Password must contain at least one letter")
    if not re.search(r"\d", password):
        raise PasswordValidationError("Password must contain at least one digit")


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt.

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    rounds = int(current_app.config.get("BCRYPT_ROUNDS", 12))
    hashed = bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds))
    return hashed.decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe check via bcrypt.checkpw(). Malformed hashes never match."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def create_user(
    username: str,
    password: str,
    role: Role = Role.SELLER,
    location_id: str | None = None,
) -> User:
    """
    Create a user with a bcrypt password hash.

    SELLERs must have a home location; ADMINs may have one.
    """
    username = (username or "").strip()
    if not username:
        raise ValidationError("username is required")
    role = Role(role)

    if role == Role.SELLER and not location_id:
        raise ValidationError("SELLER users require a location_id")
    if location_id is not None:
        location = db.session.get(Location, location_id)
        if location is None or location.status != EntityStatus.ACTIVE:
            raise LocationNotFound("Location not found", {"location_id": location_id})

    user = User(
        username=username,
        password_hash=hash_password(password),
        role=role,
        location_id=location_id,
        status=EntityStatus.ACTIVE,
    )
    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ValidationError("Username already exists", {"username": username})
    return user


def authenticate(username: str, password: str) -> User | None:
    """
    Returns the User when the credentials are valid and the account is
    ACTIVE, otherwise None. Updates last_login_at on success.
    """
    if not username or not password:
        return None

    user = db.session.query(User).filter(
        User.username == username.strip(),
        User.status == EntityStatus.ACTIVE,
    ).first()
    if user is None or not verify_password(password, user.password_hash):
        return None

    user.last_login_at = utcnow()
    db.session.commit()
    return user
