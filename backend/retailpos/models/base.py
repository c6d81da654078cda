from __future__ import annotations

import enum
import uuid

from ..extensions import db


def new_id() -> str:
    """Opaque string identifier used as the primary key of every entity."""
    return str(uuid.uuid4())


def id_column():
    return db.Column(db.String(36), primary_key=True, default=new_id)


def enum_column(enum_cls: type[enum.Enum], **kwargs):
    # Stored as VARCHAR + CHECK so SQLite and Postgres behave the same
    return db.Column(
        db.Enum(enum_cls, native_enum=False, length=16, validate_strings=True),
        **kwargs,
    )


class EntityStatus(str, enum.Enum):
    """Soft-delete state for catalog entities. Reads always filter on it."""
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class Role(str, enum.Enum):
    ADMIN = "ADMIN"
    SELLER = "SELLER"


class CashSessionStatus(str, enum.Enum):
    OPEN = "OPEN"
    CLOSED = "CLOSED"


class SaleStatus(str, enum.Enum):
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class PaymentMethod(str, enum.Enum):
    CASH = "CASH"
    MIXED = "MIXED"
    DEBIT = "DEBIT"
    CREDIT = "CREDIT"
    CREDIT_CARD = "CREDIT_CARD"
    QR = "QR"
    TRANSFER = "TRANSFER"


class NotificationKind(str, enum.Enum):
    REMOTE_SALE = "REMOTE_SALE"
    EXPIRY = "EXPIRY"
    LOW_ROTATION = "LOW_ROTATION"
    PRICE_CHANGE = "PRICE_CHANGE"


class StockMovement(str, enum.Enum):
    """Manual stock movements. ADJUST replaces the quantity with a counted value."""
    IN = "IN"
    OUT = "OUT"
    ADJUST = "ADJUST"


class NotificationStatus(str, enum.Enum):
    PENDING = "PENDING"
    READ = "READ"
    ARCHIVED = "ARCHIVED"
