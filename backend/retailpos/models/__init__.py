from .base import (
    CashSessionStatus,
    EntityStatus,
    NotificationKind,
    NotificationStatus,
    PaymentMethod,
    Role,
    SaleStatus,
    StockMovement,
    new_id,
)
from .catalog import Location, Product, LocationPriceOverride, QuantityTierPrice, Client
from .stock import LocationStock
from .auth import User, SessionToken
from .cash import CashSession
from .sales import Sale, SaleLine
from .notifications import Notification, AuditLog

__all__ = [
    'CashSessionStatus', 'EntityStatus', 'NotificationKind', 'NotificationStatus',
    'PaymentMethod', 'Role', 'SaleStatus', 'StockMovement', 'new_id',
    'Location', 'Product', 'LocationPriceOverride', 'QuantityTierPrice', 'Client',
    'LocationStock',
    'User', 'SessionToken',
    'CashSession',
    'Sale', 'SaleLine',
    'Notification', 'AuditLog',
]
