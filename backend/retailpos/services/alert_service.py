# Overview: Service-layer alert jobs; expiring products and low rotation, plus the background timer.

"""
Alert jobs

Both checks only read the core tables and create Notification rows. They
are safe to run repeatedly: a PENDING notification for the same
(kind, product, location) inside the dedup window suppresses a new one.

- EXPIRY:       product expires within EXPIRY_WARNING_DAYS and is in stock
                (dedup window 24 h)
- LOW_ROTATION: product is in stock but no COMPLETED sale included it in
                the last LOW_ROTATION_DAYS (dedup window 7 d)
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta

from flask import current_app
from sqlalchemy import select

from ..extensions import db
from ..models import (
    EntityStatus,
    Location,
    LocationStock,
    NotificationKind,
    Product,
    Sale,
    SaleLine,
    SaleStatus,
)
from ..time_utils import utcnow
from .notification_service import create_notification, recent_notification_exists

logger = logging.getLogger(__name__)

EXPIRY_DEDUP_WINDOW = timedelta(hours=24)
LOW_ROTATION_DEDUP_WINDOW = timedelta(days=7)


def _in_stock_rows(product_id: str):
    return (
        db.session.query(LocationStock, Location)
        .join(Location, Location.id == LocationStock.location_id)
        .filter(
            LocationStock.product_id == product_id,
            LocationStock.quantity > 0,
            Location.status == EntityStatus.ACTIVE,
        )
        .all()
    )


def check_expiring_products(now: datetime | None = None) -> int:
    """Create EXPIRY notifications. Returns how many were created."""
    now = now or utcnow()
    today = now.date()
    warning_days = int(current_app.config.get("EXPIRY_WARNING_DAYS", 7))
    horizon = today + timedelta(days=warning_days)

    products = (
        db.session.query(Product)
        .filter(
            Product.status == EntityStatus.ACTIVE,
            Product.expires_on.isnot(None),
            Product.expires_on >= today,
            Product.expires_on <= horizon,
        )
        .all()
    )

    created = 0
    for product in products:
        days_left = (product.expires_on - today).days
        for stock, location in _in_stock_rows(product.id):
            if recent_notification_exists(
                NotificationKind.EXPIRY, product.id, location.id, now - EXPIRY_DEDUP_WINDOW
            ):
                continue
            create_notification(
                NotificationKind.EXPIRY,
                f"Product expiring soon: {product.name}",
                f'"{product.name}" expires in {days_left} day(s). '
                f"Stock on hand: {stock.quantity} unit(s) at {location.name}.",
                location_id=location.id,
                product_id=product.id,
                commit=False,
            )
            created += 1

    db.session.commit()
    return created


def check_low_rotation(now: datetime | None = None) -> int:
    """Create LOW_ROTATION notifications. Returns how many were created."""
    now = now or utcnow()
    rotation_days = int(current_app.config.get("LOW_ROTATION_DAYS", 30))
    cutoff = now - timedelta(days=rotation_days)

    recently_sold = (
        select(SaleLine.product_id)
        .join(Sale, Sale.id == SaleLine.sale_id)
        .where(Sale.status == SaleStatus.COMPLETED, Sale.created_at >= cutoff)
        .distinct()
    )
    products = (
        db.session.query(Product)
        .filter(
            Product.status == EntityStatus.ACTIVE,
            Product.id.not_in(recently_sold),
        )
        .all()
    )

    created = 0
    for product in products:
        for stock, location in _in_stock_rows(product.id):
            if recent_notification_exists(
                NotificationKind.LOW_ROTATION, product.id, location.id, now - LOW_ROTATION_DEDUP_WINDOW
            ):
                continue
            create_notification(
                NotificationKind.LOW_ROTATION,
                f"Low rotation: {product.name}",
                f'"{product.name}" has not sold in the last {rotation_days} days. '
                f"Stock on hand: {stock.quantity} unit(s) at {location.name}.",
                location_id=location.id,
                product_id=product.id,
                commit=False,
            )
            created += 1

    db.session.commit()
    return created


def run_alert_checks(now: datetime | None = None) -> dict:
    """
    Run every alert check. A failing check is logged and rolled back; the
    others still run. Returns created counts per check (None on failure).
    """
    results = {}
    for name, check in (
        ("expiry", check_expiring_products),
        ("low_rotation", check_low_rotation),
    ):
        try:
            results[name] = check(now)
        except Exception:
            db.session.rollback()
            logger.exception("Alert check '%s' failed", name)
            results[name] = None

    logger.info("Alert checks finished: %s", results)
    return results


class AlertScheduler:
    """
    Daemon thread that re-runs run_alert_checks() at a fixed interval.

    State is in-memory only; a restart simply schedules the next run from
    scratch. Each run gets its own app context and scoped session.
    """

    def __init__(self, app, interval_seconds: int):
        self.app = app
        self.interval_seconds = interval_seconds
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self.run_count = 0
        self.last_run: datetime | None = None

    def start(self) -> bool:
        if self.interval_seconds <= 0 or self.is_running:
            return False
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="alert-scheduler", daemon=True)
        self._thread.start()
        logger.info("Alert scheduler started (every %ss)", self.interval_seconds)
        return True

    def stop(self, timeout: float | None = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run_once(self) -> dict:
        with self.app.app_context():
            try:
                return run_alert_checks()
            finally:
                self.run_count += 1
                self.last_run = utcnow()
                db.session.remove()

    def _loop(self) -> None:
        while not self._stop.wait(self.interval_seconds):
            try:
                self.run_once()
            except Exception:
                logger.exception("Scheduled alert run failed")
