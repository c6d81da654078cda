# Overview: Pytest coverage for the per-location stock ledger.

import pytest

from retailpos.errors import (
    Forbidden,
    InsufficientStock,
    ProductNotFound,
    RaceAbort,
    StockNotFound,
    ValidationError,
)
from retailpos.models import AuditLog, EntityStatus, StockMovement
from retailpos.services import audit_service, stock_service
from retailpos.services.broadcast import (
    ADMIN_CHANNEL,
    STOCK_LOW,
    STOCK_LOW_ADMIN,
    RecordingBroadcaster,
    location_channel,
)
from retailpos.services.concurrency import StockRetryPolicy


NO_WAIT = StockRetryPolicy(attempts=2, backoff_seconds=0)


class TestReserve:
    """reserve() is a conditional decrement; it never goes below zero."""

    def test_reserve_decrements(self, db_session, make_product, set_stock, loc_a):
        product = make_product()
        set_stock(product, loc_a, 10)

        alert = stock_service.reserve(product.id, loc_a.id, 3, retry=NO_WAIT)

        assert alert is None
        assert stock_service.available(product.id, loc_a.id) == 7

    def test_reserve_entire_stock(self, db_session, make_product, set_stock, loc_a):
        product = make_product()
        set_stock(product, loc_a, 4)

        stock_service.reserve(product.id, loc_a.id, 4, retry=NO_WAIT)
        assert stock_service.available(product.id, loc_a.id) == 0

    def test_insufficient_stock_leaves_quantity_untouched(self, db_session, make_product, set_stock, loc_a):
        product = make_product()
        set_stock(product, loc_a, 2)

        with pytest.raises(InsufficientStock) as exc_info:
            stock_service.reserve(product.id, loc_a.id, 3, retry=NO_WAIT)

        assert exc_info.value.details["available"] == 2
        assert exc_info.value.details["requested"] == 3
        assert stock_service.available(product.id, loc_a.id) == 2

    def test_missing_row_counts_as_zero(self, db_session, make_product, loc_a):
        product = make_product()

        assert stock_service.available(product.id, loc_a.id) == 0
        with pytest.raises(InsufficientStock):
            stock_service.reserve(product.id, loc_a.id, 1, retry=StockRetryPolicy(attempts=1))

    def test_low_stock_alert_at_threshold(self, db_session, make_product, set_stock, loc_a):
        product = make_product()
        set_stock(product, loc_a, 5, min_quantity=3)

        assert stock_service.reserve(product.id, loc_a.id, 1, retry=NO_WAIT) is None

        alert = stock_service.reserve(product.id, loc_a.id, 1, retry=NO_WAIT)
        assert alert is not None
        assert alert.quantity == 3
        assert alert.min_quantity == 3
        assert alert.location_id == loc_a.id

    @pytest.mark.parametrize("qty", [0, -1, True])
    def test_rejects_invalid_quantity(self, db_session, make_product, set_stock, loc_a, qty):
        product = make_product()
        set_stock(product, loc_a, 5)
        with pytest.raises(ValidationError):
            stock_service.reserve(product.id, loc_a.id, qty)


class TestReserveRetry:
    """A conditional update that loses a race is retried, then reported as InsufficientStock."""

    def test_lost_race_is_retried_and_succeeds(self, db_session, make_product, set_stock, loc_a, monkeypatch):
        product = make_product()
        set_stock(product, loc_a, 5)
        real_decrement = stock_service._conditional_decrement
        calls = []

        def flaky(product_id, location_id, qty):
            calls.append(qty)
            if len(calls) == 1:
                raise RaceAbort(product_id, location_id, qty)
            real_decrement(product_id, location_id, qty)

        monkeypatch.setattr(stock_service, "_conditional_decrement", flaky)

        stock_service.reserve(product.id, loc_a.id, 2, retry=StockRetryPolicy(attempts=3, backoff_seconds=0))

        assert len(calls) == 2
        assert stock_service.available(product.id, loc_a.id) == 3

    def test_gives_up_after_configured_attempts(self, db_session, make_product, set_stock, loc_a, monkeypatch):
        product = make_product()
        set_stock(product, loc_a, 5)
        calls = []

        def always_loses(product_id, location_id, qty):
            calls.append(qty)
            raise RaceAbort(product_id, location_id, qty)

        monkeypatch.setattr(stock_service, "_conditional_decrement", always_loses)

        with pytest.raises(InsufficientStock) as exc_info:
            stock_service.reserve(product.id, loc_a.id, 2, retry=StockRetryPolicy(attempts=3, backoff_seconds=0))

        assert len(calls) == 3
        assert isinstance(exc_info.value.__cause__, RaceAbort)
        assert exc_info.value.details["available"] == 5
        assert stock_service.available(product.id, loc_a.id) == 5

    def test_single_attempt_policy_never_retries(self, db_session, make_product, set_stock, loc_a, monkeypatch):
        product = make_product()
        set_stock(product, loc_a, 5)
        calls = []

        def always_loses(product_id, location_id, qty):
            calls.append(qty)
            raise RaceAbort(product_id, location_id, qty)

        monkeypatch.setattr(stock_service, "_conditional_decrement", always_loses)

        with pytest.raises(InsufficientStock):
            stock_service.reserve(product.id, loc_a.id, 1, retry=StockRetryPolicy(attempts=1))
        assert len(calls) == 1


class TestRelease:

    def test_release_adds_back(self, db_session, make_product, set_stock, loc_a):
        product = make_product()
        set_stock(product, loc_a, 1)

        stock_service.release(product.id, loc_a.id, 4)
        assert stock_service.available(product.id, loc_a.id) == 5

    def test_release_creates_missing_row(self, db_session, make_product, loc_b):
        product = make_product()

        stock_service.release(product.id, loc_b.id, 2)
        assert stock_service.available(product.id, loc_b.id) == 2


class TestAvailabilityAcrossLocations:

    def test_lists_other_active_locations_largest_first(
        self, db_session, make_product, make_location, set_stock, loc_a, loc_b
    ):
        product = make_product()
        loc_c = make_location("Location C")
        closed = make_location("Closed", status=EntityStatus.INACTIVE)
        set_stock(product, loc_a, 50)
        set_stock(product, loc_b, 6)
        set_stock(product, loc_c, 9)
        set_stock(product, closed, 100)

        candidates = stock_service.availability_across_locations(product.id, loc_a.id, 5)

        assert [c.location_id for c in candidates] == [loc_c.id, loc_b.id]
        assert candidates[0].to_dict() == {
            "location_id": loc_c.id,
            "location_name": "Location C",
            "quantity": 9,
        }

    def test_filters_by_minimum_quantity(self, db_session, make_product, set_stock, loc_a, loc_b):
        product = make_product()
        set_stock(product, loc_b, 3)

        assert stock_service.availability_across_locations(product.id, loc_a.id, 4) == []
        assert len(stock_service.availability_across_locations(product.id, loc_a.id, 3)) == 1


class TestSetStock:

    def test_overwrites_and_keeps_min_quantity(self, db_session, make_product, set_stock, loc_a):
        product = make_product()
        set_stock(product, loc_a, 10, min_quantity=2)
        row = set_stock(product, loc_a, 4)

        assert row.quantity == 4
        assert row.min_quantity == 2

    def test_negative_quantity_rejected(self, db_session, make_product, set_stock, loc_a):
        product = make_product()
        with pytest.raises(ValidationError):
            set_stock(product, loc_a, -1)


class TestAdjustStock:
    """Manual IN / OUT / ADJUST movements at the caller's home location."""

    def test_in_creates_missing_row_and_is_audited(self, db_session, make_product, seller_identity, loc_a):
        product = make_product()

        row = stock_service.adjust_stock(seller_identity, product.id, StockMovement.IN, 12, reason="Delivery")

        assert row.quantity == 12
        assert row.location_id == loc_a.id
        [entry] = audit_service.list_for_entity("LocationStock", row.id)
        assert entry.action == "UPDATE"
        assert entry.user_id == seller_identity.user_id
        assert entry.to_dict()["before"] is None
        assert entry.to_dict()["after"]["movement"] == "IN"
        assert entry.to_dict()["after"]["reason"] == "Delivery"

    def test_in_adds_to_existing_row(self, db_session, make_product, set_stock, seller_identity, loc_a):
        product = make_product()
        set_stock(product, loc_a, 3)

        row = stock_service.adjust_stock(seller_identity, product.id, "in", 4)
        assert row.quantity == 7

    def test_out_decrements(self, db_session, make_product, set_stock, seller_identity, loc_a):
        product = make_product()
        set_stock(product, loc_a, 10)

        row = stock_service.adjust_stock(seller_identity, product.id, "OUT", 4)

        assert row.quantity == 6
        [entry] = audit_service.list_for_entity("LocationStock", row.id)
        assert entry.to_dict()["before"]["quantity"] == 10
        assert entry.to_dict()["after"]["quantity"] == 6

    def test_out_never_goes_negative(self, db_session, make_product, set_stock, seller_identity, loc_a):
        product = make_product()
        set_stock(product, loc_a, 2)

        with pytest.raises(InsufficientStock) as exc_info:
            stock_service.adjust_stock(seller_identity, product.id, "OUT", 3)

        assert exc_info.value.details["available"] == 2
        assert stock_service.available(product.id, loc_a.id) == 2
        assert db_session.query(AuditLog).count() == 0

    def test_out_without_row(self, db_session, make_product, seller_identity, loc_a):
        product = make_product()

        with pytest.raises(InsufficientStock):
            stock_service.adjust_stock(seller_identity, product.id, "OUT", 1)
        assert stock_service.available(product.id, loc_a.id) == 0

    def test_adjust_sets_counted_quantity(self, db_session, make_product, set_stock, seller_identity, loc_a):
        product = make_product()
        set_stock(product, loc_a, 10, min_quantity=2)

        row = stock_service.adjust_stock(seller_identity, product.id, "ADJUST", 0)

        assert row.quantity == 0
        assert row.min_quantity == 2

    def test_low_stock_is_broadcast(self, db_session, make_product, set_stock, seller_identity, loc_a):
        product = make_product()
        set_stock(product, loc_a, 5, min_quantity=3)
        broadcaster = RecordingBroadcaster()

        stock_service.adjust_stock(seller_identity, product.id, "OUT", 1, broadcaster=broadcaster)
        assert broadcaster.events(STOCK_LOW) == []

        stock_service.adjust_stock(seller_identity, product.id, "OUT", 1, broadcaster=broadcaster)
        [local] = broadcaster.events(STOCK_LOW, location_channel(loc_a.id))
        assert local.data == {
            "product_id": product.id,
            "location_id": loc_a.id,
            "quantity": 3,
            "min_quantity": 3,
        }
        assert broadcaster.events(STOCK_LOW_ADMIN, ADMIN_CHANNEL)

    @pytest.mark.parametrize("movement, quantity", [
        ("SHRINK", 1),
        ("IN", 0),
        ("OUT", -2),
        ("ADJUST", -1),
        ("IN", True),
    ])
    def test_invalid_input(self, db_session, make_product, seller_identity, movement, quantity):
        product = make_product()
        with pytest.raises(ValidationError):
            stock_service.adjust_stock(seller_identity, product.id, movement, quantity)

    def test_unknown_product(self, db_session, seller_identity):
        with pytest.raises(ProductNotFound):
            stock_service.adjust_stock(seller_identity, "missing", "IN", 1)

    def test_requires_home_location(self, db_session, make_product, admin_identity):
        product = make_product()
        with pytest.raises(Forbidden):
            stock_service.adjust_stock(admin_identity, product.id, "IN", 1)


class TestMinQuantity:

    def test_seller_sets_own_location(self, db_session, make_product, set_stock, seller_identity, loc_a):
        product = make_product()
        row = set_stock(product, loc_a, 10)

        updated = stock_service.set_min_quantity(seller_identity, product.id, loc_a.id, 4)

        assert updated.min_quantity == 4
        [entry] = audit_service.list_for_entity("LocationStock", row.id)
        assert entry.to_dict()["before"]["min_quantity"] == 0
        assert entry.to_dict()["after"]["min_quantity"] == 4

    def test_seller_cannot_touch_other_location(self, db_session, make_product, set_stock, seller_identity, loc_b):
        product = make_product()
        set_stock(product, loc_b, 10)

        with pytest.raises(Forbidden):
            stock_service.set_min_quantity(seller_identity, product.id, loc_b.id, 4)

    def test_admin_sets_any_location(self, db_session, make_product, set_stock, admin_identity, loc_b):
        product = make_product()
        set_stock(product, loc_b, 10)

        assert stock_service.set_min_quantity(admin_identity, product.id, loc_b.id, 0).min_quantity == 0

    def test_missing_row(self, db_session, make_product, admin_identity, loc_a):
        product = make_product()
        with pytest.raises(StockNotFound):
            stock_service.set_min_quantity(admin_identity, product.id, loc_a.id, 2)

    def test_negative_rejected(self, db_session, make_product, set_stock, admin_identity, loc_a):
        product = make_product()
        set_stock(product, loc_a, 10)
        with pytest.raises(ValidationError):
            stock_service.set_min_quantity(admin_identity, product.id, loc_a.id, -1)


class TestStockReads:

    def test_seller_only_sees_home_location(
        self, db_session, make_product, set_stock, seller_identity, loc_a, loc_b
    ):
        product = make_product()
        set_stock(product, loc_a, 3)
        set_stock(product, loc_b, 8)

        rows = stock_service.list_stock(seller_identity, location_id=loc_b.id)
        assert [(r.location_id, r.quantity) for r in rows] == [(loc_a.id, 3)]

    def test_admin_sees_all_and_filters(self, db_session, make_product, set_stock, admin_identity, loc_a, loc_b):
        bread = make_product(name="Bread")
        apples = make_product(name="Apples")
        set_stock(bread, loc_a, 3)
        set_stock(apples, loc_b, 8)

        assert [r.product_id for r in stock_service.list_stock(admin_identity)] == [apples.id, bread.id]
        assert [r.product_id for r in stock_service.list_stock(admin_identity, location_id=loc_a.id)] == [bread.id]

    def test_low_only(self, db_session, make_product, set_stock, seller_identity, loc_a):
        low = make_product(name="Low")
        fine = make_product(name="Fine")
        set_stock(low, loc_a, 2, min_quantity=2)
        set_stock(fine, loc_a, 9, min_quantity=2)

        rows = stock_service.list_stock(seller_identity, low_only=True)
        assert [r.product_id for r in rows] == [low.id]
        assert rows[0].to_dict()["is_low"] is True

    def test_get_stock_visibility(self, db_session, make_product, set_stock, seller_identity, loc_a, loc_b):
        product = make_product()
        set_stock(product, loc_a, 3)
        set_stock(product, loc_b, 8)

        assert stock_service.get_stock(seller_identity, product.id, loc_a.id).quantity == 3
        with pytest.raises(Forbidden):
            stock_service.get_stock(seller_identity, product.id, loc_b.id)

    def test_get_missing_stock(self, db_session, make_product, seller_identity, loc_a):
        product = make_product()
        with pytest.raises(StockNotFound):
            stock_service.get_stock(seller_identity, product.id, loc_a.id)
