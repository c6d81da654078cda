# Overview: Pytest coverage for price resolution (suggested, base, override, tiers).

"""
Pricing Tests

Prices are integer cents, rates are basis points.
Reference product: cost 10.00, VAT 21%, margin 30% -> suggested 15.73.
"""

import pytest

from retailpos.errors import ProductNotFound, ValidationError
from retailpos.models import Notification, NotificationKind
from retailpos.services import audit_service, pricing_service
from retailpos.services.pricing_service import (
    SOURCE_BASE,
    SOURCE_OVERRIDE,
    SOURCE_SUGGESTED,
    SOURCE_TIER,
    resolve_price,
    suggested_price_cents,
)


class TestSuggestedPrice:

    def test_reference_product(self):
        assert suggested_price_cents(1000, 2100, 3000) == 1573

    def test_rounds_down_below_half(self):
        # 999 * 1.21 * 1.30 = 1571.427
        assert suggested_price_cents(999, 2100, 3000) == 1571

    def test_rounds_half_up(self):
        # 1 * 1.00 * 1.50 = 1.5
        assert suggested_price_cents(1, 0, 5000) == 2

    def test_zero_rates(self):
        assert suggested_price_cents(1234, 0, 0) == 1234

    def test_negative_inputs_rejected(self):
        with pytest.raises(ValidationError):
            suggested_price_cents(-1, 2100, 3000)
        with pytest.raises(ValidationError):
            suggested_price_cents(1000, -1, 3000)


class TestCandidatePrice:
    """Override > approved base > suggested."""

    def test_unapproved_product_uses_suggested(self, db_session, make_product, loc_a):
        product = make_product()
        assert product.price_approved is False

        quote = resolve_price(product, loc_a.id, 1)
        assert quote.unit_price_cents == 1573
        assert quote.subtotal_cents == 1573
        assert quote.source == SOURCE_SUGGESTED

    def test_approved_base_price(self, db_session, make_product, loc_a):
        product = make_product(price_cents=2000)

        quote = resolve_price(product, loc_a.id, 3)
        assert quote.unit_price_cents == 2000
        assert quote.subtotal_cents == 6000
        assert quote.source == SOURCE_BASE

    def test_approved_override_only_applies_to_its_location(self, db_session, make_product, loc_a, loc_b):
        product = make_product(price_cents=2000)
        pricing_service.set_location_override(product.id, loc_a.id, price_cents=1800, approved=True)

        at_a = resolve_price(product, loc_a.id, 1)
        at_b = resolve_price(product, loc_b.id, 1)

        assert (at_a.unit_price_cents, at_a.source) == (1800, SOURCE_OVERRIDE)
        assert (at_b.unit_price_cents, at_b.source) == (2000, SOURCE_BASE)

    def test_unapproved_override_ignored_when_base_approved(self, db_session, make_product, loc_a):
        product = make_product(price_cents=2000)
        pricing_service.set_location_override(product.id, loc_a.id, price_cents=1500, approved=False)

        quote = resolve_price(product, loc_a.id, 1)
        assert (quote.unit_price_cents, quote.source) == (2000, SOURCE_BASE)

    def test_unapproved_override_margin_drives_suggestion(self, db_session, make_product, loc_a):
        product = make_product()
        pricing_service.set_location_override(
            product.id, loc_a.id, price_cents=0, margin_bps=5000, approved=False
        )

        # 1000 * 1.21 * 1.50
        quote = resolve_price(product, loc_a.id, 1)
        assert (quote.unit_price_cents, quote.source) == (1815, SOURCE_SUGGESTED)

    def test_override_is_replaced_not_duplicated(self, db_session, make_product, loc_a):
        product = make_product(price_cents=2000)
        first = pricing_service.set_location_override(product.id, loc_a.id, price_cents=1800, approved=True)
        second = pricing_service.set_location_override(product.id, loc_a.id, price_cents=1700, approved=True)

        assert first.id == second.id
        assert resolve_price(product, loc_a.id, 1).unit_price_cents == 1700


class TestQuantityTiers:

    def test_tier_replaces_subtotal(self, db_session, make_product, loc_a):
        product = make_product(price_cents=2000)
        pricing_service.add_quantity_tier(product.id, 10, 15000)

        below = resolve_price(product, loc_a.id, 9)
        at = resolve_price(product, loc_a.id, 10)

        assert (below.subtotal_cents, below.source) == (18000, SOURCE_BASE)
        assert (at.subtotal_cents, at.unit_price_cents, at.source) == (15000, 1500, SOURCE_TIER)

    def test_largest_matching_tier_wins(self, db_session, make_product, loc_a):
        product = make_product(price_cents=2000)
        pricing_service.add_quantity_tier(product.id, 10, 15000)
        pricing_service.add_quantity_tier(product.id, 20, 26000)

        quote = resolve_price(product, loc_a.id, 25)
        assert quote.subtotal_cents == 26000
        # 26000 / 25 = 1040.48
        assert quote.unit_price_cents == 1040

    def test_tier_beats_override(self, db_session, make_product, loc_a):
        product = make_product(price_cents=2000)
        pricing_service.set_location_override(product.id, loc_a.id, price_cents=1000, approved=True)
        pricing_service.add_quantity_tier(product.id, 5, 9000)

        quote = resolve_price(product, loc_a.id, 5)
        assert (quote.subtotal_cents, quote.source) == (9000, SOURCE_TIER)

    def test_inactive_tier_ignored(self, db_session, make_product, loc_a):
        product = make_product(price_cents=2000)
        tier = pricing_service.add_quantity_tier(product.id, 10, 15000)
        tier.active = False
        db_session.commit()

        quote = resolve_price(product, loc_a.id, 10)
        assert (quote.subtotal_cents, quote.source) == (20000, SOURCE_BASE)

    def test_duplicate_min_qty_rejected(self, db_session, make_product):
        product = make_product(price_cents=2000)
        pricing_service.add_quantity_tier(product.id, 10, 15000)

        with pytest.raises(ValidationError):
            pricing_service.add_quantity_tier(product.id, 10, 14000)

    def test_tier_for_unknown_product(self, db_session):
        with pytest.raises(ProductNotFound):
            pricing_service.add_quantity_tier("missing", 10, 15000)


class TestResolveValidation:

    @pytest.mark.parametrize("quantity", [0, -3, True, 1.5, "2"])
    def test_rejects_non_positive_or_non_integer_quantity(self, db_session, make_product, loc_a, quantity):
        product = make_product()
        with pytest.raises(ValidationError):
            resolve_price(product, loc_a.id, quantity)


class TestCatalogMaintenance:

    def test_create_product_with_price_is_approved(self, db_session, make_product):
        product = make_product(price_cents=1999)
        assert product.price_approved is True
        assert product.base_price_cents == 1999

    def test_create_product_requires_name(self, db_session):
        with pytest.raises(ValidationError):
            pricing_service.create_product(name="  ", cost_cents=1000)

    def test_refresh_suggested_price_after_cost_change(self, db_session, make_product):
        product = make_product()
        product.cost_cents = 2000

        assert pricing_service.refresh_suggested_price(product) is True
        assert product.base_price_cents == 3146

    def test_refresh_leaves_approved_price_alone(self, db_session, make_product):
        product = make_product(price_cents=2500)
        product.cost_cents = 2000

        assert pricing_service.refresh_suggested_price(product) is False
        assert product.base_price_cents == 2500


class TestUpdateProductCost:

    def test_suggested_price_follows_cost(self, db_session, make_product, admin):
        product = make_product()
        updated = pricing_service.update_product_cost(product.id, 2000, user_id=admin.id)

        assert updated.base_price_cents == 3146
        notification = db_session.query(Notification).filter_by(kind=NotificationKind.PRICE_CHANGE).one()
        assert notification.product_id == product.id
        assert "1573 to 3146" in notification.message

        [entry] = audit_service.list_for_entity("Product", product.id)
        assert entry.action == "UPDATE"
        assert entry.to_dict()["before"]["cost_cents"] == 1000
        assert entry.to_dict()["after"]["cost_cents"] == 2000

    def test_approved_price_stays_and_nobody_is_notified(self, db_session, make_product):
        product = make_product(price_cents=2500)
        updated = pricing_service.update_product_cost(product.id, 2000)

        assert updated.base_price_cents == 2500
        assert db_session.query(Notification).count() == 0

    def test_unknown_product(self, db_session):
        with pytest.raises(ProductNotFound):
            pricing_service.update_product_cost("missing", 100)
