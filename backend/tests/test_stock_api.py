# Overview: Pytest coverage for the stock HTTP endpoints; listings, manual movements and minimums.

"""
Stock API Tests

SECURITY TESTS: sellers read and move stock only at their home location;
admins read every location.
"""

import pytest

from retailpos.models import AuditLog
from retailpos.services import stock_service
from retailpos.services.broadcast import STOCK_LOW, location_channel


@pytest.fixture
def product(make_product, set_stock, loc_a):
    product = make_product(name="Yerba 1kg")
    set_stock(product, loc_a, 10, min_quantity=2)
    return product


def move(client, headers, product, movement, quantity, **extra):
    body = {'product_id': product.id, 'movement': movement, 'quantity': quantity}
    body.update(extra)
    return client.put('/api/stock/movements', json=body, headers=headers)


class TestStockListing:

    def test_requires_token(self, client, db_session):
        assert client.get('/api/stock').status_code == 401

    def test_seller_lists_home_location(self, client, seller_headers, product, set_stock, loc_a, loc_b):
        set_stock(product, loc_b, 4)

        response = client.get(f'/api/stock?location_id={loc_b.id}', headers=seller_headers)

        assert response.status_code == 200
        [row] = response.json['stock']
        assert row['location_id'] == loc_a.id
        assert row['product_name'] == 'Yerba 1kg'
        assert row['location_name'] == 'Location A'
        assert row['quantity'] == 10

    def test_admin_lists_every_location(self, client, admin_headers, product, set_stock, loc_b):
        set_stock(product, loc_b, 4)

        response = client.get('/api/stock', headers=admin_headers)
        assert len(response.json['stock']) == 2

    def test_low_filter(self, client, seller_headers, product, make_product, set_stock, loc_a):
        low = make_product(name="Almost gone")
        set_stock(low, loc_a, 1, min_quantity=1)

        response = client.get('/api/stock?low=true', headers=seller_headers)
        assert [r['product_id'] for r in response.json['stock']] == [low.id]

    def test_single_row(self, client, seller_headers, product, loc_a, loc_b):
        ok = client.get(f'/api/stock/{product.id}/{loc_a.id}', headers=seller_headers)
        assert ok.status_code == 200
        assert ok.json['stock']['quantity'] == 10

        foreign = client.get(f'/api/stock/{product.id}/{loc_b.id}', headers=seller_headers)
        assert foreign.status_code == 403
        assert foreign.json['code'] == 'FORBIDDEN'

    def test_missing_row(self, client, admin_headers, product, loc_b):
        response = client.get(f'/api/stock/{product.id}/{loc_b.id}', headers=admin_headers)
        assert response.status_code == 404
        assert response.json['code'] == 'STOCK_NOT_FOUND'


class TestStockMovements:

    def test_in_out_adjust(self, client, seller_headers, product, loc_a):
        assert move(client, seller_headers, product, 'IN', 5).json['stock']['quantity'] == 15
        assert move(client, seller_headers, product, 'OUT', 3).json['stock']['quantity'] == 12
        assert move(client, seller_headers, product, 'ADJUST', 7).json['stock']['quantity'] == 7

        assert stock_service.available(product.id, loc_a.id) == 7

    def test_out_beyond_stock(self, client, seller_headers, product, loc_a):
        response = move(client, seller_headers, product, 'OUT', 11)

        assert response.status_code == 400
        assert response.json['code'] == 'INSUFFICIENT_STOCK'
        assert response.json['details']['available'] == 10
        assert stock_service.available(product.id, loc_a.id) == 10

    def test_movement_is_audited(self, client, seller, seller_headers, product, db_session):
        move(client, seller_headers, product, 'OUT', 1, reason='Broken bag')

        entry = db_session.query(AuditLog).filter_by(entity='LocationStock').one()
        assert entry.user_id == seller.id
        assert entry.to_dict()['after']['reason'] == 'Broken bag'

    def test_low_stock_goes_through_engine_broadcaster(self, client, seller_headers, product, broadcaster, loc_a):
        move(client, seller_headers, product, 'OUT', 8)

        [event] = broadcaster.events(STOCK_LOW, location_channel(loc_a.id))
        assert event.data['quantity'] == 2

    @pytest.mark.parametrize("body", [
        {'movement': 'IN', 'quantity': 1},
        {'product_id': 'x', 'quantity': 1},
        {'product_id': 'x', 'movement': 'IN'},
        {'product_id': 'x', 'movement': 'IN', 'quantity': 1.5},
        {'product_id': 'x', 'movement': 'LOST', 'quantity': 1},
    ])
    def test_invalid_body(self, client, seller_headers, db_session, body):
        response = client.put('/api/stock/movements', json=body, headers=seller_headers)
        assert response.status_code == 400
        assert response.json['code'] == 'VALIDATION_ERROR'

    def test_unknown_product(self, client, seller_headers, db_session):
        response = client.put(
            '/api/stock/movements',
            json={'product_id': 'missing', 'movement': 'IN', 'quantity': 1},
            headers=seller_headers,
        )
        assert response.status_code == 404
        assert response.json['code'] == 'PRODUCT_NOT_FOUND'

    def test_admin_without_location(self, client, admin_headers, product):
        assert move(client, admin_headers, product, 'IN', 1).status_code == 403


class TestMinimum:

    def test_seller_sets_own_minimum(self, client, seller_headers, product, loc_a):
        response = client.put(
            f'/api/stock/{product.id}/{loc_a.id}/minimum',
            json={'min_quantity': 12},
            headers=seller_headers,
        )

        assert response.status_code == 200
        assert response.json['stock']['min_quantity'] == 12
        assert response.json['stock']['is_low'] is True

    def test_seller_blocked_elsewhere(self, client, seller_headers, product, set_stock, loc_b):
        set_stock(product, loc_b, 3)

        response = client.put(
            f'/api/stock/{product.id}/{loc_b.id}/minimum',
            json={'min_quantity': 1},
            headers=seller_headers,
        )
        assert response.status_code == 403

    def test_negative_minimum(self, client, admin_headers, product, loc_a):
        response = client.put(
            f'/api/stock/{product.id}/{loc_a.id}/minimum',
            json={'min_quantity': -1},
            headers=admin_headers,
        )
        assert response.status_code == 400
