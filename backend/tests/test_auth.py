# Overview: Pytest coverage for users, login and bearer-token sessions.

"""
Authentication Tests

SECURITY TESTS:
1. Passwords are stored as bcrypt hashes and must meet the strength rules
2. Tokens are stored hashed; revoked, expired and idle tokens are rejected
3. Deactivated users lose access immediately
"""

from datetime import timedelta

import pytest

from retailpos.errors import LocationNotFound, ValidationError
from retailpos.models import EntityStatus, Role, SessionToken
from retailpos.services import auth_service, session_service
from retailpos.services.auth_service import PasswordValidationError
from retailpos.time_utils import utcnow

from conftest import TEST_PASSWORD, auth_headers, get_auth_token


class TestCreateUser:

    def test_password_is_hashed(self, db_session, seller):
        assert seller.password_hash != TEST_PASSWORD
        assert seller.password_hash.startswith("$2")
        assert auth_service.verify_password(TEST_PASSWORD, seller.password_hash)

    @pytest.mark.parametrize("password", ["short1", "lettersonly", "12345678"])
    def test_weak_passwords_rejected(self, db_session, make_user, loc_a, password):
        with pytest.raises(PasswordValidationError):
            make_user("weak", Role.SELLER, loc_a, password=password)

    def test_seller_needs_location(self, db_session):
        with pytest.raises(ValidationError):
            auth_service.create_user("nohome", TEST_PASSWORD, Role.SELLER, None)

    def test_unknown_location(self, db_session):
        with pytest.raises(LocationNotFound):
            auth_service.create_user("lost", TEST_PASSWORD, Role.SELLER, "missing")

    def test_duplicate_username(self, db_session, seller, loc_a):
        with pytest.raises(ValidationError):
            auth_service.create_user(seller.username, TEST_PASSWORD, Role.SELLER, loc_a.id)

    def test_malformed_hash_never_matches(self):
        assert auth_service.verify_password(TEST_PASSWORD, "not-a-bcrypt-hash") is False


class TestAuthenticate:

    def test_success_sets_last_login(self, db_session, seller):
        user = auth_service.authenticate("seller_a", TEST_PASSWORD)
        assert user.id == seller.id
        assert user.last_login_at is not None

    def test_wrong_password(self, db_session, seller):
        assert auth_service.authenticate("seller_a", "Wrong12345") is None

    def test_inactive_user(self, db_session, seller):
        seller.status = EntityStatus.INACTIVE
        db_session.commit()
        assert auth_service.authenticate("seller_a", TEST_PASSWORD) is None


class TestSessions:

    def test_token_is_stored_hashed(self, db_session, seller):
        session, token = session_service.create_session(seller.id)
        assert session.token_hash != token
        assert session_service.validate_session(token).user.id == seller.id

    def test_revoked_token(self, db_session, seller):
        _, token = session_service.create_session(seller.id)
        assert session_service.revoke_session(token) is True
        assert session_service.validate_session(token) is None
        assert session_service.revoke_session(token) is False

    def test_expired_token(self, db_session, seller):
        session, token = session_service.create_session(seller.id)
        session.expires_at = utcnow() - timedelta(minutes=1)
        db_session.commit()
        assert session_service.validate_session(token) is None

    def test_idle_token(self, db_session, seller):
        session, token = session_service.create_session(seller.id)
        session.last_used_at = utcnow() - timedelta(hours=9)
        db_session.commit()
        assert session_service.validate_session(token) is None

    def test_deactivated_user(self, db_session, seller):
        _, token = session_service.create_session(seller.id)
        seller.status = EntityStatus.INACTIVE
        db_session.commit()
        assert session_service.validate_session(token) is None

    def test_revoke_all(self, db_session, seller):
        session_service.create_session(seller.id)
        session_service.create_session(seller.id)

        assert session_service.revoke_all_user_sessions(seller.id) == 2
        assert db_session.query(SessionToken).filter_by(is_revoked=False).count() == 0


class TestAuthApi:

    def test_login_me_logout(self, client, seller):
        token = get_auth_token(client, "seller_a")
        assert token

        me = client.get('/api/auth/me', headers=auth_headers(token))
        assert me.status_code == 200
        assert me.json['user']['username'] == 'seller_a'
        assert 'password_hash' not in me.json['user']

        assert client.post('/api/auth/logout', headers=auth_headers(token)).status_code == 200
        assert client.get('/api/auth/me', headers=auth_headers(token)).status_code == 401

    def test_bad_credentials(self, client, seller):
        response = client.post('/api/auth/login', json={'username': 'seller_a', 'password': 'Nope12345'})
        assert response.status_code == 401
        assert response.json['code'] == 'UNAUTHORIZED'

    def test_missing_fields(self, client, db_session):
        response = client.post('/api/auth/login', json={'username': 'seller_a'})
        assert response.status_code == 400

    def test_missing_header(self, client, db_session):
        assert client.get('/api/auth/me').status_code == 401
