"""
Tests for session helpers.
"""

import uuid
from datetime import timedelta
from unittest.mock import MagicMock

import pytest
from django.contrib.sessions.backends.signed_cookies import SessionStore
from django.test import RequestFactory
from django.utils import timezone

from identity.clients import OAuthClient, OAuthToken
from identity.exceptions import IdentityProviderError, TokenVerificationError
from identity.session import (
    OAUTH_TOKEN_SESSION_KEY,
    SHOPPER_SESSION_KEY,
    customer_id_from_session,
    get_shopper_session_id,
)


@pytest.fixture
def request_with_session():
    request = RequestFactory().get("/")
    request.session = SessionStore()
    return request


@pytest.fixture
def session_token():
    return OAuthToken(access_token="user-token", expires_at=timezone.now() + timedelta(minutes=5))


@pytest.fixture
def oauth_client():
    return MagicMock(spec=OAuthClient)


class TestShopperSessionId:
    def test_minted_once(self, request_with_session):
        first = get_shopper_session_id(request_with_session)

        assert first
        assert get_shopper_session_id(request_with_session) == first
        assert request_with_session.session[SHOPPER_SESSION_KEY] == first

    def test_without_create(self, request_with_session):
        assert get_shopper_session_id(request_with_session, create=False) == ""
        assert SHOPPER_SESSION_KEY not in request_with_session.session


class TestCustomerIdFromSession:
    def test_anonymous(self, request_with_session, oauth_client):
        assert customer_id_from_session(request_with_session, oauth_client) is None
        oauth_client.update_and_verify_token.assert_not_called()

    def test_logged_in(self, request_with_session, oauth_client, session_token):
        customer_id = uuid.uuid4()
        refreshed = OAuthToken(access_token="user-token-2", expires_at=session_token.expires_at)
        request_with_session.session[OAUTH_TOKEN_SESSION_KEY] = session_token.to_session()
        oauth_client.update_and_verify_token.return_value = ({"sub": str(customer_id)}, refreshed)

        assert customer_id_from_session(request_with_session, oauth_client) == customer_id
        assert oauth_client.update_and_verify_token.call_args.args[0] == session_token
        assert request_with_session.session[OAUTH_TOKEN_SESSION_KEY] == refreshed.to_session()

    def test_unusable_token_logs_out(self, request_with_session, oauth_client, session_token):
        request_with_session.session[OAUTH_TOKEN_SESSION_KEY] = session_token.to_session()
        oauth_client.update_and_verify_token.side_effect = TokenVerificationError("expired")

        assert customer_id_from_session(request_with_session, oauth_client) is None
        assert OAUTH_TOKEN_SESSION_KEY not in request_with_session.session

    def test_subject_is_not_a_uuid(self, request_with_session, oauth_client, session_token):
        request_with_session.session[OAUTH_TOKEN_SESSION_KEY] = session_token.to_session()
        oauth_client.update_and_verify_token.return_value = ({"sub": "service-account"}, session_token)

        with pytest.raises(IdentityProviderError):
            customer_id_from_session(request_with_session, oauth_client)
