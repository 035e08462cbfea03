"""
Pytest fixtures for identity tests.

The identity provider is never contacted: clients are built on a mocked
requests.Session whose responses are queued per test.
"""

from unittest.mock import MagicMock

import pytest
import requests

from identity.clients import KeycloakClient, OAuthClient

WELL_KNOWN = {
    "issuer": "https://account.example.com/auth/realms/main",
    "token_endpoint": "https://account.example.com/auth/realms/main/protocol/openid-connect/token",
    "introspection_endpoint": (
        "https://account.example.com/auth/realms/main/protocol/openid-connect/token/introspect"
    ),
}


def make_response(json_data=None, status_code=200, headers=None):
    """Build a requests.Response stand-in."""
    response = MagicMock(spec=requests.Response)
    response.status_code = status_code
    response.headers = headers or {}
    response.json.return_value = json_data
    if status_code >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(
            f"{status_code} Error", response=response
        )
    return response


@pytest.fixture
def http_session():
    return MagicMock(spec=requests.Session)


@pytest.fixture
def oauth(http_session):
    return OAuthClient(
        client_id="payments",
        client_secret="secret",
        well_known_url="https://account.example.com/auth/realms/main/.well-known/openid-configuration",
        session=http_session,
        timeout=5,
    )


@pytest.fixture
def service_oauth():
    client = MagicMock(spec=OAuthClient)
    client.get_access_token.return_value = "service-access-token"
    return client


@pytest.fixture
def keycloak(http_session, service_oauth):
    return KeycloakClient(
        base_url="https://account.example.com/auth",
        realm="main",
        oauth_client=service_oauth,
        session=http_session,
        timeout=5,
    )
