"""
Helpers for the customer's browser session.

The login flow stores the customer's OAuth token set in the Django
session under "oauth_token". The customer id is the `sub` claim of that
token as reported by introspection.

A per-session shopper id ("sess_id") is minted on first use and sent to
the gateway as fraud-screening metadata.
"""

from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING

from identity.clients import OAuthToken
from identity.exceptions import IdentityProviderError, TokenVerificationError

if TYPE_CHECKING:
    from django.http import HttpRequest

    from identity.clients import OAuthClient

logger = logging.getLogger(__name__)

OAUTH_TOKEN_SESSION_KEY = "oauth_token"
SHOPPER_SESSION_KEY = "sess_id"


def get_shopper_session_id(request: HttpRequest, create: bool = True) -> str:
    """
    Return the shopper session id, minting one if the session has none.

    With create=False an empty string is returned instead.
    """
    session_id = request.session.get(SHOPPER_SESSION_KEY)
    if session_id is None:
        if not create:
            return ""
        session_id = str(uuid.uuid4())
        request.session[SHOPPER_SESSION_KEY] = session_id
    return session_id


def customer_id_from_session(request: HttpRequest, oauth_client: OAuthClient) -> uuid.UUID | None:
    """
    Resolve the logged-in customer from the session token.

    Expired tokens are refreshed and written back to the session. A token
    that can no longer be used is dropped from the session and treated as
    logged out.

    Returns:
        The customer id, or None when nobody is logged in

    Raises:
        IdentityProviderError: Introspection failed or returned no subject
    """
    stored = request.session.get(OAUTH_TOKEN_SESSION_KEY)
    if not stored:
        return None

    try:
        introspection, token = oauth_client.update_and_verify_token(
            OAuthToken.from_session(stored)
        )
    except TokenVerificationError:
        logger.info("Dropping unusable session token")
        del request.session[OAUTH_TOKEN_SESSION_KEY]
        return None

    request.session[OAUTH_TOKEN_SESSION_KEY] = token.to_session()

    subject = introspection.get("sub")
    try:
        return uuid.UUID(str(subject))
    except ValueError as e:
        raise IdentityProviderError(
            "Session token has no usable subject",
            details={"sub": subject},
        ) from e
