"""
HTTP clients for the identity provider.

OAuthClient talks to the OIDC endpoints (discovery, token, introspection).
KeycloakClient talks to the Keycloak admin REST API for the user
directory, authenticating with the OAuthClient's client-credentials token.

Both clients are long-lived objects owned by the identity AppConfig:
    from django.apps import apps

    config = apps.get_app_config("identity")
    config.oauth_client.verify_token(bearer_token, "create-payments")
    user = config.keycloak_client.get_user(customer_id)

Caching:
    - The discovery document is fetched once and kept for the client's
      lifetime.
    - The client-credentials access token is kept until it expires, then
      refreshed with its refresh token when that is still valid, or
      re-acquired otherwise.
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any
from urllib.parse import urljoin

import requests
from django.conf import settings
from django.utils import timezone
from django.utils.dateparse import parse_datetime

from identity.exceptions import IdentityProviderError, TokenVerificationError

if TYPE_CHECKING:
    from collections.abc import Sequence


logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10


# =============================================================================
# Data Types
# =============================================================================


@dataclass
class OAuthToken:
    """
    Access token with its expiry and optional refresh token.

    Attributes:
        access_token: Bearer token value
        expires_at: When the access token stops being valid
        refresh_token: Refresh token, if issued
        refresh_expires_at: When the refresh token stops being valid
    """

    access_token: str
    expires_at: datetime
    refresh_token: str | None = None
    refresh_expires_at: datetime | None = None

    @classmethod
    def from_response(cls, data: dict[str, Any], now: datetime) -> OAuthToken:
        refresh_expires_in = data.get("refresh_expires_in")
        return cls(
            access_token=data["access_token"],
            expires_at=now + timedelta(seconds=int(data.get("expires_in", 0))),
            refresh_token=data.get("refresh_token"),
            refresh_expires_at=(
                now + timedelta(seconds=int(refresh_expires_in))
                if refresh_expires_in
                else None
            ),
        )

    def is_valid(self, now: datetime) -> bool:
        return self.expires_at > now

    def can_refresh(self, now: datetime) -> bool:
        return bool(
            self.refresh_token
            and self.refresh_expires_at
            and self.refresh_expires_at > now
        )

    def to_session(self) -> dict[str, Any]:
        """Serialize for storage in the Django session (JSON serializer)."""
        return {
            "access_token": self.access_token,
            "expires_at": self.expires_at.isoformat(),
            "refresh_token": self.refresh_token,
            "refresh_expires_at": (
                self.refresh_expires_at.isoformat() if self.refresh_expires_at else None
            ),
        }

    @classmethod
    def from_session(cls, data: dict[str, Any]) -> OAuthToken:
        refresh_expires_at = data.get("refresh_expires_at")
        return cls(
            access_token=data["access_token"],
            expires_at=parse_datetime(data["expires_at"]),
            refresh_token=data.get("refresh_token"),
            refresh_expires_at=parse_datetime(refresh_expires_at) if refresh_expires_at else None,
        )


@dataclass
class IdentityUser:
    """
    User directory entry.

    Attributes:
        id: User id (the `sub` of the user's tokens)
        email: Email address, if known
        first_name / last_name: Name parts, if known
        attributes: Custom attributes, each a list of strings
        realm_roles: Realm roles known to be assigned
        raw: Representation as returned by the directory
    """

    id: uuid.UUID
    email: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    attributes: dict[str, list[str]] = field(default_factory=dict)
    realm_roles: list[str] = field(default_factory=list)
    raw: dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_representation(cls, data: dict[str, Any]) -> IdentityUser:
        return cls(
            id=uuid.UUID(str(data["id"])),
            email=data.get("email"),
            first_name=data.get("firstName"),
            last_name=data.get("lastName"),
            attributes=dict(data.get("attributes") or {}),
            realm_roles=list(data.get("realmRoles") or []),
            raw=data,
        )

    def to_representation(self) -> dict[str, Any]:
        representation = {
            key: self.raw[key]
            for key in ("username", "enabled", "emailVerified")
            if key in self.raw
        }
        representation["id"] = str(self.id)
        if self.email is not None:
            representation["email"] = self.email
        if self.first_name is not None:
            representation["firstName"] = self.first_name
        if self.last_name is not None:
            representation["lastName"] = self.last_name
        if self.attributes:
            representation["attributes"] = self.attributes
        return representation

    def has_attribute(self, name: str) -> bool:
        return name in self.attributes

    def get_attribute(self, name: str) -> str | None:
        values = self.attributes.get(name) or []
        return values[0] if values else None

    def set_attribute(self, name: str, value: str) -> None:
        self.attributes[name] = [value]


# =============================================================================
# Shared transport
# =============================================================================


class _IdentityHttpClient:
    """requests.Session wrapper translating failures to IdentityProviderError."""

    service_name = "identity provider"

    def __init__(self, session: requests.Session | None = None, timeout: float = DEFAULT_TIMEOUT_SECONDS):
        self.session = session or requests.Session()
        self.timeout = timeout

    def _send(self, method: str, url: str, operation: str, **kwargs) -> requests.Response:
        log_context = {"operation": operation, "service": self.service_name}
        start_time = time.time()
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
            response.raise_for_status()
        except requests.RequestException as e:
            duration_ms = (time.time() - start_time) * 1000
            http_status = getattr(getattr(e, "response", None), "status_code", None)
            logger.error(
                f"{self.service_name} request failed",
                extra={**log_context, "http_status": http_status, "duration_ms": duration_ms},
                exc_info=True,
            )
            raise IdentityProviderError(
                f"{self.service_name} request failed: {operation}",
                details={"operation": operation, "http_status": http_status},
            ) from e

        logger.debug(
            f"{self.service_name} request completed",
            extra={**log_context, "duration_ms": (time.time() - start_time) * 1000},
        )
        return response

    @staticmethod
    def _json(response: requests.Response, operation: str) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise IdentityProviderError(
                f"Unreadable identity provider response: {operation}",
                details={"operation": operation},
            ) from e


# =============================================================================
# OAuth / OIDC
# =============================================================================


class OAuthClient(_IdentityHttpClient):
    """
    OIDC client for this service's confidential client.

    Thread-safe: the cached discovery document and access token are
    guarded by a lock.
    """

    service_name = "OAuth server"

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        well_known_url: str,
        session: requests.Session | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        super().__init__(session=session, timeout=timeout)
        self.client_id = client_id
        self.client_secret = client_secret
        self.well_known_url = well_known_url
        self._lock = threading.RLock()
        self._well_known: dict[str, Any] | None = None
        self._access_token: OAuthToken | None = None

    @classmethod
    def from_settings(cls) -> OAuthClient:
        return cls(
            client_id=settings.OAUTH_CLIENT_ID,
            client_secret=settings.OAUTH_CLIENT_SECRET,
            well_known_url=settings.OAUTH_WELL_KNOWN_URL,
            timeout=getattr(settings, "IDENTITY_API_TIMEOUT_SECONDS", DEFAULT_TIMEOUT_SECONDS),
        )

    # -------------------------------------------------------------------------
    # Discovery
    # -------------------------------------------------------------------------

    def well_known(self) -> dict[str, Any]:
        """Return the discovery document, fetching it on first use."""
        with self._lock:
            if self._well_known is None:
                response = self._send("GET", self.well_known_url, "discovery")
                self._well_known = self._json(response, "discovery")
            return self._well_known

    def _endpoint(self, name: str) -> str:
        endpoint = self.well_known().get(name)
        if not endpoint:
            raise IdentityProviderError(
                f"Discovery document has no {name}",
                details={"endpoint": name},
            )
        return endpoint

    # -------------------------------------------------------------------------
    # Tokens
    # -------------------------------------------------------------------------

    def _grant(self, grant_type: str, **extra: str) -> OAuthToken:
        now = timezone.now()
        response = self._send(
            "POST",
            self._endpoint("token_endpoint"),
            f"token:{grant_type}",
            data={
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "grant_type": grant_type,
                **extra,
            },
        )
        data = self._json(response, f"token:{grant_type}")
        if "access_token" not in data:
            raise IdentityProviderError("Token response has no access_token")
        return OAuthToken.from_response(data, now)

    def get_access_token(self) -> str:
        """
        Return a client-credentials access token for this service.

        The token is cached until it expires.
        """
        with self._lock:
            now = timezone.now()
            cached = self._access_token
            if cached is not None and cached.is_valid(now):
                return cached.access_token

            if cached is not None and cached.can_refresh(now):
                token = self._grant("refresh_token", refresh_token=cached.refresh_token)
            else:
                token = self._grant("client_credentials")

            self._access_token = token
        logger.info(
            "Acquired service access token",
            extra={"client_id": self.client_id, "expires_at": token.expires_at.isoformat()},
        )
        return token.access_token

    def refresh_token(self, token: OAuthToken) -> OAuthToken:
        """Exchange a user's refresh token for a new token set."""
        return self._grant("refresh_token", refresh_token=token.refresh_token)

    # -------------------------------------------------------------------------
    # Introspection
    # -------------------------------------------------------------------------

    def introspect_token(self, token: str) -> dict[str, Any]:
        response = self._send(
            "POST",
            self._endpoint("introspection_endpoint"),
            "introspect",
            data={
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "token": token,
            },
        )
        return self._json(response, "introspect")

    def verify_token(self, token: str, role: str) -> dict[str, Any]:
        """
        Check that a bearer token is active, issued for this client and
        carries the given client role.

        Returns:
            The introspection response

        Raises:
            TokenVerificationError: Any check fails
            IdentityProviderError: Introspection could not be performed
        """
        introspection = self.introspect_token(token)

        audience = introspection.get("aud") or []
        if isinstance(audience, str):
            audience = [audience]
        resource_access = introspection.get("resource_access") or {}
        client_roles = (resource_access.get(self.client_id) or {}).get("roles") or []

        if not introspection.get("active"):
            reason = "inactive"
        elif self.client_id not in audience:
            reason = "audience"
        elif role not in client_roles:
            reason = "role"
        else:
            return introspection

        logger.warning(
            "Bearer token rejected",
            extra={"reason": reason, "required_role": role, "sub": introspection.get("sub")},
        )
        raise TokenVerificationError(
            "Token is not authorized for this operation",
            details={"required_role": role},
        )

    def update_and_verify_token(self, token: OAuthToken) -> tuple[dict[str, Any], OAuthToken]:
        """
        Refresh a user's token when expired, then introspect it.

        Returns:
            (introspection, possibly refreshed token)

        Raises:
            TokenVerificationError: Token expired without a usable refresh
                token, or is no longer active
        """
        now = timezone.now()
        if not token.is_valid(now):
            if not token.can_refresh(now):
                raise TokenVerificationError("Session token has expired")
            token = self.refresh_token(token)

        introspection = self.introspect_token(token.access_token)
        if not introspection.get("active"):
            raise TokenVerificationError("Session token is no longer active")
        return introspection, token


# =============================================================================
# Keycloak admin API
# =============================================================================


class KeycloakClient(_IdentityHttpClient):
    """
    Keycloak admin REST client for one realm.

    Every call authenticates with the service's client-credentials token
    from the OAuthClient.
    """

    service_name = "User directory"

    def __init__(
        self,
        base_url: str,
        realm: str,
        oauth_client: OAuthClient,
        session: requests.Session | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        super().__init__(session=session, timeout=timeout)
        if not base_url.endswith("/"):
            base_url = f"{base_url}/"
        self.base_url = urljoin(base_url, f"admin/realms/{realm}/")
        self.oauth_client = oauth_client

    @classmethod
    def from_settings(cls, oauth_client: OAuthClient) -> KeycloakClient:
        return cls(
            base_url=settings.KEYCLOAK_BASE_URL,
            realm=settings.KEYCLOAK_REALM,
            oauth_client=oauth_client,
            timeout=getattr(settings, "IDENTITY_API_TIMEOUT_SECONDS", DEFAULT_TIMEOUT_SECONDS),
        )

    def _admin(self, method: str, path: str, operation: str, **kwargs) -> requests.Response:
        headers = {"Authorization": f"Bearer {self.oauth_client.get_access_token()}"}
        return self._send(method, urljoin(self.base_url, path), operation, headers=headers, **kwargs)

    # -------------------------------------------------------------------------
    # Users
    # -------------------------------------------------------------------------

    def get_user(self, user_id: uuid.UUID) -> IdentityUser:
        response = self._admin("GET", f"users/{user_id}", "get_user")
        return IdentityUser.from_representation(self._json(response, "get_user"))

    def get_user_by_email(self, email: str) -> IdentityUser | None:
        response = self._admin(
            "GET",
            "users",
            "get_user_by_email",
            params={"email": email, "exact": "true"},
        )
        for data in self._json(response, "get_user_by_email"):
            if (data.get("email") or "").lower() == email.lower():
                return IdentityUser.from_representation(data)
        return None

    def create_user(self, email: str) -> IdentityUser:
        """
        Create an enabled user with the email as username.

        Returns:
            The created user as stored by the directory
        """
        response = self._admin(
            "POST",
            "users",
            "create_user",
            json={"username": email, "email": email, "enabled": True},
        )
        location = response.headers.get("Location", "")
        user_id = location.rstrip("/").rsplit("/", 1)[-1] if location else ""
        if user_id:
            user = self.get_user(uuid.UUID(user_id))
        else:
            user = self.get_user_by_email(email)
            if user is None:
                raise IdentityProviderError("Created user could not be found")

        logger.info("Created customer account", extra={"user_id": str(user.id)})
        return user

    def update_user(self, user: IdentityUser) -> None:
        self._admin("PUT", f"users/{user.id}", "update_user", json=user.to_representation())

    def add_realm_roles(self, user: IdentityUser, roles: Sequence[str]) -> IdentityUser:
        """
        Assign realm roles that are available to the user.

        Roles the user already holds, or that do not exist, are skipped.
        """
        response = self._admin(
            "GET",
            f"users/{user.id}/role-mappings/realm/available",
            "available_roles",
        )
        available = self._json(response, "available_roles")
        to_add = [role for role in available if role.get("name") in roles]
        if to_add:
            self._admin(
                "POST",
                f"users/{user.id}/role-mappings/realm",
                "add_realm_roles",
                json=to_add,
            )
            user.realm_roles.extend(role["name"] for role in to_add)
        return user

    def set_required_actions(self, user: IdentityUser, actions: Sequence[str]) -> None:
        """Ask the user to complete account actions (emailed by the directory)."""
        self._admin(
            "PUT",
            f"users/{user.id}/execute-actions-email",
            "set_required_actions",
            json=list(actions),
        )
