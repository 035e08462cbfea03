"""
DRF permissions for server-to-server callers.

Privileged operations are called by other services with a bearer token
issued by the identity provider. The token must be active, issued for
this client and carry a client role.

Usage:
    class CreatePaymentView(APIView):
        permission_classes = [HasClientRole]
        required_client_role = "create-payments"
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from django.apps import apps
from rest_framework.permissions import BasePermission

from identity.exceptions import NotAuthenticatedError

if TYPE_CHECKING:
    from rest_framework.request import Request
    from rest_framework.views import APIView


def get_bearer_token(request: Request) -> str | None:
    """Extract the token from an `Authorization: Bearer <token>` header."""
    header = request.META.get("HTTP_AUTHORIZATION", "").strip()
    if not header.startswith("Bearer "):
        return None
    token = header[len("Bearer "):].strip()
    return token or None


class HasClientRole(BasePermission):
    """
    Allow requests whose bearer token carries the view's client role.

    The role is read from `required_client_role` on the view. Missing
    tokens raise NotAuthenticatedError (401); tokens without the role
    raise TokenVerificationError (403).
    """

    def has_permission(self, request: Request, view: APIView) -> bool:
        token = get_bearer_token(request)
        if token is None:
            raise NotAuthenticatedError("Bearer token required")

        role = getattr(view, "required_client_role")
        oauth_client = apps.get_app_config("identity").oauth_client
        request.token_introspection = oauth_client.verify_token(token, role)
        return True
