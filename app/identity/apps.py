"""
Identity app configuration.

The app config owns the identity provider clients so that every request
in a process shares one discovery document and one cached access token.
"""

from django.apps import AppConfig
from django.utils.functional import cached_property


class IdentityConfig(AppConfig):
    """Configuration for the identity application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "identity"
    verbose_name = "Identity"

    @cached_property
    def oauth_client(self):
        from identity.clients import OAuthClient

        return OAuthClient.from_settings()

    @cached_property
    def keycloak_client(self):
        from identity.clients import KeycloakClient

        return KeycloakClient.from_settings(self.oauth_client)
