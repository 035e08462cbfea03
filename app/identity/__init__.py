"""
Identity app: customer accounts and bearer token verification.

This app wraps the external identity provider:
- OAuthClient: OIDC discovery, client-credentials tokens, token introspection
- KeycloakClient: user directory administration
- CustomerIdentityService: resolve-or-create and enrich paying customers
- HasClientRole: DRF permission for server-to-server callers

Related apps:
    - payments: resolves the customer of inline orders through this app
"""
