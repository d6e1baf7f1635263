"""
Authentication Package

This package implements the relying-party side of the OAuth2 authorization
code flow with PKCE against a multi-tenant identity provider.

Modules:
- crypto: AES-GCM encryption of the login state cookie
- pkce: CSRF state, nonce and PKCE verifier/challenge generation
- tenant: tenant domain name and authentication origin resolution
- client: httpx client for the token, userinfo and revoke endpoints
- service: login, callback, logout and token refresh orchestration
- routes: FastAPI endpoints (/auth/login, /auth/callback, /auth/logout, /auth/refresh)

The authentication flow:
1. Client hits /auth/login, gets redirected to the tenant authorize endpoint
   with an encrypted login state cookie
2. User authenticates with the identity provider
3. Provider redirects to /auth/callback with code and state
4. Service checks state against the cookie, exchanges the code, fetches userinfo
5. Caller starts its own session and refreshes tokens via /auth/refresh
"""

from .errors import (
    ConfigurationError,
    DecryptError,
    InvalidGrantError,
    InvalidLoginStateError,
    MissingTenantError,
    ProviderError,
    TenantAuthError,
)
from .routes import auth_router
from .service import AuthService

__all__ = [
    "AuthService",
    "auth_router",
    "ConfigurationError",
    "DecryptError",
    "InvalidGrantError",
    "InvalidLoginStateError",
    "MissingTenantError",
    "ProviderError",
    "TenantAuthError",
]
