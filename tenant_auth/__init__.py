"""
Tenant Authentication Service

Relying-party side of the OAuth2 authorization code flow with PKCE for
applications whose users belong to tenants of a multi-tenant identity
provider.

Usage:
    from tenant_auth import AuthConfig, AuthService

    auth_service = AuthService(AuthConfig())
    response = await auth_service.login(request)
"""

from tenant_auth.auth.service import AuthService
from tenant_auth.config import AuthConfig, get_settings
from tenant_auth.models import CallbackData, LoginConfig, LoginState, LogoutConfig, TokenData

__version__ = "1.0.0"

__all__ = [
    "AuthConfig",
    "AuthService",
    "CallbackData",
    "LoginConfig",
    "LoginState",
    "LogoutConfig",
    "TokenData",
    "get_settings",
]
