"""
Exception types raised by the authentication flow.

ConfigurationError is fatal and raised at call time. InvalidLoginStateError
is recovered inside the callback by redirecting back to login. ProviderError
and InvalidGrantError surface identity provider failures to the caller.
"""

from typing import Any, Optional


class TenantAuthError(Exception):
    """Base exception for tenant authentication errors"""
    pass


class ConfigurationError(TenantAuthError):
    """Required configuration is missing or the tenant cannot be resolved"""
    pass


class MissingTenantError(ConfigurationError):
    """No tenant domain name could be determined for the request"""
    pass


class InvalidLoginStateError(TenantAuthError):
    """The login state cookie or the state query parameter is missing, stale or mismatched"""
    pass


class DecryptError(InvalidLoginStateError):
    """The login state cookie could not be decrypted or parsed"""
    pass


class ProviderError(TenantAuthError):
    """
    Non-2xx response from one of the identity provider endpoints.

    Attributes:
        status_code: HTTP status returned by the provider
        body: Raw response body, kept for diagnostics
        error: OAuth2 ``error`` code if the body carried one
        error_description: OAuth2 ``error_description`` if present
    """

    def __init__(
        self,
        message: str,
        status_code: int,
        body: Any = None,
        error: Optional[str] = None,
        error_description: Optional[str] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.body = body
        self.error = error
        self.error_description = error_description


class InvalidGrantError(ProviderError):
    """The provider rejected the grant; the caller has to start a fresh login"""
    pass
