"""
Authentication routes for the multi-tenant login flow.

Thin FastAPI endpoints over AuthService. The application session is the
caller's business: /auth/callback returns the CallbackData as JSON and the
client stores the tokens however it sees fit.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from fastapi.responses import JSONResponse, RedirectResponse

from tenant_auth.auth.errors import InvalidGrantError, ProviderError
from tenant_auth.auth.service import AuthService
from tenant_auth.models import (
    CallbackData,
    ErrorResponse,
    LogoutConfig,
    LogoutRequest,
    RefreshRequest,
    RefreshResponse,
)


logger = logging.getLogger(__name__)


# =============================================================================
# Router Setup
# =============================================================================

auth_router = APIRouter(
    prefix="/auth",
    tags=["authentication"],
)


# =============================================================================
# Dependencies
# =============================================================================

def get_auth_service(request: Request) -> AuthService:
    """
    Dependency to get the AuthService from app state.

    Raises:
        HTTPException: 503 if the service has not been initialized
    """
    auth_service = getattr(request.app.state, "auth_service", None)
    if auth_service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Authentication service is not initialized",
        )
    return auth_service


# =============================================================================
# Error Responses
# =============================================================================

def provider_error_response(exc: ProviderError) -> JSONResponse:
    """
    Map a provider failure to a JSON error response.

    A rejected grant is a 401 so clients know to log in again; anything else
    is a 502 since the fault is upstream.
    """
    status_code = (
        status.HTTP_401_UNAUTHORIZED
        if isinstance(exc, InvalidGrantError)
        else status.HTTP_502_BAD_GATEWAY
    )
    body = ErrorResponse(
        error=exc.error or "provider_error",
        message=str(exc),
        details={"provider_status_code": exc.status_code},
    )
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


# =============================================================================
# Login / Callback
# =============================================================================

@auth_router.get("/login", response_class=RedirectResponse)
async def login(request: Request, auth_service: AuthService = Depends(get_auth_service)):
    """
    Redirect to the tenant's authorize endpoint.

    Query Parameters:
        return_url: Where to go after login (returned by /auth/callback)
        login_hint: Preferred login identifier forwarded to the provider
        tenant_domain: Tenant name when tenants are not served from subdomains
        tenant_custom_domain: Tenant custom domain, if the tenant has one
    """
    return await auth_service.login(request)


@auth_router.get("/callback", response_model=CallbackData)
async def callback(
    request: Request,
    response: Response,
    auth_service: AuthService = Depends(get_auth_service),
):
    """
    Complete the login and return tokens, userinfo, custom state and return URL.

    Redirects back to /auth/login when the login state is missing or stale.
    """
    try:
        result = await auth_service.callback(request, response)
    except ProviderError as e:
        logger.error(f"Login callback failed at the identity provider: {e}")
        error_response = provider_error_response(e)
        auth_service.clear_login_state_cookie(request, error_response)
        return error_response

    return result


# =============================================================================
# Logout
# =============================================================================

@auth_router.get("/logout", response_class=RedirectResponse)
async def logout(
    request: Request,
    redirect_url: Optional[str] = Query(None, description="Where to go after the provider logout"),
    auth_service: AuthService = Depends(get_auth_service),
):
    """Redirect to the provider logout endpoint without revoking tokens."""
    return await auth_service.logout(request, LogoutConfig(redirect_url=redirect_url))


@auth_router.post("/logout", response_class=RedirectResponse)
async def logout_with_revocation(
    request: Request,
    body: LogoutRequest,
    auth_service: AuthService = Depends(get_auth_service),
):
    """Revoke the given refresh token, then redirect to the provider logout endpoint."""
    return await auth_service.logout(
        request,
        LogoutConfig(refresh_token=body.refresh_token, redirect_url=body.redirect_url),
    )


# =============================================================================
# Token Refresh
# =============================================================================

@auth_router.post("/refresh", response_model=RefreshResponse)
async def refresh(body: RefreshRequest, auth_service: AuthService = Depends(get_auth_service)):
    """
    Refresh tokens if the access token is expired or about to expire.

    Returns 401 when the refresh token is no longer valid.
    """
    tokens = await auth_service.refresh_token_if_expired(body.refresh_token, body.expires_at)
    return RefreshResponse(refreshed=tokens is not None, tokens=tokens)
