"""
Data Models Module

This module defines Pydantic models for the values that flow through the
authentication service.

Models are organized by functional area:
- Login state (the encrypted content of the login state cookie)
- Token models (token endpoint responses, callback results)
- Per-call configuration (login and logout overrides)
- HTTP API models (refresh/logout request bodies, error responses)
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


# ============================================================================
# Login State
# ============================================================================

class LoginState(BaseModel):
    """Ephemeral state of one login attempt, stored only in the login state cookie."""
    state: str = Field(..., description="CSRF state token, also embedded in the cookie name")
    code_verifier: str = Field(..., description="PKCE code verifier")
    redirect_uri: str = Field(..., description="Redirect URI sent to the authorize endpoint")
    return_url: Optional[str] = Field(None, description="Where to send the user after login")
    custom_state: Optional[Dict[str, Any]] = Field(None, description="Opaque state supplied by the caller")
    tenant_domain_name: Optional[str] = Field(None, description="Tenant resolved at login time")
    tenant_custom_domain: Optional[str] = Field(None, description="Tenant custom domain used at login time")


# ============================================================================
# Token Models
# ============================================================================

class TokenData(BaseModel):
    """Response of the identity provider token endpoint."""
    access_token: str = Field(..., description="OAuth2 access token")
    refresh_token: Optional[str] = Field(None, description="Refresh token (requires offline_access)")
    id_token: Optional[str] = Field(None, description="OIDC ID token")
    token_type: str = Field(default="Bearer", description="Token type")
    expires_in: int = Field(..., description="Access token lifetime in seconds")
    scope: str = Field(default="", description="Granted scopes, space separated")


class CallbackData(BaseModel):
    """Everything the caller needs to start an application session after login."""
    tokens: TokenData = Field(..., description="Token endpoint response")
    expires_at: int = Field(..., description="Access token expiry as epoch milliseconds; pass to the refresh guard as is")
    userinfo: Dict[str, Any] = Field(default_factory=dict, description="Userinfo claims")
    custom_state: Optional[Dict[str, Any]] = Field(None, description="Custom state passed to login")
    return_url: Optional[str] = Field(None, description="Return URL passed to login")
    tenant_domain_name: Optional[str] = Field(None, description="Tenant the user logged in to")
    tenant_custom_domain: Optional[str] = Field(None, description="Tenant custom domain, if any")


# ============================================================================
# Per-call Configuration
# ============================================================================

class LoginConfig(BaseModel):
    """Optional overrides for a single login call."""
    scopes: Optional[List[str]] = Field(None, description="Scopes overriding the configured SCOPES")
    custom_state: Optional[Dict[str, Any]] = Field(None, description="Opaque state returned by callback")
    default_tenant_domain_name: Optional[str] = Field(None, description="Tenant to use when the request names none")
    default_tenant_custom_domain: Optional[str] = Field(None, description="Tenant custom domain fallback")
    extra_authorize_params: Optional[Dict[str, str]] = Field(None, description="Additional or overriding authorize query params")


class LogoutConfig(BaseModel):
    """Optional overrides for a single logout call."""
    refresh_token: Optional[str] = Field(None, description="Refresh token to revoke")
    redirect_url: Optional[str] = Field(None, description="Where the provider sends the user after logout")
    tenant_domain_name: Optional[str] = Field(None, description="Tenant overriding the one found on the request")
    tenant_custom_domain: Optional[str] = Field(None, description="Tenant custom domain overriding everything else")


# ============================================================================
# HTTP API Models
# ============================================================================

class RefreshRequest(BaseModel):
    """Request model for token refresh."""
    refresh_token: str = Field(..., description="Refresh token", min_length=1)
    expires_at: int = Field(..., description="Access token expiry as epoch milliseconds", ge=0)


class RefreshResponse(BaseModel):
    """Response model for token refresh."""
    refreshed: bool = Field(..., description="Whether a new token set was fetched")
    tokens: Optional[TokenData] = Field(None, description="New tokens when refreshed")


class LogoutRequest(BaseModel):
    """Request model for logout with refresh token revocation."""
    refresh_token: Optional[str] = Field(None, description="Refresh token to revoke")
    redirect_url: Optional[str] = Field(None, description="Post-logout redirect URL")


class ErrorResponse(BaseModel):
    """Standardized error response model."""
    error: str = Field(..., description="Error type or code")
    message: str = Field(..., description="Human-readable error message")
    details: Optional[Dict[str, Any]] = Field(None, description="Additional error details")
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Error timestamp",
    )
