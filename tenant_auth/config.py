"""
Configuration module for the tenant authentication service.

This module uses Pydantic Settings to load and validate environment variables
for the identity provider client credentials, the login state cookie secret,
tenant domain resolution rules, and token refresh behavior.

Environment variables are loaded from .env file or system environment.
"""

from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


TENANT_DOMAIN_PLACEHOLDER = "{tenant_domain}"


class AuthConfig(BaseSettings):
    """
    Application settings loaded from environment variables.

    The config is frozen once constructed: every orchestrator in
    ``tenant_auth.auth.service`` reads from it but never mutates it.
    """

    # =========================================================================
    # OAuth2 Client Credentials
    # =========================================================================

    CLIENT_ID: str = Field(
        ...,
        description="OAuth2 client ID of the application registered with the identity provider",
        min_length=1,
    )

    CLIENT_SECRET: str = Field(
        ...,
        description="OAuth2 client secret (confidential client)",
        min_length=1,
        repr=False,
    )

    # =========================================================================
    # Login State Cookie
    # =========================================================================

    LOGIN_STATE_SECRET: str = Field(
        ...,
        description="Secret used to encrypt the login state cookie (at least 32 characters)",
        min_length=32,
        repr=False,
    )

    LOGIN_STATE_COOKIE_MAX_AGE_SECONDS: int = Field(
        default=3600,
        description="Lifetime of a login state cookie in seconds",
        ge=60,
        le=3600,
    )

    DANGEROUSLY_DISABLE_SECURE_COOKIES: bool = Field(
        default=False,
        description="Drop the Secure cookie attribute (local HTTP development only)",
    )

    # =========================================================================
    # Application URLs
    # =========================================================================

    LOGIN_URL: str = Field(
        ...,
        description="URL of this application's login endpoint (e.g., https://{tenant_domain}.example.com/auth/login)",
        min_length=1,
    )

    REDIRECT_URI: str = Field(
        ...,
        description="Callback URL registered with the identity provider (e.g., https://{tenant_domain}.example.com/auth/callback)",
        min_length=1,
    )

    CUSTOM_APPLICATION_LOGIN_PAGE_URL: Optional[str] = Field(
        None,
        description="Page to send users to when no tenant can be determined at login",
    )

    ERROR_URL: Optional[str] = Field(
        None,
        description="Page to send users to when the identity provider reports a login error",
    )

    # =========================================================================
    # Tenant Domain Resolution
    # =========================================================================

    APPLICATION_DOMAIN: str = Field(
        ...,
        description="Identity provider application domain (e.g., auth.example.com)",
        min_length=1,
    )

    ROOT_DOMAIN: Optional[str] = Field(
        None,
        description="Root domain of this application when tenants are served from subdomains",
    )

    USE_CUSTOM_DOMAINS: bool = Field(
        default=False,
        description="Whether the identity provider application uses a custom domain",
    )

    USE_TENANT_SUBDOMAINS: bool = Field(
        default=False,
        description="Whether the tenant is encoded as a subdomain of ROOT_DOMAIN",
    )

    # =========================================================================
    # Tokens
    # =========================================================================

    SCOPES: str = Field(
        default="openid offline_access email",
        description="Space or comma separated scopes requested at the authorize endpoint",
    )

    TOKEN_EXPIRATION_BUFFER_SECONDS: int = Field(
        default=60,
        description="Refresh access tokens this many seconds before they actually expire",
        ge=0,
        le=3600,
    )

    HTTP_TIMEOUT_SECONDS: float = Field(
        default=15.0,
        description="Timeout for calls to the identity provider",
        gt=0,
        le=60,
    )

    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )

    # =========================================================================
    # Pydantic Settings Configuration
    # =========================================================================

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
        frozen=True,
    )

    # =========================================================================
    # Computed Properties
    # =========================================================================

    @property
    def scopes_list(self) -> List[str]:
        """
        Parse and return SCOPES as a clean list.

        Returns:
            List of scope strings in the configured order.
        """
        return [scope for scope in self.SCOPES.replace(",", " ").split() if scope]

    @property
    def application_login_url(self) -> str:
        """
        Where users land when no tenant can be determined.

        Returns:
            CUSTOM_APPLICATION_LOGIN_PAGE_URL if set, otherwise the identity
            provider's application-level login page.
        """
        if self.CUSTOM_APPLICATION_LOGIN_PAGE_URL:
            return self.CUSTOM_APPLICATION_LOGIN_PAGE_URL
        return f"https://{self.APPLICATION_DOMAIN}/login"

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("APPLICATION_DOMAIN", "ROOT_DOMAIN")
    @classmethod
    def validate_domain(cls, v: Optional[str]) -> Optional[str]:
        """
        Validate that a domain is a bare host name.

        Raises:
            ValueError: If a scheme, path or whitespace is present
        """
        if v is None:
            return v

        v = v.strip().lower()
        if "://" in v or "/" in v or " " in v:
            raise ValueError(
                f"Invalid domain format: '{v}'. Expected format: 'auth.example.com'"
            )
        return v

    @field_validator("SCOPES")
    @classmethod
    def validate_scopes(cls, v: str) -> str:
        if not v.replace(",", " ").split():
            raise ValueError("SCOPES must contain at least one scope")
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in allowed_levels:
            raise ValueError(f"LOG_LEVEL must be one of {allowed_levels}, got: {v}")
        return v.upper()

    @model_validator(mode="after")
    def validate_tenant_placeholders(self) -> "AuthConfig":
        """
        Check that the tenant subdomain settings agree with each other.

        With USE_TENANT_SUBDOMAINS the tenant is only known per request, so
        LOGIN_URL and REDIRECT_URI must carry the placeholder and ROOT_DOMAIN
        must be set. Without it, the placeholder would never be replaced.
        """
        urls = {"LOGIN_URL": self.LOGIN_URL, "REDIRECT_URI": self.REDIRECT_URI}

        if self.USE_TENANT_SUBDOMAINS:
            if not self.ROOT_DOMAIN:
                raise ValueError("ROOT_DOMAIN is required when USE_TENANT_SUBDOMAINS is enabled")
            for name, url in urls.items():
                if TENANT_DOMAIN_PLACEHOLDER not in url:
                    raise ValueError(
                        f"{name} must contain the '{TENANT_DOMAIN_PLACEHOLDER}' placeholder "
                        "when USE_TENANT_SUBDOMAINS is enabled"
                    )
        else:
            for name, url in urls.items():
                if TENANT_DOMAIN_PLACEHOLDER in url:
                    raise ValueError(
                        f"{name} cannot contain the '{TENANT_DOMAIN_PLACEHOLDER}' placeholder "
                        "when USE_TENANT_SUBDOMAINS is disabled"
                    )

        return self


# =============================================================================
# Settings Singleton
# =============================================================================

@lru_cache()
def get_settings() -> AuthConfig:
    """
    Get or create a singleton AuthConfig instance.

    Returns:
        AuthConfig instance with all configuration loaded and validated.

    Raises:
        ValidationError: If required environment variables are missing
                        or invalid.
    """
    return AuthConfig()
