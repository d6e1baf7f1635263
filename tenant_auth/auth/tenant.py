"""
Tenant domain resolution.

Pure functions mapping a request host plus configuration to the tenant
domain name and to the identity provider origin for that tenant. Nothing
here touches the request/response objects so it can be tested with plain
strings.
"""

import re
from typing import Optional

from tenant_auth.auth.errors import ConfigurationError, MissingTenantError
from tenant_auth.config import TENANT_DOMAIN_PLACEHOLDER, AuthConfig


_TENANT_LABEL_PATTERN = re.compile(r"^[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?$", re.IGNORECASE)
_HOST_PATTERN = re.compile(
    r"^(?:[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?\.)+[a-z0-9-]{2,63}(?::\d{1,5})?$",
    re.IGNORECASE,
)


def _strip_port(host: str) -> str:
    return host.strip().lower().split(":", 1)[0]


def validate_tenant_domain_name(tenant_domain_name: str) -> str:
    """
    Check that a tenant domain name is a single DNS label.

    Raises:
        ConfigurationError: If the name cannot be used inside a host name
    """
    if not _TENANT_LABEL_PATTERN.match(tenant_domain_name):
        raise ConfigurationError(f"Invalid tenant domain name: '{tenant_domain_name}'")
    return tenant_domain_name.lower()


def validate_tenant_custom_domain(tenant_custom_domain: str) -> str:
    """
    Check that a tenant custom domain is a bare host name (optionally with a port).

    Raises:
        ConfigurationError: If a scheme, path or invalid label is present
    """
    if not _HOST_PATTERN.match(tenant_custom_domain):
        raise ConfigurationError(f"Invalid tenant custom domain: '{tenant_custom_domain}'")
    return tenant_custom_domain.lower()


def resolve_tenant_subdomain(host: str, root_domain: str) -> str:
    """
    Extract the tenant label from a host served under root_domain.

    Args:
        host: Request Host header, port allowed
        root_domain: Application root domain (e.g., business.example.com)

    Returns:
        The left-most label of host, e.g. ``acme`` for ``acme.business.example.com``

    Raises:
        ConfigurationError: If host is not a direct subdomain of root_domain
    """
    hostname = _strip_port(host)
    suffix = "." + root_domain.lower()

    if not hostname.endswith(suffix):
        raise ConfigurationError(
            f"Host '{hostname}' is not a subdomain of root domain '{root_domain}'"
        )

    return validate_tenant_domain_name(hostname[: -len(suffix)])


def resolve_tenant_domain_name(
    host: str,
    config: AuthConfig,
    query_tenant_domain_name: Optional[str] = None,
    default_tenant_domain_name: Optional[str] = None,
) -> str:
    """
    Determine the tenant for a request.

    With USE_TENANT_SUBDOMAINS the tenant is always taken from the host.
    Otherwise the ``tenant_domain`` query parameter wins, then the explicit
    default.

    Raises:
        ConfigurationError: If the host does not belong to ROOT_DOMAIN
        MissingTenantError: If no tenant identifier is available at all
    """
    if config.USE_TENANT_SUBDOMAINS:
        return resolve_tenant_subdomain(host, config.ROOT_DOMAIN)

    tenant_domain_name = query_tenant_domain_name or default_tenant_domain_name
    if not tenant_domain_name:
        raise MissingTenantError("No tenant domain name could be determined for the request")

    return validate_tenant_domain_name(tenant_domain_name)


def resolve_tenant_custom_domain(
    query_tenant_custom_domain: Optional[str] = None,
    default_tenant_custom_domain: Optional[str] = None,
) -> Optional[str]:
    """Pick the tenant custom domain: query parameter first, then the default."""
    tenant_custom_domain = query_tenant_custom_domain or default_tenant_custom_domain
    if not tenant_custom_domain:
        return None
    return validate_tenant_custom_domain(tenant_custom_domain)


def resolve_auth_origin(
    tenant_domain_name: Optional[str],
    config: AuthConfig,
    tenant_custom_domain: Optional[str] = None,
) -> str:
    """
    Build the identity provider origin for a tenant.

    Args:
        tenant_domain_name: Resolved tenant label
        config: Application configuration
        tenant_custom_domain: Custom domain of the tenant, takes precedence

    Returns:
        ``https://{tenant_custom_domain}`` when a tenant custom domain is known,
        ``https://{tenant}.{APPLICATION_DOMAIN}`` with USE_CUSTOM_DOMAINS, and
        ``https://{tenant}-{APPLICATION_DOMAIN}`` otherwise.

    Raises:
        MissingTenantError: If neither a tenant nor a custom domain is given
    """
    if tenant_custom_domain:
        return f"https://{tenant_custom_domain}"

    if not tenant_domain_name:
        raise MissingTenantError("Cannot build an authentication origin without a tenant")

    separator = "." if config.USE_CUSTOM_DOMAINS else "-"
    return f"https://{tenant_domain_name}{separator}{config.APPLICATION_DOMAIN}"


def apply_tenant_placeholder(url: str, tenant_domain_name: Optional[str]) -> str:
    """Replace the ``{tenant_domain}`` placeholder in a configured URL."""
    if TENANT_DOMAIN_PLACEHOLDER not in url:
        return url
    if not tenant_domain_name:
        raise MissingTenantError(f"URL '{url}' needs a tenant domain name")
    return url.replace(TENANT_DOMAIN_PLACEHOLDER, tenant_domain_name)
