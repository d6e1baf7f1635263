"""
Shared fixtures for the tenant authentication tests.

The identity provider is faked with httpx.MockTransport so the service and
routes run their real HTTP code paths without any network access.
"""

from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import parse_qs, urlencode

import httpx
import pytest
from starlette.requests import Request

from tenant_auth.auth.client import IdentityProviderClient
from tenant_auth.auth.service import AuthService
from tenant_auth.config import AuthConfig


CLIENT_ID = "clientId"
CLIENT_SECRET = "clientSecret"
LOGIN_STATE_SECRET = "7ffdbecc-ab7d-4134-9307-2dfcc52f7475"
ROOT_DOMAIN = "business.invotastic.com"
APPLICATION_DOMAIN = "auth.invotastic.com"
TENANT = "devs4you"
TENANT_HOST = f"{TENANT}.{ROOT_DOMAIN}"


def make_config(**overrides: Any) -> AuthConfig:
    """Build an AuthConfig for tenant subdomains, ignoring any .env file."""
    values: Dict[str, Any] = {
        "CLIENT_ID": CLIENT_ID,
        "CLIENT_SECRET": CLIENT_SECRET,
        "LOGIN_STATE_SECRET": LOGIN_STATE_SECRET,
        "LOGIN_URL": f"https://{{tenant_domain}}.{ROOT_DOMAIN}/api/auth/login",
        "REDIRECT_URI": f"https://{{tenant_domain}}.{ROOT_DOMAIN}/api/auth/callback",
        "ROOT_DOMAIN": ROOT_DOMAIN,
        "APPLICATION_DOMAIN": APPLICATION_DOMAIN,
        "USE_CUSTOM_DOMAINS": True,
        "USE_TENANT_SUBDOMAINS": True,
    }
    values.update(overrides)
    return AuthConfig(_env_file=None, **values)


def make_flat_config(**overrides: Any) -> AuthConfig:
    """Build an AuthConfig where the tenant comes from the tenant_domain query param."""
    values: Dict[str, Any] = {
        "LOGIN_URL": "https://app.invotastic.com/api/auth/login",
        "REDIRECT_URI": "https://app.invotastic.com/api/auth/callback",
        "ROOT_DOMAIN": None,
        "USE_CUSTOM_DOMAINS": False,
        "USE_TENANT_SUBDOMAINS": False,
    }
    values.update(overrides)
    return make_config(**values)


class FakeIdentityProvider:
    """Records requests and answers token, userinfo and revoke calls."""

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.token_response: Tuple[int, Any] = (200, {
            "access_token": "access-token-1",
            "refresh_token": "refresh-token-1",
            "id_token": "id-token-1",
            "token_type": "Bearer",
            "expires_in": 1800,
            "scope": "openid offline_access email",
        })
        self.userinfo_response: Tuple[int, Any] = (200, {
            "sub": "user-123",
            "email": "user@devs4you.com",
            "tnt_id": "tenant-123",
        })
        self.revoke_response: Tuple[int, Any] = (200, {})

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path.endswith("/oauth2/token"):
            status_code, body = self.token_response
        elif path.endswith("/oauth2/userinfo"):
            status_code, body = self.userinfo_response
        elif path.endswith("/oauth2/revoke"):
            status_code, body = self.revoke_response
        else:
            status_code, body = 404, {"error": "not_found"}

        return httpx.Response(status_code, json=body)

    def calls(self, suffix: str) -> List[httpx.Request]:
        return [request for request in self.requests if request.url.path.endswith(suffix)]


def form_body(request: httpx.Request) -> Dict[str, str]:
    return {key: values[0] for key, values in parse_qs(request.content.decode()).items()}


def build_service(config: AuthConfig, provider: FakeIdentityProvider) -> AuthService:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(provider.handler))
    client = IdentityProviderClient(
        application_domain=config.APPLICATION_DOMAIN,
        client_id=config.CLIENT_ID,
        client_secret=config.CLIENT_SECRET,
        http_client=http_client,
    )
    return AuthService(config, client)


def build_unreachable_service(config: AuthConfig) -> AuthService:
    """AuthService whose identity provider connections are always refused."""
    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = IdentityProviderClient(
        application_domain=config.APPLICATION_DOMAIN,
        client_id=config.CLIENT_ID,
        client_secret=config.CLIENT_SECRET,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(refuse)),
    )
    return AuthService(config, client)


def make_request(
    host: str = TENANT_HOST,
    path: str = "/api/auth/login",
    query: Optional[Any] = None,
    cookies: Optional[Dict[str, str]] = None,
) -> Request:
    """Build a bare Starlette request without going through an ASGI app."""
    headers = [(b"host", host.encode())]
    if cookies:
        cookie_header = "; ".join(f"{name}={value}" for name, value in cookies.items())
        headers.append((b"cookie", cookie_header.encode()))

    scope = {
        "type": "http",
        "http_version": "1.1",
        "method": "GET",
        "scheme": "https",
        "path": path,
        "raw_path": path.encode(),
        "root_path": "",
        "query_string": urlencode(query or {}, doseq=True).encode(),
        "headers": headers,
        "client": ("testclient", 50000),
        "server": (host, 443),
    }
    return Request(scope)


def set_cookie_headers(response) -> List[str]:
    """Set-Cookie values of a Starlette response or an httpx (TestClient) response."""
    if isinstance(response.headers, httpx.Headers):
        return response.headers.get_list("set-cookie")
    return response.headers.getlist("set-cookie")


def parse_set_cookie(header: str) -> Tuple[str, str]:
    """Return (name, value) of a Set-Cookie header."""
    name, value = header.split(";", 1)[0].split("=", 1)
    return name, value.strip('"')


def deleted_cookie_names(response) -> List[str]:
    return [
        parse_set_cookie(header)[0]
        for header in set_cookie_headers(response)
        if "max-age=0" in header.lower()
    ]


@pytest.fixture
def provider() -> FakeIdentityProvider:
    return FakeIdentityProvider()


@pytest.fixture
def auth_config() -> AuthConfig:
    return make_config()


@pytest.fixture
def auth_service(auth_config, provider) -> AuthService:
    return build_service(auth_config, provider)
