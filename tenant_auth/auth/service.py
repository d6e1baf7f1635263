"""
Authentication service implementing the multi-tenant authorization code flow.

AuthService ties together tenant resolution, PKCE, the encrypted login state
cookie and the identity provider client:

1. login()   builds the authorize redirect and sets the login state cookie
2. callback() validates state, exchanges the code, fetches userinfo
3. logout()  revokes the refresh token and redirects to the provider logout
4. refresh_token_if_expired() refreshes tokens that are about to expire

Each call is independent and only depends on the request it is given; the
login state cookie is the sole storage for an in-flight login.
"""

import logging
import time
from typing import List, Optional, Tuple, Union
from urllib.parse import quote, urlencode, urlparse

from fastapi import Request, Response
from fastapi.responses import RedirectResponse

from tenant_auth.auth.client import IdentityProviderClient
from tenant_auth.auth.crypto import decode_login_state, encode_login_state
from tenant_auth.auth.errors import (
    ConfigurationError,
    DecryptError,
    InvalidGrantError,
    InvalidLoginStateError,
    MissingTenantError,
    ProviderError,
)
from tenant_auth.auth.pkce import (
    CODE_CHALLENGE_METHOD,
    generate_nonce,
    generate_pkce_pair,
    generate_state,
)
from tenant_auth.auth.tenant import (
    apply_tenant_placeholder,
    resolve_auth_origin,
    resolve_tenant_custom_domain,
    resolve_tenant_domain_name,
    resolve_tenant_subdomain,
    validate_tenant_domain_name,
)
from tenant_auth.config import AuthConfig
from tenant_auth.models import CallbackData, LoginConfig, LoginState, LogoutConfig, TokenData


logger = logging.getLogger(__name__)


LOGIN_STATE_COOKIE_PREFIX = "login"
LOGIN_STATE_COOKIE_SEPARATOR = ":"
MAX_LOGIN_STATE_COOKIES = 3

NO_CACHE_HEADERS = {
    "Cache-Control": "no-store",
    "Pragma": "no-cache",
}

CALLBACK_QUERY_PARAMS = ("code", "state", "error", "error_description", "tenant_domain", "tenant_custom_domain")


# =============================================================================
# Login State Cookie Helpers
# =============================================================================

def login_state_cookie_name(state: str, created_at_ms: int) -> str:
    """Cookie name for a login attempt: ``login:{state}:{created_at_ms}``."""
    return LOGIN_STATE_COOKIE_SEPARATOR.join(
        [LOGIN_STATE_COOKIE_PREFIX, state, str(created_at_ms)]
    )


def parse_login_state_cookie_name(name: str) -> Optional[Tuple[str, int]]:
    """
    Split a login state cookie name into (state, created_at_ms).

    Returns:
        None if the name is not a login state cookie
    """
    parts = name.split(LOGIN_STATE_COOKIE_SEPARATOR)
    if len(parts) != 3 or parts[0] != LOGIN_STATE_COOKIE_PREFIX or not parts[1]:
        return None
    try:
        created_at_ms = int(parts[2])
    except ValueError:
        return None
    return parts[1], created_at_ms


def _login_state_cookies(request: Request) -> List[Tuple[str, str, int]]:
    """All login state cookies on the request as (name, state, created_at_ms), oldest first."""
    cookies = []
    for name in request.cookies:
        parsed = parse_login_state_cookie_name(name)
        if parsed:
            cookies.append((name, parsed[0], parsed[1]))
    return sorted(cookies, key=lambda cookie: cookie[2])


def _now_ms() -> int:
    return int(time.time() * 1000)


def _with_query(url: str, params: dict) -> str:
    params = {key: value for key, value in params.items() if value}
    if not params:
        return url
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}{urlencode(params, quote_via=quote)}"


class AuthService:
    """
    Relying-party side of the OAuth2 authorization code flow with PKCE.

    Args:
        config: Frozen application configuration
        client: Identity provider client; one is created from config if omitted
    """

    def __init__(self, config: AuthConfig, client: Optional[IdentityProviderClient] = None):
        self.config = config
        self.client = client or IdentityProviderClient(
            application_domain=config.APPLICATION_DOMAIN,
            client_id=config.CLIENT_ID,
            client_secret=config.CLIENT_SECRET,
            timeout=config.HTTP_TIMEOUT_SECONDS,
        )
        self.cookie_path = urlparse(config.REDIRECT_URI).path or "/"

    async def aclose(self) -> None:
        await self.client.aclose()

    # =========================================================================
    # Login
    # =========================================================================

    async def login(self, request: Request, config: Optional[LoginConfig] = None) -> RedirectResponse:
        """
        Start a login by redirecting to the tenant's authorize endpoint.

        Reads ``return_url``, ``login_hint``, ``tenant_domain`` and
        ``tenant_custom_domain`` from the query string. No network calls
        are made.

        Args:
            request: Incoming request
            config: Optional per-call overrides

        Returns:
            302 redirect to the authorize endpoint carrying the login state
            cookie, or to the application login page if no tenant is known

        Raises:
            ConfigurationError: If the host does not belong to ROOT_DOMAIN
        """
        login_config = config or LoginConfig()
        query = request.query_params

        tenant_custom_domain = resolve_tenant_custom_domain(
            query.get("tenant_custom_domain"),
            login_config.default_tenant_custom_domain,
        )

        try:
            tenant_domain_name = resolve_tenant_domain_name(
                request.headers.get("host", ""),
                self.config,
                query_tenant_domain_name=query.get("tenant_domain"),
                default_tenant_domain_name=login_config.default_tenant_domain_name,
            )
        except MissingTenantError:
            if not tenant_custom_domain:
                logger.info("No tenant on login request, redirecting to application login page")
                return self._redirect(
                    _with_query(self.config.application_login_url, {"client_id": self.config.CLIENT_ID})
                )
            tenant_domain_name = None

        auth_origin = resolve_auth_origin(tenant_domain_name, self.config, tenant_custom_domain)
        redirect_uri = apply_tenant_placeholder(self.config.REDIRECT_URI, tenant_domain_name)

        state = generate_state()
        code_verifier, code_challenge = generate_pkce_pair()

        login_state = LoginState(
            state=state,
            code_verifier=code_verifier,
            redirect_uri=redirect_uri,
            return_url=query.get("return_url"),
            custom_state=login_config.custom_state,
            tenant_domain_name=tenant_domain_name,
            tenant_custom_domain=tenant_custom_domain,
        )

        scopes = login_config.scopes or self.config.scopes_list
        params = {
            "client_id": self.config.CLIENT_ID,
            "redirect_uri": redirect_uri,
            "response_type": "code",
            "state": state,
            "scope": " ".join(scopes),
            "code_challenge": code_challenge,
            "code_challenge_method": CODE_CHALLENGE_METHOD,
            "nonce": generate_nonce(),
        }
        login_hint = query.get("login_hint")
        if login_hint:
            params["login_hint"] = login_hint
        if login_config.extra_authorize_params:
            params.update(login_config.extra_authorize_params)

        authorize_url = f"{auth_origin}/api/v1/oauth2/authorize?{urlencode(params, quote_via=quote)}"
        response = self._redirect(authorize_url)

        self._evict_old_login_state_cookies(request, response)
        response.set_cookie(
            key=login_state_cookie_name(state, _now_ms()),
            value=encode_login_state(login_state, self.config.LOGIN_STATE_SECRET),
            max_age=self.config.LOGIN_STATE_COOKIE_MAX_AGE_SECONDS,
            path=self.cookie_path,
            secure=not self.config.DANGEROUSLY_DISABLE_SECURE_COOKIES,
            httponly=True,
            samesite="lax",
        )

        logger.info(
            "Redirecting to authorize endpoint",
            extra={"tenant_domain_name": tenant_domain_name, "auth_origin": auth_origin},
        )
        return response

    def _evict_old_login_state_cookies(self, request: Request, response: Response) -> None:
        existing = _login_state_cookies(request)
        excess = len(existing) - (MAX_LOGIN_STATE_COOKIES - 1)
        for name, _, _ in existing[:max(excess, 0)]:
            self._delete_login_state_cookie(response, name)

    # =========================================================================
    # Callback
    # =========================================================================

    async def callback(
        self,
        request: Request,
        response: Optional[Response] = None,
    ) -> Union[CallbackData, RedirectResponse]:
        """
        Complete a login from the identity provider's redirect.

        Args:
            request: Incoming callback request with code/state (or error) query params
            response: The response the caller will send on success; the login
                state cookie is deleted on it

        Returns:
            CallbackData on success. A RedirectResponse (back to login, or to
            ERROR_URL) when the login state is missing/invalid or the provider
            reported an error. The login state cookie is deleted either way.

        Raises:
            ConfigurationError: If the host does not belong to ROOT_DOMAIN
            ProviderError: If the token or userinfo endpoint fails
        """
        try:
            params = self._callback_params(request)
        except InvalidLoginStateError as e:
            logger.warning(f"Invalid callback request: {e}")
            states = request.query_params.getlist("state")
            cookie_name = self._find_login_state_cookie(request, states[0] if states else None)
            return self._redirect(self._login_url_for_request(request), cookie_name)

        state = params.get("state")
        cookie_name = self._find_login_state_cookie(request, state)

        try:
            tenant_domain_name = self._callback_tenant(request, params.get("tenant_domain"))
        except InvalidLoginStateError as e:
            logger.warning(f"Invalid callback request: {e}")
            return self._redirect(self._login_url_for_request(request), cookie_name)

        tenant_custom_domain = params.get("tenant_custom_domain")
        login_url = self._login_url(tenant_domain_name, tenant_custom_domain)

        try:
            login_state = self._load_login_state(request, state, cookie_name)
        except InvalidLoginStateError as e:
            logger.warning(f"Invalid login state, restarting login: {e}")
            return self._redirect(login_url, cookie_name)

        login_url = self._login_url(
            tenant_domain_name or login_state.tenant_domain_name,
            tenant_custom_domain or login_state.tenant_custom_domain,
        )

        if params.get("error"):
            return self._handle_provider_error(params, login_url, cookie_name)

        code = params.get("code")
        if not code:
            logger.warning("Callback request is missing the authorization code")
            return self._redirect(login_url, cookie_name)

        try:
            tokens = await self.client.get_tokens(
                code=code,
                redirect_uri=login_state.redirect_uri,
                code_verifier=login_state.code_verifier,
            )
            userinfo = await self.client.get_userinfo(tokens.access_token)
        except InvalidGrantError:
            logger.warning("Authorization code was rejected, restarting login")
            return self._redirect(login_url, cookie_name)
        except ProviderError:
            if response is not None:
                self._delete_login_state_cookie(response, cookie_name)
            raise

        if response is not None:
            self._delete_login_state_cookie(response, cookie_name)

        logger.info(
            "Login completed",
            extra={"tenant_domain_name": login_state.tenant_domain_name},
        )

        return CallbackData(
            tokens=tokens,
            expires_at=self._expires_at(tokens),
            userinfo=userinfo,
            custom_state=login_state.custom_state,
            return_url=login_state.return_url,
            tenant_domain_name=login_state.tenant_domain_name,
            tenant_custom_domain=login_state.tenant_custom_domain,
        )

    def clear_login_state_cookie(self, request: Request, response: Response) -> None:
        """
        Delete the login state cookie named by the request's ``state`` param.

        For callers that build their own error response after callback raised.
        """
        state = request.query_params.get("state")
        self._delete_login_state_cookie(response, self._find_login_state_cookie(request, state))

    def _callback_params(self, request: Request) -> dict:
        params = {}
        for name in CALLBACK_QUERY_PARAMS:
            values = request.query_params.getlist(name)
            if len(values) > 1:
                raise InvalidLoginStateError(f"More than one [{name}] query parameter was passed")
            params[name] = values[0] if values else None
        return params

    def _callback_tenant(self, request: Request, query_tenant_domain_name: Optional[str]) -> Optional[str]:
        if self.config.USE_TENANT_SUBDOMAINS:
            return resolve_tenant_subdomain(request.headers.get("host", ""), self.config.ROOT_DOMAIN)
        if not query_tenant_domain_name:
            return None
        try:
            return validate_tenant_domain_name(query_tenant_domain_name)
        except ConfigurationError as e:
            raise InvalidLoginStateError(f"Invalid tenant_domain query parameter: {e}") from e

    def _find_login_state_cookie(self, request: Request, state: Optional[str]) -> Optional[str]:
        if not state:
            return None
        matches = [name for name, cookie_state, _ in _login_state_cookies(request) if cookie_state == state]
        return matches[-1] if matches else None

    def _load_login_state(
        self,
        request: Request,
        state: Optional[str],
        cookie_name: Optional[str],
    ) -> LoginState:
        if not state:
            raise InvalidLoginStateError("Callback request is missing the state parameter")
        if not cookie_name:
            raise InvalidLoginStateError("No login state cookie matches the state parameter")

        try:
            login_state = decode_login_state(request.cookies[cookie_name], self.config.LOGIN_STATE_SECRET)
        except DecryptError as e:
            raise InvalidLoginStateError(f"Login state cookie could not be decrypted: {e}") from e

        cookie_state = parse_login_state_cookie_name(cookie_name)[0]
        if login_state.state != state or login_state.state != cookie_state:
            raise InvalidLoginStateError("State parameter does not match the login state")

        return login_state

    def _handle_provider_error(
        self,
        params: dict,
        login_url: str,
        cookie_name: Optional[str],
    ) -> RedirectResponse:
        error = params["error"]
        error_description = params.get("error_description")

        if error == "login_required":
            logger.info("Provider requires the user to log in again")
            return self._redirect(login_url, cookie_name)

        logger.warning(
            f"Provider reported a login error: {error}",
            extra={"error": error, "error_description": error_description},
        )
        if self.config.ERROR_URL:
            target = _with_query(
                self.config.ERROR_URL,
                {"error": error, "error_description": error_description},
            )
            return self._redirect(target, cookie_name)
        return self._redirect(login_url, cookie_name)

    def _expires_at(self, tokens: TokenData) -> int:
        # Actual expiry; refresh_token_if_expired applies the buffer.
        return _now_ms() + tokens.expires_in * 1000

    # =========================================================================
    # Logout
    # =========================================================================

    async def logout(self, request: Request, config: Optional[LogoutConfig] = None) -> RedirectResponse:
        """
        Revoke the refresh token (best effort) and redirect to the provider logout.

        Args:
            request: Incoming request
            config: Optional refresh token, post-logout redirect and tenant overrides

        Returns:
            302 redirect to ``{auth_origin}/api/v1/logout``, or to the
            redirect URL / application login page when no tenant is known
        """
        logout_config = config or LogoutConfig()
        query = request.query_params

        if logout_config.refresh_token:
            try:
                await self.client.revoke_refresh_token(logout_config.refresh_token)
            except ProviderError as e:
                logger.warning(f"Revoking refresh token failed during logout: {e}")

        tenant_custom_domain = resolve_tenant_custom_domain(
            logout_config.tenant_custom_domain or query.get("tenant_custom_domain")
        )

        tenant_domain_name = None
        if not tenant_custom_domain:
            try:
                if logout_config.tenant_domain_name:
                    tenant_domain_name = validate_tenant_domain_name(logout_config.tenant_domain_name)
                else:
                    tenant_domain_name = resolve_tenant_domain_name(
                        request.headers.get("host", ""),
                        self.config,
                        query_tenant_domain_name=query.get("tenant_domain"),
                    )
            except MissingTenantError:
                logger.info("No tenant on logout request, skipping provider logout")
                return self._redirect(logout_config.redirect_url or self.config.application_login_url)

        auth_origin = resolve_auth_origin(tenant_domain_name, self.config, tenant_custom_domain)
        logout_url = _with_query(
            f"{auth_origin}/api/v1/logout",
            {"client_id": self.config.CLIENT_ID, "redirect_url": logout_config.redirect_url},
        )
        return self._redirect(logout_url)

    # =========================================================================
    # Token Refresh
    # =========================================================================

    async def refresh_token_if_expired(self, refresh_token: str, expires_at: int) -> Optional[TokenData]:
        """
        Refresh the tokens if the access token is expired or about to expire.

        Args:
            refresh_token: The refresh token
            expires_at: Access token expiry as epoch milliseconds

        Returns:
            New TokenData if a refresh happened, None if the token is still fresh

        Raises:
            ValueError: If refresh_token is empty or expires_at is negative
            InvalidGrantError: If the refresh token is no longer usable
            ProviderError: On any other provider failure
        """
        if not refresh_token or not refresh_token.strip():
            raise ValueError("Refresh token must be a non-empty string")
        if expires_at < 0:
            raise ValueError("expires_at must be a positive epoch timestamp in milliseconds")

        buffer_ms = self.config.TOKEN_EXPIRATION_BUFFER_SECONDS * 1000
        if _now_ms() < expires_at - buffer_ms:
            return None

        logger.debug("Access token expired or expiring, refreshing")
        return await self.client.refresh_token(refresh_token)

    # =========================================================================
    # Redirect Helpers
    # =========================================================================

    def _login_url(self, tenant_domain_name: Optional[str], tenant_custom_domain: Optional[str]) -> str:
        if self.config.USE_TENANT_SUBDOMAINS:
            return _with_query(
                apply_tenant_placeholder(self.config.LOGIN_URL, tenant_domain_name),
                {"tenant_custom_domain": tenant_custom_domain},
            )
        return _with_query(
            self.config.LOGIN_URL,
            {"tenant_domain": tenant_domain_name, "tenant_custom_domain": tenant_custom_domain},
        )

    def _login_url_for_request(self, request: Request) -> str:
        tenant_domain_name = None
        if self.config.USE_TENANT_SUBDOMAINS:
            tenant_domain_name = resolve_tenant_subdomain(request.headers.get("host", ""), self.config.ROOT_DOMAIN)
        return self._login_url(tenant_domain_name, None)

    def _redirect(self, url: str, cookie_name: Optional[str] = None) -> RedirectResponse:
        response = RedirectResponse(url=url, status_code=302, headers=NO_CACHE_HEADERS)
        self._delete_login_state_cookie(response, cookie_name)
        return response

    def _delete_login_state_cookie(self, response: Response, cookie_name: Optional[str]) -> None:
        if not cookie_name:
            return
        response.delete_cookie(
            key=cookie_name,
            path=self.cookie_path,
            secure=not self.config.DANGEROUSLY_DISABLE_SECURE_COOKIES,
            httponly=True,
            samesite="lax",
        )
