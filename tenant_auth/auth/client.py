"""
HTTP client for the identity provider API.

Wraps a shared httpx.AsyncClient and exposes the four calls the
authentication flow needs: code exchange, refresh, userinfo and refresh
token revocation. All calls go to ``https://{APPLICATION_DOMAIN}/api/v1``
and authenticate the application with HTTP Basic client credentials.
No retries are attempted; failures surface immediately. Transport errors
are reported as ProviderError with status_code 0.
"""

import logging
from typing import Any, Dict, Optional

import httpx
from pydantic import ValidationError

from tenant_auth.auth.errors import InvalidGrantError, ProviderError
from tenant_auth.models import TokenData


logger = logging.getLogger(__name__)

FORM_URLENCODED_MEDIA_TYPE = "application/x-www-form-urlencoded"
JSON_MEDIA_TYPE = "application/json"


class IdentityProviderClient:
    """
    Narrow async client for the token, userinfo and revoke endpoints.

    Pass ``http_client`` to share a connection pool (or to plug in an
    ``httpx.MockTransport`` in tests). When omitted, the client creates and
    owns its own ``httpx.AsyncClient``.
    """

    def __init__(
        self,
        application_domain: str,
        client_id: str,
        client_secret: str,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 15.0,
    ):
        self.base_url = f"https://{application_domain}/api/v1"
        self._auth = httpx.BasicAuth(client_id, client_secret)
        self._owns_http_client = http_client is None
        self._http_client = http_client or httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=False,
            limits=httpx.Limits(max_connections=100, max_keepalive_connections=10),
        )

    async def aclose(self) -> None:
        if self._owns_http_client:
            await self._http_client.aclose()

    async def _send(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        """Send a request to the provider, reporting transport failures as ProviderError (status 0)."""
        try:
            return await self._http_client.request(method, f"{self.base_url}{path}", **kwargs)
        except httpx.HTTPError as e:
            logger.warning(f"Request to identity provider {path} failed: {type(e).__name__}")
            raise ProviderError(
                f"Request to identity provider {path} failed: {e}",
                status_code=0,
                body=str(e),
            ) from e

    # =========================================================================
    # Token Endpoint
    # =========================================================================

    async def get_tokens(self, code: str, redirect_uri: str, code_verifier: str) -> TokenData:
        """
        Exchange an authorization code for tokens.

        Args:
            code: Authorization code from the callback
            redirect_uri: Redirect URI used in the authorize request
            code_verifier: PKCE code verifier from the login state

        Returns:
            TokenData from the token endpoint

        Raises:
            InvalidGrantError: If the code is expired, used, or the verifier does not match
            ProviderError: On any other non-2xx response
        """
        payload = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_uri,
            "code_verifier": code_verifier,
        }
        return await self._post_token(payload, "authorization_code")

    async def refresh_token(self, refresh_token: str) -> TokenData:
        """
        Exchange a refresh token for a new token set.

        Raises:
            InvalidGrantError: If the refresh token is expired or revoked
            ProviderError: On any other non-2xx response
        """
        payload = {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
        }
        return await self._post_token(payload, "refresh_token")

    async def _post_token(self, payload: Dict[str, str], grant_type: str) -> TokenData:
        response = await self._send(
            "POST",
            "/oauth2/token",
            data=payload,
            auth=self._auth,
            headers={
                "Content-Type": FORM_URLENCODED_MEDIA_TYPE,
                "Accept": JSON_MEDIA_TYPE,
            },
        )

        if not response.is_success:
            _raise_provider_error(response, f"Token request ({grant_type}) failed")

        try:
            return TokenData.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise ProviderError(
                "Token endpoint returned an invalid token response",
                status_code=response.status_code,
                body=response.text,
            ) from e

    # =========================================================================
    # Userinfo Endpoint
    # =========================================================================

    async def get_userinfo(self, access_token: str) -> Dict[str, Any]:
        """
        Fetch the claims of the user the access token was issued to.

        Raises:
            ProviderError: On a non-2xx response or a non-object body
        """
        response = await self._send(
            "GET",
            "/oauth2/userinfo",
            headers={
                "Authorization": f"Bearer {access_token}",
                "Accept": JSON_MEDIA_TYPE,
            },
        )

        if not response.is_success:
            _raise_provider_error(response, "Userinfo request failed")

        try:
            userinfo = response.json()
        except ValueError as e:
            raise ProviderError(
                "Userinfo endpoint returned invalid JSON",
                status_code=response.status_code,
                body=response.text,
            ) from e

        if not isinstance(userinfo, dict):
            raise ProviderError(
                "Userinfo endpoint returned a non-object body",
                status_code=response.status_code,
                body=userinfo,
            )

        return userinfo

    # =========================================================================
    # Revocation Endpoint
    # =========================================================================

    async def revoke_refresh_token(self, refresh_token: str) -> None:
        """
        Revoke a refresh token.

        Raises:
            ProviderError: On a non-2xx response
        """
        response = await self._send(
            "POST",
            "/oauth2/revoke",
            data={"token": refresh_token},
            auth=self._auth,
            headers={
                "Content-Type": FORM_URLENCODED_MEDIA_TYPE,
                "Accept": JSON_MEDIA_TYPE,
            },
        )

        if not response.is_success:
            _raise_provider_error(response, "Token revocation failed")


def _raise_provider_error(response: httpx.Response, message: str) -> None:
    """Translate a non-2xx provider response into ProviderError or InvalidGrantError."""
    body: Any = response.text
    error = None
    error_description = None

    if response.headers.get("content-type", "").startswith(JSON_MEDIA_TYPE):
        try:
            body = response.json()
        except ValueError:
            logger.debug("Provider error body is not valid JSON")

    if isinstance(body, dict):
        error = body.get("error")
        error_description = body.get("error_description")

    logger.warning(
        f"{message}: HTTP {response.status_code}",
        extra={"status_code": response.status_code, "error": error},
    )

    error_class = InvalidGrantError if error == "invalid_grant" else ProviderError
    raise error_class(
        f"{message}: {error_description or error or response.status_code}",
        status_code=response.status_code,
        body=body,
        error=error,
        error_description=error_description,
    )
