"""
PKCE and CSRF state helpers for the authorization code flow.

Every login generates a fresh, independent set of values; nothing here is
cached or reused across requests.
"""

import base64
import hashlib
import secrets
from typing import Tuple


CODE_CHALLENGE_METHOD = "S256"


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("utf-8").rstrip("=")


def generate_state() -> str:
    """
    Generate a CSRF state token.

    Returns:
        URL-safe string carrying 256 bits of randomness
    """
    return _b64url(secrets.token_bytes(32))


def generate_nonce() -> str:
    """Generate an OIDC nonce for the authorize request."""
    return _b64url(secrets.token_bytes(32))


def generate_code_verifier() -> str:
    """
    Generate a cryptographically random code verifier for PKCE.

    Returns:
        Base64-URL-encoded random string (43 characters, within the 43-128 range)
    """
    return _b64url(secrets.token_bytes(32))


def generate_code_challenge(verifier: str) -> str:
    """
    Generate code challenge from verifier using S256 method.

    Args:
        verifier: Code verifier string

    Returns:
        Base64-URL-encoded SHA256 hash of verifier
    """
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return _b64url(digest)


def generate_pkce_pair() -> Tuple[str, str]:
    """
    Generate a PKCE code verifier and its S256 challenge.

    Returns:
        (code_verifier, code_challenge)
    """
    verifier = generate_code_verifier()
    return verifier, generate_code_challenge(verifier)
