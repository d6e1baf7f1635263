"""
Encryption utilities for the login state cookie.

The login state cookie is the only place an in-flight login is stored, so
its value is sealed with an AEAD cipher: it stays confidential (it carries
the PKCE verifier and caller custom state) and any modification is detected.

Cookie value format (URL-safe base64, no padding):

    version (1 byte, 0x01) | salt (16) | nonce (12) | AES-256-GCM ciphertext + tag (16)

The 256-bit key is derived per cookie with HKDF-SHA256 from the configured
secret and the random salt. The version byte is bound as associated data.
"""

import base64
import binascii
import os
from typing import Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF
from pydantic import ValidationError

from tenant_auth.auth.errors import DecryptError
from tenant_auth.models import LoginState


_VERSION = b"\x01"
_SALT_BYTES = 16
_NONCE_BYTES = 12
_TAG_BYTES = 16
_KEY_BYTES = 32
_HKDF_INFO = b"tenant-auth login state v1"
_MIN_TOKEN_BYTES = len(_VERSION) + _SALT_BYTES + _NONCE_BYTES + _TAG_BYTES


# =============================================================================
# Key Derivation
# =============================================================================

def _secret_bytes(secret: Union[str, bytes]) -> bytes:
    if isinstance(secret, str):
        secret = secret.encode("utf-8")
    if not secret:
        raise ValueError("Login state secret must not be empty")
    return secret


def _derive_key(secret: bytes, salt: bytes) -> bytes:
    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=_KEY_BYTES,
        salt=salt,
        info=_HKDF_INFO,
    )
    return hkdf.derive(secret)


# =============================================================================
# Raw Encryption
# =============================================================================

def encrypt_login_state(plaintext: bytes, secret: Union[str, bytes]) -> str:
    """
    Encrypt a serialized login state.

    A fresh salt and nonce are drawn for every call, so encrypting the same
    plaintext twice never yields the same token.

    Args:
        plaintext: Serialized login state
        secret: Login state secret from the configuration

    Returns:
        Opaque URL-safe token suitable for a cookie value
    """
    salt = os.urandom(_SALT_BYTES)
    nonce = os.urandom(_NONCE_BYTES)
    key = _derive_key(_secret_bytes(secret), salt)

    ciphertext = AESGCM(key).encrypt(nonce, plaintext, _VERSION)
    token = base64.urlsafe_b64encode(_VERSION + salt + nonce + ciphertext)
    return token.decode("ascii").rstrip("=")


def decrypt_login_state(token: str, secret: Union[str, bytes]) -> bytes:
    """
    Decrypt a token produced by encrypt_login_state.

    Args:
        token: Cookie value
        secret: Login state secret from the configuration

    Returns:
        The original plaintext

    Raises:
        DecryptError: If the token is malformed, truncated, tampered with,
            or was sealed with a different secret
    """
    if not token:
        raise DecryptError("Empty login state")

    try:
        padded = token + "=" * (-len(token) % 4)
        blob = base64.b64decode(padded.encode("ascii"), altchars=b"-_", validate=True)
    except (binascii.Error, UnicodeEncodeError, ValueError) as e:
        raise DecryptError("Malformed login state encoding") from e

    if len(blob) < _MIN_TOKEN_BYTES:
        raise DecryptError("Truncated login state")

    version = blob[:1]
    if version != _VERSION:
        raise DecryptError("Unsupported login state version")

    salt_end = 1 + _SALT_BYTES
    nonce_end = salt_end + _NONCE_BYTES
    salt = blob[1:salt_end]
    nonce = blob[salt_end:nonce_end]
    ciphertext = blob[nonce_end:]

    key = _derive_key(_secret_bytes(secret), salt)
    try:
        return AESGCM(key).decrypt(nonce, ciphertext, version)
    except InvalidTag as e:
        raise DecryptError("Login state failed authentication") from e


# =============================================================================
# LoginState Helpers
# =============================================================================

def encode_login_state(login_state: LoginState, secret: Union[str, bytes]) -> str:
    """Serialize a LoginState to JSON and encrypt it."""
    return encrypt_login_state(login_state.model_dump_json().encode("utf-8"), secret)


def decode_login_state(token: str, secret: Union[str, bytes]) -> LoginState:
    """
    Decrypt a cookie value and parse it back into a LoginState.

    Raises:
        DecryptError: If decryption fails or the plaintext is not a LoginState
    """
    plaintext = decrypt_login_state(token, secret)
    try:
        return LoginState.model_validate_json(plaintext)
    except ValidationError as e:
        raise DecryptError("Login state has an invalid structure") from e
