"""
Token Crypto - Request-scoped decryption of the caller's GitLab token

The browser holds the GitLab personal access token only in encrypted form. For
each request the core decrypts it into a Secret, uses it for upstream calls and
discards it on every exit path.

Wire format of an encrypted token:
    base64( 12-byte nonce || AES-256-GCM ciphertext || 16-byte tag )
with the AES key derived as SHA-256 of the configured ENCRYPTION_KEY.

Usage:
    from devtracker.security.token_crypto import secret_scope

    with secret_scope(encrypted_token, config.get_encryption_config().secret) as secret:
        headers = {"PRIVATE-TOKEN": secret.reveal()}

Security Features:
    - Authenticated encryption: any tampering fails the GCM tag check
    - Every failure surfaces as InvalidToken, never a partial plaintext
    - No caching and no logging of the input or output
    - Secret buffer is overwritten on discard()
"""

import base64
import binascii
import hashlib
import os
from collections.abc import Iterator
from contextlib import contextmanager

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from devtracker.errors import InvalidToken

NONCE_SIZE = 12
TAG_SIZE = 16


class Secret:
    """
    Decrypted credential owned by a single in-flight request.

    The plaintext lives in a mutable buffer that discard() zeroes. repr() and
    str() never show the value.

    Example:
        >>> secret = Secret(b"glpat-abc")
        >>> secret.reveal()
        'glpat-abc'
        >>> secret.discard()
        >>> secret.is_discarded
        True
    """

    __slots__ = ("_buffer",)

    def __init__(self, value: bytes):
        self._buffer: bytearray | None = bytearray(value)

    @property
    def is_discarded(self) -> bool:
        return self._buffer is None

    def reveal(self) -> str:
        """
        Return the plaintext for building an upstream auth header.

        Raises:
            InvalidToken: If the secret was already discarded
        """
        if self._buffer is None:
            raise InvalidToken("Token is no longer available")
        return self._buffer.decode("utf-8")

    def discard(self) -> None:
        """Overwrite and drop the plaintext. Safe to call more than once."""
        if self._buffer is not None:
            for index in range(len(self._buffer)):
                self._buffer[index] = 0
            self._buffer = None

    def __repr__(self) -> str:
        state = "discarded" if self._buffer is None else "***"
        return f"Secret({state})"

    __str__ = __repr__


def derive_key(key_secret: str) -> bytes:
    """Derive the 32-byte AES key from the configured secret string."""
    return hashlib.sha256(key_secret.encode("utf-8")).digest()


def encrypt(plaintext: str, key_secret: str) -> str:
    """
    Encrypt a token into the wire format accepted by decrypt().

    Args:
        plaintext: Token to encrypt (non-empty)
        key_secret: Configured ENCRYPTION_KEY

    Returns:
        Base64 string of nonce || ciphertext || tag

    Raises:
        InvalidToken: If plaintext is empty
    """
    if not plaintext:
        raise InvalidToken("Token is required")

    nonce = os.urandom(NONCE_SIZE)
    ciphertext = AESGCM(derive_key(key_secret)).encrypt(nonce, plaintext.encode("utf-8"), None)
    return base64.b64encode(nonce + ciphertext).decode("ascii")


def decrypt(encrypted_token: str, key_secret: str) -> Secret:
    """
    Decrypt an encrypted token into a request-scoped Secret.

    The caller owns the returned Secret and must discard() it; secret_scope()
    does this automatically.

    Args:
        encrypted_token: Opaque base64 token from the caller
        key_secret: Configured ENCRYPTION_KEY

    Returns:
        Secret holding the plaintext token

    Raises:
        InvalidToken: If the input is empty, not base64, too short, fails the
            integrity check, or does not decrypt to UTF-8 text
    """
    if not encrypted_token or not isinstance(encrypted_token, str):
        raise InvalidToken("Encrypted token is required")

    try:
        raw = base64.b64decode(encrypted_token.strip(), validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidToken("Encrypted token is not valid") from e

    if len(raw) < NONCE_SIZE + TAG_SIZE:
        raise InvalidToken("Encrypted token is not valid")

    nonce, ciphertext = raw[:NONCE_SIZE], raw[NONCE_SIZE:]
    try:
        plaintext = bytearray(AESGCM(derive_key(key_secret)).decrypt(nonce, ciphertext, None))
    except InvalidTag as e:
        raise InvalidToken("Encrypted token failed integrity check") from e

    try:
        plaintext.decode("utf-8")
    except UnicodeDecodeError as e:
        raise InvalidToken("Encrypted token is not valid") from e

    if not plaintext:
        raise InvalidToken("Encrypted token is not valid")

    secret = Secret(bytes(plaintext))
    for index in range(len(plaintext)):
        plaintext[index] = 0
    return secret


@contextmanager
def secret_scope(encrypted_token: str, key_secret: str) -> Iterator[Secret]:
    """
    Decrypt a token for the duration of a with-block.

    The Secret is discarded when the block exits, whether it completes,
    raises, or is cancelled.

    Raises:
        InvalidToken: If decryption fails (nothing to discard in that case)
    """
    secret = decrypt(encrypted_token, key_secret)
    try:
        yield secret
    finally:
        secret.discard()
