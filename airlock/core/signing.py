"""Manifest code signing — Ed25519 via PyNaCl (libsodium).

Keys are hex-encoded: the private key is the 32-byte Ed25519 seed, the
public key the 32-byte verify key.  Signatures travel base64-encoded in
an ``expo-signature`` structured-field dictionary::

    expo-signature: sig="<base64>", keyid="main"

There is no unsigned fallback.  A configured key that cannot be loaded,
or a signing call that fails, raises ``SigningError`` and the request
fails with it.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import logging

import nacl.signing
from nacl.exceptions import BadSignatureError, CryptoError

from airlock.core.errors import SigningError

logger = logging.getLogger(__name__)

DEFAULT_KEY_ID = "main"


def generate_keypair() -> tuple[str, str]:
    """Generate a signing key-pair.

    Returns
    -------
    tuple[str, str]
        ``(private_key_hex, public_key_hex)``
    """
    sk = nacl.signing.SigningKey.generate()
    return (sk.encode().hex(), sk.verify_key.encode().hex())


def key_fingerprint(public_key: str) -> str:
    """First 16 hex characters of SHA-256(public_key).  Empty for no key."""
    if not public_key:
        return ""
    return hashlib.sha256(public_key.encode("utf-8")).hexdigest()[:16]


def verify_data(data: bytes, signature: str, public_key: str) -> bool:
    """Verify a base64 *signature* of *data* under a hex *public_key*.

    Returns ``False`` for an empty or malformed signature or key, and for
    a signature that does not verify.
    """
    if not signature:
        return False
    try:
        sig_bytes = base64.b64decode(signature, validate=True)
        vk = nacl.signing.VerifyKey(bytes.fromhex(public_key))
        vk.verify(data, sig_bytes)
        return True
    except (BadSignatureError, CryptoError, ValueError, binascii.Error):
        return False


class ManifestSigner:
    """Signs manifest and directive bytes with one Ed25519 key.

    Parameters
    ----------
    private_key:
        Hex-encoded 32-byte Ed25519 seed.
    key_id:
        Identifier echoed in the ``keyid`` field so clients can pick the
        matching public key.
    """

    def __init__(self, private_key: str, key_id: str = DEFAULT_KEY_ID) -> None:
        try:
            self._key = nacl.signing.SigningKey(bytes.fromhex(private_key.strip()))
        except (ValueError, TypeError, CryptoError) as exc:
            raise SigningError(f"Signing key is not a valid Ed25519 seed: {exc}") from exc
        self.key_id = key_id
        logger.info(
            "Manifest signing enabled (keyid=%s, fingerprint=%s)",
            key_id,
            key_fingerprint(self.public_key),
        )

    @property
    def public_key(self) -> str:
        """Hex-encoded verify key matching this signer."""
        return self._key.verify_key.encode().hex()

    def sign(self, data: bytes) -> str:
        """Return the base64 Ed25519 signature of *data*."""
        try:
            signed = self._key.sign(data)
        except CryptoError as exc:
            raise SigningError(f"Signing failed: {exc}") from exc
        return base64.b64encode(signed.signature).decode("ascii")

    def signature_header(self, data: bytes) -> str:
        """Structured-field dictionary value for the ``expo-signature`` header."""
        return f'sig="{self.sign(data)}", keyid="{self.key_id}"'
