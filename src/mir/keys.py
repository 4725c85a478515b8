"""
keys.py — MIR Protocol v1 key handling

Implements:
  - Ed25519 keypair generation (RFC 8032)
  - Key fingerprints: SHA-256 over the raw 32-byte public key, lowercase hex
  - Raw / base64url key serialization at the adapter boundary

Dependencies:
  - cryptography >= 41.0 (pip install cryptography)

Security model:
  - Private keys NEVER appear in a claim. They live with the issuing domain
    (HSM, env var, operator keyfile).
  - Public keys are distributed out of band; a claim only carries the
    fingerprint of the key that signed it.
"""

from __future__ import annotations
import base64
import binascii
import hashlib
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Dict, Optional, Union

from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    NoEncryption,
    PrivateFormat,
    PublicFormat,
)

from .errors import KeyFormatError

PUBLIC_KEY_SIZE = 32
PRIVATE_KEY_SIZE = 32
SIGNATURE_SIZE = 64

_B64URL_RE = re.compile(r"[A-Za-z0-9_-]*")

PublicKeyLike = Union[Ed25519PublicKey, bytes, bytearray]


# ---------------------------------------------------------------------------
# base64url (RFC 4648 §5, unpadded)
# ---------------------------------------------------------------------------

def b64url_encode(data: bytes) -> str:
    """Encode bytes as base64url without '=' padding."""
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def b64url_decode(text: str) -> bytes:
    """
    Strictly decode unpadded base64url.

    Raises ValueError for padding, '+' or '/', whitespace, or an impossible
    length.
    """
    if not isinstance(text, str) or _B64URL_RE.fullmatch(text) is None:
        raise ValueError("not an unpadded base64url string")
    if len(text) % 4 == 1:
        raise ValueError("invalid base64url length")
    try:
        return base64.urlsafe_b64decode(text + "=" * (-len(text) % 4))
    except binascii.Error as e:
        raise ValueError(str(e)) from e


# ---------------------------------------------------------------------------
# Fingerprints
# ---------------------------------------------------------------------------

@lru_cache(maxsize=256)
def _fingerprint_cached(raw: bytes) -> str:
    return hashlib.sha256(raw).hexdigest()


def fingerprint(public_key_raw: bytes) -> str:
    """
    Derive the key fingerprint from raw public key bytes.

    Hashes exactly the 32 raw Ed25519 bytes, never an SPKI/DER wrapping.
    The cache is content-addressed, so it never needs invalidation.
    """
    if not isinstance(public_key_raw, (bytes, bytearray)) or len(public_key_raw) != PUBLIC_KEY_SIZE:
        raise KeyFormatError(
            f"expected {PUBLIC_KEY_SIZE} raw public key bytes, got "
            f"{len(public_key_raw) if isinstance(public_key_raw, (bytes, bytearray)) else type(public_key_raw).__name__}"
        )
    return _fingerprint_cached(bytes(public_key_raw))


def public_key_raw(public_key: PublicKeyLike) -> bytes:
    """Raw 32-byte form of an Ed25519 public key object or raw bytes."""
    if isinstance(public_key, Ed25519PublicKey):
        return public_key.public_bytes(Encoding.Raw, PublicFormat.Raw)
    if isinstance(public_key, (bytes, bytearray)):
        if len(public_key) != PUBLIC_KEY_SIZE:
            raise KeyFormatError(f"expected {PUBLIC_KEY_SIZE} bytes, got {len(public_key)}")
        return bytes(public_key)
    raise KeyFormatError(f"unsupported public key type {type(public_key).__name__}")


def public_key_fingerprint(public_key: PublicKeyLike) -> str:
    return fingerprint(public_key_raw(public_key))


# ---------------------------------------------------------------------------
# Keypair management
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class MirKeypair:
    """An Ed25519 keypair plus its MIR fingerprint."""
    private_key: Ed25519PrivateKey
    public_key: Ed25519PublicKey
    fingerprint: str
    public_key_b64url: str  # base64url-encoded raw public key

    @classmethod
    def generate(cls) -> "MirKeypair":
        """Generate a new Ed25519 keypair."""
        return cls.from_private_key(Ed25519PrivateKey.generate())

    @classmethod
    def from_private_key(cls, sk: Ed25519PrivateKey) -> "MirKeypair":
        pk = sk.public_key()
        pub_bytes = pk.public_bytes(Encoding.Raw, PublicFormat.Raw)
        return cls(
            private_key=sk,
            public_key=pk,
            fingerprint=fingerprint(pub_bytes),
            public_key_b64url=b64url_encode(pub_bytes),
        )

    @classmethod
    def from_private_bytes(cls, raw: Union[bytes, str]) -> "MirKeypair":
        """Rebuild a keypair from a raw (or base64url) 32-byte private key."""
        return cls.from_private_key(load_private_key(raw))

    @property
    def public_key_bytes(self) -> bytes:
        return self.public_key.public_bytes(Encoding.Raw, PublicFormat.Raw)

    def private_key_b64url(self) -> str:
        """Export private key as base64url. NEVER place this in a claim."""
        raw = self.private_key.private_bytes(
            Encoding.Raw, PrivateFormat.Raw, NoEncryption()
        )
        return b64url_encode(raw)

    def to_registry_entry(
        self,
        created: Optional[str] = None,
        expires: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Produce a keys.json entry (public data only)."""
        return {
            "pub": self.public_key_b64url,
            "fingerprint": self.fingerprint,
            "alg": "Ed25519",
            "created": created,
            "expires": expires,
        }

    def __repr__(self) -> str:
        return f"MirKeypair(fingerprint={self.fingerprint!r})"


# ---------------------------------------------------------------------------
# Loaders (adapter boundary)
# ---------------------------------------------------------------------------

def _raw_key_bytes(material: Union[bytes, bytearray, str], what: str, size: int) -> bytes:
    if isinstance(material, str):
        try:
            material = b64url_decode(material)
        except ValueError as e:
            raise KeyFormatError(f"{what}: {e}") from e
    if not isinstance(material, (bytes, bytearray)):
        raise KeyFormatError(f"{what}: unsupported type {type(material).__name__}")
    if len(material) != size:
        raise KeyFormatError(f"{what}: expected {size} bytes, got {len(material)}")
    return bytes(material)


def load_public_key(material: Union[bytes, bytearray, str]) -> Ed25519PublicKey:
    """Load an Ed25519 public key from raw bytes or base64url text."""
    raw = _raw_key_bytes(material, "public key", PUBLIC_KEY_SIZE)
    try:
        return Ed25519PublicKey.from_public_bytes(raw)
    except ValueError as e:
        raise KeyFormatError(f"public key: {e}") from e


def load_private_key(material: Union[bytes, bytearray, str]) -> Ed25519PrivateKey:
    """Load an Ed25519 private key from raw bytes or base64url text."""
    raw = _raw_key_bytes(material, "private key", PRIVATE_KEY_SIZE)
    try:
        return Ed25519PrivateKey.from_private_bytes(raw)
    except ValueError as e:
        raise KeyFormatError(f"private key: {e}") from e
