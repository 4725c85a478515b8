"""
signing.py — MIR claim creation and signing

Process:
  1. Validate type, domain, subject, fingerprint (fail before any signing).
  2. Assemble the field set with protocol version 1; metadata only if given.
  3. Canonicalize (sig excluded).
  4. Ed25519-sign the canonical bytes (deterministic per RFC 8032).
  5. Attach the raw 64-byte signature as unpadded base64url under "sig".

No network or disk I/O happens here.
"""

from __future__ import annotations
import logging
from typing import Any, Dict, Mapping, Optional

from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from .canonical_json import SIGNATURE_FIELD, canonicalize
from .claim_types import is_valid_domain, is_valid_type
from .errors import (
    DomainFormatError,
    FingerprintFormatError,
    InvalidClaimTypeError,
    SubjectFormatError,
    TimestampFormatError,
)
from .keys import MirKeypair, b64url_encode
from .subject import is_hex64, is_subject_hash

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = 1
VERSION_FIELD = "mir"

REQUIRED_FIELDS = (
    VERSION_FIELD,
    "type",
    "domain",
    "subject",
    "timestamp",
    "keyFingerprint",
    SIGNATURE_FIELD,
)


def sign_canonical(payload: Mapping[str, Any], private_key: Ed25519PrivateKey) -> str:
    """Sign the canonical bytes of ``payload`` and return the base64url signature."""
    return b64url_encode(private_key.sign(canonicalize(payload)))


def create_claim(
    type: str,
    domain: str,
    subject: str,
    timestamp: str,
    private_key: Ed25519PrivateKey,
    key_fingerprint: str,
    metadata: Optional[Any] = None,
) -> Dict[str, Any]:
    """
    Create and sign a MIR claim.

    Args:
        type: Claim type (core or extension).
        domain: Issuing domain.
        subject: Subject hash (64-char lowercase hex).
        timestamp: ISO 8601 timestamp, carried verbatim.
        private_key: Ed25519 private key of the issuing domain.
        key_fingerprint: Fingerprint of the matching public key.
        metadata: Optional JSON-like payload; omitted entirely when None.

    Returns:
        Dict[str, Any]: The signed claim, including ``sig``.

    Raises:
        ClaimFormatError: If a field fails validation. Nothing is signed.
        CanonicalizationError: If metadata falls outside the JSON value model.
    """
    if not is_valid_type(type):
        raise InvalidClaimTypeError(f"type={type!r}")
    if not is_valid_domain(domain):
        raise DomainFormatError(f"domain={domain!r}")
    if not is_subject_hash(subject):
        raise SubjectFormatError(f"subject={subject!r}")
    if not isinstance(timestamp, str) or not timestamp:
        raise TimestampFormatError(f"timestamp={timestamp!r}")
    if not is_hex64(key_fingerprint):
        raise FingerprintFormatError(f"keyFingerprint={key_fingerprint!r}")

    claim: Dict[str, Any] = {
        VERSION_FIELD: PROTOCOL_VERSION,
        "type": type,
        "domain": domain,
        "subject": subject,
        "timestamp": timestamp,
        "keyFingerprint": key_fingerprint,
    }
    if metadata is not None:
        claim["metadata"] = metadata

    claim[SIGNATURE_FIELD] = sign_canonical(claim, private_key)
    logger.debug("signed %s claim for %s with key %s", type, domain, key_fingerprint[:16])
    return claim


def sign_claim(
    keypair: MirKeypair,
    type: str,
    domain: str,
    subject: str,
    timestamp: str,
    metadata: Optional[Any] = None,
) -> Dict[str, Any]:
    """Create a claim using a ``MirKeypair`` for both key and fingerprint."""
    return create_claim(
        type=type,
        domain=domain,
        subject=subject,
        timestamp=timestamp,
        private_key=keypair.private_key,
        key_fingerprint=keypair.fingerprint,
        metadata=metadata,
    )
