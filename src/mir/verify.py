"""
verify.py — MIR claim verification

Deterministic, offline Ed25519 verification. The pipeline is ordered and
short-circuiting; the first failing step decides the result so independent
implementations report the same code for the same input:

  1. required fields present and non-null        -> InvalidSchema
  2. protocol version == 1                        -> InvalidSchema
  3. type matches the claim-type grammar          -> InvalidSchema
  4. domain matches the hostname grammar          -> InvalidSchema
  5. subject / keyFingerprint are 64 lowercase hex -> InvalidSchema
  6. sig is unpadded base64url of 64 bytes        -> InvalidSchema
  7. fingerprint(public key) == keyFingerprint    -> KeyNotFound
  8. Ed25519 verify over the canonical bytes      -> InvalidSignature

Malformed claims never raise. A malformed *public key* does (KeyFormatError):
that is a caller/adapter failure, not a verdict on the claim.
"""

from __future__ import annotations
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey

from .canonical_json import SIGNATURE_FIELD, canonicalize
from .claim_types import is_valid_domain, is_valid_type
from .errors import CanonicalizationError
from .keys import (
    SIGNATURE_SIZE,
    PublicKeyLike,
    b64url_decode,
    fingerprint,
    load_public_key,
    public_key_raw,
)
from .signing import PROTOCOL_VERSION, REQUIRED_FIELDS, VERSION_FIELD
from .subject import is_hex64, is_subject_hash

logger = logging.getLogger(__name__)


class ErrorCode(str, Enum):
    INVALID_SCHEMA = "InvalidSchema"
    INVALID_SIGNATURE = "InvalidSignature"
    KEY_NOT_FOUND = "KeyNotFound"
    KEY_EXPIRED = "KeyExpired"
    CLAIM_EXPIRED = "ClaimExpired"
    CANONICALIZATION_ERROR = "CanonicalizationError"
    DOMAIN_MISMATCH = "DomainMismatch"


@dataclass(frozen=True)
class VerifyResult:
    """Outcome of verifying a claim: Valid, or Invalid(reason, code)."""
    valid: bool
    code: Optional[ErrorCode] = None
    reason: Optional[str] = None

    @classmethod
    def ok(cls) -> "VerifyResult":
        return cls(valid=True)

    @classmethod
    def fail(cls, code: ErrorCode, reason: str) -> "VerifyResult":
        return cls(valid=False, code=code, reason=reason)

    def __bool__(self) -> bool:
        return self.valid

    def to_dict(self) -> Dict[str, Any]:
        if self.valid:
            return {"valid": True}
        return {
            "valid": False,
            "code": self.code.value if self.code else None,
            "error": self.reason,
        }


def _reject(code: ErrorCode, reason: str) -> VerifyResult:
    logger.debug("claim rejected: %s (%s)", code.value, reason)
    return VerifyResult.fail(code, reason)


def check_schema(claim: Any) -> Optional[VerifyResult]:
    """
    Run pipeline steps 1-6 (no cryptography).

    Returns the rejection, or None when the claim is well-formed.
    """
    if not isinstance(claim, Mapping):
        return _reject(ErrorCode.INVALID_SCHEMA, f"Claim must be an object, got {type(claim).__name__}")

    for field in REQUIRED_FIELDS:
        if claim.get(field) is None:
            return _reject(ErrorCode.INVALID_SCHEMA, f"Missing required field: {field}")

    version = claim[VERSION_FIELD]
    if isinstance(version, bool) or not isinstance(version, int) or version != PROTOCOL_VERSION:
        return _reject(ErrorCode.INVALID_SCHEMA, f"Unsupported protocol version: {version!r}")

    if not is_valid_type(claim["type"]):
        return _reject(ErrorCode.INVALID_SCHEMA, f"Invalid claim type: {claim['type']!r}")

    if not is_valid_domain(claim["domain"]):
        return _reject(ErrorCode.INVALID_SCHEMA, f"Invalid domain: {claim['domain']!r}")

    if not is_subject_hash(claim["subject"]):
        return _reject(ErrorCode.INVALID_SCHEMA, "Invalid subject hash")

    if not is_hex64(claim["keyFingerprint"]):
        return _reject(ErrorCode.INVALID_SCHEMA, "Invalid key fingerprint")

    try:
        sig_bytes = b64url_decode(claim[SIGNATURE_FIELD])
    except ValueError:
        return _reject(ErrorCode.INVALID_SCHEMA, "Invalid base64url signature")
    if len(sig_bytes) != SIGNATURE_SIZE:
        return _reject(
            ErrorCode.INVALID_SCHEMA,
            f"Signature must be {SIGNATURE_SIZE} bytes, got {len(sig_bytes)}",
        )

    return None


def verify_claim(claim: Any, public_key: PublicKeyLike) -> VerifyResult:
    """
    Verify a MIR claim against an issuer public key.

    Args:
        claim: The signed claim (any mapping; untrusted input is fine).
        public_key: ``Ed25519PublicKey`` or its raw 32 bytes.

    Returns:
        VerifyResult: ``valid`` plus a stable ``code`` on rejection.

    Raises:
        KeyFormatError: If ``public_key`` is not a usable Ed25519 key.
    """
    raw_pub = public_key_raw(public_key)
    if not isinstance(public_key, Ed25519PublicKey):
        public_key = load_public_key(raw_pub)

    rejected = check_schema(claim)
    if rejected is not None:
        return rejected

    if claim["keyFingerprint"] != fingerprint(raw_pub):
        return _reject(ErrorCode.KEY_NOT_FOUND, "Key fingerprint does not match provided public key")

    try:
        payload = canonicalize(claim)
    except CanonicalizationError as e:
        return _reject(ErrorCode.CANONICALIZATION_ERROR, e.context or e.message)

    sig_bytes = b64url_decode(claim[SIGNATURE_FIELD])
    try:
        public_key.verify(sig_bytes, payload)
    except InvalidSignature:
        return _reject(ErrorCode.INVALID_SIGNATURE, "Signature verification failed")

    return VerifyResult.ok()
