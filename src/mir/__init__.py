"""MIR Protocol Python SDK public API.

Claim creation, signing, and verification. Everything here is offline:
no database, no hosting, no network calls.

Example:
    from mir import MirKeypair, sign_claim, subject_hash, verify_claim

    keys = MirKeypair.generate()
    claim = sign_claim(
        keys,
        type="mir.transaction.completed",
        domain="marketplace.example.com",
        subject=subject_hash("marketplace.example.com", "user_42"),
        timestamp="2026-02-16T15:30:00Z",
    )
    assert verify_claim(claim, keys.public_key).valid
"""

from .canonical_json import (
    canonical_bytes,
    canonical_dumps,
    canonical_parse,
    canonical_string,
    canonicalize,
)
from .claim_types import (
    CORE_CLAIM_TYPES,
    is_core_type,
    is_extension_type,
    is_registered_type,
    is_valid_domain,
    is_valid_type,
)
from .errors import (
    CanonicalizationError,
    ClaimFormatError,
    KeyFormatError,
    MirError,
)
from .keys import (
    MirKeypair,
    fingerprint,
    load_private_key,
    load_public_key,
    public_key_fingerprint,
)
from .policy import KeyRecord, KeyRegistry, VerifierPolicy, verify_with_policy
from .signing import PROTOCOL_VERSION, create_claim, sign_claim
from .subject import subject_hash, subject_hash_hmac
from .verify import ErrorCode, VerifyResult, verify_claim

__version__ = "1.0.0"
__all__ = [
    "canonicalize",
    "canonical_string",
    "canonical_bytes",
    "canonical_dumps",
    "canonical_parse",
    "CORE_CLAIM_TYPES",
    "is_valid_type",
    "is_core_type",
    "is_extension_type",
    "is_registered_type",
    "is_valid_domain",
    "MirError",
    "ClaimFormatError",
    "CanonicalizationError",
    "KeyFormatError",
    "MirKeypair",
    "fingerprint",
    "public_key_fingerprint",
    "load_public_key",
    "load_private_key",
    "subject_hash",
    "subject_hash_hmac",
    "PROTOCOL_VERSION",
    "create_claim",
    "sign_claim",
    "ErrorCode",
    "VerifyResult",
    "verify_claim",
    "KeyRecord",
    "KeyRegistry",
    "VerifierPolicy",
    "verify_with_policy",
]
