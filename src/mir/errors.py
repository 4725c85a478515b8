"""
errors.py — MIR Protocol Error Taxonomy

Exceptions raised while building claims or decoding key material.
Verification never raises for claim content; it returns a VerifyResult
carrying one of the stable ErrorCode values instead (see verify.py).
"""

from typing import Optional

__all__ = [
    "MirError",
    "ClaimFormatError",
    "InvalidClaimTypeError",
    "SubjectFormatError",
    "FingerprintFormatError",
    "DomainFormatError",
    "TimestampFormatError",
    "CanonicalizationError",
    "KeyFormatError",
]


class MirError(Exception):
    """Base class for all MIR-related errors."""
    def __init__(
        self,
        code: str,
        message: str,
        context: Optional[str] = None,
    ):
        self.code = code
        self.message = message
        self.context = context

        full_msg = f"[{code}] {message}"
        if context:
            full_msg += f" Context: {context}"

        super().__init__(full_msg)

    @property
    def doc_url(self) -> str:
        """Link to the human-readable documentation for this error."""
        return f"https://mir.dev/errors/{self.code}"


# Claim Format Errors (E1xx)
class ClaimFormatError(MirError):
    """A claim field failed validation before signing."""


class InvalidClaimTypeError(ClaimFormatError):
    def __init__(self, context: Optional[str] = None):
        super().__init__("MIR_E100", "Claim type must be mir.{category}.{action} or {domain}:{category}.{action}.", context)


class SubjectFormatError(ClaimFormatError):
    def __init__(self, context: Optional[str] = None):
        super().__init__("MIR_E101", "Subject must be a 64-character lowercase hex string (SHA-256 or HMAC-SHA256 hash).", context)


class FingerprintFormatError(ClaimFormatError):
    def __init__(self, context: Optional[str] = None):
        super().__init__("MIR_E102", "keyFingerprint must be a 64-character lowercase hex string.", context)


class DomainFormatError(ClaimFormatError):
    def __init__(self, context: Optional[str] = None):
        super().__init__("MIR_E103", "Domain must be a syntactically valid DNS hostname.", context)


class TimestampFormatError(ClaimFormatError):
    def __init__(self, context: Optional[str] = None):
        super().__init__("MIR_E104", "Timestamp must be an ISO 8601 string.", context)


# Encoding Errors (E2xx)
class CanonicalizationError(MirError):
    def __init__(self, context: Optional[str] = None):
        super().__init__("MIR_E200", "Value has no canonical form (allowed: str, int, float, bool, None, list, str-keyed mapping).", context)


# Key Errors (E3xx)
class KeyFormatError(MirError):
    def __init__(self, context: Optional[str] = None):
        super().__init__("MIR_E300", "Key material is not a valid raw Ed25519 key.", context)
