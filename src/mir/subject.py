"""
subject.py — Subject hashing for MIR claims

A claim never carries a raw user identifier. Issuers hash
"{domain}:{external_user_id}" with either plain SHA-256 (basic mode) or
HMAC-SHA256 under a domain secret (recommended: resists brute force even
when the identifier format is guessable).

external_user_id MUST be a platform-internal ID, never an email or phone.
"""

from __future__ import annotations
import hashlib
import hmac
import re
from typing import Any, Union

SUBJECT_RE = re.compile(r"[a-f0-9]{64}")


def subject_hash(domain: str, external_user_id: str) -> str:
    """SHA-256 hex of ``"{domain}:{external_user_id}"``."""
    return hashlib.sha256(f"{domain}:{external_user_id}".encode("utf-8")).hexdigest()


def subject_hash_hmac(
    domain: str,
    external_user_id: str,
    domain_secret: Union[str, bytes],
) -> str:
    """HMAC-SHA256 hex of ``"{domain}:{external_user_id}"`` keyed by a stable, unpublished secret."""
    if isinstance(domain_secret, str):
        domain_secret = domain_secret.encode("utf-8")
    if not domain_secret:
        raise ValueError("domain_secret must not be empty")
    msg = f"{domain}:{external_user_id}".encode("utf-8")
    return hmac.new(domain_secret, msg, hashlib.sha256).hexdigest()


def is_hex64(value: Any) -> bool:
    """64 lowercase hex characters (subject hashes and key fingerprints)."""
    return isinstance(value, str) and SUBJECT_RE.fullmatch(value) is not None


is_subject_hash = is_hex64
