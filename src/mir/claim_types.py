"""
claim_types.py — MIR claim-type grammar

Two disjoint namespaces:
  Core types:      mir.{category}.{action}            e.g. mir.transaction.completed
  Extension types: {domain}:{category}.{action}       e.g. shopify.com:loyalty.earned

Verification enforces the lexical grammar only. CORE_CLAIM_TYPES lists the
core types defined today; it is documentation and a default registry, so new
core types can ship without invalidating deployed verifiers.
"""

from __future__ import annotations
import re
from typing import Any, Tuple

_CATEGORY_ACTION = r"[a-z][a-z0-9]*\.[a-z][a-z0-9_]*"
_HOST_LABEL = r"[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?"
_HOSTNAME = rf"(?:{_HOST_LABEL}\.)+[a-zA-Z]{{2,}}"

CORE_TYPE_RE = re.compile(rf"mir\.{_CATEGORY_ACTION}")
EXTENSION_TYPE_RE = re.compile(rf"{_HOSTNAME}:{_CATEGORY_ACTION}")
DOMAIN_RE = re.compile(_HOSTNAME)

CORE_CLAIM_TYPES: Tuple[str, ...] = (
    "mir.transaction.initiated",
    "mir.transaction.completed",
    "mir.transaction.fulfilled",
    "mir.transaction.cancelled",
    "mir.transaction.refunded",
    "mir.transaction.disputed",
    "mir.transaction.chargeback",
    "mir.account.created",
    "mir.account.updated",
    "mir.account.verified",
    "mir.account.suspended",
    "mir.account.closed",
    "mir.review.submitted",
    "mir.review.received",
    "mir.message.sent",
    "mir.message.received",
    "mir.response.provided",
    "mir.policy.warning",
    "mir.policy.violation",
    "mir.terms.violation",
)


def is_core_type(claim_type: Any) -> bool:
    """True for a protocol-reserved ``mir.{category}.{action}`` type."""
    return isinstance(claim_type, str) and CORE_TYPE_RE.fullmatch(claim_type) is not None


def is_extension_type(claim_type: Any) -> bool:
    """True for a domain-scoped ``{domain}:{category}.{action}`` type."""
    return isinstance(claim_type, str) and EXTENSION_TYPE_RE.fullmatch(claim_type) is not None


def is_valid_type(claim_type: Any) -> bool:
    """Grammar predicate applied by both the claim builder and the verifier."""
    return is_core_type(claim_type) or is_extension_type(claim_type)


def is_valid_domain(domain: Any) -> bool:
    return isinstance(domain, str) and DOMAIN_RE.fullmatch(domain) is not None


def is_registered_type(claim_type: Any) -> bool:
    """
    Membership in the fixed core registry (legacy v0 behaviour).

    Kept for tooling that wants to flag unfamiliar core types; never use it
    to accept or reject a claim.
    """
    return claim_type in CORE_CLAIM_TYPES

