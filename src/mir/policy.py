"""
policy.py — Optional verifier policy layer

The core pipeline (verify.py) only answers "did this key sign exactly these
fields?". Deployments usually also care whether the key was in force when the
claim was made, whether the claim is fresh, and whether it came from the
domain they expected. Those checks run here, strictly after a core Valid,
and emit KeyExpired / ClaimExpired / DomainMismatch.

Key registries are read-only views over a keys.json document:

    {
      "keyA": {"pub": "<b64url raw key>", "fingerprint": "<hex>",
               "alg": "Ed25519", "created": "...", "expires": null},
      ...
    }

How the document is fetched (DNS, .well-known, pinned file) is up to the
caller.
"""

from __future__ import annotations
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Union

from .errors import KeyFormatError
from .keys import PublicKeyLike, b64url_decode, b64url_encode, fingerprint
from .verify import ErrorCode, VerifyResult, check_schema, verify_claim

logger = logging.getLogger(__name__)


def _policy_reject(code: ErrorCode, reason: str) -> VerifyResult:
    logger.debug("policy rejected claim: %s (%s)", code.value, reason)
    return VerifyResult.fail(code, reason)


def parse_timestamp(value: str) -> datetime:
    """
    Parse an ISO 8601 timestamp into an aware datetime.

    Accepts a trailing 'Z'. Naive timestamps are taken as UTC.
    Raises ValueError if the string is not ISO 8601.
    """
    if not isinstance(value, str):
        raise ValueError(f"timestamp must be a string, got {type(value).__name__}")
    text = value[:-1] + "+00:00" if value[-1:] in ("Z", "z") else value
    dt = datetime.fromisoformat(text)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Key registry
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class KeyRecord:
    """A published issuer key and its validity window."""
    public_key: bytes
    fingerprint: str
    alg: str = "Ed25519"
    created: Optional[str] = None
    expires: Optional[str] = None
    name: Optional[str] = None

    def __post_init__(self) -> None:
        for bound in ("created", "expires"):
            value = getattr(self, bound)
            if value is not None:
                try:
                    parse_timestamp(value)
                except ValueError as e:
                    raise KeyFormatError(f"{self.name or '<unnamed>'}: {bound} is not ISO 8601 ({e})") from e

    @classmethod
    def from_dict(cls, entry: Dict[str, Any], name: Optional[str] = None) -> "KeyRecord":
        """
        Build a record from a keys.json entry.

        Raises KeyFormatError when the key is malformed, the algorithm is not
        Ed25519, the stated fingerprint disagrees with the key bytes, or a
        validity bound is not ISO 8601.
        """
        if not isinstance(entry, dict):
            raise KeyFormatError(f"{name or '<unnamed>'}: entry must be an object")
        label = name or entry.get("name") or "<unnamed>"
        alg = entry.get("alg", "Ed25519")
        if alg != "Ed25519":
            raise KeyFormatError(f"{label}: unsupported algorithm {alg!r}")
        try:
            raw = b64url_decode(entry.get("pub", ""))
        except ValueError as e:
            raise KeyFormatError(f"{label}: pub is not base64url ({e})") from e
        fp = fingerprint(raw)
        stated = entry.get("fingerprint")
        if stated is not None and stated != fp:
            raise KeyFormatError(f"{label}: fingerprint mismatch, stated {stated}, computed {fp}")
        return cls(
            public_key=raw,
            fingerprint=fp,
            alg=alg,
            created=entry.get("created"),
            expires=entry.get("expires"),
            name=name or entry.get("name"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pub": b64url_encode(self.public_key),
            "fingerprint": self.fingerprint,
            "alg": self.alg,
            "created": self.created,
            "expires": self.expires,
        }


class KeyRegistry:
    """Read-only lookup of issuer keys by fingerprint (and by name)."""

    def __init__(self, records: Iterable[KeyRecord] = ()):
        self._by_fingerprint: Dict[str, KeyRecord] = {}
        self._by_name: Dict[str, KeyRecord] = {}
        for rec in records:
            if rec.name is not None:
                self._by_name[rec.name] = rec
            if rec.fingerprint in self._by_fingerprint:
                logger.warning(
                    "duplicate key %s (%s); keeping first entry for fingerprint lookup",
                    rec.fingerprint[:16], rec.name,
                )
                continue
            self._by_fingerprint[rec.fingerprint] = rec

    @classmethod
    def from_dict(cls, data: Union[Dict[str, Any], List[Dict[str, Any]]]) -> "KeyRegistry":
        """Accepts ``{name: entry}``, ``{"keys": [entry, ...]}`` or ``[entry, ...]``."""
        if isinstance(data, dict) and isinstance(data.get("keys"), list):
            data = data["keys"]
        if isinstance(data, list):
            return cls(KeyRecord.from_dict(entry) for entry in data)
        if isinstance(data, dict):
            return cls(KeyRecord.from_dict(entry, name=name) for name, entry in data.items())
        raise KeyFormatError(f"key registry must be an object or array, got {type(data).__name__}")

    @classmethod
    def load(cls, path: Path) -> "KeyRegistry":
        """Load a keys.json file."""
        data = json.loads(Path(path).read_text(encoding="utf-8"))
        return cls.from_dict(data)

    def resolve(self, key_fingerprint: str) -> Optional[KeyRecord]:
        return self._by_fingerprint.get(key_fingerprint)

    def get(self, name: str) -> Optional[KeyRecord]:
        return self._by_name.get(name)

    def __contains__(self, key_fingerprint: object) -> bool:
        return key_fingerprint in self._by_fingerprint

    def __iter__(self) -> Iterator[KeyRecord]:
        return iter(self._by_fingerprint.values())

    def __len__(self) -> int:
        return len(self._by_fingerprint)


# ---------------------------------------------------------------------------
# Policy
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class VerifierPolicy:
    """
    Checks layered on top of a core Valid result.

    Time-based claim checks only run when ``max_claim_age`` is set; key
    validity windows only apply when a KeyRecord/KeyRegistry supplied the key.
    """
    expected_domain: Optional[str] = None
    max_claim_age: Optional[timedelta] = None
    clock_skew: timedelta = timedelta(minutes=5)
    enforce_key_expiry: bool = True
    now: Callable[[], datetime] = field(default=_utc_now, repr=False)


KeySource = Union[KeyRegistry, KeyRecord, PublicKeyLike]


def verify_with_policy(
    claim: Any,
    key: KeySource,
    policy: Optional[VerifierPolicy] = None,
) -> VerifyResult:
    """
    Run the core pipeline, then the policy checks, returning the first failure.

    Order after a core Valid: DomainMismatch, KeyExpired, ClaimExpired.
    """
    policy = policy or VerifierPolicy()
    record: Optional[KeyRecord] = None

    if isinstance(key, KeyRegistry):
        rejected = check_schema(claim)
        if rejected is not None:
            return rejected
        record = key.resolve(claim["keyFingerprint"])
        if record is None:
            return _policy_reject(
                ErrorCode.KEY_NOT_FOUND,
                f"No registered key with fingerprint {claim['keyFingerprint']}",
            )
    elif isinstance(key, KeyRecord):
        record = key

    result = verify_claim(claim, record.public_key if record else key)
    if not result.valid:
        return result

    if policy.expected_domain is not None and claim["domain"] != policy.expected_domain:
        return _policy_reject(
            ErrorCode.DOMAIN_MISMATCH,
            f"Claim issued by {claim['domain']}, expected {policy.expected_domain}",
        )

    needs_time = (record is not None and policy.enforce_key_expiry
                  and (record.expires or record.created)) or policy.max_claim_age is not None
    if not needs_time:
        return result

    try:
        issued = parse_timestamp(claim["timestamp"])
    except ValueError:
        return _policy_reject(ErrorCode.INVALID_SCHEMA, f"Unparseable timestamp: {claim['timestamp']!r}")

    if record is not None and policy.enforce_key_expiry:
        if record.expires and issued > parse_timestamp(record.expires):
            return _policy_reject(
                ErrorCode.KEY_EXPIRED,
                f"Key expired at {record.expires}, claim made at {claim['timestamp']}",
            )
        if record.created and issued < parse_timestamp(record.created):
            return _policy_reject(
                ErrorCode.KEY_EXPIRED,
                f"Claim made at {claim['timestamp']} predates key creation {record.created}",
            )

    if policy.max_claim_age is not None:
        now = policy.now()
        if issued - now > policy.clock_skew:
            return _policy_reject(ErrorCode.CLAIM_EXPIRED, f"Claim timestamp {claim['timestamp']} is in the future")
        if now - issued > policy.max_claim_age:
            return _policy_reject(
                ErrorCode.CLAIM_EXPIRED,
                f"Claim is older than {policy.max_claim_age}",
            )

    return result
