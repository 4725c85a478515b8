"""
canonical_json.py — MIR Protocol v1
Deterministic JSON canonicalization for claim signing and verification.

Rules:
- UTF-8 encoding
- Object keys sorted lexicographically at every nesting level
  (Unicode codepoint order, which equals UTF-8 byte order)
- No insignificant whitespace
- Array element order preserved
- Numbers rendered the way ECMAScript Number#toString renders them,
  so integral floats lose their fraction (1.0 -> 1) and exponent form
  is used below 1e-6 and from 1e21 up (1e-7, 1e+21)
- No NaN/Infinity
- The top-level "sig" field is excluded from claim canonicalization

IMPORTANT: Every MIR implementation MUST produce identical canonical bytes
for identical logical claims. A single diverging byte invalidates every
signature crossing the implementation boundary.
"""

from __future__ import annotations
import hashlib
import json
import math
import re
from collections.abc import Mapping
from decimal import Decimal
from typing import Any, Union

from .errors import CanonicalizationError

SIGNATURE_FIELD = "sig"

# Nesting limit for arrays and objects; deeper input is a CanonicalizationError.
MAX_DEPTH = 128

_SURROGATE_PAIR_RE = re.compile(r"[\ud800-\udbff][\udc00-\udfff]")
_LONE_SURROGATE_RE = re.compile(r"[\ud800-\udfff]")


def canonical_dumps(value: Any) -> str:
    """Return canonical JSON string for any value in the claim value model."""
    return _encode(value, 0)


def canonical_bytes(value: Any) -> bytes:
    """Return canonical JSON as UTF-8 bytes."""
    return canonical_dumps(value).encode("utf-8")


def canonical_string(claim: Mapping) -> str:
    """Canonical JSON text of a claim, signature excluded (for inspection)."""
    return canonical_dumps(_signable_fields(claim))


def canonicalize(claim: Mapping) -> bytes:
    """
    Produce the canonical byte representation of a claim payload.

    Every field except "sig" is encoded; this is exactly the byte string
    that gets signed and verified.
    """
    return canonical_bytes(_signable_fields(claim))


def canonical_parse(text: Union[str, bytes]) -> Any:
    """Parse canonical (or any strict) JSON text back into the value model."""
    return json.loads(text, parse_constant=_reject_constant)


def sha256_hex(data: bytes) -> str:
    """Return lowercase hex SHA-256 digest."""
    return hashlib.sha256(data).hexdigest()


# ---------------------------------------------------------------------------
# Internals
# ---------------------------------------------------------------------------

def _signable_fields(claim: Mapping) -> dict:
    if not isinstance(claim, Mapping):
        raise CanonicalizationError(f"claim must be a mapping, got {type(claim).__name__}")
    return {k: v for k, v in claim.items() if k != SIGNATURE_FIELD}


def _reject_constant(name: str) -> Any:
    raise CanonicalizationError(f"{name} is not a JSON number")


def _encode(value: Any, depth: int) -> str:
    if value is None:
        return "null"
    if value is True:
        return "true"
    if value is False:
        return "false"
    if isinstance(value, str):
        return _encode_string(value)
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return _encode_float(value)
    if isinstance(value, Mapping):
        return _encode_object(value, _nested(depth))
    if isinstance(value, (list, tuple)):
        depth = _nested(depth)
        return "[" + ",".join(_encode(item, depth) for item in value) + "]"
    raise CanonicalizationError(f"unsupported type {type(value).__name__}")


def _nested(depth: int) -> int:
    if depth >= MAX_DEPTH:
        raise CanonicalizationError(f"nesting deeper than {MAX_DEPTH} levels")
    return depth + 1


def _encode_object(obj: Mapping, depth: int) -> str:
    for key in obj:
        if not isinstance(key, str):
            raise CanonicalizationError(f"object key {key!r} is not a string")
    members = [
        f"{_encode_string(key)}:{_encode(obj[key], depth)}" for key in sorted(obj)
    ]
    return "{" + ",".join(members) + "}"


def _encode_string(value: str) -> str:
    # Adjacent surrogate halves form one character; a lone half is written
    # as a lowercase \uXXXX escape, as ECMAScript JSON.stringify does.
    value = _SURROGATE_PAIR_RE.sub(_join_pair, value)
    text = json.dumps(value, ensure_ascii=False)
    return _LONE_SURROGATE_RE.sub(lambda m: f"\\u{ord(m.group()):04x}", text)


def _join_pair(match: "re.Match[str]") -> str:
    high, low = (ord(c) for c in match.group())
    return chr(0x10000 + ((high - 0xD800) << 10) + (low - 0xDC00))


def _encode_float(value: float) -> str:
    if not math.isfinite(value):
        raise CanonicalizationError(f"non-finite number {value!r}")
    if value == 0:
        return "0"

    # repr() gives the shortest digit string that round-trips.
    sign = "-" if value < 0 else ""
    dec = Decimal(repr(abs(value))).normalize()
    _, digit_tuple, exponent = dec.as_tuple()
    digits = "".join(str(d) for d in digit_tuple)
    k = len(digits)
    n = k + exponent  # position of the decimal point relative to digits

    if k <= n <= 21:
        return sign + digits + "0" * (n - k)
    if 0 < n <= 21:
        return sign + digits[:n] + "." + digits[n:]
    if -6 < n <= 0:
        return sign + "0." + "0" * (-n) + digits

    e = n - 1
    exp = f"e{'+' if e >= 0 else '-'}{abs(e)}"
    if k == 1:
        return sign + digits + exp
    return sign + digits[0] + "." + digits[1:] + exp
