"""
Property-based tests for MIR canonicalization, signing and verification.

Uses Hypothesis to check the properties every implementation must hold:
order independence, signature exclusion, idempotence through parsing,
sign/verify round trip, and tamper detection.

Run: python -m pytest tests/fuzz/test_fuzz_canonical_json.py -v
"""

from __future__ import annotations
import json

from hypothesis import HealthCheck, assume, given, settings
from hypothesis import strategies as st

from mir.canonical_json import canonical_dumps, canonical_parse, canonical_string
from mir.keys import MirKeypair
from mir.signing import sign_claim
from mir.verify import ErrorCode, verify_claim


# ─────────────────────────────────────────────────────────────────────────────
# Strategies
# ─────────────────────────────────────────────────────────────────────────────

json_scalars = st.one_of(
    st.none(),
    st.booleans(),
    st.integers(min_value=-(2 ** 53), max_value=2 ** 53),
    st.floats(allow_nan=False, allow_infinity=False),
    st.text(max_size=40),
)

json_values = st.recursive(
    json_scalars,
    lambda children: st.one_of(
        st.lists(children, max_size=5),
        st.dictionaries(st.text(max_size=20), children, max_size=5),
    ),
    max_leaves=25,
)

claim_types = st.one_of(
    st.from_regex(r"mir\.[a-z][a-z0-9]{0,8}\.[a-z][a-z0-9_]{0,8}", fullmatch=True),
    st.from_regex(r"[a-z][a-z0-9]{0,8}\.(com|org|io):[a-z][a-z0-9]{0,8}\.[a-z][a-z0-9_]{0,8}", fullmatch=True),
)

hex64 = st.text(alphabet="0123456789abcdef", min_size=64, max_size=64)

# One keypair for the whole module keeps the run fast; keys are not under test.
KEYS = MirKeypair.generate()


def _shuffled(value, rng):
    """Rebuild every mapping in ``value`` with a random insertion order."""
    if isinstance(value, dict):
        items = list(value.items())
        rng.shuffle(items)
        return {k: _shuffled(v, rng) for k, v in items}
    if isinstance(value, list):
        return [_shuffled(v, rng) for v in value]
    return value


# ─────────────────────────────────────────────────────────────────────────────
# Canonical form
# ─────────────────────────────────────────────────────────────────────────────

class TestCanonicalProperties:

    @given(json_values, st.randoms(use_true_random=False))
    @settings(max_examples=300, deadline=None)
    def test_insertion_order_independent(self, value, rng):
        assert canonical_dumps(_shuffled(value, rng)) == canonical_dumps(value)

    @given(json_values)
    @settings(max_examples=300, deadline=None)
    def test_idempotent_through_parse(self, value):
        once = canonical_dumps(value)
        assert canonical_dumps(canonical_parse(once)) == once

    @given(st.dictionaries(st.text(max_size=10), json_values, max_size=6), json_values)
    @settings(max_examples=200, deadline=None)
    def test_signature_excluded(self, fields, sig):
        fields.pop("sig", None)
        assert canonical_string(dict(fields, sig=sig)) == canonical_string(fields)


# ─────────────────────────────────────────────────────────────────────────────
# Sign / verify
# ─────────────────────────────────────────────────────────────────────────────

class TestSignVerifyProperties:

    @given(claim_types, hex64, st.one_of(st.none(), json_values))
    @settings(max_examples=100, deadline=None, suppress_health_check=[HealthCheck.too_slow])
    def test_round_trip(self, claim_type, subject, metadata):
        claim = sign_claim(KEYS, claim_type, "example.com", subject, "2026-01-01T00:00:00Z", metadata)
        assert verify_claim(claim, KEYS.public_key).valid
        # Survives transport as JSON text.
        assert verify_claim(json.loads(json.dumps(claim)), KEYS.public_key).valid

    @given(claim_types, hex64, st.text(min_size=1, max_size=30))
    @settings(max_examples=100, deadline=None, suppress_health_check=[HealthCheck.too_slow])
    def test_timestamp_tamper_detected(self, claim_type, subject, new_timestamp):
        claim = sign_claim(KEYS, claim_type, "example.com", subject, "2026-01-01T00:00:00Z")
        assume(new_timestamp != claim["timestamp"])
        result = verify_claim(dict(claim, timestamp=new_timestamp), KEYS.public_key)
        assert not result.valid
        assert result.code == ErrorCode.INVALID_SIGNATURE

    @given(json_values)
    @settings(max_examples=100, deadline=None)
    def test_verify_never_raises_on_garbage(self, garbage):
        result = verify_claim(garbage, KEYS.public_key)
        assert not result.valid
        assert result.code == ErrorCode.INVALID_SCHEMA
