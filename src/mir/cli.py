#!/usr/bin/env python3
"""
cli.py — Command line interface for the MIR Protocol

Commands:
  keygen     Generate an Ed25519 issuer keypair
  sign       Create and sign a claim
  verify     Verify a claim against a public key or keys.json
  canonical  Print the canonical form of a claim
  subject    Compute a subject hash

Everything runs offline against local files.
"""

from __future__ import annotations
import argparse
import json
import logging
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from .canonical_json import canonical_string
from .errors import MirError
from .keys import MirKeypair, load_public_key
from .policy import KeyRegistry, VerifierPolicy, verify_with_policy
from .signing import sign_claim
from .subject import subject_hash, subject_hash_hmac

logger = logging.getLogger(__name__)


def _fail_with_error(err: MirError) -> None:
    """Print a structured error message from a ``MirError`` and exit.

    Args:
        err: Structured protocol/runtime error.

    Returns:
        None: This function terminates the process.
    """
    context = f" Context: {err.context}." if err.context else ""
    print(
        f"ERROR: {err.code}. {err.message.rstrip('.')}.{context} "
        f"Fix: correct the input and retry the command. "
        f"(See: {err.doc_url})"
    )
    sys.exit(1)


def _cli_error(what: str, why: str, fix: str, see: str) -> None:
    """Print a teaching-style CLI error and exit.

    Args:
        what: What failed.
        why: Why it failed.
        fix: Recommended remediation.
        see: Protocol or command reference.

    Returns:
        None: This function terminates the process.
    """
    print(f"ERROR: {what}. {why}. Fix: {fix}. (See: {see})")
    sys.exit(1)


def _read_json(path_str: str, what: str) -> Any:
    path = Path(path_str).resolve()
    if not path.exists():
        _cli_error(
            f"{what} not found: {path}",
            "the command reads its input from a local JSON file",
            "check the path and retry",
            "mir --help",
        )
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        _cli_error(
            f"Invalid JSON in {path}: {e}",
            f"{what} must be valid JSON",
            "fix the JSON syntax and retry",
            "MIR protocol §6",
        )
    except (OSError, UnicodeDecodeError) as e:
        _cli_error(
            f"Cannot read {what} from {path}: {e}",
            f"{what} must be a readable UTF-8 JSON file",
            "point the command at a regular UTF-8 file and retry",
            "mir --help",
        )


def cmd_keygen(args: argparse.Namespace) -> None:
    """Handle ``mir keygen``.

    Writes (or prints) a keyfile holding the private key. The private key
    never leaves that file; only ``pub``/``fingerprint`` are meant to be
    published.
    """
    kp = MirKeypair.generate()
    created = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
    keyfile = kp.to_registry_entry(created=created)
    keyfile["priv"] = kp.private_key_b64url()
    text = json.dumps(keyfile, indent=2)

    if args.out:
        out = Path(args.out).resolve()
        if out.exists() and not args.force:
            _cli_error(
                f"Refusing to overwrite {out}",
                "overwriting a keyfile destroys the only copy of a private key",
                "choose another path or pass `--force`",
                "mir keygen --help",
            )
        out.write_text(text + "\n", encoding="utf-8")
        print(f"Wrote keypair {kp.fingerprint} to {out}")
    else:
        print(text)


def cmd_sign(args: argparse.Namespace) -> None:
    """Handle ``mir sign``: build, sign and print a claim."""
    keyfile: Dict[str, Any] = _read_json(args.keyfile, "Keyfile")
    if "priv" not in keyfile:
        _cli_error(
            f"No private key in {args.keyfile}",
            "signing needs the `priv` field written by `mir keygen`",
            "pass the keyfile produced by `mir keygen`",
            "mir keygen --help",
        )

    metadata = None
    if args.metadata is not None:
        try:
            metadata = json.loads(args.metadata)
        except json.JSONDecodeError as e:
            _cli_error(
                f"Invalid JSON metadata: {e}",
                "metadata is embedded in the signed canonical form and must be JSON",
                "fix the JSON syntax and retry",
                "MIR protocol §3",
            )

    timestamp = args.timestamp or datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
    try:
        kp = MirKeypair.from_private_bytes(keyfile["priv"])
        claim = sign_claim(
            kp,
            type=args.type,
            domain=args.domain,
            subject=args.subject,
            timestamp=timestamp,
            metadata=metadata,
        )
    except MirError as e:
        _fail_with_error(e)
    print(json.dumps(claim, indent=2, ensure_ascii=False))


def cmd_verify(args: argparse.Namespace) -> None:
    """Handle ``mir verify``. Exits 0 when valid, 1 otherwise."""
    claim = _read_json(args.claim, "Claim file")

    policy = VerifierPolicy(
        expected_domain=args.expected_domain,
        max_claim_age=(
            timedelta(seconds=args.max_age_seconds)
            if args.max_age_seconds is not None else None
        ),
    )

    try:
        if args.pub:
            key: Any = load_public_key(args.pub)
        elif args.keys:
            registry = KeyRegistry.from_dict(_read_json(args.keys, "Key registry"))
            key = registry
            if args.key:
                key = registry.get(args.key)
                if key is None:
                    _cli_error(
                        f"Key {args.key!r} not found in {args.keys}",
                        "the named entry must exist in the registry",
                        "check the key name or omit `--key` to match by fingerprint",
                        "mir verify --help",
                    )
        else:
            _cli_error(
                "No verification key supplied",
                "a claim can only be checked against its issuer's public key",
                "pass `--pub <base64url>` or `--keys keys.json`",
                "mir verify --help",
            )
        result = verify_with_policy(claim, key, policy)
        logger.debug("verified %s against %s", args.claim, args.pub or args.keys)
    except MirError as e:
        _fail_with_error(e)

    print(json.dumps(result.to_dict(), indent=2))
    sys.exit(0 if result.valid else 1)


def cmd_canonical(args: argparse.Namespace) -> None:
    """Handle ``mir canonical``: print the exact bytes that get signed."""
    claim = _read_json(args.claim, "Claim file")
    try:
        print(canonical_string(claim))
    except MirError as e:
        _fail_with_error(e)


def cmd_subject(args: argparse.Namespace) -> None:
    """Handle ``mir subject``."""
    if args.secret:
        print(subject_hash_hmac(args.domain, args.user_id, args.secret))
    else:
        print(subject_hash(args.domain, args.user_id))


def main(argv: Optional[List[str]] = None) -> None:
    """CLI entrypoint.

    Parses command-line arguments, routes to a subcommand handler, and exits
    with subcommand status semantics.
    """
    parser = argparse.ArgumentParser(prog="mir", description="MIR Protocol CLI")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    # keygen
    p_keygen = sub.add_parser("keygen", help="Generate an Ed25519 issuer keypair")
    p_keygen.add_argument("--out", help="Write the keyfile here instead of stdout")
    p_keygen.add_argument("--force", action="store_true", help="Overwrite an existing keyfile")

    # sign
    p_sign = sub.add_parser("sign", help="Create and sign a claim")
    p_sign.add_argument("--keyfile", required=True, help="Keyfile written by `mir keygen`")
    p_sign.add_argument("--type", required=True, help="Claim type, e.g. mir.transaction.completed")
    p_sign.add_argument("--domain", required=True, help="Issuing domain")
    p_sign.add_argument("--subject", required=True, help="Subject hash (64 lowercase hex)")
    p_sign.add_argument("--timestamp", help="ISO 8601 timestamp (default: now, UTC)")
    p_sign.add_argument("--metadata", help="Inline JSON metadata")

    # verify
    p_verify = sub.add_parser("verify", help="Verify a claim")
    p_verify.add_argument("claim", help="Path to claim JSON")
    p_verify.add_argument("--pub", help="Issuer public key (base64url raw 32 bytes)")
    p_verify.add_argument("--keys", help="Path to keys.json registry")
    p_verify.add_argument("--key", help="Registry entry name to verify with")
    p_verify.add_argument("--expected-domain", help="Reject claims from any other domain")
    p_verify.add_argument("--max-age-seconds", type=int, help="Reject claims older than this")

    # canonical
    p_canon = sub.add_parser("canonical", help="Print canonical form of a claim")
    p_canon.add_argument("claim", help="Path to claim JSON")

    # subject
    p_subject = sub.add_parser("subject", help="Compute a subject hash")
    p_subject.add_argument("domain", help="Issuing domain")
    p_subject.add_argument("user_id", help="Platform-internal user ID (never email/phone)")
    p_subject.add_argument("--secret", help="Domain secret for HMAC mode (recommended)")

    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")

    if args.command == "keygen": cmd_keygen(args)
    elif args.command == "sign": cmd_sign(args)
    elif args.command == "verify": cmd_verify(args)
    elif args.command == "canonical": cmd_canonical(args)
    elif args.command == "subject": cmd_subject(args)

if __name__ == "__main__":
    main()
