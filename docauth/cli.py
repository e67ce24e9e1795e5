#!/usr/bin/env python3
"""
DocAuth Command Line Interface

The CLI is the key holder's side of the login: it generates identities and
signs challenges locally, so private keys never reach the server.

Usage:
    docauth keygen --output <file>
    docauth sign --key <file> --challenge <hex>
    docauth hash --file <file>
    docauth demo
"""

import argparse
import json
import sys
from typing import List, Optional


def load_json(path: str) -> dict:
    """Load JSON from file."""
    with open(path, 'r', encoding='utf-8') as f:
        return json.load(f)


def save_json(data: dict, path: str):
    """Save JSON to file."""
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(data, f, indent=2)


def cmd_keygen(args):
    """Generate a DID and Ed25519 key pair."""
    from docauth.keys import generate_identity

    generated = generate_identity()
    out = {
        "did": generated.identity,
        "publicKeyJwk": generated.public_jwk,
        "privateKeyJwk": generated.private_jwk,
    }

    if args.output:
        save_json(out, args.output)
        print(f"Identity saved to: {args.output}", file=sys.stderr)
    else:
        print(json.dumps(out, indent=2))

    print(f"Generated identity: {generated.identity}", file=sys.stderr)
    return 0


def cmd_sign(args):
    """Sign a login challenge with a locally held key."""
    from docauth.assertion import sign_assertion

    key_file = load_json(args.key)
    did = args.did or key_file.get("did")
    if not did:
        print("✗ No DID given and none found in key file", file=sys.stderr)
        return 2

    try:
        jwt = sign_assertion(did, args.challenge, key_file.get("privateKeyJwk"))
    except ValueError as e:
        print(f"✗ Cannot sign: {e}", file=sys.stderr)
        return 1

    print(jwt)
    return 0


def cmd_hash(args):
    """Compute the content digest used by the document ledger."""
    from docauth.ledger import content_digest
    from docauth.errors import MissingContent

    with open(args.file, 'rb') as f:
        content = f.read()

    try:
        digest = content_digest(content)
    except MissingContent:
        print("✗ File is empty", file=sys.stderr)
        return 1

    print(f"sha256: {digest}")
    return 0


def cmd_demo(args):
    """Run the login and document flow in-process."""
    from docauth.assertion import sign_assertion
    from docauth.challenges import Authenticator
    from docauth.keys import KeyRegistry, generate_identity
    from docauth.ledger import DocumentLedger

    print("=" * 60)
    print("DocAuth Demonstration")
    print("=" * 60)

    registry = KeyRegistry()
    authenticator = Authenticator(registry)
    ledger = DocumentLedger()

    generated = generate_identity()
    registry.register(generated.identity, generated.public_jwk)
    print(f"\nIdentity: {generated.identity}")

    challenge = authenticator.issue_challenge(generated.identity)
    print(f"Challenge: {challenge.value}")

    jwt = sign_assertion(generated.identity, challenge.value, generated.private_jwk)
    identity = authenticator.verify_assertion(jwt)
    print(f"✓ Verified: {identity}")

    content = b"hello-doc"
    for _ in range(2):
        record = ledger.register_document(content, identity)
        print(f"Stored {record.versioned_hash} at {record.timestamp}")

    latest = ledger.lookup_latest(content)
    print(f"Latest version: {latest.version}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="DocAuth CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  docauth keygen -o me.json                 Generate DID + key pair
  docauth sign -k me.json -c <challenge>    Sign a login challenge
  docauth hash -f contract.pdf              Compute document digest
  docauth demo                              Run demonstration
        """
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    keygen_parser = subparsers.add_parser("keygen", help="Generate DID and key pair")
    keygen_parser.add_argument("-o", "--output", help="Output file for identity JSON")

    sign_parser = subparsers.add_parser("sign", help="Sign a login challenge")
    sign_parser.add_argument("-k", "--key", required=True, help="Identity JSON file from keygen")
    sign_parser.add_argument("-c", "--challenge", required=True, help="Challenge value from /login-challenge")
    sign_parser.add_argument("-d", "--did", help="DID to sign as (default: the key file's)")

    hash_parser = subparsers.add_parser("hash", help="Compute document digest")
    hash_parser.add_argument("-f", "--file", required=True, help="File to hash")

    subparsers.add_parser("demo", help="Run demonstration")

    args = parser.parse_args(argv)

    if args.command == "keygen":
        return cmd_keygen(args)
    elif args.command == "sign":
        return cmd_sign(args)
    elif args.command == "hash":
        return cmd_hash(args)
    elif args.command == "demo":
        return cmd_demo(args)

    parser.print_help()
    return 2


if __name__ == "__main__":
    sys.exit(main())
