"""
Signed assertion codec for DocAuth.

A signed assertion is a compact JWS (RFC 7515) using the EdDSA algorithm:

    base64url(header) "." base64url(payload) "." base64url(signature)

with header {"alg": "EdDSA", "typ": "JWT"} and payload
{"iss": did, "sub": did, "challenge": hex, "iat": epoch}. The Ed25519
signature covers the ASCII bytes of the first two segments, so changing
the identity or the challenge invalidates it.

Signing belongs to the key holder; sign_assertion is provided for clients
and the CLI, not for the server.
"""

import json
from dataclasses import dataclass
from typing import Any, Dict, Optional

from .errors import MalformedAssertion
from .keys import signing_key_from_jwk
from .util import b64url_decode, b64url_encode, canonicalize, now_epoch

ALG_EDDSA = "EdDSA"
ED25519_SIGNATURE_BYTES = 64
# Largest iat that still converts to a float exactly
MAX_IAT = 2 ** 53


@dataclass(frozen=True)
class SignedAssertion:
    """A parsed, not yet verified, signed assertion."""
    header: Dict[str, Any]
    payload: Dict[str, Any]
    signature: bytes
    header_b64: str
    payload_b64: str

    @property
    def identity(self) -> str:
        return self.payload["iss"]

    @property
    def challenge(self) -> str:
        return self.payload["challenge"]

    @property
    def issued_at(self) -> int:
        return self.payload["iat"]

    @property
    def algorithm(self) -> Optional[str]:
        return self.header.get("alg")

    @property
    def signing_input(self) -> bytes:
        """The exact bytes the signature covers."""
        return f"{self.header_b64}.{self.payload_b64}".encode("ascii")


def sign_assertion(
    identity: str,
    challenge: str,
    private_jwk: Dict[str, Any],
    issued_at: Optional[int] = None
) -> str:
    """
    Build and sign a compact JWS binding an identity to a challenge.

    Args:
        identity: The signer's DID (used as iss and sub)
        challenge: The challenge value issued for that DID
        private_jwk: The signer's OKP Ed25519 private JWK
        issued_at: Unix timestamp for iat (default: now)

    Returns:
        The compact JWS string

    Raises:
        ValueError: If the private JWK is not a usable Ed25519 key
    """
    sk = signing_key_from_jwk(private_jwk)
    header = {"alg": ALG_EDDSA, "typ": "JWT"}
    payload = {
        "iss": identity,
        "sub": identity,
        "challenge": challenge,
        "iat": now_epoch() if issued_at is None else int(issued_at),
    }
    header_b64 = b64url_encode(canonicalize(header))
    payload_b64 = b64url_encode(canonicalize(payload))
    signing_input = f"{header_b64}.{payload_b64}".encode("ascii")
    sig = sk.sign(signing_input).signature
    return f"{header_b64}.{payload_b64}.{b64url_encode(sig)}"


def _decode_json_segment(segment: str, name: str) -> Dict[str, Any]:
    try:
        obj = json.loads(b64url_decode(segment).decode("utf-8"))
    except (ValueError, UnicodeDecodeError):
        raise MalformedAssertion(f"{name} is not base64url-encoded JSON")
    if not isinstance(obj, dict):
        raise MalformedAssertion(f"{name} must be a JSON object")
    return obj


def parse_assertion(token: Any) -> SignedAssertion:
    """
    Parse a compact JWS into a SignedAssertion without verifying it.

    Raises:
        MalformedAssertion: If the token is not three base64url segments,
            a segment is not JSON, or a required claim is missing or mistyped
    """
    if not isinstance(token, str) or not token:
        raise MalformedAssertion("assertion is required")

    parts = token.split(".")
    if len(parts) != 3 or not all(parts):
        raise MalformedAssertion("assertion must have three non-empty segments")
    header_b64, payload_b64, sig_b64 = parts

    header = _decode_json_segment(header_b64, "header")
    payload = _decode_json_segment(payload_b64, "payload")

    try:
        signature = b64url_decode(sig_b64)
    except ValueError:
        raise MalformedAssertion("signature is not base64url")
    if len(signature) != ED25519_SIGNATURE_BYTES:
        raise MalformedAssertion("signature has the wrong length")

    iss = payload.get("iss")
    if not isinstance(iss, str) or not iss:
        raise MalformedAssertion("iss claim is required")
    if "sub" in payload and payload["sub"] != iss:
        raise MalformedAssertion("sub claim must equal iss")
    if not isinstance(payload.get("challenge"), str) or not payload["challenge"]:
        raise MalformedAssertion("challenge claim is required")
    iat = payload.get("iat")
    if isinstance(iat, bool) or not isinstance(iat, int):
        raise MalformedAssertion("iat claim must be an integer timestamp")
    if not 0 <= iat < MAX_IAT:
        raise MalformedAssertion("iat claim is out of range")

    return SignedAssertion(
        header=header,
        payload=payload,
        signature=signature,
        header_b64=header_b64,
        payload_b64=payload_b64,
    )
