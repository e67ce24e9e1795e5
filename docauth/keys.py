"""
Key management module for DocAuth.

Provides Ed25519 identity generation, OKP JWK import/export, and the
identity -> public key resolver used by the authenticator.
"""

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional

from nacl.signing import SigningKey, VerifyKey
from nacl.exceptions import BadSignatureError

from .errors import InvalidIdentity
from .security import validate_identity
from .util import b64url_decode, b64url_encode, generate_id

ED25519_KEY_BYTES = 32


@dataclass(frozen=True)
class GeneratedIdentity:
    """A freshly generated identity with its key pair as JWKs."""
    identity: str
    public_jwk: Dict[str, str]
    private_jwk: Dict[str, str]


# ============================================================
# JWK Conversion
# ============================================================

def public_jwk(verify_key: VerifyKey) -> Dict[str, str]:
    """Export an Ed25519 verify key as an OKP JWK."""
    return {"kty": "OKP", "crv": "Ed25519", "x": b64url_encode(bytes(verify_key))}


def private_jwk(signing_key: SigningKey) -> Dict[str, str]:
    """Export an Ed25519 signing key as an OKP JWK (includes the public part)."""
    jwk = public_jwk(signing_key.verify_key)
    jwk["d"] = b64url_encode(bytes(signing_key))
    return jwk


def _okp_member(jwk: Any, name: str) -> bytes:
    if not isinstance(jwk, dict):
        raise ValueError("JWK must be an object")
    if jwk.get("kty") != "OKP" or jwk.get("crv") != "Ed25519":
        raise ValueError("JWK must be an OKP Ed25519 key")
    raw = jwk.get(name)
    if not isinstance(raw, str):
        raise ValueError(f"JWK member '{name}' is required")
    value = b64url_decode(raw)
    if len(value) != ED25519_KEY_BYTES:
        raise ValueError(f"JWK member '{name}' must decode to {ED25519_KEY_BYTES} bytes")
    return value


def verify_key_from_jwk(jwk: Any) -> VerifyKey:
    """
    Import an Ed25519 public key from an OKP JWK.

    Raises:
        ValueError: If the JWK is not a well-formed Ed25519 public key
    """
    return VerifyKey(_okp_member(jwk, "x"))


def signing_key_from_jwk(jwk: Any) -> SigningKey:
    """
    Import an Ed25519 private key from an OKP JWK.

    When the JWK also carries "x", it must match the key derived from "d".

    Raises:
        ValueError: If the JWK is not a well-formed Ed25519 private key
    """
    sk = SigningKey(_okp_member(jwk, "d"))
    if "x" in jwk and _okp_member(jwk, "x") != bytes(sk.verify_key):
        raise ValueError("JWK public member does not match private key")
    return sk


# ============================================================
# Identity Generation
# ============================================================

def new_identity() -> str:
    """
    Generate a did:key-shaped identity from 16 random bytes.

    The identity is not derived from any key material; binding the two is
    left to the key registry.
    """
    return f"did:key:z{generate_id(16)}"


def generate_identity() -> GeneratedIdentity:
    """Generate a new identity together with an Ed25519 key pair."""
    sk = SigningKey.generate()
    return GeneratedIdentity(
        identity=new_identity(),
        public_jwk=public_jwk(sk.verify_key),
        private_jwk=private_jwk(sk),
    )


# ============================================================
# Identity Resolution
# ============================================================

class IdentityResolver(ABC):
    """Abstract interface mapping an identity to its declared public key."""

    @abstractmethod
    def resolve_identity(self, identity: str) -> Optional[VerifyKey]:
        """
        Resolve the public key declared for an identity.

        Returns:
            The Ed25519 verify key, or None if the identity is unknown
        """
        pass


class KeyRegistry(IdentityResolver):
    """
    In-process registry of identity -> declared public key.

    Thread-safe. Only public keys are ever stored.
    """

    def __init__(self):
        self._keys: Dict[str, VerifyKey] = {}
        self._lock = threading.RLock()

    def register(self, identity: str, jwk: Dict[str, Any]) -> VerifyKey:
        """
        Record the public key declared for an identity.

        Re-registering the same key is a no-op; a different key for an
        already-registered identity is rejected.

        Raises:
            InvalidIdentity: If the identity is malformed or already bound to another key
            ValueError: If the JWK is not an Ed25519 public key
        """
        validate_identity(identity)
        vk = verify_key_from_jwk(jwk)
        with self._lock:
            existing = self._keys.get(identity)
            if existing is not None and bytes(existing) != bytes(vk):
                raise InvalidIdentity("identity is already bound to a different key")
            self._keys[identity] = vk
        return vk

    def resolve_identity(self, identity: str) -> Optional[VerifyKey]:
        with self._lock:
            return self._keys.get(identity)

    def __len__(self) -> int:
        with self._lock:
            return len(self._keys)

    def clear(self) -> None:
        with self._lock:
            self._keys.clear()


def verify_ed25519(signature: bytes, payload: bytes, verify_key: VerifyKey) -> bool:
    """
    Verify an Ed25519 signature.

    Args:
        signature: Raw 64-byte signature
        payload: The signed data
        verify_key: The signer's public key

    Returns:
        True if signature is valid, False otherwise
    """
    try:
        verify_key.verify(payload, signature)
        return True
    except (BadSignatureError, ValueError, TypeError):
        return False
