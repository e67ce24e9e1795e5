"""
Challenge-response authenticator for DocAuth.

Issues one single-use random challenge per identity and verifies signed
assertions against it. A challenge is consumed only by a successful
verification; a failed verification leaves it in place so the holder can
retry, and issuing a new challenge replaces any pending one.

Lookup, comparison, signature check and consumption happen inside one
critical section per identity, so of two racing verifications of the same
assertion exactly one succeeds.
"""

import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Union

from . import config
from .assertion import ALG_EDDSA, SignedAssertion, parse_assertion
from .errors import (
    ChallengeMismatch,
    DocAuthError,
    InvalidIdentity,
    InvalidSignature,
    MalformedAssertion,
    StaleAssertion,
    UnknownOrExpiredChallenge,
)
from .keys import IdentityResolver, verify_ed25519
from .locks import KeyedLocks
from .logging_config import audit_log
from .security import validate_identity
from .util import constant_time_compare, generate_nonce

CHALLENGE_BYTES = 32


@dataclass(frozen=True)
class Challenge:
    """A pending challenge for one identity."""
    identity: str
    value: str
    issued_at: float

    def expired(self, now: float, ttl_seconds: Optional[int]) -> bool:
        return ttl_seconds is not None and now - self.issued_at > ttl_seconds


class Authenticator:
    """
    Owner of the identity -> pending challenge map.

    Args:
        resolver: Maps an identity to its declared Ed25519 public key
        challenge_ttl: Seconds a challenge stays valid (None disables expiry)
        max_assertion_age: Oldest acceptable assertion iat, in seconds
        max_clock_skew: How far in the future an iat may be, in seconds
        clock: Time source returning Unix seconds (injectable for tests)
        purge_interval: Minimum seconds between sweeps of expired challenges
            on the issuance path
    """

    def __init__(
        self,
        resolver: IdentityResolver,
        challenge_ttl: Optional[int] = config.CHALLENGE_TTL_SECONDS,
        max_assertion_age: int = config.ASSERTION_MAX_AGE_SECONDS,
        max_clock_skew: int = config.MAX_CLOCK_SKEW_SECONDS,
        clock: Callable[[], float] = time.time,
        purge_interval: float = config.PURGE_INTERVAL_SECONDS
    ):
        self._resolver = resolver
        self._ttl = challenge_ttl
        self._max_age = max_assertion_age
        self._max_skew = max_clock_skew
        self._clock = clock
        self._pending: Dict[str, Challenge] = {}
        self._store_lock = threading.Lock()
        self._identity_locks = KeyedLocks()
        self._purge_interval = purge_interval
        self._last_purge = clock()

    # ============================================================
    # Issuance
    # ============================================================

    def issue_challenge(self, identity: str) -> Challenge:
        """
        Issue a fresh 256-bit challenge for an identity.

        Any pending challenge for the same identity is replaced.

        Raises:
            InvalidIdentity: If the identity is absent, empty or malformed
        """
        validate_identity(identity)
        now = self._clock()
        if now - self._last_purge >= self._purge_interval:
            self._last_purge = now
            self.purge_expired()

        challenge = Challenge(
            identity=identity,
            value=generate_nonce(CHALLENGE_BYTES),
            issued_at=now,
        )
        with self._identity_locks.hold(identity):
            with self._store_lock:
                superseded = identity in self._pending
                self._pending[identity] = challenge
        audit_log.challenge_issued(identity, superseded)
        return challenge

    # ============================================================
    # Verification
    # ============================================================

    def verify_assertion(self, assertion: Union[str, SignedAssertion]) -> str:
        """
        Verify a signed assertion and consume the matching challenge.

        Args:
            assertion: A compact JWS string or an already parsed assertion

        Returns:
            The verified identity

        Raises:
            MalformedAssertion: Missing fields or undecodable token
            UnknownOrExpiredChallenge: No live challenge for the identity
            ChallengeMismatch: The asserted challenge is not the pending one
            InvalidSignature: Unsupported algorithm, unknown key or bad signature
            StaleAssertion: iat outside the accepted freshness window
        """
        identity = None
        try:
            if not isinstance(assertion, SignedAssertion):
                assertion = parse_assertion(assertion)
            identity = assertion.identity
            try:
                validate_identity(identity)
            except InvalidIdentity as e:
                raise MalformedAssertion(f"iss claim: {e.message}")

            with self._identity_locks.hold(identity):
                self._check_and_consume(assertion)
        except DocAuthError as e:
            audit_log.assertion_rejected(identity, e.code)
            raise

        audit_log.assertion_verified(identity)
        return identity

    def _check_and_consume(self, assertion: SignedAssertion) -> None:
        identity = assertion.identity
        now = self._clock()

        with self._store_lock:
            pending = self._pending.get(identity)
            if pending is not None and pending.expired(now, self._ttl):
                del self._pending[identity]
                pending = None
        if pending is None:
            raise UnknownOrExpiredChallenge()

        if not constant_time_compare(assertion.challenge, pending.value):
            raise ChallengeMismatch()

        if assertion.algorithm != ALG_EDDSA:
            raise InvalidSignature(f"unsupported algorithm: {assertion.algorithm!r}")
        verify_key = self._resolver.resolve_identity(identity)
        if verify_key is None:
            raise InvalidSignature("no public key is registered for this identity")
        if not verify_ed25519(assertion.signature, assertion.signing_input, verify_key):
            raise InvalidSignature()

        age = now - assertion.issued_at
        if age > self._max_age or -age > self._max_skew:
            raise StaleAssertion()

        with self._store_lock:
            if self._pending.get(identity) is pending:
                del self._pending[identity]

    # ============================================================
    # Maintenance
    # ============================================================

    def pending(self, identity: str) -> bool:
        """Check whether a live challenge exists for an identity."""
        now = self._clock()
        with self._store_lock:
            challenge = self._pending.get(identity)
            return challenge is not None and not challenge.expired(now, self._ttl)

    def purge_expired(self) -> int:
        """
        Drop every expired challenge.

        Returns:
            Number of challenges removed
        """
        now = self._clock()
        with self._store_lock:
            expired = [k for k, c in self._pending.items() if c.expired(now, self._ttl)]
            for identity in expired:
                del self._pending[identity]
        return len(expired)

    def clear(self) -> None:
        with self._store_lock:
            self._pending.clear()

    def __len__(self) -> int:
        with self._store_lock:
            return len(self._pending)
