import json
import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from docauth.assertion import sign_assertion
from docauth.challenges import Authenticator
from docauth.errors import (
    ChallengeMismatch,
    InvalidIdentity,
    InvalidSignature,
    MalformedAssertion,
    StaleAssertion,
    UnknownOrExpiredChallenge,
)
from docauth.keys import generate_identity
from docauth.util import b64url_decode, b64url_encode


def login_token(authenticator, generated, clock, challenge=None):
    if challenge is None:
        challenge = authenticator.issue_challenge(generated.identity).value
    return sign_assertion(generated.identity, challenge, generated.private_jwk, issued_at=int(clock.now))


# ============================================================
# Issuance
# ============================================================

def test_challenge_has_256_bits(authenticator, identity):
    challenge = authenticator.issue_challenge(identity.identity)
    assert len(challenge.value) == 64
    assert int(challenge.value, 16) >= 0
    assert authenticator.pending(identity.identity)


def test_challenges_are_unique(authenticator, identity):
    values = {authenticator.issue_challenge(identity.identity).value for _ in range(50)}
    assert len(values) == 50
    assert len(authenticator) == 1


@pytest.mark.parametrize("bad", [None, "", "alice", "did:", 42, "did:key:" + "a" * 300])
def test_issue_rejects_malformed_identity(authenticator, bad):
    with pytest.raises(InvalidIdentity):
        authenticator.issue_challenge(bad)


# ============================================================
# Verification
# ============================================================

def test_verify_success_consumes_challenge(authenticator, identity, clock):
    token = login_token(authenticator, identity, clock)
    assert authenticator.verify_assertion(token) == identity.identity
    assert not authenticator.pending(identity.identity)


def test_replay_fails_with_unknown_challenge(authenticator, identity, clock):
    token = login_token(authenticator, identity, clock)
    authenticator.verify_assertion(token)
    with pytest.raises(UnknownOrExpiredChallenge):
        authenticator.verify_assertion(token)


def test_never_issued_is_unknown(authenticator, identity, clock):
    token = sign_assertion(identity.identity, "ab" * 32, identity.private_jwk, issued_at=int(clock.now))
    with pytest.raises(UnknownOrExpiredChallenge):
        authenticator.verify_assertion(token)


def test_reissue_supersedes_previous_challenge(authenticator, identity, clock):
    first = authenticator.issue_challenge(identity.identity).value
    authenticator.issue_challenge(identity.identity)
    token = login_token(authenticator, identity, clock, challenge=first)
    with pytest.raises((UnknownOrExpiredChallenge, ChallengeMismatch)):
        authenticator.verify_assertion(token)


def test_mismatch_does_not_consume(authenticator, identity, clock):
    real = authenticator.issue_challenge(identity.identity).value
    wrong = login_token(authenticator, identity, clock, challenge="00" * 32)
    with pytest.raises(ChallengeMismatch):
        authenticator.verify_assertion(wrong)

    assert authenticator.pending(identity.identity)
    good = login_token(authenticator, identity, clock, challenge=real)
    assert authenticator.verify_assertion(good) == identity.identity


def test_wrong_key_is_invalid_signature_and_retry_allowed(authenticator, identity, clock):
    challenge = authenticator.issue_challenge(identity.identity).value
    impostor = generate_identity()
    forged = sign_assertion(identity.identity, challenge, impostor.private_jwk, issued_at=int(clock.now))
    with pytest.raises(InvalidSignature):
        authenticator.verify_assertion(forged)

    assert authenticator.pending(identity.identity)
    token = login_token(authenticator, identity, clock, challenge=challenge)
    assert authenticator.verify_assertion(token) == identity.identity


def test_unregistered_identity_is_invalid_signature(authenticator, clock):
    stranger = generate_identity()
    token = login_token(authenticator, stranger, clock)
    with pytest.raises(InvalidSignature):
        authenticator.verify_assertion(token)


def test_substituted_challenge_breaks_signature(authenticator, identity, clock):
    issued = authenticator.issue_challenge(identity.identity).value
    token = sign_assertion(identity.identity, "11" * 32, identity.private_jwk, issued_at=int(clock.now))
    header, payload, sig = token.split(".")
    # Swap in the real challenge without re-signing.
    forged_payload = payload_with(payload, challenge=issued)
    with pytest.raises(InvalidSignature):
        authenticator.verify_assertion(".".join([header, forged_payload, sig]))
    assert authenticator.pending(identity.identity)


def test_unsupported_algorithm(authenticator, identity, clock):
    token = login_token(authenticator, identity, clock)
    header, payload, sig = token.split(".")
    bad_header = b64url_encode(b'{"alg":"HS256","typ":"JWT"}')
    with pytest.raises(InvalidSignature):
        authenticator.verify_assertion(".".join([bad_header, payload, sig]))


def test_malformed_assertion(authenticator):
    with pytest.raises(MalformedAssertion):
        authenticator.verify_assertion("not-a-jws")


def test_malformed_issuer(authenticator, identity, clock):
    challenge = authenticator.issue_challenge(identity.identity).value
    token = sign_assertion("alice", challenge, identity.private_jwk, issued_at=int(clock.now))
    with pytest.raises(MalformedAssertion):
        authenticator.verify_assertion(token)


def test_expired_challenge_behaves_as_unknown(authenticator, identity, clock):
    challenge = authenticator.issue_challenge(identity.identity).value
    clock.advance(301)
    token = login_token(authenticator, identity, clock, challenge=challenge)
    with pytest.raises(UnknownOrExpiredChallenge):
        authenticator.verify_assertion(token)
    assert len(authenticator) == 0


def test_stale_and_future_assertions(authenticator, identity, clock):
    challenge = authenticator.issue_challenge(identity.identity).value
    old = sign_assertion(identity.identity, challenge, identity.private_jwk, issued_at=int(clock.now) - 301)
    with pytest.raises(StaleAssertion):
        authenticator.verify_assertion(old)

    future = sign_assertion(identity.identity, challenge, identity.private_jwk, issued_at=int(clock.now) + 31)
    with pytest.raises(StaleAssertion):
        authenticator.verify_assertion(future)

    assert authenticator.pending(identity.identity)


def test_purge_expired(authenticator, clock):
    for _ in range(3):
        generated = generate_identity()
        authenticator.issue_challenge(generated.identity)
    clock.advance(10)
    fresh = generate_identity()
    authenticator.issue_challenge(fresh.identity)
    clock.advance(295)

    assert authenticator.purge_expired() == 3
    assert len(authenticator) == 1
    assert authenticator.pending(fresh.identity)


def test_issuing_sweeps_expired_challenges(authenticator, clock):
    for _ in range(50):
        authenticator.issue_challenge(generate_identity().identity)
    clock.advance(301)
    for _ in range(10):
        authenticator.issue_challenge(generate_identity().identity)

    assert len(authenticator) == 10


def test_sweep_runs_at_most_once_per_interval(registry, clock):
    authenticator = Authenticator(registry, challenge_ttl=5, clock=clock, purge_interval=60)
    authenticator.issue_challenge(generate_identity().identity)
    clock.advance(10)
    authenticator.issue_challenge(generate_identity().identity)
    assert len(authenticator) == 2

    clock.advance(60)
    authenticator.issue_challenge(generate_identity().identity)
    assert len(authenticator) == 1


def test_out_of_range_iat_is_malformed(authenticator, identity):
    challenge = authenticator.issue_challenge(identity.identity).value
    for iat in (10 ** 400, 2 ** 53, -1):
        token = sign_assertion(identity.identity, challenge, identity.private_jwk, issued_at=iat)
        with pytest.raises(MalformedAssertion):
            authenticator.verify_assertion(token)
    assert authenticator.pending(identity.identity)


def test_did_example_end_to_end(registry, clock):
    authenticator = Authenticator(registry, clock=clock)
    keys = generate_identity()
    registry.register("did:example:abc", keys.public_jwk)

    challenge = authenticator.issue_challenge("did:example:abc").value
    token = sign_assertion("did:example:abc", challenge, keys.private_jwk, issued_at=int(clock.now))
    assert authenticator.verify_assertion(token) == "did:example:abc"
    with pytest.raises(UnknownOrExpiredChallenge):
        authenticator.verify_assertion(token)


# ============================================================
# Concurrency
# ============================================================

def test_racing_verifications_single_success(authenticator, identity, clock):
    for _ in range(20):
        token = login_token(authenticator, identity, clock)
        barrier = threading.Barrier(8)

        def attempt():
            barrier.wait()
            try:
                return authenticator.verify_assertion(token)
            except UnknownOrExpiredChallenge:
                return None

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(lambda _: attempt(), range(8)))

        assert results.count(identity.identity) == 1
        assert results.count(None) == 7


def payload_with(payload_b64, **claims):
    payload = json.loads(b64url_decode(payload_b64))
    payload.update(claims)
    return b64url_encode(json.dumps(payload, separators=(",", ":")).encode())
