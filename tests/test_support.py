import json
import logging
import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from docauth.anchors import LogAnchor, NullAnchor, S3ObjectLockAnchor, anchor_record
from docauth.errors import InvalidSession
from docauth.locks import KeyedLocks
from docauth.logging_config import StructuredFormatter, set_request_id
from docauth.rate_limit import RateLimiter
from docauth.security import extract_client_id, sanitize_for_logging
from docauth.sessions import SessionStore


# ============================================================
# Sessions
# ============================================================

def test_session_resolves_until_expiry(clock):
    sessions = SessionStore(ttl_seconds=60, clock=clock)
    s = sessions.issue("did:example:abc")
    assert sessions.resolve(s.token) == "did:example:abc"
    clock.advance(61)
    with pytest.raises(InvalidSession):
        sessions.resolve(s.token)


def test_session_revoke_and_missing():
    sessions = SessionStore()
    s = sessions.issue("did:example:abc")
    assert sessions.revoke(s.token)
    assert not sessions.revoke(s.token)
    for token in (None, "", s.token):
        with pytest.raises(InvalidSession):
            sessions.resolve(token)


# ============================================================
# Rate limiting
# ============================================================

def test_expired_sessions_swept_on_issue(clock):
    sessions = SessionStore(ttl_seconds=60, clock=clock, purge_interval=30)
    for _ in range(20):
        sessions.issue("did:example:abc")
    clock.advance(61)
    live = sessions.issue("did:example:abc")

    assert len(sessions) == 1
    assert sessions.resolve(live.token) == "did:example:abc"


def test_session_purge_expired(clock):
    sessions = SessionStore(ttl_seconds=60, clock=clock)
    sessions.issue("did:example:abc")
    clock.advance(30)
    sessions.issue("did:example:abc")
    clock.advance(31)
    assert sessions.purge_expired() == 1
    assert len(sessions) == 1


def test_rate_limiter_drops_idle_clients(clock):
    limiter = RateLimiter(5, window_seconds=60, clock=clock)
    for i in range(100):
        limiter.allow(f"challenge:ip:10.0.0.{i}")
    assert len(limiter) == 100

    clock.advance(61)
    assert limiter.allow("challenge:ip:10.0.1.1")
    assert len(limiter) == 1


def test_rate_limiter_window(clock):
    limiter = RateLimiter(2, window_seconds=60, clock=clock)
    assert limiter.allow("k")
    assert limiter.allow("k")
    result = limiter.check("k")
    assert not result.allowed
    assert result.retry_after == pytest.approx(60)
    assert limiter.allow("other")

    clock.advance(61)
    assert limiter.allow("k")


def test_client_id_extraction():
    assert extract_client_id({"x-forwarded-for": "10.0.0.1, 10.0.0.2"}) == "ip:10.0.0.1"
    assert extract_client_id({}, "127.0.0.1") == "ip:127.0.0.1"
    assert extract_client_id({}) == "anonymous"


# ============================================================
# Locks
# ============================================================

def test_keyed_locks_serialize_same_key_and_clean_up():
    locks = KeyedLocks()
    inside = []
    overlap = []

    def work(_):
        with locks.hold("digest"):
            inside.append(1)
            if len(inside) > 1:
                overlap.append(True)
            inside.pop()

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(work, range(200)))

    assert not overlap
    assert len(locks) == 0


def test_keyed_locks_independent_keys():
    locks = KeyedLocks()
    entered = threading.Event()

    def other():
        with locks.hold("b"):
            entered.set()

    with locks.hold("a"):
        t = threading.Thread(target=other)
        t.start()
        t.join(timeout=2)
        assert entered.is_set()


# ============================================================
# Logging and anchoring
# ============================================================

def test_structured_formatter_includes_request_id_and_fields():
    set_request_id("req-42")
    record = logging.LogRecord("docauth.audit", logging.INFO, __file__, 1, "hello", (), None)
    record.extra_fields = {"event_type": "CHALLENGE_ISSUED"}
    data = json.loads(StructuredFormatter().format(record))
    assert data["request_id"] == "req-42"
    assert data["event_type"] == "CHALLENGE_ISSUED"
    assert data["message"] == "hello"


def test_audit_events_never_contain_challenge(caplog, authenticator, identity):
    caplog.set_level(logging.INFO, logger="docauth.audit")
    challenge = authenticator.issue_challenge(identity.identity)
    assert any(getattr(r, "extra_fields", {}).get("event_type") == "CHALLENGE_ISSUED" for r in caplog.records)
    assert challenge.value not in caplog.text


def test_sanitize_for_logging_masks_private_key():
    clean = sanitize_for_logging({
        "did": "did:example:abc",
        "privateKeyJwk": {"kty": "OKP", "d": "secret"},
        "nested": {"session_token": "0123456789abcdef"},
    })
    assert clean["did"] == "did:example:abc"
    assert clean["privateKeyJwk"] == "[REDACTED]"
    assert clean["nested"]["session_token"] == "0123...cdef"


def test_anchor_record_acks():
    assert anchor_record(NullAnchor(), "ab" * 32, 1).sink == "none"
    assert anchor_record(LogAnchor(), "ab" * 32, 2).reference == "ab" * 32 + "_v2"


class FakeS3:
    def __init__(self):
        self.calls = []

    def put_object(self, **kwargs):
        self.calls.append(kwargs)


def test_s3_object_lock_anchor():
    s3 = FakeS3()
    sink = S3ObjectLockAnchor(bucket="ledger", prefix="anchors", retention_days=7, client=s3)
    ack = anchor_record(sink, "cd" * 32, 3)

    assert ack.reference == f"s3://ledger/anchors/{'cd' * 32}/v3.json"
    call = s3.calls[0]
    assert call["ObjectLockMode"] == "COMPLIANCE"
    assert json.loads(call["Body"]) == {"algorithm": "sha256", "digest": "cd" * 32, "version": 3}


def test_anchor_failure_is_logged_not_raised(caplog):
    class Broken(NullAnchor):
        name = "broken"

        def anchor(self, digest, version):
            raise RuntimeError("boom")

    caplog.set_level(logging.ERROR, logger="docauth.audit")
    assert anchor_record(Broken(), "ef" * 32, 1) is None
    assert any(getattr(r, "extra_fields", {}).get("event_type") == "ANCHOR_FAILED" for r in caplog.records)
