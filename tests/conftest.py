import pytest
from fastapi.testclient import TestClient

from docauth.anchors import NullAnchor
from docauth.challenges import Authenticator
from docauth.keys import KeyRegistry, generate_identity
from docauth.ledger import DocumentLedger
from docauth.main import DocAuthService, create_app
from docauth.rate_limit import RateLimiter
from docauth.sessions import SessionStore


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, start: float = 1_760_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def registry():
    return KeyRegistry()


@pytest.fixture
def identity(registry):
    """A generated identity whose public key is registered."""
    generated = generate_identity()
    registry.register(generated.identity, generated.public_jwk)
    return generated


@pytest.fixture
def authenticator(registry, clock):
    return Authenticator(registry, challenge_ttl=300, max_assertion_age=300, max_clock_skew=30, clock=clock)


@pytest.fixture
def ledger():
    return DocumentLedger()


@pytest.fixture
def service():
    registry = KeyRegistry()
    return DocAuthService(
        registry=registry,
        authenticator=Authenticator(registry),
        sessions=SessionStore(),
        ledger=DocumentLedger(),
        anchor_sink=NullAnchor(),
        challenge_limiter=RateLimiter(1000),
        verify_limiter=RateLimiter(1000),
    )


@pytest.fixture
def client(service):
    return TestClient(create_app(service))
