"""
DocAuth

DID challenge-response login and a content-addressed document ledger.

Usage:
    from docauth import Authenticator, DocumentLedger, KeyRegistry, sign_assertion

    registry = KeyRegistry()
    auth = Authenticator(registry)
    ledger = DocumentLedger()

    challenge = auth.issue_challenge(did)
    identity = auth.verify_assertion(sign_assertion(did, challenge.value, private_jwk))
    record = ledger.register_document(content, identity)
"""

__version__ = "0.1.0"

from .assertion import SignedAssertion, parse_assertion, sign_assertion
from .challenges import Authenticator, Challenge
from .errors import (
    ChallengeMismatch,
    DocAuthError,
    InvalidIdentity,
    InvalidKey,
    InvalidSession,
    InvalidSignature,
    MalformedAssertion,
    MissingContent,
    PersistenceError,
    StaleAssertion,
    UnknownOrExpiredChallenge,
)
from .keys import GeneratedIdentity, IdentityResolver, KeyRegistry, generate_identity
from .ledger import DocumentLedger, DocumentRecord, content_digest
from .sessions import Session, SessionStore


__all__ = [
    "__version__",

    # Authentication
    "Authenticator",
    "Challenge",
    "SignedAssertion",
    "parse_assertion",
    "sign_assertion",
    "Session",
    "SessionStore",

    # Identity
    "GeneratedIdentity",
    "IdentityResolver",
    "KeyRegistry",
    "generate_identity",

    # Documents
    "DocumentLedger",
    "DocumentRecord",
    "content_digest",

    # Errors
    "DocAuthError",
    "InvalidIdentity",
    "InvalidKey",
    "MalformedAssertion",
    "UnknownOrExpiredChallenge",
    "ChallengeMismatch",
    "InvalidSignature",
    "StaleAssertion",
    "MissingContent",
    "InvalidSession",
    "PersistenceError",
]
