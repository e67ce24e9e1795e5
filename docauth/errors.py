"""
Error taxonomy for DocAuth.

Every failure the core can report is a DocAuthError subclass carrying a
stable machine-readable code and the HTTP status the API maps it to.
"""

from typing import Optional


class DocAuthError(Exception):
    """Base class for all reportable DocAuth failures."""

    code = "INTERNAL_ERROR"
    status_code = 500
    default_message = "internal error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(f"{self.code}: {self.message}")

    def to_dict(self) -> dict:
        return {"success": False, "error": self.code, "message": self.message}


class InvalidIdentity(DocAuthError):
    code = "INVALID_IDENTITY"
    status_code = 400
    default_message = "identity is empty or malformed"


class MalformedAssertion(DocAuthError):
    code = "MALFORMED_ASSERTION"
    status_code = 400
    default_message = "signed assertion is missing fields or undecodable"


class UnknownOrExpiredChallenge(DocAuthError):
    code = "UNKNOWN_OR_EXPIRED_CHALLENGE"
    status_code = 401
    default_message = "Invalid or expired challenge"


class ChallengeMismatch(DocAuthError):
    code = "CHALLENGE_MISMATCH"
    status_code = 401
    default_message = "challenge does not match the pending challenge"


class InvalidSignature(DocAuthError):
    code = "INVALID_SIGNATURE"
    status_code = 401
    default_message = "signature verification failed"


class StaleAssertion(DocAuthError):
    code = "STALE_ASSERTION"
    status_code = 401
    default_message = "assertion issued-at is outside the accepted window"


class MissingContent(DocAuthError):
    code = "MISSING_CONTENT"
    status_code = 400
    default_message = "document content is required"


class InvalidSession(DocAuthError):
    code = "INVALID_SESSION"
    status_code = 401
    default_message = "missing, unknown or expired session"


class PersistenceError(DocAuthError):
    code = "PERSISTENCE_ERROR"
    status_code = 503
    default_message = "document store unavailable"


class InvalidKey(DocAuthError):
    code = "INVALID_KEY"
    status_code = 400
    default_message = "key is not a well-formed Ed25519 JWK"


class DocumentTooLarge(DocAuthError):
    code = "DOCUMENT_TOO_LARGE"
    status_code = 413
    default_message = "document exceeds the upload size limit"


class RateLimited(DocAuthError):
    code = "RATE_LIMIT"
    status_code = 429
    default_message = "too many requests"


class MissingFields(DocAuthError):
    code = "MISSING_FIELDS"
    status_code = 400
    default_message = "required fields are missing"


class InvalidDigest(DocAuthError):
    code = "INVALID_DIGEST"
    status_code = 400
    default_message = "digest must be 64 hex characters"


class NotFound(DocAuthError):
    code = "NOT_FOUND"
    status_code = 404
    default_message = "not found"
