"""
Security module for DocAuth.

Provides input validation, sanitization, and security utilities.
"""

import re
import uuid
from typing import Any, Dict, List, Optional

from .errors import InvalidIdentity


# ============================================================
# Input Validation
# ============================================================

DID_PATTERN = re.compile(r'^did:[a-z0-9]+:[A-Za-z0-9._:%-]+$')
SHA256_HEX_PATTERN = re.compile(r'^[a-f0-9]{64}$')
CHALLENGE_PATTERN = re.compile(r'^[a-f0-9]{64}$')

MAX_IDENTITY_LENGTH = 256


def validate_identity(value: Any, field_name: str = "identity") -> str:
    """
    Validate a DID-shaped identity string.

    Args:
        value: The candidate identity
        field_name: Name of the field (for error messages)

    Returns:
        The validated identity, unchanged

    Raises:
        InvalidIdentity: If the value is absent, empty or malformed
    """
    if not isinstance(value, str) or not value:
        raise InvalidIdentity(f"{field_name} is required")

    if len(value) > MAX_IDENTITY_LENGTH:
        raise InvalidIdentity(f"{field_name} must not exceed {MAX_IDENTITY_LENGTH} characters")

    if not DID_PATTERN.match(value):
        raise InvalidIdentity(f"{field_name} must be a DID (did:<method>:<id>)")

    return value


def is_sha256_hex(value: Any) -> bool:
    """Check that a value is a lowercase 64-character SHA-256 hex digest."""
    return isinstance(value, str) and bool(SHA256_HEX_PATTERN.match(value))


def is_challenge(value: Any) -> bool:
    """Check that a value has the shape of an issued challenge."""
    return isinstance(value, str) and bool(CHALLENGE_PATTERN.match(value))


# ============================================================
# Request ID Generation
# ============================================================

def generate_request_id() -> str:
    """Generate a unique request ID for audit trail correlation."""
    return str(uuid.uuid4())


# ============================================================
# Rate Limiting Helpers
# ============================================================

def extract_client_id(headers: Dict[str, str], fallback: Optional[str] = None) -> str:
    """
    Extract a client identifier from request headers for rate limiting.
    Falls back to the transport peer address, then to "anonymous".
    """
    forwarded = headers.get("x-forwarded-for", "")
    if forwarded:
        return f"ip:{forwarded.split(',')[0].strip()}"

    if fallback:
        return f"ip:{fallback}"

    return "anonymous"


# ============================================================
# Audit Logging Helpers
# ============================================================

SENSITIVE_FIELDS = ["d", "privateKeyJwk", "private_jwk", "session_token", "token", "jwt", "challenge"]


def sanitize_for_logging(data: Dict[str, Any], sensitive_fields: List[str] = None) -> Dict[str, Any]:
    """
    Sanitize data for logging by masking sensitive fields.

    Args:
        data: The data to sanitize
        sensitive_fields: List of field names to mask

    Returns:
        Sanitized copy of the data
    """
    if sensitive_fields is None:
        sensitive_fields = SENSITIVE_FIELDS

    result = {}
    for key, value in data.items():
        if key in sensitive_fields:
            if isinstance(value, str) and len(value) > 8:
                result[key] = value[:4] + "..." + value[-4:]
            else:
                result[key] = "[REDACTED]"
        elif isinstance(value, dict):
            result[key] = sanitize_for_logging(value, sensitive_fields)
        elif isinstance(value, list):
            result[key] = [
                sanitize_for_logging(item, sensitive_fields) if isinstance(item, dict) else item
                for item in value
            ]
        else:
            result[key] = value

    return result
