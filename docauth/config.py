"""
Configuration module for DocAuth.

Centralizes all configuration with environment variable support
and validation.
"""

import os
from pathlib import Path
from typing import Dict

# ============================================================
# Environment Configuration
# ============================================================

ENV = os.getenv("DOCAUTH_ENV", "dev")  # dev|stage|prod

# Challenge lifetime; an expired challenge is treated as unknown
CHALLENGE_TTL_SECONDS = int(os.getenv("DOCAUTH_CHALLENGE_TTL_SECONDS", "300"))

# Signed assertion freshness window (iat)
ASSERTION_MAX_AGE_SECONDS = int(os.getenv("DOCAUTH_ASSERTION_MAX_AGE_SECONDS", "300"))
MAX_CLOCK_SKEW_SECONDS = int(os.getenv("DOCAUTH_MAX_CLOCK_SKEW_SECONDS", "30"))

# Bearer sessions handed out after a successful login
SESSION_TTL_SECONDS = int(os.getenv("DOCAUTH_SESSION_TTL_SECONDS", "3600"))

# How often expired challenges and sessions are swept on the write path
PURGE_INTERVAL_SECONDS = int(os.getenv("DOCAUTH_PURGE_INTERVAL_SECONDS", "60"))

# Rate limits (requests per minute, per client)
CHALLENGE_RPM = int(os.getenv("DOCAUTH_CHALLENGE_RPM", "60"))
VERIFY_RPM = int(os.getenv("DOCAUTH_VERIFY_RPM", "60"))

# Upload bound for document registration / lookup
MAX_DOCUMENT_BYTES = int(os.getenv("DOCAUTH_MAX_DOCUMENT_BYTES", str(25 * 1024 * 1024)))

# Persistence (empty path = in-memory only)
DB_PATH = os.getenv("DOCAUTH_DB_PATH", "")
DB_TIMEOUT_SECONDS = float(os.getenv("DOCAUTH_DB_TIMEOUT_SECONDS", "2.0"))

# Digest anchoring
ANCHOR_BACKEND = os.getenv("DOCAUTH_ANCHOR_BACKEND", "none")  # none|log|s3_object_lock
S3_BUCKET = os.getenv("DOCAUTH_S3_BUCKET", "")
S3_PREFIX = os.getenv("DOCAUTH_S3_PREFIX", "docauth/anchors/")
S3_RETENTION_DAYS = int(os.getenv("DOCAUTH_S3_RETENTION_DAYS", "365"))

# Demo-only: sign challenges server-side with a submitted private key
ALLOW_SERVER_SIGNING = os.getenv("DOCAUTH_ALLOW_SERVER_SIGNING", "").lower() in ("1", "true", "yes")

# Logging
LOG_LEVEL = os.getenv("DOCAUTH_LOG_LEVEL", "INFO")
LOG_JSON = os.getenv("DOCAUTH_LOG_JSON", "true").lower() in ("1", "true", "yes")


# ============================================================
# Validation
# ============================================================

def validate_config() -> Dict[str, bool]:
    """
    Validate the configured values.
    Returns dict of check name -> passed.
    """
    checks = {
        "challenge_ttl": CHALLENGE_TTL_SECONDS > 0,
        "assertion_max_age": ASSERTION_MAX_AGE_SECONDS > 0,
        "clock_skew": MAX_CLOCK_SKEW_SECONDS >= 0,
        "session_ttl": SESSION_TTL_SECONDS > 0,
        "anchor_backend": ANCHOR_BACKEND in ("none", "log", "s3_object_lock"),
    }

    if DB_PATH:
        checks["db_dir"] = Path(DB_PATH).parent.exists()
    if ANCHOR_BACKEND == "s3_object_lock":
        checks["s3_bucket"] = bool(S3_BUCKET)

    return checks


# ============================================================
# Feature Flags
# ============================================================

def is_production() -> bool:
    """Check if running in production mode."""
    return ENV == "prod"


def server_signing_enabled() -> bool:
    """Server-side signing is a demo convenience and never allowed in production."""
    return ALLOW_SERVER_SIGNING and not is_production()
