"""
Digest anchoring sinks for DocAuth.

After a document version is recorded, its digest can be pushed to an
external, tamper-evident sink. The ledger treats the sink as a downstream
collaborator: a failed anchor is reported, never rolled back.
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from . import config
from .logging_config import audit_log

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AnchorAck:
    sink: str
    reference: Optional[str] = None


class AnchorSink:
    name = "abstract"

    def anchor(self, digest: str, version: int) -> AnchorAck:
        raise NotImplementedError


class NullAnchor(AnchorSink):
    name = "none"

    def anchor(self, digest: str, version: int) -> AnchorAck:
        return AnchorAck(sink=self.name)


class LogAnchor(AnchorSink):
    """Emits one structured log line per anchored version."""
    name = "log"

    def anchor(self, digest: str, version: int) -> AnchorAck:
        ref = f"{digest}_v{version}"
        logger.info("anchored %s", ref, extra={"extra_fields": {"digest": digest, "version": version}})
        return AnchorAck(sink=self.name, reference=ref)


class S3ObjectLockAnchor(AnchorSink):
    """Writes each anchored version as a separate immutable object to an S3 bucket with Object Lock.
    Requires bucket with Object Lock enabled.
    Docs: https://docs.aws.amazon.com/AmazonS3/latest/userguide/object-lock.html
    """
    name = "s3_object_lock"

    def __init__(self, bucket: str, prefix: str, retention_days: int, client=None):
        self.bucket = bucket
        self.prefix = prefix.rstrip("/") + "/"
        self.retention_days = retention_days
        self._client = client

    def _get_client(self):
        """Lazy-load boto3 client."""
        if self._client is None:
            try:
                import boto3
            except ImportError as e:
                raise RuntimeError("boto3 required for S3 Object Lock anchoring. Install with: pip install docauth[aws]") from e
            self._client = boto3.client("s3")
        return self._client

    def anchor(self, digest: str, version: int) -> AnchorAck:
        key = f"{self.prefix}{digest}/v{version}.json"
        retain_until = datetime.now(timezone.utc) + timedelta(days=int(self.retention_days))
        body = json.dumps({"digest": digest, "version": version, "algorithm": "sha256"}, sort_keys=True)
        self._get_client().put_object(
            Bucket=self.bucket,
            Key=key,
            Body=body.encode("utf-8"),
            ContentType="application/json",
            ObjectLockMode="COMPLIANCE",
            ObjectLockRetainUntilDate=retain_until,
        )
        return AnchorAck(sink=self.name, reference=f"s3://{self.bucket}/{key}")


def get_anchor_sink() -> AnchorSink:
    backend = config.ANCHOR_BACKEND
    if backend == "s3_object_lock":
        return S3ObjectLockAnchor(
            bucket=config.S3_BUCKET,
            prefix=config.S3_PREFIX,
            retention_days=config.S3_RETENTION_DAYS,
        )
    if backend == "log":
        return LogAnchor()
    return NullAnchor()


def anchor_record(sink: AnchorSink, digest: str, version: int) -> Optional[AnchorAck]:
    """
    Push a recorded version to the sink.

    Returns:
        The sink's acknowledgement, or None if anchoring failed (logged)
    """
    try:
        return sink.anchor(digest, version)
    except Exception as e:
        audit_log.anchor_failed(digest, version, sink.name, str(e))
        return None
