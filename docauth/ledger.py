"""
Content-addressed document ledger for DocAuth.

Documents are addressed by the SHA-256 digest of their bytes. Every
registration appends the next version for that digest; versions for a
digest always form the dense sequence 1..N and a written version is never
changed. Re-registering byte-identical content is not an error: it adds a
new version, giving an audit trail of repeated assertions.
"""

import threading
import time
from dataclasses import asdict, dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional

from .db import SqliteDocumentStore
from .errors import MissingContent
from .locks import KeyedLocks
from .logging_config import audit_log
from .security import validate_identity
from .util import sha256_hex, utc_rfc3339


@dataclass(frozen=True)
class DocumentRecord:
    digest: str
    version: int
    owner: str
    timestamp: str

    @property
    def versioned_hash(self) -> str:
        return f"{self.digest}_v{self.version}"

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["versioned_hash"] = self.versioned_hash
        return d


def content_digest(content: Optional[bytes]) -> str:
    """
    SHA-256 hex digest of document content.

    Raises:
        MissingContent: If content is None or empty
    """
    if not content:
        raise MissingContent()
    return sha256_hex(bytes(content))


class DocumentLedger:
    """
    Owner of the digest -> version history map.

    Args:
        store: Optional durable store; records are written to it before they
            become visible in memory, and it is replayed on construction
        clock: Time source returning Unix seconds (injectable for tests)
    """

    def __init__(
        self,
        store: Optional[SqliteDocumentStore] = None,
        clock: Callable[[], float] = time.time
    ):
        self._store = store
        self._clock = clock
        self._versions: Dict[str, List[DocumentRecord]] = {}
        self._lock = threading.RLock()
        self._digest_locks = KeyedLocks()
        if store is not None:
            self.load(store.load_all())

    # ============================================================
    # Registration
    # ============================================================

    def register_document(self, content: bytes, owner: str) -> DocumentRecord:
        """
        Record the next version of a document.

        The owner is trusted as given; authenticating it is the caller's job.

        Args:
            content: Raw document bytes
            owner: Identity claiming the document

        Returns:
            The newly written record

        Raises:
            MissingContent: If content is None or empty
            InvalidIdentity: If owner is not a valid identity
            PersistenceError: If the durable store rejects the write; the
                in-memory ledger is left unchanged
        """
        digest = content_digest(content)
        validate_identity(owner, "owner")

        with self._digest_locks.hold(digest):
            latest = self._probe_latest(digest)
            record = DocumentRecord(
                digest=digest,
                version=1 if latest is None else latest.version + 1,
                owner=owner,
                timestamp=utc_rfc3339(self._clock()),
            )
            if self._store is not None:
                self._store.append(record.digest, record.version, record.owner, record.timestamp)
            with self._lock:
                self._versions.setdefault(digest, []).append(record)

        audit_log.document_registered(record.digest, record.version, record.owner)
        return record

    # ============================================================
    # Lookup
    # ============================================================

    def get_version(self, digest: str, version: int) -> Optional[DocumentRecord]:
        if version < 1:
            return None
        with self._lock:
            history = self._versions.get(digest)
            if history is None or version > len(history):
                return None
            return history[version - 1]

    def _probe_latest(self, digest: str) -> Optional[DocumentRecord]:
        # Versions are dense from 1, so the first missing one ends the scan.
        latest = None
        version = 1
        while True:
            record = self.get_version(digest, version)
            if record is None:
                return latest
            latest = record
            version += 1

    def lookup_latest(self, content: bytes) -> Optional[DocumentRecord]:
        """
        Find the highest version recorded for this content.

        Returns:
            The latest record, or None if the content was never registered

        Raises:
            MissingContent: If content is None or empty
        """
        return self._probe_latest(content_digest(content))

    def lookup_digest(self, digest: str) -> Optional[DocumentRecord]:
        """Latest record for a hex digest, or None."""
        return self._probe_latest(digest.lower())

    def history(self, digest: str) -> List[DocumentRecord]:
        """All versions for a hex digest in ascending order."""
        with self._lock:
            return list(self._versions.get(digest.lower(), ()))

    # ============================================================
    # State
    # ============================================================

    def load(self, rows: Iterable[Dict[str, Any]]) -> int:
        """
        Replace in-memory state with previously persisted records.

        Raises:
            ValueError: If the rows do not form dense 1..N version runs
        """
        grouped: Dict[str, List[DocumentRecord]] = {}
        for row in rows:
            record = DocumentRecord(
                digest=row["digest"],
                version=int(row["version"]),
                owner=row["owner"],
                timestamp=row["timestamp"],
            )
            grouped.setdefault(record.digest, []).append(record)

        for digest, records in grouped.items():
            records.sort(key=lambda r: r.version)
            if [r.version for r in records] != list(range(1, len(records) + 1)):
                raise ValueError(f"version history for {digest} is not dense from 1")

        with self._lock:
            self._versions = grouped
        return sum(len(r) for r in grouped.values())

    def clear(self) -> None:
        with self._lock:
            self._versions.clear()

    def __len__(self) -> int:
        """Number of distinct digests."""
        with self._lock:
            return len(self._versions)
