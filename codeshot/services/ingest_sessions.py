"""In-memory accumulator for chunked screenshot uploads."""

from __future__ import annotations

import threading
import time
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone

from codeshot.core.errors import DuplicateChunkError, EmptyBatchError, UnknownSessionError
from codeshot.core.logging import get_logger
from codeshot.models.extraction import ChunkReceipt

logger = get_logger(__name__)

# Idle sessions older than this are dropped; the client restarts the batch.
SESSION_TTL_SECONDS = 60 * 60


@dataclass
class IngestionSession:
    token: str
    owner_id: int
    label: str
    expected_total: int
    storage_prefix: str
    image_refs: list[str] = field(default_factory=list)
    received: int = 0
    chunk_indexes: set[int] = field(default_factory=set)
    last_activity: float = 0.0
    closed: bool = False
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def receipt(self) -> ChunkReceipt:
        return ChunkReceipt(
            received=self.received,
            total=self.expected_total,
            remaining=max(self.expected_total - self.received, 0),
            complete=self.received >= self.expected_total,
        )


class IngestionSessionStore:
    """Owns every open ingestion session.

    The registry lock only guards the dict. Appends to one session are
    serialized by that session's own lock, so sessions never contend.
    """

    def __init__(self, ttl_seconds: float = SESSION_TTL_SECONDS) -> None:
        self._sessions: dict[str, IngestionSession] = {}
        self._lock = threading.Lock()
        self._ttl_seconds = ttl_seconds

    def open(self, owner_id: int, label: str | None, expected_total: int) -> str:
        if expected_total < 1:
            raise ValueError("total_images must be at least 1.")
        self.purge_expired()

        token = str(uuid.uuid4())
        session = IngestionSession(
            token=token,
            owner_id=owner_id,
            label=(label or "").strip() or default_label(),
            expected_total=expected_total,
            storage_prefix=f"code-extraction/{token}",
            last_activity=time.monotonic(),
        )
        with self._lock:
            self._sessions[token] = session

        logger.info(
            "Opened ingestion session %s for owner %s, expecting %d images",
            token,
            owner_id,
            expected_total,
        )
        return token

    def get(self, token: str) -> IngestionSession:
        with self._lock:
            session = self._sessions.get(token)
            if session is not None and self._is_expired(session):
                del self._sessions[token]
                session = None
        if session is None:
            raise UnknownSessionError(token)
        return session

    def check_chunk(self, token: str, chunk_index: int) -> IngestionSession:
        """Return the session if it can still take chunk_index.

        Lets callers reject a chunk before writing its files.
        """
        session = self.get(token)
        with session.lock:
            if session.closed:
                raise UnknownSessionError(token)
            if chunk_index in session.chunk_indexes:
                raise DuplicateChunkError(token, chunk_index)
        return session

    def append(self, token: str, refs: list[str], chunk_index: int) -> ChunkReceipt:
        session = self.get(token)
        with session.lock:
            if session.closed:
                raise UnknownSessionError(token)
            if chunk_index in session.chunk_indexes:
                raise DuplicateChunkError(token, chunk_index)
            session.chunk_indexes.add(chunk_index)
            session.image_refs.extend(refs)
            session.received += len(refs)
            session.last_activity = time.monotonic()
            receipt = session.receipt()

        logger.info(
            "Session %s: chunk %d added %d images (%d/%d)",
            token,
            chunk_index,
            len(refs),
            receipt.received,
            receipt.total,
        )
        if receipt.received > receipt.total:
            logger.warning(
                "Session %s: received %d images, more than the %d announced",
                token,
                receipt.received,
                receipt.total,
            )
        return receipt

    def finalize(self, token: str) -> IngestionSession:
        """Remove the session and return a snapshot of what it collected."""
        with self._lock:
            session = self._sessions.pop(token, None)
        if session is None:
            raise UnknownSessionError(token)

        # Waits for any append still holding the session lock.
        with session.lock:
            session.closed = True
            snapshot = replace(
                session,
                image_refs=list(session.image_refs),
                chunk_indexes=set(session.chunk_indexes),
                lock=threading.Lock(),
            )

        if not snapshot.image_refs:
            raise EmptyBatchError(token)

        logger.info("Finalized session %s with %d images", token, len(snapshot.image_refs))
        return snapshot

    def purge_expired(self) -> int:
        with self._lock:
            expired = [t for t, s in self._sessions.items() if self._is_expired(s)]
            for token in expired:
                del self._sessions[token]
        for token in expired:
            logger.info("Dropped expired ingestion session %s", token)
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._sessions.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def _is_expired(self, session: IngestionSession) -> bool:
        return time.monotonic() - session.last_activity > self._ttl_seconds


def default_label() -> str:
    return f"Extraction {datetime.now(timezone.utc).isoformat(timespec='seconds')}"


SESSION_STORE = IngestionSessionStore()
