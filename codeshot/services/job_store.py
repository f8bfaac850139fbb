"""Thread-safe store for extraction jobs, optionally mirrored to disk."""

from __future__ import annotations

import os
import threading
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from codeshot.core.errors import (
    InvalidTransitionError,
    JobNotFoundError,
    StorageUnavailableError,
)
from codeshot.core.logging import get_logger
from codeshot.models.extraction import ExtractionJobRecord, ExtractionStatus, utcnow

logger = get_logger(__name__)

_ALLOWED_TRANSITIONS: dict[ExtractionStatus, set[ExtractionStatus]] = {
    ExtractionStatus.PENDING: {ExtractionStatus.PROCESSING, ExtractionStatus.FAILED},
    ExtractionStatus.PROCESSING: {ExtractionStatus.COMPLETED, ExtractionStatus.FAILED},
    ExtractionStatus.COMPLETED: set(),
    ExtractionStatus.FAILED: set(),
}

INTERRUPTED_MESSAGE = "Interrupted by service restart"


class JobStore:
    """Keyed by job id. Every update is applied and persisted under one lock.

    Readers get copies, so a polling client never sees a half-applied update.
    """

    def __init__(self, jobs_dir: str | None = None) -> None:
        self._jobs: dict[str, ExtractionJobRecord] = {}
        self._lock = threading.Lock()
        self._jobs_dir: Path | None = Path(jobs_dir) if jobs_dir else None

    @property
    def jobs_dir(self) -> Path | None:
        return self._jobs_dir

    def enable_persistence(self, jobs_dir: str) -> int:
        """Mirror jobs to {jobs_dir}/{job_id}.json and load existing ones.

        Returns:
            Number of jobs loaded from disk
        """
        path = Path(jobs_dir)
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageUnavailableError(f"Cannot create jobs directory {path}: {exc}") from exc
        with self._lock:
            self._jobs_dir = path
        return self.load()

    def load(self) -> int:
        """Load persisted jobs. Jobs left mid-run by a crash are marked FAILED."""
        if self._jobs_dir is None:
            return 0

        loaded = 0
        for file_path in sorted(self._jobs_dir.glob("*.json")):
            try:
                record = ExtractionJobRecord.model_validate_json(file_path.read_text(encoding="utf-8"))
            except (OSError, ValidationError) as exc:
                logger.error("Skipping unreadable job file %s: %s", file_path, exc)
                continue

            with self._lock:
                if not record.status.is_terminal:
                    logger.warning(
                        "Job %s was %s when the service stopped, marking failed",
                        record.job_id,
                        record.status.value,
                    )
                    record = self._updated(
                        record,
                        {"status": ExtractionStatus.FAILED, "error": INTERRUPTED_MESSAGE},
                    )
                    try:
                        self._persist(record)
                    except StorageUnavailableError as exc:
                        logger.error("Job %s: failed state kept in memory only - %s", record.job_id, exc)
                self._jobs[record.job_id] = record
            loaded += 1

        logger.info("Loaded %d jobs from %s", loaded, self._jobs_dir)
        return loaded

    def add(self, record: ExtractionJobRecord) -> None:
        with self._lock:
            if record.job_id in self._jobs:
                raise ValueError(f"Job '{record.job_id}' already exists.")
            self._persist(record)
            self._jobs[record.job_id] = record

    def get(self, job_id: str) -> ExtractionJobRecord | None:
        with self._lock:
            record = self._jobs.get(job_id)
            return record.model_copy(deep=True) if record is not None else None

    def require(self, job_id: str) -> ExtractionJobRecord:
        record = self.get(job_id)
        if record is None:
            raise JobNotFoundError(job_id)
        return record

    def list_for_owner(self, owner_id: int) -> list[ExtractionJobRecord]:
        with self._lock:
            records = [r.model_copy(deep=True) for r in self._jobs.values() if r.owner_id == owner_id]
        return sorted(records, key=lambda r: r.created_at, reverse=True)

    def update(self, job_id: str, **fields: Any) -> ExtractionJobRecord:
        """Atomically apply field updates and persist the record."""
        with self._lock:
            record = self._jobs.get(job_id)
            if record is None:
                raise JobNotFoundError(job_id)
            updated = self._updated(record, fields)
            # A failed write leaves the stored record as it was.
            self._persist(updated)
            self._jobs[job_id] = updated
            return updated.model_copy(deep=True)

    def set_status(self, job_id: str, status: ExtractionStatus, **fields: Any) -> ExtractionJobRecord:
        return self.update(job_id, status=status, **fields)

    def set_processed(self, job_id: str, processed_items: int) -> ExtractionJobRecord:
        return self.update(job_id, processed_items=processed_items)

    def clear(self) -> None:
        with self._lock:
            self._jobs.clear()

    def _updated(self, record: ExtractionJobRecord, fields: dict[str, Any]) -> ExtractionJobRecord:
        status = fields.get("status")
        if status is not None:
            status = ExtractionStatus(status)
            fields["status"] = status
        if status is not None and status != record.status:
            if status not in _ALLOWED_TRANSITIONS[record.status]:
                raise InvalidTransitionError(
                    f"Job '{record.job_id}' cannot move from {record.status.value} to {status.value}."
                )

        processed = fields.get("processed_items")
        if processed is not None:
            if processed < record.processed_items:
                raise ValueError(
                    f"processed_items cannot decrease ({record.processed_items} -> {processed})."
                )
            if processed > record.total_items:
                raise ValueError(
                    f"processed_items cannot exceed total_items ({processed} > {record.total_items})."
                )

        unknown = set(fields) - set(ExtractionJobRecord.model_fields)
        if unknown:
            raise ValueError(f"Unknown job fields: {', '.join(sorted(unknown))}")

        now = utcnow()
        changes = dict(fields, updated_at=now)
        if status is not None and status.is_terminal and record.completed_at is None:
            changes["completed_at"] = now
        return record.model_copy(update=changes, deep=True)

    def _persist(self, record: ExtractionJobRecord) -> None:
        if self._jobs_dir is None:
            return
        target = self._jobs_dir / f"{record.job_id}.json"
        temp = target.with_suffix(".json.tmp")
        try:
            temp.write_text(record.model_dump_json(indent=2), encoding="utf-8")
            os.replace(temp, target)
        except OSError as exc:
            raise StorageUnavailableError(f"Failed to persist job {record.job_id}: {exc}") from exc


JOB_STORE = JobStore()
