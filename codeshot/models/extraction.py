from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ExtractionStatus(str, Enum):
    """Lifecycle of one extraction job."""

    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (ExtractionStatus.COMPLETED, ExtractionStatus.FAILED)


class ExtractionJobRecord(BaseModel):
    job_id: str
    owner_id: int
    label: str
    status: ExtractionStatus = ExtractionStatus.PENDING
    total_items: int = Field(ge=0)
    processed_items: int = Field(default=0, ge=0)
    output: str | None = None
    error: str | None = None
    image_refs: list[str] = Field(default_factory=list)
    storage_prefix: str | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    completed_at: datetime | None = None

    def snapshot(self) -> "ExtractionJobSnapshot":
        return ExtractionJobSnapshot(
            job_id=self.job_id,
            label=self.label,
            status=self.status,
            total_items=self.total_items,
            processed_items=self.processed_items,
            output=self.output,
            error=self.error,
            created_at=self.created_at,
            completed_at=self.completed_at,
        )

    def summary(self) -> "ExtractionJobSummary":
        return ExtractionJobSummary(
            job_id=self.job_id,
            label=self.label,
            status=self.status,
            total_items=self.total_items,
            created_at=self.created_at,
            completed_at=self.completed_at,
        )


class ExtractionJobSnapshot(BaseModel):
    """What a polling client sees."""

    job_id: str
    label: str
    status: ExtractionStatus
    total_items: int
    processed_items: int
    output: str | None = None
    error: str | None = None
    created_at: datetime
    completed_at: datetime | None = None


class ExtractionJobSummary(BaseModel):
    job_id: str
    label: str
    status: ExtractionStatus
    total_items: int
    created_at: datetime
    completed_at: datetime | None = None


class SessionOpened(BaseModel):
    session_token: str
    message: str = "Upload session started. Upload images in chunks, then finalize."


class ChunkReceipt(BaseModel):
    received: int
    total: int
    remaining: int
    complete: bool = False


class ChunkAccepted(ChunkReceipt):
    message: str


class ExtractedCode(BaseModel):
    status: ExtractionStatus
    code: str | None = None
    message: str | None = None
    processed_items: int | None = None
    total_items: int | None = None
