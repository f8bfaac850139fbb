import asyncio
import time
import uuid

from codeshot.core.errors import RecognitionFailedError
from codeshot.core.logging import get_logger
from codeshot.models.extraction import (
    ChunkReceipt,
    ExtractionJobRecord,
    ExtractionJobSnapshot,
    ExtractionJobSummary,
    ExtractionStatus,
)
from codeshot.services.assembler import assemble_fragments
from codeshot.services.file_storage import cleanup_batch_files
from codeshot.services.ingest_sessions import SESSION_STORE, default_label
from codeshot.services.job_store import JOB_STORE
from codeshot.services.ordering import sort_image_refs
from codeshot.services.recognizer import Fragment, recognize_image

logger = get_logger(__name__)

# Stop a job after this many images in a row failed every attempt.
MAX_CONSECUTIVE_FAILURES = 5

# Pause after each successful recognition to stay under rate limits (seconds)
INTER_ITEM_DELAY = 0.5

# Jobs processed at the same time; items inside a job are always sequential.
MAX_CONCURRENT_JOBS = 2

_PROCESSING_SEMAPHORE = asyncio.Semaphore(MAX_CONCURRENT_JOBS)


def validate_job_id(job_id: str) -> None:
    try:
        uuid.UUID(job_id)
    except ValueError as exc:
        raise ValueError("Invalid job id.") from exc


def open_ingestion(owner_id: int, label: str | None, expected_total: int) -> str:
    return SESSION_STORE.open(owner_id, label, expected_total)


def append_chunk(token: str, refs: list[str], chunk_index: int) -> ChunkReceipt:
    return SESSION_STORE.append(token, refs, chunk_index)


def finalize_ingestion(token: str) -> str:
    """Turn a finished upload session into a PENDING job.

    The caller schedules process_job_with_limit for the returned id.
    """
    session = SESSION_STORE.finalize(token)
    return create_job(
        owner_id=session.owner_id,
        label=session.label,
        image_refs=session.image_refs,
        storage_prefix=session.storage_prefix,
    )


def create_job(
    *,
    owner_id: int,
    label: str | None,
    image_refs: list[str],
    storage_prefix: str | None = None,
) -> str:
    if not image_refs:
        raise ValueError("At least one image is required.")

    job_id = str(uuid.uuid4())
    record = ExtractionJobRecord(
        job_id=job_id,
        owner_id=owner_id,
        label=(label or "").strip() or default_label(),
        status=ExtractionStatus.PENDING,
        total_items=len(image_refs),
        image_refs=list(image_refs),
        storage_prefix=storage_prefix,
    )
    JOB_STORE.add(record)
    logger.info("Created job %s for owner %s with %d images", job_id, owner_id, len(image_refs))
    return job_id


def get_job(job_id: str) -> ExtractionJobSnapshot:
    return JOB_STORE.require(job_id).snapshot()


def list_jobs(owner_id: int) -> list[ExtractionJobSummary]:
    return [record.summary() for record in JOB_STORE.list_for_owner(owner_id)]


def process_job(job_id: str) -> None:
    """Process an extraction job: sort → recognize each image → assemble."""
    logger.info("Starting job %s", job_id)

    record = JOB_STORE.get(job_id)
    if record is None:
        logger.error("Job %s not found in store", job_id)
        return

    try:
        JOB_STORE.set_status(job_id, ExtractionStatus.PROCESSING)

        ordered_refs = sort_image_refs(record.image_refs)
        total = len(ordered_refs)
        fragments: list[Fragment] = []
        consecutive_failures = 0

        for position, ref in enumerate(ordered_refs, start=1):
            logger.info("Job %s: image %d/%d: %s", job_id, position, total, ref)

            try:
                fragment = recognize_image(ref, position)
            except RecognitionFailedError as exc:
                succeeded = False
                consecutive_failures += 1
                fragments.append(Fragment.failure(position, ref, exc.reason))
                logger.warning("Job %s: image %d recorded as failed: %s", job_id, position, exc.reason)
            else:
                succeeded = True
                consecutive_failures = 0
                if fragment.text.strip():
                    fragments.append(fragment)
                else:
                    logger.info("Job %s: no code recognized in image %d", job_id, position)

            JOB_STORE.set_processed(job_id, position)

            if consecutive_failures >= MAX_CONSECUTIVE_FAILURES:
                not_attempted = total - position
                note = (
                    f"Stopped after {consecutive_failures} consecutive failures at image "
                    f"{position}; {not_attempted} image(s) not attempted"
                )
                logger.error("Job %s: %s", job_id, note)
                JOB_STORE.update(job_id, error=note)
                break

            if succeeded and position < total:
                time.sleep(INTER_ITEM_DELAY)

        logger.info("Job %s: assembling %d fragments", job_id, len(fragments))
        output = assemble_fragments(fragments)

        JOB_STORE.set_status(job_id, ExtractionStatus.COMPLETED, output=output)
        logger.info("Job %s: completed, %d fragments assembled", job_id, len(fragments))

    except Exception as exc:
        error_msg = str(exc) or type(exc).__name__
        logger.error("Job %s: failed - %s: %s", job_id, type(exc).__name__, error_msg)
        try:
            JOB_STORE.set_status(job_id, ExtractionStatus.FAILED, error=error_msg)
        except Exception:
            logger.exception("Job %s: could not record failure", job_id)
        return

    if record.storage_prefix:
        try:
            cleanup_batch_files(record.storage_prefix)
        except OSError as exc:
            logger.warning("Job %s: could not remove uploaded images - %s", job_id, exc)


async def process_job_with_limit(job_id: str) -> None:
    """Process job with a bounded number of jobs running at once.

    The job runs in the default executor so recognition calls and retry
    sleeps never block the event loop.
    """
    logger.info("Job %s: waiting for processing slot", job_id)
    async with _PROCESSING_SEMAPHORE:
        logger.info("Job %s: acquired processing slot", job_id)
        loop = asyncio.get_event_loop()
        await loop.run_in_executor(None, process_job, job_id)

