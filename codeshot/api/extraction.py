import uuid

from fastapi import APIRouter, BackgroundTasks, File, Form, HTTPException, Query, UploadFile, status

from codeshot.core.errors import JobNotFoundError
from codeshot.core.logging import get_logger
from codeshot.models.extraction import (
    ChunkAccepted,
    ExtractedCode,
    ExtractionJobSnapshot,
    ExtractionJobSummary,
    ExtractionStatus,
    SessionOpened,
)
from codeshot.services.extraction_pipeline import (
    append_chunk,
    create_job,
    finalize_ingestion,
    get_job,
    list_jobs,
    open_ingestion,
    process_job_with_limit,
    validate_job_id,
)
from codeshot.services.file_storage import delete_images, save_uploaded_image, validate_image_filename
from codeshot.services.ingest_sessions import SESSION_STORE

logger = get_logger(__name__)

router = APIRouter(prefix="/v1/code-extraction", tags=["code-extraction"])

# Larger batches must go through the chunked session flow.
MAX_SINGLE_UPLOAD = 200


def _bad_request(exc: ValueError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


def _load_job(job_id: str) -> ExtractionJobSnapshot:
    try:
        validate_job_id(job_id)
        return get_job(job_id)
    except ValueError as exc:
        raise _bad_request(exc) from exc
    except JobNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Job not found.",
        ) from exc


@router.post("/sessions", response_model=SessionOpened)
def start_upload_session(
    owner_id: int = Form(...),
    total_images: int = Form(...),
    label: str | None = Form(None),
) -> SessionOpened:
    """Open a chunked upload session for a large screenshot batch."""
    try:
        token = open_ingestion(owner_id, label, total_images)
    except ValueError as exc:
        raise _bad_request(exc) from exc
    return SessionOpened(session_token=token)


@router.post("/sessions/{session_token}/chunks", response_model=ChunkAccepted)
def upload_chunk(
    session_token: str,
    chunk_index: int = Form(...),
    images: list[UploadFile] = File(...),
) -> ChunkAccepted:
    """Store one chunk of screenshots and record their references.

    Chunks may arrive in any order; reading order comes from the file names.
    """
    try:
        if not images:
            raise ValueError("At least one image is required.")
        for upload in images:
            validate_image_filename(upload.filename)
        session = SESSION_STORE.check_chunk(session_token, chunk_index)
    except ValueError as exc:
        raise _bad_request(exc) from exc

    refs = [save_uploaded_image(session.storage_prefix, upload) for upload in images]

    try:
        receipt = append_chunk(session_token, refs, chunk_index)
    except ValueError as exc:
        delete_images(refs)
        raise _bad_request(exc) from exc

    message = (
        "All images uploaded. Finalize the session to start processing."
        if receipt.complete
        else "Chunk uploaded successfully. Continue uploading."
    )
    return ChunkAccepted(**receipt.model_dump(), message=message)


@router.post(
    "/sessions/{session_token}/finalize",
    response_model=ExtractionJobSnapshot,
    status_code=status.HTTP_202_ACCEPTED,
)
def finalize_upload_session(
    session_token: str,
    background_tasks: BackgroundTasks,
) -> ExtractionJobSnapshot:
    try:
        job_id = finalize_ingestion(session_token)
    except ValueError as exc:
        raise _bad_request(exc) from exc

    background_tasks.add_task(process_job_with_limit, job_id)
    return get_job(job_id)


@router.post("/upload", response_model=ExtractionJobSnapshot, status_code=status.HTTP_202_ACCEPTED)
def upload_and_extract(
    background_tasks: BackgroundTasks,
    owner_id: int = Form(...),
    label: str | None = Form(None),
    images: list[UploadFile] = File(...),
) -> ExtractionJobSnapshot:
    """Single-request upload for small batches.

    Args:
        owner_id: Owner of the extraction job
        label: Optional human-readable job name
        images: Screenshots, named so their digits give the reading order
    """
    if len(images) > MAX_SINGLE_UPLOAD:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=(
                f"Too many images for a single upload (max {MAX_SINGLE_UPLOAD}). "
                "Use the chunked session flow instead."
            ),
        )
    try:
        if not images:
            raise ValueError("At least one image is required.")
        for upload in images:
            validate_image_filename(upload.filename)
    except ValueError as exc:
        raise _bad_request(exc) from exc

    logger.info("Received %d images for extraction from owner %s", len(images), owner_id)
    storage_prefix = f"code-extraction/{uuid.uuid4()}"
    refs = [save_uploaded_image(storage_prefix, upload) for upload in images]
    job_id = create_job(
        owner_id=owner_id,
        label=label,
        image_refs=refs,
        storage_prefix=storage_prefix,
    )

    background_tasks.add_task(process_job_with_limit, job_id)
    return get_job(job_id)


@router.get("/jobs", response_model=list[ExtractionJobSummary])
def get_owner_jobs(owner_id: int = Query(...)) -> list[ExtractionJobSummary]:
    return list_jobs(owner_id)


@router.get("/jobs/{job_id}", response_model=ExtractionJobSnapshot)
def get_job_status(job_id: str) -> ExtractionJobSnapshot:
    return _load_job(job_id)


@router.get("/jobs/{job_id}/code", response_model=ExtractedCode, response_model_exclude_none=True)
def get_extracted_code(job_id: str) -> ExtractedCode:
    job = _load_job(job_id)
    if job.status != ExtractionStatus.COMPLETED:
        return ExtractedCode(
            status=job.status,
            message=job.error or "Extraction not yet completed",
            processed_items=job.processed_items,
            total_items=job.total_items,
        )
    return ExtractedCode(status=job.status, code=job.output, message=job.error)
