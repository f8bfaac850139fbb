from fastapi import FastAPI

from codeshot.api.extraction import router as extraction_router
from codeshot.core.config import get_settings
from codeshot.core.logging import get_logger, setup_logging
from codeshot.services.job_store import JOB_STORE

logger = get_logger(__name__)

app = FastAPI(title="Code Extraction Service")

app.include_router(extraction_router)


@app.on_event("startup")
def _startup() -> None:
    # Fail fast if required env vars are missing.
    settings = get_settings()
    setup_logging(level=settings.log_level)
    if settings.jobs_dir:
        JOB_STORE.enable_persistence(settings.jobs_dir)
    if not settings.merge_available:
        logger.warning("OPENROUTER_API_KEY not set, fragments will be concatenated without merging")


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}
