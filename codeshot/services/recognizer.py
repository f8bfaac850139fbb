"""Per-image recognition with retry, backoff and rate-limit cool-down."""

from __future__ import annotations

import time
from dataclasses import dataclass

from openai import RateLimitError
from tenacity import RetryCallState, Retrying, stop_after_attempt

from codeshot.core.errors import ImageNotFoundError, RecognitionFailedError
from codeshot.core.logging import get_logger
from codeshot.services.file_storage import detect_mime_type, load_image_bytes
from codeshot.services.vision_client import extract_code_from_image

logger = get_logger(__name__)

MAX_ATTEMPTS = 3

# Wait before retry n is BASE_RETRY_DELAY * 2**n seconds.
BASE_RETRY_DELAY = 0.5

# Extra wait after a rate-limit or quota error, on top of the backoff.
RATE_LIMIT_COOLDOWN = 30.0

_RATE_LIMIT_MARKERS = ("429", "quota", "resource_exhausted", "rate limit", "rate_limit")


@dataclass(frozen=True)
class Fragment:
    """Recognized text for one image, or a placeholder for a failed one."""

    position: int
    ref: str
    text: str
    error: str | None = None

    @property
    def failed(self) -> bool:
        return self.error is not None

    @classmethod
    def failure(cls, position: int, ref: str, error: str) -> "Fragment":
        return cls(position=position, ref=ref, text="", error=error)

    def render(self) -> str:
        if self.failed:
            return f"// --- Image {self.position} (ERROR: {self.error}) ---\n"
        return f"// --- Image {self.position} ---\n{self.text}"


def is_rate_limit_error(exc: BaseException) -> bool:
    """True if the failure says the model is throttling us or out of quota."""
    if isinstance(exc, RateLimitError):
        return True
    if getattr(exc, "status_code", None) == 429:
        return True
    message = str(exc).lower()
    return any(marker in message for marker in _RATE_LIMIT_MARKERS)


def _backoff_wait(retry_state: RetryCallState) -> float:
    delay = BASE_RETRY_DELAY * 2**retry_state.attempt_number
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    if exc is not None and is_rate_limit_error(exc):
        logger.info("Rate limit detected, cooling down %.0fs before retrying", RATE_LIMIT_COOLDOWN)
        delay += RATE_LIMIT_COOLDOWN
    return delay


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "Attempt %d/%d failed (%s), retrying in %.1fs",
        retry_state.attempt_number,
        MAX_ATTEMPTS,
        exc,
        retry_state.next_action.sleep if retry_state.next_action else 0.0,
    )


def recognize_image(ref: str, position: int) -> Fragment:
    """Recognize the code in one image.

    Args:
        ref: Image reference to load from the upload store
        position: 1-based position of the image in reading order

    Returns:
        Fragment holding the recognized text (possibly empty)

    Raises:
        RecognitionFailedError: If the image is missing or every attempt failed
    """
    try:
        image_bytes = load_image_bytes(ref)
    except ImageNotFoundError as exc:
        logger.error("Image %d missing from storage: %s", position, ref)
        raise RecognitionFailedError(position, ref, exc) from exc

    mime_type = detect_mime_type(ref)
    retrying = Retrying(
        stop=stop_after_attempt(MAX_ATTEMPTS),
        wait=_backoff_wait,
        sleep=time.sleep,
        before_sleep=_log_retry,
        reraise=True,
    )
    try:
        text = retrying(extract_code_from_image, image_bytes, mime_type)
    except Exception as exc:
        logger.error(
            "Failed to recognize image %d after %d attempts: %s", position, MAX_ATTEMPTS, exc
        )
        raise RecognitionFailedError(position, ref, exc) from exc

    return Fragment(position=position, ref=ref, text=text)
