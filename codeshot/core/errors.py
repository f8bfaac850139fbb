"""Exception types shared by the ingestion and extraction layers."""

from __future__ import annotations


class UnknownSessionError(ValueError):
    """Raised when an ingestion token is absent, expired or already finalized."""

    def __init__(self, token: str) -> None:
        super().__init__(f"Invalid or expired session '{token}'.")
        self.token = token


class EmptyBatchError(ValueError):
    """Raised when a session is finalized before any image was received."""

    def __init__(self, token: str) -> None:
        super().__init__(f"No images were uploaded for session '{token}'.")
        self.token = token


class DuplicateChunkError(ValueError):
    """Raised when a chunk index was already accepted for the session."""

    def __init__(self, token: str, chunk_index: int) -> None:
        super().__init__(f"Chunk {chunk_index} was already uploaded for session '{token}'.")
        self.token = token
        self.chunk_index = chunk_index


class InvalidTransitionError(ValueError):
    """Raised when a job status update would move backwards."""


class JobNotFoundError(LookupError):
    def __init__(self, job_id: str) -> None:
        super().__init__(f"Job '{job_id}' not found.")
        self.job_id = job_id


class ExtractionError(Exception):
    """Base class for failures inside the extraction pipeline."""


class ImageNotFoundError(ExtractionError):
    def __init__(self, ref: str) -> None:
        super().__init__(f"Image not found: {ref}")
        self.ref = ref


class RecognitionFailedError(ExtractionError):
    """Raised when every recognition attempt for one image failed."""

    def __init__(self, position: int, ref: str, last_error: BaseException) -> None:
        super().__init__(f"Image {position} failed: {last_error}")
        self.position = position
        self.ref = ref
        self.last_error = last_error

    @property
    def reason(self) -> str:
        return str(self.last_error) or type(self.last_error).__name__


class MergeUnavailableError(ExtractionError):
    """Raised when the merge model cannot be reached or is not configured."""


class AssemblyFailedError(ExtractionError):
    """Raised when the merge model answered but the answer is unusable."""


class StorageUnavailableError(ExtractionError):
    """Raised when job state cannot be persisted."""
