"""Custom exception hierarchy for the recording processing pipeline.

All exceptions inherit from PipelineError, enabling targeted handling
at pipeline boundaries while preserving specific failure context.
Only TransientWorkerError is retryable; everything else is fatal for
the current stage run.
"""


class PipelineError(Exception):
    """Base exception for all recording pipeline errors."""

    retryable = False

    def __init__(self, message: str, recording_id: str | None = None) -> None:
        self.recording_id = recording_id
        super().__init__(message)

    def __str__(self) -> str:
        if self.recording_id:
            return f"[recording={self.recording_id}] {super().__str__()}"
        return super().__str__()


class WorkerError(PipelineError):
    """Raised when an external worker (speech-to-text, LLM) call fails."""

    def __init__(
        self,
        message: str,
        recording_id: str | None = None,
        provider: str | None = None,
        status_code: int | None = None,
    ) -> None:
        self.provider = provider
        self.status_code = status_code
        super().__init__(message, recording_id)


class TransientWorkerError(WorkerError):
    """Worker is temporarily unable to serve the request (overload, 503)."""

    retryable = True


class FatalWorkerError(WorkerError):
    """Worker rejected the request in a way retrying will not fix."""


class RetriesExhaustedError(PipelineError):
    """Raised when a transient failure persisted for every attempt."""

    def __init__(
        self,
        message: str,
        attempts: int,
        last_error: Exception,
        recording_id: str | None = None,
    ) -> None:
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(message, recording_id)


class ValidationError(PipelineError):
    """Raised when worker output is malformed or out of range."""

    def __init__(
        self,
        message: str,
        recording_id: str | None = None,
        field: str | None = None,
    ) -> None:
        self.field = field
        super().__init__(message, recording_id)


class PreconditionError(PipelineError):
    """Raised when a stage is invoked on input or state it cannot accept."""


class StorageError(PipelineError):
    """Raised when blob storage operations fail."""

    def __init__(
        self,
        message: str,
        recording_id: str | None = None,
        operation: str | None = None,
    ) -> None:
        self.operation = operation
        super().__init__(message, recording_id)


class NotFoundError(StorageError):
    """Raised when a blob or record does not exist."""

    def __init__(
        self,
        message: str,
        recording_id: str | None = None,
        operation: str | None = None,
        key: str | None = None,
    ) -> None:
        self.key = key
        super().__init__(message, recording_id, operation)


class PersistenceError(PipelineError):
    """Raised when the relational store rejects or fails a write/read."""

    def __init__(
        self,
        message: str,
        recording_id: str | None = None,
        operation: str | None = None,
    ) -> None:
        self.operation = operation
        super().__init__(message, recording_id)


def describe_failure(exc: BaseException) -> str:
    """Render a failure for operators.

    Exhausted transient failures say how many attempts were made so the
    reader knows resubmitting later may help; every other failure is
    reported as one that will not be retried automatically.
    """
    if isinstance(exc, RetriesExhaustedError):
        return (
            f"Retried {exc.attempts} times and gave up: {exc.last_error}. "
            "The service was temporarily unavailable; resubmitting later "
            "may succeed."
        )
    return f"Will not retry automatically: {exc}"
