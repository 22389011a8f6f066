class BatchError(Exception):
    """Base exception for batch extraction."""


class InvalidKeyFormatError(BatchError):
    """Raised when a request key is not ``<group_id>:batch-<ordinal>``."""


class BatchClientError(BatchError):
    """Raised when the batch provider rejects or fails a call."""


class BatchJobNotFoundError(BatchError):
    """Raised when no batch job with the given name has been recorded."""


class BatchJobTerminalFailureError(BatchError):
    """Raised when a batch job ends failed, cancelled or expired."""

    def __init__(self, job_name: str, state: str, detail: str | None = None) -> None:
        message = f"Batch job {job_name} ended in state {state}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.job_name = job_name
        self.state = state
