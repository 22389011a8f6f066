class ExtractionError(Exception):
    """Raised when extracting rows from a unit fails."""


class ExtractionResponseError(ExtractionError):
    """Raised when the AI provider answers with something that is not a row set."""


class ExtractionNetworkError(ExtractionError):
    """Raised when the AI provider call fails due to network/infrastructure issues."""


class ExtractionClientUnavailableError(ExtractionError):
    """Raised before any call when the extraction client cannot be used at all."""


class ExtractionUnitFailedError(ExtractionError):
    """Raised when a single unit (page) could not be extracted."""

    def __init__(self, page_number: int, reason: str) -> None:
        super().__init__(f"Extraction of page {page_number} failed: {reason}")
        self.page_number = page_number
        self.reason = reason


class PatchError(Exception):
    """Base exception for page patching and re-extraction."""


class DocumentNotFoundError(PatchError):
    """Raised when a document cannot be found in the database."""


class NoStoredRunError(PatchError):
    """Raised when a document has no extraction run to patch."""


class InvalidPageError(PatchError):
    """Raised when a page number is outside [1, page_count]."""


class AlreadyInProgressError(PatchError):
    """Raised when an extraction for the same target is already pending or running."""
