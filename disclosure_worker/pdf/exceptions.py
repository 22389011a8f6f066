class PdfError(Exception):
    """Base exception for PDF handling."""


class MalformedDocumentError(PdfError):
    """Raised when the page count cannot be determined or a page cannot be isolated."""
