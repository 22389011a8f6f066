from abc import ABC, abstractmethod

from disclosure_worker.extraction.models import PageUnit


class BasePageSegmenter(ABC):
    """Contract for all PDF page segmentation adapters."""

    @abstractmethod
    def page_count(self, pdf_bytes: bytes) -> int:
        """Return the number of pages in the document.

        Raises:
            MalformedDocumentError: if the page count cannot be determined.
        """

    @abstractmethod
    def segment(self, pdf_bytes: bytes, pages_per_unit: int = 1) -> list[PageUnit]:
        """Split a document into independently extractable units.

        Args:
            pdf_bytes: Raw PDF file content.
            pages_per_unit: Pages per unit; the last unit may be shorter.

        Returns:
            Units ordered by ordinal. Ordinals start at 1 and are contiguous,
            and every page is covered exactly once. Segmenting the same bytes
            twice yields byte-identical units.

        Raises:
            MalformedDocumentError: if any page cannot be isolated. No partial
                result is returned.
        """

    @abstractmethod
    def extract_page(self, pdf_bytes: bytes, page_number: int) -> bytes:
        """Isolate a single 1-indexed page as a standalone PDF.

        Raises:
            MalformedDocumentError: if the page cannot be isolated.
        """

    @abstractmethod
    def leading_pages(self, pdf_bytes: bytes, max_pages: int) -> PageUnit:
        """Copy the first ``max_pages`` pages (or all, if fewer) into one unit.

        Raises:
            MalformedDocumentError: if the document has no pages or cannot be read.
        """
