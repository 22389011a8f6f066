import pymupdf

from disclosure_worker.extraction.models import PageUnit
from disclosure_worker.pdf.base import BasePageSegmenter
from disclosure_worker.pdf.exceptions import MalformedDocumentError


class PyMuPdfSegmenter(BasePageSegmenter):
    """Splits PDFs into page units using PyMuPDF."""

    def page_count(self, pdf_bytes: bytes) -> int:
        try:
            with self._open(pdf_bytes) as doc:
                count = doc.page_count
        except MalformedDocumentError:
            raise
        except Exception as exc:
            raise MalformedDocumentError(f"pymupdf could not read page count: {exc}") from exc
        if count < 1:
            raise MalformedDocumentError("Document has no pages")
        return count

    def segment(self, pdf_bytes: bytes, pages_per_unit: int = 1) -> list[PageUnit]:
        if pages_per_unit < 1:
            raise ValueError(f"pages_per_unit must be >= 1, got {pages_per_unit}")
        try:
            with self._open(pdf_bytes) as doc:
                total = doc.page_count
                if total < 1:
                    raise MalformedDocumentError("Document has no pages")
                units: list[PageUnit] = []
                for ordinal, start in enumerate(range(0, total, pages_per_unit), start=1):
                    end = min(start + pages_per_unit, total) - 1
                    units.append(
                        PageUnit(
                            ordinal=ordinal,
                            first_page=start + 1,
                            page_count=end - start + 1,
                            data=self._copy_pages(doc, start, end),
                        )
                    )
        except MalformedDocumentError:
            raise
        except Exception as exc:
            raise MalformedDocumentError(f"pymupdf segmentation failed: {exc}") from exc
        return units

    def extract_page(self, pdf_bytes: bytes, page_number: int) -> bytes:
        try:
            with self._open(pdf_bytes) as doc:
                if not 1 <= page_number <= doc.page_count:
                    raise MalformedDocumentError(
                        f"Page {page_number} outside document of {doc.page_count} pages"
                    )
                return self._copy_pages(doc, page_number - 1, page_number - 1)
        except MalformedDocumentError:
            raise
        except Exception as exc:
            raise MalformedDocumentError(
                f"pymupdf could not isolate page {page_number}: {exc}"
            ) from exc

    def leading_pages(self, pdf_bytes: bytes, max_pages: int) -> PageUnit:
        if max_pages < 1:
            raise ValueError(f"max_pages must be >= 1, got {max_pages}")
        try:
            with self._open(pdf_bytes) as doc:
                if doc.page_count < 1:
                    raise MalformedDocumentError("Document has no pages")
                count = min(max_pages, doc.page_count)
                data = self._copy_pages(doc, 0, count - 1)
            return PageUnit(ordinal=1, first_page=1, page_count=count, data=data)
        except MalformedDocumentError:
            raise
        except Exception as exc:
            raise MalformedDocumentError(f"pymupdf could not copy leading pages: {exc}") from exc

    @staticmethod
    def _open(pdf_bytes: bytes) -> pymupdf.Document:
        return pymupdf.open(stream=pdf_bytes, filetype="pdf")  # type: ignore[no-untyped-call]

    @staticmethod
    def _copy_pages(doc: pymupdf.Document, start: int, end: int) -> bytes:
        with pymupdf.open() as unit_doc:  # type: ignore[no-untyped-call]
            unit_doc.insert_pdf(doc, from_page=start, to_page=end)
            # no_new_id keeps the trailer /ID stable so output is reproducible.
            return unit_doc.tobytes(garbage=3, deflate=True, no_new_id=True)
