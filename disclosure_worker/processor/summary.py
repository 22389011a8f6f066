from pathlib import Path

from disclosure_worker.config.settings import Settings
from disclosure_worker.database.models import JobKind, SummaryExtractionRecord, SummaryStatus
from disclosure_worker.database.repositories.documents_repository import DocumentsRepository
from disclosure_worker.database.repositories.job_repository import JobRepository
from disclosure_worker.database.repositories.summary_extractions_repository import (
    SummaryExtractionsRepository,
)
from disclosure_worker.extraction.exceptions import ExtractionError
from disclosure_worker.extraction.factory import ExtractorFactory
from disclosure_worker.extraction.summary import SummaryExtractor
from disclosure_worker.logging.logger import Log
from disclosure_worker.pdf.base import BasePageSegmenter
from disclosure_worker.pdf.factory import PageSegmenterFactory
from disclosure_worker.storage.file_loader import FileLoader


class SummaryExtractionService:
    """Finds the income/expense summary form among a document's first pages.

    Runs as its own stage with its own status on the document, after the
    table extraction. A failed model call or a response without a summary
    completes the stage with nothing stored; anything else fails it.
    """

    def __init__(
        self,
        documents_repo: DocumentsRepository,
        summaries_repo: SummaryExtractionsRepository,
        job_repo: JobRepository,
        file_loader: FileLoader,
        segmenter: BasePageSegmenter,
        extractor: SummaryExtractor,
        max_pages: int = 8,
    ) -> None:
        self._documents_repo = documents_repo
        self._summaries_repo = summaries_repo
        self._job_repo = job_repo
        self._file_loader = file_loader
        self._segmenter = segmenter
        self._extractor = extractor
        self._max_pages = max_pages

    def request(self, document_id: int) -> int:
        """Mark the summary stage pending and queue a summary job. Returns the job id."""
        self._documents_repo.find_by_id(document_id)
        self._documents_repo.set_summary_status(document_id, SummaryStatus.PENDING)
        job_id = self._job_repo.enqueue(document_id, kind=JobKind.SUMMARY)
        Log.info(f"Summary extraction for document {document_id} queued as job {job_id}")
        return job_id

    def run(self, document_id: int) -> SummaryExtractionRecord | None:
        """Extract and store the summary. Returns None when none was found."""
        model = self._extractor.model_identity
        self._documents_repo.set_summary_status(document_id, SummaryStatus.PROCESSING)
        try:
            self._extractor.ensure_ready()
            document = self._documents_repo.find_by_id(document_id)
            unit = self._segmenter.leading_pages(
                self._file_loader.load(document), self._max_pages
            )
            Log.info(f"[{model}] Looking for the summary in the first {unit.page_count} pages")
            record = self._extract_and_store(document_id, unit.data, unit.page_count)
        except Exception as exc:
            Log.error(f"[{model}] Summary extraction of document {document_id} failed: {exc}")
            self._documents_repo.set_summary_status(
                document_id, SummaryStatus.FAILED, str(exc) or type(exc).__name__
            )
            raise

        self._documents_repo.set_summary_status(document_id, SummaryStatus.COMPLETED)
        return record

    def _extract_and_store(
        self, document_id: int, pdf_bytes: bytes, page_count: int
    ) -> SummaryExtractionRecord | None:
        model = self._extractor.model_identity
        try:
            summary = self._extractor.extract(pdf_bytes)
        except ExtractionError as exc:
            Log.error(f"[{model}] Error reading the summary of document {document_id}: {exc}")
            return None

        if not summary.found:
            Log.info(f"[{model}] No summary found in the first {page_count} pages")
            return None

        page_number = summary.page_number
        if page_number is None or not 1 <= page_number <= page_count:
            page_number = 1
        record = self._summaries_repo.insert(document_id, model, page_number, summary)
        Log.info(f"[{model}] Found the summary of document {document_id} on page {page_number}")
        return record


def build_summary_extraction(
    settings: Settings,
    files_root: Path | None = None,
) -> SummaryExtractionService:
    """Build a SummaryExtractionService with all required adapters."""
    return SummaryExtractionService(
        documents_repo=DocumentsRepository(),
        summaries_repo=SummaryExtractionsRepository(),
        job_repo=JobRepository(settings.max_job_attempts),
        file_loader=FileLoader(files_root=files_root or Path(settings.files_root)),
        segmenter=PageSegmenterFactory.create(settings),
        extractor=ExtractorFactory.create_summary_extractor(settings),
        max_pages=settings.summary_max_pages,
    )
