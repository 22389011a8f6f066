from pathlib import Path

from disclosure_worker.config.settings import Settings
from disclosure_worker.database.models import DocumentStatus
from disclosure_worker.database.repositories.documents_repository import DocumentsRepository
from disclosure_worker.database.repositories.extraction_runs_repository import (
    ExtractionRunsRepository,
)
from disclosure_worker.database.repositories.job_repository import JobRepository
from disclosure_worker.database.repositories.validated_data_repository import (
    ValidatedDataRepository,
)
from disclosure_worker.extraction.aggregator import aggregate, count_rows_by_page
from disclosure_worker.extraction.base import BaseExtractionClient
from disclosure_worker.extraction.dispatcher import ExtractionDispatcher
from disclosure_worker.extraction.factory import ExtractorFactory
from disclosure_worker.extraction.patcher import PagePatcher
from disclosure_worker.logging.logger import Log
from disclosure_worker.pdf.base import BasePageSegmenter
from disclosure_worker.pdf.factory import PageSegmenterFactory
from disclosure_worker.processor.page_reextraction import PageReextractionService
from disclosure_worker.processor.summary import SummaryExtractionService, build_summary_extraction
from disclosure_worker.storage.file_loader import FileLoader


class DocumentExtractionService:
    """Runs the whole-document pipeline: load -> segment -> dispatch -> aggregate -> store."""

    def __init__(
        self,
        file_loader: FileLoader,
        documents_repo: DocumentsRepository,
        runs_repo: ExtractionRunsRepository,
        job_repo: JobRepository,
        segmenter: BasePageSegmenter,
        client: BaseExtractionClient,
        dispatcher: ExtractionDispatcher,
        summary: SummaryExtractionService | None = None,
    ) -> None:
        self._file_loader = file_loader
        self._documents_repo = documents_repo
        self._runs_repo = runs_repo
        self._job_repo = job_repo
        self._segmenter = segmenter
        self._client = client
        self._dispatcher = dispatcher
        self._summary = summary

    def process(self, document_id: int, job_id: int | None = None) -> int:
        """Extract every page of a document and store the run.

        Returns the id of the new extraction run. Pages whose call fails are
        stored empty; anything that fails the document as a whole marks it
        failed and propagates. When summary extraction is enabled a summary
        job is queued before the document is marked completed.

        Raises:
            DocumentNotFoundError: if the document does not exist.
            AlreadyInProgressError: if the document is already processing.
        """
        model = self._client.model_identity
        Log.info(f"[{model}] Processing document {document_id}", job_id=job_id)
        self._documents_repo.mark_processing(document_id)

        try:
            document = self._documents_repo.find_by_id(document_id)
            pdf_bytes = self._file_loader.load(document)
            Log.info(f"Loaded {len(pdf_bytes)} bytes for document {document_id}")

            units = self._segmenter.segment(pdf_bytes)
            results = self._dispatcher.dispatch(units)
            row_set = aggregate(results)

            run = self._runs_repo.insert(document_id, model, row_set)
            if self._summary is not None:
                self._summary.request(document_id)
            self._documents_repo.mark_completed(document_id, page_count=len(units))
        except Exception as exc:
            Log.error(f"[{model}] Extraction of document {document_id} failed: {exc}")
            self._documents_repo.mark_failed(document_id, str(exc) or type(exc).__name__)
            raise

        failed_pages = [r.page_number for r in results if r.failed]
        Log.info(
            f"[{model}] Document {document_id} completed: "
            f"{len(row_set.ingress)} ingress, {len(row_set.egress)} egress "
            f"across {len(count_rows_by_page(row_set))} of {len(units)} pages",
            run_id=run.id,
            failed_pages=",".join(map(str, failed_pages)) or "-",
        )
        return run.id

    def retry(self, document_id: int) -> int:
        """Discard a document's runs, reset it to pending and queue a new job."""
        deleted = self._runs_repo.delete_by_document(document_id)
        self._documents_repo.reset_to_pending(document_id)
        job_id = self._job_repo.enqueue(document_id)
        Log.info(
            f"Document {document_id} reset for re-extraction "
            f"({deleted} previous runs deleted, job {job_id})"
        )
        return job_id

    def retry_all_failed(self) -> list[int]:
        """Retry every failed document. Returns the ids of the queued jobs."""
        failed = self._documents_repo.list_by_status(DocumentStatus.FAILED)
        Log.info(f"Retrying {len(failed)} failed documents")
        return [self.retry(document.id) for document in failed]


def build_processor(
    settings: Settings,
    files_root: Path | None = None,
) -> DocumentExtractionService:
    """Build a DocumentExtractionService with all required adapters."""
    client = ExtractorFactory.create(settings)
    return DocumentExtractionService(
        file_loader=FileLoader(files_root=files_root or Path(settings.files_root)),
        documents_repo=DocumentsRepository(),
        runs_repo=ExtractionRunsRepository(),
        job_repo=JobRepository(settings.max_job_attempts),
        segmenter=PageSegmenterFactory.create(settings),
        client=client,
        dispatcher=ExtractionDispatcher(client, max_concurrency=settings.page_concurrency),
        summary=(
            build_summary_extraction(settings, files_root)
            if settings.summary_extraction_enabled
            else None
        ),
    )


def build_page_reextraction(
    settings: Settings,
    files_root: Path | None = None,
) -> PageReextractionService:
    """Build a PageReextractionService with all required adapters."""
    documents_repo = DocumentsRepository()
    patcher = PagePatcher(
        documents_repo,
        ExtractionRunsRepository(),
        ValidatedDataRepository(),
        model_family=settings.reextraction_model_family,
    )
    return PageReextractionService(
        documents_repo=documents_repo,
        job_repo=JobRepository(settings.max_job_attempts),
        patcher=patcher,
        file_loader=FileLoader(files_root=files_root or Path(settings.files_root)),
        segmenter=PageSegmenterFactory.create(settings),
        client=ExtractorFactory.create(settings),
    )
