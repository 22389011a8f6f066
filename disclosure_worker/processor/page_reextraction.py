from disclosure_worker.database.models import PageReextractionStatus
from disclosure_worker.database.repositories.documents_repository import DocumentsRepository
from disclosure_worker.database.repositories.job_repository import JobRepository
from disclosure_worker.extraction.base import BaseExtractionClient
from disclosure_worker.extraction.exceptions import ExtractionError, ExtractionUnitFailedError
from disclosure_worker.extraction.patcher import PagePatcher, PatchResult
from disclosure_worker.logging.logger import Log
from disclosure_worker.pdf.base import BasePageSegmenter
from disclosure_worker.storage.file_loader import FileLoader


class PageReextractionService:
    """Re-extracts a single page and patches it into the stored artifacts.

    Per (document, page) the status moves idle -> pending -> processing -> idle,
    or ends in failed, from which a new request is accepted again. A request
    for a page that is pending or processing is rejected, and only a pending
    page can be run.
    """

    def __init__(
        self,
        documents_repo: DocumentsRepository,
        job_repo: JobRepository,
        patcher: PagePatcher,
        file_loader: FileLoader,
        segmenter: BasePageSegmenter,
        client: BaseExtractionClient,
    ) -> None:
        self._documents_repo = documents_repo
        self._job_repo = job_repo
        self._patcher = patcher
        self._file_loader = file_loader
        self._segmenter = segmenter
        self._client = client

    def request(self, document_id: int, page_number: int, enqueue: bool = True) -> None:
        """Claim the page for re-extraction and, by default, queue a worker job.

        Raises:
            DocumentNotFoundError, InvalidPageError, NoStoredRunError: before
                anything is mutated.
            AlreadyInProgressError: if the page is pending or processing.
        """
        self._patcher.validate(document_id, page_number)
        self._documents_repo.begin_page_reextraction(document_id, page_number)
        Log.info(f"Page {page_number} of document {document_id} queued for re-extraction")
        if not enqueue:
            return
        try:
            self._job_repo.enqueue(document_id, page_number)
        except Exception:
            self._documents_repo.set_page_status(
                document_id, page_number, PageReextractionStatus.FAILED
            )
            raise

    def run(self, document_id: int, page_number: int) -> PatchResult:
        """Extract a pending page and patch it in. On error the page is marked failed.

        Raises:
            AlreadyInProgressError: if the page is not pending; its status is
                left untouched.
        """
        self._documents_repo.start_page_processing(document_id, page_number)
        model = self._client.model_identity
        try:
            self._client.ensure_ready()
            document = self._documents_repo.find_by_id(document_id)
            pdf_bytes = self._file_loader.load(document)
            page_bytes = self._segmenter.extract_page(pdf_bytes, page_number)
            try:
                row_set = self._client.extract(page_bytes)
            except ExtractionError as exc:
                raise ExtractionUnitFailedError(page_number, str(exc)) from exc
            result = self._patcher.patch(
                document_id, page_number, row_set.ingress, row_set.egress
            )
        except Exception as exc:
            Log.error(
                f"[{model}] Re-extraction of page {page_number} failed: {exc}",
                document_id=document_id,
            )
            self._documents_repo.set_page_status(
                document_id, page_number, PageReextractionStatus.FAILED
            )
            raise

        self._documents_repo.clear_page_status(document_id, page_number)
        return result

    def reextract(self, document_id: int, page_number: int) -> PatchResult:
        """Claim and run inline, without going through the job queue."""
        self.request(document_id, page_number, enqueue=False)
        return self.run(document_id, page_number)
