from disclosure_worker.config.settings import Settings
from disclosure_worker.database.models import JobKind, JobRecord
from disclosure_worker.database.repositories.job_repository import JobRepository
from disclosure_worker.logging.logger import Log
from disclosure_worker.processor.page_reextraction import PageReextractionService
from disclosure_worker.processor.processor import DocumentExtractionService
from disclosure_worker.processor.summary import SummaryExtractionService


class JobRunner:
    """Run one job, catch exceptions, and apply retry logic.

    Extraction jobs without a page number extract the whole document; jobs
    with one re-extract that single page. Summary jobs read the summary form.
    A failed page job is never retried here: its page is left failed and a new
    request is up to the user.
    """

    def __init__(
        self,
        processor: DocumentExtractionService,
        page_reextraction: PageReextractionService,
        summary: SummaryExtractionService,
        job_repo: JobRepository,
        settings: Settings,
    ) -> None:
        self._processor = processor
        self._page_reextraction = page_reextraction
        self._summary = summary
        self._job_repo = job_repo
        self._settings = settings

    def run(self, job: JobRecord) -> None:
        """Execute a single job with error handling."""
        Log.info(f"Running job {job.id} ({self._describe(job)}, attempt {job.attempts + 1})")
        try:
            if job.kind is JobKind.SUMMARY:
                self._summary.run(job.document_id)
            elif job.page_number is not None:
                self._page_reextraction.run(job.document_id, job.page_number)
            else:
                self._processor.process(job.document_id, job.id)
            self._job_repo.mark_done(job.id)
            Log.info(f"Job {job.id} completed successfully")
        except Exception as exc:
            self._handle_failure(job, exc)

    def _handle_failure(self, job: JobRecord, exc: Exception) -> None:
        """Increment attempts; mark failed if at max (or a page job), otherwise back to pending."""
        Log.error(f"Job {job.id} failed: {exc}", document_id=job.document_id)
        if job.kind is JobKind.EXTRACTION and job.page_number is not None:
            self._job_repo.mark_failed(job.id, str(exc))
            Log.error(f"Page job {job.id} failed; the page can be requested again")
        elif job.attempts + 1 >= self._settings.max_job_attempts:
            self._job_repo.mark_failed(job.id, str(exc))
            Log.error(f"Job {job.id} permanently failed after {job.attempts + 1} attempts")
        else:
            self._job_repo.increment_attempts(job.id)
            Log.warning(f"Job {job.id} will be retried (attempt {job.attempts + 2})")

    @staticmethod
    def _describe(job: JobRecord) -> str:
        if job.kind is JobKind.SUMMARY:
            return f"summary of document {job.document_id}"
        if job.page_number is None:
            return f"document {job.document_id}"
        return f"document {job.document_id}, page {job.page_number}"
