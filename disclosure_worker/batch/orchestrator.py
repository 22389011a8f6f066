import json
import time
from collections.abc import Callable, Sequence
from pathlib import Path

from disclosure_worker.batch.client_base import BaseBatchClient
from disclosure_worker.batch.exceptions import (
    BatchClientError,
    BatchError,
    BatchJobNotFoundError,
    BatchJobTerminalFailureError,
)
from disclosure_worker.batch.gemini_batch_adapter import GeminiBatchClient
from disclosure_worker.batch.models import BatchGroup, BatchJobState, BatchStatus
from disclosure_worker.batch.request_builder import build_batch_requests
from disclosure_worker.batch.results import parse_result_lines
from disclosure_worker.config.settings import Settings
from disclosure_worker.database.models import BatchJobRecord
from disclosure_worker.database.repositories.batch_jobs_repository import BatchJobsRepository
from disclosure_worker.database.repositories.documents_repository import DocumentsRepository
from disclosure_worker.database.repositories.extraction_runs_repository import (
    ExtractionRunsRepository,
)
from disclosure_worker.extraction.aggregator import aggregate
from disclosure_worker.extraction.prompt_loader import load_json_schema, load_prompt_template
from disclosure_worker.logging.logger import Log
from disclosure_worker.pdf.base import BasePageSegmenter
from disclosure_worker.pdf.factory import PageSegmenterFactory
from disclosure_worker.storage.file_loader import FileLoader


class BatchJobOrchestrator:
    """Drives one batch job: build -> submit -> poll -> collect.

    The job name is stored as soon as the provider returns it, so a job
    submitted by one process can be resumed by another. A job that ends
    failed, cancelled or expired is surfaced and never retried here.
    """

    def __init__(
        self,
        batch_client: BaseBatchClient,
        batch_repo: BatchJobsRepository,
        documents_repo: DocumentsRepository,
        runs_repo: ExtractionRunsRepository,
        file_loader: FileLoader,
        segmenter: BasePageSegmenter,
        *,
        default_model: str,
        prompt: str,
        json_schema: dict[str, object],
        pages_per_request: int = 1,
        poll_interval_seconds: float = 30,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if pages_per_request < 1:
            raise ValueError(f"pages_per_request must be >= 1, got {pages_per_request}")
        self._client = batch_client
        self._batch_repo = batch_repo
        self._documents_repo = documents_repo
        self._runs_repo = runs_repo
        self._file_loader = file_loader
        self._segmenter = segmenter
        self._default_model = default_model
        self._prompt = prompt
        self._json_schema = json_schema
        self._pages_per_request = pages_per_request
        self._poll_interval = poll_interval_seconds
        self._sleep = sleep

    def submit(self, document_ids: Sequence[int], model: str | None = None) -> BatchJobRecord:
        """Build requests for every document and submit them as one job.

        Documents are claimed (moved to processing) first; if building or
        submission fails they are marked failed and the error propagates.
        """
        model = model or self._default_model
        self._client.ensure_ready()
        claimed: list[int] = []
        page_counts: dict[str, int] = {}
        try:
            groups = []
            for document_id in document_ids:
                self._documents_repo.mark_processing(document_id)
                claimed.append(document_id)
                document = self._documents_repo.find_by_id(document_id)
                group = BatchGroup(str(document_id), self._file_loader.load(document))
                page_counts[group.group_id] = self._segmenter.page_count(group.pdf_bytes)
                groups.append(group)

            Log.info(f"[{model}] Building batch for {len(groups)} documents")
            requests = build_batch_requests(
                groups, self._segmenter, self._pages_per_request, self._prompt, self._json_schema
            )
            job_name = self._client.submit(requests, model)
        except Exception as exc:
            for document_id in claimed:
                self._documents_repo.mark_failed(document_id, f"Batch submission failed: {exc}")
            raise

        record = self._batch_repo.insert(
            job_name=job_name,
            model=model,
            state=BatchJobState.SUBMITTED,
            request_keys=[r.key for r in requests],
            group_ids=[g.group_id for g in groups],
            pages_per_request=self._pages_per_request,
            page_counts=page_counts,
        )
        Log.info(f"[{model}] Submitted batch job {job_name}", requests=len(requests))
        return record

    def poll_until_terminal(self, job_name: str) -> BatchStatus:
        """Poll on a fixed interval until the job reaches a terminal state.

        Poll errors are logged and retried on the next tick; they never change
        the recorded state. A provider-side success is recorded as collecting,
        and terminal failures are left for ``collect`` to record, so a job
        interrupted here is still picked up as active.
        """
        last_state: BatchJobState | None = None
        while True:
            try:
                status = self._client.get_status(job_name)
            except Exception as exc:
                Log.warning(f"Polling batch job {job_name} failed, will retry: {exc}")
            else:
                Log.info(f"Batch job {job_name}: {status.describe()}")
                if status.state is BatchJobState.SUCCEEDED:
                    self._batch_repo.update_state(
                        job_name, BatchJobState.COLLECTING, status.result_location
                    )
                if status.state.is_terminal:
                    return status
                if status.state != last_state:
                    self._batch_repo.update_state(job_name, status.state, status.result_location)
                    last_state = status.state
            self._sleep(self._poll_interval)

    def collect(self, job_name: str, status: BatchStatus | None = None) -> dict[int, int]:
        """Download results and store one extraction run per document.

        Returns ``{document_id: run_id}`` for the documents stored now; a job
        that was already collected returns an empty mapping. If the results
        cannot be downloaded the documents are marked failed and the job stays
        collecting, so a later ``resume`` can still store them. A document
        whose run cannot be stored is marked failed without affecting the rest.

        Raises:
            BatchJobNotFoundError: if the job was never recorded.
            BatchJobTerminalFailureError: if the job failed, was cancelled or expired.
        """
        record = self._find(job_name)
        if record.state is BatchJobState.SUCCEEDED:
            Log.info(f"Batch job {job_name} was already collected")
            return {}
        status = status or self._client.get_status(job_name)
        if status.state is not BatchJobState.SUCCEEDED:
            if status.state.is_terminal:
                self._fail(record, status)
            raise BatchError(f"Batch job {job_name} has not finished ({status.state.value})")

        try:
            if not status.result_location:
                raise BatchClientError(f"No results file found for batch job {job_name}")
            Log.info(f"Downloading results of batch job {job_name} from {status.result_location}")
            content = self._client.download(status.result_location)
        except Exception as exc:
            self._batch_repo.update_state(
                job_name, BatchJobState.COLLECTING, status.result_location, error_message=str(exc)
            )
            for group_id in record.group_ids:
                self._documents_repo.mark_failed(
                    int(group_id), f"Batch job {job_name} results unavailable: {exc}"
                )
            Log.error(f"Collecting batch job {job_name} failed, resume it to retry: {exc}")
            raise

        grouped = parse_result_lines(content, record.pages_per_request, record.page_counts)
        for group_id in sorted(set(grouped) - set(record.group_ids)):
            Log.warning(f"Batch job {job_name} returned results for unknown group {group_id}")

        run_ids: dict[int, int] = {}
        for group_id in record.group_ids:
            document_id = int(group_id)
            results = grouped.get(group_id, [])
            if not results:
                Log.warning(f"[{record.model}] No batch results for document {document_id}")
            row_set = aggregate(results)
            try:
                run = self._runs_repo.insert(document_id, record.model, row_set)
                self._documents_repo.mark_completed(
                    document_id, page_count=record.page_counts.get(group_id)
                )
            except Exception as exc:
                Log.error(
                    f"[{record.model}] Storing batch results for document {document_id} failed: {exc}"
                )
                self._documents_repo.mark_failed(document_id, str(exc) or type(exc).__name__)
                continue
            run_ids[document_id] = run.id
            Log.info(
                f"[{record.model}] Document {document_id}: "
                f"{len(row_set.ingress)} ingress, {len(row_set.egress)} egress",
                failed_units=sum(1 for r in results if r.failed),
            )

        self._batch_repo.update_state(job_name, BatchJobState.SUCCEEDED, status.result_location)
        return run_ids

    def resume(self, job_name: str) -> dict[int, int]:
        """Finish a previously submitted job: poll it if needed, then collect it.

        A job that was already collected is left alone.
        """
        record = self._find(job_name)
        if record.state is BatchJobState.SUCCEEDED:
            Log.info(f"Batch job {job_name} already collected, nothing to do")
            return {}
        if record.state is BatchJobState.COLLECTING and record.result_location:
            status = BatchStatus(BatchJobState.SUCCEEDED, result_location=record.result_location)
        else:
            status = self.poll_until_terminal(job_name)
        return self.collect(job_name, status)

    def run(self, document_ids: Sequence[int], model: str | None = None) -> dict[int, int]:
        record = self.submit(document_ids, model)
        return self.resume(record.job_name)

    def _find(self, job_name: str) -> BatchJobRecord:
        record = self._batch_repo.find_by_name(job_name)
        if record is None:
            raise BatchJobNotFoundError(f"Batch job {job_name} not found")
        return record

    def _fail(self, record: BatchJobRecord, status: BatchStatus) -> None:
        self._batch_repo.update_state(
            record.job_name, status.state, error_message=status.error_message
        )
        error = BatchJobTerminalFailureError(
            record.job_name, status.state.value, status.error_message
        )
        for group_id in record.group_ids:
            self._documents_repo.mark_failed(int(group_id), str(error))
        Log.error(str(error))
        raise error


def build_batch_orchestrator(
    settings: Settings,
    files_root: Path | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> BatchJobOrchestrator:
    """Build a BatchJobOrchestrator wired to the Gemini batch API."""
    return BatchJobOrchestrator(
        batch_client=GeminiBatchClient(
            api_key=settings.gemini_api_key,
            timeout_seconds=settings.batch_timeout_seconds,
        ),
        batch_repo=BatchJobsRepository(),
        documents_repo=DocumentsRepository(),
        runs_repo=ExtractionRunsRepository(),
        file_loader=FileLoader(files_root=files_root or Path(settings.files_root)),
        segmenter=PageSegmenterFactory.create(settings),
        default_model=settings.batch_model,
        prompt=load_prompt_template(),
        json_schema=json.loads(load_json_schema()),
        pages_per_request=settings.batch_pages_per_request,
        poll_interval_seconds=settings.batch_poll_interval_seconds,
        sleep=sleep,
    )
