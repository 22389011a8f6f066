import json
from unittest.mock import MagicMock, call

import pytest

from disclosure_worker.batch.client_base import BaseBatchClient
from disclosure_worker.batch.exceptions import (
    BatchClientError,
    BatchError,
    BatchJobNotFoundError,
    BatchJobTerminalFailureError,
)
from disclosure_worker.batch.models import BatchJobState, BatchRequest, BatchStatus
from disclosure_worker.batch.orchestrator import BatchJobOrchestrator
from disclosure_worker.database.models import (
    BatchJobRecord,
    DocumentRecord,
    DocumentStatus,
    ExtractionRunRecord,
)
from disclosure_worker.extraction.models import RowSet
from disclosure_worker.pdf.pymupdf_segmenter import PyMuPdfSegmenter


class FakeBatchClient(BaseBatchClient):
    def __init__(self, statuses: list[BatchStatus | Exception], results: str = "") -> None:
        self.statuses = list(statuses)
        self.results = results
        self.submitted: list[tuple[list[BatchRequest], str]] = []
        self.submit_error: Exception | None = None
        self.download_error: Exception | None = None
        self.status_calls = 0
        self.downloads = 0

    def submit(self, requests: list[BatchRequest], model: str) -> str:
        if self.submit_error is not None:
            raise self.submit_error
        self.submitted.append((requests, model))
        return "batches/job-1"

    def get_status(self, job_name: str) -> BatchStatus:
        self.status_calls += 1
        status = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
        if isinstance(status, Exception):
            raise status
        return status

    def download(self, result_location: str) -> str:
        self.downloads += 1
        if self.download_error is not None:
            raise self.download_error
        return self.results


class InMemoryBatchRepo:
    def __init__(self) -> None:
        self.records: dict[str, BatchJobRecord] = {}
        self.updates: list[tuple[str, BatchJobState]] = []

    def insert(self, *, job_name: str, model: str, state: BatchJobState, request_keys: list[str],
               group_ids: list[str], pages_per_request: int,
               page_counts: dict[str, int] | None = None) -> BatchJobRecord:
        record = BatchJobRecord(
            id=len(self.records) + 1, job_name=job_name, model=model, state=state,
            request_keys=request_keys, group_ids=group_ids, pages_per_request=pages_per_request,
            page_counts=dict(page_counts or {}),
        )
        self.records[job_name] = record
        return record

    def find_by_name(self, job_name: str) -> BatchJobRecord | None:
        return self.records.get(job_name)

    def update_state(self, job_name: str, state: BatchJobState, result_location: str | None = None,
                     error_message: str | None = None) -> None:
        self.updates.append((job_name, state))
        record = self.records[job_name]
        record.state = state
        record.result_location = result_location or record.result_location
        record.error_message = error_message or record.error_message


def _line(key: str, recibo: str) -> str:
    text = json.dumps({"ingress": [{"reciboNumero": recibo}], "egress": []})
    return json.dumps(
        {"key": key, "response": {"candidates": [{"content": {"parts": [{"text": text}]}}]}}
    )


def _succeeded(location: str | None = "files/out-1") -> BatchStatus:
    return BatchStatus(state=BatchJobState.SUCCEEDED, result_location=location)


def _make_orchestrator(
    client: FakeBatchClient, pdf_bytes: bytes
) -> tuple[BatchJobOrchestrator, InMemoryBatchRepo, MagicMock, MagicMock, list[float]]:
    batch_repo = InMemoryBatchRepo()
    documents_repo = MagicMock()
    documents_repo.find_by_id.side_effect = lambda document_id: DocumentRecord(
        id=document_id, name="d.pdf", blob_path=f"{document_id}.pdf", page_count=0,
        status=DocumentStatus.PROCESSING,
    )
    runs_repo = MagicMock()
    runs_repo.insert.side_effect = lambda document_id, model, rows: ExtractionRunRecord(
        id=100 + document_id, document_id=document_id, model_identity=model, rows=rows
    )
    file_loader = MagicMock()
    file_loader.load.return_value = pdf_bytes
    sleeps: list[float] = []
    orchestrator = BatchJobOrchestrator(
        client, batch_repo, documents_repo, runs_repo, file_loader, PyMuPdfSegmenter(),  # type: ignore[arg-type]
        default_model="gemini-3-flash-preview", prompt="read", json_schema={"type": "object"},
        poll_interval_seconds=5, sleep=sleeps.append,
    )
    return orchestrator, batch_repo, documents_repo, runs_repo, sleeps


class TestSubmit:
    def test_records_job_and_claims_documents(self, three_page_pdf_bytes: bytes) -> None:
        client = FakeBatchClient([_succeeded()])
        orchestrator, batch_repo, documents_repo, _, _ = _make_orchestrator(client, three_page_pdf_bytes)

        record = orchestrator.submit([1, 2])

        assert record.job_name == "batches/job-1"
        assert record.state is BatchJobState.SUBMITTED
        assert record.group_ids == ["1", "2"]
        assert record.request_keys[:3] == ["1:batch-0", "1:batch-1", "1:batch-2"]
        assert len(record.request_keys) == 6
        assert client.submitted[0][1] == "gemini-3-flash-preview"
        assert documents_repo.mark_processing.call_args_list == [call(1), call(2)]

    def test_submit_failure_marks_documents_failed(self, sample_pdf_bytes: bytes) -> None:
        client = FakeBatchClient([_succeeded()])
        client.submit_error = BatchClientError("quota")
        orchestrator, batch_repo, documents_repo, _, _ = _make_orchestrator(client, sample_pdf_bytes)

        with pytest.raises(BatchClientError):
            orchestrator.submit([1], model="other-model")

        assert batch_repo.records == {}
        documents_repo.mark_failed.assert_called_once()
        assert documents_repo.mark_failed.call_args.args[0] == 1

    def test_pages_per_request_must_be_positive(self, sample_pdf_bytes: bytes) -> None:
        with pytest.raises(ValueError):
            BatchJobOrchestrator(
                FakeBatchClient([]), MagicMock(), MagicMock(), MagicMock(), MagicMock(), MagicMock(),
                default_model="m", prompt="p", json_schema={}, pages_per_request=0,
            )


class TestPoll:
    def test_polls_until_terminal_tolerating_errors(self, sample_pdf_bytes: bytes) -> None:
        client = FakeBatchClient(
            [
                BatchStatus(state=BatchJobState.SUBMITTED),
                BatchClientError("503"),
                BatchStatus(state=BatchJobState.RUNNING),
                BatchStatus(state=BatchJobState.RUNNING),
                _succeeded(),
            ]
        )
        orchestrator, batch_repo, _, _, sleeps = _make_orchestrator(client, sample_pdf_bytes)
        orchestrator.submit([1])

        status = orchestrator.poll_until_terminal("batches/job-1")

        assert status.state is BatchJobState.SUCCEEDED
        assert sleeps == [5, 5, 5, 5]
        assert [state for _, state in batch_repo.updates] == [
            BatchJobState.SUBMITTED,
            BatchJobState.RUNNING,
            BatchJobState.COLLECTING,
        ]
        assert batch_repo.records["batches/job-1"].result_location == "files/out-1"


class TestCollect:
    def test_stores_one_run_per_document(self, three_page_pdf_bytes: bytes) -> None:
        results = "\n".join(
            [_line("1:batch-2", "C"), _line("1:batch-0", "A"), _line("2:batch-1", "Y"), _line("9:batch-0", "?")]
        )
        client = FakeBatchClient([_succeeded()], results)
        orchestrator, batch_repo, documents_repo, runs_repo, _ = _make_orchestrator(client, three_page_pdf_bytes)
        orchestrator.submit([1, 2])

        run_ids = orchestrator.collect("batches/job-1")

        assert run_ids == {1: 101, 2: 102}
        rows_1: RowSet = runs_repo.insert.call_args_list[0].args[2]
        assert [(r.page_number, r.recibo_numero) for r in rows_1.ingress] == [(1, "A"), (3, "C")]
        assert runs_repo.insert.call_args_list[0].args[1] == "gemini-3-flash-preview"
        documents_repo.mark_completed.assert_any_call(1, page_count=3)
        assert batch_repo.records["batches/job-1"].state is BatchJobState.SUCCEEDED

    def test_page_counts_come_from_submission(self, three_page_pdf_bytes: bytes) -> None:
        client = FakeBatchClient([_succeeded()], _line("1:batch-0", "A"))
        orchestrator, batch_repo, documents_repo, _, _ = _make_orchestrator(client, three_page_pdf_bytes)
        orchestrator.submit([1])
        file_loader = orchestrator._file_loader
        file_loader.load.reset_mock()  # type: ignore[attr-defined]

        orchestrator.collect("batches/job-1")

        assert batch_repo.records["batches/job-1"].page_counts == {"1": 3}
        file_loader.load.assert_not_called()  # type: ignore[attr-defined]
        documents_repo.mark_completed.assert_called_once_with(1, page_count=3)

    def test_download_failure_keeps_job_collectable(self, sample_pdf_bytes: bytes) -> None:
        client = FakeBatchClient([_succeeded()], _line("1:batch-0", "A"))
        client.download_error = BatchClientError("connection reset")
        orchestrator, batch_repo, documents_repo, runs_repo, _ = _make_orchestrator(client, sample_pdf_bytes)
        orchestrator.submit([1])

        with pytest.raises(BatchClientError, match="connection reset"):
            orchestrator.collect("batches/job-1")

        record = batch_repo.records["batches/job-1"]
        assert record.state is BatchJobState.COLLECTING
        assert record.error_message == "connection reset"
        assert record.result_location == "files/out-1"
        documents_repo.mark_failed.assert_called_once()
        assert "results unavailable" in documents_repo.mark_failed.call_args.args[1]
        runs_repo.insert.assert_not_called()

    def test_storage_failure_only_fails_that_document(self, sample_pdf_bytes: bytes) -> None:
        results = "\n".join([_line("1:batch-0", "A"), _line("2:batch-0", "B")])
        client = FakeBatchClient([_succeeded()], results)
        orchestrator, batch_repo, documents_repo, runs_repo, _ = _make_orchestrator(client, sample_pdf_bytes)
        orchestrator.submit([1, 2])

        def insert(document_id: int, model: str, rows: RowSet) -> ExtractionRunRecord:
            if document_id == 1:
                raise RuntimeError("disk full")
            return ExtractionRunRecord(id=102, document_id=document_id, model_identity=model, rows=rows)

        runs_repo.insert.side_effect = insert

        assert orchestrator.collect("batches/job-1") == {2: 102}
        documents_repo.mark_failed.assert_called_once_with(1, "disk full")
        documents_repo.mark_completed.assert_called_once_with(2, page_count=1)
        assert batch_repo.records["batches/job-1"].state is BatchJobState.SUCCEEDED

    def test_collected_job_is_not_stored_twice(self, sample_pdf_bytes: bytes) -> None:
        client = FakeBatchClient([_succeeded()], _line("1:batch-0", "A"))
        orchestrator, _, _, runs_repo, _ = _make_orchestrator(client, sample_pdf_bytes)
        orchestrator.submit([1])
        orchestrator.collect("batches/job-1")

        assert orchestrator.collect("batches/job-1") == {}
        runs_repo.insert.assert_called_once()
        assert client.downloads == 1

    def test_terminal_failure_marks_documents_failed(self, sample_pdf_bytes: bytes) -> None:
        client = FakeBatchClient(
            [BatchStatus(state=BatchJobState.EXPIRED, error_message="took too long")]
        )
        orchestrator, batch_repo, documents_repo, runs_repo, _ = _make_orchestrator(client, sample_pdf_bytes)
        orchestrator.submit([1])

        with pytest.raises(BatchJobTerminalFailureError, match="expired: took too long"):
            orchestrator.collect("batches/job-1")

        record = batch_repo.records["batches/job-1"]
        assert record.state is BatchJobState.EXPIRED
        assert record.error_message == "took too long"
        documents_repo.mark_failed.assert_called_once()
        runs_repo.insert.assert_not_called()

    def test_unfinished_job_cannot_be_collected(self, sample_pdf_bytes: bytes) -> None:
        client = FakeBatchClient([BatchStatus(state=BatchJobState.RUNNING)])
        orchestrator, _, _, _, _ = _make_orchestrator(client, sample_pdf_bytes)
        orchestrator.submit([1])
        with pytest.raises(BatchError, match="has not finished"):
            orchestrator.collect("batches/job-1")

    def test_missing_result_location(self, sample_pdf_bytes: bytes) -> None:
        client = FakeBatchClient([_succeeded(location=None)])
        orchestrator, _, _, _, _ = _make_orchestrator(client, sample_pdf_bytes)
        orchestrator.submit([1])
        with pytest.raises(BatchClientError, match="No results file"):
            orchestrator.collect("batches/job-1")

    def test_unknown_job(self, sample_pdf_bytes: bytes) -> None:
        orchestrator, _, _, _, _ = _make_orchestrator(FakeBatchClient([_succeeded()]), sample_pdf_bytes)
        with pytest.raises(BatchJobNotFoundError):
            orchestrator.collect("batches/nope")


class TestRun:
    def test_submit_poll_and_collect(self, sample_pdf_bytes: bytes) -> None:
        client = FakeBatchClient(
            [BatchStatus(state=BatchJobState.RUNNING), _succeeded()], _line("4:batch-0", "A")
        )
        orchestrator, _, _, _, sleeps = _make_orchestrator(client, sample_pdf_bytes)

        assert orchestrator.run([4]) == {4: 104}
        assert sleeps == [5]


class TestResume:
    def test_collected_job_is_left_alone(self, sample_pdf_bytes: bytes) -> None:
        client = FakeBatchClient([_succeeded()], _line("1:batch-0", "A"))
        orchestrator, _, _, runs_repo, _ = _make_orchestrator(client, sample_pdf_bytes)
        assert orchestrator.run([1]) == {1: 101}
        calls_before = client.status_calls

        assert orchestrator.resume("batches/job-1") == {}
        assert client.status_calls == calls_before
        runs_repo.insert.assert_called_once()

    def test_collecting_job_is_collected_without_polling(self, sample_pdf_bytes: bytes) -> None:
        client = FakeBatchClient([_succeeded()], _line("1:batch-0", "A"))
        client.download_error = BatchClientError("connection reset")
        orchestrator, batch_repo, documents_repo, _, sleeps = _make_orchestrator(client, sample_pdf_bytes)
        with pytest.raises(BatchClientError):
            orchestrator.run([1])
        client.download_error = None
        calls_before = client.status_calls

        assert orchestrator.resume("batches/job-1") == {1: 101}
        assert client.status_calls == calls_before
        assert sleeps == []
        documents_repo.mark_completed.assert_called_once_with(1, page_count=1)
        assert batch_repo.records["batches/job-1"].state is BatchJobState.SUCCEEDED
