import uuid

import pytest

from disclosure_worker.batch.models import BatchJobState
from disclosure_worker.database.repositories.batch_jobs_repository import BatchJobsRepository


@pytest.fixture
def job_name(integration_cleanup: list[tuple[str, int | str]]) -> str:
    name = f"batches/test-{uuid.uuid4().hex[:8]}"
    integration_cleanup.append(("batch_jobs", name))
    return name


def _insert(job_name: str) -> None:
    BatchJobsRepository().insert(
        job_name=job_name,
        model="gemini-3-flash-preview",
        state=BatchJobState.SUBMITTED,
        request_keys=["1:batch-0", "1:batch-1"],
        group_ids=["1"],
        pages_per_request=1,
    )


@pytest.mark.integration
class TestBatchJobsRepository:
    def test_insert_and_find(self, job_name: str) -> None:
        _insert(job_name)
        record = BatchJobsRepository().find_by_name(job_name)
        assert record is not None
        assert record.state is BatchJobState.SUBMITTED
        assert record.request_keys == ["1:batch-0", "1:batch-1"]
        assert record.group_ids == ["1"]

    def test_update_state_keeps_previous_location(self, job_name: str) -> None:
        repo = BatchJobsRepository()
        _insert(job_name)
        repo.update_state(job_name, BatchJobState.RUNNING, result_location="files/out")
        repo.update_state(job_name, BatchJobState.SUCCEEDED)
        record = repo.find_by_name(job_name)
        assert record is not None
        assert record.state is BatchJobState.SUCCEEDED
        assert record.result_location == "files/out"

    def test_list_active_excludes_terminal_jobs(self, job_name: str) -> None:
        repo = BatchJobsRepository()
        _insert(job_name)
        assert job_name in [r.job_name for r in repo.list_active()]
        repo.update_state(job_name, BatchJobState.EXPIRED, error_message="too slow")
        assert job_name not in [r.job_name for r in repo.list_active()]

    def test_find_missing(self, integration_pool: None) -> None:
        assert BatchJobsRepository().find_by_name("batches/does-not-exist") is None

    def test_page_counts_round_trip(self, job_name: str) -> None:
        repo = BatchJobsRepository()
        repo.insert(
            job_name=job_name,
            model="gemini-3-flash-preview",
            state=BatchJobState.SUBMITTED,
            request_keys=["1:batch-0"],
            group_ids=["1"],
            pages_per_request=2,
            page_counts={"1": 3},
        )
        record = repo.find_by_name(job_name)
        assert record is not None
        assert record.page_counts == {"1": 3}
        assert record.pages_per_request == 2

    def test_collecting_job_stays_active(self, job_name: str) -> None:
        repo = BatchJobsRepository()
        _insert(job_name)
        repo.update_state(job_name, BatchJobState.COLLECTING, error_message="download failed")
        assert job_name in [r.job_name for r in repo.list_active()]
