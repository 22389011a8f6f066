import signal
import threading
from types import FrameType

from disclosure_worker.config.settings import Settings
from disclosure_worker.database.connection import get_connection
from disclosure_worker.database.models import JobRecord
from disclosure_worker.database.repositories.job_repository import JobRepository
from disclosure_worker.logging.logger import Log
from disclosure_worker.worker.job_runner import JobRunner


class Worker:
    """Poll loop over extraction_jobs: claim -> run -> repeat, sleeping when idle."""

    def __init__(
        self,
        job_repo: JobRepository,
        job_runner: JobRunner,
        settings: Settings,
    ) -> None:
        self._job_repo = job_repo
        self._job_runner = job_runner
        self._settings = settings
        self._stopping = threading.Event()

    def run(self, max_jobs: int | None = None) -> int:
        """Poll until stopped or interrupted. Returns the number of jobs run.

        If max_jobs is set, stop after running that many jobs.
        """
        Log.info("Worker started, polling for extraction jobs")
        jobs_done = 0
        try:
            while not self._stopping.is_set():
                if max_jobs is not None and jobs_done >= max_jobs:
                    break
                job = self._try_claim_job()
                if job is None:
                    Log.debug("No jobs available, sleeping")
                    self._stopping.wait(self._settings.job_poll_interval_seconds)
                    continue
                self._job_runner.run(job)
                jobs_done += 1
        except KeyboardInterrupt:
            Log.info("Worker interrupted")
        Log.info(f"Worker stopped after {jobs_done} jobs")
        return jobs_done

    def stop(self) -> None:
        """Finish the current job, then leave the loop."""
        self._stopping.set()

    def install_signal_handlers(self) -> None:
        def _handle(signum: int, _frame: FrameType | None) -> None:
            Log.info(f"Received {signal.Signals(signum).name}, shutting down gracefully")
            self.stop()

        signal.signal(signal.SIGTERM, _handle)

    def _try_claim_job(self) -> JobRecord | None:
        """Claim the next pending job. Database errors are logged and retried."""
        try:
            with get_connection() as conn:
                return self._job_repo.claim_next_job(conn)
        except Exception as exc:
            Log.warning(f"Database error, will retry: {exc}")
            return None
