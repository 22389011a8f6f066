from abc import ABC, abstractmethod

from disclosure_worker.batch.models import BatchRequest, BatchStatus


class BaseBatchClient(ABC):
    """Contract for the offline batch-processing provider."""

    def ensure_ready(self) -> None:
        """Fail fast when the provider cannot be used at all.

        Raises:
            BatchClientError: if no call could possibly succeed.
        """

    @abstractmethod
    def submit(self, requests: list[BatchRequest], model: str) -> str:
        """Submit the keyed requests as one job and return its job name."""

    @abstractmethod
    def get_status(self, job_name: str) -> BatchStatus:
        """Return the provider's current view of a job."""

    @abstractmethod
    def download(self, result_location: str) -> str:
        """Return the newline-delimited JSON result manifest."""
