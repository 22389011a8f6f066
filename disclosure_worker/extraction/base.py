from abc import ABC, abstractmethod

from disclosure_worker.extraction.models import RowSet


class BaseExtractionClient(ABC):
    """Contract for the service that reads table rows off one document unit."""

    model_identity: str = ""

    def ensure_ready(self) -> None:
        """Fail fast when the client cannot be used at all (e.g. missing credential).

        Raises:
            ExtractionClientUnavailableError: if no call could possibly succeed.
        """

    @abstractmethod
    def extract(self, unit_bytes: bytes) -> RowSet:
        """Extract ingress and egress rows from a PDF unit.

        Args:
            unit_bytes: A standalone PDF holding one unit (normally one page).

        Returns:
            RowSet whose rows still carry ``page_number=0``.

        Raises:
            ExtractionError: on any failure.
        """
