from collections.abc import Sequence

from disclosure_worker.database.models import ValidatedDatasetRecord
from disclosure_worker.database.repositories.documents_repository import DocumentsRepository
from disclosure_worker.database.repositories.extraction_runs_repository import (
    ExtractionRunsRepository,
)
from disclosure_worker.database.repositories.validated_data_repository import (
    ValidatedDataRepository,
)
from disclosure_worker.extraction.exceptions import InvalidPageError
from disclosure_worker.extraction.models import EgressRow, IngressRow, RowSet
from disclosure_worker.logging.logger import Log
from disclosure_worker.reconciliation.reconciler import ReviewView, build_review_view


class ReviewService:
    """Document operations backing the human review surface."""

    def __init__(
        self,
        documents_repo: DocumentsRepository,
        runs_repo: ExtractionRunsRepository,
        validated_repo: ValidatedDataRepository,
    ) -> None:
        self._documents_repo = documents_repo
        self._runs_repo = runs_repo
        self._validated_repo = validated_repo

    def review_view(
        self, document_id: int, diff_pair: tuple[str, str] | None = None
    ) -> ReviewView:
        self._documents_repo.find_by_id(document_id)
        runs = self._runs_repo.list_by_document(document_id)
        validated = self._validated_repo.find_by_document(document_id)
        return build_review_view(runs, validated, diff_pair)

    def save_validated_data(
        self,
        document_id: int,
        ingress: Sequence[IngressRow],
        egress: Sequence[EgressRow],
    ) -> ValidatedDatasetRecord:
        """Store the reviewed rows. AI-declared unreadable fields are dropped."""
        document = self._documents_repo.find_by_id(document_id)
        for row in [*ingress, *egress]:
            if not document.has_page(row.page_number):
                raise InvalidPageError(
                    f"Row on page {row.page_number} is outside [1, {document.page_count}] "
                    f"for document {document_id}"
                )
        record = self._validated_repo.save(
            document_id, RowSet(ingress=list(ingress), egress=list(egress))
        )
        Log.info(
            f"Saved validated data for document {document_id}: "
            f"{len(ingress)} ingress, {len(egress)} egress"
        )
        return record

    def set_page_rotation(self, document_id: int, page_number: int, rotation: int) -> None:
        """Set a page's display rotation in degrees. Extraction ignores it."""
        document = self._documents_repo.find_by_id(document_id)
        if not document.has_page(page_number):
            raise InvalidPageError(
                f"Page {page_number} is outside [1, {document.page_count}] "
                f"for document {document_id}"
            )
        self._documents_repo.set_page_rotation(document_id, page_number, rotation)
