"""Surgical replace-by-page updates of stored runs and validated datasets."""

import dataclasses
from collections.abc import Sequence
from dataclasses import dataclass

from disclosure_worker.database.models import DocumentRecord
from disclosure_worker.database.repositories.documents_repository import DocumentsRepository
from disclosure_worker.database.repositories.extraction_runs_repository import (
    ExtractionRunsRepository,
)
from disclosure_worker.database.repositories.validated_data_repository import (
    ValidatedDataRepository,
)
from disclosure_worker.extraction.exceptions import InvalidPageError, NoStoredRunError
from disclosure_worker.extraction.models import EgressRow, IngressRow, Row, RowSet
from disclosure_worker.extraction.validator import strip_ai_unreadable
from disclosure_worker.logging.logger import Log


def replace_page_rows(rows: Sequence[Row], page_number: int, new_rows: Sequence[Row]) -> list[Row]:
    """Drop every row on ``page_number`` and append ``new_rows`` stamped with it.

    Rows on other pages pass through unchanged and keep their order.
    """
    kept = [row for row in rows if row.page_number != page_number]
    stamped = [dataclasses.replace(row, page_number=page_number) for row in new_rows]
    return kept + stamped


def patch_row_set(
    row_set: RowSet,
    page_number: int,
    new_ingress: Sequence[IngressRow],
    new_egress: Sequence[EgressRow],
) -> RowSet:
    return RowSet(
        ingress=replace_page_rows(row_set.ingress, page_number, new_ingress),  # type: ignore[arg-type]
        egress=replace_page_rows(row_set.egress, page_number, new_egress),  # type: ignore[arg-type]
    )


@dataclass(frozen=True)
class PatchResult:
    document_id: int
    page_number: int
    run_id: int
    model_identity: str
    validated_patched: bool
    ingress_count: int
    egress_count: int


class PagePatcher:
    """Applies one freshly extracted page onto a document's stored artifacts.

    The latest run of the configured model family is patched in place, and the
    validated dataset too when one exists. Each artifact is read, recomputed
    and written back as a whole.
    """

    def __init__(
        self,
        documents_repo: DocumentsRepository,
        runs_repo: ExtractionRunsRepository,
        validated_repo: ValidatedDataRepository,
        model_family: str = "",
    ) -> None:
        self._documents_repo = documents_repo
        self._runs_repo = runs_repo
        self._validated_repo = validated_repo
        self._model_family = model_family

    def validate(self, document_id: int, page_number: int) -> DocumentRecord:
        """Check that ``page_number`` of ``document_id`` can be patched.

        Raises:
            DocumentNotFoundError: if the document does not exist.
            InvalidPageError: if the page is outside ``[1, page_count]``.
            NoStoredRunError: if there is no run of the model family to patch.
        """
        document = self._documents_repo.find_by_id(document_id)
        if not document.has_page(page_number):
            raise InvalidPageError(
                f"Page {page_number} is outside [1, {document.page_count}] "
                f"for document {document_id}"
            )
        if self._runs_repo.find_latest(document_id, self._model_family) is None:
            raise NoStoredRunError(self._no_run_message(document_id))
        return document

    def patch(
        self,
        document_id: int,
        page_number: int,
        new_ingress: Sequence[IngressRow],
        new_egress: Sequence[EgressRow],
    ) -> PatchResult:
        self.validate(document_id, page_number)

        run = self._runs_repo.find_latest(document_id, self._model_family)
        if run is None:
            raise NoStoredRunError(self._no_run_message(document_id))
        self._runs_repo.replace_rows(
            run.id, patch_row_set(run.rows, page_number, new_ingress, new_egress)
        )

        validated = self._validated_repo.find_by_document(document_id)
        if validated is not None:
            self._validated_repo.replace_rows(
                validated.id,
                patch_row_set(
                    validated.rows,
                    page_number,
                    strip_ai_unreadable(list(new_ingress)),  # type: ignore[arg-type]
                    strip_ai_unreadable(list(new_egress)),  # type: ignore[arg-type]
                ),
            )

        Log.info(
            f"[{run.model_identity}] Patched page {page_number} of document {document_id}: "
            f"{len(new_ingress)} ingress, {len(new_egress)} egress",
            validated=validated is not None,
        )
        return PatchResult(
            document_id=document_id,
            page_number=page_number,
            run_id=run.id,
            model_identity=run.model_identity,
            validated_patched=validated is not None,
            ingress_count=len(new_ingress),
            egress_count=len(new_egress),
        )

    def _no_run_message(self, document_id: int) -> str:
        if self._model_family:
            return f"Document {document_id} has no '{self._model_family}*' extraction run"
        return f"Document {document_id} has no extraction run"
