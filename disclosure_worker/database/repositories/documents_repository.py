from typing import Any

from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from disclosure_worker.database.connection import get_connection
from disclosure_worker.database.models import (
    DocumentRecord,
    DocumentStatus,
    PageReextractionStatus,
    SummaryStatus,
)
from disclosure_worker.extraction.exceptions import AlreadyInProgressError, DocumentNotFoundError

_DOCUMENT_COLUMNS = """
    id, name, blob_path, page_count, status, error_message, page_rotations,
    page_reextraction_status, summary_status, summary_error_message,
    processing_started_at, created_at, updated_at
"""


class DocumentsRepository:
    """Database operations for the source_documents table."""

    def find_by_id(self, document_id: int) -> DocumentRecord:
        """Find a source document by ID.

        Raises:
            DocumentNotFoundError: if no document with this ID exists.
        """
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"SELECT {_DOCUMENT_COLUMNS} FROM source_documents WHERE id = %s",
                    (document_id,),
                )
                row = cur.fetchone()

        if row is None:
            raise DocumentNotFoundError(f"Document {document_id} not found")
        return _to_record(row)

    def list_by_status(self, status: DocumentStatus) -> list[DocumentRecord]:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    SELECT {_DOCUMENT_COLUMNS} FROM source_documents
                    WHERE status = %s
                    ORDER BY id
                    """,
                    (status.value,),
                )
                rows = cur.fetchall()
        return [_to_record(row) for row in rows]

    def mark_processing(self, document_id: int) -> None:
        """Move a document to processing unless a top-level extraction is in flight.

        Raises:
            DocumentNotFoundError: if no document with this ID exists.
            AlreadyInProgressError: if the document is already processing.
        """
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE source_documents
                    SET status = 'processing', error_message = NULL,
                        processing_started_at = NOW(), updated_at = NOW()
                    WHERE id = %s AND status <> 'processing'
                    """,
                    (document_id,),
                )
                claimed = cur.rowcount == 1
            conn.commit()

        if not claimed:
            self.find_by_id(document_id)
            raise AlreadyInProgressError(f"Document {document_id} is already processing")

    def mark_completed(self, document_id: int, page_count: int | None = None) -> None:
        with get_connection() as conn:
            conn.execute(
                """
                UPDATE source_documents
                SET status = 'completed', error_message = NULL,
                    page_count = COALESCE(%s, page_count), updated_at = NOW()
                WHERE id = %s
                """,
                (page_count, document_id),
            )
            conn.commit()

    def mark_failed(self, document_id: int, error: str) -> None:
        with get_connection() as conn:
            conn.execute(
                """
                UPDATE source_documents
                SET status = 'failed', error_message = %s, updated_at = NOW()
                WHERE id = %s
                """,
                (error, document_id),
            )
            conn.commit()

    def reset_to_pending(self, document_id: int) -> None:
        """Return a document to pending and clear its previous error."""
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE source_documents
                    SET status = 'pending', error_message = NULL,
                        processing_started_at = NULL, updated_at = NOW()
                    WHERE id = %s
                    """,
                    (document_id,),
                )
                if cur.rowcount == 0:
                    raise DocumentNotFoundError(f"Document {document_id} not found")
            conn.commit()

    def begin_page_reextraction(self, document_id: int, page_number: int) -> None:
        """Atomically move a page from idle (or failed) to pending.

        Raises:
            DocumentNotFoundError: if no document with this ID exists.
            AlreadyInProgressError: if the page is pending or processing.
        """
        page_key = str(page_number)
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE source_documents
                    SET page_reextraction_status =
                            page_reextraction_status || jsonb_build_object(%s::text, 'pending'),
                        updated_at = NOW()
                    WHERE id = %s
                      AND (page_reextraction_status ->> %s IS NULL
                           OR page_reextraction_status ->> %s = 'failed')
                    """,
                    (page_key, document_id, page_key, page_key),
                )
                claimed = cur.rowcount == 1
            conn.commit()

        if not claimed:
            self.find_by_id(document_id)
            raise AlreadyInProgressError(
                f"Page {page_number} of document {document_id} is already being re-extracted"
            )

    def start_page_processing(self, document_id: int, page_number: int) -> None:
        """Atomically move a page from pending to processing.

        Only the holder of a pending claim gets to run the page.

        Raises:
            DocumentNotFoundError: if no document with this ID exists.
            AlreadyInProgressError: if the page is not pending.
        """
        page_key = str(page_number)
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE source_documents
                    SET page_reextraction_status =
                            page_reextraction_status || jsonb_build_object(%s::text, 'processing'),
                        updated_at = NOW()
                    WHERE id = %s
                      AND page_reextraction_status ->> %s = 'pending'
                    """,
                    (page_key, document_id, page_key),
                )
                claimed = cur.rowcount == 1
            conn.commit()

        if not claimed:
            self.find_by_id(document_id)
            raise AlreadyInProgressError(
                f"Page {page_number} of document {document_id} is not pending re-extraction"
            )

    def set_page_status(
        self, document_id: int, page_number: int, status: PageReextractionStatus
    ) -> None:
        with get_connection() as conn:
            conn.execute(
                """
                UPDATE source_documents
                SET page_reextraction_status =
                        page_reextraction_status || jsonb_build_object(%s::text, %s::text),
                    updated_at = NOW()
                WHERE id = %s
                """,
                (str(page_number), status.value, document_id),
            )
            conn.commit()

    def clear_page_status(self, document_id: int, page_number: int) -> None:
        with get_connection() as conn:
            conn.execute(
                """
                UPDATE source_documents
                SET page_reextraction_status = page_reextraction_status - %s::text,
                    updated_at = NOW()
                WHERE id = %s
                """,
                (str(page_number), document_id),
            )
            conn.commit()

    def set_summary_status(
        self, document_id: int, status: SummaryStatus, error: str | None = None
    ) -> None:
        """Record the summary stage status; the error is cleared unless failed."""
        with get_connection() as conn:
            conn.execute(
                """
                UPDATE source_documents
                SET summary_status = %s, summary_error_message = %s, updated_at = NOW()
                WHERE id = %s
                """,
                (status.value, error, document_id),
            )
            conn.commit()

    def set_page_rotation(self, document_id: int, page_number: int, rotation: int) -> None:
        """Store a page's display rotation, removing it when back to 0 degrees."""
        normalized = rotation % 360
        document = self.find_by_id(document_id)
        rotations = {str(page): degrees for page, degrees in document.page_rotations.items()}
        if normalized == 0:
            rotations.pop(str(page_number), None)
        else:
            rotations[str(page_number)] = normalized
        with get_connection() as conn:
            conn.execute(
                """
                UPDATE source_documents
                SET page_rotations = %s, updated_at = NOW()
                WHERE id = %s
                """,
                (Jsonb(rotations), document_id),
            )
            conn.commit()


def _to_record(row: dict[str, Any]) -> DocumentRecord:
    return DocumentRecord(
        id=row["id"],
        name=row["name"],
        blob_path=row["blob_path"],
        page_count=row["page_count"],
        status=DocumentStatus(row["status"]),
        error_message=row["error_message"],
        page_rotations={int(k): int(v) for k, v in (row["page_rotations"] or {}).items()},
        page_reextraction_status={
            int(k): PageReextractionStatus(v)
            for k, v in (row["page_reextraction_status"] or {}).items()
        },
        summary_status=SummaryStatus(row["summary_status"]) if row["summary_status"] else None,
        summary_error_message=row["summary_error_message"],
        processing_started_at=row["processing_started_at"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )
