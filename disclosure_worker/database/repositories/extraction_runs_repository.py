from typing import Any

from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from disclosure_worker.database.connection import get_connection
from disclosure_worker.database.models import ExtractionRunRecord
from disclosure_worker.extraction.models import RowKind, RowSet
from disclosure_worker.extraction.validator import build_rows, rows_to_dicts


class ExtractionRunsRepository:
    """Database operations for the extraction_runs table."""

    def insert(self, document_id: int, model_identity: str, rows: RowSet) -> ExtractionRunRecord:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    """
                    INSERT INTO extraction_runs (document_id, model_identity, ingress, egress)
                    VALUES (%s, %s, %s, %s)
                    RETURNING id, document_id, model_identity, ingress, egress, completed_at
                    """,
                    (
                        document_id,
                        model_identity,
                        Jsonb(rows_to_dicts(rows.ingress)),
                        Jsonb(rows_to_dicts(rows.egress)),
                    ),
                )
                row = cur.fetchone()
            conn.commit()
        if row is None:
            raise RuntimeError("INSERT INTO extraction_runs returned no row")
        return _to_record(row)

    def list_by_document(self, document_id: int) -> list[ExtractionRunRecord]:
        """All runs for a document, newest first."""
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    """
                    SELECT id, document_id, model_identity, ingress, egress, completed_at
                    FROM extraction_runs
                    WHERE document_id = %s
                    ORDER BY completed_at DESC, id DESC
                    """,
                    (document_id,),
                )
                rows = cur.fetchall()
        return [_to_record(row) for row in rows]

    def find_latest(self, document_id: int, model_family: str = "") -> ExtractionRunRecord | None:
        """Latest run whose model identity starts with ``model_family``."""
        pattern = _escape_like(model_family) + "%"
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    """
                    SELECT id, document_id, model_identity, ingress, egress, completed_at
                    FROM extraction_runs
                    WHERE document_id = %s AND model_identity LIKE %s
                    ORDER BY completed_at DESC, id DESC
                    LIMIT 1
                    """,
                    (document_id, pattern),
                )
                row = cur.fetchone()
        return _to_record(row) if row is not None else None

    def replace_rows(self, run_id: int, rows: RowSet) -> None:
        with get_connection() as conn:
            conn.execute(
                """
                UPDATE extraction_runs
                SET ingress = %s, egress = %s, completed_at = NOW()
                WHERE id = %s
                """,
                (Jsonb(rows_to_dicts(rows.ingress)), Jsonb(rows_to_dicts(rows.egress)), run_id),
            )
            conn.commit()

    def delete_by_document(self, document_id: int) -> int:
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute("DELETE FROM extraction_runs WHERE document_id = %s", (document_id,))
                deleted = cur.rowcount
            conn.commit()
        return deleted


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _to_record(row: dict[str, Any]) -> ExtractionRunRecord:
    return ExtractionRunRecord(
        id=row["id"],
        document_id=row["document_id"],
        model_identity=row["model_identity"],
        rows=RowSet(
            ingress=build_rows(RowKind.INGRESS, row["ingress"]),  # type: ignore[arg-type]
            egress=build_rows(RowKind.EGRESS, row["egress"]),  # type: ignore[arg-type]
        ),
        completed_at=row["completed_at"],
    )
