from typing import Any

from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from disclosure_worker.database.connection import get_connection
from disclosure_worker.database.models import ValidatedDatasetRecord
from disclosure_worker.extraction.models import RowKind, RowSet
from disclosure_worker.extraction.validator import build_rows, rows_to_dicts, strip_ai_unreadable


class ValidatedDataRepository:
    """Database operations for the validated_datasets table.

    The AI-declared ``unreadableFields`` key is stripped from every row on
    write, so a stored dataset never carries it.
    """

    def find_by_document(self, document_id: int) -> ValidatedDatasetRecord | None:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    """
                    SELECT id, document_id, ingress, egress, validated_at
                    FROM validated_datasets
                    WHERE document_id = %s
                    """,
                    (document_id,),
                )
                row = cur.fetchone()
        return _to_record(row) if row is not None else None

    def save(self, document_id: int, rows: RowSet) -> ValidatedDatasetRecord:
        """Insert or replace the validated dataset of a document."""
        ingress, egress = _stripped_payload(rows)
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    """
                    INSERT INTO validated_datasets (document_id, ingress, egress)
                    VALUES (%s, %s, %s)
                    ON CONFLICT (document_id) DO UPDATE
                    SET ingress = EXCLUDED.ingress,
                        egress = EXCLUDED.egress,
                        validated_at = NOW()
                    RETURNING id, document_id, ingress, egress, validated_at
                    """,
                    (document_id, ingress, egress),
                )
                row = cur.fetchone()
            conn.commit()
        if row is None:
            raise RuntimeError("Upsert into validated_datasets returned no row")
        return _to_record(row)

    def replace_rows(self, dataset_id: int, rows: RowSet) -> None:
        ingress, egress = _stripped_payload(rows)
        with get_connection() as conn:
            conn.execute(
                """
                UPDATE validated_datasets
                SET ingress = %s, egress = %s, validated_at = NOW()
                WHERE id = %s
                """,
                (ingress, egress, dataset_id),
            )
            conn.commit()


def _stripped_payload(rows: RowSet) -> tuple[Jsonb, Jsonb]:
    return (
        Jsonb(rows_to_dicts(strip_ai_unreadable(rows.ingress))),  # type: ignore[arg-type]
        Jsonb(rows_to_dicts(strip_ai_unreadable(rows.egress))),  # type: ignore[arg-type]
    )


def _to_record(row: dict[str, Any]) -> ValidatedDatasetRecord:
    return ValidatedDatasetRecord(
        id=row["id"],
        document_id=row["document_id"],
        rows=RowSet(
            ingress=build_rows(RowKind.INGRESS, row["ingress"]),  # type: ignore[arg-type]
            egress=build_rows(RowKind.EGRESS, row["egress"]),  # type: ignore[arg-type]
        ),
        validated_at=row["validated_at"],
    )
