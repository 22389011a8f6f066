from typing import Any

from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from disclosure_worker.database.connection import get_connection
from disclosure_worker.database.models import SummaryExtractionRecord
from disclosure_worker.extraction.models import DisclosureSummary
from disclosure_worker.extraction.summary import build_summary, summary_to_dict

_SUMMARY_COLUMNS = "id, document_id, model_identity, page_number, summary, completed_at"


class SummaryExtractionsRepository:
    """Database operations for the summary_extractions table."""

    def insert(
        self,
        document_id: int,
        model_identity: str,
        page_number: int,
        summary: DisclosureSummary,
    ) -> SummaryExtractionRecord:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    INSERT INTO summary_extractions
                    (document_id, model_identity, page_number, summary)
                    VALUES (%s, %s, %s, %s)
                    RETURNING {_SUMMARY_COLUMNS}
                    """,
                    (document_id, model_identity, page_number, Jsonb(summary_to_dict(summary))),
                )
                row = cur.fetchone()
            conn.commit()
        if row is None:
            raise RuntimeError("INSERT INTO summary_extractions returned no row")
        return _to_record(row)

    def find_latest(self, document_id: int) -> SummaryExtractionRecord | None:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    SELECT {_SUMMARY_COLUMNS} FROM summary_extractions
                    WHERE document_id = %s
                    ORDER BY completed_at DESC, id DESC
                    LIMIT 1
                    """,
                    (document_id,),
                )
                row = cur.fetchone()
        return _to_record(row) if row is not None else None


def _to_record(row: dict[str, Any]) -> SummaryExtractionRecord:
    return SummaryExtractionRecord(
        id=row["id"],
        document_id=row["document_id"],
        model_identity=row["model_identity"],
        page_number=row["page_number"],
        summary=build_summary(row["summary"]),
        completed_at=row["completed_at"],
    )
