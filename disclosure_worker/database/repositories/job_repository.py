from typing import Any

import psycopg
from psycopg.rows import dict_row

from disclosure_worker.database.connection import get_connection
from disclosure_worker.database.models import JobKind, JobRecord

_JOB_COLUMNS = """
    id, document_id, page_number, kind, status, attempts,
    error_message, locked_at, created_at, updated_at
"""


class JobRepository:
    """Queue of extraction jobs backed by the extraction_jobs table.

    An extraction job with ``page_number`` set re-extracts that single page;
    otherwise it extracts the whole document. Summary jobs read the summary form.
    """

    def __init__(self, max_attempts: int) -> None:
        self._max_attempts = max_attempts

    def enqueue(
        self,
        document_id: int,
        page_number: int | None = None,
        kind: JobKind = JobKind.EXTRACTION,
    ) -> int:
        with get_connection() as conn:
            row = conn.execute(
                """
                INSERT INTO extraction_jobs (document_id, page_number, kind)
                VALUES (%s, %s, %s)
                RETURNING id
                """,
                (document_id, page_number, kind.value),
            ).fetchone()
            conn.commit()
        if row is None:
            raise RuntimeError("INSERT INTO extraction_jobs returned no row")
        return int(row[0])

    def claim_next_job(self, conn: psycopg.Connection[Any]) -> JobRecord | None:
        """Lock the oldest claimable job and flip it to processing in one statement.

        Rows locked by another worker are skipped, so concurrent workers never
        claim the same job.
        """
        with conn.cursor(row_factory=dict_row) as cur:
            cur.execute(
                f"""
                UPDATE extraction_jobs
                SET status = 'processing', locked_at = NOW(), updated_at = NOW()
                WHERE id = (
                    SELECT id FROM extraction_jobs
                    WHERE status = 'pending' AND attempts < %s
                    ORDER BY created_at, id
                    LIMIT 1
                    FOR UPDATE SKIP LOCKED
                )
                RETURNING {_JOB_COLUMNS}
                """,
                (self._max_attempts,),
            )
            row = cur.fetchone()
        conn.commit()
        return _to_record(row) if row is not None else None

    def mark_done(self, job_id: int) -> None:
        self._update(job_id, "status = 'done'")

    def mark_failed(self, job_id: int, error: str) -> None:
        """Mark a job as permanently failed."""
        self._update(job_id, "status = 'failed', error_message = %s", (error,))

    def increment_attempts(self, job_id: int) -> None:
        """Count a failed attempt and put the job back in the queue."""
        self._update(job_id, "attempts = attempts + 1, status = 'pending', locked_at = NULL")

    def find_by_id(self, job_id: int) -> JobRecord | None:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(f"SELECT {_JOB_COLUMNS} FROM extraction_jobs WHERE id = %s", (job_id,))
                row = cur.fetchone()
        return _to_record(row) if row is not None else None

    def _update(self, job_id: int, assignments: str, params: tuple[Any, ...] = ()) -> None:
        with get_connection() as conn:
            conn.execute(
                f"UPDATE extraction_jobs SET {assignments}, updated_at = NOW() WHERE id = %s",
                (*params, job_id),
            )
            conn.commit()


def _to_record(row: dict[str, Any]) -> JobRecord:
    return JobRecord(
        id=row["id"],
        document_id=row["document_id"],
        page_number=row["page_number"],
        kind=JobKind(row["kind"]),
        status=row["status"],
        attempts=row["attempts"],
        error_message=row["error_message"],
        locked_at=row["locked_at"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )
