from typing import Any

from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from disclosure_worker.batch.models import TERMINAL_STATES, BatchJobState
from disclosure_worker.database.connection import get_connection
from disclosure_worker.database.models import BatchJobRecord

_BATCH_COLUMNS = """
    id, job_name, model, state, request_keys, group_ids, pages_per_request,
    page_counts, result_location, error_message, created_at, updated_at
"""


class BatchJobsRepository:
    """Database operations for the batch_jobs table."""

    def insert(
        self,
        *,
        job_name: str,
        model: str,
        state: BatchJobState,
        request_keys: list[str],
        group_ids: list[str],
        pages_per_request: int,
        page_counts: dict[str, int] | None = None,
    ) -> BatchJobRecord:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    INSERT INTO batch_jobs
                    (job_name, model, state, request_keys, group_ids, pages_per_request,
                     page_counts)
                    VALUES (%s, %s, %s, %s, %s, %s, %s)
                    RETURNING {_BATCH_COLUMNS}
                    """,
                    (
                        job_name,
                        model,
                        state.value,
                        Jsonb(request_keys),
                        Jsonb(group_ids),
                        pages_per_request,
                        Jsonb(page_counts or {}),
                    ),
                )
                row = cur.fetchone()
            conn.commit()
        if row is None:
            raise RuntimeError("INSERT INTO batch_jobs returned no row")
        return _to_record(row)

    def find_by_name(self, job_name: str) -> BatchJobRecord | None:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"SELECT {_BATCH_COLUMNS} FROM batch_jobs WHERE job_name = %s",
                    (job_name,),
                )
                row = cur.fetchone()
        return _to_record(row) if row is not None else None

    def list_active(self) -> list[BatchJobRecord]:
        """Jobs that have not reached a terminal state, oldest first."""
        terminal = [state.value for state in TERMINAL_STATES]
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    SELECT {_BATCH_COLUMNS} FROM batch_jobs
                    WHERE NOT (state = ANY(%s))
                    ORDER BY created_at
                    """,
                    (terminal,),
                )
                rows = cur.fetchall()
        return [_to_record(row) for row in rows]

    def update_state(
        self,
        job_name: str,
        state: BatchJobState,
        result_location: str | None = None,
        error_message: str | None = None,
    ) -> None:
        with get_connection() as conn:
            conn.execute(
                """
                UPDATE batch_jobs
                SET state = %s,
                    result_location = COALESCE(%s, result_location),
                    error_message = COALESCE(%s, error_message),
                    updated_at = NOW()
                WHERE job_name = %s
                """,
                (state.value, result_location, error_message, job_name),
            )
            conn.commit()


def _to_record(row: dict[str, Any]) -> BatchJobRecord:
    return BatchJobRecord(
        id=row["id"],
        job_name=row["job_name"],
        model=row["model"],
        state=BatchJobState(row["state"]),
        request_keys=list(row["request_keys"] or []),
        group_ids=list(row["group_ids"] or []),
        pages_per_request=row["pages_per_request"],
        page_counts={str(k): int(v) for k, v in (row["page_counts"] or {}).items()},
        result_location=row["result_location"],
        error_message=row["error_message"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )
