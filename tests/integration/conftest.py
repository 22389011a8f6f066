import os
from collections.abc import Generator
from pathlib import Path
from typing import Any

import psycopg
import pytest
from psycopg.rows import dict_row

from disclosure_worker.config.settings import Settings
from disclosure_worker.database.connection import apply_schema, close_pool, get_connection, init_pool
from disclosure_worker.database.models import JobRecord


def _test_settings() -> Settings:
    return Settings(
        db_database=os.environ.get("DB_DATABASE", "disclosures_test"),
        extraction_provider="example",
    )


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    return _test_settings()


@pytest.fixture(scope="session")
def integration_pool(test_settings: Settings) -> Generator[None, None, None]:
    try:
        init_pool(test_settings)
        with get_connection() as conn:
            conn.execute("SELECT 1")
        apply_schema()
    except Exception as e:
        close_pool()
        pytest.skip(
            f"PostgreSQL test DB not available: {e}. "
            "Set DB_* env to point at a disposable database"
        )
    try:
        yield
    finally:
        close_pool()


@pytest.fixture
def db_conn(integration_pool: None) -> Generator[psycopg.Connection[Any], None, None]:
    with get_connection() as conn:
        yield conn


@pytest.fixture
def integration_cleanup(
    integration_pool: None,
) -> Generator[list[tuple[str, int | str]], None, None]:
    """Collects (table, key) pairs; rows are deleted children-first after the test."""
    cleanup: list[tuple[str, int | str]] = []
    yield cleanup
    document_ids = [key for table, key in cleanup if table == "source_documents"]
    job_names = [key for table, key in cleanup if table == "batch_jobs"]
    with get_connection() as conn:
        with conn.cursor() as cur:
            if document_ids:
                for table in (
                    "extraction_jobs",
                    "extraction_runs",
                    "validated_datasets",
                    "summary_extractions",
                ):
                    cur.execute(
                        f"DELETE FROM {table} WHERE document_id = ANY(%s)", (document_ids,)
                    )
                cur.execute("DELETE FROM source_documents WHERE id = ANY(%s)", (document_ids,))
            if job_names:
                cur.execute("DELETE FROM batch_jobs WHERE job_name = ANY(%s)", (job_names,))
        conn.commit()


def _insert_document(
    db_conn: psycopg.Connection[Any], blob_path: str, page_count: int = 0
) -> int:
    with db_conn.cursor() as cur:
        cur.execute(
            """
            INSERT INTO source_documents (name, blob_path, page_count)
            VALUES (%s, %s, %s)
            RETURNING id
            """,
            (Path(blob_path).name, blob_path, page_count),
        )
        row = cur.fetchone()
        assert row is not None
    db_conn.commit()
    return int(row[0])


@pytest.fixture
def seed_document(
    db_conn: psycopg.Connection[Any],
    integration_cleanup: list[tuple[str, int | str]],
) -> int:
    """A pending document whose three pages have not been extracted yet."""
    document_id = _insert_document(db_conn, "2024/informe.pdf", page_count=3)
    integration_cleanup.append(("source_documents", document_id))
    return document_id


@pytest.fixture
def seed_job(db_conn: psycopg.Connection[Any], seed_document: int) -> JobRecord:
    with db_conn.cursor(row_factory=dict_row) as cur:
        cur.execute(
            """
            INSERT INTO extraction_jobs (document_id, status, attempts)
            VALUES (%s, 'pending', 0)
            RETURNING id, document_id, status, attempts
            """,
            (seed_document,),
        )
        row = cur.fetchone()
        assert row is not None
    db_conn.commit()
    return JobRecord(
        id=row["id"], document_id=row["document_id"], status="pending", attempts=0
    )


@pytest.fixture
def files_root(tmp_path: Path) -> Path:
    return tmp_path


@pytest.fixture
def pdf_on_disk(
    db_conn: psycopg.Connection[Any],
    integration_cleanup: list[tuple[str, int | str]],
    files_root: Path,
    three_page_pdf_bytes: bytes,
) -> tuple[int, Path]:
    """A pending three-page document whose file exists under ``files_root``."""
    document_id = _insert_document(db_conn, "2024/informe-tres.pdf")
    integration_cleanup.append(("source_documents", document_id))
    path = files_root / "2024" / "informe-tres.pdf"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(three_page_pdf_bytes)
    return document_id, files_root
