from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from disclosure_worker.batch.models import BatchJobState
from disclosure_worker.extraction.models import DisclosureSummary, RowSet


class DocumentStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class PageReextractionStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    FAILED = "failed"


class SummaryStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class JobKind(str, Enum):
    EXTRACTION = "extraction"
    SUMMARY = "summary"


@dataclass
class DocumentRecord:
    """Represents a row from the source_documents table."""

    id: int
    name: str
    blob_path: str
    page_count: int
    status: DocumentStatus
    error_message: str | None = None
    page_rotations: dict[int, int] = field(default_factory=dict)
    page_reextraction_status: dict[int, PageReextractionStatus] = field(default_factory=dict)
    summary_status: SummaryStatus | None = None
    summary_error_message: str | None = None
    processing_started_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def has_page(self, page_number: int) -> bool:
        return 1 <= page_number <= self.page_count


@dataclass
class ExtractionRunRecord:
    """Represents a row from the extraction_runs table."""

    id: int
    document_id: int
    model_identity: str
    rows: RowSet
    completed_at: datetime | None = None


@dataclass
class ValidatedDatasetRecord:
    """Represents a row from the validated_datasets table."""

    id: int
    document_id: int
    rows: RowSet
    validated_at: datetime | None = None


@dataclass
class BatchJobRecord:
    """Represents a row from the batch_jobs table."""

    id: int
    job_name: str
    model: str
    state: BatchJobState
    request_keys: list[str] = field(default_factory=list)
    group_ids: list[str] = field(default_factory=list)
    pages_per_request: int = 1
    page_counts: dict[str, int] = field(default_factory=dict)
    result_location: str | None = None
    error_message: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class JobRecord:
    """Represents a row from the extraction_jobs table.

    Extraction jobs with ``page_number`` set re-extract that single page; with
    ``None`` they extract the whole document. Summary jobs never carry a page.
    """

    id: int
    document_id: int
    status: str
    attempts: int
    page_number: int | None = None
    kind: JobKind = JobKind.EXTRACTION
    error_message: str | None = None
    locked_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class SummaryExtractionRecord:
    """Represents a row from the summary_extractions table."""

    id: int
    document_id: int
    model_identity: str
    page_number: int
    summary: DisclosureSummary
    completed_at: datetime | None = None
