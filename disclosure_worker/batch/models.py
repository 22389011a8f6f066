from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class BatchJobState(str, Enum):
    BUILDING = "building"
    SUBMITTED = "submitted"
    RUNNING = "running"
    # The provider finished; results are not stored yet.
    COLLECTING = "collecting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES = frozenset(
    {
        BatchJobState.SUCCEEDED,
        BatchJobState.FAILED,
        BatchJobState.CANCELLED,
        BatchJobState.EXPIRED,
    }
)


@dataclass(frozen=True)
class BatchRequest:
    """One keyed request line of a batch manifest."""

    key: str
    request: dict[str, Any]


@dataclass(frozen=True)
class BatchStatus:
    """Provider-reported status of a batch job."""

    state: BatchJobState
    result_location: str | None = None
    error_message: str | None = None
    total_requests: int | None = None
    succeeded_requests: int | None = None
    failed_requests: int | None = None

    def describe(self) -> str:
        if self.total_requests is None:
            return self.state.value
        return f"{self.state.value} ({self.succeeded_requests or 0}/{self.total_requests})"


@dataclass(frozen=True)
class BatchGroup:
    """One document's contribution to a batch: its group id and PDF bytes."""

    group_id: str
    pdf_bytes: bytes = field(repr=False)
