"""Print job model."""

from __future__ import annotations

import secrets
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from .enums import JobStatus, SendErrorKind

_FORWARD: dict[JobStatus, tuple[JobStatus, ...]] = {
    JobStatus.PENDING: (JobStatus.SENDING, JobStatus.FAILED),
    JobStatus.SENDING: (JobStatus.COMPLETED, JobStatus.FAILED),
    JobStatus.COMPLETED: (),
    JobStatus.FAILED: (),
}


def new_job_id() -> str:
    """Return a fresh job id."""
    return f"job_{int(time.time() * 1000)}_{secrets.token_hex(4)}"


@dataclass
class PrintJob:
    """One submitted print request and its lifecycle status."""

    printer_id: str
    payload: bytes
    id: str = field(default_factory=new_job_id)
    submitted_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    status: JobStatus = JobStatus.PENDING
    error: str | None = None
    error_kind: SendErrorKind | None = None
    finished_at: datetime | None = None

    def advance(
        self,
        status: JobStatus,
        error: str | None = None,
        error_kind: SendErrorKind | None = None,
    ) -> None:
        """
        Move the job forward.

        Raises:
            ValueError: If the transition would regress or skip the lifecycle.

        """
        if status not in _FORWARD[self.status]:
            msg = f"Job {self.id} cannot move from {self.status.value} to {status.value}"
            raise ValueError(msg)
        self.status = status
        if status is JobStatus.FAILED:
            self.error = error or "failed"
            self.error_kind = error_kind
        if status.is_terminal:
            self.finished_at = datetime.now(UTC)

    @property
    def size(self) -> int:
        """Return the payload size in bytes."""
        return len(self.payload)

    def to_dict(self) -> dict[str, Any]:
        """Return a serialisable snapshot without the payload bytes."""
        return {
            "id": self.id,
            "printer_id": self.printer_id,
            "size": self.size,
            "submitted_at": self.submitted_at.isoformat(),
            "status": self.status.value,
            "error": self.error,
            "error_kind": self.error_kind.value if self.error_kind else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }
