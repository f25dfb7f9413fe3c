"""Job system data models."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import UUID

from reelsync.jobs.types import JobStatus, JobType


@dataclass
class Job:
    """A job in the queue."""

    id: UUID
    type: JobType
    status: JobStatus
    payload: dict[str, Any]

    # None for system jobs (catalog resync, image cache)
    user_id: Optional[int] = None

    # Lifecycle timestamps
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    # Outcome (populated on completion)
    failure_reason: Optional[str] = None
    result: Optional[dict[str, Any]] = None

    @property
    def type_name(self) -> str:
        return getattr(self.type, "value", str(self.type))

    def to_dict(self) -> dict[str, Any]:
        """Flat JSON-friendly representation used by polling UIs."""
        return {
            "id": str(self.id),
            "user_id": self.user_id,
            "type": self.type_name,
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "failure_reason": self.failure_reason,
            "result": self.result,
        }
