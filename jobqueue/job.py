from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Mapping, Optional


def as_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Return ``dt`` as an aware UTC datetime; naive values are taken as UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


@dataclass(eq=False)
class Job:
    """A unit of deferred work, persisted as one row of ``job_queue``.

    ``id``, ``error_count`` and ``last_error`` belong to storage and the
    consumer side; callers only fill in the rest.
    """

    type: str = ""
    queue: str = ""
    priority: int = 0
    run_at: Optional[datetime] = None
    args: bytes = b""
    id: int = 0
    error_count: int = 0
    last_error: Optional[str] = None

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Job):
            return NotImplemented
        if self.id and other.id:
            return self.id == other.id
        return self is other

    __hash__ = None  # type: ignore[assignment]

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Job":
        """Build a Job from a ``job_queue`` row mapping."""
        args = row["args"]
        if isinstance(args, str):
            args = args.encode("utf-8")
        return cls(
            id=row["job_id"],
            queue=row["queue"],
            priority=row["priority"],
            run_at=as_utc(row["run_at"]),
            type=row["job_class"],
            args=args,
            error_count=row["error_count"],
            last_error=row["last_error"],
        )
