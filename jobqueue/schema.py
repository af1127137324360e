from dataclasses import replace
from datetime import datetime
from typing import Any, Dict

from .errors import InvalidArgsError, InvalidPriorityError, MissingTypeError
from .job import Job, as_utc

DEFAULT_QUEUE = ""
DEFAULT_PRIORITY = 100
DEFAULT_ARGS = b"[]"

# job_queue.priority is a SMALLINT
PRIORITY_MIN = -32768
PRIORITY_MAX = 32767


def validate_job(job: Job) -> None:
    """
    Reject a job that cannot be persisted.

    The type check is for the exact empty string only: whitespace is a
    (strange but) legal handler name. Priority must fit a signed 16-bit
    column on every engine, and args must be UTF-8 since they are stored
    as text.

    Raises:
        MissingTypeError: If ``job.type`` is empty
        InvalidPriorityError: If ``job.priority`` is outside -32768..32767
        InvalidArgsError: If ``job.args`` is not valid UTF-8
    """
    if job.type == "":
        raise MissingTypeError()
    if not PRIORITY_MIN <= job.priority <= PRIORITY_MAX:
        raise InvalidPriorityError(
            f"priority {job.priority} outside {PRIORITY_MIN}..{PRIORITY_MAX}"
        )
    try:
        job.args.decode("utf-8")
    except UnicodeDecodeError as e:
        raise InvalidArgsError(f"args are not valid UTF-8: {e}") from e


def apply_defaults(job: Job, now: datetime) -> Job:
    """
    Return a copy of ``job`` with every zero-valued field defaulted.

    Args:
        job: Candidate job (left untouched)
        now: Insertion time, used when ``run_at`` is unset

    Returns:
        New Job with queue, priority, run_at and args filled in
    """
    return replace(
        job,
        queue=job.queue or DEFAULT_QUEUE,
        priority=job.priority or DEFAULT_PRIORITY,
        run_at=job.run_at if job.run_at is not None else now,
        args=job.args or DEFAULT_ARGS,
    )


def normalize_job(job: Job, now: datetime) -> Job:
    """Validate ``job``, then return its defaulted copy."""
    validate_job(job)
    return apply_defaults(job, now)


def job_to_row(job: Job) -> Dict[str, Any]:
    """Column values for inserting a normalized job."""
    return {
        "queue": job.queue,
        "priority": job.priority,
        "run_at": as_utc(job.run_at),
        "job_class": job.type,
        "args": job.args.decode("utf-8"),
        "error_count": 0,
        "last_error": None,
    }
