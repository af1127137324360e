"""
Job insertion: single rows and batched multi-row inserts.

Nothing in this module begins, commits or rolls back a transaction. The
executor it is handed (an autocommit connection, a connection inside
``begin()``, or a Session) decides when inserted rows become visible.
"""

from datetime import datetime, timezone
from typing import Any, Iterable, List, Protocol, Sequence

from sqlalchemy import insert
from sqlalchemy.exc import SQLAlchemyError

from .database import job_table
from .errors import JobQueueError
from .job import Job, as_utc
from .logger import get_logger
from .schema import job_to_row, normalize_job

# 7 bound columns per row, well below SQLite (32766) and PostgreSQL (65535) parameter limits
DEFAULT_BATCH_SIZE = 500

logger = get_logger()


class Executor(Protocol):
    """Anything that can run a SQLAlchemy statement: Connection or Session."""

    def execute(self, statement: Any, *args: Any, **kwargs: Any) -> Any:
        ...


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def normalize_jobs(jobs: Sequence[Job], now: datetime) -> List[Job]:
    """
    Validate and default every job before any statement is issued.

    Returns:
        Defaulted copies, in input order

    Raises:
        JobQueueError: On the first job that cannot be persisted
    """
    normalized = []
    for index, job in enumerate(jobs):
        try:
            normalized.append(normalize_job(job, now))
        except JobQueueError as e:
            logger.record_validation_failure(type(e).__name__)
            logger.warning("Rejected job", index=index, type=job.type, queue=job.queue, error=str(e))
            raise
    return normalized


def validate_jobs(jobs: Sequence[Job]) -> None:
    normalize_jobs(jobs, _utc_now())


def enqueue(job: Job, executor: Executor) -> Job:
    """
    Insert one job through ``executor``.

    On success ``job.id`` and ``job.run_at`` are set from the stored row;
    the other fields of the caller's object are left as they were.

    Args:
        job: Job to insert
        executor: Connection or Session; its transaction (if any) is the caller's

    Returns:
        The same Job object

    Raises:
        JobQueueError: If the job cannot be persisted (executor untouched)
        SQLAlchemyError: Any database failure, unchanged
    """
    (normalized,) = normalize_jobs([job], _utc_now())

    stmt = (
        insert(job_table)
        .values(**job_to_row(normalized))
        .returning(job_table.c.job_id, job_table.c.run_at)
    )
    try:
        row = executor.execute(stmt).one()
    except SQLAlchemyError as e:
        logger.record_io_failure(type(e).__name__)
        logger.error(
            "Job insert failed",
            type=normalized.type,
            queue=normalized.queue,
            error=str(e),
        )
        raise

    job.id = row.job_id
    job.run_at = as_utc(row.run_at)
    logger.record_enqueued(normalized.queue)
    logger.debug(
        "Job enqueued",
        id=job.id,
        type=normalized.type,
        queue=normalized.queue,
        priority=normalized.priority,
    )
    return job


def make_batches(jobs: Iterable[Job], batch_size: int) -> List[List[Job]]:
    """
    Split jobs into contiguous chunks of at most ``batch_size``, keeping order.

    Raises:
        ValueError: If batch_size < 1
    """
    if batch_size < 1:
        raise ValueError(f"batch_size must be >= 1, got {batch_size}")
    jobs = list(jobs)
    return [jobs[start:start + batch_size] for start in range(0, len(jobs), batch_size)]


def bulk_enqueue(
    jobs: Sequence[Job],
    executor: Executor,
    batch_size: int = DEFAULT_BATCH_SIZE,
) -> int:
    """
    Insert many jobs, one multi-row INSERT per batch, in input order.

    All jobs are validated first; one bad job fails the call before any
    statement runs. A database error on batch k stops the remaining batches
    and is re-raised. Whether batches 1..k-1 survive is up to the executor:
    they do on an autocommit connection, and they go away with the caller's
    rollback inside a transaction. Job ids are not back-filled.

    Args:
        jobs: Jobs to insert
        executor: Connection or Session
        batch_size: Maximum rows per statement

    Returns:
        Number of batches submitted
    """
    jobs = list(jobs)
    batches = make_batches(normalize_jobs(jobs, _utc_now()), batch_size)
    # every row is built before the first statement runs
    statements = [
        insert(job_table).values([job_to_row(job) for job in batch]) for batch in batches
    ]

    for number, (batch, stmt) in enumerate(zip(batches, statements), start=1):
        try:
            executor.execute(stmt)
        except SQLAlchemyError as e:
            logger.record_io_failure(type(e).__name__)
            logger.error(
                "Batch insert failed",
                batch=number,
                batches=len(batches),
                size=len(batch),
                error=str(e),
            )
            raise
        logger.record_batch()
        for job in batch:
            logger.record_enqueued(job.queue)
        logger.debug("Batch inserted", batch=number, batches=len(batches), size=len(batch))

    logger.info("Bulk enqueue complete", jobs=len(jobs), batches=len(batches))
    return len(batches)
