"""
Producer-side client bound to a caller-owned engine.

The client keeps no connection between calls. Calls without a transaction
run on a pooled connection in AUTOCOMMIT mode, so each statement is durable
on its own; calls with a transaction run on the caller's handle and leave
commit and rollback to the caller.
"""

from contextlib import contextmanager
from typing import Iterator, Optional, Sequence

from sqlalchemy.engine import Connection, Engine

from .database import get_engine
from .enqueue import DEFAULT_BATCH_SIZE, Executor, bulk_enqueue, enqueue, validate_jobs
from .env import Settings
from .job import Job


class Client:
    """Enqueue jobs into the ``job_queue`` table of one database."""

    def __init__(self, engine: Engine, batch_size: int = DEFAULT_BATCH_SIZE):
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")
        self.engine = engine
        self.batch_size = batch_size

    @classmethod
    def from_settings(cls, settings: Settings) -> "Client":
        return cls(get_engine(settings.database_url), batch_size=settings.batch_size)

    @contextmanager
    def _autocommit(self) -> Iterator[Connection]:
        with self.engine.connect() as conn:
            yield conn.execution_options(isolation_level="AUTOCOMMIT")

    def enqueue(self, job: Job) -> Job:
        """Insert one job on its own; sets ``job.id`` and ``job.run_at``."""
        # fail before a connection is checked out
        validate_jobs([job])
        with self._autocommit() as conn:
            return enqueue(job, conn)

    def enqueue_in_tx(self, job: Job, tx: Executor) -> Job:
        """
        Insert one job inside the caller's transaction.

        The row is visible to others only after the caller commits ``tx``;
        a rollback leaves no trace of it.
        """
        return enqueue(job, tx)

    def bulk_enqueue(self, jobs: Sequence[Job], tx: Optional[Executor] = None) -> int:
        """
        Insert jobs in batches of ``self.batch_size``.

        Without ``tx`` each batch commits independently, so a failure leaves
        an unknown prefix of batches stored. With ``tx`` the outcome follows
        the caller's commit or rollback.

        Returns:
            Number of batches submitted
        """
        if tx is not None:
            return bulk_enqueue(jobs, tx, self.batch_size)
        jobs = list(jobs)
        validate_jobs(jobs)
        with self._autocommit() as conn:
            return bulk_enqueue(jobs, conn, self.batch_size)

    def close(self) -> None:
        self.engine.dispose()
