"""Producer side of a database-backed job queue."""

__version__ = "0.1.0"

from .client import Client
from .enqueue import DEFAULT_BATCH_SIZE, Executor, bulk_enqueue, enqueue, make_batches
from .errors import InvalidArgsError, InvalidPriorityError, JobQueueError, MissingTypeError
from .job import Job

__all__ = [
    "Client",
    "DEFAULT_BATCH_SIZE",
    "Executor",
    "InvalidArgsError",
    "InvalidPriorityError",
    "Job",
    "JobQueueError",
    "MissingTypeError",
    "bulk_enqueue",
    "enqueue",
    "make_batches",
]
