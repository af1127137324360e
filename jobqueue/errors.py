"""
Exception types raised by the enqueue subsystem.

Database failures are not wrapped: they reach the caller as the original
``sqlalchemy.exc.SQLAlchemyError`` subclass.
"""


class JobQueueError(Exception):
    """Base class for errors raised by jobqueue itself."""
    pass


class MissingTypeError(JobQueueError, ValueError):
    """Raised when a job is enqueued without a type. No I/O has happened."""

    def __init__(self, message: str = "job type must not be empty"):
        super().__init__(message)


class InvalidPriorityError(JobQueueError, ValueError):
    """Raised when a priority does not fit the SMALLINT column."""
    pass


class InvalidArgsError(JobQueueError, ValueError):
    """Raised when a job's args payload is not UTF-8 text."""
    pass
