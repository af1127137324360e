"""
Pytest configuration and shared fixtures.
"""

import pytest
from sqlalchemy.exc import OperationalError

from jobqueue.client import Client
from jobqueue.database import init_database
from jobqueue.job import Job
from jobqueue.logger import get_logger


@pytest.fixture(autouse=True)
def quiet_logger():
    """Keep enqueue logging off the console during tests."""
    get_logger().configure(level="DEBUG", enable_console=False)
    yield


@pytest.fixture
def db_url(tmp_path) -> str:
    """URL of a fresh SQLite database file."""
    return f"sqlite:///{tmp_path / 'jobs.db'}"


@pytest.fixture
def engine(db_url):
    """Engine with the job_queue table created."""
    engine = init_database(db_url)
    yield engine
    engine.dispose()


@pytest.fixture
def client(engine) -> Client:
    return Client(engine, batch_size=3)


@pytest.fixture
def make_jobs():
    """Factory for jobs with the given types."""
    def _make(*kinds):
        return [Job(type=kind) for kind in kinds]
    return _make


class RecordingExecutor:
    """Passes statements through and remembers them."""

    def __init__(self, inner):
        self.inner = inner
        self.statements = []

    def execute(self, statement, *args, **kwargs):
        self.statements.append(statement)
        return self.inner.execute(statement, *args, **kwargs)


class FailingExecutor(RecordingExecutor):
    """Raises a database error on the n-th statement (1-based)."""

    def __init__(self, inner, fail_on: int):
        super().__init__(inner)
        self.fail_on = fail_on

    def execute(self, statement, *args, **kwargs):
        if len(self.statements) + 1 == self.fail_on:
            self.statements.append(statement)
            raise OperationalError("INSERT INTO job_queue", {}, Exception("disk I/O error"))
        return super().execute(statement, *args, **kwargs)


@pytest.fixture
def recording_executor():
    return RecordingExecutor


@pytest.fixture
def failing_executor():
    return FailingExecutor
