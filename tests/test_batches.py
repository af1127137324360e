"""
Tests for batch planning and bulk insertion.
"""

import math
from unittest.mock import Mock

import pytest
from sqlalchemy.exc import OperationalError

from jobqueue.client import Client
from jobqueue.database import list_jobs
from jobqueue.enqueue import DEFAULT_BATCH_SIZE, bulk_enqueue, logger, make_batches
from jobqueue.errors import InvalidArgsError, InvalidPriorityError, MissingTypeError
from jobqueue.job import Job

KINDS = ["Foo", "Bar", "Baz", "Fizz", "Buzz"]


class TestMakeBatches:
    """Test partitioning into chunks."""

    def test_batch_count(self, make_jobs):
        """N=5, B=3 gives ceil(5/3) = 2 chunks."""
        batches = make_batches(make_jobs(*KINDS), 3)

        assert len(batches) == math.ceil(len(KINDS) / 3)
        assert [len(b) for b in batches] == [3, 2]

    @pytest.mark.parametrize("count,size", [(1, 1), (3, 3), (6, 3), (7, 3), (10, 4), (2, 500)])
    def test_chunk_law(self, count, size):
        """Every job lands in exactly one chunk, in order."""
        jobs = [Job(type=f"Job{i}") for i in range(count)]
        batches = make_batches(jobs, size)

        assert len(batches) == math.ceil(count / size)
        assert all(1 <= len(b) <= size for b in batches)
        flat = [job for batch in batches for job in batch]
        assert len(flat) == count
        assert all(a is b for a, b in zip(flat, jobs))

    def test_evenly_divisible_last_chunk_full(self, make_jobs):
        batches = make_batches(make_jobs(*KINDS, "Extra"), 3)
        assert [len(b) for b in batches] == [3, 3]

    def test_empty_input(self):
        assert make_batches([], 3) == []

    def test_accepts_iterables(self, make_jobs):
        batches = make_batches(iter(make_jobs(*KINDS)), 2)
        assert [len(b) for b in batches] == [2, 2, 1]

    @pytest.mark.parametrize("size", [0, -1])
    def test_invalid_batch_size(self, make_jobs, size):
        with pytest.raises(ValueError):
            make_batches(make_jobs("Foo"), size)

    def test_default_batch_size(self):
        assert DEFAULT_BATCH_SIZE == 500


class TestBulkEnqueue:
    """Test multi-row insertion through the client."""

    def test_bulk_enqueue(self, client, engine, make_jobs):
        """All jobs are persisted with their types."""
        kinds = ["Foo", "Bar", "Baz"]
        client.bulk_enqueue(make_jobs(*kinds))

        with engine.connect() as conn:
            results = list_jobs(conn, job_types=kinds)

        assert len(results) == len(kinds)

    def test_bulk_enqueue_across_batches(self, client, engine, make_jobs):
        """Client batch size 3: five jobs take two statements, order kept."""
        batches = client.bulk_enqueue(make_jobs(*KINDS))

        assert batches == 2
        with engine.connect() as conn:
            stored = list_jobs(conn)
        assert [job.type for job in stored] == KINDS

    def test_bulk_defaults(self, client, engine):
        client.bulk_enqueue([Job(type="Foo"), Job(type="Bar", priority=5, queue="q", args=b'{"k": "v"}')])

        with engine.connect() as conn:
            foo, bar = list_jobs(conn)

        assert (foo.queue, foo.priority, foo.args) == ("", 100, b"[]")
        assert foo.run_at is not None
        assert foo.error_count == 0 and foo.last_error is None
        assert (bar.queue, bar.priority, bar.args) == ("q", 5, b'{"k": "v"}')

    def test_one_statement_per_batch(self, engine, make_jobs, recording_executor):
        jobs = make_jobs(*KINDS) * 2
        with engine.begin() as conn:
            executor = recording_executor(conn)
            submitted = bulk_enqueue(jobs, executor, batch_size=4)

        assert submitted == len(executor.statements) == math.ceil(10 / 4)
        with engine.connect() as conn:
            assert len(list_jobs(conn)) == 10

    def test_empty_list_issues_nothing(self, engine, recording_executor):
        with engine.connect() as conn:
            executor = recording_executor(conn)
            assert bulk_enqueue([], executor) == 0
        assert executor.statements == []

    def test_caller_jobs_not_mutated(self, client, make_jobs):
        jobs = make_jobs("Foo", "Bar")
        client.bulk_enqueue(jobs)

        assert all(job.id == 0 and job.priority == 0 and job.run_at is None for job in jobs)


class TestBulkEnqueueValidation:
    """One invalid job fails the whole call before any I/O."""

    def test_missing_type_writes_nothing(self, client, engine):
        jobs = [Job(type="Foo"), Job(type="Bar"), Job(type=""), Job(type="Baz")]

        with pytest.raises(MissingTypeError):
            client.bulk_enqueue(jobs)

        with engine.connect() as conn:
            assert list_jobs(conn) == []

    def test_missing_type_in_later_batch(self, engine, recording_executor):
        """Even a bad job in the last batch stops the first batch."""
        jobs = [Job(type=f"Job{i}") for i in range(7)] + [Job()]

        with engine.connect() as conn:
            executor = recording_executor(conn)
            with pytest.raises(MissingTypeError):
                bulk_enqueue(jobs, executor, batch_size=2)

        assert executor.statements == []

    def test_client_does_not_connect(self):
        engine = Mock()

        with pytest.raises(MissingTypeError):
            Client(engine).bulk_enqueue([Job(type="Foo"), Job()])

        engine.connect.assert_not_called()

    def test_undecodable_args_in_later_batch(self, engine, recording_executor):
        """Bad args in batch 2 must not leave batch 1 committed."""
        jobs = [Job(type="A"), Job(type="B"), Job(type="C", args=b"\xff\xfe")]

        with engine.connect() as conn:
            conn = conn.execution_options(isolation_level="AUTOCOMMIT")
            executor = recording_executor(conn)
            with pytest.raises(InvalidArgsError):
                bulk_enqueue(jobs, executor, batch_size=2)

        assert executor.statements == []
        with engine.connect() as conn:
            assert list_jobs(conn) == []

    def test_priority_overflow_writes_nothing(self, client, engine):
        jobs = [Job(type="Foo"), Job(type="Bar", priority=70000)]

        with pytest.raises(InvalidPriorityError):
            client.bulk_enqueue(jobs)

        with engine.connect() as conn:
            assert list_jobs(conn) == []

    def test_rejection_counted(self, engine, recording_executor):
        before = logger.get_metrics()
        with engine.connect() as conn:
            with pytest.raises(InvalidArgsError):
                bulk_enqueue([Job(type="A", args=b"\x80")], recording_executor(conn))

        after = logger.get_metrics()
        assert after["validation_failures"] == before["validation_failures"] + 1
        assert after["errors_by_type"]["InvalidArgsError"] >= 1


class TestBulkEnqueueFailures:
    """A failing batch stops the rest; what survives depends on the executor."""

    def test_prefix_survives_without_transaction(self, engine, make_jobs, failing_executor):
        with engine.connect() as conn:
            conn = conn.execution_options(isolation_level="AUTOCOMMIT")
            executor = failing_executor(conn, fail_on=2)

            with pytest.raises(OperationalError):
                bulk_enqueue(make_jobs(*KINDS), executor, batch_size=2)

        assert len(executor.statements) == 2
        with engine.connect() as conn:
            assert [job.type for job in list_jobs(conn)] == ["Foo", "Bar"]

    def test_rollback_discards_everything(self, client, engine, make_jobs, failing_executor):
        with engine.connect() as conn:
            tx = conn.begin()
            executor = failing_executor(conn, fail_on=2)

            with pytest.raises(OperationalError):
                client.bulk_enqueue(make_jobs(*KINDS), tx=executor)

            tx.rollback()

        with engine.connect() as conn:
            assert list_jobs(conn) == []

    def test_transaction_commit_keeps_everything(self, client, engine, make_jobs):
        with engine.begin() as conn:
            client.bulk_enqueue(make_jobs(*KINDS), tx=conn)

        with engine.connect() as conn:
            assert len(list_jobs(conn)) == len(KINDS)

    def test_failure_counted(self, engine, make_jobs, failing_executor):
        before = logger.get_metrics()
        with engine.connect() as conn:
            with pytest.raises(OperationalError):
                bulk_enqueue(make_jobs(*KINDS), failing_executor(conn, fail_on=1), batch_size=2)

        after = logger.get_metrics()
        assert after["io_failures"] == before["io_failures"] + 1
        assert after["errors_by_type"]["OperationalError"] >= 1
