"""
Database schema and connection management.

Defines the shared ``job_queue`` table that producers insert into and
workers consume from. Any SQLAlchemy-supported engine works; SQLite is the
local default.
"""

from pathlib import Path
from typing import List, Optional, Sequence, Union

from sqlalchemy import (
    BigInteger,
    Column,
    DateTime,
    Integer,
    SmallInteger,
    Text,
    create_engine,
    select,
)
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import declarative_base

from .job import Job

Base = declarative_base()


class JobRecord(Base):
    """One queued job."""

    __tablename__ = "job_queue"

    # BIGINT is not an alias for ROWID in SQLite, so it would not autoincrement there
    job_id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    queue = Column(Text, nullable=False, default="")
    priority = Column(SmallInteger, nullable=False, default=100)
    run_at = Column(DateTime(timezone=True), nullable=False)
    job_class = Column(Text, nullable=False)
    args = Column(Text, nullable=False, default="[]")
    error_count = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)


job_table = JobRecord.__table__


def get_engine(url: str, **kwargs) -> Engine:
    """
    Create an engine for the job database.

    For file-backed SQLite URLs the parent directory is created if missing.

    Args:
        url: SQLAlchemy database URL
        **kwargs: Passed through to ``create_engine``

    Returns:
        SQLAlchemy Engine (owned by the caller)
    """
    parsed = make_url(url)
    if parsed.get_backend_name() == "sqlite" and parsed.database not in (None, "", ":memory:"):
        Path(parsed.database).parent.mkdir(parents=True, exist_ok=True)
    return create_engine(url, **kwargs)


def init_database(bind: Union[str, Engine]) -> Engine:
    """
    Create the job_queue table if it does not exist.

    Args:
        bind: Database URL or an existing Engine

    Returns:
        The Engine the table was created with
    """
    engine = get_engine(bind) if isinstance(bind, str) else bind
    Base.metadata.create_all(engine)
    return engine


def list_jobs(
    executor,
    queue: Optional[str] = None,
    job_types: Optional[Sequence[str]] = None,
) -> List[Job]:
    """
    Read persisted jobs in insertion order.

    This is an inspection helper: it takes no row locks and does not
    claim anything.

    Args:
        executor: Connection or Session to read through
        queue: Only jobs in this queue
        job_types: Only jobs whose type is one of these
    """
    stmt = select(job_table)
    if queue is not None:
        stmt = stmt.where(job_table.c.queue == queue)
    if job_types is not None:
        stmt = stmt.where(job_table.c.job_class.in_(list(job_types)))
    stmt = stmt.order_by(job_table.c.job_id.asc())
    rows = executor.execute(stmt).mappings().all()
    return [Job.from_row(row) for row in rows]
