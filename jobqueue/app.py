import argparse
import json
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from . import __version__
from .client import Client
from .database import get_engine, init_database, list_jobs
from .env import Settings, load_settings
from .errors import JobQueueError
from .job import Job
from .logger import configure_logger, get_logger


def parse_run_at(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    # fromisoformat() on older interpreters does not accept a trailing Z
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        raise SystemExit(f"Invalid --run-at timestamp: {value}")


def job_from_dict(data: Dict[str, Any]) -> Job:
    """Build a Job from one JSON object of a bulk file."""
    args = data.get("args")
    return Job(
        type=data.get("type", ""),
        queue=data.get("queue", ""),
        priority=int(data.get("priority", 0)),
        run_at=parse_run_at(data.get("run_at")),
        args=json.dumps(args).encode("utf-8") if args is not None else b"",
    )


def make_client(args: argparse.Namespace, settings: Settings) -> Client:
    url = args.db or settings.database_url
    return Client(get_engine(url), batch_size=settings.batch_size)


def cmd_init_db(args: argparse.Namespace, settings: Settings) -> None:
    url = args.db or settings.database_url
    engine = init_database(url)
    engine.dispose()
    print(f"Initialized job_queue table at {url}")


def cmd_enqueue(args: argparse.Namespace, settings: Settings) -> None:
    payload = b""
    if args.args:
        try:
            json.loads(args.args)
        except json.JSONDecodeError as e:
            raise SystemExit(f"--args is not valid JSON: {e}")
        payload = args.args.encode("utf-8")

    job = Job(
        type=args.type,
        queue=args.queue,
        priority=args.priority,
        run_at=parse_run_at(args.run_at),
        args=payload,
    )
    client = make_client(args, settings)
    try:
        client.enqueue(job)
    finally:
        client.close()
    print(f"Enqueued job {job.id} ({job.type}) run_at={job.run_at.isoformat()}")


def cmd_bulk_enqueue(args: argparse.Namespace, settings: Settings) -> None:
    input_path = Path(args.input)
    if not input_path.exists():
        raise SystemExit(f"Input file not found: {input_path}")
    with input_path.open("r", encoding="utf-8") as f:
        entries = json.load(f)
    if not isinstance(entries, list):
        raise SystemExit("Bulk input must be a JSON array of job objects")

    jobs: List[Job] = [job_from_dict(data) for data in entries]
    client = make_client(args, settings)
    try:
        batches = client.bulk_enqueue(jobs)
    finally:
        client.close()
    print(f"Enqueued {len(jobs)} jobs in {batches} batch(es)")
    get_logger().log_metrics_summary()


def cmd_list(args: argparse.Namespace, settings: Settings) -> None:
    engine = get_engine(args.db or settings.database_url)
    try:
        with engine.connect() as conn:
            jobs = list_jobs(conn, queue=args.queue)
    finally:
        engine.dispose()

    if not jobs:
        print("No jobs.")
        return
    for job in jobs:
        print(
            f"{job.id:>8} | {job.queue or '(default)':<16} | prio={job.priority:<5} "
            f"| run_at={job.run_at.isoformat()} | {job.type} | errors={job.error_count}"
        )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="jobqueue", description="Enqueue jobs into a database-backed job queue")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--db", default=None, help="Database URL (default: JOBQUEUE_DATABASE_URL)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    init = subparsers.add_parser("init-db", help="Create the job_queue table")
    init.set_defaults(func=cmd_init_db)

    enq = subparsers.add_parser("enqueue", help="Enqueue a single job")
    enq.add_argument("--type", required=True, help="Job type (handler name)")
    enq.add_argument("--queue", default="", help="Queue name (default: unnamed queue)")
    enq.add_argument("--priority", type=int, default=0, help="Lower runs first (default: 100)")
    enq.add_argument("--run-at", default=None, help="ISO timestamp; naive values are UTC (default: now)")
    enq.add_argument("--args", default=None, help="JSON arguments (default: [])")
    enq.set_defaults(func=cmd_enqueue)

    bulk = subparsers.add_parser("bulk-enqueue", help="Enqueue jobs from a JSON array file")
    bulk.add_argument("input", help="Path to JSON file: [{\"type\": ..., \"args\": ...}, ...]")
    bulk.set_defaults(func=cmd_bulk_enqueue)

    lst = subparsers.add_parser("list", help="List queued jobs")
    lst.add_argument("--queue", default=None, help="Only jobs in this queue")
    lst.set_defaults(func=cmd_list)

    return parser


def main(argv: Optional[List[str]] = None) -> None:
    settings = load_settings()
    configure_logger(level=settings.log_level, log_dir=settings.log_dir)

    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        args.func(args, settings)
    except JobQueueError as e:
        print(f"Invalid job: {e}")
        raise SystemExit(2)
    except SQLAlchemyError as e:
        print(f"Database error: {e}")
        raise SystemExit(1)


if __name__ == "__main__":
    main()
