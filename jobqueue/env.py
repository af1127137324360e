import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from .enqueue import DEFAULT_BATCH_SIZE

DEFAULT_DATABASE_URL = "sqlite:///data/jobqueue.db"


def load_env() -> None:
    """Load .env from the working directory if present.
    Variables already set in the environment win.
    """
    env_path = Path.cwd() / ".env"
    if not env_path.exists():
        return
    load_dotenv(dotenv_path=env_path)


@dataclass(frozen=True)
class Settings:
    database_url: str = DEFAULT_DATABASE_URL
    batch_size: int = DEFAULT_BATCH_SIZE
    log_level: str = "INFO"
    log_dir: Optional[Path] = None


def _parse_batch_size(raw: str) -> int:
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"JOBQUEUE_BATCH_SIZE must be an integer, got {raw!r}")
    if value < 1:
        raise ValueError(f"JOBQUEUE_BATCH_SIZE must be >= 1, got {value}")
    return value


def load_settings() -> Settings:
    """
    Build Settings from the environment (after loading .env).

    Recognized variables:
        JOBQUEUE_DATABASE_URL, JOBQUEUE_BATCH_SIZE,
        JOBQUEUE_LOG_LEVEL, JOBQUEUE_LOG_DIR

    Raises:
        ValueError: If JOBQUEUE_BATCH_SIZE is not a positive integer
    """
    load_env()
    raw_batch = os.getenv("JOBQUEUE_BATCH_SIZE")
    log_dir = os.getenv("JOBQUEUE_LOG_DIR")
    return Settings(
        database_url=os.getenv("JOBQUEUE_DATABASE_URL") or DEFAULT_DATABASE_URL,
        batch_size=_parse_batch_size(raw_batch) if raw_batch else DEFAULT_BATCH_SIZE,
        log_level=(os.getenv("JOBQUEUE_LOG_LEVEL") or "INFO").upper(),
        log_dir=Path(log_dir) if log_dir else None,
    )
