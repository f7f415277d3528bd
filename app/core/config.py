import os
from dataclasses import dataclass


def _env_str(name: str, default: str) -> str:
    v = os.getenv(name)
    if v is None or v.strip() == "":
        return default
    return v.strip()


def _env_int(name: str, default: int) -> int:
    v = os.getenv(name)
    if v is None or v == "":
        return default
    try:
        return int(v)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    v = os.getenv(name)
    if v is None or v == "":
        return default
    try:
        return float(v)
    except ValueError:
        return default


def _env_bool(name: str, default: bool) -> bool:
    v = os.getenv(name)
    if v is None or v.strip() == "":
        return default
    return v.strip() not in {"0", "false", "False", "no", "NO", "off"}


@dataclass(frozen=True)
class Settings:
    env: str
    database_url: str
    log_level: str
    lock_on_contract_assignment: bool
    pending_completion_cutoff_hours: int
    outbox_worker_enabled: bool
    outbox_poll_seconds: float
    outbox_batch_size: int
    outbox_max_retries: int


def get_settings() -> Settings:
    """Read settings from the environment.

    Not cached: tests flip env vars between cases.
    """
    return Settings(
        env=_env_str("ENV", "dev").lower(),
        database_url=_env_str("DATABASE_URL", "sqlite:///./trucking_jobs.db"),
        log_level=_env_str("LOG_LEVEL", "INFO").upper(),
        lock_on_contract_assignment=_env_bool("LOCK_ON_CONTRACT_ASSIGNMENT", True),
        pending_completion_cutoff_hours=_env_int("PENDING_COMPLETION_CUTOFF_HOURS", 24),
        outbox_worker_enabled=_env_bool("OUTBOX_WORKER_ENABLED", True),
        outbox_poll_seconds=_env_float("OUTBOX_POLL_SECONDS", 1.0),
        outbox_batch_size=_env_int("OUTBOX_BATCH_SIZE", 50),
        outbox_max_retries=_env_int("OUTBOX_MAX_RETRIES", 10),
    )
