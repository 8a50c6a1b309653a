import os


def _int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


TRUTHY = ("1", "true", "yes", "on")


def is_truthy(raw) -> bool:
    return raw is not None and raw.strip().lower() in TRUTHY


def _flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return is_truthy(raw)


def _hour_minute(name: str, default: str) -> tuple[int, int]:
    raw = os.getenv(name, default).strip()
    hour, _, minute = raw.partition(":")
    return int(hour), int(minute or 0)


DB_PATH = os.getenv("CHOREQUEST_DB_PATH", os.path.join(os.getcwd(), "chorequest.sqlite3"))
DATABASE_URL = os.getenv("CHOREQUEST_DATABASE_URL", f"sqlite:///{DB_PATH}")

# Reference timezone for every "midnight" and "week" decision
REFERENCE_TZ = os.getenv("CHOREQUEST_TZ", "America/Chicago")

DAILY_HOUR, DAILY_MINUTE = _hour_minute("CHOREQUEST_DAILY_AT", "00:00")
# Sunday 00:00 is the boundary after Saturday ends
WEEKLY_DAY = os.getenv("CHOREQUEST_WEEKLY_DAY", "sun").strip().lower()
WEEKLY_HOUR, WEEKLY_MINUTE = _hour_minute("CHOREQUEST_WEEKLY_AT", "00:00")

SCHEDULER_ENABLED = _flag("CHOREQUEST_SCHEDULER", True)
JOB_MISFIRE_GRACE_SECONDS = _int("CHOREQUEST_JOB_MISFIRE_GRACE_SECONDS", 6 * 3600)
JOB_RETRY_ATTEMPTS = _int("CHOREQUEST_JOB_RETRY_ATTEMPTS", 5)
JOB_RETRY_BASE_SECONDS = _int("CHOREQUEST_JOB_RETRY_BASE_SECONDS", 60)
JOB_RETRY_MAX_SECONDS = _int("CHOREQUEST_JOB_RETRY_MAX_SECONDS", 3600)
JOB_LEASE_SECONDS = _int("CHOREQUEST_JOB_LEASE_SECONDS", 1800)

MAX_PLAYERS = 4

LOG_LEVEL = os.getenv("CHOREQUEST_LOG_LEVEL", "INFO").upper()
PORT = _int("PORT", 8000)
