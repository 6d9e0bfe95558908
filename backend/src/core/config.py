"""
Finance backend settings.

Values come from the process environment, optionally seeded from a ``.env``
file via python-dotenv. The file is ignored under pytest so tests only see what
they set themselves.
"""

import os
import pathlib
import sys
from dotenv import load_dotenv


def _running_under_pytest() -> bool:
    return os.getenv("PYTEST_VERSION") is not None or "pytest" in sys.modules


def _load_env_file() -> None:
    src_dir = pathlib.Path(__file__).resolve().parent.parent
    # backend/.env first, then the repository root, then the working directory
    for env_path in (src_dir.parent / ".env", src_dir.parent.parent / ".env", pathlib.Path.cwd() / ".env"):
        if env_path.exists():
            load_dotenv(env_path)
            return


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from e


if not _running_under_pytest():
    _load_env_file()


DATABASE_URL = os.getenv("DATABASE_URL", "postgresql://localhost/clinic_finance_dev")
ENVIRONMENT = os.getenv("ENVIRONMENT", "development")
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")

# Days and months are bucketed in clinic local time (Kigali, UTC+2)
CLINIC_UTC_OFFSET_HOURS = _int_env("CLINIC_UTC_OFFSET_HOURS", 2)
CURRENCY_CODE = os.getenv("CURRENCY_CODE", "RWF")

# Fresh read-plan-commit attempts before a CommitConflict reaches the caller
RECONCILIATION_MAX_ATTEMPTS = _int_env("RECONCILIATION_MAX_ATTEMPTS", 3)
