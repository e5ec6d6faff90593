"""
Runtime settings.

Values come from environment variables; a ``.env`` file in the working
directory is loaded first when present.
"""
import os
from dataclasses import dataclass, field
from typing import List

from dotenv import load_dotenv

load_dotenv()

BASE_DIR = os.path.dirname(os.path.abspath(__file__))


def _env_list(name: str, default: str) -> List[str]:
    raw = os.getenv(name, default)
    return [item.strip() for item in raw.split(",") if item.strip()]


@dataclass(frozen=True)
class Settings:
    """
    Application settings.

    Attributes:
        db_path: SQLite file holding imported records
        log_dir: Directory for the daily log file
        max_upload_bytes: Largest accepted upload
        pending_ttl_seconds: How long a validation token stays usable
        cors_origins: Origins allowed to call the API from a browser
    """
    db_path: str = os.path.join(BASE_DIR, "data", "records.db")
    log_dir: str = os.path.join(BASE_DIR, "logs")
    max_upload_bytes: int = 10 * 1024 * 1024
    pending_ttl_seconds: int = 15 * 60
    cors_origins: List[str] = field(default_factory=lambda: ["http://localhost:5173"])


def load_settings() -> Settings:
    """Build Settings from the current environment."""
    defaults = Settings()
    return Settings(
        db_path=os.getenv("EXCEL_DB_PATH", defaults.db_path),
        log_dir=os.getenv("EXCEL_LOG_DIR", defaults.log_dir),
        max_upload_bytes=int(float(os.getenv("EXCEL_MAX_UPLOAD_MB", "10")) * 1024 * 1024),
        pending_ttl_seconds=int(os.getenv("EXCEL_PENDING_TTL_SECONDS", str(defaults.pending_ttl_seconds))),
        cors_origins=_env_list("EXCEL_CORS_ORIGINS", ",".join(defaults.cors_origins)),
    )
