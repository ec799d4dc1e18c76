"""
Runtime configuration, read from environment variables (and a .env file).

  SUPABASE_URL / SUPABASE_KEY      ledger store credentials
  PROFITSIGHT_LEDGER_TIMEOUT       seconds per ledger request (default 10)
  PROFITSIGHT_LEDGER_RETRIES       attempts per ledger table (default 3)
  PROFITSIGHT_LEDGER_BACKOFF       initial retry delay in seconds, doubled each retry (default 0.5)
  PROFITSIGHT_KEEP_UNDATED         keep rows without a readable date when filtering (default false)
  PROFITSIGHT_LEDGER_FILE          optional JSON ledger snapshot used instead of Supabase
  PROFITSIGHT_LOG_LEVEL            logging level (default INFO)
"""

import os
import logging
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

PROJECT_DIR = Path(__file__).resolve().parent.parent.parent

_TRUE_VALUES = {"1", "true", "yes", "on"}


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "")
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"Ignoring invalid {name}={raw!r}; using {default}")
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "")
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Ignoring invalid {name}={raw!r}; using {default}")
        return default


@dataclass
class Settings:
    supabase_url: str = ""
    supabase_key: str = ""
    ledger_timeout: float = 10.0
    ledger_retries: int = 3
    ledger_backoff: float = 0.5
    keep_undated: bool = False
    ledger_file: str = ""
    log_level: str = "INFO"

    @property
    def has_supabase(self) -> bool:
        return bool(self.supabase_url and self.supabase_key and "YOUR_PROJECT" not in self.supabase_url)


def load_settings(env_file: str | os.PathLike | None = None) -> Settings:
    """Load .env (if present) and build Settings from the environment."""
    load_dotenv(env_file or PROJECT_DIR / ".env")

    return Settings(
        supabase_url=os.getenv("SUPABASE_URL", ""),
        supabase_key=os.getenv("SUPABASE_KEY", ""),
        ledger_timeout=_env_float("PROFITSIGHT_LEDGER_TIMEOUT", 10.0),
        ledger_retries=max(1, _env_int("PROFITSIGHT_LEDGER_RETRIES", 3)),
        ledger_backoff=max(0.0, _env_float("PROFITSIGHT_LEDGER_BACKOFF", 0.5)),
        keep_undated=os.getenv("PROFITSIGHT_KEEP_UNDATED", "").strip().lower() in _TRUE_VALUES,
        ledger_file=os.getenv("PROFITSIGHT_LEDGER_FILE", ""),
        log_level=os.getenv("PROFITSIGHT_LOG_LEVEL", "INFO").upper(),
    )
