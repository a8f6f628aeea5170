"""
Environment configuration for the daybook.

Values are read once at import time after loading a local .env file.

  LEDGER_DB_PATH       SQLite file holding the ledger (default: ledger.db)
  LEDGER_API_URL       remote ledger endpoint used when none is persisted yet
  LEDGER_API_TIMEOUT   seconds before a remote call is abandoned (default: 10)
  LEDGER_ORIGIN        Origin header sent with remote writes (default: http://localhost)
  LEDGER_BACKUP_DIR    NDJSON backup folder (default: ledger_backup)
  LEDGER_LOG_LEVEL     logging level name (default: INFO)
"""
import logging
import os
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


def _env_string(name: str, default: Optional[str] = None) -> Optional[str]:
    """Return trimmed string-valued env vars, normalizing empty strings to None."""
    raw = os.getenv(name, default)
    if raw is None:
        return default
    if isinstance(raw, str):
        clean = raw.strip()
        return clean if clean else default
    return raw


def _env_float(name: str, default: float) -> float:
    raw = _env_string(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


LEDGER_DB_PATH = _env_string('LEDGER_DB_PATH', 'ledger.db')
LEDGER_API_URL = _env_string('LEDGER_API_URL')
LEDGER_API_TIMEOUT = _env_float('LEDGER_API_TIMEOUT', 10.0)
LEDGER_ORIGIN = _env_string('LEDGER_ORIGIN', 'http://localhost')
LEDGER_BACKUP_DIR = _env_string('LEDGER_BACKUP_DIR', 'ledger_backup')
LEDGER_LOG_LEVEL = (_env_string('LEDGER_LOG_LEVEL') or 'INFO').upper()


def log_level() -> int:
    return getattr(logging, LEDGER_LOG_LEVEL, logging.INFO)


def configure_logging(prefix: str = '') -> None:
    fmt = f'{prefix}%(asctime)s %(levelname)s %(name)s %(message)s'
    logging.basicConfig(level=log_level(), format=fmt)
