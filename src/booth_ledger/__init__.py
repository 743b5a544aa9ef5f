"""Booth Ledger: ingredient costing, stock and sales for a single booth.

Importing the package configures the ``booth_ledger`` logger once. Records go
to a rotating file under ``<project>/.logs`` and to stderr. Set
``BOOTH_LEDGER_LOG_DIR`` to move the log file and ``BOOTH_LEDGER_LOG_LEVEL``
to change verbosity (``DEBUG`` shows cache activity and computed totals).
"""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional


__version__ = "0.1.0"

PROJECT_ROOT = Path(__file__).resolve().parents[2]
LOG_DIR = Path(os.environ.get("BOOTH_LEDGER_LOG_DIR", PROJECT_ROOT / ".logs"))
LOG_FILE = LOG_DIR / "booth_ledger.log"
LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _resolve_level(raw: Optional[str]) -> int:
    level = logging.getLevelName((raw or "INFO").upper())
    return level if isinstance(level, int) else logging.INFO


def _build_file_handler(formatter: logging.Formatter, level: int) -> Optional[logging.Handler]:
    """Rotating ledger log file, or ``None`` when the directory is unusable."""
    try:
        LOG_DIR.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(
            LOG_FILE,
            maxBytes=1_000_000,
            backupCount=5,
            encoding="utf-8",
        )
    except OSError as exc:
        print(
            f"Warning: booth ledger log file unavailable at '{LOG_FILE}': {exc}",
            file=sys.stderr,
        )
        return None
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def _configure_logging() -> logging.Logger:
    logger = logging.getLogger(__name__)
    if logger.handlers:
        return logger

    level = _resolve_level(os.environ.get("BOOTH_LEDGER_LOG_LEVEL"))
    logger.setLevel(level)
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    file_handler = _build_file_handler(formatter, level)
    if file_handler is not None:
        logger.addHandler(file_handler)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    return logger


log = _configure_logging()
log.debug("Booth ledger %s logging to '%s'", __version__, LOG_FILE)
