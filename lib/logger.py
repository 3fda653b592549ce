"""
Logging for HubSpot Pulse.

Handlers are installed once on the root logger (console, plus a daily file
when LOG_TO_FILE is set); module loggers only pick a level and propagate.
That keeps uvicorn, aiohttp and our own modules writing one line format to
one place, whichever entry point started the process.

Usage:
    from lib.logger import setup_logger
    logger = setup_logger(__name__)
    logger.info("Fetched %d deals", len(deals))
"""
import logging
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

PROJECT_ROOT = Path(__file__).resolve().parent.parent
LOG_DIR = PROJECT_ROOT / "logs"

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Per-request access lines from these are noise unless debugging
NOISY_LOGGERS = ("aiohttp.access", "uvicorn.access")

_HANDLER_TAG = "_hubspot_pulse"


def _level_from_env(level: Optional[str] = None) -> int:
    name = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    return getattr(logging, name, logging.INFO)


def _installed(root: logging.Logger) -> bool:
    return any(getattr(h, _HANDLER_TAG, False) for h in root.handlers)


def configure_logging(
    level: Optional[str] = None,
    log_to_file: Optional[bool] = None,
    log_dir: Optional[Path] = None,
) -> logging.Logger:
    """
    Install the shared handlers on the root logger. Safe to call repeatedly.

    Args:
        level: Root level name; defaults to LOG_LEVEL, then INFO.
        log_to_file: Also write logs/YYYYMMDD_hubspot_pulse.log; defaults to LOG_TO_FILE.
        log_dir: Override for the log directory.
    """
    root = logging.getLogger()
    root.setLevel(_level_from_env(level))
    if _installed(root):
        return root

    if log_to_file is None:
        log_to_file = os.getenv("LOG_TO_FILE", "false").lower() == "true"

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)
    handlers = [logging.StreamHandler(sys.stdout)]
    if log_to_file:
        target_dir = Path(log_dir) if log_dir else LOG_DIR
        target_dir.mkdir(parents=True, exist_ok=True)
        log_file = target_dir / f"{datetime.now().strftime('%Y%m%d')}_hubspot_pulse.log"
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))

    for handler in handlers:
        handler.setFormatter(formatter)
        setattr(handler, _HANDLER_TAG, True)
        root.addHandler(handler)

    if root.level > logging.DEBUG:
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)
    return root


def setup_logger(name: str, level: Optional[str] = None) -> logging.Logger:
    """Module logger at LOG_LEVEL (or `level`), writing through the root handlers."""
    configure_logging()
    logger = logging.getLogger(name)
    logger.setLevel(_level_from_env(level))
    return logger
