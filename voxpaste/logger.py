"""
Logging setup for voxpaste.

All modules log through children of the ``voxpaste`` logger, which writes to a
rotating file and optionally to stderr.
"""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional


LOG_DIR = Path.home() / ".local" / "state" / "voxpaste" / "logs"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Handlers installed by setup_logging(); others (e.g. test capture) are left alone
_installed: list = []


def get_log_level() -> int:
    """Read the log level from VOXPASTE_LOG_LEVEL (default INFO)."""
    name = os.environ.get("VOXPASTE_LOG_LEVEL", "INFO").upper()
    return getattr(logging, name, logging.INFO)


def setup_logging(console: bool = False, log_dir: Optional[Path] = None) -> logging.Logger:
    """
    Configure the ``voxpaste`` root logger once.

    Args:
        console: Also log to stderr
        log_dir: Directory for the rotating log file (default LOG_DIR)

    Returns:
        The configured root logger
    """
    root = logging.getLogger("voxpaste")
    if _installed:
        return root

    level = get_log_level()
    root.setLevel(level)
    formatter = logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    directory = log_dir or LOG_DIR
    try:
        directory.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            directory / "voxpaste.log",
            maxBytes=5 * 1024 * 1024,  # 5MB
            backupCount=3,
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)
        _installed.append(file_handler)
    except OSError as e:
        # Read-only home: fall back to stderr only
        console = True
        print(f"[voxpaste] Cannot write log file in {directory}: {e}", file=sys.stderr)

    if console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        root.addHandler(console_handler)
        _installed.append(console_handler)

    root.propagate = False
    return root


def get_logger(name: str = "voxpaste") -> logging.Logger:
    """Return a logger under the ``voxpaste`` hierarchy."""
    if not name.startswith("voxpaste"):
        name = f"voxpaste.{name}"
    return logging.getLogger(name)


def shutdown_logging() -> None:
    """Close and detach the handlers installed by setup_logging()."""
    root = logging.getLogger("voxpaste")
    while _installed:
        handler = _installed.pop()
        handler.close()
        root.removeHandler(handler)
    root.propagate = True
