"""Per-command log files for the meeting-scout CLI.

Each run writes a DEBUG-level rotating log under
``~/.local/share/meeting-scout/logs/``, one file per command and
department (``discover_cra.log``, ``watch.log``).  Console diagnostics go
to stderr only, since ``discover next`` reserves stdout for the video ID.
"""

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

LOG_DIR = Path.home() / ".local" / "share" / "meeting-scout" / "logs"
MAX_LOG_BYTES = 5 * 1024 * 1024
LOG_BACKUPS = 3


def get_log_file(command: str, department: str | None = None) -> Path:
    stem = f"{command}_{department}" if department else command
    return LOG_DIR / f"{stem}.log"


def configure_cli_logging(
    command: str, *, department: str | None = None, verbose: bool = False
) -> Path:
    """Route ``meeting_scout`` loggers to the command's log file and stderr.

    Safe to call more than once; earlier handlers are replaced.  The
    stderr threshold is WARNING, or INFO with ``verbose``.

    Returns:
        Path to the log file
    """
    log_file = get_log_file(command, department)
    log_file.parent.mkdir(parents=True, exist_ok=True)

    package_logger = logging.getLogger("meeting_scout")
    for handler in package_logger.handlers[:]:
        package_logger.removeHandler(handler)
        handler.close()

    file_handler = RotatingFileHandler(
        log_file, maxBytes=MAX_LOG_BYTES, backupCount=LOG_BACKUPS, encoding="utf-8"
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(
        logging.Formatter(
            "%(asctime)s %(levelname)-8s %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setLevel(logging.INFO if verbose else logging.WARNING)
    stderr_handler.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))

    package_logger.addHandler(file_handler)
    package_logger.addHandler(stderr_handler)
    package_logger.setLevel(logging.DEBUG)
    package_logger.propagate = False
    return log_file
