"""Logging setup: console output plus optional info/error log files."""

import logging
import sys
from typing import List, Optional

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

logger = logging.getLogger(__name__)


def configure_logging(level: int = logging.INFO,
                      info_log: Optional[str] = None,
                      error_log: Optional[str] = None) -> List[logging.Handler]:
    """
    Configure the root logger for a decryption run.

    Console output always goes to stdout. ``info_log`` receives records at
    ``level`` and above, ``error_log`` receives ERROR and above; both are
    opened in append mode. A log file that cannot be opened is reported and
    the console keeps receiving its records.

    Returns:
        The handlers installed on the root logger
    """
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    root.setLevel(level)

    formatter = logging.Formatter(LOG_FORMAT)
    console = logging.StreamHandler(sys.stdout)
    console.setLevel(level)
    console.setFormatter(formatter)
    root.addHandler(console)

    failures = []
    for path, handler_level, label in ((info_log, level, "INFO"),
                                       (error_log, logging.ERROR, "ERROR")):
        if not path:
            continue
        try:
            file_handler = logging.FileHandler(path, mode='a', encoding='utf-8')
        except OSError as e:
            failures.append((label, path, e))
            continue
        file_handler.setLevel(handler_level)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)
        logger.info(f"📝 {label} log file configured: {path}")

    for label, path, error in failures:
        logger.error(f"❌ Cannot open {label} log file {path}, using console: {error}")

    return list(root.handlers)
