"""
Logging setup shared by the CLI and the server.

Verbosity picks the level of the ``mneme`` logger:

    0 -> ERROR, 1 -> WARNING (default), 2 -> INFO, 3+ -> DEBUG

Records at that level are also written to a rotating ``mneme.log`` under the
configured log directory.
"""

import logging
import logging.handlers
from pathlib import Path

LOG_FILE_NAME = "mneme.log"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

_LEVELS = [logging.ERROR, logging.WARNING, logging.INFO, logging.DEBUG]


def level_for(verbose: int) -> int:
    return _LEVELS[max(0, min(verbose, len(_LEVELS) - 1))]


def setup_logging(verbose: int = 1, log_dir: Path | None = None) -> logging.Logger:
    """
    Configure the ``mneme`` logger.

    Calling it again replaces the file handler of the previous call.
    An unusable log directory disables file logging with a warning.
    """
    level = level_for(verbose)
    logger = logging.getLogger("mneme")
    logger.setLevel(level)

    for handler in list(logger.handlers):
        if isinstance(handler, logging.handlers.RotatingFileHandler):
            logger.removeHandler(handler)
            handler.close()

    if log_dir is None:
        return logger

    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_dir / LOG_FILE_NAME,
            maxBytes=5 * 1024 * 1024,  # 5 MB
            backupCount=3,
            encoding="utf-8",
        )
    except OSError as e:
        logger.warning(f"File logging disabled, cannot write to {log_dir}: {e}")
        return logger

    file_handler.setLevel(level)
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    logger.addHandler(file_handler)
    logger.debug(f"Logging initialized: level={logging.getLevelName(level)}, dir={log_dir}")
    return logger
