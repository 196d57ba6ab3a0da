import logging
import os
import sys
from typing import Optional

from tqdm import tqdm

LOGGER_NAME = "locale_sync"
LOG_FORMAT = '%(asctime)s - %(levelname)s - %(name)s - %(message)s'


class TqdmLoggingHandler(logging.Handler):
    """Writes records above the translation progress bar instead of through it."""

    def emit(self, record):
        try:
            tqdm.write(self.format(record), file=sys.stderr)
        except Exception:
            self.handleError(record)


def setup_logger(log_level_str: str, log_file_path: Optional[str], log_to_console: bool) -> logging.Logger:
    """
    Configure the ``locale_sync`` logger that every module logs through.

    Calling it again replaces the handlers of the previous call.

    Args:
        log_level_str: Level name such as 'INFO' or 'DEBUG'. Unknown names fall back to INFO.
        log_file_path: Log file to append to. No file handler when empty.
        log_to_console: Whether records are also written to stderr.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, log_level_str.upper(), logging.INFO))
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = False

    handlers = []
    if log_file_path:
        os.makedirs(os.path.dirname(log_file_path) or '.', exist_ok=True)
        handlers.append(logging.FileHandler(log_file_path, encoding='utf-8'))
    if log_to_console:
        handlers.append(TqdmLoggingHandler())

    formatter = logging.Formatter(LOG_FORMAT)
    for handler in handlers:
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    return logger
