import logging
import os
from collections import deque
from logging.handlers import TimedRotatingFileHandler
from typing import Deque, List, Optional, Tuple

LOGGER_NAME = 'portswitch'
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
LOG_FILE = 'portswitch.log'


class DequeHandler(logging.Handler):
    """Keeps the most recent records in memory for the live dashboard."""

    def __init__(self, maxlen: int = 10):
        super().__init__()
        self.records: Deque[Tuple[str, str]] = deque(maxlen=maxlen)

    def emit(self, record: logging.LogRecord):
        try:
            self.records.append((record.levelname, record.getMessage()))
        except Exception:
            self.handleError(record)

    def recent(self) -> List[Tuple[str, str]]:
        return list(self.records)


def setup_logging(log_dir: Optional[str] = 'logs', level: int = logging.INFO,
                  console: bool = True) -> logging.Logger:
    """
    Configure the portswitch logger.

    Log files rotate every hour and one day of history is kept.

    Args:
        log_dir: Directory for rotated log files, None disables file logging
        level: Minimum level for every handler
        console: Also log to stderr

    Returns:
        logging.Logger: the configured 'portswitch' logger
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    logger.propagate = False

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT)

    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        file_handler = TimedRotatingFileHandler(
            os.path.join(log_dir, LOG_FILE), when='H', backupCount=24, encoding='utf-8'
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    if console:
        stream_handler = logging.StreamHandler()
        stream_handler.setLevel(level)
        stream_handler.setFormatter(formatter)
        logger.addHandler(stream_handler)

    return logger


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"{LOGGER_NAME}.{name}")
