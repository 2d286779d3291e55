import logging
import sys
from typing import Optional, Union

from pythonjsonlogger import jsonlogger

LOGGER_NAME = 'configai'


class DefaultFieldsFilter(logging.Filter):
    """Stamp every record with the service name."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.service = LOGGER_NAME
        return True


def setup_logging(level: Union[int, str] = logging.INFO, stream: Optional[object] = None) -> logging.Logger:
    """
    Sets up centralized logging for the service to output structured JSON logs.

    Logs go to stderr so stdout stays free for export text when the store is
    driven from a shell. Calling this again only adjusts the level.

    Args:
        level: Log level name or number for the ``configai`` logger
        stream: Stream for the handler (defaults to stderr)

    Returns:
        The configured ``configai`` logger
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)

    # Prevent adding multiple handlers if setup_logging is called multiple times
    if not logger.handlers:
        formatter = jsonlogger.JsonFormatter(
            '%(asctime)s %(levelname)s %(name)s %(message)s',
            rename_fields={'levelname': 'level', 'asctime': 'timestamp', 'name': 'logger'},
            json_ensure_ascii=False
        )
        handler = logging.StreamHandler(stream or sys.stderr)
        handler.setFormatter(formatter)
        # Handler-level so records from child loggers get the field too
        handler.addFilter(DefaultFieldsFilter())
        logger.addHandler(handler)

        # The watcher library is chatty at DEBUG
        logging.getLogger('watchdog').setLevel(logging.WARNING)

    return logger
