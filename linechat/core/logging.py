"""Logging setup shared by every module."""

import datetime
import logging
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from linechat.core.config import settings

ROOT_LOGGER_NAME = "linechat"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"

_LOGGING_CONFIGURED = False


class LocalTimezoneFormatter(logging.Formatter):
    """
    Logging formatter that renders timestamps in a configured timezone.
    Falls back to the system local timezone when LOG_TIMEZONE is unset
    or invalid.
    """

    def __init__(self, *args, timezone_name: Optional[str] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self._tzinfo = self._resolve_tzinfo(timezone_name)

    @staticmethod
    def _resolve_tzinfo(timezone_name: Optional[str]) -> datetime.tzinfo:
        if timezone_name:
            try:
                return ZoneInfo(timezone_name)
            except ZoneInfoNotFoundError:
                pass
        return datetime.datetime.now().astimezone().tzinfo or datetime.timezone.utc

    def formatTime(
        self, record: logging.LogRecord, datefmt: Optional[str] = None
    ) -> str:
        dt = datetime.datetime.fromtimestamp(record.created, tz=self._tzinfo)
        if datefmt:
            return dt.strftime(datefmt)
        return dt.isoformat(timespec="milliseconds")


def _configure_root_logger() -> None:
    global _LOGGING_CONFIGURED
    if _LOGGING_CONFIGURED:
        return

    level_value = getattr(logging, str(settings.LOG_LEVEL).upper(), logging.INFO)

    app_logger = logging.getLogger(ROOT_LOGGER_NAME)
    app_logger.setLevel(level_value)

    handler = logging.StreamHandler()
    handler.setFormatter(
        LocalTimezoneFormatter(LOG_FORMAT, timezone_name=settings.LOG_TIMEZONE)
    )
    app_logger.addHandler(handler)
    app_logger.propagate = True

    _LOGGING_CONFIGURED = True


def setup_logger(name: str) -> logging.Logger:
    """
    Return a logger living under the application logger hierarchy.

    Module names outside the ``linechat`` package (``__main__``, test
    modules) are nested under it so they share the same handler.
    """
    _configure_root_logger()
    if name != ROOT_LOGGER_NAME and not name.startswith(ROOT_LOGGER_NAME + "."):
        name = f"{ROOT_LOGGER_NAME}.{name}"
    return logging.getLogger(name)
