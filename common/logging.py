"""
Application Logging

Sets up the shared ``app`` logger (console and optional file output) and hands
out child loggers for the individual DevInsight modules. Batch jobs use
context loggers so every line carries the user / repository / step it belongs to.
"""

import logging
import os
import sys
from datetime import datetime
from typing import Optional, Union


class ContextAdapter(logging.LoggerAdapter):
    """Prefixes each message with ``key=value`` pairs from the adapter context."""

    def process(self, msg, kwargs):
        if not self.extra:
            return msg, kwargs
        context = " ".join(f"{key}={value}" for key, value in self.extra.items() if value is not None)
        return f"[{context}] {msg}", kwargs

    def bind(self, **context) -> "ContextAdapter":
        """Returns a new adapter with additional context merged in."""
        merged = dict(self.extra or {})
        merged.update(context)
        return ContextAdapter(self.logger, merged)


class LoggingManager:
    """
    Configures the root application logger and retrieves child loggers.
    """

    DEFAULT_LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)8s | %(message)s"
    DEFAULT_LOG_LEVEL = logging.INFO
    APP_LOGGER_NAME = "app"

    def __init__(self,
                 logger_name: str = APP_LOGGER_NAME,
                 log_level: Union[int, str] = DEFAULT_LOG_LEVEL,
                 log_format: str = DEFAULT_LOG_FORMAT,
                 log_file: Optional[str] = None,
                 console_output: bool = True,
                 propagate: bool = False):
        """
        Configures the named logger.

        Args:
            logger_name (str): Logger to configure, normally ``app``.
            log_level (Union[int, str]): Level name or number.
            log_format (str): Format string for every handler.
            log_file (Optional[str]): Append log output to this file as well.
            console_output (bool): Write to stdout.
            propagate (bool): Pass records on to ancestor loggers.
        """
        self.logger_name = logger_name
        self.log_level = log_level.upper() if isinstance(log_level, str) else log_level
        self.log_file = log_file
        self.console_output = console_output

        self._configured_logger = logging.getLogger(self.logger_name)
        self._configured_logger.setLevel(self.log_level)
        self._configured_logger.propagate = propagate

        # Reconfiguring the same logger must not stack handlers.
        if self._configured_logger.hasHandlers():
            self._configured_logger.handlers.clear()

        self._formatter = logging.Formatter(log_format)
        self._configure_handlers()

    def _configure_handlers(self) -> None:
        if self.console_output:
            console_handler = logging.StreamHandler(stream=sys.stdout)
            console_handler.setFormatter(self._formatter)
            self._configured_logger.addHandler(console_handler)

        if self.log_file:
            try:
                file_handler = logging.FileHandler(self.log_file, mode='a')
            except OSError as e:
                print(f"Warning: could not log to file {self.log_file}: {e}", file=sys.stderr)
                return
            file_handler.setFormatter(self._formatter)
            self._configured_logger.addHandler(file_handler)

    @classmethod
    def for_cli(cls, logs_dir: str = "logs", log_level: Union[int, str] = DEFAULT_LOG_LEVEL) -> "LoggingManager":
        """Configures the ``app`` logger with a timestamped log file in ``logs_dir``."""
        os.makedirs(logs_dir, exist_ok=True)
        timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
        log_file = os.path.join(logs_dir, f'devinsight_{timestamp}.log')
        return cls(cls.APP_LOGGER_NAME, log_level=log_level, log_file=log_file)

    def get_configured_logger(self) -> logging.Logger:
        return self._configured_logger

    @staticmethod
    def get_logger(name: str) -> logging.Logger:
        """
        Retrieves a logger by name.

        Child loggers such as ``app.scheduler`` propagate to the handlers of the
        configured ``app`` logger.
        """
        return logging.getLogger(name)

    @staticmethod
    def context_logger(name: str, **context) -> ContextAdapter:
        """Returns a logger adapter that tags every message with ``context``."""
        return ContextAdapter(logging.getLogger(name), context)
