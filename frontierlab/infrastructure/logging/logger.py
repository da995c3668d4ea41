"""
Structured logging framework with multiple handlers and formatters.
Provides console, rotating file and JSON logging for the frontier engine.
"""

import logging
import logging.handlers
import sys
import json
import time
import traceback
from datetime import datetime
from functools import wraps
from pathlib import Path
from typing import Any, Dict, Optional
from contextlib import contextmanager

from ...domain.interfaces import ILogger
from ...domain.exceptions import ConfigurationError

ROOT_LOGGER_NAME = "frontierlab"

# Attributes every LogRecord carries; extra fields may not reuse them
_RECORD_ATTRIBUTES = frozenset(vars(logging.LogRecord('', 0, '', 0, '', (), None))) | {'message', 'asctime'}


def _safe_extra(fields: Dict[str, Any]) -> Dict[str, Any]:
    """Prefix extra keys that would clash with LogRecord attributes."""
    return {(f"ctx_{k}" if k in _RECORD_ATTRIBUTES else k): v for k, v in fields.items()}


class StructuredFormatter(logging.Formatter):
    """Custom formatter that outputs structured JSON logs."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as structured JSON."""
        log_entry = {
            'timestamp': datetime.fromtimestamp(record.created).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno,
        }

        if record.exc_info:
            log_entry['exception'] = {
                'type': record.exc_info[0].__name__,
                'message': str(record.exc_info[1]),
                'traceback': traceback.format_exception(*record.exc_info)
            }

        extra_fields = {
            k: v for k, v in record.__dict__.items()
            if k not in _RECORD_ATTRIBUTES
        }

        if extra_fields:
            log_entry['extra'] = extra_fields

        return json.dumps(log_entry, default=str)


class ColoredConsoleFormatter(logging.Formatter):
    """Console formatter with color coding for different log levels."""

    # ANSI color codes
    COLORS = {
        'DEBUG': '\033[36m',      # Cyan
        'INFO': '\033[32m',       # Green
        'WARNING': '\033[33m',    # Yellow
        'ERROR': '\033[31m',      # Red
        'CRITICAL': '\033[35m',   # Magenta
        'RESET': '\033[0m'        # Reset
    }

    def format(self, record: logging.LogRecord) -> str:
        """Format log record with colors for console output."""
        color = self.COLORS.get(record.levelname, self.COLORS['RESET'])
        reset = self.COLORS['RESET']

        formatted = super().format(record)

        return formatted.replace(
            record.levelname,
            f"{color}{record.levelname}{reset}",
            1
        )


class FrontierLogger(ILogger):
    """
    Main logger implementation for the frontier engine.
    Provides structured logging with multiple handlers and formatters.
    """

    def __init__(self, name: str, config: Optional[Dict[str, Any]] = None):
        """
        Initialize logger with configuration.

        Args:
            name: Logger name
            config: Logger configuration dictionary (see LoggingConfig)
        """
        self.name = name
        self.config = config or {}
        self._logger = logging.getLogger(name)
        self._context: Dict[str, Any] = {}
        self._setup_logger()

    def _setup_logger(self) -> None:
        """Setup logger with handlers and formatters."""
        for handler in list(self._logger.handlers):
            handler.close()
        self._logger.handlers.clear()

        level = str(self.config.get('level') or 'INFO').upper()
        if not isinstance(getattr(logging, level, None), int):
            raise ConfigurationError(
                f"Unknown log level: {level}",
                error_code="INVALID_LOG_LEVEL"
            )
        self._logger.setLevel(getattr(logging, level))

        # Prevent propagation to root logger
        self._logger.propagate = False

        if self.config.get('console_output', True):
            self._setup_console_handler()

        file_path = self.config.get('file_path')
        if file_path:
            self._setup_file_handler(file_path)

        structured_path = self.config.get('structured_file_path')
        if structured_path:
            self._setup_structured_handler(structured_path)

    def _format(self) -> str:
        return self.config.get('format') or '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

    def _setup_console_handler(self) -> None:
        """Setup console handler with colored output on stderr."""
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(ColoredConsoleFormatter(fmt=self._format(), datefmt='%Y-%m-%d %H:%M:%S'))
        self._logger.addHandler(handler)

    def _rotating_handler(self, file_path: str) -> logging.Handler:
        log_file = Path(file_path)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        return logging.handlers.RotatingFileHandler(
            filename=file_path,
            maxBytes=self.config.get('max_file_size', 10485760),  # 10MB
            backupCount=self.config.get('backup_count', 5)
        )

    def _setup_file_handler(self, file_path: str) -> None:
        """Setup rotating file handler."""
        handler = self._rotating_handler(file_path)
        handler.setFormatter(logging.Formatter(fmt=self._format(), datefmt='%Y-%m-%d %H:%M:%S'))
        self._logger.addHandler(handler)

    def _setup_structured_handler(self, file_path: str) -> None:
        """Setup structured JSON log handler."""
        handler = self._rotating_handler(file_path)
        handler.setFormatter(StructuredFormatter())
        self._logger.addHandler(handler)

    def _log(self, level: int, message: str, exc_info: bool = False, **kwargs) -> None:
        self._logger.log(level, message, exc_info=exc_info, extra=_safe_extra({**self._context, **kwargs}))

    def debug(self, message: str, **kwargs) -> None:
        """Log debug message."""
        self._log(logging.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs) -> None:
        """Log info message."""
        self._log(logging.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs) -> None:
        """Log warning message."""
        self._log(logging.WARNING, message, **kwargs)

    def error(self, message: str, **kwargs) -> None:
        """Log error message."""
        self._log(logging.ERROR, message, **kwargs)

    def critical(self, message: str, **kwargs) -> None:
        """Log critical message."""
        self._log(logging.CRITICAL, message, **kwargs)

    def exception(self, message: str, **kwargs) -> None:
        """Log exception with traceback."""
        self._log(logging.ERROR, message, exc_info=True, **kwargs)

    @contextmanager
    def context(self, **context_vars):
        """Context manager for adding context to all log messages."""
        original = self._context
        self._context = {**original, **context_vars}
        try:
            yield self
        finally:
            self._context = original

    def bind(self, **kwargs) -> 'BoundLogger':
        """Create a bound logger with additional context."""
        return BoundLogger(self, kwargs)


class BoundLogger:
    """Logger bound with additional context variables."""

    def __init__(self, logger: FrontierLogger, context: Dict[str, Any]):
        self._logger = logger
        self._context = context

    def debug(self, message: str, **kwargs) -> None:
        self._logger.debug(message, **{**self._context, **kwargs})

    def info(self, message: str, **kwargs) -> None:
        self._logger.info(message, **{**self._context, **kwargs})

    def warning(self, message: str, **kwargs) -> None:
        self._logger.warning(message, **{**self._context, **kwargs})

    def error(self, message: str, **kwargs) -> None:
        self._logger.error(message, **{**self._context, **kwargs})

    def exception(self, message: str, **kwargs) -> None:
        self._logger.exception(message, **{**self._context, **kwargs})


class LoggerFactory:
    """Factory for creating and managing logger instances."""

    _loggers: Dict[str, FrontierLogger] = {}
    _default_config: Dict[str, Any] = {}

    @classmethod
    def configure(cls, config: Dict[str, Any]) -> None:
        """
        Configure default logger settings.

        Also (re)configures the package logger, which receives the records of
        every module-level ``logging.getLogger(__name__)`` logger.
        """
        cls._default_config = dict(config)
        cls._loggers[ROOT_LOGGER_NAME] = FrontierLogger(ROOT_LOGGER_NAME, cls._default_config)

    @classmethod
    def get_logger(cls, name: str, config: Optional[Dict[str, Any]] = None) -> FrontierLogger:
        """
        Get or create a logger instance.

        Args:
            name: Logger name
            config: Optional logger-specific configuration

        Returns:
            Logger instance
        """
        if name not in cls._loggers:
            logger_config = {**cls._default_config}
            if config:
                logger_config.update(config)

            cls._loggers[name] = FrontierLogger(name, logger_config)

        return cls._loggers[name]

    @classmethod
    def shutdown(cls) -> None:
        """Shutdown all loggers and handlers."""
        for logger in cls._loggers.values():
            for handler in logger._logger.handlers:
                handler.close()
            logger._logger.handlers.clear()
        cls._loggers.clear()


# Convenience functions
def get_logger(name: str, config: Optional[Dict[str, Any]] = None) -> FrontierLogger:
    """Get a logger instance."""
    return LoggerFactory.get_logger(name, config)


def configure_logging(config: Dict[str, Any]) -> None:
    """Configure default logging settings."""
    LoggerFactory.configure(config)


def shutdown_logging() -> None:
    """Shutdown all logging."""
    LoggerFactory.shutdown()


def log_performance(logger: Optional[FrontierLogger] = None):
    """Decorator to log function execution time."""
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            log = logger or get_logger(func.__module__)
            start_time = time.time()

            try:
                result = func(*args, **kwargs)
            except Exception as e:
                log.error(
                    f"Function {func.__name__} failed",
                    function=func.__name__,
                    execution_time=time.time() - start_time,
                    error=str(e)
                )
                raise

            log.debug(
                f"Function {func.__name__} executed successfully",
                function=func.__name__,
                execution_time=time.time() - start_time
            )
            return result

        return wrapper
    return decorator
