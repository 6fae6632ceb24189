"""
Structured Logging
==================

JSON or coloured-text logging with thread-local context for settlement
runs and allocation edits.

Components:
- LogConfig / setup_logging: root logger handlers (console, rotating file)
- JSONFormatter / ColoredFormatter: output formats
- LogContext / ContextFilter: per-thread context merged into each record
- StructuredLogger: keyword extras as structured fields
- log_execution: timing decorator
- RequestLogger / AuditLogger: HTTP access and allocation edit audit trail
"""

import functools
import json
import logging
import logging.handlers
import sys
import threading
import traceback
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional, Union


class JSONFormatter(logging.Formatter):
    """One JSON object per log line"""

    def __init__(
        self,
        include_thread: bool = False,
        include_process: bool = False,
        extra_fields: Dict[str, Any] = None
    ):
        super().__init__()
        self.include_thread = include_thread
        self.include_process = include_process
        self.extra_fields = extra_fields or {}

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            'timestamp': datetime.fromtimestamp(record.created).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno,
        }

        if self.include_thread:
            log_data['thread'] = record.threadName
        if self.include_process:
            log_data['process'] = record.process

        if record.exc_info:
            log_data['exception'] = {
                'type': record.exc_info[0].__name__ if record.exc_info[0] else None,
                'message': str(record.exc_info[1]) if record.exc_info[1] else None,
                'traceback': ''.join(traceback.format_exception(*record.exc_info))
            }

        context = getattr(record, 'context', None)
        if context:
            log_data['context'] = context

        log_data.update(self.extra_fields)

        extra_data = getattr(record, 'extra_data', None)
        if extra_data:
            log_data.update(extra_data)

        return json.dumps(log_data, ensure_ascii=False, default=str)


class ColoredFormatter(logging.Formatter):
    """Coloured console output"""

    COLORS = {
        'DEBUG': '\033[36m',
        'INFO': '\033[32m',
        'WARNING': '\033[33m',
        'ERROR': '\033[31m',
        'CRITICAL': '\033[35m',
    }
    RESET = '\033[0m'

    def __init__(self, fmt: str = None):
        super().__init__(fmt or '%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    def format(self, record: logging.LogRecord) -> str:
        # Colour a copy so other handlers see the plain level name
        colored = logging.makeLogRecord(record.__dict__)
        color = self.COLORS.get(record.levelname, '')
        colored.levelname = f'{color}{record.levelname}{self.RESET}'
        return super().format(colored)


class LogContext:
    """Thread-local context (month, site, request id) attached to every record"""

    _context = threading.local()

    @classmethod
    def set(cls, **kwargs) -> None:
        if not hasattr(cls._context, 'data'):
            cls._context.data = {}
        cls._context.data.update(kwargs)

    @classmethod
    def get(cls) -> Dict[str, Any]:
        if not hasattr(cls._context, 'data'):
            cls._context.data = {}
        return cls._context.data.copy()

    @classmethod
    def clear(cls) -> None:
        cls._context.data = {}

    @classmethod
    @contextmanager
    def scope(cls, **kwargs):
        """Temporarily add context, restoring the previous one on exit

        Example:
            >>> with LogContext.scope(month="042025"):
            ...     logger.info("Settling")
        """
        old_data = cls.get()
        cls.set(**kwargs)
        try:
            yield
        finally:
            cls._context.data = old_data


class ContextFilter(logging.Filter):
    """Copies LogContext onto the record"""

    def filter(self, record: logging.LogRecord) -> bool:
        record.context = LogContext.get()
        return True


class StructuredLogger:
    """Logger taking structured fields as keyword arguments

    Example:
        >>> audit = create_logger('audit')
        >>> audit.info('Allocation edited', production_site_id='11', version=2)
    """

    def __init__(self, name: str, level: Optional[int] = None):
        self.name = name
        self._logger = logging.getLogger(name)
        if level is not None:
            self._logger.setLevel(level)
        if not any(isinstance(f, ContextFilter) for f in self._logger.filters):
            self._logger.addFilter(ContextFilter())

    def _log(
        self,
        level: int,
        message: str,
        extra: Dict[str, Any] = None,
        exc_info: bool = False
    ) -> None:
        if not self._logger.isEnabledFor(level):
            return
        record = self._logger.makeRecord(
            self.name,
            level,
            '',
            0,
            message,
            (),
            sys.exc_info() if exc_info else None,
        )
        record.extra_data = extra or {}
        self._logger.handle(record)

    def debug(self, message: str, **kwargs) -> None:
        self._log(logging.DEBUG, message, kwargs)

    def info(self, message: str, **kwargs) -> None:
        self._log(logging.INFO, message, kwargs)

    def warning(self, message: str, **kwargs) -> None:
        self._log(logging.WARNING, message, kwargs)

    def error(self, message: str, exc_info: bool = False, **kwargs) -> None:
        self._log(logging.ERROR, message, kwargs, exc_info)

    def exception(self, message: str, **kwargs) -> None:
        self._log(logging.ERROR, message, kwargs, exc_info=True)


@dataclass
class LogConfig:
    """Logging configuration"""
    level: int = logging.INFO
    format: str = 'json'  # 'json' or 'text'
    output: str = 'console'  # 'console', 'file', or 'both'
    log_dir: str = './logs'
    app_name: str = 'energy-allocation'
    max_bytes: int = 10 * 1024 * 1024  # 10MB
    backup_count: int = 5
    include_thread: bool = False
    include_process: bool = False
    extra_fields: Dict[str, Any] = field(default_factory=dict)

    @staticmethod
    def parse_level(level: Union[int, str]) -> int:
        if isinstance(level, int):
            return level
        value = logging.getLevelName(str(level).upper())
        if not isinstance(value, int):
            raise ValueError(f"Unknown log level: {level}")
        return value


def setup_logging(config: LogConfig = None) -> None:
    """
    Configure the root logger

    Existing root handlers are replaced, so calling this twice is safe.

    Args:
        config: Logging configuration (defaults when None)
    """
    if config is None:
        config = LogConfig()
    if config.format not in ('json', 'text'):
        raise ValueError(f"Unknown log format: {config.format}")
    if config.output not in ('console', 'file', 'both'):
        raise ValueError(f"Unknown log output: {config.output}")

    level = LogConfig.parse_level(config.level)
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    if config.format == 'json':
        formatter = JSONFormatter(
            include_thread=config.include_thread,
            include_process=config.include_process,
            extra_fields={'app': config.app_name, **config.extra_fields}
        )
    else:
        formatter = ColoredFormatter()

    handlers = []
    if config.output in ('console', 'both'):
        handlers.append(logging.StreamHandler(sys.stdout))

    if config.output in ('file', 'both'):
        log_dir = Path(config.log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)

        handlers.append(logging.handlers.RotatingFileHandler(
            log_dir / f'{config.app_name}.log',
            maxBytes=config.max_bytes,
            backupCount=config.backup_count,
            encoding='utf-8'
        ))

        error_handler = logging.handlers.RotatingFileHandler(
            log_dir / f'{config.app_name}.error.log',
            maxBytes=config.max_bytes,
            backupCount=config.backup_count,
            encoding='utf-8'
        )
        error_handler.setLevel(logging.ERROR)
        handlers.append(error_handler)

    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(ContextFilter())
        root_logger.addHandler(handler)

    logging.info(f'Logging configured: level={logging.getLevelName(level)}, format={config.format}')


def create_logger(name: str, level: int = None) -> StructuredLogger:
    """Structured logger; level is inherited unless given"""
    return StructuredLogger(name, level)


def log_execution(logger: Optional[StructuredLogger] = None, level: int = logging.INFO):
    """Log start, completion time and failure of the wrapped call"""
    def decorator(func):
        _logger = logger or create_logger(func.__module__)
        func_name = f'{func.__module__}.{func.__qualname__}'

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            _logger._log(level, f'Starting {func_name}', {'function': func_name})
            start_time = datetime.now()

            try:
                result = func(*args, **kwargs)
            except Exception as e:
                elapsed = (datetime.now() - start_time).total_seconds()
                _logger.error(
                    f'Failed {func_name}: {e}',
                    function=func_name,
                    elapsed_seconds=elapsed,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                raise

            elapsed = (datetime.now() - start_time).total_seconds()
            _logger._log(level, f'Completed {func_name}',
                         {'function': func_name, 'elapsed_seconds': elapsed})
            return result

        return wrapper
    return decorator


class RequestLogger:
    """HTTP access log"""

    def __init__(self, logger: StructuredLogger = None):
        self.logger = logger or create_logger('http')

    def log_request(
        self,
        method: str,
        path: str,
        status_code: int,
        duration_ms: float,
        request_id: str = None,
        **kwargs
    ) -> None:
        self.logger.info(
            f'{method} {path} {status_code}',
            method=method,
            path=path,
            status_code=status_code,
            duration_ms=duration_ms,
            request_id=request_id,
            **kwargs
        )


class AuditLogger:
    """Audit trail of settlement runs and allocation edits"""

    def __init__(self, logger: StructuredLogger = None):
        self.logger = logger or create_logger('audit')

    def log_action(
        self,
        action: str,
        user: str = None,
        resource: str = None,
        details: Dict[str, Any] = None
    ) -> None:
        self.logger.info(
            f'Audit: {action}',
            audit_action=action,
            audit_user=user,
            audit_resource=resource,
            audit_details=details or {}
        )

    def log_allocation_edit(
        self,
        resource: str,
        accepted: bool,
        version: int = None,
        reason: str = None,
        user: str = None,
    ) -> None:
        """Record an accepted or rejected allocation edit"""
        self.log_action(
            'allocation_edit_accepted' if accepted else 'allocation_edit_rejected',
            user=user,
            resource=resource,
            details={'version': version, 'reason': reason},
        )
