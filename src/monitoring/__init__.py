"""
Monitoring
==========

Structured logging for settlement runs and the service layer.
"""

from .logging_config import (
    setup_logging,
    StructuredLogger,
    LogContext,
    LogConfig,
    create_logger,
    log_execution,
    RequestLogger,
    AuditLogger,
)

__all__ = [
    'setup_logging',
    'StructuredLogger',
    'LogContext',
    'LogConfig',
    'create_logger',
    'log_execution',
    'RequestLogger',
    'AuditLogger',
]
