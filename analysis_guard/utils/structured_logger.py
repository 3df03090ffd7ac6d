"""
JSON log lines for the analysis API Lambda.

Each line carries the request id and caller identity, so a single request can
be followed through CloudWatch Logs Insights, e.g.
``filter callerId = "203.0.113.7" | sort timestamp``.
"""

import json
import logging
import os
import time
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

QUIET_LIBRARY_LOGGERS = ('boto3', 'botocore', 'urllib3')


def _json_default(value):
    if isinstance(value, Decimal):
        return float(value)
    return str(value)


class StructuredLogger:
    """
    Logger bound to one component and, optionally, one request.

    Extra keyword arguments to any log method end up under ``context``.
    """

    def __init__(
        self,
        component: str,
        request_id: Optional[str] = None,
        caller_id: Optional[str] = None
    ):
        self.component = component
        self.request_id = request_id
        self.caller_id = caller_id
        self.logger = logging.getLogger(component)
        self.logger.setLevel(os.getenv('LOG_LEVEL', 'INFO').upper())

    def _log(
        self,
        level: int,
        message: str,
        operation: Optional[str],
        context: dict
    ) -> None:
        if not self.logger.isEnabledFor(level):
            return

        entry = {
            'timestamp': datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z'),
            'level': logging.getLevelName(level),
            'component': self.component,
            'message': message,
        }
        if self.request_id:
            entry['requestId'] = self.request_id
        if self.caller_id:
            entry['callerId'] = self.caller_id
        if operation:
            entry['operation'] = operation
        if context:
            entry['context'] = context

        self.logger.log(level, json.dumps(entry, default=_json_default))

    def debug(self, message: str, operation: Optional[str] = None, **context) -> None:
        self._log(logging.DEBUG, message, operation, context)

    def info(self, message: str, operation: Optional[str] = None, **context) -> None:
        self._log(logging.INFO, message, operation, context)

    def warning(self, message: str, operation: Optional[str] = None, **context) -> None:
        self._log(logging.WARNING, message, operation, context)

    def error(
        self,
        message: str,
        operation: Optional[str] = None,
        error: Optional[Exception] = None,
        **context
    ) -> None:
        """
        Log at ERROR, recording the exception's type and message if given.
        """
        if error is not None:
            context['error_type'] = type(error).__name__
            context['error_message'] = str(error)
        self._log(logging.ERROR, message, operation, context)

    def log_rejection(self, error_kind: str, status_code: int, **context) -> None:
        """
        Log a request turned away by validation, budget, rate limit or
        classifier failure.

        Budget and classifier rejections are logged at WARNING; validation
        and rate limit rejections are routine and logged at INFO.
        """
        level = logging.WARNING if status_code >= 500 or status_code == 402 else logging.INFO
        self._log(
            level,
            f'Request rejected: {error_kind}',
            'reject',
            dict(context, error_kind=error_kind, status_code=status_code)
        )


class LoggingContext:
    """
    Times a block and logs its duration, or its failure.

    Example:
        >>> with LoggingContext(logger, 'analyze', has_url=False):
        ...     outcome = asyncio.run(orchestrator.analyze(text, caller_identity=ip))
    """

    def __init__(self, logger: StructuredLogger, operation: str, **context):
        self.logger = logger
        self.operation = operation
        self.context = context
        self.start_time: Optional[float] = None

    def __enter__(self):
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        duration_ms = round((time.perf_counter() - self.start_time) * 1000, 2)

        if exc_type is None:
            self.logger.debug(
                f'Completed {self.operation}',
                operation=self.operation,
                duration_ms=duration_ms,
                **self.context
            )
        else:
            self.logger.error(
                f'Operation failed: {self.operation}',
                operation=self.operation,
                error=exc_val,
                duration_ms=duration_ms,
                **self.context
            )
        # Never suppress the exception
        return False


def get_structured_logger(
    component: str,
    request_id: Optional[str] = None,
    caller_id: Optional[str] = None
) -> StructuredLogger:
    return StructuredLogger(component, request_id=request_id, caller_id=caller_id)


def configure_lambda_logging() -> None:
    """
    Send bare messages to stdout at LOG_LEVEL.

    Call once at module level in a handler. AWS SDK loggers stay at WARNING
    unless LOG_LEVEL is DEBUG.
    """
    log_level = os.getenv('LOG_LEVEL', 'INFO').upper()
    logging.basicConfig(level=log_level, format='%(message)s', force=True)

    if log_level != 'DEBUG':
        for name in QUIET_LIBRARY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)
