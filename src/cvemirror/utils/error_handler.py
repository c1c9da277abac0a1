"""
Error taxonomy and logging system for CVE Mirror
"""
import logging
import logging.handlers
import json
import traceback
import sys
import os
from datetime import datetime
from typing import Dict, Any, Optional, List, Callable
from enum import Enum
from dataclasses import dataclass, asdict, field
import threading
from functools import wraps

from cvemirror.utils.config import get_config

LOGGER_NAME = 'cvemirror'


class ErrorSeverity(Enum):
    """Error severity levels"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCategory(Enum):
    """Error categories for better classification"""
    UPSTREAM_ERROR = "upstream_error"
    QUERY_VALIDATION = "query_validation"
    DATA_VALIDATION = "data_validation"
    NOT_FOUND = "not_found"
    STORAGE_ERROR = "storage_error"
    CONFIGURATION = "configuration"
    UNKNOWN = "unknown"


@dataclass
class ErrorContext:
    """Context information for errors"""
    operation: str
    component: str
    cve_id: Optional[str] = None
    additional_data: Optional[Dict[str, Any]] = None


@dataclass
class ErrorRecord:
    """Structured error record"""
    timestamp: str
    error_id: str
    category: ErrorCategory
    severity: ErrorSeverity
    message: str
    exception_type: str
    traceback: str
    context: ErrorContext


class CVEMirrorError(Exception):
    """Base exception class for CVE Mirror"""

    category = ErrorCategory.UNKNOWN
    severity = ErrorSeverity.MEDIUM

    def __init__(self, message: str, context: Optional[ErrorContext] = None):
        super().__init__(message)
        self.message = message
        self.context = context or ErrorContext(operation="unknown", component="unknown")
        self.timestamp = datetime.now().isoformat()


class UpstreamError(CVEMirrorError):
    """Upstream feed unreachable, timed out, or answered with a failure"""

    category = ErrorCategory.UPSTREAM_ERROR
    severity = ErrorSeverity.HIGH

    def __init__(self, message: str, status_code: Optional[int] = None,
                 url: Optional[str] = None, context: Optional[ErrorContext] = None):
        super().__init__(message, context)
        self.status_code = status_code
        self.url = url


@dataclass
class FieldError:
    """One offending query parameter"""
    field: str
    message: str


class ValidationError(CVEMirrorError):
    """Query parameters failed type, range or pattern checks"""

    category = ErrorCategory.QUERY_VALIDATION
    severity = ErrorSeverity.LOW

    def __init__(self, errors: List[FieldError], context: Optional[ErrorContext] = None):
        fields = ", ".join(e.field for e in errors)
        super().__init__(f"Invalid query parameters: {fields}", context)
        self.errors = errors

    def details(self) -> List[Dict[str, str]]:
        return [asdict(e) for e in self.errors]


class NotFoundError(CVEMirrorError):
    """Detail lookup found no record for the requested id"""

    category = ErrorCategory.NOT_FOUND
    severity = ErrorSeverity.LOW

    def __init__(self, cve_id: str, context: Optional[ErrorContext] = None):
        super().__init__(f"CVE not found: {cve_id}", context)
        self.cve_id = cve_id


class StorageError(CVEMirrorError):
    """Underlying store unavailable or rejected an operation"""

    category = ErrorCategory.STORAGE_ERROR
    severity = ErrorSeverity.HIGH

    def __init__(self, message: str, operation: Optional[str] = None,
                 context: Optional[ErrorContext] = None):
        super().__init__(message, context)
        self.operation = operation


class DataValidationError(CVEMirrorError):
    """Upstream data failed structural checks"""

    category = ErrorCategory.DATA_VALIDATION
    severity = ErrorSeverity.MEDIUM


class RecordError(DataValidationError):
    """An upstream item lacks a field every stored record requires"""

    def __init__(self, message: str, cve_id: Optional[str] = None,
                 context: Optional[ErrorContext] = None):
        super().__init__(message, context)
        self.cve_id = cve_id


class ConfigurationError(CVEMirrorError):
    """Configuration-related errors"""

    category = ErrorCategory.CONFIGURATION
    severity = ErrorSeverity.CRITICAL

    def __init__(self, message: str, config_key: Optional[str] = None,
                 context: Optional[ErrorContext] = None):
        super().__init__(message, context)
        self.config_key = config_key


class ErrorHandler:
    """Centralized error handling and logging system"""

    def __init__(self, max_records: int = 100):
        self.error_records: List[ErrorRecord] = []
        self.max_records = max_records
        self._lock = threading.Lock()
        self.logger = self._setup_logger()

    def _setup_logger(self) -> logging.Logger:
        """Setup structured logger with file rotation"""
        config = get_config()
        logger = logging.getLogger(LOGGER_NAME)
        logger.setLevel(getattr(logging, str(config.get('logging.level', 'INFO')).upper(), logging.INFO))
        logger.propagate = False

        logger.handlers.clear()

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(logging.Formatter(
            config.get('logging.format', '%(asctime)s - %(name)s - %(levelname)s - %(message)s')
        ))
        logger.addHandler(console_handler)

        log_file = config.get('logging.file')
        if log_file:
            os.makedirs(os.path.dirname(log_file) or '.', exist_ok=True)
            file_handler = logging.handlers.RotatingFileHandler(
                log_file, maxBytes=10*1024*1024, backupCount=5
            )
            file_handler.setFormatter(logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'
            ))
            logger.addHandler(file_handler)

        json_log_file = config.get('logging.json_file')
        if json_log_file:
            os.makedirs(os.path.dirname(json_log_file) or '.', exist_ok=True)
            json_handler = logging.handlers.RotatingFileHandler(
                json_log_file, maxBytes=10*1024*1024, backupCount=5
            )
            json_handler.setFormatter(JsonFormatter())
            logger.addHandler(json_handler)

        return logger

    def handle_error(self, error: Exception, context: Optional[ErrorContext] = None) -> ErrorRecord:
        """Record and log an error"""
        with self._lock:
            error_record = self._create_error_record(error, context)

            self.error_records.append(error_record)
            del self.error_records[:-self.max_records]

            self._log_error(error_record)
            return error_record

    def _create_error_record(self, error: Exception, context: Optional[ErrorContext]) -> ErrorRecord:
        """Create structured error record"""
        if isinstance(error, CVEMirrorError):
            category = error.category
            severity = error.severity
            context = context or error.context
        else:
            category = ErrorCategory.UNKNOWN
            severity = ErrorSeverity.HIGH

        error_id = f"{category.value}_{int(datetime.now().timestamp())}"

        return ErrorRecord(
            timestamp=datetime.now().isoformat(),
            error_id=error_id,
            category=category,
            severity=severity,
            message=str(error),
            exception_type=type(error).__name__,
            traceback="".join(traceback.format_exception(type(error), error, error.__traceback__)),
            context=context or ErrorContext(operation="unknown", component="unknown")
        )

    def _log_error(self, error_record: ErrorRecord):
        """Log error with appropriate level"""
        log_message = f"[{error_record.error_id}] {error_record.message}"

        if error_record.context.cve_id:
            log_message += f" (CVE: {error_record.context.cve_id})"

        level = {
            ErrorSeverity.CRITICAL: logging.CRITICAL,
            ErrorSeverity.HIGH: logging.ERROR,
            ErrorSeverity.MEDIUM: logging.WARNING,
        }.get(error_record.severity, logging.INFO)
        self.logger.log(level, log_message, extra={'error_record': asdict(error_record)})

    def get_error_summary(self) -> Dict[str, Any]:
        """Get error summary statistics"""
        with self._lock:
            errors_by_category: Dict[str, int] = {}
            for record in self.error_records:
                cat = record.category.value
                errors_by_category[cat] = errors_by_category.get(cat, 0) + 1

            return {
                'total_errors': len(self.error_records),
                'errors_by_category': errors_by_category,
                'recent_errors': [
                    {
                        'timestamp': record.timestamp,
                        'error_id': record.error_id,
                        'message': record.message,
                        'operation': record.context.operation
                    }
                    for record in self.error_records[-10:]
                ]
            }


class JsonFormatter(logging.Formatter):
    """JSON formatter for structured logging"""

    def format(self, record):
        log_entry = {
            'timestamp': datetime.fromtimestamp(record.created).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno
        }

        if hasattr(record, 'error_record'):
            log_entry['error_record'] = record.error_record

        if record.exc_info:
            log_entry['exception'] = {
                'type': record.exc_info[0].__name__,
                'message': str(record.exc_info[1]),
                'traceback': self.formatException(record.exc_info)
            }

        return json.dumps(log_entry, default=str)


def log_operation(operation: str, component: str):
    """Decorator for operation logging"""
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs):
            logger = get_logger(component)
            logger.info(f"Starting {operation}")

            start_time = datetime.now()
            try:
                result = func(*args, **kwargs)
                duration = (datetime.now() - start_time).total_seconds()
                logger.info(f"Completed {operation} in {duration:.2f}s")
                return result
            except Exception as e:
                duration = (datetime.now() - start_time).total_seconds()
                logger.error(f"Failed {operation} after {duration:.2f}s: {e}")
                raise

        return wrapper
    return decorator


_global_error_handler: Optional[ErrorHandler] = None
_handler_lock = threading.Lock()


def get_error_handler() -> ErrorHandler:
    """Get the process-wide error handler, configuring logging on first use"""
    global _global_error_handler
    with _handler_lock:
        if _global_error_handler is None:
            _global_error_handler = ErrorHandler()
        return _global_error_handler


def handle_error(error: Exception, context: Optional[ErrorContext] = None) -> ErrorRecord:
    """Handle an error using the global error handler"""
    return get_error_handler().handle_error(error, context)


def get_logger(name: str = LOGGER_NAME) -> logging.Logger:
    """Get a logger instance"""
    base = get_error_handler().logger
    if name == LOGGER_NAME:
        return base
    return base.getChild(name)


def get_error_summary() -> Dict[str, Any]:
    """Get error summary"""
    return get_error_handler().get_error_summary()
