"""
Error taxonomy and centralized error handling for npm-license-report.

Fatal errors abort the run and are raised up to the CLI. Recoverable errors are
raised inside a single resolution step, caught at the step boundary and
reported through the ErrorHandler so that one dependency's failure never
affects its siblings.
"""

import logging
import re
import traceback
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import urlparse


class ErrorLevel(Enum):
    """Error severity levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class ErrorCategory(Enum):
    """Error categories, one per failing collaborator."""

    MANIFEST = "MANIFEST"
    LOCK_FILE = "LOCK_FILE"
    REGISTRY = "REGISTRY"
    FILESYSTEM = "FILESYSTEM"
    TARBALL = "TARBALL"
    SPDX = "SPDX"
    LICENSE = "LICENSE"
    CONFIGURATION = "CONFIGURATION"
    REPORT = "REPORT"


class LicenseReportError(Exception):
    """Base class for every error raised by npm-license-report."""

    category = ErrorCategory.CONFIGURATION
    fatal = True


class FatalError(LicenseReportError):
    """An error that terminates the whole run."""


class RecoverableError(LicenseReportError):
    """An error that degrades a single dependency or step."""

    fatal = False


class ManifestMissing(FatalError):
    category = ErrorCategory.MANIFEST


class ManifestParseError(FatalError):
    category = ErrorCategory.MANIFEST


class LockMissing(FatalError):
    category = ErrorCategory.LOCK_FILE


class ReportWriteError(FatalError):
    category = ErrorCategory.REPORT


class NoLicenseFoundStrict(FatalError):
    """Raised when a dependency has no license text and strict mode is on."""

    category = ErrorCategory.LICENSE

    def __init__(self, package_name: str):
        super().__init__(f"Missing license for {package_name}")
        self.package_name = package_name


class UnsupportedLockVersion(RecoverableError):
    category = ErrorCategory.LOCK_FILE


class DependencyNotInLock(RecoverableError):
    category = ErrorCategory.LOCK_FILE


class RegistryLookupFailed(RecoverableError):
    category = ErrorCategory.REGISTRY

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class LocalFileReadFailed(RecoverableError):
    category = ErrorCategory.FILESYSTEM


class TarballFetchFailed(RecoverableError):
    category = ErrorCategory.TARBALL


class SpdxParseFailed(RecoverableError):
    category = ErrorCategory.SPDX


class SpdxFetchFailed(RecoverableError):
    category = ErrorCategory.SPDX


class NoLicenseFound(RecoverableError):
    category = ErrorCategory.LICENSE


@dataclass
class ErrorContext:
    """Structured error context information."""

    level: ErrorLevel
    category: ErrorCategory
    message: str
    module: str
    function: str
    details: Dict[str, Any] = field(default_factory=dict)
    exception: Optional[BaseException] = None
    traceback_info: Optional[str] = None

    @property
    def kind(self) -> Optional[str]:
        """Name of the taxonomy entry, when the context wraps an exception."""
        return type(self.exception).__name__ if self.exception else None


_SENSITIVE_PATTERNS = [
    (re.compile(r'token["\s]*[:=]["\s]*([a-zA-Z0-9_\-+=/.]{8,})', re.I), 'token="[REDACTED]"'),
    (re.compile(r"(https?://[^@\s/]+:)[^@\s/]+@", re.I), r"\1[REDACTED]@"),
    (re.compile(r"Authorization:\s*\w+\s+([^\s]+)", re.I), "Authorization: [REDACTED]"),
]


class SecureLogger:
    """Logger wrapper that strips credentials from messages before emitting."""

    def __init__(self, name: str):
        self.logger = logging.getLogger(name)

    @staticmethod
    def sanitize_message(message: str) -> str:
        sanitized = message
        for pattern, replacement in _SENSITIVE_PATTERNS:
            sanitized = pattern.sub(replacement, sanitized)
        return sanitized

    def _sanitize_dict(self, data: Dict[str, Any]) -> Dict[str, Any]:
        sanitized = {}
        sensitive_keys = {"token", "password", "secret", "auth"}

        for key, value in data.items():
            if any(sensitive_key in key.lower() for sensitive_key in sensitive_keys):
                sanitized[key] = "[REDACTED]"
            elif isinstance(value, dict):
                sanitized[key] = self._sanitize_dict(value)
            elif isinstance(value, str):
                sanitized[key] = self.sanitize_message(value)
            else:
                sanitized[key] = value

        return sanitized

    def log_error_context(self, context: ErrorContext) -> None:
        """
        Log error context with appropriate level.

        Args:
            context: Error context to log
        """
        message = self.sanitize_message(context.message)
        details = self._sanitize_dict(context.details)

        if details:
            detail_text = ", ".join(f"{key}={value}" for key, value in details.items())
            message = f"{message} ({detail_text})"
        if context.kind:
            message = f"[{context.kind}] {message}"

        level = getattr(logging, context.level.value)
        self.logger.log(
            level,
            message,
            extra={
                "component": context.module,
                "category": context.category.value,
                "function": context.function,
            },
        )
        if context.traceback_info:
            self.logger.debug(context.traceback_info)


# Error callback type
ErrorCallback = Callable[[ErrorContext], None]


class ErrorHandler:
    """
    Centralized error handler for consistent error management.

    Keeps per-category statistics so a run summary can report how many
    dependencies degraded, and lets callers subscribe to failures.
    """

    def __init__(self, logger_name: str = "npm_license_report.errors"):
        self.logger = SecureLogger(logger_name)
        self.error_callbacks: Dict[ErrorCategory, List[ErrorCallback]] = {}
        self.global_callbacks: List[ErrorCallback] = []
        self.error_stats: Dict[str, int] = {}

    def register_callback(
        self, callback: ErrorCallback, category: Optional[ErrorCategory] = None
    ) -> None:
        """
        Register error callback.

        Args:
            callback: Function to call on errors
            category: Error category to filter, None for all errors
        """
        if category is None:
            self.global_callbacks.append(callback)
        else:
            self.error_callbacks.setdefault(category, []).append(callback)

    def handle_error(
        self,
        level: ErrorLevel,
        category: ErrorCategory,
        message: str,
        module: str,
        function: str,
        exception: Optional[BaseException] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> ErrorContext:
        """
        Handle an error with structured logging and callbacks.

        Args:
            level: Error severity level
            category: Error category
            message: Error message
            module: Module where error occurred
            function: Function where error occurred
            exception: Optional exception object
            details: Additional error details

        Returns:
            ErrorContext: The created error context
        """
        context = ErrorContext(
            level=level,
            category=category,
            message=message,
            module=module,
            function=function,
            details=details or {},
            exception=exception,
            traceback_info=(
                "".join(traceback.format_exception(exception))
                if exception is not None and exception.__traceback__ is not None
                and not isinstance(exception, LicenseReportError)
                else None
            ),
        )

        stat_key = f"{category.value}_{level.value}"
        self.error_stats[stat_key] = self.error_stats.get(stat_key, 0) + 1

        self.logger.log_error_context(context)

        for callback in self.error_callbacks.get(category, []) + self.global_callbacks:
            try:
                callback(context)
            except Exception as cb_error:
                # Don't let callback errors break the main flow
                self.logger.logger.error(f"Error in callback: {cb_error}")

        return context

    def report(
        self,
        error: LicenseReportError,
        module: str,
        function: str,
        level: ErrorLevel = ErrorLevel.WARNING,
        details: Optional[Dict[str, Any]] = None,
    ) -> ErrorContext:
        """Report a taxonomy exception, using its own category."""
        return self.handle_error(
            level, error.category, str(error), module, function, error, details
        )

    def count(self, category: ErrorCategory) -> int:
        """Total number of errors recorded for a category, all levels."""
        prefix = f"{category.value}_"
        return sum(
            value for key, value in self.error_stats.items() if key.startswith(prefix)
        )

    def get_error_stats(self) -> Dict[str, int]:
        """Get error statistics."""
        return self.error_stats.copy()


# Global error handler instance
_global_error_handler: Optional[ErrorHandler] = None


def get_error_handler() -> ErrorHandler:
    """
    Get the global error handler instance.

    Returns:
        ErrorHandler: Global error handler
    """
    global _global_error_handler
    if _global_error_handler is None:
        _global_error_handler = ErrorHandler()
    return _global_error_handler


def setup_error_handling(
    logger_name: str = "npm_license_report.errors",
) -> ErrorHandler:
    """Replace the global error handler, dropping callbacks and statistics."""
    global _global_error_handler
    _global_error_handler = ErrorHandler(logger_name)
    return _global_error_handler


def sanitize_url(url: str) -> str:
    """Strip credentials and query from a URL so it can be logged."""
    parsed = urlparse(url)
    if not parsed.scheme or not parsed.hostname:
        return url
    sanitized_url = f"{parsed.scheme}://{parsed.hostname}"
    if parsed.port:
        sanitized_url += f":{parsed.port}"
    return sanitized_url + parsed.path

