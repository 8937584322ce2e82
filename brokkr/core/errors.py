"""Error taxonomy and classification for Brokkr.

Every fault raised below the orchestrator is one of the exceptions defined
here (or a transport/filesystem error), and `classify_error` decides whether
it is worth retrying. The orchestrator converts all of them into typed
install/uninstall outcomes, so none of these escape the public API.
"""

import errno
from dataclasses import dataclass
from enum import Enum
from typing import Optional
import httpx
import structlog

log = structlog.get_logger()


class BrokkrError(Exception):
    """Base class for all Brokkr errors."""


class CatalogError(BrokkrError):
    """The remote catalog returned an error or could not be reached."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class SourceResolutionError(BrokkrError):
    """A repository URL could not be resolved to a downloadable asset."""


class ArtifactDownloadError(BrokkrError):
    """An artifact transfer failed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ChecksumMismatchError(ArtifactDownloadError):
    """Downloaded bytes do not match the declared SHA-256."""

    def __init__(self, expected: str, actual: str):
        super().__init__(f"Checksum mismatch: expected {expected}, got {actual}")
        self.expected = expected
        self.actual = actual


class RegistryError(BrokkrError):
    """The installed-plugin registry could not be persisted."""


class ErrorCategory(Enum):
    """Categories of errors for handling decisions."""

    TRANSIENT = "transient"   # Network, timeout, 5xx - retry
    RESOURCE = "resource"     # Disk space - may recover later
    FATAL = "fatal"           # Bad input, 4xx, checksum - no retry


@dataclass
class ClassifiedError:
    """A classified error with handling metadata."""

    category: ErrorCategory
    message: str
    retryable: bool
    suggestion: Optional[str] = None
    original_exception: Optional[Exception] = None

    def __str__(self) -> str:
        """Human-readable error representation."""
        parts = [self.message]
        if self.suggestion:
            parts.append(f"Suggestion: {self.suggestion}")
        return " | ".join(parts)


# OSError errno values that indicate transient failures
TRANSIENT_ERRNO = {
    errno.EAGAIN,
    errno.EINTR,
    errno.EBUSY,
    errno.ETIMEDOUT,
    errno.ECONNRESET,
    errno.ECONNREFUSED,
    errno.EPIPE,
    errno.ENETUNREACH,
    errno.EHOSTUNREACH,
}

# HTTP status codes worth retrying
TRANSIENT_STATUS = {408, 425, 429, 500, 502, 503, 504}

# Suggestions for common error patterns
ERROR_SUGGESTIONS = {
    "checksum mismatch": "The artifact was altered in transit; try again later or report it to the publisher",
    "no space left": "Free up disk space in the plugins directory",
    "permission denied": "Check permissions on the plugins directory",
    "timed out": "The server is slow or unreachable; try again later",
    "timeout": "The server is slow or unreachable; try again later",
    "connection refused": "Check network connectivity and the catalog URL",
    "http 401": "Sign in again; the access token was rejected",
    "http 403": "This action requires store admin rights",
    "http 404": "Check the plugin id or repository URL",
    "no plugin loader": "Run inside the host application so plugins can be loaded",
    "invalid github url": "Use a URL of the form https://github.com/<owner>/<repo>",
}


def status_error(status_code: int, reason: str = "") -> CatalogError:
    """Build the error for a non-2xx catalog response."""
    message = f"HTTP {status_code}"
    if reason:
        message = f"{message}: {reason}"
    return CatalogError(message, status_code=status_code)


def classify_error(
    error: Exception,
    context: str = ""
) -> ClassifiedError:
    """Classify an exception for appropriate handling.

    Args:
        error: The exception to classify
        context: Optional context about where the error occurred

    Returns:
        ClassifiedError with category, retryability, and suggestions
    """
    error_msg = str(error) or type(error).__name__
    lowered = error_msg.lower()

    if isinstance(error, ChecksumMismatchError):
        return ClassifiedError(
            category=ErrorCategory.FATAL,
            message=error_msg,
            retryable=False,
            suggestion=_get_suggestion(lowered),
            original_exception=error,
        )

    if isinstance(error, (CatalogError, ArtifactDownloadError)) and error.status_code:
        transient = error.status_code in TRANSIENT_STATUS
        return ClassifiedError(
            category=ErrorCategory.TRANSIENT if transient else ErrorCategory.FATAL,
            message=error_msg,
            retryable=transient,
            suggestion=_get_suggestion(lowered),
            original_exception=error,
        )

    if isinstance(error, httpx.HTTPStatusError):
        transient = error.response.status_code in TRANSIENT_STATUS
        return ClassifiedError(
            category=ErrorCategory.TRANSIENT if transient else ErrorCategory.FATAL,
            message=error_msg,
            retryable=transient,
            suggestion=_get_suggestion(f"http {error.response.status_code}"),
            original_exception=error,
        )

    if isinstance(error, (httpx.TimeoutException, TimeoutError)):
        return ClassifiedError(
            category=ErrorCategory.TRANSIENT,
            message=error_msg,
            retryable=True,
            suggestion=ERROR_SUGGESTIONS["timeout"],
            original_exception=error,
        )

    if isinstance(error, (httpx.TransportError, ConnectionError)):
        return ClassifiedError(
            category=ErrorCategory.TRANSIENT,
            message=error_msg,
            retryable=True,
            suggestion=_get_suggestion(lowered),
            original_exception=error,
        )

    if isinstance(error, PermissionError):
        return ClassifiedError(
            category=ErrorCategory.FATAL,
            message=error_msg,
            retryable=False,
            suggestion=ERROR_SUGGESTIONS["permission denied"],
            original_exception=error,
        )

    if isinstance(error, OSError):
        if error.errno == errno.ENOSPC:
            return ClassifiedError(
                category=ErrorCategory.RESOURCE,
                message=error_msg,
                retryable=False,
                suggestion=ERROR_SUGGESTIONS["no space left"],
                original_exception=error,
            )
        if error.errno in TRANSIENT_ERRNO:
            return ClassifiedError(
                category=ErrorCategory.TRANSIENT,
                message=error_msg,
                retryable=True,
                suggestion=_get_suggestion(lowered),
                original_exception=error,
            )

    # Default: treat as fatal (don't retry unknown errors)
    return ClassifiedError(
        category=ErrorCategory.FATAL,
        message=error_msg,
        retryable=False,
        suggestion=_get_suggestion(lowered),
        original_exception=error,
    )


def _get_suggestion(error_msg: str) -> Optional[str]:
    """Get a suggestion for a lowercase error message."""
    for pattern, suggestion in ERROR_SUGGESTIONS.items():
        if pattern in error_msg:
            return suggestion
    return None


def is_retryable(error: Exception) -> bool:
    """Quick check if an error should be retried."""
    return classify_error(error).retryable


def describe_error(error: Exception) -> str:
    """Message used when an exception is folded into a result object."""
    return str(error) or type(error).__name__
