"""Tests for error classification."""

import errno
import httpx

from brokkr.core.errors import (
    ArtifactDownloadError,
    CatalogError,
    ChecksumMismatchError,
    ClassifiedError,
    ErrorCategory,
    classify_error,
    describe_error,
    is_retryable,
    status_error,
)


class TestClassifiedError:
    """Tests for ClassifiedError dataclass."""

    def test_str_with_suggestion(self):
        err = ClassifiedError(
            category=ErrorCategory.FATAL,
            message="HTTP 404",
            retryable=False,
            suggestion="Check the plugin id or repository URL",
        )
        assert str(err) == "HTTP 404 | Suggestion: Check the plugin id or repository URL"

    def test_str_without_suggestion(self):
        err = ClassifiedError(category=ErrorCategory.FATAL, message="boom", retryable=False)
        assert str(err) == "boom"


class TestClassifyError:
    """Test classify_error with real exceptions."""

    def test_catalog_server_error_is_transient(self):
        result = classify_error(status_error(503, "Service Unavailable"))

        assert result.category == ErrorCategory.TRANSIENT
        assert result.retryable is True

    def test_catalog_client_error_is_fatal(self):
        result = classify_error(status_error(404))

        assert result.category == ErrorCategory.FATAL
        assert result.retryable is False
        assert "plugin id" in result.suggestion

    def test_rate_limit_is_transient(self):
        assert is_retryable(CatalogError("HTTP 429", status_code=429)) is True

    def test_checksum_mismatch_is_fatal(self):
        error = ChecksumMismatchError("aa", "bb")
        result = classify_error(error)

        assert result.category == ErrorCategory.FATAL
        assert result.retryable is False
        assert result.original_exception is error
        assert "altered" in result.suggestion

    def test_download_error_with_status(self):
        assert is_retryable(ArtifactDownloadError("Download failed: HTTP 502", status_code=502)) is True
        assert is_retryable(ArtifactDownloadError("Download failed: HTTP 403", status_code=403)) is False

    def test_httpx_timeout_is_transient(self):
        result = classify_error(httpx.ReadTimeout("read timed out"))

        assert result.category == ErrorCategory.TRANSIENT
        assert result.retryable is True

    def test_httpx_connect_error_is_transient(self):
        assert is_retryable(httpx.ConnectError("connection refused")) is True

    def test_connection_error_is_transient(self):
        result = classify_error(ConnectionRefusedError("Connection refused"))

        assert result.category == ErrorCategory.TRANSIENT
        assert "network" in result.suggestion.lower()

    def test_timeout_error_is_transient(self):
        result = classify_error(TimeoutError("Operation timed out"))

        assert result.retryable is True
        assert "try again" in result.suggestion

    def test_permission_error_is_fatal(self):
        result = classify_error(PermissionError("Permission denied: /plugins"))

        assert result.category == ErrorCategory.FATAL
        assert "permissions" in result.suggestion.lower()

    def test_disk_full_is_resource(self):
        result = classify_error(OSError(errno.ENOSPC, "No space left on device"))

        assert result.category == ErrorCategory.RESOURCE
        assert result.retryable is False

    def test_transient_errno(self):
        assert is_retryable(OSError(errno.ECONNRESET, "Connection reset by peer")) is True

    def test_unknown_error_is_fatal(self):
        result = classify_error(ValueError("bad data"))

        assert result.category == ErrorCategory.FATAL
        assert result.retryable is False


class TestHelpers:
    """Tests for status_error and describe_error."""

    def test_status_error_message(self):
        error = status_error(500, "Internal Server Error")

        assert isinstance(error, CatalogError)
        assert error.status_code == 500
        assert str(error) == "HTTP 500: Internal Server Error"

    def test_describe_error_falls_back_to_type(self):
        assert describe_error(RuntimeError()) == "RuntimeError"
        assert describe_error(RuntimeError("nope")) == "nope"
