"""Result types returned across the marketplace and orchestrator APIs.

Install and uninstall outcomes are small tagged unions: one dataclass per
case, all sharing a base class so callers can ``isinstance``-dispatch or use
``match``.
"""

from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

from brokkr.marketplace.models import PluginRecord

T = TypeVar("T")


@dataclass
class Result(Generic[T]):
    """Success value or failure message from a remote or filesystem step.

    Attributes:
        success: Whether the step succeeded
        value: The produced value (if successful)
        error: Human-readable failure message (if failed)
        status_code: HTTP status of a failed response, when there was one
    """
    success: bool
    value: Optional[T] = None
    error: Optional[str] = None
    status_code: Optional[int] = None

    @classmethod
    def ok(cls, value: T = None) -> "Result[T]":
        return cls(success=True, value=value)

    @classmethod
    def fail(cls, error: str, status_code: Optional[int] = None) -> "Result[T]":
        return cls(success=False, error=error, status_code=status_code)

    def unwrap(self) -> T:
        if not self.success:
            raise ValueError(self.error or "unsuccessful result")
        return self.value


# ============================================
# Install outcomes
# ============================================


class InstallOutcome:
    """Base class for the result of an install or update."""

    success = False

    @property
    def message(self) -> str:
        return type(self).__name__


@dataclass
class InstallSuccess(InstallOutcome):
    record: PluginRecord
    success = True

    @property
    def message(self) -> str:
        return f"Installed {self.record.plugin_id} v{self.record.version}"


@dataclass
class AlreadyInstalled(InstallOutcome):
    current_version: str

    @property
    def message(self) -> str:
        return f"Plugin already installed (v{self.current_version})"


@dataclass
class DownloadFailed(InstallOutcome):
    reason: str

    @property
    def message(self) -> str:
        return f"Download failed: {self.reason}"


@dataclass
class LoadFailed(InstallOutcome):
    reason: str

    @property
    def message(self) -> str:
        return f"Load failed: {self.reason}"


@dataclass
class VersionConflict(InstallOutcome):
    required: str
    available: str

    @property
    def message(self) -> str:
        return f"Version conflict: requires {self.required}, available {self.available}"


@dataclass
class UpdateIncomplete(InstallOutcome):
    """Update removed the old version but could not install the new one.

    The plugin is no longer installed. ``cause`` is the failed install
    outcome.
    """
    previous_version: str
    cause: InstallOutcome

    @property
    def message(self) -> str:
        return (
            f"Update incomplete: v{self.previous_version} was removed but "
            f"reinstall failed ({self.cause.message})"
        )


# ============================================
# Uninstall outcomes
# ============================================


class UninstallOutcome:
    """Base class for the result of an uninstall."""

    success = False

    @property
    def message(self) -> str:
        return type(self).__name__


@dataclass
class Uninstalled(UninstallOutcome):
    plugin_id: str
    success = True

    @property
    def message(self) -> str:
        return f"Uninstalled {self.plugin_id}"


@dataclass
class NotFound(UninstallOutcome):
    plugin_id: str

    @property
    def message(self) -> str:
        return f"Plugin not found: {self.plugin_id}"


@dataclass
class CannotUnload(UninstallOutcome):
    reason: str

    @property
    def message(self) -> str:
        return f"Cannot uninstall: {self.reason}"


@dataclass
class UninstallFailed(UninstallOutcome):
    reason: str

    @property
    def message(self) -> str:
        return f"Uninstall failed: {self.reason}"
