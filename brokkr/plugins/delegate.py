"""Interface the host application implements to load and unload plugins.

Brokkr never loads artifact code itself. The host registers a
``LoaderDelegate`` and Brokkr calls it once an artifact is downloaded and
verified. Optional host features are exposed as typed capability handles
(``admin()``) that return None when the host doesn't offer them.
"""

import importlib
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from brokkr.marketplace.models import PluginRecord

DELEGATE_API_VERSION = 1


@dataclass(frozen=True)
class AdminAccess:
    """Store admin capability offered by the host.

    Attributes:
        access_token: Bearer token for authenticated store calls
        is_admin: Whether the signed-in user may publish and delete
    """
    access_token: Optional[str]
    is_admin: bool = False


class LoaderDelegate(ABC):
    """Host-side plugin runtime.

    Implementations must be safe to call from the event loop; long-running
    work should be awaited, not done synchronously.
    """

    api_version: int = DELEGATE_API_VERSION

    @abstractmethod
    async def load(self, artifact_path: Path) -> Optional[PluginRecord]:
        """Load an artifact.

        Returns:
            The loaded plugin's record, or None if loading failed
        """

    @abstractmethod
    async def unload(self, plugin_id: str) -> bool:
        """Unload a loaded plugin. Returns True on success."""

    @abstractmethod
    async def enable(self, plugin_id: str) -> bool:
        """Enable (load) an installed but disabled plugin."""

    @abstractmethod
    async def disable(self, plugin_id: str) -> bool:
        """Disable (unload without uninstalling) a plugin."""

    @abstractmethod
    def list_loaded(self) -> list[PluginRecord]:
        """Plugins currently loaded in the host runtime."""

    @abstractmethod
    def plugins_directory(self) -> Path:
        """Directory the host loads plugin artifacts from."""

    def host_version(self) -> Optional[str]:
        """Host application version, if the host reports one."""
        return None

    def admin(self) -> Optional[AdminAccess]:
        """Store admin capability, or None if the host has no sign-in."""
        return None

    def is_admin(self) -> bool:
        access = self.admin()
        return bool(access and access.is_admin)

    def access_token(self) -> Optional[str]:
        access = self.admin()
        return access.access_token if access else None


def load_delegate(target: str) -> LoaderDelegate:
    """Instantiate a delegate from a ``module:factory`` string.

    The factory may be a LoaderDelegate subclass or a callable returning
    an instance.

    Raises:
        ValueError: If the target can't be imported or doesn't produce a delegate
    """
    module_name, _, attr = target.partition(":")
    if not module_name or not attr:
        raise ValueError(f"Delegate must be given as module:factory, got {target!r}")

    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ValueError(f"Cannot import delegate module {module_name}: {e}") from e

    factory = getattr(module, attr, None)
    if factory is None:
        raise ValueError(f"{module_name} has no attribute {attr}")

    delegate = factory()
    if not isinstance(delegate, LoaderDelegate):
        raise ValueError(f"{target} did not produce a LoaderDelegate")

    if delegate.api_version > DELEGATE_API_VERSION:
        raise ValueError(
            f"Delegate API version {delegate.api_version} is newer than supported "
            f"({DELEGATE_API_VERSION})"
        )
    return delegate
