"""Brokkr - plugin installation and update orchestration.

Discovers, downloads, verifies and installs host plugins from a remote
catalog or a source repository, and keeps a local registry of what is
installed in sync with the host runtime.
"""

__version__ = "1.1.0"

from brokkr.config import BrokkrConfig
from brokkr.plugins.manager import PluginManager

__all__ = [
    "__version__",
    "BrokkrConfig",
    "PluginManager",
]
