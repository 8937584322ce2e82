"""Plugin lifecycle for Brokkr.

The host application implements ``LoaderDelegate`` to load and unload
artifacts; ``PluginManager`` drives install, update and removal through it.

Example delegate:
    class MyHost(LoaderDelegate):
        async def load(self, artifact_path):
            plugin = runtime.load_jar(artifact_path)
            return PluginRecord(plugin_id=plugin.id, version=plugin.version)

        ...

    manager = PluginManager(config, delegate=MyHost())
"""

from brokkr.plugins.delegate import (
    AdminAccess,
    LoaderDelegate,
    load_delegate,
)
from brokkr.plugins.manager import PluginManager

__all__ = [
    # Delegate
    "AdminAccess",
    "LoaderDelegate",
    "load_delegate",
    # Manager
    "PluginManager",
]
