"""Installed plugin registry.

Keeps the authoritative list of installed plugins in memory and mirrors it
to ``installed.json`` in the plugins directory. The file is rewritten in
full on every mutation.
"""

import json
import os
import tempfile
import threading
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterable, Optional
import structlog

from brokkr.core.errors import RegistryError
from brokkr.marketplace.models import PluginRecord

log = structlog.get_logger()

INDEX_FILE_NAME = "installed.json"
INDEX_FORMAT_VERSION = 1


class InstalledRegistry:
    """Registry of installed plugins with a persisted JSON mirror.

    Every mutation writes the new state to disk first and only then swaps
    the in-memory snapshot, under a lock. Readers therefore see either the
    state before or after a mutation, never a mix, and a failed write
    leaves memory untouched.

    Example:
        registry = InstalledRegistry(Path("~/.brokkr/plugins").expanduser())
        registry.load()

        registry.put(record)
        registry.get("terminal")
        registry.remove("terminal")
    """

    def __init__(self, plugins_dir: Path):
        """Initialize the registry.

        Args:
            plugins_dir: Directory holding installed.json
        """
        self.plugins_dir = Path(plugins_dir)
        self.index_file = self.plugins_dir / INDEX_FILE_NAME
        self._plugins: dict[str, PluginRecord] = {}
        self._lock = threading.Lock()
        self._observers: list[Callable[[list[PluginRecord]], None]] = []
        self._loaded = False

    # ----------------------------------------
    # Persistence
    # ----------------------------------------

    def _read_file(self) -> dict[str, PluginRecord]:
        if not self.index_file.exists():
            return {}

        try:
            with open(self.index_file, "r") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError, UnicodeDecodeError) as e:
            log.error("registry_load_failed", path=str(self.index_file), error=str(e))
            return {}

        entries = data.get("plugins", []) if isinstance(data, dict) else []
        plugins: dict[str, PluginRecord] = {}
        for entry in entries:
            try:
                record = PluginRecord.from_dict(entry)
            except (KeyError, TypeError, ValueError) as e:
                log.warning("registry_entry_invalid", entry=entry, error=str(e))
                continue
            plugins[record.plugin_id] = record
        return plugins

    def _write_file(self, plugins: dict[str, PluginRecord]) -> None:
        data = {
            "version": INDEX_FORMAT_VERSION,
            "updated_at": datetime.now().isoformat(),
            "plugins": [record.to_entry() for record in plugins.values()],
        }

        try:
            self.plugins_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self.plugins_dir, prefix=".installed-", suffix=".json"
            )
            try:
                with os.fdopen(fd, "w") as f:
                    json.dump(data, f, indent=2)
                os.replace(tmp_name, self.index_file)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            log.error("registry_save_failed", path=str(self.index_file), error=str(e))
            raise RegistryError(f"Could not write {self.index_file}: {e}") from e

        log.debug("registry_saved", count=len(plugins))

    def _commit(self, plugins: dict[str, PluginRecord]) -> None:
        """Persist then publish a new snapshot. Caller holds the lock."""
        self._write_file(plugins)
        self._plugins = plugins
        self._loaded = True

    def load(self) -> None:
        """Load the registry from disk.

        A missing or unreadable file yields an empty registry.
        """
        plugins = self._read_file()
        with self._lock:
            self._plugins = plugins
            self._loaded = True
        log.debug("registry_loaded", count=len(plugins))
        self._notify()

    def reconcile(self, loaded: Iterable[PluginRecord]) -> None:
        """Replace the registry with the host's list of loaded plugins.

        The host is authoritative for which enabled plugins exist. Disabled
        plugins are not loaded, so persisted disabled records the host does
        not list are kept. Fields the host does not know about (artifact
        path, source, install time) are kept from the persisted mirror when
        the same id is present there.
        """
        persisted = self._read_file()
        plugins: dict[str, PluginRecord] = {}

        for record in loaded:
            previous = persisted.get(record.plugin_id)
            if previous is not None:
                record = record.copy(
                    artifact_path=record.artifact_path or previous.artifact_path,
                    source_url=record.source_url or previous.source_url,
                    source=record.source or previous.source,
                    installed_at=record.installed_at or previous.installed_at,
                )
            plugins[record.plugin_id] = record

        for plugin_id, previous in persisted.items():
            if plugin_id not in plugins and not previous.enabled:
                plugins[plugin_id] = previous

        dropped = set(persisted) - set(plugins)
        if dropped:
            log.info("registry_reconcile_dropped", plugins=sorted(dropped))

        with self._lock:
            self._commit(plugins)
        log.info("registry_reconciled", count=len(plugins))
        self._notify()

    # ----------------------------------------
    # Mutations
    # ----------------------------------------

    def put(self, record: PluginRecord) -> None:
        """Add or replace a record and persist."""
        self._ensure_loaded()
        with self._lock:
            plugins = dict(self._plugins)
            plugins[record.plugin_id] = record
            self._commit(plugins)
        log.info("registry_plugin_added", plugin_id=record.plugin_id, version=record.version)
        self._notify()

    def remove(self, plugin_id: str) -> Optional[PluginRecord]:
        """Remove a record and persist.

        Returns:
            The removed record, or None if it was not present
        """
        self._ensure_loaded()
        with self._lock:
            if plugin_id not in self._plugins:
                return None
            plugins = dict(self._plugins)
            removed = plugins.pop(plugin_id)
            self._commit(plugins)
        log.info("registry_plugin_removed", plugin_id=plugin_id)
        self._notify()
        return removed

    def set_enabled(self, plugin_id: str, enabled: bool) -> bool:
        """Update the enabled flag and persist.

        Returns:
            True if the plugin was found
        """
        self._ensure_loaded()
        with self._lock:
            current = self._plugins.get(plugin_id)
            if current is None:
                return False
            plugins = dict(self._plugins)
            plugins[plugin_id] = current.copy(enabled=enabled)
            self._commit(plugins)
        log.info("registry_plugin_enabled_changed", plugin_id=plugin_id, enabled=enabled)
        self._notify()
        return True

    # ----------------------------------------
    # Queries
    # ----------------------------------------

    def _ensure_loaded(self) -> None:
        if not self._loaded:
            self.load()

    def get(self, plugin_id: str) -> Optional[PluginRecord]:
        self._ensure_loaded()
        return self._plugins.get(plugin_id)

    def exists(self, plugin_id: str) -> bool:
        self._ensure_loaded()
        return plugin_id in self._plugins

    def get_all(self) -> list[PluginRecord]:
        """Snapshot of all records, ordered by load priority then id."""
        self._ensure_loaded()
        return sorted(
            self._plugins.values(),
            key=lambda r: (r.load_priority, r.plugin_id),
        )

    def __len__(self) -> int:
        self._ensure_loaded()
        return len(self._plugins)

    def get_stats(self) -> dict:
        """Counts by source and enabled state."""
        plugins = self.get_all()
        by_source: dict[str, int] = {}
        for record in plugins:
            key = record.source.value if record.source else "unknown"
            by_source[key] = by_source.get(key, 0) + 1

        return {
            "total": len(plugins),
            "enabled": sum(1 for r in plugins if r.enabled),
            "system": sum(1 for r in plugins if r.is_system),
            "by_source": by_source,
        }

    # ----------------------------------------
    # Observation
    # ----------------------------------------

    def subscribe(self, observer: Callable[[list[PluginRecord]], None]) -> Callable[[], None]:
        """Register a callback receiving the full list after every change.

        Returns:
            A function that removes the observer
        """
        self._observers.append(observer)

        def unsubscribe() -> None:
            try:
                self._observers.remove(observer)
            except ValueError:
                pass

        return unsubscribe

    def _notify(self) -> None:
        snapshot = self.get_all()
        for observer in list(self._observers):
            try:
                observer(snapshot)
            except Exception as e:
                log.error("registry_observer_failed", error=str(e))
