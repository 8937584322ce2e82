"""Plugin manager for Brokkr.

Coordinates catalog lookup, source resolution, download, verification,
host loading and the installed registry for single-plugin install,
uninstall, update, enable and disable.
"""

import asyncio
import shutil
from contextlib import asynccontextmanager, contextmanager
from pathlib import Path
from typing import Callable, Optional
import httpx
import structlog

from brokkr.config import BrokkrConfig
from brokkr.core.errors import RegistryError, describe_error
from brokkr.core.events import (
    EventBus,
    PluginDisabled,
    PluginEnabled,
    PluginInstalled,
    PluginLoadFailed,
    PluginUninstalled,
    PluginUpdated,
    Subscription,
)
from brokkr.logging import operation_context
from brokkr.marketplace.catalog import CatalogClient, PublishRequest
from brokkr.marketplace.fetcher import (
    ArtifactFetcher,
    InstallProgress,
    ProgressReporter,
    artifact_file_name,
)
from brokkr.marketplace.index import InstalledRegistry
from brokkr.marketplace.manifest import ArtifactManifest, read_manifest
from brokkr.marketplace.models import (
    CatalogEntry,
    DownloadDescriptor,
    PluginRecord,
    PluginState,
    SourceKind,
    UpdateCandidate,
    now_millis,
)
from brokkr.marketplace.results import (
    AlreadyInstalled,
    CannotUnload,
    DownloadFailed,
    InstallOutcome,
    InstallSuccess,
    LoadFailed,
    NotFound,
    Result,
    UninstallFailed,
    Uninstalled,
    UninstallOutcome,
    UpdateIncomplete,
    VersionConflict,
)
from brokkr.marketplace.source import SourceResolver, parse_repository_url, repository_key
from brokkr.marketplace.versions import is_newer
from brokkr.plugins.delegate import LoaderDelegate

log = structlog.get_logger()

ProgressCallback = Callable[[InstallProgress], None]


class PluginManager:
    """Installs, updates and removes host plugins.

    At most one install, uninstall, update, enable or disable runs per
    plugin id at a time. Failures never raise; every public operation
    returns a typed outcome.

    Example:
        async with PluginManager(config, delegate=host_delegate) as manager:
            outcome = await manager.install("terminal")
            if isinstance(outcome, InstallSuccess):
                print(outcome.record.artifact_path)

            updates = await manager.check_for_updates()
            for candidate in updates:
                await manager.update(candidate.plugin_id)
    """

    def __init__(
        self,
        config: Optional[BrokkrConfig] = None,
        delegate: Optional[LoaderDelegate] = None,
        events: Optional[EventBus] = None,
        registry: Optional[InstalledRegistry] = None,
        catalog: Optional[CatalogClient] = None,
        resolver: Optional[SourceResolver] = None,
        fetcher: Optional[ArtifactFetcher] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the manager.

        Args:
            config: Brokkr configuration (defaults if not provided)
            delegate: Host loader; without one the manager runs offline
            events: Event bus for lifecycle events
            registry: Installed registry (created in the plugins directory if not provided)
            catalog: Catalog client
            resolver: Source repository resolver
            fetcher: Artifact fetcher
            transport: HTTP transport for the shared client (used by tests)
        """
        self.config = config or BrokkrConfig()
        self.delegate = delegate
        self.events = events or EventBus(self.config.event_buffer_size)

        self._http = httpx.AsyncClient(follow_redirects=True, transport=transport)
        self.catalog = catalog or CatalogClient(self.config, self.events, self._http)
        self.resolver = resolver or SourceResolver(self.config, self._http)
        self.fetcher = fetcher or ArtifactFetcher(self.config, self._http)

        self.plugins_dir = self._resolve_plugins_dir()
        self.registry = registry or InstalledRegistry(self.plugins_dir)

        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}
        self._states: dict[str, PluginState] = {}

    def _resolve_plugins_dir(self) -> Path:
        if self.delegate is not None:
            try:
                return Path(self.delegate.plugins_directory()).expanduser()
            except Exception as e:
                log.warning("delegate_plugins_dir_failed", error=describe_error(e))
        return self.config.plugins_dir

    # ========================================
    # Lifecycle
    # ========================================

    async def start(self) -> None:
        """Rehydrate the registry.

        With a delegate, the host's loaded-plugin list is the source of
        truth. Without one (or if the host can't be queried) the persisted
        mirror is used.
        """
        if self.delegate is not None:
            try:
                loaded = self.delegate.list_loaded()
                await asyncio.to_thread(self.registry.reconcile, loaded)
                log.info("plugin_manager_started", mode="host", plugins=len(self.registry))
                return
            except Exception as e:
                log.error("registry_reconcile_failed", error=describe_error(e))

        await asyncio.to_thread(self.registry.load)
        log.info("plugin_manager_started", mode="offline", plugins=len(self.registry))

    refresh = start

    async def close(self) -> None:
        await self._http.aclose()
        self.events.close()

    async def __aenter__(self) -> "PluginManager":
        await self.start()
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    # ========================================
    # Installed plugins
    # ========================================

    def get_installed(self) -> list[PluginRecord]:
        return self.registry.get_all()

    def get_installed_plugin(self, plugin_id: str) -> Optional[PluginRecord]:
        return self.registry.get(plugin_id)

    def is_installed(self, plugin_id: str) -> bool:
        return self.registry.exists(plugin_id)

    def observe_installed(
        self, observer: Callable[[list[PluginRecord]], None]
    ) -> Callable[[], None]:
        """Call ``observer`` with the installed list after every change."""
        return self.registry.subscribe(observer)

    def subscribe_events(self, maxsize: Optional[int] = None) -> Subscription:
        return self.events.subscribe(maxsize)

    def state(self, plugin_id: str) -> PluginState:
        """Current lifecycle state of a plugin id."""
        if plugin_id in self._states:
            return self._states[plugin_id]
        record = self.registry.get(plugin_id)
        if record is None:
            return PluginState.NOT_INSTALLED
        return PluginState.INSTALLED if record.enabled else PluginState.DISABLED

    @asynccontextmanager
    async def _locked(self, key: str):
        """Hold the lock for ``key``; it is dropped once nobody holds or awaits it."""
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._lock_users[key] = self._lock_users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[key] -= 1
            if not self._lock_users[key]:
                del self._lock_users[key]
                del self._locks[key]

    @contextmanager
    def _transition(self, plugin_id: Optional[str], state: PluginState):
        if plugin_id:
            self._states[plugin_id] = state
        try:
            yield
        finally:
            if plugin_id:
                self._states.pop(plugin_id, None)

    # ========================================
    # Catalog
    # ========================================

    async def search(
        self, query: Optional[str] = None, category: Optional[str] = None, page: int = 1
    ) -> Result[list[CatalogEntry]]:
        return await self.catalog.search(query, category, page)

    async def details(self, plugin_id: str) -> Result[CatalogEntry]:
        return await self.catalog.details(plugin_id)

    async def check_for_updates(self) -> list[UpdateCandidate]:
        """Installed plugins with a newer catalog version.

        System plugins are skipped, and plugins the catalog can't answer for
        are left out rather than failing the whole check.
        """
        records = [r for r in self.registry.get_all() if not r.is_system]
        lookups = await asyncio.gather(*(self.catalog.details(r.plugin_id) for r in records))

        candidates = []
        for record, lookup in zip(records, lookups):
            if not lookup.success:
                log.debug("update_check_skipped", plugin_id=record.plugin_id, error=lookup.error)
                continue
            entry = lookup.value
            if is_newer(entry.version, record.version):
                candidates.append(UpdateCandidate(
                    plugin_id=record.plugin_id,
                    installed_version=record.version,
                    available_version=entry.version,
                    changelog=entry.changelog,
                    critical=entry.critical,
                ))

        log.info("update_check_complete", checked=len(records), available=len(candidates))
        return candidates

    # ========================================
    # Install
    # ========================================

    async def install(
        self, plugin_id: str, on_progress: Optional[ProgressCallback] = None
    ) -> InstallOutcome:
        """Install a plugin from the catalog.

        Tries the store's direct download first and falls back to the
        entry's source repository.
        """
        reporter = ProgressReporter(on_progress)
        async with self._locked(plugin_id):
            existing = self.registry.get(plugin_id)
            if existing is not None:
                return self._finish(reporter, "install", plugin_id, AlreadyInstalled(existing.version))

            with self._transition(plugin_id, PluginState.INSTALLING):
                return await self._run(
                    reporter, "install", plugin_id,
                    self._install_from_catalog(plugin_id, reporter),
                )

    async def install_from_source(
        self, url: str, on_progress: Optional[ProgressCallback] = None
    ) -> InstallOutcome:
        """Install the latest release of a source repository."""
        reporter = ProgressReporter(on_progress)
        key = repository_key(url)
        if key is None:
            return self._finish(reporter, "install_from_source", url, DownloadFailed(f"Invalid GitHub URL: {url}"))

        async with self._locked(f"repo:{key}"):
            for record in self.registry.get_all():
                if record.source_url and repository_key(record.source_url) == key:
                    return self._finish(
                        reporter, "install_from_source", url, AlreadyInstalled(record.version)
                    )

            return await self._run(
                reporter, "install_from_source", url,
                self._install_from_repository(url, reporter, locked_id=None),
            )

    async def install_from_local_artifact(
        self, path: Path, on_progress: Optional[ProgressCallback] = None
    ) -> InstallOutcome:
        """Install an artifact file that is already on disk."""
        reporter = ProgressReporter(on_progress)
        path = Path(path).expanduser()
        if not path.is_file():
            return self._finish(reporter, "install_from_file", str(path), DownloadFailed(f"File not found: {path}"))

        manifest = await asyncio.to_thread(read_manifest, path)
        lock_key = manifest.plugin_id if manifest else f"file:{path.name}"

        async with self._locked(lock_key):
            if manifest is not None and self.registry.exists(manifest.plugin_id):
                existing = self.registry.get(manifest.plugin_id)
                return self._finish(reporter, "install_from_file", str(path), AlreadyInstalled(existing.version))

            return await self._run(
                reporter, "install_from_file", str(path),
                self._install_local(path, reporter, locked_id=manifest.plugin_id if manifest else None),
            )

    async def _install_from_catalog(
        self, plugin_id: str, reporter: ProgressReporter
    ) -> InstallOutcome:
        reporter.update(0.0, "resolving")
        details = await self.catalog.details(plugin_id)
        if not details.success:
            return DownloadFailed(f"Plugin not found in store: {details.error}")
        entry = details.value

        conflict = self._check_host_version(entry)
        if conflict is not None:
            return conflict

        descriptor: Optional[DownloadDescriptor] = None
        kind = SourceKind.CATALOG
        direct = await self.catalog.resolve_download(plugin_id)
        if direct.success:
            descriptor = direct.value
        else:
            log.info(
                "catalog_download_unavailable",
                plugin_id=plugin_id,
                error=direct.error,
                fallback=bool(entry.source_url),
            )
            if not entry.source_url:
                return DownloadFailed(f"No download available for {plugin_id}: {direct.error}")

            resolved = await self.resolver.resolve(entry.source_url)
            if not resolved.success:
                return DownloadFailed(resolved.error)
            descriptor = resolved.value
            kind = SourceKind.REPOSITORY

        reporter.update(0.05, "resolved")
        name = artifact_file_name(
            plugin_id,
            descriptor.version_id or entry.version,
            self.config.artifact_suffix,
        )
        return await self._fetch_and_load(
            descriptor, name, kind, entry.source_url, reporter, locked_id=plugin_id
        )

    async def _install_from_repository(
        self, url: str, reporter: ProgressReporter, locked_id: Optional[str]
    ) -> InstallOutcome:
        reporter.update(0.0, "resolving")
        resolved = await self.resolver.resolve(url)
        if not resolved.success:
            return DownloadFailed(resolved.error)
        descriptor = resolved.value

        _, repo = parse_repository_url(url)
        reporter.update(0.05, "resolved")
        name = artifact_file_name(
            locked_id or repo, descriptor.version_id, self.config.artifact_suffix
        )
        return await self._fetch_and_load(
            descriptor, name, SourceKind.REPOSITORY, url, reporter, locked_id=locked_id
        )

    async def _install_local(
        self, path: Path, reporter: ProgressReporter, locked_id: Optional[str]
    ) -> InstallOutcome:
        self.plugins_dir.mkdir(parents=True, exist_ok=True)

        if path.resolve().parent == self.plugins_dir.resolve():
            target, copied = path, False
        else:
            target = self.plugins_dir / path.name
            occupant = self._record_for_artifact(target)
            if occupant is not None:
                return AlreadyInstalled(occupant.version)
            reporter.update(0.1, "copying")
            await asyncio.to_thread(shutil.copy2, path, target)
            copied = True

        reporter.update(0.5, "copied")
        return await self._load_artifact(
            target, SourceKind.LOCAL, "", reporter, locked_id=locked_id, owned=copied
        )

    async def _fetch_and_load(
        self,
        descriptor: DownloadDescriptor,
        artifact_name: str,
        kind: SourceKind,
        source_url: str,
        reporter: ProgressReporter,
        locked_id: Optional[str],
    ) -> InstallOutcome:
        occupant = self._record_for_artifact(self.plugins_dir / artifact_name)
        if occupant is not None:
            log.info(
                "plugin_artifact_in_use",
                plugin_id=occupant.plugin_id,
                artifact=artifact_name,
            )
            return AlreadyInstalled(occupant.version)

        fetched = await self.fetcher.fetch(
            descriptor.url,
            self.plugins_dir,
            artifact_name,
            expected_sha256=descriptor.expected_sha256,
            expected_size=descriptor.size,
            on_progress=reporter.span(0.05, 0.85, "downloading"),
        )
        if not fetched.success:
            return DownloadFailed(fetched.error)

        return await self._load_artifact(
            fetched.value, kind, source_url, reporter, locked_id=locked_id, owned=True
        )

    def _record_for_artifact(self, path: Path) -> Optional[PluginRecord]:
        for record in self.registry.get_all():
            if record.artifact_path and Path(record.artifact_path) == path:
                return record
        return None

    async def _load_artifact(
        self,
        path: Path,
        kind: SourceKind,
        source_url: str,
        reporter: ProgressReporter,
        locked_id: Optional[str],
        owned: bool,
    ) -> InstallOutcome:
        """Hand a verified artifact to the host and record it.

        The caller holds the lock for ``locked_id``. Without one, the id is
        read from the artifact's manifest and locked before the host sees
        the artifact. ``owned`` artifacts were written by this install and
        are deleted again if the install doesn't go through.
        """
        if locked_id is None:
            manifest = await asyncio.to_thread(read_manifest, path)
            if manifest is not None:
                async with self._locked(manifest.plugin_id):
                    return await self._load_artifact(
                        path, kind, source_url, reporter, manifest.plugin_id, owned
                    )
        else:
            existing = self.registry.get(locked_id)
            if existing is not None:
                self._discard(path, owned)
                return AlreadyInstalled(existing.version)

        if self.delegate is None:
            self._discard(path, owned)
            return LoadFailed("No plugin loader available")

        reporter.update(0.9, "loading")
        reason = "Host could not load the plugin"
        try:
            loaded = await self.delegate.load(path)
        except Exception as e:
            log.error("delegate_load_failed", path=str(path), error=describe_error(e))
            loaded = None
            reason = describe_error(e)

        if loaded is None:
            self._discard(path, owned)
            self.events.publish(PluginLoadFailed(plugin_id=locked_id or path.stem, reason=reason))
            return LoadFailed(reason)

        if locked_id and loaded.plugin_id != locked_id:
            log.warning(
                "plugin_id_mismatch",
                expected=locked_id,
                loaded=loaded.plugin_id,
                path=str(path),
            )

        record = loaded.copy(
            artifact_path=str(path),
            installed_at=now_millis(),
            source_url=source_url or loaded.source_url,
            source=kind,
            enabled=True,
        )

        if record.plugin_id == locked_id:
            return await self._commit_install(record)
        async with self._locked(record.plugin_id):
            existing = self.registry.get(record.plugin_id)
            if existing is not None:
                # unload() is keyed by id and would remove the installed copy
                log.warning(
                    "plugin_already_installed",
                    plugin_id=record.plugin_id,
                    version=existing.version,
                    path=str(path),
                )
                self._discard(path, owned)
                return AlreadyInstalled(existing.version)
            return await self._commit_install(record)

    @staticmethod
    def _discard(path: Path, owned: bool) -> None:
        if owned:
            path.unlink(missing_ok=True)

    async def _commit_install(self, record: PluginRecord) -> InstallOutcome:
        """Persist a loaded plugin. Caller holds the lock for its id."""
        try:
            await asyncio.to_thread(self.registry.put, record)
        except RegistryError as e:
            log.error("plugin_install_not_recorded", plugin_id=record.plugin_id, error=str(e))
            try:
                await self.delegate.unload(record.plugin_id)
            except Exception as unload_error:
                log.error(
                    "delegate_unload_failed",
                    plugin_id=record.plugin_id,
                    error=describe_error(unload_error),
                )
            Path(record.artifact_path).unlink(missing_ok=True)
            return LoadFailed(f"Could not record install: {e}")

        log.info(
            "plugin_installed",
            plugin_id=record.plugin_id,
            version=record.version,
            source=record.source.value if record.source else None,
            path=record.artifact_path,
        )
        self.events.publish(PluginInstalled(record=record))
        return InstallSuccess(record)

    def _check_host_version(self, entry: CatalogEntry) -> Optional[VersionConflict]:
        if not entry.min_host_version:
            return None

        host = None
        if self.delegate is not None:
            host = self.delegate.host_version()
        host = host or self.config.host_version
        if host and is_newer(entry.min_host_version, host):
            return VersionConflict(required=entry.min_host_version, available=host)
        return None

    async def _run(self, reporter, operation: str, target: str, work) -> InstallOutcome:
        """Await an install coroutine, folding any fault into an outcome."""
        try:
            with operation_context(operation, target):
                outcome = await work
        except asyncio.CancelledError:
            reporter.fail("Cancelled")
            log.warning("plugin_operation_cancelled", operation=operation, target=target)
            raise
        except Exception as e:
            log.exception("plugin_operation_crashed", operation=operation, target=target)
            outcome = DownloadFailed(describe_error(e))
        return self._finish(reporter, operation, target, outcome)

    def _finish(self, reporter, operation: str, target: str, outcome: InstallOutcome) -> InstallOutcome:
        if outcome.success:
            reporter.finish()
        else:
            reporter.fail(outcome.message)
            log.warning(
                "plugin_operation_failed",
                operation=operation,
                target=target,
                outcome=type(outcome).__name__,
                reason=outcome.message,
            )
        return outcome

    # ========================================
    # Uninstall / update
    # ========================================

    async def uninstall(self, plugin_id: str) -> UninstallOutcome:
        """Unload, delete and unregister a plugin."""
        async with self._locked(plugin_id):
            try:
                with operation_context("uninstall", plugin_id):
                    return await self._uninstall_locked(plugin_id)
            except Exception as e:
                log.exception("plugin_uninstall_crashed", plugin_id=plugin_id)
                return UninstallFailed(describe_error(e))

    async def _uninstall_locked(self, plugin_id: str) -> UninstallOutcome:
        record = self.registry.get(plugin_id)
        if record is None:
            return NotFound(plugin_id)

        if record.is_system:
            return CannotUnload("System plugins cannot be uninstalled")
        if not record.can_unload:
            return CannotUnload("Plugin cannot be unloaded at runtime")

        with self._transition(plugin_id, PluginState.UNINSTALLING):
            # Disabled plugins are not loaded, so there is nothing to unload
            if self.delegate is not None and record.enabled:
                try:
                    unloaded = await self.delegate.unload(plugin_id)
                except Exception as e:
                    log.error("delegate_unload_failed", plugin_id=plugin_id, error=describe_error(e))
                    return UninstallFailed(f"Failed to unload plugin from runtime: {describe_error(e)}")
                if not unloaded:
                    return UninstallFailed("Failed to unload plugin from runtime")

            try:
                await asyncio.to_thread(self.registry.remove, plugin_id)
            except RegistryError as e:
                return UninstallFailed(str(e))

            if record.artifact_path:
                try:
                    Path(record.artifact_path).unlink(missing_ok=True)
                except OSError as e:
                    log.warning(
                        "plugin_artifact_delete_failed",
                        plugin_id=plugin_id,
                        path=record.artifact_path,
                        error=str(e),
                    )

        log.info("plugin_uninstalled", plugin_id=plugin_id, version=record.version)
        self.events.publish(PluginUninstalled(plugin_id=plugin_id))
        return Uninstalled(plugin_id)

    async def update(
        self, plugin_id: str, on_progress: Optional[ProgressCallback] = None
    ) -> InstallOutcome:
        """Replace an installed plugin with the latest available version.

        The old version is uninstalled first. If that fails the plugin is
        left exactly as it was. If the uninstall succeeds but the new
        version can't be installed, the plugin stays removed and
        ``UpdateIncomplete`` is returned.
        """
        reporter = ProgressReporter(on_progress)
        async with self._locked(plugin_id):
            record = self.registry.get(plugin_id)
            if record is None:
                return self._finish(reporter, "update", plugin_id, DownloadFailed(f"Plugin not installed: {plugin_id}"))
            if record.source == SourceKind.LOCAL:
                return self._finish(
                    reporter, "update", plugin_id,
                    DownloadFailed("Plugins installed from a local file have no update source"),
                )

            return await self._run(reporter, "update", plugin_id, self._update_locked(record, reporter))

    async def _update_locked(self, record: PluginRecord, reporter: ProgressReporter) -> InstallOutcome:
        plugin_id = record.plugin_id
        previous_version = record.version

        removed = await self._uninstall_locked(plugin_id)
        if not isinstance(removed, Uninstalled):
            return LoadFailed(f"Update aborted: {removed.message}")

        from_repository = record.source == SourceKind.REPOSITORY or (
            record.source is None and bool(record.source_url)
        )

        with self._transition(plugin_id, PluginState.INSTALLING):
            if from_repository:
                outcome = await self._install_from_repository(
                    record.source_url, reporter, locked_id=plugin_id
                )
            else:
                outcome = await self._install_from_catalog(plugin_id, reporter)

        if isinstance(outcome, InstallSuccess):
            log.info(
                "plugin_updated",
                plugin_id=plugin_id,
                previous_version=previous_version,
                version=outcome.record.version,
            )
            self.events.publish(PluginUpdated(record=outcome.record, previous_version=previous_version))
            return outcome

        log.error(
            "plugin_update_incomplete",
            plugin_id=plugin_id,
            previous_version=previous_version,
            reason=outcome.message,
        )
        return UpdateIncomplete(previous_version=previous_version, cause=outcome)

    # ========================================
    # Enable / disable
    # ========================================

    async def enable(self, plugin_id: str) -> bool:
        """Load a disabled plugin. Returns True if it ends up enabled."""
        async with self._locked(plugin_id):
            record = self.registry.get(plugin_id)
            if record is None:
                return False
            if record.enabled:
                return True
            if self.delegate is None:
                log.warning("plugin_enable_unavailable", plugin_id=plugin_id, reason="no loader")
                return False

            return await self._toggle(plugin_id, True, self.delegate.enable)

    async def disable(self, plugin_id: str) -> bool:
        """Unload a plugin without uninstalling it."""
        async with self._locked(plugin_id):
            record = self.registry.get(plugin_id)
            if record is None:
                return False
            if not record.enabled:
                return True
            if not record.removable:
                log.warning("plugin_disable_refused", plugin_id=plugin_id, system=record.is_system)
                return False
            if self.delegate is None:
                log.warning("plugin_disable_unavailable", plugin_id=plugin_id, reason="no loader")
                return False

            return await self._toggle(plugin_id, False, self.delegate.disable)

    async def _toggle(self, plugin_id: str, enabled: bool, action) -> bool:
        try:
            ok = await action(plugin_id)
        except Exception as e:
            log.error("delegate_toggle_failed", plugin_id=plugin_id, enabled=enabled, error=describe_error(e))
            return False
        if not ok:
            log.warning("delegate_toggle_refused", plugin_id=plugin_id, enabled=enabled)
            return False

        try:
            await asyncio.to_thread(self.registry.set_enabled, plugin_id, enabled)
        except RegistryError as e:
            log.error("plugin_toggle_not_recorded", plugin_id=plugin_id, error=str(e))
            return False

        self.events.publish(
            PluginEnabled(plugin_id=plugin_id) if enabled else PluginDisabled(plugin_id=plugin_id)
        )
        return True

    # ========================================
    # Store admin
    # ========================================

    async def publish(
        self,
        artifact_path: Path,
        request: Optional[PublishRequest] = None,
        **overrides,
    ) -> Result[str]:
        """Publish an artifact to the store.

        Without an explicit request, metadata is read from the artifact's
        manifest; keyword overrides replace individual fields.
        """
        token = self.delegate.access_token() if self.delegate else None
        if not token:
            return Result.fail("Sign in to publish plugins")

        artifact_path = Path(artifact_path).expanduser()
        if request is None:
            manifest = await asyncio.to_thread(read_manifest, artifact_path)
            if manifest is None:
                return Result.fail(f"No plugin manifest found in {artifact_path.name}")
            request = manifest.to_publish_request(**overrides)

        return await self.catalog.publish(artifact_path, request, token)

    async def fetch_for_publish(
        self, url: str, on_progress: Optional[ProgressCallback] = None
    ) -> Result[tuple[Path, ArtifactManifest]]:
        """Download a repository's latest release artifact for publishing.

        The artifact is stored under ``<data_dir>/publish`` and returned
        with its manifest, which can prefill a ``PublishRequest``. Nothing
        is installed.
        """
        reporter = ProgressReporter(on_progress)
        reporter.update(0.0, "resolving")
        resolved = await self.resolver.resolve(url)
        if not resolved.success:
            reporter.fail(resolved.error)
            return Result.fail(resolved.error)
        descriptor = resolved.value

        _, repo = parse_repository_url(url)
        fetched = await self.fetcher.fetch(
            descriptor.url,
            self.config.data_dir / "publish",
            artifact_file_name(repo, descriptor.version_id, self.config.artifact_suffix),
            expected_sha256=descriptor.expected_sha256,
            expected_size=descriptor.size,
            on_progress=reporter.span(0.05, 0.9, "downloading"),
        )
        if not fetched.success:
            reporter.fail(fetched.error)
            return Result.fail(fetched.error)

        path = fetched.value
        reporter.update(0.95, "reading manifest")
        manifest = await asyncio.to_thread(read_manifest, path)
        if manifest is None:
            path.unlink(missing_ok=True)
            error = f"No plugin manifest found in {path.name}"
            reporter.fail(error)
            return Result.fail(error)

        reporter.finish()
        log.info(
            "publish_artifact_fetched",
            url=url,
            plugin_id=manifest.plugin_id,
            version=manifest.version,
            path=str(path),
        )
        return Result.ok((path, manifest))

    async def delete_from_store(self, plugin_id: str) -> Result[None]:
        """Remove a plugin from the store (admin only)."""
        token = self.delegate.access_token() if self.delegate else None
        if not token or not self.delegate.is_admin():
            return Result.fail("Store admin rights are required to delete plugins")

        return await self.catalog.delete(plugin_id, token)
