"""Shared test fixtures."""

import hashlib
import io
import json
import re
import tempfile
import zipfile
from pathlib import Path
from typing import Optional
import httpx
import pytest

from brokkr.config import BrokkrConfig
from brokkr.marketplace.manifest import read_manifest
from brokkr.marketplace.models import PluginRecord
from brokkr.plugins.delegate import AdminAccess, LoaderDelegate


def make_artifact(plugin_id: str, version: str, **manifest) -> bytes:
    """Build an in-memory artifact archive with a plugin.json manifest."""
    data = {"pluginId": plugin_id, "displayName": plugin_id.title(), "version": version}
    data.update(manifest)
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        archive.writestr("META-INF/boss-plugin/plugin.json", json.dumps(data))
        archive.writestr(f"{plugin_id}/Main.class", b"\xca\xfe\xba\xbe")
    return buffer.getvalue()


class FakeStore:
    """In-process catalog, GitHub API and file host for httpx.MockTransport."""

    CATALOG = "https://store.test/plugin-store"
    GITHUB = "https://api.github.test"

    def __init__(self):
        self.entries: dict[str, dict] = {}
        self.downloads: dict[str, dict] = {}
        self.releases: dict[str, dict] = {}
        self.files: dict[str, bytes] = {}
        self.fail_paths: dict[str, int] = {}
        self.requests: list[httpx.Request] = []

    def add_plugin(
        self,
        plugin_id: str,
        version: str,
        data: Optional[bytes] = None,
        *,
        direct: bool = True,
        sha256: Optional[str] = None,
        source_url: str = "",
        **entry,
    ) -> bytes:
        data = data if data is not None else make_artifact(plugin_id, version)
        self.entries[plugin_id] = {
            "id": f"store-{plugin_id}",
            "plugin_id": plugin_id,
            "display_name": plugin_id.title(),
            "version": version,
            "description": f"The {plugin_id} plugin",
            "github_url": source_url,
            **entry,
        }
        if direct:
            path = f"/{plugin_id}-{version}.jar"
            self.files[path] = data
            self.entries[plugin_id]["download_url"] = f"https://files.test{path}"
            self.downloads[plugin_id] = {
                "url": f"https://files.test{path}",
                "sha256": sha256 or hashlib.sha256(data).hexdigest(),
                "size": len(data),
                "version_id": version,
            }
        return data

    def add_release(self, repo: str, tag: str, data: bytes, asset_name: Optional[str] = None):
        name = asset_name or f"{repo.split('/')[1]}-{tag}.jar"
        path = f"/{repo}/{name}"
        self.files[path] = data
        self.releases[repo.lower()] = {
            "tag_name": tag,
            "assets": [
                {"name": "README.md", "size": 10, "browser_download_url": "https://files.test/readme"},
                {"name": name, "size": len(data), "browser_download_url": f"https://files.test{path}"},
            ],
        }

    def count(self, suffix: str) -> int:
        return sum(1 for r in self.requests if r.url.path.endswith(suffix))

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path in self.fail_paths:
            return httpx.Response(self.fail_paths[path], json={"error": "injected failure"})

        host = request.url.host
        params = request.url.params

        if host == "store.test":
            if path.endswith("/list"):
                query = params.get("q", "")
                items = [e for e in self.entries.values() if query in e["plugin_id"]]
                return httpx.Response(200, json={"plugins": items})
            if path.endswith("/details"):
                entry = self.entries.get(params.get("plugin_id"))
                if entry is None:
                    return httpx.Response(404, json={"error": "Plugin not found"})
                return httpx.Response(200, json=entry)
            if path.endswith("/download"):
                descriptor = self.downloads.get(params.get("plugin_id"))
                if descriptor is None:
                    return httpx.Response(404, json={"error": "No download"})
                return httpx.Response(200, json=descriptor)
            if path.endswith("/publish"):
                return httpx.Response(200, json={"success": True})
            if path.endswith("/delete"):
                return httpx.Response(200, json={"success": True})

        if host == "api.github.test":
            match = re.match(r"/repos/([^/]+)/([^/]+)/releases/latest", path)
            release = self.releases.get(f"{match[1]}/{match[2]}".lower()) if match else None
            if release is None:
                return httpx.Response(404, json={"message": "Not Found"})
            return httpx.Response(200, json=release)

        if host == "files.test" and path in self.files:
            return httpx.Response(200, content=self.files[path])

        return httpx.Response(404)


class FakeDelegate(LoaderDelegate):
    """Host runtime that "loads" artifacts by reading their manifest.

    Disabling unloads a plugin, so it drops out of ``list_loaded``.
    """

    def __init__(self, plugins_dir: Path, host: Optional[str] = "2.0.0"):
        self.dir = Path(plugins_dir)
        self.host = host
        self.loaded: dict[str, PluginRecord] = {}
        self.disabled: dict[str, PluginRecord] = {}
        self.calls: list[tuple[str, str]] = []
        self.fail_load = False
        self.fail_unload = False
        self.fail_toggle = False
        self.system_ids: set[str] = set()
        self.access: Optional[AdminAccess] = None

    async def load(self, artifact_path: Path) -> Optional[PluginRecord]:
        self.calls.append(("load", Path(artifact_path).name))
        if self.fail_load:
            return None
        manifest = read_manifest(artifact_path)
        if manifest is None:
            return None
        record = PluginRecord(
            plugin_id=manifest.plugin_id,
            display_name=manifest.display_name,
            version=manifest.version,
            is_system=manifest.plugin_id in self.system_ids,
        )
        self.loaded[record.plugin_id] = record
        return record

    async def unload(self, plugin_id: str) -> bool:
        self.calls.append(("unload", plugin_id))
        if self.fail_unload:
            return False
        return self.loaded.pop(plugin_id, None) is not None

    async def enable(self, plugin_id: str) -> bool:
        self.calls.append(("enable", plugin_id))
        if self.fail_toggle:
            return False
        if plugin_id in self.disabled:
            self.loaded[plugin_id] = self.disabled.pop(plugin_id)
        return True

    async def disable(self, plugin_id: str) -> bool:
        self.calls.append(("disable", plugin_id))
        if self.fail_toggle:
            return False
        if plugin_id in self.loaded:
            self.disabled[plugin_id] = self.loaded.pop(plugin_id)
        return True

    def list_loaded(self) -> list[PluginRecord]:
        return list(self.loaded.values())

    def plugins_directory(self) -> Path:
        return self.dir

    def host_version(self) -> Optional[str]:
        return self.host

    def admin(self) -> Optional[AdminAccess]:
        return self.access


@pytest.fixture
def temp_dir():
    """Temporary directory for tests."""
    with tempfile.TemporaryDirectory() as d:
        yield Path(d)


@pytest.fixture
def config(temp_dir):
    """Test configuration pointing at the fake store."""
    return BrokkrConfig(
        data_dir=temp_dir,
        catalog_url=FakeStore.CATALOG,
        github_api_url=FakeStore.GITHUB,
        retry_base_delay=0,
    )


@pytest.fixture
def store():
    """Fake remote endpoints."""
    return FakeStore()


@pytest.fixture
async def http_client(store):
    """HTTP client served by the fake store."""
    async with httpx.AsyncClient(
        transport=httpx.MockTransport(store.handle), follow_redirects=True
    ) as client:
        yield client


@pytest.fixture
def event_bus():
    """Test event bus."""
    from brokkr.core.events import EventBus

    return EventBus(buffer_size=16)


@pytest.fixture
def delegate(config):
    """Fake host loader."""
    return FakeDelegate(config.plugins_dir)


@pytest.fixture
async def manager(config, delegate, store, event_bus):
    """Started plugin manager wired to the fake store and host."""
    from brokkr.plugins.manager import PluginManager

    manager = PluginManager(
        config,
        delegate=delegate,
        events=event_bus,
        transport=httpx.MockTransport(store.handle),
    )
    await manager.start()
    yield manager
    await manager.close()


@pytest.fixture
def artifact():
    """Factory building artifact archive bytes."""
    return make_artifact
