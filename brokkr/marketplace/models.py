"""Data model for installed plugins and catalog listings.

Records are serialized with snake_case keys, matching the catalog's wire
format and the persisted ``installed.json`` document.
"""

import time
from dataclasses import dataclass, field, replace
from enum import Enum, auto
from typing import Optional


class SourceKind(str, Enum):
    """Where an installed artifact came from."""

    CATALOG = "catalog"        # Store-hosted direct download
    REPOSITORY = "repository"  # Latest release of a source repository
    LOCAL = "local"            # Artifact file supplied by the user


class PluginState(Enum):
    """Lifecycle state of a plugin id."""
    NOT_INSTALLED = auto()
    INSTALLING = auto()
    INSTALLED = auto()
    UNINSTALLING = auto()
    DISABLED = auto()       # Installed but not loaded


def now_millis() -> int:
    return int(time.time() * 1000)


@dataclass
class PluginRecord:
    """An installed plugin.

    Attributes:
        plugin_id: Unique plugin id
        display_name: Human readable name
        version: Installed version string
        description: Brief description
        author: Author name or handle
        source_url: Repository URL the plugin was installed from (if any)
        kind: Plugin kind reported by the host (panel, service, ...)
        api_version: Plugin API version the artifact targets
        min_host_version: Minimum host version required
        is_system: System plugins can never be unloaded or uninstalled
        can_unload: Whether the host can unload the plugin at runtime
        load_priority: Host load ordering (lower loads first)
        enabled: Whether the plugin is currently enabled
        artifact_path: Local path of the artifact file
        installed_at: Install time in epoch milliseconds
        source: Which install path produced the artifact
    """
    plugin_id: str
    display_name: str = ""
    version: str = ""
    description: str = ""
    author: str = ""
    source_url: str = ""
    kind: str = "panel"
    api_version: str = ""
    min_host_version: str = ""
    is_system: bool = False
    can_unload: bool = True
    load_priority: int = 100
    enabled: bool = True
    artifact_path: str = ""
    installed_at: int = 0
    source: Optional[SourceKind] = None

    @property
    def removable(self) -> bool:
        """True if uninstall/disable is allowed for this plugin."""
        return not self.is_system and self.can_unload

    def copy(self, **changes) -> "PluginRecord":
        return replace(self, **changes)

    def to_dict(self) -> dict:
        """Full serialization, used for host and wire exchange."""
        return {
            "plugin_id": self.plugin_id,
            "display_name": self.display_name,
            "version": self.version,
            "description": self.description,
            "author": self.author,
            "source_url": self.source_url,
            "kind": self.kind,
            "api_version": self.api_version,
            "min_host_version": self.min_host_version,
            "is_system": self.is_system,
            "can_unload": self.can_unload,
            "load_priority": self.load_priority,
            "enabled": self.enabled,
            "artifact_path": self.artifact_path,
            "installed_at": self.installed_at,
            "source": self.source.value if self.source else None,
        }

    def to_entry(self) -> dict:
        """Subset persisted in installed.json."""
        return {
            "plugin_id": self.plugin_id,
            "display_name": self.display_name,
            "version": self.version,
            "artifact_path": self.artifact_path,
            "installed_at": self.installed_at,
            "source_url": self.source_url,
            "source": self.source.value if self.source else None,
            "enabled": self.enabled,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PluginRecord":
        """Create from a full dict or a persisted entry."""
        source = data.get("source")
        try:
            source = SourceKind(source) if source else None
        except ValueError:
            source = None

        return cls(
            plugin_id=data["plugin_id"],
            display_name=data.get("display_name") or data["plugin_id"],
            version=data.get("version", ""),
            description=data.get("description", ""),
            author=data.get("author", ""),
            source_url=data.get("source_url") or data.get("github_url", ""),
            kind=data.get("kind") or data.get("type", "panel"),
            api_version=data.get("api_version", ""),
            min_host_version=data.get("min_host_version", ""),
            is_system=bool(data.get("is_system", False)),
            can_unload=bool(data.get("can_unload", True)),
            load_priority=int(data.get("load_priority", 100)),
            enabled=bool(data.get("enabled", True)),
            artifact_path=data.get("artifact_path") or data.get("jar_path", ""),
            installed_at=int(data.get("installed_at", 0)),
            source=source,
        )


@dataclass
class CatalogEntry:
    """A plugin listed in the remote catalog. Never persisted."""
    plugin_id: str
    display_name: str = ""
    version: str = ""
    store_id: str = ""
    description: str = ""
    author: str = ""
    source_url: str = ""
    download_url: str = ""
    kind: str = "panel"
    api_version: str = ""
    min_host_version: str = ""
    verified: bool = False
    download_count: int = 0
    created_at: str = ""
    updated_at: str = ""
    categories: list[str] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    changelog: str = ""
    critical: bool = False

    @property
    def store_hosted(self) -> bool:
        """True if the catalog serves the artifact itself."""
        return bool(self.download_url)

    @classmethod
    def from_dict(cls, data: dict) -> "CatalogEntry":
        """Create from a catalog JSON object."""
        plugin_id = data.get("plugin_id") or data.get("id")
        if not plugin_id:
            raise ValueError("Catalog entry has no plugin_id")

        return cls(
            plugin_id=plugin_id,
            display_name=data.get("display_name") or plugin_id,
            version=data.get("latest_version") or data.get("version", ""),
            store_id=str(data.get("id", "")),
            description=data.get("description") or "",
            author=data.get("author") or "",
            source_url=data.get("github_url") or data.get("source_url") or "",
            download_url=data.get("download_url") or "",
            kind=data.get("type") or data.get("kind") or "panel",
            api_version=data.get("api_version") or "",
            min_host_version=data.get("min_host_version") or data.get("min_boss_version") or "",
            verified=bool(data.get("verified", False)),
            download_count=int(data.get("download_count") or 0),
            created_at=data.get("created_at") or "",
            updated_at=data.get("updated_at") or "",
            categories=list(data.get("categories") or []),
            tags=list(data.get("tags") or []),
            changelog=data.get("changelog") or "",
            critical=bool(data.get("critical", False)),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.store_id,
            "plugin_id": self.plugin_id,
            "display_name": self.display_name,
            "version": self.version,
            "description": self.description,
            "author": self.author,
            "github_url": self.source_url,
            "download_url": self.download_url,
            "type": self.kind,
            "api_version": self.api_version,
            "min_host_version": self.min_host_version,
            "verified": self.verified,
            "download_count": self.download_count,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "categories": self.categories,
            "tags": self.tags,
            "changelog": self.changelog,
            "critical": self.critical,
        }


@dataclass
class DownloadDescriptor:
    """Where to fetch one artifact from. Valid for a single fetch only.

    Attributes:
        url: Short-lived (often signed) download URL
        expected_sha256: Hex digest the bytes must match, if known
        size: Expected size in bytes, if known
        version_id: Version or release tag the artifact belongs to
    """
    url: str
    expected_sha256: Optional[str] = None
    size: Optional[int] = None
    version_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "DownloadDescriptor":
        url = data.get("url") or data.get("download_url")
        if not url:
            raise ValueError("Download descriptor has no url")
        size = data.get("size")
        return cls(
            url=url,
            expected_sha256=data.get("sha256") or None,
            size=int(size) if size is not None else None,
            version_id=data.get("version_id") or data.get("version") or None,
        )


@dataclass
class UpdateCandidate:
    """An installed plugin with a newer catalog version."""
    plugin_id: str
    installed_version: str
    available_version: str
    changelog: str = ""
    critical: bool = False
