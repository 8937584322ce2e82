"""Read the plugin manifest embedded in an artifact.

Artifacts are zip-based archives carrying a JSON manifest. The manifest is
used to pre-fill publish requests and to report what a local file contains
before it is handed to the host.
"""

import json
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
import structlog

from brokkr.marketplace.catalog import PublishRequest

log = structlog.get_logger()

MANIFEST_LOCATIONS = (
    "META-INF/boss-plugin/plugin.json",
    "META-INF/plugin.json",
    "plugin.json",
)


@dataclass
class ArtifactManifest:
    """Metadata declared by an artifact.

    Attributes:
        plugin_id: Unique plugin id
        display_name: Human readable name
        version: Artifact version
        description: Brief description
        author: Author name
        url: Homepage or repository URL
        kind: Plugin kind (panel, service, ...)
        api_version: Plugin API version
        min_host_version: Minimum host version required
    """
    plugin_id: str
    display_name: str
    version: str
    description: str = ""
    author: str = ""
    url: str = ""
    kind: str = "panel"
    api_version: str = ""
    min_host_version: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> "ArtifactManifest":
        plugin_id = data.get("pluginId") or data.get("plugin_id") or data.get("id")
        if not plugin_id:
            raise KeyError("pluginId")
        return cls(
            plugin_id=plugin_id,
            display_name=data.get("displayName") or data.get("display_name") or plugin_id,
            version=str(data.get("version", "")),
            description=data.get("description", ""),
            author=data.get("author", ""),
            url=data.get("url") or data.get("homepage", ""),
            kind=data.get("type") or data.get("kind", "panel"),
            api_version=str(data.get("apiVersion") or data.get("api_version", "")),
            min_host_version=str(
                data.get("minBossVersion")
                or data.get("min_host_version")
                or data.get("min_boss_version", "")
            ),
        )

    def to_publish_request(self, **overrides) -> PublishRequest:
        fields = {
            "plugin_id": self.plugin_id,
            "display_name": self.display_name,
            "version": self.version,
            "homepage_url": self.url,
            "author_name": self.author,
            "description": self.description or None,
            "plugin_type": self.kind,
            "api_version": self.api_version,
            "min_host_version": self.min_host_version,
        }
        fields.update(overrides)
        return PublishRequest(**fields)


def read_manifest(artifact_path: Path) -> Optional[ArtifactManifest]:
    """Extract the manifest from an artifact file.

    Args:
        artifact_path: Path to the artifact archive

    Returns:
        ArtifactManifest, or None if the file has no readable manifest
    """
    try:
        with zipfile.ZipFile(artifact_path, "r") as archive:
            names = set(archive.namelist())
            for location in MANIFEST_LOCATIONS:
                if location in names:
                    data = json.loads(archive.read(location).decode("utf-8"))
                    return ArtifactManifest.from_dict(data)
    except (OSError, zipfile.BadZipFile, json.JSONDecodeError, UnicodeDecodeError, KeyError, AttributeError) as e:
        log.warning("artifact_manifest_unreadable", path=str(artifact_path), error=str(e))
        return None

    log.debug("artifact_manifest_missing", path=str(artifact_path))
    return None
