"""Plugin marketplace for Brokkr.

Talks to the remote plugin store and to source repositories, downloads and
verifies artifacts, and keeps the installed registry.

Install paths:
- Store: direct download with SHA-256 verification
- Repository: latest GitHub release asset
- Local: an artifact file already on disk
"""

from brokkr.marketplace.models import (
    CatalogEntry,
    DownloadDescriptor,
    PluginRecord,
    PluginState,
    SourceKind,
    UpdateCandidate,
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
from brokkr.marketplace.index import InstalledRegistry
from brokkr.marketplace.catalog import CatalogClient, PublishRequest
from brokkr.marketplace.source import SourceResolver
from brokkr.marketplace.fetcher import ArtifactFetcher, InstallProgress
from brokkr.marketplace.versions import compare_versions, is_newer

__all__ = [
    # Models
    "CatalogEntry",
    "DownloadDescriptor",
    "PluginRecord",
    "PluginState",
    "SourceKind",
    "UpdateCandidate",
    # Results
    "Result",
    "InstallOutcome",
    "InstallSuccess",
    "AlreadyInstalled",
    "DownloadFailed",
    "LoadFailed",
    "VersionConflict",
    "UpdateIncomplete",
    "UninstallOutcome",
    "Uninstalled",
    "NotFound",
    "CannotUnload",
    "UninstallFailed",
    # Components
    "InstalledRegistry",
    "CatalogClient",
    "PublishRequest",
    "SourceResolver",
    "ArtifactFetcher",
    "InstallProgress",
    # Versions
    "compare_versions",
    "is_newer",
]
