"""Resolve a source repository URL to its latest release artifact.

Not every catalog entry is hosted by the store; some only point at a GitHub
repository. This module finds the distributable asset in that repository's
latest release so it can go through the same fetcher as store downloads.
"""

import re
from typing import Optional
import httpx
import structlog

from brokkr.config import BrokkrConfig
from brokkr.core.errors import SourceResolutionError, describe_error
from brokkr.marketplace.models import DownloadDescriptor
from brokkr.marketplace.results import Result

log = structlog.get_logger()

_REPOSITORY_PATTERN = re.compile(
    r"github\.com[/:](?P<owner>[A-Za-z0-9_.-]+)/(?P<repo>[A-Za-z0-9_.-]+)",
    re.IGNORECASE,
)


def parse_repository_url(url: str) -> tuple[str, str]:
    """Extract (owner, repo) from a GitHub URL.

    Accepts https and ssh forms, extra path segments, query strings and a
    trailing ``.git``.

    Raises:
        SourceResolutionError: If the URL is not a GitHub repository URL
    """
    match = _REPOSITORY_PATTERN.search(url or "")
    if not match:
        raise SourceResolutionError(f"Invalid GitHub URL: {url}")

    owner = match.group("owner")
    repo = match.group("repo")
    if repo.lower().endswith(".git"):
        repo = repo[: -len(".git")]
    if not repo:
        raise SourceResolutionError(f"Invalid GitHub URL: {url}")
    return owner, repo


def repository_key(url: str) -> Optional[str]:
    """Normalized ``owner/repo`` for a URL, or None if it doesn't parse."""
    try:
        owner, repo = parse_repository_url(url)
    except SourceResolutionError:
        return None
    return f"{owner}/{repo}".lower()


def select_asset(assets: list[dict], suffix: str) -> Optional[dict]:
    """First release asset whose file name ends with ``suffix``."""
    suffix = suffix.lower()
    for asset in assets:
        if not isinstance(asset, dict):
            continue
        name = asset.get("name") or asset.get("browser_download_url", "").rsplit("/", 1)[-1]
        if name.lower().endswith(suffix) and asset.get("browser_download_url"):
            return asset
    return None


class SourceResolver:
    """Finds the latest release artifact for a GitHub repository.

    Example:
        resolver = SourceResolver(config)
        result = await resolver.resolve("https://github.com/acme/terminal-plugin")
        if result.success:
            descriptor = result.value
    """

    def __init__(
        self,
        config: Optional[BrokkrConfig] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.config = config or BrokkrConfig()
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(follow_redirects=True)
        self._timeout = httpx.Timeout(
            self.config.request_timeout,
            connect=self.config.connect_timeout,
        )

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def resolve(self, url: str) -> Result[DownloadDescriptor]:
        """Resolve a repository URL to a download descriptor.

        Returns:
            Result with the descriptor; the descriptor carries no checksum
            since releases don't publish one in a standard form
        """
        try:
            owner, repo = parse_repository_url(url)
        except SourceResolutionError as e:
            return Result.fail(str(e))

        release_url = f"{self.config.github_api_url}/repos/{owner}/{repo}/releases/latest"
        try:
            response = await self._client.get(
                release_url,
                headers={"Accept": "application/vnd.github.v3+json"},
                timeout=self._timeout,
            )
        except httpx.HTTPError as e:
            log.warning("source_release_fetch_failed", url=url, error=describe_error(e))
            return Result.fail(f"Could not fetch release: {describe_error(e)}")

        if not response.is_success:
            log.warning(
                "source_release_fetch_failed",
                url=url,
                status=response.status_code,
            )
            return Result.fail(
                f"Could not fetch release: HTTP {response.status_code}",
                status_code=response.status_code,
            )

        try:
            release = response.json()
        except ValueError as e:
            return Result.fail(f"Invalid release metadata: {e}")

        assets = release.get("assets", []) if isinstance(release, dict) else []
        asset = select_asset(assets, self.config.artifact_suffix)
        if asset is None:
            return Result.fail(
                f"No {self.config.artifact_suffix} asset found in release"
            )

        size = asset.get("size")
        descriptor = DownloadDescriptor(
            url=asset["browser_download_url"],
            size=int(size) if size is not None else None,
            version_id=release.get("tag_name") or None,
        )
        log.info(
            "source_release_resolved",
            repository=f"{owner}/{repo}",
            tag=descriptor.version_id,
            asset=asset.get("name"),
        )
        return Result.ok(descriptor)
