"""Client for the remote plugin catalog (the plugin store).

Read endpoints are public; publish and delete require a bearer token from
an admin session. No method raises: transport faults and non-2xx responses
come back as failed ``Result`` objects.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional
import aiofiles
import httpx
import structlog

from brokkr.config import BrokkrConfig
from brokkr.core.errors import CatalogError, classify_error, describe_error, status_error
from brokkr.core.events import CatalogRefreshed, EventBus
from brokkr.core.retry import RetryConfig, with_retry
from brokkr.marketplace.models import CatalogEntry, DownloadDescriptor
from brokkr.marketplace.results import Result

log = structlog.get_logger()


@dataclass
class PublishRequest:
    """Metadata submitted alongside an artifact when publishing."""
    plugin_id: str
    display_name: str
    version: str
    homepage_url: str = ""
    author_name: str = ""
    description: Optional[str] = None
    changelog: Optional[str] = None
    tags: list[str] = field(default_factory=list)
    icon_url: Optional[str] = None
    plugin_type: str = "panel"
    api_version: str = ""
    min_host_version: str = ""

    def to_form(self) -> dict[str, str]:
        form = {
            "plugin_id": self.plugin_id,
            "display_name": self.display_name,
            "version": self.version,
            "homepage_url": self.homepage_url,
            "author_name": self.author_name,
            "type": self.plugin_type,
            "api_version": self.api_version,
            "min_boss_version": self.min_host_version,
            "tags": ",".join(self.tags),
        }
        if self.description:
            form["description"] = self.description
        if self.changelog:
            form["changelog"] = self.changelog
        if self.icon_url:
            form["icon_url"] = self.icon_url
        return form


def _error_message(response: httpx.Response) -> str:
    """Pull a human-readable message out of an error response."""
    try:
        body = response.json()
    except ValueError:
        body = None

    if isinstance(body, dict):
        for key in ("error", "message", "msg"):
            if body.get(key):
                return str(body[key])

    text = response.text.strip()
    if text:
        return text[:500]
    return f"HTTP {response.status_code}: {response.reason_phrase}"


class CatalogClient:
    """Queries the plugin store.

    Example:
        catalog = CatalogClient(BrokkrConfig())

        result = await catalog.search("terminal")
        if result.success:
            for entry in result.value:
                print(entry.plugin_id, entry.version)

        details = await catalog.details("terminal")
        download = await catalog.resolve_download("terminal")
    """

    def __init__(
        self,
        config: Optional[BrokkrConfig] = None,
        events: Optional[EventBus] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize the catalog client.

        Args:
            config: Endpoints, page size and timeouts
            events: Bus receiving CatalogRefreshed after successful searches
            client: Shared HTTP client (one is created if not provided)
        """
        self.config = config or BrokkrConfig()
        self.events = events
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(follow_redirects=True)
        self._timeout = httpx.Timeout(
            self.config.request_timeout,
            connect=self.config.connect_timeout,
        )
        self._retry = RetryConfig(
            max_attempts=self.config.retry_attempts,
            base_delay=self.config.retry_base_delay,
        )

    @property
    def base_url(self) -> str:
        return self.config.catalog_url

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _get_json(self, endpoint: str, params: dict[str, Any]) -> Any:
        """GET a catalog endpoint, retrying transient failures."""
        url = f"{self.base_url}/{endpoint}"

        @with_retry(self._retry)
        async def _get():
            response = await self._client.get(
                url,
                params=params,
                headers={"Accept": "application/json"},
                timeout=self._timeout,
            )
            if not response.is_success:
                raise status_error(response.status_code, response.reason_phrase)
            return response.json()

        return await _get()

    # ----------------------------------------
    # Read endpoints
    # ----------------------------------------

    async def search(
        self,
        query: Optional[str] = None,
        category: Optional[str] = None,
        page: int = 1,
    ) -> Result[list[CatalogEntry]]:
        """Search the catalog.

        Args:
            query: Free-text query (matches name, id, description)
            category: Category filter
            page: 1-based page number; the page size is fixed by config

        Returns:
            Result with the entries on success
        """
        params: dict[str, Any] = {
            "page": max(1, page),
            "per_page": self.config.page_size,
            "sort": self.config.sort_order,
        }
        if query and query.strip():
            params["q"] = query.strip()
        if category and category.strip():
            params["category"] = category.strip()

        try:
            data = await self._get_json("list", params)
        except Exception as e:
            return self._failure("catalog_search_failed", e, query=query, category=category)

        items = data.get("plugins", []) if isinstance(data, dict) else data
        if not isinstance(items, list):
            return Result.fail("Unexpected catalog response: expected a list of plugins")

        entries = []
        for item in items:
            try:
                entries.append(CatalogEntry.from_dict(item))
            except (AttributeError, TypeError, ValueError) as e:
                log.warning("catalog_entry_invalid", error=str(e))

        log.info("catalog_searched", query=query, category=category, count=len(entries))
        if self.events:
            self.events.publish(CatalogRefreshed(count=len(entries)))
        return Result.ok(entries)

    async def details(self, plugin_id: str) -> Result[CatalogEntry]:
        """Look up a single catalog entry. A missing entry is a failure."""
        try:
            data = await self._get_json("details", {"plugin_id": plugin_id})
        except Exception as e:
            return self._failure("catalog_details_failed", e, plugin_id=plugin_id)

        if not data:
            return Result.fail(f"Plugin not found in store: {plugin_id}", status_code=404)

        try:
            return Result.ok(CatalogEntry.from_dict(data))
        except (AttributeError, TypeError, ValueError) as e:
            return Result.fail(f"Invalid catalog entry for {plugin_id}: {e}")

    async def resolve_download(self, plugin_id: str) -> Result[DownloadDescriptor]:
        """Obtain a fresh signed download link for the latest artifact.

        Signed links expire quickly; call this once per install attempt.
        """
        try:
            data = await self._get_json("download", {"plugin_id": plugin_id})
        except Exception as e:
            return self._failure("catalog_download_resolve_failed", e, plugin_id=plugin_id)

        try:
            descriptor = DownloadDescriptor.from_dict(data or {})
        except (AttributeError, TypeError, ValueError) as e:
            return Result.fail(f"No direct download for {plugin_id}: {e}")

        log.debug(
            "catalog_download_resolved",
            plugin_id=plugin_id,
            version_id=descriptor.version_id,
            has_checksum=descriptor.expected_sha256 is not None,
        )
        return Result.ok(descriptor)

    # ----------------------------------------
    # Admin endpoints
    # ----------------------------------------

    async def publish(
        self,
        artifact_path: Path,
        request: PublishRequest,
        token: str,
    ) -> Result[str]:
        """Upload an artifact and its metadata to the store."""
        artifact_path = Path(artifact_path)
        if not artifact_path.is_file():
            return Result.fail(f"File not found: {artifact_path}")

        try:
            async with aiofiles.open(artifact_path, "rb") as f:
                content = await f.read()
            response = await self._client.post(
                f"{self.base_url}/publish",
                data=request.to_form(),
                files={"file": (artifact_path.name, content, "application/java-archive")},
                headers={"Authorization": f"Bearer {token}"},
                timeout=httpx.Timeout(
                    self.config.download_read_timeout,
                    connect=self.config.download_connect_timeout,
                ),
            )
        except (httpx.HTTPError, OSError) as e:
            return self._failure("catalog_publish_failed", e, plugin_id=request.plugin_id)

        if not response.is_success:
            message = _error_message(response)
            log.warning(
                "catalog_publish_rejected",
                plugin_id=request.plugin_id,
                status=response.status_code,
                error=message,
            )
            return Result.fail(message, status_code=response.status_code)

        log.info("catalog_plugin_published", plugin_id=request.plugin_id, version=request.version)
        return Result.ok(f"Published {request.display_name} v{request.version}")

    async def delete(self, plugin_id: str, token: str) -> Result[None]:
        """Remove a plugin from the store."""
        try:
            response = await self._client.delete(
                f"{self.base_url}/delete",
                params={"plugin_id": plugin_id},
                headers={"Authorization": f"Bearer {token}"},
                timeout=self._timeout,
            )
        except httpx.HTTPError as e:
            return self._failure("catalog_delete_failed", e, plugin_id=plugin_id)

        if not response.is_success:
            message = _error_message(response)
            log.warning(
                "catalog_delete_rejected",
                plugin_id=plugin_id,
                status=response.status_code,
                error=message,
            )
            return Result.fail(message, status_code=response.status_code)

        log.info("catalog_plugin_deleted", plugin_id=plugin_id)
        return Result.ok()

    def _failure(self, event: str, error: Exception, **context) -> Result:
        classified = classify_error(error)
        log.warning(
            event,
            error=describe_error(error),
            error_category=classified.category.value,
            **context,
        )
        status = error.status_code if isinstance(error, CatalogError) else None
        return Result.fail(describe_error(error), status_code=status)
