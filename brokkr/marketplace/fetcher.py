"""Artifact download with integrity verification.

Bytes are streamed into ``<name>.part`` and only renamed to the final name
once the transfer is complete and, when a checksum was supplied, verified.
The partial file is removed on every exit path, including cancellation.
"""

import asyncio
import hashlib
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional
import aiofiles
import httpx
import structlog

from brokkr.config import BrokkrConfig
from brokkr.core.errors import ArtifactDownloadError, ChecksumMismatchError, describe_error
from brokkr.marketplace.results import Result

log = structlog.get_logger()

CHUNK_SIZE = 64 * 1024

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def artifact_file_name(plugin_id: str, version: Optional[str], suffix: str) -> str:
    """Deterministic artifact file name: ``<id>-<version><suffix>``."""
    base = _UNSAFE_CHARS.sub("_", plugin_id).strip("._") or "plugin"
    if version:
        version = _UNSAFE_CHARS.sub("_", version.lstrip("vV"))
        base = f"{base}-{version}"
    return f"{base}{suffix}"


def sha256_file(path: Path) -> str:
    """Hex SHA-256 of a file, read in chunks."""
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


@dataclass
class InstallProgress:
    """A progress update for one install operation.

    Attributes:
        fraction: Overall completion between 0.0 and 1.0
        stage: Current stage (resolving, downloading, verifying, loading, ...)
        done: True for the terminal update
        error: Failure message on a failed terminal update
    """
    fraction: float
    stage: str
    done: bool = False
    error: Optional[str] = None


class ProgressReporter:
    """Delivers monotonic progress for a single operation.

    Fractions never go backwards, and once ``finish`` or ``fail`` has been
    called nothing else is delivered, so the terminal update is always last.
    """

    def __init__(self, callback: Optional[Callable[[InstallProgress], None]] = None):
        self._callback = callback
        self._fraction = 0.0
        self._finished = False

    @property
    def fraction(self) -> float:
        return self._fraction

    @property
    def finished(self) -> bool:
        return self._finished

    def _emit(self, update: InstallProgress) -> None:
        if self._callback is None:
            return
        try:
            self._callback(update)
        except Exception as e:
            log.warning("progress_callback_failed", error=str(e))

    def update(self, fraction: float, stage: str) -> None:
        if self._finished:
            return
        self._fraction = max(self._fraction, min(max(fraction, 0.0), 1.0))
        self._emit(InstallProgress(fraction=self._fraction, stage=stage))

    def span(self, start: float, end: float, stage: str) -> Callable[[float], None]:
        """Callback mapping a 0..1 sub-step onto ``start..end``."""
        def report(fraction: float) -> None:
            self.update(start + (end - start) * fraction, stage)
        return report

    def finish(self, stage: str = "done") -> None:
        if self._finished:
            return
        self._fraction = 1.0
        self._finished = True
        self._emit(InstallProgress(fraction=1.0, stage=stage, done=True))

    def fail(self, error: str) -> None:
        if self._finished:
            return
        self._finished = True
        self._emit(InstallProgress(fraction=self._fraction, stage="failed", done=True, error=error))


class ArtifactFetcher:
    """Streams artifacts to disk and verifies them.

    Example:
        fetcher = ArtifactFetcher(config)
        result = await fetcher.fetch(
            descriptor.url,
            plugins_dir,
            artifact_file_name("terminal", "1.2.0", ".jar"),
            expected_sha256=descriptor.expected_sha256,
        )
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
            self.config.download_read_timeout,
            connect=self.config.download_connect_timeout,
        )

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def fetch(
        self,
        url: str,
        dest_dir: Path,
        artifact_name: str,
        expected_sha256: Optional[str] = None,
        expected_size: Optional[int] = None,
        on_progress: Optional[Callable[[float], None]] = None,
    ) -> Result[Path]:
        """Download ``url`` to ``dest_dir/artifact_name``.

        Args:
            url: Artifact URL (redirects are followed)
            dest_dir: Directory for the artifact
            artifact_name: Final file name
            expected_sha256: Hex digest to verify against (case-insensitive)
            expected_size: Byte count to verify against
            on_progress: Receives the received fraction (0..1) when the size is known

        Returns:
            Result with the final path on success
        """
        dest_dir = Path(dest_dir)
        final_path = dest_dir / artifact_name
        part_path = dest_dir / f"{artifact_name}.part"

        log.info("artifact_download_started", url=url, dest=str(final_path))

        try:
            dest_dir.mkdir(parents=True, exist_ok=True)

            async with self._client.stream("GET", url, timeout=self._timeout) as response:
                if not response.is_success:
                    raise ArtifactDownloadError(
                        f"Download failed: HTTP {response.status_code}",
                        status_code=response.status_code,
                    )

                total = int(response.headers.get("content-length") or 0) or expected_size or 0
                received = 0

                async with aiofiles.open(part_path, "wb") as f:
                    async for chunk in response.aiter_bytes(CHUNK_SIZE):
                        await f.write(chunk)
                        received += len(chunk)
                        if on_progress and total:
                            on_progress(min(received / total, 1.0))

            if expected_size is not None and received != expected_size:
                raise ArtifactDownloadError(
                    f"Incomplete download: expected {expected_size} bytes, got {received}"
                )

            if expected_sha256:
                actual = await asyncio.to_thread(sha256_file, part_path)
                if actual.lower() != expected_sha256.strip().lower():
                    raise ChecksumMismatchError(expected_sha256, actual)

            os.replace(part_path, final_path)

        except ChecksumMismatchError as e:
            log.error(
                "artifact_checksum_mismatch",
                url=url,
                expected=e.expected,
                actual=e.actual,
            )
            return Result.fail(str(e))
        except ArtifactDownloadError as e:
            log.warning("artifact_download_failed", url=url, error=str(e))
            return Result.fail(str(e), status_code=e.status_code)
        except (httpx.HTTPError, OSError) as e:
            log.warning("artifact_download_failed", url=url, error=describe_error(e))
            return Result.fail(f"Download failed: {describe_error(e)}")
        finally:
            part_path.unlink(missing_ok=True)

        if on_progress:
            on_progress(1.0)
        log.info("artifact_downloaded", path=str(final_path), bytes=received)
        return Result.ok(final_path)
