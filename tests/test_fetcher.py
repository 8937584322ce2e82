"""Tests for artifact download and verification."""

import asyncio
import hashlib
import httpx
import pytest

from brokkr.marketplace.fetcher import (
    ArtifactFetcher,
    ProgressReporter,
    artifact_file_name,
    sha256_file,
)

PAYLOAD = b"plugin-bytes" * 20000


@pytest.fixture
def fetcher(config, http_client, store):
    store.files["/terminal.jar"] = PAYLOAD
    return ArtifactFetcher(config, http_client)


URL = "https://files.test/terminal.jar"


class TestFetch:
    """Tests for ArtifactFetcher.fetch."""

    @pytest.mark.asyncio
    async def test_download_with_checksum(self, fetcher, temp_dir):
        digest = hashlib.sha256(PAYLOAD).hexdigest()

        result = await fetcher.fetch(URL, temp_dir, "terminal-1.0.jar", expected_sha256=digest.upper())

        assert result.success
        assert result.value == temp_dir / "terminal-1.0.jar"
        assert result.value.read_bytes() == PAYLOAD
        assert not (temp_dir / "terminal-1.0.jar.part").exists()

    @pytest.mark.asyncio
    async def test_checksum_mismatch_leaves_nothing(self, fetcher, temp_dir):
        result = await fetcher.fetch(URL, temp_dir, "terminal-1.0.jar", expected_sha256="0" * 64)

        assert not result.success
        assert result.error.startswith("Checksum mismatch: expected " + "0" * 64)
        assert list(temp_dir.iterdir()) == []

    @pytest.mark.asyncio
    async def test_size_mismatch(self, fetcher, temp_dir):
        result = await fetcher.fetch(URL, temp_dir, "t.jar", expected_size=10)

        assert not result.success
        assert "Incomplete download" in result.error
        assert list(temp_dir.iterdir()) == []

    @pytest.mark.asyncio
    async def test_http_error(self, fetcher, temp_dir):
        result = await fetcher.fetch("https://files.test/missing.jar", temp_dir, "t.jar")

        assert not result.success
        assert result.status_code == 404
        assert result.error == "Download failed: HTTP 404"
        assert list(temp_dir.iterdir()) == []

    @pytest.mark.asyncio
    async def test_transport_error(self, config, temp_dir):
        def handler(request):
            raise httpx.ReadTimeout("read timed out", request=request)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            result = await ArtifactFetcher(config, client).fetch(URL, temp_dir, "t.jar")

        assert not result.success
        assert "timed out" in result.error

    @pytest.mark.asyncio
    async def test_creates_destination(self, fetcher, temp_dir):
        dest = temp_dir / "nested" / "plugins"

        result = await fetcher.fetch(URL, dest, "t.jar")

        assert result.success
        assert (dest / "t.jar").exists()

    @pytest.mark.asyncio
    async def test_progress_is_monotonic(self, fetcher, temp_dir):
        seen = []

        await fetcher.fetch(URL, temp_dir, "t.jar", on_progress=seen.append)

        assert seen
        assert seen == sorted(seen)
        assert seen[-1] == 1.0

    @pytest.mark.asyncio
    async def test_cancellation_removes_partial_file(self, config, temp_dir):
        first_chunk = asyncio.Event()
        never = asyncio.Event()

        async def body():
            yield b"x" * 65536
            await never.wait()
            yield b"y"

        def handler(request):
            return httpx.Response(200, content=body())

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            fetcher = ArtifactFetcher(config, client)
            task = asyncio.create_task(fetcher.fetch(
                URL, temp_dir, "t.jar",
                expected_size=2 * 65536,
                on_progress=lambda fraction: first_chunk.set(),
            ))
            await asyncio.wait_for(first_chunk.wait(), timeout=5)
            assert (temp_dir / "t.jar.part").exists()

            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        assert list(temp_dir.iterdir()) == []


class TestProgressReporter:
    """Tests for ProgressReporter ordering guarantees."""

    def test_updates_never_go_backwards(self):
        seen = []
        reporter = ProgressReporter(seen.append)

        reporter.update(0.5, "downloading")
        reporter.update(0.2, "downloading")
        reporter.update(1.5, "loading")

        assert [u.fraction for u in seen] == [0.5, 0.5, 1.0]

    def test_terminal_update_is_last(self):
        seen = []
        reporter = ProgressReporter(seen.append)

        reporter.update(0.3, "downloading")
        reporter.fail("boom")
        reporter.update(0.9, "loading")
        reporter.finish()

        assert len(seen) == 2
        assert seen[-1].done is True
        assert seen[-1].error == "boom"
        assert seen[-1].fraction == 0.3

    def test_span_maps_sub_range(self):
        seen = []
        reporter = ProgressReporter(seen.append)

        report = reporter.span(0.2, 0.6, "downloading")
        report(0.5)

        assert seen[0].fraction == pytest.approx(0.4)
        assert seen[0].stage == "downloading"

    def test_finish(self):
        seen = []
        reporter = ProgressReporter(seen.append)

        reporter.finish()

        assert seen[0].fraction == 1.0
        assert seen[0].done and seen[0].error is None
        assert reporter.finished

    def test_callback_errors_are_contained(self):
        def broken(update):
            raise RuntimeError("ui bug")

        reporter = ProgressReporter(broken)
        reporter.update(0.5, "downloading")
        reporter.finish()

        assert reporter.finished

    def test_no_callback(self):
        reporter = ProgressReporter()
        reporter.update(0.5, "x")
        assert reporter.fraction == 0.5


def test_artifact_file_name():
    assert artifact_file_name("terminal", "v1.2.0", ".jar") == "terminal-1.2.0.jar"
    assert artifact_file_name("acme/terminal", None, ".jar") == "acme_terminal.jar"
    assert artifact_file_name("../..", "1", ".jar") == "plugin-1.jar"


def test_sha256_file(temp_dir):
    path = temp_dir / "f"
    path.write_bytes(b"abc")

    assert sha256_file(path) == hashlib.sha256(b"abc").hexdigest()
