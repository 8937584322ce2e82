"""Tests for source repository resolution."""

import pytest

from brokkr.core.errors import SourceResolutionError
from brokkr.marketplace.source import (
    SourceResolver,
    parse_repository_url,
    repository_key,
    select_asset,
)


class TestParseRepositoryUrl:
    """Tests for GitHub URL parsing."""

    @pytest.mark.parametrize("url", [
        "https://github.com/acme/terminal",
        "https://github.com/acme/terminal.git",
        "https://github.com/acme/terminal/releases/tag/v1.0",
        "http://www.github.com/acme/terminal?tab=readme",
        "git@github.com:acme/terminal.git",
    ])
    def test_accepted_forms(self, url):
        assert parse_repository_url(url) == ("acme", "terminal")

    @pytest.mark.parametrize("url", [
        "",
        "https://gitlab.com/acme/terminal",
        "https://github.com/acme",
        "not a url",
    ])
    def test_rejected_forms(self, url):
        with pytest.raises(SourceResolutionError, match="Invalid GitHub URL"):
            parse_repository_url(url)

    def test_repository_key_is_case_insensitive(self):
        assert repository_key("https://github.com/Acme/Terminal") == "acme/terminal"
        assert repository_key("https://example.com") is None


def test_select_asset_picks_first_match():
    assets = [
        {"name": "sources.zip", "browser_download_url": "https://x/sources.zip"},
        {"name": "plugin.JAR", "browser_download_url": "https://x/plugin.JAR"},
        {"name": "other.jar", "browser_download_url": "https://x/other.jar"},
    ]

    assert select_asset(assets, ".jar")["name"] == "plugin.JAR"
    assert select_asset(assets[:1], ".jar") is None
    assert select_asset([{"name": "nolink.jar"}], ".jar") is None


class TestSourceResolver:
    """Tests for resolving the latest release."""

    @pytest.fixture
    def resolver(self, config, http_client):
        return SourceResolver(config, http_client)

    @pytest.mark.asyncio
    async def test_resolves_latest_release(self, resolver, store):
        store.add_release("acme/terminal", "v1.3.0", b"jar")

        result = await resolver.resolve("https://github.com/acme/terminal")

        assert result.success
        descriptor = result.value
        assert descriptor.url == "https://files.test/acme/terminal/terminal-v1.3.0.jar"
        assert descriptor.version_id == "v1.3.0"
        assert descriptor.size == 3
        assert descriptor.expected_sha256 is None

    @pytest.mark.asyncio
    async def test_sends_github_accept_header(self, resolver, store):
        store.add_release("acme/terminal", "v1", b"jar")

        await resolver.resolve("https://github.com/acme/terminal.git")

        sent = store.requests[-1]
        assert sent.url.path == "/repos/acme/terminal/releases/latest"
        assert sent.headers["Accept"] == "application/vnd.github.v3+json"

    @pytest.mark.asyncio
    async def test_no_release(self, resolver):
        result = await resolver.resolve("https://github.com/acme/missing")

        assert not result.success
        assert result.error == "Could not fetch release: HTTP 404"
        assert result.status_code == 404

    @pytest.mark.asyncio
    async def test_no_matching_asset(self, resolver, store):
        store.add_release("acme/terminal", "v1", b"zip", asset_name="terminal.zip")

        result = await resolver.resolve("https://github.com/acme/terminal")

        assert not result.success
        assert result.error == "No .jar asset found in release"

    @pytest.mark.asyncio
    async def test_invalid_url(self, resolver, store):
        result = await resolver.resolve("https://example.com/acme/terminal")

        assert not result.success
        assert "Invalid GitHub URL" in result.error
        assert store.requests == []
