"""Tests for configuration loading and validation."""

from pathlib import Path
import pytest
from pydantic import ValidationError

from brokkr.config import BrokkrConfig, validate_config


def test_defaults(temp_dir):
    config = BrokkrConfig(data_dir=temp_dir)

    assert config.plugins_dir == temp_dir / "plugins"
    assert config.artifact_suffix == ".jar"
    assert config.request_timeout == 10.0
    assert config.download_connect_timeout == 30.0
    assert config.download_read_timeout == 60.0


def test_explicit_plugins_dir(temp_dir):
    config = BrokkrConfig(data_dir=temp_dir, plugins_dir=temp_dir / "elsewhere")
    assert config.plugins_dir == temp_dir / "elsewhere"


def test_urls_are_normalized():
    config = BrokkrConfig(catalog_url="https://store.test/api/ ", github_api_url="https://gh.test/")

    assert config.catalog_url == "https://store.test/api"
    assert config.github_api_url == "https://gh.test"


def test_empty_url_rejected():
    with pytest.raises(ValidationError):
        BrokkrConfig(catalog_url="  ")


def test_suffix_gets_leading_dot():
    assert BrokkrConfig(artifact_suffix="zip").artifact_suffix == ".zip"


def test_invalid_values_rejected():
    with pytest.raises(ValidationError):
        BrokkrConfig(retry_attempts=0)
    with pytest.raises(ValidationError):
        BrokkrConfig(page_size=0)
    with pytest.raises(ValidationError):
        BrokkrConfig(log_level="LOUD")


def test_assignment_is_validated():
    config = BrokkrConfig()
    with pytest.raises(ValidationError):
        config.request_timeout = -1


def test_save_and_load(temp_dir):
    path = temp_dir / "config.toml"
    config = BrokkrConfig(
        data_dir=temp_dir,
        catalog_url="https://store.test/plugin-store",
        page_size=20,
        host_version="3.1.0",
    )
    config.save(str(path))

    loaded = BrokkrConfig.load(str(path))

    assert loaded.catalog_url == "https://store.test/plugin-store"
    assert loaded.page_size == 20
    assert loaded.host_version == "3.1.0"
    assert loaded.plugins_dir == temp_dir / "plugins"


def test_load_missing_file_uses_defaults(temp_dir, monkeypatch):
    monkeypatch.chdir(temp_dir)
    monkeypatch.setenv("HOME", str(temp_dir))

    config = BrokkrConfig.load(str(temp_dir / "missing.toml"))

    assert config.page_size == 50


def test_load_invalid_file_uses_defaults(temp_dir):
    path = temp_dir / "bad.toml"
    path.write_text("page_size = -5\n")

    assert BrokkrConfig.load(str(path)).page_size == 50


def test_validate_config_warnings(temp_dir):
    config = BrokkrConfig(
        data_dir=temp_dir,
        catalog_url="http://store.test",
        download_read_timeout=5,
    )

    warnings = validate_config(config)

    assert any("not HTTPS" in w for w in warnings)
    assert any("Download read timeout" in w for w in warnings)


def test_validate_config_clean(temp_dir):
    assert validate_config(BrokkrConfig(data_dir=temp_dir)) == []
    assert Path(temp_dir / "plugins").is_dir()
