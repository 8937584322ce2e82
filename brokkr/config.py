"""Configuration for Brokkr with validation."""

from pathlib import Path
from typing import Optional
from pydantic import BaseModel, Field, field_validator, ConfigDict
import structlog
import toml

log = structlog.get_logger()


class BrokkrConfig(BaseModel):
    """Main configuration for Brokkr with validation.

    Endpoints and timeouts are injected through this object rather than
    baked into the modules that use them.
    """

    model_config = ConfigDict(validate_assignment=True)

    # Paths
    data_dir: Path = Field(default_factory=lambda: Path.home() / ".brokkr")
    plugins_dir: Optional[Path] = None  # Computed from data_dir if None

    # Remote endpoints
    catalog_url: str = "https://api.risaboss.com/functions/v1/plugin-store"
    github_api_url: str = "https://api.github.com"

    # Catalog queries
    page_size: int = Field(gt=0, le=200, default=50)
    sort_order: str = "downloads"

    # Artifacts
    artifact_suffix: str = ".jar"

    # Timeouts (seconds)
    connect_timeout: float = Field(gt=0, default=10.0)
    request_timeout: float = Field(gt=0, default=10.0)
    download_connect_timeout: float = Field(gt=0, default=30.0)
    download_read_timeout: float = Field(gt=0, default=60.0)

    # Retries for idempotent catalog calls
    retry_attempts: int = Field(ge=1, le=10, default=3)
    retry_base_delay: float = Field(ge=0, default=0.5)

    # Event bus
    event_buffer_size: int = Field(gt=0, default=64)

    # Host version used for min_host_version checks when the delegate has none
    host_version: Optional[str] = None

    # Logging
    log_level: str = Field(default="INFO", pattern="^(DEBUG|INFO|WARNING|ERROR)$")
    log_file: Optional[Path] = None

    @field_validator("catalog_url", "github_api_url")
    @classmethod
    def strip_trailing_slash(cls, v):
        if not v or not v.strip():
            raise ValueError("Endpoint URL cannot be empty")
        return v.strip().rstrip("/")

    @field_validator("artifact_suffix")
    @classmethod
    def suffix_has_dot(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("artifact_suffix cannot be empty")
        return v if v.startswith(".") else f".{v}"

    def model_post_init(self, __context):
        """Set computed values after initialization."""
        self.data_dir = Path(self.data_dir).expanduser()

        if self.plugins_dir is None:
            self.plugins_dir = self.data_dir / "plugins"
        else:
            self.plugins_dir = Path(self.plugins_dir).expanduser()

    @classmethod
    def load(cls, path: Optional[str] = None) -> "BrokkrConfig":
        """Load configuration from TOML file.

        Search order if path not provided:
        1. ./brokkr.toml (project-specific)
        2. ~/.brokkr/config.toml (user default)

        Args:
            path: Optional explicit config file path

        Returns:
            BrokkrConfig instance
        """
        if path is None:
            candidates = [
                Path("brokkr.toml"),
                Path("~/.brokkr/config.toml").expanduser(),
            ]
            for candidate in candidates:
                if candidate.exists():
                    path = str(candidate)
                    log.info("config_found", path=path)
                    break

        if path and Path(path).exists():
            try:
                data = toml.load(path)
                log.info("config_loaded", path=path)
                return cls(**data)
            except Exception as e:
                log.error("config_load_failed", path=path, error=str(e))
                return cls()

        log.info("config_using_defaults")
        return cls()

    def save(self, path: str):
        """Save configuration to TOML file.

        Args:
            path: File path to save to
        """
        Path(path).parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            data = self.model_dump(mode="json", exclude_none=True)
            toml.dump(data, f)
        log.info("config_saved", path=path)


def validate_config(config: BrokkrConfig) -> list[str]:
    """Validate configuration and return warnings.

    Args:
        config: Config to validate

    Returns:
        List of warning messages
    """
    warnings = []

    if not config.catalog_url.startswith("https://"):
        warnings.append(f"Catalog URL is not HTTPS: {config.catalog_url}")

    if config.download_read_timeout < config.request_timeout:
        warnings.append(
            f"Download read timeout ({config.download_read_timeout}s) is shorter "
            f"than the catalog request timeout ({config.request_timeout}s)"
        )

    try:
        config.plugins_dir.mkdir(parents=True, exist_ok=True)
        test_file = config.plugins_dir / ".write_test"
        test_file.touch()
        test_file.unlink()
    except Exception as e:
        warnings.append(f"Plugins directory not writable: {e}")

    return warnings
