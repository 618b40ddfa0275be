"""Configuration types with environment variable support.

All settings can be configured via environment variables with the HOSTWARD_ prefix.
Example: HOSTWARD_DNS_TIMEOUT=10 sets the per-lookup DNS timeout to 10 seconds.
"""

from __future__ import annotations

import tomllib
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def load_config_from_file(path: str | Path) -> dict[str, Any]:
    """Load configuration from a YAML or TOML file.

    Args:
        path: Path to the configuration file (.yaml, .yml, or .toml)

    Returns:
        Configuration dictionary

    Raises:
        FileNotFoundError: If the config file doesn't exist
        ValueError: If the config file has encoding errors, invalid syntax, or unsupported format
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    try:
        content = path.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise ValueError(f"Config file encoding error in {path}: {e}") from e

    try:
        if path.suffix in (".yaml", ".yml"):
            return yaml.safe_load(content) or {}
        elif path.suffix == ".toml":
            return tomllib.loads(content)
        else:
            raise ValueError(f"Unsupported config format: {path.suffix}")
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in {path}: {e}") from e
    except tomllib.TOMLDecodeError as e:
        raise ValueError(f"Invalid TOML in {path}: {e}") from e


def flatten_config(config: dict[str, Any], prefix: str = "") -> dict[str, Any]:
    result: dict[str, Any] = {}
    for key, value in config.items():
        full_key = f"{prefix}_{key}" if prefix else key
        if isinstance(value, dict):
            result.update(flatten_config(value, full_key))
        else:
            result[full_key] = value
    return result


def _split_csv(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


class HostingConfig(BaseSettings):
    """Hosting platform (custom-domain API) configuration.

    Environment variables:
    - HOSTWARD_HOSTING_API_URL: Base URL of the hosting API
    - HOSTWARD_HOSTING_ACCESS_TOKEN: Bearer token for the hosting API
    - HOSTWARD_HOSTING_SITE_ID: Site that custom domains are attached to
    - HOSTWARD_HOSTING_IP_POOL: Comma-separated load balancer IPs
    - HOSTWARD_HOSTING_CNAME_TARGET: CNAME target (defaults to <site_id>.netlify.app)
    """

    model_config = SettingsConfigDict(
        env_prefix="HOSTWARD_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    hosting_api_url: str = Field(
        default="https://api.netlify.com/api/v1",
        description="Base URL of the hosting platform API.",
    )
    hosting_access_token: str | None = Field(
        default=None,
        repr=False,
        description="Bearer token for the hosting platform API.",
    )
    hosting_site_id: str | None = Field(
        default=None,
        description="Identifier of the site custom domains are attached to.",
    )
    hosting_ip_pool: str = Field(
        default="75.2.60.5,99.83.190.102",
        description="Comma-separated load balancer IPs root domains must point at.",
    )
    hosting_cname_target: str | None = Field(
        default=None,
        description="CNAME target for www/subdomains. Defaults to <site_id>.netlify.app.",
    )
    http_timeout: float = Field(
        default=10.0,
        gt=0,
        description="Timeout (seconds) for every hosting and registrar HTTP call.",
    )

    def get_ip_pool(self) -> list[str]:
        """Parse hosting_ip_pool string into a list."""
        return _split_csv(self.hosting_ip_pool)

    def get_cname_target(self) -> str | None:
        """CNAME target users should point www/subdomains at."""
        if self.hosting_cname_target:
            return self.hosting_cname_target
        if self.hosting_site_id:
            return f"{self.hosting_site_id}.netlify.app"
        return None

    @property
    def is_configured(self) -> bool:
        return bool(self.hosting_access_token and self.hosting_site_id)


class VerificationConfig(BaseSettings):
    """DNS verification configuration.

    All timeouts are in seconds.
    """

    model_config = SettingsConfigDict(
        env_prefix="HOSTWARD_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    txt_prefix: str = Field(
        default="blo-verification",
        min_length=1,
        description="Prefix of the ownership TXT value (<prefix>=<token>).",
    )
    dns_timeout: float = Field(
        default=5.0,
        gt=0,
        description="Timeout (seconds) for a single DNS lookup.",
    )
    dns_nameservers: str = Field(
        default="",
        description="Comma-separated nameservers. Empty uses the system resolver.",
    )
    max_auto_retries: int = Field(
        default=5,
        ge=0,
        description="Scheduled re-validations allowed before giving up.",
    )

    def get_nameservers(self) -> list[str]:
        """Parse dns_nameservers string into a list."""
        return _split_csv(self.dns_nameservers)


class StorageConfig(BaseSettings):
    """Persistence configuration for domains and validation logs."""

    model_config = SettingsConfigDict(
        env_prefix="HOSTWARD_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    storage_backend: Literal["sqlite", "json"] = Field(
        default="sqlite",
        description="Storage backend: sqlite (default) or json.",
    )
    storage_path: str = Field(
        default="hostward.db",
        description="Path to the SQLite database or JSON file. ':memory:' for SQLite tests.",
    )


class HostwardConfig(BaseSettings):
    """Master configuration combining all settings.

    Use get_config() to get a cached instance.

    Example:
        config = get_config()
        print(config.verification.txt_prefix)
        print(config.hosting.get_ip_pool())
    """

    model_config = SettingsConfigDict(
        env_prefix="HOSTWARD_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @property
    def hosting(self) -> HostingConfig:
        """Get hosting platform configuration."""
        return HostingConfig()

    @property
    def verification(self) -> VerificationConfig:
        """Get DNS verification configuration."""
        return VerificationConfig()

    @property
    def storage(self) -> StorageConfig:
        """Get storage configuration."""
        return StorageConfig()

    def to_display_dict(self) -> dict[str, Any]:
        """Export current configuration as a nested dictionary for display.

        The hosting token is reported as present/absent, never echoed.
        """
        hosting = self.hosting
        verification = self.verification
        storage = self.storage
        return {
            "hosting": {
                "api_url": hosting.hosting_api_url,
                "site_id": hosting.hosting_site_id,
                "access_token": "set" if hosting.hosting_access_token else "missing",
                "ip_pool": hosting.get_ip_pool(),
                "cname_target": hosting.get_cname_target(),
                "http_timeout": hosting.http_timeout,
            },
            "verification": {
                "txt_prefix": verification.txt_prefix,
                "dns_timeout": verification.dns_timeout,
                "dns_nameservers": verification.get_nameservers(),
                "max_auto_retries": verification.max_auto_retries,
            },
            "storage": {
                "backend": storage.storage_backend,
                "path": storage.storage_path,
            },
        }


_config: HostwardConfig | None = None


def get_config() -> HostwardConfig:
    """Get the global configuration instance.

    Returns a cached instance of HostwardConfig that reads from environment variables.
    To reload config (e.g., in tests), call clear_config() first.
    """
    global _config
    if _config is None:
        _config = HostwardConfig()
    return _config


def clear_config() -> None:
    """Clear the cached configuration.

    Call this to force reloading of environment variables on next get_config() call.
    """
    global _config
    _config = None
