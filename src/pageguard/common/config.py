"""PageGuard configuration via pydantic-settings."""

import warnings
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

_INSECURE_API_KEY = "insecure-admin-key-change-me"


class PageGuardSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="PAGEGUARD_")

    environment: str = "development"
    log_level: str = "INFO"

    # Database
    db_url: str = "sqlite+aiosqlite:///./data/pageguard.db"

    # API
    api_title: str = "PageGuard"
    api_version: str = "0.1.0"
    api_key: str = _INSECURE_API_KEY
    host: str = "0.0.0.0"
    port: int = 8080
    api_prefix: str = ""
    cors_origins: list[str] = ["http://localhost:3000"]
    trust_proxy_headers: bool = True

    # Storage: hex AES-256 key (64 chars, or 128 of which the first 64 are used)
    storage_dir: str = "./storage"
    encryption_master_key: str = ""

    # Rate limiting (per client, per endpoint)
    rate_limit_max: int = 200
    rate_limit_window_ms: int = 60_000

    # Rendering
    render_scale: float = 2.0
    cache_max_entries: int = 20
    cache_ttl_seconds: int = 600

    # Hygiene
    nonce_retention_days: int = 7
    maintenance_interval_seconds: int = 300

    @property
    def master_key(self) -> bytes:
        """Return the 32-byte AES key decoded from encryption_master_key."""
        key = self.encryption_master_key
        if len(key) not in (64, 128):
            raise ValueError(
                "PAGEGUARD_ENCRYPTION_MASTER_KEY must be a 64 or 128 character hex string"
            )
        try:
            return bytes.fromhex(key[:64])
        except ValueError as exc:
            raise ValueError(
                "PAGEGUARD_ENCRYPTION_MASTER_KEY must be hex encoded"
            ) from exc

    def validate_for_production(self) -> None:
        """Raise if insecure defaults are used in non-development environments."""
        problems = []
        if self.api_key == _INSECURE_API_KEY:
            problems.append("PAGEGUARD_API_KEY")
        if not self.encryption_master_key:
            problems.append("PAGEGUARD_ENCRYPTION_MASTER_KEY")

        if self.environment != "development" and problems:
            raise RuntimeError(
                f"Insecure or missing values in '{self.environment}' environment. "
                f"Set these environment variables: {', '.join(problems)}. "
                "Generate a master key with: openssl rand -hex 32"
            )

        if problems:
            warnings.warn(
                f"Using insecure defaults for {', '.join(problems)}; "
                "set them before running in production",
                UserWarning,
                stacklevel=2,
            )


@lru_cache
def get_settings() -> PageGuardSettings:
    settings = PageGuardSettings()
    settings.validate_for_production()
    return settings
