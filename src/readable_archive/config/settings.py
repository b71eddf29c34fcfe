"""Application settings loaded from environment variables."""

import ipaddress
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application configuration loaded from environment variables.

    All settings can be overridden via environment variables prefixed with READABLE_.
    For example, READABLE_WORKERS=4 sets workers=4.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="READABLE_",
        case_sensitive=False,
        extra="ignore",
    )

    # ─── General Settings ────────────────────────────────────────────
    debug: bool = False
    log_level: str = "INFO"
    log_json: bool = False

    # ─── HTTP Client Settings ────────────────────────────────────────
    request_timeout: float = 10.0
    user_agent: str = "Mozilla/5.0 (X11; Linux x86_64; rv:75.0) Gecko/20100101 Firefox/75.0"

    # Networks that can't be reached by the extractor (comma-separated CIDRs)
    denied_ips: str = ""

    # ─── SSL/TLS Settings ───────────────────────────────────────────
    ssl_cert_dir: str | None = None
    ssl_ca_bundle: str | None = None
    ssl_verify: bool = True

    # ─── Extraction Settings ─────────────────────────────────────────
    workers: int = 2
    # Custom site-config folder, searched before the standard one
    site_config_path: str | None = None
    standard_site_config_path: str | None = None

    picture_size: int = 800
    photo_size: int = 1280
    thumbnail_size: int = 380
    icon_size: int = 48

    # ─── Archiver Settings ───────────────────────────────────────────
    archive_max_concurrent_download: int = 5
    archive_request_timeout: float = 20.0
    archive_image_size: int = 1280

    # ─── Image Settings ──────────────────────────────────────────────
    image_max_pixels: int = 30_000_000
    image_quality: int = 80

    # ─── Storage Settings ────────────────────────────────────────────
    data_directory: str = "data"

    def get_denied_networks(self) -> list[ipaddress.IPv4Network | ipaddress.IPv6Network]:
        """Get denied networks as a list (parsed from comma-separated string)."""
        return [
            ipaddress.ip_network(n.strip(), strict=False)
            for n in self.denied_ips.split(",")
            if n.strip()
        ]

    def get_ssl_context(self) -> bool | str:
        """
        Get SSL verification configuration for httpx.

        Returns:
            - False if ssl_verify is disabled
            - Path to CA bundle/cert dir if configured
            - True for default SSL verification

        Priority: ssl_verify=False > ssl_ca_bundle > ssl_cert_dir > True
        """
        if not self.ssl_verify:
            return False
        if self.ssl_ca_bundle:
            return self.ssl_ca_bundle
        if self.ssl_cert_dir:
            return self.ssl_cert_dir
        return True

    def get_config_folders(self) -> list[tuple[str, str]]:
        """Return (path, name) pairs of site-config folders, custom first."""
        folders = []
        if self.site_config_path:
            folders.append((self.site_config_path, "custom"))
        if self.standard_site_config_path:
            folders.append((self.standard_site_config_path, "standard"))
        return folders

    def storage_path(self) -> Path:
        """Directory where bookmark archives are written."""
        return Path(self.data_directory) / "bookmarks"


# Global settings instance
settings = Settings()
