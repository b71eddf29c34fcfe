"""Unit tests for settings helpers."""

import ipaddress
from pathlib import Path

from readable_archive.config import Settings


class TestSettings:
    """Tests for Settings."""

    def test_defaults(self):
        """Test the default values."""
        settings = Settings(_env_file=None)
        assert settings.workers == 2
        assert settings.archive_max_concurrent_download == 5
        assert settings.archive_request_timeout == 20.0
        assert settings.image_max_pixels == 30_000_000
        assert settings.get_ssl_context() is True

    def test_env_prefix(self, monkeypatch):
        """Test that settings are read from READABLE_ variables."""
        monkeypatch.setenv("READABLE_WORKERS", "6")
        monkeypatch.setenv("READABLE_DATA_DIRECTORY", "/srv/data")

        settings = Settings(_env_file=None)
        assert settings.workers == 6
        assert settings.storage_path() == Path("/srv/data/bookmarks")

    def test_denied_networks(self):
        settings = Settings(_env_file=None, denied_ips="127.0.0.0/8, ::1/128,,10.1.2.3")
        assert settings.get_denied_networks() == [
            ipaddress.ip_network("127.0.0.0/8"),
            ipaddress.ip_network("::1/128"),
            ipaddress.ip_network("10.1.2.3/32"),
        ]

    def test_no_denied_networks(self):
        assert Settings(_env_file=None, denied_ips="").get_denied_networks() == []

    def test_ssl_context_priority(self):
        """Test the SSL verification priority."""
        assert Settings(_env_file=None, ssl_verify=False, ssl_ca_bundle="/ca.pem").get_ssl_context() is False
        assert (
            Settings(_env_file=None, ssl_ca_bundle="/ca.pem", ssl_cert_dir="/certs").get_ssl_context()
            == "/ca.pem"
        )
        assert Settings(_env_file=None, ssl_cert_dir="/certs").get_ssl_context() == "/certs"

    def test_config_folders(self):
        """Test that the custom folder comes first."""
        settings = Settings(
            _env_file=None,
            site_config_path="/etc/custom",
            standard_site_config_path="/usr/share/standard",
        )
        assert settings.get_config_folders() == [
            ("/etc/custom", "custom"),
            ("/usr/share/standard", "standard"),
        ]

        assert Settings(_env_file=None).get_config_folders() == []
