"""Site configuration rules."""

from readable_archive.extract.siteconfig.config import (
    ConfigFolder,
    FilterTest,
    SiteConfig,
    check_rules,
    find_config_files,
    load_config,
    normalize_hostname,
    resolve_config,
)

__all__ = [
    "ConfigFolder",
    "FilterTest",
    "SiteConfig",
    "check_rules",
    "find_config_files",
    "load_config",
    "normalize_hostname",
    "resolve_config",
]
