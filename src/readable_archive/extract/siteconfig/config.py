"""Site configuration files.

Site configurations are FiveFilters style rule files, written in JSON or
TOML. Each file holds the rules for one host (``example.net.toml``), for
every host under a domain (``.example.net.toml``) or for every site
(``global.toml``).

Configuration folders are searched in order, so a custom folder placed
before the standard one can add or override rules.
"""

import json
import tomllib
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import urlsplit

import idna
import structlog
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from readable_archive.exceptions import SiteConfigError

logger = structlog.get_logger(__name__)

FILE_FORMATS = ("json", "toml")


class FilterTest(BaseModel):
    """A rule test: the extracted page at ``url`` must contain every ``contains`` entry."""

    model_config = {"extra": "ignore"}

    url: str
    contains: list[str] = Field(default_factory=list)


class SiteConfig(BaseModel):
    """Extraction rules for a site."""

    model_config = {"extra": "ignore"}

    files: list[str] = Field(default_factory=list, exclude=True)

    title_selectors: list[str] = Field(default_factory=list)
    body_selectors: list[str] = Field(default_factory=list)
    date_selectors: list[str] = Field(default_factory=list)
    author_selectors: list[str] = Field(default_factory=list)
    strip_selectors: list[str] = Field(default_factory=list)
    strip_id_or_class: list[str] = Field(default_factory=list)
    strip_image_src: list[str] = Field(default_factory=list)
    native_ad_selectors: list[str] = Field(default_factory=list)
    tidy: bool = False
    prune: bool = False
    autodetect_on_failure: bool = True
    single_page_link_selectors: list[str] = Field(default_factory=list)
    next_page_link_selectors: list[str] = Field(default_factory=list)
    replace_strings: list[tuple[str, str]] = Field(default_factory=list)
    http_headers: dict[str, str] = Field(default_factory=dict)
    tests: list[FilterTest] = Field(default_factory=list)

    def merge(self, other: "SiteConfig") -> None:
        """
        Merge another configuration into this one.

        Lists are appended, flags are replaced and headers are
        overwritten by name.
        """
        self.files.extend(other.files)
        self.title_selectors.extend(other.title_selectors)
        self.body_selectors.extend(other.body_selectors)
        self.date_selectors.extend(other.date_selectors)
        self.author_selectors.extend(other.author_selectors)
        self.strip_selectors.extend(other.strip_selectors)
        self.strip_id_or_class.extend(other.strip_id_or_class)
        self.strip_image_src.extend(other.strip_image_src)
        self.native_ad_selectors.extend(other.native_ad_selectors)
        self.tidy = other.tidy
        self.prune = other.prune
        self.autodetect_on_failure = other.autodetect_on_failure
        self.single_page_link_selectors.extend(other.single_page_link_selectors)
        self.next_page_link_selectors.extend(other.next_page_link_selectors)
        self.replace_strings.extend(other.replace_strings)
        self.tests.extend(other.tests)
        self.http_headers.update(other.http_headers)


def load_config(data: bytes | str, format: str, name: str = "") -> SiteConfig:
    """
    Decode a configuration file.

    Raises:
        SiteConfigError: When the file can't be decoded
    """
    if isinstance(data, bytes):
        data = data.decode("utf-8")

    try:
        if format == "toml":
            raw = tomllib.loads(data)
        elif format == "json":
            raw = json.loads(data)
        else:
            raise SiteConfigError(name, f"unknown format {format}")
        return SiteConfig.model_validate(raw)
    except (tomllib.TOMLDecodeError, json.JSONDecodeError, PydanticValidationError) as e:
        raise SiteConfigError(name, str(e)) from e


@dataclass(frozen=True)
class ConfigFolder:
    """A folder holding site configuration files, and its name."""

    path: Path
    name: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "path", Path(self.path))

    def file_lookup(self, name: str) -> tuple[Path, str] | None:
        """Return the path and format of the file for ``name``, if there is one."""
        for ext in FILE_FORMATS:
            candidate = self.path / f"{name}.{ext}"
            if candidate.is_file():
                return candidate, ext
        return None


@dataclass(frozen=True)
class _LookupResult:
    path: Path
    format: str
    folder: ConfigFolder

    @property
    def label(self) -> str:
        return f"{self.folder.name}/{self.path.name}"


def _find_host_file(name: str, folders: Sequence[ConfigFolder]) -> list[_LookupResult]:
    res = []
    for folder in folders:
        found = folder.file_lookup(name)
        if found:
            res.append(_LookupResult(found[0], found[1], folder))
    return res


def _find_host_wildcard(hostname: str, folders: Sequence[ConfigFolder]) -> list[_LookupResult]:
    # First match per folder, most specific suffix first
    res = []
    parts = hostname.split(".")
    for folder in folders:
        for i in range(len(parts)):
            found = folder.file_lookup("." + ".".join(parts[i:]))
            if found:
                res.append(_LookupResult(found[0], found[1], folder))
                break
    return res


def normalize_hostname(hostname_or_url: str) -> str:
    """Return the lookup name of a host: no ``www.`` prefix, ASCII (IDNA) form."""
    hostname = hostname_or_url
    if "://" in hostname_or_url:
        hostname = urlsplit(hostname_or_url).hostname or ""

    hostname = hostname.lower().removeprefix("www.")
    try:
        return idna.encode(hostname, uts46=True).decode("ascii")
    except idna.IDNAError:
        return hostname


def find_config_files(hostname_or_url: str, folders: Sequence[ConfigFolder]) -> list[_LookupResult]:
    """List the configuration files for a host, in merge order."""
    hostname = normalize_hostname(hostname_or_url)
    files = _find_host_file(hostname, folders) if hostname else []
    if hostname:
        files.extend(_find_host_wildcard(hostname, folders))
    files.extend(_find_host_file("global", folders))
    return files


def resolve_config(hostname_or_url: str, folders: Sequence[ConfigFolder]) -> SiteConfig:
    """
    Find and merge the configuration files for a host.

    The exact host file of every folder comes first, then the first
    matching wildcard file of every folder, then every ``global`` file.
    Merging stops once a merged file disabled ``autodetect_on_failure``.

    Raises:
        SiteConfigError: When a matching file can't be decoded
    """
    res = SiteConfig()

    for found in find_config_files(hostname_or_url, folders):
        if not res.autodetect_on_failure:
            break

        cf = load_config(found.path.read_bytes(), found.format, found.label)
        cf.files = [found.label]
        res.merge(cf)

    logger.debug("site_config_resolved", host=hostname_or_url, files=res.files)
    return res


async def check_rules(
    config: SiteConfig, fetch_text: Callable[[str], Awaitable[str]]
) -> list[str]:
    """
    Run the rule tests of a configuration.

    Args:
        config: Site configuration with tests
        fetch_text: Returns the extracted text (or HTML) of a URL

    Returns:
        A list of failure descriptions, empty when every test passed
    """
    failures = []
    for test in config.tests:
        content = await fetch_text(test.url)
        for expected in test.contains:
            if expected not in content:
                failures.append(f"{test.url}: missing {expected!r}")
    return failures
