"""HTTP client used by the extractor, and destination checks."""

import ipaddress
import socket
from collections.abc import Sequence

import anyio
import httpx
import idna
import structlog

from readable_archive.config import settings
from readable_archive.exceptions import DestinationBlockedError, ValidationError

logger = structlog.get_logger(__name__)

Network = ipaddress.IPv4Network | ipaddress.IPv6Network

DEFAULT_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.8",
    "Cache-Control": "max-age=0",
    "Upgrade-Insecure-Requests": "1",
}


async def resolve_host(hostname: str) -> list[ipaddress.IPv4Address | ipaddress.IPv6Address]:
    """
    Resolve a hostname to its IP addresses.

    Raises:
        ValidationError: When the name is invalid or can't be resolved
    """
    try:
        return [ipaddress.ip_address(hostname)]
    except ValueError:
        pass

    try:
        host = idna.encode(hostname, uts46=True).decode("ascii")
    except idna.IDNAError as e:
        raise ValidationError("hostname", f"invalid hostname {hostname}") from e

    try:
        infos = await anyio.getaddrinfo(host, None, type=socket.SOCK_STREAM)
    except OSError as e:
        raise ValidationError("hostname", f"cannot resolve {host}") from e

    return [ipaddress.ip_address(info[4][0]) for info in infos]


async def check_destination(url: str, networks: Sequence[Network]) -> None:
    """
    Check that a URL does not point into a denied network.

    An empty network list disables the check.

    Raises:
        DestinationBlockedError: When one of the host addresses is denied
        ValidationError: When the host can't be resolved
    """
    if not networks:
        return

    hostname = httpx.URL(url).host
    for ip in await resolve_host(hostname):
        for network in networks:
            if ip.version == network.version and ip in network:
                logger.warning("destination_blocked", url=url, ip=str(ip), rule=str(network))
                raise DestinationBlockedError(url, str(ip), str(network))


def new_client(
    timeout: float | None = None,
    denied_networks: Sequence[Network] | None = None,
    verify: bool | str | None = None,
    user_agent: str | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """
    Create the HTTP client used to fetch documents and assets.

    Every request carries browser-like default headers. When
    ``denied_networks`` is given, every request (redirects included) is
    checked against it before it is sent. Arguments left to None take
    their value from the settings.
    """
    networks = list(denied_networks if denied_networks is not None else settings.get_denied_networks())

    async def _check_request(request: httpx.Request) -> None:
        await check_destination(str(request.url), networks)

    return httpx.AsyncClient(
        headers={"User-Agent": user_agent or settings.user_agent, **DEFAULT_HEADERS},
        timeout=timeout if timeout is not None else settings.request_timeout,
        follow_redirects=True,
        verify=verify if verify is not None else settings.get_ssl_context(),
        event_hooks={"request": [_check_request]} if networks else {},
        transport=transport,
    )

