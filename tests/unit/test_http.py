"""Unit tests for the HTTP client and destination checks."""

import ipaddress

import httpx
import pytest

from readable_archive.exceptions import DestinationBlockedError, ValidationError
from readable_archive.extract.http import check_destination, new_client, resolve_host

DENIED = [ipaddress.ip_network("127.0.0.0/8"), ipaddress.ip_network("::1/128")]


def _transport() -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"ua": request.headers.get("user-agent", "")})

    return httpx.MockTransport(handler)


class TestCheckDestination:
    """Tests for check_destination."""

    @pytest.mark.asyncio
    async def test_ip_literals(self):
        assert await resolve_host("10.1.2.3") == [ipaddress.ip_address("10.1.2.3")]

        with pytest.raises(DestinationBlockedError) as exc:
            await check_destination("http://127.0.0.1:8080/admin", DENIED)
        assert exc.value.ip == "127.0.0.1"
        assert exc.value.rule == "127.0.0.0/8"

        with pytest.raises(DestinationBlockedError):
            await check_destination("http://[::1]/", DENIED)

        await check_destination("http://10.1.2.3/", DENIED)

    @pytest.mark.asyncio
    async def test_no_networks(self):
        """Test that an empty list disables the check."""
        await check_destination("http://127.0.0.1/", [])

    @pytest.mark.asyncio
    async def test_unresolvable(self, monkeypatch):
        async def _fail(*args, **kwargs):
            raise OSError("no address")

        monkeypatch.setattr("readable_archive.extract.http.anyio.getaddrinfo", _fail)
        with pytest.raises(ValidationError):
            await check_destination("http://unknown.invalid/", DENIED)


class TestNewClient:
    """Tests for new_client."""

    @pytest.mark.asyncio
    async def test_default_headers(self):
        async with new_client(denied_networks=[], transport=_transport()) as client:
            rsp = await client.get("http://127.0.0.1/")

        assert rsp.json()["ua"].startswith("Mozilla/5.0")
        assert client.headers["accept-language"] == "en-US,en;q=0.8"

    @pytest.mark.asyncio
    async def test_user_agent(self):
        async with new_client(denied_networks=[], user_agent="archiver/1.0", transport=_transport()) as client:
            rsp = await client.get("http://127.0.0.1/")

        assert rsp.json()["ua"] == "archiver/1.0"

    @pytest.mark.asyncio
    async def test_denied_request(self):
        """Test that requests into a denied network are never sent."""
        async with new_client(denied_networks=DENIED, transport=_transport()) as client:
            with pytest.raises(DestinationBlockedError):
                await client.get("http://127.0.0.1/")

            rsp = await client.get("http://10.0.0.1/")
            assert rsp.status_code == 200
