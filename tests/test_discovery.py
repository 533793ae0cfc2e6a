# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_identity

import time
from typing import Any

import anyio
import httpx
import pytest

from coreason_oidc.discovery import OIDCDiscovery
from coreason_oidc.exceptions import DiscoveryError

ISSUER = "https://idp.example.com"
DISCOVERY_URL = f"{ISSUER}/.well-known/openid-configuration"
JWKS_URL = f"{ISSUER}/jwks"

METADATA = {
    "issuer": ISSUER,
    "authorization_endpoint": f"{ISSUER}/authorize",
    "token_endpoint": f"{ISSUER}/token",
    "userinfo_endpoint": f"{ISSUER}/userinfo",
    "jwks_uri": JWKS_URL,
    "response_types_supported": ["code"],
}


class IdP:
    """Serves discovery metadata and a JWKS, counting requests per URL."""

    def __init__(self, metadata: dict[str, Any] | None = None, jwks: Any = None) -> None:
        self.metadata = metadata or dict(METADATA)
        self.jwks = jwks if jwks is not None else {"keys": [{"kid": "k1"}]}
        self.hits: dict[str, int] = {}
        self.failures: list[Exception | httpx.Response] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.hits[url] = self.hits.get(url, 0) + 1
        if self.failures:
            failure = self.failures.pop(0)
            if isinstance(failure, httpx.Response):
                return failure
            raise failure
        if url == DISCOVERY_URL:
            return httpx.Response(200, json=self.metadata)
        if url == JWKS_URL:
            return httpx.Response(200, json=self.jwks)
        return httpx.Response(404)


@pytest.fixture
def idp() -> IdP:
    return IdP()


@pytest.fixture
def client(idp: IdP) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(idp))


@pytest.fixture
def discovery(client: httpx.AsyncClient) -> OIDCDiscovery:
    return OIDCDiscovery(f"{ISSUER}/", client)


def test_discovery_url_derived_from_issuer(discovery: OIDCDiscovery) -> None:
    assert discovery.issuer_url == ISSUER
    assert discovery.discovery_url == DISCOVERY_URL


@pytest.mark.asyncio
async def test_get_config_and_jwks(discovery: OIDCDiscovery, idp: IdP) -> None:
    config = await discovery.get_config()
    jwks = await discovery.get_jwks()

    assert config.token_endpoint == f"{ISSUER}/token"
    assert config.userinfo_endpoint == f"{ISSUER}/userinfo"
    assert jwks == {"keys": [{"kid": "k1"}]}
    assert idp.hits == {DISCOVERY_URL: 1, JWKS_URL: 1}


@pytest.mark.asyncio
async def test_cache_hit(discovery: OIDCDiscovery, idp: IdP) -> None:
    await discovery.get_jwks()
    await discovery.get_jwks()
    await discovery.get_config()

    assert idp.hits[DISCOVERY_URL] == 1


@pytest.mark.asyncio
async def test_cache_expiry(discovery: OIDCDiscovery, idp: IdP) -> None:
    await discovery.get_jwks()
    discovery._last_update = time.time() - 3601

    idp.jwks = {"keys": [{"kid": "k2"}]}
    jwks = await discovery.get_jwks()

    assert jwks == {"keys": [{"kid": "k2"}]}
    assert idp.hits[DISCOVERY_URL] == 2


@pytest.mark.asyncio
async def test_force_refresh_respects_cooldown(discovery: OIDCDiscovery, idp: IdP) -> None:
    await discovery.get_jwks()

    idp.jwks = {"keys": [{"kid": "k2"}]}
    jwks = await discovery.get_jwks(force_refresh=True)

    assert jwks == {"keys": [{"kid": "k1"}]}
    assert idp.hits[JWKS_URL] == 1


@pytest.mark.asyncio
async def test_force_refresh_after_cooldown(discovery: OIDCDiscovery, idp: IdP) -> None:
    await discovery.get_jwks()
    discovery._last_update = time.time() - 31

    idp.jwks = {"keys": [{"kid": "k2"}]}
    jwks = await discovery.get_jwks(force_refresh=True)

    assert jwks == {"keys": [{"kid": "k2"}]}


@pytest.mark.asyncio
async def test_concurrent_callers_fetch_once(discovery: OIDCDiscovery, idp: IdP) -> None:
    async with anyio.create_task_group() as tg:
        for _ in range(10):
            tg.start_soon(discovery.get_jwks)

    assert idp.hits == {DISCOVERY_URL: 1, JWKS_URL: 1}


@pytest.mark.asyncio
async def test_issuer_mismatch(client: httpx.AsyncClient, idp: IdP) -> None:
    idp.metadata["issuer"] = "https://evil.example.com"
    discovery = OIDCDiscovery(ISSUER, client)

    with pytest.raises(DiscoveryError, match="Issuer mismatch"):
        await discovery.get_config()


@pytest.mark.asyncio
async def test_invalid_metadata(client: httpx.AsyncClient, idp: IdP) -> None:
    del idp.metadata["jwks_uri"]

    with pytest.raises(DiscoveryError, match="Invalid OIDC configuration"):
        await OIDCDiscovery(ISSUER, client).get_config()


@pytest.mark.asyncio
async def test_metadata_not_an_object(client: httpx.AsyncClient, idp: IdP) -> None:
    idp.failures.append(httpx.Response(200, json=["not", "a", "dict"]))

    with pytest.raises(DiscoveryError, match="not a JSON object"):
        await OIDCDiscovery(ISSUER, client).get_config()


@pytest.mark.asyncio
async def test_invalid_jwks(discovery: OIDCDiscovery, idp: IdP) -> None:
    idp.jwks = {"no_keys": True}

    with pytest.raises(DiscoveryError, match="Invalid JWKS"):
        await discovery.get_jwks()


@pytest.mark.asyncio
async def test_transient_failure_is_retried(discovery: OIDCDiscovery, idp: IdP) -> None:
    idp.failures.append(httpx.ConnectError("connection reset"))
    idp.failures.append(httpx.Response(502))

    config = await discovery.get_config()

    assert config.issuer == ISSUER
    assert idp.hits[DISCOVERY_URL] == 3


@pytest.mark.asyncio
async def test_retries_exhausted(client: httpx.AsyncClient, idp: IdP) -> None:
    idp.failures.extend(httpx.ConnectError("down") for _ in range(2))
    discovery = OIDCDiscovery(ISSUER, client, attempts=2)

    with pytest.raises(DiscoveryError, match="Failed to fetch OIDC configuration") as exc_info:
        await discovery.get_config()

    assert isinstance(exc_info.value.__cause__, httpx.ConnectError)
    assert idp.hits[DISCOVERY_URL] == 2


@pytest.mark.asyncio
async def test_oversized_response_is_not_retried(client: httpx.AsyncClient, idp: IdP) -> None:
    idp.failures.append(httpx.Response(200, content=b"x" * 1_000_001))

    with pytest.raises(DiscoveryError, match="too large"):
        await OIDCDiscovery(ISSUER, client).get_config()

    assert idp.hits[DISCOVERY_URL] == 1
