# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_identity

import hashlib
import hmac
import time
from typing import Any
from unittest.mock import AsyncMock, Mock

import pytest
from authlib.jose import JsonWebKey, jwt
from pydantic import SecretStr

from coreason_oidc.discovery import OIDCDiscovery
from coreason_oidc.exceptions import ClaimsError, DiscoveryError
from coreason_oidc.id_token import IDTokenVerifier, anonymize
from coreason_oidc.models_internal import OIDCConfig

ISSUER = "https://idp.example.com"
CLIENT_ID = "client-123"


@pytest.fixture(scope="module")
def key_pair() -> Any:
    return JsonWebKey.generate_key("RSA", 2048, is_private=True)


@pytest.fixture
def jwks(key_pair: Any) -> dict[str, Any]:
    return {"keys": [{**key_pair.as_dict(is_private=False), "kid": "k1"}]}


@pytest.fixture
def discovery(jwks: dict[str, Any]) -> Mock:
    discovery = Mock(spec=OIDCDiscovery)
    discovery.get_config = AsyncMock(
        return_value=OIDCConfig(
            issuer=ISSUER,
            authorization_endpoint=f"{ISSUER}/authorize",
            token_endpoint=f"{ISSUER}/token",
            jwks_uri=f"{ISSUER}/jwks",
        )
    )
    discovery.get_jwks = AsyncMock(return_value=jwks)
    return discovery


@pytest.fixture
def verifier(discovery: Mock) -> IDTokenVerifier:
    return IDTokenVerifier(discovery, CLIENT_ID, SecretStr("salt"), ["RS256"])


def make_token(key: Any, alg: str = "RS256", kid: str = "k1", **overrides: Any) -> str:
    now = int(time.time())
    claims: dict[str, Any] = {
        "iss": ISSUER,
        "aud": CLIENT_ID,
        "sub": "user-1",
        "email": "alice@example.com",
        "iat": now,
        "exp": now + 300,
    }
    claims.update(overrides)
    claims = {k: v for k, v in claims.items() if v is not None}
    token: bytes = jwt.encode({"alg": alg, "kid": kid}, claims, key)
    return token.decode("utf-8")


def test_anonymize() -> None:
    expected = hmac.new(b"salt", b"user-1", hashlib.sha256).hexdigest()

    assert anonymize("user-1", SecretStr("salt")) == expected
    assert anonymize("user-1", SecretStr("other")) != expected


@pytest.mark.asyncio
async def test_verify_success(verifier: IDTokenVerifier, discovery: Mock, key_pair: Any) -> None:
    claims = await verifier.verify(make_token(key_pair))

    assert claims["sub"] == "user-1"
    assert claims["email"] == "alice@example.com"
    discovery.get_jwks.assert_awaited_once_with()


@pytest.mark.asyncio
async def test_verify_audience_list(verifier: IDTokenVerifier, key_pair: Any) -> None:
    claims = await verifier.verify(make_token(key_pair, aud=[CLIENT_ID, "other-client"]))
    assert claims["sub"] == "user-1"


@pytest.mark.asyncio
async def test_verify_expired(verifier: IDTokenVerifier, key_pair: Any) -> None:
    token = make_token(key_pair, exp=int(time.time()) - 60)

    with pytest.raises(ClaimsError, match="ID token has expired"):
        await verifier.verify(token)


@pytest.mark.asyncio
async def test_verify_leeway(discovery: Mock, key_pair: Any) -> None:
    verifier = IDTokenVerifier(discovery, CLIENT_ID, SecretStr("salt"), ["RS256"], leeway=120)

    claims = await verifier.verify(make_token(key_pair, exp=int(time.time()) - 60))

    assert claims["sub"] == "user-1"


@pytest.mark.asyncio
async def test_verify_wrong_audience(verifier: IDTokenVerifier, key_pair: Any) -> None:
    with pytest.raises(ClaimsError, match="Invalid claim"):
        await verifier.verify(make_token(key_pair, aud="someone-else"))


@pytest.mark.asyncio
async def test_verify_wrong_issuer(verifier: IDTokenVerifier, key_pair: Any) -> None:
    with pytest.raises(ClaimsError, match="Invalid claim"):
        await verifier.verify(make_token(key_pair, iss="https://evil.example.com"))


@pytest.mark.asyncio
async def test_verify_missing_subject(verifier: IDTokenVerifier, key_pair: Any) -> None:
    with pytest.raises(ClaimsError, match="Missing claim"):
        await verifier.verify(make_token(key_pair, sub=None))


@pytest.mark.asyncio
async def test_verify_disallowed_algorithm(verifier: IDTokenVerifier, key_pair: Any) -> None:
    with pytest.raises(ClaimsError):
        await verifier.verify(make_token(key_pair, alg="RS512"))


@pytest.mark.asyncio
async def test_verify_bad_signature(verifier: IDTokenVerifier, discovery: Mock) -> None:
    """A token signed by an unknown key fails after one forced JWKS refresh."""
    attacker = JsonWebKey.generate_key("RSA", 2048, is_private=True)

    with pytest.raises(ClaimsError, match="signature"):
        await verifier.verify(make_token(attacker))

    assert discovery.get_jwks.await_count == 2
    discovery.get_jwks.assert_awaited_with(force_refresh=True)


@pytest.mark.asyncio
async def test_verify_refreshes_jwks_on_key_rotation(
    verifier: IDTokenVerifier, discovery: Mock, key_pair: Any, jwks: dict[str, Any]
) -> None:
    stale = JsonWebKey.generate_key("RSA", 2048, is_private=True)
    discovery.get_jwks.side_effect = [{"keys": [{**stale.as_dict(is_private=False), "kid": "old"}]}, jwks]

    claims = await verifier.verify(make_token(key_pair))

    assert claims["sub"] == "user-1"
    assert discovery.get_jwks.await_count == 2


@pytest.mark.asyncio
async def test_verify_malformed_token(verifier: IDTokenVerifier) -> None:
    with pytest.raises(ClaimsError):
        await verifier.verify("not.a.jwt")


@pytest.mark.asyncio
async def test_verify_discovery_failure(verifier: IDTokenVerifier, discovery: Mock, key_pair: Any) -> None:
    discovery.get_config.side_effect = DiscoveryError("IdP down")

    with pytest.raises(ClaimsError, match="IdP down") as exc_info:
        await verifier.verify(make_token(key_pair))

    assert isinstance(exc_info.value.__cause__, DiscoveryError)


def advertise(discovery: Mock, algorithms: list[str]) -> None:
    config = discovery.get_config.return_value
    discovery.get_config.return_value = config.model_copy(update={"id_token_signing_alg_values_supported": algorithms})


@pytest.mark.asyncio
async def test_verify_with_advertised_algorithm(verifier: IDTokenVerifier, discovery: Mock, key_pair: Any) -> None:
    advertise(discovery, ["RS256", "ES256"])

    claims = await verifier.verify(make_token(key_pair))

    assert claims["sub"] == "user-1"


@pytest.mark.asyncio
async def test_verify_rejects_algorithm_not_advertised(discovery: Mock, key_pair: Any) -> None:
    advertise(discovery, ["RS256"])
    verifier = IDTokenVerifier(discovery, CLIENT_ID, SecretStr("salt"), ["RS256", "RS512"])

    with pytest.raises(ClaimsError):
        await verifier.verify(make_token(key_pair, alg="RS512"))


@pytest.mark.asyncio
async def test_verify_no_common_algorithm(verifier: IDTokenVerifier, discovery: Mock, key_pair: Any) -> None:
    advertise(discovery, ["ES256"])

    with pytest.raises(ClaimsError, match="No allowed signing algorithm"):
        await verifier.verify(make_token(key_pair))

    discovery.get_jwks.assert_not_awaited()
