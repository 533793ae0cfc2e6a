# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_identity

import socket
from collections.abc import Generator
from unittest.mock import MagicMock, patch

import pytest
from pydantic import SecretStr

from coreason_oidc.config import ProviderSettings
from coreason_oidc.exceptions import CipherError
from coreason_oidc.models import Claims, OAuth2ClientConfig, RawToken


@pytest.fixture(autouse=True)
def mock_dns_resolution() -> Generator[MagicMock, None, None]:
    """
    Globally patches socket.getaddrinfo to return a safe public IP by default,
    so SafeHTTPTransport never resolves dummy domains for real.

    Tests that need to verify SSRF logic should patch socket.getaddrinfo again.
    """
    safe_response = [(socket.AF_INET, socket.SOCK_STREAM, 6, "", ("8.8.8.8", 443))]

    with patch("socket.getaddrinfo", return_value=safe_response) as mock:
        yield mock


@pytest.fixture
def settings() -> ProviderSettings:
    return ProviderSettings(
        id="test-idp",
        provider="generic",
        client_id="client-123",
        client_secret=SecretStr("s3cr3t"),
        issuer_url="https://idp.example.com",
        auth_url="https://idp.example.com/authorize",
        token_url="https://idp.example.com/token",
        redirect_uri="https://app.example.com/callback",
        scope=["openid", "email"],
        pii_salt=SecretStr("test-salt"),
    )


class StubProvider:
    """Provider stub counting claim resolutions."""

    def __init__(
        self,
        settings: ProviderSettings,
        subject: str = "user-1",
        claims_error: Exception | None = None,
        oauth2_error: Exception | None = None,
    ) -> None:
        self._settings = settings
        self.subject = subject
        self.claims_error = claims_error
        self.oauth2_error = oauth2_error
        self.claims_calls = 0

    @property
    def config(self) -> ProviderSettings:
        return self._settings

    async def oauth2(self) -> OAuth2ClientConfig:
        if self.oauth2_error is not None:
            raise self.oauth2_error
        return OAuth2ClientConfig(
            client_id=self._settings.client_id,
            client_secret=self._settings.client_secret,
            authorization_endpoint=self._settings.auth_url or "",
            token_endpoint=self._settings.token_url or "",
            redirect_uri=self._settings.redirect_uri,
            scopes=list(self._settings.scope),
            token_endpoint_auth_method=self._settings.token_endpoint_auth_method,
        )

    async def claims(self, token: RawToken) -> Claims:
        self.claims_calls += 1
        if self.claims_error is not None:
            raise self.claims_error
        return Claims.from_raw({"sub": self.subject, "email": "alice@example.com"})


class StubCipher:
    """Reversible cipher stub that can fail on a chosen plaintext."""

    def __init__(self, fail_on: bytes | None = None, error: Exception | None = None) -> None:
        self.fail_on = fail_on
        self.error = error or CipherError("boom")
        self.calls: list[bytes] = []

    async def encrypt(self, plaintext: bytes) -> str:
        self.calls.append(plaintext)
        if self.fail_on is not None and plaintext == self.fail_on:
            raise self.error
        return "enc:" + plaintext.decode("utf-8")

    async def decrypt(self, ciphertext: str) -> bytes:
        return ciphertext.removeprefix("enc:").encode("utf-8")


@pytest.fixture
def stub_provider(settings: ProviderSettings) -> StubProvider:
    return StubProvider(settings)


@pytest.fixture
def stub_cipher() -> StubCipher:
    return StubCipher()

