# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_identity

"""
LoginManager component wiring one provider and one cipher into the authorization code flow.
"""

import json
from typing import Any

import httpx
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor

from coreason_oidc.authorization import oauth2_code_url
from coreason_oidc.cipher import Cipher
from coreason_oidc.config import ProviderSettings
from coreason_oidc.exchange import CallbackRequest, check_oauth2_error, parse_oauth2_token
from coreason_oidc.issued_token import IssuedToken
from coreason_oidc.models import CredentialsConfig
from coreason_oidc.providers import new_provider
from coreason_oidc.providers.base import OAuth2Provider
from coreason_oidc.transport import SafeHTTPTransport


class LoginManager:
    """
    Async facade over the authorization code flow for a single provider.
    Handles resources via async context manager.
    """

    def __init__(
        self,
        settings: ProviderSettings,
        cipher: Cipher,
        client: httpx.AsyncClient | None = None,
        provider: OAuth2Provider | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize the LoginManager.

        Args:
            settings: The provider settings.
            cipher: The cipher used to encrypt the credential bundle.
            client: External async client (optional). If not provided, a `SafeHTTPTransport` client is created.
            provider: Provider implementation (optional). Defaults to the one selected by `settings.provider`.
            transport: Transport for the token exchange (optional). Defaults to `SafeHTTPTransport`.

        Raises:
            ConfigurationError: If the provider kind is not supported.
        """
        self.settings = settings
        self.cipher = cipher
        self.transport = transport
        self._internal_client = client is None

        if client:
            self._client = client
        else:
            # Use SafeHTTPTransport to prevent SSRF and DNS Rebinding
            self._client = httpx.AsyncClient(transport=SafeHTTPTransport(), timeout=settings.http_timeout)

        # Instrument the client for distributed tracing
        HTTPXClientInstrumentor().instrument_client(self._client)

        self.provider = provider or new_provider(settings, self._client)

    async def __aenter__(self) -> "LoginManager":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if self._internal_client:
            await self._client.aclose()

    async def authorization_url(self, state: str, **params: Any) -> str:
        """
        Builds the authorization URL for this provider.

        The configured `requested_claims` are sent as the OIDC ``claims`` parameter unless
        the caller passes one.

        Raises:
            ConfigurationError: If the provider cannot produce a client configuration.
        """
        if self.settings.requested_claims and "claims" not in params:
            params["claims"] = json.dumps(self.settings.requested_claims, separators=(",", ":"))
        return await oauth2_code_url(state, self.provider, **params)

    async def exchange(self, request: CallbackRequest) -> IssuedToken:
        """
        Checks the callback for a provider error and exchanges its code.

        Raises:
            ProviderDeniedError: If the provider reported an error.
            ConfigurationError: If the provider cannot produce a client configuration.
            ExchangeError: If the code exchange fails.
        """
        check_oauth2_error(request)
        return await parse_oauth2_token(self.provider, request, transport=self.transport)

    async def complete(self, request: CallbackRequest) -> CredentialsConfig:
        """
        Runs the callback leg of the flow and returns the encrypted credential bundle.

        Raises:
            ProviderDeniedError: If the provider reported an error.
            ConfigurationError: If the provider cannot produce a client configuration.
            ExchangeError: If the code exchange fails.
            ClaimsError: If the claims cannot be resolved.
            CipherError: If a secret cannot be encrypted.
        """
        token = await self.exchange(request)
        return await token.credentials_config(self.cipher)
