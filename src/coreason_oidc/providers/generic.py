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
Generic OpenID Connect provider.
"""

from typing import Any

import httpx
from pydantic import ValidationError

from coreason_oidc.config import ProviderSettings
from coreason_oidc.discovery import OIDCDiscovery
from coreason_oidc.exceptions import ClaimsError, ConfigurationError, CoreasonOIDCError, DiscoveryError
from coreason_oidc.id_token import IDTokenVerifier
from coreason_oidc.models import Claims, OAuth2ClientConfig, RawToken
from coreason_oidc.transport import safe_json_fetch
from coreason_oidc.utils.logger import logger


class GenericProvider:
    """
    Any standards compliant OpenID Connect provider.

    Endpoints come from the settings when given explicitly, otherwise from discovery
    against ``issuer_url``. Claims come from the verified id_token, or from the userinfo
    endpoint when the token response carries no id_token.
    """

    def __init__(self, settings: ProviderSettings, client: httpx.AsyncClient) -> None:
        """
        Initialize the GenericProvider.

        Args:
            settings: The provider settings.
            client: The async HTTP client used for discovery and userinfo requests.
        """
        self._settings = settings
        self.client = client
        self.discovery: OIDCDiscovery | None = None
        self.verifier: IDTokenVerifier | None = None

        if settings.issuer_url:
            self.discovery = OIDCDiscovery(settings.issuer_url, client)
            self.verifier = IDTokenVerifier(
                discovery=self.discovery,
                client_id=settings.client_id,
                pii_salt=settings.pii_salt,
                allowed_algorithms=settings.allowed_algorithms,
                leeway=settings.clock_skew_leeway,
            )

    @property
    def config(self) -> ProviderSettings:
        return self._settings

    def _scopes(self) -> list[str]:
        scopes = list(self._settings.scope)
        if "openid" not in scopes:
            scopes.insert(0, "openid")
        return scopes

    async def oauth2(self) -> OAuth2ClientConfig:
        settings = self._settings
        auth_url = settings.auth_url
        token_url = settings.token_url

        if not (auth_url and token_url):
            if self.discovery is None:
                raise ConfigurationError(
                    f"Provider '{settings.id}' requires either 'issuer_url' or both 'auth_url' and 'token_url'."
                )
            metadata = await self.discovery.get_config()
            auth_url = auth_url or metadata.authorization_endpoint
            token_url = token_url or metadata.token_endpoint

        try:
            return OAuth2ClientConfig(
                client_id=settings.client_id,
                client_secret=settings.client_secret,
                authorization_endpoint=auth_url,
                token_endpoint=token_url,
                redirect_uri=settings.redirect_uri,
                scopes=self._scopes(),
                token_endpoint_auth_method=settings.token_endpoint_auth_method,
            )
        except ValidationError as e:
            raise ConfigurationError(f"Invalid OAuth2 configuration for provider '{settings.id}': {e}") from e

    async def _userinfo_url(self) -> str | None:
        if self._settings.userinfo_url:
            return self._settings.userinfo_url
        if self.discovery is None:
            return None
        try:
            metadata = await self.discovery.get_config()
        except DiscoveryError as e:
            raise ClaimsError(f"Unable to discover the userinfo endpoint: {e}") from e
        return metadata.userinfo_endpoint

    async def _fetch_userinfo(self, url: str, access_token: str) -> dict[str, Any]:
        try:
            data = await safe_json_fetch(
                self.client,
                url,
                headers={"Authorization": f"Bearer {access_token}", "Accept": "application/json"},
            )
        except (httpx.HTTPError, CoreasonOIDCError) as e:
            logger.error(f"Userinfo request to {url} failed: {e}")
            raise ClaimsError(f"Unable to fetch userinfo: {e}") from e

        if not isinstance(data, dict):
            raise ClaimsError("Invalid userinfo response: not a JSON object")
        return data

    async def claims(self, token: RawToken) -> Claims:
        id_token = token.get_extra("id_token")

        if isinstance(id_token, str) and id_token:
            if self.verifier is None:
                raise ClaimsError(
                    f"Provider '{self._settings.id}' returned an id_token but has no 'issuer_url' to verify it."
                )
            raw = await self.verifier.verify(id_token)
        else:
            userinfo_url = await self._userinfo_url()
            if not userinfo_url:
                raise ClaimsError(
                    f"Provider '{self._settings.id}' returned no id_token and has no userinfo endpoint."
                )
            raw = await self._fetch_userinfo(userinfo_url, token.access_token)

        try:
            return Claims.from_raw(raw)
        except ValidationError as e:
            raise ClaimsError(f"Invalid claims from provider '{self._settings.id}': {e}") from e
