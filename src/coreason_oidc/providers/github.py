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
GitHub OAuth2 provider. GitHub issues no id_token; claims come from the REST API.
"""

from typing import Any

import httpx
from pydantic import ValidationError

from coreason_oidc.config import ProviderSettings
from coreason_oidc.exceptions import ClaimsError, ConfigurationError, CoreasonOIDCError
from coreason_oidc.models import Claims, OAuth2ClientConfig, RawToken
from coreason_oidc.transport import safe_json_fetch
from coreason_oidc.utils.logger import logger

GITHUB_AUTH_URL = "https://github.com/login/oauth/authorize"
GITHUB_TOKEN_URL = "https://github.com/login/oauth/access_token"
GITHUB_API_URL = "https://api.github.com"
GITHUB_ISSUER = "https://github.com"


class GitHubProvider:
    """
    Sign in with GitHub.

    The primary email address is only resolved when the ``user:email`` (or ``user``)
    scope was granted. GitHub reports the granted scopes comma-separated in the token
    response; when it omits them, the requested scopes are assumed.
    """

    def __init__(self, settings: ProviderSettings, client: httpx.AsyncClient) -> None:
        self._settings = settings
        self.client = client

    @property
    def config(self) -> ProviderSettings:
        return self._settings

    async def oauth2(self) -> OAuth2ClientConfig:
        settings = self._settings
        try:
            return OAuth2ClientConfig(
                client_id=settings.client_id,
                client_secret=settings.client_secret,
                authorization_endpoint=settings.auth_url or GITHUB_AUTH_URL,
                token_endpoint=settings.token_url or GITHUB_TOKEN_URL,
                redirect_uri=settings.redirect_uri,
                scopes=list(settings.scope),
                token_endpoint_auth_method=settings.token_endpoint_auth_method,
            )
        except ValidationError as e:
            raise ConfigurationError(f"Invalid OAuth2 configuration for provider '{settings.id}': {e}") from e

    async def _get(self, path: str, access_token: str) -> Any:
        url = f"{GITHUB_API_URL}{path}"
        try:
            return await safe_json_fetch(
                self.client,
                url,
                headers={
                    "Authorization": f"Bearer {access_token}",
                    "Accept": "application/vnd.github+json",
                },
            )
        except (httpx.HTTPError, CoreasonOIDCError) as e:
            logger.error(f"GitHub API request to {path} failed: {e}")
            raise ClaimsError(f"Unable to fetch {path} from GitHub: {e}") from e

    async def _primary_email(self, access_token: str) -> tuple[str | None, bool]:
        emails = await self._get("/user/emails", access_token)
        if not isinstance(emails, list):
            raise ClaimsError("Invalid response from GitHub /user/emails")

        for entry in emails:
            if isinstance(entry, dict) and entry.get("primary"):
                return entry.get("email"), bool(entry.get("verified"))
        return None, False

    def _granted_scopes(self, token: RawToken) -> set[str]:
        granted = token.get_extra("scope")
        if not isinstance(granted, str):
            return set(self._settings.scope)
        return set(granted.replace(",", " ").split())

    async def claims(self, token: RawToken) -> Claims:
        user = await self._get("/user", token.access_token)
        if not isinstance(user, dict):
            raise ClaimsError("Invalid response from GitHub /user")

        raw: dict[str, Any] = {
            "iss": GITHUB_ISSUER,
            "sub": user.get("id"),
            "name": user.get("name"),
            "nickname": user.get("login"),
            "preferred_username": user.get("login"),
            "picture": user.get("avatar_url"),
            "profile": user.get("html_url"),
            "website": user.get("blog") or None,
            "email": user.get("email"),
        }

        if {"user", "user:email"} & self._granted_scopes(token):
            email, verified = await self._primary_email(token.access_token)
            if email:
                raw["email"] = email
                raw["email_verified"] = verified

        try:
            return Claims.model_validate({**raw, "raw_claims": user})
        except ValidationError as e:
            raise ClaimsError(f"Invalid claims from GitHub: {e}") from e
