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
Provider protocol consumed by the authorization code flow.
"""

from typing import Protocol, runtime_checkable

from coreason_oidc.config import ProviderSettings
from coreason_oidc.models import Claims, OAuth2ClientConfig, RawToken


@runtime_checkable
class OAuth2Provider(Protocol):
    """
    An upstream identity provider.

    Implementations exist per provider kind and are selected by ``new_provider``.
    """

    @property
    def config(self) -> ProviderSettings:
        """The static settings of this provider."""
        ...

    async def oauth2(self) -> OAuth2ClientConfig:
        """
        Resolves the OAuth2 client configuration.

        Raises:
            ConfigurationError: If required settings are missing or cannot be discovered.
        """
        ...

    async def claims(self, token: RawToken) -> Claims:
        """
        Resolves normalized identity claims from a token response.
        May decode an id_token or call a userinfo endpoint.

        Raises:
            ClaimsError: If the claims cannot be resolved.
        """
        ...
