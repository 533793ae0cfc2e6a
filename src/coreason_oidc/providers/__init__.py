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
Identity provider implementations, selected by provider kind.
"""

from collections.abc import Callable

import httpx

from coreason_oidc.config import ProviderSettings
from coreason_oidc.exceptions import ConfigurationError

from .base import OAuth2Provider
from .generic import GenericProvider
from .github import GitHubProvider

SUPPORTED_PROVIDERS: dict[str, Callable[[ProviderSettings, httpx.AsyncClient], OAuth2Provider]] = {
    "generic": GenericProvider,
    "github": GitHubProvider,
}


def new_provider(settings: ProviderSettings, client: httpx.AsyncClient) -> OAuth2Provider:
    """
    Creates the provider implementation for ``settings.provider``.

    Raises:
        ConfigurationError: If the provider kind is not supported.
    """
    factory = SUPPORTED_PROVIDERS.get(settings.provider)
    if factory is None:
        raise ConfigurationError(
            f"Provider '{settings.id}' has unsupported kind '{settings.provider}'. "
            f"Supported: {', '.join(sorted(SUPPORTED_PROVIDERS))}"
        )
    return factory(settings, client)


__all__ = [
    "SUPPORTED_PROVIDERS",
    "GenericProvider",
    "GitHubProvider",
    "OAuth2Provider",
    "new_provider",
]
