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
Authorization request construction, the first leg of the authorization code flow.
"""

from typing import Any

from authlib.oauth2.rfc6749.parameters import prepare_grant_uri

from coreason_oidc.exceptions import ConfigurationError
from coreason_oidc.models import OAuth2ClientConfig
from coreason_oidc.providers.base import OAuth2Provider
from coreason_oidc.utils.logger import logger


async def get_client_config(provider: OAuth2Provider) -> OAuth2ClientConfig:
    """
    Resolves the provider's OAuth2 client configuration.

    Raises:
        ConfigurationError: If the provider cannot produce a client configuration.
    """
    try:
        return await provider.oauth2()
    except ConfigurationError:
        raise
    except Exception as e:
        raise ConfigurationError(f"Unable to load OAuth2 configuration for provider '{provider.config.id}': {e}") from e


async def oauth2_code_url(state: str, provider: OAuth2Provider, **params: Any) -> str:
    """
    Builds the URL the user's browser is redirected to in order to authenticate at the provider.

    Does not contact the provider, except for a discovery lookup when the provider has
    no cached metadata yet.

    Args:
        state: The unique, unguessable CSRF token of this flow.
        provider: The provider to authenticate with.
        **params: Additional authorization parameters (e.g. ``prompt="login"``, ``nonce=...``).
            ``None`` values are omitted.

    Returns:
        str: The authorization URL.

    Raises:
        ValueError: If ``state`` is empty.
        ConfigurationError: If the provider cannot produce a client configuration.
    """
    if not state:
        raise ValueError("A non-empty state is required to start the authorization code flow.")

    config = await get_client_config(provider)

    url: str = prepare_grant_uri(
        config.authorization_endpoint,
        client_id=config.client_id,
        response_type="code",
        redirect_uri=config.redirect_uri,
        scope=config.scopes or None,
        state=state,
        **params,
    )
    logger.debug(f"Built authorization URL for provider '{provider.config.id}'")
    return url
