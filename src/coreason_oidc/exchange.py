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
Callback handling: provider error detection and the authorization code exchange.
"""

from collections.abc import Mapping

import httpx
from authlib.common.errors import AuthlibBaseError
from authlib.integrations.httpx_client import AsyncOAuth2Client
from opentelemetry import trace
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from pydantic import ValidationError

from coreason_oidc.authorization import get_client_config
from coreason_oidc.exceptions import CoreasonOIDCError, ExchangeError, ProviderDeniedError
from coreason_oidc.issued_token import IssuedToken
from coreason_oidc.models import RawToken
from coreason_oidc.providers.base import OAuth2Provider
from coreason_oidc.transport import SafeHTTPTransport
from coreason_oidc.utils.logger import logger

tracer = trace.get_tracer(__name__)

CallbackRequest = httpx.Request | httpx.URL | str | Mapping[str, str]


def _query_params(request: CallbackRequest) -> Mapping[str, str]:
    if isinstance(request, httpx.Request):
        return request.url.params
    if isinstance(request, (httpx.URL, str)):
        return httpx.URL(request).params
    return request


def check_oauth2_error(request: CallbackRequest) -> None:
    """
    Checks whether the provider redirected back with an error instead of a code.

    Must be called before :func:`parse_oauth2_token`.

    Args:
        request: The callback request, its URL, or its query parameters.

    Raises:
        ProviderDeniedError: If the ``error`` query parameter is present and non-empty.
    """
    params = _query_params(request)
    error = params.get("error") or ""
    if not error:
        return

    error_description = params.get("error_description") or ""
    logger.warning(f"OpenID Provider returned error '{error}': {error_description}")
    raise ProviderDeniedError(error, error_description)


async def parse_oauth2_token(
    provider: OAuth2Provider,
    request: CallbackRequest,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> IssuedToken:
    """
    Exchanges the callback's authorization code for tokens.

    Performs exactly one request to the token endpoint and never retries; an absent
    ``code`` is passed through and left for the provider to reject.

    Emits an OpenTelemetry span `oauth2_exchange`; the token request itself is traced by
    the httpx instrumentation as its child.

    Args:
        provider: The provider that issued the code.
        request: The callback request, its URL, or its query parameters.
        transport: HTTP transport for the token request. Defaults to `SafeHTTPTransport`.

    Returns:
        IssuedToken: The issued token, with claims not yet resolved.

    Raises:
        ConfigurationError: If the provider cannot produce a client configuration.
        ExchangeError: If the token endpoint rejects the code, cannot be reached,
            or returns a malformed response.
    """
    config = await get_client_config(provider)
    code = _query_params(request).get("code") or ""
    provider_id = provider.config.id

    with tracer.start_as_current_span("oauth2_exchange") as span:
        span.set_attribute("oauth2.provider", provider_id)

        try:
            async with AsyncOAuth2Client(
                client_id=config.client_id,
                client_secret=config.client_secret.get_secret_value(),
                token_endpoint_auth_method=config.token_endpoint_auth_method,
                redirect_uri=config.redirect_uri,
                transport=transport or SafeHTTPTransport(),
                timeout=provider.config.http_timeout,
            ) as oauth_client:
                HTTPXClientInstrumentor().instrument_client(oauth_client)
                response = await oauth_client.fetch_token(config.token_endpoint, code=code)
        except AuthlibBaseError as e:
            logger.warning(f"Token endpoint of provider '{provider_id}' rejected the code: {e.error}")
            raise ExchangeError(
                f"Unable to exchange the authorization code with provider '{provider_id}': "
                f"{e.error}: {e.description or ''}",
                error=e.error,
                error_description=e.description,
            ) from e
        except (httpx.HTTPError, CoreasonOIDCError, ValueError, TypeError) as e:
            logger.error(f"Token exchange with provider '{provider_id}' failed: {e}")
            raise ExchangeError(f"Unable to exchange the authorization code with provider '{provider_id}': {e}") from e

        try:
            token = RawToken.model_validate(dict(response))
        except ValidationError as e:
            raise ExchangeError(f"Malformed token response from provider '{provider_id}': {e}") from e

        logger.info(f"Exchanged authorization code with provider '{provider_id}'")
        return IssuedToken(provider, token)
