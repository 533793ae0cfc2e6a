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
IssuedToken: the result of a successful code exchange, scoped to one login transaction.
"""

import anyio.lowlevel
from opentelemetry import trace

from coreason_oidc.cipher import Cipher
from coreason_oidc.exceptions import CipherError, ClaimsError
from coreason_oidc.models import Claims, CredentialsConfig, RawToken
from coreason_oidc.providers.base import OAuth2Provider
from coreason_oidc.utils.logger import logger

tracer = trace.get_tracer(__name__)


class IssuedToken:
    """
    Wraps a token response and lazily resolves its claims.

    An instance belongs to a single login transaction and is not shared between tasks,
    so the claims cache needs no lock.

    Attributes:
        provider (OAuth2Provider): The provider that issued the token.
        token (RawToken): The token endpoint response.
    """

    def __init__(self, provider: OAuth2Provider, token: RawToken) -> None:
        self.provider = provider
        self.token = token
        self._claims: Claims | None = None

    async def claims(self) -> Claims:
        """
        Returns the claims of this token, resolving them through the provider on first use.

        A failed resolution is not cached; calling again retries it.

        Raises:
            ClaimsError: If the provider cannot resolve the claims.
        """
        if self._claims is None:
            try:
                claims = await self.provider.claims(self.token)
            except ClaimsError:
                raise
            except Exception as e:
                logger.error(f"Claims resolution for provider '{self.provider.config.id}' failed: {e}")
                raise ClaimsError(f"Unable to resolve claims: {e}") from e

            self._claims = claims

        return self._claims

    @staticmethod
    async def _encrypt(cipher: Cipher, value: str, field: str) -> str:
        try:
            return await cipher.encrypt(value.encode("utf-8"))
        except CipherError:
            raise
        except Exception as e:
            raise CipherError(f"Unable to encrypt the {field}: {e}") from e

    async def credentials_config(self, cipher: Cipher) -> CredentialsConfig:
        """
        Encrypts the token secrets and assembles the credential bundle.

        The refresh token is encrypted even when empty. The id_token is only encrypted when
        the token response carries it as a string; otherwise ``initial_id_token`` is empty.
        Nothing is returned unless every encryption and the claims resolution succeed.

        Emits an OpenTelemetry span `assemble_credentials`.

        Args:
            cipher: The cipher used to encrypt the secrets.

        Returns:
            CredentialsConfig: The encrypted credential bundle.

        Raises:
            CipherError: If any secret cannot be encrypted.
            ClaimsError: If the claims cannot be resolved.
        """
        with tracer.start_as_current_span("assemble_credentials") as span:
            span.set_attribute("oauth2.provider", self.provider.config.id)

            initial_id_token = ""
            id_token = self.token.get_extra("id_token")
            if isinstance(id_token, str):
                initial_id_token = await self._encrypt(cipher, id_token, "id_token")

            initial_access_token = await self._encrypt(cipher, self.token.access_token, "access token")
            initial_refresh_token = await self._encrypt(cipher, self.token.refresh_token, "refresh token")

            claims = await self.claims()
            await anyio.lowlevel.checkpoint()

            span.set_attribute("oauth2.has_id_token", bool(initial_id_token))
            return CredentialsConfig(
                subject=claims.subject,
                initial_access_token=initial_access_token,
                initial_refresh_token=initial_refresh_token,
                initial_id_token=initial_id_token,
            )
