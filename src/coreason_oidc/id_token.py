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
IDTokenVerifier component for validating id_token signatures and claims.
"""

import hashlib
import hmac
from typing import Any, cast

from authlib.jose import JsonWebToken
from authlib.jose.errors import (
    BadSignatureError,
    ExpiredTokenError,
    InvalidClaimError,
    JoseError,
    MissingClaimError,
)
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode
from pydantic import SecretStr

from coreason_oidc.discovery import OIDCDiscovery
from coreason_oidc.exceptions import ClaimsError, DiscoveryError
from coreason_oidc.models_internal import OIDCConfig
from coreason_oidc.utils.logger import logger

tracer = trace.get_tracer(__name__)


def anonymize(value: str, salt: SecretStr) -> str:
    """
    Anonymizes a value using HMAC-SHA256 with the given salt.

    Args:
        value: The value to anonymize.
        salt: The secret salt.

    Returns:
        str: The anonymized hex digest.
    """
    return hmac.new(
        salt.get_secret_value().encode("utf-8"),
        value.encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()


class IDTokenVerifier:
    """
    Verifies OpenID Connect id_tokens against the provider's JWKS.

    Attributes:
        discovery (OIDCDiscovery): Source of the issuer and JWKS.
        client_id (str): The expected audience.
    """

    def __init__(
        self,
        discovery: OIDCDiscovery,
        client_id: str,
        pii_salt: SecretStr,
        allowed_algorithms: list[str],
        leeway: int = 0,
    ) -> None:
        """
        Initialize the IDTokenVerifier.

        Args:
            discovery: The OIDCDiscovery instance to fetch the issuer and JWKS.
            client_id: The OAuth2 client ID; id_tokens must be issued for it.
            pii_salt: Salt for anonymizing the subject in logs. REQUIRED.
            allowed_algorithms: List of allowed JWT signing algorithms. REQUIRED.
            leeway: Acceptable clock skew in seconds. Defaults to 0.
        """
        self.discovery = discovery
        self.client_id = client_id
        self.pii_salt = pii_salt
        self.allowed_algorithms = allowed_algorithms
        self.leeway = leeway
        # Restrict decoding to the allowed algorithms
        self.jwt = JsonWebToken(self.allowed_algorithms)

    def _jwt_for(self, config: OIDCConfig) -> JsonWebToken:
        """
        Narrows the allowed algorithms to those the provider advertises for id_tokens.

        Raises:
            ClaimsError: If none of the allowed algorithms is advertised.
        """
        advertised = config.id_token_signing_alg_values_supported
        if not advertised:
            return self.jwt

        algorithms = [alg for alg in self.allowed_algorithms if alg in advertised]
        if not algorithms:
            raise ClaimsError(
                f"No allowed signing algorithm is supported by the provider (allowed: {self.allowed_algorithms}, "
                f"advertised: {advertised})"
            )
        return JsonWebToken(algorithms)

    def _decode(self, jwt: JsonWebToken, token: str, jwks: dict[str, Any], issuer: str) -> dict[str, Any]:
        claims_options = {
            "iss": {"essential": True, "value": issuer},
            "aud": {"essential": True, "value": self.client_id},
            "sub": {"essential": True},
            "exp": {"essential": True},
        }
        jwt_any = cast("Any", jwt)
        claims = jwt_any.decode(token, jwks, claims_options=claims_options)
        claims.validate(leeway=self.leeway)
        return dict(claims)

    async def verify(self, token: str) -> dict[str, Any]:
        """
        Verifies the id_token signature and standard claims.

        Emits an OpenTelemetry span `verify_id_token`.

        Args:
            token: The raw id_token.

        Returns:
            dict[str, Any]: The verified claims.

        Raises:
            ClaimsError: If the token is expired, not issued for this client, badly signed,
                or the provider metadata cannot be loaded.
        """
        with tracer.start_as_current_span("verify_id_token") as span:
            try:
                config = await self.discovery.get_config()
                jwt = self._jwt_for(config)
                jwks = await self.discovery.get_jwks()

                try:
                    payload = self._decode(jwt, token.strip(), jwks, config.issuer)
                except (ValueError, BadSignatureError):
                    # Unknown kid or bad signature may mean key rotation
                    logger.info("ID token verification failed with cached keys, refreshing JWKS and retrying...")
                    span.add_event("refreshing_jwks")
                    jwks = await self.discovery.get_jwks(force_refresh=True)
                    payload = self._decode(jwt, token.strip(), jwks, config.issuer)

            except ExpiredTokenError as e:
                logger.warning("ID token verification failed: Token expired")
                self._record(span, e)
                raise ClaimsError(f"ID token has expired: {e}") from e
            except InvalidClaimError as e:
                logger.warning(f"ID token verification failed: Invalid claim: {e}")
                self._record(span, e)
                raise ClaimsError(f"Invalid claim in ID token: {e}") from e
            except MissingClaimError as e:
                logger.warning(f"ID token verification failed: Missing claim: {e}")
                self._record(span, e)
                raise ClaimsError(f"Missing claim in ID token: {e}") from e
            except BadSignatureError as e:
                logger.error("ID token verification failed: Bad signature")
                self._record(span, e)
                raise ClaimsError(f"Invalid ID token signature: {e}") from e
            except JoseError as e:
                logger.error(f"ID token verification failed: JOSE error: {e}")
                self._record(span, e)
                raise ClaimsError(f"ID token verification failed: {e}") from e
            except ValueError as e:
                # Authlib raises ValueError for a malformed JWKS or an unknown "kid"
                logger.error(f"ID token verification failed: {e}")
                self._record(span, e)
                raise ClaimsError(f"Invalid ID token signature or key not found: {e}") from e
            except DiscoveryError as e:
                self._record(span, e)
                raise ClaimsError(f"Unable to verify ID token: {e}") from e

            subject_hash = anonymize(str(payload.get("sub", "unknown")), self.pii_salt)
            logger.info(f"ID token verified for subject {subject_hash}")
            span.set_attribute("enduser.id", subject_hash)
            span.set_status(Status(StatusCode.OK))
            return payload

    @staticmethod
    def _record(span: Any, e: Exception) -> None:
        span.record_exception(e)
        span.set_status(Status(StatusCode.ERROR, str(e)))
