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
Custom exceptions for the coreason-oidc package.

Underlying causes (transport errors, JOSE errors, cipher failures) are chained
with ``raise ... from err`` and remain available on ``__cause__``.
"""


class CoreasonOIDCError(Exception):
    """Base exception for all coreason-oidc errors."""


class ConfigurationError(CoreasonOIDCError):
    """
    Raised when a provider cannot produce a valid OAuth2 client configuration
    (missing settings, unknown provider kind, unusable cipher keys, ...).
    Not retryable; meant for the operator.
    """


class DiscoveryError(ConfigurationError):
    """Raised when the OIDC discovery document or JWKS cannot be fetched or is invalid."""


class ProviderDeniedError(CoreasonOIDCError):
    """
    Raised when the provider redirected back with an ``error`` instead of a code.
    The message is safe to show to the end user.
    """

    def __init__(self, error: str, error_description: str = "") -> None:
        self.error = error
        self.error_description = error_description
        super().__init__(
            f'Unable to complete OpenID Connect flow because the OpenID Provider returned error "{error}": '
            f"{error_description}"
        )


class ExchangeError(CoreasonOIDCError):
    """
    Raised when the token endpoint rejects the authorization code, cannot be reached,
    or returns a malformed response.
    """

    def __init__(self, message: str, error: str | None = None, error_description: str | None = None) -> None:
        self.error = error
        self.error_description = error_description
        super().__init__(message)


class ClaimsError(CoreasonOIDCError):
    """Raised when identity claims cannot be resolved from the issued token."""


class CipherError(CoreasonOIDCError):
    """Raised when a secret cannot be encrypted or decrypted."""


class OversizedResponseError(CoreasonOIDCError):
    """Raised when an HTTP response is too large."""
