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
OpenID Connect / OAuth2 authorization code exchange producing encrypted, storable credentials.
"""

__version__ = "0.1.0"
__author__ = "Gowtham A Rao"
__email__ = "gowtham.rao@coreason.ai"

from .authorization import oauth2_code_url
from .cipher import Cipher, FernetCipher, NoopCipher, new_cipher
from .config import CipherSettings, ProviderSettings
from .exceptions import (
    CipherError,
    ClaimsError,
    ConfigurationError,
    CoreasonOIDCError,
    ExchangeError,
    ProviderDeniedError,
)
from .exchange import check_oauth2_error, parse_oauth2_token
from .issued_token import IssuedToken
from .manager import LoginManager
from .models import Claims, CredentialsConfig, OAuth2ClientConfig, RawToken
from .providers import GenericProvider, GitHubProvider, OAuth2Provider, new_provider

__all__ = [
    "Cipher",
    "CipherError",
    "CipherSettings",
    "Claims",
    "ClaimsError",
    "ConfigurationError",
    "CoreasonOIDCError",
    "CredentialsConfig",
    "ExchangeError",
    "FernetCipher",
    "GenericProvider",
    "GitHubProvider",
    "IssuedToken",
    "LoginManager",
    "NoopCipher",
    "OAuth2ClientConfig",
    "OAuth2Provider",
    "ProviderDeniedError",
    "ProviderSettings",
    "RawToken",
    "check_oauth2_error",
    "new_cipher",
    "new_provider",
    "oauth2_code_url",
    "parse_oauth2_token",
]
