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
Configuration for the coreason-oidc package.
"""

from typing import Any, Literal

from pydantic import Field, SecretStr, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ProviderSettings(BaseSettings):
    """
    Settings for a single upstream identity provider.

    Attributes:
        id (str): Identifier of this provider instance (e.g. "google", "corp-sso").
        provider (str): Provider kind used to select the implementation ("generic", "github").
        client_id (str): The OAuth2 client ID registered at the provider.
        client_secret (SecretStr): The OAuth2 client secret.
        issuer_url (str | None): The OIDC issuer. Discovery is done against it.
        auth_url (str | None): Explicit authorization endpoint. Overrides discovery.
        token_url (str | None): Explicit token endpoint. Overrides discovery.
        userinfo_url (str | None): Explicit userinfo endpoint. Overrides discovery.
        redirect_uri (str | None): The callback URL registered at the provider.
        scope (list[str]): Scopes to request.
        requested_claims (dict | None): OIDC "claims" request parameter.
        pii_salt (SecretStr): Salt for anonymizing subjects in logs/traces.
    """

    model_config = SettingsConfigDict(
        env_prefix="COREASON_OIDC_",
        case_sensitive=False,
    )

    unsafe_local_dev: bool = False

    id: str
    provider: str = "generic"
    client_id: str
    client_secret: SecretStr
    issuer_url: str | None = None
    auth_url: str | None = None
    token_url: str | None = None
    userinfo_url: str | None = None
    redirect_uri: str | None = None
    scope: list[str] = Field(default_factory=list)
    requested_claims: dict[str, Any] | None = None
    token_endpoint_auth_method: Literal["client_secret_basic", "client_secret_post"] = "client_secret_basic"
    http_timeout: float = Field(default=10.0, description="Timeout in seconds for all IdP network operations.")
    allowed_algorithms: list[str] = Field(default_factory=lambda: ["RS256"])
    clock_skew_leeway: int = 0
    pii_salt: SecretStr = SecretStr("coreason-unsafe-default-salt")

    @field_validator("issuer_url", "auth_url", "token_url", "userinfo_url", mode="after")
    @classmethod
    def validate_https(cls, v: str | None, info: ValidationInfo) -> str | None:
        """
        Ensures that provider endpoints use HTTPS, unless strictly opted out for local dev.
        """
        if v and v.startswith("http://") and not info.data.get("unsafe_local_dev", False):
            raise ValueError("HTTPS is required for production. Set 'unsafe_local_dev=True' only for local testing.")
        return v

    @field_validator("issuer_url", mode="after")
    @classmethod
    def strip_issuer(cls, v: str | None) -> str | None:
        return v.rstrip("/") if v else v

    @field_validator("provider")
    @classmethod
    def normalize_provider(cls, v: str) -> str:
        return v.strip().lower()

    @field_validator("allowed_algorithms")
    @classmethod
    def reject_none_algorithm(cls, v: list[str]) -> list[str]:
        if not v:
            raise ValueError("At least one signing algorithm must be allowed.")
        if any(alg.lower() == "none" for alg in v):
            raise ValueError("The 'none' algorithm is not allowed.")
        return v


class CipherSettings(BaseSettings):
    """
    Settings for the at-rest cipher.

    Attributes:
        algorithm (str): "fernet" (default) or "noop" (plaintext, local development only).
        secrets (list[SecretStr]): Fernet keys. The first key encrypts, all keys decrypt.
    """

    model_config = SettingsConfigDict(
        env_prefix="COREASON_OIDC_CIPHER_",
        case_sensitive=False,
    )

    algorithm: Literal["fernet", "noop"] = "fernet"
    secrets: list[SecretStr] = Field(default_factory=list)
