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
Data models for the coreason-oidc package.
"""

from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator


class OAuth2ClientConfig(BaseModel):
    """
    Resolved OAuth2 client configuration for one provider.

    Attributes:
        client_id (str): The OAuth2 client ID.
        client_secret (SecretStr): The OAuth2 client secret.
        authorization_endpoint (str): Where the browser is redirected to start the flow.
        token_endpoint (str): Where the authorization code is exchanged.
        redirect_uri (str | None): The callback URL registered at the provider.
        scopes (list[str]): The scopes requested in the authorization URL.
        token_endpoint_auth_method (str): How the client authenticates at the token endpoint.
    """

    model_config = ConfigDict(frozen=True)

    client_id: str = Field(..., min_length=1)
    client_secret: SecretStr
    authorization_endpoint: str = Field(..., min_length=1)
    token_endpoint: str = Field(..., min_length=1)
    redirect_uri: str | None = None
    scopes: list[str] = Field(default_factory=list)
    token_endpoint_auth_method: str = "client_secret_basic"


class RawToken(BaseModel):
    """
    The provider's token endpoint response.

    Standard fields are typed; every other member of the response (e.g. ``id_token``)
    is kept verbatim and available through :meth:`get_extra`.
    """

    model_config = ConfigDict(frozen=True, extra="allow")

    access_token: str = Field(..., min_length=1)
    refresh_token: str = ""
    token_type: str = "Bearer"
    expires_in: int | None = None
    expires_at: float | None = None

    @field_validator("refresh_token", mode="before")
    @classmethod
    def none_as_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    def get_extra(self, key: str) -> Any:
        """Returns an extension field of the token response, or None if absent."""
        return (self.model_extra or {}).get(key)

    def __repr__(self) -> str:
        return (
            f"RawToken(access_token='<REDACTED>', "
            f"refresh_token='<REDACTED>', "
            f"token_type={self.token_type!r}, "
            f"expires_in={self.expires_in!r})"
        )

    def __str__(self) -> str:
        return self.__repr__()


class Claims(BaseModel):
    """
    Normalized identity claims for a login.

    Field names follow OpenID Connect Core 1.0, section 5.1. ``raw_claims`` keeps the
    unmodified source (id_token payload or userinfo response).
    """

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    subject: str = Field(..., alias="sub", min_length=1)
    issuer: str | None = Field(default=None, alias="iss")
    name: str | None = None
    given_name: str | None = None
    family_name: str | None = None
    middle_name: str | None = None
    nickname: str | None = None
    preferred_username: str | None = None
    profile: str | None = None
    picture: str | None = None
    website: str | None = None
    email: str | None = None
    email_verified: bool | None = None
    gender: str | None = None
    birthdate: str | None = None
    zoneinfo: str | None = None
    locale: str | None = None
    phone_number: str | None = None
    phone_number_verified: bool | None = None
    updated_at: int | str | None = None
    hd: str | None = None
    team: str | None = None
    raw_claims: dict[str, Any] = Field(default_factory=dict)

    @field_validator("subject", mode="before")
    @classmethod
    def stringify_subject(cls, v: Any) -> Any:
        # Some providers (e.g. GitHub) use numeric identifiers.
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v

    @classmethod
    def from_raw(cls, raw: Mapping[str, Any]) -> "Claims":
        """
        Builds Claims from a raw claims dictionary.

        Args:
            raw: The id_token payload or userinfo response.

        Returns:
            Claims: The normalized claims.

        Raises:
            pydantic.ValidationError: If ``sub`` is missing or a field has the wrong type.
        """
        data = dict(raw)
        data["raw_claims"] = dict(raw)
        return cls.model_validate(data)

    def __repr__(self) -> str:
        # PII fields MUST be redacted in __repr__
        return f"Claims(subject='<REDACTED>', issuer={self.issuer!r}, email='<REDACTED>')"

    def __str__(self) -> str:
        return self.__repr__()


class CredentialsConfig(BaseModel):
    """
    Encrypted credential bundle ready to be stored against a user account.

    This model is frozen (immutable); ownership passes to the caller.

    Attributes:
        subject (str): The subject of the resolved claims.
        initial_access_token (str): Ciphertext of the access token.
        initial_refresh_token (str): Ciphertext of the refresh token (also for an empty refresh token).
        initial_id_token (str): Ciphertext of the id_token, or "" when none was issued.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    subject: str
    initial_access_token: str
    initial_refresh_token: str
    initial_id_token: str = ""

    def __repr__(self) -> str:
        return (
            f"CredentialsConfig(subject='<REDACTED>', "
            f"initial_access_token='<REDACTED>', "
            f"initial_refresh_token='<REDACTED>', "
            f"initial_id_token='<REDACTED>')"
        )

    def __str__(self) -> str:
        return self.__repr__()
