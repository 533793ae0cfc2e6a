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
OIDC discovery component for fetching and caching the provider metadata and JWKS.
"""

import time
from typing import Any

import anyio
import httpx
from pydantic import ValidationError

from coreason_oidc.exceptions import CoreasonOIDCError, DiscoveryError, OversizedResponseError
from coreason_oidc.models_internal import OIDCConfig
from coreason_oidc.transport import safe_json_fetch
from coreason_oidc.utils.logger import logger


class OIDCDiscovery:
    """
    Fetches and caches an Identity Provider's configuration and JWKS.

    Attributes:
        issuer_url (str): The expected OIDC issuer.
        discovery_url (str): The OIDC discovery URL derived from the issuer.
        cache_ttl (int): The cache time-to-live in seconds.
    """

    def __init__(
        self,
        issuer_url: str,
        client: httpx.AsyncClient,
        cache_ttl: int = 3600,
        refresh_cooldown: float = 30.0,
        attempts: int = 3,
    ) -> None:
        """
        Initialize the OIDCDiscovery.

        Args:
            issuer_url: The OIDC issuer (e.g., https://accounts.google.com).
            client: The async HTTP client to use for requests.
            cache_ttl: Time-to-live for the cache in seconds. Defaults to 3600 (1 hour).
            refresh_cooldown: Minimum time in seconds between forced refreshes. Defaults to 30.0.
            attempts: Fetch attempts for transient network errors. Defaults to 3.
        """
        self.issuer_url = issuer_url.rstrip("/")
        self.discovery_url = f"{self.issuer_url}/.well-known/openid-configuration"
        self.client = client
        self.cache_ttl = cache_ttl
        self.refresh_cooldown = refresh_cooldown
        self.attempts = attempts
        self._jwks_cache: dict[str, Any] | None = None
        self._oidc_config_cache: OIDCConfig | None = None
        self._last_update: float = 0.0
        self._lock: anyio.Lock | None = None

    async def _fetch_json(self, url: str, what: str) -> Any:
        """
        Fetches a JSON document.

        Retries on `httpx.HTTPError` with exponential backoff (initial=0.1s, max=1.0s).

        Raises:
            DiscoveryError: If the request fails after retries or the response is too large.
        """
        wait_initial = 0.1
        wait_max = 1.0

        for attempt in range(self.attempts):
            try:
                return await safe_json_fetch(self.client, url)
            except OversizedResponseError as e:
                raise DiscoveryError(f"Failed to fetch {what} from {url}: {e}") from e
            except (CoreasonOIDCError, httpx.HTTPError) as e:
                if attempt == self.attempts - 1:
                    raise DiscoveryError(f"Failed to fetch {what} from {url}: {e}") from e

                sleep_time = min(wait_initial * (2**attempt), wait_max)
                logger.warning(f"Fetching {what} failed (attempt {attempt + 1}/{self.attempts}), retrying: {e}")
                await anyio.sleep(sleep_time)

        raise DiscoveryError(f"Failed to fetch {what} from {url}")  # pragma: no cover

    async def _fetch_oidc_config(self) -> OIDCConfig:
        data = await self._fetch_json(self.discovery_url, "OIDC configuration")
        if not isinstance(data, dict):
            raise DiscoveryError(f"Invalid OIDC configuration from {self.discovery_url}: not a JSON object")
        try:
            config = OIDCConfig(**data)
        except ValidationError as e:
            raise DiscoveryError(f"Invalid OIDC configuration from {self.discovery_url}: {e}") from e

        # OpenID Connect Discovery 1.0, section 4.3
        if config.issuer.rstrip("/") != self.issuer_url:
            raise DiscoveryError(
                f"Issuer mismatch: expected {self.issuer_url}, discovery document announced {config.issuer}"
            )
        return config

    async def _fetch_jwks(self, jwks_uri: str) -> dict[str, Any]:
        data = await self._fetch_json(jwks_uri, "JWKS")
        if not isinstance(data, dict) or not isinstance(data.get("keys"), list):
            raise DiscoveryError(f"Invalid JWKS from {jwks_uri}")
        return data

    async def _refresh_critical_section(self, force_refresh: bool) -> None:
        """
        Critical section for refreshing the cache.
        Must be called while holding the lock.
        """
        current_time = time.time()
        age = current_time - self._last_update
        has_cache = self._jwks_cache is not None

        if not force_refresh and has_cache and age < self.cache_ttl:
            return

        # DoS Protection: a forced refresh during the cooldown keeps the cached data
        if force_refresh and has_cache and age < self.refresh_cooldown:
            logger.warning("JWKS refresh cooldown active. Returning cached keys despite force_refresh request.")
            return

        oidc_config = await self._fetch_oidc_config()
        jwks = await self._fetch_jwks(oidc_config.jwks_uri)

        self._jwks_cache = jwks
        self._oidc_config_cache = oidc_config
        self._last_update = current_time
        logger.debug(f"Refreshed OIDC metadata for {self.issuer_url}")

    async def _ensure_fresh(self, force_refresh: bool = False) -> None:
        if self._lock is None:
            self._lock = anyio.Lock()

        # Double-checked locking (Check 1: No lock)
        if not force_refresh and self._jwks_cache is not None and (time.time() - self._last_update) < self.cache_ttl:
            return

        async with self._lock:
            await self._refresh_critical_section(force_refresh)

    async def get_jwks(self, force_refresh: bool = False) -> dict[str, Any]:
        """
        Returns the JWKS, using the cache if valid.

        Args:
            force_refresh: If True, bypasses the cache (subject to the refresh cooldown).

        Returns:
            dict[str, Any]: The JWKS dictionary.

        Raises:
            DiscoveryError: If fetching fails.
        """
        await self._ensure_fresh(force_refresh)
        if self._jwks_cache is None:
            raise DiscoveryError("Failed to load JWKS")  # pragma: no cover
        return self._jwks_cache

    async def get_config(self) -> OIDCConfig:
        """
        Returns the discovered provider metadata, refreshing it when the cache expired.

        Raises:
            DiscoveryError: If fetching fails or the document is invalid.
        """
        await self._ensure_fresh()
        if self._oidc_config_cache is None:
            raise DiscoveryError("Failed to load OIDC configuration")  # pragma: no cover
        return self._oidc_config_cache
