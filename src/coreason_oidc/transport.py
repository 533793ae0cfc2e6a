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
Secure HTTP Transport module to mitigate SSRF via DNS Rebinding, and a size-limited JSON fetch helper.
"""

import ipaddress
import json
import socket
from typing import Any

import anyio
import httpx

from coreason_oidc.exceptions import CoreasonOIDCError, OversizedResponseError
from coreason_oidc.utils.logger import logger

MAX_RESPONSE_BYTES = 1_000_000


class SecurityError(CoreasonOIDCError):
    """Raised when a security violation is detected."""


class SafeHTTPTransport(httpx.AsyncHTTPTransport):
    """
    A secure HTTP transport that enforces DNS pinning to prevent SSRF/DNS Rebinding attacks.

    It resolves the hostname to an IP address, validates the IP against blocked ranges
    (private, loopback, link-local, reserved, multicast), and then forces the connection to that
    specific IP while preserving the original Host header and SNI for SSL verification.
    """

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        hostname = request.url.host

        try:
            ip_obj = ipaddress.ip_address(hostname)
        except ValueError:
            ip_obj = None

        if ip_obj is not None:
            self._validate_ip(ip_obj, hostname)
            return await super().handle_async_request(request)

        try:
            addr_infos = await anyio.to_thread.run_sync(socket.getaddrinfo, hostname, None, 0, socket.SOCK_STREAM)
        except socket.gaierror as e:
            logger.error(f"DNS resolution failed for {hostname}: {e}")
            raise SecurityError(f"DNS resolution failed for {hostname}") from e

        # Skip blocked addresses; we only ever connect to the one we validated.
        target_ip: str | None = None
        for _, _, _, _, sockaddr in addr_infos:
            ip_str = str(sockaddr[0])
            try:
                self._validate_ip(ipaddress.ip_address(ip_str), hostname)
            except (SecurityError, ValueError):
                continue
            target_ip = ip_str
            break

        if not target_ip:
            logger.error(f"Security violation: No valid public IP found for {hostname}")
            raise SecurityError(f"Security violation: No valid public IP found for {hostname}")

        request.extensions["sni_hostname"] = hostname
        if "Host" not in request.headers:
            request.headers["Host"] = request.url.netloc.decode("ascii")
        request.url = request.url.copy_with(host=target_ip)

        logger.debug(f"DNS Pinned: {hostname} -> {target_ip}")

        return await super().handle_async_request(request)

    def _validate_ip(self, ip_obj: Any, hostname: str) -> None:
        """
        Validates an IP address object against blocked ranges.
        """
        if (
            ip_obj.is_private
            or ip_obj.is_loopback
            or ip_obj.is_link_local
            or ip_obj.is_reserved
            or ip_obj.is_multicast
        ):
            logger.warning(f"Security violation: Blocked access to {hostname} ({ip_obj})")
            raise SecurityError(f"Access to {hostname} ({ip_obj}) is blocked")


async def safe_json_fetch(
    client: httpx.AsyncClient,
    url: str,
    method: str = "GET",
    max_bytes: int = MAX_RESPONSE_BYTES,
    **kwargs: Any,
) -> Any:
    """
    Performs a request and decodes the JSON body, refusing bodies larger than ``max_bytes``.

    Args:
        client: The async HTTP client to use.
        url: The URL to request.
        method: The HTTP method. Defaults to GET.
        max_bytes: Maximum accepted body size in bytes.
        **kwargs: Passed through to ``client.stream`` (headers, data, ...).

    Returns:
        Any: The decoded JSON document.

    Raises:
        OversizedResponseError: If the body exceeds ``max_bytes``.
        httpx.HTTPStatusError: If the response status is 4xx/5xx.
        httpx.HTTPError: For transport failures.
        CoreasonOIDCError: If the body is not valid JSON.
    """
    async with client.stream(method, url, follow_redirects=True, **kwargs) as response:
        content_length = response.headers.get("Content-Length")
        if content_length and content_length.isdigit() and int(content_length) > max_bytes:
            raise OversizedResponseError(f"Response from {url} too large")

        content = bytearray()
        async for chunk in response.aiter_bytes():
            content.extend(chunk)
            if len(content) > max_bytes:
                raise OversizedResponseError(f"Response from {url} too large")

        response.raise_for_status()

    try:
        return json.loads(content)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise CoreasonOIDCError(f"Invalid JSON response from {url}: {e}") from e
