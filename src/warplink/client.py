"""HTTP client for the WarpLink attribution and resolution API.

Three independent, single-attempt exchanges share only the bearer token,
the SDK user agent and the base URL:

- ``GET /sdk/validate`` - API key probe
- ``GET /links/resolve/{slug}?domain=`` - direct link resolution
- ``POST /attribution/match`` - deferred link attribution from device signals

Transport and parsing failures never escape this module untyped: every
outcome is either a parsed payload or a ``WarpLinkError`` subclass.
"""
from __future__ import annotations

import json
import logging
from typing import Any
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from .errors import (
    DecodingError,
    InvalidApiKeyError,
    LinkNotFoundError,
    NetworkError,
    ServerError,
)
from .models import AttributionResponse, DeviceSignals, LinkResolutionResponse
from .options import DEFAULT_API_ENDPOINT, FINGERPRINT_VERSION, PLATFORM, USER_AGENT

logger = logging.getLogger(__name__)

REJECTED_KEY_STATUSES = frozenset({401, 403})


class APIClient:
    """WarpLink API client.

    Example:
        client = APIClient("wl_live_...")
        response = await client.resolve_link("abc123", "aplnk.to")
        print(response.destination_url)
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_API_ENDPOINT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize client.

        Args:
            api_key: WarpLink API key sent as a bearer token.
            base_url: API root, e.g. ``https://api.warplink.app/v1``.
            transport: Optional httpx transport (tests pass ``httpx.MockTransport``).
        """
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self._transport = transport

    @property
    def headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "User-Agent": USER_AGENT,
        }

    async def _send(
        self,
        method: str,
        path: str,
        params: dict[str, str] | None = None,
        body: dict[str, Any] | None = None,
    ) -> httpx.Response:
        """Issue one request; no retries, no deadline beyond the transport's."""
        headers = self.headers
        content = None
        if body is not None:
            headers["Content-Type"] = "application/json"
            content = json.dumps(body).encode()

        try:
            # Short-lived client so the SDK is not tied to a single event loop
            async with httpx.AsyncClient(transport=self._transport) as http:
                return await http.request(
                    method,
                    f"{self.base_url}{path}",
                    params=params,
                    content=content,
                    headers=headers,
                )
        except (httpx.InvalidURL, httpx.UnsupportedProtocol) as e:
            raise ServerError(0, "Invalid URL") from e
        except httpx.RequestError as e:
            logger.debug(f"{method} {path} failed: {e}")
            raise NetworkError(e) from e

    @staticmethod
    def _decode_object(response: httpx.Response) -> dict[str, Any]:
        try:
            data = json.loads(response.content)
        except ValueError as e:
            raise DecodingError(e) from e
        if not isinstance(data, dict):
            raise DecodingError("Response is not a JSON object")
        return data

    # =========================================================================
    # Operations
    # =========================================================================

    async def validate_api_key(self) -> bool:
        """Check the API key with the server.

        Returns:
            True if accepted, False if rejected (401/403)

        Raises:
            NetworkError: the request failed before a response arrived
            ServerError: any other status code
        """
        response = await self._send("GET", "/sdk/validate")
        if response.status_code == 200:
            return True
        if response.status_code in REJECTED_KEY_STATUSES:
            return False
        raise ServerError(response.status_code, "Unexpected status code")

    async def resolve_link(self, slug: str, domain: str) -> LinkResolutionResponse:
        """Resolve a link by slug and domain.

        Args:
            slug: The link slug (first path segment of the shared URL)
            domain: The domain the link belongs to

        Returns:
            The parsed resolution payload

        Raises:
            LinkNotFoundError: 404
            InvalidApiKeyError: 401/403
            ServerError: any other non-200 status
            NetworkError: transport failure
            DecodingError: malformed body or missing required fields
        """
        response = await self._send(
            "GET",
            f"/links/resolve/{quote(slug, safe='')}",
            params={"domain": domain},
        )
        status = response.status_code
        if status == 404:
            raise LinkNotFoundError()
        if status in REJECTED_KEY_STATUSES:
            raise InvalidApiKeyError()
        if status != 200:
            raise ServerError(status, "Unexpected status code")

        data = self._decode_object(response)
        try:
            return LinkResolutionResponse.model_validate(data)
        except ValidationError as e:
            raise DecodingError(e) from e

    async def match_attribution(
        self,
        signals: DeviceSignals,
        sdk_version: str,
        device_id: str | None = None,
    ) -> AttributionResponse:
        """Ask the server to match this install against recorded link clicks.

        The ``device_id`` key is left out of the body entirely when no
        vendor identifier is available.
        """
        body: dict[str, Any] = signals.to_payload()
        body["platform"] = PLATFORM
        body["fingerprint_version"] = FINGERPRINT_VERSION
        body["sdk_version"] = sdk_version
        if device_id is not None:
            body["device_id"] = device_id

        response = await self._send("POST", "/attribution/match", body=body)
        status = response.status_code
        if status in REJECTED_KEY_STATUSES:
            raise InvalidApiKeyError()
        if status != 200:
            raise ServerError(status, "Server error")

        data = self._decode_object(response)
        try:
            return AttributionResponse.model_validate(data)
        except ValidationError as e:
            raise DecodingError(e) from e
