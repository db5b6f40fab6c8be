"""Shared fixtures for WarpLink tests."""
from __future__ import annotations

import json
from collections.abc import Callable

import httpx
import pytest

from warplink.storage import MemoryStore

VALID_LIVE_KEY = "wl_live_a1b2c3d4e5f6g7h8i9j0k1l2m3n4o5p6"
VALID_TEST_KEY = "wl_test_x9y8z7w6v5u4t3s2r1q0p9o8n7m6l5k4"
DEVICE_ID = "E621E1F8-C36C-495A-93FC-0C247A3E6E5F"


class FakeSignalSource:
    """Deterministic platform signals."""

    def __init__(
        self,
        languages: list[str] | None = None,
        size: tuple[int, int] = (390, 844),
        seconds_from_utc: int = -18000,
        device_id: str | None = DEVICE_ID,
    ) -> None:
        self.languages = ["en-US", "fr-FR"] if languages is None else languages
        self.size = size
        self.offset = seconds_from_utc
        self.device_id = device_id

    def preferred_languages(self) -> list[str]:
        return self.languages

    def screen_size(self) -> tuple[int, int]:
        return self.size

    def seconds_from_utc(self) -> int:
        return self.offset

    def vendor_id(self) -> str | None:
        return self.device_id


Responder = httpx.Response | Exception | Callable[[httpx.Request], httpx.Response]


class MockAPI:
    """Routes requests by path suffix and records every request."""

    def __init__(self) -> None:
        self.routes: dict[str, Responder] = {"/sdk/validate": httpx.Response(200)}
        self.requests: list[httpx.Request] = []

    def on(self, path: str, responder: Responder) -> None:
        self.routes[path] = responder

    def calls(self, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if path in r.url.path]

    def json_body(self, request: httpx.Request) -> dict:
        return json.loads(request.content)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        for path, responder in self.routes.items():
            if path in request.url.path:
                if isinstance(responder, Exception):
                    raise responder
                if callable(responder):
                    return responder(request)
                return httpx.Response(
                    responder.status_code, headers=responder.headers, content=responder.content
                )
        return httpx.Response(404)


@pytest.fixture
def api() -> MockAPI:
    return MockAPI()


@pytest.fixture
def transport(api: MockAPI) -> httpx.MockTransport:
    return httpx.MockTransport(api)


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def signal_source() -> FakeSignalSource:
    return FakeSignalSource()


def link_json(**overrides) -> dict:
    data = {
        "id": "lnk_01HQ3K",
        "slug": "abc123",
        "domain": "aplnk.to",
        "destination_url": "https://example.com/products/42",
        "created_at": "2026-01-15T10:30:00Z",
        "ios_url": "myapp://products/42",
        "ios_fallback_url": "https://apps.apple.com/app/id123",
        "custom_params": {"promo": "summer", "discount": 20},
    }
    data.update(overrides)
    return data


@pytest.fixture
def sdk(store: MemoryStore, signal_source: FakeSignalSource, transport: httpx.MockTransport):
    from warplink.sdk import WarpLink

    return WarpLink(store=store, signal_source=signal_source, transport=transport)


async def configure_and_settle(sdk, api_key: str = VALID_LIVE_KEY, options=None) -> None:
    """Configure inside a running loop and wait for the key validation task."""
    sdk.configure(api_key, options)
    if sdk._validation_task is not None:
        await sdk._validation_task
