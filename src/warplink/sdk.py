"""WarpLink SDK entry point.

``WarpLink`` is a context object owned by the embedding application. After
``configure()`` it resolves tapped links (``handle_deep_link``) and recovers
links tapped before install (``check_deferred_deep_link``).

Example:
    warplink = WarpLink(store=FileStore("data/warplink_state.json"))
    warplink.configure("wl_live_...")

    link = await warplink.check_deferred_deep_link()
    if link is not None:
        route_to(link.app_link_url or link.destination)
"""
from __future__ import annotations

import asyncio
import re
import threading
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

import httpx

from .client import APIClient
from .errors import InvalidURLError, NotConfiguredError, WarpLinkError
from .logging import SDKLogger, mask_api_key
from .models import ResolvedLink
from .options import DEFAULT_LINK_DOMAINS, SDK_VERSION, WarpLinkOptions
from .signals import SignalCollector, SignalSource
from .storage import AttributionCache, FileStore, KeyValueStore
from .urls import extract_slug, is_warplink_url, link_domain

API_KEY_PATTERN = re.compile(r"wl_(live|test)_[A-Za-z0-9]{32}")

DEFAULT_STATE_PATH = Path("data/warplink_state.json")


def is_valid_api_key_format(api_key: str) -> bool:
    return API_KEY_PATTERN.fullmatch(api_key) is not None


@dataclass(frozen=True)
class _Configured:
    """Dependencies created together by ``configure()`` and swapped as one."""

    api_key: str
    options: WarpLinkOptions
    log: SDKLogger
    client: APIClient
    cache: AttributionCache
    collector: SignalCollector
    deferred_lock: asyncio.Lock


class WarpLink:
    """Deep link resolution and deferred attribution."""

    sdk_version = SDK_VERSION

    def __init__(
        self,
        store: KeyValueStore | None = None,
        signal_source: SignalSource | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        link_domains: Iterable[str] | None = None,
    ) -> None:
        """Initialize an unconfigured SDK.

        Args:
            store: Durable store for SDK state. Defaults to a JSON file under ``data/``.
            signal_source: Platform signal accessors. Defaults to ``SystemSignalSource``.
            transport: httpx transport used for every API call.
            link_domains: Hosts recognised as WarpLink links, in addition to the defaults.
        """
        self._store = store or FileStore(DEFAULT_STATE_PATH)
        self._signal_source = signal_source
        self._transport = transport
        self.link_domains = frozenset(
            d.lower() for d in (*DEFAULT_LINK_DOMAINS, *(link_domains or ()))
        )

        self._lock = threading.Lock()
        self._state: _Configured | None = None
        self._is_api_key_valid: bool | None = None
        self._background_tasks: set[asyncio.Task] = set()
        self._validation_task: asyncio.Task | None = None
        self._validation_thread: threading.Thread | None = None

    # =========================================================================
    # Configuration
    # =========================================================================

    @property
    def is_configured(self) -> bool:
        with self._lock:
            return self._state is not None

    @property
    def is_api_key_valid(self) -> bool | None:
        """Outcome of the last server-side key validation; None if unknown."""
        with self._lock:
            return self._is_api_key_valid

    @property
    def options(self) -> WarpLinkOptions | None:
        with self._lock:
            return self._state.options if self._state else None

    @property
    def attribution_result(self) -> ResolvedLink | None:
        """The cached deferred deep link, if any."""
        state = self._snapshot()
        return state.cache.cached_attribution if state else None

    def configure(self, api_key: str, options: WarpLinkOptions | None = None) -> None:
        """Configure the SDK with an API key.

        Keys that are not ``wl_live_``/``wl_test_`` followed by 32
        alphanumeric characters are ignored and leave the SDK unchanged.
        A valid key starts a background key validation that never blocks
        or fails this call.
        """
        options = options or WarpLinkOptions()

        if not is_valid_api_key_format(api_key):
            SDKLogger(options.debug_logging).log(
                "Invalid API key format", api_key=mask_api_key(api_key)
            )
            return

        log = SDKLogger(options.debug_logging)
        state = _Configured(
            api_key=api_key,
            options=options,
            log=log,
            client=APIClient(api_key, options.api_endpoint, transport=self._transport),
            cache=AttributionCache(self._store),
            collector=SignalCollector(self._signal_source),
            deferred_lock=asyncio.Lock(),
        )

        with self._lock:
            self._state = state
            self._is_api_key_valid = None

        log.log("Configured", api_key=mask_api_key(api_key))
        log.log("API endpoint", api_endpoint=options.api_endpoint)
        log.log("Match window", hours=options.match_window_hours)

        self._start_validation(state)

    def reset(self) -> None:
        """Drop the configuration. Persisted state is left untouched."""
        with self._lock:
            self._state = None
            self._is_api_key_valid = None

    def _snapshot(self) -> _Configured | None:
        with self._lock:
            return self._state

    def _require_configured(self) -> _Configured:
        state = self._snapshot()
        if state is None:
            raise NotConfiguredError()
        return state

    # =========================================================================
    # API Key Validation
    # =========================================================================

    def _start_validation(self, state: _Configured) -> None:
        if state.cache.is_validation_fresh():
            state.log.log("API key validation cached, skipping")
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        if loop is not None:
            task = loop.create_task(self._validate_api_key(state))
            self._background_tasks.add(task)
            task.add_done_callback(self._background_tasks.discard)
            self._validation_task = task
        else:
            thread = threading.Thread(
                target=asyncio.run,
                args=(self._validate_api_key(state),),
                name="warplink-key-validation",
                daemon=True,
            )
            self._validation_thread = thread
            thread.start()

    async def _validate_api_key(self, state: _Configured) -> None:
        state.log.log("Validating API key")
        try:
            valid = await state.client.validate_api_key()
        except WarpLinkError as e:
            state.log.log("API key validation error", error=str(e))
            return

        with self._lock:
            # A newer configure() owns the flag now
            if self._state is state:
                self._is_api_key_valid = valid
        if valid:
            state.cache.api_key_validated_at = datetime.now(UTC)
            state.log.log("API key validated successfully")
        else:
            state.log.log("API key validation failed: key rejected by server")

    # =========================================================================
    # Direct Links
    # =========================================================================

    async def handle_deep_link(self, url: str) -> ResolvedLink:
        """Resolve a tapped WarpLink URL.

        Raises:
            NotConfiguredError: configure() has not succeeded
            InvalidURLError: unknown host or no slug in the path
            WarpLinkError: any client error, unchanged
        """
        state = self._require_configured()

        if not is_warplink_url(url, self.link_domains):
            raise InvalidURLError()
        slug = extract_slug(url)
        if slug is None:
            raise InvalidURLError()
        domain = link_domain(url)

        state.log.log("Resolving link", url=url)
        try:
            response = await state.client.resolve_link(slug, domain)
        except WarpLinkError as e:
            state.log.log("Failed to resolve link", error=str(e))
            raise

        state.log.log("Resolved link", slug=response.slug, destination=response.destination_url)
        return ResolvedLink.from_resolution(response)

    # =========================================================================
    # Deferred Links
    # =========================================================================

    async def check_deferred_deep_link(self) -> ResolvedLink | None:
        """Look up a link tapped before this app was installed.

        Only the first call per install talks to the server; later calls
        return the cached match (or None). A negative match is not cached.
        """
        state = self._require_configured()

        async with state.deferred_lock:
            if not state.cache.is_first_launch():
                state.log.log("Not first launch, returning cached attribution")
                return state.cache.cached_attribution

            state.log.log("First launch, collecting device signals for attribution")
            device_id = state.collector.vendor_id()
            try:
                signals = await state.collector.collect()
                response = await state.client.match_attribution(
                    signals, self.sdk_version, device_id
                )
            except WarpLinkError as e:
                state.log.log("Attribution match failed", error=str(e))
                raise

            link = ResolvedLink.from_attribution(response)
            if link is None:
                state.log.log("No deferred deep link match")
                return None

            state.cache.cached_attribution = link
            state.log.log("Deferred deep link matched", link_id=link.link_id)
            return link
