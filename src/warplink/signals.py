"""Device signal collection for server-side attribution matching."""
from __future__ import annotations

import inspect
import os
from datetime import datetime
from typing import Awaitable, Protocol, runtime_checkable

from .models import DeviceSignals
from .options import USER_AGENT

LOCALE_ENV_VARS = ("LANGUAGE", "LC_ALL", "LC_MESSAGES", "LANG")


@runtime_checkable
class SignalSource(Protocol):
    """Platform accessors for the raw signals the collector needs."""

    def preferred_languages(self) -> list[str]:
        """Preferred locales, most preferred first (e.g. ``["en-US", "fr"]``)."""
        ...

    def screen_size(self) -> tuple[int, int] | Awaitable[tuple[int, int]]:
        """Screen width and height in points.

        May return an awaitable when the size has to be read on a UI thread.
        """
        ...

    def seconds_from_utc(self) -> int:
        """Current local offset from UTC in seconds (east positive)."""
        ...

    def vendor_id(self) -> str | None:
        """Vendor-scoped install identifier, if the platform has one."""
        ...


def _normalize_locale(value: str) -> str | None:
    tag = value.split(".", 1)[0].split("@", 1)[0].strip()
    if not tag or tag in {"C", "POSIX"}:
        return None
    return tag.replace("_", "-")


class SystemSignalSource:
    """Signal source for headless hosts.

    Locales come from the POSIX locale environment, the screen is reported
    as 0x0 and there is no vendor identifier.
    """

    def preferred_languages(self) -> list[str]:
        for name in LOCALE_ENV_VARS:
            raw = os.environ.get(name)
            if not raw:
                continue
            tags = [t for t in (_normalize_locale(part) for part in raw.split(":")) if t]
            if tags:
                return list(dict.fromkeys(tags))
        return []

    def screen_size(self) -> tuple[int, int]:
        return (0, 0)

    def seconds_from_utc(self) -> int:
        offset = datetime.now().astimezone().utcoffset()
        return int(offset.total_seconds()) if offset is not None else 0

    def vendor_id(self) -> str | None:
        return None


class SignalCollector:
    """Collects raw, unhashed device signals.

    The server combines these with the client IP to compute the
    fingerprint; nothing is hashed here.
    """

    def __init__(self, source: SignalSource | None = None) -> None:
        self.source = source or SystemSignalSource()

    def vendor_id(self) -> str | None:
        return self.source.vendor_id()

    async def collect(self) -> DeviceSignals:
        accept_language = ",".join(self.source.preferred_languages() or [])
        timezone_offset = -(self.source.seconds_from_utc() // 60)

        size = self.source.screen_size()
        if inspect.isawaitable(size):
            size = await size
        width, height = size or (0, 0)

        return DeviceSignals(
            accept_language=accept_language,
            screen_width=max(0, int(width or 0)),
            screen_height=max(0, int(height or 0)),
            timezone_offset=timezone_offset,
            user_agent=USER_AGENT,
        )
