"""SDK configuration and constants."""
from __future__ import annotations

import os
from dataclasses import dataclass

SDK_VERSION = "0.1.0"
PLATFORM = "ios"
FINGERPRINT_VERSION = "enriched"
USER_AGENT = f"WarpLink-iOS/{SDK_VERSION}"

DEFAULT_API_ENDPOINT = "https://api.warplink.app/v1"
DEFAULT_LINK_DOMAINS = frozenset({"aplnk.to"})


def _b(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _i(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, default))
    except ValueError:
        return default


@dataclass(frozen=True)
class WarpLinkOptions:
    """Configuration options for the WarpLink SDK."""

    api_endpoint: str = DEFAULT_API_ENDPOINT
    debug_logging: bool = False
    # Attribution window in hours; reported in debug logs, matching is server side
    match_window_hours: int = 72

    @classmethod
    def from_env(cls) -> WarpLinkOptions:
        """Build options from ``WARPLINK_*`` environment variables."""
        return cls(
            api_endpoint=os.getenv("WARPLINK_API_ENDPOINT") or DEFAULT_API_ENDPOINT,
            debug_logging=_b("WARPLINK_DEBUG", False),
            match_window_hours=_i("WARPLINK_MATCH_WINDOW_HOURS", 72),
        )
