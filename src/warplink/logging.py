"""Structlog-based logging for the WarpLink SDK.

Library code never prints; debug output goes through ``SDKLogger`` and is
only emitted when ``WarpLinkOptions.debug_logging`` is enabled.
"""
from __future__ import annotations

from typing import Any, Literal

import logging
import structlog

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

KEY_PREFIXES = ("wl_live_", "wl_test_")


def configure_logging(level: LogLevel = "INFO", json_output: bool = True) -> None:
    """Route WarpLink events through structlog.

    Not called on import; the host application (or the CLI) calls it once.
    ``json_output=False`` renders plain key=value lines for terminals.
    """
    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer(colors=False)
    )
    logging.basicConfig(format="%(message)s", level=getattr(logging, level))
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="ISO"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, level)),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str = "warplink"):
    return structlog.get_logger(name)


def mask_api_key(key: str) -> str:
    """Mask an API key for safe logging.

    Known prefixes are kept and only the last four characters are shown
    (``wl_live_****o5p6``). Anything else keeps its first and last four.
    """
    for prefix in KEY_PREFIXES:
        if not key.startswith(prefix):
            continue
        suffix = key[len(prefix):]
        if len(suffix) <= 4:
            return f"{prefix}****"
        return f"{prefix}****{suffix[-4:]}"
    if len(key) <= 8:
        return "****"
    return f"{key[:4]}****{key[-4:]}"


class SDKLogger:
    """Debug logger that is silent unless debug logging was requested."""

    def __init__(self, debug_enabled: bool, name: str = "warplink") -> None:
        self.debug_enabled = debug_enabled
        self._log = get_logger(name)

    def log(self, event: str, **fields: Any) -> None:
        if not self.debug_enabled:
            return
        self._log.info(event, sdk="WarpLink", **fields)
