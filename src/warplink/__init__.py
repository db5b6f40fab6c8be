"""WarpLink - deep link resolution and deferred deep link attribution.

Resolves tapped WarpLink URLs against the WarpLink API and recovers the
link a user tapped before installing the app by matching raw device
signals server side.
"""

from warplink.errors import (
    DecodingError,
    InvalidApiKeyError,
    InvalidApiKeyFormatError,
    InvalidURLError,
    LinkNotFoundError,
    NetworkError,
    NotConfiguredError,
    ServerError,
    WarpLinkError,
)
from warplink.models import DeviceSignals, MatchType, ResolvedLink
from warplink.options import SDK_VERSION, WarpLinkOptions
from warplink.sdk import WarpLink
from warplink.signals import SignalSource, SystemSignalSource
from warplink.storage import FileStore, KeyValueStore, MemoryStore

__version__ = SDK_VERSION

__all__ = [
    "WarpLink",
    "WarpLinkOptions",
    # Models
    "ResolvedLink",
    "MatchType",
    "DeviceSignals",
    # Platform collaborators
    "KeyValueStore",
    "MemoryStore",
    "FileStore",
    "SignalSource",
    "SystemSignalSource",
    # Errors
    "WarpLinkError",
    "NotConfiguredError",
    "InvalidApiKeyFormatError",
    "InvalidApiKeyError",
    "NetworkError",
    "ServerError",
    "InvalidURLError",
    "LinkNotFoundError",
    "DecodingError",
]
