"""Typed errors raised by WarpLink SDK operations."""
from __future__ import annotations


class WarpLinkError(Exception):
    """Base exception for all WarpLink SDK errors."""

    default_message = "WarpLink SDK error."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)
        self.message = message or self.default_message


class NotConfiguredError(WarpLinkError):
    """SDK used before ``configure()`` was called."""

    default_message = "WarpLink SDK is not configured. Call WarpLink.configure(api_key) first."


class InvalidApiKeyFormatError(WarpLinkError):
    """API key does not match the ``wl_live_``/``wl_test_`` format."""

    default_message = (
        "API key must start with 'wl_live_' or 'wl_test_' followed by 32 alphanumeric characters."
    )


class InvalidApiKeyError(WarpLinkError):
    """API key was rejected by the server (401/403)."""

    default_message = "The provided API key is invalid."


class NetworkError(WarpLinkError):
    """The request never produced an HTTP response."""

    def __init__(self, cause: BaseException) -> None:
        super().__init__(f"Network error: {cause}")
        self.cause = cause


class ServerError(WarpLinkError):
    """The API answered with an unexpected status code."""

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(f"Server error ({status_code}): {message}")
        self.status_code = status_code
        self.server_message = message


class InvalidURLError(WarpLinkError):
    """The URL is not a recognised WarpLink link."""

    default_message = "The URL is not a valid WarpLink Universal Link."


class LinkNotFoundError(WarpLinkError):
    """The link does not exist (404) or is no longer active."""

    default_message = "The link was not found or is no longer active."


class DecodingError(WarpLinkError):
    """The response payload was malformed or incomplete."""

    def __init__(self, cause: BaseException | str) -> None:
        super().__init__(f"Decoding error: {cause}")
        self.cause = cause


__all__ = [
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
