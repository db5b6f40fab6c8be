"""Pydantic models for resolved links, device signals and API payloads."""
from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, JsonValue, field_validator


class MatchType(str, Enum):
    """How a link was attributed to this install."""

    DETERMINISTIC = "deterministic"
    PROBABILISTIC = "probabilistic"


# =============================================================================
# Wire Payloads
# =============================================================================


def _string_or_none(value: Any) -> str | None:
    return value if isinstance(value, str) else None


def _object_or_empty(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


class LinkResolutionResponse(BaseModel):
    """Body of a successful ``/links/resolve/{slug}`` response."""

    model_config = {"strict": True}

    id: str = Field(min_length=1)
    slug: str
    domain: str
    destination_url: str
    created_at: str
    ios_url: str | None = None
    ios_fallback_url: str | None = None
    custom_params: dict[str, JsonValue] = Field(default_factory=dict)

    @field_validator("ios_url", "ios_fallback_url", mode="before")
    @classmethod
    def _optional_string(cls, value: Any) -> str | None:
        return _string_or_none(value)

    @field_validator("custom_params", mode="before")
    @classmethod
    def _params_object(cls, value: Any) -> dict:
        return _object_or_empty(value)


class AttributionResponse(BaseModel):
    """Body of a successful ``/attribution/match`` response.

    Every field is optional; ``matched`` defaults to ``False`` and
    mistyped optional values are treated as absent.
    """

    model_config = {"strict": True}

    matched: bool = False
    match_type: str | None = None
    match_confidence: float | None = Field(default=None, ge=0.0, le=1.0)
    link_id: str | None = None
    deep_link_url: str | None = None
    destination_url: str | None = None
    custom_params: dict[str, JsonValue] | None = None
    install_id: str | None = None

    @field_validator("matched", mode="before")
    @classmethod
    def _matched_flag(cls, value: Any) -> bool:
        return value if isinstance(value, bool) else False

    @field_validator("match_confidence", mode="before")
    @classmethod
    def _confidence_number(cls, value: Any) -> float | None:
        if isinstance(value, bool) or not isinstance(value, int | float):
            return None
        return float(value)

    @field_validator(
        "match_type", "link_id", "deep_link_url", "destination_url", "install_id", mode="before"
    )
    @classmethod
    def _optional_string(cls, value: Any) -> str | None:
        return _string_or_none(value)

    @field_validator("custom_params", mode="before")
    @classmethod
    def _params_object(cls, value: Any) -> dict | None:
        return value if isinstance(value, dict) else None


# =============================================================================
# SDK Models
# =============================================================================


class DeviceSignals(BaseModel):
    """Raw device signals sent to the server for fingerprinting.

    Nothing is hashed locally. ``timezone_offset`` is in minutes, positive
    west of UTC.
    """

    model_config = {"frozen": True}

    accept_language: str
    screen_width: int = Field(ge=0)
    screen_height: int = Field(ge=0)
    timezone_offset: int
    user_agent: str

    def to_payload(self) -> dict[str, Any]:
        return {
            "accept_language": self.accept_language,
            "screen_width": self.screen_width,
            "screen_height": self.screen_height,
            "timezone_offset": self.timezone_offset,
            "user_agent": self.user_agent,
        }


class ResolvedLink(BaseModel):
    """A link resolved either directly by slug or through deferred attribution."""

    model_config = {"frozen": True}

    link_id: str = Field(min_length=1)
    destination: str
    app_link_url: str | None = Field(default=None, description="In-app navigation target")
    custom_params: dict[str, JsonValue] = Field(default_factory=dict)
    is_deferred: bool = False
    match_type: MatchType | None = None
    match_confidence: float | None = Field(default=None, ge=0.0, le=1.0)

    @classmethod
    def from_resolution(cls, response: LinkResolutionResponse) -> ResolvedLink:
        """Direct resolution is always a certain, deterministic match."""
        return cls(
            link_id=response.id,
            destination=response.destination_url,
            app_link_url=response.ios_url,
            custom_params=response.custom_params,
            is_deferred=False,
            match_type=MatchType.DETERMINISTIC,
            match_confidence=1.0,
        )

    @classmethod
    def from_attribution(cls, response: AttributionResponse) -> ResolvedLink | None:
        """Build a deferred link, or None when the server reported no usable match."""
        if not response.matched or not response.link_id or response.destination_url is None:
            return None

        try:
            match_type = MatchType(response.match_type) if response.match_type else None
        except ValueError:
            match_type = None

        return cls(
            link_id=response.link_id,
            destination=response.destination_url,
            app_link_url=response.deep_link_url,
            custom_params=response.custom_params or {},
            is_deferred=True,
            match_type=match_type,
            match_confidence=response.match_confidence,
        )
