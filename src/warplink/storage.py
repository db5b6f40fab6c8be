"""Persistent SDK state: first-launch latch, validation timestamp, cached attribution."""
from __future__ import annotations

import base64
import json
import logging
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from .models import ResolvedLink

logger = logging.getLogger(__name__)

StoredValue = bool | str | float | bytes

VALIDATION_TTL = timedelta(hours=24)


# =============================================================================
# Key-Value Stores
# =============================================================================


class KeyValueStore(ABC):
    """Abstract durable key-value store for primitive values.

    Calls are synchronous and are made directly from SDK coroutines, so
    implementations should be fast local stores (``FileStore`` does one
    small file read or atomic rewrite per call).
    """

    @abstractmethod
    def get(self, key: str) -> StoredValue | None:
        """Return the stored value, or None if absent."""
        ...

    @abstractmethod
    def set(self, key: str, value: StoredValue) -> None:
        """Store a value."""
        ...

    @abstractmethod
    def remove(self, key: str) -> None:
        """Remove a key; missing keys are ignored."""
        ...


class MemoryStore(KeyValueStore):
    """In-process store. State lives as long as the instance."""

    def __init__(self) -> None:
        self._data: dict[str, StoredValue] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> StoredValue | None:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: StoredValue) -> None:
        with self._lock:
            self._data[key] = value

    def remove(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)


class FileStore(KeyValueStore):
    """JSON file store. Every write replaces the file atomically."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()

    def _load(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text())
        except (OSError, ValueError) as e:
            logger.debug(f"Failed to load store {self.path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def _save(self, data: dict[str, Any]) -> None:
        """Write to a temp file in the same directory, fsync, then rename."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_fd, tmp_path = tempfile.mkstemp(prefix=self.path.name + ".", dir=str(self.path.parent))
        try:
            with os.fdopen(tmp_fd, "w") as f:
                json.dump(data, f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
        finally:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)

    def get(self, key: str) -> StoredValue | None:
        with self._lock:
            value = self._load().get(key)
        if isinstance(value, dict) and "__bytes__" in value:
            try:
                return base64.b64decode(value["__bytes__"])
            except ValueError:
                return None
        return value

    def set(self, key: str, value: StoredValue) -> None:
        if isinstance(value, bytes):
            value = {"__bytes__": base64.b64encode(value).decode("ascii")}
        with self._lock:
            data = self._load()
            data[key] = value
            self._save(data)

    def remove(self, key: str) -> None:
        with self._lock:
            data = self._load()
            if key in data:
                del data[key]
                self._save(data)


# =============================================================================
# Attribution Cache
# =============================================================================


class AttributionCache:
    """SDK state kept in a ``KeyValueStore``.

    Holds at most one cached attribution record. The presence flag is
    written after the record fields and removed before them, so a reader
    never sees the flag without the fields; an incomplete or corrupted
    record reads as no record.
    """

    FIRST_LAUNCH_KEY = "warplink_first_launch"
    API_KEY_VALIDATED_AT_KEY = "warplink_api_key_validated_at"
    HAS_CACHED_ATTR_KEY = "warplink_has_cached_attribution"
    CACHED_LINK_ID_KEY = "warplink_cached_link_id"
    CACHED_DEST_KEY = "warplink_cached_destination"
    CACHED_DEEP_LINK_URL_KEY = "warplink_cached_deep_link_url"
    CACHED_IS_DEFERRED_KEY = "warplink_cached_is_deferred"
    CACHED_MATCH_TYPE_KEY = "warplink_cached_match_type"
    CACHED_MATCH_CONF_KEY = "warplink_cached_match_confidence"
    CACHED_CUSTOM_PARAMS_KEY = "warplink_cached_custom_params"

    RECORD_KEYS = (
        CACHED_LINK_ID_KEY,
        CACHED_DEST_KEY,
        CACHED_DEEP_LINK_URL_KEY,
        CACHED_IS_DEFERRED_KEY,
        CACHED_MATCH_TYPE_KEY,
        CACHED_MATCH_CONF_KEY,
        CACHED_CUSTOM_PARAMS_KEY,
    )

    def __init__(self, store: KeyValueStore) -> None:
        self.store = store
        self._latch = threading.Lock()

    def is_first_launch(self) -> bool:
        """Return True exactly once per store lifetime.

        Reading consumes the latch: the flag is persisted as False before
        returning True.
        """
        with self._latch:
            if self.store.get(self.FIRST_LAUNCH_KEY) is None:
                self.store.set(self.FIRST_LAUNCH_KEY, False)
                return True
            return False

    @property
    def api_key_validated_at(self) -> datetime | None:
        value = self.store.get(self.API_KEY_VALIDATED_AT_KEY)
        if isinstance(value, bool) or not isinstance(value, int | float) or value <= 0:
            return None
        return datetime.fromtimestamp(value, UTC)

    @api_key_validated_at.setter
    def api_key_validated_at(self, value: datetime | None) -> None:
        if value is None:
            self.store.remove(self.API_KEY_VALIDATED_AT_KEY)
        else:
            self.store.set(self.API_KEY_VALIDATED_AT_KEY, value.timestamp())

    def is_validation_fresh(self, now: datetime | None = None) -> bool:
        """Whether the last successful key validation is under 24 hours old."""
        validated_at = self.api_key_validated_at
        if validated_at is None:
            return False
        now = now or datetime.now(UTC)
        return now - validated_at < VALIDATION_TTL

    @property
    def cached_attribution(self) -> ResolvedLink | None:
        return self._read_cached_attribution()

    @cached_attribution.setter
    def cached_attribution(self, link: ResolvedLink | None) -> None:
        if link is None:
            self._remove_cached_attribution_keys()
        else:
            self._write_cached_attribution(link)

    def clear_all(self) -> None:
        """Forget everything, including the first-launch latch."""
        self.store.remove(self.FIRST_LAUNCH_KEY)
        self.store.remove(self.API_KEY_VALIDATED_AT_KEY)
        self._remove_cached_attribution_keys()

    # =========================================================================
    # Record Serialization
    # =========================================================================

    def _read_cached_attribution(self) -> ResolvedLink | None:
        if self.store.get(self.HAS_CACHED_ATTR_KEY) is not True:
            return None

        link_id = self.store.get(self.CACHED_LINK_ID_KEY)
        destination = self.store.get(self.CACHED_DEST_KEY)
        if not isinstance(link_id, str) or not isinstance(destination, str):
            logger.debug("Cached attribution flag set but record incomplete")
            return None

        deep_link_url = self.store.get(self.CACHED_DEEP_LINK_URL_KEY)
        match_type = self.store.get(self.CACHED_MATCH_TYPE_KEY)
        confidence = self.store.get(self.CACHED_MATCH_CONF_KEY)
        if isinstance(confidence, bool) or not isinstance(confidence, int | float):
            confidence = None

        try:
            return ResolvedLink(
                link_id=link_id,
                destination=destination,
                app_link_url=deep_link_url if isinstance(deep_link_url, str) else None,
                custom_params=self._read_custom_params(),
                is_deferred=self.store.get(self.CACHED_IS_DEFERRED_KEY) is True,
                match_type=match_type if match_type in {"deterministic", "probabilistic"} else None,
                match_confidence=confidence,
            )
        except ValidationError as e:
            logger.debug(f"Discarding unreadable cached attribution: {e}")
            return None

    def _write_cached_attribution(self, link: ResolvedLink) -> None:
        # Hide any existing record while its fields are replaced
        self.store.remove(self.HAS_CACHED_ATTR_KEY)
        self.store.set(self.CACHED_LINK_ID_KEY, link.link_id)
        self.store.set(self.CACHED_DEST_KEY, link.destination)
        self.store.set(self.CACHED_IS_DEFERRED_KEY, link.is_deferred)

        if link.app_link_url is not None:
            self.store.set(self.CACHED_DEEP_LINK_URL_KEY, link.app_link_url)
        else:
            self.store.remove(self.CACHED_DEEP_LINK_URL_KEY)

        if link.match_type is not None:
            self.store.set(self.CACHED_MATCH_TYPE_KEY, link.match_type.value)
        else:
            self.store.remove(self.CACHED_MATCH_TYPE_KEY)

        if link.match_confidence is not None:
            self.store.set(self.CACHED_MATCH_CONF_KEY, link.match_confidence)
        else:
            self.store.remove(self.CACHED_MATCH_CONF_KEY)

        self._write_custom_params(link.custom_params)
        # Flag last: the record is visible only once complete
        self.store.set(self.HAS_CACHED_ATTR_KEY, True)

    def _read_custom_params(self) -> dict[str, Any]:
        blob = self.store.get(self.CACHED_CUSTOM_PARAMS_KEY)
        if not isinstance(blob, bytes | str):
            return {}
        try:
            params = json.loads(blob)
        except ValueError:
            logger.debug("Corrupted custom params blob, using empty params")
            return {}
        return params if isinstance(params, dict) else {}

    def _write_custom_params(self, params: dict[str, Any]) -> None:
        if not params:
            self.store.remove(self.CACHED_CUSTOM_PARAMS_KEY)
            return
        self.store.set(self.CACHED_CUSTOM_PARAMS_KEY, json.dumps(params).encode())

    def _remove_cached_attribution_keys(self) -> None:
        self.store.remove(self.HAS_CACHED_ATTR_KEY)
        for key in self.RECORD_KEYS:
            self.store.remove(key)
