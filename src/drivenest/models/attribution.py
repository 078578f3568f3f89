"""Attribution payload with a left-biased merge law.

The install-attribution callback is the primary source. Deferred deep
link data and the organic re-fetch are secondary: they may add keys the
primary source lacks, but never replace a key already present.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from drivenest._constants import AF_STATUS_KEY, DEEP_LINK_URL_KEYS, ORGANIC_STATUS

AttributionValue = str | int | float | bool | None


class AttributionSource(StrEnum):
    INSTALL = "install"
    DEEP_LINK = "deep_link"
    ORGANIC_FETCH = "organic_fetch"


def _flatten(value: Any) -> AttributionValue:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    try:
        return json.dumps(value, separators=(",", ":"), sort_keys=True, default=str)
    except (TypeError, ValueError):
        return str(value)


def merge_fill_missing(primary: Mapping[str, Any], secondary: Mapping[str, Any]) -> dict[str, Any]:
    """Return ``primary`` extended with keys only ``secondary`` has."""
    merged = dict(primary)
    for key, value in secondary.items():
        if key not in merged:
            merged[key] = value
    return merged


class AttributionPayload(BaseModel):
    """Immutable mapping of attribution facts tagged with their sources."""

    model_config = ConfigDict(frozen=True)

    data: dict[str, AttributionValue] = Field(default_factory=dict)
    sources: frozenset[AttributionSource] = Field(default_factory=frozenset)

    @field_validator("data", mode="before")
    @classmethod
    def _flatten_values(cls, value: Any) -> Any:
        if not isinstance(value, Mapping):
            return value
        return {str(k): _flatten(v) for k, v in value.items()}

    @classmethod
    def from_source(cls, source: AttributionSource, data: Mapping[str, Any] | None) -> AttributionPayload:
        if not data:
            return cls()
        return cls(data=dict(data), sources=frozenset({source}))

    def __getitem__(self, key: str) -> AttributionValue:
        return self.data[key]

    def __contains__(self, key: object) -> bool:
        return key in self.data

    def get(self, key: str, default: AttributionValue = None) -> AttributionValue:
        return self.data.get(key, default)

    def to_dict(self) -> dict[str, AttributionValue]:
        return dict(self.data)

    def __len__(self) -> int:
        return len(self.data)

    @property
    def is_empty(self) -> bool:
        return not self.data

    @property
    def is_organic(self) -> bool:
        """Whether the install was not attributed to any acquisition channel."""
        status = self.data.get(AF_STATUS_KEY)
        return isinstance(status, str) and status.strip().lower() == ORGANIC_STATUS

    def merge(self, secondary: AttributionPayload | Mapping[str, Any]) -> AttributionPayload:
        """Left-biased merge: keys already present here always win."""
        if isinstance(secondary, AttributionPayload):
            data, sources = secondary.data, secondary.sources
        else:
            data, sources = dict(secondary), frozenset()
        if not data:
            return self
        return AttributionPayload(
            data=merge_fill_missing(self.data, data),
            sources=self.sources | sources,
        )


def deep_link_url(data: Mapping[str, Any]) -> str | None:
    """Extract the destination URL of a deferred deep link, if any."""
    for key in DEEP_LINK_URL_KEYS:
        value = data.get(key)
        if isinstance(value, str) and value.strip().lower().startswith(("http://", "https://")):
            return value.strip()
    return None


def push_url(payload: Mapping[str, Any], *, _depth: int = 0) -> str | None:
    """Find a ``url`` field in a push payload, directly or in a nested object.

    The top level wins over nested objects; nested objects are searched
    in payload order.
    """
    if _depth > 4:
        return None
    value = payload.get("url")
    if isinstance(value, str) and value.strip():
        return value.strip()
    for nested in payload.values():
        if isinstance(nested, Mapping):
            found = push_url(nested, _depth=_depth + 1)
            if found:
                return found
    return None
