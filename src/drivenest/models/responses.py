"""Configuration endpoint response model."""

from __future__ import annotations

from typing import Any, Literal
from urllib.parse import urlsplit

from pydantic import BaseModel, ConfigDict, field_validator


class ContentUrlResponse(BaseModel):
    """``{"ok": true, "url": "<http(s) URL>"}``; any other shape fails validation."""

    model_config = ConfigDict(frozen=True, extra="ignore", strict=True)

    ok: Literal[True]
    url: str

    @field_validator("url")
    @classmethod
    def _require_absolute_http_url(cls, value: str) -> str:
        url = value.strip()
        parts = urlsplit(url)
        if parts.scheme.lower() not in {"http", "https"} or not parts.netloc:
            raise ValueError(f"not an absolute http(s) URL: {value!r}")
        return url

    @classmethod
    def parse(cls, body: Any) -> ContentUrlResponse:
        return cls.model_validate(body)
