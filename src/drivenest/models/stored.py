"""Persisted loader state."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator

from drivenest._constants import (
    KEY_APP_STATE,
    KEY_FCM_TOKEN,
    KEY_HAS_LAUNCHED_BEFORE,
    KEY_LAST_PERM_REQUEST,
    KEY_PERMS_ACCEPTED,
    KEY_PERMS_DENIED,
    KEY_PUSH_TOKEN,
    KEY_STORED_CONFIG,
    KEY_TEMP_URL,
)
from drivenest.models.phase import AppMode

# Field name -> persisted key.
STORED_KEYS: dict[str, str] = {
    "has_launched_before": KEY_HAS_LAUNCHED_BEFORE,
    "app_mode": KEY_APP_STATE,
    "cached_content_url": KEY_STORED_CONFIG,
    "pending_deep_link": KEY_TEMP_URL,
    "last_notification_ask_at": KEY_LAST_PERM_REQUEST,
    "notifications_granted": KEY_PERMS_ACCEPTED,
    "notifications_system_denied": KEY_PERMS_DENIED,
    "push_token": KEY_PUSH_TOKEN,
}


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes"}
    return bool(value)


class StoredConfig(BaseModel):
    """Snapshot of every persisted field the controller reads or writes.

    Instances are immutable; the controller derives a new snapshot with
    ``model_copy(update=...)`` and commits the difference to the store.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    has_launched_before: bool = False
    app_mode: AppMode | None = None
    cached_content_url: str | None = None
    pending_deep_link: str | None = None
    last_notification_ask_at: datetime | None = None
    notifications_granted: bool = False
    notifications_system_denied: bool = False
    push_token: str | None = None

    @field_validator("has_launched_before", "notifications_granted", "notifications_system_denied", mode="before")
    @classmethod
    def _coerce_bool(cls, value: Any) -> bool:
        return _as_bool(value)

    @field_validator("app_mode", mode="before")
    @classmethod
    def _unknown_mode_is_unset(cls, value: Any) -> Any:
        if value in (None, ""):
            return None
        try:
            return AppMode(value)
        except ValueError:
            return None

    @field_validator("cached_content_url", "pending_deep_link", "push_token", mode="before")
    @classmethod
    def _blank_is_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("last_notification_ask_at", mode="after")
    @classmethod
    def _ensure_tz_aware(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value

    @property
    def is_legacy(self) -> bool:
        return self.app_mode is AppMode.LEGACY

    @classmethod
    def from_values(cls, values: dict[str, Any]) -> StoredConfig:
        """Build from raw store values keyed by persisted key name."""
        fields = {name: values.get(key) for name, key in STORED_KEYS.items() if values.get(key) is not None}
        if "push_token" not in fields and values.get(KEY_FCM_TOKEN):
            fields["push_token"] = values[KEY_FCM_TOKEN]
        return cls.model_validate(fields)

    def to_values(self) -> dict[str, Any]:
        """Serialize to persisted key -> JSON-compatible value; unset fields map to ``None``."""
        values: dict[str, Any] = {}
        for name, key in STORED_KEYS.items():
            value = getattr(self, name)
            if isinstance(value, datetime):
                value = value.isoformat()
            elif isinstance(value, AppMode):
                value = value.value
            values[key] = value
        return values
