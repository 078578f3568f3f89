"""Notification permission policy.

An explicit grant or a system-level denial stops prompting for good.
Skipping the prompt only rate-limits it: the user is asked again once
the cool-down window has passed.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

from drivenest._constants import PERMISSION_COOLDOWN_S
from drivenest.models.stored import StoredConfig


def _utcnow() -> datetime:
    return datetime.now(UTC)


def within_cooldown(last_asked_at: datetime | None, now: datetime, cooldown_seconds: float) -> bool:
    if last_asked_at is None:
        return False
    if last_asked_at.tzinfo is None:
        last_asked_at = last_asked_at.replace(tzinfo=UTC)
    return now - last_asked_at < timedelta(seconds=cooldown_seconds)


def should_prompt(
    granted: bool,
    system_denied: bool,
    last_asked_at: datetime | None,
    *,
    now: datetime | None = None,
    cooldown_seconds: float = PERMISSION_COOLDOWN_S,
) -> bool:
    """Decide whether to interrupt the user with the permission prompt."""
    if granted or system_denied:
        return False
    return not within_cooldown(last_asked_at, now or _utcnow(), cooldown_seconds)


def should_prompt_for(
    stored: StoredConfig,
    *,
    now: datetime | None = None,
    cooldown_seconds: float = PERMISSION_COOLDOWN_S,
) -> bool:
    return should_prompt(
        stored.notifications_granted,
        stored.notifications_system_denied,
        stored.last_notification_ask_at,
        now=now,
        cooldown_seconds=cooldown_seconds,
    )


def record_grant(stored: StoredConfig) -> StoredConfig:
    return stored.model_copy(update={"notifications_granted": True})


def record_system_denial(stored: StoredConfig) -> StoredConfig:
    return stored.model_copy(update={"notifications_system_denied": True})


def record_deferral(stored: StoredConfig, *, now: datetime | None = None) -> StoredConfig:
    return stored.model_copy(update={"last_notification_ask_at": now or _utcnow()})


def record_answer(
    stored: StoredConfig,
    *,
    granted: bool,
    system_denied: bool,
    now: datetime | None = None,
) -> StoredConfig:
    """Apply a prompt answer: grant, system denial, or skip (deferral)."""
    if granted:
        return record_grant(stored)
    if system_denied:
        return record_system_denial(stored)
    return record_deferral(stored, now=now)
