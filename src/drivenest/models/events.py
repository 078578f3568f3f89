"""Typed events consumed by the drive controller.

Every external signal (SDK callbacks, reachability, user input) and every
internal completion (timers, network results) is one of these. The
controller's single consumer task is the only place they are handled.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from drivenest.exceptions import DriveNestError
from drivenest.models.attribution import AttributionPayload


class TimerKind(StrEnum):
    MERGE = "merge"
    IGNITION = "ignition"


@dataclass(frozen=True, slots=True)
class AttributionReceived:
    """Install-attribution callback payload."""

    data: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class DeepLinkResolved:
    """Deferred deep link resolution payload."""

    data: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class PushReceived:
    """Push notification payload; may carry a direct or nested ``url``."""

    data: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ConnectivityChanged:
    satisfied: bool


@dataclass(frozen=True, slots=True)
class PermissionAnswered:
    """User response to the notification prompt.

    ``granted`` is the system grant result after the user accepted;
    ``system_denied`` marks an explicit denial at the system dialog.
    Both false means the user skipped the prompt.
    """

    granted: bool
    system_denied: bool = False


@dataclass(frozen=True, slots=True)
class TimerFired:
    kind: TimerKind
    token: int


@dataclass(frozen=True, slots=True)
class OrganicAttributionFetched:
    payload: AttributionPayload | None = None
    error: DriveNestError | None = None


@dataclass(frozen=True, slots=True)
class ContentUrlFetched:
    url: str | None = None
    error: DriveNestError | None = None


ControllerEvent = (
    AttributionReceived
    | DeepLinkResolved
    | PushReceived
    | ConnectivityChanged
    | PermissionAnswered
    | TimerFired
    | OrganicAttributionFetched
    | ContentUrlFetched
)
