"""Drive phase, app mode, and the snapshot published to the presentation layer."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict


class DrivePhase(StrEnum):
    """Mutually exclusive top-level state of the content loader."""

    IGNITION = "ignition"
    DRIVING = "driving"
    PARKED = "parked"
    NO_SIGNAL = "no_signal"


class AppMode(StrEnum):
    """Persisted outcome of the last resolution (``app_state`` key)."""

    ACTIVE = "Active"
    LEGACY = "Legacy"


class DecisionRule(StrEnum):
    """Which rule of the decision engine produced a phase."""

    AWAITING_ATTRIBUTION = "awaiting_attribution"
    LEGACY_MODE = "legacy_mode"
    ORGANIC_FIRST_LAUNCH = "organic_first_launch"
    DEEP_LINK = "deep_link"
    RESOLVE = "resolve"


class PhaseDecision(BaseModel):
    model_config = ConfigDict(frozen=True)

    phase: DrivePhase
    rule: DecisionRule


class DriveSnapshot(BaseModel):
    """What the presentation layer renders.

    ``content_url`` is only meaningful while ``phase`` is ``DRIVING``;
    ``awaiting_permission`` asks the presentation layer to show the
    notification prompt on top of the ignition screen.
    """

    model_config = ConfigDict(frozen=True)

    phase: DrivePhase = DrivePhase.IGNITION
    content_url: str | None = None
    awaiting_permission: bool = False
