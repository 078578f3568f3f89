"""Models for drivenest."""

from drivenest.models.attribution import (
    AttributionPayload,
    AttributionSource,
    AttributionValue,
    deep_link_url,
    merge_fill_missing,
    push_url,
)
from drivenest.models.events import (
    AttributionReceived,
    ConnectivityChanged,
    ContentUrlFetched,
    ControllerEvent,
    DeepLinkResolved,
    OrganicAttributionFetched,
    PermissionAnswered,
    PushReceived,
    TimerFired,
    TimerKind,
)
from drivenest.models.phase import AppMode, DecisionRule, DrivePhase, DriveSnapshot, PhaseDecision
from drivenest.models.responses import ContentUrlResponse
from drivenest.models.stored import STORED_KEYS, StoredConfig

__all__ = [
    "AppMode",
    "AttributionPayload",
    "AttributionReceived",
    "AttributionSource",
    "AttributionValue",
    "ConnectivityChanged",
    "ContentUrlFetched",
    "ContentUrlResponse",
    "ControllerEvent",
    "DecisionRule",
    "DeepLinkResolved",
    "DrivePhase",
    "DriveSnapshot",
    "OrganicAttributionFetched",
    "PermissionAnswered",
    "PhaseDecision",
    "PushReceived",
    "STORED_KEYS",
    "StoredConfig",
    "TimerFired",
    "TimerKind",
    "deep_link_url",
    "merge_fill_missing",
    "push_url",
]
