"""Phase decision engine.

Pure mapping from launch facts to a drive phase. Rules are evaluated in
order and the first match wins, so conflicting inputs (a sticky legacy
mode next to fresh attribution, say) always resolve the same way.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from drivenest.models.attribution import AttributionPayload
from drivenest.models.phase import AppMode, DecisionRule, DrivePhase, PhaseDecision


def _is_organic(attribution: AttributionPayload | Mapping[str, Any]) -> bool:
    if isinstance(attribution, AttributionPayload):
        return attribution.is_organic
    return AttributionPayload(data=dict(attribution)).is_organic


def decide(
    attribution: AttributionPayload | Mapping[str, Any] | None,
    *,
    is_first_launch: bool,
    resolved_url: str | None,
    pending_deep_link_url: str | None,
    stored_mode: AppMode | None,
) -> PhaseDecision:
    """Return the phase together with the rule that produced it.

    1. empty attribution            -> IGNITION (still waiting, not terminal)
    2. stored mode is Legacy        -> PARKED
    3. first launch, organic install -> IGNITION (delayed organic fetch)
    4. deep link, nothing resolved  -> DRIVING
    5. otherwise                    -> IGNITION (permission check, config fetch)
    """
    if attribution is None or len(attribution) == 0:
        return PhaseDecision(phase=DrivePhase.IGNITION, rule=DecisionRule.AWAITING_ATTRIBUTION)
    if stored_mode is AppMode.LEGACY:
        return PhaseDecision(phase=DrivePhase.PARKED, rule=DecisionRule.LEGACY_MODE)
    if is_first_launch and _is_organic(attribution):
        return PhaseDecision(phase=DrivePhase.IGNITION, rule=DecisionRule.ORGANIC_FIRST_LAUNCH)
    if pending_deep_link_url and not resolved_url:
        return PhaseDecision(phase=DrivePhase.DRIVING, rule=DecisionRule.DEEP_LINK)
    return PhaseDecision(phase=DrivePhase.IGNITION, rule=DecisionRule.RESOLVE)


def decide_phase(
    attribution: AttributionPayload | Mapping[str, Any] | None,
    *,
    is_first_launch: bool,
    resolved_url: str | None,
    pending_deep_link_url: str | None,
    stored_mode: AppMode | None,
) -> DrivePhase:
    return decide(
        attribution,
        is_first_launch=is_first_launch,
        resolved_url=resolved_url,
        pending_deep_link_url=pending_deep_link_url,
        stored_mode=stored_mode,
    ).phase
