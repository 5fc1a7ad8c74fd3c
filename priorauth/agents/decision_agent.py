"""Decision agent: finalizes the recommendation and records it on the request."""
from datetime import datetime, timezone
from typing import Any, Dict, List

from priorauth.agents.base import StageAgent
from priorauth.mcp.tools.criteria_matching import DENIAL_CONDITION_MET, REVIEW_TRIGGER_MET
from priorauth.models.enums import Decision, TraceLevel
from priorauth.models.prior_auth import PriorAuthRequest
from priorauth.models.progress import ProgressCallbacks, StepDescriptor
from priorauth.models.stage_outputs import DecisionOutput, OrchestrationOutput
from priorauth.storage.interfaces import PriorAuthStore
from priorauth.config.logging_config import get_logger

logger = get_logger(__name__)

INACTIVE_MEMBER_CONFIDENCE = 0.95
DEFAULT_CONFIDENCE = 0.5


def _as_decision(value: Any) -> Decision:
    try:
        return Decision(value)
    except ValueError:
        return Decision.REVIEW


def build_rationale(
    decision: Decision,
    match: Dict[str, Any],
    member: Dict[str, Any],
    member_override: bool = False,
) -> str:
    """
    Compose the final human-readable rationale.

    Args:
        decision: Final decision after any override
        match: Criteria matcher output
        member: Member eligibility output
        member_override: Decision was forced by inactive coverage

    Returns:
        Rationale sentences joined by spaces
    """
    scoring = match.get("scoring") or {}
    met: List[str] = match.get("met_criteria") or []
    unmet: List[str] = match.get("unmet_criteria") or []
    flags: List[str] = match.get("flags") or []
    parts: List[str] = []

    if member_override:
        parts.append("Denied: Member eligibility is inactive or has coverage issues.")
        issues = member.get("issues") or []
        if issues:
            parts.append(f"Eligibility issues: {', '.join(issues)}.")
    elif decision == Decision.APPROVE:
        parts.append(
            f"Approved: {scoring.get('criteria_met', 0)}/{scoring.get('total_criteria', 0)} "
            f"criteria met ({scoring.get('match_percentage', 0)}%)."
        )
        if met:
            parts.append(f"Key criteria satisfied: {'; '.join(met[:3])}.")
        parts.append(f"Policy {match.get('policy_id')} requirements fulfilled.")
    elif decision == Decision.DENY:
        parts.append(f"Denied: {scoring.get('criteria_unmet', 0)} criteria not met.")
        if unmet:
            parts.append(f"Unmet requirements: {'; '.join(unmet[:3])}.")
        if DENIAL_CONDITION_MET in flags:
            parts.append("Denial condition triggered per policy guidelines.")
    else:
        parts.append(
            f"Review required: {scoring.get('criteria_met', 0)}/{scoring.get('total_criteria', 0)} criteria met."
        )
        if REVIEW_TRIGGER_MET in flags:
            parts.append("Review trigger conditions detected.")
        parts.append("Peer-to-peer review or additional documentation recommended.")

    plan_type = (member.get("plan") or {}).get("plan_type")
    if plan_type:
        parts.append(f"Member plan: {plan_type}.")

    return " ".join(parts)


class DecisionAgent(StageAgent):
    """
    Reviews the orchestration results and makes the final determination.

    Inactive coverage always denies, whatever the criteria matcher
    recommended. The final status write is best effort: a storage failure is
    logged and reported as ``persisted=False`` rather than raised.
    """

    name = "DecisionAgent"
    category = "Decision Agent"

    def __init__(self, store: PriorAuthStore):
        self.store = store

    async def run(
        self,
        previous: OrchestrationOutput,
        request: PriorAuthRequest,
        callbacks: ProgressCallbacks,
    ) -> DecisionOutput:
        match = previous.tool_outputs.get("match") or {}
        member = previous.tool_outputs.get("member") or {}

        await callbacks.trace(TraceLevel.INFO, self.category, "Decision Agent reviewing tool outputs", {
            "agent": self.name,
            "recommendation": match.get("decision"),
            "policy_id": previous.policy_id,
        })

        decision = _as_decision(match.get("decision", Decision.REVIEW.value))
        confidence = float(match.get("confidence") or DEFAULT_CONFIDENCE)
        member_override = not member.get("is_active", False)
        if member_override:
            decision = Decision.DENY
            confidence = INACTIVE_MEMBER_CONFIDENCE

        rationale = build_rationale(decision, match, member, member_override=member_override)
        status = decision.to_status()

        persisted = True
        try:
            await self.store.update_request(
                request.request_id,
                status=status,
                decision_rationale=rationale,
                decision_date=datetime.now(timezone.utc),
            )
        except Exception as e:
            persisted = False
            logger.error("Failed to record final decision", request_id=request.request_id, error=str(e))

        scoring = match.get("scoring") or {}
        await callbacks.step(StepDescriptor(
            name="Decision Agent",
            description="Decision agent reviews tool outputs and finalizes the determination",
            details=[
                f"Final decision: {decision.value.upper()}",
                f"Confidence: {confidence}",
                f"Criteria met: {scoring.get('criteria_met', 0)}/{scoring.get('total_criteria', 0)}",
                "Member eligibility override applied" if member_override else f"Status set to {status.value}",
            ],
        ))
        await callbacks.trace(
            TraceLevel.SUCCESS if decision == Decision.APPROVE else TraceLevel.WARNING,
            self.category,
            f"Final decision: {decision.value.upper()}",
            {
                "agent": self.name,
                "decision": decision.value,
                "confidence": confidence,
                "criteria_met_pct": scoring.get("match_percentage"),
                "flags": match.get("flags") or [],
                "persisted": persisted,
            },
        )

        logger.info(
            "Final decision made",
            request_id=request.request_id,
            decision=decision.value,
            confidence=confidence,
            member_override=member_override,
        )
        return DecisionOutput(
            decision=decision,
            status=status,
            confidence=confidence,
            rationale=rationale,
            scoring=scoring,
            policy_id=match.get("policy_id") or previous.policy_id,
            flags=match.get("flags") or [],
            member_override=member_override,
            persisted=persisted,
        )
