"""Policy criteria matching.

Evaluates clinical evidence against a coverage policy's criteria and derives
an approve/deny/review recommendation. Criterion evaluation itself is a
heuristic stand-in for NLP matching; the decision policy in
``derive_decision`` is the part callers rely on.
"""
import random
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from priorauth.mcp.tools.base import BaseTool
from priorauth.models.enums import CriterionWeight, Decision

AUTO_APPROVE_ELIGIBLE = "AUTO_APPROVE_ELIGIBLE"
DENIAL_CONDITION_MET = "DENIAL_CONDITION_MET"
REVIEW_TRIGGER_MET = "REVIEW_TRIGGER_MET"
POLICY_NOT_FOUND = "POLICY_NOT_FOUND"

ELIGIBILITY_CRITERION = "Member eligibility active"
CONSERVATIVE_TREATMENT_CRITERION = "Conservative treatment documented"
DENIAL_TRIGGER_PREFIX = "Denial trigger: "

# Decision policy confidences, in branch order
CONFIDENCE_CRITICAL_UNMET = 0.85
CONFIDENCE_DENIAL_CONDITION = 0.80
CONFIDENCE_AUTO_APPROVE = 0.95
CONFIDENCE_NEEDS_REVIEW = 0.65
CONFIDENCE_MOSTLY_MET = 0.88
CONFIDENCE_PARTIALLY_MET = 0.60
CONFIDENCE_INSUFFICIENT = 0.75

APPROVE_THRESHOLD = 0.8
REVIEW_THRESHOLD = 0.5


@dataclass(frozen=True)
class CriterionResult:
    """Outcome of evaluating one policy criterion."""
    criterion: str
    met: bool
    weight: CriterionWeight
    detail: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "criterion": self.criterion,
            "met": self.met,
            "weight": self.weight.value,
            "detail": self.detail,
        }


@dataclass(frozen=True)
class DecisionRecommendation:
    decision: Decision
    confidence: float
    rationale: str


def _pct(met: int, total: int) -> str:
    return f"{met / total * 100:.0f}" if total else "0"


def derive_decision(
    results: List[CriterionResult],
    flags: List[str],
    met_criteria: List[str],
    unmet_criteria: List[str],
    policy_id: str,
) -> DecisionRecommendation:
    """
    Apply the decision policy, first matching branch wins.

    1. Unmet critical criterion -> deny
    2. Denial condition triggered -> deny
    3. Auto-approve eligible with no unmet high criterion -> approve
    4. Review trigger, or any unmet high criterion -> review
    5. Met fraction >= 0.8 -> approve
    6. Met fraction >= 0.5 -> review
    7. Otherwise -> deny

    Args:
        results: Evaluated criteria
        flags: Policy flags raised during evaluation
        met_criteria: Names of met criteria, in evaluation order
        unmet_criteria: Names of unmet criteria and denial triggers, in evaluation order
        policy_id: Policy the criteria came from

    Returns:
        Recommendation whose rationale names the condition that decided it
    """
    total = len(results)
    met = sum(1 for r in results if r.met)
    fraction = met / total if total else 0.0
    critical_unmet = [r for r in results if not r.met and r.weight == CriterionWeight.CRITICAL]
    high_unmet = [r for r in results if not r.met and r.weight == CriterionWeight.HIGH]

    if critical_unmet:
        return DecisionRecommendation(
            Decision.DENY,
            CONFIDENCE_CRITICAL_UNMET,
            "Denied: Critical criteria not met - " + ", ".join(r.criterion for r in critical_unmet),
        )

    if DENIAL_CONDITION_MET in flags:
        triggers = [u for u in unmet_criteria if u.startswith(DENIAL_TRIGGER_PREFIX)]
        return DecisionRecommendation(
            Decision.DENY,
            CONFIDENCE_DENIAL_CONDITION,
            f"Denied: Denial condition triggered per policy {policy_id}. " + ". ".join(triggers),
        )

    if AUTO_APPROVE_ELIGIBLE in flags and not high_unmet:
        return DecisionRecommendation(
            Decision.APPROVE,
            CONFIDENCE_AUTO_APPROVE,
            f"Auto-approved: No critical or high criteria unmet per policy {policy_id}. " + ", ".join(met_criteria[:3]) + ".",
        )

    if REVIEW_TRIGGER_MET in flags or high_unmet:
        parts = [f"Review required: {len(high_unmet)} criteria need verification."]
        if REVIEW_TRIGGER_MET in flags:
            parts.append("Review trigger conditions detected.")
        if unmet_criteria:
            parts.append(", ".join(unmet_criteria[:2]) + ".")
        return DecisionRecommendation(Decision.REVIEW, CONFIDENCE_NEEDS_REVIEW, " ".join(parts))

    if fraction >= APPROVE_THRESHOLD:
        return DecisionRecommendation(
            Decision.APPROVE,
            CONFIDENCE_MOSTLY_MET,
            f"Approved: {met}/{total} criteria met ({_pct(met, total)}%). "
            f"Medical necessity established per {policy_id}.",
        )

    if fraction >= REVIEW_THRESHOLD:
        return DecisionRecommendation(
            Decision.REVIEW,
            CONFIDENCE_PARTIALLY_MET,
            f"Review recommended: {met}/{total} criteria met. Additional documentation may be needed.",
        )

    return DecisionRecommendation(
        Decision.DENY,
        CONFIDENCE_INSUFFICIENT,
        f"Denied: Only {met}/{total} criteria met. "
        f"Insufficient clinical evidence for medical necessity per {policy_id}.",
    )


def evaluate_criterion(
    criterion: str,
    evidence: Dict[str, Any],
    context: Dict[str, Any],
    rng: random.Random,
) -> bool:
    """
    Heuristic check of a free-text criterion against the evidence.

    Keyword rules decide first; otherwise the outcome is drawn from ``rng``
    with odds depending on the request's stored status.
    """
    text = criterion.lower()
    findings = evidence.get("clinical_findings") or {}

    if criterion in (findings.get("satisfied_criteria") or []):
        return True
    if "documented" in text and evidence.get("document_data"):
        return True
    if "symptom" in text and findings:
        return True
    if "confirm" in text and evidence.get("patient"):
        return True
    if "screening" in text and any(str(c).startswith("Z") for c in context.get("diagnosis_codes") or []):
        return True

    status = context.get("status")
    if status == "approved":
        return True
    if status == "denied":
        return rng.random() > 0.6
    if status == "review":
        return rng.random() > 0.3
    return rng.random() > 0.25


def denial_condition_triggered(condition: str, context: Dict[str, Any], rng: random.Random) -> bool:
    """Denial conditions only fire for requests already on record as denied."""
    if context.get("status") != "denied":
        return False
    text = condition.lower()
    if "no" in text and "sleep study" in text and "E0601" in (context.get("procedure_code") or ""):
        return True
    if "not provided" in text or "insufficient" in text:
        return rng.random() > 0.5
    return False


def review_trigger_triggered(trigger: str, context: Dict[str, Any], rng: random.Random) -> bool:
    """Review triggers only fire for requests already on record as under review."""
    if context.get("status") != "review":
        return False
    return rng.random() > 0.4


def evaluate_criteria(
    policy: Dict[str, Any],
    evidence: Dict[str, Any],
    member_info: Dict[str, Any],
    claims_history: Dict[str, Any],
    context: Dict[str, Any],
    rng: random.Random,
) -> Tuple[List[CriterionResult], List[str], List[str], List[str]]:
    """
    Evaluate every criterion a policy imposes.

    Returns:
        (results, met_criteria, unmet_criteria, flags)
    """
    results: List[CriterionResult] = []
    met: List[str] = []
    unmet: List[str] = []
    flags: List[str] = []

    eligible = member_info.get("is_active") is not False
    results.append(CriterionResult(
        ELIGIBILITY_CRITERION,
        eligible,
        CriterionWeight.CRITICAL,
        "Member has active coverage" if eligible else "Member eligibility issue detected",
    ))
    (met if eligible else unmet).append(
        ELIGIBILITY_CRITERION if eligible else "Member eligibility not confirmed"
    )

    for criterion in policy.get("medical_necessity_criteria") or []:
        ok = evaluate_criterion(criterion, evidence, context, rng)
        results.append(CriterionResult(
            criterion,
            ok,
            CriterionWeight.HIGH,
            "Criterion satisfied by clinical evidence" if ok else "Insufficient evidence for criterion",
        ))
        (met if ok else unmet).append(criterion)

    has_documents = bool(evidence.get("document_data") or evidence.get("raw_text"))
    for document in policy.get("required_documentation") or []:
        name = f"Documentation: {document}"
        results.append(CriterionResult(
            name,
            has_documents,
            CriterionWeight.MEDIUM,
            "Document provided" if has_documents else "Document not found in submission",
        ))
        (met if has_documents else unmet).append(name)

    if policy.get("conservative_treatment_required"):
        details = policy.get("conservative_treatment_details") or {}
        findings = evidence.get("clinical_findings") or {}
        treated = bool(
            claims_history.get("related_procedures")
            or (findings.get("conservative_treatment") or {}).get("documented")
        )
        results.append(CriterionResult(
            CONSERVATIVE_TREATMENT_CRITERION,
            treated,
            CriterionWeight.HIGH,
            f"Conservative treatment documented ({details.get('min_duration') or 'duration documented'})"
            if treated else "Conservative treatment documentation missing or incomplete",
        ))
        if treated:
            met.append(CONSERVATIVE_TREATMENT_CRITERION)
        else:
            unmet.append("Conservative treatment documentation required")

    if (policy.get("approval_conditions") or {}).get("auto_approve"):
        flags.append(AUTO_APPROVE_ELIGIBLE)

    for condition in (policy.get("denial_conditions") or {}).get("conditions") or []:
        if denial_condition_triggered(condition, context, rng):
            if DENIAL_CONDITION_MET not in flags:
                flags.append(DENIAL_CONDITION_MET)
            unmet.append(f"{DENIAL_TRIGGER_PREFIX}{condition}")

    for trigger in (policy.get("review_triggers") or {}).get("conditions") or []:
        if review_trigger_triggered(trigger, context, rng) and REVIEW_TRIGGER_MET not in flags:
            flags.append(REVIEW_TRIGGER_MET)

    return results, met, unmet, flags


def score_criteria(results: List[CriterionResult]) -> Dict[str, Any]:
    total = len(results)
    met = sum(1 for r in results if r.met)
    return {
        "total_criteria": total,
        "criteria_met": met,
        "criteria_unmet": total - met,
        "match_percentage": round(met / total * 100, 1) if total else 0,
    }


class CriteriaMatchingTool(BaseTool):
    """Matches clinical evidence against a coverage policy and recommends a decision."""

    name = "policy-criteria-matching"
    description = (
        "Evaluates clinical evidence against matched coverage policy criteria. Checks medical "
        "necessity requirements, conservative treatment documentation, required documentation "
        "completeness, and computes a decision recommendation (approve/deny/review) with "
        "confidence scoring and rationale."
    )
    input_schema = {
        "type": "object",
        "properties": {
            "policy_id": {"type": "string", "description": "Coverage policy ID to evaluate against"},
            "clinical_evidence": {"type": "object", "description": "Document processing plus extraction output"},
            "member_info": {"type": "object", "description": "Member eligibility and benefits"},
            "claims_history": {"type": "object", "description": "Claims history and utilization"},
            "request_context": {"type": "object", "description": "Original request details"},
        },
        "required": ["policy_id", "clinical_evidence"],
    }
    output_schema = {
        "type": "object",
        "properties": {
            "decision": {"type": "string", "enum": [d.value for d in Decision]},
            "confidence": {"type": "number"},
            "rationale": {"type": "string"},
            "criteria_results": {"type": "array"},
            "met_criteria": {"type": "array"},
            "unmet_criteria": {"type": "array"},
            "flags": {"type": "array"},
            "scoring": {"type": "object"},
        },
    }
    latency_range_ms = (800, 1200)

    async def run(self, params: Dict[str, Any]) -> Dict[str, Any]:
        policy_id = params["policy_id"]
        evidence = params["clinical_evidence"] or {}
        member_info = params.get("member_info") or {}
        claims_history = params.get("claims_history") or {}
        context = params.get("request_context") or {}

        policy = await self._require_data_source().get_policy(policy_id)
        if policy is None:
            return self._policy_not_found(policy_id)

        results, met, unmet, flags = evaluate_criteria(
            policy, evidence, member_info, claims_history, context, self.rng
        )
        recommendation = derive_decision(results, flags, met, unmet, policy_id)

        return {
            "policy_id": policy_id,
            "policy_title": policy.get("title"),
            "policy_type": policy.get("policy_type"),
            "decision": recommendation.decision.value,
            "confidence": round(recommendation.confidence, 3),
            "rationale": recommendation.rationale,
            "criteria_results": [r.to_dict() for r in results],
            "met_criteria": met,
            "unmet_criteria": unmet,
            "flags": flags,
            "scoring": score_criteria(results),
        }

    @staticmethod
    def _policy_not_found(policy_id: Optional[str]) -> Dict[str, Any]:
        return {
            "policy_id": policy_id,
            "decision": Decision.REVIEW.value,
            "confidence": 0.3,
            "error": f"Policy {policy_id} not found",
            "rationale": "Unable to find matching coverage policy. Manual review required.",
            "criteria_results": [],
            "met_criteria": [],
            "unmet_criteria": ["Policy not found"],
            "flags": [POLICY_NOT_FOUND],
            "scoring": score_criteria([]),
        }
