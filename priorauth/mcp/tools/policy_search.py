"""NCD/LCD coverage policy search with deterministic relevance ranking."""
from datetime import date
from typing import Any, Dict, List, Optional

from priorauth.mcp.tools.base import BaseTool
from priorauth.models.prior_auth import clean_procedure_code

PROCEDURE_MATCH_SCORE = 50
DIAGNOSIS_OVERLAP_SCORE = 20
ACTIVE_POLICY_SCORE = 10
TITLE_KEYWORD_SCORE = 5
MAX_RELEVANCE = 100


def _is_active(policy: Dict[str, Any], today: date) -> bool:
    terminated = policy.get("termination_date")
    if not terminated:
        return True
    return date.fromisoformat(str(terminated)[:10]) > today


def score_policy(
    policy: Dict[str, Any],
    procedure_code: str,
    diagnosis_codes: List[str],
    query_text: Optional[str] = None,
    today: Optional[date] = None,
) -> int:
    """
    Relevance score of a policy for a request, capped at 100.

    +50 when the policy covers the procedure code, +20 per overlapping
    diagnosis code, +10 when the policy is currently active and +5 per query
    word found in the policy title.
    """
    today = today or date.today()
    score = 0
    if procedure_code in (policy.get("procedure_codes") or []):
        score += PROCEDURE_MATCH_SCORE
    policy_diagnoses = policy.get("diagnosis_codes") or []
    if policy_diagnoses and diagnosis_codes:
        score += DIAGNOSIS_OVERLAP_SCORE * sum(1 for code in diagnosis_codes if code in policy_diagnoses)
    if _is_active(policy, today):
        score += ACTIVE_POLICY_SCORE
    title = (policy.get("title") or "").lower()
    if query_text and title:
        words = [w for w in query_text.lower().split(" ") if w]
        score += TITLE_KEYWORD_SCORE * sum(1 for w in words if w in title)
    return min(score, MAX_RELEVANCE)


def _unique(items: List[Any]) -> List[Any]:
    seen = []
    for item in items:
        if item not in seen:
            seen.append(item)
    return seen


class PolicySearchTool(BaseTool):
    """Searches coverage policies matching a procedure and diagnoses."""

    name = "ncd-guidelines-search"
    description = (
        "Searches the NCD/LCD guidelines knowledge base for coverage policies matching the requested "
        "procedure and diagnosis codes. Returns matched policies with medical necessity criteria, "
        "required documentation, and approval/denial conditions."
    )
    input_schema = {
        "type": "object",
        "properties": {
            "procedure_code": {"type": "string", "description": "CPT or HCPCS code (e.g. 93000 or E0601)"},
            "diagnosis_codes": {"type": "array", "items": {"type": "string"}},
            "query_text": {"type": "string", "description": "Optional free text matched against policy titles"},
            "policy_type": {"type": "string", "enum": ["NCD", "LCD", "internal", "all"], "default": "all"},
        },
        "required": ["procedure_code"],
    }
    output_schema = {
        "type": "object",
        "properties": {
            "policies": {"type": "array"},
            "medical_necessity_criteria": {"type": "array"},
            "required_documentation": {"type": "array"},
        },
    }
    latency_range_ms = (600, 900)

    async def run(self, params: Dict[str, Any]) -> Dict[str, Any]:
        code = clean_procedure_code(params["procedure_code"])
        diagnosis_codes = params.get("diagnosis_codes") or []
        query_text = params.get("query_text")
        policy_type = params.get("policy_type") or "all"
        source = self._require_data_source()

        policies = await source.list_policies(
            procedure_code=code,
            policy_type=None if policy_type == "all" else policy_type,
        )
        if not policies and diagnosis_codes:
            policies = await source.list_policies(diagnosis_codes=diagnosis_codes)

        today = date.today()
        scored = [
            (policy, score_policy(policy, code, diagnosis_codes, query_text, today))
            for policy in policies
        ]
        # sorted() is stable, so equal scores keep storage order
        scored = sorted(scored, key=lambda pair: pair[1], reverse=True)

        criteria: List[str] = []
        documents: List[str] = []
        for policy, _ in scored:
            criteria.extend(policy.get("medical_necessity_criteria") or [])
            documents.extend(policy.get("required_documentation") or [])

        return {
            "search_query": {
                "procedure_code": code,
                "diagnosis_codes": diagnosis_codes,
                "query_text": query_text,
                "policy_type": policy_type,
            },
            "total_matches": len(scored),
            "policies": [
                {
                    "policy_id": policy.get("policy_id"),
                    "policy_type": policy.get("policy_type"),
                    "title": policy.get("title"),
                    "relevance_score": score,
                    "procedure_codes": policy.get("procedure_codes") or [],
                    "diagnosis_codes": policy.get("diagnosis_codes") or [],
                    "effective_date": policy.get("effective_date"),
                    "medical_necessity_criteria": policy.get("medical_necessity_criteria") or [],
                    "required_documentation": policy.get("required_documentation") or [],
                    "approval_conditions": policy.get("approval_conditions") or {},
                    "denial_conditions": policy.get("denial_conditions") or {},
                    "review_triggers": policy.get("review_triggers") or {},
                    "conservative_treatment_required": bool(policy.get("conservative_treatment_required")),
                    "conservative_treatment_details": policy.get("conservative_treatment_details"),
                    "frequency_limits": policy.get("frequency_limits"),
                }
                for policy, score in scored
            ],
            "medical_necessity_criteria": _unique(criteria),
            "required_documentation": _unique(documents),
        }
