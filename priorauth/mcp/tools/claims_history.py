"""Claims history retrieval tool.

Reads a member's claims inside a lookback window, picks out the claims
related to the requested procedure or diagnoses, and derives utilization
metrics. Storage errors propagate to the caller; there are no retries.
"""
from datetime import date
from typing import Any, Dict, List, Optional

from priorauth.mcp.tools.base import BaseTool
from priorauth.models.prior_auth import clean_procedure_code
from priorauth.config.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_LOOKBACK_MONTHS = 12


def months_before(anchor: date, months: int) -> date:
    """Same calendar day ``months`` earlier, clamped to the end of shorter months."""
    month_index = anchor.year * 12 + (anchor.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    for day in (anchor.day, 30, 29, 28):
        try:
            return date(year, month, day)
        except ValueError:
            continue
    return date(year, month, 28)


def _amount(value: Any) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def select_related_claims(
    claims: List[Dict[str, Any]],
    procedure_code: Optional[str],
    diagnosis_codes: Optional[List[str]],
) -> List[Dict[str, Any]]:
    """
    Claims matching the cleaned procedure code, followed by claims sharing a diagnosis code.

    Each claim appears at most once.
    """
    related: List[Dict[str, Any]] = []
    seen = set()

    def _add(claim: Dict[str, Any]) -> None:
        key = claim.get("claim_id") or id(claim)
        if key not in seen:
            seen.add(key)
            related.append(claim)

    if procedure_code:
        code = clean_procedure_code(procedure_code)
        for claim in claims:
            if claim.get("cpt_code") == code:
                _add(claim)

    if diagnosis_codes:
        wanted = set(diagnosis_codes)
        for claim in claims:
            if wanted.intersection(claim.get("icd10_codes") or []):
                _add(claim)

    return related


def compute_utilization(claims: List[Dict[str, Any]], related: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Derive utilization metrics over the claims in the window."""
    paid = [c for c in claims if c.get("claim_status") == "paid"]
    denied = [c for c in claims if c.get("claim_status") == "denied"]
    total_billed = sum(_amount(c.get("billed_amount")) for c in claims)
    total_paid = sum(_amount(c.get("paid_amount")) for c in claims)
    total_patient = sum(_amount(c.get("patient_responsibility")) for c in claims)

    return {
        "total_billed": f"{total_billed:.2f}",
        "total_paid": f"{total_paid:.2f}",
        "total_patient_responsibility": f"{total_patient:.2f}",
        "claims_paid": len(paid),
        "claims_denied": len(denied),
        "approval_rate": f"{len(paid) / len(claims) * 100:.1f}%" if claims else "N/A",
        "related_procedure_count": len(related),
        "prior_auths_on_file": sum(1 for c in claims if c.get("auth_number")),
        "average_claim_amount": f"{total_billed / len(claims):.2f}" if claims else "0.00",
        "unique_providers": len({c.get("provider_name") for c in claims}),
    }


class ClaimsHistoryTool(BaseTool):
    """Retrieves member claims history from the claims data product."""

    name = "claims-history-retrieval"
    description = (
        "Retrieves member claims history from the Claims data product. Supports filtering by "
        "date range, procedure codes, and diagnosis codes. Computes utilization metrics including "
        "total spend, related procedures, and approval/denial rates."
    )
    input_schema = {
        "type": "object",
        "properties": {
            "member_id": {"type": "string", "description": "Member ID to retrieve claims for"},
            "lookback_months": {
                "type": "integer",
                "default": DEFAULT_LOOKBACK_MONTHS,
                "description": "Number of months to look back for claims",
            },
            "procedure_code": {"type": "string", "description": "Optional CPT/HCPCS code to filter related claims"},
            "diagnosis_codes": {
                "type": "array",
                "items": {"type": "string"},
                "description": "Optional ICD-10 codes to filter related claims",
            },
            "include_metrics": {"type": "boolean", "default": True},
        },
        "required": ["member_id"],
    }
    output_schema = {
        "type": "object",
        "properties": {
            "claims": {"type": "array"},
            "related_procedures": {"type": "array"},
            "utilization_metrics": {"type": "object"},
            "summary": {"type": "object"},
        },
    }
    latency_range_ms = (700, 1100)

    def __init__(self, *args, default_lookback_months: int = DEFAULT_LOOKBACK_MONTHS, today=None, **kwargs):
        super().__init__(*args, **kwargs)
        self.default_lookback_months = default_lookback_months
        self._today = today or date.today

    async def run(self, params: Dict[str, Any]) -> Dict[str, Any]:
        member_id = params["member_id"]
        lookback_months = params.get("lookback_months")
        if lookback_months is None:
            lookback_months = self.default_lookback_months
        lookback_months = int(lookback_months)
        procedure_code = params.get("procedure_code")
        diagnosis_codes = params.get("diagnosis_codes") or []
        include_metrics = params.get("include_metrics", True)

        end_date = self._today()
        start_date = months_before(end_date, lookback_months)

        claims = await self._require_data_source().list_claims(member_id, since=start_date)
        related = select_related_claims(claims, procedure_code, diagnosis_codes)

        logger.debug(
            "Claims retrieved",
            member_id=member_id,
            total=len(claims),
            related=len(related),
            since=start_date.isoformat(),
        )

        result: Dict[str, Any] = {
            "member_id": member_id,
            "lookback_months": lookback_months,
            "date_range": {"from": start_date.isoformat(), "to": end_date.isoformat()},
            "total_claims": len(claims),
            "claims": [
                {
                    "claim_id": c.get("claim_id"),
                    "service_date": c.get("service_date"),
                    "provider": c.get("provider_name"),
                    "facility": c.get("facility_name"),
                    "cpt_code": c.get("cpt_code"),
                    "description": c.get("cpt_description"),
                    "diagnosis_codes": c.get("icd10_codes") or [],
                    "billed_amount": _amount(c.get("billed_amount")),
                    "paid_amount": _amount(c.get("paid_amount")),
                    "status": c.get("claim_status"),
                    "denial_reason": c.get("denial_reason"),
                    "service_type": c.get("service_type"),
                }
                for c in claims
            ],
            "related_procedures": [
                {
                    "claim_id": c.get("claim_id"),
                    "service_date": c.get("service_date"),
                    "cpt_code": c.get("cpt_code"),
                    "description": c.get("cpt_description"),
                    "status": c.get("claim_status"),
                    "paid_amount": _amount(c.get("paid_amount")),
                }
                for c in related
            ],
        }

        if include_metrics:
            denied = [c for c in claims if c.get("claim_status") == "denied"]
            result["utilization_metrics"] = compute_utilization(claims, related)
            result["summary"] = {
                "has_recent_related_claims": bool(related),
                "has_recent_denials": bool(denied),
                "denial_reasons": [c["denial_reason"] for c in denied if c.get("denial_reason")],
                "last_claim_date": claims[0].get("service_date") if claims else None,
            }

        return result
