"""Member eligibility lookup against the member data product."""
from datetime import date
from typing import Any, Dict, List, Optional, Union

from priorauth.mcp.tools.base import BaseTool

QUERY_TYPES = ("eligibility", "benefits", "coverage", "full-profile")


def _as_date(value: Union[str, date, None]) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def _money(value: Any) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def eligibility_issues(member: Dict[str, Any], as_of: date) -> List[str]:
    """Issue codes that make a member ineligible on ``as_of``."""
    issues = []
    if not member.get("is_active"):
        issues.append("MEMBER_INACTIVE")
    effective = _as_date(member.get("effective_date"))
    if effective and as_of < effective:
        issues.append("COVERAGE_NOT_YET_EFFECTIVE")
    terminated = _as_date(member.get("termination_date"))
    if terminated and as_of > terminated:
        issues.append("COVERAGE_TERMINATED")
    return issues


class MemberEligibilityTool(BaseTool):
    """Verifies member eligibility, coverage status and benefits."""

    name = "member-eligibility-lookup"
    description = (
        "Verifies member eligibility and coverage status by querying the Member 360 data product. "
        "Returns plan details, benefits, copay/deductible information, and flags any eligibility issues."
    )
    input_schema = {
        "type": "object",
        "properties": {
            "member_id": {"type": "string", "description": "Member ID to look up (e.g., MEM-100001)"},
            "query_type": {"type": "string", "enum": list(QUERY_TYPES), "default": "full-profile"},
            "as_of_date": {"type": "string", "format": "date", "description": "Defaults to today"},
        },
        "required": ["member_id"],
    }
    output_schema = {
        "type": "object",
        "properties": {
            "found": {"type": "boolean"},
            "is_active": {"type": "boolean"},
            "issues": {"type": "array"},
            "eligibility": {"type": "object"},
            "plan": {"type": "object"},
            "benefits": {"type": "object"},
            "member": {"type": "object"},
        },
    }
    latency_range_ms = (500, 800)

    async def run(self, params: Dict[str, Any]) -> Dict[str, Any]:
        member_id = params["member_id"]
        query_type = params.get("query_type") or "full-profile"
        as_of = _as_date(params.get("as_of_date")) or date.today()

        member = await self._require_data_source().get_member(member_id)
        if member is None:
            return {
                "found": False,
                "member_id": member_id,
                "is_active": False,
                "error": f"Member {member_id} not found in Member 360 database",
                "issues": ["MEMBER_NOT_FOUND"],
            }

        issues = eligibility_issues(member, as_of)
        result: Dict[str, Any] = {
            "found": True,
            "member_id": member_id,
            "query_type": query_type,
            "checked_as_of": as_of.isoformat(),
            "is_active": bool(member.get("is_active")) and not issues,
            "issues": issues,
        }
        full = query_type == "full-profile"

        if full or query_type == "eligibility":
            result["eligibility"] = {
                "status": "Active" if not issues else "Issue Detected",
                "effective_date": member.get("effective_date"),
                "termination_date": member.get("termination_date"),
                "pre_auth_required": member.get("pre_auth_required"),
            }

        if full or query_type == "coverage":
            result["plan"] = {
                "plan_type": member.get("plan_type"),
                "plan_id": member.get("plan_id"),
                "group_number": member.get("group_number"),
                "coverage_level": member.get("coverage_level"),
            }

        if full or query_type == "benefits":
            deductible_annual = _money(member.get("deductible_annual"))
            deductible_met = _money(member.get("deductible_met"))
            max_oop = _money(member.get("max_out_of_pocket"))
            oop_met = _money(member.get("oop_met"))
            result["benefits"] = {
                "copay_primary": _money(member.get("copay_primary")),
                "copay_specialist": _money(member.get("copay_specialist")),
                "deductible_annual": deductible_annual,
                "deductible_met": deductible_met,
                "deductible_fully_met": deductible_met >= deductible_annual,
                "max_out_of_pocket": max_oop,
                "oop_met": oop_met,
                "oop_max_reached": oop_met >= max_oop,
            }

        if full:
            result["member"] = {
                "first_name": member.get("first_name"),
                "last_name": member.get("last_name"),
                "date_of_birth": member.get("date_of_birth"),
                "gender": member.get("gender"),
                "address": member.get("address") or {},
                "phone": member.get("phone"),
                "email": member.get("email"),
                "pcp": {"name": member.get("pcp_name"), "npi": member.get("pcp_npi")},
            }

        return result
