"""Tests for the mock prior authorization tools, called through the registry."""
from datetime import date, timedelta

import pytest

from priorauth.mcp.exceptions import ToolValidationError
from priorauth.mcp.tools import TOOL_CLASSES, build_tools
from priorauth.mcp.tools.claims_history import months_before, select_related_claims
from priorauth.mcp.tools.criteria_matching import AUTO_APPROVE_ELIGIBLE, POLICY_NOT_FOUND
from priorauth.mcp.tools.policy_search import score_policy


def test_registry_exposes_all_six_tools(registry):
    names = {tool["name"] for tool in registry.list_tools()}

    assert names == {
        "intelligent-document-processing",
        "clinical-data-extraction",
        "member-eligibility-lookup",
        "claims-history-retrieval",
        "ncd-guidelines-search",
        "policy-criteria-matching",
    }
    assert len(TOOL_CLASSES) == 6


def test_tools_share_injected_random_source(data_source, rng, settings):
    tools = build_tools(data_source, rng=rng, settings=settings)

    assert all(tool.rng is rng for tool in tools)
    assert all(tool.latency_scale == 0.0 for tool in tools)


class TestDocumentProcessing:

    async def test_structured_output(self, registry):
        result = await registry.call_tool("intelligent-document-processing", {
            "document_path": "/documents/PA-2026-0409.pdf",
            "document_type": "prior-auth-request",
        })

        assert result["document_id"] == "PA-2026-0409"
        assert result["page_count"] == 3
        assert 0.89 <= result["overall_confidence"] <= 0.98
        assert result["entities"]
        assert result["metadata"]["file_exists"] is False
        assert result["processing_time_ms"] >= 0

    async def test_requires_document_type(self, registry):
        with pytest.raises(ToolValidationError, match="document_type"):
            await registry.call_tool("intelligent-document-processing", {"document_path": "/x.pdf"})


class TestClinicalExtraction:

    async def test_codes_validated_against_policies(self, registry):
        result = await registry.call_tool("clinical-data-extraction", {
            "document_data": {"sections": [{"title": "Assessment"}]},
            "request_context": {
                "procedure_code": "CPT-27447",
                "procedure_name": "Total Knee Arthroplasty",
                "diagnosis_codes": ["M17.11", "M17.12"],
                "patient_name": "Maria Garcia",
                "member_id": "MEM-100004",
            },
        })

        assert result["patient"]["name"] == "Maria Garcia"
        assert result["procedure_codes"][0]["code"] == "CPT-27447"
        assert [d["is_primary"] for d in result["diagnosis_codes"]] == [True, False]
        assert result["code_validation"]["procedure_code_found"] is True
        assert result["code_validation"]["matching_policy"] == "NCD-150.4"
        assert result["clinical_findings"]["conservative_treatment"]["documented"] is True
        assert result["clinical_findings"]["source_sections"] == ["Assessment"]


class TestMemberEligibility:

    async def test_active_member(self, registry):
        result = await registry.call_tool("member-eligibility-lookup", {"member_id": "MEM-100004"})

        assert result["found"] is True
        assert result["is_active"] is True
        assert result["issues"] == []
        assert result["plan"]["plan_type"] == "PPO"
        assert result["benefits"]["deductible_fully_met"] is False
        assert result["member"]["pcp"]["npi"] == "1234567001"

    async def test_terminated_member(self, registry):
        result = await registry.call_tool("member-eligibility-lookup", {"member_id": "MEM-100007"})

        assert result["is_active"] is False
        assert "MEMBER_INACTIVE" in result["issues"]
        assert "COVERAGE_TERMINATED" in result["issues"]
        assert result["eligibility"]["status"] == "Issue Detected"

    async def test_unknown_member(self, registry):
        result = await registry.call_tool("member-eligibility-lookup", {"member_id": "MEM-999999"})

        assert result["found"] is False
        assert result["is_active"] is False
        assert result["issues"] == ["MEMBER_NOT_FOUND"]

    async def test_query_type_limits_sections(self, registry):
        result = await registry.call_tool("member-eligibility-lookup", {
            "member_id": "MEM-100004",
            "query_type": "benefits",
        })

        assert "benefits" in result
        assert "plan" not in result
        assert "member" not in result


class TestClaimsHistory:

    async def test_lookback_window_and_related_claims(self, registry):
        result = await registry.call_tool("claims-history-retrieval", {
            "member_id": "MEM-100004",
            "procedure_code": "27447",
            "diagnosis_codes": ["M17.11"],
        })

        # the 500 day old office visit falls outside the 12 month window
        assert result["total_claims"] == 3
        assert result["lookback_months"] == 12
        assert len(result["related_procedures"]) == 3
        assert result["summary"]["has_recent_denials"] is True
        assert result["summary"]["last_claim_date"] == (date.today() - timedelta(days=40)).isoformat()
        assert result["utilization_metrics"]["approval_rate"] == "66.7%"

    async def test_metrics_optional(self, registry):
        result = await registry.call_tool("claims-history-retrieval", {
            "member_id": "MEM-100004",
            "include_metrics": False,
        })

        assert "utilization_metrics" not in result
        assert "summary" not in result

    async def test_zero_lookback_is_honoured(self, registry):
        result = await registry.call_tool("claims-history-retrieval", {
            "member_id": "MEM-100004",
            "lookback_months": 0,
        })

        assert result["lookback_months"] == 0
        assert result["total_claims"] == 0
        assert result["date_range"]["from"] == date.today().isoformat()

    def test_months_before_clamps_short_months(self):
        assert months_before(date(2026, 3, 31), 1) == date(2026, 2, 28)
        assert months_before(date(2026, 1, 15), 12) == date(2025, 1, 15)

    def test_related_claims_are_unique(self):
        claims = [
            {"claim_id": "A", "cpt_code": "27447", "icd10_codes": ["M17.11"]},
            {"claim_id": "B", "cpt_code": "97110", "icd10_codes": ["M17.11"]},
            {"claim_id": "C", "cpt_code": "99214", "icd10_codes": ["Z00.00"]},
        ]

        related = select_related_claims(claims, "CPT-27447", ["M17.11"])

        assert [c["claim_id"] for c in related] == ["A", "B"]


class TestPolicySearch:

    async def test_procedure_match_ranked_first(self, registry):
        result = await registry.call_tool("ncd-guidelines-search", {
            "procedure_code": "CPT-27447",
            "diagnosis_codes": ["M17.11"],
        })

        assert result["total_matches"] == 1
        top = result["policies"][0]
        assert top["policy_id"] == "NCD-150.4"
        assert top["relevance_score"] == 80
        assert result["search_query"]["procedure_code"] == "27447"
        assert len(result["required_documentation"]) == 5

    async def test_falls_back_to_diagnosis_search(self, registry):
        result = await registry.call_tool("ncd-guidelines-search", {
            "procedure_code": "99999",
            "diagnosis_codes": ["Z12.11"],
        })

        assert [p["policy_id"] for p in result["policies"]] == ["NCD-210.3"]

    async def test_no_match(self, registry):
        result = await registry.call_tool("ncd-guidelines-search", {"procedure_code": "00000"})

        assert result["total_matches"] == 0
        assert result["policies"] == []

    def test_score_is_capped(self):
        policy = {"procedure_codes": ["1"], "diagnosis_codes": ["a", "b", "c"], "title": "knee"}

        assert score_policy(policy, "1", ["a", "b", "c"], query_text="knee") == 100


class TestCriteriaMatching:

    async def test_auto_approve_policy(self, registry):
        result = await registry.call_tool("policy-criteria-matching", {
            "policy_id": "NCD-210.3",
            "clinical_evidence": {"document_data": {"page_count": 3}, "patient": {"name": "Sarah Davis"}},
            "member_info": {"is_active": True},
            "request_context": {"status": "pending", "diagnosis_codes": ["Z12.11"]},
        })

        assert result["decision"] == "approve"
        assert result["confidence"] == 0.95
        assert AUTO_APPROVE_ELIGIBLE in result["flags"]
        assert result["rationale"].startswith("Auto-approved")
        assert result["scoring"]["criteria_unmet"] == 0

    async def test_unknown_policy_needs_review(self, registry):
        result = await registry.call_tool("policy-criteria-matching", {
            "policy_id": "UNKNOWN",
            "clinical_evidence": {},
        })

        assert result["decision"] == "review"
        assert result["confidence"] == 0.3
        assert result["flags"] == [POLICY_NOT_FOUND]
        assert result["scoring"]["total_criteria"] == 0

    async def test_empty_evidence_is_present(self, registry):
        # an empty mapping satisfies the presence check
        result = await registry.call_tool("policy-criteria-matching", {
            "policy_id": "LCD-056",
            "clinical_evidence": {},
            "member_info": {"is_active": True},
            "request_context": {"status": "pending"},
        })

        assert result["policy_id"] == "LCD-056"
        assert result["scoring"]["total_criteria"] == 1 + 3 + 2 + 1
