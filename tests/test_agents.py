"""Tests for the four pipeline stage agents."""
import asyncio

import pytest

from priorauth.agents import (
    REQUIRED_TOOLS,
    DecisionAgent,
    OrchestratorAgent,
    PlanningAgent,
    SensingAgent,
    StageAgent,
    build_rationale,
)
from priorauth.agents.planning_agent import build_execution_plan, estimate_duration
from priorauth.agents.sensing_agent import complexity_from_score, detect_document_type
from priorauth.mcp.tools.criteria_matching import DENIAL_CONDITION_MET, REVIEW_TRIGGER_MET
from priorauth.models.enums import (
    Complexity,
    Decision,
    DocumentType,
    Priority,
    RequestStatus,
    TraceLevel,
)
from priorauth.models.stage_outputs import (
    OrchestrationOutput,
    PlanningOutput,
    SensingOutput,
)

from tests.conftest import FixedRandom, RecordingCallbacks, make_request


SENSED = SensingOutput(
    priority=Priority.HIGH,
    document_type=DocumentType.CLINICAL_PDF,
    complexity=Complexity.HIGH,
)

MATCH_APPROVE = {
    "policy_id": "NCD-150.4",
    "decision": "approve",
    "confidence": 0.88,
    "met_criteria": ["Member eligibility active", "Imaging", "Function", "Pain"],
    "unmet_criteria": [],
    "flags": [],
    "scoring": {"total_criteria": 4, "criteria_met": 4, "criteria_unmet": 0, "match_percentage": 100.0},
}


def orchestration(match=None, member=None):
    return OrchestrationOutput(
        tool_outputs={
            "match": MATCH_APPROVE if match is None else match,
            "member": {"is_active": True, "plan": {"plan_type": "PPO"}, "issues": []} if member is None else member,
        },
        policy_id="NCD-150.4",
    )


class TestSensingAgent:

    async def test_classifies_request(self, settings, recorder):
        request = make_request(procedure_code="CPT-27447", diagnosis_codes=["M17.11"])

        result = await SensingAgent(settings).process(request, request, recorder.callbacks)

        assert result.priority == Priority.HIGH
        assert result.urgent_procedure is True
        assert result.document_type == DocumentType.CLINICAL_PDF
        assert result.complexity_score == 4
        assert result.complexity == Complexity.HIGH

    async def test_medium_complexity_and_priority(self, settings, recorder):
        request = make_request(procedure_code="45380", diagnosis_codes=["K63.5", "Z12.11", "Z80.0"])

        result = await SensingAgent(settings).process(request, request, recorder.callbacks)

        assert result.priority == Priority.MEDIUM
        assert result.complexity_score == 3
        assert result.complexity == Complexity.MEDIUM

    async def test_high_priority_is_kept(self, settings, recorder):
        request = make_request(procedure_code="45380", diagnosis_codes=[], priority=Priority.HIGH)

        result = await SensingAgent(settings).process(request, request, recorder.callbacks)

        assert result.priority == Priority.HIGH
        assert result.complexity == Complexity.LOW

    async def test_reports_progress(self, settings, recorder):
        request = make_request()

        await SensingAgent(settings).process(request, request, recorder.callbacks)

        assert [t["message"] for t in recorder.traces] == [
            "Prior Auth Sensing Agent activated",
            "New prior authorization request detected",
        ]
        assert [t["level"] for t in recorder.traces] == [TraceLevel.INFO, TraceLevel.SUCCESS]
        assert {t["category"] for t in recorder.traces} == {"Sensing Agent"}
        assert [s.name for s in recorder.steps] == ["Prior Auth Sensing Agent"]

    @pytest.mark.parametrize("url, expected", [
        (None, DocumentType.UNKNOWN),
        ("", DocumentType.UNKNOWN),
        ("/documents/a.pdf", DocumentType.CLINICAL_PDF),
        ("/documents/a.jpg", DocumentType.SCANNED_IMAGE),
        ("/documents/a.png", DocumentType.SCANNED_IMAGE),
        ("/documents/a.xml", DocumentType.ELECTRONIC_SUBMISSION),
    ])
    def test_document_type(self, url, expected):
        assert detect_document_type(url) == expected

    def test_complexity_buckets(self):
        assert complexity_from_score(0) == Complexity.LOW
        assert complexity_from_score(1) == Complexity.LOW
        assert complexity_from_score(2) == Complexity.MEDIUM
        assert complexity_from_score(4) == Complexity.HIGH


class TestPlanningAgent:

    async def test_plans_all_tools(self, recorder):
        request = make_request()

        result = await PlanningAgent(FixedRandom(0.9)).process(SENSED, request, recorder.callbacks)

        assert result.tools == list(REQUIRED_TOOLS)
        assert len(result.tools) == 6
        assert result.estimated_duration_sec == 37
        assert result.sensing == SENSED
        assert [s.name for s in recorder.steps] == ["Planning Agent"]
        assert recorder.traces[-1]["message"] == "Execution plan created successfully"

    def test_only_phase_three_is_parallel(self):
        plan = build_execution_plan()

        assert [p.phase for p in plan.phases] == [1, 2, 3, 4, 5]
        assert [p.parallel for p in plan.phases] == [False, False, True, False, False]
        assert plan.phases[2].tools == ["member-eligibility-lookup", "claims-history-retrieval"]
        assert [t for p in plan.phases for t in p.tools] == list(REQUIRED_TOOLS)

    def test_estimate_bounds(self):
        tools = list(REQUIRED_TOOLS)

        assert estimate_duration(tools, FixedRandom(0.0)) == 28
        assert estimate_duration(tools, FixedRandom(0.9)) == 37


class FailingStage(StageAgent):
    name = "FailingStage"
    category = "Failing Stage"

    async def run(self, previous, request, callbacks):
        raise RuntimeError("kaput")


async def test_stage_failure_is_traced_and_reraised(recorder):
    request = make_request()

    with pytest.raises(RuntimeError, match="kaput"):
        await FailingStage().process(request, request, recorder.callbacks)

    [trace] = recorder.traces
    assert trace["level"] == TraceLevel.ERROR
    assert trace["category"] == "Failing Stage"
    assert trace["message"] == "Failing Stage failed: kaput"
    assert trace["details"]["error_type"] == "RuntimeError"


class FakeRegistry:
    """Records when each tool call starts and ends into a shared event list."""

    def __init__(self, events, policies=None):
        self.events = events
        self.params = {}
        self.policies = [{"policy_id": "NCD-150.4", "title": "Knee", "relevance_score": 80}] \
            if policies is None else policies

    async def call_tool(self, name, params):
        self.events.append(("start", name))
        self.params[name] = params
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        self.events.append(("end", name))
        if name == "member-eligibility-lookup":
            return {"is_active": True, "plan": {"plan_type": "PPO"}, "issues": []}
        if name == "ncd-guidelines-search":
            return {"policies": self.policies, "total_matches": len(self.policies)}
        if name == "policy-criteria-matching":
            return {"policy_id": params["policy_id"], "decision": "approve", "rationale": "ok", "scoring": {}}
        if name == "intelligent-document-processing":
            return {"page_count": 3, "entities": [{}]}
        return {}


def planned():
    return PlanningOutput(
        tools=list(REQUIRED_TOOLS),
        execution_order=build_execution_plan(),
        estimated_duration_sec=30,
        sensing=SENSED,
    )


class TestOrchestratorAgent:

    async def test_phase_three_runs_concurrently(self):
        events = []
        registry = FakeRegistry(events)
        recorder = RecordingCallbacks(events)
        request = make_request()

        await OrchestratorAgent(registry).process(planned(), request, recorder.callbacks)

        def at(event):
            return events.index(event)

        member, claims = "member-eligibility-lookup", "claims-history-retrieval"
        assert max(at(("start", member)), at(("start", claims))) < min(at(("end", member)), at(("end", claims)))
        assert at(("start", "ncd-guidelines-search")) > max(at(("end", member)), at(("end", claims)))
        assert at(("start", "clinical-data-extraction")) > at(("end", "intelligent-document-processing"))
        assert at(("start", member)) > at(("end", "clinical-data-extraction"))

        invoked = [at(("trace", "Member 360", "Member eligibility lookup tool invoked")),
                   at(("trace", "Claims API", "Claims history retrieval tool invoked"))]
        completed = [at(("trace", "Member 360", "Member eligibility verified")),
                     at(("trace", "Claims API", "Claims history retrieved successfully"))]
        assert max(invoked) < at(("start", member))
        assert max(invoked) < min(completed)

    async def test_collects_outputs_and_passes_context(self, recorder):
        registry = FakeRegistry([])
        request = make_request(document_url=None)

        result = await OrchestratorAgent(registry).process(planned(), request, recorder.callbacks)

        assert set(result.tool_outputs) == {"idp", "extraction", "member", "claims", "search", "match"}
        assert result.policy_id == "NCD-150.4"
        assert registry.params["intelligent-document-processing"]["document_path"] == "/documents/PA-TEST-0001.pdf"
        match_params = registry.params["policy-criteria-matching"]
        assert match_params["policy_id"] == "NCD-150.4"
        assert match_params["clinical_evidence"]["document_data"] == {"page_count": 3, "entities": [{}]}
        assert match_params["request_context"]["status"] == "pending"
        assert [s.name for s in recorder.steps] == [
            "Orchestrator Activation",
            "Intelligent Document Processing",
            "Clinical Data Extraction",
            "Member Eligibility Verification",
            "Claims History Analysis",
            "NCD/LCD Guidelines Search",
            "Policy Criteria Matching",
        ]

    async def test_no_policy_matches_unknown(self, recorder):
        registry = FakeRegistry([], policies=[])
        request = make_request()

        result = await OrchestratorAgent(registry).process(planned(), request, recorder.callbacks)

        assert result.policy_id == "UNKNOWN"
        assert registry.params["policy-criteria-matching"]["policy_id"] == "UNKNOWN"
        search_trace = [t for t in recorder.traces if t["category"] == "NCD Search"][-1]
        assert search_trace["level"] == TraceLevel.WARNING

    async def test_tool_failure_propagates(self, recorder):
        class BrokenRegistry(FakeRegistry):
            async def call_tool(self, name, params):
                if name == "clinical-data-extraction":
                    raise RuntimeError("extraction down")
                return await super().call_tool(name, params)

        request = make_request()

        with pytest.raises(RuntimeError, match="extraction down"):
            await OrchestratorAgent(BrokenRegistry([])).process(planned(), request, recorder.callbacks)

        assert recorder.traces[-1]["level"] == TraceLevel.ERROR
        assert recorder.traces[-1]["category"] == "Orchestrator"

    async def test_phase_three_failure_cancels_sibling_call(self, recorder):
        events = []

        class ClaimsDownRegistry(FakeRegistry):
            async def call_tool(self, name, params):
                if name == "claims-history-retrieval":
                    raise RuntimeError("claims down")
                if name == "member-eligibility-lookup":
                    try:
                        await asyncio.sleep(10)
                    except asyncio.CancelledError:
                        self.events.append(("cancelled", name))
                        raise
                return await super().call_tool(name, params)

        request = make_request()

        with pytest.raises(RuntimeError, match="claims down"):
            await OrchestratorAgent(ClaimsDownRegistry(events)).process(planned(), request, recorder.callbacks)

        assert ("cancelled", "member-eligibility-lookup") in events
        assert ("start", "ncd-guidelines-search") not in events


class RecordingStore:
    def __init__(self, fail=False):
        self.fail = fail
        self.updates = []

    async def update_request(self, request_id, **fields):
        if self.fail:
            raise RuntimeError("database is locked")
        self.updates.append((request_id, fields))


class TestDecisionAgent:

    async def test_approve_is_recorded(self, recorder):
        store = RecordingStore()
        request = make_request()

        result = await DecisionAgent(store).process(orchestration(), request, recorder.callbacks)

        assert result.decision == Decision.APPROVE
        assert result.status == RequestStatus.APPROVED
        assert result.confidence == 0.88
        assert result.persisted is True
        [(request_id, fields)] = store.updates
        assert request_id == "PA-TEST-0001"
        assert fields["status"] == RequestStatus.APPROVED
        assert fields["decision_rationale"] == result.rationale
        assert fields["decision_date"] is not None
        assert [s.name for s in recorder.steps] == ["Decision Agent"]
        assert recorder.traces[-1]["level"] == TraceLevel.SUCCESS

    async def test_inactive_member_overrides_recommendation(self, recorder):
        member = {"is_active": False, "issues": ["MEMBER_INACTIVE"], "plan": {"plan_type": "HMO"}}

        result = await DecisionAgent(RecordingStore()).process(
            orchestration(member=member), make_request(), recorder.callbacks
        )

        assert result.decision == Decision.DENY
        assert result.status == RequestStatus.DENIED
        assert result.confidence == 0.95
        assert result.member_override is True
        assert result.rationale.startswith("Denied: Member eligibility is inactive")
        assert recorder.traces[-1]["level"] == TraceLevel.WARNING

    async def test_missing_member_output_is_inactive(self, recorder):
        output = OrchestrationOutput(tool_outputs={"match": MATCH_APPROVE}, policy_id="NCD-150.4")

        result = await DecisionAgent(RecordingStore()).process(output, make_request(), recorder.callbacks)

        assert result.decision == Decision.DENY
        assert result.member_override is True

    async def test_unparseable_recommendation_becomes_review(self, recorder):
        match = {"decision": "maybe", "scoring": {}}

        result = await DecisionAgent(RecordingStore()).process(
            orchestration(match=match), make_request(), recorder.callbacks
        )

        assert result.decision == Decision.REVIEW
        assert result.confidence == 0.5

    async def test_write_failure_is_not_raised(self, recorder):
        result = await DecisionAgent(RecordingStore(fail=True)).process(
            orchestration(), make_request(), recorder.callbacks
        )

        assert result.decision == Decision.APPROVE
        assert result.persisted is False
        assert recorder.traces[-1]["details"]["persisted"] is False


class TestBuildRationale:

    def test_approve(self):
        rationale = build_rationale(Decision.APPROVE, MATCH_APPROVE, {"plan": {"plan_type": "PPO"}})

        assert rationale == (
            "Approved: 4/4 criteria met (100.0%). "
            "Key criteria satisfied: Member eligibility active; Imaging; Function. "
            "Policy NCD-150.4 requirements fulfilled. Member plan: PPO."
        )

    def test_deny_with_denial_condition(self):
        match = {
            "unmet_criteria": ["Imaging", "Denial trigger: No imaging"],
            "flags": [DENIAL_CONDITION_MET],
            "scoring": {"criteria_unmet": 1},
        }

        rationale = build_rationale(Decision.DENY, match, {})

        assert rationale == (
            "Denied: 1 criteria not met. Unmet requirements: Imaging; Denial trigger: No imaging. "
            "Denial condition triggered per policy guidelines."
        )

    def test_review_with_trigger(self):
        match = {"flags": [REVIEW_TRIGGER_MET], "scoring": {"criteria_met": 3, "total_criteria": 5}}

        rationale = build_rationale(Decision.REVIEW, match, {"plan": {"plan_type": "HMO"}})

        assert rationale == (
            "Review required: 3/5 criteria met. Review trigger conditions detected. "
            "Peer-to-peer review or additional documentation recommended. Member plan: HMO."
        )

    def test_member_override(self):
        member = {"issues": ["MEMBER_INACTIVE", "COVERAGE_TERMINATED"]}

        rationale = build_rationale(Decision.DENY, MATCH_APPROVE, member, member_override=True)

        assert rationale == (
            "Denied: Member eligibility is inactive or has coverage issues. "
            "Eligibility issues: MEMBER_INACTIVE, COVERAGE_TERMINATED."
        )
