"""End-to-end tests for the pipeline processor against the seeded database."""
import asyncio

import pytest

from priorauth.mcp.exceptions import ToolExecutionError
from priorauth.models.enums import Decision, RequestStatus, StepStatus, TraceLevel
from priorauth.models.progress import WorkflowStep
from priorauth.models.stage_outputs import DecisionOutput
from priorauth.pipeline import AlreadyProcessingError, PipelineProcessor, RequestNotFoundError
from priorauth.pipeline.processor import processing_error_rationale, step_timestamp, trace_timestamp
from priorauth.storage.sql_store import SqlPriorAuthStore

KNEE_REQUEST = "PA-2026-0409"
INACTIVE_MEMBER_REQUEST = "PA-2026-0406"

EXPECTED_RATIONALE = (
    "Approved: 11/11 criteria met (100.0%). "
    "Key criteria satisfied: Member eligibility active; "
    "Radiographic evidence of moderate-to-severe osteoarthritis (Kellgren-Lawrence Grade 3-4); "
    "Failure of conservative treatment for minimum 3 months. "
    "Policy NCD-150.4 requirements fulfilled. Member plan: PPO."
)

EXPECTED_STEPS = [
    "Prior Auth Sensing Agent",
    "Planning Agent",
    "Orchestrator Activation",
    "Intelligent Document Processing",
    "Clinical Data Extraction",
    "Member Eligibility Verification",
    "Claims History Analysis",
    "NCD/LCD Guidelines Search",
    "Policy Criteria Matching",
    "Decision Agent",
]


class EventSink:
    def __init__(self):
        self.events = []

    async def __call__(self, event, payload):
        self.events.append((event, payload))

    def names(self):
        return [event for event, _ in self.events]


class CountingStore(SqlPriorAuthStore):
    """Counts writes that carry a final decision."""

    def __init__(self, session_factory):
        super().__init__(session_factory)
        self.decision_writes = 0

    async def update_request(self, request_id, **fields):
        if "decision_rationale" in fields:
            self.decision_writes += 1
        await super().update_request(request_id, **fields)


class TraceOutageStore(SqlPriorAuthStore):
    """Rejects trace writes once ``traces_down`` is set."""

    def __init__(self, session_factory):
        super().__init__(session_factory)
        self.traces_down = False

    async def append_trace(self, entry):
        if self.traces_down:
            raise ConnectionError("database unavailable")
        await super().append_trace(entry)


class TestHappyPath:

    async def test_knee_replacement_is_approved(self, processor, store):
        sink = EventSink()

        result = await processor.process(KNEE_REQUEST, on_update=sink)

        assert result.decision == Decision.APPROVE
        assert result.status == RequestStatus.APPROVED
        assert result.confidence == 0.88
        assert result.policy_id == "NCD-150.4"
        assert result.rationale == EXPECTED_RATIONALE
        assert result.persisted is True

        stored = await store.get_request(KNEE_REQUEST)
        assert stored.status == RequestStatus.APPROVED
        assert stored.decision_rationale == EXPECTED_RATIONALE
        assert stored.decision_date is not None

    async def test_steps_are_numbered_in_order(self, processor, store):
        await processor.process(KNEE_REQUEST)

        steps = await store.list_steps(KNEE_REQUEST)
        assert [s.name for s in steps] == EXPECTED_STEPS
        assert [s.step_number for s in steps] == list(range(1, 11))
        assert all(s.status == StepStatus.COMPLETED for s in steps)
        assert all(800 <= s.duration_ms <= 1400 for s in steps)
        assert [s.tool_name for s in steps if s.tool_name] == [
            "intelligent-document-processing",
            "clinical-data-extraction",
            "member-eligibility-lookup",
            "claims-history-retrieval",
            "ncd-guidelines-search",
            "policy-criteria-matching",
        ]

    async def test_traces_cover_every_stage(self, processor, store):
        await processor.process(KNEE_REQUEST)

        traces = await store.list_traces(KNEE_REQUEST)
        assert traces[0].message == "Prior Auth Sensing Agent activated"
        assert traces[-1].category == "Decision Agent"
        assert traces[-1].level == TraceLevel.SUCCESS
        assert traces[-1].message == "Final decision: APPROVE"
        categories = {t.category for t in traces}
        assert {"Sensing Agent", "Planning Agent", "Orchestrator", "IDP Service", "Data Extraction",
                "Member 360", "Claims API", "NCD Search", "Policy Match", "Decision Agent"} <= categories
        assert not any(t.level == TraceLevel.ERROR for t in traces)

    async def test_update_events(self, processor):
        sink = EventSink()

        await processor.process(KNEE_REQUEST, on_update=sink)

        names = sink.names()
        assert names[0] == "status"
        assert sink.events[0][1] == {"status": "processing"}
        assert names[-1] == "complete"
        assert names.count("step") == 10
        assert "trace" in names
        assert "error" not in names
        complete = sink.events[-1][1]
        assert complete["decision"] == "approve"
        assert complete["status"] == "approved"
        assert complete["confidence"] == 0.88
        first_step = next(payload for event, payload in sink.events if event == "step")
        assert first_step["step_number"] == 1
        assert first_step["status"] == "completed"

    async def test_plain_function_sink(self, processor):
        events = []

        await processor.process(KNEE_REQUEST, on_update=lambda event, payload: events.append(event))

        assert events[0] == "status"
        assert events[-1] == "complete"

    async def test_sink_failure_does_not_stop_run(self, processor):
        async def broken(event, payload):
            raise ConnectionError("client went away")

        result = await processor.process(KNEE_REQUEST, on_update=broken)

        assert result.decision == Decision.APPROVE

    async def test_inactive_member_is_denied(self, processor, store):
        result = await processor.process(INACTIVE_MEMBER_REQUEST)

        assert result.decision == Decision.DENY
        assert result.confidence == 0.95
        assert result.member_override is True
        assert result.policy_id == "LCD-056"
        stored = await store.get_request(INACTIVE_MEMBER_REQUEST)
        assert stored.status == RequestStatus.DENIED
        assert stored.decision_rationale.startswith("Denied: Member eligibility is inactive")


class TestSingleFlight:

    async def test_concurrent_run_is_rejected(self, session_factory, registry, rng, settings):
        store = CountingStore(session_factory)
        processor = PipelineProcessor(store, registry, rng=rng, settings=settings)

        results = await asyncio.gather(
            processor.process(KNEE_REQUEST),
            processor.process(KNEE_REQUEST),
            return_exceptions=True,
        )

        assert sum(isinstance(r, DecisionOutput) for r in results) == 1
        [rejected] = [r for r in results if isinstance(r, AlreadyProcessingError)]
        assert rejected.request_id == KNEE_REQUEST
        assert store.decision_writes == 1
        assert len(await store.list_steps(KNEE_REQUEST)) == 10
        assert not processor.is_processing(KNEE_REQUEST)
        concurrent_traces = len(await store.list_traces(KNEE_REQUEST))
        await processor.process(KNEE_REQUEST)
        assert len(await store.list_traces(KNEE_REQUEST)) == concurrent_traces

    async def test_marked_in_flight_while_running(self, processor):
        seen = []

        def sink(event, payload):
            if event == "status":
                seen.append(processor.is_processing(KNEE_REQUEST))
                seen.append(KNEE_REQUEST in processor.in_flight)

        await processor.process(KNEE_REQUEST, on_update=sink)

        assert seen == [True, True]
        assert not processor.is_processing(KNEE_REQUEST)
        assert len(processor.in_flight) == 0

    async def test_sequential_runs_allowed(self, processor, store):
        await processor.process(KNEE_REQUEST)
        first_steps = len(await store.list_steps(KNEE_REQUEST))
        first_traces = len(await store.list_traces(KNEE_REQUEST))

        await processor.process(KNEE_REQUEST)

        assert len(await store.list_steps(KNEE_REQUEST)) == first_steps == 10
        assert len(await store.list_traces(KNEE_REQUEST)) == first_traces


class TestFailures:

    async def test_stage_failure_sends_request_to_review(self, processor, store):
        async def failing(previous, request, callbacks):
            raise RuntimeError("boom")

        processor.orchestrator.run = failing
        sink = EventSink()

        with pytest.raises(RuntimeError, match="boom"):
            await processor.process(KNEE_REQUEST, on_update=sink)

        stored = await store.get_request(KNEE_REQUEST)
        assert stored.status == RequestStatus.REVIEW
        assert stored.decision_rationale == "Processing error: boom. Manual review required."
        assert not processor.is_processing(KNEE_REQUEST)

        assert sink.names()[-1] == "error"
        assert sink.events[-1][1] == {"error": "boom"}
        assert "complete" not in sink.names()

        traces = await store.list_traces(KNEE_REQUEST)
        assert traces[-1].level == TraceLevel.ERROR
        assert traces[-1].category == "Orchestrator"
        assert [s.name for s in await store.list_steps(KNEE_REQUEST)] == [
            "Prior Auth Sensing Agent",
            "Planning Agent",
        ]

    async def test_unknown_request(self, processor):
        sink = EventSink()

        with pytest.raises(RequestNotFoundError) as exc_info:
            await processor.process("PA-0000-0000", on_update=sink)

        assert exc_info.value.request_id == "PA-0000-0000"
        assert not processor.is_processing("PA-0000-0000")
        assert sink.names() == ["error"]

    async def test_trace_store_failure_keeps_stage_error(self, session_factory, registry, rng, settings):
        store = TraceOutageStore(session_factory)
        processor = PipelineProcessor(store, registry, rng=rng, settings=settings)

        async def failing(previous, request, callbacks):
            store.traces_down = True
            raise ToolExecutionError("claims-history-retrieval", "claims store unavailable")

        processor.orchestrator.run = failing

        with pytest.raises(ToolExecutionError, match="claims store unavailable"):
            await processor.process(KNEE_REQUEST)

        stored = await store.get_request(KNEE_REQUEST)
        assert stored.status == RequestStatus.REVIEW
        assert stored.decision_rationale == "Processing error: claims store unavailable. Manual review required."
        assert not processor.is_processing(KNEE_REQUEST)

    async def test_stale_progress_is_cleared(self, processor, store):
        await store.append_step(WorkflowStep(
            request_id=KNEE_REQUEST,
            step_number=1,
            name="Stale step from an earlier run",
            status=StepStatus.ERROR,
        ))

        await processor.process(KNEE_REQUEST)

        steps = await store.list_steps(KNEE_REQUEST)
        assert len(steps) == 10
        assert "Stale step from an earlier run" not in [s.name for s in steps]

    async def test_retry_after_failure(self, processor, store):
        original = processor.orchestrator.run

        async def failing(previous, request, callbacks):
            raise RuntimeError("boom")

        processor.orchestrator.run = failing
        with pytest.raises(RuntimeError):
            await processor.process(KNEE_REQUEST)

        processor.orchestrator.run = original
        await store.update_request(KNEE_REQUEST, status=RequestStatus.PENDING)
        result = await processor.process(KNEE_REQUEST)

        assert result.decision == Decision.APPROVE
        assert len(await store.list_steps(KNEE_REQUEST)) == 10


def test_timestamp_formats():
    from datetime import datetime

    moment = datetime(2026, 3, 4, 14, 5, 9, 42000)

    assert step_timestamp(moment) == "02:05:09 PM"
    assert trace_timestamp(moment) == "14:05:09.042"
    assert processing_error_rationale(ValueError("bad")) == "Processing error: bad. Manual review required."
