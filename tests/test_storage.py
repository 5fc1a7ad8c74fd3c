"""Tests for the SQL store, reference data source and seed data."""
from datetime import date, timedelta

import pytest

from priorauth.models.enums import Priority, RequestStatus, StepStatus, TraceLevel
from priorauth.models.progress import TraceLogEntry, WorkflowStep
from priorauth.storage.seed_data import SEED_REQUESTS, seed_reference_data


async def test_seeding_is_idempotent(session_factory):
    # the fixture has already seeded this database once
    assert await seed_reference_data(session_factory) == 0


async def test_request_snapshot(store):
    request = await store.get_request("PA-2026-0409")

    assert request.member_id == "MEM-100004"
    assert request.clean_procedure_code == "27447"
    assert request.diagnosis_codes == ["M17.11"]
    assert request.status == RequestStatus.PENDING
    assert request.priority == Priority.HIGH
    assert await store.get_request("PA-0000-0000") is None


async def test_list_requests(store):
    records = await store.list_requests()

    assert len(records) == len(SEED_REQUESTS)
    assert len(await store.list_requests(limit=2)) == 2


async def test_update_request(store):
    await store.update_request(
        "PA-2026-0408",
        status=RequestStatus.REVIEW,
        assigned_to="Dr. Patel",
        decision_date="2026-03-01T10:00:00+00:00",
    )

    record = await store.get_request_record("PA-2026-0408")
    assert record["status"] == "review"
    assert record["assigned_to"] == "Dr. Patel"
    assert record["decision_date"].startswith("2026-03-01T10:00:00")


async def test_update_rejects_unknown_field(store):
    with pytest.raises(ValueError, match="member_id"):
        await store.update_request("PA-2026-0408", member_id="MEM-999999")


async def test_progress_channels_keep_order(store):
    for number, name in [(2, "second"), (1, "first")]:
        await store.append_step(WorkflowStep(
            request_id="PA-2026-0407",
            step_number=number,
            name=name,
            status=StepStatus.COMPLETED,
        ))
    for message in ["one", "two", "three"]:
        await store.append_trace(TraceLogEntry(
            request_id="PA-2026-0407",
            timestamp="10:00:00.000",
            level=TraceLevel.INFO,
            category="Test",
            message=message,
            details={"n": message},
        ))

    assert [s.name for s in await store.list_steps("PA-2026-0407")] == ["first", "second"]
    traces = await store.list_traces("PA-2026-0407")
    assert [t.message for t in traces] == ["one", "two", "three"]
    assert traces[0].details == {"n": "one"}

    assert await store.delete_steps("PA-2026-0407") == 2
    assert await store.delete_traces("PA-2026-0407") == 3
    assert await store.list_traces("PA-2026-0407") == []


async def test_claims_newest_first(data_source):
    claims = await data_source.list_claims("MEM-100004", date.today() - timedelta(days=1000))

    assert [c["claim_id"] for c in claims] == ["CLM-400101", "CLM-400102", "CLM-400103", "CLM-400104"]
    assert claims[0]["service_date"] == (date.today() - timedelta(days=40)).isoformat()


async def test_claims_since_cutoff(data_source):
    claims = await data_source.list_claims("MEM-100004", date.today() - timedelta(days=100))

    assert [c["claim_id"] for c in claims] == ["CLM-400101", "CLM-400102"]


async def test_policy_lookup(data_source):
    policy = await data_source.get_policy("NCD-150.4")

    assert policy["conservative_treatment_required"] is True
    assert len(policy["medical_necessity_criteria"]) == 4
    assert await data_source.get_policy("NCD-000.0") is None

    by_code = await data_source.list_policies(procedure_code="45380")
    assert [p["policy_id"] for p in by_code] == ["NCD-210.3"]


async def test_member_lookup(data_source):
    member = await data_source.get_member("MEM-100007")

    assert member["is_active"] is False
    assert await data_source.get_member("MEM-999999") is None
