"""Pytest configuration and fixtures."""
import random
from typing import Any, Dict, List, Optional

import pytest
import pytest_asyncio

from priorauth.config.settings import Settings
from priorauth.mcp.tools import build_tool_registry
from priorauth.models.enums import Priority, RequestStatus, TraceLevel
from priorauth.models.prior_auth import PriorAuthRequest
from priorauth.models.progress import ProgressCallbacks, StepDescriptor
from priorauth.pipeline.processor import PipelineProcessor
from priorauth.storage.database import create_engine_for_url, create_session_factory, init_db
from priorauth.storage.seed_data import seed_reference_data
from priorauth.storage.sql_store import SqlPriorAuthStore, SqlReferenceDataSource


def pytest_configure(config):
    """Ensure asyncio_mode is auto so async fixtures work when pyproject is not in cwd."""
    if hasattr(config.option, "asyncio_mode") and config.option.asyncio_mode is None:
        config.option.asyncio_mode = "auto"


class FixedRandom(random.Random):
    """Random source whose ``random()`` always returns the same value."""

    def __init__(self, value: float = 0.9):
        super().__init__(0)
        self.value = value

    def random(self) -> float:
        return self.value


class RecordingCallbacks:
    """Collects everything a stage reports through its progress callbacks."""

    def __init__(self, events: Optional[List[Any]] = None):
        self.steps: List[StepDescriptor] = []
        self.traces: List[Dict[str, Any]] = []
        self.events = events if events is not None else []

    async def on_step(self, descriptor: StepDescriptor) -> None:
        self.steps.append(descriptor)
        self.events.append(("step", descriptor.name))

    async def on_trace(self, level: TraceLevel, category: str, message: str, details=None) -> None:
        self.traces.append({"level": level, "category": category, "message": message, "details": details or {}})
        self.events.append(("trace", category, message))

    @property
    def callbacks(self) -> ProgressCallbacks:
        return ProgressCallbacks(on_step=self.on_step, on_trace=self.on_trace)


def make_request(**overrides: Any) -> PriorAuthRequest:
    """Build a request snapshot for stage tests."""
    fields = dict(
        request_id="PA-TEST-0001",
        patient_name="Maria Garcia",
        patient_dob="1968-04-10",
        member_id="MEM-100004",
        procedure_code="27447",
        procedure_name="Total Knee Arthroplasty - Right",
        diagnosis_codes=["M17.11"],
        provider="Springfield Orthopedic Center",
        provider_npi="1234567104",
        status=RequestStatus.PENDING,
        priority=Priority.MEDIUM,
        document_url="/documents/PA-TEST-0001.pdf",
    )
    fields.update(overrides)
    return PriorAuthRequest(**fields)


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings pointing at a throwaway SQLite file with no simulated latency."""
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'priorauth-test.db'}",
        tool_latency_scale=0.0,
        random_seed=7,
        seed_demo_data=True,
        log_level="WARNING",
    )


@pytest.fixture
def rng() -> FixedRandom:
    return FixedRandom(0.9)


@pytest.fixture
def recorder() -> RecordingCallbacks:
    return RecordingCallbacks()


@pytest_asyncio.fixture
async def session_factory(settings):
    """Create a seeded test database and yield its session factory."""
    engine = create_engine_for_url(settings.database_url)
    await init_db(engine)
    factory = create_session_factory(engine)
    await seed_reference_data(factory)
    try:
        yield factory
    finally:
        await engine.dispose()


@pytest.fixture
def store(session_factory) -> SqlPriorAuthStore:
    return SqlPriorAuthStore(session_factory)


@pytest.fixture
def data_source(session_factory) -> SqlReferenceDataSource:
    return SqlReferenceDataSource(session_factory)


@pytest.fixture
def registry(data_source, rng, settings):
    return build_tool_registry(data_source, rng=rng, settings=settings)


@pytest.fixture
def processor(store, registry, rng, settings) -> PipelineProcessor:
    return PipelineProcessor(store, registry, rng=rng, settings=settings)
