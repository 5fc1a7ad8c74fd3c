"""SQLAlchemy implementations of the storage ports.

Each operation runs in its own short transaction so that progress records
become visible to readers (API, websocket clients) while a run is still in
flight.
"""
from datetime import date
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from priorauth.storage.interfaces import PriorAuthStore, ReferenceDataSource
from priorauth.storage.request_repository import RequestRepository, to_domain
from priorauth.storage.progress_repository import ProgressRepository
from priorauth.storage.reference_repository import ReferenceRepository
from priorauth.models.prior_auth import PriorAuthRequest
from priorauth.models.progress import WorkflowStep, TraceLogEntry


class SqlPriorAuthStore(PriorAuthStore):
    """Request and progress persistence over an async session factory."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get_request(self, request_id: str) -> Optional[PriorAuthRequest]:
        async with self._session_factory() as session:
            row = await RequestRepository(session).get_by_id(request_id)
            return to_domain(row) if row is not None else None

    async def list_requests(self, limit: int = 100, offset: int = 0) -> List[Dict[str, Any]]:
        async with self._session_factory() as session:
            rows = await RequestRepository(session).get_all(limit=limit, offset=offset)
            return [row.to_dict() for row in rows]

    async def get_request_record(self, request_id: str) -> Optional[Dict[str, Any]]:
        async with self._session_factory() as session:
            row = await RequestRepository(session).get_by_id(request_id)
            return row.to_dict() if row is not None else None

    async def update_request(self, request_id: str, **fields: Any) -> None:
        async with self._session_factory.begin() as session:
            await RequestRepository(session).update_fields(request_id, fields)

    async def append_step(self, step: WorkflowStep) -> None:
        async with self._session_factory.begin() as session:
            await ProgressRepository(session).add_step(step)

    async def delete_steps(self, request_id: str) -> int:
        async with self._session_factory.begin() as session:
            return await ProgressRepository(session).delete_steps(request_id)

    async def list_steps(self, request_id: str) -> List[WorkflowStep]:
        async with self._session_factory() as session:
            return await ProgressRepository(session).list_steps(request_id)

    async def append_trace(self, entry: TraceLogEntry) -> None:
        async with self._session_factory.begin() as session:
            await ProgressRepository(session).add_trace(entry)

    async def delete_traces(self, request_id: str) -> int:
        async with self._session_factory.begin() as session:
            return await ProgressRepository(session).delete_traces(request_id)

    async def list_traces(self, request_id: str) -> List[TraceLogEntry]:
        async with self._session_factory() as session:
            return await ProgressRepository(session).list_traces(request_id)


class SqlReferenceDataSource(ReferenceDataSource):
    """Member, claims and policy reads over an async session factory."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get_member(self, member_id: str) -> Optional[Dict[str, Any]]:
        async with self._session_factory() as session:
            row = await ReferenceRepository(session).get_member(member_id)
            return row.to_dict() if row is not None else None

    async def list_claims(self, member_id: str, since: date) -> List[Dict[str, Any]]:
        async with self._session_factory() as session:
            rows = await ReferenceRepository(session).get_claims_since(member_id, since)
            return [row.to_dict() for row in rows]

    async def list_policies(
        self,
        procedure_code: Optional[str] = None,
        diagnosis_codes: Optional[List[str]] = None,
        policy_type: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        async with self._session_factory() as session:
            rows = await ReferenceRepository(session).find_policies(
                procedure_code=procedure_code,
                diagnosis_codes=diagnosis_codes,
                policy_type=policy_type,
            )
            return [row.to_dict() for row in rows]

    async def get_policy(self, policy_id: str) -> Optional[Dict[str, Any]]:
        async with self._session_factory() as session:
            row = await ReferenceRepository(session).get_policy(policy_id)
            return row.to_dict() if row is not None else None
