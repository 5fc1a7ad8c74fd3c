"""Repository for prior authorization request rows."""
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from priorauth.storage.models import PriorAuthRequestModel
from priorauth.models.prior_auth import PriorAuthRequest
from priorauth.models.enums import RequestStatus, Priority
from priorauth.config.logging_config import get_logger

logger = get_logger(__name__)

UPDATABLE_FIELDS = frozenset({
    "status",
    "priority",
    "assigned_to",
    "decision_rationale",
    "decision_date",
})


def to_domain(row: PriorAuthRequestModel) -> PriorAuthRequest:
    """Build the immutable domain snapshot from a row."""
    return PriorAuthRequest(
        request_id=row.request_id,
        patient_name=row.patient_name,
        patient_dob=row.patient_dob,
        member_id=row.member_id,
        provider=row.provider,
        provider_npi=row.provider_npi,
        procedure_name=row.procedure_name,
        procedure_code=row.procedure_code,
        diagnosis_codes=list(row.diagnosis_codes or []),
        submitted_date=row.submitted_date.isoformat() if row.submitted_date else None,
        status=RequestStatus(row.status),
        priority=Priority(row.priority),
        assigned_to=row.assigned_to,
        document_url=row.document_url,
        decision_rationale=row.decision_rationale,
        decision_date=row.decision_date.isoformat() if row.decision_date else None,
    )


class RequestRepository:
    """Repository for prior authorization request operations."""

    def __init__(self, session: AsyncSession):
        """
        Initialize the repository with a database session.

        Args:
            session: SQLAlchemy async session
        """
        self.session = session

    async def get_by_id(self, request_id: str) -> Optional[PriorAuthRequestModel]:
        result = await self.session.execute(
            select(PriorAuthRequestModel).where(PriorAuthRequestModel.request_id == request_id)
        )
        return result.scalar_one_or_none()

    async def get_all(
        self,
        status: Optional[RequestStatus] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[PriorAuthRequestModel]:
        """
        List requests, newest submission first.

        Args:
            status: Filter by status
            limit: Maximum number of results
            offset: Offset for pagination

        Returns:
            List of request models
        """
        query = select(PriorAuthRequestModel)
        if status:
            query = query.where(PriorAuthRequestModel.status == status.value)
        query = query.order_by(PriorAuthRequestModel.submitted_date.desc()).limit(limit).offset(offset)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def create(self, **fields: Any) -> PriorAuthRequestModel:
        row = PriorAuthRequestModel(**fields)
        self.session.add(row)
        await self.session.flush()
        logger.info("Prior auth request created", request_id=row.request_id)
        return row

    async def update_fields(self, request_id: str, fields: Dict[str, Any]) -> bool:
        """
        Apply a partial update.

        Args:
            request_id: Request identifier
            fields: Column values; enum values are stored by value

        Returns:
            True if a row was updated
        """
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields not updatable: {sorted(unknown)}")

        values = {}
        for key, value in fields.items():
            if isinstance(value, (RequestStatus, Priority)):
                value = value.value
            if key == "decision_date" and isinstance(value, str):
                value = datetime.fromisoformat(value)
            values[key] = value

        result = await self.session.execute(
            update(PriorAuthRequestModel)
            .where(PriorAuthRequestModel.request_id == request_id)
            .values(**values)
        )
        return result.rowcount > 0
