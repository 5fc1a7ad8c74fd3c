"""Repository for workflow steps and trace logs."""
from typing import List

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from priorauth.storage.models import WorkflowStepModel, TraceLogModel
from priorauth.models.progress import WorkflowStep, TraceLogEntry


class ProgressRepository:
    """Append, list and clear the two progress channels of a request."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def add_step(self, step: WorkflowStep) -> None:
        self.session.add(WorkflowStepModel(
            request_id=step.request_id,
            step_number=step.step_number,
            name=step.name,
            description=step.description,
            status=step.status.value,
            timestamp=step.timestamp,
            details=list(step.details),
            tool_name=step.tool_name,
            duration_ms=step.duration_ms,
        ))
        await self.session.flush()

    async def add_trace(self, entry: TraceLogEntry) -> None:
        self.session.add(TraceLogModel(
            request_id=entry.request_id,
            timestamp=entry.timestamp,
            level=entry.level.value,
            category=entry.category,
            message=entry.message,
            details=dict(entry.details),
        ))
        await self.session.flush()

    async def list_steps(self, request_id: str) -> List[WorkflowStep]:
        result = await self.session.execute(
            select(WorkflowStepModel)
            .where(WorkflowStepModel.request_id == request_id)
            .order_by(WorkflowStepModel.step_number, WorkflowStepModel.id)
        )
        return [WorkflowStep(**row.to_dict()) for row in result.scalars().all()]

    async def list_traces(self, request_id: str) -> List[TraceLogEntry]:
        result = await self.session.execute(
            select(TraceLogModel)
            .where(TraceLogModel.request_id == request_id)
            .order_by(TraceLogModel.id)
        )
        return [TraceLogEntry(**row.to_dict()) for row in result.scalars().all()]

    async def delete_steps(self, request_id: str) -> int:
        result = await self.session.execute(
            delete(WorkflowStepModel).where(WorkflowStepModel.request_id == request_id)
        )
        return result.rowcount or 0

    async def delete_traces(self, request_id: str) -> int:
        result = await self.session.execute(
            delete(TraceLogModel).where(TraceLogModel.request_id == request_id)
        )
        return result.rowcount or 0
