"""Progress records emitted while a request moves through the pipeline."""
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .enums import StepStatus, TraceLevel


class StepDescriptor(BaseModel):
    """What a stage reports for one coarse workflow step. Numbering is assigned later."""
    name: str
    description: str = ""
    status: StepStatus = StepStatus.COMPLETED
    details: List[str] = Field(default_factory=list)
    tool_name: Optional[str] = None
    duration_ms: Optional[int] = None


class WorkflowStep(BaseModel):
    """A persisted workflow step."""
    model_config = ConfigDict(frozen=True)

    request_id: str
    step_number: int = Field(..., ge=1)
    name: str
    description: str = ""
    status: StepStatus
    timestamp: Optional[str] = Field(default=None, description="Wall clock time, e.g. 02:15:07 PM")
    details: List[str] = Field(default_factory=list)
    tool_name: Optional[str] = None
    duration_ms: int = 0


class TraceLogEntry(BaseModel):
    """A persisted fine-grained trace entry."""
    model_config = ConfigDict(frozen=True)

    request_id: str
    timestamp: str = Field(..., description="HH:MM:SS.mmm")
    level: TraceLevel
    category: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


StepCallback = Callable[[StepDescriptor], Awaitable[None]]
TraceCallback = Callable[[TraceLevel, str, str, Optional[Dict[str, Any]]], Awaitable[None]]


@dataclass(frozen=True)
class ProgressCallbacks:
    """The two progress channels every stage reports through."""
    on_step: StepCallback
    on_trace: TraceCallback

    async def trace(
        self,
        level: TraceLevel,
        category: str,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        await self.on_trace(level, category, message, details)

    async def step(self, descriptor: StepDescriptor) -> None:
        await self.on_step(descriptor)
