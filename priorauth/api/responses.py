"""Response models for API endpoints."""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from priorauth.models.progress import TraceLogEntry, WorkflowStep


class RequestListResponse(BaseModel):
    """List of prior authorization requests."""
    requests: List[Dict[str, Any]]
    total: int


class RequestDetailResponse(BaseModel):
    """A request with both progress channels of its latest run."""
    request: Dict[str, Any]
    workflow_steps: List[WorkflowStep] = Field(default_factory=list)
    trace_logs: List[TraceLogEntry] = Field(default_factory=list)


class ProcessingStartedResponse(BaseModel):
    """Acknowledgement that a pipeline run was scheduled."""
    message: str = "Processing started"
    request_id: str


class ToolListResponse(BaseModel):
    """Registered tool metadata."""
    tools: List[Dict[str, Any]]
    total_tools: int


class ToolCallResponse(BaseModel):
    """Result of a direct tool invocation."""
    tool: str
    result: Any = None
    error: Optional[str] = None
    timestamp: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


class ErrorResponse(BaseModel):
    """Error response."""
    error: str
    detail: Optional[str] = None
