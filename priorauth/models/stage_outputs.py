"""Typed outputs handed from one pipeline stage to the next."""
from typing import Dict, List, Optional, Any

from pydantic import BaseModel, ConfigDict, Field

from .enums import Complexity, Decision, DocumentType, Priority, RequestStatus


class StageOutput(BaseModel):
    """Base for stage outputs. Instances are frozen once returned."""
    model_config = ConfigDict(frozen=True)


class SensingOutput(StageOutput):
    """Request characteristics derived by the sensing stage."""
    priority: Priority = Field(..., description="Effective review priority")
    document_type: DocumentType = Field(..., description="Inferred supporting document type")
    complexity: Complexity = Field(..., description="Complexity bucket")
    complexity_score: int = Field(default=0, description="Raw weighted complexity score")
    urgent_procedure: bool = Field(default=False, description="Procedure is in the urgent set")


class ExecutionPhase(StageOutput):
    """One phase of the tool execution plan."""
    phase: int
    tools: List[str]
    parallel: bool = False
    description: str = ""


class ExecutionPlan(StageOutput):
    """Descriptive execution plan consumed by orchestration and the progress UI."""
    strategy: str = "sequential-with-parallel"
    phases: List[ExecutionPhase] = Field(default_factory=list)


class PlanningOutput(StageOutput):
    """Tools and ordering chosen by the planning stage."""
    tools: List[str] = Field(..., description="Registry tool names in execution order")
    execution_order: ExecutionPlan
    estimated_duration_sec: int = Field(..., ge=0)
    sensing: SensingOutput


class OrchestrationOutput(StageOutput):
    """All tool results keyed by short logical name (idp, extraction, member, claims, search, match)."""
    tool_outputs: Dict[str, Any] = Field(default_factory=dict)
    policy_id: str = Field(default="UNKNOWN", description="Top-ranked policy used for matching")


class DecisionOutput(StageOutput):
    """Final decision produced by the decision stage."""
    decision: Decision
    status: RequestStatus
    confidence: float = Field(..., ge=0.0, le=1.0)
    rationale: str
    scoring: Dict[str, Any] = Field(default_factory=dict)
    policy_id: Optional[str] = None
    flags: List[str] = Field(default_factory=list)
    member_override: bool = Field(default=False, description="Decision forced by inactive membership")
    persisted: bool = Field(default=True, description="Whether the final write reached storage")
