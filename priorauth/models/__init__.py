"""Data models for the prior authorization pipeline."""
from .enums import (
    RequestStatus,
    Priority,
    StepStatus,
    TraceLevel,
    Decision,
    Complexity,
    DocumentType,
    CriterionWeight,
    UpdateEvent,
)
from .prior_auth import PriorAuthRequest, clean_procedure_code
from .progress import StepDescriptor, WorkflowStep, TraceLogEntry, ProgressCallbacks
from .stage_outputs import (
    SensingOutput,
    ExecutionPhase,
    ExecutionPlan,
    PlanningOutput,
    OrchestrationOutput,
    DecisionOutput,
)

__all__ = [
    # Enums
    "RequestStatus",
    "Priority",
    "StepStatus",
    "TraceLevel",
    "Decision",
    "Complexity",
    "DocumentType",
    "CriterionWeight",
    "UpdateEvent",
    # Request
    "PriorAuthRequest",
    "clean_procedure_code",
    # Progress
    "StepDescriptor",
    "WorkflowStep",
    "TraceLogEntry",
    "ProgressCallbacks",
    # Stage outputs
    "SensingOutput",
    "ExecutionPhase",
    "ExecutionPlan",
    "PlanningOutput",
    "OrchestrationOutput",
    "DecisionOutput",
]
