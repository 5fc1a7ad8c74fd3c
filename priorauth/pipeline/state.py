"""LangGraph state for one pipeline run."""
from operator import add
from typing import Annotated, List, Optional, TypedDict

from priorauth.models.prior_auth import PriorAuthRequest
from priorauth.models.progress import ProgressCallbacks
from priorauth.models.stage_outputs import (
    DecisionOutput,
    OrchestrationOutput,
    PlanningOutput,
    SensingOutput,
)


class PipelineState(TypedDict, total=False):
    """
    State flowing through the linear stage graph.

    Each node reads the previous stage's output and adds its own. Outputs are
    frozen models, so a later node cannot alter an earlier stage's result.
    """
    request: PriorAuthRequest
    callbacks: ProgressCallbacks

    sensing: Optional[SensingOutput]
    planning: Optional[PlanningOutput]
    orchestration: Optional[OrchestrationOutput]
    decision: Optional[DecisionOutput]

    messages: Annotated[List[str], add]  # Accumulates stage completions


def create_initial_state(request: PriorAuthRequest, callbacks: ProgressCallbacks) -> PipelineState:
    """Create the state a run starts from."""
    return PipelineState(
        request=request,
        callbacks=callbacks,
        sensing=None,
        planning=None,
        orchestration=None,
        decision=None,
        messages=[f"Pipeline started for {request.request_id}"],
    )
