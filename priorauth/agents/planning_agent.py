"""Planning agent: chooses the tools and builds the execution plan."""
import random
from typing import List, Optional

from priorauth.agents.base import StageAgent
from priorauth.models.enums import TraceLevel
from priorauth.models.prior_auth import PriorAuthRequest
from priorauth.models.progress import ProgressCallbacks, StepDescriptor
from priorauth.models.stage_outputs import ExecutionPhase, ExecutionPlan, PlanningOutput, SensingOutput

DOCUMENT_PROCESSING = "intelligent-document-processing"
CLINICAL_EXTRACTION = "clinical-data-extraction"
MEMBER_ELIGIBILITY = "member-eligibility-lookup"
CLAIMS_HISTORY = "claims-history-retrieval"
POLICY_SEARCH = "ncd-guidelines-search"
CRITERIA_MATCHING = "policy-criteria-matching"

REQUIRED_TOOLS = (
    DOCUMENT_PROCESSING,
    CLINICAL_EXTRACTION,
    MEMBER_ELIGIBILITY,
    CLAIMS_HISTORY,
    POLICY_SEARCH,
    CRITERIA_MATCHING,
)


def build_execution_plan() -> ExecutionPlan:
    """Five phases; only phase 3 runs its tools concurrently."""
    return ExecutionPlan(
        strategy="sequential-with-parallel",
        phases=[
            ExecutionPhase(phase=1, tools=[DOCUMENT_PROCESSING], description="Document extraction"),
            ExecutionPhase(phase=2, tools=[CLINICAL_EXTRACTION], description="Clinical data extraction"),
            ExecutionPhase(
                phase=3,
                tools=[MEMBER_ELIGIBILITY, CLAIMS_HISTORY],
                parallel=True,
                description="Member eligibility and claims history",
            ),
            ExecutionPhase(phase=4, tools=[POLICY_SEARCH], description="Coverage policy search"),
            ExecutionPhase(phase=5, tools=[CRITERIA_MATCHING], description="Policy criteria matching"),
        ],
    )


def estimate_duration(tools: List[str], rng: random.Random) -> int:
    """Rough wall clock estimate in seconds: three per tool, ten fixed, up to ten of jitter."""
    return round(len(tools) * 3 + 10 + rng.random() * 10)


class PlanningAgent(StageAgent):
    """Analyzes request complexity and creates the plan for orchestration."""

    name = "WorkflowPlanningAgent"
    category = "Planning Agent"

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng or random.Random()

    async def run(
        self,
        previous: SensingOutput,
        request: PriorAuthRequest,
        callbacks: ProgressCallbacks,
    ) -> PlanningOutput:
        await callbacks.trace(TraceLevel.INFO, self.category, "Planning Agent invoked by Sensing Agent", {
            "agent": self.name,
            "input": request.request_id,
            "mode": "intelligent-planning",
            "complexity": previous.complexity.value,
        })

        tools = list(REQUIRED_TOOLS)
        plan = build_execution_plan()
        estimated = estimate_duration(tools, self.rng)

        await callbacks.trace(TraceLevel.SUCCESS, self.category, "Execution plan created successfully", {
            "workflow_steps": len(tools) + 3,
            "tools_required": tools,
            "estimated_duration": f"{estimated} seconds",
            "complexity": previous.complexity.value,
            "execution_strategy": plan.strategy,
        })

        await callbacks.step(StepDescriptor(
            name="Planning Agent",
            description="Planning agent analyzes request complexity and creates execution plan",
            details=[
                f"Request complexity: {previous.complexity.value}",
                f"Workflow plan created with {len(tools)} tools",
                f"Required tools: {', '.join(tools)}",
                "Orchestrator invoked with execution plan",
            ],
        ))

        return PlanningOutput(
            tools=tools,
            execution_order=plan,
            estimated_duration_sec=estimated,
            sensing=previous,
        )
