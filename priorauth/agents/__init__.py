"""Stage agents for the linear prior authorization pipeline."""
from .base import StageAgent
from .sensing_agent import SensingAgent
from .planning_agent import PlanningAgent, REQUIRED_TOOLS
from .orchestrator_agent import OrchestratorAgent
from .decision_agent import DecisionAgent, build_rationale

__all__ = [
    "StageAgent",
    "SensingAgent",
    "PlanningAgent",
    "REQUIRED_TOOLS",
    "OrchestratorAgent",
    "DecisionAgent",
    "build_rationale",
]
