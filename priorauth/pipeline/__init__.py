"""Pipeline processor and its LangGraph stage graph."""
from .exceptions import PipelineError, AlreadyProcessingError, RequestNotFoundError
from .processor import PipelineProcessor
from .state import PipelineState, create_initial_state

__all__ = [
    "PipelineError",
    "AlreadyProcessingError",
    "RequestNotFoundError",
    "PipelineProcessor",
    "PipelineState",
    "create_initial_state",
]
