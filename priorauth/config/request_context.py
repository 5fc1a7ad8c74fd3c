"""Context variables scoped to a single pipeline run."""
from contextvars import ContextVar
from typing import Optional

# Prior authorization request currently moving through the pipeline.
# Set by the pipeline processor for the duration of a run.
pipeline_request_id_var: ContextVar[Optional[str]] = ContextVar("pipeline_request_id", default=None)


def get_pipeline_request_id() -> Optional[str]:
    """Return the request id of the active pipeline run, or None outside a run."""
    return pipeline_request_id_var.get()
