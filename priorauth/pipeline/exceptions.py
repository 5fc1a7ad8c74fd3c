"""Exceptions raised by the pipeline processor."""


class PipelineError(Exception):
    """Base error for pipeline runs."""
    pass


class AlreadyProcessingError(PipelineError):
    """A run for this request is already in flight."""

    def __init__(self, request_id: str):
        self.request_id = request_id
        super().__init__(f"Request {request_id} is already being processed")


class RequestNotFoundError(PipelineError):
    """The request to process does not exist."""

    def __init__(self, request_id: str):
        self.request_id = request_id
        super().__init__(f"Request {request_id} not found")
