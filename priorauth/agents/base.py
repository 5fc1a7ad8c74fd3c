"""Common base for the four pipeline stage agents."""
from abc import ABC, abstractmethod
from typing import Any

from priorauth.models.enums import TraceLevel
from priorauth.models.prior_auth import PriorAuthRequest
from priorauth.models.progress import ProgressCallbacks
from priorauth.models.stage_outputs import StageOutput
from priorauth.config.logging_config import get_logger

logger = get_logger(__name__)


class StageAgent(ABC):
    """
    A single linear pipeline stage.

    Subclasses implement ``run`` and report progress only through the
    callbacks they are given. A failure inside ``run`` is traced at error
    level on the stage's own category and then re-raised unchanged.
    """

    name: str = ""
    category: str = ""

    async def process(
        self,
        previous: Any,
        request: PriorAuthRequest,
        callbacks: ProgressCallbacks,
    ) -> StageOutput:
        """
        Run the stage.

        Args:
            previous: Output of the prior stage (the request itself for the first stage)
            request: The request being processed; never mutated
            callbacks: Progress channels for steps and traces

        Returns:
            The stage's typed output
        """
        try:
            return await self.run(previous, request, callbacks)
        except Exception as e:
            logger.error("Stage failed", agent=self.name, request_id=request.request_id, error=str(e))
            try:
                await callbacks.trace(
                    TraceLevel.ERROR,
                    self.category,
                    f"{self.category} failed: {e}",
                    {"agent": self.name, "error": str(e), "error_type": type(e).__name__},
                )
            except Exception as trace_error:
                # The stage's own error is what callers must see
                logger.warning(
                    "Failed to record stage error trace",
                    agent=self.name,
                    request_id=request.request_id,
                    error=str(trace_error),
                )
            raise

    @abstractmethod
    async def run(
        self,
        previous: Any,
        request: PriorAuthRequest,
        callbacks: ProgressCallbacks,
    ) -> StageOutput:
        pass
