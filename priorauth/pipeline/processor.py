"""Pipeline processor: runs one request through the four stages."""
import inspect
import random
import time
from datetime import datetime
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Union

from langgraph.graph import StateGraph, END

from priorauth.agents import DecisionAgent, OrchestratorAgent, PlanningAgent, SensingAgent
from priorauth.mcp.registry import ToolRegistry
from priorauth.models.enums import RequestStatus, TraceLevel, UpdateEvent
from priorauth.models.progress import ProgressCallbacks, StepDescriptor, TraceLogEntry, WorkflowStep
from priorauth.models.stage_outputs import DecisionOutput
from priorauth.pipeline.exceptions import AlreadyProcessingError, RequestNotFoundError
from priorauth.pipeline.state import PipelineState, create_initial_state
from priorauth.storage.interfaces import PriorAuthStore
from priorauth.config.request_context import pipeline_request_id_var
from priorauth.config.settings import Settings, get_settings
from priorauth.config.logging_config import get_logger

logger = get_logger(__name__)

UpdateSink = Callable[[str, Dict[str, Any]], Union[None, Awaitable[None]]]

STEP_DURATION_RANGE_MS = (800, 1400)


def step_timestamp(now: Optional[datetime] = None) -> str:
    """12-hour wall clock time, e.g. ``02:15:07 PM``."""
    return (now or datetime.now()).strftime("%I:%M:%S %p")


def trace_timestamp(now: Optional[datetime] = None) -> str:
    """24-hour wall clock time with milliseconds, e.g. ``14:15:07.042``."""
    return (now or datetime.now()).strftime("%H:%M:%S.%f")[:-3]


def processing_error_rationale(error: BaseException) -> str:
    return f"Processing error: {error}. Manual review required."


class PipelineProcessor:
    """
    Drives a request through Sensing, Planning, Orchestration and Decision.

    At most one run per request id is in flight at a time. Every workflow
    step and trace entry a stage reports is persisted through the store in
    emission order and then forwarded to the optional update sink.
    """

    def __init__(
        self,
        store: PriorAuthStore,
        registry: ToolRegistry,
        rng: Optional[random.Random] = None,
        settings: Optional[Settings] = None,
    ):
        """
        Initialize the processor with its collaborators.

        Args:
            store: Request and progress persistence
            registry: Tool registry the orchestrator calls through
            rng: Pseudo-random source for plan estimates and step durations
            settings: Application settings
        """
        settings = settings or get_settings()
        self.store = store
        self.registry = registry
        self.rng = rng or random.Random(settings.random_seed)

        self.sensing = SensingAgent(settings=settings)
        self.planning = PlanningAgent(rng=self.rng)
        self.orchestrator = OrchestratorAgent(registry)
        self.decision = DecisionAgent(store)

        self._in_flight: Dict[str, float] = {}
        self._compiled = self._build_graph().compile()
        logger.info("Pipeline processor initialized", tools=len(registry))

    def _build_graph(self) -> StateGraph:
        """Build the linear stage graph."""
        graph = StateGraph(PipelineState)

        graph.add_node("sensing", self._sensing_node)
        graph.add_node("planning", self._planning_node)
        graph.add_node("orchestration", self._orchestration_node)
        graph.add_node("decision", self._decision_node)

        graph.set_entry_point("sensing")
        graph.add_edge("sensing", "planning")
        graph.add_edge("planning", "orchestration")
        graph.add_edge("orchestration", "decision")
        graph.add_edge("decision", END)

        return graph

    async def _sensing_node(self, state: PipelineState) -> Dict[str, Any]:
        request = state["request"]
        output = await self.sensing.process(request, request, state["callbacks"])
        return {"sensing": output, "messages": ["Sensing completed"]}

    async def _planning_node(self, state: PipelineState) -> Dict[str, Any]:
        output = await self.planning.process(state["sensing"], state["request"], state["callbacks"])
        return {"planning": output, "messages": ["Planning completed"]}

    async def _orchestration_node(self, state: PipelineState) -> Dict[str, Any]:
        output = await self.orchestrator.process(state["planning"], state["request"], state["callbacks"])
        return {"orchestration": output, "messages": ["Orchestration completed"]}

    async def _decision_node(self, state: PipelineState) -> Dict[str, Any]:
        output = await self.decision.process(state["orchestration"], state["request"], state["callbacks"])
        return {"decision": output, "messages": [f"Decision: {output.decision.value}"]}

    def is_processing(self, request_id: str) -> bool:
        return request_id in self._in_flight

    @property
    def in_flight(self) -> Mapping[str, float]:
        """Read-only view of in-flight request ids and their start times."""
        return MappingProxyType(self._in_flight)

    async def process(self, request_id: str, on_update: Optional[UpdateSink] = None) -> DecisionOutput:
        """
        Process a request through the full pipeline.

        Args:
            request_id: Request to process
            on_update: Optional sink called as ``on_update(event, payload)``
                for status, step, trace, complete and error events. May be a
                plain function or a coroutine function.

        Returns:
            The final decision

        Raises:
            AlreadyProcessingError: A run for this request is in flight
            RequestNotFoundError: The request does not exist
        """
        # Check and mark with no await in between
        if request_id in self._in_flight:
            raise AlreadyProcessingError(request_id)
        self._in_flight[request_id] = time.monotonic()

        token = pipeline_request_id_var.set(request_id)
        found = False
        try:
            request = await self.store.get_request(request_id)
            if request is None:
                raise RequestNotFoundError(request_id)
            found = True

            removed_steps = await self.store.delete_steps(request_id)
            removed_traces = await self.store.delete_traces(request_id)
            if removed_steps or removed_traces:
                logger.info(
                    "Cleared previous run",
                    request_id=request_id,
                    steps=removed_steps,
                    traces=removed_traces,
                )

            await self.store.update_request(request_id, status=RequestStatus.PROCESSING)
            await self._emit(on_update, UpdateEvent.STATUS, {"status": RequestStatus.PROCESSING.value})

            logger.info("Starting pipeline", request_id=request_id, procedure_code=request.procedure_code)
            callbacks = self._build_callbacks(request_id, on_update)
            final_state = await self._compiled.ainvoke(create_initial_state(request, callbacks))
            result: DecisionOutput = final_state["decision"]

            await self._emit(on_update, UpdateEvent.COMPLETE, {
                "decision": result.decision.value,
                "status": result.status.value,
                "rationale": result.rationale,
                "confidence": result.confidence,
            })
            logger.info(
                "Pipeline complete",
                request_id=request_id,
                decision=result.decision.value,
                confidence=result.confidence,
            )
            return result

        except Exception as e:
            logger.error("Pipeline error", request_id=request_id, error=str(e), error_type=type(e).__name__)
            if found:
                await self._record_failure(request_id, e)
            await self._emit(on_update, UpdateEvent.ERROR, {"error": str(e)})
            raise

        finally:
            self._in_flight.pop(request_id, None)
            pipeline_request_id_var.reset(token)

    def _build_callbacks(self, request_id: str, on_update: Optional[UpdateSink]) -> ProgressCallbacks:
        """Per-run callbacks that number, persist and forward progress records."""
        step_counter = 0

        async def on_step(descriptor: StepDescriptor) -> None:
            nonlocal step_counter
            step_counter += 1
            duration_ms = descriptor.duration_ms
            if duration_ms is None:
                low, high = STEP_DURATION_RANGE_MS
                duration_ms = int(low + self.rng.random() * (high - low))
            step = WorkflowStep(
                request_id=request_id,
                step_number=step_counter,
                name=descriptor.name,
                description=descriptor.description,
                status=descriptor.status,
                timestamp=step_timestamp(),
                details=list(descriptor.details),
                tool_name=descriptor.tool_name,
                duration_ms=duration_ms,
            )
            await self.store.append_step(step)
            await self._emit(on_update, UpdateEvent.STEP, step.model_dump(mode="json"))

        async def on_trace(
            level: TraceLevel,
            category: str,
            message: str,
            details: Optional[Dict[str, Any]] = None,
        ) -> None:
            entry = TraceLogEntry(
                request_id=request_id,
                timestamp=trace_timestamp(),
                level=level,
                category=category,
                message=message,
                details=details or {},
            )
            await self.store.append_trace(entry)
            await self._emit(on_update, UpdateEvent.TRACE, entry.model_dump(mode="json"))

        return ProgressCallbacks(on_step=on_step, on_trace=on_trace)

    async def _record_failure(self, request_id: str, error: Exception) -> None:
        try:
            await self.store.update_request(
                request_id,
                status=RequestStatus.REVIEW,
                decision_rationale=processing_error_rationale(error),
            )
        except Exception as db_error:
            logger.error("Failed to update request on error", request_id=request_id, error=str(db_error))

    async def _emit(self, on_update: Optional[UpdateSink], event: UpdateEvent, payload: Dict[str, Any]) -> None:
        if on_update is None:
            return
        try:
            result = on_update(event.value, payload)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.warning("Update sink failed", event=event.value, error=str(e))
