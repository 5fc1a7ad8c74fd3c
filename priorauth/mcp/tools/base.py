"""Common base for the mock prior authorization tools."""
import asyncio
import random
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Tuple

from priorauth.mcp.registry import ToolDefinition
from priorauth.storage.interfaces import ReferenceDataSource
from priorauth.config.logging_config import get_logger

logger = get_logger(__name__)


class BaseTool(ABC):
    """
    A registrable tool with simulated I/O latency.

    Subclasses declare their name, description and schemas as class
    attributes and implement ``run``. Tools never call each other; only the
    orchestrator composes them.
    """

    name: str = ""
    description: str = ""
    input_schema: Dict[str, Any] = {}
    output_schema: Dict[str, Any] = {}
    latency_range_ms: Tuple[int, int] = (500, 800)

    def __init__(
        self,
        data_source: Optional[ReferenceDataSource] = None,
        rng: Optional[random.Random] = None,
        latency_scale: float = 1.0,
    ):
        """
        Initialize the tool.

        Args:
            data_source: Reference data the tool reads (members, claims, policies)
            rng: Injected pseudo-random source for latency and mocked scoring
            latency_scale: Multiplier on simulated latency; 0 disables sleeping
        """
        self.data_source = data_source
        self.rng = rng or random.Random()
        self.latency_scale = latency_scale

    def definition(self) -> ToolDefinition:
        """Build the registry definition for this tool."""
        return ToolDefinition(
            name=self.name,
            description=self.description,
            input_schema=self.input_schema,
            output_schema=self.output_schema,
            execute=self.execute,
        )

    async def execute(self, params: Dict[str, Any]) -> Dict[str, Any]:
        """Registry entry point: simulate latency, then run the tool logic."""
        await self._simulate_latency()
        return await self.run(params)

    @abstractmethod
    async def run(self, params: Dict[str, Any]) -> Dict[str, Any]:
        """Tool logic over validated params."""
        pass

    async def _simulate_latency(self) -> None:
        low, high = self.latency_range_ms
        delay_ms = low + self.rng.random() * (high - low)
        if self.latency_scale > 0:
            await asyncio.sleep(delay_ms * self.latency_scale / 1000)
        else:
            # Still yield so concurrent calls interleave as they would with real I/O
            await asyncio.sleep(0)

    def _require_data_source(self) -> ReferenceDataSource:
        if self.data_source is None:
            raise RuntimeError(f"Tool {self.name} requires a reference data source")
        return self.data_source
