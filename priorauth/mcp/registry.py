"""Tool registry following the Model Context Protocol tool contract.

Tools register with a name, description, JSON-Schema-like input/output
schemas and an async ``execute(params)`` handler. The registry checks that
required inputs are present, dispatches the call and records every
invocation in a bounded call log.

Usage:
    registry = ToolRegistry()
    registry.register_tool(tool.definition())
    result = await registry.call_tool("member-eligibility-lookup", {"member_id": "MBR-1001"})
"""
import asyncio
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Union

from priorauth.mcp.exceptions import RegistrationError, ToolNotFoundError, ToolValidationError
from priorauth.config.logging_config import get_logger

logger = get_logger(__name__)

ToolHandler = Callable[[Dict[str, Any]], Awaitable[Any]]

DEFAULT_MAX_LOG_ENTRIES = 1000
DEFAULT_PARAM_MAX_CHARS = 200
TRUNCATION_MARKER = "...[truncated]"


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class ToolDefinition:
    """A registrable tool."""
    name: str
    description: str
    input_schema: Dict[str, Any]
    execute: ToolHandler
    output_schema: Dict[str, Any] = field(default_factory=dict)
    registered_at: Optional[str] = None

    @property
    def required_fields(self) -> List[str]:
        return list(self.input_schema.get("required") or [])

    def metadata(self) -> Dict[str, Any]:
        """Discovery view of the tool, without the handler."""
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.input_schema,
            "output_schema": self.output_schema,
            "registered_at": self.registered_at,
        }


@dataclass(frozen=True)
class CallLogEntry:
    """Immutable record of one tool invocation."""
    tool_name: str
    params: Dict[str, Any]
    duration_ms: int
    success: bool
    error: Optional[str] = None
    timestamp: str = field(default_factory=_utcnow_iso)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tool_name": self.tool_name,
            "params": self.params,
            "duration_ms": self.duration_ms,
            "success": self.success,
            "error": self.error,
            "timestamp": self.timestamp,
        }


class ToolRegistry:
    """
    Registry of callable tools with presence-only input validation.

    The tool map is expected to be fixed after startup. The call log is the
    only structure mutated during steady-state operation and is guarded by a
    lock so calls dispatched from worker threads cannot interleave a trim.
    """

    def __init__(
        self,
        max_log_entries: int = DEFAULT_MAX_LOG_ENTRIES,
        param_max_chars: int = DEFAULT_PARAM_MAX_CHARS,
    ):
        """
        Initialize an empty registry.

        Args:
            max_log_entries: Hard cap on the call log; exceeding it keeps the newest half
            param_max_chars: String parameters longer than this are truncated in the log
        """
        if max_log_entries < 2:
            raise ValueError("max_log_entries must be at least 2")
        self._tools: Dict[str, ToolDefinition] = {}
        self._call_log: List[CallLogEntry] = []
        self._log_lock = threading.Lock()
        self.max_log_entries = max_log_entries
        self.param_max_chars = param_max_chars

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register_tool(self, definition: Union[ToolDefinition, Mapping[str, Any]]) -> ToolDefinition:
        """
        Register a tool.

        Args:
            definition: A ToolDefinition, or a mapping with name, description,
                input_schema, execute and optionally output_schema

        Returns:
            The stored definition, stamped with its registration time

        Raises:
            RegistrationError: If a mandatory field is missing, execute is not
                callable, or the name is already registered
        """
        if isinstance(definition, ToolDefinition):
            name = definition.name
            description = definition.description
            input_schema = definition.input_schema
            execute = definition.execute
            output_schema = definition.output_schema
        else:
            name = definition.get("name")
            description = definition.get("description")
            input_schema = definition.get("input_schema")
            execute = definition.get("execute")
            output_schema = definition.get("output_schema")

        missing = [
            label
            for label, value in (
                ("name", name),
                ("description", description),
                ("input_schema", input_schema),
                ("execute", execute),
            )
            if value is None or value == ""
        ]
        if missing:
            raise RegistrationError(
                f"Tool registration failed: missing required fields ({', '.join(missing)})"
            )

        if name in self._tools:
            raise RegistrationError(f'Tool "{name}" is already registered')

        if not callable(execute):
            raise RegistrationError(f'Tool "{name}" execute must be callable')

        stored = ToolDefinition(
            name=name,
            description=description,
            input_schema=dict(input_schema),
            execute=execute,
            output_schema=dict(output_schema or {}),
            registered_at=_utcnow_iso(),
        )
        self._tools[name] = stored

        logger.info("Tool registered", tool=name, required=stored.required_fields)
        return stored

    def unregister_tool(self, name: str) -> None:
        """Remove a tool if present."""
        if self._tools.pop(name, None) is not None:
            logger.info("Tool unregistered", tool=name)

    def has_tool(self, name: str) -> bool:
        return name in self._tools

    # ------------------------------------------------------------------
    # Invocation
    # ------------------------------------------------------------------

    async def call_tool(self, name: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """
        Validate and invoke a registered tool.

        Args:
            name: Registered tool name
            params: Tool input parameters

        Returns:
            The tool's result, unmodified

        Raises:
            ToolNotFoundError: If no tool with that name is registered
            ToolValidationError: If a required parameter is absent or None
            Exception: Whatever the tool raised, re-raised unchanged
        """
        params = params or {}
        tool = self._tools.get(name)
        if tool is None:
            raise ToolNotFoundError(name, self._tools.keys())

        for required in tool.required_fields:
            if params.get(required) is None:
                raise ToolValidationError(name, required)

        started = time.perf_counter()
        error: Optional[str] = None
        try:
            return await tool.execute(params)
        except asyncio.CancelledError:
            error = "cancelled"
            raise
        except Exception as e:
            error = str(e) or type(e).__name__
            raise
        finally:
            duration_ms = int((time.perf_counter() - started) * 1000)
            self._record_call(
                CallLogEntry(
                    tool_name=name,
                    params=self._sanitize_params(params),
                    duration_ms=duration_ms,
                    success=error is None,
                    error=error,
                )
            )

    def _record_call(self, entry: CallLogEntry) -> None:
        with self._log_lock:
            self._call_log.append(entry)
            if len(self._call_log) > self.max_log_entries:
                self._call_log = self._call_log[-(self.max_log_entries // 2):]

    def _sanitize_params(self, params: Dict[str, Any]) -> Dict[str, Any]:
        """Copy params for the log, truncating long string values."""
        sanitized = {}
        for key, value in params.items():
            if isinstance(value, str) and len(value) > self.param_max_chars:
                sanitized[key] = value[:self.param_max_chars] + TRUNCATION_MARKER
            else:
                sanitized[key] = value
        return sanitized

    # ------------------------------------------------------------------
    # Discovery and stats
    # ------------------------------------------------------------------

    def list_tools(self) -> List[Dict[str, Any]]:
        """List metadata for every registered tool (MCP tools/list)."""
        return [tool.metadata() for tool in self._tools.values()]

    def get_tool_schema(self, name: str) -> Optional[Dict[str, Any]]:
        """
        Get one tool's schema.

        Returns:
            Tool metadata, or None if the tool is not registered
        """
        tool = self._tools.get(name)
        if tool is None:
            return None
        return {
            "name": tool.name,
            "description": tool.description,
            "input_schema": tool.input_schema,
            "output_schema": tool.output_schema,
        }

    def get_call_log(self, limit: int = 50) -> List[CallLogEntry]:
        """Return the most recent call log entries, oldest first."""
        if limit <= 0:
            return []
        with self._log_lock:
            return list(self._call_log[-limit:])

    def get_stats(self) -> Dict[str, Any]:
        """Summarize the call log."""
        with self._log_lock:
            entries = list(self._call_log)

        total = len(entries)
        succeeded = sum(1 for entry in entries if entry.success)
        calls_by_tool: Dict[str, int] = {}
        for entry in entries:
            calls_by_tool[entry.tool_name] = calls_by_tool.get(entry.tool_name, 0) + 1

        return {
            "registered_tools": len(self._tools),
            "total_calls": total,
            "success_rate": f"{succeeded / total * 100:.1f}%" if total else "N/A",
            "calls_by_tool": calls_by_tool,
        }

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools
