"""MCP-style tool registry for the prior authorization pipeline.

Tools are registered with a name, description and JSON-Schema-like
input/output schemas, then invoked by name through the registry:
- Document processing and clinical extraction
- Member eligibility and claims history
- Coverage policy search and criteria matching
"""

from priorauth.mcp.registry import ToolRegistry, ToolDefinition, CallLogEntry
from priorauth.mcp.exceptions import (
    ToolRegistryError,
    RegistrationError,
    ToolNotFoundError,
    ToolValidationError,
    ToolExecutionError,
)

__all__ = [
    "ToolRegistry",
    "ToolDefinition",
    "CallLogEntry",
    "ToolRegistryError",
    "RegistrationError",
    "ToolNotFoundError",
    "ToolValidationError",
    "ToolExecutionError",
]
