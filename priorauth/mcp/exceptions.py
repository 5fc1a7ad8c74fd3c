"""Tool registry exceptions."""
from typing import Iterable, Optional


class ToolRegistryError(Exception):
    """Base class for tool registry errors."""
    pass


class RegistrationError(ToolRegistryError):
    """Raised when a tool definition is malformed or its name is already taken."""
    pass


class ToolNotFoundError(ToolRegistryError):
    """Raised when a call references a tool that is not registered."""

    def __init__(self, tool_name: str, available: Iterable[str] = ()):
        self.tool_name = tool_name
        self.available = list(available)
        super().__init__(
            f'Tool "{tool_name}" not found in registry. Available: {", ".join(self.available)}'
        )


class ToolValidationError(ToolRegistryError):
    """Raised when a required input field is missing from a tool call."""

    def __init__(self, tool_name: str, field: str):
        self.tool_name = tool_name
        self.field = field
        super().__init__(f'Tool "{tool_name}" missing required parameter: {field}')


class ToolExecutionError(ToolRegistryError):
    """Raised by a tool's own logic. The registry re-raises it unchanged."""

    def __init__(self, tool_name: str, message: str, cause: Optional[BaseException] = None):
        self.tool_name = tool_name
        self.cause = cause
        super().__init__(message)
