"""FastAPI dependencies for dependency injection."""
from fastapi import Request

from priorauth.mcp.registry import ToolRegistry
from priorauth.pipeline.processor import PipelineProcessor
from priorauth.storage.sql_store import SqlPriorAuthStore


def get_store(request: Request) -> SqlPriorAuthStore:
    """Get the request store built at startup."""
    return request.app.state.store


def get_registry(request: Request) -> ToolRegistry:
    """Get the tool registry built at startup."""
    return request.app.state.registry


def get_processor(request: Request) -> PipelineProcessor:
    """Get the pipeline processor built at startup."""
    return request.app.state.processor
