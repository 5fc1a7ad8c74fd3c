"""Tool registry API routes."""
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse

from priorauth.api.dependencies import get_registry
from priorauth.api.requests import ToolCallRequest
from priorauth.api.responses import ToolCallResponse, ToolListResponse
from priorauth.mcp.exceptions import ToolNotFoundError, ToolValidationError
from priorauth.mcp.registry import ToolRegistry
from priorauth.config.logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/mcp", tags=["Tools"])


@router.get("/tools", response_model=ToolListResponse)
async def list_tools(registry: ToolRegistry = Depends(get_registry)):
    """List all registered tools."""
    tools = registry.list_tools()
    return ToolListResponse(tools=tools, total_tools=len(tools))


@router.get("/tools/{name}")
async def get_tool(name: str, registry: ToolRegistry = Depends(get_registry)) -> Dict[str, Any]:
    """Get one tool's schema."""
    schema = registry.get_tool_schema(name)
    if schema is None:
        raise HTTPException(status_code=404, detail=f"Tool '{name}' not found")
    return schema


@router.post("/tools/call", response_model=ToolCallResponse)
async def call_tool(body: ToolCallRequest, registry: ToolRegistry = Depends(get_registry)):
    """
    Invoke a tool through the registry.

    Returns 404 for an unknown tool, 400 when a required parameter is
    missing and 500 with the error message when the tool itself fails.
    """
    try:
        result = await registry.call_tool(body.name, body.params)
    except ToolNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ToolValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error("Tool invocation error", tool=body.name, error=str(e))
        return JSONResponse(
            status_code=500,
            content=ToolCallResponse(tool=body.name, error=str(e)).model_dump(),
        )
    return ToolCallResponse(tool=body.name, result=result)


@router.get("/stats")
async def get_stats(registry: ToolRegistry = Depends(get_registry)) -> Dict[str, Any]:
    """Registry statistics."""
    return registry.get_stats()


@router.get("/call-log")
async def get_call_log(
    limit: int = Query(50, ge=1, le=1000),
    registry: ToolRegistry = Depends(get_registry),
) -> List[Dict[str, Any]]:
    """Most recent tool invocations, oldest first."""
    return [entry.to_dict() for entry in registry.get_call_log(limit)]
