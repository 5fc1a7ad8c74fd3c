"""Request models for API endpoints."""
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from priorauth.models.enums import Priority, RequestStatus


class ToolCallRequest(BaseModel):
    """Request to invoke a registered tool directly."""
    name: str = Field(..., min_length=1, description="Registered tool name")
    params: Dict[str, Any] = Field(default_factory=dict, description="Tool parameters")


class UpdatePriorAuthRequest(BaseModel):
    """Manual update of a request's workflow fields."""
    status: Optional[RequestStatus] = Field(default=None, description="New status")
    priority: Optional[Priority] = Field(default=None, description="New priority")
    assigned_to: Optional[str] = Field(default=None, description="Assigned reviewer")
