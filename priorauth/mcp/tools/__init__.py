"""Mock prior authorization tools and registry wiring."""
import random
from typing import List, Optional

from priorauth.mcp.registry import ToolRegistry
from priorauth.mcp.tools.base import BaseTool
from priorauth.mcp.tools.claims_history import ClaimsHistoryTool
from priorauth.mcp.tools.clinical_extraction import ClinicalExtractionTool
from priorauth.mcp.tools.criteria_matching import CriteriaMatchingTool
from priorauth.mcp.tools.document_processing import DocumentProcessingTool
from priorauth.mcp.tools.member_eligibility import MemberEligibilityTool
from priorauth.mcp.tools.policy_search import PolicySearchTool
from priorauth.storage.interfaces import ReferenceDataSource
from priorauth.config.settings import Settings, get_settings

TOOL_CLASSES = (
    DocumentProcessingTool,
    ClinicalExtractionTool,
    MemberEligibilityTool,
    ClaimsHistoryTool,
    PolicySearchTool,
    CriteriaMatchingTool,
)


def build_tools(
    data_source: ReferenceDataSource,
    rng: Optional[random.Random] = None,
    settings: Optional[Settings] = None,
) -> List[BaseTool]:
    """Instantiate the six tools over one data source and random source."""
    settings = settings or get_settings()
    rng = rng or random.Random(settings.random_seed)
    tools: List[BaseTool] = []
    for tool_class in TOOL_CLASSES:
        kwargs = {}
        if tool_class is ClaimsHistoryTool:
            kwargs["default_lookback_months"] = settings.claims_lookback_months
        tools.append(
            tool_class(
                data_source=data_source,
                rng=rng,
                latency_scale=settings.tool_latency_scale,
                **kwargs,
            )
        )
    return tools


def build_tool_registry(
    data_source: ReferenceDataSource,
    rng: Optional[random.Random] = None,
    settings: Optional[Settings] = None,
) -> ToolRegistry:
    """
    Create a registry with every tool registered.

    Args:
        data_source: Reference data the tools read
        rng: Shared pseudo-random source; seeded from settings when omitted
        settings: Application settings

    Returns:
        A ready ToolRegistry
    """
    settings = settings or get_settings()
    registry = ToolRegistry(
        max_log_entries=settings.call_log_max_entries,
        param_max_chars=settings.call_log_param_max_chars,
    )
    for tool in build_tools(data_source, rng=rng, settings=settings):
        registry.register_tool(tool.definition())
    return registry


__all__ = [
    "BaseTool",
    "DocumentProcessingTool",
    "ClinicalExtractionTool",
    "MemberEligibilityTool",
    "ClaimsHistoryTool",
    "PolicySearchTool",
    "CriteriaMatchingTool",
    "TOOL_CLASSES",
    "build_tools",
    "build_tool_registry",
]
