"""Orchestrator agent: executes the tool plan and collects every output."""
import asyncio
from typing import Any, Awaitable, Dict, List

from priorauth.agents.base import StageAgent
from priorauth.agents.planning_agent import (
    DOCUMENT_PROCESSING,
    CLINICAL_EXTRACTION,
    MEMBER_ELIGIBILITY,
    CLAIMS_HISTORY,
    POLICY_SEARCH,
    CRITERIA_MATCHING,
)
from priorauth.mcp.registry import ToolRegistry
from priorauth.models.enums import TraceLevel
from priorauth.models.prior_auth import PriorAuthRequest
from priorauth.models.progress import ProgressCallbacks, StepDescriptor
from priorauth.models.stage_outputs import OrchestrationOutput, PlanningOutput
from priorauth.config.logging_config import get_logger

logger = get_logger(__name__)

UNKNOWN_POLICY = "UNKNOWN"


def _acronym(tool_name: str) -> str:
    return "".join(word[0].upper() for word in tool_name.split("-") if word)


async def _run_together(*calls: Awaitable[Any]) -> List[Any]:
    """
    Run calls concurrently and return their results in order.

    The first failure cancels the calls still running, then propagates.
    """
    tasks = [asyncio.ensure_future(call) for call in calls]
    try:
        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
    except asyncio.CancelledError:
        for task in tasks:
            task.cancel()
        raise

    if pending:
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

    for task in tasks:
        if task in done and task.exception() is not None:
            raise task.exception()
    return [task.result() for task in tasks]


def _percent(value: Any) -> str:
    return f"{float(value or 0) * 100:.0f}%"


class OrchestratorAgent(StageAgent):
    """
    Runs the six tools through the registry in five phases.

    Phase 3 (member eligibility and claims history) is the only concurrent
    phase; both calls must finish before the policy search starts.
    """

    name = "ToolOrchestrator"
    category = "Orchestrator"

    def __init__(self, registry: ToolRegistry):
        self.registry = registry

    async def run(
        self,
        previous: PlanningOutput,
        request: PriorAuthRequest,
        callbacks: ProgressCallbacks,
    ) -> OrchestrationOutput:
        tools = previous.tools
        strategy = previous.execution_order.strategy
        outputs: Dict[str, Any] = {}

        await callbacks.trace(TraceLevel.INFO, self.category, "Orchestrator activated by Planning Agent", {
            "orchestrator": self.name,
            "execution_plan": strategy,
            "tool_chain": " → ".join(tools),
        })
        await callbacks.step(StepDescriptor(
            name="Orchestrator Activation",
            description="Orchestrator agent sequences tool execution",
            details=[
                "Tool chain initialized",
                f"Execution strategy: {strategy}",
                f"{len(tools)} tools queued",
                f"Sequence: {' → '.join(_acronym(t) for t in tools)}",
            ],
        ))

        outputs["idp"] = await self._process_document(request, callbacks)
        outputs["extraction"] = await self._extract_clinical_data(request, outputs["idp"], callbacks)
        outputs["member"], outputs["claims"] = await self._lookup_member_and_claims(request, callbacks)
        outputs["search"] = await self._search_policies(request, callbacks)

        policies = outputs["search"].get("policies") or []
        policy_id = policies[0].get("policy_id") if policies else None
        policy_id = policy_id or UNKNOWN_POLICY

        outputs["match"] = await self._match_criteria(request, policy_id, outputs, callbacks)

        logger.info(
            "Tool chain completed",
            request_id=request.request_id,
            policy_id=policy_id,
            recommendation=outputs["match"].get("decision"),
        )
        return OrchestrationOutput(tool_outputs=outputs, policy_id=policy_id)

    async def _process_document(self, request: PriorAuthRequest, callbacks: ProgressCallbacks) -> Dict[str, Any]:
        document_path = request.document_url or f"/documents/{request.request_id}.pdf"
        await callbacks.trace(TraceLevel.INFO, "IDP Service", "Intelligent Document Processing tool invoked", {
            "tool": DOCUMENT_PROCESSING,
            "document_path": document_path,
            "processing_mode": "structured-extraction",
            "invoked_by": self.category,
        })

        result = await self.registry.call_tool(DOCUMENT_PROCESSING, {
            "document_path": document_path,
            "document_type": "prior-auth-request",
        })
        entities = len(result.get("entities") or [])

        await callbacks.trace(TraceLevel.SUCCESS, "IDP Service", "Document analysis completed successfully", {
            "pages_processed": result.get("page_count"),
            "entities_extracted": entities,
            "confidence": result.get("overall_confidence"),
            "processing_time_ms": result.get("processing_time_ms"),
        })
        await callbacks.step(StepDescriptor(
            name="Intelligent Document Processing",
            description="IDP tool extracts text, entities, and form fields from clinical PDF",
            details=[
                f"PDF parsed successfully ({result.get('page_count')} pages)",
                f"Text extraction completed with {_percent(result.get('overall_confidence'))} confidence",
                f"{entities} entities recognized",
                "Form fields identified and structured",
            ],
            tool_name=DOCUMENT_PROCESSING,
        ))
        return result

    async def _extract_clinical_data(
        self,
        request: PriorAuthRequest,
        document_data: Dict[str, Any],
        callbacks: ProgressCallbacks,
    ) -> Dict[str, Any]:
        await callbacks.trace(TraceLevel.INFO, "Data Extraction", "Clinical data extraction tool invoked", {
            "tool": CLINICAL_EXTRACTION,
            "extraction_type": "all",
            "invoked_by": self.category,
        })

        result = await self.registry.call_tool(CLINICAL_EXTRACTION, {
            "document_data": document_data,
            "extraction_type": "all",
            "request_context": {
                "procedure_code": request.procedure_code,
                "procedure_name": request.procedure_name,
                "diagnosis_codes": list(request.diagnosis_codes),
                "member_id": request.member_id,
                "patient_name": request.patient_name,
                "patient_dob": request.patient_dob,
                "provider": request.provider,
                "provider_npi": request.provider_npi,
                "status": request.status.value,
            },
        })
        procedures = len(result.get("procedure_codes") or [])
        diagnoses = len(result.get("diagnosis_codes") or [])

        await callbacks.trace(TraceLevel.SUCCESS, "Data Extraction", "Clinical entities extracted and validated", {
            "procedure_codes": procedures,
            "diagnosis_codes": diagnoses,
            "patient_fields": len(result.get("patient") or {}),
            "confidence": result.get("extraction_confidence"),
        })
        await callbacks.step(StepDescriptor(
            name="Clinical Data Extraction",
            description="NLP extraction of patient demographics, procedure/diagnosis codes, and clinical findings",
            details=[
                "Patient demographics extracted",
                f"{procedures} procedure codes identified and validated",
                f"{diagnoses} diagnosis codes parsed and confirmed",
                "Clinical findings structured from SOAP notes",
            ],
            tool_name=CLINICAL_EXTRACTION,
        ))
        return result

    async def _lookup_member_and_claims(self, request: PriorAuthRequest, callbacks: ProgressCallbacks):
        # Both invoked traces go out before either call is awaited
        await callbacks.trace(TraceLevel.INFO, "Member 360", "Member eligibility lookup tool invoked", {
            "tool": MEMBER_ELIGIBILITY,
            "member_id": request.member_id,
            "invoked_by": self.category,
        })
        await callbacks.trace(TraceLevel.INFO, "Claims API", "Claims history retrieval tool invoked", {
            "tool": CLAIMS_HISTORY,
            "member_id": request.member_id,
            "invoked_by": self.category,
        })

        member, claims = await _run_together(
            self.registry.call_tool(MEMBER_ELIGIBILITY, {
                "member_id": request.member_id,
                "query_type": "full-profile",
            }),
            self.registry.call_tool(CLAIMS_HISTORY, {
                "member_id": request.member_id,
                "procedure_code": request.clean_procedure_code,
                "diagnosis_codes": list(request.diagnosis_codes),
            }),
        )

        active = bool(member.get("is_active"))
        plan = member.get("plan") or {}
        issues: List[str] = member.get("issues") or []
        await callbacks.trace(
            TraceLevel.SUCCESS if active else TraceLevel.WARNING,
            "Member 360",
            "Member eligibility verified",
            {
                "status": "Active" if active else "Issue Detected",
                "plan_type": plan.get("plan_type"),
                "effective_date": (member.get("eligibility") or {}).get("effective_date"),
                "coverage_level": plan.get("coverage_level"),
                "issues": issues,
            },
        )
        await callbacks.step(StepDescriptor(
            name="Member Eligibility Verification",
            description="Verify member eligibility, coverage status, and benefits from Member 360",
            details=[
                f"Member ID {request.member_id} verified",
                f"Coverage status: {'Active' if active else 'Issue Detected'}",
                f"Plan: {plan.get('plan_type') or 'N/A'}",
                f"Issues: {', '.join(issues)}" if issues else "No eligibility issues detected",
            ],
            tool_name=MEMBER_ELIGIBILITY,
        ))

        related = len(claims.get("related_procedures") or [])
        metrics = claims.get("utilization_metrics") or {}
        await callbacks.trace(TraceLevel.SUCCESS, "Claims API", "Claims history retrieved successfully", {
            "total_claims": claims.get("total_claims"),
            "related_procedures": related,
            "last_claim_date": (claims.get("summary") or {}).get("last_claim_date"),
        })
        await callbacks.step(StepDescriptor(
            name="Claims History Analysis",
            description="Retrieve and analyze member claims history and utilization patterns",
            details=[
                f"{claims.get('total_claims', 0)} claims retrieved for past {claims.get('lookback_months')} months",
                f"{related} related procedures found",
                f"Approval rate: {metrics.get('approval_rate', 'N/A')}",
                f"Total billed: ${metrics.get('total_billed', '0')}",
            ],
            tool_name=CLAIMS_HISTORY,
        ))
        return member, claims

    async def _search_policies(self, request: PriorAuthRequest, callbacks: ProgressCallbacks) -> Dict[str, Any]:
        code = request.clean_procedure_code
        await callbacks.trace(TraceLevel.INFO, "NCD Search", "NCD/LCD guidelines search tool invoked", {
            "tool": POLICY_SEARCH,
            "procedure_code": code,
            "diagnosis_codes": list(request.diagnosis_codes),
            "invoked_by": self.category,
        })

        result = await self.registry.call_tool(POLICY_SEARCH, {
            "procedure_code": code,
            "diagnosis_codes": list(request.diagnosis_codes),
        })
        policies = result.get("policies") or []
        top = policies[0] if policies else None

        await callbacks.trace(
            TraceLevel.SUCCESS if top else TraceLevel.WARNING,
            "NCD Search",
            "Coverage policy matched" if top else "No coverage policy matched",
            {
                "matched_policies": result.get("total_matches", 0),
                "top_policy_id": top.get("policy_id") if top else None,
                "top_relevance_score": top.get("relevance_score") if top else None,
                "criteria_count": len(result.get("medical_necessity_criteria") or []),
            },
        )
        await callbacks.step(StepDescriptor(
            name="NCD/LCD Guidelines Search",
            description="Search coverage policies matching procedure and diagnosis codes",
            details=[
                f"{result.get('total_matches', 0)} matching policies found",
                (
                    f"Top match: {top['policy_id']} - {top.get('title')} (score: {top.get('relevance_score')})"
                    if top else "No matching policy found"
                ),
                f"{len(result.get('medical_necessity_criteria') or [])} medical necessity criteria loaded",
                f"{len(result.get('required_documentation') or [])} required documents identified",
            ],
            tool_name=POLICY_SEARCH,
        ))
        return result

    async def _match_criteria(
        self,
        request: PriorAuthRequest,
        policy_id: str,
        outputs: Dict[str, Any],
        callbacks: ProgressCallbacks,
    ) -> Dict[str, Any]:
        member = outputs["member"]
        claims = outputs["claims"]

        await callbacks.trace(TraceLevel.INFO, "Policy Match", "Policy criteria matching tool invoked", {
            "tool": CRITERIA_MATCHING,
            "policy_id": policy_id,
            "invoked_by": self.category,
        })

        result = await self.registry.call_tool(CRITERIA_MATCHING, {
            "policy_id": policy_id,
            "clinical_evidence": {**outputs["extraction"], "document_data": outputs["idp"]},
            "member_info": {
                "is_active": member.get("is_active"),
                "plan": member.get("plan"),
                "benefits": member.get("benefits"),
            },
            "claims_history": {
                "total_claims": claims.get("total_claims"),
                "related_procedures": claims.get("related_procedures"),
                "utilization_metrics": claims.get("utilization_metrics"),
                "summary": claims.get("summary"),
            },
            "request_context": {
                "request_id": request.request_id,
                "procedure_code": request.clean_procedure_code,
                "diagnosis_codes": list(request.diagnosis_codes),
                "status": request.status.value,
            },
        })

        decision = str(result.get("decision", "review"))
        scoring = result.get("scoring") or {}
        rationale = result.get("rationale") or ""
        await callbacks.trace(
            TraceLevel.SUCCESS if decision == "approve" else TraceLevel.WARNING,
            "Policy Match",
            f"Decision: {decision.upper()} - {rationale[:80]}",
            {
                "decision": decision,
                "confidence": result.get("confidence"),
                "criteria_met": scoring.get("criteria_met"),
                "criteria_total": scoring.get("total_criteria"),
                "match_percentage": scoring.get("match_percentage"),
            },
        )
        await callbacks.step(StepDescriptor(
            name="Policy Criteria Matching",
            description="Evaluate clinical evidence against policy criteria for decision recommendation",
            details=[
                f"Policy {policy_id} criteria evaluated",
                (
                    f"{scoring.get('criteria_met', 0)}/{scoring.get('total_criteria', 0)} criteria met "
                    f"({scoring.get('match_percentage', 0)}%)"
                ),
                f"Decision: {decision.upper()} (confidence: {result.get('confidence')})",
                rationale[:120],
            ],
            tool_name=CRITERIA_MATCHING,
        ))
        return result
