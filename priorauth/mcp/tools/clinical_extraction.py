"""Clinical entity and code extraction from document processing output."""
from datetime import datetime, timezone
from typing import Any, Dict, List

from priorauth.mcp.tools.base import BaseTool
from priorauth.models.prior_auth import clean_procedure_code

EXTRACTION_TYPES = ("patient-demographics", "medical-codes", "clinical-findings", "all")


def _field(document_data: Dict[str, Any], name: str) -> str:
    return ((document_data.get("form_fields") or {}).get(name) or {}).get("value") or ""


def extract_patient(document_data: Dict[str, Any], context: Dict[str, Any]) -> Dict[str, Any]:
    """Patient demographics, preferring the request context over form fields."""
    return {
        "name": context.get("patient_name") or _field(document_data, "patient_name"),
        "date_of_birth": context.get("patient_dob") or _field(document_data, "date_of_birth"),
        "member_id": context.get("member_id") or _field(document_data, "member_id"),
        "provider": context.get("provider") or _field(document_data, "provider_name"),
        "provider_npi": context.get("provider_npi") or _field(document_data, "provider_npi"),
        "confidence": 0.96,
    }


def extract_clinical_findings(document_data: Dict[str, Any], context: Dict[str, Any]) -> Dict[str, Any]:
    sections = [s.get("title") for s in document_data.get("sections") or []]
    return {
        "chief_complaint": "Extracted from clinical notes section",
        "history_of_present_illness": "Progressive symptoms documented",
        "physical_examination": {
            "vital_signs": "Extracted",
            "relevant_findings": "Documented in clinical notes",
        },
        "assessment": "Clinical assessment extracted from SOAP note",
        "plan": "Treatment plan documented",
        "conservative_treatment": {
            "documented": True,
            "treatments": ["Extracted from treatment history section"],
        },
        "source_sections": sections,
        "confidence": 0.88,
    }


class ClinicalExtractionTool(BaseTool):
    """Extracts demographics, codes and clinical findings, validating codes against coverage policies."""

    name = "clinical-data-extraction"
    description = (
        "Extracts structured clinical data from IDP output including patient demographics, CPT "
        "procedure codes, ICD-10 diagnosis codes, and clinical findings. Validates medical codes "
        "against known code databases."
    )
    input_schema = {
        "type": "object",
        "properties": {
            "document_data": {"type": "object", "description": "Structured output of the document processing tool"},
            "raw_text": {"type": "string"},
            "extraction_type": {"type": "string", "enum": list(EXTRACTION_TYPES), "default": "all"},
            "request_context": {"type": "object", "description": "Prior auth request context for enrichment"},
        },
        "required": ["document_data"],
    }
    output_schema = {
        "type": "object",
        "properties": {
            "patient": {"type": "object"},
            "procedure_codes": {"type": "array"},
            "diagnosis_codes": {"type": "array"},
            "clinical_findings": {"type": "object"},
            "code_validation": {"type": "object"},
            "extraction_confidence": {"type": "number"},
        },
    }
    latency_range_ms = (600, 900)

    async def run(self, params: Dict[str, Any]) -> Dict[str, Any]:
        document_data = params["document_data"] or {}
        extraction_type = params.get("extraction_type") or "all"
        context = params.get("request_context") or {}
        everything = extraction_type == "all"

        result: Dict[str, Any] = {
            "extraction_type": extraction_type,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

        if everything or extraction_type == "patient-demographics":
            result["patient"] = extract_patient(document_data, context)

        if everything or extraction_type == "medical-codes":
            procedure_code = context.get("procedure_code") or ""
            diagnosis_codes: List[str] = context.get("diagnosis_codes") or []
            result["procedure_codes"] = [
                {
                    "code": procedure_code,
                    "system": "HCPCS" if procedure_code.startswith("HCPCS") else "CPT",
                    "description": context.get("procedure_name") or "",
                    "confidence": 0.97,
                    "validated": True,
                }
            ]
            result["diagnosis_codes"] = [
                {
                    "code": code,
                    "system": "ICD-10-CM",
                    "is_primary": index == 0,
                    "confidence": round(0.95 - index * 0.02, 2),
                    "validated": True,
                }
                for index, code in enumerate(diagnosis_codes)
            ]
            result["code_validation"] = await self._validate_procedure_code(procedure_code)

        if everything or extraction_type == "clinical-findings":
            result["clinical_findings"] = extract_clinical_findings(document_data, context)

        result["extraction_confidence"] = round(0.92 + self.rng.random() * 0.06, 3)
        result["entities_extracted"] = (
            len(result.get("patient") or {})
            + len(result.get("procedure_codes") or [])
            + len(result.get("diagnosis_codes") or [])
            + (5 if "clinical_findings" in result else 0)
        )
        return result

    async def _validate_procedure_code(self, procedure_code: str) -> Dict[str, Any]:
        policies = await self._require_data_source().list_policies(
            procedure_code=clean_procedure_code(procedure_code)
        )
        top = policies[0] if policies else None
        return {
            "procedure_code_found": top is not None,
            "matching_policy": top.get("policy_id") if top else None,
            "matching_policy_title": top.get("title") if top else None,
        }
