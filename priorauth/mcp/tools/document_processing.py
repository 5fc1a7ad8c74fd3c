"""Intelligent document processing (mocked OCR and form extraction).

Works on the document reference only; it does not read reference data.
"""
import time
from pathlib import Path
from typing import Any, Dict, List

from priorauth.mcp.tools.base import BaseTool

DOCUMENT_KINDS = ("prior-auth-request", "clinical-notes", "lab-results", "imaging-report", "mixed")

_BASE_ENTITIES = [
    ("PATIENT_NAME", 0.97, "page1:header"),
    ("DATE_OF_BIRTH", 0.96, "page1:header"),
    ("MEMBER_ID", 0.98, "page1:header"),
    ("PROVIDER_NAME", 0.95, "page1:header"),
    ("PROVIDER_NPI", 0.99, "page1:header"),
    ("DATE_OF_SERVICE", 0.94, "page1:body"),
]

_ENTITIES_BY_KIND = {
    "prior-auth-request": [
        ("PROCEDURE_CODE", 0.97, "page1:body"),
        ("PROCEDURE_NAME", 0.94, "page1:body"),
        ("DIAGNOSIS_CODE_PRIMARY", 0.96, "page1:body"),
        ("DIAGNOSIS_CODE_SECONDARY", 0.93, "page1:body"),
        ("URGENCY_INDICATOR", 0.91, "page1:body"),
        ("AUTHORIZATION_TYPE", 0.99, "page1:header"),
    ],
    "clinical-notes": [
        ("CHIEF_COMPLAINT", 0.92, "page1:subjective"),
        ("VITAL_SIGNS", 0.95, "page1:objective"),
        ("ASSESSMENT", 0.90, "page2:assessment"),
        ("TREATMENT_PLAN", 0.91, "page2:plan"),
    ],
    "lab-results": [
        ("LAB_TEST_NAME", 0.97, "page1:results"),
        ("LAB_VALUE", 0.96, "page1:results"),
        ("REFERENCE_RANGE", 0.98, "page1:results"),
        ("ABNORMAL_FLAG", 0.95, "page1:results"),
    ],
    "imaging-report": [
        ("IMAGING_MODALITY", 0.98, "page1:header"),
        ("BODY_REGION", 0.96, "page1:header"),
        ("FINDINGS", 0.88, "page1:body"),
        ("IMPRESSION", 0.90, "page1:impression"),
    ],
    "mixed": [
        ("PROCEDURE_CODE", 0.95, "page1:body"),
        ("DIAGNOSIS_CODE_PRIMARY", 0.94, "page1:body"),
        ("CLINICAL_FINDINGS", 0.88, "page2:body"),
        ("LAB_RESULTS_SUMMARY", 0.90, "page3:body"),
    ],
}

_SECTIONS_BY_KIND = {
    "prior-auth-request": [
        ("Patient Demographics", "Patient identification and insurance information", 1),
        ("Requested Service", "Procedure details and clinical codes", 1),
        ("Clinical Justification", "Medical necessity narrative and supporting evidence", 2),
        ("Provider Attestation", "Physician signature and certification", 3),
    ],
    "clinical-notes": [
        ("Subjective", "Chief complaint, HPI, ROS, medications", 1),
        ("Objective", "Vital signs, physical examination findings", 1),
        ("Assessment", "Clinical diagnoses and impressions", 2),
        ("Plan", "Treatment plan, orders, follow-up", 2),
    ],
    "lab-results": [
        ("Patient Information", "Demographics and ordering info", 1),
        ("Test Results", "Laboratory values with reference ranges", 1),
        ("Interpretation", "Clinical interpretation and flags", 2),
    ],
    "imaging-report": [
        ("Examination Details", "Modality, technique, contrast", 1),
        ("Findings", "Detailed anatomical observations", 1),
        ("Impression", "Summary diagnosis and recommendations", 1),
    ],
    "mixed": [
        ("Request Form", "Prior authorization request details", 1),
        ("Clinical Notes", "Supporting clinical documentation", 2),
        ("Supporting Evidence", "Lab results, imaging, treatment history", 3),
    ],
}

_BASE_FORM_FIELDS = {
    "patient_name": "text",
    "date_of_birth": "date",
    "member_id": "text",
    "provider_name": "text",
    "provider_npi": "text",
    "facility_name": "text",
    "date_of_service": "date",
}

_REQUEST_FORM_FIELDS = {
    "procedure_code": "code",
    "procedure_name": "text",
    "primary_diagnosis": "code",
    "secondary_diagnosis": "code",
    "urgency": "select",
    "authorization_type": "text",
    "clinical_justification": "freetext",
}


def _kind(document_type: str) -> str:
    return document_type if document_type in DOCUMENT_KINDS else "mixed"


def extract_entities(document_type: str) -> List[Dict[str, Any]]:
    rows = _BASE_ENTITIES + _ENTITIES_BY_KIND[_kind(document_type)]
    return [{"type": t, "value": "", "confidence": c, "location": loc} for t, c, loc in rows]


def extract_form_fields(document_type: str) -> Dict[str, Dict[str, Any]]:
    fields = dict(_BASE_FORM_FIELDS)
    if _kind(document_type) in ("prior-auth-request", "mixed"):
        fields.update(_REQUEST_FORM_FIELDS)
    return {name: {"value": "", "field_type": field_type} for name, field_type in fields.items()}


def extract_sections(document_type: str) -> List[Dict[str, Any]]:
    return [
        {"title": title, "content": content, "page_number": page}
        for title, content, page in _SECTIONS_BY_KIND[_kind(document_type)]
    ]


def extract_tables(document_type: str) -> List[Dict[str, Any]]:
    if _kind(document_type) not in ("lab-results", "mixed"):
        return []
    return [
        {
            "title": "Laboratory Results",
            "headers": ["Test", "Value", "Reference Range", "Flag"],
            "rows": [
                ["WBC", "", "4.5-11.0 K/uL", ""],
                ["Hemoglobin", "", "12.0-17.5 g/dL", ""],
                ["Platelets", "", "150-400 K/uL", ""],
                ["Creatinine", "", "0.7-1.3 mg/dL", ""],
            ],
            "confidence": 0.94,
        }
    ]


class DocumentProcessingTool(BaseTool):
    """Extracts structured data from an unstructured request document."""

    name = "intelligent-document-processing"
    description = (
        "Extracts structured JSON data from unstructured PDF documents including prior authorization "
        "requests, clinical notes, lab results, and imaging reports. Performs OCR text extraction, "
        "entity recognition, form field identification, and confidence scoring."
    )
    input_schema = {
        "type": "object",
        "properties": {
            "document_path": {"type": "string", "description": "Path to the document to process"},
            "document_type": {"type": "string", "enum": list(DOCUMENT_KINDS)},
            "extraction_options": {
                "type": "object",
                "properties": {
                    "extract_tables": {"type": "boolean", "default": True},
                    "ocr_mode": {"type": "string", "enum": ["standard", "high-accuracy", "fast"]},
                },
            },
        },
        "required": ["document_path", "document_type"],
    }
    output_schema = {
        "type": "object",
        "properties": {
            "document_id": {"type": "string"},
            "page_count": {"type": "integer"},
            "overall_confidence": {"type": "number"},
            "entities": {"type": "array"},
            "form_fields": {"type": "object"},
            "tables": {"type": "array"},
            "sections": {"type": "array"},
        },
    }
    latency_range_ms = (800, 1200)

    async def execute(self, params: Dict[str, Any]) -> Dict[str, Any]:
        # processing_time covers the simulated OCR latency
        started = time.perf_counter()
        result = await super().execute(params)
        result["processing_time_ms"] = int((time.perf_counter() - started) * 1000)
        return result

    async def run(self, params: Dict[str, Any]) -> Dict[str, Any]:
        document_path = str(params["document_path"])
        document_type = params["document_type"]
        options = params.get("extraction_options") or {}

        path = Path(document_path)
        file_size = path.stat().st_size if path.is_file() else 0
        page_count = max(2, file_size // 15000) if file_size else 3

        entities = extract_entities(document_type)
        form_fields = extract_form_fields(document_type)
        sections = extract_sections(document_type)
        tables = extract_tables(document_type) if options.get("extract_tables", True) else []

        return {
            "document_id": path.stem or "unknown",
            "document_type": document_type,
            "page_count": page_count,
            "overall_confidence": round(0.89 + self.rng.random() * 0.09, 3),
            "raw_text_preview": f"{document_type.upper()} [extracted content]...",
            "entities": entities,
            "form_fields": form_fields,
            "tables": tables,
            "sections": sections,
            "metadata": {
                "file_exists": file_size > 0,
                "file_size_bytes": file_size,
                "extraction_mode": options.get("ocr_mode", "standard"),
                "entities_extracted": len(entities),
                "fields_identified": len(form_fields),
                "tables_found": len(tables),
                "sections_found": len(sections),
            },
        }
