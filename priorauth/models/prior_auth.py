"""Prior authorization request model."""
from dataclasses import dataclass, field
from typing import List, Optional

from .enums import RequestStatus, Priority

_CODE_PREFIXES = ("CPT-", "HCPCS-")


def clean_procedure_code(code: Optional[str]) -> str:
    """Strip the CPT/HCPCS prefix from a procedure code ("CPT-27447" -> "27447")."""
    if not code:
        return ""
    for prefix in _CODE_PREFIXES:
        if code.startswith(prefix):
            return code[len(prefix):]
    return code


@dataclass(frozen=True)
class PriorAuthRequest:
    """
    Snapshot of a prior authorization request as loaded from storage.

    The pipeline never mutates this object; status transitions go through the store.
    """
    request_id: str
    patient_name: str
    member_id: str
    procedure_code: str
    patient_dob: Optional[str] = None
    provider: Optional[str] = None
    provider_npi: Optional[str] = None
    procedure_name: Optional[str] = None
    diagnosis_codes: List[str] = field(default_factory=list)
    submitted_date: Optional[str] = None
    status: RequestStatus = RequestStatus.PENDING
    priority: Priority = Priority.MEDIUM
    assigned_to: Optional[str] = None
    document_url: Optional[str] = None
    decision_rationale: Optional[str] = None
    decision_date: Optional[str] = None

    @property
    def clean_procedure_code(self) -> str:
        return clean_procedure_code(self.procedure_code)
