"""SQLAlchemy ORM models for database tables."""
from datetime import datetime, timezone
from typing import Any, Dict, Optional


def _utcnow():
    """Return current UTC time (timezone-aware)."""
    return datetime.now(timezone.utc)


def _iso(value) -> Optional[str]:
    return value.isoformat() if value is not None else None


from sqlalchemy import Column, String, Integer, Float, Boolean, Date, DateTime, Text, ForeignKey, JSON, Index
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class PriorAuthRequestModel(Base):
    """Database model for prior authorization requests."""
    __tablename__ = "prior_auth_requests"

    request_id = Column(String(32), primary_key=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    # Patient and member
    patient_name = Column(String(200), nullable=False)
    patient_dob = Column(String(10), nullable=True)
    member_id = Column(String(32), nullable=False)

    # Provider
    provider = Column(String(200), nullable=True)
    provider_npi = Column(String(10), nullable=True)

    # Requested service
    procedure_name = Column(String(300), nullable=True)
    procedure_code = Column(String(32), nullable=False)
    diagnosis_codes = Column(JSON, nullable=False, default=list)

    # Workflow
    submitted_date = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    status = Column(String(20), nullable=False, default="pending")
    priority = Column(String(10), nullable=False, default="medium")
    assigned_to = Column(String(200), nullable=True)
    document_url = Column(String(500), nullable=True)

    # Decision
    decision_rationale = Column(Text, nullable=True)
    decision_date = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_prior_auth_requests_status", "status"),
        Index("ix_prior_auth_requests_submitted_date", "submitted_date"),
    )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "request_id": self.request_id,
            "patient_name": self.patient_name,
            "patient_dob": self.patient_dob,
            "member_id": self.member_id,
            "provider": self.provider,
            "provider_npi": self.provider_npi,
            "procedure_name": self.procedure_name,
            "procedure_code": self.procedure_code,
            "diagnosis_codes": self.diagnosis_codes or [],
            "submitted_date": _iso(self.submitted_date),
            "status": self.status,
            "priority": self.priority,
            "assigned_to": self.assigned_to,
            "document_url": self.document_url,
            "decision_rationale": self.decision_rationale,
            "decision_date": _iso(self.decision_date),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class WorkflowStepModel(Base):
    """Database model for coarse workflow steps."""
    __tablename__ = "workflow_steps"

    id = Column(Integer, primary_key=True, autoincrement=True)
    request_id = Column(String(32), ForeignKey("prior_auth_requests.request_id"), nullable=False)
    step_number = Column(Integer, nullable=False)
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(String(20), nullable=False)
    timestamp = Column(String(20), nullable=True)
    details = Column(JSON, nullable=False, default=list)
    tool_name = Column(String(100), nullable=True)
    duration_ms = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        Index("ix_workflow_steps_request_step", "request_id", "step_number"),
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "request_id": self.request_id,
            "step_number": self.step_number,
            "name": self.name,
            "description": self.description or "",
            "status": self.status,
            "timestamp": self.timestamp,
            "details": self.details or [],
            "tool_name": self.tool_name,
            "duration_ms": self.duration_ms,
        }


class TraceLogModel(Base):
    """Database model for fine-grained trace entries."""
    __tablename__ = "trace_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    request_id = Column(String(32), ForeignKey("prior_auth_requests.request_id"), nullable=False)
    timestamp = Column(String(20), nullable=False)
    level = Column(String(10), nullable=False)
    category = Column(String(100), nullable=False)
    message = Column(Text, nullable=False)
    details = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        Index("ix_trace_logs_request_id", "request_id"),
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "request_id": self.request_id,
            "timestamp": self.timestamp,
            "level": self.level,
            "category": self.category,
            "message": self.message,
            "details": self.details or {},
        }


class MemberModel(Base):
    """Member eligibility and benefits (member data product)."""
    __tablename__ = "members"

    member_id = Column(String(32), primary_key=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    date_of_birth = Column(String(10), nullable=True)
    gender = Column(String(10), nullable=True)
    address = Column(JSON, nullable=True, default=dict)
    phone = Column(String(20), nullable=True)
    email = Column(String(200), nullable=True)

    # Plan
    plan_type = Column(String(50), nullable=True)
    plan_id = Column(String(50), nullable=True)
    group_number = Column(String(50), nullable=True)
    coverage_level = Column(String(50), nullable=True)

    # Eligibility
    is_active = Column(Boolean, nullable=False, default=True)
    effective_date = Column(Date, nullable=True)
    termination_date = Column(Date, nullable=True)
    pre_auth_required = Column(Boolean, nullable=False, default=True)

    # Benefits
    copay_primary = Column(Float, nullable=False, default=0.0)
    copay_specialist = Column(Float, nullable=False, default=0.0)
    deductible_annual = Column(Float, nullable=False, default=0.0)
    deductible_met = Column(Float, nullable=False, default=0.0)
    max_out_of_pocket = Column(Float, nullable=False, default=0.0)
    oop_met = Column(Float, nullable=False, default=0.0)

    # Primary care
    pcp_name = Column(String(200), nullable=True)
    pcp_npi = Column(String(10), nullable=True)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "member_id": self.member_id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "date_of_birth": self.date_of_birth,
            "gender": self.gender,
            "address": self.address or {},
            "phone": self.phone,
            "email": self.email,
            "plan_type": self.plan_type,
            "plan_id": self.plan_id,
            "group_number": self.group_number,
            "coverage_level": self.coverage_level,
            "is_active": self.is_active,
            "effective_date": _iso(self.effective_date),
            "termination_date": _iso(self.termination_date),
            "pre_auth_required": self.pre_auth_required,
            "copay_primary": self.copay_primary,
            "copay_specialist": self.copay_specialist,
            "deductible_annual": self.deductible_annual,
            "deductible_met": self.deductible_met,
            "max_out_of_pocket": self.max_out_of_pocket,
            "oop_met": self.oop_met,
            "pcp_name": self.pcp_name,
            "pcp_npi": self.pcp_npi,
        }


class ClaimModel(Base):
    """Historical claims (claims data product)."""
    __tablename__ = "claims"

    claim_id = Column(String(32), primary_key=True)
    member_id = Column(String(32), nullable=False)
    service_date = Column(Date, nullable=False)
    provider_name = Column(String(200), nullable=True)
    facility_name = Column(String(200), nullable=True)
    cpt_code = Column(String(16), nullable=True)
    cpt_description = Column(String(300), nullable=True)
    icd10_codes = Column(JSON, nullable=False, default=list)
    billed_amount = Column(Float, nullable=False, default=0.0)
    paid_amount = Column(Float, nullable=False, default=0.0)
    patient_responsibility = Column(Float, nullable=False, default=0.0)
    claim_status = Column(String(20), nullable=False, default="paid")
    denial_reason = Column(Text, nullable=True)
    service_type = Column(String(50), nullable=True)
    auth_number = Column(String(50), nullable=True)

    __table_args__ = (
        Index("ix_claims_member_service_date", "member_id", "service_date"),
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "claim_id": self.claim_id,
            "member_id": self.member_id,
            "service_date": _iso(self.service_date),
            "provider_name": self.provider_name,
            "facility_name": self.facility_name,
            "cpt_code": self.cpt_code,
            "cpt_description": self.cpt_description,
            "icd10_codes": self.icd10_codes or [],
            "billed_amount": self.billed_amount,
            "paid_amount": self.paid_amount,
            "patient_responsibility": self.patient_responsibility,
            "claim_status": self.claim_status,
            "denial_reason": self.denial_reason,
            "service_type": self.service_type,
            "auth_number": self.auth_number,
        }


class CoveragePolicyModel(Base):
    """NCD/LCD coverage policies with their criteria."""
    __tablename__ = "coverage_policies"

    policy_id = Column(String(32), primary_key=True)
    policy_type = Column(String(16), nullable=False)
    title = Column(String(300), nullable=False)
    procedure_codes = Column(JSON, nullable=False, default=list)
    diagnosis_codes = Column(JSON, nullable=False, default=list)
    effective_date = Column(Date, nullable=True)
    termination_date = Column(Date, nullable=True)

    # Criteria
    medical_necessity_criteria = Column(JSON, nullable=False, default=list)
    required_documentation = Column(JSON, nullable=False, default=list)
    approval_conditions = Column(JSON, nullable=False, default=dict)
    denial_conditions = Column(JSON, nullable=False, default=dict)
    review_triggers = Column(JSON, nullable=False, default=dict)
    conservative_treatment_required = Column(Boolean, nullable=False, default=False)
    conservative_treatment_details = Column(JSON, nullable=True)
    frequency_limits = Column(JSON, nullable=True)
    source_url = Column(String(500), nullable=True)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "policy_id": self.policy_id,
            "policy_type": self.policy_type,
            "title": self.title,
            "procedure_codes": self.procedure_codes or [],
            "diagnosis_codes": self.diagnosis_codes or [],
            "effective_date": _iso(self.effective_date),
            "termination_date": _iso(self.termination_date),
            "medical_necessity_criteria": self.medical_necessity_criteria or [],
            "required_documentation": self.required_documentation or [],
            "approval_conditions": self.approval_conditions or {},
            "denial_conditions": self.denial_conditions or {},
            "review_triggers": self.review_triggers or {},
            "conservative_treatment_required": self.conservative_treatment_required,
            "conservative_treatment_details": self.conservative_treatment_details,
            "frequency_limits": self.frequency_limits,
            "source_url": self.source_url,
        }
