"""Seed members, claims, coverage policies and demo requests on startup."""
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from priorauth.storage.models import (
    MemberModel,
    ClaimModel,
    CoveragePolicyModel,
    PriorAuthRequestModel,
)
from priorauth.config.logging_config import get_logger

logger = get_logger(__name__)


def _days_ago(days: int, today: Optional[date] = None) -> date:
    return (today or date.today()) - timedelta(days=days)


SEED_POLICIES: List[Dict[str, Any]] = [
    {
        "policy_id": "NCD-150.4",
        "policy_type": "NCD",
        "title": "Total Knee Arthroplasty (TKA)",
        "procedure_codes": ["27447", "27446"],
        "diagnosis_codes": ["M17.11", "M17.12", "M17.0", "M17.9"],
        "effective_date": date(2024, 1, 1),
        "medical_necessity_criteria": [
            "Radiographic evidence of moderate-to-severe osteoarthritis (Kellgren-Lawrence Grade 3-4)",
            "Failure of conservative treatment for minimum 3 months",
            "Significant functional impairment documented by validated outcome measure",
            "BMI below 40 or documented weight management plan",
        ],
        "required_documentation": [
            "Weight-bearing knee radiographs",
            "Conservative treatment history (PT, injections, NSAIDs)",
            "Functional assessment scores (KOOS or WOMAC)",
            "Surgical clearance and pre-operative evaluation",
            "BMI documentation",
        ],
        "approval_conditions": {
            "auto_approve": False,
            "conditions": ["All medical necessity criteria met with complete documentation"],
        },
        "denial_conditions": {
            "conditions": [
                "BMI over 40 without documented weight management",
                "Less than 3 months conservative treatment",
                "No radiographic evidence of significant arthritis",
            ],
        },
        "review_triggers": {
            "conditions": [
                "Age under 55 or over 85",
                "Bilateral TKA request",
                "History of prior knee surgery",
            ],
        },
        "conservative_treatment_required": True,
        "conservative_treatment_details": {
            "min_duration": "3 months",
            "treatments": ["Physical therapy", "Corticosteroid injections", "NSAIDs", "Weight management"],
        },
        "frequency_limits": {"max_per_lifetime": 2, "per_knee": 1},
        "source_url": "https://www.cms.gov/medicare-coverage-database/view/ncd.aspx?NCDId=150.4",
    },
    {
        "policy_id": "LCD-078",
        "policy_type": "LCD",
        "title": "Cardiac Catheterization - Diagnostic",
        "procedure_codes": ["93458", "93459", "93460", "93461"],
        "diagnosis_codes": ["I25.10", "I20.0", "R07.9", "I25.110"],
        "effective_date": date(2024, 1, 1),
        "medical_necessity_criteria": [
            "Abnormal non-invasive cardiac testing (stress test, nuclear imaging)",
            "Unstable angina or acute coronary syndrome presentation",
            "Evaluation of known coronary artery disease with change in symptoms",
        ],
        "required_documentation": [
            "Prior non-invasive test results",
            "Cardiology consultation notes",
            "Medication list",
        ],
        "approval_conditions": {"auto_approve": False, "conditions": ["Acute MI or unstable angina presentation"]},
        "denial_conditions": {
            "conditions": [
                "No prior non-invasive testing performed",
                "Routine screening without symptoms",
            ],
        },
        "review_triggers": {"conditions": ["Age over 80", "Multiple comorbidities"]},
        "conservative_treatment_required": True,
        "conservative_treatment_details": {
            "min_duration": "Prior non-invasive evaluation required",
            "treatments": ["Stress testing", "Echocardiography", "Medication optimization"],
        },
        "frequency_limits": {"max_per_year": 2, "min_days_between": 180},
        "source_url": "https://www.cms.gov/medicare-coverage-database/view/lcd.aspx?LCDId=78",
    },
    {
        "policy_id": "NCD-210.3",
        "policy_type": "NCD",
        "title": "Screening Colonoscopy",
        "procedure_codes": ["45380", "45378", "45385"],
        "diagnosis_codes": ["K63.5", "Z12.11", "D12.6", "Z86.010"],
        "effective_date": date(2024, 1, 1),
        "medical_necessity_criteria": [
            "Age 45+ for average-risk screening (per ACS guidelines)",
            "Positive fecal occult blood test or FIT test",
            "Symptoms: rectal bleeding, change in bowel habits, unexplained anemia",
        ],
        "required_documentation": [
            "Patient age and risk assessment",
            "Prior colonoscopy date and findings",
        ],
        "approval_conditions": {
            "auto_approve": True,
            "conditions": ["Screening age 45+ with no colonoscopy in 10 years"],
        },
        "denial_conditions": {
            "conditions": [
                "Screening interval not met (less than 10 years for average risk)",
                "No documented indication",
            ],
        },
        "review_triggers": {"conditions": ["Request within 5 years of prior colonoscopy"]},
        "conservative_treatment_required": False,
        "conservative_treatment_details": None,
        "frequency_limits": {"screening_every_years": 10},
        "source_url": "https://www.cms.gov/medicare-coverage-database/view/ncd.aspx?NCDId=210.3",
    },
    {
        "policy_id": "LCD-056",
        "policy_type": "LCD",
        "title": "Lumbar Spinal Fusion Surgery",
        "procedure_codes": ["22612", "22614", "22630", "22633"],
        "diagnosis_codes": ["M43.16", "M51.16", "M48.06"],
        "effective_date": date(2024, 1, 1),
        "medical_necessity_criteria": [
            "Documented spinal instability or spondylolisthesis on imaging",
            "Failure of conservative treatment for minimum 6 months",
            "Correlation between imaging findings and clinical symptoms",
        ],
        "required_documentation": [
            "MRI or CT of lumbar spine within 6 months",
            "Conservative treatment records (PT, injections, medication)",
        ],
        "approval_conditions": {"auto_approve": False, "conditions": []},
        "denial_conditions": {
            "conditions": ["Conservative treatment documentation insufficient"],
        },
        "review_triggers": {"conditions": ["Prior lumbar surgery"]},
        "conservative_treatment_required": True,
        "conservative_treatment_details": {"min_duration": "6 months", "treatments": ["Physical therapy"]},
        "frequency_limits": None,
        "source_url": "https://www.cms.gov/medicare-coverage-database/view/lcd.aspx?LCDId=56",
    },
]


def _member(member_id: str, first: str, last: str, dob: str, gender: str, **overrides: Any) -> Dict[str, Any]:
    member = {
        "member_id": member_id,
        "first_name": first,
        "last_name": last,
        "date_of_birth": dob,
        "gender": gender,
        "address": {"line1": "100 Main St", "city": "Hartford", "state": "CT", "zip": "06103"},
        "phone": "860-555-0100",
        "email": f"{first.lower()}.{last.lower()}@example.com",
        "plan_type": "PPO",
        "plan_id": "PPO-GOLD-2026",
        "group_number": "GRP-44821",
        "coverage_level": "Employee + Spouse",
        "is_active": True,
        "effective_date": date(2024, 1, 1),
        "termination_date": None,
        "pre_auth_required": True,
        "copay_primary": 25.0,
        "copay_specialist": 50.0,
        "deductible_annual": 1500.0,
        "deductible_met": 850.0,
        "max_out_of_pocket": 6000.0,
        "oop_met": 1200.0,
        "pcp_name": "Dr. Alan Reyes",
        "pcp_npi": "1234567001",
    }
    member.update(overrides)
    return member


SEED_MEMBERS: List[Dict[str, Any]] = [
    _member("MEM-100004", "Maria", "Garcia", "1968-04-10", "F"),
    _member("MEM-100005", "James", "Wilson", "1955-09-28", "M", plan_type="Medicare Advantage"),
    _member("MEM-100006", "Sarah", "Davis", "1978-12-03", "F", plan_type="HMO"),
    _member("MEM-100007", "Michael", "Brown", "1965-06-17", "M", is_active=False,
            termination_date=date(2025, 6, 30)),
]


def build_seed_claims(today: Optional[date] = None) -> List[Dict[str, Any]]:
    """Claims dated relative to ``today`` so they fall inside the default lookback window."""
    return [
        {
            "claim_id": "CLM-400101", "member_id": "MEM-100004", "service_date": _days_ago(40, today),
            "provider_name": "Springfield Orthopedic Center", "facility_name": "Springfield Ortho",
            "cpt_code": "20610", "cpt_description": "Knee joint injection", "icd10_codes": ["M17.11"],
            "billed_amount": 450.0, "paid_amount": 360.0, "patient_responsibility": 90.0,
            "claim_status": "paid", "service_type": "outpatient", "auth_number": None,
        },
        {
            "claim_id": "CLM-400102", "member_id": "MEM-100004", "service_date": _days_ago(95, today),
            "provider_name": "Hartford Physical Therapy", "facility_name": "Hartford PT",
            "cpt_code": "97110", "cpt_description": "Therapeutic exercise", "icd10_codes": ["M17.11"],
            "billed_amount": 180.0, "paid_amount": 144.0, "patient_responsibility": 36.0,
            "claim_status": "paid", "service_type": "therapy", "auth_number": "AUTH-77120",
        },
        {
            "claim_id": "CLM-400103", "member_id": "MEM-100004", "service_date": _days_ago(200, today),
            "provider_name": "Springfield Orthopedic Center", "facility_name": "Springfield Ortho",
            "cpt_code": "73562", "cpt_description": "X-ray knee, 3 views", "icd10_codes": ["M17.11"],
            "billed_amount": 220.0, "paid_amount": 0.0, "patient_responsibility": 0.0,
            "claim_status": "denied", "denial_reason": "Duplicate claim submission",
            "service_type": "radiology", "auth_number": None,
        },
        {
            "claim_id": "CLM-400104", "member_id": "MEM-100004", "service_date": _days_ago(500, today),
            "provider_name": "Hartford Primary Care", "facility_name": "Hartford PC",
            "cpt_code": "99214", "cpt_description": "Office visit", "icd10_codes": ["Z00.00"],
            "billed_amount": 160.0, "paid_amount": 130.0, "patient_responsibility": 30.0,
            "claim_status": "paid", "service_type": "office", "auth_number": None,
        },
        {
            "claim_id": "CLM-400201", "member_id": "MEM-100005", "service_date": _days_ago(60, today),
            "provider_name": "Providence Heart Center", "facility_name": "Providence Heart",
            "cpt_code": "78452", "cpt_description": "Nuclear stress test", "icd10_codes": ["I25.10"],
            "billed_amount": 1200.0, "paid_amount": 950.0, "patient_responsibility": 250.0,
            "claim_status": "paid", "service_type": "cardiology", "auth_number": "AUTH-88210",
        },
    ]


SEED_REQUESTS: List[Dict[str, Any]] = [
    {
        "request_id": "PA-2026-0409", "patient_name": "Maria Garcia", "patient_dob": "1968-04-10",
        "member_id": "MEM-100004", "provider": "Springfield Orthopedic Center", "provider_npi": "1234567104",
        "procedure_name": "Total Knee Arthroplasty - Right", "procedure_code": "27447",
        "diagnosis_codes": ["M17.11"], "status": "pending", "priority": "high",
        "document_url": "/documents/PA-2026-0409.pdf",
    },
    {
        "request_id": "PA-2026-0408", "patient_name": "James Wilson", "patient_dob": "1955-09-28",
        "member_id": "MEM-100005", "provider": "Providence Heart Center", "provider_npi": "1234567105",
        "procedure_name": "Cardiac Catheterization - Left Heart", "procedure_code": "93458",
        "diagnosis_codes": ["I25.10", "I20.0", "R07.9"], "status": "pending", "priority": "high",
        "document_url": "/documents/PA-2026-0408.pdf",
    },
    {
        "request_id": "PA-2026-0407", "patient_name": "Sarah Davis", "patient_dob": "1978-12-03",
        "member_id": "MEM-100006", "provider": "Stamford GI Associates", "provider_npi": "1234567006",
        "procedure_name": "Screening Colonoscopy with Polypectomy", "procedure_code": "45380",
        "diagnosis_codes": ["K63.5", "Z12.11"], "status": "pending", "priority": "medium",
        "document_url": "/documents/PA-2026-0407.pdf",
    },
    {
        "request_id": "PA-2026-0406", "patient_name": "Michael Brown", "patient_dob": "1965-06-17",
        "member_id": "MEM-100007", "provider": "Worcester Spine Center", "provider_npi": "1234567007",
        "procedure_name": "Lumbar Spinal Fusion L4-L5", "procedure_code": "CPT-22612",
        "diagnosis_codes": ["M43.16", "M51.16"], "status": "pending", "priority": "high",
        "document_url": None,
    },
]


async def seed_reference_data(
    session_factory: async_sessionmaker[AsyncSession],
    today: Optional[date] = None,
) -> int:
    """
    Insert seed rows that are not already present.

    Args:
        session_factory: Session factory bound to the target database
        today: Anchor date for relative claim dates (defaults to today)

    Returns:
        Number of rows inserted
    """
    seeded = 0
    batches = [
        (CoveragePolicyModel, "policy_id", SEED_POLICIES),
        (MemberModel, "member_id", SEED_MEMBERS),
        (ClaimModel, "claim_id", build_seed_claims(today)),
        (PriorAuthRequestModel, "request_id", SEED_REQUESTS),
    ]

    async with session_factory.begin() as session:
        for model, key, rows in batches:
            column = getattr(model, key)
            result = await session.execute(select(column))
            existing = set(result.scalars().all())
            for row in rows:
                if row[key] in existing:
                    continue
                values = dict(row)
                if model is PriorAuthRequestModel:
                    values.setdefault("submitted_date", datetime.now(timezone.utc))
                session.add(model(**values))
                seeded += 1

    if seeded:
        logger.info("Reference data seeded", rows=seeded)
    else:
        logger.info("Reference data already seeded, skipping")
    return seeded
