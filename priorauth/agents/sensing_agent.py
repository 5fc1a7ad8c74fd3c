"""Sensing agent: classifies an incoming request before planning."""
from typing import Iterable, Optional

from priorauth.agents.base import StageAgent
from priorauth.models.enums import Complexity, DocumentType, Priority, TraceLevel
from priorauth.models.prior_auth import PriorAuthRequest
from priorauth.models.progress import ProgressCallbacks, StepDescriptor
from priorauth.models.stage_outputs import SensingOutput
from priorauth.config.settings import Settings, get_settings
from priorauth.config.logging_config import get_logger

logger = get_logger(__name__)

_IMAGE_EXTENSIONS = (".jpg", ".png")


def classify_priority(request: PriorAuthRequest, urgent_codes: Iterable[str]) -> Priority:
    """High for urgent procedures or requests already marked high, otherwise medium."""
    if request.clean_procedure_code in set(urgent_codes):
        return Priority.HIGH
    if request.priority == Priority.HIGH:
        return Priority.HIGH
    return Priority.MEDIUM


def detect_document_type(document_url: Optional[str]) -> DocumentType:
    """Infer the document type from the reference's extension."""
    if not document_url:
        return DocumentType.UNKNOWN
    if document_url.endswith(".pdf"):
        return DocumentType.CLINICAL_PDF
    if document_url.endswith(_IMAGE_EXTENSIONS):
        return DocumentType.SCANNED_IMAGE
    return DocumentType.ELECTRONIC_SUBMISSION


def complexity_score(request: PriorAuthRequest, complex_codes: Iterable[str]) -> int:
    score = 0
    if len(request.diagnosis_codes) > 2:
        score += 2
    if request.diagnosis_codes:
        score += 1
    if request.clean_procedure_code in set(complex_codes):
        score += 3
    return score


def complexity_from_score(score: int) -> Complexity:
    if score >= 4:
        return Complexity.HIGH
    if score >= 2:
        return Complexity.MEDIUM
    return Complexity.LOW


class SensingAgent(StageAgent):
    """Detects and classifies an incoming prior authorization request."""

    name = "PriorAuthSensingAgent"
    category = "Sensing Agent"

    def __init__(self, settings: Optional[Settings] = None):
        settings = settings or get_settings()
        self.urgent_codes = frozenset(settings.urgent_procedure_codes)
        self.complex_codes = frozenset(settings.complex_procedure_codes)

    async def run(
        self,
        previous: PriorAuthRequest,
        request: PriorAuthRequest,
        callbacks: ProgressCallbacks,
    ) -> SensingOutput:
        await callbacks.trace(TraceLevel.INFO, self.category, "Prior Auth Sensing Agent activated", {
            "agent": self.name,
            "trigger": "Document upload event",
            "source": "API request",
        })

        priority = classify_priority(request, self.urgent_codes)
        document_type = detect_document_type(request.document_url)
        score = complexity_score(request, self.complex_codes)
        complexity = complexity_from_score(score)

        await callbacks.trace(TraceLevel.SUCCESS, self.category, "New prior authorization request detected", {
            "request_id": request.request_id,
            "provider": request.provider,
            "priority": priority.value,
            "complexity": complexity.value,
            "document_type": document_type.value,
            "next_step": "Invoke Planning Agent",
        })

        await callbacks.step(StepDescriptor(
            name="Prior Auth Sensing Agent",
            description="Sensing agent detects and classifies incoming request",
            details=[
                "New request detected and classified",
                f"Document type: {document_type.value}",
                f"Priority assessed: {priority.value}",
                f"Complexity: {complexity.value}",
            ],
        ))

        logger.debug(
            "Request classified",
            request_id=request.request_id,
            priority=priority.value,
            complexity=complexity.value,
        )
        return SensingOutput(
            priority=priority,
            document_type=document_type,
            complexity=complexity,
            complexity_score=score,
            urgent_procedure=request.clean_procedure_code in self.urgent_codes,
        )
